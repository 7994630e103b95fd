"""Recursive value, derivative and differentiability evaluation of term trees.

Every function dispatches over the closed set of term variants with ``match``.
Results are written into caller-supplied ``NumericValue`` outputs; scratch
values are local to each call, so the same tree may be evaluated by several
frames without sharing buffers.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from termcalc._differentiability import DifferentiableType, combine
from termcalc._document import ARG_NUMBER_INTERVAL, EquationKind
from termcalc._resolver import ResolutionStatus
from termcalc._terms import (
    ArgumentRef,
    CommonFunctionKind,
    CommonFunctionTerm,
    EmptyField,
    FunctionKind,
    FunctionTerm,
    Literal,
    LoopTerm,
    OperatorKind,
    OperatorTerm,
    VariableRef,
)
from termcalc._units import divide_units, to_base
from termcalc._value import ErrorType, NumericValue, ValueKind

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    import pint

    from termcalc._context import Frame
    from termcalc._document import Equation
    from termcalc._terms import TermField

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Public entry points
# ----------------------------------------------------------------------


def get_value(field: TermField, frame: Frame, out: NumericValue) -> ValueKind:
    """Evaluate ``field`` into ``out`` and return the resulting kind."""
    if frame.cancelled:
        return out.invalidate(ErrorType.CANCELLED)
    match field:
        case EmptyField():
            return out.invalidate(ErrorType.TERM_NOT_READY)
        case Literal(value=value, unit=unit):
            if isinstance(value, complex):
                out.set_complex(value.real, value.imag)
            else:
                out.set_real(float(value))
            return _read_in_unit(out, unit)
        case ArgumentRef(name=name, sign=sign, unit=unit):
            bound = frame.lookup(name)
            if bound is None:
                return out.invalidate(ErrorType.TERM_NOT_READY)
            out.assign(bound)
            _read_in_unit(out, unit)
            return out.scale(sign)
        case VariableRef():
            return _variable_value(field, frame, out)
        case OperatorTerm():
            return _operator_value(field, frame, out)
        case FunctionTerm():
            return _function_value(field, frame, out)
        case CommonFunctionTerm():
            return _common_function_value(field, frame, out)
        case LoopTerm():
            from ._loops import loop_value  # noqa: PLC0415

            return loop_value(field, frame, out)
    msg = f"Unsupported term: {type(field).__name__}"
    raise TypeError(msg)


def get_derivative_value(field: TermField, var: str, frame: Frame, out: NumericValue) -> ValueKind:
    """Evaluate the analytic derivative of ``field`` with respect to ``var`` into ``out``."""
    if frame.cancelled:
        return out.invalidate(ErrorType.CANCELLED)
    match field:
        case ArgumentRef(name=name, sign=sign, unit=unit) | VariableRef(name=name, sign=sign, unit=unit) if (
            name == var
        ):
            return _reference_derivative(name, sign, unit, frame, out)
        case EmptyField() | Literal() | ArgumentRef() | VariableRef():
            return out.set_real(0.0)
        case OperatorTerm():
            return _operator_derivative(field, var, frame, out)
        case FunctionTerm():
            return _function_derivative(field, var, frame, out)
        case CommonFunctionTerm():
            return _common_function_derivative(field, var, frame, out)
        case LoopTerm():
            from ._loops import loop_derivative  # noqa: PLC0415

            return loop_derivative(field, var, frame, out)
    msg = f"Unsupported term: {type(field).__name__}"
    raise TypeError(msg)


def is_differentiable(field: TermField, var: str, frame: Frame) -> DifferentiableType:
    """Classify how the derivative of ``field`` with respect to ``var`` can be obtained."""
    match field:
        case ArgumentRef(name=name) | VariableRef(name=name) if name == var:
            return DifferentiableType.ANALYTICAL
        case EmptyField() | Literal() | ArgumentRef() | VariableRef():
            return DifferentiableType.INDEPENDENT
        case OperatorTerm(left=left, right=right):
            return combine(is_differentiable(left, var, frame), is_differentiable(right, var, frame))
        case FunctionTerm():
            return _function_differentiability(field, var, frame)
        case CommonFunctionTerm():
            return _common_function_differentiability(field, var, frame)
        case LoopTerm():
            from ._loops import loop_differentiability  # noqa: PLC0415

            return loop_differentiability(field, var, frame)
    msg = f"Unsupported term: {type(field).__name__}"
    raise TypeError(msg)


def evaluate(field: TermField, frame: Frame) -> NumericValue:
    """Evaluate ``field`` into a new value."""
    out = NumericValue()
    get_value(field, frame, out)
    return out


def evaluate_derivative(field: TermField, var: str, frame: Frame) -> NumericValue:
    out = NumericValue()
    get_derivative_value(field, var, frame, out)
    return out


# ----------------------------------------------------------------------
# Equations
# ----------------------------------------------------------------------


def equation_value(
    equation: Equation,
    frame: Frame,
    args: Sequence[NumericValue],
    out: NumericValue,
) -> ValueKind:
    """Evaluate ``equation`` with its parameters bound to ``args``."""
    if not frame.context.is_content_valid(equation):
        return out.invalidate(ErrorType.TERM_NOT_READY)
    if equation.kind == EquationKind.INTERVAL:
        return _interval_value(equation, args, out)
    if len(args) != len(equation.parameters):
        return out.invalidate(ErrorType.TERM_NOT_READY)
    bindings = dict(zip(equation.parameters, args, strict=True))
    if equation.kind == EquationKind.ARRAY:
        for name, index in bindings.items():
            if not index.is_real():
                return out.invalidate(ErrorType.NOT_A_REAL if index.is_complex() else ErrorType.NOT_A_NUMBER)
            bindings[name] = NumericValue.of(float(index.integer()))
    return get_value(equation.body, frame.call(equation, bindings), out)


def equation_derivative(
    equation: Equation,
    parameter: str,
    frame: Frame,
    args: Sequence[NumericValue],
    out: NumericValue,
) -> ValueKind:
    """Partial derivative of a function equation with respect to one of its parameters."""
    if equation.kind != EquationKind.FUNCTION or len(args) != len(equation.parameters):
        return out.invalidate(ErrorType.NOT_A_NUMBER)
    if not frame.context.is_content_valid(equation):
        return out.invalidate(ErrorType.TERM_NOT_READY)
    bindings = dict(zip(equation.parameters, args, strict=True))
    return get_derivative_value(equation.body, parameter, frame.call(equation, bindings), out)


def equation_differentiability(equation: Equation, parameter: str, frame: Frame) -> DifferentiableType:
    if equation.kind != EquationKind.FUNCTION:
        return DifferentiableType.NONE
    return is_differentiable(equation.body, parameter, frame.call(equation, {}))


def _interval_value(equation: Equation, args: Sequence[NumericValue], out: NumericValue) -> ValueKind:
    interval = equation.interval
    if interval is None or len(args) != 1:
        return out.invalidate(ErrorType.TERM_NOT_READY)
    index = args[0]
    if not index.is_real():
        return out.invalidate(ErrorType.NOT_A_REAL if index.is_complex() else ErrorType.NOT_A_NUMBER)
    position = index.integer()
    if not 0 <= position < interval.points:
        return out.invalidate(ErrorType.NOT_A_NUMBER)
    out.set_real(interval.value_at(position))
    return _read_in_unit(out, interval.unit)


def resolve_constant(name: str, frame: Frame) -> Equation | None:
    """Find the constant (0-ary) equation ``name`` visible from the frame's equation."""
    resolution = frame.context.resolver.resolve(name, 0, frame.equation)
    return resolution.resolved


def resolve_link(term: FunctionTerm, frame: Frame) -> Equation | None:
    """Find the equation a LINK or INDEX term refers to, or None if it is not usable."""
    if term.link_name is None:
        return None
    resolver = frame.context.resolver
    resolution = resolver.resolve(term.link_name, len(term.args), frame.equation)
    if resolution.status == ResolutionStatus.UNKNOWN:
        resolution = resolver.resolve(term.link_name, ARG_NUMBER_INTERVAL, frame.equation)
    target = resolution.resolved
    if target is None:
        return None
    if term.kind == FunctionKind.LINK and (target.is_array or target.is_interval):
        return None
    if term.kind == FunctionKind.INDEX and not (target.is_array or target.is_interval):
        return None
    return target


# ----------------------------------------------------------------------
# Leaves
# ----------------------------------------------------------------------


def _read_in_unit(out: NumericValue, unit: pint.Unit | None) -> ValueKind:
    """Interpret the magnitude of ``out`` in ``unit`` and convert it to base units."""
    if unit is None or out.kind == ValueKind.INVALID:
        return out.kind
    if out.unit is not None:
        out.convert_unit(out.unit, unit)
    factor, base = to_base(unit)
    out.scale(factor)
    out.unit = base
    return out.kind


def _reference_derivative(
    name: str,
    sign: float,
    unit: pint.Unit | None,
    frame: Frame,
    out: NumericValue,
) -> ValueKind:
    """Derivative of a reference to ``var`` by itself.

    A reference read in a unit is converted to base units, so its derivative is
    that conversion factor, per unit of the bound value.
    """
    if unit is None:
        return out.set_real(sign)
    bound = frame.lookup(name)
    bound_unit = None if bound is None else bound.unit
    out.set_real(sign, bound_unit)
    _read_in_unit(out, unit)
    out.unit = divide_units(out.unit, bound_unit)
    return out.kind


def _variable_value(ref: VariableRef, frame: Frame, out: NumericValue) -> ValueKind:
    bound = frame.lookup(ref.name)
    if bound is not None:
        out.assign(bound)
    else:
        target = resolve_constant(ref.name, frame)
        if target is None:
            return out.invalidate(ErrorType.TERM_NOT_READY)
        equation_value(target, frame, (), out)
    _read_in_unit(out, ref.unit)
    return out.scale(ref.sign)


# ----------------------------------------------------------------------
# Operators
# ----------------------------------------------------------------------


def _operator_value(term: OperatorTerm, frame: Frame, out: NumericValue) -> ValueKind:
    f, g = NumericValue(), NumericValue()
    get_value(term.left, frame, f)
    get_value(term.right, frame, g)
    match term.kind:
        case OperatorKind.PLUS:
            return out.add(f, g)
        case OperatorKind.MINUS:
            return out.subtract(f, g)
        case OperatorKind.MULT:
            return out.multiply(f, g)
        case OperatorKind.DIVIDE:
            return out.divide(f, g)


def _operator_derivative(term: OperatorTerm, var: str, frame: Frame, out: NumericValue) -> ValueKind:
    f_der, g_der = NumericValue(), NumericValue()
    get_derivative_value(term.left, var, frame, f_der)
    get_derivative_value(term.right, var, frame, g_der)
    match term.kind:
        case OperatorKind.PLUS:
            return out.add(f_der, g_der)
        case OperatorKind.MINUS:
            return out.subtract(f_der, g_der)
    # a side independent of var drops out, so a zero in its unit never meets the other term
    left_independent = is_differentiable(term.left, var, frame) == DifferentiableType.INDEPENDENT
    right_independent = is_differentiable(term.right, var, frame) == DifferentiableType.INDEPENDENT
    f, g = NumericValue(), NumericValue()
    get_value(term.left, frame, f)
    get_value(term.right, frame, g)
    f_der.multiply(f_der, g)
    f.multiply(f, g_der)
    if term.kind == OperatorKind.MULT:
        if left_independent:
            return out.assign(f)
        if right_independent:
            return out.assign(f_der)
        return out.add(f_der, f)
    # (f'g - fg') / g^2
    if left_independent:
        g_der.assign(f)
        g_der.scale(-1.0)
    elif right_independent:
        g_der.assign(f_der)
    else:
        g_der.subtract(f_der, f)
    f_der.multiply(g, g)
    return out.divide(g_der, f_der)


# ----------------------------------------------------------------------
# User functions
# ----------------------------------------------------------------------


def _argument_values(term: FunctionTerm | CommonFunctionTerm, frame: Frame) -> list[NumericValue]:
    return [evaluate(arg, frame) for arg in term.args]


def _function_value(term: FunctionTerm, frame: Frame, out: NumericValue) -> ValueKind:
    if term.kind == FunctionKind.IDENTITY:
        return get_value(term.args[0], frame, out)
    args = _argument_values(term, frame)
    target = resolve_link(term, frame)
    if target is None:
        return out.invalidate(ErrorType.TERM_NOT_READY)
    return equation_value(target, frame, args, out)


def _arguments_rank(term: FunctionTerm | CommonFunctionTerm, var: str, frame: Frame) -> DifferentiableType:
    return combine(*(is_differentiable(arg, var, frame) for arg in term.args))


def _function_differentiability(term: FunctionTerm, var: str, frame: Frame) -> DifferentiableType:
    args_rank = _arguments_rank(term, var, frame)
    match term.kind:
        case FunctionKind.IDENTITY:
            return args_rank
        case FunctionKind.INDEX:
            # index lookups are not differentiable in the index variable
            if args_rank == DifferentiableType.INDEPENDENT:
                return DifferentiableType.INDEPENDENT
            return DifferentiableType.NONE
    if args_rank == DifferentiableType.INDEPENDENT:
        return DifferentiableType.INDEPENDENT
    target = resolve_link(term, frame)
    if target is None:
        return DifferentiableType.NONE
    if len(target.parameters) != len(term.args):
        return combine(args_rank, DifferentiableType.ANALYTICAL)
    ranks = [
        equation_differentiability(target, parameter, frame)
        for parameter, arg in zip(target.parameters, term.args, strict=True)
        if is_differentiable(arg, var, frame) != DifferentiableType.INDEPENDENT
    ]
    return combine(args_rank, *ranks)


def _function_derivative(term: FunctionTerm, var: str, frame: Frame, out: NumericValue) -> ValueKind:
    match term.kind:
        case FunctionKind.IDENTITY:
            return get_derivative_value(term.args[0], var, frame, out)
        case FunctionKind.INDEX:
            if _arguments_rank(term, var, frame) == DifferentiableType.INDEPENDENT:
                return out.set_real(0.0)
            return out.invalidate(ErrorType.NOT_A_NUMBER)
    target = resolve_link(term, frame)
    if target is None:
        return out.invalidate(ErrorType.TERM_NOT_READY)
    if len(target.parameters) != len(term.args):
        # malformed call: zero is a fallback, not a proof of independence
        logger.debug("Arity mismatch linking %s; derivative falls back to zero", term.link_name)
        return out.set_real(0.0)

    # chain rule: sum over parameters p_i of d(target)/d(p_i) * d(arg_i)/d(var)
    args = _argument_values(term, frame)
    out.set_real(0.0)
    first = True
    for parameter, arg in zip(target.parameters, term.args, strict=True):
        if is_differentiable(arg, var, frame) == DifferentiableType.INDEPENDENT:
            continue
        partial, inner = NumericValue(), NumericValue()
        equation_derivative(target, parameter, frame, args, partial)
        get_derivative_value(arg, var, frame, inner)
        partial.multiply(partial, inner)
        if first:
            out.assign(partial)
            first = False
        else:
            out.add(out, partial)
    return out.kind


# ----------------------------------------------------------------------
# Common functions
# ----------------------------------------------------------------------

_UNARY: dict[CommonFunctionKind, Callable[[NumericValue, NumericValue], ValueKind]] = {
    CommonFunctionKind.ABS: NumericValue.abs,
    CommonFunctionKind.SQRT: NumericValue.sqrt,
    CommonFunctionKind.EXP: NumericValue.exp,
    CommonFunctionKind.LOG: NumericValue.log,
    CommonFunctionKind.LOG10: NumericValue.log10,
    CommonFunctionKind.SIN: NumericValue.sin,
    CommonFunctionKind.COS: NumericValue.cos,
    CommonFunctionKind.TAN: NumericValue.tan,
    CommonFunctionKind.CSC: NumericValue.csc,
    CommonFunctionKind.SEC: NumericValue.sec,
    CommonFunctionKind.COT: NumericValue.cot,
    CommonFunctionKind.ASIN: NumericValue.asin,
    CommonFunctionKind.ACOS: NumericValue.acos,
    CommonFunctionKind.ATAN: NumericValue.atan,
    CommonFunctionKind.SINH: NumericValue.sinh,
    CommonFunctionKind.COSH: NumericValue.cosh,
    CommonFunctionKind.TANH: NumericValue.tanh,
    CommonFunctionKind.CSCH: NumericValue.csch,
    CommonFunctionKind.SECH: NumericValue.sech,
    CommonFunctionKind.COTH: NumericValue.coth,
    CommonFunctionKind.CEIL: NumericValue.ceil,
    CommonFunctionKind.FLOOR: NumericValue.floor,
    CommonFunctionKind.CONJ: NumericValue.conj,
    CommonFunctionKind.RANDOM: NumericValue.random,
}

_ANALYTIC_FUNCTIONS = frozenset(
    {
        CommonFunctionKind.SQRT,
        CommonFunctionKind.EXP,
        CommonFunctionKind.LOG,
        CommonFunctionKind.LOG10,
        CommonFunctionKind.SIN,
        CommonFunctionKind.COS,
        CommonFunctionKind.TAN,
        CommonFunctionKind.ASIN,
        CommonFunctionKind.ACOS,
        CommonFunctionKind.ATAN,
        CommonFunctionKind.SINH,
        CommonFunctionKind.COSH,
        CommonFunctionKind.TANH,
        CommonFunctionKind.POWER,
    },
)


def _common_function_value(term: CommonFunctionTerm, frame: Frame, out: NumericValue) -> ValueKind:
    args = _argument_values(term, frame)
    match term.kind:
        case CommonFunctionKind.POWER:
            return out.pow(args[0], args[1])
        case CommonFunctionKind.NTHROOT:
            degree = args[1]
            if not degree.is_real() or not float(degree.real).is_integer():
                return out.invalidate(ErrorType.NOT_A_NUMBER)
            return out.nth_root(args[0], degree.integer())
    return _UNARY[term.kind](out, args[0])


def _common_function_differentiability(term: CommonFunctionTerm, var: str, frame: Frame) -> DifferentiableType:
    args_rank = _arguments_rank(term, var, frame)
    if args_rank == DifferentiableType.INDEPENDENT or term.kind in _ANALYTIC_FUNCTIONS:
        return args_rank
    return combine(args_rank, DifferentiableType.NUMERICAL)


def _constant(number: float) -> NumericValue:
    return NumericValue.of(number)


def _common_function_derivative(  # noqa: C901, PLR0911, PLR0912
    term: CommonFunctionTerm,
    var: str,
    frame: Frame,
    out: NumericValue,
) -> ValueKind:
    if term.kind not in _ANALYTIC_FUNCTIONS:
        if _arguments_rank(term, var, frame) == DifferentiableType.INDEPENDENT:
            return out.set_real(0.0)
        return out.invalidate(ErrorType.NOT_A_NUMBER)
    if term.kind == CommonFunctionKind.POWER:
        return _power_derivative(term, var, frame, out)

    a = evaluate(term.args[0], frame)
    d = evaluate_derivative(term.args[0], var, frame)
    tmp = NumericValue()
    match term.kind:
        case CommonFunctionKind.SQRT:
            tmp.sqrt(a)
            tmp.multiply(tmp, _constant(2.0))
            return out.divide(d, tmp)
        case CommonFunctionKind.EXP:
            tmp.exp(a)
            return out.multiply(tmp, d)
        case CommonFunctionKind.LOG:
            return out.divide(d, a)
        case CommonFunctionKind.LOG10:
            tmp.multiply(a, _constant(math.log(10.0)))
            return out.divide(d, tmp)
        case CommonFunctionKind.SIN:
            tmp.cos(a)
            return out.multiply(tmp, d)
        case CommonFunctionKind.COS:
            tmp.sin(a)
            tmp.scale(-1.0)
            return out.multiply(tmp, d)
        case CommonFunctionKind.TAN:
            tmp.cos(a)
            tmp.multiply(tmp, tmp)
            return out.divide(d, tmp)
        case CommonFunctionKind.ASIN | CommonFunctionKind.ACOS:
            tmp.multiply(a, a)
            tmp.subtract(_constant(1.0), tmp)
            tmp.sqrt(tmp)
            out.divide(d, tmp)
            if term.kind == CommonFunctionKind.ACOS:
                out.scale(-1.0)
            return out.kind
        case CommonFunctionKind.ATAN:
            tmp.multiply(a, a)
            tmp.add(_constant(1.0), tmp)
            return out.divide(d, tmp)
        case CommonFunctionKind.SINH:
            tmp.cosh(a)
            return out.multiply(tmp, d)
        case CommonFunctionKind.COSH:
            tmp.sinh(a)
            return out.multiply(tmp, d)
        case CommonFunctionKind.TANH:
            tmp.cosh(a)
            tmp.multiply(tmp, tmp)
            return out.divide(d, tmp)
    return out.invalidate(ErrorType.NOT_A_NUMBER)


def _power_derivative(term: CommonFunctionTerm, var: str, frame: Frame, out: NumericValue) -> ValueKind:
    base_field, exponent_field = term.args
    f = evaluate(base_field, frame)
    g = evaluate(exponent_field, frame)
    f_der = evaluate_derivative(base_field, var, frame)
    tmp = NumericValue()
    if is_differentiable(exponent_field, var, frame) == DifferentiableType.INDEPENDENT:
        # g * f^(g-1) * f'
        tmp.subtract(g, _constant(1.0))
        tmp.pow(f, tmp)
        tmp.multiply(tmp, g)
        return out.multiply(tmp, f_der)
    # f^g * (g' ln f + g f' / f)
    g_der = evaluate_derivative(exponent_field, var, frame)
    log_f = NumericValue()
    log_f.log(f)
    log_f.multiply(g_der, log_f)
    tmp.multiply(g, f_der)
    tmp.divide(tmp, f)
    tmp.add(log_f, tmp)
    power = NumericValue()
    power.pow(f, g)
    return out.multiply(power, tmp)
