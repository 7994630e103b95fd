"""Helpers for building term trees in Python code.

Plain numbers are accepted wherever a term is expected::

    from termcalc import builders as t

    # f(x) = sum_{i=1}^{n} i * x
    body = t.summation("i", 1, t.var("n"), t.times(t.arg("i"), t.arg("x")))
"""

from __future__ import annotations

from functools import reduce
from typing import TYPE_CHECKING

from ._terms import (
    ArgumentRef,
    CommonFunctionKind,
    CommonFunctionTerm,
    EmptyField,
    FunctionKind,
    FunctionTerm,
    Literal,
    LoopKind,
    LoopTerm,
    OperatorKind,
    OperatorTerm,
    TermField,
    VariableRef,
)
from ._units import parse_unit

if TYPE_CHECKING:
    import pint

type TermLike = TermField | float | complex
type UnitLike = str | pint.Unit | None


def _unit(unit: UnitLike) -> pint.Unit | None:
    if isinstance(unit, str):
        return parse_unit(unit)
    return unit


def term(value: TermLike) -> TermField:
    """Return ``value`` as a term, wrapping plain numbers in a literal."""
    if isinstance(value, bool):
        msg = "Booleans are not numeric terms"
        raise TypeError(msg)
    if isinstance(value, int | float | complex):
        return Literal(value)
    return value


def empty() -> EmptyField:
    return EmptyField()


def num(value: float | complex, unit: UnitLike = None) -> Literal:
    return Literal(value, _unit(unit))


def arg(name: str, unit: UnitLike = None, *, negate: bool = False) -> ArgumentRef:
    return ArgumentRef(name, -1.0 if negate else 1.0, _unit(unit))


def var(name: str, unit: UnitLike = None, *, negate: bool = False) -> VariableRef:
    return VariableRef(name, -1.0 if negate else 1.0, _unit(unit))


def plus(left: TermLike, right: TermLike) -> OperatorTerm:
    return OperatorTerm(OperatorKind.PLUS, term(left), term(right))


def minus(left: TermLike, right: TermLike) -> OperatorTerm:
    return OperatorTerm(OperatorKind.MINUS, term(left), term(right))


def times(left: TermLike, right: TermLike) -> OperatorTerm:
    return OperatorTerm(OperatorKind.MULT, term(left), term(right))


def divide(left: TermLike, right: TermLike) -> OperatorTerm:
    return OperatorTerm(OperatorKind.DIVIDE, term(left), term(right))


def total(first: TermLike, *rest: TermLike) -> TermField:
    """Left-associated sum of all arguments."""
    return reduce(plus, rest, term(first))


def group(inner: TermLike) -> FunctionTerm:
    """Parenthesized subexpression."""
    return FunctionTerm(FunctionKind.IDENTITY, (term(inner),))


def call(name: str, *args: TermLike) -> FunctionTerm:
    """Call of the user function ``name``."""
    return FunctionTerm(FunctionKind.LINK, tuple(term(a) for a in args), name)


def index(name: str, *indices: TermLike) -> FunctionTerm:
    """Element of the array or interval ``name``."""
    return FunctionTerm(FunctionKind.INDEX, tuple(term(i) for i in indices), name)


def fn(kind: str | CommonFunctionKind, *args: TermLike) -> CommonFunctionTerm:
    """Built-in function by name, e.g. ``fn("sin", t.arg("x"))``."""
    return CommonFunctionTerm(CommonFunctionKind(kind), tuple(term(a) for a in args))


def power(base: TermLike, exponent: TermLike) -> CommonFunctionTerm:
    return fn(CommonFunctionKind.POWER, base, exponent)


def _loop(kind: LoopKind, index_name: str, minimum: TermLike, maximum: TermLike, body: TermLike) -> LoopTerm:
    return LoopTerm(kind, index_name, term(body), term(minimum), term(maximum))


def summation(index_name: str, minimum: TermLike, maximum: TermLike, body: TermLike) -> LoopTerm:
    return _loop(LoopKind.SUMMATION, index_name, minimum, maximum, body)


def product(index_name: str, minimum: TermLike, maximum: TermLike, body: TermLike) -> LoopTerm:
    return _loop(LoopKind.PRODUCT, index_name, minimum, maximum, body)


def integral(index_name: str, minimum: TermLike, maximum: TermLike, body: TermLike) -> LoopTerm:
    return _loop(LoopKind.INTEGRAL, index_name, minimum, maximum, body)


def solve(index_name: str, minimum: TermLike, maximum: TermLike, body: TermLike) -> LoopTerm:
    """Root of ``body`` with respect to ``index_name`` between the bounds."""
    return _loop(LoopKind.SOLVE, index_name, minimum, maximum, body)


def derivative(index_name: str, body: TermLike) -> LoopTerm:
    """Derivative of ``body`` with respect to ``index_name`` at its current value."""
    return LoopTerm(LoopKind.DERIVATIVE, index_name, term(body))
