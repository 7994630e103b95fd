"""Loop terms: summation, product, integral, derivative and root solving.

Numerical schemes:

- integral: adaptive Simpson rule built from successive trapezoid stages
- derivative: Ridders' extrapolation of central differences
- solve: Ridders' method for bracketed roots

Complex-valued bodies are handled per component: the real part is computed
first and the imaginary part only if a complex sample was seen.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from termcalc._differentiability import DifferentiableType, combine
from termcalc._errors import CalculationStatus
from termcalc._terms import LoopKind
from termcalc._units import are_compatible, conversion_factor, divide_units
from termcalc._value import ErrorType, NumericValue, PartType, ValueKind, is_invalid_real

from ._evaluator import (
    equation_value,
    get_derivative_value,
    get_value,
    is_differentiable,
    resolve_constant,
)

if TYPE_CHECKING:
    import pint

    from termcalc._context import Frame
    from termcalc._terms import LoopTerm

logger = logging.getLogger(__name__)

SIMPSON_MAX_ITERATIONS = 15
RIDDERS_MAX_ITERATIONS = 10
RIDDERS_INITIAL_STEP = 0.05
RIDDERS_STEP_SHRINK = 1.4
RIDDERS_SAFE = 2.0
ROOT_MAX_ITERATIONS = 60
_UNUSED = -1.11e30


@dataclass(slots=True)
class PartialResult:
    """One component of a numerical result.

    Attributes:
        value: The computed component, NaN on failure.
        unit: Unit of the samples the component was computed from.
        complex_seen: Whether any sample had a non-zero imaginary part.

    """

    value: float = math.nan
    unit: pint.Unit | None = None
    complex_seen: bool = False


class LoopCalculator:
    """Evaluates one loop term in one frame."""

    def __init__(self, loop: LoopTerm, frame: Frame) -> None:
        self.loop = loop
        self.frame = frame
        self.context = frame.context

    # ------------------------------------------------------------------
    # Body access
    # ------------------------------------------------------------------

    def _body_value(self, x: NumericValue, out: NumericValue) -> ValueKind:
        return get_value(self.loop.body, self.frame.bind(self.loop.index_name, x), out)

    def _body_derivative(self, var: str, x: NumericValue, out: NumericValue) -> ValueKind:
        return get_derivative_value(self.loop.body, var, self.frame.bind(self.loop.index_name, x), out)

    def _sample(self, part: PartType, x: complex, unit: pint.Unit | None, result: PartialResult) -> float:
        """Evaluate the body at ``x`` and return the requested component."""
        argument = NumericValue.of(x, unit)
        value = NumericValue()
        self._body_value(argument, value)
        if value.kind == ValueKind.INVALID:
            return math.nan
        if value.is_complex():
            result.complex_seen = True
        if result.unit is None:
            result.unit = value.unit
        return value.part(part)

    def _cancel(self, out: NumericValue) -> ValueKind:
        logger.debug("%s loop over '%s' cancelled", self.loop.kind, self.loop.index_name)
        return out.invalidate(ErrorType.CANCELLED)

    # ------------------------------------------------------------------
    # Summation and product
    # ------------------------------------------------------------------

    def summation(self, minimum: int, maximum: int, out: NumericValue) -> ValueKind:
        out.set_real(0.0)
        term = NumericValue()
        for i in range(minimum, maximum + 1):
            if self.frame.cancelled:
                return self._cancel(out)
            self._body_value(NumericValue.of(float(i)), term)
            out.add(out, term)
            if out.is_nan():
                break
        return out.kind

    def product(self, minimum: int, maximum: int, out: NumericValue) -> ValueKind:
        out.set_real(1.0)
        term = NumericValue()
        for i in range(minimum, maximum + 1):
            if self.frame.cancelled:
                return self._cancel(out)
            self._body_value(NumericValue.of(float(i)), term)
            out.multiply(out, term)
            if out.is_nan():
                break
        return out.kind

    def summation_derivative(self, var: str, minimum: int, maximum: int, out: NumericValue) -> ValueKind:
        out.set_real(0.0)
        term = NumericValue()
        for i in range(minimum, maximum + 1):
            if self.frame.cancelled:
                return self._cancel(out)
            self._body_derivative(var, NumericValue.of(float(i)), term)
            if i == minimum:
                out.assign(term)
            else:
                out.add(out, term)
            if out.is_nan():
                break
        return out.kind

    def product_derivative(self, var: str, minimum: int, maximum: int, out: NumericValue) -> ValueKind:
        """Product rule: sum over k of f'(k) times the product of f(i) for all i != k."""
        values: list[NumericValue] = []
        derivatives: list[NumericValue] = []
        for i in range(minimum, maximum + 1):
            if self.frame.cancelled:
                return self._cancel(out)
            index = NumericValue.of(float(i))
            value, derivative = NumericValue(), NumericValue()
            self._body_value(index, value)
            self._body_derivative(var, index, derivative)
            if value.is_nan() or derivative.is_nan():
                return out.invalidate(value.error or derivative.error or ErrorType.NOT_A_NUMBER)
            values.append(value)
            derivatives.append(derivative)

        # suffix[k] is the product of values[k:]
        suffix = [NumericValue.of(1.0) for _ in range(len(values) + 1)]
        for k in range(len(values) - 1, -1, -1):
            suffix[k].multiply(values[k], suffix[k + 1])

        out.set_real(0.0)
        prefix = NumericValue.of(1.0)
        term = NumericValue()
        for k, derivative in enumerate(derivatives):
            term.multiply(prefix, derivative)
            term.multiply(term, suffix[k + 1])
            if k == 0:
                out.assign(term)
            else:
                out.add(out, term)
            prefix.multiply(prefix, values[k])
        return out.kind

    # ------------------------------------------------------------------
    # Integral
    # ------------------------------------------------------------------

    def integrate(
        self,
        minimum: NumericValue,
        maximum: NumericValue,
        accuracy: float,
        out: NumericValue,
    ) -> ValueKind:
        arg_unit, upper = _common_bound_unit(minimum, maximum)
        if upper is None:
            return out.invalidate(ErrorType.INCOMPATIBLE_UNIT)
        lower = minimum.real

        re = self._simpson(PartType.RE, lower, upper, accuracy, arg_unit)
        if self.frame.cancelled:
            return self._cancel(out)
        if math.isnan(re.value):
            return out.invalidate(ErrorType.NOT_A_NUMBER)
        result = NumericValue()
        if re.complex_seen:
            im = self._simpson(PartType.IM, lower, upper, accuracy, arg_unit)
            if self.frame.cancelled:
                return self._cancel(out)
            if math.isnan(im.value):
                return out.invalidate(ErrorType.NOT_A_NUMBER)
            result.set_complex(re.value, im.value, re.unit)
        else:
            result.set_real(re.value, re.unit)
        # the integration variable contributes its unit to the result
        return out.multiply(result, NumericValue.of(1.0, arg_unit))

    def _trapezoid_stage(
        self,
        part: PartType,
        lower: float,
        upper: float,
        stage: int,
        previous: float,
        unit: pint.Unit | None,
        result: PartialResult,
    ) -> float:
        """Refine the trapezoid estimate by one stage (stage 0 uses the end points only)."""
        if stage == 0:
            f_lower = self._sample(part, lower, unit, result)
            f_upper = self._sample(part, upper, unit, result)
            return 0.5 * (upper - lower) * (f_lower + f_upper)
        points = 1 << (stage - 1)
        spacing = (upper - lower) / points
        x = lower + 0.5 * spacing
        total = 0.0
        for _ in range(points):
            total += self._sample(part, x, unit, result)
            x += spacing
        return 0.5 * (previous + (upper - lower) * total / points)

    def _simpson(
        self,
        part: PartType,
        lower: float,
        upper: float,
        accuracy: float,
        unit: pint.Unit | None,
    ) -> PartialResult:
        result = PartialResult()
        trapezoid = 0.0
        old_trapezoid = 0.0
        old_estimate = 0.0
        for stage in range(SIMPSON_MAX_ITERATIONS):
            if self.frame.cancelled:
                result.value = math.nan
                return result
            trapezoid = self._trapezoid_stage(part, lower, upper, stage, trapezoid, unit, result)
            if is_invalid_real(trapezoid):
                result.value = math.nan
                return result
            estimate = (4.0 * trapezoid - old_trapezoid) / 3.0
            if stage > 1 and abs(estimate - old_estimate) <= accuracy:
                result.value = estimate
                return result
            old_estimate = estimate
            old_trapezoid = trapezoid
        logger.debug("Simpson integration reached %d stages without converging", SIMPSON_MAX_ITERATIONS)
        result.value = old_estimate
        return result

    # ------------------------------------------------------------------
    # Derivative
    # ------------------------------------------------------------------

    def derivative(self, rank: DifferentiableType, point: NumericValue, out: NumericValue) -> ValueKind:
        """Differentiate the body with respect to the loop index at ``point``."""
        if point.is_nan():
            return out.invalidate(point.error or ErrorType.NOT_A_NUMBER)
        match rank:
            case DifferentiableType.INDEPENDENT:
                return out.set_real(0.0)
            case DifferentiableType.ANALYTICAL:
                return self._body_derivative(self.loop.index_name, point, out)
            case DifferentiableType.NUMERICAL:
                pass
            case _:
                return out.invalidate(ErrorType.NOT_A_NUMBER)

        z = point.as_complex()
        re = self._ridders_derivative(PartType.RE, z, RIDDERS_INITIAL_STEP, point.unit)
        if self.frame.cancelled:
            return self._cancel(out)
        if math.isnan(re.value):
            return out.invalidate(ErrorType.NOT_A_NUMBER)
        unit = divide_units(re.unit, point.unit)
        if re.complex_seen:
            im = self._ridders_derivative(PartType.IM, z, RIDDERS_INITIAL_STEP, point.unit)
            if self.frame.cancelled:
                return self._cancel(out)
            if math.isnan(im.value):
                return out.invalidate(ErrorType.NOT_A_NUMBER)
            return out.set_complex(re.value, im.value, unit)
        return out.set_real(re.value, unit)

    def _ridders_derivative(self, part: PartType, z: complex, h: float, unit: pint.Unit | None) -> PartialResult:
        """Ridders' extrapolation of central differences in the real direction."""
        result = PartialResult()
        shrink2 = RIDDERS_STEP_SHRINK * RIDDERS_STEP_SHRINK
        size = RIDDERS_MAX_ITERATIONS
        a = [[0.0] * size for _ in range(size)]
        hh = h
        a[0][0] = (self._sample(part, z + hh, unit, result) - self._sample(part, z - hh, unit, result)) / (2.0 * hh)
        err = 1.0e30
        for i in range(1, size):
            if self.frame.cancelled:
                result.value = math.nan
                return result
            hh /= RIDDERS_STEP_SHRINK
            a[0][i] = (self._sample(part, z + hh, unit, result) - self._sample(part, z - hh, unit, result)) / (
                2.0 * hh
            )
            fac = shrink2
            for j in range(1, i + 1):
                a[j][i] = (a[j - 1][i] * fac - a[j - 1][i - 1]) / (fac - 1.0)
                fac *= shrink2
                errt = max(abs(a[j][i] - a[j - 1][i]), abs(a[j][i] - a[j - 1][i - 1]))
                if errt <= err:
                    err = errt
                    result.value = a[j][i]
            # stop once the higher order is clearly worse than the best so far
            if abs(a[i][i] - a[i - 1][i - 1]) >= RIDDERS_SAFE * err:
                break
        return result

    # ------------------------------------------------------------------
    # Root solving
    # ------------------------------------------------------------------

    def solve(
        self,
        minimum: NumericValue,
        maximum: NumericValue,
        accuracy: float,
        out: NumericValue,
    ) -> ValueKind:
        """Find a root of the body with respect to the loop index between the bounds."""
        arg_unit, upper = _common_bound_unit(minimum, maximum)
        if upper is None:
            return out.invalidate(ErrorType.INCOMPATIBLE_UNIT)
        samples = PartialResult()
        root, status = self._ridders_root(minimum.real, upper, accuracy, arg_unit, samples)
        if samples.complex_seen:
            status = CalculationStatus.IS_COMPLEX
        self.context.record_status(self.loop, status)
        if self.frame.cancelled:
            return self._cancel(out)
        if status != CalculationStatus.NONE:
            return out.invalidate(ErrorType.NOT_A_REAL)
        if math.isnan(root):
            return out.invalidate(ErrorType.NOT_A_NUMBER)
        return out.set_real(root, arg_unit)

    def _ridders_root(
        self,
        x1: float,
        x2: float,
        accuracy: float,
        unit: pint.Unit | None,
        samples: PartialResult,
    ) -> tuple[float, CalculationStatus]:

        def f(x: float) -> float:
            return self._sample(PartType.RE, x, unit, samples)

        fl = f(x1)
        fh = f(x2)
        if fl == 0.0:
            return x1, CalculationStatus.NONE
        if fh == 0.0:
            return x2, CalculationStatus.NONE
        if math.isnan(fl) or math.isnan(fh) or not ((fl > 0.0 > fh) or (fl < 0.0 < fh)):
            return math.nan, CalculationStatus.ROOT_NOT_BRACKETED

        xl, xh = x1, x2
        ans = _UNUSED
        for _ in range(ROOT_MAX_ITERATIONS):
            if self.frame.cancelled:
                return math.nan, CalculationStatus.NONE
            xm = 0.5 * (xl + xh)
            fm = f(xm)
            s = math.sqrt(fm * fm - fl * fh)
            if s == 0.0:
                return (xm if ans == _UNUSED else ans), CalculationStatus.NONE
            xnew = xm + (xm - xl) * ((1.0 if fl >= fh else -1.0) * fm / s)
            if abs(xnew - ans) <= accuracy:
                return ans, CalculationStatus.NONE
            ans = xnew
            fnew = f(ans)
            if fnew == 0.0:
                return ans, CalculationStatus.NONE
            if math.isnan(fnew):
                return math.nan, CalculationStatus.NONE
            if math.copysign(fm, fnew) != fm:
                xl, fl = xm, fm
                xh, fh = ans, fnew
            elif math.copysign(fl, fnew) != fl:
                xh, fh = ans, fnew
            elif math.copysign(fh, fnew) != fh:
                xl, fl = ans, fnew
            else:
                return math.nan, CalculationStatus.NONE
            if abs(xh - xl) <= accuracy:
                return ans, CalculationStatus.NONE
        return math.nan, CalculationStatus.MAX_ITERATIONS


def _common_bound_unit(minimum: NumericValue, maximum: NumericValue) -> tuple[pint.Unit | None, float | None]:
    """Return the bound unit and the upper bound expressed in it (None if incompatible)."""
    if minimum.unit is None or maximum.unit is None or minimum.unit == maximum.unit:
        return minimum.unit, maximum.real
    if not are_compatible(minimum.unit, maximum.unit):
        return minimum.unit, None
    return minimum.unit, maximum.real * conversion_factor(maximum.unit, minimum.unit)


def _bounds(loop: LoopTerm, frame: Frame, out: NumericValue) -> tuple[NumericValue, NumericValue] | None:
    """Evaluate both bounds in the enclosing frame.

    Bounds must be real numbers: anything else invalidates ``out`` with
    ``NOT_A_REAL``, whatever made the bound fail.
    """
    if not loop.has_bounds:
        out.invalidate(ErrorType.TERM_NOT_READY)
        return None
    minimum, maximum = NumericValue(), NumericValue()
    get_value(loop.min_bound, frame, minimum)
    get_value(loop.max_bound, frame, maximum)
    if frame.cancelled:
        out.invalidate(ErrorType.CANCELLED)
        return None
    for bound in (minimum, maximum):
        if not bound.is_real() or bound.is_nan():
            logger.debug("%s loop over '%s' has a bound that is not real: %r", loop.kind, loop.index_name, bound)
            out.invalidate(ErrorType.NOT_A_REAL)
            return None
    return minimum, maximum


def _derivative_point(loop: LoopTerm, frame: Frame, out: NumericValue) -> NumericValue | None:
    """Current value of the derivative variable: its binding, else the constant of that name."""
    bound = frame.lookup(loop.index_name)
    if bound is not None:
        return bound
    target = resolve_constant(loop.index_name, frame)
    if target is None:
        out.invalidate(ErrorType.TERM_NOT_READY)
        return None
    point = NumericValue()
    equation_value(target, frame, (), point)
    return point


def derivative_rank(loop: LoopTerm, frame: Frame) -> DifferentiableType:
    """Differentiability of a DERIVATIVE body with respect to its index, cached per calculation."""
    ranks = frame.context.derivative_ranks
    rank = ranks.get(loop)
    if rank is None:
        rank = is_differentiable(loop.body, loop.index_name, frame)
        ranks[loop] = rank
    return rank


def loop_value(loop: LoopTerm, frame: Frame, out: NumericValue) -> ValueKind:
    calculator = LoopCalculator(loop, frame)
    frame.context.record_status(loop, CalculationStatus.NONE)
    if loop.kind == LoopKind.DERIVATIVE:
        point = _derivative_point(loop, frame, out)
        if point is None:
            return out.kind
        return calculator.derivative(derivative_rank(loop, frame), point, out)

    bounds = _bounds(loop, frame, out)
    if bounds is None:
        return out.kind
    minimum, maximum = bounds
    precision = frame.context.settings.precision
    match loop.kind:
        case LoopKind.SUMMATION:
            return calculator.summation(minimum.integer(), maximum.integer(), out)
        case LoopKind.PRODUCT:
            return calculator.product(minimum.integer(), maximum.integer(), out)
        case LoopKind.INTEGRAL:
            return calculator.integrate(minimum, maximum, precision, out)
        case LoopKind.SOLVE:
            return calculator.solve(minimum, maximum, precision, out)
    return out.invalidate(ErrorType.NOT_A_NUMBER)


def _bounds_rank(loop: LoopTerm, var: str, frame: Frame) -> DifferentiableType:
    return combine(*(is_differentiable(bound, var, frame) for bound in (loop.min_bound, loop.max_bound) if bound))


def loop_differentiability(loop: LoopTerm, var: str, frame: Frame) -> DifferentiableType:
    if var == loop.index_name:
        # the index is bound inside the loop, so the loop does not depend on it
        return DifferentiableType.INDEPENDENT
    bounds_rank = _bounds_rank(loop, var, frame)
    body_rank = is_differentiable(loop.body, var, frame)
    if bounds_rank == DifferentiableType.INDEPENDENT and body_rank == DifferentiableType.INDEPENDENT:
        return DifferentiableType.INDEPENDENT
    if loop.kind in (LoopKind.SUMMATION, LoopKind.PRODUCT) and bounds_rank == DifferentiableType.INDEPENDENT:
        return body_rank
    return DifferentiableType.NUMERICAL


def loop_derivative(loop: LoopTerm, var: str, frame: Frame, out: NumericValue) -> ValueKind:
    """Analytic derivative of a loop term; only summation and product have one."""
    rank = loop_differentiability(loop, var, frame)
    if rank == DifferentiableType.INDEPENDENT:
        return out.set_real(0.0)
    if rank != DifferentiableType.ANALYTICAL or loop.kind not in (LoopKind.SUMMATION, LoopKind.PRODUCT):
        return out.invalidate(ErrorType.NOT_A_NUMBER)
    bounds = _bounds(loop, frame, out)
    if bounds is None:
        return out.kind
    minimum, maximum = bounds
    calculator = LoopCalculator(loop, frame)
    if loop.kind == LoopKind.SUMMATION:
        return calculator.summation_derivative(var, minimum.integer(), maximum.integer(), out)
    return calculator.product_derivative(var, minimum.integer(), maximum.integer(), out)
