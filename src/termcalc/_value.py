"""Real/complex numeric values with a unit side channel.

``NumericValue`` is a mutable scratch value: every operation writes its result
into ``self`` and returns the resulting ``ValueKind``. The output may alias one
of the inputs, so all inputs are read before anything is written.
"""

from __future__ import annotations

import cmath
import math
import random
import sys
from enum import StrEnum, auto
from typing import TYPE_CHECKING

from ._units import (
    are_compatible,
    conversion_factor,
    divide_units,
    format_unit,
    is_dimensionless,
    multiply_units,
    power_unit,
    to_base,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    import pint

NTH_ROOT_TOLERANCE = 1e-15

_MAX_POWER_OF_TEN = math.floor(math.log10(sys.float_info.max))


class ValueKind(StrEnum):
    """Tag of a numeric value."""

    INVALID = auto()
    REAL = auto()
    COMPLEX = auto()


class ErrorType(StrEnum):
    """Reason a value became invalid."""

    TERM_NOT_READY = auto()  # content not (yet) valid
    NOT_A_NUMBER = auto()
    NOT_A_REAL = auto()  # complex where a real is required
    PASSED_COMPLEX = auto()
    INCOMPATIBLE_UNIT = auto()
    CANCELLED = auto()  # abandoned by a cancelled calculation, never displayed


class PartType(StrEnum):
    """Selects the real or the imaginary component."""

    RE = auto()
    IM = auto()


def is_invalid_real(value: float) -> bool:
    return math.isnan(value) or math.isinf(value)


def _divide_reals(a: float, b: float) -> float:
    """IEEE-754 division (Python raises on division by zero)."""
    if b != 0.0:
        return a / b
    if a == 0.0 or math.isnan(a):
        return math.nan
    return math.copysign(math.inf, a) * math.copysign(1.0, b)


def _real_pow(base: float, exponent: float) -> float:
    try:
        return math.pow(base, exponent)
    except OverflowError:
        negative = base < 0 and float(exponent).is_integer() and int(exponent) % 2 == 1
        return -math.inf if negative else math.inf
    except ValueError:
        if base == 0.0 and exponent < 0:
            return math.inf
        return math.nan


def round_to_significant_digits(num: float, digits: int) -> float:
    """Round ``num`` to ``digits`` significant digits using banker's rounding.

    The scaling factor ``10**power`` is split into two multiplications when it
    would overflow the double range, which happens for magnitudes close to the
    smallest subnormal numbers.
    """
    if num == 0.0 or is_invalid_real(num):
        return num
    magnitude = math.ceil(math.log10(abs(num)))
    power = digits - magnitude

    second_factor = 1.0
    if power > _MAX_POWER_OF_TEN:
        first_factor = 10.0**_MAX_POWER_OF_TEN
        second_factor = 10.0 ** (power - _MAX_POWER_OF_TEN)
    else:
        first_factor = 10.0**power

    shifted = round(num * first_factor * second_factor)
    return shifted / first_factor / second_factor


class NumericValue:
    """A tagged real/complex scalar with an optional unit and invalidity state.

    Attributes:
        kind: INVALID, REAL or COMPLEX. A REAL value always has ``imag == 0``;
            an INVALID value has ``real`` set to NaN and must not be read.
        real: The real component.
        imag: The imaginary component.
        unit: A pint unit, or None for a plain number.
        error: The reason for an INVALID value, None otherwise.

    """

    __slots__ = ("error", "imag", "kind", "real", "unit")

    def __init__(
        self,
        kind: ValueKind = ValueKind.INVALID,
        real: float = math.nan,
        imag: float = 0.0,
        unit: pint.Unit | None = None,
        error: ErrorType | None = None,
    ) -> None:
        self.kind = kind
        self.real = real
        self.imag = imag
        self.unit = unit
        self.error = error
        if kind == ValueKind.INVALID and error is None:
            self.error = ErrorType.TERM_NOT_READY

    @classmethod
    def of(cls, number: float | complex, unit: pint.Unit | None = None) -> NumericValue:
        """Create a value from a Python number."""
        value = cls()
        if isinstance(number, complex):
            value.set_complex(number.real, number.imag, unit)
        else:
            value.set_real(float(number), unit)
        return value

    @classmethod
    def invalid(cls, reason: ErrorType) -> NumericValue:
        return cls(error=reason)

    def copy(self) -> NumericValue:
        return NumericValue(self.kind, self.real, self.imag, self.unit, self.error)

    def __repr__(self) -> str:
        unit = f" {format_unit(self.unit)}" if self.unit is not None else ""
        if self.kind == ValueKind.INVALID:
            return f"NumericValue(invalid: {self.error}{unit})"
        return f"NumericValue({self.kind}[{self.real}, {self.imag}]{unit})"

    # ------------------------------------------------------------------
    # Setters
    # ------------------------------------------------------------------

    def assign(self, other: NumericValue) -> ValueKind:
        self.kind = other.kind
        self.real = other.real
        self.imag = other.imag
        self.unit = other.unit
        self.error = other.error
        return self.kind

    def invalidate(self, reason: ErrorType) -> ValueKind:
        self.kind = ValueKind.INVALID
        self.real = math.nan
        self.imag = 0.0
        self.unit = None
        self.error = reason
        return self.kind

    def set_real(self, real: float, unit: pint.Unit | None = None) -> ValueKind:
        self.kind = ValueKind.REAL
        self.real = real
        self.imag = 0.0
        self.unit = unit
        self.error = None
        return self.kind

    def set_complex(self, real: float, imag: float, unit: pint.Unit | None = None) -> ValueKind:
        """Set both components; a zero imaginary part yields a REAL value."""
        if imag == 0.0:
            return self.set_real(real, unit)
        self.kind = ValueKind.COMPLEX
        self.real = real
        self.imag = imag
        self.unit = unit
        self.error = None
        return self.kind

    def _set_number(self, number: complex, unit: pint.Unit | None = None) -> ValueKind:
        return self.set_complex(number.real, number.imag, unit)

    def convert_unit(self, source: pint.Unit | None, target: pint.Unit | None) -> ValueKind:
        """Re-express the magnitude given in ``source`` in ``target``."""
        if self.kind == ValueKind.INVALID:
            return self.kind
        if not are_compatible(source, target):
            return self.invalidate(ErrorType.INCOMPATIBLE_UNIT)
        factor = conversion_factor(source, target)
        self.real *= factor
        self.imag *= factor
        self.unit = target
        return self.kind

    def to_base_units(self) -> ValueKind:
        """Convert the value into SI base units (literals are read this way)."""
        if self.kind == ValueKind.INVALID or self.unit is None:
            return self.kind
        factor, base = to_base(self.unit)
        self.real *= factor
        self.imag *= factor
        self.unit = base
        return self.kind

    def scale(self, factor: float) -> ValueKind:
        self.real *= factor
        self.imag *= factor
        return self.kind

    # ------------------------------------------------------------------
    # Getters
    # ------------------------------------------------------------------

    def is_real(self) -> bool:
        return self.kind == ValueKind.REAL

    def is_complex(self) -> bool:
        return self.kind == ValueKind.COMPLEX

    def is_nan(self) -> bool:
        match self.kind:
            case ValueKind.REAL:
                return is_invalid_real(self.real)
            case ValueKind.COMPLEX:
                return is_invalid_real(self.real) or is_invalid_real(self.imag)
            case _:
                return True

    def is_zero(self) -> bool:
        match self.kind:
            case ValueKind.REAL:
                return self.real == 0.0
            case ValueKind.COMPLEX:
                return self.real == 0.0 and self.imag == 0.0
            case _:
                return False

    def part(self, part: PartType) -> float:
        return self.real if part == PartType.RE else self.imag

    def as_complex(self) -> complex:
        return complex(self.real, self.imag)

    def integer(self) -> int:
        """Truncate the real part toward zero."""
        if is_invalid_real(self.real):
            return 0
        return int(self.real)

    # ------------------------------------------------------------------
    # Formatting
    # ------------------------------------------------------------------

    def describe(self, significant_digits: int = 6) -> str:
        """Render the value for display, rounded to ``significant_digits``."""
        match self.kind:
            case ValueKind.INVALID:
                return "NaN"
            case ValueKind.REAL:
                if math.isnan(self.real):
                    return "NaN"
                text = _format_part(self.real, significant_digits, plus_sign=False)
            case _:
                if math.isnan(self.real) or math.isnan(self.imag):
                    return "NaN"
                text = (
                    _format_part(self.real, significant_digits, plus_sign=False)
                    + _format_part(self.imag, significant_digits, plus_sign=True)
                    + "i"
                )
        unit = format_unit(self.unit)
        return f"{text} {unit}" if unit else text

    # ------------------------------------------------------------------
    # Binary arithmetic
    # ------------------------------------------------------------------

    def _propagate_invalid(self, f: NumericValue, g: NumericValue) -> bool:
        for operand in (f, g):
            if operand.kind == ValueKind.INVALID:
                self.invalidate(operand.error or ErrorType.NOT_A_NUMBER)
                return True
        return False

    def _additive_unit(self, f: NumericValue, g: NumericValue) -> tuple[pint.Unit | None, float] | None:
        """Return the result unit and the factor converting ``g`` into it."""
        if f.unit == g.unit:
            return f.unit, 1.0
        # a plain zero (a seed or a derivative of a constant) adopts the other unit
        if g.unit is None and g.is_zero():
            return f.unit, 1.0
        if f.unit is None and f.is_zero():
            return g.unit, 1.0
        if not are_compatible(f.unit, g.unit):
            return None
        return f.unit, conversion_factor(g.unit, f.unit)

    def add(self, f: NumericValue, g: NumericValue) -> ValueKind:
        return self._add_or_subtract(f, g, 1.0)

    def subtract(self, f: NumericValue, g: NumericValue) -> ValueKind:
        return self._add_or_subtract(f, g, -1.0)

    def _add_or_subtract(self, f: NumericValue, g: NumericValue, sign: float) -> ValueKind:
        if self._propagate_invalid(f, g):
            return self.kind
        unit_and_factor = self._additive_unit(f, g)
        if unit_and_factor is None:
            return self.invalidate(ErrorType.INCOMPATIBLE_UNIT)
        unit, factor = unit_and_factor
        factor *= sign
        if f.is_complex() or g.is_complex():
            return self.set_complex(f.real + factor * g.real, f.imag + factor * g.imag, unit)
        return self.set_real(f.real + factor * g.real, unit)

    def multiply(self, f: NumericValue, g: NumericValue) -> ValueKind:
        if self._propagate_invalid(f, g):
            return self.kind
        unit = multiply_units(f.unit, g.unit)
        if f.is_complex() or g.is_complex():
            return self.set_complex(
                f.real * g.real - f.imag * g.imag,
                f.real * g.imag + f.imag * g.real,
                unit,
            )
        return self.set_real(f.real * g.real, unit)

    def divide(self, f: NumericValue, g: NumericValue) -> ValueKind:
        if self._propagate_invalid(f, g):
            return self.kind
        unit = divide_units(f.unit, g.unit)
        if not (f.is_complex() or g.is_complex()):
            return self.set_real(_divide_reals(f.real, g.real), unit)
        a, b, c, d = f.real, f.imag, g.real, g.imag
        if c == 0.0 and d == 0.0:
            return self.set_complex(_divide_reals(a, 0.0), _divide_reals(b, 0.0), unit)
        # Smith's algorithm: branch on the larger denominator component
        if abs(c) < abs(d):
            q = c / d
            denominator = c * q + d
            return self.set_complex((a * q + b) / denominator, (b * q - a) / denominator, unit)
        q = d / c
        denominator = d * q + c
        return self.set_complex((b * q + a) / denominator, (b - a * q) / denominator, unit)

    def pow(self, f: NumericValue, g: NumericValue) -> ValueKind:
        if self._propagate_invalid(f, g):
            return self.kind
        if not is_dimensionless(g.unit):
            return self.invalidate(ErrorType.INCOMPATIBLE_UNIT)
        if f.unit is not None and g.is_complex():
            return self.invalidate(ErrorType.INCOMPATIBLE_UNIT)
        unit = power_unit(f.unit, g.real)
        if f.is_complex() or g.is_complex():
            try:
                return self._set_number(f.as_complex() ** g.as_complex(), unit)
            except (ZeroDivisionError, OverflowError):
                return self.invalidate(ErrorType.NOT_A_NUMBER)
        return self.set_real(_real_pow(f.real, g.real), unit)

    # ------------------------------------------------------------------
    # Unary functions
    # ------------------------------------------------------------------

    def _dimensionless_argument(self, g: NumericValue) -> complex | None:
        """Read ``g`` as a plain number; invalidate self and return None if impossible."""
        if g.kind == ValueKind.INVALID:
            self.invalidate(g.error or ErrorType.NOT_A_NUMBER)
            return None
        if not is_dimensionless(g.unit):
            self.invalidate(ErrorType.INCOMPATIBLE_UNIT)
            return None
        factor = conversion_factor(g.unit, None) if g.unit is not None else 1.0
        return complex(g.real * factor, g.imag * factor)

    def _apply(
        self,
        g: NumericValue,
        real_fn: Callable[[float], float],
        complex_fn: Callable[[complex], complex],
        promote: Callable[[float], bool] | None = None,
    ) -> ValueKind:
        z = self._dimensionless_argument(g)
        if z is None:
            return self.kind
        if g.is_complex() or (promote is not None and promote(z.real)):
            try:
                return self._set_number(complex_fn(z))
            except (ValueError, OverflowError, ZeroDivisionError):
                return self.invalidate(ErrorType.NOT_A_NUMBER)
        try:
            return self.set_real(real_fn(z.real))
        except ValueError:
            return self.set_real(math.nan)
        except OverflowError:
            return self.set_real(math.inf)

    def sin(self, g: NumericValue) -> ValueKind:
        return self._apply(g, math.sin, cmath.sin)

    def cos(self, g: NumericValue) -> ValueKind:
        return self._apply(g, math.cos, cmath.cos)

    def tan(self, g: NumericValue) -> ValueKind:
        return self._apply(g, math.tan, cmath.tan)

    def csc(self, g: NumericValue) -> ValueKind:
        return self._apply(g, lambda x: _divide_reals(1.0, math.sin(x)), lambda z: 1 / cmath.sin(z))

    def sec(self, g: NumericValue) -> ValueKind:
        return self._apply(g, lambda x: _divide_reals(1.0, math.cos(x)), lambda z: 1 / cmath.cos(z))

    def cot(self, g: NumericValue) -> ValueKind:
        return self._apply(g, lambda x: _divide_reals(1.0, math.tan(x)), lambda z: 1 / cmath.tan(z))

    def asin(self, g: NumericValue) -> ValueKind:
        return self._apply(g, math.asin, cmath.asin)

    def acos(self, g: NumericValue) -> ValueKind:
        return self._apply(g, math.acos, cmath.acos)

    def atan(self, g: NumericValue) -> ValueKind:
        return self._apply(g, math.atan, cmath.atan)

    def sinh(self, g: NumericValue) -> ValueKind:
        return self._apply(g, _sinh, cmath.sinh)

    def cosh(self, g: NumericValue) -> ValueKind:
        return self._apply(g, math.cosh, cmath.cosh)

    def tanh(self, g: NumericValue) -> ValueKind:
        return self._apply(g, math.tanh, cmath.tanh)

    def csch(self, g: NumericValue) -> ValueKind:
        return self._apply(g, lambda x: _divide_reals(1.0, _sinh(x)), lambda z: 1 / cmath.sinh(z))

    def sech(self, g: NumericValue) -> ValueKind:
        return self._apply(g, lambda x: _divide_reals(1.0, math.cosh(x)), lambda z: 1 / cmath.cosh(z))

    def coth(self, g: NumericValue) -> ValueKind:
        return self._apply(g, lambda x: _divide_reals(1.0, math.tanh(x)), lambda z: 1 / cmath.tanh(z))

    def exp(self, g: NumericValue) -> ValueKind:
        return self._apply(g, math.exp, cmath.exp)

    def log(self, g: NumericValue) -> ValueKind:
        return self._apply(g, math.log, cmath.log, promote=lambda x: x <= 0.0)

    def log10(self, g: NumericValue) -> ValueKind:
        return self._apply(g, math.log10, cmath.log10, promote=lambda x: x <= 0.0)

    def sqrt(self, g: NumericValue) -> ValueKind:
        unit = g.unit
        if g.kind == ValueKind.INVALID:
            return self.invalidate(g.error or ErrorType.NOT_A_NUMBER)
        z = g.as_complex()
        if g.is_complex() or z.real < 0.0:
            self._set_number(cmath.sqrt(z))
        else:
            self.set_real(math.sqrt(z.real))
        self.unit = power_unit(unit, 0.5)
        return self.kind

    def nth_root(self, g: NumericValue, n: int) -> ValueKind:
        """Set the first real n-th root of ``g`` if one exists, else the principal root."""
        if g.kind == ValueKind.INVALID:
            return self.invalidate(g.error or ErrorType.NOT_A_NUMBER)
        if n <= 0:
            return self.invalidate(ErrorType.NOT_A_NUMBER)
        unit = power_unit(g.unit, 1.0 / n)
        z = g.as_complex()
        modulus = abs(z) ** (1.0 / n)
        argument = cmath.phase(z) / n
        slice_angle = 2.0 * math.pi / n
        roots = [cmath.rect(modulus, argument + k * slice_angle) for k in range(n)]
        for root in roots:
            if abs(root.imag) < NTH_ROOT_TOLERANCE:
                return self.set_real(root.real, unit)
        return self._set_number(roots[0], unit)

    def abs(self, g: NumericValue) -> ValueKind:
        if g.kind == ValueKind.INVALID:
            return self.invalidate(g.error or ErrorType.NOT_A_NUMBER)
        unit = g.unit
        if g.is_complex():
            return self.set_real(math.hypot(g.real, g.imag), unit)
        return self.set_real(abs(g.real), unit)

    def ceil(self, g: NumericValue) -> ValueKind:
        return self._rounded(g, math.ceil)

    def floor(self, g: NumericValue) -> ValueKind:
        return self._rounded(g, math.floor)

    def _rounded(self, g: NumericValue, fn: Callable[[float], int]) -> ValueKind:
        if g.kind == ValueKind.INVALID:
            return self.invalidate(g.error or ErrorType.NOT_A_NUMBER)

        def safe(x: float) -> float:
            return x if is_invalid_real(x) else float(fn(x))

        return self.set_complex(safe(g.real), safe(g.imag), g.unit)

    def conj(self, g: NumericValue) -> ValueKind:
        if g.kind == ValueKind.INVALID:
            return self.invalidate(g.error or ErrorType.NOT_A_NUMBER)
        return self.set_complex(g.real, -g.imag, g.unit)

    def random(self, g: NumericValue) -> ValueKind:
        """Uniform random value between zero and ``g`` (per component)."""
        if g.kind == ValueKind.INVALID:
            return self.invalidate(g.error or ErrorType.NOT_A_NUMBER)
        if g.is_complex():
            return self.set_complex(random.random() * g.real, random.random() * g.imag, g.unit)  # noqa: S311
        return self.set_real(random.random() * g.real, g.unit)  # noqa: S311


def _sinh(x: float) -> float:
    try:
        return math.sinh(x)
    except OverflowError:
        return math.copysign(math.inf, x)


def _format_part(value: float, significant_digits: int, *, plus_sign: bool) -> str:
    if math.isinf(value):
        if value < 0:
            return "-Infinity"
        return "+Infinity" if plus_sign else "Infinity"
    rounded = round_to_significant_digits(value, significant_digits)
    text = repr(rounded)
    if plus_sign and rounded >= 0:
        return "+" + text
    return text
