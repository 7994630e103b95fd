"""Unit-of-measure support built on pint.

Values carry a ``pint.Unit`` (or ``None`` for a plain number) as a side
channel. All helpers here accept ``None`` and treat it as dimensionless.
"""

from __future__ import annotations

import pint

ureg = pint.UnitRegistry()


def parse_unit(text: str) -> pint.Unit:
    """Parse a unit expression such as ``"m/s"`` or ``"kg*m^2"``.

    Raises:
        ValueError: If pint does not know the unit.

    """
    try:
        return ureg.Unit(text)
    except (pint.UndefinedUnitError, pint.DefinitionSyntaxError) as e:
        msg = f"Unknown unit '{text}': {e}"
        raise ValueError(msg) from e


def _or_dimensionless(unit: pint.Unit | None) -> pint.Unit:
    return ureg.dimensionless if unit is None else unit


def is_dimensionless(unit: pint.Unit | None) -> bool:
    """Check whether a unit is absent or dimensionless (e.g. rad, percent)."""
    return unit is None or unit.dimensionless


def are_compatible(first: pint.Unit | None, second: pint.Unit | None) -> bool:
    """Check whether two units measure the same dimension."""
    if first is None and second is None:
        return True
    return _or_dimensionless(first).is_compatible_with(_or_dimensionless(second))


def conversion_factor(source: pint.Unit | None, target: pint.Unit | None) -> float:
    """Return the factor converting a magnitude in ``source`` into ``target``.

    Raises:
        pint.DimensionalityError: If the units are not compatible.

    """
    if source == target:
        return 1.0
    return float(ureg.Quantity(1.0, _or_dimensionless(source)).m_as(_or_dimensionless(target)))


def to_base(unit: pint.Unit) -> tuple[float, pint.Unit | None]:
    """Return ``(factor, base_unit)`` for converting ``unit`` into SI base units.

    A dimensionless base unit is returned as ``None``.
    """
    quantity = ureg.Quantity(1.0, unit).to_base_units()
    base = quantity.units
    return float(quantity.magnitude), (None if base.dimensionless else base)


def multiply_units(first: pint.Unit | None, second: pint.Unit | None) -> pint.Unit | None:
    if first is None:
        return second
    if second is None:
        return first
    return _simplify(first * second)


def divide_units(first: pint.Unit | None, second: pint.Unit | None) -> pint.Unit | None:
    if second is None:
        return first
    if first is None:
        return _simplify(second**-1)
    return _simplify(first / second)


def power_unit(unit: pint.Unit | None, exponent: float) -> pint.Unit | None:
    if unit is None:
        return None
    return _simplify(unit**exponent)


def _simplify(unit: pint.Unit) -> pint.Unit | None:
    # m/m collapses to a dimensionless unit which is carried as None
    if unit.dimensionless and unit == ureg.dimensionless:
        return None
    return unit


def format_unit(unit: pint.Unit | None) -> str:
    """Render a unit in abbreviated form, or an empty string for none."""
    if unit is None or unit == ureg.dimensionless:
        return ""
    return f"{unit:~P}"
