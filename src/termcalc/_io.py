from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import tomli_w

from ._errors import CalculationStatus
from ._units import format_unit
from ._value import ValueKind

if TYPE_CHECKING:
    from ._document import Document
    from ._eval_engine import EvaluationResult
    from ._value import NumericValue

logger = logging.getLogger(__name__)


def _value_entry(value: NumericValue, significant_digits: int) -> dict[str, Any]:
    entry: dict[str, Any] = {"kind": str(value.kind), "value": value.describe(significant_digits)}
    if value.kind == ValueKind.INVALID:
        entry["error"] = str(value.error)
        return entry
    if value.is_nan():
        return entry
    entry["real"] = value.real
    if value.kind == ValueKind.COMPLEX:
        entry["imag"] = value.imag
    unit = format_unit(value.unit)
    if unit:
        entry["unit"] = unit
    return entry


def results_to_dict(document: Document, result: EvaluationResult) -> dict[str, Any]:
    """Convert calculation results into a TOML-serializable dictionary.

    Every calculated equation becomes a table keyed by its name (suffixed with
    ``#<id>`` when a redefined name occurs more than once). Content errors are
    collected in an ``errors`` table.

    Args:
        document: The calculated document (used for names and settings).
        result: The calculation result.

    Returns:
        Nested dictionary ready for ``tomli_w``.

    """
    digits = document.settings.significant_digits
    values: dict[str, Any] = {}
    for equation in document:
        value = result.values.get(equation.id)
        if value is None:
            continue
        key = equation.name if equation.name not in values else f"{equation.name}#{equation.id}"
        entry = _value_entry(value, digits)
        status = result.statuses.get(equation.id, CalculationStatus.NONE)
        if status != CalculationStatus.NONE:
            entry["status"] = str(status)
        values[key] = entry

    data: dict[str, Any] = {"document": {"name": document.name, "aborted": result.aborted}, "values": values}
    if result.message:
        data["document"]["message"] = result.message
    if result.errors:
        data["errors"] = {document.get(equation_id).name: message for equation_id, message in result.errors}
    return data


def export_results_to_toml(document: Document, result: EvaluationResult, output_path: Path | str) -> None:
    """Write calculation results to a TOML file.

    Args:
        document: The calculated document.
        result: The calculation result.
        output_path: Path to the output TOML file.

    """
    toml_data = results_to_dict(document, result)

    output_path = Path(output_path)
    with output_path.open("wb") as f:
        tomli_w.dump(toml_data, f)

    logger.debug(f"Exported results to {output_path}")
