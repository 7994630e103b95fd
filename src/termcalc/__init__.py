"""Formula evaluation engine with units, user functions and numerical loops."""

__all__ = [
    "ARG_NUMBER_ANY",
    "ARG_NUMBER_INTERVAL",
    "CalculationStatus",
    "Calculator",
    "DifferentiableType",
    "Document",
    "DocumentSettings",
    "DocumentValidation",
    "Equation",
    "EquationKind",
    "ErrorCode",
    "ErrorType",
    "EvaluationContext",
    "EvaluationResult",
    "Frame",
    "LinkGraph",
    "LinkResolution",
    "LinkResolver",
    "LoopCalculator",
    "NumericValue",
    "ResolutionStatus",
    "ValidationIssue",
    "ValidationReport",
    "ValueKind",
    "builders",
    "calculate_document",
    "dependents",
    "evaluate",
    "export_results_to_toml",
    "get_derivative_value",
    "get_value",
    "is_differentiable",
    "results_to_dict",
    "ureg",
    "validate_document",
    "validate_equation",
]

from . import _builders as builders
from ._context import EvaluationContext, Frame
from ._differentiability import DifferentiableType
from ._document import (
    ARG_NUMBER_ANY,
    ARG_NUMBER_INTERVAL,
    Document,
    DocumentSettings,
    Equation,
    EquationKind,
)
from ._errors import CalculationStatus, ErrorCode
from ._eval_engine import (
    Calculator,
    DocumentValidation,
    EvaluationResult,
    LoopCalculator,
    ValidationIssue,
    ValidationReport,
    calculate_document,
    dependents,
    evaluate,
    get_derivative_value,
    get_value,
    is_differentiable,
    validate_document,
    validate_equation,
)
from ._graph import LinkGraph
from ._io import export_results_to_toml, results_to_dict
from ._resolver import LinkResolution, LinkResolver, ResolutionStatus
from ._units import ureg
from ._value import ErrorType, NumericValue, ValueKind
