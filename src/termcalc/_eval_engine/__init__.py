"""Evaluation engine for term trees.

Key types and functions:
- get_value / get_derivative_value / is_differentiable: recursive evaluation of a term
- LoopCalculator: numerical schemes behind loop terms
- validate_document: content validation and link registration
- calculate_document: validate and evaluate all constants of a document
- Calculator: background calculation with cancellation of superseded requests
"""

from ._engine import Calculator, EvaluationResult, calculate_document
from ._evaluator import (
    equation_derivative,
    equation_value,
    evaluate,
    evaluate_derivative,
    get_derivative_value,
    get_value,
    is_differentiable,
)
from ._loops import LoopCalculator
from ._validation import (
    DocumentValidation,
    ValidationIssue,
    ValidationReport,
    dependents,
    validate_document,
    validate_equation,
)

__all__ = [
    "Calculator",
    "DocumentValidation",
    "EvaluationResult",
    "LoopCalculator",
    "ValidationIssue",
    "ValidationReport",
    "calculate_document",
    "dependents",
    "equation_derivative",
    "equation_value",
    "evaluate",
    "evaluate_derivative",
    "get_derivative_value",
    "get_value",
    "is_differentiable",
    "validate_document",
    "validate_equation",
]
