"""Error codes attached to terms by validation and statuses reported by loops."""

from enum import StrEnum
from typing import Self


class _DocumentedStrEnum(StrEnum):
    """String enum whose members carry a human-readable description.

    Implementation based on this article: https://guicommits.com/add-docstrings-python-enum-members/
    """

    def __new__(cls, value: str, description: str = "") -> Self:
        obj = str.__new__(cls, value)
        obj._value_ = value
        obj.__doc__ = description
        return obj

    @property
    def description(self) -> str:
        return self.__doc__ or self.value


class ErrorCode(_DocumentedStrEnum):
    """Content and link errors found during a validation pass."""

    NO_ERROR = "no_error", "No error"
    EMPTY_TERM = "empty_term", "A required term is empty"
    UNKNOWN_FUNCTION = "unknown_function", "Unknown function"
    UNKNOWN_ARRAY = "unknown_array", "Unknown array"
    UNKNOWN_ARGUMENT = "unknown_argument", "Argument is not defined by an enclosing equation or loop"
    UNKNOWN_VARIABLE = "unknown_variable", "Unknown variable"
    RECURSIVE_CALL = "recursive_call", "Recursive call of the enclosing equation"
    NOT_A_FUNCTION = "not_a_function", "The linked equation is an array, not a function"
    NOT_AN_ARRAY = "not_an_array", "The linked equation is a function, not an array"
    NOT_DIFFERENTIABLE = "not_differentiable", "Expression is not differentiable"
    INVALID_INTERVAL = "invalid_interval", "An interval needs at least two points"


class CalculationStatus(_DocumentedStrEnum):
    """Outcome of the iterative algorithm of a loop term."""

    NONE = "none", "Calculation finished normally"
    IS_COMPLEX = "is_complex", "The function takes complex values; a real-valued function is required"
    MAX_ITERATIONS = "max_iterations", "Maximum number of iterations reached without convergence"
    ROOT_NOT_BRACKETED = "root_not_bracketed", "The function has the same sign at both interval bounds"
