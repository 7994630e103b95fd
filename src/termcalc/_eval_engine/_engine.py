"""Calculation driver: validate a document and evaluate its constants in link order."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Self

from termcalc._context import EvaluationContext
from termcalc._errors import CalculationStatus
from termcalc._value import ErrorType, NumericValue

from ._evaluator import equation_value
from ._validation import DocumentValidation, validate_document

if TYPE_CHECKING:
    from collections.abc import Iterable
    from types import TracebackType

    from termcalc._document import Document, Equation

logger = logging.getLogger(__name__)

ABORTED_MESSAGE = "Calculation aborted"
OUT_OF_MEMORY_MESSAGE = "Not enough memory to complete the calculation"


@dataclass(frozen=True, slots=True)
class EvaluationResult:
    """Result of calculating a document.

    Attributes:
        values: Value of every calculated equation, keyed by equation id.
        errors: ``(equation_id, message)`` for equations with content errors.
        statuses: First non-NONE loop status reported while calculating an
            equation, keyed by equation id.
        aborted: Whether the calculation was cancelled or ran out of resources.
            Partial values are discarded in that case.
        message: Human-readable reason for an aborted or failed calculation.

    """

    values: dict[int, NumericValue] = field(default_factory=dict)
    errors: list[tuple[int, str]] = field(default_factory=list)
    statuses: dict[int, CalculationStatus] = field(default_factory=dict)
    aborted: bool = False
    message: str | None = None

    @property
    def success(self) -> bool:
        """Check if the calculation completed without content errors."""
        return not self.aborted and not self.errors and self.message is None

    def get_value(self, equation: Equation) -> NumericValue:
        """Get the calculated value of an equation.

        Raises:
            KeyError: If the equation was not calculated.

        """
        return self.values[equation.id]

    def status_of(self, equation: Equation) -> CalculationStatus:
        return self.statuses.get(equation.id, CalculationStatus.NONE)


def _describe_errors(validation: DocumentValidation, equation: Equation, document: Document) -> str:
    report = validation.report_for(equation)
    if not report.is_valid:
        return "; ".join(str(issue) for issue in report.issues)
    broken = [
        document.get(target).name
        for target in sorted(validation.graph.all_links(equation.id))
        if not validation.reports[target].is_valid
    ]
    return f"Links to equations with errors: {', '.join(broken)}"


def _aborted(reason: str) -> EvaluationResult:
    logger.debug("%s", reason)
    return EvaluationResult(aborted=True, message=reason)


def calculate_document(
    document: Document,
    context: EvaluationContext | None = None,
    equations: Iterable[Equation] | None = None,
) -> EvaluationResult:
    """Validate ``document`` and evaluate its constant equations.

    Constants (0-ary function equations) are evaluated in link order, so every
    constant is calculated after the equations it refers to. Equations with
    content errors, and equations linking to them, are reported as errors and
    get an invalid value.

    Args:
        document: The document to calculate.
        context: Evaluation context to use; pass one to be able to cancel the
            calculation from another thread.
        equations: Restrict the calculation to these equations.

    Returns:
        An EvaluationResult; ``aborted`` is set if the context was cancelled.

    """
    context = context if context is not None else EvaluationContext(document)
    try:
        return _calculate(document, context, equations)
    except MemoryError:
        logger.exception("Calculation of '%s' ran out of memory", document.name)
        return _aborted(OUT_OF_MEMORY_MESSAGE)


def _calculate(
    document: Document,
    context: EvaluationContext,
    equations: Iterable[Equation] | None,
) -> EvaluationResult:
    validation = validate_document(document, context.resolver)
    invalid = validation.invalid_ids()
    context.invalid_equations = set(invalid)
    for report in validation.reports.values():
        context.derivative_ranks.update(report.derivative_ranks)

    try:
        order = validation.graph.calculation_order(None if equations is None else (eq.id for eq in equations))
    except ValueError:
        cycle = validation.graph.find_cycle() or []
        names = " -> ".join(document.get(node).name for node in cycle)
        return EvaluationResult(message=f"Circular links between equations: {names}")

    logger.debug("Calculating %d equations of '%s' in order %s", len(order), document.name, order)
    values: dict[int, NumericValue] = {}
    errors: list[tuple[int, str]] = []
    statuses: dict[int, CalculationStatus] = {}
    for equation_id in order:
        if context.cancelled:
            return _aborted(ABORTED_MESSAGE)
        equation = document.get(equation_id)
        if not equation.is_constant:
            continue
        if equation_id in invalid:
            errors.append((equation_id, _describe_errors(validation, equation, document)))
            values[equation_id] = NumericValue.invalid(ErrorType.TERM_NOT_READY)
            continue

        context.statuses.clear()
        out = NumericValue()
        equation_value(equation, context.frame(equation), (), out)
        if context.cancelled:
            return _aborted(ABORTED_MESSAGE)
        values[equation_id] = out
        status = next(
            (status for status in context.statuses.values() if status != CalculationStatus.NONE),
            CalculationStatus.NONE,
        )
        if status != CalculationStatus.NONE:
            statuses[equation_id] = status
        logger.debug("Result for %r: %r", equation, out)

    return EvaluationResult(values=values, errors=errors, statuses=statuses)


class Calculator:
    """Runs calculations on a single background worker thread.

    Submitting a new request cancels the one in flight; its future then
    resolves to an aborted result.

    Example:
        >>> with Calculator() as calculator:
        ...     result = calculator.submit(document).result()

    """

    def __init__(self) -> None:
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="termcalc")
        self._lock = threading.Lock()
        self._current: EvaluationContext | None = None

    def submit(self, document: Document, equations: Iterable[Equation] | None = None) -> Future[EvaluationResult]:
        """Queue a calculation of ``document``, cancelling the previous request.

        The document must not be modified until the returned future is done.
        """
        context = EvaluationContext(document)
        with self._lock:
            if self._current is not None:
                self._current.cancel()
            self._current = context
        selected = None if equations is None else list(equations)
        return self._executor.submit(calculate_document, document, context, selected)

    def cancel(self) -> None:
        """Cancel the request in flight, if any."""
        with self._lock:
            if self._current is not None:
                self._current.cancel()

    def shutdown(self, *, wait: bool = True) -> None:
        self.cancel()
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.shutdown()
