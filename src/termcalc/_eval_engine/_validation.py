"""Content validation of equations and the link graph it registers."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from termcalc._context import EvaluationContext
from termcalc._differentiability import DifferentiableType
from termcalc._document import ARG_NUMBER_INTERVAL, EquationKind
from termcalc._errors import ErrorCode
from termcalc._graph import LinkGraph
from termcalc._resolver import LinkResolver, ResolutionStatus
from termcalc._terms import (
    ArgumentRef,
    EmptyField,
    FunctionKind,
    FunctionTerm,
    LoopKind,
    LoopTerm,
    VariableRef,
    iter_children,
)

from ._evaluator import is_differentiable

if TYPE_CHECKING:
    from collections.abc import Mapping

    from termcalc._context import Frame
    from termcalc._document import Document, Equation
    from termcalc._terms import TermField

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    """A content error found in an equation.

    Attributes:
        code: The error code.
        name: The unresolved or offending name, if any.
        term: The term the error was found at (None for equation-level errors).

    """

    code: ErrorCode
    name: str | None = None
    term: TermField | None = field(default=None, compare=False)

    def __str__(self) -> str:
        suffix = f" '{self.name}'" if self.name else ""
        return f"{self.code.description}{suffix}"


@dataclass(frozen=True, slots=True)
class ValidationReport:
    """Validation result for one equation.

    Attributes:
        equation_id: Id of the validated equation.
        issues: Content errors in tree order.
        links: Ids of the equations the equation refers to.
        derivative_ranks: Differentiability of every DERIVATIVE loop body
            with respect to its index.

    """

    equation_id: int
    issues: tuple[ValidationIssue, ...] = ()
    links: frozenset[int] = frozenset()
    derivative_ranks: Mapping[LoopTerm, DifferentiableType] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.issues

    @property
    def error(self) -> ErrorCode:
        return self.issues[0].code if self.issues else ErrorCode.NO_ERROR


@dataclass(frozen=True, slots=True)
class DocumentValidation:
    """Validation results of a whole document.

    Attributes:
        reports: Report per equation id, in document order.
        graph: Links registered by the reports.

    """

    reports: dict[int, ValidationReport]
    graph: LinkGraph

    @property
    def is_valid(self) -> bool:
        return all(report.is_valid for report in self.reports.values())

    def report_for(self, equation: Equation) -> ValidationReport:
        return self.reports[equation.id]

    def invalid_ids(self) -> frozenset[int]:
        """Ids of equations with issues, plus every equation linking to one of them."""
        invalid: set[int] = set()
        for equation_id, report in self.reports.items():
            if not report.is_valid:
                invalid.add(equation_id)
                invalid |= self.graph.all_dependents(equation_id)
        return frozenset(invalid)


class _EquationValidator:
    def __init__(self, equation: Equation, frame: Frame) -> None:
        self.equation = equation
        self.frame = frame
        self.resolver = frame.context.resolver
        self.issues: list[ValidationIssue] = []
        self.links: set[int] = set()
        self.derivative_ranks: dict[LoopTerm, DifferentiableType] = {}

    def report(self, code: ErrorCode, name: str | None = None, term: TermField | None = None) -> None:
        issue = ValidationIssue(code=code, name=name, term=term)
        logger.debug("%r: %s", self.equation, issue)
        self.issues.append(issue)

    def visit(self, term: TermField, scope: frozenset[str]) -> None:
        match term:
            case EmptyField():
                self.report(ErrorCode.EMPTY_TERM, term=term)
            case ArgumentRef(name=name):
                if name not in scope:
                    self.report(ErrorCode.UNKNOWN_ARGUMENT, name, term)
            case VariableRef(name=name):
                if name not in scope:
                    self._check_variable(term, name)
            case FunctionTerm(kind=kind) if kind != FunctionKind.IDENTITY:
                self._check_link(term)
                for arg in term.args:
                    self.visit(arg, scope)
            case LoopTerm():
                self._check_loop(term, scope)
            case _:
                for child in iter_children(term):
                    self.visit(child, scope)

    def _check_variable(self, term: VariableRef, name: str) -> None:
        resolution = self.resolver.resolve(name, 0, self.equation)
        match resolution.status:
            case ResolutionStatus.RESOLVED:
                if resolution.equation is not None:
                    self.links.add(resolution.equation.id)
            case ResolutionStatus.RECURSIVE:
                self.report(ErrorCode.RECURSIVE_CALL, name, term)
            case _:
                if self.resolver.resolve(name, ARG_NUMBER_INTERVAL, self.equation).resolved is None:
                    self.report(ErrorCode.UNKNOWN_VARIABLE, name, term)

    def _check_link(self, term: FunctionTerm) -> None:
        name = term.link_name or ""
        is_index = term.kind == FunctionKind.INDEX
        resolution = self.resolver.resolve(name, len(term.args), self.equation)
        if resolution.status == ResolutionStatus.UNKNOWN:
            resolution = self.resolver.resolve(name, ARG_NUMBER_INTERVAL, self.equation)
        target = resolution.equation
        if resolution.status == ResolutionStatus.UNKNOWN or target is None:
            self.report(ErrorCode.UNKNOWN_ARRAY if is_index else ErrorCode.UNKNOWN_FUNCTION, name, term)
            return
        if resolution.status == ResolutionStatus.RECURSIVE:
            self.report(ErrorCode.RECURSIVE_CALL, name, term)
            return
        indexable = target.is_array or target.is_interval
        if not is_index and indexable:
            self.report(ErrorCode.NOT_A_FUNCTION, name, term)
            return
        if is_index and not indexable:
            self.report(ErrorCode.NOT_AN_ARRAY, name, term)
            return
        if not target.is_interval:
            self.links.add(target.id)

    def _check_loop(self, loop: LoopTerm, scope: frozenset[str]) -> None:
        for bound in (loop.min_bound, loop.max_bound):
            if bound is not None:
                self.visit(bound, scope)
        self.visit(loop.body, scope | {loop.index_name})
        if loop.kind != LoopKind.DERIVATIVE:
            return
        if loop.index_name not in scope:
            self._check_variable(VariableRef(loop.index_name), loop.index_name)
        rank = is_differentiable(loop.body, loop.index_name, self.frame)
        self.derivative_ranks[loop] = rank
        if rank == DifferentiableType.NONE:
            self.report(ErrorCode.NOT_DIFFERENTIABLE, loop.index_name, loop)


def _interval_issues(equation: Equation) -> list[ValidationIssue]:
    interval = equation.interval
    if interval is None:
        return [ValidationIssue(ErrorCode.INVALID_INTERVAL, equation.name)]
    if interval.points < 2 or not (math.isfinite(interval.minimum) and math.isfinite(interval.maximum)):  # noqa: PLR2004
        return [ValidationIssue(ErrorCode.INVALID_INTERVAL, equation.name)]
    return []


def validate_equation(
    document: Document,
    equation: Equation,
    resolver: LinkResolver | None = None,
) -> ValidationReport:
    """Check the content of one equation and collect the links it registers.

    Args:
        document: The document containing the equation.
        equation: The equation to check.
        resolver: Link resolver to use (a new one is created if omitted).

    Returns:
        The validation report.

    """
    if equation.kind == EquationKind.INTERVAL:
        return ValidationReport(equation_id=equation.id, issues=tuple(_interval_issues(equation)))

    context = EvaluationContext(document, resolver=resolver)
    validator = _EquationValidator(equation, context.frame(equation))
    validator.visit(equation.body, frozenset(equation.parameters))
    return ValidationReport(
        equation_id=equation.id,
        issues=tuple(validator.issues),
        links=frozenset(validator.links),
        derivative_ranks=validator.derivative_ranks,
    )


def validate_document(document: Document, resolver: LinkResolver | None = None) -> DocumentValidation:
    """Validate every equation of ``document`` in document order."""
    resolver = resolver if resolver is not None else LinkResolver(document)
    reports: dict[int, ValidationReport] = {}
    links: dict[int, frozenset[int]] = {}
    for equation in document:
        report = validate_equation(document, equation, resolver)
        reports[equation.id] = report
        # links of invalid equations still matter for cascading revalidation
        links[equation.id] = report.links
    graph = LinkGraph.from_links(links)
    invalid = sum(not report.is_valid for report in reports.values())
    logger.debug("Validated %d equations of '%s', %d with issues", len(reports), document.name, invalid)
    return DocumentValidation(reports=reports, graph=graph)


def dependents(validation: DocumentValidation, equation: Equation) -> list[int]:
    """Ids of the equations to revalidate after ``equation`` changed, in calculation order."""
    affected = validation.graph.all_dependents(equation.id)
    return validation.graph.calculation_order(affected)
