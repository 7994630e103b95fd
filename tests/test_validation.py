"""Tests for content validation and link registration."""

import pytest

from termcalc import (
    DifferentiableType,
    Document,
    Equation,
    ErrorCode,
    ValidationIssue,
    dependents,
    validate_document,
    validate_equation,
)
from termcalc import builders as t


def _codes(document: Document, equation: Equation) -> list[ErrorCode]:
    return [issue.code for issue in validate_equation(document, equation).issues]


class TestEquationIssues:
    """Tests for the error codes reported per equation."""

    def test_valid_equation(self) -> None:
        document = Document()
        a = document.add(Equation.constant("a", t.num(1)))
        b = document.add(Equation.constant("b", t.times(t.var("a"), 2)))
        report = validate_equation(document, b)
        assert report.is_valid
        assert report.error == ErrorCode.NO_ERROR
        assert report.links == frozenset({a.id})

    def test_empty_term(self) -> None:
        document = Document()
        a = document.add(Equation.constant("a", t.plus(1, t.empty())))
        assert _codes(document, a) == [ErrorCode.EMPTY_TERM]

    def test_unknown_argument(self) -> None:
        document = Document()
        f = document.add(Equation.function("f", ["x"], t.plus(t.arg("x"), t.arg("y"))))
        assert _codes(document, f) == [ErrorCode.UNKNOWN_ARGUMENT]

    def test_unknown_variable(self) -> None:
        document = Document()
        a = document.add(Equation.constant("a", t.var("nope")))
        issues = validate_equation(document, a).issues
        assert issues == (ValidationIssue(ErrorCode.UNKNOWN_VARIABLE, "nope"),)

    def test_variable_may_name_an_interval(self) -> None:
        document = Document()
        document.add(Equation.sampled("x", 0.0, 1.0, 3))
        a = document.add(Equation.constant("a", t.var("x")))
        assert _codes(document, a) == []

    def test_self_call_is_recursive(self) -> None:
        document = Document()
        f = document.add(Equation.function("f", ["x"], t.call("f", t.arg("x"))))
        assert _codes(document, f) == [ErrorCode.RECURSIVE_CALL]

    def test_self_reference_is_recursive(self) -> None:
        document = Document()
        a = document.add(Equation.constant("a", t.plus(t.var("a"), 1)))
        assert _codes(document, a) == [ErrorCode.RECURSIVE_CALL]

    def test_unknown_function_and_array(self) -> None:
        document = Document()
        a = document.add(Equation.constant("a", t.plus(t.call("f", 1), t.index("arr", 1))))
        assert _codes(document, a) == [ErrorCode.UNKNOWN_FUNCTION, ErrorCode.UNKNOWN_ARRAY]

    def test_array_called_as_function(self) -> None:
        document = Document()
        document.add(Equation.array("arr", ["k"], t.arg("k")))
        a = document.add(Equation.constant("a", t.call("arr", 1)))
        assert _codes(document, a) == [ErrorCode.NOT_A_FUNCTION]

    def test_function_indexed_as_array(self) -> None:
        document = Document()
        document.add(Equation.function("f", ["x"], t.arg("x")))
        a = document.add(Equation.constant("a", t.index("f", 1)))
        assert _codes(document, a) == [ErrorCode.NOT_AN_ARRAY]

    def test_loop_index_in_scope_of_body_only(self) -> None:
        document = Document()
        a = document.add(Equation.constant("a", t.summation("i", 1, t.arg("i"), t.arg("i"))))
        assert _codes(document, a) == [ErrorCode.UNKNOWN_ARGUMENT]

    def test_derivative_variable_must_exist(self) -> None:
        document = Document()
        a = document.add(Equation.constant("a", t.derivative("x", t.arg("x"))))
        assert _codes(document, a) == [ErrorCode.UNKNOWN_VARIABLE]

    def test_derivative_of_parameter(self) -> None:
        document = Document()
        f = document.add(Equation.function("f", ["x"], t.derivative("x", t.power(t.arg("x"), 2))))
        report = validate_equation(document, f)
        assert report.is_valid
        assert list(report.derivative_ranks.values()) == [DifferentiableType.ANALYTICAL]

    def test_not_differentiable(self) -> None:
        document = Document()
        document.add(Equation.array("arr", ["k"], t.arg("k")))
        document.add(Equation.constant("x", t.num(1)))
        a = document.add(Equation.constant("a", t.derivative("x", t.index("arr", t.arg("x")))))
        assert _codes(document, a) == [ErrorCode.NOT_DIFFERENTIABLE]

    @pytest.mark.parametrize(
        ("minimum", "maximum", "points"),
        [
            (0.0, 1.0, 1),
            (0.0, float("inf"), 5),
        ],
    )
    def test_invalid_interval(self, minimum: float, maximum: float, points: int) -> None:
        document = Document()
        grid = document.add(Equation.sampled("grid", minimum, maximum, points))
        assert _codes(document, grid) == [ErrorCode.INVALID_INTERVAL]

    def test_issue_str(self) -> None:
        issue = ValidationIssue(ErrorCode.UNKNOWN_VARIABLE, "nope")
        assert str(issue) == "Unknown variable 'nope'"


class TestDocumentValidation:
    """Tests for validating a whole document."""

    @pytest.fixture
    def document(self) -> Document:
        document = Document()
        document.add(Equation.constant("a", t.var("missing")))
        document.add(Equation.constant("b", t.plus(t.var("a"), 1)))
        document.add(Equation.constant("c", t.times(t.var("b"), 2)))
        document.add(Equation.constant("d", t.num(4)))
        return document

    def test_reports_in_document_order(self, document: Document) -> None:
        validation = validate_document(document)
        assert list(validation.reports) == [equation.id for equation in document]
        assert not validation.is_valid

    def test_invalid_ids_cascade_to_dependents(self, document: Document) -> None:
        a, b, c, d = document.equations
        invalid = validate_document(document).invalid_ids()
        assert invalid == frozenset({a.id, b.id, c.id})
        assert d.id not in invalid

    def test_graph_registers_links(self, document: Document) -> None:
        a, b, c, _ = document.equations
        graph = validate_document(document).graph
        assert graph.links_of(c.id) == frozenset({b.id})
        assert graph.all_dependents(a.id) == frozenset({b.id, c.id})

    def test_dependents_in_calculation_order(self, document: Document) -> None:
        a, b, c, _ = document.equations
        validation = validate_document(document)
        assert dependents(validation, a) == [b.id, c.id]

    def test_interval_targets_are_not_links(self) -> None:
        document = Document()
        grid = document.add(Equation.sampled("grid", 0.0, 1.0, 5))
        a = document.add(Equation.constant("a", t.index("grid", 2)))
        report = validate_document(document).report_for(a)
        assert report.is_valid
        assert grid.id not in report.links
