"""Tests for recursive evaluation of term trees."""

import math

import pytest

from termcalc import (
    DifferentiableType,
    Document,
    Equation,
    ErrorType,
    EvaluationContext,
    Frame,
    NumericValue,
    ValueKind,
    evaluate,
    is_differentiable,
    ureg,
)
from termcalc import builders as t
from termcalc._eval_engine import evaluate_derivative
from termcalc._terms import TermField


def _frame(document: Document | None = None, equation: Equation | None = None, **bindings: float) -> Frame:
    context = EvaluationContext(document if document is not None else Document())
    return context.frame(equation, {name: NumericValue.of(value) for name, value in bindings.items()})


def _value(term: TermField, document: Document | None = None, **bindings: float) -> NumericValue:
    return evaluate(term, _frame(document, **bindings))


def _derivative(term: TermField, var: str, **bindings: float) -> NumericValue:
    return evaluate_derivative(term, var, _frame(**bindings))


class TestLeaves:
    """Tests for literals, arguments and variables."""

    def test_literal(self) -> None:
        assert _value(t.num(2.5)).real == 2.5

    def test_literal_read_in_base_units(self) -> None:
        value = _value(t.num(250, "mm"))
        assert value.real == pytest.approx(0.25)
        assert value.unit == ureg.meter

    def test_complex_literal(self) -> None:
        assert _value(t.num(1 + 2j)).as_complex() == 1 + 2j

    def test_empty_field_not_ready(self) -> None:
        value = _value(t.empty())
        assert value.error == ErrorType.TERM_NOT_READY

    def test_bound_argument(self) -> None:
        assert _value(t.arg("x"), x=3.0).real == 3.0

    def test_negated_argument(self) -> None:
        assert _value(t.arg("x", negate=True), x=3.0).real == -3.0

    def test_unbound_argument_not_ready(self) -> None:
        assert _value(t.arg("x")).kind == ValueKind.INVALID

    def test_variable_prefers_binding(self) -> None:
        document = Document()
        document.add(Equation.constant("x", t.num(1)))
        assert _value(t.var("x"), document, x=5.0).real == 5.0

    def test_variable_resolves_constant(self) -> None:
        document = Document()
        document.add(Equation.constant("x", t.num(7)))
        assert _value(t.var("x"), document).real == 7.0

    def test_unknown_variable_not_ready(self) -> None:
        assert _value(t.var("missing")).error == ErrorType.TERM_NOT_READY


class TestOperators:
    """Tests for arithmetic operators."""

    def test_arithmetic(self) -> None:
        term = t.divide(t.minus(t.times(3, 4), 2), 5)
        assert _value(term).real == pytest.approx(2.0)

    def test_units_flow_through_operators(self) -> None:
        term = t.times(t.num(2, "m"), t.num(3, "m"))
        value = _value(term)
        assert value.real == pytest.approx(6.0)
        assert value.unit == ureg.meter**2

    def test_incompatible_addition(self) -> None:
        term = t.plus(t.num(1, "m"), t.num(1, "s"))
        assert _value(term).error == ErrorType.INCOMPATIBLE_UNIT

    def test_group(self) -> None:
        assert _value(t.times(t.group(t.plus(1, 2)), 4)).real == 12.0


class TestLinks:
    """Tests for calls of user functions, arrays and intervals."""

    @pytest.fixture
    def document(self) -> Document:
        document = Document()
        document.add(Equation.function("f", ["x"], t.times(t.arg("x"), t.arg("x"))))
        document.add(Equation.function("g", ["x", "y"], t.minus(t.arg("x"), t.arg("y"))))
        document.add(Equation.array("squares", ["k"], t.times(t.arg("k"), t.arg("k"))))
        document.add(Equation.sampled("grid", 0.0, 1.0, 11))
        return document

    def test_call(self, document: Document) -> None:
        assert _value(t.call("f", 3), document).real == 9.0

    def test_call_binds_by_position(self, document: Document) -> None:
        assert _value(t.call("g", 5, 2), document).real == 3.0

    def test_caller_bindings_not_visible_in_callee(self, document: Document) -> None:
        document.add(Equation.function("h", ["y"], t.arg("x")))
        assert _value(t.call("h", 1), document, x=4.0).kind == ValueKind.INVALID

    def test_unknown_function(self, document: Document) -> None:
        assert _value(t.call("nope", 1), document).error == ErrorType.TERM_NOT_READY

    def test_array_index_truncates(self, document: Document) -> None:
        assert _value(t.index("squares", 3.7), document).real == 9.0

    def test_array_index_must_be_real(self, document: Document) -> None:
        assert _value(t.index("squares", t.num(1j)), document).error == ErrorType.NOT_A_REAL

    def test_interval_element(self, document: Document) -> None:
        assert _value(t.index("grid", 5), document).real == pytest.approx(0.5)

    def test_interval_out_of_range(self, document: Document) -> None:
        assert _value(t.index("grid", 11), document).error == ErrorType.NOT_A_NUMBER

    def test_calling_array_as_function_fails(self, document: Document) -> None:
        assert _value(t.call("squares", 2), document).kind == ValueKind.INVALID

    def test_invalid_content_not_ready(self, document: Document) -> None:
        context = EvaluationContext(document)
        f = document.find("f")[0]
        context.invalid_equations.add(f.id)
        value = evaluate(t.call("f", 2), context.frame())
        assert value.error == ErrorType.TERM_NOT_READY


class TestCommonFunctions:
    """Tests for built-in functions."""

    def test_sin(self) -> None:
        assert _value(t.fn("sin", t.arg("x")), x=math.pi / 2).real == pytest.approx(1.0)

    def test_power(self) -> None:
        assert _value(t.power(2, 10)).real == 1024.0

    def test_power_keeps_unit(self) -> None:
        value = _value(t.power(t.num(3, "m"), 2))
        assert value.real == pytest.approx(9.0)
        assert value.unit == ureg.meter**2

    def test_nthroot(self) -> None:
        assert _value(t.fn("nthroot", -27, 3)).real == pytest.approx(-3.0)

    def test_nthroot_requires_integer_degree(self) -> None:
        assert _value(t.fn("nthroot", 8, 2.5)).error == ErrorType.NOT_A_NUMBER

    def test_sqrt_of_negative(self) -> None:
        assert _value(t.fn("sqrt", -9)).as_complex() == pytest.approx(3j)


class TestDifferentiability:
    """Tests for differentiability classification."""

    def test_variable_is_analytical(self) -> None:
        assert is_differentiable(t.arg("x"), "x", _frame()) == DifferentiableType.ANALYTICAL

    def test_other_leaf_is_independent(self) -> None:
        assert is_differentiable(t.arg("y"), "x", _frame()) == DifferentiableType.INDEPENDENT
        assert is_differentiable(t.num(3), "x", _frame()) == DifferentiableType.INDEPENDENT

    def test_operator_takes_worst_rank(self) -> None:
        term = t.plus(t.arg("x"), t.fn("abs", t.arg("x")))
        assert is_differentiable(term, "x", _frame()) == DifferentiableType.NUMERICAL

    def test_independent_argument_of_non_analytic_function(self) -> None:
        assert is_differentiable(t.fn("abs", t.arg("y")), "x", _frame()) == DifferentiableType.INDEPENDENT

    def test_index_in_variable_not_differentiable(self) -> None:
        document = Document()
        document.add(Equation.array("a", ["k"], t.arg("k")))
        frame = _frame(document)
        assert is_differentiable(t.index("a", t.arg("x")), "x", frame) == DifferentiableType.NONE
        assert is_differentiable(t.index("a", 1), "x", frame) == DifferentiableType.INDEPENDENT

    def test_link_uses_callee_rank(self) -> None:
        document = Document()
        document.add(Equation.function("f", ["u"], t.fn("floor", t.arg("u"))))
        frame = _frame(document)
        assert is_differentiable(t.call("f", t.arg("x")), "x", frame) == DifferentiableType.NUMERICAL


class TestAnalyticDerivatives:
    """Tests for analytic derivatives."""

    def test_product_rule(self) -> None:
        term = t.times(t.arg("x"), t.arg("x"))
        assert _derivative(term, "x", x=3.0).real == pytest.approx(6.0)

    def test_quotient_rule(self) -> None:
        # d/dx (1 / x) = -1 / x^2
        term = t.divide(1, t.arg("x"))
        assert _derivative(term, "x", x=2.0).real == pytest.approx(-0.25)

    def test_negated_variable(self) -> None:
        assert _derivative(t.arg("x", negate=True), "x", x=1.0).real == -1.0

    def test_reference_read_in_unit(self) -> None:
        # x is read as kilometres, so one unit of x is 1000 m
        derivative = _derivative(t.arg("x", "km", negate=True), "x", x=1.0)
        assert derivative.real == pytest.approx(-1000.0)
        assert derivative.unit == ureg.meter

    def test_sin(self) -> None:
        assert _derivative(t.fn("sin", t.arg("x")), "x", x=0.0).real == pytest.approx(1.0)

    def test_exp_chain_rule(self) -> None:
        term = t.fn("exp", t.times(2, t.arg("x")))
        assert _derivative(term, "x", x=0.0).real == pytest.approx(2.0)

    def test_log(self) -> None:
        assert _derivative(t.fn("log", t.arg("x")), "x", x=4.0).real == pytest.approx(0.25)

    def test_power_with_constant_exponent(self) -> None:
        assert _derivative(t.power(t.arg("x"), 3), "x", x=2.0).real == pytest.approx(12.0)

    def test_power_with_variable_exponent(self) -> None:
        # d/dx x^x = x^x (ln x + 1)
        term = t.power(t.arg("x"), t.arg("x"))
        assert _derivative(term, "x", x=2.0).real == pytest.approx(4.0 * (math.log(2.0) + 1.0))

    def test_link_chain_rule(self) -> None:
        document = Document()
        document.add(Equation.function("f", ["u"], t.times(t.arg("u"), t.arg("u"))))
        frame = _frame(document, x=3.0)
        # d/dx f(2x) = 2 * 2 * (2x) = 24 at x = 3
        derivative = evaluate_derivative(t.call("f", t.times(2, t.arg("x"))), "x", frame)
        assert derivative.real == pytest.approx(24.0)

    def test_independent_term_is_zero(self) -> None:
        assert _derivative(t.num(5), "x", x=1.0).real == 0.0
