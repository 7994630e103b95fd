"""Tests for summation, product, integral, derivative and solve loops."""

import threading
from typing import Any

import pytest

from termcalc import (
    CalculationStatus,
    DifferentiableType,
    Document,
    DocumentSettings,
    Equation,
    ErrorType,
    EvaluationContext,
    Frame,
    LoopCalculator,
    NumericValue,
    ValueKind,
    evaluate,
    is_differentiable,
    ureg,
)
from termcalc import builders as t
from termcalc._eval_engine import evaluate_derivative
from termcalc._terms import TermField


class _CancelAfter(threading.Event):
    """Event that reports itself set after a number of checks."""

    def __init__(self, checks: int) -> None:
        super().__init__()
        self.remaining = checks

    def is_set(self) -> bool:
        self.remaining -= 1
        return self.remaining < 0


def _context(document: Document | None = None, **settings: float) -> EvaluationContext:
    document = document if document is not None else Document()
    if settings:
        document.settings = DocumentSettings(**settings)
    return EvaluationContext(document)


def _frame(context: EvaluationContext | None = None, **bindings: float) -> Frame:
    context = context if context is not None else _context()
    return context.frame(None, {name: NumericValue.of(value) for name, value in bindings.items()})


class TestSummationAndProduct:
    """Tests for discrete loops."""

    def test_summation(self) -> None:
        assert evaluate(t.summation("i", 1, 5, t.arg("i")), _frame()).real == 15.0

    def test_product(self) -> None:
        assert evaluate(t.product("i", 1, 4, t.arg("i")), _frame()).real == 24.0

    def test_empty_range(self) -> None:
        assert evaluate(t.summation("i", 5, 1, t.arg("i")), _frame()).real == 0.0
        assert evaluate(t.product("i", 5, 1, t.arg("i")), _frame()).real == 1.0

    def test_bounds_truncated(self) -> None:
        assert evaluate(t.summation("i", 1.9, 3.9, t.arg("i")), _frame()).real == 6.0

    def test_bound_from_enclosing_frame(self) -> None:
        assert evaluate(t.summation("i", 1, t.arg("n"), t.arg("i")), _frame(n=10)).real == 55.0

    def test_nested_loops_shadow_outer_index(self) -> None:
        inner = t.summation("i", 1, 2, t.arg("i"))
        outer = t.summation("i", 1, 3, inner)
        assert evaluate(outer, _frame()).real == 9.0

    def test_complex_bound_not_a_real(self) -> None:
        value = evaluate(t.summation("i", 1, t.num(3j), t.arg("i")), _frame())
        assert value.error == ErrorType.NOT_A_REAL

    @pytest.mark.parametrize(
        "bound",
        [
            t.arg("missing"),
            t.plus(t.num(1, "m"), t.num(1, "s")),
            t.divide(0, 0),
        ],
    )
    def test_failed_bound_not_a_real(self, bound: TermField) -> None:
        value = evaluate(t.summation("i", 1, bound, t.arg("i")), _frame())
        assert value.error == ErrorType.NOT_A_REAL

    def test_summation_derivative(self) -> None:
        # d/dx sum_{i=1}^{3} i x = 6
        loop = t.summation("i", 1, 3, t.times(t.arg("i"), t.arg("x")))
        assert evaluate_derivative(loop, "x", _frame(x=2.0)).real == pytest.approx(6.0)

    def test_product_derivative(self) -> None:
        # d/dx prod_{i=1}^{3} (x + i) at x = 0 = 2*3 + 1*3 + 1*2 = 11
        loop = t.product("i", 1, 3, t.plus(t.arg("x"), t.arg("i")))
        assert evaluate_derivative(loop, "x", _frame(x=0.0)).real == pytest.approx(11.0)

    def test_loop_independent_of_its_own_index(self) -> None:
        loop = t.summation("i", 1, 3, t.arg("i"))
        assert is_differentiable(loop, "i", _frame()) == DifferentiableType.INDEPENDENT

    def test_loop_with_variable_bound_is_numerical(self) -> None:
        loop = t.summation("i", 1, t.arg("x"), t.arg("i"))
        assert is_differentiable(loop, "x", _frame()) == DifferentiableType.NUMERICAL


class TestIntegral:
    """Tests for Simpson integration."""

    def test_polynomial(self) -> None:
        loop = t.integral("x", 0, 1, t.times(t.arg("x"), t.arg("x")))
        value = evaluate(loop, _frame(_context(precision=1e-6)))
        assert value.real == pytest.approx(1.0 / 3.0, abs=1e-5)

    def test_sine(self) -> None:
        loop = t.integral("x", 0, 3.141592653589793, t.fn("sin", t.arg("x")))
        value = evaluate(loop, _frame(_context(precision=1e-8)))
        assert value.real == pytest.approx(2.0, abs=1e-6)

    def test_reversed_bounds_change_sign(self) -> None:
        loop = t.integral("x", 1, 0, t.arg("x"))
        assert evaluate(loop, _frame()).real == pytest.approx(-0.5)

    def test_unit_of_integration_variable(self) -> None:
        # integral of 2 N over 0..3 m is 6 J
        loop = t.integral("x", t.num(0, "m"), t.num(3, "m"), t.num(2, "N"))
        value = evaluate(loop, _frame())
        assert value.real == pytest.approx(6.0)
        assert value.unit is not None
        assert value.unit.is_compatible_with(ureg.joule)

    def test_incompatible_bounds(self) -> None:
        loop = t.integral("x", t.num(0, "m"), t.num(3, "s"), t.arg("x"))
        assert evaluate(loop, _frame()).error == ErrorType.INCOMPATIBLE_UNIT

    def test_complex_body(self) -> None:
        # integral of i*x over 0..2 is 2i
        loop = t.integral("x", 0, 2, t.times(t.num(1j), t.arg("x")))
        value = evaluate(loop, _frame())
        assert value.is_complex()
        assert value.as_complex() == pytest.approx(2j, abs=1e-6)

    def test_invalid_stage_stops_early(self, monkeypatch: pytest.MonkeyPatch) -> None:
        samples: list[object] = []
        sample = LoopCalculator._sample

        def counting_sample(self: LoopCalculator, *args: Any) -> float:
            samples.append(args)
            return sample(self, *args)

        monkeypatch.setattr(LoopCalculator, "_sample", counting_sample)
        loop = t.integral("x", 0, 1, t.divide(1, t.arg("x")))
        value = evaluate(loop, _frame())
        assert value.error == ErrorType.NOT_A_NUMBER
        assert len(samples) == 2


class TestDerivative:
    """Tests for the derivative loop."""

    def test_analytical(self) -> None:
        loop = t.derivative("x", t.times(t.arg("x"), t.arg("x")))
        assert evaluate(loop, _frame(x=2.0)).real == pytest.approx(4.0)

    def test_numerical(self) -> None:
        # abs() has no analytic derivative, so Ridders' method is used
        loop = t.derivative("x", t.fn("abs", t.times(t.arg("x"), t.arg("x"))))
        context = _context()
        frame = _frame(context, x=2.0)
        assert evaluate(loop, frame).real == pytest.approx(4.0, rel=1e-6)
        assert context.derivative_ranks[loop] == DifferentiableType.NUMERICAL

    def test_numerical_complex_body(self) -> None:
        # d/dx (i |x^2|) = 2ix; the imaginary part needs its own extrapolation
        loop = t.derivative("x", t.times(t.num(1j), t.fn("abs", t.times(t.arg("x"), t.arg("x")))))
        value = evaluate(loop, _frame(x=2.0))
        assert value.is_complex()
        assert value.as_complex() == pytest.approx(4j, rel=1e-6)

    @pytest.mark.parametrize("point", [NumericValue.of(1.0), NumericValue.of(1.0, ureg.kilometer)])
    def test_unit_reference_matches_numerical(self, point: NumericValue) -> None:
        body = t.times(3, t.arg("x", "km"))
        frame = _context().frame(None, {"x": point})
        analytic = evaluate(t.derivative("x", body), frame)
        numeric = evaluate(t.derivative("x", t.fn("abs", body)), frame)
        assert analytic.real == pytest.approx(3000.0)
        assert numeric.real == pytest.approx(analytic.real, rel=1e-6)
        assert analytic.unit == numeric.unit

    def test_independent_body_is_zero(self) -> None:
        loop = t.derivative("x", t.num(5))
        assert evaluate(loop, _frame(x=1.0)).real == 0.0

    def test_point_from_constant(self) -> None:
        document = Document()
        document.add(Equation.constant("x", t.num(3)))
        loop = t.derivative("x", t.times(t.arg("x"), t.arg("x")))
        assert evaluate(loop, _frame(_context(document))).real == pytest.approx(6.0)

    def test_missing_point(self) -> None:
        loop = t.derivative("x", t.arg("x"))
        assert evaluate(loop, _frame()).error == ErrorType.TERM_NOT_READY

    def test_not_differentiable_body(self) -> None:
        document = Document()
        document.add(Equation.array("a", ["k"], t.arg("k")))
        loop = t.derivative("x", t.index("a", t.arg("x")))
        assert evaluate(loop, _frame(_context(document), x=1.0)).kind == ValueKind.INVALID

    def test_result_unit(self) -> None:
        # d/dx (3 m/s * x) with x in seconds is 3 m/s
        loop = t.derivative("x", t.times(t.num(3, "m/s"), t.arg("x", "s")))
        value = evaluate(loop, _frame(x=1.0))
        assert value.real == pytest.approx(3.0)


class TestSolve:
    """Tests for Ridders' root finding."""

    def test_finds_root(self) -> None:
        loop = t.solve("x", 0, 3, t.minus(t.times(t.arg("x"), t.arg("x")), 4))
        context = _context(precision=1e-9)
        value = evaluate(loop, _frame(context))
        assert value.real == pytest.approx(2.0, abs=1e-8)
        assert context.status_of(loop) == CalculationStatus.NONE

    def test_root_at_bound(self) -> None:
        loop = t.solve("x", 2, 3, t.minus(t.arg("x"), 2))
        assert evaluate(loop, _frame()).real == 2.0

    def test_root_not_bracketed(self) -> None:
        loop = t.solve("x", 3, 5, t.minus(t.times(t.arg("x"), t.arg("x")), 4))
        context = _context()
        value = evaluate(loop, _frame(context))
        assert value.error == ErrorType.NOT_A_REAL
        assert context.status_of(loop) == CalculationStatus.ROOT_NOT_BRACKETED

    def test_complex_bound_not_a_real(self) -> None:
        loop = t.solve("x", 0, t.num(1 + 1j), t.arg("x"))
        context = _context()
        value = evaluate(loop, _frame(context))
        assert value.error == ErrorType.NOT_A_REAL
        assert context.status_of(loop) == CalculationStatus.NONE

    def test_complex_sample(self) -> None:
        # sqrt(-1) - 1 has real part -1, so the bracket holds but the body is complex there
        loop = t.solve("x", -1, 4, t.minus(t.fn("sqrt", t.arg("x")), 1))
        context = _context()
        value = evaluate(loop, _frame(context))
        assert value.error == ErrorType.NOT_A_REAL
        assert context.status_of(loop) == CalculationStatus.IS_COMPLEX

    def test_complex_sample_wins_over_missing_bracket(self) -> None:
        loop = t.solve("x", -1, 4, t.plus(t.fn("sqrt", t.arg("x")), 1))
        context = _context()
        value = evaluate(loop, _frame(context))
        assert value.error == ErrorType.NOT_A_REAL
        assert context.status_of(loop) == CalculationStatus.IS_COMPLEX

    def test_max_iterations(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("termcalc._eval_engine._loops.ROOT_MAX_ITERATIONS", 1)
        loop = t.solve("x", 0, 3, t.minus(t.times(t.arg("x"), t.arg("x")), 4))
        context = _context(precision=1e-12)
        value = evaluate(loop, _frame(context))
        assert value.error == ErrorType.NOT_A_REAL
        assert context.status_of(loop) == CalculationStatus.MAX_ITERATIONS

    def test_root_keeps_bound_unit(self) -> None:
        loop = t.solve("x", t.num(0, "m"), t.num(3, "m"), t.minus(t.arg("x"), t.num(1, "m")))
        value = evaluate(loop, _frame())
        assert value.real == pytest.approx(1.0)
        assert value.unit == ureg.meter


class TestCancellation:
    """Tests for cancelling a running loop."""

    def test_cancelled_before_start(self) -> None:
        context = _context()
        context.cancel()
        value = evaluate(t.summation("i", 1, 10, t.arg("i")), _frame(context))
        assert value.error == ErrorType.CANCELLED

    def test_cancelled_mid_summation(self) -> None:
        context = EvaluationContext(Document(), cancel_event=_CancelAfter(50))
        loop = t.summation("i", 1, 1_000_000, t.arg("i"))
        value = evaluate(loop, _frame(context))
        assert value.error == ErrorType.CANCELLED

    def test_cancelled_integration(self) -> None:
        context = EvaluationContext(Document(), cancel_event=_CancelAfter(20))
        loop = t.integral("x", 0, 1, t.fn("sin", t.arg("x")))
        assert evaluate(loop, _frame(context)).error == ErrorType.CANCELLED


class TestLoopCalculator:
    """Tests for calling the numerical schemes directly."""

    def test_integrate(self) -> None:
        loop = t.integral("x", 0, 2, t.arg("x"))
        calculator = LoopCalculator(loop, _frame())
        out = NumericValue()
        calculator.integrate(NumericValue.of(0.0), NumericValue.of(2.0), 1e-9, out)
        assert out.real == pytest.approx(2.0)

    def test_summation_writes_output(self) -> None:
        loop = t.summation("k", 0, 0, t.times(t.arg("k"), 2))
        calculator = LoopCalculator(loop, _frame())
        out = NumericValue()
        assert calculator.summation(1, 3, out) == ValueKind.REAL
        assert out.real == 12.0
