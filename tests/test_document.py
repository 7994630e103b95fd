"""Tests for equations, documents and their settings."""

import pytest
from pydantic import ValidationError

from termcalc import ARG_NUMBER_ANY, ARG_NUMBER_INTERVAL, Document, DocumentSettings, Equation, EquationKind
from termcalc import builders as t


class TestDocumentSettings:
    """Tests for the pydantic settings model."""

    def test_defaults(self) -> None:
        settings = DocumentSettings()
        assert settings.significant_digits == 6
        assert settings.precision == 1e-6
        assert not settings.redefine_allowed

    def test_rejects_non_positive_precision(self) -> None:
        with pytest.raises(ValidationError):
            DocumentSettings(precision=0.0)

    def test_rejects_unknown_keys(self) -> None:
        with pytest.raises(ValidationError):
            DocumentSettings.model_validate({"digits": 3})

    def test_frozen(self) -> None:
        settings = DocumentSettings()
        with pytest.raises(ValidationError):
            settings.precision = 1.0  # type: ignore[misc]


class TestEquation:
    """Tests for equation construction and matching."""

    def test_constant(self) -> None:
        equation = Equation.constant("c", t.num(1))
        assert equation.is_constant
        assert equation.kind == EquationKind.FUNCTION

    def test_ids_are_unique(self) -> None:
        assert Equation.constant("a", t.num(1)).id != Equation.constant("a", t.num(1)).id

    def test_invalid_name(self) -> None:
        with pytest.raises(ValueError, match="Invalid equation name"):
            Equation.constant("2x", t.num(1))

    def test_duplicate_parameters(self) -> None:
        with pytest.raises(ValueError, match="Duplicate"):
            Equation.function("f", ["x", "x"], t.arg("x"))

    def test_array_needs_index(self) -> None:
        with pytest.raises(ValueError, match="at least one index"):
            Equation.array("a", [], t.num(1))

    def test_matches_arity(self) -> None:
        function = Equation.function("f", ["x", "y"], t.plus(t.arg("x"), t.arg("y")))
        assert function.matches(2)
        assert not function.matches(1)
        assert function.matches(ARG_NUMBER_ANY)
        assert not function.matches(ARG_NUMBER_INTERVAL)

    def test_interval_matches_only_interval_lookup(self) -> None:
        interval = Equation.sampled("x", 0.0, 1.0, 11)
        assert interval.matches(ARG_NUMBER_INTERVAL)
        assert not interval.matches(1)

    def test_interval_points(self) -> None:
        interval = Equation.sampled("x", 0.0, 1.0, 11).interval
        assert interval is not None
        assert interval.step == pytest.approx(0.1)
        assert interval.value_at(5) == pytest.approx(0.5)

    def test_repr(self) -> None:
        array = Equation.array("a", ["i", "j"], t.num(1))
        assert repr(array).endswith("a[i, j]")
        function = Equation.function("f", ["x"], t.arg("x"))
        assert repr(function).endswith("f(x)")


class TestDocument:
    """Tests for the ordered equation collection."""

    def test_add_and_iterate(self) -> None:
        first = Equation.constant("a", t.num(1))
        second = Equation.constant("b", t.num(2))
        document = Document("doc", equations=[first, second])
        assert list(document) == [first, second]
        assert len(document) == 2
        assert first in document

    def test_every_change_bumps_version(self) -> None:
        document = Document()
        equation = document.add(Equation.constant("a", t.num(1)))
        version = document.version
        document.replace(equation, Equation.constant("a", t.num(2)))
        assert document.version == version + 1
        document.settings = DocumentSettings(precision=1e-3)
        assert document.version == version + 2

    def test_add_twice_rejected(self) -> None:
        document = Document()
        equation = document.add(Equation.constant("a", t.num(1)))
        with pytest.raises(ValueError, match="already part"):
            document.add(equation)

    def test_insert_and_remove(self) -> None:
        document = Document()
        second = document.add(Equation.constant("b", t.num(2)))
        first = document.insert(0, Equation.constant("a", t.num(1)))
        assert document.index_of(first) == 0
        document.remove(second)
        assert second not in document

    def test_get_by_id(self) -> None:
        document = Document()
        equation = document.add(Equation.constant("a", t.num(1)))
        assert document.get(equation.id) is equation
        with pytest.raises(KeyError):
            document.get(-1)

    def test_find_returns_all_definitions(self) -> None:
        document = Document(settings=DocumentSettings(redefine_allowed=True))
        first = document.add(Equation.constant("a", t.num(1)))
        second = document.add(Equation.constant("a", t.num(2)))
        assert document.find("a") == [first, second]
        assert document.find("missing") == []
