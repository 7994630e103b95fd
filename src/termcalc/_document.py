"""Named equations and the document holding them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum, auto
from itertools import count
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from ._terms import EmptyField, TermField

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    import pint

logger = logging.getLogger(__name__)

# Argument-count sentinels for equation lookup
ARG_NUMBER_ANY = -1
ARG_NUMBER_INTERVAL = -2

_id_generator = count(1)


class DocumentSettings(BaseModel):
    """Numeric settings of a document.

    Attributes:
        significant_digits: Digits shown when a result is formatted.
        precision: Absolute accuracy of integration and root solving.
        redefine_allowed: Whether a name may be defined by more than one equation.

    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    significant_digits: int = Field(default=6, ge=1, le=17)
    precision: float = Field(default=1e-6, gt=0.0)
    redefine_allowed: bool = False


class EquationKind(StrEnum):
    FUNCTION = auto()  # f(x, y) = ..., or a constant c = ... without parameters
    ARRAY = auto()  # a[i] = ...
    INTERVAL = auto()  # x = [min, max] sampled at evenly spaced points


@dataclass(frozen=True, slots=True)
class Interval:
    """Evenly spaced sample points between two bounds (both included)."""

    minimum: float
    maximum: float
    points: int
    unit: pint.Unit | None = None

    @property
    def step(self) -> float:
        return (self.maximum - self.minimum) / (self.points - 1)

    def value_at(self, index: int) -> float:
        return self.minimum + index * self.step


@dataclass(slots=True, eq=False)
class Equation:
    """A named equation of a document.

    Attributes:
        name: The equation name that links refer to.
        parameters: Argument names of a function, or index names of an array.
        body: The right-hand side term tree.
        kind: FUNCTION, ARRAY or INTERVAL.
        interval: Sample points of an INTERVAL equation.
        id: Document-unique identity, assigned when the equation is created.

    """

    name: str
    parameters: tuple[str, ...] = ()
    body: TermField = field(default_factory=EmptyField)
    kind: EquationKind = EquationKind.FUNCTION
    interval: Interval | None = None
    id: int = field(default_factory=lambda: next(_id_generator), init=False)

    def __post_init__(self) -> None:
        if not self.name.isidentifier():
            msg = f"Invalid equation name '{self.name}'"
            raise ValueError(msg)
        for parameter in self.parameters:
            if not parameter.isidentifier():
                msg = f"Invalid parameter name '{parameter}' in equation '{self.name}'"
                raise ValueError(msg)
        if len(set(self.parameters)) != len(self.parameters):
            msg = f"Duplicate parameter names in equation '{self.name}'"
            raise ValueError(msg)
        if self.kind == EquationKind.INTERVAL and self.interval is None:
            msg = f"Interval equation '{self.name}' needs an interval"
            raise ValueError(msg)
        if self.kind == EquationKind.ARRAY and not self.parameters:
            msg = f"Array equation '{self.name}' needs at least one index"
            raise ValueError(msg)

    @classmethod
    def constant(cls, name: str, body: TermField) -> Equation:
        return cls(name=name, body=body)

    @classmethod
    def function(cls, name: str, parameters: Iterable[str], body: TermField) -> Equation:
        return cls(name=name, parameters=tuple(parameters), body=body)

    @classmethod
    def array(cls, name: str, indices: Iterable[str], body: TermField) -> Equation:
        return cls(name=name, parameters=tuple(indices), body=body, kind=EquationKind.ARRAY)

    @classmethod
    def sampled(
        cls,
        name: str,
        minimum: float,
        maximum: float,
        points: int,
        unit: pint.Unit | None = None,
    ) -> Equation:
        return cls(
            name=name,
            kind=EquationKind.INTERVAL,
            interval=Interval(minimum=minimum, maximum=maximum, points=points, unit=unit),
        )

    @property
    def is_array(self) -> bool:
        return self.kind == EquationKind.ARRAY

    @property
    def is_interval(self) -> bool:
        return self.kind == EquationKind.INTERVAL

    @property
    def is_constant(self) -> bool:
        return self.kind == EquationKind.FUNCTION and not self.parameters

    def matches(self, arg_count: int) -> bool:
        """Check whether a link with ``arg_count`` arguments may refer to this equation."""
        if arg_count == ARG_NUMBER_ANY:
            return True
        if arg_count == ARG_NUMBER_INTERVAL:
            return self.is_interval
        return not self.is_interval and len(self.parameters) == arg_count

    def __repr__(self) -> str:
        signature = f"[{', '.join(self.parameters)}]" if self.is_array else f"({', '.join(self.parameters)})"
        return f"Equation#{self.id} {self.name}{signature if self.parameters else ''}"


class Document:
    """An ordered collection of equations sharing one set of settings.

    Every structural change bumps ``version``; link resolution results are
    cached per version.
    """

    def __init__(
        self,
        name: str = "document",
        *,
        settings: DocumentSettings | None = None,
        equations: Iterable[Equation] = (),
    ) -> None:
        self.name = name
        self._settings = settings if settings is not None else DocumentSettings()
        self._equations: list[Equation] = []
        self.version = 0
        for equation in equations:
            self.add(equation)

    @property
    def settings(self) -> DocumentSettings:
        return self._settings

    @settings.setter
    def settings(self, value: DocumentSettings) -> None:
        self._settings = value
        self._touch()

    @property
    def equations(self) -> tuple[Equation, ...]:
        return tuple(self._equations)

    def _touch(self) -> None:
        self.version += 1

    def add(self, equation: Equation) -> Equation:
        """Append an equation at the end of the document."""
        if equation in self._equations:
            msg = f"{equation!r} is already part of document '{self.name}'"
            raise ValueError(msg)
        self._equations.append(equation)
        self._touch()
        logger.debug("Added %r to document '%s' (version %d)", equation, self.name, self.version)
        return equation

    def insert(self, position: int, equation: Equation) -> Equation:
        if equation in self._equations:
            msg = f"{equation!r} is already part of document '{self.name}'"
            raise ValueError(msg)
        self._equations.insert(position, equation)
        self._touch()
        return equation

    def replace(self, old: Equation, new: Equation) -> Equation:
        """Put ``new`` at the position of ``old``."""
        position = self.index_of(old)
        self._equations[position] = new
        self._touch()
        return new

    def remove(self, equation: Equation) -> None:
        self._equations.pop(self.index_of(equation))
        self._touch()

    def index_of(self, equation: Equation) -> int:
        for position, candidate in enumerate(self._equations):
            if candidate is equation:
                return position
        msg = f"{equation!r} is not part of document '{self.name}'"
        raise KeyError(msg)

    def get(self, equation_id: int) -> Equation:
        for equation in self._equations:
            if equation.id == equation_id:
                return equation
        msg = f"No equation with id {equation_id} in document '{self.name}'"
        raise KeyError(msg)

    def find(self, name: str) -> list[Equation]:
        """Return all equations of the given name in document order."""
        return [equation for equation in self._equations if equation.name == name]

    def __iter__(self) -> Iterator[Equation]:
        return iter(tuple(self._equations))

    def __len__(self) -> int:
        return len(self._equations)

    def __contains__(self, equation: object) -> bool:
        return any(candidate is equation for candidate in self._equations)
