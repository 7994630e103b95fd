"""Term fields and term nodes of an expression tree.

A tree is built once (by a parser, an editor or the helpers in
``termcalc._builders``) and is never mutated afterwards. Every variant is a
frozen dataclass hashed by identity, so a node can key per-calculation data
such as validation issues or loop statuses.

Leaf slots (``TermField`` variants that are not nodes):

- ``EmptyField``: a slot without content
- ``Literal``: a number with an optional unit
- ``ArgumentRef``: a name bound by an enclosing loop index or equation parameter
- ``VariableRef``: a link to a constant (0-ary) equation

Nodes:

- ``OperatorTerm``: ``+ - * /``
- ``FunctionTerm``: grouping, link to a user function, index into an array
- ``CommonFunctionTerm``: built-in functions such as ``sin`` or ``abs``
- ``LoopTerm``: summation, product, integral, derivative and root solving
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum, auto
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    import pint


class OperatorKind(StrEnum):
    PLUS = auto()
    MINUS = auto()
    MULT = auto()
    DIVIDE = auto()


class FunctionKind(StrEnum):
    IDENTITY = auto()  # grouping parentheses
    LINK = auto()  # call of a user-defined function
    INDEX = auto()  # element of an array or interval


class CommonFunctionKind(StrEnum):
    """Built-in functions; all take one argument unless listed in ``arity``."""

    ABS = auto()
    SQRT = auto()
    EXP = auto()
    LOG = auto()
    LOG10 = auto()
    SIN = auto()
    COS = auto()
    TAN = auto()
    CSC = auto()
    SEC = auto()
    COT = auto()
    ASIN = auto()
    ACOS = auto()
    ATAN = auto()
    SINH = auto()
    COSH = auto()
    TANH = auto()
    CSCH = auto()
    SECH = auto()
    COTH = auto()
    CEIL = auto()
    FLOOR = auto()
    CONJ = auto()
    RANDOM = auto()
    POWER = auto()
    NTHROOT = auto()

    @property
    def arity(self) -> int:
        return 2 if self in (CommonFunctionKind.POWER, CommonFunctionKind.NTHROOT) else 1


class LoopKind(StrEnum):
    SUMMATION = auto()
    PRODUCT = auto()
    INTEGRAL = auto()
    DERIVATIVE = auto()
    SOLVE = auto()


@dataclass(frozen=True, slots=True, eq=False)
class EmptyField:
    """A slot that holds nothing yet."""


@dataclass(frozen=True, slots=True, eq=False)
class Literal:
    """A numeric constant, stored in the given unit and read in base units."""

    value: float | complex
    unit: pint.Unit | None = None


@dataclass(frozen=True, slots=True, eq=False)
class ArgumentRef:
    """Reference to a bound argument (equation parameter or loop index).

    Attributes:
        name: The argument name.
        sign: ``-1.0`` for a negated reference such as ``-x``.
        unit: Unit the bound value is expressed in, converted to base units when read.

    """

    name: str
    sign: float = 1.0
    unit: pint.Unit | None = None


@dataclass(frozen=True, slots=True, eq=False)
class VariableRef:
    """Reference to a constant equation (or the current binding) of the given name."""

    name: str
    sign: float = 1.0
    unit: pint.Unit | None = None


@dataclass(frozen=True, slots=True, eq=False)
class OperatorTerm:
    kind: OperatorKind
    left: TermField
    right: TermField


@dataclass(frozen=True, slots=True, eq=False)
class FunctionTerm:
    """Grouping, user-function link or array index.

    Attributes:
        kind: IDENTITY, LINK or INDEX.
        args: Argument fields (exactly one for IDENTITY).
        link_name: Name of the linked equation (LINK and INDEX only).

    """

    kind: FunctionKind
    args: tuple[TermField, ...]
    link_name: str | None = None

    def __post_init__(self) -> None:
        if not self.args:
            msg = f"{self.kind} term needs at least one argument"
            raise ValueError(msg)
        if self.kind == FunctionKind.IDENTITY and len(self.args) != 1:
            msg = "identity term takes exactly one argument"
            raise ValueError(msg)
        if self.kind != FunctionKind.IDENTITY and not self.link_name:
            msg = f"{self.kind} term needs a link name"
            raise ValueError(msg)


@dataclass(frozen=True, slots=True, eq=False)
class CommonFunctionTerm:
    kind: CommonFunctionKind
    args: tuple[TermField, ...]

    def __post_init__(self) -> None:
        if len(self.args) != self.kind.arity:
            msg = f"{self.kind} takes {self.kind.arity} argument(s), got {len(self.args)}"
            raise ValueError(msg)


@dataclass(frozen=True, slots=True, eq=False)
class LoopTerm:
    """Summation, product, integral, derivative or root-solve operator.

    Attributes:
        kind: The loop kind.
        index_name: Name bound to the loop variable inside ``body``.
        body: The expression the loop iterates over.
        min_bound: Lower bound (absent for DERIVATIVE).
        max_bound: Upper bound (absent for DERIVATIVE).

    """

    kind: LoopKind
    index_name: str
    body: TermField
    min_bound: TermField | None = None
    max_bound: TermField | None = None

    def __post_init__(self) -> None:
        if not self.index_name.isidentifier():
            msg = f"Invalid loop index name '{self.index_name}'"
            raise ValueError(msg)
        if self.kind != LoopKind.DERIVATIVE and (self.min_bound is None or self.max_bound is None):
            msg = f"{self.kind} needs both a lower and an upper bound"
            raise ValueError(msg)

    @property
    def has_bounds(self) -> bool:
        return self.min_bound is not None and self.max_bound is not None


TermNode = OperatorTerm | FunctionTerm | CommonFunctionTerm | LoopTerm
TermField = EmptyField | Literal | ArgumentRef | VariableRef | TermNode


def iter_children(field: TermField) -> Iterator[TermField]:
    """Yield the direct child fields of a term."""
    match field:
        case OperatorTerm(left=left, right=right):
            yield left
            yield right
        case FunctionTerm(args=args) | CommonFunctionTerm(args=args):
            yield from args
        case LoopTerm(body=body, min_bound=min_bound, max_bound=max_bound):
            if min_bound is not None:
                yield min_bound
            if max_bound is not None:
                yield max_bound
            yield body
        case _:
            return
