"""Evaluation context and per-call frames.

The context is shared by one calculation: document settings, the link
resolver, the cancellation flag and the statuses reported by loop terms. A
frame is created for every equation entered during evaluation and carries
the argument bindings visible to the terms of that equation.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ._errors import CalculationStatus
from ._resolver import LinkResolver

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ._differentiability import DifferentiableType
    from ._document import Document, DocumentSettings, Equation
    from ._terms import LoopTerm
    from ._value import NumericValue

logger = logging.getLogger(__name__)


class EvaluationContext:
    """State shared by all frames of one calculation.

    Attributes:
        document: The document being calculated.
        settings: Settings snapshot taken when the context was created.
        resolver: Link resolver for the document.
        statuses: Status reported by each loop term evaluated so far.
        derivative_ranks: Differentiability of DERIVATIVE loop bodies with
            respect to their index, as computed by the validation pass.
        invalid_equations: Ids of equations whose content failed validation.

    """

    def __init__(
        self,
        document: Document,
        *,
        resolver: LinkResolver | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.document = document
        self.settings: DocumentSettings = document.settings
        self.resolver = resolver if resolver is not None else LinkResolver(document)
        self._cancel_event = cancel_event if cancel_event is not None else threading.Event()
        self.statuses: dict[LoopTerm, CalculationStatus] = {}
        self.derivative_ranks: dict[LoopTerm, DifferentiableType] = {}
        self.invalid_equations: set[int] = set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Request the calculation to stop at its next checkpoint."""
        if not self._cancel_event.is_set():
            logger.debug("Cancellation requested for document '%s'", self.document.name)
        self._cancel_event.set()

    def record_status(self, loop: LoopTerm, status: CalculationStatus) -> None:
        self.statuses[loop] = status
        if status != CalculationStatus.NONE:
            logger.debug("%s loop over '%s' finished with status %s", loop.kind, loop.index_name, status)

    def status_of(self, loop: LoopTerm) -> CalculationStatus:
        return self.statuses.get(loop, CalculationStatus.NONE)

    def is_content_valid(self, equation: Equation) -> bool:
        return equation.id not in self.invalid_equations

    def frame(self, equation: Equation | None = None, bindings: Mapping[str, NumericValue] | None = None) -> Frame:
        """Create the top-level frame for evaluating ``equation``."""
        return Frame(context=self, equation=equation, bindings=dict(bindings or {}))


@dataclass(frozen=True, slots=True)
class Frame:
    """Bindings visible while evaluating the terms of one equation.

    Frames are immutable: binding a loop index or calling another equation
    creates a new frame, so nested evaluations never share argument buffers.
    """

    context: EvaluationContext
    equation: Equation | None
    bindings: Mapping[str, NumericValue] = field(default_factory=dict)

    @property
    def cancelled(self) -> bool:
        return self.context.cancelled

    def bind(self, name: str, value: NumericValue) -> Frame:
        return Frame(context=self.context, equation=self.equation, bindings={**self.bindings, name: value})

    def call(self, equation: Equation, bindings: Mapping[str, NumericValue]) -> Frame:
        """Enter ``equation``; the caller's bindings are not visible inside it."""
        return Frame(context=self.context, equation=equation, bindings=dict(bindings))

    def lookup(self, name: str) -> NumericValue | None:
        return self.bindings.get(name)
