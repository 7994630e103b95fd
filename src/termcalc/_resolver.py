"""Resolution of equation links by name and argument count."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum, auto
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ._document import Document, Equation

logger = logging.getLogger(__name__)


class ResolutionStatus(StrEnum):
    RESOLVED = auto()
    UNKNOWN = auto()
    RECURSIVE = auto()  # the only eligible match is the requesting equation itself


@dataclass(frozen=True, slots=True)
class LinkResolution:
    """Outcome of resolving a link.

    Attributes:
        status: RESOLVED, UNKNOWN or RECURSIVE.
        equation: The matched equation (also set for RECURSIVE).

    """

    status: ResolutionStatus
    equation: Equation | None = None

    @property
    def resolved(self) -> Equation | None:
        return self.equation if self.status == ResolutionStatus.RESOLVED else None


_UNKNOWN = LinkResolution(ResolutionStatus.UNKNOWN)

type _CacheKey = tuple[int | None, str, int, bool]


class LinkResolver:
    """Finds the equation a link refers to.

    An equation is visible from a requester when it precedes the requester in
    document order; the requester itself is visible unless ``exclude_root`` is
    set, which lets callers detect self-recursion. When the document allows
    redefinition the last visible match wins. Otherwise only the first match in
    the whole document is eligible, so a name has a single definition.

    Results are a derived value of ``(requester, name, arity, exclude_root)``
    and the document version: the cache is dropped as soon as the document
    changes.
    """

    def __init__(self, document: Document) -> None:
        self.document = document
        self._cache: dict[_CacheKey, LinkResolution] = {}
        self._cache_version = document.version

    def _check_version(self) -> None:
        if self._cache_version != self.document.version:
            logger.debug(
                "Document '%s' changed (version %d -> %d), dropping link cache",
                self.document.name,
                self._cache_version,
                self.document.version,
            )
            self._cache.clear()
            self._cache_version = self.document.version

    def resolve(
        self,
        name: str,
        arg_count: int,
        requester: Equation | None = None,
        *,
        exclude_root: bool = False,
    ) -> LinkResolution:
        """Resolve ``name`` with ``arg_count`` arguments as seen from ``requester``.

        Args:
            name: The linked equation name.
            arg_count: Number of arguments, or ``ARG_NUMBER_ANY`` / ``ARG_NUMBER_INTERVAL``.
            requester: The equation containing the link; None sees the whole document.
            exclude_root: Skip the requester itself instead of reporting recursion.

        Returns:
            The resolution result.

        """
        self._check_version()
        key = (None if requester is None else requester.id, name, arg_count, exclude_root)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        result = self._search(name, arg_count, requester, exclude_root=exclude_root)
        self._cache[key] = result
        logger.debug("Resolved %s/%d from %r: %s", name, arg_count, requester, result.status)
        return result

    def _search(
        self,
        name: str,
        arg_count: int,
        requester: Equation | None,
        *,
        exclude_root: bool,
    ) -> LinkResolution:
        equations = self.document.equations
        if requester is None or requester not in self.document:
            visible_end = len(equations)
        else:
            visible_end = self.document.index_of(requester) + (0 if exclude_root else 1)

        matches = [
            (position, equation)
            for position, equation in enumerate(equations)
            if equation.name == name and equation.matches(arg_count)
        ]
        if exclude_root and requester is not None:
            matches = [(position, equation) for position, equation in matches if equation is not requester]
        if not matches:
            return _UNKNOWN

        if self.document.settings.redefine_allowed:
            visible = [(position, equation) for position, equation in matches if position < visible_end]
            if not visible:
                return _UNKNOWN
            _, found = visible[-1]
        else:
            position, found = matches[0]
            if position >= visible_end:
                return _UNKNOWN

        if found is requester:
            return LinkResolution(ResolutionStatus.RECURSIVE, found)
        return LinkResolution(ResolutionStatus.RESOLVED, found)

    def search_linked_equation(
        self,
        name: str,
        arg_count: int,
        requester: Equation | None = None,
        *,
        exclude_root: bool = True,
    ) -> Equation | None:
        """Return the resolved equation or None (recursion counts as unresolved)."""
        return self.resolve(name, arg_count, requester, exclude_root=exclude_root).resolved
