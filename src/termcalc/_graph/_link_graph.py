"""Links between the equations of a document."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ._algorithms import find_cycle, topological_sort

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


@dataclass(frozen=True, slots=True)
class LinkGraph:
    """Immutable graph of the links registered by validation.

    Nodes are equation ids. An equation *links to* the equations its terms
    refer to; it is a *dependent* of each of them:

    - ``links_of(b) == {a}`` means "b refers to a"
    - ``dependents_of(a) == {b}`` means "a change of a requires revalidating b"

    Node order follows insertion order (document order when built by the
    validation pass), which keeps ``calculation_order`` stable.

    Attributes:
        _links: Mapping from equation id to the ids it links to.
        _dependents: Mapping from equation id to the ids linking to it.

    """

    _links: dict[int, frozenset[int]] = field(default_factory=dict)
    _dependents: dict[int, frozenset[int]] = field(default_factory=dict)

    @classmethod
    def from_links(cls, links: Mapping[int, Iterable[int]]) -> LinkGraph:
        """Build a graph from ``{equation_id: ids it links to}``.

        Targets that are not keys of ``links`` are added as nodes as well.

        Example:
            >>> graph = LinkGraph.from_links({1: [], 2: [1], 3: [1, 2]})
            >>> sorted(graph.dependents_of(1))
            [2, 3]

        """
        forward: dict[int, set[int]] = {}
        backward: dict[int, set[int]] = {}
        for node, targets in links.items():
            forward.setdefault(node, set())
            backward.setdefault(node, set())
            for target in targets:
                forward[node].add(target)
                forward.setdefault(target, set())
                backward.setdefault(target, set()).add(node)
        return cls(
            _links={k: frozenset(v) for k, v in forward.items()},
            _dependents={k: frozenset(v) for k, v in backward.items()},
        )

    @property
    def nodes(self) -> tuple[int, ...]:
        return tuple(self._links)

    def links_of(self, node: int) -> frozenset[int]:
        """Ids the equation refers to directly."""
        return self._links.get(node, frozenset())

    def dependents_of(self, node: int) -> frozenset[int]:
        """Ids of the equations referring to ``node`` directly."""
        return self._dependents.get(node, frozenset())

    def all_links(self, node: int) -> frozenset[int]:
        return self._closure(node, self._links)

    def all_dependents(self, node: int) -> frozenset[int]:
        """Ids of every equation that needs revalidation when ``node`` changes."""
        return self._closure(node, self._dependents)

    @staticmethod
    def _closure(node: int, edges: Mapping[int, frozenset[int]]) -> frozenset[int]:
        visited: set[int] = set()
        stack = list(edges.get(node, ()))
        while stack:
            current = stack.pop()
            if current not in visited:
                visited.add(current)
                stack.extend(edges.get(current, ()))
        return frozenset(visited)

    def _ordered_dependents(self) -> dict[int, list[int]]:
        order = {node: position for position, node in enumerate(self._links)}
        return {
            node: sorted(self._dependents.get(node, ()), key=order.__getitem__)
            for node in self._links
        }

    def calculation_order(self, nodes: Iterable[int] | None = None) -> list[int]:
        """Return ids with every link target before the equations referring to it.

        Args:
            nodes: Restrict the result to these ids (and keep their relative order).

        Raises:
            ValueError: If the links form a cycle.

        """
        order = topological_sort(self._ordered_dependents())
        if nodes is None:
            return order
        wanted = set(nodes)
        return [node for node in order if node in wanted]

    def find_cycle(self) -> list[int] | None:
        return find_cycle(self._ordered_dependents())

    def __len__(self) -> int:
        return len(self._links)

    def __contains__(self, node: object) -> bool:
        return node in self._links
