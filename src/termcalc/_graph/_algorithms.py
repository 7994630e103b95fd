"""Graph algorithms over successor mappings."""

from collections import deque
from collections.abc import Collection, Hashable, Mapping


def topological_sort[T: Hashable](successors: Mapping[T, Collection[T]]) -> list[T]:
    """Sort a graph so that every node comes before the nodes that depend on it.

    Nodes without pending predecessors are emitted in the iteration order of
    ``successors``, so the result is stable for an ordered mapping.

    Args:
        successors: Mapping from node to the nodes that depend on it.
            An entry ``a: [b]`` means "b depends on a".

    Returns:
        List of nodes in topological order.

    Raises:
        ValueError: If the graph contains a cycle.

    Example:
        >>> topological_sort({1: [2], 2: [3], 3: []})
        [1, 2, 3]

    """
    indegree: dict[T, int] = {}
    for node, dependents in successors.items():
        indegree.setdefault(node, 0)
        for dependent in dependents:
            indegree[dependent] = indegree.get(dependent, 0) + 1

    queue = deque(node for node, degree in indegree.items() if degree == 0)
    order: list[T] = []
    while queue:
        node = queue.popleft()
        order.append(node)
        for dependent in successors.get(node, ()):
            indegree[dependent] -= 1
            if indegree[dependent] == 0:
                queue.append(dependent)

    if len(order) != len(indegree):
        msg = "Cycle detected in graph"
        raise ValueError(msg)
    return order


def find_cycle[T: Hashable](successors: Mapping[T, Collection[T]]) -> list[T] | None:
    """Return the nodes of one cycle in path order, or None for an acyclic graph."""
    on_path: dict[T, int] = {}
    path: list[T] = []
    done: set[T] = set()

    def visit(node: T) -> list[T] | None:
        on_path[node] = len(path)
        path.append(node)
        for dependent in successors.get(node, ()):
            if dependent in on_path:
                return path[on_path[dependent] :]
            if dependent not in done:
                cycle = visit(dependent)
                if cycle is not None:
                    return cycle
        path.pop()
        del on_path[node]
        done.add(node)
        return None

    for node in successors:
        if node not in done:
            cycle = visit(node)
            if cycle is not None:
                return cycle
    return None
