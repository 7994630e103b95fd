"""Equation link graph.

This module contains:
- LinkGraph: immutable graph of links between equations, keyed by equation id
- topological_sort: ordering of nodes so that link targets come first
- find_cycle: one cycle of a graph, for error reporting
"""

from ._algorithms import find_cycle, topological_sort
from ._link_graph import LinkGraph

__all__ = ["LinkGraph", "find_cycle", "topological_sort"]
