"""Topological scheduling of the output node's input closure."""

from __future__ import annotations

import weakref
from graphlib import CycleError, TopologicalSorter
from typing import TYPE_CHECKING

from .exceptions import CycleDetected, UnknownNode

if TYPE_CHECKING:
    from .graph import Graph, NodeId

__all__ = ["Scheduler", "evaluation_order"]


def evaluation_order(graph: "Graph", output: "NodeId") -> list["NodeId"]:
    """Return dependencies-first order over the transitive inputs of ``output``.

    Nodes outside the closure are never visited, so cycles elsewhere in the
    graph are tolerated.

    Raises
    ------
    CycleDetected
        If the closure contains a cycle; ``cycle`` lists its nodes.
    """
    if graph.node(output) is None:
        raise UnknownNode(output)

    edges: dict["NodeId", list["NodeId"]] = {}
    stack = [output]
    while stack:
        node_id = stack.pop()
        if node_id in edges:
            continue
        deps = graph.upstream_nodes(node_id)
        edges[node_id] = deps
        stack.extend(reversed(deps))
    try:
        return list(TopologicalSorter(edges).static_order())
    except CycleError as exc:
        # graphlib reports the cycle closed (first == last)
        cycle = list(exc.args[1])[:-1]
        raise CycleDetected(cycle) from None


class Scheduler:
    """Memoizes evaluation orders per output node against the topology version.

    Memoized orders belong to the last graph scheduled; asking for another
    graph's order drops them.
    """

    def __init__(self) -> None:
        self._memo: dict["NodeId", tuple[int, tuple["NodeId", ...]]] = {}
        self._owner: weakref.ref[Graph] | None = None
        self.traversals = 0

    def order(self, graph: "Graph", output: "NodeId") -> list["NodeId"]:
        owner = self._owner() if self._owner is not None else None
        if owner is not graph:
            self._memo.clear()
            self._owner = weakref.ref(graph)
        memo = self._memo.get(output)
        if memo is not None and memo[0] == graph.topology_version:
            return list(memo[1])
        self.traversals += 1
        order = evaluation_order(graph, output)
        self._memo[output] = (graph.topology_version, tuple(order))
        return order

    def clear(self) -> None:
        self._memo.clear()
