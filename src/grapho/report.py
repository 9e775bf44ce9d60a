"""Per-run evaluation reports."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TYPE_CHECKING

from .exceptions import GraphoError, NodeError, UpstreamError

if TYPE_CHECKING:
    from .graph import NodeId

__all__ = [
    "EvalReport",
    "NodeReport",
    "NodeState",
    "ReportBuilder",
]


class NodeState(str, Enum):
    UNVISITED = "unvisited"
    CLEAN = "clean"
    COMPUTING = "computing"
    DONE = "done"
    FAILED = "failed"


_TERMINAL = frozenset({NodeState.CLEAN, NodeState.DONE, NodeState.FAILED})


@dataclass(frozen=True)
class NodeReport:
    """Outcome of one node in one run."""

    node: "NodeId"
    type_name: str
    state: NodeState
    cache_hit: bool
    duration: float
    error: NodeError | None = None
    dirty_reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def poisoned(self) -> bool:
        """True if the node failed only because a dependency failed."""
        return isinstance(self.error, UpstreamError)

    @property
    def duration_ms(self) -> float:
        return self.duration * 1000.0


@dataclass(frozen=True)
class EvalReport:
    """Immutable record of one evaluation request.

    ``entries`` follow evaluation order. When ``error`` is set the run was
    aborted before any node executed and ``entries`` is empty.
    """

    output: "NodeId | None"
    entries: tuple[NodeReport, ...] = ()
    error: GraphoError | None = None
    total_duration: float = 0.0
    cancelled: bool = False
    _index: dict[Any, NodeReport] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._index.update({e.node: e for e in self.entries})

    def __iter__(self) -> Iterator[NodeReport]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def entry(self, node_id: "NodeId") -> NodeReport | None:
        return self._index.get(node_id)

    # --------------------------------------------------------------
    @property
    def order(self) -> list["NodeId"]:
        return [e.node for e in self.entries]

    @property
    def cache_hits(self) -> int:
        return sum(1 for e in self.entries if e.cache_hit)

    @property
    def cache_misses(self) -> int:
        return sum(1 for e in self.entries if not e.cache_hit)

    @property
    def hit_ratio(self) -> float:
        return self.cache_hits / len(self.entries) if self.entries else 0.0

    @property
    def computed(self) -> list["NodeId"]:
        """Nodes whose compute function succeeded in this run."""
        return [e.node for e in self.entries if e.state is NodeState.DONE]

    @property
    def errored(self) -> list[NodeReport]:
        return [e for e in self.entries if e.error is not None]

    @property
    def origins(self) -> list[NodeReport]:
        """Errored nodes that failed on their own."""
        return [e for e in self.errored if not e.poisoned]

    @property
    def poisoned(self) -> list[NodeReport]:
        return [e for e in self.errored if e.poisoned]

    @property
    def output_valid(self) -> bool:
        if self.error is not None or self.cancelled or self.output is None:
            return False
        entry = self.entry(self.output)
        return entry is not None and entry.state in (NodeState.CLEAN, NodeState.DONE)

    @property
    def ok(self) -> bool:
        return self.error is None and not self.cancelled and not self.errored

    def slowest(self, n: int = 1) -> list[NodeReport]:
        return sorted(self.entries, key=lambda e: e.duration, reverse=True)[:n]

    def summary(self) -> dict[str, Any]:
        return {
            "output": str(self.output) if self.output is not None else None,
            "nodes": len(self.entries),
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "computed": len(self.computed),
            "failed": len(self.errored),
            "error": str(self.error) if self.error is not None else None,
            "total_ms": self.total_duration * 1000.0,
        }


class ReportBuilder:
    """Accumulates node outcomes while enforcing the per-node state machine.

    ``UNVISITED -> CLEAN`` for cache hits and ``UNVISITED -> COMPUTING ->
    DONE | FAILED`` otherwise; a terminal state cannot change again within
    the run.
    """

    def __init__(self, output: "NodeId | None"):
        self.output = output
        self._states: dict["NodeId", NodeState] = {}
        self._entries: list[NodeReport] = []

    def state(self, node_id: "NodeId") -> NodeState:
        return self._states.get(node_id, NodeState.UNVISITED)

    def _transition(self, node_id: "NodeId", expected: NodeState, new: NodeState) -> None:
        current = self.state(node_id)
        if current is not expected:
            raise RuntimeError(f"node {node_id}: illegal transition {current.value} -> {new.value}")
        self._states[node_id] = new

    def start(self, node_id: "NodeId") -> None:
        self._transition(node_id, NodeState.UNVISITED, NodeState.COMPUTING)

    def clean(self, node_id: "NodeId", type_name: str, duration: float) -> NodeReport:
        self._transition(node_id, NodeState.UNVISITED, NodeState.CLEAN)
        return self._add(NodeReport(node_id, type_name, NodeState.CLEAN, True, duration))

    def done(
        self, node_id: "NodeId", type_name: str, duration: float, reason: str | None = None
    ) -> NodeReport:
        self._transition(node_id, NodeState.COMPUTING, NodeState.DONE)
        return self._add(
            NodeReport(node_id, type_name, NodeState.DONE, False, duration, dirty_reason=reason)
        )

    def failed(
        self,
        node_id: "NodeId",
        type_name: str,
        duration: float,
        error: NodeError,
        reason: str | None = None,
    ) -> NodeReport:
        self._transition(node_id, NodeState.COMPUTING, NodeState.FAILED)
        return self._add(
            NodeReport(node_id, type_name, NodeState.FAILED, False, duration, error, reason)
        )

    def _add(self, entry: NodeReport) -> NodeReport:
        self._entries.append(entry)
        return entry

    def build(self, total_duration: float, *, cancelled: bool = False) -> EvalReport:
        pending = [n for n, s in self._states.items() if s not in _TERMINAL]
        if pending:
            raise RuntimeError(f"nodes left without a terminal state: {pending}")
        return EvalReport(
            output=self.output,
            entries=tuple(self._entries),
            total_duration=total_duration,
            cancelled=cancelled,
        )

    def abort(self, error: GraphoError, total_duration: float = 0.0) -> EvalReport:
        """Report a run that failed before any node executed."""
        return EvalReport(output=self.output, error=error, total_duration=total_duration)
