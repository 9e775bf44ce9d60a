"""Version-based dirty tracking."""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple, TYPE_CHECKING

if TYPE_CHECKING:
    from .cache import CacheEntry
    from .graph import Graph, NodeId, PinRef

__all__ = [
    "DirtyReason",
    "DirtyTracker",
    "Fingerprint",
    "InputStamp",
    "UNCONNECTED",
    "MISSING",
    "INVALID_VERSION",
]


class InputStamp(NamedTuple):
    """What fed one input pin: the source pin and the version of its outputs."""

    source: "PinRef | None"
    version: int


# absent optional input: fixed, so it never dirties the node on its own
UNCONNECTED = InputStamp(None, 0)
# absent required input: the node fails with MissingRequiredInput
MISSING = InputStamp(None, -1)
# source failed during this run
INVALID_VERSION = -2


class Fingerprint(NamedTuple):
    param_version: int
    inputs: tuple[InputStamp, ...]


class DirtyReason(str, Enum):
    NEW = "new"
    PARAMS = "params"
    INPUTS = "inputs"


def dirty_reason(entry: "CacheEntry | None", fingerprint: Fingerprint) -> DirtyReason | None:
    """Explain why ``entry`` does not serve ``fingerprint``; None if it does."""
    if entry is None:
        return DirtyReason.NEW
    if entry.fingerprint == fingerprint:
        return None
    if entry.fingerprint.param_version != fingerprint.param_version:
        return DirtyReason.PARAMS
    return DirtyReason.INPUTS


class DirtyTracker:
    """Per-run record of the output versions produced so far.

    Nodes are visited in evaluation order, so every source a node reads from
    has already been recorded, either with the version of its cache entry
    (clean) or with the fresh version assigned on recomputation (dirty). A
    recomputed upstream therefore changes the stamps of its consumers, which
    is how dirtiness propagates downstream without re-deriving it.
    """

    def __init__(self, graph: "Graph"):
        self.graph = graph
        self._versions: dict["NodeId", int] = {}

    def fingerprint(self, node_id: "NodeId") -> Fingerprint:
        node = self.graph.node(node_id)
        assert node is not None
        stamps: list[InputStamp] = []
        for decl, source in zip(node.type.inputs, self.graph.input_sources(node_id)):
            if source is None:
                stamps.append(UNCONNECTED if decl.optional else MISSING)
            else:
                stamps.append(InputStamp(source, self._versions.get(source.node, INVALID_VERSION)))
        return Fingerprint(node.param_version, tuple(stamps))

    def record(self, node_id: "NodeId", version: int) -> None:
        self._versions[node_id] = version

    def record_invalid(self, node_id: "NodeId") -> None:
        self._versions[node_id] = INVALID_VERSION

    def version(self, node_id: "NodeId") -> int | None:
        return self._versions.get(node_id)
