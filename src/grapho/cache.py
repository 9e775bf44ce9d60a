"""Evaluation cache keyed by node identity."""

from __future__ import annotations

import itertools
import sys
import threading
import weakref
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

from cachetools import LRUCache  # type: ignore[import]

from .exceptions import CacheBindingError
from .logger import logger

if TYPE_CHECKING:
    from .dirty import Fingerprint
    from .graph import Graph, NodeId

__all__ = [
    "CacheEntry",
    "CacheStats",
    "EvalCache",
    "payload_nbytes",
]


def payload_nbytes(outputs: Iterable[Any]) -> int:
    """Approximate buffer size of node outputs in bytes."""
    total = 0
    for value in outputs:
        nbytes = getattr(value, "nbytes", None)
        total += int(nbytes) if nbytes is not None else sys.getsizeof(value)
    return total


@dataclass
class CacheEntry:
    """Last successful outputs of one node.

    ``output_version`` is unique across the cache's lifetime; consumers embed
    it in their own fingerprints.
    """

    node: "NodeId"
    outputs: tuple[Any, ...]
    fingerprint: "Fingerprint"
    output_version: int
    nbytes: int
    hits: int = 0
    misses: int = 0


@dataclass(frozen=True)
class CacheStats:
    entries: int
    hits: int
    misses: int
    nbytes: int

    @property
    def hit_ratio(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


def _entry_size(entry: CacheEntry) -> int:
    # empty payloads still occupy one unit of the bound
    return max(entry.nbytes, 1)


class EvalCache:
    """Thread-safe per-graph cache of node outputs.

    Entries live as long as their node unless ``max_bytes`` is given, in which
    case least recently used entries are evicted once the payload total
    exceeds the bound. An evicted node is simply dirty on the next run.
    """

    def __init__(self, max_bytes: int | None = None):
        self.max_bytes = max_bytes
        self._store: dict["NodeId", CacheEntry] | LRUCache
        if max_bytes is None:
            self._store = {}
        else:
            self._store = LRUCache(maxsize=max_bytes, getsizeof=_entry_size)
        self._lock = threading.Lock()
        self._versions = itertools.count(1)
        self._hits = 0
        self._misses = 0
        self._owner: weakref.ref[Graph] | None = None
        self._unsubscribe = None

    # --------------------------------------------------------------
    def attach(self, graph: "Graph") -> None:
        """Bind this cache to ``graph`` and subscribe to its invalidations.

        Raises:
            CacheBindingError: If the cache already belongs to another live graph.
        """
        owner = self._owner() if self._owner is not None else None
        if owner is graph:
            return
        if owner is not None:
            raise CacheBindingError("evaluation cache is bound to a different graph")
        if self._unsubscribe is not None:
            self._unsubscribe()
        self.clear()
        self._owner = weakref.ref(graph)
        self._unsubscribe = graph.subscribe(self.invalidate_many)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._unsubscribe = None
        self._owner = None
        self.clear()

    # --------------------------------------------------------------
    def get(self, node_id: "NodeId", fingerprint: "Fingerprint") -> CacheEntry | None:
        """Return the entry for ``node_id`` if it was produced from ``fingerprint``.

        Args:
            node_id: Node identity.
            fingerprint: Fingerprint the node has in the current run.

        Returns:
            The matching entry, or None on a miss.
        """
        with self._lock:
            entry = self._store.get(node_id)
            if entry is not None and entry.fingerprint == fingerprint:
                entry.hits += 1
                self._hits += 1
                return entry
            if entry is not None:
                entry.misses += 1
            self._misses += 1
            return None

    def peek(self, node_id: "NodeId") -> CacheEntry | None:
        """Return the stored entry without touching hit/miss statistics."""
        with self._lock:
            return self._store.get(node_id)

    def put(
        self, node_id: "NodeId", outputs: Iterable[Any], fingerprint: "Fingerprint"
    ) -> CacheEntry:
        """Store freshly computed outputs and assign them a new output version.

        Args:
            node_id: Node identity.
            outputs: One value per output pin.
            fingerprint: Fingerprint the outputs were computed from.

        Returns:
            The new entry. It is returned even when it is too large to be
            retained under ``max_bytes``.
        """
        outputs = tuple(outputs)
        with self._lock:
            previous = self._store.get(node_id)
            entry = CacheEntry(
                node=node_id,
                outputs=outputs,
                fingerprint=fingerprint,
                output_version=next(self._versions),
                nbytes=payload_nbytes(outputs),
                hits=previous.hits if previous is not None else 0,
                misses=previous.misses if previous is not None else 0,
            )
            if self.max_bytes is not None and _entry_size(entry) > self.max_bytes:
                self._store.pop(node_id, None)
                logger.debug(
                    "outputs of {} ({} bytes) exceed the cache bound, not retained",
                    node_id,
                    entry.nbytes,
                )
                return entry
            self._store[node_id] = entry
            return entry

    def invalidate(self, node_id: "NodeId") -> None:
        """Drop the entry for ``node_id`` if any."""
        with self._lock:
            self._store.pop(node_id, None)

    def invalidate_many(self, node_ids: Iterable["NodeId"]) -> None:
        with self._lock:
            for node_id in node_ids:
                self._store.pop(node_id, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    # --------------------------------------------------------------
    def __contains__(self, node_id: object) -> bool:
        return node_id in self._store

    def __len__(self) -> int:
        return len(self._store)

    @property
    def nbytes(self) -> int:
        with self._lock:
            return sum(e.nbytes for e in self._store.values())

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                entries=len(self._store),
                hits=self._hits,
                misses=self._misses,
                nbytes=sum(e.nbytes for e in self._store.values()),
            )
