"""Graph store: nodes, typed pins and links."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from types import MappingProxyType
from typing import Any, NamedTuple, TYPE_CHECKING

from .exceptions import (
    GraphBusy,
    InputAlreadyConnected,
    InvalidLink,
    InvalidParameterValue,
    TypeMismatch,
    UnknownNode,
    UnknownParameter,
    UnknownPin,
)
from .types import InputPin, OutputPin, PinKind, PinType, normalize_param

if TYPE_CHECKING:
    from .config import Config
    from .registry import NodeType, NodeTypeRegistry

__all__ = [
    "Graph",
    "Link",
    "Node",
    "NodeId",
    "PinRef",
]


class NodeId(NamedTuple):
    """Generation-tagged arena index.

    A slot freed by ``remove_node`` is reused with a bumped generation, so a
    stale id never resolves to the newer node.
    """

    index: int
    generation: int = 0

    def __str__(self) -> str:
        return f"n{self.index}.{self.generation}"


class PinRef(NamedTuple):
    node: NodeId
    kind: PinKind
    index: int

    def __str__(self) -> str:
        return f"{self.node}:{self.kind.value}{self.index}"


class Link(NamedTuple):
    source: PinRef
    target: PinRef

    def __str__(self) -> str:
        return f"{self.source} -> {self.target}"


class Node:
    """A node instance owned by a :class:`Graph`.

    Parameters are read through :attr:`params`; mutate them with
    :meth:`Graph.set_param` so that ``param_version`` stays truthful.
    """

    __slots__ = ("id", "type", "_params", "param_version")

    def __init__(self, node_id: NodeId, node_type: "NodeType", params: dict[str, Any]):
        self.id = node_id
        self.type = node_type
        self._params = params
        self.param_version = 0

    @property
    def type_name(self) -> str:
        return self.type.name

    @property
    def params(self) -> Mapping[str, Any]:
        return MappingProxyType(self._params)

    def __repr__(self) -> str:
        return f"Node({self.id}, {self.type.name}, v{self.param_version})"


InvalidationCallback = Callable[[frozenset[NodeId]], None]


def _normalize(owner: Any, values: Mapping[str, Any]) -> dict[str, Any]:
    normalized = {}
    for key, value in values.items():
        try:
            normalized[key] = normalize_param(value)
        except (TypeError, ValueError) as e:
            raise InvalidParameterValue(owner, key, value, str(e)) from e
    return normalized


class Graph:
    """Mutable node graph with structural invariants.

    Every structural mutation bumps :attr:`topology_version`. Removing a node
    notifies subscribers with the removed id and all of its downstream
    dependents, which is how the evaluation cache learns about stale entries
    without the store depending on it.
    """

    def __init__(
        self,
        registry: "NodeTypeRegistry | None" = None,
        *,
        config: "Config | None" = None,
    ):
        if registry is None:
            from .nodes import builtin_registry

            registry = builtin_registry()
        self.registry = registry
        self.config = config
        self.topology_version = 0
        self.output: NodeId | None = None

        self._nodes: list[Node | None] = []
        self._generations: list[int] = []
        self._free: list[int] = []
        self._links: dict[Link, None] = {}
        self._incoming: dict[PinRef, Link] = {}
        self._outgoing: dict[PinRef, list[Link]] = {}
        self._subscribers: list[InvalidationCallback] = []
        self._lock = threading.RLock()
        self._readers = 0

    # --------------------------------------------------------------
    # read/write discipline
    # --------------------------------------------------------------
    @contextmanager
    def reading(self) -> Iterator["Graph"]:
        """Hold the graph for reading; mutations raise :class:`GraphBusy` meanwhile."""
        with self._lock:
            self._readers += 1
        try:
            yield self
        finally:
            with self._lock:
                self._readers -= 1

    @property
    def busy(self) -> bool:
        return self._readers > 0

    def _check_writable(self) -> None:
        if self._readers:
            raise GraphBusy("graph is being evaluated; mutations are not allowed")

    def subscribe(self, callback: InvalidationCallback) -> Callable[[], None]:
        """Register an invalidation callback and return an unsubscribe function.

        The returned function does not keep the graph alive.
        """
        subscribers = self._subscribers
        subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in subscribers:
                subscribers.remove(callback)

        return unsubscribe

    def _notify(self, ids: frozenset[NodeId]) -> None:
        for callback in list(self._subscribers):
            callback(ids)

    # --------------------------------------------------------------
    # nodes
    # --------------------------------------------------------------
    def add_node(
        self, node_type: "str | NodeType", params: Mapping[str, Any] | None = None
    ) -> NodeId:
        """Add a node of ``node_type`` and return its id.

        Parameters start from the type's declared defaults, then the
        configuration's defaults for the type, then ``params``.
        """
        if isinstance(node_type, str):
            node_type = self.registry.get(node_type)
        values = dict(node_type.defaults)
        if self.config is not None:
            values.update(self.config.defaults(node_type.name))
        values.update(params or {})
        unknown = set(values) - set(node_type.defaults)
        if unknown:
            raise UnknownParameter(node_type.name, sorted(unknown)[0])
        values = _normalize(node_type.name, values)

        with self._lock:
            self._check_writable()
            if self._free:
                index = self._free.pop()
                node_id = NodeId(index, self._generations[index])
                self._nodes[index] = Node(node_id, node_type, values)
            else:
                node_id = NodeId(len(self._nodes), 0)
                self._nodes.append(Node(node_id, node_type, values))
                self._generations.append(0)
            self.topology_version += 1
        return node_id

    def remove_node(self, node_id: NodeId) -> None:
        """Remove a node, its links, and notify invalidation subscribers."""
        with self._lock:
            self._check_writable()
            self._require(node_id)
            affected = frozenset({node_id, *self.downstream_nodes(node_id)})
            for link in [
                lk for lk in self._links if lk.source.node == node_id or lk.target.node == node_id
            ]:
                self._drop_link(link)
            index = node_id.index
            self._nodes[index] = None
            self._generations[index] += 1
            self._free.append(index)
            if self.output == node_id:
                self.output = None
            self.topology_version += 1
        self._notify(affected)

    def node(self, node_id: NodeId) -> Node | None:
        """Return the node for ``node_id`` or None if it does not exist."""
        index, generation = node_id
        if 0 <= index < len(self._nodes) and self._generations[index] == generation:
            return self._nodes[index]
        return None

    def _require(self, node_id: NodeId) -> Node:
        node = self.node(node_id)
        if node is None:
            raise UnknownNode(node_id)
        return node

    def __contains__(self, node_id: object) -> bool:
        return isinstance(node_id, NodeId) and self.node(node_id) is not None

    def __len__(self) -> int:
        return len(self._nodes) - len(self._free)

    def nodes(self) -> Iterator[Node]:
        """Iterate live nodes in arena order."""
        for node in self._nodes:
            if node is not None:
                yield node

    def nodes_of_type(self, type_name: str) -> list[NodeId]:
        return [n.id for n in self.nodes() if n.type.name == type_name]

    # --------------------------------------------------------------
    # parameters
    # --------------------------------------------------------------
    def set_param(self, node_id: NodeId, key: str, value: Any) -> None:
        """Set one parameter and bump the node's ``param_version``.

        Setting a value equal to the current one still bumps the version.
        """
        self.set_params(node_id, {key: value})

    def set_params(self, node_id: NodeId, values: Mapping[str, Any]) -> None:
        """Set several parameters as a single mutation."""
        with self._lock:
            self._check_writable()
            node = self._require(node_id)
            for key in values:
                if key not in node.type.defaults:
                    raise UnknownParameter(node_id, key)
            normalized = _normalize(node_id, values)
            node._params.update(normalized)
            node.param_version += 1

    # --------------------------------------------------------------
    # pins
    # --------------------------------------------------------------
    def inputs(self, node_id: NodeId) -> list[PinRef]:
        node = self._require(node_id)
        return [PinRef(node_id, PinKind.INPUT, i) for i in range(len(node.type.inputs))]

    def outputs(self, node_id: NodeId) -> list[PinRef]:
        node = self._require(node_id)
        return [PinRef(node_id, PinKind.OUTPUT, i) for i in range(len(node.type.outputs))]

    def input_pin(self, node_id: NodeId, pin: str | int = 0) -> PinRef:
        return self._pin(node_id, PinKind.INPUT, pin)

    def output_pin(self, node_id: NodeId, pin: str | int = 0) -> PinRef:
        return self._pin(node_id, PinKind.OUTPUT, pin)

    def _pin(self, node_id: NodeId, kind: PinKind, pin: str | int) -> PinRef:
        node = self._require(node_id)
        decls = node.type.inputs if kind is PinKind.INPUT else node.type.outputs
        if isinstance(pin, str):
            for i, decl in enumerate(decls):
                if decl.name == pin:
                    return PinRef(node_id, kind, i)
        elif 0 <= pin < len(decls):
            return PinRef(node_id, kind, pin)
        raise UnknownPin(node_id, pin, kind.value)

    def pin_decl(self, ref: PinRef) -> InputPin | OutputPin:
        """Return the declaration of ``ref``; raises if node or pin is unknown."""
        node = self._require(ref.node)
        decls = node.type.inputs if ref.kind is PinKind.INPUT else node.type.outputs
        if not 0 <= ref.index < len(decls):
            raise UnknownPin(ref.node, ref.index, ref.kind.value)
        return decls[ref.index]

    def pin_type(self, ref: PinRef) -> PinType:
        return self.pin_decl(ref).type

    # --------------------------------------------------------------
    # links
    # --------------------------------------------------------------
    def add_link(self, source: PinRef, target: PinRef) -> Link:
        """Connect an output pin to an input pin.

        Raises
        ------
        TypeMismatch
            If the output type cannot feed the input type.
        InputAlreadyConnected
            If ``target`` already has an incoming link.
        """
        with self._lock:
            self._check_writable()
            if source.kind is not PinKind.OUTPUT or target.kind is not PinKind.INPUT:
                raise InvalidLink(f"links go from an output to an input, got {source} -> {target}")
            source_type = self.pin_type(source)
            target_type = self.pin_type(target)
            if not target_type.accepts(source_type):
                raise TypeMismatch(source_type, target_type)
            if target in self._incoming:
                raise InputAlreadyConnected(target)
            link = Link(source, target)
            self._links[link] = None
            self._incoming[target] = link
            self._outgoing.setdefault(source, []).append(link)
            self.topology_version += 1
            return link

    def connect(
        self,
        source: NodeId,
        target: NodeId,
        source_pin: str | int = 0,
        target_pin: str | int = 0,
    ) -> Link:
        """Shorthand for ``add_link(output_pin(source), input_pin(target))``."""
        return self.add_link(self.output_pin(source, source_pin), self.input_pin(target, target_pin))

    def remove_link(self, link: Link) -> None:
        with self._lock:
            self._check_writable()
            if link not in self._links:
                raise InvalidLink(f"no such link {link}")
            self._drop_link(link)
            self.topology_version += 1

    def remove_link_between(self, source: PinRef, target: PinRef) -> bool:
        """Remove the link ``source -> target`` if present; return whether one was removed."""
        link = Link(source, target)
        if link not in self._links:
            return False
        self.remove_link(link)
        return True

    def remove_links_for_pin(self, pin: PinRef) -> int:
        """Remove every link touching ``pin`` and return how many were removed."""
        with self._lock:
            self._check_writable()
            self.pin_decl(pin)
            if pin.kind is PinKind.INPUT:
                doomed = [self._incoming[pin]] if pin in self._incoming else []
            else:
                doomed = list(self._outgoing.get(pin, ()))
            for link in doomed:
                self._drop_link(link)
            if doomed:
                self.topology_version += 1
            return len(doomed)

    def _drop_link(self, link: Link) -> None:
        del self._links[link]
        del self._incoming[link.target]
        outgoing = self._outgoing[link.source]
        outgoing.remove(link)
        if not outgoing:
            del self._outgoing[link.source]

    def links(self) -> list[Link]:
        return list(self._links)

    def incoming(self, pin: PinRef) -> Link | None:
        return self._incoming.get(pin)

    def outgoing(self, pin: PinRef) -> list[Link]:
        return list(self._outgoing.get(pin, ()))

    def input_sources(self, node_id: NodeId) -> list[PinRef | None]:
        """Return the source pin feeding each input of ``node_id`` (None if unlinked)."""
        sources: list[PinRef | None] = []
        for pin in self.inputs(node_id):
            link = self._incoming.get(pin)
            sources.append(link.source if link is not None else None)
        return sources

    def upstream_nodes(self, node_id: NodeId) -> list[NodeId]:
        """Direct dependencies in input-pin order, without duplicates."""
        seen: dict[NodeId, None] = {}
        for source in self.input_sources(node_id):
            if source is not None:
                seen.setdefault(source.node, None)
        return list(seen)

    def downstream_nodes(self, node_id: NodeId) -> list[NodeId]:
        """All transitive consumers of ``node_id``'s outputs (excluding itself)."""
        self._require(node_id)
        result: dict[NodeId, None] = {}
        stack = [node_id]
        while stack:
            current = stack.pop()
            for pin in self.outputs(current):
                for link in self._outgoing.get(pin, ()):
                    consumer = link.target.node
                    if consumer != node_id and consumer not in result:
                        result[consumer] = None
                        stack.append(consumer)
        return list(result)

    # --------------------------------------------------------------
    # designated output
    # --------------------------------------------------------------
    def set_output(self, node_id: NodeId | None) -> None:
        with self._lock:
            self._check_writable()
            if node_id is not None:
                self._require(node_id)
            self.output = node_id
