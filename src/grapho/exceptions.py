"""Custom exception hierarchy for the grapho engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .graph import NodeId
    from .report import EvalReport


class GraphoError(Exception):
    """Base class for all grapho exceptions."""
    pass


class ConfigurationError(GraphoError):
    """Raised when there is an issue with configuration parsing or structure."""
    pass


class ProjectError(GraphoError):
    """Raised when a serialized graph cannot be loaded."""
    pass


# ----------------------------------------------------------------------
# structural errors: rejected at the graph boundary, graph left unchanged
# ----------------------------------------------------------------------
class StructuralError(GraphoError):
    """Raised when a graph mutation would break a structural invariant."""
    pass


class UnknownNode(StructuralError):
    def __init__(self, node: "NodeId"):
        super().__init__(f"unknown node {node}")
        self.node = node


class UnknownPin(StructuralError):
    def __init__(self, node: "NodeId", pin: Any, direction: str):
        super().__init__(f"node {node} has no {direction} pin {pin!r}")
        self.node = node
        self.pin = pin
        self.direction = direction


class UnknownParameter(StructuralError):
    def __init__(self, owner: Any, key: str):
        super().__init__(f"{owner} has no parameter {key!r}")
        self.owner = owner
        self.key = key


class InvalidParameterValue(StructuralError):
    def __init__(self, owner: Any, key: str, value: Any, reason: str = ""):
        message = f"invalid value {value!r} for parameter {key!r} of {owner}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.owner = owner
        self.key = key
        self.value = value


class UnknownNodeType(StructuralError):
    def __init__(self, type_name: str):
        super().__init__(f"unknown node type {type_name!r}")
        self.type_name = type_name


class InvalidLink(StructuralError):
    """Raised when a link does not go from an output pin to an input pin."""
    pass


class TypeMismatch(StructuralError):
    def __init__(self, source_type: Any, target_type: Any):
        super().__init__(f"cannot link {source_type} output to {target_type} input")
        self.source_type = source_type
        self.target_type = target_type


class InputAlreadyConnected(StructuralError):
    def __init__(self, pin: Any):
        super().__init__(f"input {pin} already has an incoming link")
        self.pin = pin


class NoOutputNode(StructuralError):
    """Raised when no output node is designated and none can be found."""
    pass


class AmbiguousOutput(StructuralError):
    def __init__(self, candidates: list["NodeId"]):
        super().__init__(
            f"multiple Output nodes found ({len(candidates)}); only one is supported"
        )
        self.candidates = candidates


class CycleDetected(GraphoError):
    """Raised when the output's input closure contains a cycle.

    ``cycle`` lists the node ids on the cycle in traversal order.
    """

    def __init__(self, cycle: list["NodeId"]):
        super().__init__("cycle detected: " + " -> ".join(str(n) for n in cycle))
        self.cycle = cycle


# ----------------------------------------------------------------------
# node errors: local to one node, recorded in the report
# ----------------------------------------------------------------------
class NodeError(GraphoError):
    """Base class for failures of a single node's computation.

    Compute functions raise these; the executor records them as values and
    evaluation continues with unrelated branches.
    """

    def __init__(self, message: str, *, node: "NodeId | None" = None):
        super().__init__(message)
        self.message = message
        self.node = node


class InvalidParameter(NodeError):
    """A parameter value is out of its declared range or shape."""
    pass


class MissingRequiredInput(NodeError):
    """A non-optional input pin has no resolved value."""
    pass


class ComputeFailed(NodeError):
    """An internal invariant was violated during computation."""
    pass


class UpstreamError(NodeError):
    """A consumed output belongs to a node that failed.

    ``origin`` is the node that failed first, so chains of poisoned nodes all
    point back to the same place.
    """

    def __init__(self, origin: "NodeId", *, node: "NodeId | None" = None):
        super().__init__(f"upstream node {origin} failed", node=node)
        self.origin = origin


# ----------------------------------------------------------------------
# evaluation lifecycle
# ----------------------------------------------------------------------
class GraphBusy(GraphoError):
    """Raised when mutating a graph while an evaluation is reading it."""
    pass


class EvaluationInProgress(GraphoError):
    """Raised on a re-entrant evaluation of the same output node."""
    pass


class EvaluationCancelled(GraphoError):
    """Raised when the caller abandons an evaluation between node steps."""

    def __init__(self, report: "EvalReport"):
        super().__init__(f"evaluation cancelled after {len(report.entries)} nodes")
        self.report = report


class CacheBindingError(GraphoError):
    """Raised when an evaluation cache is used with a graph it does not belong to."""
    pass
