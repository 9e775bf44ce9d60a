"""Incremental dataflow evaluation for procedural mesh graphs."""

from .cache import EvalCache
from .config import Config
from .engine import Engine, evaluate
from .exceptions import (
    ComputeFailed,
    CycleDetected,
    GraphoError,
    InvalidParameter,
    InvalidParameterValue,
    MissingRequiredInput,
    NodeError,
    StructuralError,
    TypeMismatch,
    UpstreamError,
)
from .graph import Graph, Link, Node, NodeId, PinRef
from .logger import console, logger
from .mesh import Aabb, Mesh
from .nodes import builtin_registry
from .project import Project, graph_from_dict, graph_to_dict
from .registry import NodeType, NodeTypeRegistry
from .report import EvalReport, NodeReport, NodeState
from .reporters import RichReporter
from .scene import SceneSnapshot
from .scheduler import Scheduler
from .types import InputPin, OutputPin, PinType

__all__ = [
    "Aabb",
    "ComputeFailed",
    "Config",
    "CycleDetected",
    "Engine",
    "EvalCache",
    "EvalReport",
    "Graph",
    "GraphoError",
    "InputPin",
    "InvalidParameter",
    "InvalidParameterValue",
    "Link",
    "Mesh",
    "MissingRequiredInput",
    "Node",
    "NodeError",
    "NodeId",
    "NodeReport",
    "NodeState",
    "NodeType",
    "NodeTypeRegistry",
    "OutputPin",
    "PinRef",
    "PinType",
    "Project",
    "RichReporter",
    "SceneSnapshot",
    "Scheduler",
    "StructuralError",
    "TypeMismatch",
    "UpstreamError",
    "builtin_registry",
    "console",
    "evaluate",
    "graph_from_dict",
    "graph_to_dict",
    "logger",
]
