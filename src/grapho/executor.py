"""Node execution with failures captured as values."""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

from pydantic import ValidationError

from .exceptions import (
    ComputeFailed,
    InvalidParameter,
    MissingRequiredInput,
    NodeError,
    UpstreamError,
)
from .logger import logger

if TYPE_CHECKING:
    from .graph import Node, NodeId

__all__ = [
    "Invalid",
    "MISSING_INPUT",
    "NodeExecutor",
    "NodeResult",
]


class Invalid:
    """Tombstone output of a failed node; carries no usable payload."""

    __slots__ = ("origin",)

    def __init__(self, origin: "NodeId"):
        self.origin = origin

    def __repr__(self) -> str:
        return f"Invalid(origin={self.origin})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Invalid) and other.origin == self.origin

    def __hash__(self) -> int:
        return hash(("Invalid", self.origin))


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING_INPUT"


MISSING_INPUT = _Missing()


@dataclass(frozen=True)
class NodeResult:
    outputs: tuple[Any, ...]
    error: NodeError | None
    duration: float

    @property
    def ok(self) -> bool:
        return self.error is None


class NodeExecutor:
    """Invoke a node's compute function with resolved inputs and parameters.

    A failure never propagates as an exception: the result carries the error
    and one :class:`Invalid` tombstone per output so that consumers can fail
    with :class:`UpstreamError` without running.
    """

    def __init__(self, *, validate: bool = True):
        self.validate = validate

    def execute(self, node: "Node", inputs: Sequence[Any]) -> NodeResult:
        start = time.perf_counter()
        error = self._precheck(node, inputs)
        if error is not None:
            return self._failed(node, error, start)

        try:
            outputs = node.type.compute(inputs, dict(node.params), validate=self.validate)
        except NodeError as exc:
            exc.node = node.id
            error = exc
        except ValidationError as exc:
            error = InvalidParameter(_validation_message(exc), node=node.id)
        except Exception as exc:
            logger.opt(exception=exc).error("node {} ({}) failed for {}", node.id, node.type.name, exc)
            error = ComputeFailed(f"{type(exc).__name__}: {exc}", node=node.id)
            return self._failed(node, error, start, log=False)
        else:
            error = self._check_outputs(node, outputs)
            if error is None:
                return NodeResult(tuple(outputs), None, time.perf_counter() - start)
        return self._failed(node, error, start)

    def _precheck(self, node: "Node", inputs: Sequence[Any]) -> NodeError | None:
        if len(inputs) != len(node.type.inputs):
            return ComputeFailed(
                f"expected {len(node.type.inputs)} inputs, got {len(inputs)}", node=node.id
            )
        for decl, value in zip(node.type.inputs, inputs):
            if value is MISSING_INPUT:
                return MissingRequiredInput(f"input {decl.name!r} is not connected", node=node.id)
        for value in inputs:
            if isinstance(value, Invalid):
                return UpstreamError(value.origin, node=node.id)
        return None

    def _check_outputs(self, node: "Node", outputs: Sequence[Any]) -> NodeError | None:
        for decl, value in zip(node.type.outputs, outputs):
            if not decl.type.check(value):
                return ComputeFailed(
                    f"output {decl.name!r} expected {decl.type}, got {type(value).__name__}",
                    node=node.id,
                )
        return None

    def _failed(
        self, node: "Node", error: NodeError, start: float, *, log: bool = True
    ) -> NodeResult:
        if isinstance(error, UpstreamError):
            origin = error.origin
            logger.debug("node {} poisoned by {}", node.id, origin)
        else:
            origin = node.id
            if log:
                logger.error("node {} ({}) failed: {}", node.id, node.type.name, error.message)
        tombstones = tuple(Invalid(origin) for _ in node.type.outputs)
        return NodeResult(tombstones, error, time.perf_counter() - start)


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg', 'invalid value')}")
    return "; ".join(parts) or str(exc)
