"""Pin types, pin declarations and parameter values."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

import numpy as np

__all__ = [
    "PinType",
    "PinKind",
    "InputPin",
    "OutputPin",
    "Vec2",
    "Vec3",
    "ParamValue",
    "normalize_param",
]

Vec2 = tuple[float, float]
Vec3 = tuple[float, float, float]
ParamValue = Union[bool, int, float, str, Vec2, Vec3]


class PinKind(str, Enum):
    INPUT = "input"
    OUTPUT = "output"


class PinType(str, Enum):
    """Closed set of value types carried by pins."""

    MESH = "Mesh"
    FLOAT = "Float"
    INT = "Int"
    BOOL = "Bool"
    VEC2 = "Vec2"
    VEC3 = "Vec3"

    def accepts(self, source: "PinType") -> bool:
        """Return True if an output of ``source`` type may feed this input."""
        if source is self:
            return True
        return (source, self) in _WIDENING

    def coerce(self, value: Any) -> Any:
        """Widen ``value`` to this pin's type; identity for matching types."""
        if self is PinType.FLOAT and isinstance(value, (bool, int)):
            return float(value)
        if self is PinType.INT and isinstance(value, bool):
            return int(value)
        return value

    def check(self, value: Any) -> bool:
        """Return True if ``value`` is a valid payload for this pin type."""
        if self is PinType.MESH:
            from .mesh import Mesh

            return isinstance(value, Mesh)
        if self is PinType.BOOL:
            return isinstance(value, (bool, np.bool_))
        if self is PinType.INT:
            return isinstance(value, (int, np.integer)) and not isinstance(value, bool)
        if self is PinType.FLOAT:
            return isinstance(value, (int, float, np.number)) and not isinstance(value, bool)
        width = 2 if self is PinType.VEC2 else 3
        return isinstance(value, (tuple, list, np.ndarray)) and len(value) == width

    def __str__(self) -> str:
        return self.value


# numeric widening only
_WIDENING = frozenset(
    {
        (PinType.BOOL, PinType.INT),
        (PinType.BOOL, PinType.FLOAT),
        (PinType.INT, PinType.FLOAT),
    }
)


@dataclass(frozen=True)
class InputPin:
    """Declared input of a node type."""

    name: str
    type: PinType
    optional: bool = False


@dataclass(frozen=True)
class OutputPin:
    """Declared output of a node type."""

    name: str
    type: PinType


def normalize_param(value: Any) -> ParamValue:
    """Return ``value`` in its canonical parameter form.

    Lists become tuples of floats so that parameters loaded from YAML or JSON
    compare equal to the ones written in code.
    """
    if isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (list, tuple)):
        if len(value) not in (2, 3):
            raise ValueError(f"vector parameter must have 2 or 3 components, got {len(value)}")
        return tuple(float(v) for v in value)  # type: ignore[return-value]
    if isinstance(value, np.ndarray):
        return normalize_param(value.tolist())
    if isinstance(value, np.generic):
        return value.item()
    raise TypeError(f"unsupported parameter value {value!r} of type {type(value).__name__}")
