"""Renderer-agnostic scene snapshot."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np

from .mesh import Aabb, Mesh

__all__ = ["DEFAULT_BASE_COLOR", "SceneMesh", "SceneSnapshot"]

DEFAULT_BASE_COLOR = (0.7, 0.72, 0.75)


def _frozen(arr: np.ndarray) -> np.ndarray:
    out = np.array(arr, copy=True)
    out.setflags(write=False)
    return out


@dataclass(frozen=True, eq=False)
class SceneMesh:
    """Read-only copies of the buffers a renderer needs."""

    positions: np.ndarray
    normals: np.ndarray
    indices: np.ndarray

    @classmethod
    def from_mesh(cls, mesh: Mesh) -> "SceneMesh":
        normals = mesh.normals
        if normals is None:
            normals = mesh.computed_normals()
        if normals is None:
            normals = np.tile(np.array([0.0, 1.0, 0.0], dtype=np.float32), (len(mesh), 1))
        return cls(_frozen(mesh.positions), _frozen(normals), _frozen(mesh.indices))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SceneMesh):
            return NotImplemented
        return (
            np.array_equal(self.positions, other.positions)
            and np.array_equal(self.normals, other.normals)
            and np.array_equal(self.indices, other.indices)
        )

    __hash__ = None  # type: ignore[assignment]


@dataclass(frozen=True, eq=False)
class SceneSnapshot:
    """Output of one evaluation, detached from engine state."""

    mesh: SceneMesh
    base_color: tuple[float, float, float] = DEFAULT_BASE_COLOR
    bounds: Aabb | None = None

    @classmethod
    def from_mesh(
        cls, mesh: Mesh, base_color: tuple[float, float, float] = DEFAULT_BASE_COLOR
    ) -> "SceneSnapshot":
        return cls(SceneMesh.from_mesh(mesh), tuple(base_color), mesh.bounds())  # type: ignore[arg-type]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SceneSnapshot):
            return NotImplemented
        return (
            self.mesh == other.mesh
            and self.base_color == other.base_color
            and self.bounds == other.bounds
        )

    __hash__ = None  # type: ignore[assignment]

    def to_dict(self) -> dict[str, Any]:
        return {
            "positions": self.mesh.positions.tolist(),
            "normals": self.mesh.normals.tolist(),
            "indices": self.mesh.indices.tolist(),
            "base_color": list(self.base_color),
            "bounds": None
            if self.bounds is None
            else {"min": list(self.bounds.min), "max": list(self.bounds.max)},
        }
