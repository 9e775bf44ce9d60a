"""Triangle mesh payload exchanged between geometry nodes."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np

__all__ = [
    "Aabb",
    "Mesh",
    "make_box",
    "make_grid",
    "trs_matrix",
]

_UP = np.array([0.0, 1.0, 0.0], dtype=np.float32)


@dataclass(frozen=True)
class Aabb:
    """Axis-aligned bounding box."""

    min: tuple[float, float, float]
    max: tuple[float, float, float]

    @property
    def size(self) -> tuple[float, float, float]:
        return tuple(hi - lo for lo, hi in zip(self.min, self.max))  # type: ignore[return-value]

    @property
    def center(self) -> tuple[float, float, float]:
        return tuple((lo + hi) * 0.5 for lo, hi in zip(self.min, self.max))  # type: ignore[return-value]


def _as_positions(data) -> np.ndarray:
    arr = np.asarray(data, dtype=np.float32)
    if arr.size == 0:
        return np.zeros((0, 3), dtype=np.float32)
    return arr.reshape(-1, 3)


@dataclass(eq=False)
class Mesh:
    """Indexed triangle mesh.

    Operations never modify a mesh in place: nodes receive meshes straight
    from the evaluation cache, so every operation returns a new instance.
    """

    positions: np.ndarray = field(default_factory=lambda: np.zeros((0, 3), np.float32))
    indices: np.ndarray = field(default_factory=lambda: np.zeros(0, np.uint32))
    normals: np.ndarray | None = None
    uvs: np.ndarray | None = None

    def __post_init__(self) -> None:
        self.positions = _as_positions(self.positions)
        self.indices = np.asarray(self.indices, dtype=np.uint32).reshape(-1)
        if self.normals is not None:
            self.normals = _as_positions(self.normals)
        if self.uvs is not None:
            self.uvs = np.asarray(self.uvs, dtype=np.float32).reshape(-1, 2)

    def __len__(self) -> int:
        return len(self.positions)

    @property
    def triangle_count(self) -> int:
        return len(self.indices) // 3

    @property
    def nbytes(self) -> int:
        """Total size of the mesh buffers in bytes."""
        total = self.positions.nbytes + self.indices.nbytes
        if self.normals is not None:
            total += self.normals.nbytes
        if self.uvs is not None:
            total += self.uvs.nbytes
        return total

    def copy(self) -> "Mesh":
        return Mesh(
            self.positions.copy(),
            self.indices.copy(),
            None if self.normals is None else self.normals.copy(),
            None if self.uvs is None else self.uvs.copy(),
        )

    def bounds(self) -> Aabb | None:
        """Return the bounding box, or None for an empty mesh."""
        if len(self.positions) == 0:
            return None
        lo = self.positions.min(axis=0)
        hi = self.positions.max(axis=0)
        return Aabb(
            tuple(float(v) for v in lo),  # type: ignore[arg-type]
            tuple(float(v) for v in hi),  # type: ignore[arg-type]
        )

    def computed_normals(self) -> np.ndarray | None:
        """Return area-weighted vertex normals, or None if not computable.

        Triangles referencing out-of-range vertices are skipped; vertices
        touched by no valid triangle get ``(0, 1, 0)``.
        """
        if len(self.indices) % 3 != 0 or len(self.positions) == 0:
            return None
        n = len(self.positions)
        tris = self.indices.reshape(-1, 3).astype(np.int64)
        tris = tris[(tris < n).all(axis=1)]
        accum = np.zeros((n, 3), dtype=np.float64)
        if len(tris):
            p = self.positions.astype(np.float64)
            p0, p1, p2 = p[tris[:, 0]], p[tris[:, 1]], p[tris[:, 2]]
            face = np.cross(p1 - p0, p2 - p0)
            for k in range(3):
                np.add.at(accum, tris[:, k], face)
        return _normalize_rows(accum)

    def with_normals(self) -> "Mesh":
        """Return a copy carrying vertex normals, computing them if absent."""
        if self.normals is not None:
            return self
        normals = self.computed_normals()
        if normals is None:
            return self
        return Mesh(self.positions, self.indices, normals, self.uvs)

    def transformed(self, matrix: np.ndarray) -> "Mesh":
        """Return the mesh transformed by a 4x4 affine ``matrix``.

        Normals use the inverse transpose, so a singular matrix raises
        ``numpy.linalg.LinAlgError`` when normals are present.
        """
        m = np.asarray(matrix, dtype=np.float64).reshape(4, 4)
        pos = self.positions.astype(np.float64)
        pos = pos @ m[:3, :3].T + m[:3, 3]
        normals = None
        if self.normals is not None:
            normal_matrix = np.linalg.inv(m[:3, :3]).T
            normals = _normalize_rows(self.normals.astype(np.float64) @ normal_matrix.T)
        return Mesh(pos, self.indices.copy(), normals, None if self.uvs is None else self.uvs.copy())

    @classmethod
    def merge(cls, meshes: Sequence["Mesh"]) -> "Mesh":
        """Concatenate ``meshes``, offsetting indices.

        Normals and uvs are kept only when every input carries them.
        """
        if not meshes:
            return cls()
        offsets = np.cumsum([0] + [len(m.positions) for m in meshes[:-1]])
        positions = np.concatenate([m.positions for m in meshes])
        indices = np.concatenate(
            [m.indices.astype(np.int64) + off for m, off in zip(meshes, offsets)]
        )
        normals = None
        if all(m.normals is not None for m in meshes):
            normals = np.concatenate([m.normals for m in meshes])  # type: ignore[misc]
        uvs = None
        if all(m.uvs is not None for m in meshes):
            uvs = np.concatenate([m.uvs for m in meshes])  # type: ignore[misc]
        return cls(positions, indices, normals, uvs)


def _normalize_rows(vectors: np.ndarray) -> np.ndarray:
    lengths = np.linalg.norm(vectors, axis=1)
    ok = lengths > 0
    out = np.empty(vectors.shape, dtype=np.float32)
    out[ok] = vectors[ok] / lengths[ok, None]
    out[~ok] = _UP
    return out


def make_box(size: Sequence[float] = (1.0, 1.0, 1.0)) -> Mesh:
    """Return an axis-aligned box centred on the origin (8 vertices, 12 triangles)."""
    hx, hy, hz = (float(s) * 0.5 for s in size)
    positions = [
        [-hx, -hy, -hz],
        [hx, -hy, -hz],
        [hx, hy, -hz],
        [-hx, hy, -hz],
        [-hx, -hy, hz],
        [hx, -hy, hz],
        [hx, hy, hz],
        [-hx, hy, hz],
    ]
    indices = [
        0, 2, 1, 0, 3, 2,  # -Z
        4, 5, 6, 4, 6, 7,  # +Z
        0, 1, 5, 0, 5, 4,  # -Y
        2, 3, 7, 2, 7, 6,  # +Y
        1, 2, 6, 1, 6, 5,  # +X
        3, 0, 4, 3, 4, 7,  # -X
    ]
    return Mesh(positions, indices)


def make_grid(size: Sequence[float] = (2.0, 2.0), divisions: Sequence[int] = (10, 10)) -> Mesh:
    """Return a flat grid in the XZ plane centred on the origin."""
    width = max(float(size[0]), 0.0)
    depth = max(float(size[1]), 0.0)
    div_x = max(int(divisions[0]), 1)
    div_z = max(int(divisions[1]), 1)

    xs = -width * 0.5 + np.arange(div_x + 1) * (width / div_x)
    zs = -depth * 0.5 + np.arange(div_z + 1) * (depth / div_z)
    gx, gz = np.meshgrid(xs, zs)
    positions = np.stack([gx.ravel(), np.zeros(gx.size), gz.ravel()], axis=1)

    stride = div_x + 1
    z, x = np.meshgrid(np.arange(div_z), np.arange(div_x), indexing="ij")
    i0 = (z * stride + x).ravel()
    i1 = i0 + 1
    i2 = i0 + stride
    i3 = i2 + 1
    indices = np.stack([i0, i2, i1, i1, i2, i3], axis=1).ravel()
    return Mesh(positions, indices)


def trs_matrix(
    translate: Sequence[float] = (0.0, 0.0, 0.0),
    rotate_deg: Sequence[float] = (0.0, 0.0, 0.0),
    scale: Sequence[float] = (1.0, 1.0, 1.0),
) -> np.ndarray:
    """Return ``T @ R @ S`` with ``R`` the intrinsic XYZ Euler rotation."""
    rx, ry, rz = np.radians(np.asarray(rotate_deg, dtype=np.float64))
    cx, sx = np.cos(rx), np.sin(rx)
    cy, sy = np.cos(ry), np.sin(ry)
    cz, sz = np.cos(rz), np.sin(rz)
    rot_x = np.array([[1, 0, 0], [0, cx, -sx], [0, sx, cx]])
    rot_y = np.array([[cy, 0, sy], [0, 1, 0], [-sy, 0, cy]])
    rot_z = np.array([[cz, -sz, 0], [sz, cz, 0], [0, 0, 1]])
    m = np.eye(4)
    m[:3, :3] = rot_x @ rot_y @ rot_z @ np.diag(np.asarray(scale, dtype=np.float64))
    m[:3, 3] = np.asarray(translate, dtype=np.float64)
    return m
