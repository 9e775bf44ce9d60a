"""Built-in geometry node catalog."""

from __future__ import annotations

from typing import Annotated

import numpy as np
from pydantic import Field

from .exceptions import ComputeFailed, InvalidParameter
from .mesh import Mesh, make_box, make_grid, trs_matrix
from .registry import NodeTypeRegistry
from .types import InputPin, OutputPin, PinType

__all__ = ["builtin_registry", "demo_graph", "MAX_DIVISIONS"]

# guardrail against pathological grid sizes
MAX_DIVISIONS = 1024

Extent = Annotated[float, Field(ge=0.0)]
Division = Annotated[float, Field(ge=1.0, le=MAX_DIVISIONS)]
Vec3 = tuple[float, float, float]

MESH_IN = InputPin("in", PinType.MESH)
MESH_OUT = OutputPin("out", PinType.MESH)


def box(*, size: tuple[Extent, Extent, Extent] = (1.0, 1.0, 1.0)) -> Mesh:
    return make_box(size).with_normals()


def grid(
    *,
    size: tuple[Extent, Extent] = (2.0, 2.0),
    divisions: tuple[Division, Division] = (10.0, 10.0),
) -> Mesh:
    # checked even when argument validation is disabled
    if not all(1 <= d <= MAX_DIVISIONS for d in divisions):
        raise InvalidParameter(
            f"divisions must be between 1 and {MAX_DIVISIONS}, got {tuple(divisions)}"
        )
    return make_grid(size, (int(divisions[0]), int(divisions[1]))).with_normals()


def transform(
    mesh: Mesh,
    /,
    *,
    translate: Vec3 = (0.0, 0.0, 0.0),
    rotate_deg: Vec3 = (0.0, 0.0, 0.0),
    scale: Vec3 = (1.0, 1.0, 1.0),
) -> Mesh:
    matrix = trs_matrix(translate, rotate_deg, scale)
    try:
        return mesh.transformed(matrix)
    except np.linalg.LinAlgError as exc:
        raise ComputeFailed(f"degenerate transform (scale={scale})") from exc


def merge(a: Mesh | None, b: Mesh | None, /) -> Mesh:
    meshes = [m for m in (a, b) if m is not None]
    if not meshes:
        raise ComputeFailed("Merge requires at least one mesh input")
    return Mesh.merge(meshes)


def output(mesh: Mesh, /) -> Mesh:
    return mesh


def builtin_registry() -> NodeTypeRegistry:
    """Return a fresh registry holding the built-in node types."""
    reg = NodeTypeRegistry()
    reg.define("Box", outputs=[MESH_OUT], category="Sources")(box)
    reg.define("Grid", outputs=[MESH_OUT], category="Sources")(grid)
    reg.define("Transform", inputs=[MESH_IN], outputs=[MESH_OUT])(transform)
    reg.define(
        "Merge",
        inputs=[
            InputPin("a", PinType.MESH, optional=True),
            InputPin("b", PinType.MESH, optional=True),
        ],
        outputs=[MESH_OUT],
    )(merge)
    reg.define("Output", inputs=[MESH_IN], outputs=[MESH_OUT], category="Outputs")(output)
    return reg


def demo_graph(graph):
    """Populate ``graph`` with ``Box -> Transform -> Output`` and return the node ids."""
    box_id = graph.add_node("Box")
    transform_id = graph.add_node("Transform")
    output_id = graph.add_node("Output")
    graph.connect(box_id, transform_id)
    graph.connect(transform_id, output_id)
    graph.set_output(output_id)
    return box_id, transform_id, output_id
