import numpy as np
import pytest

from grapho.mesh import Mesh, make_box, make_grid, trs_matrix
from grapho.scene import SceneSnapshot


def test_box_shape_and_bounds():
    box = make_box((2, 4, 6))
    assert len(box) == 8
    assert box.triangle_count == 12
    bounds = box.bounds()
    assert bounds.min == (-1.0, -2.0, -3.0)
    assert bounds.max == (1.0, 2.0, 3.0)
    assert bounds.size == (2.0, 4.0, 6.0)
    assert bounds.center == (0.0, 0.0, 0.0)


def test_grid_counts():
    grid = make_grid((2, 2), (2, 3))
    assert len(grid) == 12
    assert grid.triangle_count == 12
    assert np.all(grid.positions[:, 1] == 0)
    assert int(grid.indices.max()) < len(grid)


def test_empty_mesh_has_no_bounds():
    assert Mesh().bounds() is None
    assert Mesh().nbytes == 0


def test_computed_normals_are_unit_length():
    normals = make_box().computed_normals()
    assert normals.shape == (8, 3)
    assert np.allclose(np.linalg.norm(normals, axis=1), 1.0)


def test_grid_normals_point_up():
    normals = make_grid((1, 1), (1, 1)).computed_normals()
    assert np.allclose(normals, [0.0, 1.0, 0.0])


def test_transformed_returns_new_mesh():
    box = make_box().with_normals()
    before = box.positions.copy()
    moved = box.transformed(trs_matrix(translate=(0, 1, 0), scale=(2, 2, 2)))
    assert np.array_equal(box.positions, before)
    assert moved.bounds().min == pytest.approx((-1.0, 0.0, -1.0))
    assert moved.bounds().max == pytest.approx((1.0, 2.0, 1.0))
    assert np.allclose(np.linalg.norm(moved.normals, axis=1), 1.0)


def test_rotation_about_z():
    m = trs_matrix(rotate_deg=(0, 0, 90))
    point = m @ np.array([1.0, 0.0, 0.0, 1.0])
    assert point[:3] == pytest.approx([0.0, 1.0, 0.0], abs=1e-9)


def test_singular_transform_with_normals_raises():
    box = make_box().with_normals()
    with pytest.raises(np.linalg.LinAlgError):
        box.transformed(trs_matrix(scale=(0, 1, 1)))


def test_merge_offsets_indices():
    a = make_box()
    b = make_box().transformed(trs_matrix(translate=(5, 0, 0)))
    merged = Mesh.merge([a, b])
    assert len(merged) == 16
    assert merged.triangle_count == 24
    assert int(merged.indices[36:].min()) == 8
    assert merged.normals is None


def test_snapshot_is_detached_and_read_only():
    mesh = make_box()
    snapshot = SceneSnapshot.from_mesh(mesh)
    mesh.positions[0, 0] = 99.0
    assert snapshot.mesh.positions[0, 0] != 99.0
    with pytest.raises(ValueError):
        snapshot.mesh.positions[0, 0] = 1.0
    # normals are filled in for meshes without them
    assert snapshot.mesh.normals.shape == (8, 3)


def test_snapshot_equality_and_dict():
    a = SceneSnapshot.from_mesh(make_box(), (1.0, 0.0, 0.0))
    b = SceneSnapshot.from_mesh(make_box(), (1.0, 0.0, 0.0))
    c = SceneSnapshot.from_mesh(make_box((2, 2, 2)), (1.0, 0.0, 0.0))
    assert a == b
    assert a != c
    data = a.to_dict()
    assert data["base_color"] == [1.0, 0.0, 0.0]
    assert len(data["positions"]) == 8
    assert len(data["indices"]) == 36
    assert data["bounds"] == {"min": [-0.5, -0.5, -0.5], "max": [0.5, 0.5, 0.5]}
