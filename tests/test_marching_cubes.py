import numpy as np
import pytest

from medconvert.errors import ShapeMismatch
from medconvert.mesh import Mesh, build_class_masks, build_raw_threshold_mask, extract_isosurface


def test_empty_volume_gives_empty_mesh():
    mesh = extract_isosurface(np.zeros((3, 4, 5), dtype=np.float32))
    assert mesh.is_empty
    assert mesh.triangle_count == 0
    assert mesh.uvs is None


def test_volume_too_thin_for_cubes():
    assert extract_isosurface(np.ones((1, 4, 4))).is_empty


def test_requires_3d_volume():
    with pytest.raises(ShapeMismatch):
        extract_isosurface(np.zeros((4, 4)))


def test_single_corner_cuts_one_triangle():
    volume = np.zeros((2, 2, 2), dtype=np.float32)
    volume[0, 0, 0] = 1.0
    mesh = extract_isosurface(volume)

    assert mesh.triangle_count == 1
    np.testing.assert_array_equal(mesh.indices, [0, 1, 2])
    # edge midpoints around corner (0, 0, 0), shifted by the center (0.5, 0.5, 0.5)
    expected = {(0.0, -0.5, -0.5), (-0.5, 0.0, -0.5), (-0.5, -0.5, 0.0)}
    assert {tuple(float(c) for c in p) for p in mesh.positions} == expected
    np.testing.assert_allclose(np.linalg.norm(mesh.normals, axis=1), 1.0, rtol=1e-5)
    assert np.all(mesh.normals == mesh.normals[0])


def test_sphere_mesh_invariants(sphere_volume):
    mesh = extract_isosurface(sphere_volume)

    assert mesh.triangle_count > 0
    assert mesh.positions.dtype == np.float32
    assert mesh.indices.dtype == np.uint32
    assert len(mesh.positions) == len(mesh.normals) == len(mesh.indices) == 3 * mesh.triangle_count
    np.testing.assert_array_equal(mesh.indices, np.arange(len(mesh.indices)))
    np.testing.assert_allclose(np.linalg.norm(mesh.normals, axis=1), 1.0, rtol=1e-5)

    # centered ball of radius 5 in a 16^3 grid
    assert np.all(mesh.bbox_min >= -7.5) and np.all(mesh.bbox_max <= 7.5)
    np.testing.assert_allclose(mesh.bbox_min, -mesh.bbox_max, atol=1e-5)
    np.testing.assert_allclose(np.abs(mesh.positions).max(), 5.0, atol=1.0)


def test_flat_normals_shared_within_triangle(sphere_volume):
    mesh = extract_isosurface(sphere_volume)
    per_triangle = mesh.normals.reshape(-1, 3, 3)
    assert np.all(per_triangle == per_triangle[:, :1, :])


def test_uvs_cover_unit_square(sphere_volume):
    mesh = extract_isosurface(sphere_volume, with_uvs=True)
    assert mesh.uvs.shape == (len(mesh.positions), 2)
    assert mesh.uvs.min() >= 0.0 and mesh.uvs.max() <= 1.0

    width = height = 16
    u = (mesh.positions[:, 0] + (width - 1) / 2) / (width - 1)
    v = 1.0 - (mesh.positions[:, 1] + (height - 1) / 2) / (height - 1)
    np.testing.assert_allclose(mesh.uvs[:, 0], u, atol=1e-6)
    np.testing.assert_allclose(mesh.uvs[:, 1], v, atol=1e-6)


def test_empty_mesh_constructor():
    mesh = Mesh.empty(with_uvs=True)
    assert mesh.is_empty
    assert mesh.uvs.shape == (0, 2)


def test_class_masks():
    annotation = np.array([0.0, 0.5, 1.0, 1.5, 2.0, -1.0], dtype=np.float32)
    yellow, red = build_class_masks(annotation)
    np.testing.assert_array_equal(yellow, [0, 0, 0, 1, 1, 0])
    np.testing.assert_array_equal(red, [0, 1, 1, 0, 0, 0])

    _, red_high = build_class_masks(annotation, threshold=0.5)
    np.testing.assert_array_equal(red_high, [0, 0, 1, 0, 0, 0])


def test_raw_threshold_mask_uses_midpoint():
    raw = np.array([0.0, 1.0, 2.0, 3.0], dtype=np.float32)
    np.testing.assert_array_equal(build_raw_threshold_mask(raw), [0, 0, 1, 1])
