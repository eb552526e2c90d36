"""Tests for the greedy voxel mesher."""
import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from vox_extractor.greedy_mesher import DIFFUSE_SUBMESH, MeshData, VoxelGreedyMesher, VoxelVolume
from vox_extractor.vox_rotation import decode_rotation
from vox_extractor.vox_types import AIR_ID, MaterialType, Voxel

AXES = {(1.0, 0.0, 0.0), (-1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, -1.0, 0.0), (0.0, 0.0, 1.0), (0.0, 0.0, -1.0)}


def make_volume(size, voxels, materials=None):
    """voxels: {(x, y, z): id}; materials: {id: MaterialType}."""
    materials = materials or {}
    ids = np.full(size, AIR_ID, dtype=np.uint8)
    for (x, y, z), voxel_id in voxels.items():
        ids[x, y, z] = voxel_id
    return VoxelVolume.from_ids(ids, lambda voxel_id: materials.get(voxel_id, MaterialType.DIFFUSE))


def cube_volume(n, voxel_id=0):
    return make_volume((n, n, n), {(x, y, z): voxel_id for x in range(n) for y in range(n) for z in range(n)})


def sub(a, b):
    return tuple(p - q for p, q in zip(a, b))


def cross(a, b):
    return (a[1] * b[2] - a[2] * b[1], a[2] * b[0] - a[0] * b[2], a[0] * b[1] - a[1] * b[0])


def total_area(mesh):
    area = 0.0
    for q in range(mesh.quad_count):
        v = mesh.vertices[q * 4:q * 4 + 4]
        area += sum(abs(c) for c in cross(sub(v[1], v[0]), sub(v[3], v[0])))
    return area


@pytest.mark.parametrize("n", [1, 2, 3])
def test_cube_without_merging(n):
    mesh = VoxelGreedyMesher(cube_volume(n)).build_mesh_data(greedy_mesh=False)

    assert mesh.quad_count == 6 * n * n
    assert total_area(mesh) == pytest.approx(6 * n * n)
    assert len(mesh.submeshes[DIFFUSE_SUBMESH]) == 6 * 6 * n * n


@pytest.mark.parametrize("n", [1, 2, 3])
def test_cube_with_merging(n):
    mesh = VoxelGreedyMesher(cube_volume(n)).build_mesh_data(greedy_mesh=True)

    assert mesh.quad_count == 6
    assert total_area(mesh) == pytest.approx(6 * n * n)


def test_l_shape_merging():
    """Merged quads must cover exactly the visible faces."""
    volume = make_volume((2, 2, 1), {(0, 0, 0): 3, (1, 0, 0): 3, (0, 1, 0): 3})
    mesh = VoxelGreedyMesher(volume).build_mesh_data()

    assert mesh.quad_count == 10
    assert total_area(mesh) == pytest.approx(14)


def test_merge_checks_whole_column():
    """A column with a gap must not be merged with a full neighbour column."""
    voxels = {(x, 0, z): 1 for x in range(2) for z in range(3)}
    del voxels[(1, 0, 1)]
    volume = make_volume((2, 1, 3), voxels)
    mesh = VoxelGreedyMesher(volume).build_mesh_data()

    assert total_area(mesh) == pytest.approx(VoxelGreedyMesher(volume).build_mesh_data(greedy_mesh=False).quad_count)


def test_opaque_neighbours_hide_shared_face():
    """Different opaque voxels touching produce no internal faces."""
    volume = make_volume((2, 1, 1), {(0, 0, 0): 1, (1, 0, 0): 2})
    mesh = VoxelGreedyMesher(volume).build_mesh_data(greedy_mesh=False)

    assert mesh.quad_count == 10


def test_glass_boundary_shows_face_behind_glass():
    """Opaque voxel next to glass shows its face; the glass does not."""
    volume = make_volume((2, 1, 1), {(0, 0, 0): 1, (1, 0, 0): 2}, {2: MaterialType.GLASS})
    mesh = VoxelGreedyMesher(volume).build_mesh_data(greedy_mesh=False)

    assert mesh.quad_count == 11
    assert mesh.get_material_ids() == [DIFFUSE_SUBMESH, 2]
    assert len(mesh.submeshes[DIFFUSE_SUBMESH]) == 6 * 6
    assert len(mesh.submeshes[2]) == 5 * 6


def test_different_glass_shows_both_faces():
    volume = make_volume((2, 1, 1), {(0, 0, 0): 1, (1, 0, 0): 2}, {1: MaterialType.GLASS, 2: MaterialType.GLASS})
    mesh = VoxelGreedyMesher(volume).build_mesh_data(greedy_mesh=False)

    assert mesh.quad_count == 12


def test_same_glass_merges():
    volume = make_volume((2, 1, 1), {(0, 0, 0): 1, (1, 0, 0): 1}, {1: MaterialType.GLASS})
    mesh = VoxelGreedyMesher(volume).build_mesh_data(greedy_mesh=False)

    assert mesh.quad_count == 10


def test_empty_volume():
    mesh = VoxelGreedyMesher(make_volume((3, 3, 3), {})).build_mesh_data()

    assert mesh.is_empty
    assert mesh.submeshes == {DIFFUSE_SUBMESH: []}


def test_zero_extent():
    volume = VoxelVolume.from_ids(np.zeros((0, 2, 2), dtype=np.uint8), lambda voxel_id: MaterialType.DIFFUSE)
    mesh = VoxelGreedyMesher(volume).build_mesh_data()

    assert mesh.is_empty


def test_diffuse_bucket_always_present():
    volume = make_volume((1, 1, 1), {(0, 0, 0): 0}, {0: MaterialType.METAL})
    mesh = VoxelGreedyMesher(volume).build_mesh_data()

    assert mesh.submeshes[DIFFUSE_SUBMESH] == []
    assert len(mesh.submeshes[0]) == 36


def test_buffers_stay_parallel():
    mesh = VoxelGreedyMesher(cube_volume(2)).build_mesh_data(greedy_mesh=False)

    assert len(mesh.vertices) == len(mesh.normals) == len(mesh.uvs)
    indices = [i for triangles in mesh.submeshes.values() for i in triangles]
    assert len(indices) % 3 == 0
    assert max(indices) < len(mesh.vertices)


def test_normals_and_winding_face_outwards():
    mesh = VoxelGreedyMesher(cube_volume(2)).build_mesh_data()

    assert set(mesh.normals) == AXES
    triangles = mesh.submeshes[DIFFUSE_SUBMESH]
    for i in range(0, len(triangles), 3):
        a, b, c = (mesh.vertices[j] for j in triangles[i:i + 3])
        face = cross(sub(b, a), sub(c, a))
        normal = mesh.normals[triangles[i]]
        assert sum(f * n for f, n in zip(face, normal)) > 0


def test_uv_addresses_palette_column():
    mesh = VoxelGreedyMesher(make_volume((1, 1, 1), {(0, 0, 0): 4})).build_mesh_data()

    assert set(mesh.uvs) == {(4.5 / 256, 0.5)}


def test_pivot_and_scale():
    """Vertices are centred on size // 2 and scaled last."""
    mesh = VoxelGreedyMesher(cube_volume(2)).build_mesh_data(voxel_scale=0.5)

    xs = [v[0] for v in mesh.vertices]
    assert min(xs) == pytest.approx(-0.5)
    assert max(xs) == pytest.approx(0.5)


def test_offset_added_before_scale():
    mesh = VoxelGreedyMesher(cube_volume(1)).build_mesh_data(voxel_scale=2.0, offset=(0, 5, 0))

    ys = [v[1] for v in mesh.vertices]
    assert min(ys) == pytest.approx(10)
    assert max(ys) == pytest.approx(12)


def test_rotation_turns_geometry_and_normals():
    volume = make_volume((2, 1, 1), {(0, 0, 0): 0, (1, 0, 0): 0})
    plain = VoxelGreedyMesher(volume).build_mesh_data()
    turned = VoxelGreedyMesher(volume).build_mesh_data(rotation=decode_rotation(17))

    plain_extent = max(v[0] for v in plain.vertices) - min(v[0] for v in plain.vertices)
    turned_extent = max(v[2] for v in turned.vertices) - min(v[2] for v in turned.vertices)
    assert plain_extent == pytest.approx(2)
    assert turned_extent == pytest.approx(2)
    for normal in turned.normals:
        assert sorted(abs(round(c, 6)) for c in normal) == [0, 0, 1]


def test_volume_reads_outside_are_air():
    volume = cube_volume(1, voxel_id=7)

    assert volume.get(0, 0, 0) == Voxel(7, MaterialType.DIFFUSE)
    assert volume.get(-1, 0, 0).is_air
    assert volume.get(1, 0, 0).is_air
    assert volume.voxel_count == 1


def test_volume_shape_mismatch():
    with pytest.raises(ValueError):
        VoxelVolume(np.zeros((1, 1, 1), dtype=np.uint8), np.zeros((1, 1, 2), dtype=np.int8))


def test_air_voxels_compare_equal():
    assert Voxel(AIR_ID, MaterialType.GLASS) == Voxel(AIR_ID)
    assert Voxel(1, MaterialType.GLASS) != Voxel(1, MaterialType.DIFFUSE)


def test_needs_32bit_indices():
    mesh = MeshData(vertices=[(0.0, 0.0, 0.0)] * 65536)
    assert mesh.needs_32bit_indices
    assert not MeshData().needs_32bit_indices


def test_voxel_id_zero_keeps_own_submesh():
    """Diffuse faces use key -1, so a metal voxel with id 0 is not merged into them."""
    volume = make_volume((2, 1, 1), {(0, 0, 0): 0, (1, 0, 0): 5}, {0: MaterialType.METAL})
    mesh = VoxelGreedyMesher(volume).build_mesh_data(greedy_mesh=False)

    assert DIFFUSE_SUBMESH == -1
    assert mesh.get_material_ids() == [DIFFUSE_SUBMESH, 0]
    assert len(mesh.submeshes[0]) == 5 * 6
    assert len(mesh.submeshes[DIFFUSE_SUBMESH]) == 5 * 6
