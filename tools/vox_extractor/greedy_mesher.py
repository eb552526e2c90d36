"""Greedy surface meshing of voxel volumes.

Based on the greedy meshing approach described at
https://0fps.net/2012/06/30/meshing-in-a-minecraft-game/, working on
voxel faces instead of voxels and with support for transparent voxels:

- each of the 6 directions is swept one layer at a time, starting one
  layer before the volume and ending one layer after it
- a face is visible when its voxel is solid and the neighbour in the
  sweep direction is air, or is glass with a different identity
- visible faces with the same voxel identity are merged into rectangles
- each rectangle becomes one quad (4 vertices, 2 triangles)

Output buffers are in a left-handed, Y-up space.
"""
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Sequence, Tuple

import numpy as np

from .vox_rotation import IDENTITY, rotate_vector
from .vox_types import AIR, AIR_ID, MaterialType, Quaternion, Vector3, Voxel

# Submesh key shared by every diffuse voxel. Voxel ids are 0-254, so it
# can never clash with a per-material key.
DIFFUSE_SUBMESH = -1

# Material kind stored for air cells
AIR_KIND = -1

UINT16_MAX = 65535


@dataclass
class MeshData:
    """Vertex buffers plus triangle indices grouped by material.

    submeshes maps a key to a flat triangle index list. Every diffuse
    voxel shares the DIFFUSE_SUBMESH (-1) key rather than 0, so a
    non-diffuse voxel with id 0 keeps a submesh of its own. That key is
    always present, even when empty, and always comes first; the other
    keys are voxel ids in the order their first face was emitted.
    """
    vertices: List[Tuple[float, float, float]] = field(default_factory=list)
    normals: List[Tuple[float, float, float]] = field(default_factory=list)
    uvs: List[Tuple[float, float]] = field(default_factory=list)
    submeshes: Dict[int, List[int]] = field(default_factory=lambda: {DIFFUSE_SUBMESH: []})

    def get_triangles_for_voxel(self, voxel: Voxel) -> List[int]:
        """Index list that faces of this voxel are added to."""
        if voxel.material_type == MaterialType.DIFFUSE:
            return self.submeshes[DIFFUSE_SUBMESH]
        return self.submeshes.setdefault(voxel.id, [])

    def get_material_ids(self) -> List[int]:
        """Submesh keys in first-use order, DIFFUSE_SUBMESH first."""
        return list(self.submeshes)

    @property
    def quad_count(self) -> int:
        return len(self.vertices) // 4

    @property
    def is_empty(self) -> bool:
        return not self.vertices

    @property
    def needs_32bit_indices(self) -> bool:
        return len(self.vertices) > UINT16_MAX


class VoxelVolume:
    """Dense grid of voxel ids with their material kinds.

    Reads outside the grid return air.
    """

    def __init__(self, ids: np.ndarray, kinds: np.ndarray):
        """Initialize volume.

        Args:
            ids: uint8 array shaped (x, y, z); AIR_ID marks empty cells
            kinds: int8 array of MaterialType values, AIR_KIND for air
        """
        if ids.shape != kinds.shape or ids.ndim != 3:
            raise ValueError(f"ids {ids.shape} and kinds {kinds.shape} must be matching 3D arrays")
        self.ids = ids
        self.kinds = kinds

    @classmethod
    def from_ids(cls, ids: np.ndarray, material_type: Callable[[int], MaterialType]) -> "VoxelVolume":
        """Build a volume, resolving each voxel id's material kind."""
        lookup = np.array(
            [AIR_KIND if voxel_id == AIR_ID else int(material_type(voxel_id)) for voxel_id in range(256)],
            dtype=np.int8,
        )
        ids = np.asarray(ids, dtype=np.uint8)
        return cls(ids, lookup[ids])

    @property
    def size(self) -> Vector3:
        return tuple(int(extent) for extent in self.ids.shape)

    @property
    def voxel_count(self) -> int:
        return int(np.count_nonzero(self.ids != AIR_ID))

    def in_bounds(self, x: int, y: int, z: int) -> bool:
        size = self.ids.shape
        return 0 <= x < size[0] and 0 <= y < size[1] and 0 <= z < size[2]

    def get(self, x: int, y: int, z: int) -> Voxel:
        if not self.in_bounds(x, y, z):
            return AIR
        voxel_id = int(self.ids[x, y, z])
        if voxel_id == AIR_ID:
            return AIR
        return Voxel(voxel_id, MaterialType(int(self.kinds[x, y, z])))

    def identities(self) -> np.ndarray:
        """Per-cell identity key; equal keys mean equal voxels, air is -1."""
        keys = self.ids.astype(np.int32) * 4 + self.kinds.astype(np.int32)
        keys[self.ids == AIR_ID] = -1
        return keys


class VoxelGreedyMesher:
    """Builds MeshData from a VoxelVolume."""

    def __init__(self, volume: VoxelVolume):
        self.volume = volume
        self.grid_size = volume.size

    def build_mesh_data(
        self,
        voxel_scale: float = 1.0,
        greedy_mesh: bool = True,
        offset: Sequence[int] = (0, 0, 0),
        rotation: Quaternion = IDENTITY,
    ) -> MeshData:
        """Mesh the volume.

        Args:
            voxel_scale: Uniform scale applied last
            greedy_mesh: Merge neighbouring faces; False emits one quad per face
            offset: Added after rotation, in voxel units
            rotation: Applied around the volume's pivot (size // 2)

        Returns:
            MeshData; empty for zero-extent or all-air volumes
        """
        mesh_data = MeshData()
        if 0 in self.grid_size:
            return mesh_data

        pivot = tuple(extent // 2 for extent in self.grid_size)
        # One layer of air around the grid so boundary faces see "outside"
        identities = np.pad(self.volume.identities(), 1, constant_values=-1)
        kinds = np.pad(self.volume.kinds, 1, constant_values=AIR_KIND)

        for direction in range(6):
            is_forward = direction < 3
            plane = direction % 3
            axis1 = (plane + 1) % 3
            axis2 = (plane + 2) % 3
            step = 1 if is_forward else -1

            visible = self._visible_faces(identities, kinds, plane, step)
            # Reorder so every array is indexed [plane, axis1, axis2]
            order = (plane, axis1, axis2)
            visible = np.transpose(visible, order)[:, 1:-1, 1:-1]
            layer_identities = np.transpose(identities, order)[:, 1:-1, 1:-1]

            layers = range(visible.shape[0]) if is_forward else range(visible.shape[0] - 1, -1, -1)
            for layer in layers:
                mask = visible[layer].copy()
                if not mask.any():
                    continue
                # Padded layer index -> voxel coordinate along the plane
                position = layer - 1
                for x, y, width, height in self._merge_faces(mask, layer_identities[layer], greedy_mesh):
                    voxel = self._voxel_at(plane, axis1, axis2, position, x, y)
                    self._add_quad(
                        mesh_data, voxel, plane, axis1, axis2, is_forward,
                        position, x, y, width, height,
                        pivot, offset, rotation, voxel_scale,
                    )

        return mesh_data

    @staticmethod
    def _visible_faces(identities: np.ndarray, kinds: np.ndarray, plane: int, step: int) -> np.ndarray:
        """Face visibility for every padded cell in one direction."""
        # Cells on the padding are air and never visible, so wrap-around
        # from roll only ever lands on them
        neighbour_identities = np.roll(identities, -step, axis=plane)
        neighbour_kinds = np.roll(kinds, -step, axis=plane)

        solid = identities != -1
        neighbour_air = neighbour_identities == -1
        glass_boundary = (neighbour_kinds == MaterialType.GLASS) & (neighbour_identities != identities)
        return solid & (neighbour_air | glass_boundary)

    @staticmethod
    def _merge_faces(mask: np.ndarray, identities: np.ndarray, greedy_mesh: bool):
        """Yield (x, y, width, height) rectangles covering the mask.

        Clears the mask as rectangles are consumed.
        """
        size_x, size_y = mask.shape
        for x in range(size_x):
            y = 0
            while y < size_y:
                if not mask[x, y]:
                    y += 1
                    continue

                identity = identities[x, y]
                width = 1
                height = 1
                if greedy_mesh:
                    while (y + height < size_y
                           and mask[x, y + height]
                           and identities[x, y + height] == identity):
                        height += 1
                    while x + width < size_x:
                        column = slice(y, y + height)
                        if not (mask[x + width, column].all()
                                and (identities[x + width, column] == identity).all()):
                            break
                        width += 1

                mask[x:x + width, y:y + height] = False
                yield x, y, width, height
                y += height

    def _voxel_at(self, plane: int, axis1: int, axis2: int, position: int, x: int, y: int) -> Voxel:
        point = [0, 0, 0]
        point[plane] = position
        point[axis1] = x
        point[axis2] = y
        return self.volume.get(*point)

    @staticmethod
    def _add_quad(
        mesh_data: MeshData,
        voxel: Voxel,
        plane: int,
        axis1: int,
        axis2: int,
        is_forward: bool,
        position: int,
        x: int,
        y: int,
        width: int,
        height: int,
        pivot: Vector3,
        offset: Sequence[int],
        rotation: Quaternion,
        voxel_scale: float,
    ):
        point = [0, 0, 0]
        point[plane] = position + (1 if is_forward else 0)
        point[axis1] = x
        point[axis2] = y

        delta1 = [0, 0, 0]
        delta1[axis1] = width
        delta2 = [0, 0, 0]
        delta2[axis2] = height

        corner = tuple(point)
        corner1 = tuple(p + d for p, d in zip(point, delta1))
        corner2 = tuple(p + d for p, d in zip(point, delta2))
        corner12 = tuple(p + d1 + d2 for p, d1, d2 in zip(point, delta1, delta2))

        # Opposite directions wind the other way so both face outwards
        if is_forward:
            corners = (corner, corner1, corner12, corner2)
        else:
            corners = (corner12, corner1, corner, corner2)

        for vertex_point in corners:
            local = tuple(v - p for v, p in zip(vertex_point, pivot))
            rotated = rotate_vector(rotation, local)
            mesh_data.vertices.append(tuple((r + o) * voxel_scale for r, o in zip(rotated, offset)))

        base = len(mesh_data.vertices) - 4
        triangles = mesh_data.get_triangles_for_voxel(voxel)
        triangles.extend((base, base + 1, base + 2, base, base + 2, base + 3))

        axis_normal = [0.0, 0.0, 0.0]
        axis_normal[plane] = 1.0 if is_forward else -1.0
        normal = rotate_vector(rotation, axis_normal)
        mesh_data.normals.extend([normal] * 4)

        uv = ((voxel.id + 0.5) / 256, 0.5)
        mesh_data.uvs.extend([uv] * 4)
