"""glTF exporter for VOX model files."""
import struct
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Tuple, Union

from pygltflib import (
    GLTF2,
    Accessor,
    Asset,
    Attributes,
    Buffer,
    BufferView,
    Image,
    Material,
    Mesh,
    Node,
    PbrMetallicRoughness,
    Primitive,
    Sampler,
    Scene,
    Texture,
    TextureInfo,
)

from .greedy_mesher import DIFFUSE_SUBMESH, MeshData
from .vox_file import VoxFile
from .vox_palette import load_palette_png, palette_to_png, save_palette_png
from .vox_types import STANDARD_MATERIAL, ImportSettings, MaterialData, MaterialType, ModelPlacement

ARRAY_BUFFER = 34962
ELEMENT_ARRAY_BUFFER = 34963
FLOAT = 5126
UNSIGNED_SHORT = 5123
UNSIGNED_INT = 5125
TRIANGLES = 4
NEAREST = 9728

EMISSIVE_STRENGTH = "KHR_materials_emissive_strength"


def _compute_bounds(vertices: List[Tuple[float, float, float]]) -> Tuple[List[float], List[float]]:
    """Compute min/max bounds for vertices."""
    if not vertices:
        return [0, 0, 0], [0, 0, 0]

    min_bounds = [float("inf")] * 3
    max_bounds = [float("-inf")] * 3

    for v in vertices:
        for i in range(3):
            min_bounds[i] = min(min_bounds[i], v[i])
            max_bounds[i] = max(max_bounds[i], v[i])

    return min_bounds, max_bounds


def _to_gltf_space(v: Tuple[float, float, float]) -> Tuple[float, float, float]:
    """Left-handed Y-up (mesher output) to glTF right-handed Y-up."""
    return (v[0], v[1], -v[2])


class VoxGLTFExporter:
    """Exports VOX model data to glTF/GLB format."""

    def __init__(
        self,
        source: Union[str, Path, BinaryIO, VoxFile],
        settings: Optional[ImportSettings] = None,
        name: Optional[str] = None,
    ):
        """Initialize exporter with a VOX file path, file-like object or decoded file.

        Args:
            source: Path to VOX file, file-like object, or VoxFile
            settings: Mesh/export options; defaults to ImportSettings()
            name: Name for the root node; defaults to the file stem
        """
        self.source = source
        self.settings = settings or ImportSettings()
        if name is None:
            name = Path(source).stem if isinstance(source, (str, Path)) else "model"
        self.name = name
        self._vox: Optional[VoxFile] = source if isinstance(source, VoxFile) else None

    @property
    def vox(self) -> VoxFile:
        """The decoded VOX file, loaded on first use."""
        if self._vox is None:
            if isinstance(self.source, (str, Path)):
                self._vox = VoxFile.open(self.source)
            else:
                self.source.seek(0)
                self._vox = VoxFile.from_stream(self.source)
        return self._vox

    def export_palette(self, output_path: Union[str, Path]):
        """Write the file's palette as a 256x1 PNG."""
        save_palette_png(self.vox.palette, output_path)

    def export(self, output_path: Union[str, Path]):
        """Export VOX data to a glTF/GLB file.

        Args:
            output_path: Path for output .glb file

        Raises:
            FormatError: If the VOX file is malformed
            ValueError: If the VOX file produced no geometry
        """
        vox = self.vox
        if vox.model_count == 0:
            raise ValueError("No models found in VOX file")

        builder = _GLBBuilder(self._palette_png())
        scale = self.settings.voxel_scale
        greedy_mesh = self.settings.optimize_mesh

        model_tree = vox.calculate_model_tree()
        # Keep only the scene's vertical offset; X/Z stay centred on the model
        root_offset = (0, model_tree[0].position[1], 0)

        if vox.model_count > 1:
            placements = [p for p in model_tree[1:] if 0 <= p.model_id < vox.model_count]
            if not placements:
                placements = [ModelPlacement(model_id=i) for i in range(vox.model_count)]

            child_nodes = []
            for placement in placements:
                label = f"{self.name} ({placement.model_id})"
                mesh_data = vox.build_mesh(placement.model_id, scale, greedy_mesh, root_offset, placement.rotation)
                translation = _to_gltf_space(tuple(p * scale for p in placement.position))
                child_nodes.append(builder.add_node(Node(
                    name=placement.name or label,
                    mesh=builder.add_mesh(mesh_data, label, vox),
                    translation=list(translation),
                )))
            root = builder.add_node(Node(name=self.name, children=child_nodes))
        else:
            mesh_data = vox.build_mesh(0, scale, greedy_mesh, root_offset, model_tree[0].rotation)
            root = builder.add_node(Node(name=self.name, mesh=builder.add_mesh(mesh_data, self.name, vox)))

        if not builder.gltf.meshes:
            raise ValueError("No mesh data found in VOX file")

        builder.gltf.scenes = [Scene(nodes=[root])]
        builder.gltf.scene = 0
        builder.save(str(output_path))

    def _palette_png(self) -> bytes:
        if self.settings.palette_override is not None:
            return load_palette_png(self.settings.palette_override)
        return palette_to_png(self.vox.palette)


class _GLBBuilder:
    """Accumulates glTF objects and a single binary buffer."""

    def __init__(self, palette_png: bytes):
        self.gltf = GLTF2()
        self.gltf.asset = Asset(version="2.0", generator="VOX Extractor")
        self.data = bytearray()
        self.palette_png = palette_png
        self._palette_texture: Optional[int] = None
        self._materials: Dict[int, int] = {}

    def add_buffer_view(self, data: bytes, target: Optional[int] = None) -> int:
        offset = len(self.data)
        self.data += data
        # Pad to 4-byte alignment
        if len(self.data) % 4 != 0:
            self.data += b"\x00" * (4 - len(self.data) % 4)
        self.gltf.bufferViews.append(
            BufferView(buffer=0, byteOffset=offset, byteLength=len(data), target=target)
        )
        return len(self.gltf.bufferViews) - 1

    def add_accessor(self, accessor: Accessor) -> int:
        self.gltf.accessors.append(accessor)
        return len(self.gltf.accessors) - 1

    def add_node(self, node: Node) -> int:
        self.gltf.nodes.append(node)
        return len(self.gltf.nodes) - 1

    def add_mesh(self, mesh_data: MeshData, name: str, vox: VoxFile) -> Optional[int]:
        """Add one glTF mesh with a primitive per material submesh.

        Returns:
            Mesh index, or None if mesh_data has no faces
        """
        if mesh_data.is_empty:
            return None

        positions = [_to_gltf_space(v) for v in mesh_data.vertices]
        normals = [_to_gltf_space(n) for n in mesh_data.normals]
        count = len(positions)

        position_view = self.add_buffer_view(
            struct.pack(f"<{count * 3}f", *(c for v in positions for c in v)), ARRAY_BUFFER
        )
        normal_view = self.add_buffer_view(
            struct.pack(f"<{count * 3}f", *(c for n in normals for c in n)), ARRAY_BUFFER
        )
        uv_view = self.add_buffer_view(
            struct.pack(f"<{count * 2}f", *(c for uv in mesh_data.uvs for c in uv)), ARRAY_BUFFER
        )

        min_bounds, max_bounds = _compute_bounds(positions)
        attributes = Attributes(
            POSITION=self.add_accessor(Accessor(
                bufferView=position_view, componentType=FLOAT, count=count,
                type="VEC3", max=max_bounds, min=min_bounds,
            )),
            NORMAL=self.add_accessor(Accessor(
                bufferView=normal_view, componentType=FLOAT, count=count, type="VEC3",
            )),
            TEXCOORD_0=self.add_accessor(Accessor(
                bufferView=uv_view, componentType=FLOAT, count=count, type="VEC2",
            )),
        )

        if mesh_data.needs_32bit_indices:
            component_type, index_format = UNSIGNED_INT, "I"
        else:
            component_type, index_format = UNSIGNED_SHORT, "H"

        primitives = []
        for material_id, indices in mesh_data.submeshes.items():
            if not indices:
                continue
            # Mirroring Z flips handedness, so reverse each triangle
            flipped = []
            for i in range(0, len(indices), 3):
                a, b, c = indices[i:i + 3]
                flipped.extend((a, c, b))
            index_view = self.add_buffer_view(
                struct.pack(f"<{len(flipped)}{index_format}", *flipped), ELEMENT_ARRAY_BUFFER
            )
            primitives.append(Primitive(
                attributes=attributes,
                indices=self.add_accessor(Accessor(
                    bufferView=index_view, componentType=component_type,
                    count=len(flipped), type="SCALAR",
                )),
                material=self.get_or_create_material(material_id, vox),
                mode=TRIANGLES,
            ))

        self.gltf.meshes.append(Mesh(name=name, primitives=primitives))
        return len(self.gltf.meshes) - 1

    def palette_texture(self) -> int:
        """Index of the embedded palette texture, added on first use."""
        if self._palette_texture is None:
            view = self.add_buffer_view(self.palette_png)
            self.gltf.images.append(Image(name="Palette", bufferView=view, mimeType="image/png"))
            # Point filtering keeps neighbouring palette entries from bleeding
            self.gltf.samplers.append(Sampler(magFilter=NEAREST, minFilter=NEAREST))
            self.gltf.textures.append(Texture(
                sampler=len(self.gltf.samplers) - 1, source=len(self.gltf.images) - 1
            ))
            self._palette_texture = len(self.gltf.textures) - 1
        return self._palette_texture

    def get_or_create_material(self, material_id: int, vox: VoxFile) -> int:
        if material_id in self._materials:
            return self._materials[material_id]

        if material_id == DIFFUSE_SUBMESH:
            material_data = STANDARD_MATERIAL
        else:
            material_data = vox.get_material(material_id)
        self.gltf.materials.append(self._create_material(material_id, material_data))
        self._materials[material_id] = len(self.gltf.materials) - 1
        return self._materials[material_id]

    def _create_material(self, material_id: int, material_data: MaterialData) -> Material:
        texture = TextureInfo(index=self.palette_texture())
        material_type = material_data.material_type

        if material_type == MaterialType.EMISSION:
            material = Material(
                name=f"Emissive Material ({material_id})",
                pbrMetallicRoughness=PbrMetallicRoughness(
                    baseColorTexture=texture, metallicFactor=0.7, roughnessFactor=1.0,
                ),
                emissiveTexture=TextureInfo(index=self.palette_texture()),
                emissiveFactor=[min(material_data.intensity, 1.0)] * 3,
            )
            if material_data.intensity > 1.0:
                material.extensions = {EMISSIVE_STRENGTH: {"emissiveStrength": material_data.intensity}}
                if EMISSIVE_STRENGTH not in self.gltf.extensionsUsed:
                    self.gltf.extensionsUsed.append(EMISSIVE_STRENGTH)
            return material

        if material_type == MaterialType.GLASS:
            return Material(
                name=f"Glass Material ({material_id})",
                pbrMetallicRoughness=PbrMetallicRoughness(
                    baseColorTexture=texture,
                    baseColorFactor=[1.0, 1.0, 1.0, 1.0 - material_data.transparency],
                    metallicFactor=0.0,
                    roughnessFactor=1.0 - material_data.smoothness,
                ),
                alphaMode="BLEND",
            )

        if material_type == MaterialType.METAL:
            return Material(
                name=f"Metal Material ({material_id})",
                pbrMetallicRoughness=PbrMetallicRoughness(
                    baseColorTexture=texture,
                    metallicFactor=material_data.metallic,
                    roughnessFactor=1.0 - material_data.smoothness,
                ),
            )

        return Material(
            name="Default Material",
            pbrMetallicRoughness=PbrMetallicRoughness(
                baseColorTexture=texture, metallicFactor=0.0, roughnessFactor=1.0,
            ),
        )

    def save(self, output_path: str):
        self.gltf.buffers = [Buffer(byteLength=len(self.data))]
        self.gltf.set_binary_blob(bytes(self.data))
        self.gltf.save(output_path)
