"""Decoded MagicaVoxel VOX document.

VOX layout:
- "VOX " magic, int32 version (150 is the supported version)
- MAIN chunk with no content; its children are every other chunk
- SIZE/XYZI pairs, one per model, in model order
- optional RGBA palette and MATL materials
- scene graph nodes (nTRN, nGRP, nSHP) plus layers and render settings
"""
from pathlib import Path
from typing import BinaryIO, List, Optional, Sequence, Union

from .greedy_mesher import MeshData, VoxelGreedyMesher, VoxelVolume
from .vox_chunks import DecodeContext, read_chunk
from .vox_palette import DEFAULT_PALETTE, Color
from .vox_reader import ChunkReader
from .vox_rotation import IDENTITY
from .vox_scene import ROOT_NODE_ID, SceneResolver
from .vox_types import (
    FormatError,
    GroupNode,
    LayerChunk,
    MainChunk,
    MaterialChunk,
    MaterialData,
    ModelChunk,
    ModelPlacement,
    PaletteChunk,
    Quaternion,
    SceneNode,
    ShapeNode,
    SizeChunk,
    STANDARD_MATERIAL,
    TransformNode,
    Vector3,
    VoxWarning,
    WarningKind,
)

FILE_TYPE_HEADER = "VOX "
SUPPORTED_FILE_VERSION = 150


class VoxFile:
    """A fully decoded VOX file.

    Use VoxFile.open() or VoxFile.from_stream(); the whole stream is
    decoded up front and the result is not modified afterwards.

    The scene graph is flattened during decoding, so self.warnings holds
    every warning (version and shape fan-out) once construction returns.
    """

    def __init__(self):
        self.version = 0
        self.warnings: List[VoxWarning] = []
        self._models: List[ModelChunk] = []
        self._sizes: List[SizeChunk] = []
        self._palette: Optional[PaletteChunk] = None
        self._materials: List[MaterialChunk] = []
        self._scene_nodes: List[SceneNode] = []
        self._layers: List[LayerChunk] = []
        self._model_tree: Optional[List[ModelPlacement]] = None

    @classmethod
    def open(cls, file_path: Union[str, Path]) -> "VoxFile":
        """Decode a VOX file from disk."""
        with open(file_path, "rb") as f:
            return cls.from_stream(f)

    @classmethod
    def from_bytes(cls, data: bytes) -> "VoxFile":
        return cls.from_reader(ChunkReader.from_bytes(data))

    @classmethod
    def from_stream(cls, stream: BinaryIO) -> "VoxFile":
        """Decode a VOX file from a binary stream.

        Raises:
            FormatError: If the header, the first chunk or any chunk tag
                is invalid, the stream is truncated, or the scene graph
                cannot be resolved
        """
        return cls.from_reader(ChunkReader(stream))

    @classmethod
    def from_reader(cls, reader: ChunkReader) -> "VoxFile":
        vox = cls()
        vox._decode(reader)
        return vox

    def _decode(self, reader: ChunkReader):
        magic, self.version = reader.read_file_header()
        if magic != FILE_TYPE_HEADER:
            raise FormatError(f"Invalid VOX magic: {magic!r}")

        if self.version > SUPPORTED_FILE_VERSION:
            self.warnings.append(VoxWarning(
                kind=WarningKind.VERSION_MISMATCH,
                message=(
                    f"VOX version {self.version} is newer than supported version "
                    f"{SUPPORTED_FILE_VERSION}; the model may not import correctly"
                ),
            ))

        context = DecodeContext()
        main = read_chunk(reader, context)
        if not isinstance(main, MainChunk):
            raise FormatError("Malformed VOX file: the first chunk must be MAIN")

        while reader.position < main.header.end:
            self._add_chunk(read_chunk(reader, context))

        if reader.position > main.header.end:
            raise FormatError(
                f"Chunks overrun the MAIN chunk by {reader.position - main.header.end} bytes"
            )

        # Resolve the scene now so broken graphs fail here and fan-out
        # warnings are present as soon as decoding returns
        self.calculate_model_tree()

    def _add_chunk(self, chunk):
        if isinstance(chunk, SizeChunk):
            self._sizes.append(chunk)
        elif isinstance(chunk, ModelChunk):
            self._models.append(chunk)
        elif isinstance(chunk, PaletteChunk):
            self._palette = chunk
        elif isinstance(chunk, MaterialChunk):
            self._materials.append(chunk)
        elif isinstance(chunk, (TransformNode, GroupNode, ShapeNode)):
            self._scene_nodes.append(chunk)
        elif isinstance(chunk, LayerChunk):
            self._layers.append(chunk)
        elif isinstance(chunk, MainChunk):
            raise FormatError("MAIN chunk may only appear once, at the start of the file")
        # IgnoredChunk: nothing to keep

    @property
    def model_count(self) -> int:
        return len(self._models)

    @property
    def palette(self) -> List[Color]:
        """256 colors indexed by voxel id; the default palette if the file has none."""
        if self._palette is None:
            return list(DEFAULT_PALETTE)
        return list(self._palette.colors)

    @property
    def has_palette(self) -> bool:
        return self._palette is not None

    @property
    def scene_nodes(self) -> List[SceneNode]:
        return list(self._scene_nodes)

    @property
    def layers(self) -> List[LayerChunk]:
        return list(self._layers)

    def get_size(self, model_index: int) -> Vector3:
        return self._sizes[model_index].size

    def get_material(self, material_id: int) -> MaterialData:
        """Material for a voxel id.

        Materials are addressed by the order they appear in the file.

        Returns:
            The material, or a diffuse material with zero parameters when
            the file does not define one for this id
        """
        if 0 <= material_id < len(self._materials):
            return self._materials[material_id].material
        return STANDARD_MATERIAL

    def get_voxels(self, model_index: int) -> VoxelVolume:
        """Dense voxel volume for one model.

        Raises:
            IndexError: If model_index is out of range
        """
        if not 0 <= model_index < self.model_count:
            raise IndexError(f"Model {model_index} out of range (file has {self.model_count})")
        return VoxelVolume.from_ids(
            self._models[model_index].voxels,
            lambda voxel_id: self.get_material(voxel_id).material_type,
        )

    def calculate_model_tree(self) -> List[ModelPlacement]:
        """Flatten the scene graph.

        The first placement is the scene origin; every other one belongs
        to a group child. The tree is computed once, while decoding, and
        its shape fan-out warnings are added to self.warnings then.

        Returns:
            A new list of placements on every call
        """
        if self._model_tree is None:
            resolver = SceneResolver(self._scene_nodes)
            self._model_tree = resolver.flatten(ROOT_NODE_ID)
            self.warnings.extend(resolver.warnings)
        return [
            ModelPlacement(
                position=placement.position,
                rotation=placement.rotation,
                model_id=placement.model_id,
                name=placement.name,
            )
            for placement in self._model_tree
        ]

    def build_mesh(
        self,
        model_index: int,
        voxel_scale: float = 1.0,
        greedy_mesh: bool = True,
        offset: Sequence[int] = (0, 0, 0),
        rotation: Quaternion = IDENTITY,
    ) -> MeshData:
        """Mesh one model; see VoxelGreedyMesher.build_mesh_data."""
        mesher = VoxelGreedyMesher(self.get_voxels(model_index))
        return mesher.build_mesh_data(voxel_scale, greedy_mesh, offset, rotation)

    def get_info(self) -> dict:
        """Summary of the decoded file for display."""
        return {
            "version": self.version,
            "model_count": self.model_count,
            "sizes": [self.get_size(i) for i in range(self.model_count)],
            "materials": len(self._materials),
            "scene_nodes": len(self._scene_nodes),
            "has_palette": self.has_palette,
        }
