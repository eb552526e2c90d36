"""Type definitions for the MagicaVoxel VOX format."""
from dataclasses import dataclass
from enum import Enum, IntEnum
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

Vector3 = Tuple[int, int, int]
# (x, y, z, w)
Quaternion = Tuple[float, float, float, float]
Dictionary = Dict[str, str]

IDENTITY_ROTATION: Quaternion = (0.0, 0.0, 0.0, 1.0)

# Stored voxel id that marks an empty cell
AIR_ID = 255


class FormatError(ValueError):
    """Raised when a VOX stream is malformed or truncated."""


class WarningKind(Enum):
    """Non-fatal conditions reported while decoding."""
    VERSION_MISMATCH = "version_mismatch"
    UNSUPPORTED_SHAPE_FANOUT = "unsupported_shape_fanout"


@dataclass(frozen=True)
class VoxWarning:
    """Warning collected on a decoded document."""
    kind: WarningKind
    message: str

    def __str__(self) -> str:
        return self.message


class MaterialType(IntEnum):
    """Material kinds understood by the mesher and exporter."""
    DIFFUSE = 0
    METAL = 1
    GLASS = 2
    EMISSION = 3


@dataclass(frozen=True)
class MaterialData:
    """Resolved material parameters for one palette entry."""
    material_type: MaterialType = MaterialType.DIFFUSE
    emission: float = 0.0
    intensity: float = 0.0
    transparency: float = 0.0
    smoothness: float = 0.0
    metallic: float = 0.0


STANDARD_MATERIAL = MaterialData()


@dataclass(frozen=True, eq=False)
class Voxel:
    """A single voxel cell.

    Air cells compare equal to each other whatever material they carry.
    """
    id: int
    material_type: Optional[MaterialType] = None

    @property
    def is_air(self) -> bool:
        return self.id == AIR_ID

    def __eq__(self, other) -> bool:
        if not isinstance(other, Voxel):
            return NotImplemented
        if self.is_air or other.is_air:
            return self.is_air and other.is_air
        return self.id == other.id and self.material_type == other.material_type

    def __hash__(self) -> int:
        if self.is_air:
            return hash(AIR_ID)
        return hash((self.id, self.material_type))


AIR = Voxel(AIR_ID)


@dataclass(frozen=True)
class ChunkHeader:
    """VOX chunk header: tag plus content and children byte lengths."""
    tag: str
    content_length: int
    children_length: int
    # Stream position of the first content byte
    content_start: int = 0

    @property
    def content_end(self) -> int:
        return self.content_start + self.content_length

    @property
    def end(self) -> int:
        return self.content_end + self.children_length


@dataclass(frozen=True)
class MainChunk:
    header: ChunkHeader


@dataclass(frozen=True)
class SizeChunk:
    """Model extents, already reordered to (x, y, z)."""
    size: Vector3


@dataclass(frozen=True)
class ModelChunk:
    """Dense voxel ids for one model (255 = air)."""
    voxel_count: int
    voxels: np.ndarray


@dataclass(frozen=True)
class PaletteChunk:
    colors: List[Tuple[int, int, int, int]]


@dataclass(frozen=True)
class MaterialChunk:
    id: int
    properties: Dictionary
    material: MaterialData


@dataclass(frozen=True)
class TransformNode:
    """nTRN scene node."""
    id: int
    attributes: Dictionary
    child_id: int
    layer_id: int
    frames: List[Dictionary]
    translation: Optional[Vector3] = None
    rotation: Optional[Quaternion] = None

    @property
    def name(self) -> Optional[str]:
        return self.attributes.get("_name")


@dataclass(frozen=True)
class GroupNode:
    """nGRP scene node."""
    id: int
    attributes: Dictionary
    children_ids: List[int]


@dataclass(frozen=True)
class ShapeNode:
    """nSHP scene node."""
    id: int
    attributes: Dictionary
    models: List[Tuple[int, Dictionary]]


@dataclass(frozen=True)
class LayerChunk:
    id: int
    attributes: Dictionary


@dataclass(frozen=True)
class IgnoredChunk:
    """A chunk kind that is recognised but not interpreted."""
    tag: str


SceneNode = Union[TransformNode, GroupNode, ShapeNode]
Chunk = Union[
    MainChunk,
    SizeChunk,
    ModelChunk,
    PaletteChunk,
    MaterialChunk,
    TransformNode,
    GroupNode,
    ShapeNode,
    LayerChunk,
    IgnoredChunk,
]


@dataclass
class ModelPlacement:
    """Flattened position/rotation of one model in the scene."""
    position: Vector3 = (0, 0, 0)
    rotation: Quaternion = IDENTITY_ROTATION
    model_id: int = -1  # -1 until a shape node resolves it
    name: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.model_id >= 0


@dataclass
class ImportSettings:
    """Options controlling mesh generation and export."""
    voxels_per_unit: int = 10
    optimize_mesh: bool = True
    generate_palette_always: bool = False
    palette_override: Optional[Path] = None

    def __post_init__(self):
        if self.voxels_per_unit <= 0:
            raise ValueError(f"voxels_per_unit must be positive, got {self.voxels_per_unit}")
        if self.palette_override is not None:
            self.palette_override = Path(self.palette_override)

    @property
    def voxel_scale(self) -> float:
        return 1.0 / self.voxels_per_unit

    @property
    def writes_palette(self) -> bool:
        """Whether the decoded palette should be written next to the model."""
        return self.generate_palette_always or self.palette_override is None
