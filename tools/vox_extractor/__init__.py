"""MagicaVoxel VOX Extractor Package."""
from .gltf_exporter import VoxGLTFExporter
from .greedy_mesher import DIFFUSE_SUBMESH, MeshData, VoxelGreedyMesher, VoxelVolume
from .vox_file import VoxFile
from .vox_types import FormatError, ImportSettings, MaterialData, MaterialType, ModelPlacement, VoxWarning

__all__ = [
    "VoxFile",
    "VoxGLTFExporter",
    "VoxelGreedyMesher",
    "VoxelVolume",
    "MeshData",
    "DIFFUSE_SUBMESH",
    "FormatError",
    "ImportSettings",
    "MaterialData",
    "MaterialType",
    "ModelPlacement",
    "VoxWarning",
]
