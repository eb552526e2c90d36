"""Decoders for every chunk kind that may appear in a VOX file.

Reference:
https://github.com/ephtracy/voxel-model/blob/master/MagicaVoxel-file-format-vox.txt
https://github.com/ephtracy/voxel-model/blob/master/MagicaVoxel-file-format-vox-extension.txt

Chunk lengths are not trusted to skip unknown data: every tag that may
legally appear is listed in CHUNK_DECODERS, and anything else is a
FormatError.
"""
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import numpy as np

from .vox_reader import ChunkReader
from .vox_rotation import decode_rotation
from .vox_types import (
    AIR_ID,
    Chunk,
    ChunkHeader,
    Dictionary,
    FormatError,
    GroupNode,
    IgnoredChunk,
    LayerChunk,
    MainChunk,
    MaterialChunk,
    MaterialData,
    MaterialType,
    ModelChunk,
    PaletteChunk,
    ShapeNode,
    SizeChunk,
    TransformNode,
    Vector3,
)

MAIN = "MAIN"
SIZE = "SIZE"
XYZI = "XYZI"
RGBA = "RGBA"
MATL = "MATL"
NTRN = "nTRN"
NGRP = "nGRP"
NSHP = "nSHP"
LAYR = "LAYR"

# Recognised so the stream can continue, never interpreted
IGNORED_TAGS = ("rOBJ", "rCAM", "NOTE", "IMAP", "PACK", "MATT")

PALETTE_SIZE = 256

MATERIAL_TYPES = {
    "_diffuse": MaterialType.DIFFUSE,
    "_metal": MaterialType.METAL,
    "_glass": MaterialType.GLASS,
    "_emit": MaterialType.EMISSION,
}


@dataclass
class DecodeContext:
    """State shared between chunk decoders while walking one file."""
    # Extents of the most recent SIZE chunk; XYZI chunks depend on it
    latest_size: Optional[Vector3] = None


ChunkDecoder = Callable[[ChunkReader, ChunkHeader, DecodeContext], Chunk]


def decode_main(reader: ChunkReader, header: ChunkHeader, context: DecodeContext) -> MainChunk:
    return MainChunk(header=header)


def decode_size(reader: ChunkReader, header: ChunkHeader, context: DecodeContext) -> SizeChunk:
    # Stored as x, z, y
    size_x = reader.read_i32()
    size_z = reader.read_i32()
    size_y = reader.read_i32()
    if min(size_x, size_y, size_z) < 0:
        raise FormatError(f"Negative model size ({size_x}, {size_z}, {size_y})")
    return SizeChunk(size=(size_x, size_y, size_z))


def decode_model(reader: ChunkReader, header: ChunkHeader, context: DecodeContext) -> ModelChunk:
    """Decode an XYZI chunk into a dense id grid.

    Color index 0 is never written (it means empty), so storing
    color_index - 1 keeps ids 0-254 for voxels and leaves 255 as air.
    That matches palettes exported with the transparent entry last.
    """
    size = context.latest_size
    if size is None:
        raise FormatError("XYZI chunk found before any SIZE chunk")

    voxel_count = reader.read_i32()
    if voxel_count < 0:
        raise FormatError(f"Negative voxel count {voxel_count}")

    voxels = np.full(size, AIR_ID, dtype=np.uint8)
    raw = np.frombuffer(reader.read_bytes(voxel_count * 4), dtype=np.uint8).reshape((voxel_count, 4))
    # x, z, y, color index
    xs = raw[:, 0].astype(np.intp)
    zs = raw[:, 1].astype(np.intp)
    ys = raw[:, 2].astype(np.intp)
    color_indices = raw[:, 3]

    outside = (xs >= size[0]) | (ys >= size[1]) | (zs >= size[2])
    if outside.any():
        first = int(np.argmax(outside))
        raise FormatError(
            f"Voxel ({xs[first]}, {zs[first]}, {ys[first]}) lies outside model size "
            f"({size[0]}, {size[2]}, {size[1]})"
        )

    voxels[xs, ys, zs] = color_indices - np.uint8(1)
    return ModelChunk(voxel_count=voxel_count, voxels=voxels)


def decode_palette(reader: ChunkReader, header: ChunkHeader, context: DecodeContext) -> PaletteChunk:
    """Decode an RGBA chunk.

    The format describes 257 slots with the first and last always clear;
    only the 256 entries a voxel byte can address are kept.
    """
    data = reader.read_bytes(PALETTE_SIZE * 4)
    colors = [tuple(data[i:i + 4]) for i in range(0, len(data), 4)]
    return PaletteChunk(colors=colors)


def _float_property(properties: Dictionary, key: str, default: float) -> float:
    if key not in properties:
        return default
    try:
        return float(properties[key])
    except ValueError:
        raise FormatError(f"Material property {key} is not a number: {properties[key]!r}")


def material_from_properties(properties: Dictionary) -> MaterialData:
    """Resolve material parameters from a MATL dictionary.

    Missing values default to 0, except smoothness which defaults to 1
    when no roughness is given.
    """
    material_type = MATERIAL_TYPES.get(properties.get("_type"), MaterialType.DIFFUSE)

    if material_type == MaterialType.EMISSION:
        return MaterialData(
            material_type=material_type,
            emission=_float_property(properties, "_emit", 0.0),
            intensity=_float_property(properties, "_flux", 0.0) / 2,
        )
    if material_type == MaterialType.GLASS:
        return MaterialData(
            material_type=material_type,
            transparency=_float_property(properties, "_alpha", 0.0),
            smoothness=1 - _float_property(properties, "_rough", 0.0),
        )
    if material_type == MaterialType.METAL:
        return MaterialData(
            material_type=material_type,
            smoothness=1 - _float_property(properties, "_rough", 0.0),
            metallic=_float_property(properties, "_metal", 0.0),
        )
    return MaterialData(material_type=material_type)


def decode_material(reader: ChunkReader, header: ChunkHeader, context: DecodeContext) -> MaterialChunk:
    material_id = reader.read_i32()
    properties = reader.read_dict()
    return MaterialChunk(
        id=material_id,
        properties=properties,
        material=material_from_properties(properties),
    )


def _parse_translation(value: str) -> Vector3:
    parts = value.split()
    try:
        x, z, y = (int(part) for part in parts)
    except ValueError:
        raise FormatError(f"Invalid translation attribute: {value!r}")
    return (x, y, z)


def _parse_rotation(value: str):
    try:
        packed = int(value)
    except ValueError:
        raise FormatError(f"Invalid rotation attribute: {value!r}")
    return decode_rotation(packed)


def decode_transform(reader: ChunkReader, header: ChunkHeader, context: DecodeContext) -> TransformNode:
    node_id = reader.read_i32()
    attributes = reader.read_dict()
    child_id = reader.read_i32()
    reader.read_i32()  # reserved, always -1
    layer_id = reader.read_i32()
    frame_count = reader.read_i32()
    frames = [reader.read_dict() for _ in range(frame_count)]

    translation = None
    rotation = None
    if frames and "_t" in frames[0]:
        translation = _parse_translation(frames[0]["_t"])
    if frames and "_r" in frames[0]:
        rotation = _parse_rotation(frames[0]["_r"])

    return TransformNode(
        id=node_id,
        attributes=attributes,
        child_id=child_id,
        layer_id=layer_id,
        frames=frames,
        translation=translation,
        rotation=rotation,
    )


def decode_group(reader: ChunkReader, header: ChunkHeader, context: DecodeContext) -> GroupNode:
    node_id = reader.read_i32()
    attributes = reader.read_dict()
    child_count = reader.read_i32()
    children_ids = [reader.read_i32() for _ in range(child_count)]
    return GroupNode(id=node_id, attributes=attributes, children_ids=children_ids)


def decode_shape(reader: ChunkReader, header: ChunkHeader, context: DecodeContext) -> ShapeNode:
    node_id = reader.read_i32()
    attributes = reader.read_dict()
    model_count = reader.read_i32()
    models = []
    for _ in range(model_count):
        model_id = reader.read_i32()
        models.append((model_id, reader.read_dict()))
    return ShapeNode(id=node_id, attributes=attributes, models=models)


def decode_layer(reader: ChunkReader, header: ChunkHeader, context: DecodeContext) -> LayerChunk:
    layer_id = reader.read_i32()
    attributes = reader.read_dict()
    reader.read_i32()  # reserved, always -1
    return LayerChunk(id=layer_id, attributes=attributes)


def decode_ignored(reader: ChunkReader, header: ChunkHeader, context: DecodeContext) -> IgnoredChunk:
    # Content is skipped by read_chunk
    return IgnoredChunk(tag=header.tag)


CHUNK_DECODERS: Dict[str, ChunkDecoder] = {
    MAIN: decode_main,
    SIZE: decode_size,
    XYZI: decode_model,
    RGBA: decode_palette,
    MATL: decode_material,
    NTRN: decode_transform,
    NGRP: decode_group,
    NSHP: decode_shape,
    LAYR: decode_layer,
}
CHUNK_DECODERS.update({tag: decode_ignored for tag in IGNORED_TAGS})


def read_chunk(reader: ChunkReader, context: DecodeContext) -> Chunk:
    """Read one chunk header and decode its content.

    Leaves the reader at the first byte after the chunk's content. For
    everything but MAIN the children bytes are consumed as well; MAIN's
    children are the rest of the file and are read by the caller.

    Raises:
        FormatError: On unknown tags, truncation, or content over-read
    """
    header = reader.read_chunk_header()
    decoder = CHUNK_DECODERS.get(header.tag)
    if decoder is None:
        raise FormatError(f"Encountered unsupported chunk type {header.tag!r} at offset {header.content_start - 12}")

    chunk = decoder(reader, header, context)

    consumed = reader.position - header.content_start
    if consumed > header.content_length:
        raise FormatError(
            f"Chunk {header.tag!r} read {consumed} bytes but declares {header.content_length}"
        )
    # Newer writers may append fields we do not know about
    reader.skip(header.content_length - consumed)

    if header.tag != MAIN:
        reader.skip(header.children_length)

    if isinstance(chunk, SizeChunk):
        context.latest_size = chunk.size
    return chunk
