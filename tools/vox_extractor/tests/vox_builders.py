"""Builders for synthetic VOX byte streams used across the tests."""
import io
import struct


def pack_string(value):
    data = value.encode("utf-8")
    return struct.pack("<i", len(data)) + data


def pack_dict(entries=None):
    entries = entries or {}
    data = struct.pack("<i", len(entries))
    for key, value in entries.items():
        data += pack_string(key) + pack_string(value)
    return data


def chunk(tag, content=b"", children=b""):
    """Chunk header plus content and children bytes."""
    return tag.encode("ascii") + struct.pack("<ii", len(content), len(children)) + content + children


def size_chunk(x, y, z):
    # Stored as x, z, y
    return chunk("SIZE", struct.pack("<iii", x, z, y))


def xyzi_chunk(voxels):
    """voxels: list of (x, y, z, color_index) in (x, y, z) order."""
    content = struct.pack("<i", len(voxels))
    for x, y, z, color_index in voxels:
        content += struct.pack("<BBBB", x, z, y, color_index)
    return chunk("XYZI", content)


def rgba_chunk(colors):
    content = b"".join(struct.pack("<BBBB", *color) for color in colors)
    return chunk("RGBA", content)


def matl_chunk(material_id, properties):
    return chunk("MATL", struct.pack("<i", material_id) + pack_dict(properties))


def transform_chunk(node_id, child_id, translation=None, rotation=None, name=None, layer_id=0):
    """nTRN with a single frame; translation is given in (x, y, z) order."""
    attributes = {"_name": name} if name else {}
    frame = {}
    if translation is not None:
        x, y, z = translation
        frame["_t"] = f"{x} {z} {y}"
    if rotation is not None:
        frame["_r"] = str(rotation)
    content = struct.pack("<i", node_id) + pack_dict(attributes)
    content += struct.pack("<iiii", child_id, -1, layer_id, 1)
    content += pack_dict(frame)
    return chunk("nTRN", content)


def group_chunk(node_id, children_ids):
    content = struct.pack("<i", node_id) + pack_dict()
    content += struct.pack("<i", len(children_ids))
    content += b"".join(struct.pack("<i", child) for child in children_ids)
    return chunk("nGRP", content)


def shape_chunk(node_id, model_ids):
    content = struct.pack("<i", node_id) + pack_dict()
    content += struct.pack("<i", len(model_ids))
    for model_id in model_ids:
        content += struct.pack("<i", model_id) + pack_dict()
    return chunk("nSHP", content)


def layer_chunk(layer_id, name="layer"):
    content = struct.pack("<i", layer_id) + pack_dict({"_name": name}) + struct.pack("<i", -1)
    return chunk("LAYR", content)


def vox_file(*chunks, version=150, magic=b"VOX "):
    """Complete file: header plus a MAIN chunk holding the given chunks."""
    return magic + struct.pack("<i", version) + chunk("MAIN", children=b"".join(chunks))


def cube_model(n, color_index=1):
    """SIZE + XYZI for a solid n x n x n cube."""
    voxels = [(x, y, z, color_index) for x in range(n) for y in range(n) for z in range(n)]
    return size_chunk(n, n, n) + xyzi_chunk(voxels)


def two_model_scene():
    """Root transform -> group -> two transform/shape branches."""
    return (
        transform_chunk(0, 1)
        + group_chunk(1, [2, 4])
        + transform_chunk(2, 3, translation=(5, 0, 0), name="left")
        + shape_chunk(3, [0])
        + transform_chunk(4, 5, translation=(0, 0, 7), rotation=17)
        + shape_chunk(5, [1])
    )


class TrickleStream(io.RawIOBase):
    """Unbuffered stream that hands out at most step bytes per read."""

    def __init__(self, data, step=3):
        self._data = io.BytesIO(data)
        self._step = step

    def readable(self):
        return True

    def read(self, size=-1):
        if size < 0 or size > self._step:
            size = self._step
        return self._data.read(size)
