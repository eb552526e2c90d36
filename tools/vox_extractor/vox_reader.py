"""Sequential reader for MagicaVoxel VOX byte streams.

VOX files are little-endian and strictly forward-only:
- File header: "VOX " magic + int32 version
- Chunk: 4-byte tag, int32 content length, int32 children length,
  then content bytes, then children bytes
- Strings: int32 byte length + UTF-8 bytes
- Dictionaries: int32 entry count, then (key string, value string) pairs
"""
import io
import struct
from typing import BinaryIO, Tuple

from .vox_types import ChunkHeader, Dictionary, FormatError


class ChunkReader:
    """Reads VOX primitives from a binary stream.

    The reader keeps its own position counter instead of calling tell(),
    so it works on pipes and other non-seekable streams.
    """

    def __init__(self, stream: BinaryIO):
        """Initialize reader.

        Args:
            stream: Binary stream positioned at the first byte to read
        """
        self.stream = stream
        self.position = 0

    @classmethod
    def from_bytes(cls, data: bytes) -> "ChunkReader":
        return cls(io.BytesIO(data))

    def read_bytes(self, count: int) -> bytes:
        """Read exactly count bytes.

        Raw streams and pipes may return fewer bytes than asked for, so
        reads are repeated until count bytes arrive or read() returns b"".

        Raises:
            FormatError: If the stream ends first
        """
        if count < 0:
            raise FormatError(f"Negative read length {count} at offset {self.position}")
        parts = []
        received = 0
        while received < count:
            part = self.stream.read(count - received)
            if not part:
                raise FormatError(
                    f"Unexpected end of stream at offset {self.position}: "
                    f"wanted {count} bytes, got {received}"
                )
            parts.append(part)
            received += len(part)
        self.position += count
        return b"".join(parts)

    def skip(self, count: int):
        """Discard count bytes."""
        self.read_bytes(count)

    def read_u8(self) -> int:
        return self.read_bytes(1)[0]

    def read_i32(self) -> int:
        return struct.unpack("<i", self.read_bytes(4))[0]

    def read_u32(self) -> int:
        return struct.unpack("<I", self.read_bytes(4))[0]

    def read_tag(self) -> str:
        """Read a 4-byte ASCII tag such as "MAIN" or "nTRN"."""
        return self.read_bytes(4).decode("ascii", errors="replace")

    def read_string(self) -> str:
        length = self.read_i32()
        return self.read_bytes(length).decode("utf-8", errors="replace")

    def read_dict(self) -> Dictionary:
        """Read a VOX dictionary.

        Returns:
            Ordered mapping of key to value; empty when the count is 0
        """
        count = self.read_i32()
        if count < 0:
            raise FormatError(f"Negative dictionary size {count} at offset {self.position}")
        dictionary = {}
        for _ in range(count):
            key = self.read_string()
            dictionary[key] = self.read_string()
        return dictionary

    def read_file_header(self) -> Tuple[str, int]:
        """Read the file magic and version."""
        magic = self.read_tag()
        version = self.read_i32()
        return magic, version

    def read_chunk_header(self) -> ChunkHeader:
        """Read a chunk tag and its two length fields."""
        tag = self.read_tag()
        content_length = self.read_i32()
        children_length = self.read_i32()
        if content_length < 0 or children_length < 0:
            raise FormatError(
                f"Chunk {tag!r} has negative length "
                f"(content={content_length}, children={children_length})"
            )
        return ChunkHeader(
            tag=tag,
            content_length=content_length,
            children_length=children_length,
            content_start=self.position,
        )
