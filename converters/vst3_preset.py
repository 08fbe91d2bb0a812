"""
VST3 Preset Codec

Reads and writes .vstpreset files.

File layout (all integers little-endian):
    Header (48 bytes):
        'VST3'                      4-byte magic
        version                     int32
        class ID                    32 ASCII bytes
        offset to chunk list        int64
    Data area                       opaque bytes, the chunks back to back
    Chunk list:
        'List'                      4-byte magic
        entry count                 int32
        entries                     4-byte id, int64 offset, int64 size
"""

import io
import logging
from dataclasses import dataclass, field
from typing import BinaryIO, List, Sequence

from core.errors import FormatError
from .stream_helper import (
    read_bytes, read_int_le, read_long_le, read_string,
    write_int_le, write_long_le, write_string,
)

logger = logging.getLogger(__name__)

HEADER_SIZE = 48
HEADER_ID = 'VST3'
LIST_ID = 'List'
CLASS_ID_LENGTH = 32
# First chunk holds the component state, the second the controller state
CHUNK_IDS = ('Comp', 'Cont')


@dataclass
class ChunkInfo:
    id: str
    offset: int
    size: int


@dataclass
class Vst3Preset:
    """Content of a .vstpreset file"""
    version: int = 1
    class_id: str = ''
    data: bytes = b''
    chunk_infos: List[ChunkInfo] = field(default_factory=list)

    @classmethod
    def read(cls, stream: BinaryIO) -> 'Vst3Preset':
        """
        Read a preset

        Args:
            stream: Binary stream positioned at the start of the file

        Returns:
            The preset

        Raises:
            FormatError: Wrong magic tags or truncated data
        """
        if read_string(stream, 4) != HEADER_ID:
            raise FormatError("Not a VST3 preset file.")

        version = read_int_le(stream)
        class_id = read_string(stream, CLASS_ID_LENGTH)
        offset_to_chunk_list = read_long_le(stream)
        if offset_to_chunk_list < HEADER_SIZE:
            raise FormatError(f"Invalid offset to the chunk list: {offset_to_chunk_list}")

        data = read_bytes(stream, offset_to_chunk_list - HEADER_SIZE)

        if read_string(stream, 4) != LIST_ID:
            raise FormatError("List chunk not found.")

        count = read_int_le(stream)
        chunk_infos = []
        for _ in range(count):
            chunk_id = read_string(stream, 4)
            offset = read_long_le(stream)
            size = read_long_le(stream)
            chunk_infos.append(ChunkInfo(chunk_id, offset, size))

        logger.debug(f"Read VST3 preset {class_id}: {len(data)} bytes, {count} chunks")
        return cls(version, class_id, data, chunk_infos)

    @classmethod
    def from_bytes(cls, content: bytes) -> 'Vst3Preset':
        return cls.read(io.BytesIO(content))

    def chunk_data(self, index: int) -> bytes:
        """Bytes of one chunk, cut from the data area"""
        info = self.chunk_infos[index]
        start = info.offset - HEADER_SIZE
        if start < 0 or start + info.size > len(self.data):
            raise FormatError(f"Chunk {info.id} lies outside of the data area")
        return self.data[start:start + info.size]

    def write(self, stream: BinaryIO, class_id: str, chunks: Sequence[bytes]):
        """
        Write a preset with the given chunks

        Args:
            stream: Destination stream
            class_id: Plugin class ID (32 ASCII characters)
            chunks: Component state and optionally the controller state
        """
        if len(chunks) > len(CHUNK_IDS):
            raise FormatError(f"A VST3 preset supports at most {len(CHUNK_IDS)} chunks, got {len(chunks)}")

        class_id = (class_id or '')[:CLASS_ID_LENGTH].ljust(CLASS_ID_LENGTH, '\x00')

        # Chunk list
        self.version = 1
        self.class_id = class_id.rstrip('\x00')
        self.chunk_infos = []
        offset = HEADER_SIZE
        for index, chunk in enumerate(chunks):
            self.chunk_infos.append(ChunkInfo(CHUNK_IDS[index], offset, len(chunk)))
            offset += len(chunk)
        self.data = b''.join(chunks)

        # Header
        write_string(stream, HEADER_ID)
        write_int_le(stream, self.version)
        write_string(stream, class_id)
        write_long_le(stream, offset)

        # Data area
        stream.write(self.data)

        # List chunk
        write_string(stream, LIST_ID)
        write_int_le(stream, len(self.chunk_infos))
        for info in self.chunk_infos:
            write_string(stream, info.id)
            write_long_le(stream, info.offset)
            write_long_le(stream, info.size)

        logger.debug(f"Wrote VST3 preset {self.class_id}: {len(chunks)} chunks, {len(self.data)} bytes")

    def to_bytes(self, class_id: str, chunks: Sequence[bytes]) -> bytes:
        out = io.BytesIO()
        self.write(out, class_id, chunks)
        return out.getvalue()


__all__ = [
    'HEADER_SIZE',
    'CHUNK_IDS',
    'ChunkInfo',
    'Vst3Preset',
]
