"""
Byte stream primitives

Integer and string helpers for binary file-like objects (io.BytesIO,
opened files). All readers raise FormatError if the stream ends early.
"""

import struct
from typing import BinaryIO

from core.errors import FormatError


def read_bytes(stream: BinaryIO, length: int) -> bytes:
    """Read exactly length bytes"""
    data = stream.read(length)
    if len(data) != length:
        raise FormatError(f"Unexpected end of data: needed {length} bytes, got {len(data)}")
    return data


def read_int_be(stream: BinaryIO) -> int:
    return struct.unpack('>i', read_bytes(stream, 4))[0]


def read_int_le(stream: BinaryIO) -> int:
    return struct.unpack('<i', read_bytes(stream, 4))[0]


def read_uint_le(stream: BinaryIO) -> int:
    return struct.unpack('<I', read_bytes(stream, 4))[0]


def read_long_le(stream: BinaryIO) -> int:
    return struct.unpack('<q', read_bytes(stream, 8))[0]


def write_int_be(stream: BinaryIO, value: int):
    stream.write(struct.pack('>I', value & 0xFFFFFFFF))


def write_int_le(stream: BinaryIO, value: int):
    stream.write(struct.pack('<I', value & 0xFFFFFFFF))


def write_long_le(stream: BinaryIO, value: int):
    stream.write(struct.pack('<Q', value & 0xFFFFFFFFFFFFFFFF))


def read_string(stream: BinaryIO, length: int = -1) -> str:
    """
    Read an ASCII string

    Args:
        stream: Source stream
        length: Fixed field size; -1 reads up to the terminating NUL

    Returns:
        The text up to the first NUL byte
    """
    if length < 0:
        text = bytearray()
        while True:
            value = stream.read(1)
            if not value or value == b'\x00':
                break
            text.extend(value)
        return text.decode('latin-1')

    # The whole field is consumed, the text ends at the first NUL
    field = read_bytes(stream, length)
    return field.split(b'\x00', 1)[0].decode('latin-1')


def write_string(stream: BinaryIO, text: str):
    """Write the characters of the text as single bytes (no terminator)"""
    stream.write(text.encode('latin-1'))


__all__ = [
    'read_bytes',
    'read_int_be',
    'read_int_le',
    'read_uint_le',
    'read_long_le',
    'write_int_be',
    'write_int_le',
    'write_long_le',
    'read_string',
    'write_string',
]
