"""
Device State Handlers

Move plugin state between the base64 text lines of a Reaper plugin chunk
and the binary preset files stored in a DAWproject:

    CLAP   <CLAP ...> with a <STATE> child   <->  raw .clap-preset bytes
    VST2   <VST ...> Reaper VST block        <->  .fxp program file
    VST3   <VST ...> Reaper VST block        <->  .vstpreset (Vst3Preset)
"""

import base64
import binascii
import io
import logging
from typing import BinaryIO, List

from core.config import BASE64_LINE_LENGTH
from core.dawproject import PluginFormat
from core.errors import FormatError
from core.rpp import Chunk, Node
from .stream_helper import (
    read_bytes, read_int_be, read_int_le, read_string, read_uint_le,
    write_int_be, write_int_le, write_string,
)
from .vst3_preset import Vst3Preset

logger = logging.getLogger(__name__)

STATE_CHUNK = 'STATE'

CHUNK_OPAQUE = 0xFEED5EEE
CHUNK_REGULAR = 0xFEED5EEF

MAGIC1 = 0xDEADBEEF
MAGIC2 = 0xDEADF00D

VST2_CHUNK = b'CcnK'
VST2_CHUNK_OPAQUE = b'FPCh'
VST2_CHUNK_REGULAR = b'FxCk'
VST2_NAME_LENGTH = 28

# Stereo routing: input/output 1 -> channel 1, input/output 2 -> channel 2
CONNECTIONS = bytes([1, 0, 0, 0, 0, 0, 0, 0, 2, 0, 0, 0, 0, 0, 0, 0])

# Fixed value found in all Reaper VST blocks (variants: 100002, 10000C, 10FFFF)
BLOCK_FLAGS = 0x100000

MAX_VST3_CHUNKS = 2


def decode_line(text: str) -> bytes:
    try:
        return base64.b64decode(text.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise FormatError(f"Invalid base64 data in plugin state: {e}") from e


def create_lines(parent: Chunk, data: bytes):
    """Base64 encode the data and add it as lines of 128 characters"""
    text = base64.b64encode(data).decode('ascii')
    for start in range(0, len(text), BASE64_LINE_LENGTH):
        parent.children.append(Node(text[start:start + BASE64_LINE_LENGTH]))


class DeviceChunkHandler:
    """Converts between a plugin chunk and a preset file"""

    def chunk_to_file(self, chunk: Chunk, out: BinaryIO):
        """Decode the state in the chunk and write it as preset file"""
        raise NotImplementedError

    def file_to_chunk(self, stream: BinaryIO, chunk: Chunk):
        """Read a preset file and add its state to the chunk"""
        raise NotImplementedError


class ClapChunkHandler(DeviceChunkHandler):
    """CLAP state is stored unchanged in the STATE child chunk"""

    def chunk_to_file(self, chunk: Chunk, out: BinaryIO):
        state_chunk = chunk.find_chunk(STATE_CHUNK)
        if state_chunk is None:
            raise FormatError("CLAP plugin chunk has no state.")
        for line in state_chunk.children:
            out.write(decode_line(line.name))

    def file_to_chunk(self, stream: BinaryIO, chunk: Chunk):
        data = stream.read()
        state_chunk = chunk.add_chunk(STATE_CHUNK)
        create_lines(state_chunk, data)


class VstChunkHandler(DeviceChunkHandler):
    """
    VST2 and VST3 state

    The Reaper VST block (little-endian integers):
        VST ID, data type (opaque / regular)
        number of inputs + 8 bytes routing mask per input
        number of outputs + 8 bytes routing mask per output
        data size (incl. magic numbers), magic flag, block flags
        [0xDEADBEEF 0xDEADF00D] data
    followed by a last line: program name, preset name (both NUL
    terminated) and 0x10 0 0 0.
    """

    def __init__(self, is_vst2: bool, device_id: str = ''):
        self.is_vst2 = is_vst2
        self.device_id = device_id or ''
        self.vst_id = 0
        self.data_type = CHUNK_OPAQUE
        self.program_name = ''
        self.preset_name = ''

    # ------------------------------------------------------------------
    # Reaper -> preset file
    # ------------------------------------------------------------------

    def chunk_to_file(self, chunk: Chunk, out: BinaryIO):
        lines = list(chunk.children)
        if len(lines) < 2:
            raise FormatError("VST plugin chunk has no state.")

        self._read_last_line(decode_line(lines.pop().name))
        stream = io.BytesIO(b''.join(decode_line(line.name) for line in lines))

        self.vst_id = read_int_le(stream)
        self.data_type = read_uint_le(stream)
        if self.data_type not in (CHUNK_OPAQUE, CHUNK_REGULAR):
            raise FormatError(f"Unsupported data format: {self.data_type:X}")

        num_inputs = read_int_le(stream)
        read_bytes(stream, 8 * num_inputs)
        num_outputs = read_int_le(stream)
        read_bytes(stream, 8 * num_outputs)

        data_size = read_int_le(stream)
        read_int_le(stream)  # Magic flag
        read_int_le(stream)  # Block flags

        position = stream.tell()
        if len(stream.getbuffer()) - position >= 8:
            magic1 = read_uint_le(stream)
            magic2 = read_uint_le(stream)
            if magic1 == MAGIC1 and magic2 == MAGIC2:
                data_size -= 8
            else:
                stream.seek(position)

        data = read_bytes(stream, data_size)

        if self.is_vst2:
            self._write_vst2_preset(out, data)
        else:
            self._write_vst3_preset(out, data)

    def _read_last_line(self, data: bytes):
        if len(data) <= 1:
            self.program_name = ''
            self.preset_name = ''
            return
        stream = io.BytesIO(data)
        self.program_name = read_string(stream)
        self.preset_name = read_string(stream)

    def _write_vst2_preset(self, out: BinaryIO, data: bytes):
        is_opaque = self.data_type == CHUNK_OPAQUE

        out.write(VST2_CHUNK)
        # Size of everything after this field
        write_int_be(out, 48 + (4 if is_opaque else 0) + len(data))
        out.write(VST2_CHUNK_OPAQUE if is_opaque else VST2_CHUNK_REGULAR)
        write_int_be(out, 1)               # Format version
        write_int_be(out, self.vst_id)
        write_int_be(out, 1)               # FX version, not available
        write_int_be(out, 0 if is_opaque else len(data) // 4)

        name = self._preset_name().encode('ascii', errors='replace')
        out.write(name.ljust(VST2_NAME_LENGTH, b'\x00'))

        if is_opaque:
            write_int_be(out, len(data))
        out.write(data)

    def _write_vst3_preset(self, out: BinaryIO, data: bytes):
        # Sequence of: length, 4 reserved bytes, chunk
        chunks: List[bytes] = []
        stream = io.BytesIO(data)
        while len(data) - stream.tell() > 8:
            length = read_int_le(stream)
            read_bytes(stream, 4)
            chunks.append(read_bytes(stream, length))

        if len(chunks) > MAX_VST3_CHUNKS:
            raise FormatError(f"VST3 state has more than {MAX_VST3_CHUNKS} chunks ({len(chunks)}).")

        Vst3Preset().write(out, self.device_id, chunks)

    def _preset_name(self) -> str:
        name = self.preset_name if self.preset_name.strip() else self.program_name
        return name[:VST2_NAME_LENGTH - 1]

    # ------------------------------------------------------------------
    # Preset file -> Reaper
    # ------------------------------------------------------------------

    def file_to_chunk(self, stream: BinaryIO, chunk: Chunk):
        data = self._read_vst2_preset(stream) if self.is_vst2 else self._read_vst3_preset(stream)
        is_opaque = self.data_type == CHUNK_OPAQUE

        header = io.BytesIO()
        write_int_le(header, self.vst_id)
        write_int_le(header, self.data_type)
        # Only stereo routing can be supported, other info is not available
        write_int_le(header, 2)
        header.write(CONNECTIONS)
        write_int_le(header, 2)
        header.write(CONNECTIONS)
        write_int_le(header, len(data) + (0 if is_opaque else 8))
        write_int_le(header, 1 if is_opaque else 0)
        write_int_le(header, BLOCK_FLAGS)
        create_lines(chunk, header.getvalue())

        body = io.BytesIO()
        if not is_opaque:
            write_int_le(body, MAGIC1)
            write_int_le(body, MAGIC2)
        body.write(data)
        create_lines(chunk, body.getvalue())

        last_line = io.BytesIO()
        write_string(last_line, self.program_name)
        last_line.write(b'\x00')
        write_string(last_line, self.preset_name)
        last_line.write(b'\x00')
        last_line.write(bytes([0x10, 0, 0, 0]))
        create_lines(chunk, last_line.getvalue())

    def _read_vst2_preset(self, stream: BinaryIO) -> bytes:
        if read_bytes(stream, 4) != VST2_CHUNK:
            raise FormatError("Not a VST2 preset file.")
        read_int_be(stream)  # Size

        fx_magic = read_bytes(stream, 4)
        if fx_magic not in (VST2_CHUNK_OPAQUE, VST2_CHUNK_REGULAR):
            raise FormatError(f"Unsupported VST2 preset type: {fx_magic!r}")
        is_opaque = fx_magic == VST2_CHUNK_OPAQUE
        self.data_type = CHUNK_OPAQUE if is_opaque else CHUNK_REGULAR

        read_int_be(stream)  # Format version
        self.vst_id = read_int_be(stream)
        read_int_be(stream)  # FX version
        read_int_be(stream)  # Number of parameters
        self.preset_name = read_string(stream, VST2_NAME_LENGTH)
        self.program_name = ''

        if is_opaque:
            size = read_int_be(stream)
            return read_bytes(stream, size)
        return stream.read()

    def _read_vst3_preset(self, stream: BinaryIO) -> bytes:
        preset = Vst3Preset.read(stream)

        # The VST ID is not needed by Reaper to load a VST3 plugin
        self.vst_id = 0
        self.data_type = CHUNK_OPAQUE
        self.program_name = ''
        self.preset_name = ''

        out = io.BytesIO()
        for index in range(len(preset.chunk_infos)):
            chunk_data = preset.chunk_data(index)
            write_int_le(out, len(chunk_data))
            write_int_le(out, 1 if index == 0 else 0)
            out.write(chunk_data)
        return out.getvalue()


def handler_for(plugin_format: PluginFormat, device_id: str = '') -> DeviceChunkHandler:
    """
    Get the state handler for a plugin kind

    Args:
        plugin_format: VST2, VST3 or CLAP
        device_id: Plugin ID, written as class ID into VST3 presets

    Returns:
        A new handler instance
    """
    if plugin_format == PluginFormat.CLAP:
        return ClapChunkHandler()
    if plugin_format == PluginFormat.VST2:
        return VstChunkHandler(True, device_id)
    if plugin_format == PluginFormat.VST3:
        return VstChunkHandler(False, device_id)
    raise FormatError(f"Unsupported plugin format: {plugin_format}")


PRESET_FILE_ENDINGS = {
    PluginFormat.VST2: '.fxp',
    PluginFormat.VST3: '.vstpreset',
    PluginFormat.CLAP: '.clap-preset',
}


__all__ = [
    'CHUNK_OPAQUE',
    'CHUNK_REGULAR',
    'STATE_CHUNK',
    'PRESET_FILE_ENDINGS',
    'create_lines',
    'decode_line',
    'DeviceChunkHandler',
    'ClapChunkHandler',
    'VstChunkHandler',
    'handler_for',
]
