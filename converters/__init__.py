"""
Converters module
Plugin state handlers, binary presets, MIDI events and value conversions
"""

from .conversions import value_to_db, db_to_value, to_hex_color, from_hex_color, int_to_text
from .device_handlers import (
    DeviceChunkHandler,
    ClapChunkHandler,
    VstChunkHandler,
    PRESET_FILE_ENDINGS,
    handler_for,
)
from .midi_event import ReaperMidiEvent
from .vst3_preset import Vst3Preset

__all__ = [
    'value_to_db',
    'db_to_value',
    'to_hex_color',
    'from_hex_color',
    'int_to_text',
    'DeviceChunkHandler',
    'ClapChunkHandler',
    'VstChunkHandler',
    'PRESET_FILE_ENDINGS',
    'handler_for',
    'ReaperMidiEvent',
    'Vst3Preset',
]
