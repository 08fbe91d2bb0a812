"""
Reaper MIDI Event

One short MIDI message of a Reaper MIDI source:

    E <offset> <status> <data1> <data2>

The offset is the distance in ticks to the previous event, the other
values are hexadecimal. The absolute position is calculated by the
converters while walking the event list.
"""

from dataclasses import dataclass
from typing import Optional

from core.errors import FormatError
from core.rpp import Node

EVENT = 'E'

NOTE_OFF = 0x80
NOTE_ON = 0x90
POLY_PRESSURE = 0xA0
CONTROL_CHANGE = 0xB0
PROGRAM_CHANGE = 0xC0
CHANNEL_PRESSURE = 0xD0
PITCH_BEND = 0xE0


@dataclass
class ReaperMidiEvent:
    position: int = 0   # Absolute position in ticks
    channel: int = 0
    code: int = 0       # Upper nibble of the status byte
    data1: int = 0
    data2: int = 0
    offset: int = 0     # Ticks since the previous event

    @classmethod
    def from_node(cls, node: Node) -> Optional['ReaperMidiEvent']:
        """
        Parse an event line

        Args:
            node: A line of the MIDI source chunk

        Returns:
            The event or None if the node is not a short MIDI event

        Raises:
            FormatError: One of the values is not a number
        """
        if node.name.upper() != EVENT or len(node.parameters) < 4:
            return None

        try:
            offset = int(node.parameters[0])
            status = int(node.parameters[1], 16)
            data1 = int(node.parameters[2], 16)
            data2 = int(node.parameters[3], 16)
        except ValueError as e:
            raise FormatError("Malformed MIDI event in MIDI source section.") from e

        return cls(channel=status & 0x0F, code=status & 0xF0, data1=data1, data2=data2, offset=offset)

    def to_node(self) -> Node:
        return Node(EVENT, [
            str(self.offset),
            f'{self.code + self.channel:02x}',
            f'{self.data1:02x}',
            f'{self.data2:02x}',
        ])


__all__ = [
    'NOTE_OFF',
    'NOTE_ON',
    'POLY_PRESSURE',
    'CONTROL_CHANGE',
    'PROGRAM_CHANGE',
    'CHANNEL_PRESSURE',
    'PITCH_BEND',
    'ReaperMidiEvent',
]
