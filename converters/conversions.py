"""
Value conversions shared by both directions

Reaper stores volumes as linear gain factors where 1.0 is 0dB. Sends may
reach +12dB while the DAWproject side uses a 0..1 range, hence the maximum
level parameter. Colors are stored as 0x00BBGGRR integers.
"""

import math
from typing import Optional

# Smallest linear value which is not treated as silence (-150dB)
MIN_LINEAR = 0.0000000298023223876953125
MIN_DB = -150.0
LOG_TO_DB = 20.0 / math.log(10.0)

# Reaper sets this flag on custom colors
COLOR_FLAG = 0x1000000


def _linear_to_db(value: float) -> float:
    if value < MIN_LINEAR:
        return MIN_DB
    return max(MIN_DB, math.log(value) * LOG_TO_DB)


def value_to_db(value: float, max_level_db: float) -> float:
    """
    Scale a Reaper gain factor into the 0..1 range

    Args:
        value: Linear gain factor (1.0 = 0dB)
        max_level_db: The level in dB which maps to 1.0

    Returns:
        The scaled linear value
    """
    return math.pow(10.0, (_linear_to_db(value) - max_level_db) / 20.0)


def db_to_value(value: float, max_level_db: float) -> float:
    """Inverse of value_to_db"""
    if value <= 0:
        return 0.0
    return value * math.pow(10.0, max_level_db / 20.0)


def to_hex_color(color: int) -> str:
    """Reaper color to '#rrggbb'"""
    color &= 0xFFFFFF
    red = color & 0xFF
    green = (color >> 8) & 0xFF
    blue = (color >> 16) & 0xFF
    return f'#{red:02x}{green:02x}{blue:02x}'


def from_hex_color(color: Optional[str]) -> Optional[int]:
    """
    '#rrggbb' to a Reaper color

    Returns:
        The color with the custom color flag set, None if the text is not
        a valid color
    """
    if not color:
        return None
    text = color.strip().lstrip('#')
    if len(text) < 6:
        return None
    try:
        red = int(text[0:2], 16)
        green = int(text[2:4], 16)
        blue = int(text[4:6], 16)
    except ValueError:
        return None
    return COLOR_FLAG | (blue << 16) | (green << 8) | red


def int_to_text(value: int) -> str:
    """The 4 bytes of an integer as characters, most significant first (e.g. a VST2 ID)"""
    value &= 0xFFFFFFFF
    return ''.join(chr((value >> shift) & 0xFF) for shift in (24, 16, 8, 0))


__all__ = [
    'value_to_db',
    'db_to_value',
    'to_hex_color',
    'from_hex_color',
    'int_to_text',
]
