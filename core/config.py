"""Application constants and user settings."""

from dataclasses import dataclass

APP_NAME = 'ProjectConverter'
APP_VERSION = '1.0.0'

REAPER_EXTENSIONS = ('.rpp', '.rpp-bak')
DAWPROJECT_EXTENSION = '.dawproject'

# Written into the root chunk of new Reaper projects
REAPER_PROJECT_VERSION = '0.1'
REAPER_APP_VERSION = '6.33/win64'

TICKS_PER_QUARTER_NOTE = 960
BASE64_LINE_LENGTH = 128


@dataclass
class ConverterSettings:
    """Options the user can change per conversion"""
    # Reference audio files from the DAWproject instead of embedding them
    do_not_compress_audio_files: bool = False
    # Replace an existing destination file
    overwrite: bool = True


__all__ = [
    'APP_NAME',
    'APP_VERSION',
    'REAPER_EXTENSIONS',
    'DAWPROJECT_EXTENSION',
    'REAPER_PROJECT_VERSION',
    'REAPER_APP_VERSION',
    'TICKS_PER_QUARTER_NOTE',
    'BASE64_LINE_LENGTH',
    'ConverterSettings',
]
