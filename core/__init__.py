"""
ProjectConverter Core v1.0
DAWproject object graph, Reaper chunk model and conversion plumbing
"""

from .dawproject import Project, Track, Channel, Clip, Note, Device, Metadata
from .container import DawProjectContainer
from .errors import ConversionError, FormatError, NotFoundError, ValidationError, ConversionCancelled

__all__ = [
    'Project', 'Track', 'Channel', 'Clip', 'Note', 'Device', 'Metadata',
    'DawProjectContainer',
    'ConversionError', 'FormatError', 'NotFoundError', 'ValidationError', 'ConversionCancelled',
]
__version__ = '1.0.0'
