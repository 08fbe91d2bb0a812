"""
DAWproject Container

Unit of work of a conversion: project name, metadata, the project object
graph and the media files which belong to it.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from .dawproject import Metadata, Project
from .fileutils import name_without_type
from .media import MediaFiles

logger = logging.getLogger(__name__)

DEFAULT_TEMPO = 120.0


class DawProjectContainer:
    """
    Project plus metadata plus media access

    Closing the container closes the media files.
    """

    def __init__(self, name: str, media_files: MediaFiles,
                 metadata: Optional[Metadata] = None, project: Optional[Project] = None):
        self.name = name
        self.media_files = media_files
        self.metadata = metadata if metadata is not None else Metadata()
        self.project = project if project is not None else Project()

    @classmethod
    def load(cls, path: Union[str, Path], media_files: MediaFiles) -> 'DawProjectContainer':
        """Load metadata and project from a .dawproject file"""
        from parsers.dawproject_parser import load_metadata, load_project

        return cls(name_without_type(path), media_files, load_metadata(path), load_project(path))

    @property
    def beats_per_second(self) -> float:
        transport = self.project.transport
        if transport is None or transport.tempo is None or transport.tempo.value is None:
            return DEFAULT_TEMPO / 60.0
        return transport.tempo.value / 60.0

    def close(self):
        self.media_files.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
        return False


__all__ = [
    'DEFAULT_TEMPO',
    'DawProjectContainer',
]
