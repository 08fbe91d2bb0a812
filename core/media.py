"""
Media Access

Audio files and plugin states are addressed by an ID, which is the path
they get (or have) inside of a DAWproject container, e.g.
'samples/Drums.wav' or 'plugins/<uuid>.vstpreset'.

ReaperMediaFiles    IDs mapped to files on disk (Reaper -> DAWproject)
DawProjectMediaFiles IDs resolved next to the .dawproject file first,
                     then inside of the ZIP archive (DAWproject -> Reaper)
"""

import logging
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Union

from .errors import FormatError, NotFoundError

logger = logging.getLogger(__name__)

PROJECT_FILE = 'project.xml'
METADATA_FILE = 'metadata.xml'


class MediaFiles:
    """Base class of the media access implementations"""

    def stream(self, media_id: str) -> BinaryIO:
        """
        Open a media file for reading

        Raises:
            NotFoundError: There is no file with this ID
        """
        raise NotImplementedError

    def add(self, media_id: str, path: Union[str, Path]):
        """Register a local file under the given ID"""
        raise NotImplementedError

    def get_all(self) -> List[str]:
        """IDs of all known media files"""
        raise NotImplementedError

    def path_of(self, media_id: str) -> Optional[Path]:
        """Local file of the media ID, None if it only exists as a stream"""
        return None

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
        return False


class ReaperMediaFiles(MediaFiles):
    """Media files collected while reading a Reaper project"""

    def __init__(self):
        self._files: Dict[str, Path] = {}
        self._temp_dir: Optional[Path] = None

    def stream(self, media_id: str) -> BinaryIO:
        path = self._files.get(media_id)
        if path is None or not path.is_file():
            raise NotFoundError(media_id, str(path) if path else '')
        return open(path, 'rb')

    def add(self, media_id: str, path: Union[str, Path]):
        self._files[media_id] = Path(path)

    def add_data(self, media_id: str, data: bytes, suffix: str = '') -> Path:
        """
        Store generated content (e.g. a plugin state) in a temporary file

        The file is deleted when the media files are closed.
        """
        if self._temp_dir is None:
            self._temp_dir = Path(tempfile.mkdtemp(prefix='dawproject-'))
        path = self._temp_dir / f'{len(self._files)}{suffix}'
        path.write_bytes(data)
        self.add(media_id, path)
        return path

    def path_of(self, media_id: str) -> Optional[Path]:
        return self._files.get(media_id)

    def get_all(self) -> List[str]:
        return list(self._files)

    def close(self):
        if self._temp_dir is not None:
            shutil.rmtree(self._temp_dir, ignore_errors=True)
            logger.debug(f"Removed temporary folder {self._temp_dir}")
            self._temp_dir = None


class DawProjectMediaFiles(MediaFiles):
    """Media files of a DAWproject container"""

    def __init__(self, source: Union[str, Path]):
        self.source = Path(source)
        try:
            self._archive: Optional[zipfile.ZipFile] = zipfile.ZipFile(self.source)
        except zipfile.BadZipFile as e:
            raise FormatError(f"Not a DAWproject file: {self.source}") from e
        self._entries = [name for name in self._archive.namelist()
                         if name not in (PROJECT_FILE, METADATA_FILE) and not name.endswith('/')]

    def stream(self, media_id: str) -> BinaryIO:
        # Is the file external?
        external = self.source.parent / media_id
        if external.is_file():
            return open(external, 'rb')

        if self._archive is None:
            raise ValueError(f"Media files of {self.source} are already closed")
        if media_id not in self._entries:
            raise NotFoundError(media_id, str(self.source))
        return self._archive.open(media_id)

    def add(self, media_id: str, path: Union[str, Path]):
        # Content of an existing container is read only
        pass

    def get_all(self) -> List[str]:
        return list(self._entries)

    def close(self):
        if self._archive is not None:
            self._archive.close()
            self._archive = None
            logger.debug(f"Closed {self.source.name}")


__all__ = [
    'PROJECT_FILE',
    'METADATA_FILE',
    'MediaFiles',
    'ReaperMediaFiles',
    'DawProjectMediaFiles',
]
