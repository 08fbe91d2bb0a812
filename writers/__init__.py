from .dawproject_writer import DawProjectWriter, write_dawproject
from .reaper_writer import ReaperWriter, write_reaper_project

__all__ = [
    "DawProjectWriter",
    "write_dawproject",
    "ReaperWriter",
    "write_reaper_project",
]
