from .reaper_parser import ReaperParser, parse_reaper_project
from .dawproject_parser import DawProjectParser, parse_dawproject

__all__ = [
    "ReaperParser",
    "parse_reaper_project",
    "DawProjectParser",
    "parse_dawproject",
]
