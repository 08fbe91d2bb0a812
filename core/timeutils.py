"""
Time unit helpers

Every timeline either carries its own time unit or inherits the one of its
parent. Clip durations may be missing and are then derived from the play
range; if that is missing as well the UNSET sentinel is returned.
"""

from typing import Iterable, Optional

from .dawproject import Arrangement, Clip, TimeUnit, Timeline, Warps

UNSET = -1.0


def resolve_is_beats(timeline: Optional[Timeline], parent_is_beats: bool) -> bool:
    """Use the explicit time unit of the timeline, else the parent's"""
    if timeline is None or timeline.time_unit is None:
        return parent_is_beats
    return timeline.time_unit == TimeUnit.BEATS


def resolve_warps_is_beats(warps: Warps, parent_is_beats: bool) -> bool:
    """Time unit of the content inside of warps"""
    if warps.content_time_unit is None:
        return parent_is_beats
    return warps.content_time_unit == TimeUnit.BEATS


def resolve_content_is_beats(clip: Clip, parent_is_beats: bool) -> bool:
    if clip.content_time_unit is None:
        return parent_is_beats
    return clip.content_time_unit == TimeUnit.BEATS


def arrangement_is_beats(arrangement: Optional[Arrangement]) -> bool:
    """Time unit of the arrangement, beats if nothing is set"""
    if arrangement is None or arrangement.lanes is None:
        return True
    return resolve_is_beats(arrangement.lanes, True)


def set_time_unit(timeline: Timeline, is_beats: bool):
    timeline.time_unit = TimeUnit.BEATS if is_beats else TimeUnit.SECONDS


def get_duration(clip: Clip) -> float:
    """
    Duration of a clip

    Args:
        clip: The clip

    Returns:
        The explicit duration, or play stop minus play start if there is
        none, or UNSET if neither is available
    """
    if clip.duration is not None:
        return clip.duration
    if clip.play_stop is not None:
        return clip.play_stop - (clip.play_start or 0.0)
    return UNSET


def get_max_duration(clips: Iterable[Clip]) -> float:
    """Longest duration of the given clips, 0 if there are none"""
    max_duration = 0.0
    for clip in clips:
        max_duration = max(max_duration, get_duration(clip))
    return max_duration


def is_unset(value: float) -> bool:
    return value == UNSET


__all__ = [
    'UNSET',
    'resolve_is_beats',
    'resolve_warps_is_beats',
    'resolve_content_is_beats',
    'arrangement_is_beats',
    'set_time_unit',
    'get_duration',
    'get_max_duration',
    'is_unset',
]
