"""Tests for time unit resolution and clip durations."""

from core.dawproject import Arrangement, Clip, Clips, Lanes, TimeUnit
from core.timeutils import (
    UNSET, arrangement_is_beats, get_duration, get_max_duration, is_unset,
    resolve_is_beats, set_time_unit,
)


def test_explicit_duration():
    assert get_duration(Clip(time=1.0, duration=4.0, play_start=1.0, play_stop=2.0)) == 4.0


def test_duration_from_play_range():
    assert get_duration(Clip(play_start=1.5, play_stop=4.0)) == 2.5
    assert get_duration(Clip(play_stop=3.0)) == 3.0


def test_duration_unset():
    duration = get_duration(Clip(time=2.0))
    assert duration == UNSET
    assert is_unset(duration)


def test_max_duration():
    clips = [Clip(duration=2.0), Clip(play_stop=5.0), Clip()]
    assert get_max_duration(clips) == 5.0
    assert get_max_duration([]) == 0.0


def test_time_unit_inheritance():
    assert resolve_is_beats(None, True)
    assert resolve_is_beats(Clips(), False) is False
    assert resolve_is_beats(Clips(time_unit=TimeUnit.BEATS), False)
    assert not resolve_is_beats(Clips(time_unit=TimeUnit.SECONDS), True)


def test_arrangement_default_is_beats():
    assert arrangement_is_beats(None)
    assert arrangement_is_beats(Arrangement())
    assert not arrangement_is_beats(Arrangement(lanes=Lanes(time_unit=TimeUnit.SECONDS)))


def test_set_time_unit():
    clips = Clips()
    set_time_unit(clips, True)
    assert clips.time_unit == TimeUnit.BEATS
    set_time_unit(clips, False)
    assert clips.time_unit == TimeUnit.SECONDS
