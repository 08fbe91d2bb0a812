"""
Tempo Converter

Converts positions between seconds and beats over a tempo map. A tempo map
is a list of TempoChange events sorted by time, the first one at 0. An event
flagged as linear ramps the tempo towards the tempo of the next event,
otherwise the tempo stays constant until the next event.
"""

import math
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple


@dataclass(frozen=True)
class TempoChange:
    """A tempo event"""
    time: float       # Seconds
    tempo: float      # BPM
    is_linear: bool = False


TempoMap = Sequence[TempoChange]


def seconds_to_beats_constant(seconds: float, tempo: float) -> float:
    return seconds * tempo / 60.0


def beats_to_seconds_constant(beats: float, tempo: float) -> float:
    return beats / (tempo / 60.0)


def _diff_to_beats(previous_time: float, next_time: float, tempo: float) -> float:
    return (next_time - previous_time) * tempo / 60.0


def _check(tempo_map: TempoMap):
    if not tempo_map:
        raise ValueError("The tempo map must contain at least one tempo change")


def seconds_to_beats(seconds: float, tempo_map: TempoMap) -> float:
    """
    Convert a position in seconds to beats

    Args:
        seconds: Position in seconds
        tempo_map: Tempo changes sorted by time, the first at 0

    Returns:
        Position in beats
    """
    _check(tempo_map)
    previous = tempo_map[0]
    if len(tempo_map) == 1:
        return seconds_to_beats_constant(seconds, previous.tempo)

    beats = 0.0
    for current in tempo_map[1:]:
        if previous.is_linear:
            if seconds <= current.time:
                # Inside of the ramp: integrate from the previous change up to
                # the position (area of a trapezoid)
                range_time = seconds - previous.time
                full_range_time = current.time - previous.time
                tempo_pos = previous.tempo + range_time / full_range_time * (current.tempo - previous.tempo)
                return beats + (previous.tempo + tempo_pos) / 60.0 / 2.0 * range_time

            # After the ramp the average tempo covers the whole range
            average_tempo = (previous.tempo + current.tempo) / 2.0
            beats += _diff_to_beats(previous.time, current.time, average_tempo)
        else:
            if seconds <= current.time:
                return beats + _diff_to_beats(previous.time, seconds, previous.tempo)
            beats += _diff_to_beats(previous.time, current.time, previous.tempo)
        previous = current

    # Range after the last tempo change
    return beats + _diff_to_beats(previous.time, seconds, previous.tempo)


def beats_to_seconds(beats: float, tempo_map: TempoMap) -> float:
    """
    Convert a position in beats to seconds

    Args:
        beats: Position in beats
        tempo_map: Tempo changes sorted by time, the first at 0

    Returns:
        Position in seconds
    """
    _check(tempo_map)
    previous = tempo_map[0]
    if len(tempo_map) == 1:
        return beats_to_seconds_constant(beats, previous.tempo)

    previous_beats = 0.0
    for current in tempo_map[1:]:
        range_time = current.time - previous.time
        previous_bps = previous.tempo / 60.0

        if previous.is_linear:
            current_bps = current.tempo / 60.0
            current_beats = previous_beats + (previous_bps + current_bps) / 2.0 * range_time
            if beats <= current_beats:
                # beats(t) = a*t^2 + b*t, solve for the elapsed time t; the
                # positive root is the only one with a non-negative time.
                # Written as 2c / (b + sqrt(d)), also valid for a == 0
                delta_beats = beats - previous_beats
                a = 0.5 * (current_bps - previous_bps) / range_time
                b = previous_bps
                discriminant = max(b * b + 4.0 * a * delta_beats, 0.0)
                return previous.time + 2.0 * delta_beats / (b + math.sqrt(discriminant))
        else:
            current_beats = previous_beats + range_time * previous_bps
            if beats <= current_beats:
                return previous.time + (beats - previous_beats) / previous_bps

        previous_beats = current_beats
        previous = current

    # Range after the last tempo change
    return previous.time + (beats - previous_beats) / (previous.tempo / 60.0)


def tempo_map_from_points(points: Iterable[Tuple[float, float, bool]], global_tempo: float) -> List[TempoChange]:
    """
    Create a tempo map from tempo automation points in seconds

    Args:
        points: (time in seconds, tempo, is linear) for each automation point
        global_tempo: Project tempo, used if there is no point at 0

    Returns:
        Tempo map which starts at 0
    """
    tempo_map = [TempoChange(time, tempo, linear) for time, tempo, linear in points]
    tempo_map.sort(key=lambda change: change.time)
    if not tempo_map or tempo_map[0].time > 0:
        tempo_map.insert(0, TempoChange(0.0, global_tempo, False))
    return tempo_map


def tempo_map_from_beat_points(points: Iterable[Tuple[float, float, bool]], global_tempo: float) -> List[TempoChange]:
    """
    Create a tempo map from tempo automation points positioned in beats

    Each segment is integrated with the tempo it is played at: constant
    segments take beats / bps, linear ramps the trapezoid inverse
    2 * beats / (bps0 + bps1).
    """
    beat_points = sorted(points, key=lambda p: p[0])
    if not beat_points or beat_points[0][0] > 0:
        beat_points.insert(0, (0.0, global_tempo, False))

    tempo_map = []
    seconds = 0.0
    previous = None
    for beat, tempo, linear in beat_points:
        if previous is not None:
            previous_beat, previous_tempo, previous_linear = previous
            delta_beats = beat - previous_beat
            if previous_linear:
                seconds += 2.0 * delta_beats / ((previous_tempo + tempo) / 60.0)
            else:
                seconds += delta_beats / (previous_tempo / 60.0)
        tempo_map.append(TempoChange(seconds, tempo, linear))
        previous = (beat, tempo, linear)
    return tempo_map


__all__ = [
    'TempoChange',
    'TempoMap',
    'seconds_to_beats',
    'beats_to_seconds',
    'seconds_to_beats_constant',
    'beats_to_seconds_constant',
    'tempo_map_from_points',
    'tempo_map_from_beat_points',
]
