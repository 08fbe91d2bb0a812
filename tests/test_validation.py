"""Tests for the structural project validation."""

import pytest

from core.dawproject import (
    Arrangement, Channel, Clip, Clips, Lanes, Points, Project, RealParameter, RealPoint,
    Send, Target, Track, Transport, Unit, real_parameter,
)
from core.errors import ValidationError
from core.validation import validate


def _project(*tracks, lanes=None) -> Project:
    transport = Transport(tempo=real_parameter(Unit.BPM, 20.0, 999.0, 120.0, 'Tempo'))
    return Project(transport=transport, structure=list(tracks), arrangement=Arrangement(lanes=Lanes(lanes=lanes or [])))


def _problems(project):
    with pytest.raises(ValidationError) as info:
        validate(project)
    return info.value.problems


def test_valid_project():
    volume = real_parameter(Unit.LINEAR, 0.0, 1.0, 1.0, 'Volume')
    track = Track('Lead', channel=Channel(volume=volume))
    lanes = [Lanes(track=track, lanes=[
        Clips(clips=[Clip(time=0.0, duration=4.0)]),
        Points(target=Target(parameter=volume), points=[RealPoint(0.0, 1.0), RealPoint(1.0, 0.5)]),
    ])]
    validate(_project(track, lanes=lanes))


def test_missing_transport():
    assert _problems(Project()) == ['Project has no transport']


def test_foreign_send_destination():
    track = Track('Lead', channel=Channel(sends=[Send(destination=Channel())]))
    assert _problems(_project(track)) == ["Track 'Lead': send destination is not part of the project"]


def test_foreign_lane_track():
    lanes = [Lanes(track=Track('Ghost'))]
    assert "Lanes reference track 'Ghost' which is not part of the project" in _problems(_project(lanes=lanes))


def test_clip_without_duration():
    track = Track('Lead', channel=Channel())
    lanes = [Lanes(track=track, lanes=[Clips(clips=[Clip(time=2.0, name='Empty')])])]
    assert _problems(_project(track, lanes=lanes)) == ["Clip 'Empty' at 2.0 has no duration"]


def test_unordered_points_and_foreign_parameter():
    volume = real_parameter(Unit.LINEAR, 0.0, 1.0, 1.0, 'Volume')
    track = Track('Lead', channel=Channel(volume=volume))
    lanes = [Lanes(track=track, lanes=[
        Points(target=Target(parameter=volume), points=[RealPoint(2.0, 1.0), RealPoint(1.0, 0.5)]),
        Points(target=Target(parameter=RealParameter(name='Other', unit=Unit.LINEAR))),
        Points(),
    ])]
    problems = _problems(_project(track, lanes=lanes))
    assert problems == [
        'Automation points are not ordered by time (1.0 < 2.0)',
        "Automation targets parameter 'Other' which is not part of the project",
        'Automation has neither a parameter nor an expression target',
    ]


def test_parameter_without_unit():
    track = Track('Lead', channel=Channel(volume=RealParameter(name='Volume', value=1.0)))
    assert _problems(_project(track)) == ["Parameter 'Volume' has no unit"]
