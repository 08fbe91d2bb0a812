"""
Structural validation of the project object graph

Checks the things a DAWproject consumer relies on. Validation is advisory:
the conversion task logs the problems and writes the file anyway.
"""

import logging
from typing import List, Set

from .dawproject import (
    Clip, Clips, Lanes, Parameter, Points, Project, RealParameter, Timeline, Warps,
)
from .errors import ValidationError
from .timeutils import get_duration, is_unset

logger = logging.getLogger(__name__)


def _collect_parameters(project: Project) -> List[Parameter]:
    parameters: List[Parameter] = []
    transport = project.transport
    if transport is not None:
        parameters.extend(p for p in (transport.tempo, transport.time_signature) if p is not None)

    for track in project.all_tracks():
        channel = track.channel
        if channel is None:
            continue
        parameters.extend(p for p in (channel.volume, channel.pan, channel.mute) if p is not None)
        for send in channel.sends:
            parameters.extend(p for p in (send.volume, send.pan, send.enable) if p is not None)
        for device in channel.devices:
            if device.enabled is not None:
                parameters.append(device.enabled)
            parameters.extend(device.automated_parameters)
    return parameters


class _Validator:

    def __init__(self, project: Project):
        self.project = project
        self.problems: List[str] = []
        self.tracks = project.all_tracks()
        self.track_ids: Set[int] = {id(track) for track in self.tracks}
        self.channel_ids: Set[int] = {id(track.channel) for track in self.tracks if track.channel is not None}
        self.parameters = _collect_parameters(project)
        self.parameter_ids: Set[int] = {id(parameter) for parameter in self.parameters}

    def run(self) -> List[str]:
        if self.project.transport is None:
            self.problems.append("Project has no transport")
        elif self.project.transport.tempo is None:
            self.problems.append("Transport has no tempo")

        for parameter in self.parameters:
            if isinstance(parameter, RealParameter) and parameter.unit is None:
                self.problems.append(f"Parameter '{parameter.name or ''}' has no unit")

        for track in self.tracks:
            channel = track.channel
            if channel is None:
                continue
            if channel.destination is not None and id(channel.destination) not in self.channel_ids:
                self.problems.append(f"Track '{track.name}': channel destination is not part of the project")
            for send in channel.sends:
                if send.destination is not None and id(send.destination) not in self.channel_ids:
                    self.problems.append(f"Track '{track.name}': send destination is not part of the project")

        arrangement = self.project.arrangement
        if arrangement is not None:
            for points in (arrangement.tempo_automation, arrangement.time_signature_automation):
                if points is not None:
                    self._check_points(points)
            if arrangement.lanes is not None:
                self._check_timeline(arrangement.lanes)

        return self.problems

    def _check_timeline(self, timeline: Timeline):
        if isinstance(timeline, Lanes):
            if timeline.track is not None and id(timeline.track) not in self.track_ids:
                self.problems.append(f"Lanes reference track '{timeline.track.name}' which is not part of the project")
            for lane in timeline.lanes:
                self._check_timeline(lane)
        elif isinstance(timeline, Clips):
            for clip in timeline.clips:
                self._check_clip(clip)
        elif isinstance(timeline, Points):
            self._check_points(timeline)
        elif isinstance(timeline, Warps) and timeline.content is not None:
            self._check_timeline(timeline.content)

    def _check_clip(self, clip: Clip):
        if is_unset(get_duration(clip)):
            self.problems.append(f"Clip '{clip.name or ''}' at {clip.time} has no duration")
        if clip.content is not None:
            self._check_timeline(clip.content)

    def _check_points(self, points: Points):
        parameter = points.target.parameter
        if parameter is not None and id(parameter) not in self.parameter_ids:
            self.problems.append(f"Automation targets parameter '{parameter.name or ''}' which is not part of the project")
        if parameter is None and points.target.expression is None:
            self.problems.append("Automation has neither a parameter nor an expression target")

        previous = None
        for point in points.points:
            if previous is not None and point.time < previous:
                self.problems.append(f"Automation points are not ordered by time ({point.time} < {previous})")
                break
            previous = point.time


def validate(project: Project):
    """
    Validate the structure of a project

    Raises:
        ValidationError: Lists all problems found
    """
    problems = _Validator(project).run()
    if problems:
        raise ValidationError(problems)
    logger.debug("Project structure is valid")


__all__ = ['validate']
