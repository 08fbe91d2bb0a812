"""
DAWproject Writer

Serializes the project object graph into a .dawproject file: a ZIP
archive containing project.xml, metadata.xml and the embedded media
files (audio samples, plugin states).

Identifiers ('id0', 'id1', ...) are assigned while writing. Every object
which is referenced from somewhere else (tracks, channels, parameters)
receives its identifier on first use, regardless of whether the
reference or the object itself is written first.
"""

import logging
import xml.etree.ElementTree as ET
import zipfile
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from core.container import DawProjectContainer
from core.dawproject import (
    Arrangement, Audio, BoolParameter, BoolPoint, Channel, Clip, Clips, Device,
    EnumParameter, IntegerParameter, IntegerPoint, Lanes, Markers, Metadata, Notes,
    Parameter, Points, Project, RealParameter, RealPoint, Send, Timeline,
    TimeSignatureParameter, TimeSignaturePoint, Track, Transport, Warps,
)
from core.errors import FormatError, NotFoundError
from core.fileutils import atomic_output
from core.media import METADATA_FILE, PROJECT_FILE

logger = logging.getLogger(__name__)

METADATA_TAGS = (
    ('title', 'Title'),
    ('artist', 'Artist'),
    ('album', 'Album'),
    ('original_artist', 'OriginalArtist'),
    ('composer', 'Composer'),
    ('songwriter', 'Songwriter'),
    ('producer', 'Producer'),
    ('arranger', 'Arranger'),
    ('year', 'Year'),
    ('genre', 'Genre'),
    ('copyright', 'Copyright'),
    ('website', 'Website'),
    ('comment', 'Comment'),
)


def _text(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if hasattr(value, 'value'):
        return str(value.value)
    return str(value)


def _set(elem: ET.Element, name: str, value):
    """Set an attribute, None values are left out"""
    text = _text(value)
    if text is not None:
        elem.set(name, text)


class ProjectXmlWriter:
    """Creates the XML tree of a project"""

    def __init__(self):
        self._ids: Dict[int, str] = {}

    def _id(self, obj) -> str:
        key = id(obj)
        if key not in self._ids:
            self._ids[key] = f'id{len(self._ids)}'
        return self._ids[key]

    def _ref(self, obj) -> Optional[str]:
        return None if obj is None else self._id(obj)

    # ========================================================================
    # PROJECT
    # ========================================================================

    def project_to_xml(self, project: Project) -> ET.Element:
        root = ET.Element('Project', version=project.version)
        ET.SubElement(root, 'Application', name=project.application.name or '',
                      version=project.application.version or '')

        if project.transport is not None:
            self._write_transport(root, project.transport)

        structure = ET.SubElement(root, 'Structure')
        for track in project.structure:
            self._write_track(structure, track)

        if project.arrangement is not None:
            self._write_arrangement(root, project.arrangement)

        return root

    def _write_transport(self, root: ET.Element, transport: Transport):
        elem = ET.SubElement(root, 'Transport')
        if transport.tempo is not None:
            self._write_real_parameter(elem, 'Tempo', transport.tempo)
        if transport.time_signature is not None:
            self._write_time_signature_parameter(elem, 'TimeSignature', transport.time_signature)

    def _write_arrangement(self, root: ET.Element, arrangement: Arrangement):
        elem = ET.SubElement(root, 'Arrangement', id=self._id(arrangement))
        if arrangement.time_signature_automation is not None:
            self._write_points(elem, arrangement.time_signature_automation, 'TimeSignatureAutomation')
        if arrangement.tempo_automation is not None:
            self._write_points(elem, arrangement.tempo_automation, 'TempoAutomation')
        if arrangement.markers is not None:
            self._write_markers(elem, arrangement.markers)
        if arrangement.lanes is not None:
            self._write_lanes(elem, arrangement.lanes)

    # ========================================================================
    # PARAMETERS
    # ========================================================================

    def _parameter_element(self, parent: ET.Element, tag: str, parameter: Parameter) -> ET.Element:
        elem = ET.SubElement(parent, tag, id=self._id(parameter))
        _set(elem, 'name', parameter.name)
        _set(elem, 'parameterID', parameter.parameter_id)
        return elem

    def _write_real_parameter(self, parent: ET.Element, tag: str, parameter: RealParameter):
        elem = self._parameter_element(parent, tag, parameter)
        _set(elem, 'unit', parameter.unit)
        _set(elem, 'min', parameter.min)
        _set(elem, 'max', parameter.max)
        _set(elem, 'value', parameter.value)

    def _write_bool_parameter(self, parent: ET.Element, tag: str, parameter: BoolParameter):
        elem = self._parameter_element(parent, tag, parameter)
        _set(elem, 'value', parameter.value)

    def _write_integer_parameter(self, parent: ET.Element, tag: str, parameter: IntegerParameter):
        elem = self._parameter_element(parent, tag, parameter)
        _set(elem, 'min', parameter.min)
        _set(elem, 'max', parameter.max)
        _set(elem, 'value', parameter.value)

    def _write_enum_parameter(self, parent: ET.Element, tag: str, parameter: EnumParameter):
        elem = self._parameter_element(parent, tag, parameter)
        _set(elem, 'count', parameter.count)
        _set(elem, 'value', parameter.value)

    def _write_any_parameter(self, parent: ET.Element, parameter: Parameter):
        """Write a parameter with the element name of its kind"""
        if isinstance(parameter, RealParameter):
            self._write_real_parameter(parent, 'RealParameter', parameter)
        elif isinstance(parameter, BoolParameter):
            self._write_bool_parameter(parent, 'BoolParameter', parameter)
        elif isinstance(parameter, IntegerParameter):
            self._write_integer_parameter(parent, 'IntegerParameter', parameter)
        elif isinstance(parameter, EnumParameter):
            self._write_enum_parameter(parent, 'EnumParameter', parameter)
        else:
            logger.warning(f"Parameter type not supported: {type(parameter).__name__}")

    def _write_time_signature_parameter(self, parent: ET.Element, tag: str, parameter: TimeSignatureParameter):
        elem = self._parameter_element(parent, tag, parameter)
        _set(elem, 'numerator', parameter.numerator)
        _set(elem, 'denominator', parameter.denominator)

    # ========================================================================
    # STRUCTURE
    # ========================================================================

    def _write_track(self, parent: ET.Element, track: Track):
        elem = ET.SubElement(parent, 'Track')
        if track.content_types:
            elem.set('contentType', ' '.join(content_type.value for content_type in track.content_types))
        _set(elem, 'loaded', track.loaded)
        elem.set('id', self._id(track))
        _set(elem, 'name', track.name)
        _set(elem, 'color', track.color)
        _set(elem, 'comment', track.comment)

        if track.channel is not None:
            self._write_channel(elem, track.channel)
        for child in track.tracks:
            self._write_track(elem, child)

    def _write_channel(self, parent: ET.Element, channel: Channel):
        elem = ET.SubElement(parent, 'Channel')
        _set(elem, 'audioChannels', channel.audio_channels)
        _set(elem, 'role', channel.role)
        _set(elem, 'solo', channel.solo)
        _set(elem, 'destination', self._ref(channel.destination))
        elem.set('id', self._id(channel))

        if channel.devices:
            devices = ET.SubElement(elem, 'Devices')
            for device in channel.devices:
                self._write_device(devices, device)

        if channel.mute is not None:
            self._write_bool_parameter(elem, 'Mute', channel.mute)
        if channel.pan is not None:
            self._write_real_parameter(elem, 'Pan', channel.pan)
        if channel.volume is not None:
            self._write_real_parameter(elem, 'Volume', channel.volume)

        if channel.sends:
            sends = ET.SubElement(elem, 'Sends')
            for send in channel.sends:
                self._write_send(sends, send)

    def _write_send(self, parent: ET.Element, send: Send):
        elem = ET.SubElement(parent, 'Send')
        _set(elem, 'destination', self._ref(send.destination))
        _set(elem, 'type', send.type)
        elem.set('id', self._id(send))
        _set(elem, 'name', send.name)
        if send.volume is not None:
            self._write_real_parameter(elem, 'Volume', send.volume)
        if send.pan is not None:
            self._write_real_parameter(elem, 'Pan', send.pan)
        if send.enable is not None:
            self._write_bool_parameter(elem, 'Enable', send.enable)

    def _write_device(self, parent: ET.Element, device: Device):
        elem = ET.SubElement(parent, device.plugin_format.value)
        _set(elem, 'deviceID', device.device_id)
        _set(elem, 'deviceName', device.device_name)
        _set(elem, 'deviceRole', device.device_role)
        _set(elem, 'deviceVendor', device.device_vendor)
        _set(elem, 'loaded', device.loaded)
        _set(elem, 'name', device.name)
        elem.set('id', self._id(device))

        if device.automated_parameters:
            parameters = ET.SubElement(elem, 'Parameters')
            for parameter in device.automated_parameters:
                self._write_any_parameter(parameters, parameter)
        if device.enabled is not None:
            self._write_bool_parameter(elem, 'Enabled', device.enabled)
        if device.state is not None:
            ET.SubElement(elem, 'State', path=device.state.path, external=_text(device.state.external))

    # ========================================================================
    # TIMELINES
    # ========================================================================

    def _timeline_element(self, parent: ET.Element, tag: str, timeline: Timeline) -> ET.Element:
        elem = ET.SubElement(parent, tag, id=self._id(timeline))
        _set(elem, 'timeUnit', timeline.time_unit)
        return elem

    def _write_timeline(self, parent: ET.Element, timeline: Timeline):
        if isinstance(timeline, Lanes):
            self._write_lanes(parent, timeline)
        elif isinstance(timeline, Clips):
            self._write_clips(parent, timeline)
        elif isinstance(timeline, Notes):
            self._write_notes(parent, timeline)
        elif isinstance(timeline, Points):
            self._write_points(parent, timeline)
        elif isinstance(timeline, Audio):
            self._write_audio(parent, timeline)
        elif isinstance(timeline, Warps):
            self._write_warps(parent, timeline)
        elif isinstance(timeline, Markers):
            self._write_markers(parent, timeline)
        else:
            raise FormatError(f"Unsupported timeline type: {type(timeline).__name__}")

    def _write_lanes(self, parent: ET.Element, lanes: Lanes):
        elem = self._timeline_element(parent, 'Lanes', lanes)
        _set(elem, 'track', self._ref(lanes.track))
        for lane in lanes.lanes:
            self._write_timeline(elem, lane)

    def _write_clips(self, parent: ET.Element, clips: Clips):
        elem = self._timeline_element(parent, 'Clips', clips)
        for clip in clips.clips:
            self._write_clip(elem, clip)

    def _write_clip(self, parent: ET.Element, clip: Clip):
        elem = ET.SubElement(parent, 'Clip')
        _set(elem, 'time', clip.time)
        _set(elem, 'duration', clip.duration)
        _set(elem, 'playStart', clip.play_start)
        _set(elem, 'playStop', clip.play_stop)
        _set(elem, 'loopStart', clip.loop_start)
        _set(elem, 'loopEnd', clip.loop_end)
        _set(elem, 'fadeTimeUnit', clip.fade_time_unit)
        _set(elem, 'fadeInTime', clip.fade_in_time)
        _set(elem, 'fadeOutTime', clip.fade_out_time)
        _set(elem, 'name', clip.name)
        _set(elem, 'enable', clip.enable)
        _set(elem, 'comment', clip.comment)
        _set(elem, 'contentTimeUnit', clip.content_time_unit)
        _set(elem, 'color', clip.color)
        if clip.content is not None:
            self._write_timeline(elem, clip.content)

    def _write_notes(self, parent: ET.Element, notes: Notes):
        elem = self._timeline_element(parent, 'Notes', notes)
        for note in notes.notes:
            note_elem = ET.SubElement(elem, 'Note')
            _set(note_elem, 'time', note.time)
            _set(note_elem, 'duration', note.duration)
            _set(note_elem, 'channel', note.channel)
            _set(note_elem, 'key', note.key)
            _set(note_elem, 'vel', note.velocity)
            _set(note_elem, 'rel', note.release_velocity)

    def _write_points(self, parent: ET.Element, points: Points, tag: str = 'Points'):
        elem = self._timeline_element(parent, tag, points)
        _set(elem, 'unit', points.unit)

        target = points.target
        target_elem = ET.SubElement(elem, 'Target')
        _set(target_elem, 'parameter', self._ref(target.parameter))
        _set(target_elem, 'expression', target.expression)
        _set(target_elem, 'channel', target.channel)
        _set(target_elem, 'key', target.key)
        _set(target_elem, 'controller', target.controller)

        for point in points.points:
            if isinstance(point, RealPoint):
                point_elem = ET.SubElement(elem, 'RealPoint')
                _set(point_elem, 'time', point.time)
                _set(point_elem, 'value', point.value)
                _set(point_elem, 'interpolation', point.interpolation)
            elif isinstance(point, BoolPoint):
                point_elem = ET.SubElement(elem, 'BoolPoint')
                _set(point_elem, 'time', point.time)
                _set(point_elem, 'value', point.value)
            elif isinstance(point, IntegerPoint):
                point_elem = ET.SubElement(elem, 'IntegerPoint')
                _set(point_elem, 'time', point.time)
                _set(point_elem, 'value', point.value)
            elif isinstance(point, TimeSignaturePoint):
                point_elem = ET.SubElement(elem, 'TimeSignaturePoint')
                _set(point_elem, 'time', point.time)
                _set(point_elem, 'numerator', point.numerator)
                _set(point_elem, 'denominator', point.denominator)
            else:
                raise FormatError(f"Unsupported point type: {type(point).__name__}")

    def _write_audio(self, parent: ET.Element, audio: Audio):
        elem = self._timeline_element(parent, 'Audio', audio)
        _set(elem, 'algorithm', audio.algorithm)
        _set(elem, 'channels', audio.channels)
        _set(elem, 'duration', audio.duration)
        _set(elem, 'sampleRate', audio.sample_rate)
        if audio.file is not None:
            ET.SubElement(elem, 'File', path=audio.file.path, external=_text(audio.file.external))

    def _write_warps(self, parent: ET.Element, warps: Warps):
        elem = self._timeline_element(parent, 'Warps', warps)
        _set(elem, 'contentTimeUnit', warps.content_time_unit)
        if warps.content is not None:
            self._write_timeline(elem, warps.content)
        for warp in warps.events:
            ET.SubElement(elem, 'Warp', time=_text(warp.time), contentTime=_text(warp.content_time))

    def _write_markers(self, parent: ET.Element, markers: Markers):
        elem = self._timeline_element(parent, 'Markers', markers)
        for marker in markers.markers:
            marker_elem = ET.SubElement(elem, 'Marker')
            _set(marker_elem, 'time', marker.time)
            _set(marker_elem, 'name', marker.name)
            _set(marker_elem, 'color', marker.color)


def metadata_to_xml(metadata: Metadata) -> ET.Element:
    root = ET.Element('MetaData')
    for field_name, tag in METADATA_TAGS:
        value = getattr(metadata, field_name)
        if value is not None:
            ET.SubElement(root, tag).text = value
    return root


def _to_bytes(root: ET.Element) -> bytes:
    ET.indent(root)
    return ET.tostring(root, encoding='utf-8', xml_declaration=True)


def save(project: Project, metadata: Metadata, file_map: Mapping[str, Union[str, Path]], path: Union[str, Path]):
    """
    Write a .dawproject file

    Args:
        project: The project object graph
        metadata: Song information
        file_map: Path inside of the container -> local file to embed
        path: Destination file

    Raises:
        NotFoundError: A file to embed does not exist
    """
    project_xml = _to_bytes(ProjectXmlWriter().project_to_xml(project))
    metadata_xml = _to_bytes(metadata_to_xml(metadata))

    with zipfile.ZipFile(path, 'w', compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(METADATA_FILE, metadata_xml)
        archive.writestr(PROJECT_FILE, project_xml)
        for media_id, local_path in file_map.items():
            local_path = Path(local_path)
            if not local_path.is_file():
                raise NotFoundError(media_id, str(local_path))
            archive.write(local_path, arcname=media_id)
            logger.debug(f"  Embedded {media_id}")


class DawProjectWriter:
    """Writes a container as .dawproject file"""

    def write(self, container: DawProjectContainer, filepath: Union[str, Path]):
        """
        Write the container

        Args:
            container: Project, metadata and media files
            filepath: Destination .dawproject file
        """
        logger.info(f"Writing DAWproject: {filepath}")

        file_map = {}
        media_files = container.media_files
        for media_id in media_files.get_all():
            local_path = media_files.path_of(media_id)
            if local_path is None:
                logger.warning(f"No local file for {media_id}, not embedded")
                continue
            file_map[media_id] = local_path

        with atomic_output(filepath) as tmp_path:
            save(container.project, container.metadata, file_map, tmp_path)

        logger.info(f"✓ Wrote {len(container.project.all_tracks())} tracks, {len(file_map)} embedded files")


def write_dawproject(container: DawProjectContainer, filepath: Union[str, Path]):
    """Convenience function"""
    DawProjectWriter().write(container, filepath)


__all__ = [
    'ProjectXmlWriter',
    'metadata_to_xml',
    'save',
    'DawProjectWriter',
    'write_dawproject',
]
