"""
DAWproject Parser

Reads .dawproject files (ZIP archive with project.xml and metadata.xml)
into the project object graph.

References between elements (Lanes -> Track, Send -> Channel,
Target -> Parameter, ...) are stored as 'id' attributes in the XML. They
are collected while parsing and resolved once the whole tree is read.
"""

import io
import logging
import xml.etree.ElementTree as ET
import zipfile
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Set, Tuple, Type, Union

from core.container import DawProjectContainer
from core.dawproject import (
    Application, Arrangement, Audio, BoolParameter, BoolPoint, Channel, Clip, Clips,
    ContentType, Device, DeviceRole, EnumParameter, ExpressionType, FileReference,
    IntegerParameter, IntegerPoint, Interpolation, Lanes, Marker, Markers, Metadata,
    MixerRole, Note, Notes, Parameter, PluginFormat, Points, Project, RealParameter,
    RealPoint, Send, SendType, Target, Timeline, TimeSignatureParameter,
    TimeSignaturePoint, TimeUnit, Track, Transport, Unit, Warp, Warps,
)
from core.errors import FormatError, NotFoundError
from core.media import METADATA_FILE, PROJECT_FILE, DawProjectMediaFiles
from writers.dawproject_writer import METADATA_TAGS

logger = logging.getLogger(__name__)

TIMELINE_TAGS = ('Lanes', 'Clips', 'Notes', 'Points', 'Audio', 'Warps', 'Markers')


# ============================================================================
# ATTRIBUTE HELPERS
# ============================================================================

def _float(elem: ET.Element, name: str, default: Optional[float] = None) -> Optional[float]:
    value = elem.get(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as e:
        raise FormatError(f"<{elem.tag}> attribute {name} is not a number: {value}") from e


def _int(elem: ET.Element, name: str, default: Optional[int] = None) -> Optional[int]:
    value = elem.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as e:
        raise FormatError(f"<{elem.tag}> attribute {name} is not an integer: {value}") from e


def _bool(elem: ET.Element, name: str, default: Optional[bool] = None) -> Optional[bool]:
    value = elem.get(name)
    if value is None:
        return default
    return value.strip().lower() == 'true'


def _enum(enum_type: Type[Enum], elem: ET.Element, name: str):
    value = elem.get(name)
    if value is None:
        return None
    try:
        return enum_type(value)
    except ValueError as e:
        raise FormatError(f"<{elem.tag}> attribute {name} has an unknown value: {value}") from e


# ============================================================================
# PROJECT
# ============================================================================

class ProjectXmlReader:
    """Creates the object graph from the XML tree of a project"""

    def __init__(self):
        self._objects: Dict[str, object] = {}
        self._references: List[Tuple[object, str, str]] = []
        self._dangling_targets: Set[int] = set()

    def _register(self, elem: ET.Element, obj):
        object_id = elem.get('id')
        if object_id is not None:
            self._objects[object_id] = obj
        return obj

    def _reference(self, obj, attribute: str, elem: ET.Element, name: str):
        ref = elem.get(name)
        if ref:
            self._references.append((obj, attribute, ref))

    def _resolve_references(self):
        for obj, attribute, ref in self._references:
            target = self._objects.get(ref)
            if target is None:
                if isinstance(obj, Target):
                    logger.warning(f"Automation target not found, lane dropped: {ref}")
                    self._dangling_targets.add(id(obj))
                    continue
                raise FormatError(f"Unknown reference: {ref}")
            setattr(obj, attribute, target)
        logger.debug(f"Resolved {len(self._references)} references")

    def _is_dangling(self, timeline: Optional[Timeline]) -> bool:
        return isinstance(timeline, Points) and timeline.target is not None and id(timeline.target) in self._dangling_targets

    def _drop_dangling_points(self, arrangement: Arrangement):
        """Remove automation lanes whose target parameter does not exist"""
        if self._is_dangling(arrangement.tempo_automation):
            arrangement.tempo_automation = None
        if self._is_dangling(arrangement.time_signature_automation):
            arrangement.time_signature_automation = None

        pending: List[Timeline] = [arrangement.lanes] if arrangement.lanes is not None else []
        while pending:
            timeline = pending.pop()
            if isinstance(timeline, Lanes):
                timeline.lanes = [lane for lane in timeline.lanes if not self._is_dangling(lane)]
                pending.extend(timeline.lanes)
            elif isinstance(timeline, Clips):
                for clip in timeline.clips:
                    if self._is_dangling(clip.content):
                        clip.content = None
                    elif clip.content is not None:
                        pending.append(clip.content)
            elif isinstance(timeline, Warps) and timeline.content is not None:
                pending.append(timeline.content)

    def read(self, root: ET.Element) -> Project:
        if root.tag != 'Project':
            raise FormatError(f"Not a DAWproject file, root element is <{root.tag}>")

        project = Project(version=root.get('version', '1.0'))

        application = root.find('Application')
        if application is not None:
            project.application = Application(application.get('name', ''), application.get('version', ''))

        transport = root.find('Transport')
        if transport is not None:
            project.transport = self._read_transport(transport)

        structure = root.find('Structure')
        if structure is not None:
            project.structure = [self._read_track(elem) for elem in structure.findall('Track')]

        arrangement = root.find('Arrangement')
        if arrangement is not None:
            project.arrangement = self._read_arrangement(arrangement)

        self._resolve_references()
        if self._dangling_targets and project.arrangement is not None:
            self._drop_dangling_points(project.arrangement)
        return project

    def _read_transport(self, elem: ET.Element) -> Transport:
        transport = Transport()
        tempo = elem.find('Tempo')
        if tempo is not None:
            transport.tempo = self._read_real_parameter(tempo)
        signature = elem.find('TimeSignature')
        if signature is not None:
            transport.time_signature = self._register(signature, TimeSignatureParameter(
                name=signature.get('name'),
                numerator=_int(signature, 'numerator'),
                denominator=_int(signature, 'denominator'),
            ))
        return transport

    def _read_arrangement(self, elem: ET.Element) -> Arrangement:
        arrangement = self._register(elem, Arrangement())
        signature = elem.find('TimeSignatureAutomation')
        if signature is not None:
            arrangement.time_signature_automation = self._read_points(signature)
        tempo = elem.find('TempoAutomation')
        if tempo is not None:
            arrangement.tempo_automation = self._read_points(tempo)
        markers = elem.find('Markers')
        if markers is not None:
            arrangement.markers = self._read_markers(markers)
        lanes = elem.find('Lanes')
        if lanes is not None:
            arrangement.lanes = self._read_lanes(lanes)
        return arrangement

    # ========================================================================
    # PARAMETERS
    # ========================================================================

    def _read_real_parameter(self, elem: ET.Element) -> RealParameter:
        return self._register(elem, RealParameter(
            name=elem.get('name'),
            parameter_id=_int(elem, 'parameterID'),
            value=_float(elem, 'value'),
            unit=_enum(Unit, elem, 'unit'),
            min=_float(elem, 'min'),
            max=_float(elem, 'max'),
        ))

    def _read_bool_parameter(self, elem: ET.Element) -> BoolParameter:
        return self._register(elem, BoolParameter(
            name=elem.get('name'),
            parameter_id=_int(elem, 'parameterID'),
            value=_bool(elem, 'value'),
        ))

    def _read_integer_parameter(self, elem: ET.Element) -> IntegerParameter:
        return self._register(elem, IntegerParameter(
            name=elem.get('name'),
            parameter_id=_int(elem, 'parameterID'),
            value=_int(elem, 'value'),
            min=_int(elem, 'min'),
            max=_int(elem, 'max'),
        ))

    def _read_enum_parameter(self, elem: ET.Element) -> EnumParameter:
        return self._register(elem, EnumParameter(
            name=elem.get('name'),
            parameter_id=_int(elem, 'parameterID'),
            value=_int(elem, 'value'),
            count=_int(elem, 'count'),
        ))

    def _read_parameters(self, elem: ET.Element) -> List[Parameter]:
        """All parameters below a Parameters element, unknown kinds are skipped"""
        readers = {
            'RealParameter': self._read_real_parameter,
            'BoolParameter': self._read_bool_parameter,
            'IntegerParameter': self._read_integer_parameter,
            'EnumParameter': self._read_enum_parameter,
        }
        parameters = []
        for child in elem:
            reader = readers.get(child.tag)
            if reader is None:
                logger.debug(f"Parameter type not supported: {child.tag}")
                continue
            parameters.append(reader(child))
        return parameters

    # ========================================================================
    # STRUCTURE
    # ========================================================================

    def _read_track(self, elem: ET.Element) -> Track:
        content_types = []
        for value in (elem.get('contentType') or '').split():
            try:
                content_types.append(ContentType(value))
            except ValueError as e:
                raise FormatError(f"Unknown content type: {value}") from e

        track = self._register(elem, Track(
            name=elem.get('name', 'Track'),
            color=elem.get('color'),
            comment=elem.get('comment'),
            content_types=content_types,
            loaded=_bool(elem, 'loaded', True),
        ))

        channel = elem.find('Channel')
        if channel is not None:
            track.channel = self._read_channel(channel)
        track.tracks = [self._read_track(child) for child in elem.findall('Track')]
        return track

    def _read_channel(self, elem: ET.Element) -> Channel:
        channel = self._register(elem, Channel(
            role=_enum(MixerRole, elem, 'role') or MixerRole.REGULAR,
            audio_channels=_int(elem, 'audioChannels', 2),
            solo=_bool(elem, 'solo'),
        ))
        self._reference(channel, 'destination', elem, 'destination')

        devices = elem.find('Devices')
        if devices is not None:
            for device_elem in devices:
                device = self._read_device(device_elem)
                if device is not None:
                    channel.devices.append(device)

        mute = elem.find('Mute')
        if mute is not None:
            channel.mute = self._read_bool_parameter(mute)
        pan = elem.find('Pan')
        if pan is not None:
            channel.pan = self._read_real_parameter(pan)
        volume = elem.find('Volume')
        if volume is not None:
            channel.volume = self._read_real_parameter(volume)

        sends = elem.find('Sends')
        if sends is not None:
            channel.sends = [self._read_send(send) for send in sends.findall('Send')]
        return channel

    def _read_send(self, elem: ET.Element) -> Send:
        send = self._register(elem, Send(
            name=elem.get('name'),
            type=_enum(SendType, elem, 'type') or SendType.POST,
        ))
        self._reference(send, 'destination', elem, 'destination')
        volume = elem.find('Volume')
        if volume is not None:
            send.volume = self._read_real_parameter(volume)
        pan = elem.find('Pan')
        if pan is not None:
            send.pan = self._read_real_parameter(pan)
        enable = elem.find('Enable')
        if enable is not None:
            send.enable = self._read_bool_parameter(enable)
        return send

    def _read_device(self, elem: ET.Element) -> Optional[Device]:
        parameters = elem.find('Parameters')
        try:
            plugin_format = PluginFormat(elem.tag)
        except ValueError:
            logger.warning(f"Device type not supported: {elem.tag}")
            if parameters is not None:
                # Keeps automation of the device resolvable
                self._read_parameters(parameters)
            return None

        device = self._register(elem, Device(
            plugin_format=plugin_format,
            name=elem.get('name'),
            device_name=elem.get('deviceName'),
            device_id=elem.get('deviceID'),
            device_vendor=elem.get('deviceVendor'),
            device_role=_enum(DeviceRole, elem, 'deviceRole'),
            loaded=_bool(elem, 'loaded', True),
        ))

        if parameters is not None:
            device.automated_parameters = self._read_parameters(parameters)
        enabled = elem.find('Enabled')
        if enabled is not None:
            device.enabled = self._read_bool_parameter(enabled)
        state = elem.find('State')
        if state is not None:
            device.state = FileReference(state.get('path', ''), _bool(state, 'external', False))
        return device

    # ========================================================================
    # TIMELINES
    # ========================================================================

    def _timeline(self, elem: ET.Element, timeline: Timeline) -> Timeline:
        timeline.time_unit = _enum(TimeUnit, elem, 'timeUnit')
        return self._register(elem, timeline)

    def _read_timeline(self, elem: ET.Element) -> Optional[Timeline]:
        readers = {
            'Lanes': self._read_lanes,
            'Clips': self._read_clips,
            'Notes': self._read_notes,
            'Points': self._read_points,
            'Audio': self._read_audio,
            'Warps': self._read_warps,
            'Markers': self._read_markers,
        }
        reader = readers.get(elem.tag)
        if reader is None:
            logger.debug(f"Timeline type not supported: {elem.tag}")
            return None
        return reader(elem)

    def _first_timeline(self, elem: ET.Element) -> Optional[Timeline]:
        for child in elem:
            if child.tag in TIMELINE_TAGS:
                return self._read_timeline(child)
        return None

    def _read_lanes(self, elem: ET.Element) -> Lanes:
        lanes = self._timeline(elem, Lanes())
        self._reference(lanes, 'track', elem, 'track')
        for child in elem:
            timeline = self._read_timeline(child)
            if timeline is not None:
                lanes.lanes.append(timeline)
        return lanes

    def _read_clips(self, elem: ET.Element) -> Clips:
        clips = self._timeline(elem, Clips())
        for clip_elem in elem.findall('Clip'):
            clips.clips.append(Clip(
                time=_float(clip_elem, 'time', 0.0),
                duration=_float(clip_elem, 'duration'),
                play_start=_float(clip_elem, 'playStart'),
                play_stop=_float(clip_elem, 'playStop'),
                loop_start=_float(clip_elem, 'loopStart'),
                loop_end=_float(clip_elem, 'loopEnd'),
                fade_time_unit=_enum(TimeUnit, clip_elem, 'fadeTimeUnit'),
                fade_in_time=_float(clip_elem, 'fadeInTime'),
                fade_out_time=_float(clip_elem, 'fadeOutTime'),
                name=clip_elem.get('name'),
                comment=clip_elem.get('comment'),
                color=clip_elem.get('color'),
                enable=_bool(clip_elem, 'enable'),
                content_time_unit=_enum(TimeUnit, clip_elem, 'contentTimeUnit'),
                content=self._first_timeline(clip_elem),
            ))
        return clips

    def _read_notes(self, elem: ET.Element) -> Notes:
        notes = self._timeline(elem, Notes())
        for note in elem.findall('Note'):
            notes.notes.append(Note(
                time=_float(note, 'time', 0.0),
                duration=_float(note, 'duration', 0.0),
                key=_int(note, 'key', 60),
                channel=_int(note, 'channel', 0),
                velocity=_float(note, 'vel'),
                release_velocity=_float(note, 'rel'),
            ))
        return notes

    def _read_points(self, elem: ET.Element) -> Points:
        points = self._timeline(elem, Points(unit=_enum(Unit, elem, 'unit')))

        target_elem = elem.find('Target')
        if target_elem is not None:
            points.target = Target(
                expression=_enum(ExpressionType, target_elem, 'expression'),
                channel=_int(target_elem, 'channel'),
                key=_int(target_elem, 'key'),
                controller=_int(target_elem, 'controller'),
            )
            self._reference(points.target, 'parameter', target_elem, 'parameter')

        for child in elem:
            time = _float(child, 'time', 0.0)
            if child.tag == 'RealPoint':
                points.points.append(RealPoint(time, _float(child, 'value'), _enum(Interpolation, child, 'interpolation')))
            elif child.tag == 'BoolPoint':
                points.points.append(BoolPoint(time, _bool(child, 'value')))
            elif child.tag == 'IntegerPoint':
                points.points.append(IntegerPoint(time, _int(child, 'value')))
            elif child.tag == 'TimeSignaturePoint':
                points.points.append(TimeSignaturePoint(time, _int(child, 'numerator', 4), _int(child, 'denominator', 4)))
            elif child.tag != 'Target':
                logger.debug(f"Point type not supported: {child.tag}")
        return points

    def _read_audio(self, elem: ET.Element) -> Audio:
        audio = self._timeline(elem, Audio(
            algorithm=elem.get('algorithm'),
            channels=_int(elem, 'channels', 2),
            sample_rate=_int(elem, 'sampleRate', 44100),
            duration=_float(elem, 'duration', 0.0),
        ))
        file_elem = elem.find('File')
        if file_elem is not None:
            audio.file = FileReference(file_elem.get('path', ''), _bool(file_elem, 'external', False))
        return audio

    def _read_warps(self, elem: ET.Element) -> Warps:
        warps = self._timeline(elem, Warps(content_time_unit=_enum(TimeUnit, elem, 'contentTimeUnit')))
        warps.content = self._first_timeline(elem)
        for warp in elem.findall('Warp'):
            warps.events.append(Warp(_float(warp, 'time', 0.0), _float(warp, 'contentTime', 0.0)))
        return warps

    def _read_markers(self, elem: ET.Element) -> Markers:
        markers = self._timeline(elem, Markers())
        for marker in elem.findall('Marker'):
            markers.markers.append(Marker(_float(marker, 'time', 0.0), marker.get('name', ''), marker.get('color')))
        return markers


def metadata_from_xml(root: ET.Element) -> Metadata:
    metadata = Metadata()
    for field_name, tag in METADATA_TAGS:
        elem = root.find(tag)
        if elem is not None:
            setattr(metadata, field_name, elem.text or '')
    return metadata


# ============================================================================
# FILE ACCESS
# ============================================================================

def _read_xml(path: Union[str, Path], entry: str) -> Optional[ET.Element]:
    try:
        with zipfile.ZipFile(path) as archive:
            if entry not in archive.namelist():
                return None
            with archive.open(entry) as f:
                return ET.fromstring(f.read())
    except zipfile.BadZipFile as e:
        raise FormatError(f"Not a DAWproject file: {e}") from e
    except ET.ParseError as e:
        raise FormatError(f"Invalid XML in {entry}: {e}") from e


def load_metadata(path: Union[str, Path]) -> Metadata:
    """Read metadata.xml, empty metadata if the container has none"""
    root = _read_xml(path, METADATA_FILE)
    return Metadata() if root is None else metadata_from_xml(root)


def load_project(path: Union[str, Path]) -> Project:
    """
    Read project.xml

    Raises:
        FormatError: The file is not a valid DAWproject
    """
    root = _read_xml(path, PROJECT_FILE)
    if root is None:
        raise FormatError(f"{PROJECT_FILE} not found in {path}")
    return ProjectXmlReader().read(root)


def stream_embedded(path: Union[str, Path], media_id: str) -> BinaryIO:
    """Content of an embedded file as in-memory stream"""
    with zipfile.ZipFile(path) as archive:
        try:
            return io.BytesIO(archive.read(media_id))
        except KeyError as e:
            raise NotFoundError(media_id, str(path)) from e


class DawProjectParser:
    """Reads a .dawproject file into a container"""

    def read(self, filepath: Union[str, Path]) -> DawProjectContainer:
        """
        Parse a .dawproject file

        Args:
            filepath: Path to the .dawproject file

        Returns:
            Container with an open media file handle, close it when done
        """
        logger.info(f"Parsing DAWproject: {filepath}")

        media_files = DawProjectMediaFiles(filepath)
        try:
            container = DawProjectContainer.load(filepath, media_files)
        except BaseException:
            media_files.close()
            raise

        project = container.project
        logger.info(f"✓ Parsed {len(project.all_tracks())} tracks, {len(media_files.get_all())} media files")
        return container


def parse_dawproject(filepath: Union[str, Path]) -> DawProjectContainer:
    """Convenience function"""
    return DawProjectParser().read(filepath)


__all__ = [
    'ProjectXmlReader',
    'metadata_from_xml',
    'load_metadata',
    'load_project',
    'stream_embedded',
    'DawProjectParser',
    'parse_dawproject',
]
