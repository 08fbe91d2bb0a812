"""
DAWproject → Reaper Writer

Builds the chunk tree of a Reaper project from the DAWproject object graph
and writes it as .rpp file. Audio files are copied next to the project.

Reaper has no nested tracks: the folder tree is flattened and every track
carries an ISBUS <type> <direction> node instead (1 1 opens a folder,
2 -n closes n folders with the track). Clips are flattened as well, nested
clips become items with absolute positions in seconds.
"""

import logging
import shutil
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from core import reaper_tags as tags
from core.config import REAPER_APP_VERSION, REAPER_PROJECT_VERSION, TICKS_PER_QUARTER_NOTE
from core.container import DEFAULT_TEMPO, DawProjectContainer
from core.dawproject import (
    Audio, BoolParameter, BoolPoint, Channel, Clip, Clips, Device, EnumParameter,
    ExpressionType, IntegerParameter, IntegerPoint, Interpolation, Lanes, Markers, Metadata, Notes, Parameter,
    PluginFormat, Points, Project, RealParameter, RealPoint, Send, SendType, Timeline,
    TimeUnit, Track, Unit, Warps,
)
from core.errors import FormatError, NotFoundError
from core.fileutils import atomic_output
from core.notifier import CancellationToken, LoggingNotifier, Notifier
from core.rpp import Chunk, Node, format_project
from core.tempo import (
    TempoChange, beats_to_seconds, seconds_to_beats, tempo_map_from_beat_points,
    tempo_map_from_points,
)
from core.timeutils import (
    arrangement_is_beats, get_duration, is_unset, resolve_content_is_beats,
    resolve_is_beats, resolve_warps_is_beats,
)
from converters.conversions import db_to_value, from_hex_color, int_to_text
from converters.device_handlers import handler_for
from converters.midi_event import (
    CHANNEL_PRESSURE, CONTROL_CHANGE, NOTE_OFF, NOTE_ON, PITCH_BEND, POLY_PRESSURE,
    PROGRAM_CHANGE, ReaperMidiEvent,
)

logger = logging.getLogger(__name__)

MAX_SEND_LEVEL_DB = 12.0
DEFAULT_VELOCITY = 100

# Reaper send modes
SEND_MODE_POST_FADER = 0
SEND_MODE_PRE_FADER = 3

# Envelope point shapes
SHAPE_LINEAR = 0
SHAPE_SQUARE = 1

# metadata field -> ID3 tag
METADATA_TAGS = (
    ('comment', 'ID3:COMM'),
    ('composer', 'ID3:TCOM'),
    ('genre', 'ID3:TCON'),
    ('copyright', 'ID3:TCOP'),
    ('producer', 'ID3:TIPL'),
    ('title', 'ID3:TIT2'),
    ('artist', 'ID3:TPE1'),
    ('original_artist', 'ID3:TPE2'),
    ('year', 'ID3:TYER'),
    ('album', 'ID3:TALB'),
)

EXPRESSION_CODES = {
    ExpressionType.POLY_PRESSURE: POLY_PRESSURE,
    ExpressionType.CHANNEL_CONTROLLER: CONTROL_CHANGE,
    ExpressionType.PROGRAM_CHANGE: PROGRAM_CHANGE,
    ExpressionType.CHANNEL_PRESSURE: CHANNEL_PRESSURE,
    ExpressionType.PITCH_BEND: PITCH_BEND,
}


def _number(value: float) -> str:
    """Format a number the way Reaper reads it back without loss"""
    return f'{value:.14g}'


@dataclass
class TrackInfo:
    """A flattened track: the folder (if any), the track holding the mixer channel and ISBUS values"""
    folder: Optional[Track]
    track: Track
    type: int = 0
    direction: int = 0


def create_track_structure(tracks: List[Track], infos: List[TrackInfo], is_top: bool = True,
                           skip: Optional[Track] = None) -> List[TrackInfo]:
    """
    Flatten the folder tree into the Reaper track order

    The master track of a folder is merged with the folder into one Reaper
    track. The last track of every folder closes it.

    Args:
        tracks: Tracks of one level
        infos: Receives the flattened tracks
        is_top: False for the children of a folder
        skip: Track to leave out (the project master)

    Returns:
        The infos list
    """
    for track in tracks:
        if track is skip:
            continue

        info = TrackInfo(None, track)
        infos.append(info)
        if not track.is_folder():
            continue

        info.folder = track
        children = list(track.tracks)
        master = next((child for child in children if child.is_master()), None)
        if master is not None:
            children.remove(master)
            info.track = master

        if children:
            info.type = 1
            info.direction = 1
            create_track_structure(children, infos, False, skip)

    if not is_top and infos:
        last = infos[-1]
        last.type = 2
        last.direction -= 1
    return infos


@dataclass
class _EnvelopeTarget:
    """Where the envelope of a parameter goes"""
    chunk: Chunk
    name: str
    anchor: Optional[Node] = None       # Insert after this node, else append
    parameters: Tuple = ()


@dataclass
class _ItemContext:
    """Properties of the enclosing clips which apply to the created item"""
    name: Optional[str] = None
    comment: Optional[str] = None
    muted: bool = False
    fade_in: float = 0.0    # Seconds
    fade_out: float = 0.0   # Seconds
    looped: bool = False


class _ProjectWriter:
    """State of one DAWproject → Reaper conversion"""

    def __init__(self, container: DawProjectContainer, notifier: Notifier, token: CancellationToken):
        self.container = container
        self.project: Project = container.project
        self.notifier = notifier
        self.token = token

        self.tempo_map: List[TempoChange] = [TempoChange(0.0, DEFAULT_TEMPO)]
        self.master: Optional[Track] = self.project.master_track()

        self.track_chunks: Dict[Track, Chunk] = {}
        self.channel_chunks: Dict[Channel, Tuple[int, Chunk]] = {}
        self.envelope_targets: Dict[Parameter, _EnvelopeTarget] = {}

        # Reaper file name -> media ID
        self.audio_files: Dict[str, str] = {}

    def convert(self) -> Chunk:
        root = Chunk(tags.PROJECT_ROOT, [REAPER_PROJECT_VERSION, REAPER_APP_VERSION])

        self._convert_metadata(self.container.metadata, root)
        self._convert_transport(root)
        self._create_tempo_map()
        self._convert_master(root)

        root.add_node(tags.PROJECT_TIME_LOCKMODE, 1)
        root.add_node(tags.PROJECT_TIME_ENV_LOCKMODE, 1)

        arrangement = self.project.arrangement
        if arrangement is not None:
            self._convert_tempo_automation(root)
            if arrangement.markers is not None:
                self._convert_markers(root, arrangement.markers, arrangement_is_beats(arrangement))

        track_chunks = self._convert_tracks()
        self.token.check()

        if arrangement is not None and arrangement.lanes is not None:
            self._convert_lane(root, arrangement.lanes, None, arrangement_is_beats(arrangement))

        root.children.extend(track_chunks)
        return root

    # ========================================================================
    # METADATA & TRANSPORT
    # ========================================================================

    def _convert_metadata(self, metadata: Metadata, root: Chunk):
        authors = []
        for author in (metadata.artist, metadata.producer, metadata.songwriter):
            if author and author not in authors:
                authors.append(author)
        if authors:
            root.add_node(tags.PROJECT_AUTHOR, ', '.join(authors))

        if metadata.comment:
            notes_chunk = root.add_chunk(tags.PROJECT_NOTES, 0)
            for line in metadata.comment.splitlines():
                notes_chunk.children.append(Node('|' + line))

        values = [(tag, getattr(metadata, field_name)) for field_name, tag in METADATA_TAGS]
        values = [(tag, value) for tag, value in values if value]
        if values:
            render_chunk = root.add_chunk(tags.PROJECT_RENDER_METADATA)
            for tag, value in values:
                if tag == 'ID3:COMM':
                    value = ' '.join(value.splitlines())
                render_chunk.add_node(tags.METADATA_TAG, tag, value)

    def _convert_transport(self, root: Chunk):
        tempo = DEFAULT_TEMPO
        numerator = 4
        denominator = 4
        transport = self.project.transport
        if transport is not None:
            if transport.tempo is not None and transport.tempo.value is not None:
                tempo = transport.tempo.value
            signature = transport.time_signature
            if signature is not None and signature.numerator and signature.denominator:
                numerator = signature.numerator
                denominator = signature.denominator
        root.add_node(tags.PROJECT_TEMPO, _number(tempo), numerator, denominator)
        self.tempo_map = [TempoChange(0.0, tempo)]

    def _create_tempo_map(self):
        arrangement = self.project.arrangement
        if arrangement is None or arrangement.tempo_automation is None:
            return
        points = arrangement.tempo_automation
        values = [(p.time, p.value, p.interpolation == Interpolation.LINEAR)
                  for p in points.points if isinstance(p, RealPoint) and p.value is not None]
        if not values:
            return

        global_tempo = self.tempo_map[0].tempo
        if resolve_is_beats(points, arrangement_is_beats(arrangement)):
            self.tempo_map = tempo_map_from_beat_points(values, global_tempo)
        else:
            self.tempo_map = tempo_map_from_points(values, global_tempo)
        logger.debug(f"Tempo map with {len(self.tempo_map)} changes")

    def _convert_tempo_automation(self, root: Chunk):
        """Tempo and signature changes share the points of TEMPOENVEX"""
        arrangement = self.project.arrangement
        is_beats = arrangement_is_beats(arrangement)

        # seconds -> [tempo, shape, signature]
        changes: Dict[float, list] = {}
        tempo_points = arrangement.tempo_automation
        if tempo_points is not None:
            points_is_beats = resolve_is_beats(tempo_points, is_beats)
            for point in tempo_points.points:
                if not isinstance(point, RealPoint) or point.value is None:
                    continue
                shape = SHAPE_LINEAR if point.interpolation == Interpolation.LINEAR else SHAPE_SQUARE
                changes[self._to_seconds(point.time, points_is_beats)] = [point.value, shape, 0]

        signature_points = arrangement.time_signature_automation
        if signature_points is not None:
            points_is_beats = resolve_is_beats(signature_points, is_beats)
            for point in signature_points.points:
                time = self._to_seconds(point.time, points_is_beats)
                signature = (point.denominator << 16) + point.numerator
                change = changes.get(time)
                if change is None:
                    changes[time] = [self._tempo_at(time), SHAPE_SQUARE, signature]
                else:
                    change[2] = signature

        if not changes:
            return

        envelope_chunk = root.add_chunk(tags.PROJECT_TEMPO_ENVELOPE)
        envelope_chunk.add_node('ACT', 1, -1)
        envelope_chunk.add_node('VIS', 1, 0, 1)
        envelope_chunk.add_node('ARM', 0)
        envelope_chunk.add_node('DEFSHAPE', SHAPE_SQUARE, -1, -1)
        for time in sorted(changes):
            tempo, shape, signature = changes[time]
            if signature:
                envelope_chunk.add_node(tags.ENVELOPE_POINT, _number(time), _number(tempo), shape, signature)
            else:
                envelope_chunk.add_node(tags.ENVELOPE_POINT, _number(time), _number(tempo), shape)

    def _tempo_at(self, seconds: float) -> float:
        tempo = self.tempo_map[0].tempo
        for change in self.tempo_map:
            if change.time > seconds:
                break
            tempo = change.tempo
        return tempo

    # ========================================================================
    # TIME CONVERSION
    # ========================================================================

    def _to_seconds(self, time: float, is_beats: bool) -> float:
        return beats_to_seconds(time, self.tempo_map) if is_beats else time

    def _absolute(self, base: float, delta: float, is_beats: bool) -> float:
        """Position in seconds which is delta (beats or seconds) after the base position in seconds"""
        if is_beats:
            return beats_to_seconds(seconds_to_beats(base, self.tempo_map) + delta, self.tempo_map)
        return base + delta

    def _delta(self, start: float, end: float, is_beats: bool) -> float:
        """Distance between two positions in seconds, as beats or seconds"""
        if is_beats:
            return seconds_to_beats(end, self.tempo_map) - seconds_to_beats(start, self.tempo_map)
        return end - start

    # ========================================================================
    # MASTER & TRACKS
    # ========================================================================

    def _convert_master(self, root: Chunk):
        master = self.master
        if master is None or master.channel is None:
            return
        channel = master.channel

        root.add_node(tags.MASTER_NUMBER_OF_CHANNELS, channel.audio_channels, 2)
        root.add_node(tags.MASTER_VOLUME_PAN, _number(self._volume(channel.volume, 0)), _number(self._pan(channel.pan)), -1, -1, 1)

        mute_solo = 0
        if channel.mute is not None and channel.mute.value:
            mute_solo |= 1
        if channel.solo:
            mute_solo |= 2
        root.add_node(tags.MASTER_MUTE_SOLO, mute_solo)

        color = from_hex_color(master.color)
        if color is not None:
            root.add_node(tags.MASTER_COLOR, color)

        self.track_chunks[master] = root
        self._register_channel_envelopes(channel, root, True)
        self._convert_devices(channel.devices, root, tags.MASTER_CHUNK_FXCHAIN)

    def _convert_tracks(self) -> List[Chunk]:
        infos = create_track_structure(self.project.structure, [], True, self.master)

        chunks = []
        for index, info in enumerate(infos):
            self.token.check()
            chunks.append(self._convert_track(index, info))

        # Sends are stored as receives in the destination track
        for info in infos:
            channel = info.track.channel
            if channel is None:
                continue
            source_index = self.channel_chunks[channel][0]
            for send in channel.sends:
                self._convert_send(source_index, send)

        logger.info(f"✓ Converted {len(infos)} tracks")
        return chunks

    def _convert_track(self, index: int, info: TrackInfo) -> Chunk:
        track = info.track
        named = info.folder or track

        chunk = Chunk(tags.CHUNK_TRACK)
        chunk.add_node(tags.TRACK_NAME, named.name)
        chunk.add_node(tags.TRACK_STRUCTURE, info.type, info.direction)

        color = from_hex_color(named.color or track.color)
        if color is not None:
            chunk.add_node(tags.TRACK_COLOR, color)

        self.track_chunks[track] = chunk
        if info.folder is not None:
            self.track_chunks[info.folder] = chunk

        channel = track.channel
        if channel is not None:
            chunk.add_node(tags.TRACK_NUMBER_OF_CHANNELS, channel.audio_channels)
            chunk.add_node(tags.TRACK_VOLUME_PAN, _number(self._volume(channel.volume, 0)), _number(self._pan(channel.pan)), -1, -1, 1)
            mute = 1 if channel.mute is not None and channel.mute.value else 0
            solo = 1 if channel.solo else 0
            chunk.add_node(tags.TRACK_MUTE_SOLO, mute, solo, 0)

            self.channel_chunks[channel] = (index, chunk)
            self._register_channel_envelopes(channel, chunk, False)
            self._convert_devices(channel.devices, chunk, tags.CHUNK_FXCHAIN)

        logger.debug(f"  Track: {named.name} (ISBUS {info.type} {info.direction})")
        return chunk

    def _convert_send(self, source_index: int, send: Send):
        destination = self.channel_chunks.get(send.destination) if send.destination is not None else None
        if destination is None:
            self.notifier.log_error("Send destination of track %d not found", source_index + 1)
            return

        mode = SEND_MODE_POST_FADER if send.type == SendType.POST else SEND_MODE_PRE_FADER
        mute = 1 if send.enable is not None and send.enable.value is False else 0
        receive = destination[1].add_node(
            tags.TRACK_AUX_RECEIVE, source_index, mode,
            _number(self._volume(send.volume, MAX_SEND_LEVEL_DB)), _number(self._pan(send.pan)), mute,
        )
        if send.volume is not None:
            self.envelope_targets[send.volume] = _EnvelopeTarget(destination[1], tags.TRACK_AUX_ENVELOPE, receive)

    def _register_channel_envelopes(self, channel: Channel, chunk: Chunk, is_master: bool):
        if channel.volume is not None:
            name = tags.MASTER_VOLUME_ENVELOPE if is_master else tags.TRACK_VOLUME_ENVELOPE
            self.envelope_targets[channel.volume] = _EnvelopeTarget(chunk, name)
        if channel.pan is not None:
            name = tags.MASTER_PANORAMA_ENVELOPE if is_master else tags.TRACK_PANORAMA_ENVELOPE
            self.envelope_targets[channel.pan] = _EnvelopeTarget(chunk, name)
        if channel.mute is not None and not is_master:
            self.envelope_targets[channel.mute] = _EnvelopeTarget(chunk, tags.TRACK_MUTE_ENVELOPE)

    @staticmethod
    def _volume(parameter: Optional[RealParameter], max_level_db: float) -> float:
        if parameter is None or parameter.value is None:
            return 1.0
        if parameter.unit not in (None, Unit.LINEAR):
            raise FormatError(f"Unsupported volume unit: {parameter.unit.value}")
        return db_to_value(parameter.value, max_level_db)

    @staticmethod
    def _pan(parameter: Optional[RealParameter]) -> float:
        if parameter is None or parameter.value is None:
            return 0.0
        if parameter.unit in (None, Unit.NORMALIZED):
            return parameter.value * 2.0 - 1.0
        if parameter.unit == Unit.LINEAR:
            return parameter.value
        raise FormatError(f"Unsupported panorama unit: {parameter.unit.value}")

    # ========================================================================
    # DEVICES
    # ========================================================================

    def _convert_devices(self, devices: List[Device], parent: Chunk, chain_name: str):
        if not devices:
            return

        fx_chain = parent.add_chunk(chain_name)
        for device in devices:
            device_chunk = self._create_device_chunk(device)
            if device_chunk is None:
                continue

            fx_chain.add_node(tags.FXCHAIN_BYPASS, 1 if device.is_bypassed() else 0, 0 if device.loaded else 1)
            fx_chain.children.append(device_chunk)
            self._convert_device_state(device, device_chunk)

            for parameter in device.automated_parameters:
                header = str(parameter.parameter_id or 0)
                if parameter.name:
                    header += f':{parameter.name}'
                self.envelope_targets[parameter] = _EnvelopeTarget(
                    fx_chain, tags.FXCHAIN_PARAMETER_ENVELOPE, device_chunk,
                    (header,) + _parameter_range(parameter),
                )

    def _create_device_chunk(self, device: Device) -> Optional[Chunk]:
        name = device.device_name or device.name or ''
        if device.plugin_format not in (PluginFormat.VST2, PluginFormat.VST3):
            self.notifier.log("Only VST2 and VST3 devices are supported: %s", name)
            return None

        is_instrument = device.is_instrument()

        if device.plugin_format == PluginFormat.VST3:
            plugin_type = tags.PLUGIN_VST_3_INSTRUMENT if is_instrument else tags.PLUGIN_VST_3
        else:
            plugin_type = tags.PLUGIN_VST_2_INSTRUMENT if is_instrument else tags.PLUGIN_VST_2

        description = f'{plugin_type}: {name}'
        if device.device_vendor:
            description += f' ({device.device_vendor})'

        if device.plugin_format == PluginFormat.VST3:
            plugin_id = f'{{{device.device_id or ""}}}'
        else:
            try:
                plugin_id = f'{device.device_id}<{self._vst2_hash(int(device.device_id), name)}>'
            except (TypeError, ValueError):
                self.notifier.log_error("Invalid VST2 plugin ID of %s: %s", name, device.device_id)
                return None
        return Chunk(tags.CHUNK_VST, [description, '', '0', '', plugin_id, ''])

    @staticmethod
    def _vst2_hash(device_id: int, name: str) -> str:
        """Reaper identifies VST2 plugins by 'VST' + the 4 ID characters + the lower case name"""
        text = ('VST' + int_to_text(device_id) + name.lower())[:16]
        return ''.join(f'{ord(c) & 0xFF:02X}' for c in text).ljust(32, '0')

    def _convert_device_state(self, device: Device, device_chunk: Chunk):
        if device.state is None:
            return
        try:
            with self.container.media_files.stream(device.state.path) as stream:
                handler_for(device.plugin_format, device.device_id or '').file_to_chunk(stream, device_chunk)
        except (NotFoundError, FormatError) as e:
            # The device is kept with the default state of the plugin
            self.notifier.log_error("Could not convert the plugin state of %s", device.name, exc=e)

    # ========================================================================
    # LANES & ENVELOPES
    # ========================================================================

    def _convert_lane(self, root: Chunk, timeline: Timeline, track: Optional[Track], parent_is_beats: bool):
        is_beats = resolve_is_beats(timeline, parent_is_beats)

        if isinstance(timeline, Lanes):
            lane_track = timeline.track or track
            for lane in timeline.lanes:
                self._convert_lane(root, lane, lane_track, is_beats)
        elif isinstance(timeline, Points):
            self._convert_envelope(timeline, is_beats)
        elif isinstance(timeline, Markers):
            self._convert_markers(root, timeline, is_beats)
        elif isinstance(timeline, Clips):
            chunk = self.track_chunks.get(track) if track is not None else None
            if chunk is None or chunk is root:
                self.notifier.log("Clips which are not on a track are not supported.")
                return
            for clip in timeline.clips:
                self._convert_item(chunk, clip, is_beats, 0.0, 0.0, None, _ItemContext())
        else:
            self.notifier.log("Unsupported lane content: %s", type(timeline).__name__)

    def _convert_envelope(self, points: Points, is_beats: bool):
        parameter = points.target.parameter
        transport = self.project.transport
        if parameter is None:
            self.notifier.log("Expression automation outside of clips is not supported.")
            return
        if transport is not None and parameter in (transport.tempo, transport.time_signature):
            # Written with the arrangement tempo automation
            return

        target = self.envelope_targets.get(parameter)
        if target is None:
            self.notifier.log("Automation target not supported: %s", parameter.name or type(parameter).__name__)
            return

        is_bool = isinstance(parameter, BoolParameter)
        envelope_chunk = Chunk(target.name, [str(p) for p in target.parameters])
        envelope_chunk.add_node('ACT', 1, -1)
        envelope_chunk.add_node('VIS', 1, 1, 1)
        envelope_chunk.add_node('ARM', 0)
        envelope_chunk.add_node('DEFSHAPE', SHAPE_SQUARE if is_bool else SHAPE_LINEAR, -1, -1)

        for point in points.points:
            time = _number(self._to_seconds(point.time, is_beats))
            if isinstance(point, BoolPoint):
                envelope_chunk.add_node(tags.ENVELOPE_POINT, time, 1 if point.value else 0, SHAPE_SQUARE)
            elif isinstance(point, RealPoint):
                shape = SHAPE_SQUARE if point.interpolation == Interpolation.HOLD else SHAPE_LINEAR
                envelope_chunk.add_node(tags.ENVELOPE_POINT, time, _number(point.value or 0.0), shape)
            elif isinstance(point, IntegerPoint):
                envelope_chunk.add_node(tags.ENVELOPE_POINT, time, point.value or 0, SHAPE_SQUARE)

        children = target.chunk.children
        if target.anchor is None:
            children.append(envelope_chunk)
        else:
            position = next(i for i, child in enumerate(children) if child is target.anchor)
            children.insert(position + 1, envelope_chunk)
            # Further envelopes of the same anchor follow this one
            target.anchor = envelope_chunk

    def _convert_markers(self, root: Chunk, markers: Markers, parent_is_beats: bool):
        is_beats = resolve_is_beats(markers, parent_is_beats)
        index = sum(1 for child in root.children if child.name == tags.PROJECT_MARKER)
        for marker in markers.markers:
            index += 1
            color = from_hex_color(marker.color) or 0
            root.add_node(tags.PROJECT_MARKER, index, _number(self._to_seconds(marker.time, is_beats)), marker.name or '', 0, color)

    # ========================================================================
    # ITEMS
    # ========================================================================

    def _convert_item(self, track_chunk: Chunk, clip: Clip, is_beats: bool, base: float, offset: float,
                      window: Optional[Tuple[float, float]], context: _ItemContext):
        """
        Create the items of a clip

        Args:
            track_chunk: The track to add the items to
            clip: The clip to convert
            is_beats: Time unit of the clip position
            base: Position of the parent content in seconds
            offset: Play start of the parent content, the content time at base
            window: Visible range of the parent clip in seconds
            context: Inherited properties of the parent clips
        """
        duration = get_duration(clip)
        if is_unset(duration):
            self.notifier.log_error("Clip without duration ignored: %s", clip.name or '')
            return

        start = self._absolute(base, clip.time - offset, is_beats)
        end = self._absolute(base, clip.time + duration - offset, is_beats)
        visible_start, visible_end = start, end
        if window is not None:
            if end <= window[0] or start >= window[1]:
                return
            visible_start = max(start, window[0])
            # Looped content is repeated up to the end of the parent clip
            visible_end = window[1] if context.looped else min(end, window[1])

        content_is_beats = resolve_content_is_beats(clip, is_beats)
        play_start = clip.play_start or 0.0

        context = self._item_context(clip, context, start, end, is_beats)
        content = clip.content
        if isinstance(content, Clips):
            content_is_beats = resolve_is_beats(content, content_is_beats)
            for inner in content.clips:
                self._convert_item(track_chunk, inner, content_is_beats, start, play_start,
                                   (visible_start, visible_end), context)
            return

        item = self._create_item(track_chunk, visible_start, visible_end, context)
        # Content time at the visible start of the item
        content_start = play_start + self._delta(start, visible_start, content_is_beats)
        sample_offset = self._absolute(visible_start, content_start, content_is_beats) - visible_start
        item.add_node(tags.ITEM_SAMPLE_OFFSET, _number(sample_offset))

        content_zero = visible_start - sample_offset
        if isinstance(content, (Lanes, Notes)):
            self._convert_midi(item, content, content_zero, resolve_is_beats(content, content_is_beats))
        elif isinstance(content, Audio):
            self._convert_audio(item, content, 1.0)
        elif isinstance(content, Warps):
            self._convert_warps(item, content, content_zero, resolve_is_beats(content, content_is_beats))
        else:
            self.notifier.log("Unsupported clip content: %s", type(content).__name__)

    def _item_context(self, clip: Clip, parent: _ItemContext, start: float, end: float, is_beats: bool) -> _ItemContext:
        context = _ItemContext(
            name=clip.name or parent.name,
            comment=clip.comment or parent.comment,
            muted=parent.muted or clip.enable is False,
            fade_in=parent.fade_in,
            fade_out=parent.fade_out,
            looped=parent.looped or clip.loop_end is not None,
        )
        fade_is_beats = is_beats if clip.fade_time_unit is None else clip.fade_time_unit == TimeUnit.BEATS
        if clip.fade_in_time:
            context.fade_in = self._absolute(start, clip.fade_in_time, fade_is_beats) - start
        if clip.fade_out_time:
            context.fade_out = end - self._absolute(end, -clip.fade_out_time, fade_is_beats)
        return context

    @staticmethod
    def _create_item(track_chunk: Chunk, start: float, end: float, context: _ItemContext) -> Chunk:
        item = track_chunk.add_chunk(tags.CHUNK_ITEM)
        item.add_node(tags.ITEM_POSITION, _number(start))
        item.add_node(tags.ITEM_LENGTH, _number(end - start))
        item.add_node(tags.ITEM_LOOP, 1 if context.looped else 0)
        item.add_node(tags.ITEM_FADEIN, 1, _number(context.fade_in), 0)
        item.add_node(tags.ITEM_FADEOUT, 1, _number(context.fade_out), 0)
        item.add_node(tags.ITEM_MUTE, 1 if context.muted else 0, 0)
        if context.name:
            item.add_node(tags.ITEM_NAME, context.name)
        if context.comment:
            notes_chunk = item.add_chunk(tags.ITEM_NOTES)
            for line in context.comment.splitlines():
                notes_chunk.children.append(Node('|' + line))
        return item

    # ------------------------------------------------------------------
    # MIDI
    # ------------------------------------------------------------------

    def _convert_midi(self, item: Chunk, content: Timeline, content_zero: float, is_beats: bool):
        notes: List[Notes] = []
        expressions: List[Points] = []
        self._collect_midi(content, notes, expressions)

        if is_beats:
            def to_ticks(time: float) -> int:
                return round(time * TICKS_PER_QUARTER_NOTE)
        else:
            def to_ticks(time: float) -> int:
                return round(self._delta(content_zero, content_zero + time, True) * TICKS_PER_QUARTER_NOTE)

        events: List[ReaperMidiEvent] = []
        for lane in notes:
            for note in lane.notes:
                velocity = DEFAULT_VELOCITY if note.velocity is None else round(note.velocity * 127)
                release = 0 if note.release_velocity is None else round(note.release_velocity * 127)
                channel = note.channel & 0x0F
                events.append(ReaperMidiEvent(to_ticks(note.time), channel, NOTE_ON, note.key & 0x7F, min(127, max(0, velocity))))
                events.append(ReaperMidiEvent(to_ticks(note.time + note.duration), channel, NOTE_OFF, note.key & 0x7F, min(127, max(0, release))))

        for points in expressions:
            events.extend(self._convert_expression(points, to_ticks))

        # Stable: at the same position notes keep their order before expressions
        events.sort(key=lambda event: event.position)

        source = item.add_chunk(tags.CHUNK_ITEM_SOURCE, tags.SOURCE_MIDI)
        source.add_node(tags.SOURCE_HASDATA, 1, TICKS_PER_QUARTER_NOTE, 'QN')
        position = 0
        for event in events:
            event.offset = event.position - position
            position = event.position
            source.children.append(event.to_node())

    def _collect_midi(self, timeline: Timeline, notes: List[Notes], expressions: List[Points]):
        if isinstance(timeline, Notes):
            notes.append(timeline)
        elif isinstance(timeline, Points) and timeline.target.expression is not None:
            expressions.append(timeline)
        elif isinstance(timeline, Lanes):
            for lane in timeline.lanes:
                self._collect_midi(lane, notes, expressions)
        elif timeline is not None:
            self.notifier.log("Unsupported content in MIDI clip: %s", type(timeline).__name__)

    def _convert_expression(self, points: Points, to_ticks: Callable[[float], int]) -> List[ReaperMidiEvent]:
        target = points.target
        code = EXPRESSION_CODES.get(target.expression)
        if code is None:
            self.notifier.log("Unsupported MIDI expression: %s", target.expression.value)
            return []

        channel = (target.channel or 0) & 0x0F
        events = []
        for point in points.points:
            if not isinstance(point, (IntegerPoint, RealPoint)) or point.value is None:
                continue
            value = int(round(point.value))
            if code == PITCH_BEND:
                value = min(16383, max(0, value))
                data1, data2 = value & 0x7F, (value >> 7) & 0x7F
            else:
                value = min(127, max(0, value))
                if code == POLY_PRESSURE:
                    data1, data2 = (target.key or 0) & 0x7F, value
                elif code == CONTROL_CHANGE:
                    data1, data2 = (target.controller or 0) & 0x7F, value
                else:
                    data1, data2 = value, 0
            events.append(ReaperMidiEvent(to_ticks(point.time), channel, code, data1, data2))
        return events

    # ------------------------------------------------------------------
    # AUDIO
    # ------------------------------------------------------------------

    def _convert_warps(self, item: Chunk, warps: Warps, content_zero: float, is_beats: bool):
        play_rate = 1.0
        events = warps.events
        if len(events) >= 2 and events[0].time == 0 and events[0].content_time == 0:
            seconds = self._absolute(content_zero, events[1].time, is_beats) - content_zero
            # Warped audio content is always in seconds
            content_is_beats = resolve_warps_is_beats(warps, False)
            content_seconds = self._absolute(content_zero, events[1].content_time, content_is_beats) - content_zero
            if seconds > 0 and content_seconds > 0:
                play_rate = content_seconds / seconds

        if isinstance(warps.content, Audio):
            self._convert_audio(item, warps.content, play_rate)
        else:
            self.notifier.log("Only audio is supported as warped content.")

    def _convert_audio(self, item: Chunk, audio: Audio, play_rate: float):
        item.add_node(tags.ITEM_PLAYRATE, _number(play_rate), 1, '0.000', -1)
        if audio.file is None:
            return

        media_id = audio.file.path
        filename = Path(media_id.replace('\\', '/')).name
        source_type = tags.SOURCE_FLAC if filename.lower().endswith('.flac') else tags.SOURCE_WAVE
        source = item.add_chunk(tags.CHUNK_ITEM_SOURCE, source_type)
        source.add_node(tags.SOURCE_FILE, filename)

        known = self.audio_files.get(filename)
        if known is not None and known != media_id:
            self.notifier.log_error("Different audio files with the same name: %s", filename)
        self.audio_files.setdefault(filename, media_id)


def _parameter_range(parameter: Parameter) -> Tuple[str, str, str]:
    """Minimum, maximum and current value of a plugin parameter envelope"""
    if isinstance(parameter, (RealParameter, IntegerParameter)):
        minimum, maximum = parameter.min or 0, parameter.max or 1
    elif isinstance(parameter, EnumParameter):
        minimum, maximum = 0, max((parameter.count or 1) - 1, 0)
    else:
        minimum, maximum = 0, 1
    value = getattr(parameter, 'value', None)
    if isinstance(value, bool):
        value = 1 if value else 0
    return _number(minimum), _number(maximum), _number(value or 0)


class ReaperWriter:
    """Writes a container as Reaper project"""

    def __init__(self, notifier: Optional[Notifier] = None, token: Optional[CancellationToken] = None):
        self.notifier = notifier or LoggingNotifier()
        self.token = token or CancellationToken()

    def write(self, container: DawProjectContainer, filepath: Union[str, Path]):
        """
        Write the container

        Args:
            container: Project, metadata and media files
            filepath: Destination .rpp file, audio files are copied next to it
        """
        path = Path(filepath)
        logger.info(f"Writing Reaper project: {path}")

        writer = _ProjectWriter(container, self.notifier, self.token)
        root = writer.convert()

        # Audio copies and the project file are moved in place together, or not at all
        with ExitStack() as staged:
            for filename, media_id in writer.audio_files.items():
                self.token.check()
                self._copy_audio(staged, container, media_id, path.parent / filename)

            self.token.check()
            tmp_path = staged.enter_context(atomic_output(path))
            tmp_path.write_text(format_project(root), encoding='utf-8')

        logger.info(f"✓ Wrote {len(root.find_chunks(tags.CHUNK_TRACK))} tracks, {len(writer.audio_files)} audio files")

    def _copy_audio(self, staged: ExitStack, container: DawProjectContainer, media_id: str, target: Path):
        try:
            source = container.media_files.stream(media_id)
        except NotFoundError as e:
            # The item stays in the project with a missing source
            self.notifier.log_error("Could not copy audio file %s", media_id, exc=e)
            return

        with source:
            tmp_path = staged.enter_context(atomic_output(target))
            with open(tmp_path, 'wb') as out:
                shutil.copyfileobj(source, out)
        logger.debug(f"  Staged {media_id} as {target.name}")


def write_reaper_project(container: DawProjectContainer, filepath: Union[str, Path]):
    """Convenience function"""
    ReaperWriter().write(container, filepath)


__all__ = [
    'TrackInfo',
    'create_track_structure',
    'ReaperWriter',
    'write_reaper_project',
]
