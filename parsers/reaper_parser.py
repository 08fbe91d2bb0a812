"""
Reaper → DAWproject Parser

Reads a Reaper project (.rpp) and builds the DAWproject object graph:

    metadata        AUTHOR, NOTES, RENDER_METADATA
    transport       TEMPO, TEMPOENVEX (tempo and signature automation)
    master          MASTER_* nodes, MASTERFXLIST, master envelopes
    tracks          TRACK chunks, folders (ISBUS), receives (AUXRECV), devices,
                    items (MIDI and audio), envelopes
    markers         MARKER (regions are dropped)

Reaper stores all positions in seconds. Arrangement lanes, envelopes and
markers stay in seconds; clips are converted to beats with the tempo map
built from the tempo envelope.
"""

import io
import logging
import os
import re
import uuid
from pathlib import Path, PureWindowsPath
from typing import Dict, List, Optional, Tuple, Union

import soundfile as sf

from core import reaper_tags as tags
from core.config import APP_NAME, ConverterSettings
from core.container import DawProjectContainer
from core.dawproject import (
    Application, Arrangement, Audio, BoolParameter, BoolPoint, Channel, Clip, Clips,
    ContentType, Device, DeviceRole, ExpressionType, FileReference, IntegerPoint,
    Interpolation, Lanes, Marker, Markers, Metadata, MixerRole, Note, Notes, Parameter,
    PluginFormat, Points, RealPoint, Send, SendType, Target,
    TimeSignatureParameter, TimeSignaturePoint, TimeUnit, Track, Transport, Unit,
    real_parameter,
)
from core.errors import FormatError
from core.media import ReaperMediaFiles
from core.notifier import CancellationToken, LoggingNotifier, Notifier
from core.rpp import Chunk, parse_project
from core.tempo import TempoChange, seconds_to_beats, tempo_map_from_points
from core.timeutils import set_time_unit
from converters.conversions import db_to_value, to_hex_color, value_to_db
from converters.device_handlers import PRESET_FILE_ENDINGS, handler_for
from converters.midi_event import (
    CHANNEL_PRESSURE, CONTROL_CHANGE, NOTE_OFF, NOTE_ON, PITCH_BEND, POLY_PRESSURE,
    PROGRAM_CHANGE, ReaperMidiEvent,
)

logger = logging.getLogger(__name__)

PATTERN_DEVICE_DESCRIPTION = re.compile(r'(VST|VSTi|VST3|VST3i|CLAP|CLAPi)?:\s(.*?)(\s\((.*)\))?$')
PATTERN_VST2_ID = re.compile(r'(.*)<.*')
PATTERN_VST3_ID = re.compile(r'.*\{(.*)\}')

DEFAULT_TEMPO = 120.0
MIN_TEMPO = 1.0
MAX_TEMPO = 960.0
MAX_SEND_LEVEL_DB = 12.0

# ID3 tag -> metadata fields
METADATA_TAGS = {
    'ID3:COMM': ('comment',),
    'ID3:TCOM': ('composer', 'songwriter'),
    'ID3:TCON': ('genre',),
    'ID3:TCOP': ('copyright',),
    'ID3:TIPL': ('producer',),
    'ID3:TIT2': ('title',),
    'ID3:TPE1': ('artist',),
    'ID3:TPE2': ('original_artist',),
    'ID3:TYER': ('year',),
    'ID3:TALB': ('album',),
}

PLUGIN_FORMATS = {
    tags.PLUGIN_VST_2: PluginFormat.VST2,
    tags.PLUGIN_VST_2_INSTRUMENT: PluginFormat.VST2,
    tags.PLUGIN_VST_3: PluginFormat.VST3,
    tags.PLUGIN_VST_3_INSTRUMENT: PluginFormat.VST3,
    tags.PLUGIN_CLAP: PluginFormat.CLAP,
    tags.PLUGIN_CLAP_INSTRUMENT: PluginFormat.CLAP,
}


def _float_value(chunk: Chunk, name: str, default: float) -> float:
    node = chunk.find(name)
    return default if node is None else node.float_param(0, default)


def _int_value(chunk: Chunk, name: str, default: int) -> int:
    node = chunk.find(name)
    return default if node is None else node.int_param(0, default)


def read_notes(notes_chunk: Chunk) -> str:
    """Join the '|' text lines of a NOTES chunk"""
    lines = []
    for child in notes_chunk.children:
        text = child.line or child.name
        pos = text.find('|')
        if pos != -1:
            lines.append(text[pos + 1:])
    return '\r\n'.join(lines)


class _ProjectReader:
    """State of one Reaper → DAWproject conversion"""

    def __init__(self, root: Chunk, container: DawProjectContainer, source_dir: Path,
                 settings: ConverterSettings, notifier: Notifier, token: CancellationToken):
        self.root = root
        self.container = container
        self.project = container.project
        self.media_files: ReaperMediaFiles = container.media_files
        self.source_dir = source_dir
        self.settings = settings
        self.notifier = notifier
        self.token = token

        self.tempo_map: List[TempoChange] = [TempoChange(0.0, DEFAULT_TEMPO)]

        # Folder reconstruction
        self.top_tracks: List[Track] = []
        self.folder_tracks: List[Track] = self.top_tracks
        self.folder_stack: List[List[Track]] = []

        # Receives are stored at the receiving track but belong to the source track
        self.send_mapping: Dict[int, List[Send]] = {}
        self.send_envelopes: Dict[Send, Chunk] = {}
        self.track_lanes: Dict[Track, Lanes] = {}

        # Source audio file -> path inside the archive
        self.archive_paths: Dict[Path, str] = {}

    def convert(self):
        project = self.project
        project.application = Application(
            f'Cockos Reaper (converted with {APP_NAME})',
            self.root.param(1, 'Unknown'),
        )

        self._convert_metadata(self.container.metadata)

        project.arrangement = Arrangement(lanes=Lanes(time_unit=TimeUnit.SECONDS))

        self._convert_transport()
        self._convert_master()
        self.token.check()

        self._convert_tracks()
        self._convert_markers()

        project.structure = self.top_tracks

    # ========================================================================
    # METADATA & TRANSPORT
    # ========================================================================

    def _convert_metadata(self, metadata: Metadata):
        author_node = self.root.find(tags.PROJECT_AUTHOR)
        if author_node is not None:
            author = author_node.param(0, '')
            if author.strip():
                metadata.artist = author
                metadata.producer = author
                metadata.composer = author
                metadata.songwriter = author

        notes_chunk = self.root.find_chunk(tags.PROJECT_NOTES)
        if notes_chunk is not None:
            metadata.comment = read_notes(notes_chunk)

        render_chunk = self.root.find_chunk(tags.PROJECT_RENDER_METADATA)
        if render_chunk is None:
            return
        for node in render_chunk.find_all(tags.METADATA_TAG):
            if len(node.parameters) < 2:
                continue
            for field_name in METADATA_TAGS.get(node.parameters[0], ()):
                setattr(metadata, field_name, node.parameters[1])

    def _convert_transport(self):
        tempo = DEFAULT_TEMPO
        numerator = 4
        denominator = 4

        tempo_node = self.root.find(tags.PROJECT_TEMPO)
        if tempo_node is not None:
            values = tempo_node.float_params(-1)
            if values and values[0] > 0:
                tempo = min(MAX_TEMPO, max(MIN_TEMPO, values[0]))
            if len(values) >= 3 and values[1] > 0 and values[2] > 0:
                numerator = int(values[1])
                denominator = int(values[2])

        self.project.transport = Transport(
            tempo=real_parameter(Unit.BPM, MIN_TEMPO, MAX_TEMPO, tempo, 'Tempo'),
            time_signature=TimeSignatureParameter(name='Time Signature', numerator=numerator, denominator=denominator),
        )
        self.tempo_map = [TempoChange(0.0, tempo)]
        logger.debug(f"Tempo: {tempo} BPM, {numerator}/{denominator}")

    def _convert_tempo_automation(self):
        envelope_chunk = self.root.find_chunk(tags.PROJECT_TEMPO_ENVELOPE)
        if envelope_chunk is None:
            return

        transport = self.project.transport
        arrangement = self.project.arrangement

        # The tempo envelope is kept in seconds
        tempo_points = Points(time_unit=TimeUnit.SECONDS, unit=Unit.BPM, target=Target(parameter=transport.tempo))
        signature_points = Points(time_unit=TimeUnit.SECONDS, target=Target(parameter=transport.time_signature))

        for point_node in envelope_chunk.find_all(tags.ENVELOPE_POINT):
            time = point_node.float_param(0)
            # Shape 0 ramps linear to the next point, everything else holds the value
            interpolation = Interpolation.LINEAR if point_node.int_param(2, 1) == 0 else Interpolation.HOLD
            tempo_points.points.append(RealPoint(time, point_node.float_param(1), interpolation))

            signature = point_node.int_param(3, 0)
            if signature > 0:
                signature_points.points.append(TimeSignaturePoint(time, signature & 0xFFFF, (signature >> 16) & 0xFFFF))

        arrangement.tempo_automation = tempo_points

        if signature_points.points:
            if signature_points.points[0].time > 0:
                signature_points.points.insert(0, TimeSignaturePoint(
                    0.0, transport.time_signature.numerator, transport.time_signature.denominator))
            arrangement.time_signature_automation = signature_points

        self.tempo_map = tempo_map_from_points(
            [(p.time, p.value, p.interpolation == Interpolation.LINEAR) for p in tempo_points.points],
            transport.tempo.value,
        )
        logger.debug(f"Tempo map with {len(self.tempo_map)} changes, {len(signature_points.points)} signature changes")

    def _to_beats(self, seconds: float) -> float:
        return seconds_to_beats(seconds, self.tempo_map)

    # ========================================================================
    # MASTER & TRACKS
    # ========================================================================

    def _convert_master(self):
        root = self.root
        channel = Channel(role=MixerRole.MASTER)
        master = Track(name='Master', content_types=[ContentType.AUDIO], channel=channel)
        self.folder_tracks.append(master)

        channels = _int_value(root, tags.MASTER_NUMBER_OF_CHANNELS, -1)
        channel.audio_channels = channels if channels > 0 else 2

        vol_pan = root.find(tags.MASTER_VOLUME_PAN)
        if vol_pan is not None and vol_pan.parameters:
            volume, pan = vol_pan.float_param(0, 1.0), vol_pan.float_param(1, 0.0)
            channel.volume = real_parameter(Unit.LINEAR, 0.0, 1.0, min(1.0, value_to_db(volume, 0)), 'Volume')
            channel.pan = real_parameter(Unit.NORMALIZED, 0.0, 1.0, (pan + 1.0) / 2.0, 'Pan')

        mute_solo = _int_value(root, tags.MASTER_MUTE_SOLO, -1)
        if mute_solo >= 0:
            channel.mute = BoolParameter(name='Mute', value=(mute_solo & 1) > 0)
            channel.solo = (mute_solo & 2) > 0

        color = _int_value(root, tags.MASTER_COLOR, -1)
        if color >= 0:
            master.color = to_hex_color(color)

        self._create_track_lanes(master)
        channel.devices = self._convert_devices(master, root, tags.MASTER_CHUNK_FXCHAIN)

        self._convert_tempo_automation()

        self._convert_automation(master, root, tags.MASTER_VOLUME_ENVELOPE, channel.volume, True)
        self._convert_automation(master, root, tags.MASTER_PANORAMA_ENVELOPE, channel.pan, True)

    def _convert_tracks(self):
        tracks = []
        for track_chunk in self.root.find_chunks(tags.CHUNK_TRACK):
            self.token.check()
            track = self._convert_track(track_chunk)
            tracks.append(track)
            logger.debug(f"  Track: {track.name}")

        # Second pass: assign the collected sends to their source tracks
        for index, track in enumerate(tracks):
            sends = self.send_mapping.get(index)
            if not sends:
                continue
            track.channel.sends = sends
            for send in sends:
                envelope_chunk = self.send_envelopes.get(send)
                if envelope_chunk is not None:
                    self._convert_envelope(track, envelope_chunk, send.volume, True)

        logger.info(f"✓ Converted {len(tracks)} tracks")

    def _convert_track(self, track_chunk: Chunk) -> Track:
        channel = Channel()
        track = Track(channel=channel)

        name_node = track_chunk.find(tags.TRACK_NAME)
        if name_node is not None:
            track.name = name_node.param(0, 'Track')

        color = _int_value(track_chunk, tags.TRACK_COLOR, -1)
        if color >= 0:
            track.color = to_hex_color(color)

        channels = _int_value(track_chunk, tags.TRACK_NUMBER_OF_CHANNELS, -1)
        channel.audio_channels = channels if channels > 0 else 2

        has_receives = self._convert_receives(track_chunk, channel)
        if has_receives:
            # A track which receives from other tracks is an effect (aux) track
            channel.role = MixerRole.EFFECT
            track.content_types = [ContentType.AUDIO]

        vol_pan = track_chunk.find(tags.TRACK_VOLUME_PAN)
        if vol_pan is not None and vol_pan.parameters:
            volume, pan = vol_pan.float_param(0, 1.0), vol_pan.float_param(1, 0.0)
            channel.volume = real_parameter(Unit.LINEAR, 0.0, db_to_value(1.0, MAX_SEND_LEVEL_DB), value_to_db(volume, 0), 'Volume')
            channel.pan = real_parameter(Unit.NORMALIZED, 0.0, 1.0, (pan + 1.0) / 2.0, 'Pan')

        mute_solo = track_chunk.find(tags.TRACK_MUTE_SOLO)
        if mute_solo is not None:
            values = mute_solo.int_params(-1)
            if values:
                channel.mute = BoolParameter(name='Mute', value=values[0] > 0)
            if len(values) > 1:
                channel.solo = values[1] > 0

        structure_node = track_chunk.find(tags.TRACK_STRUCTURE)
        self._convert_folder_structure(track, structure_node.int_params(-1) if structure_node is not None else [])

        lanes = self._create_track_lanes(track)
        channel.devices = self._convert_devices(track, track_chunk, tags.CHUNK_FXCHAIN)

        content_types = self._convert_clips(lanes, track_chunk)
        if not has_receives:
            # Reaper tracks are always hybrid, set only the types which are used
            track.content_types = content_types or [ContentType.NOTES, ContentType.AUDIO]

        self._convert_automation(track, track_chunk, tags.TRACK_VOLUME_ENVELOPE, channel.volume, True)
        self._convert_automation(track, track_chunk, tags.TRACK_PANORAMA_ENVELOPE, channel.pan, True)
        self._convert_automation(track, track_chunk, tags.TRACK_MUTE_ENVELOPE, channel.mute, False)
        return track

    def _convert_receives(self, track_chunk: Chunk, channel: Channel) -> bool:
        """Create sends from the AUXRECV nodes, the AUXVOLENV following a receive belongs to it"""
        send = None
        found = False
        for node in track_chunk.children:
            if node.name == tags.TRACK_AUX_RECEIVE:
                found = True
                source_index = node.int_param(0, 0)
                send = Send(
                    name='Send',
                    volume=real_parameter(Unit.LINEAR, 0.0, 1.0, value_to_db(node.float_param(2, 1.0), MAX_SEND_LEVEL_DB), 'Volume'),
                    pan=real_parameter(Unit.LINEAR, -1.0, 1.0, node.float_param(3, 0.0), 'Pan'),
                    enable=BoolParameter(name='Enable', value=node.int_param(4, 0) == 0),
                    type=SendType.POST if node.int_param(1, 0) == 0 else SendType.PRE,
                    destination=channel,
                )
                self.send_mapping.setdefault(source_index, []).append(send)
            elif node.name == tags.TRACK_AUX_ENVELOPE and isinstance(node, Chunk) and send is not None:
                self.send_envelopes[send] = node
        return found

    def _convert_folder_structure(self, track: Track, structure: List[int]):
        """
        Rebuild the folder tree from the ISBUS <type> <direction> node

        type 1 starts a folder, type 2 is the last track of |direction|
        folders, anything else is a normal track.
        """
        kind = structure[0] if len(structure) == 2 else 0

        if kind == 1:
            # A folder is stored as folder track plus a master track inside of it
            track.channel.role = MixerRole.MASTER
            folder = Track(name=track.name, color=track.color, comment=track.comment,
                           content_types=[ContentType.TRACKS])
            track.name = f'{track.name} Master'
            self.folder_tracks.append(folder)
            self.folder_stack.append(self.folder_tracks)
            self.folder_tracks = folder.tracks
            self.folder_tracks.append(track)
            return

        self.folder_tracks.append(track)
        if kind == 2:
            for _ in range(abs(structure[1])):
                if not self.folder_stack:
                    break
                self.folder_tracks = self.folder_stack.pop()

    def _create_track_lanes(self, track: Track) -> Lanes:
        lanes = Lanes(track=track)
        self.project.arrangement.lanes.lanes.append(lanes)
        self.track_lanes[track] = lanes
        return lanes

    # ========================================================================
    # AUTOMATION
    # ========================================================================

    def _convert_automation(self, track: Track, parent: Chunk, envelope_name: str,
                            parameter: Optional[Parameter], interpolate: bool):
        envelope_chunk = parent.find_chunk(envelope_name)
        if envelope_chunk is None or parameter is None:
            return
        self._convert_envelope(track, envelope_chunk, parameter, interpolate)

    def _convert_envelope(self, track: Track, envelope_chunk: Chunk, parameter: Parameter, interpolate: bool):
        envelope = Points(target=Target(parameter=parameter), unit=Unit.LINEAR if interpolate else None)
        for point_node in envelope_chunk.find_all(tags.ENVELOPE_POINT):
            time = point_node.float_param(0)
            value = point_node.float_param(1)
            if interpolate:
                envelope.points.append(RealPoint(time, value, Interpolation.LINEAR))
            else:
                envelope.points.append(BoolPoint(time, value > 0))
        self.track_lanes[track].lanes.append(envelope)

    # ========================================================================
    # DEVICES
    # ========================================================================

    def _convert_devices(self, track: Track, parent: Chunk, chain_name: str) -> List[Device]:
        fx_chain = parent.find_chunk(chain_name)
        if fx_chain is None:
            return []

        devices = []
        bypass = False
        offline = False
        device = None
        for node in fx_chain.children:
            if node.name == tags.FXCHAIN_BYPASS:
                values = node.int_params(0)
                bypass = len(values) > 0 and values[0] > 0
                offline = len(values) > 1 and values[1] > 0
            elif node.name in (tags.CHUNK_CLAP, tags.CHUNK_VST) and isinstance(node, Chunk):
                device = self._convert_device(node, bypass, offline)
                if device is not None:
                    devices.append(device)
            elif node.name == tags.FXCHAIN_PARAMETER_ENVELOPE and isinstance(node, Chunk) and device is not None:
                self._create_automation_parameter(track, device, node)
        return devices

    def _convert_device(self, chunk: Chunk, bypass: bool, offline: bool) -> Optional[Device]:
        if len(chunk.parameters) < 3:
            return None

        description = chunk.parameters[0]
        match = PATTERN_DEVICE_DESCRIPTION.match(description)
        if match is None or match.group(1) is None:
            self.notifier.log_error("Could not detect the plugin type of: %s", description)
            return None

        plugin_type = match.group(1)
        plugin_format = PLUGIN_FORMATS[plugin_type]
        if plugin_format == PluginFormat.CLAP:
            device_id = chunk.parameters[1]
        else:
            pattern = PATTERN_VST2_ID if plugin_format == PluginFormat.VST2 else PATTERN_VST3_ID
            id_match = pattern.match(chunk.param(4, ''))
            if id_match is None:
                self.notifier.log_error("Could not read the plugin ID of: %s", description)
                return None
            device_id = id_match.group(1)

        name = match.group(2)
        ending = PRESET_FILE_ENDINGS[plugin_format]
        device = Device(
            plugin_format=plugin_format,
            name=name,
            device_name=name,
            device_id=device_id,
            device_vendor=match.group(4),
            # No other type info available, therefore assume an audio effect
            device_role=DeviceRole.INSTRUMENT if tags.is_instrument_plugin(plugin_type) else DeviceRole.AUDIO_FX,
            enabled=BoolParameter(name='On/Off', value=not bypass),
            loaded=not offline,
            state=FileReference(f'plugins/{uuid.uuid4()}{ending}', external=False),
        )

        try:
            out = io.BytesIO()
            handler_for(plugin_format, device_id).chunk_to_file(chunk, out)
            self.media_files.add_data(device.state.path, out.getvalue(), ending)
        except FormatError as e:
            # Keep the device, only its state is lost
            self.notifier.log_error("Could not convert the plugin state of %s", name, exc=e)
            device.state = None

        logger.debug(f"    Device: {name} ({plugin_type})")
        return device

    def _create_automation_parameter(self, track: Track, device: Device, envelope_chunk: Chunk):
        # <PARMENV 3:Gain 0 1 0.5
        parts = envelope_chunk.param(0, '0').split(':', 1)
        try:
            parameter_id = int(parts[0])
        except ValueError:
            parameter_id = 0

        parameter = real_parameter(
            Unit.LINEAR,
            envelope_chunk.float_param(1, 0.0),
            envelope_chunk.float_param(2, 0.0),
            envelope_chunk.float_param(3, 0.0),
            parts[1] if len(parts) > 1 else None,
        )
        parameter.parameter_id = parameter_id
        device.automated_parameters.append(parameter)
        self._convert_envelope(track, envelope_chunk, parameter, True)

    # ========================================================================
    # ITEMS
    # ========================================================================

    def _convert_clips(self, lanes: Lanes, track_chunk: Chunk) -> List[ContentType]:
        content_types: List[ContentType] = []
        clips = Clips()
        set_time_unit(clips, True)
        lanes.lanes.append(clips)

        for item_chunk in track_chunk.find_chunks(tags.CHUNK_ITEM):
            clip = self._convert_clip(item_chunk, content_types)
            if clip is not None:
                clips.clips.append(clip)
        return content_types

    def _convert_clip(self, item_chunk: Chunk, content_types: List[ContentType]) -> Optional[Clip]:
        position = _float_value(item_chunk, tags.ITEM_POSITION, 0.0)
        length = _float_value(item_chunk, tags.ITEM_LENGTH, 1.0)
        start = self._to_beats(position)
        end = self._to_beats(position + length)

        clip = Clip(time=start, duration=end - start, content_time_unit=TimeUnit.BEATS)
        if _float_value(item_chunk, tags.ITEM_MUTE, 0.0) > 0:
            clip.enable = False

        name_node = item_chunk.find(tags.ITEM_NAME)
        if name_node is not None:
            clip.name = name_node.param(0)

        notes_chunk = item_chunk.find_chunk(tags.ITEM_NOTES)
        if notes_chunk is not None:
            clip.comment = read_notes(notes_chunk)

        # FADEIN 1 0.01 0 1 0 0 0 - 2nd parameter is the fade time in seconds
        fade_in = item_chunk.find(tags.ITEM_FADEIN)
        if fade_in is not None and fade_in.float_param(1) > 0:
            clip.fade_in_time = self._to_beats(position + fade_in.float_param(1)) - start
            clip.fade_time_unit = TimeUnit.BEATS
        fade_out = item_chunk.find(tags.ITEM_FADEOUT)
        if fade_out is not None and fade_out.float_param(1) > 0:
            clip.fade_out_time = end - self._to_beats(position + length - fade_out.float_param(1))
            clip.fade_time_unit = TimeUnit.BEATS

        source_chunk = item_chunk.find_chunk(tags.CHUNK_ITEM_SOURCE)
        if source_chunk is None or not source_chunk.parameters:
            return None

        offset = _float_value(item_chunk, tags.ITEM_SAMPLE_OFFSET, 0.0)
        inner = Clip(
            time=0.0,
            duration=clip.duration,
            play_start=self._to_beats(position + offset) - start,
            content_time_unit=TimeUnit.BEATS,
        )

        source_type = source_chunk.parameters[0]
        if source_type == tags.SOURCE_MIDI:
            lanes = Lanes()
            inner.content = lanes
            loop_length = self._convert_midi(source_chunk, lanes)
            content_type = ContentType.NOTES
        elif source_type in (tags.SOURCE_WAVE, tags.SOURCE_FLAC):
            audio = self._convert_audio(source_chunk)
            if audio is None:
                return None
            inner.content = audio
            loop_length = self._to_beats(position + audio.duration) - start
            content_type = ContentType.AUDIO
        else:
            self.notifier.log("Clip type not supported: %s", source_type)
            return None

        if content_type not in content_types:
            content_types.append(content_type)

        if _int_value(item_chunk, tags.ITEM_LOOP, 0) > 0:
            clip.loop_start = 0.0
            clip.loop_end = loop_length
            inner.duration = loop_length

        clip.content = Clips(clips=[inner])
        return clip

    def _convert_midi(self, source_chunk: Chunk, lanes: Lanes) -> float:
        """
        Convert the MIDI events of a source

        Returns:
            The length of the MIDI data in beats
        """
        notes = Notes()
        lanes.lanes.append(notes)

        ticks = self._read_ticks_per_quarter_note(source_chunk)
        if ticks <= 0:
            return 0.0

        envelopes: Dict[Tuple[ExpressionType, int, int], Points] = {}
        note_starts: List[ReaperMidiEvent] = []
        position = 0
        for node in source_chunk.children:
            event = ReaperMidiEvent.from_node(node)
            if event is None:
                continue
            position += event.offset
            event.position = position

            code = event.code
            if code == NOTE_ON and event.data2 > 0:
                note_starts.append(event)
            elif code == NOTE_OFF or code == NOTE_ON:
                note_start = next((e for e in note_starts
                                   if e.channel == event.channel and e.data1 == event.data1), None)
                if note_start is None:
                    self.notifier.log_error("Note off without note on: key %d, velocity %d", event.data1, event.data2)
                    continue
                note_starts.remove(note_start)
                notes.notes.append(Note(
                    time=note_start.position / ticks,
                    duration=(event.position - note_start.position) / ticks,
                    key=note_start.data1,
                    channel=event.channel,
                    velocity=note_start.data2 / 127.0,
                    release_velocity=event.data2 / 127.0 if code == NOTE_OFF else 0.0,
                ))
            elif code == POLY_PRESSURE:
                self._add_point(envelopes, ExpressionType.POLY_PRESSURE, event.channel, event.data1, event, ticks, event.data2)
            elif code == CONTROL_CHANGE:
                self._add_point(envelopes, ExpressionType.CHANNEL_CONTROLLER, event.channel, event.data1, event, ticks, event.data2)
            elif code == PROGRAM_CHANGE:
                self._add_point(envelopes, ExpressionType.PROGRAM_CHANGE, event.channel, 0, event, ticks, event.data1)
            elif code == CHANNEL_PRESSURE:
                self._add_point(envelopes, ExpressionType.CHANNEL_PRESSURE, event.channel, 0, event, ticks, event.data1)
            elif code == PITCH_BEND:
                self._add_point(envelopes, ExpressionType.PITCH_BEND, event.channel, 0, event, ticks, event.data1 + event.data2 * 128)

        if note_starts:
            logger.debug(f"    {len(note_starts)} notes without note off ignored")

        lanes.lanes.extend(envelopes.values())
        return position / ticks

    @staticmethod
    def _read_ticks_per_quarter_note(source_chunk: Chunk) -> int:
        # HASDATA 1 960 QN
        has_data = source_chunk.find(tags.SOURCE_HASDATA)
        if has_data is None or len(has_data.parameters) != 3 or has_data.parameters[0] != '1':
            return -1
        return has_data.int_param(1, -1)

    @staticmethod
    def _add_point(envelopes: Dict[Tuple[ExpressionType, int, int], Points], expression: ExpressionType,
                   channel: int, key_or_cc: int, event: ReaperMidiEvent, ticks: int, value: int):
        key = (expression, channel, key_or_cc)
        points = envelopes.get(key)
        if points is None:
            target = Target(expression=expression, channel=channel)
            if expression == ExpressionType.CHANNEL_CONTROLLER:
                target.controller = key_or_cc
            elif expression == ExpressionType.POLY_PRESSURE:
                target.key = key_or_cc
            points = Points(target=target, unit=Unit.PERCENT)
            envelopes[key] = points
        points.points.append(IntegerPoint(event.position / ticks, value))

    def _convert_audio(self, source_chunk: Chunk) -> Optional[Audio]:
        file_node = source_chunk.find(tags.SOURCE_FILE)
        if file_node is None or not file_node.parameters:
            return None

        file_path_name = file_node.parameters[0].strip('"').replace('\\', '/')
        file_path = Path(file_path_name)
        is_absolute = file_path.is_absolute() or PureWindowsPath(file_path_name).is_absolute()
        filename = file_path.name if is_absolute else file_path_name
        no_compression = self.settings.do_not_compress_audio_files

        source_file = file_path if is_absolute else self.source_dir / file_path_name
        audio = Audio(
            file=FileReference(file_path_name if no_compression else self._archive_path(filename, source_file),
                               external=no_compression),
            algorithm='raw',
        )

        if not source_file.is_file():
            # The rest of the project might still be useful
            self.notifier.log_error("Audio file not found: %s", source_file)
            return audio

        self._set_audio_attributes(audio, source_file)
        if not no_compression:
            self.media_files.add(audio.file.path, source_file)
        return audio

    def _archive_path(self, filename: str, source_file: Path) -> str:
        """
        Path of an audio file inside the archive

        The same source file always gets the same path, different files with
        the same name get a numbered suffix.
        """
        key = source_file.resolve()
        known = self.archive_paths.get(key)
        if known is not None:
            return known

        used = set(self.archive_paths.values())
        candidate = f'samples/{filename}'
        stem, suffix = os.path.splitext(candidate)
        counter = 1
        while candidate in used:
            counter += 1
            candidate = f'{stem}_{counter}{suffix}'
        if counter > 1:
            logger.warning(f"Audio file name {filename} is used twice, stored as {candidate}")

        self.archive_paths[key] = candidate
        return candidate

    @staticmethod
    def _set_audio_attributes(audio: Audio, source_file: Path):
        try:
            info = sf.info(str(source_file))
        except RuntimeError as e:
            raise FormatError(f"Unknown audio format: {source_file}") from e
        audio.channels = info.channels
        audio.sample_rate = int(info.samplerate)
        audio.duration = float(info.duration)

    # ========================================================================
    # MARKERS
    # ========================================================================

    def _convert_markers(self):
        markers = Markers(time_unit=TimeUnit.SECONDS)
        for node in self.root.find_all(tags.PROJECT_MARKER):
            # Regions are not supported
            if node.int_param(3, 0) > 0:
                continue

            name = node.param(2, '')
            if not name.strip():
                name = node.param(0, '0')
            marker = Marker(node.float_param(1, 0.0), name)
            color = node.int_param(4, 0)
            if color > 0:
                marker.color = to_hex_color(color)
            markers.markers.append(marker)

        if markers.markers:
            self.project.arrangement.markers = markers
            logger.debug(f"  {len(markers.markers)} markers")


class ReaperParser:
    """Reads Reaper projects"""

    def __init__(self, settings: Optional[ConverterSettings] = None,
                 notifier: Optional[Notifier] = None, token: Optional[CancellationToken] = None):
        self.settings = settings or ConverterSettings()
        self.notifier = notifier or LoggingNotifier()
        self.token = token or CancellationToken()

    def read(self, filepath: Union[str, Path]) -> DawProjectContainer:
        """
        Parse a .rpp file

        Args:
            filepath: Path to the Reaper project

        Returns:
            Container with the project, close it when done
        """
        path = Path(filepath)
        logger.info(f"Parsing Reaper project: {path}")

        with open(path, encoding='utf-8', errors='replace') as f:
            lines = f.read().splitlines()
        root = parse_project(lines)

        container = DawProjectContainer(path.stem, ReaperMediaFiles())
        try:
            _ProjectReader(root, container, path.parent, self.settings, self.notifier, self.token).convert()
        except BaseException:
            container.close()
            raise

        project = container.project
        logger.info(f"✓ Parsed {len(project.all_tracks())} tracks, {len(container.media_files.get_all())} media files")
        return container


def parse_reaper_project(filepath: Union[str, Path], settings: Optional[ConverterSettings] = None) -> DawProjectContainer:
    """Convenience function"""
    return ReaperParser(settings).read(filepath)


__all__ = [
    'read_notes',
    'ReaperParser',
    'parse_reaper_project',
]
