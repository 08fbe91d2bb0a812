"""
DAWproject Object Graph

In-memory model of the DAWproject interchange format (version 1.0).
Bridge between the Reaper chunk tree and the DAWproject XML container.

Design: Pure data classes, no business logic.
Logic goes in parsers and writers.

Objects which can be referenced from elsewhere in the project (tracks,
channels, parameters) use identity equality so they can serve as dictionary
keys and reference targets. Identifiers are assigned when saving.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

FORMAT_VERSION = '1.0'


# ============================================================================
# ENUMERATIONS
# ============================================================================

class Unit(str, Enum):
    LINEAR = 'linear'
    NORMALIZED = 'normalized'
    PERCENT = 'percent'
    DECIBEL = 'decibel'
    HERTZ = 'hertz'
    SEMITONES = 'semitones'
    SECONDS = 'seconds'
    BEATS = 'beats'
    BPM = 'bpm'


class TimeUnit(str, Enum):
    BEATS = 'beats'
    SECONDS = 'seconds'


class MixerRole(str, Enum):
    REGULAR = 'regular'
    MASTER = 'master'
    EFFECT = 'effect'
    SUBMIX = 'submix'
    VCA = 'vca'


class ContentType(str, Enum):
    AUDIO = 'audio'
    AUTOMATION = 'automation'
    NOTES = 'notes'
    VIDEO = 'video'
    MARKERS = 'markers'
    TRACKS = 'tracks'


class DeviceRole(str, Enum):
    INSTRUMENT = 'instrument'
    NOTE_FX = 'noteFX'
    AUDIO_FX = 'audioFX'
    ANALYZER = 'analyzer'


class Interpolation(str, Enum):
    HOLD = 'hold'
    LINEAR = 'linear'


class ExpressionType(str, Enum):
    GAIN = 'gain'
    PAN = 'pan'
    TRANSPOSE = 'transpose'
    TIMBRE = 'timbre'
    FORMANT = 'formant'
    PRESSURE = 'pressure'
    CHANNEL_CONTROLLER = 'channelController'
    CHANNEL_PRESSURE = 'channelPressure'
    POLY_PRESSURE = 'polyPressure'
    PITCH_BEND = 'pitchBend'
    PROGRAM_CHANGE = 'programChange'


class SendType(str, Enum):
    PRE = 'pre'
    POST = 'post'


class PluginFormat(str, Enum):
    """Plugin kind, the value is the XML element name"""
    VST2 = 'Vst2Plugin'
    VST3 = 'Vst3Plugin'
    CLAP = 'ClapPlugin'


# ============================================================================
# PARAMETERS
# ============================================================================

@dataclass(eq=False)
class Parameter:
    """Base of all automatable parameters"""
    name: Optional[str] = None
    parameter_id: Optional[int] = None  # Plugin parameter index


@dataclass(eq=False)
class RealParameter(Parameter):
    value: Optional[float] = None
    unit: Optional[Unit] = None
    min: Optional[float] = None
    max: Optional[float] = None


@dataclass(eq=False)
class BoolParameter(Parameter):
    value: Optional[bool] = None


@dataclass(eq=False)
class IntegerParameter(Parameter):
    value: Optional[int] = None
    min: Optional[int] = None
    max: Optional[int] = None


@dataclass(eq=False)
class EnumParameter(Parameter):
    value: Optional[int] = None
    count: Optional[int] = None


@dataclass(eq=False)
class TimeSignatureParameter(Parameter):
    numerator: Optional[int] = None
    denominator: Optional[int] = None


def real_parameter(unit: Unit, minimum: float, maximum: float, value: float, name: Optional[str] = None) -> RealParameter:
    """Create a real parameter with range and unit"""
    return RealParameter(name=name, value=value, unit=unit, min=minimum, max=maximum)


# ============================================================================
# METADATA & TRANSPORT
# ============================================================================

@dataclass
class Metadata:
    """Song information (metadata.xml)"""
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    original_artist: Optional[str] = None
    composer: Optional[str] = None
    songwriter: Optional[str] = None
    producer: Optional[str] = None
    arranger: Optional[str] = None
    year: Optional[str] = None
    genre: Optional[str] = None
    copyright: Optional[str] = None
    website: Optional[str] = None
    comment: Optional[str] = None


@dataclass
class Application:
    name: str = ''
    version: str = ''


@dataclass
class Transport:
    tempo: Optional[RealParameter] = None
    time_signature: Optional[TimeSignatureParameter] = None


# ============================================================================
# MIXER
# ============================================================================

@dataclass
class FileReference:
    """Path of an embedded (relative to the container) or external file"""
    path: str
    external: bool = False


@dataclass(eq=False)
class Device:
    """Plugin instance with its state file"""
    plugin_format: PluginFormat
    name: Optional[str] = None
    device_name: Optional[str] = None
    device_id: Optional[str] = None
    device_vendor: Optional[str] = None
    device_role: Optional[DeviceRole] = None
    enabled: Optional[BoolParameter] = None
    loaded: bool = True
    state: Optional[FileReference] = None
    automated_parameters: List[Parameter] = field(default_factory=list)

    def is_instrument(self) -> bool:
        return self.device_role == DeviceRole.INSTRUMENT

    def is_bypassed(self) -> bool:
        return self.enabled is not None and self.enabled.value is False


@dataclass(eq=False)
class Send:
    """Send from the owning channel to a destination channel"""
    name: Optional[str] = None
    volume: Optional[RealParameter] = None
    pan: Optional[RealParameter] = None
    enable: Optional[BoolParameter] = None
    type: SendType = SendType.POST
    destination: Optional['Channel'] = None


@dataclass(eq=False)
class Channel:
    """Mixer channel of a track"""
    role: MixerRole = MixerRole.REGULAR
    audio_channels: int = 2
    volume: Optional[RealParameter] = None
    pan: Optional[RealParameter] = None
    mute: Optional[BoolParameter] = None
    solo: Optional[bool] = None
    devices: List[Device] = field(default_factory=list)
    sends: List[Send] = field(default_factory=list)
    destination: Optional['Channel'] = None


@dataclass(eq=False)
class Track:
    """Track or folder track, folders hold their child tracks"""
    name: str = 'Track'
    color: Optional[str] = None  # '#rrggbb'
    comment: Optional[str] = None
    content_types: List[ContentType] = field(default_factory=list)
    loaded: bool = True
    channel: Optional[Channel] = None
    tracks: List['Track'] = field(default_factory=list)

    def is_folder(self) -> bool:
        return ContentType.TRACKS in self.content_types

    def is_master(self) -> bool:
        return self.channel is not None and self.channel.role == MixerRole.MASTER

    def all_tracks(self) -> List['Track']:
        """This track and all nested tracks, depth first"""
        result = [self]
        for child in self.tracks:
            result.extend(child.all_tracks())
        return result


# ============================================================================
# TIMELINES
# ============================================================================

@dataclass(eq=False)
class Timeline:
    """Base of all timeline elements, time unit is inherited if None"""
    time_unit: Optional[TimeUnit] = None


@dataclass
class Note:
    """Single MIDI note"""
    time: float
    duration: float
    key: int
    channel: int = 0
    velocity: Optional[float] = None           # 0.0-1.0
    release_velocity: Optional[float] = None   # 0.0-1.0


@dataclass(eq=False)
class Notes(Timeline):
    notes: List[Note] = field(default_factory=list)


@dataclass
class Point:
    time: float


@dataclass
class RealPoint(Point):
    value: Optional[float] = None
    interpolation: Optional[Interpolation] = None


@dataclass
class BoolPoint(Point):
    value: Optional[bool] = None


@dataclass
class IntegerPoint(Point):
    value: Optional[int] = None


@dataclass
class TimeSignaturePoint(Point):
    numerator: int = 4
    denominator: int = 4


@dataclass(eq=False)
class Target:
    """What an automation lane controls: a parameter or a MIDI expression"""
    parameter: Optional[Parameter] = None
    expression: Optional[ExpressionType] = None
    channel: Optional[int] = None
    key: Optional[int] = None
    controller: Optional[int] = None


@dataclass(eq=False)
class Points(Timeline):
    """Automation lane"""
    target: Target = field(default_factory=Target)
    unit: Optional[Unit] = None
    points: List[Point] = field(default_factory=list)


@dataclass(eq=False)
class Audio(Timeline):
    """Audio file content"""
    file: Optional[FileReference] = None
    algorithm: Optional[str] = None
    channels: int = 2
    sample_rate: int = 44100
    duration: float = 0.0  # Seconds


@dataclass
class Warp:
    time: float
    content_time: float


@dataclass(eq=False)
class Warps(Timeline):
    """Time-warped content"""
    content_time_unit: Optional[TimeUnit] = None
    content: Optional[Timeline] = None
    events: List[Warp] = field(default_factory=list)


@dataclass(eq=False)
class Clip:
    """Clip on a timeline, the content is another timeline"""
    time: float = 0.0
    duration: Optional[float] = None
    play_start: Optional[float] = None
    play_stop: Optional[float] = None
    loop_start: Optional[float] = None
    loop_end: Optional[float] = None
    fade_time_unit: Optional[TimeUnit] = None
    fade_in_time: Optional[float] = None
    fade_out_time: Optional[float] = None
    name: Optional[str] = None
    comment: Optional[str] = None
    color: Optional[str] = None
    enable: Optional[bool] = None
    content_time_unit: Optional[TimeUnit] = None
    content: Optional[Timeline] = None


@dataclass(eq=False)
class Clips(Timeline):
    clips: List[Clip] = field(default_factory=list)


@dataclass(eq=False)
class Lanes(Timeline):
    """Container of timelines, optionally bound to a track"""
    track: Optional[Track] = None
    lanes: List[Timeline] = field(default_factory=list)


@dataclass
class Marker:
    time: float
    name: str = ''
    color: Optional[str] = None


@dataclass(eq=False)
class Markers(Timeline):
    markers: List[Marker] = field(default_factory=list)


# ============================================================================
# PROJECT
# ============================================================================

@dataclass(eq=False)
class Arrangement:
    lanes: Optional[Lanes] = None
    markers: Optional[Markers] = None
    tempo_automation: Optional[Points] = None
    time_signature_automation: Optional[Points] = None


@dataclass(eq=False)
class Project:
    """
    DAWproject root (project.xml)

    structure holds the top level tracks, folders contain their children
    """
    version: str = FORMAT_VERSION
    application: Application = field(default_factory=Application)
    transport: Optional[Transport] = None
    structure: List[Track] = field(default_factory=list)
    arrangement: Optional[Arrangement] = None

    def all_tracks(self) -> List[Track]:
        """All tracks including the ones nested in folders"""
        result = []
        for track in self.structure:
            result.extend(track.all_tracks())
        return result

    def master_track(self) -> Optional[Track]:
        """The top level track with the master mixer role"""
        for track in self.structure:
            if track.is_master():
                return track
        return None


TimelineType = Union[Lanes, Clips, Notes, Points, Audio, Warps, Markers]


__all__ = [
    'FORMAT_VERSION',
    'Unit', 'TimeUnit', 'MixerRole', 'ContentType', 'DeviceRole',
    'Interpolation', 'ExpressionType', 'SendType', 'PluginFormat',
    'Parameter', 'RealParameter', 'BoolParameter', 'IntegerParameter', 'EnumParameter',
    'TimeSignatureParameter', 'real_parameter',
    'Metadata', 'Application', 'Transport',
    'FileReference', 'Device', 'Send', 'Channel', 'Track',
    'Timeline', 'Note', 'Notes', 'Point', 'RealPoint', 'BoolPoint', 'IntegerPoint',
    'TimeSignaturePoint', 'Target', 'Points', 'Audio', 'Warp', 'Warps',
    'Clip', 'Clips', 'Lanes', 'Marker', 'Markers',
    'Arrangement', 'Project', 'TimelineType',
]
