"""Tests for reading Reaper projects into the DAWproject object graph."""

import io

import pytest

from converters.device_handlers import handler_for
from converters.vst3_preset import Vst3Preset
from core.config import ConverterSettings
from core.dawproject import (
    Audio, BoolPoint, Clips, ContentType, DeviceRole, ExpressionType, Interpolation,
    Lanes, MixerRole, Notes, PluginFormat, Points, SendType, TimeUnit, Unit,
)
from core.errors import FormatError
from core.rpp import Chunk, format_chunk
from parsers.reaper_parser import ReaperParser, read_notes

CLASS_ID = '565354416D6173616D706C6572000000'

PROJECT = '''
<REAPER_PROJECT 0.1 "6.33/win64" 1681995212
  TEMPO 120 4 4
  AUTHOR "Jane Doe"
  <NOTES 0 2
    |Line one
    |Line two
  >
  <RENDER_METADATA
    TAG ID3:TIT2 "My Song"
    TAG ID3:TCON Rock
  >
  MASTER_NCH 2 2
  MASTER_VOLUME 0.5 0 -1 -1 1
  MASTERMUTESOLO 2
  MARKER 1 4.5 Verse 0 0 1 R
  MARKER 2 8 Chorus 1 0 1 R
  MARKER 2 12 "" 1
  MARKER 3 6 "" 0
  <TRACK
    NAME Lead
    PEAKCOL 16576
    VOLPAN 1 0 -1 -1 1
    MUTESOLO 1 0 0
    ISBUS 0 0
    <ITEM
      POSITION 2
      LENGTH 2
      LOOP 0
      NAME Melody
      <SOURCE MIDI
        HASDATA 1 960 QN
        E 0 90 3c 60
        E 480 80 3c 00
        E 0 b0 07 64
        E 480 90 3e 40
        E 960 90 3e 00
      >
    >
  >
  <TRACK
    NAME Drums
    ISBUS 1 1
  >
  <TRACK
    NAME Kick
    ISBUS 0 0
  >
  <TRACK
    NAME Snare
    ISBUS 2 -1
  >
  <TRACK
    NAME Bass
  >
  <TRACK
    NAME Reverb
    AUXRECV 0 0 0.5 0.25 0 0 0 0 0 -1:U 0 -1 ''
    <AUXVOLENV
      ACT 1 -1
      PT 0 0.5 0
      PT 2 1 0
    >
  >
>
'''


def _read(path, settings=None, notifier=None):
    return ReaperParser(settings, notifier).read(path)


def _track_lanes(project, track) -> Lanes:
    return next(lanes for lanes in project.arrangement.lanes.lanes if lanes.track is track)


@pytest.fixture
def container(make_rpp, notifier):
    with _read(make_rpp(PROJECT), notifier=notifier) as container:
        yield container


def test_metadata(container):
    metadata = container.metadata
    assert metadata.artist == 'Jane Doe'
    assert metadata.producer == 'Jane Doe'
    assert metadata.songwriter == 'Jane Doe'
    assert metadata.title == 'My Song'
    assert metadata.genre == 'Rock'
    assert metadata.comment == 'Line one\r\nLine two'


def test_read_notes():
    chunk = Chunk('NOTES')
    chunk.add_node('|first')
    chunk.add_node('|  second')
    assert read_notes(chunk) == 'first\r\n  second'


def test_transport(container):
    project = container.project
    assert project.application.version == '6.33/win64'
    assert project.transport.tempo.value == 120.0
    assert project.transport.tempo.unit == Unit.BPM
    assert project.transport.time_signature.numerator == 4
    assert project.arrangement.tempo_automation is None


def test_master(container):
    master = container.project.master_track()
    assert master is container.project.structure[0]
    assert master.channel.role == MixerRole.MASTER
    assert master.channel.volume.value == pytest.approx(0.5)
    assert master.channel.pan.value == pytest.approx(0.5)
    assert master.channel.mute.value is False
    assert master.channel.solo is True


def test_folder_structure(container):
    """ISBUS 1 1 opens a folder, ISBUS 2 -1 closes it"""
    structure = container.project.structure
    assert [track.name for track in structure] == ['Master', 'Lead', 'Drums', 'Bass', 'Reverb']

    folder = structure[2]
    assert folder.is_folder()
    assert folder.content_types == [ContentType.TRACKS]
    assert [track.name for track in folder.tracks] == ['Drums Master', 'Kick', 'Snare']
    assert folder.tracks[0].channel.role == MixerRole.MASTER


def test_track_properties(container):
    lead = container.project.structure[1]
    assert lead.color == '#c04000'
    assert lead.content_types == [ContentType.NOTES]
    assert lead.channel.volume.value == pytest.approx(1.0)
    assert lead.channel.pan.value == pytest.approx(0.5)
    assert lead.channel.mute.value is True
    assert lead.channel.solo is False

    # A track without items gets both types
    bass = container.project.structure[3]
    assert bass.content_types == [ContentType.NOTES, ContentType.AUDIO]


def test_receive_becomes_send(container):
    structure = container.project.structure
    lead, reverb = structure[1], structure[4]

    assert reverb.channel.role == MixerRole.EFFECT
    assert reverb.content_types == [ContentType.AUDIO]

    assert len(lead.channel.sends) == 1
    send = lead.channel.sends[0]
    assert send.destination is reverb.channel
    assert send.type == SendType.POST
    assert send.enable.value is True
    assert send.pan.unit == Unit.LINEAR
    assert send.pan.value == pytest.approx(0.25)
    assert send.volume.value == pytest.approx(0.5 * 10 ** (-12 / 20))

    # The send envelope is stored with the source track
    envelopes = [lane for lane in _track_lanes(container.project, lead).lanes
                 if isinstance(lane, Points) and lane.target.parameter is send.volume]
    assert len(envelopes) == 1
    assert [point.time for point in envelopes[0].points] == [0.0, 2.0]


def test_midi_clip(container):
    lead = container.project.structure[1]
    clips = next(lane for lane in _track_lanes(container.project, lead).lanes if isinstance(lane, Clips))
    assert clips.time_unit == TimeUnit.BEATS
    assert len(clips.clips) == 1

    clip = clips.clips[0]
    assert clip.name == 'Melody'
    assert clip.time == pytest.approx(4.0)
    assert clip.duration == pytest.approx(4.0)
    assert clip.loop_end is None

    inner = clip.content.clips[0]
    assert inner.play_start == pytest.approx(0.0)
    notes_lane = next(lane for lane in inner.content.lanes if isinstance(lane, Notes))
    first, second = notes_lane.notes
    assert (first.key, first.time, first.duration) == (60, 0.0, 0.5)
    assert first.velocity == pytest.approx(96 / 127)
    assert (second.key, second.time, second.duration) == (62, 1.0, 1.0)
    # Note on with velocity 0 ends the note
    assert second.release_velocity == 0.0

    controller = next(lane for lane in inner.content.lanes if isinstance(lane, Points))
    assert controller.target.expression == ExpressionType.CHANNEL_CONTROLLER
    assert controller.target.controller == 7
    assert controller.points[0].time == pytest.approx(0.5)
    assert controller.points[0].value == 100


def test_markers(container):
    """Regions are dropped, unnamed markers use their number"""
    markers = container.project.arrangement.markers
    assert markers.time_unit == TimeUnit.SECONDS
    assert [(marker.time, marker.name) for marker in markers.markers] == [(4.5, 'Verse'), (6.0, '3')]


def test_tempo_envelope(make_rpp):
    text = '''
<REAPER_PROJECT 0.1 "7.0/linux"
  TEMPO 120 4 4
  <TEMPOENVEX
    ACT 1 -1
    PT 0 120 0
    PT 4 60 1 262147
  >
  <TRACK
    NAME Keys
    <ITEM
      POSITION 6
      LENGTH 2
      <SOURCE MIDI
        HASDATA 1 960 QN
      >
    >
  >
>
'''
    with _read(make_rpp(text)) as container:
        arrangement = container.project.arrangement
        tempo = arrangement.tempo_automation
        assert tempo.target.parameter is container.project.transport.tempo
        assert [p.interpolation for p in tempo.points] == [Interpolation.LINEAR, Interpolation.HOLD]

        signature = arrangement.time_signature_automation.points
        assert [(p.time, p.numerator, p.denominator) for p in signature] == [(0.0, 4, 4), (4.0, 3, 4)]

        # 6 beats in the ramp from 120 to 60 BPM plus 2 beats at 60 BPM
        clip = arrangement.lanes.lanes[1].lanes[0].clips[0]
        assert clip.time == pytest.approx(8.0)
        assert clip.duration == pytest.approx(2.0)


def test_missing_tempo_uses_default(make_rpp):
    with _read(make_rpp('<REAPER_PROJECT 0.1 "7.0/linux"\n>')) as container:
        transport = container.project.transport
        assert transport.tempo.value == 120.0
        assert (transport.time_signature.numerator, transport.time_signature.denominator) == (4, 4)
        assert [track.name for track in container.project.structure] == ['Master']


def test_audio_item(make_rpp, make_wav, notifier):
    make_wav('loop.wav', seconds=1.0, sample_rate=48000, channels=1)
    text = '''
<REAPER_PROJECT 0.1 "7.0/linux"
  TEMPO 120 4 4
  <TRACK
    NAME Audio
    <ITEM
      POSITION 1
      LENGTH 3
      LOOP 1
      FADEIN 1 0.5 0
      MUTE 1 0
      <SOURCE WAVE
        FILE "loop.wav"
      >
    >
  >
>
'''
    with _read(make_rpp(text), notifier=notifier) as container:
        track = container.project.structure[1]
        assert track.content_types == [ContentType.AUDIO]

        clip = _track_lanes(container.project, track).lanes[0].clips[0]
        assert clip.enable is False
        assert clip.fade_in_time == pytest.approx(1.0)
        assert clip.fade_time_unit == TimeUnit.BEATS
        assert clip.loop_end == pytest.approx(2.0)

        audio = clip.content.clips[0].content
        assert isinstance(audio, Audio)
        assert audio.file.path == 'samples/loop.wav'
        assert not audio.file.external
        assert audio.channels == 1
        assert audio.sample_rate == 48000
        assert audio.duration == pytest.approx(1.0)
        assert container.media_files.get_all() == ['samples/loop.wav']
    assert notifier.errors == []


def test_audio_external(make_rpp, make_wav):
    make_wav('loop.wav')
    text = '''
<REAPER_PROJECT 0.1 "7.0/linux"
  <TRACK
    <ITEM
      POSITION 0
      LENGTH 1
      <SOURCE WAVE
        FILE "loop.wav"
      >
    >
  >
>
'''
    settings = ConverterSettings(do_not_compress_audio_files=True)
    with _read(make_rpp(text), settings) as container:
        lanes = container.project.arrangement.lanes.lanes[1]
        audio = lanes.lanes[0].clips[0].content.clips[0].content
        assert audio.file.path == 'loop.wav'
        assert audio.file.external
        assert container.media_files.get_all() == []


def test_audio_files_with_same_name(tmp_path, make_rpp, make_wav):
    (tmp_path / 'one').mkdir()
    (tmp_path / 'two').mkdir()
    first = make_wav('one/kick.wav', seconds=1.0)
    second = make_wav('two/kick.wav', seconds=2.0)
    items = ''.join(f'''
    <ITEM
      POSITION {position}
      LENGTH 1
      <SOURCE WAVE
        FILE "{path}"
      >
    >''' for position, path in ((0, first), (1, second), (2, first)))
    text = f'''
<REAPER_PROJECT 0.1 "7.0/linux"
  <TRACK{items}
  >
>
'''
    with _read(make_rpp(text)) as container:
        clips = container.project.arrangement.lanes.lanes[1].lanes[0].clips
        paths = [clip.content.clips[0].content.file.path for clip in clips]
        assert paths == ['samples/kick.wav', 'samples/kick_2.wav', 'samples/kick.wav']
        assert sorted(container.media_files.get_all()) == ['samples/kick.wav', 'samples/kick_2.wav']
        assert container.media_files.path_of('samples/kick_2.wav') == second


def test_missing_audio_is_logged(make_rpp, notifier):
    text = '''
<REAPER_PROJECT 0.1 "7.0/linux"
  <TRACK
    <ITEM
      POSITION 0
      LENGTH 1
      <SOURCE WAVE
        FILE "C:\\Audio\\missing.wav"
      >
    >
  >
>
'''
    with _read(make_rpp(text), notifier=notifier) as container:
        lanes = container.project.arrangement.lanes.lanes[1]
        audio = lanes.lanes[0].clips[0].content.clips[0].content
        assert audio.file.path == 'samples/missing.wav'
        assert audio.duration == 0.0
    assert any('Audio file not found' in error for error in notifier.errors)


def _vst3_chunk_lines() -> str:
    preset = Vst3Preset().to_bytes(CLASS_ID, [b'component-state', b'controller-state'])
    chunk = Chunk('VST', ['VST3i: Sampler (Example)', 'Sampler.vst3', '0', '', f'1234{{{CLASS_ID}}}', ''])
    handler_for(PluginFormat.VST3, CLASS_ID).file_to_chunk(io.BytesIO(preset), chunk)
    return '\n'.join(format_chunk(chunk, 2))


def test_devices(make_rpp, notifier):
    text = f'''
<REAPER_PROJECT 0.1 "7.0/linux"
  <TRACK
    NAME Synth
    <FXCHAIN
      BYPASS 1 0 0
{_vst3_chunk_lines()}
      <PARMENV 3:Gain 0 1 0.5
        PT 0 0.5 0
        PT 1 1 0
      >
    >
  >
>
'''
    with _read(make_rpp(text), notifier=notifier) as container:
        track = container.project.structure[1]
        device = track.channel.devices[0]
        assert device.plugin_format == PluginFormat.VST3
        assert device.name == 'Sampler'
        assert device.device_vendor == 'Example'
        assert device.device_id == CLASS_ID
        assert device.device_role == DeviceRole.INSTRUMENT
        assert device.is_bypassed()

        with container.media_files.stream(device.state.path) as stream:
            preset = Vst3Preset.read(stream)
        assert preset.class_id == CLASS_ID
        assert preset.chunk_data(0) == b'component-state'

        parameter = device.automated_parameters[0]
        assert parameter.parameter_id == 3
        assert parameter.name == 'Gain'
        assert parameter.value == pytest.approx(0.5)
        envelope = next(lane for lane in _track_lanes(container.project, track).lanes
                        if isinstance(lane, Points) and lane.target.parameter is parameter)
        assert len(envelope.points) == 2
    assert notifier.errors == []


def test_broken_device_state_keeps_device(make_rpp, notifier):
    text = '''
<REAPER_PROJECT 0.1 "7.0/linux"
  <TRACK
    <FXCHAIN
      <VST "VST: Delay (Example)" delay.dll 0 "" 1145392204<56535444656C61792E646C6C00000000> ""
        AAAA
      >
    >
  >
>
'''
    with _read(make_rpp(text), notifier=notifier) as container:
        device = container.project.structure[1].channel.devices[0]
        assert device.plugin_format == PluginFormat.VST2
        assert device.device_id == '1145392204'
        assert device.device_role == DeviceRole.AUDIO_FX
        assert device.state is None
    assert len(notifier.errors) == 1


def test_mute_envelope(make_rpp):
    text = '''
<REAPER_PROJECT 0.1 "7.0/linux"
  <TRACK
    MUTESOLO 0 0 0
    <MUTEENV
      PT 0 0 1
      PT 2 1 1
    >
  >
>
'''
    with _read(make_rpp(text)) as container:
        track = container.project.structure[1]
        envelope = next(lane for lane in _track_lanes(container.project, track).lanes if isinstance(lane, Points))
        assert envelope.target.parameter is track.channel.mute
        assert all(isinstance(point, BoolPoint) for point in envelope.points)
        assert [point.value for point in envelope.points] == [False, True]


def test_not_a_reaper_file(make_rpp):
    with pytest.raises(FormatError):
        _read(make_rpp('<TRACK\n>'))
