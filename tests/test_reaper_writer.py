"""Tests for writing the DAWproject object graph as Reaper project."""

import pytest

from converters.vst3_preset import Vst3Preset
from core.container import DawProjectContainer
from core.dawproject import (
    Arrangement, Audio, BoolParameter, BoolPoint, Channel, Clip, Clips, ContentType,
    Device, DeviceRole, FileReference, Interpolation, Lanes, Marker, Markers, Metadata,
    MixerRole, Note, Notes, PluginFormat, Points, Project, RealPoint, Send, SendType,
    Target, TimeSignatureParameter, TimeSignaturePoint, TimeUnit, Track, Transport,
    Unit, real_parameter,
)
from core.errors import FormatError
from core.media import ReaperMediaFiles
from core.rpp import Chunk, parse_project
from writers.reaper_writer import ReaperWriter, create_track_structure

CLASS_ID = '565354416D6173616D706C6572000000'


# ============================================================================
# HELPERS
# ============================================================================

def _channel(role=MixerRole.REGULAR, volume=1.0, pan=0.5) -> Channel:
    return Channel(
        role=role,
        volume=real_parameter(Unit.LINEAR, 0.0, 1.0, volume, 'Volume'),
        pan=real_parameter(Unit.NORMALIZED, 0.0, 1.0, pan, 'Pan'),
    )


def _project(*tracks: Track, lanes=None) -> Project:
    transport = Transport(
        tempo=real_parameter(Unit.BPM, 20.0, 999.0, 120.0, 'Tempo'),
        time_signature=TimeSignatureParameter(numerator=4, denominator=4),
    )
    master = Track('Master', content_types=[ContentType.AUDIO], channel=_channel(MixerRole.MASTER))
    project = Project(transport=transport, structure=[master, *tracks])
    project.arrangement = Arrangement(lanes=Lanes(time_unit=TimeUnit.BEATS, lanes=lanes or []))
    return project


def _write(tmp_path, project, notifier, media_files=None, metadata=None) -> Chunk:
    container = DawProjectContainer('song', media_files or ReaperMediaFiles(), metadata, project)
    path = tmp_path / 'out' / 'song.rpp'
    with container:
        ReaperWriter(notifier).write(container, path)
    return parse_project(path.read_text(encoding='utf-8').splitlines())


def _track(root: Chunk, name: str) -> Chunk:
    return next(chunk for chunk in root.find_chunks('TRACK') if chunk.find('NAME').param(0) == name)


# ============================================================================
# TRACK STRUCTURE
# ============================================================================

def test_create_track_structure():
    """Nested folders are flattened, the last track closes all its folders"""
    inner = Track('Inner', content_types=[ContentType.TRACKS], tracks=[
        Track('Inner Master', channel=Channel(role=MixerRole.MASTER)),
        Track('B', channel=Channel()),
    ])
    outer = Track('Outer', content_types=[ContentType.TRACKS], tracks=[
        Track('Outer Master', channel=Channel(role=MixerRole.MASTER)),
        Track('A', channel=Channel()),
        inner,
    ])
    master = Track('Master', channel=Channel(role=MixerRole.MASTER))
    last = Track('C', channel=Channel())

    infos = create_track_structure([master, outer, last], [], True, master)

    assert [(info.track.name, info.type, info.direction) for info in infos] == [
        ('Outer Master', 1, 1),
        ('A', 0, 0),
        ('Inner Master', 1, 1),
        ('B', 2, -2),
        ('C', 0, 0),
    ]
    assert infos[0].folder is outer
    assert infos[2].folder is inner
    assert infos[1].folder is None


def test_folder_without_master():
    folder = Track('Group', content_types=[ContentType.TRACKS], tracks=[Track('A', channel=Channel())])
    infos = create_track_structure([folder], [])
    assert infos[0].track is folder
    assert (infos[0].type, infos[0].direction) == (1, 1)
    assert (infos[1].type, infos[1].direction) == (2, -1)


# ============================================================================
# PROJECT
# ============================================================================

@pytest.fixture
def mixer_project():
    lead = Track('Lead', color='#4080ff', content_types=[ContentType.NOTES], channel=_channel(volume=0.5, pan=0.75))
    lead.channel.mute = BoolParameter(name='Mute', value=True)
    lead.channel.solo = True

    reverb = Track('Reverb', content_types=[ContentType.AUDIO], channel=_channel(MixerRole.EFFECT))
    send = Send(
        volume=real_parameter(Unit.LINEAR, 0.0, 1.0, 10 ** (-12 / 20), 'Volume'),
        pan=real_parameter(Unit.LINEAR, -1.0, 1.0, -0.5, 'Pan'),
        enable=BoolParameter(value=True),
        type=SendType.PRE,
        destination=reverb.channel,
    )
    lead.channel.sends = [send]

    cutoff = real_parameter(Unit.LINEAR, 0.0, 1.0, 0.25, 'Cutoff')
    cutoff.parameter_id = 5
    device = Device(
        plugin_format=PluginFormat.VST3,
        name='Sampler',
        device_name='Sampler',
        device_id=CLASS_ID,
        device_vendor='Example',
        device_role=DeviceRole.INSTRUMENT,
        enabled=BoolParameter(value=True),
        state=FileReference('plugins/sampler.vstpreset'),
        automated_parameters=[cutoff],
    )
    lead.channel.devices = [device]

    drums = Track('Drums', content_types=[ContentType.TRACKS], tracks=[
        Track('Drums Master', channel=_channel(MixerRole.MASTER)),
        Track('Kick', channel=_channel()),
    ])

    clip = Clip(time=4.0, duration=4.0, name='Melody', content=Notes(notes=[
        Note(0.0, 1.0, 60, velocity=0.8),
        Note(1.0, 0.5, 62),
    ]))
    lanes = [Lanes(track=lead, lanes=[
        Clips(clips=[clip]),
        Points(target=Target(parameter=send.volume), unit=Unit.LINEAR,
               points=[RealPoint(0.0, 0.5, Interpolation.LINEAR), RealPoint(4.0, 1.0, Interpolation.LINEAR)]),
        Points(target=Target(parameter=cutoff), unit=Unit.LINEAR,
               points=[RealPoint(0.0, 0.25, Interpolation.HOLD)]),
        Points(target=Target(parameter=lead.channel.mute),
               points=[BoolPoint(0.0, False), BoolPoint(2.0, True)]),
    ])]

    project = _project(lead, reverb, drums, lanes=lanes)
    project.arrangement.markers = Markers(markers=[Marker(8.0, 'Chorus', '#ff0000')])

    media_files = ReaperMediaFiles()
    media_files.add_data('plugins/sampler.vstpreset', Vst3Preset().to_bytes(CLASS_ID, [b'component']), '.vstpreset')
    return project, media_files


def test_project_settings(tmp_path, notifier, mixer_project):
    project, media_files = mixer_project
    metadata = Metadata(title='My Song', artist='Jane', producer='Jane', songwriter='Bob', comment='First\nSecond')
    root = _write(tmp_path, project, notifier, media_files, metadata)

    assert root.name == 'REAPER_PROJECT'
    assert root.find('TEMPO').parameters == ['120', '4', '4']
    assert root.find('AUTHOR').param(0) == 'Jane, Bob'
    assert [line.name for line in root.find_chunk('NOTES').children] == ['|First', '|Second']
    tags = {node.param(0): node.param(1) for node in root.find_chunk('RENDER_METADATA').find_all('TAG')}
    assert tags['ID3:TIT2'] == 'My Song'
    assert tags['ID3:COMM'] == 'First Second'
    assert root.find('MASTER_VOLUME').parameters[:2] == ['1', '0']
    assert root.find('TIMELOCKMODE').param(0) == '1'

    marker = root.find('MARKER')
    assert marker.parameters == ['1', '4', 'Chorus', '0', str(0x10000FF)]
    assert notifier.errors == []


def test_tracks_and_folders(tmp_path, notifier, mixer_project):
    project, media_files = mixer_project
    root = _write(tmp_path, project, notifier, media_files)

    tracks = root.find_chunks('TRACK')
    assert [(t.find('NAME').param(0), t.find('ISBUS').parameters) for t in tracks] == [
        ('Lead', ['0', '0']),
        ('Reverb', ['0', '0']),
        ('Drums', ['1', '1']),
        ('Kick', ['2', '-1']),
    ]

    lead = tracks[0]
    assert lead.find('PEAKCOL').int_param(0) == 0x01FF8040
    assert lead.find('VOLPAN').parameters[:2] == ['0.5', '0.5']
    assert lead.find('MUTESOLO').parameters == ['1', '1', '0']


def test_send_becomes_receive(tmp_path, notifier, mixer_project):
    project, media_files = mixer_project
    root = _write(tmp_path, project, notifier, media_files)

    reverb = _track(root, 'Reverb')
    receive = reverb.find('AUXRECV')
    # Source track 0, pre fader, +0dB, pan left, not muted
    assert receive.parameters == ['0', '3', '1', '-0.5', '0']

    position = reverb.children.index(receive)
    envelope = reverb.children[position + 1]
    assert isinstance(envelope, Chunk)
    assert envelope.name == 'AUXVOLENV'
    assert [point.parameters for point in envelope.find_all('PT')] == [['0', '0.5', '0'], ['2', '1', '0']]


def test_devices(tmp_path, notifier, mixer_project):
    project, media_files = mixer_project
    root = _write(tmp_path, project, notifier, media_files)

    fx_chain = _track(root, 'Lead').find_chunk('FXCHAIN')
    assert fx_chain.find('BYPASS').parameters == ['0', '0']

    device = fx_chain.find_chunk('VST')
    assert device.param(0) == 'VST3i: Sampler (Example)'
    assert device.param(4) == f'{{{CLASS_ID}}}'
    assert len(device.children) >= 3

    # Parameter envelopes follow their device
    position = fx_chain.children.index(device)
    envelope = fx_chain.children[position + 1]
    assert envelope.name == 'PARMENV'
    assert envelope.parameters == ['5:Cutoff', '0', '1', '0.25']
    assert envelope.find('PT').parameters == ['0', '0.25', '1']


def test_mute_envelope(tmp_path, notifier, mixer_project):
    project, media_files = mixer_project
    root = _write(tmp_path, project, notifier, media_files)

    envelope = _track(root, 'Lead').find_chunk('MUTEENV')
    assert [point.parameters for point in envelope.find_all('PT')] == [['0', '0', '1'], ['1', '1', '1']]


def test_midi_item(tmp_path, notifier, mixer_project):
    project, media_files = mixer_project
    root = _write(tmp_path, project, notifier, media_files)

    item = _track(root, 'Lead').find_chunk('ITEM')
    assert item.find('POSITION').param(0) == '2'
    assert item.find('LENGTH').param(0) == '2'
    assert item.find('NAME').param(0) == 'Melody'
    assert item.find('SOFFS').param(0) == '0'

    source = item.find_chunk('SOURCE')
    assert source.parameters == ['MIDI']
    assert source.find('HASDATA').parameters == ['1', '960', 'QN']
    assert [event.parameters for event in source.find_all('E')] == [
        ['0', '90', '3c', '66'],
        ['960', '80', '3c', '00'],
        ['0', '90', '3e', '64'],
        ['480', '80', '3e', '00'],
    ]


def test_nested_clip_is_cut_to_parent(tmp_path, notifier):
    track = Track('Keys', channel=_channel())
    inner = Clip(time=0.0, duration=8.0, play_start=2.0, content=Notes(notes=[Note(3.0, 1.0, 64)]))
    outer = Clip(time=4.0, duration=4.0, content=Clips(clips=[inner]))
    project = _project(track, lanes=[Lanes(track=track, lanes=[Clips(clips=[outer])])])

    item = _track(_write(tmp_path, project, notifier), 'Keys').find_chunk('ITEM')
    assert item.find('POSITION').param(0) == '2'
    assert item.find('LENGTH').param(0) == '2'
    # Two beats of the content are skipped
    assert item.find('SOFFS').param(0) == '1'
    assert item.find('LOOP').param(0) == '0'


def test_looped_clip(tmp_path, notifier):
    track = Track('Keys', channel=_channel())
    clip = Clip(time=0.0, duration=8.0, loop_start=0.0, loop_end=2.0,
                content=Clips(clips=[Clip(time=0.0, duration=2.0, content=Notes())]))
    project = _project(track, lanes=[Lanes(track=track, lanes=[Clips(clips=[clip])])])

    item = _track(_write(tmp_path, project, notifier), 'Keys').find_chunk('ITEM')
    assert item.find('LOOP').param(0) == '1'
    assert item.find('LENGTH').param(0) == '4'


def test_tempo_and_signature_automation(tmp_path, notifier):
    track = Track('Keys', channel=_channel())
    clip = Clip(time=8.0, duration=1.0, content=Notes())
    project = _project(track, lanes=[Lanes(track=track, lanes=[Clips(clips=[clip])])])
    transport = project.transport
    project.arrangement.tempo_automation = Points(
        time_unit=TimeUnit.SECONDS, unit=Unit.BPM, target=Target(parameter=transport.tempo),
        points=[RealPoint(0.0, 120.0, Interpolation.LINEAR), RealPoint(4.0, 60.0, Interpolation.HOLD)],
    )
    project.arrangement.time_signature_automation = Points(
        time_unit=TimeUnit.SECONDS, target=Target(parameter=transport.time_signature),
        points=[TimeSignaturePoint(0.0, 4, 4), TimeSignaturePoint(6.0, 3, 4)],
    )

    root = _write(tmp_path, project, notifier)
    envelope = root.find_chunk('TEMPOENVEX')
    assert [point.parameters for point in envelope.find_all('PT')] == [
        ['0', '120', '0', str((4 << 16) + 4)],
        ['4', '60', '1'],
        ['6', '60', '1', str((4 << 16) + 3)],
    ]

    # 6 beats in the ramp from 120 to 60 BPM, 2 more beats at 60 BPM
    item = _track(root, 'Keys').find_chunk('ITEM')
    assert float(item.find('POSITION').param(0)) == pytest.approx(6.0)


def test_audio_is_copied(tmp_path, notifier, make_wav):
    wav = make_wav('loop.wav')
    media_files = ReaperMediaFiles()
    media_files.add('samples/loop.wav', wav)

    track = Track('Audio', channel=_channel())
    audio = Audio(file=FileReference('samples/loop.wav'), duration=1.0)
    clip = Clip(time=0.0, duration=2.0, content_time_unit=TimeUnit.SECONDS, content=audio)
    project = _project(track, lanes=[Lanes(track=track, lanes=[Clips(clips=[clip])])])

    root = _write(tmp_path, project, notifier, media_files)
    source = _track(root, 'Audio').find_chunk('ITEM').find_chunk('SOURCE')
    assert source.parameters == ['WAVE']
    assert source.find('FILE').param(0) == 'loop.wav'
    assert (tmp_path / 'out' / 'loop.wav').read_bytes() == wav.read_bytes()
    assert notifier.errors == []


def test_missing_audio_is_logged(tmp_path, notifier):
    track = Track('Audio', channel=_channel())
    clip = Clip(time=0.0, duration=2.0, content=Audio(file=FileReference('samples/gone.flac')))
    project = _project(track, lanes=[Lanes(track=track, lanes=[Clips(clips=[clip])])])

    root = _write(tmp_path, project, notifier)
    source = _track(root, 'Audio').find_chunk('ITEM').find_chunk('SOURCE')
    assert source.parameters == ['FLAC']
    assert len(notifier.errors) == 1
    assert not (tmp_path / 'out' / 'gone.flac').exists()


def test_clap_device_is_skipped(tmp_path, notifier):
    track = Track('Synth', channel=_channel())
    track.channel.devices = [Device(plugin_format=PluginFormat.CLAP, name='Surge', device_id='org.surge')]
    root = _write(tmp_path, _project(track), notifier)

    assert _track(root, 'Synth').find_recursive('CLAP') is None
    assert any('Surge' in message for message in notifier.messages)


def test_unsupported_volume_unit(tmp_path, notifier):
    track = Track('Lead', channel=_channel())
    track.channel.volume.unit = Unit.DECIBEL
    with pytest.raises(FormatError):
        _write(tmp_path, _project(track), notifier)
    assert not (tmp_path / 'out' / 'song.rpp').exists()
