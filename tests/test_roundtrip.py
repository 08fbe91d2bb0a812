"""Reaper → DAWproject → Reaper conversions through the task runner."""

import pytest

from core.notifier import CancellationToken
from core.rpp import parse_project
from core.task import create_task

PROJECT = '''
<REAPER_PROJECT 0.1 "6.33/win64" 1681995212
  TEMPO 100 4 4
  AUTHOR "Jane Doe"
  MARKER 1 3 Intro 0
  <TRACK
    NAME Drums
    ISBUS 0 0
    <ITEM
      POSITION 1.5
      LENGTH 2
      NAME Beat
      <SOURCE WAVE
        FILE "drums.wav"
      >
    >
  >
  <TRACK
    NAME Keys
    ISBUS 0 0
    <ITEM
      POSITION 0
      LENGTH 2.4
      <SOURCE MIDI
        HASDATA 1 960 QN
        E 0 90 3c 60
        E 480 80 3c 00
        E 0 b0 07 64
        E 480 91 40 7f
        E 960 81 40 10
      >
    >
  >
  <TRACK
    NAME Reverb
    ISBUS 0 0
    AUXRECV 0 0 0.5 0.25 0 0 0 0 0 -1:U 0 -1 ''
  >
>
'''


@pytest.fixture
def converted(tmp_path, make_rpp, make_wav, notifier):
    """Run both conversions, return the parsed result"""
    make_wav('drums.wav', seconds=2.0)
    source = make_rpp(PROJECT)
    dawproject = tmp_path / 'song.dawproject'
    assert create_task(source, dawproject, notifier=notifier).run()
    assert dawproject.exists()

    result = tmp_path / 'back' / 'song.rpp'
    assert create_task(dawproject, result, notifier=notifier).run()
    return parse_project(result.read_text(encoding='utf-8').splitlines())


def _track(root, name):
    return next(chunk for chunk in root.find_chunks('TRACK') if chunk.find('NAME').param(0) == name)


def test_conversion_messages(converted, notifier):
    assert notifier.errors == []
    assert notifier.messages.count('✓ Project is valid') == 2
    assert sum(1 for message in notifier.messages if message.startswith('✓ Conversion finished')) == 2


def test_project_values(converted):
    assert converted.find('TEMPO').parameters == ['100', '4', '4']
    assert converted.find('AUTHOR').param(0) == 'Jane Doe'
    marker = converted.find('MARKER')
    assert marker.param(2) == 'Intro'
    assert float(marker.param(1)) == pytest.approx(3.0)
    assert [chunk.find('NAME').param(0) for chunk in converted.find_chunks('TRACK')] == ['Drums', 'Keys', 'Reverb']


def test_audio_item(converted, tmp_path):
    item = _track(converted, 'Drums').find_chunk('ITEM')
    assert float(item.find('POSITION').param(0)) == pytest.approx(1.5)
    assert float(item.find('LENGTH').param(0)) == pytest.approx(2.0)
    assert item.find('NAME').param(0) == 'Beat'

    source = item.find_chunk('SOURCE')
    assert source.parameters == ['WAVE']
    assert source.find('FILE').param(0) == 'drums.wav'
    assert (tmp_path / 'back' / 'drums.wav').read_bytes() == (tmp_path / 'drums.wav').read_bytes()


def test_midi_events(converted):
    item = _track(converted, 'Keys').find_chunk('ITEM')
    assert float(item.find('LENGTH').param(0)) == pytest.approx(2.4)
    events = [event.parameters for event in item.find_chunk('SOURCE').find_all('E')]
    assert events == [
        ['0', '90', '3c', '60'],
        ['480', '80', '3c', '00'],
        ['0', 'b0', '07', '64'],
        ['480', '91', '40', '7f'],
        ['960', '81', '40', '10'],
    ]


def test_send(converted):
    receive = _track(converted, 'Reverb').find('AUXRECV')
    assert receive.param(0) == '0'
    assert receive.param(1) == '0'
    assert float(receive.param(2)) == pytest.approx(0.5)
    assert float(receive.param(3)) == pytest.approx(0.25)
    assert receive.param(4) == '0'


FOLDERS = '''
<REAPER_PROJECT 0.1 "6.33/win64" 1681995212
  TEMPO 120 4 4
  <TRACK
    NAME Band
    ISBUS 1 1
  >
  <TRACK
    NAME Drums
    ISBUS 1 1
  >
  <TRACK
    NAME Hat
    ISBUS 0 0
  >
  <TRACK
    NAME Tom
    ISBUS 2 -2
  >
  <TRACK
    NAME Bass
    ISBUS 0 0
  >
  <TRACK
    NAME Strings
    ISBUS 1 1
  >
  <TRACK
    NAME Pad
    ISBUS 2 -1
  >
>
'''


def test_folder_depths_survive(tmp_path, make_rpp, notifier):
    """A track closing two folders at once keeps its depth change"""
    source = make_rpp(FOLDERS)
    dawproject = tmp_path / 'folders.dawproject'
    assert create_task(source, dawproject, notifier=notifier).run()
    result = tmp_path / 'back' / 'folders.rpp'
    assert create_task(dawproject, result, notifier=notifier).run()

    root = parse_project(result.read_text(encoding='utf-8').splitlines())
    tracks = [(chunk.find('NAME').param(0), chunk.find('ISBUS').parameters) for chunk in root.find_chunks('TRACK')]
    assert tracks == [
        ('Band', ['1', '1']),
        ('Drums', ['1', '1']),
        ('Hat', ['0', '0']),
        ('Tom', ['2', '-2']),
        ('Bass', ['0', '0']),
        ('Strings', ['1', '1']),
        ('Pad', ['2', '-1']),
    ]


def test_cancel_while_writing_leaves_no_output(tmp_path, make_rpp, make_wav, notifier):
    """Copied audio files only stay together with the project file"""
    make_wav('drums.wav', seconds=2.0)
    dawproject = tmp_path / 'song.dawproject'
    assert create_task(make_rpp(PROJECT), dawproject, notifier=notifier).run()

    token = CancellationToken()
    task = create_task(dawproject, tmp_path / 'back' / 'song.rpp', notifier=notifier, token=token)
    parser = task.reader

    class CancellingReader:
        def read(self, path):
            container = parser.read(path)
            stream = container.media_files.stream

            def cancel_and_stream(media_id):
                token.cancel()
                return stream(media_id)

            container.media_files.stream = cancel_and_stream
            return container

    task.reader = CancellingReader()
    assert not task.run()
    assert 'Conversion cancelled' in notifier.messages
    back = tmp_path / 'back'
    assert not back.exists() or list(back.iterdir()) == []
