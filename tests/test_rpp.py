"""Tests for the Reaper chunk model."""

import pytest

from core.errors import FormatError
from core.rpp import Chunk, Node, format_chunk, format_project, parse_chunk, parse_project, quote, tokenize

PROJECT = '''
<REAPER_PROJECT 0.1 "6.33/win64" 1681995212
  TEMPO 120 4 4
  <NOTES 0 2
    |First line
    |  indented "quoted"
  >
  <TRACK
    NAME "Lead Synth"
    PEAKCOL 16576
    <ITEM
      POSITION 2.5
    >
  >
>
'''


def test_tokenize_quotes():
    """Quoted tokens keep their spaces and lose the quotes."""
    assert tokenize('NAME "Lead Synth" 1') == ['NAME', 'Lead Synth', '1']
    assert tokenize("TAG 'say \"hi\"' `it's`") == ['TAG', 'say "hi"', "it's"]
    assert tokenize('A "" B') == ['A', '', 'B']


def test_tokenize_unterminated_quote():
    """An unterminated quote is a format error with the line number."""
    with pytest.raises(FormatError) as info:
        tokenize('NAME "broken', 7)
    assert info.value.line == 7


def test_parse_project_tree():
    """Chunks and nodes end up in the right places."""
    root = parse_project(PROJECT.splitlines())
    assert root.name == 'REAPER_PROJECT'
    assert root.parameters == ['0.1', '6.33/win64', '1681995212']
    assert root.find('TEMPO').float_params() == [120.0, 4.0, 4.0]

    track = root.find_chunk('TRACK')
    assert track.find('NAME').param(0) == 'Lead Synth'
    assert track.find_chunk('ITEM').find('POSITION').float_param(0) == 2.5
    assert root.find_recursive('POSITION').param(0) == '2.5'

    notes = root.find_chunk('NOTES')
    assert [child.name for child in notes.children] == ['|First line', '|  indented "quoted"']


def test_parameter_defaults():
    """Missing or broken parameters fall back to the default."""
    node = Node('X', ['1', 'abc'])
    assert node.int_param(0) == 1
    assert node.int_param(1, -1) == -1
    assert node.float_param(5, 2.5) == 2.5
    assert node.param(3) is None


def test_missing_project_chunk():
    """A file not starting with the project chunk is rejected."""
    with pytest.raises(FormatError, match='Project chunk not found'):
        parse_project(['<TRACK', '>'])


def test_unclosed_chunk():
    with pytest.raises(FormatError, match='Chunk not closed'):
        parse_chunk(['<REAPER_PROJECT', '  <TRACK', '  >'])


def test_content_after_project_chunk():
    with pytest.raises(FormatError, match='after the end') as error:
        parse_project(['<REAPER_PROJECT 0.1', '>', '', '  <TRACK', '  >'])
    assert error.value.line == 4
    assert parse_project(['<REAPER_PROJECT 0.1', '>', '', '  ']).name == 'REAPER_PROJECT'


def test_quote_selection():
    """The first quote character not part of the value is used."""
    assert quote('plain') == 'plain'
    assert quote('') == '""'
    assert quote('two words') == '"two words"'
    assert quote('say "hi"') == "'say \"hi\"'"
    assert quote('"\'mixed\' words"') == '`"\'mixed\' words"`'


def test_format_indentation():
    root = Chunk('REAPER_PROJECT', ['0.1'])
    track = root.add_chunk('TRACK')
    track.add_node('NAME', 'My Track')
    assert format_chunk(root) == [
        '<REAPER_PROJECT 0.1',
        '  <TRACK',
        '    NAME "My Track"',
        '  >',
        '>',
    ]


def test_round_trip():
    """Parsing the formatted tree gives the same tree."""
    root = parse_project(PROJECT.splitlines())
    again = parse_project(format_project(root).splitlines())
    assert again == root
