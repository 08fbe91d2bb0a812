"""Tests for the shared value conversions."""

import pytest

from converters.conversions import (
    MIN_DB, db_to_value, from_hex_color, int_to_text, to_hex_color, value_to_db,
)


def test_unity_gain():
    assert value_to_db(1.0, 0.0) == pytest.approx(1.0)
    assert db_to_value(1.0, 0.0) == pytest.approx(1.0)


def test_send_range():
    """+12dB is the maximum level of a send"""
    scaled = value_to_db(1.0, 12.0)
    assert scaled == pytest.approx(10 ** (-12 / 20))
    assert db_to_value(scaled, 12.0) == pytest.approx(1.0)
    assert value_to_db(db_to_value(1.0, 12.0), 12.0) == pytest.approx(1.0)


def test_silence():
    assert value_to_db(0.0, 0.0) == pytest.approx(10 ** (MIN_DB / 20))
    assert db_to_value(0.0, 12.0) == 0.0


def test_colors():
    assert to_hex_color(0x01FF8040) == '#4080ff'
    assert from_hex_color('#4080ff') == 0x01FF8040
    assert to_hex_color(from_hex_color('#12abEF')) == '#12abef'


@pytest.mark.parametrize('text', [None, '', '#123', '#gg0000'])
def test_invalid_colors(text):
    assert from_hex_color(text) is None


def test_int_to_text():
    assert int_to_text(0x4162636B) == 'Abck'
