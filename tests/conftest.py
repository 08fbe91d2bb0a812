"""Shared fixtures for the converter tests."""

import struct
import wave
from pathlib import Path

import pytest

from core.notifier import Notifier


class RecordingNotifier(Notifier):
    """Keeps all messages for assertions"""

    def __init__(self):
        self.messages = []
        self.errors = []

    def log(self, message, *args):
        self.messages.append(message % args if args else message)

    def log_error(self, message, *args, exc=None):
        text = message % args if args else message
        if exc is not None:
            text = f"{text}: {exc}"
        self.errors.append(text)


@pytest.fixture
def notifier():
    return RecordingNotifier()


def write_wav(path: Path, seconds: float = 1.0, sample_rate: int = 44100, channels: int = 2) -> Path:
    """Write a silent 16-bit WAV file."""
    frames = int(seconds * sample_rate)
    with wave.open(str(path), 'wb') as f:
        f.setnchannels(channels)
        f.setsampwidth(2)
        f.setframerate(sample_rate)
        f.writeframes(struct.pack('<h', 0) * frames * channels)
    return path


def write_rpp(path: Path, text: str) -> Path:
    path.write_text(text.strip() + '\n', encoding='utf-8')
    return path


@pytest.fixture
def make_wav(tmp_path):
    def factory(name='sample.wav', seconds=1.0, sample_rate=44100, channels=2):
        return write_wav(tmp_path / name, seconds, sample_rate, channels)
    return factory


@pytest.fixture
def make_rpp(tmp_path):
    def factory(text, name='song.rpp'):
        return write_rpp(tmp_path / name, text)
    return factory
