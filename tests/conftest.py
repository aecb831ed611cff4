import numpy as np
import pytest

from meditation_audio.alignment import WordAlignment
from meditation_audio.wav import encode_wav


def _tone(seconds, sample_rate, amplitude=0.5, hz=220.0):
    t = np.arange(int(round(seconds * sample_rate)), dtype=np.float64) / sample_rate
    return (amplitude * np.sin(2 * np.pi * hz * t)).astype(np.float32)


def _silence(seconds, sample_rate):
    return np.zeros(int(round(seconds * sample_rate)), dtype=np.float32)


@pytest.fixture
def make_tone():
    return _tone


@pytest.fixture
def make_silence():
    return _silence


@pytest.fixture
def make_wav():
    """Encode a tone of the given length as 16-bit WAV bytes."""

    def _make(seconds, sample_rate=8000, channels=1):
        samples = _tone(seconds, sample_rate)
        return encode_wav([samples] * channels, sample_rate)

    return _make


@pytest.fixture
def three_sentence_alignment():
    # Sentences end at 1.2s, 2.5s and 4.0s.
    return [
        WordAlignment("Breathe", 0.0, 0.6),
        WordAlignment("in.", 0.7, 1.2),
        WordAlignment("Hold", 1.4, 1.9),
        WordAlignment("it.", 2.0, 2.5),
        WordAlignment("Let", 2.7, 3.2),
        WordAlignment("go.", 3.3, 4.0),
    ]
