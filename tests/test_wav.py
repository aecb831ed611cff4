import struct

import numpy as np
import pytest

from meditation_audio.waveform import AudioDecodeError, decode_audio, guess_audio_format, time_to_sample_index
from meditation_audio.wav import WAV_HEADER_SIZE, encode_wav


def test_encode_wav_writes_pcm_header():
    data = encode_wav([np.zeros(100, dtype=np.float32)] * 2, 22050)

    fields = struct.unpack("<4sI4s4sIHHIIHH4sI", data[:WAV_HEADER_SIZE])
    assert fields[0] == b"RIFF"
    assert fields[1] == len(data) - 8
    assert fields[2] == b"WAVE"
    assert fields[5] == 1  # PCM
    assert fields[6] == 2
    assert fields[7] == 22050
    assert fields[8] == 22050 * 4
    assert fields[9] == 4
    assert fields[10] == 16
    assert fields[12] == 100 * 4
    assert guess_audio_format(data) == "wav"


def test_encode_wav_scales_asymmetrically_and_clips():
    samples = np.array([-2.0, -1.0, -0.5, 0.0, 1.0, 1.5], dtype=np.float32)
    pcm = np.frombuffer(encode_wav([samples], 8000)[WAV_HEADER_SIZE:], dtype="<i2")

    assert pcm.tolist() == [-32768, -32768, -16384, 0, 32767, 32767]


def test_encode_wav_interleaves_channels():
    left = np.array([0.5, 0.5], dtype=np.float32)
    right = np.array([-0.5, -0.5], dtype=np.float32)
    pcm = np.frombuffer(encode_wav([left, right], 8000)[WAV_HEADER_SIZE:], dtype="<i2")

    assert pcm.tolist()[1::2] == [-16384, -16384]
    assert all(value > 0 for value in pcm.tolist()[0::2])


def test_encode_wav_requires_channels():
    with pytest.raises(ValueError):
        encode_wav([], 8000)


def test_decode_reverses_encode(make_tone):
    original = encode_wav([make_tone(0.25, 8000)], 8000)

    waveform = decode_audio(original)

    assert waveform.sample_rate == 8000
    assert waveform.num_channels == 1
    assert waveform.num_samples == 2000
    assert encode_wav(waveform.channels, waveform.sample_rate) == original


def test_decode_empty_bytes_raises():
    with pytest.raises(AudioDecodeError):
        decode_audio(b"")


def test_time_to_sample_index_absorbs_float_error():
    assert time_to_sample_index(0.7, 44100) == 30870
    assert time_to_sample_index(0.7, 44100, "ceil") == 30870
    assert time_to_sample_index(0.10001, 8000, "ceil") == 801
    assert time_to_sample_index(-1.0, 8000) == 0
