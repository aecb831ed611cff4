from __future__ import annotations

import io
import wave
from typing import Sequence

import numpy as np

from .waveform import AudioBlob, RawWaveform

__all__ = ["WAV_HEADER_SIZE", "encode_wav", "waveform_to_wav"]

WAV_HEADER_SIZE = 44
SAMPLE_WIDTH = 2
_POSITIVE_SCALE = 32767.0
_NEGATIVE_SCALE = 32768.0


def encode_wav(channels: Sequence[np.ndarray], sample_rate: int) -> bytes:
    """
    Serialize float channel data as a 16-bit PCM WAV file.

    Samples are clamped to [-1, 1] and scaled by 32767 above zero and 32768 below it,
    so both ends of the signed 16-bit range are reachable without clipping.
    """
    if not len(channels):
        raise ValueError("Cannot encode audio without channels.")

    stacked = np.clip(np.vstack([np.asarray(channel, dtype=np.float64) for channel in channels]), -1.0, 1.0)
    scaled = np.where(stacked < 0, stacked * _NEGATIVE_SCALE, stacked * _POSITIVE_SCALE)
    pcm = np.rint(scaled).astype("<i2")

    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(len(channels))
        wav_file.setsampwidth(SAMPLE_WIDTH)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(np.ascontiguousarray(pcm.T).tobytes())
    return buffer.getvalue()


def waveform_to_wav(waveform: RawWaveform) -> AudioBlob:
    return AudioBlob(data=encode_wav(waveform.channels, waveform.sample_rate), mime_type="audio/wav")
