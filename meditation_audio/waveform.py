from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

logger = logging.getLogger(__name__)

__all__ = [
    "AudioBlob",
    "AudioDecodeError",
    "RawWaveform",
    "decode_audio",
    "decode_segment",
    "guess_audio_format",
    "guess_mime_type",
    "time_to_sample_index",
    "waveform_from_segment",
]


class AudioDecodeError(RuntimeError):
    """Raised when encoded audio bytes cannot be turned into PCM samples."""


@dataclass(frozen=True)
class AudioBlob:
    """Finished audio handed back to callers, tagged with its container type."""

    data: bytes
    mime_type: str = "audio/wav"


@dataclass
class RawWaveform:
    """
    Decoded audio: one float32 sample array per channel, values in [-1, 1].
    """

    sample_rate: int
    channels: List[np.ndarray]

    def __post_init__(self) -> None:
        if self.sample_rate <= 0:
            raise ValueError(f"Sample rate must be positive, got {self.sample_rate}")
        if not self.channels:
            raise ValueError("A waveform needs at least one channel.")
        lengths = {len(channel) for channel in self.channels}
        if len(lengths) != 1:
            raise ValueError(f"Channel lengths differ: {sorted(lengths)}")

    @classmethod
    def silent(cls, sample_rate: int, num_channels: int, num_samples: int) -> "RawWaveform":
        return cls(
            sample_rate=sample_rate,
            channels=[np.zeros(max(0, num_samples), dtype=np.float32) for _ in range(num_channels)],
        )

    @property
    def num_channels(self) -> int:
        return len(self.channels)

    @property
    def num_samples(self) -> int:
        return len(self.channels[0])

    @property
    def duration(self) -> float:
        return self.num_samples / self.sample_rate

    def seconds_to_samples(self, seconds: float, rounding: str = "floor") -> int:
        return time_to_sample_index(seconds, self.sample_rate, rounding)


def time_to_sample_index(seconds: float, sample_rate: int, rounding: str = "floor") -> int:
    """
    Convert a time in seconds to a sample index at ``sample_rate``.

    Every component converts through here so that floor/ceil policy cannot drift
    between them. The product is rounded to 6 decimals first: ``0.7 * 44100`` is
    ``30869.999999999996`` in binary floating point and must floor to 30870.
    """
    if rounding not in ("floor", "ceil"):
        raise ValueError(f"Unknown rounding mode: {rounding}")
    exact = round(max(0.0, seconds) * sample_rate, 6)
    if rounding == "ceil":
        return int(math.ceil(exact))
    return int(math.floor(exact))


def guess_audio_format(data: bytes) -> Optional[str]:
    """Sniff the container from magic bytes; ``None`` lets ffmpeg probe it."""
    if data[:4] == b"RIFF" and data[8:12] == b"WAVE":
        return "wav"
    if data[:3] == b"ID3" or (len(data) > 1 and data[0] == 0xFF and data[1] & 0xE0 == 0xE0):
        return "mp3"
    if data[:4] == b"OggS":
        return "ogg"
    if data[:4] == b"fLaC":
        return "flac"
    return None


MIME_TYPES = {"wav": "audio/wav", "mp3": "audio/mpeg", "ogg": "audio/ogg", "flac": "audio/flac"}


def guess_mime_type(data: bytes, default: str = "audio/mpeg") -> str:
    return MIME_TYPES.get(guess_audio_format(data) or "", default)


def decode_segment(data: bytes, audio_format: Optional[str] = None) -> AudioSegment:
    """
    Decode encoded audio bytes into a pydub AudioSegment.

    WAV is parsed by pydub directly; every other container goes through ffmpeg. Any
    decoder failure is re-raised as :class:`AudioDecodeError`.
    """
    if not data:
        raise AudioDecodeError("No audio data to decode.")

    fmt = audio_format or guess_audio_format(data)
    with io.BytesIO(data) as stream:
        try:
            segment = AudioSegment.from_file(stream, format=fmt)
        except (CouldntDecodeError, OSError, KeyError, IndexError, ValueError) as exc:
            raise AudioDecodeError(
                f"Unable to decode {len(data)} bytes of {fmt or 'unknown'} audio: {exc}"
            ) from exc

    logger.debug(
        "Decoded %d bytes (%s): %d Hz, %d ch, %d ms",
        len(data),
        fmt or "probed",
        segment.frame_rate,
        segment.channels,
        len(segment),
    )
    return segment


def decode_audio(data: bytes, audio_format: Optional[str] = None) -> RawWaveform:
    return waveform_from_segment(decode_segment(data, audio_format))


def waveform_from_segment(segment: AudioSegment) -> RawWaveform:
    samples = np.array(segment.get_array_of_samples(), dtype=np.float64)
    full_scale = float(1 << (8 * segment.sample_width - 1))
    # Same asymmetric factors as the WAV encoder, so 16-bit input survives a round trip.
    samples = np.where(samples < 0, samples / full_scale, samples / (full_scale - 1))
    frames = samples.reshape(-1, segment.channels)
    channels = [
        np.ascontiguousarray(frames[:, index], dtype=np.float32)
        for index in range(segment.channels)
    ]
    return RawWaveform(sample_rate=segment.frame_rate, channels=channels)
