"""
Alignment-free stretching: find the quiet gaps already in a clip and widen them.

Used when the synthesizer returned audio without timing data. Gaps are detected from
short-time RMS energy on the first channel, silence is split evenly between them, and
the seams are smoothed with a smoothstep fade so the splice does not click.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

import numpy as np

from .waveform import AudioBlob, AudioDecodeError, RawWaveform, decode_audio, time_to_sample_index
from .wav import waveform_to_wav

logger = logging.getLogger(__name__)

__all__ = [
    "BreakPoint",
    "StretchConfig",
    "find_breaks",
    "stretch_audio_to_duration",
    "stretch_waveform",
]

# 30 ms at 44.1 kHz; shorter fades sample this curve sparsely.
FADE_CURVE_POINTS = 1323
_CURVE_T = np.arange(FADE_CURVE_POINTS, dtype=np.float64) / FADE_CURVE_POINTS
FADE_CURVE_IN = (_CURVE_T * _CURVE_T * (3.0 - 2.0 * _CURVE_T)).astype(np.float32)
FADE_CURVE_OUT = (1.0 - FADE_CURVE_IN).astype(np.float32)


@dataclass(frozen=True)
class StretchConfig:
    rms_threshold: float = 0.012
    min_silence_ms: int = 350
    window_ms: int = 80
    edge_guard_seconds: float = 0.4
    fade_ms: int = 30


@dataclass(frozen=True)
class BreakPoint:
    """A detected quiet region: ``position`` is its midpoint, ``length`` its size (samples)."""

    position: int
    length: int


def find_breaks(samples: np.ndarray, sample_rate: int, config: StretchConfig = StretchConfig()) -> List[BreakPoint]:
    """
    Scan ``samples`` for quiet runs long enough to be heard as pauses.

    Windows of ``config.window_ms`` are compared against the RMS threshold; a run of
    quiet windows becomes a break once a loud window closes it and it lasted at least
    ``config.min_silence_ms``. The first and last ``edge_guard_seconds`` are skipped
    so encoder lead-in and lead-out do not register as breaks.
    """
    window = max(1, time_to_sample_index(config.window_ms / 1000.0, sample_rate))
    min_silence = time_to_sample_index(config.min_silence_ms / 1000.0, sample_rate)
    guard = time_to_sample_index(config.edge_guard_seconds, sample_rate)
    start_offset = guard
    end_offset = len(samples) - guard

    breaks: List[BreakPoint] = []
    silence_start = -1
    for position in range(start_offset, end_offset, window):
        frame = samples[position : min(position + window, len(samples))]
        rms = float(np.sqrt(np.mean(np.square(frame, dtype=np.float64))))
        if rms < config.rms_threshold:
            if silence_start < 0:
                silence_start = position
        elif silence_start >= 0:
            length = position - silence_start
            if length >= min_silence:
                # Cut in the middle of the gap, away from the surrounding speech.
                breaks.append(BreakPoint(position=silence_start + length // 2, length=length))
            silence_start = -1

    return breaks


def stretch_waveform(
    waveform: RawWaveform,
    target_duration: float,
    config: StretchConfig = StretchConfig(),
) -> RawWaveform:
    sample_rate = waveform.sample_rate
    target_samples = waveform.seconds_to_samples(target_duration, "ceil")
    if target_samples <= waveform.num_samples:
        return waveform

    needed = target_samples - waveform.num_samples
    breaks = sorted(find_breaks(waveform.channels[0], sample_rate, config), key=lambda b: b.position)
    fade = min(time_to_sample_index(config.fade_ms / 1000.0, sample_rate), FADE_CURVE_POINTS)

    logger.info(
        "Stretching %.2fs to %.2fs across %d breaks.",
        waveform.duration,
        target_duration,
        len(breaks),
    )

    output = RawWaveform.silent(sample_rate, waveform.num_channels, target_samples)
    if not breaks:
        for source, target in zip(waveform.channels, output.channels):
            target[: len(source)] = source
            _fade_out(target, len(source), fade)
        return output

    gap = needed // len(breaks)
    bounds = [0] + [bp.position for bp in breaks] + [waveform.num_samples]
    for source, target in zip(waveform.channels, output.channels):
        write_pos = 0
        for index in range(len(bounds) - 1):
            start, end = bounds[index], bounds[index + 1]
            length = min(end - start, len(target) - write_pos)
            if length <= 0:
                break
            target[write_pos : write_pos + length] = source[start : start + length]
            if index > 0:
                _fade_in(target, write_pos, fade)
            write_pos += length
            if index < len(bounds) - 2:
                _fade_out(target, write_pos, fade)
                write_pos += gap

    return output


def stretch_audio_to_duration(
    data: bytes,
    target_duration: float,
    *,
    source_mime_type: str = "audio/mpeg",
    config: StretchConfig = StretchConfig(),
) -> AudioBlob:
    """
    Lengthen encoded audio to ``target_duration`` by widening its natural pauses.

    Audio already at or past the target, and audio that cannot be decoded, is
    returned as the original bytes.
    """
    try:
        waveform = decode_audio(data)
    except AudioDecodeError as exc:
        logger.error("Failed to decode audio for stretching, returning it as-is: %s", exc)
        return AudioBlob(data=data, mime_type=source_mime_type)

    if waveform.duration >= target_duration:
        logger.info("Audio (%.2fs) already meets target %.2fs.", waveform.duration, target_duration)
        return AudioBlob(data=data, mime_type=source_mime_type)

    return waveform_to_wav(stretch_waveform(waveform, target_duration, config))


def _fade_out(data: np.ndarray, position: int, fade: int) -> None:
    """Fade the ``fade`` samples ending at ``position``."""
    if fade <= 0:
        return
    start = max(0, position - fade)
    end = min(position, len(data))
    if end <= start:
        return
    # The tail of the curve lines up with ``position`` even when clipped at the start.
    curve = _curve(FADE_CURVE_OUT, fade)[fade - (position - start) :]
    data[start:end] *= curve[: end - start]


def _fade_in(data: np.ndarray, position: int, fade: int) -> None:
    """Fade in the ``fade`` samples starting at ``position``."""
    if fade <= 0:
        return
    length = min(fade, len(data) - position)
    if length <= 0:
        return
    data[position : position + length] *= _curve(FADE_CURVE_IN, fade)[:length]


def _curve(curve: np.ndarray, fade: int) -> np.ndarray:
    scale = FADE_CURVE_POINTS / fade
    return curve[(np.arange(fade) * scale).astype(np.int64)]
