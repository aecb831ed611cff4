from __future__ import annotations

import logging
from typing import List, Sequence

from .waveform import AudioBlob, RawWaveform, decode_segment, time_to_sample_index, waveform_from_segment
from .wav import waveform_to_wav

logger = logging.getLogger(__name__)

__all__ = ["MIN_TOTAL_GAP_SECONDS", "concatenate_waveforms", "concatenate_with_silence_gaps"]

# Clips that already fill the target still get this much breathing room in total.
MIN_TOTAL_GAP_SECONDS = 1.0


def concatenate_waveforms(
    waveforms: Sequence[RawWaveform],
    target_duration: float,
    *,
    min_total_gap: float = MIN_TOTAL_GAP_SECONDS,
) -> RawWaveform:
    """
    Join clips end to end with equal silent gaps sized to reach ``target_duration``.

    Clips are never trimmed: when they already exceed the target the gaps shrink to
    ``min_total_gap`` in total and the result runs long. A clip with fewer channels
    than the widest one repeats its last channel into the missing ones.
    """
    if len(waveforms) < 2:
        raise ValueError("Need at least two clips to concatenate.")
    sample_rate = waveforms[0].sample_rate
    if any(waveform.sample_rate != sample_rate for waveform in waveforms):
        raise ValueError("All clips must share one sample rate before concatenation.")

    gap_count = len(waveforms) - 1
    total_clip_duration = sum(waveform.duration for waveform in waveforms)
    remaining = max(min_total_gap, target_duration - total_clip_duration)
    gap_seconds = remaining / gap_count
    gap = time_to_sample_index(gap_seconds, sample_rate)

    logger.info(
        "Concatenating %d clips (%.2fs of audio) with %d gaps of %.2fs for target %.2fs",
        len(waveforms),
        total_clip_duration,
        gap_count,
        gap_seconds,
        target_duration,
    )

    num_channels = max(waveform.num_channels for waveform in waveforms)
    total_samples = sum(waveform.num_samples for waveform in waveforms) + gap * gap_count
    output = RawWaveform.silent(sample_rate, num_channels, total_samples)

    for channel_index, target in enumerate(output.channels):
        write_pos = 0
        for index, waveform in enumerate(waveforms):
            source = waveform.channels[min(channel_index, waveform.num_channels - 1)]
            target[write_pos : write_pos + len(source)] = source
            write_pos += len(source)
            if index < gap_count:
                write_pos += gap

    return output


def concatenate_with_silence_gaps(
    clips: Sequence[bytes],
    target_duration: float,
    *,
    min_total_gap: float = MIN_TOTAL_GAP_SECONDS,
) -> AudioBlob:
    """
    Decode encoded clips (e.g. intro, generated middle, outro) and join them as WAV.

    Every clip is resampled to the first clip's sample rate. Decode failures raise
    :class:`~meditation_audio.waveform.AudioDecodeError`.
    """
    segments = [decode_segment(clip) for clip in clips]
    if not segments:
        raise ValueError("No clips provided for concatenation.")

    frame_rate = segments[0].frame_rate
    waveforms: List[RawWaveform] = []
    for segment in segments:
        if segment.frame_rate != frame_rate:
            logger.debug("Resampling clip from %d Hz to %d Hz", segment.frame_rate, frame_rate)
            segment = segment.set_frame_rate(frame_rate)
        waveforms.append(waveform_from_segment(segment))

    combined = concatenate_waveforms(waveforms, target_duration, min_total_gap=min_total_gap)
    logger.info("Concatenated clip is %.2fs long.", combined.duration)
    return waveform_to_wav(combined)
