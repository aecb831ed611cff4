"""
Sentence-boundary silence injection.

Synthesized speech comes back without pauses. Given its word alignment and a target
duration, the injector works out how much silence is missing and rebuilds the audio
with equal gaps after every sentence except the last, plus a trailing reserve, so the
result lands on the target sample count exactly.

Timing is taken from the alignment, not the decoded buffer: synthesis engines pad
the encoded container, and the last aligned word is where speech really stops.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .alignment import SplicePoint, WordAlignment, find_splice_points
from .waveform import AudioBlob, AudioDecodeError, RawWaveform, decode_audio, time_to_sample_index
from .wav import waveform_to_wav

logger = logging.getLogger(__name__)

__all__ = [
    "END_SILENCE_SECONDS",
    "PacingPlan",
    "inject_silence",
    "inject_silence_between_sentences",
    "plan_sentence_silence",
]

END_SILENCE_SECONDS = 2.0


@dataclass(frozen=True)
class PacingPlan:
    """
    How silence is spread over a clip.

    ``allocations[i]`` is the silence inserted after ``splice_points[i]``. Whatever
    the splice points do not take lands at the end, so
    ``sum(allocations) + trailing_silence == total_silence``.
    """

    target_duration: float
    speech_duration: float
    total_silence: float
    end_silence_reserve: float
    splice_points: Tuple[SplicePoint, ...] = field(default_factory=tuple)
    allocations: Tuple[float, ...] = field(default_factory=tuple)

    @property
    def distributed_silence(self) -> float:
        return sum(self.allocations)

    @property
    def trailing_silence(self) -> float:
        return self.total_silence - self.distributed_silence

    @property
    def insertion_count(self) -> int:
        return sum(1 for allocation in self.allocations if allocation > 0)


def plan_sentence_silence(
    alignment: Sequence[WordAlignment],
    target_duration: float,
    *,
    speech_duration: Optional[float] = None,
    end_silence_seconds: float = END_SILENCE_SECONDS,
) -> PacingPlan:
    """
    Decide where silence goes without touching any samples.

    ``speech_duration`` defaults to the end of the last aligned word.
    """
    if speech_duration is None:
        speech_duration = alignment[-1].end_time if alignment else 0.0

    total_silence = max(0.0, target_duration - speech_duration)
    end_reserve = min(end_silence_seconds, total_silence)
    distributable = total_silence - end_reserve

    splice_points = tuple(find_splice_points(alignment)) if total_silence > 0 else ()
    allocations: List[float] = [0.0] * len(splice_points)
    if len(splice_points) > 1 and distributable > 0:
        per_gap = distributable / (len(splice_points) - 1)
        for index in range(len(splice_points) - 1):
            allocations[index] = per_gap

    return PacingPlan(
        target_duration=target_duration,
        speech_duration=speech_duration,
        total_silence=total_silence,
        end_silence_reserve=end_reserve,
        splice_points=splice_points,
        allocations=tuple(allocations),
    )


def inject_silence(
    waveform: RawWaveform,
    alignment: Sequence[WordAlignment],
    target_duration: float,
    *,
    end_silence_seconds: float = END_SILENCE_SECONDS,
) -> Tuple[RawWaveform, PacingPlan]:
    last_end = alignment[-1].end_time if alignment else 0.0
    speech_end = last_end if last_end > 0 else waveform.duration
    plan = plan_sentence_silence(
        alignment,
        target_duration,
        speech_duration=speech_end,
        end_silence_seconds=end_silence_seconds,
    )

    logger.debug(
        "Decoded %.2fs, aligned speech ends at %.2fs (%d Hz, %d ch)",
        waveform.duration,
        speech_end,
        waveform.sample_rate,
        waveform.num_channels,
    )

    if plan.total_silence <= 0:
        logger.info("Speech (%.2fs) already meets target %.2fs; leaving it unchanged.", speech_end, target_duration)
        return waveform, plan

    if not plan.splice_points:
        logger.info("No sentence ends found; placing all %.2fs of silence at the end.", plan.total_silence)
    else:
        logger.info(
            "Distributing %.2fs over %d of %d sentence ends plus %.2fs at the end.",
            plan.distributed_silence,
            plan.insertion_count,
            len(plan.splice_points),
            plan.trailing_silence,
        )

    output = RawWaveform.silent(
        waveform.sample_rate,
        waveform.num_channels,
        waveform.seconds_to_samples(target_duration, "ceil"),
    )
    speech_end_sample = min(waveform.seconds_to_samples(speech_end, "ceil"), waveform.num_samples)
    for source, target in zip(waveform.channels, output.channels):
        _splice_channel(source, target, plan, waveform.sample_rate, speech_end_sample)

    return output, plan


def inject_silence_between_sentences(
    data: bytes,
    alignment: Sequence[WordAlignment],
    target_duration: float,
    *,
    source_mime_type: str = "audio/mpeg",
    end_silence_seconds: float = END_SILENCE_SECONDS,
) -> Tuple[AudioBlob, Optional[PacingPlan]]:
    """
    Stretch synthesized speech to ``target_duration`` seconds and return it as WAV,
    together with the plan that was applied.

    Undecodable input is returned untouched under ``source_mime_type`` with no plan.
    """
    try:
        waveform = decode_audio(data)
    except AudioDecodeError as exc:
        logger.error("Failed to decode synthesized audio, returning it unpaced: %s", exc)
        return AudioBlob(data=data, mime_type=source_mime_type), None

    paced, plan = inject_silence(waveform, alignment, target_duration, end_silence_seconds=end_silence_seconds)
    logger.info(
        "Paced clip: speech %.2fs + %.2fs distributed + %.2fs trailing = %.2fs (target %.2fs)",
        plan.speech_duration,
        plan.distributed_silence,
        plan.trailing_silence,
        paced.duration,
        target_duration,
    )
    return waveform_to_wav(paced), plan


def _splice_channel(
    source: np.ndarray,
    target: np.ndarray,
    plan: PacingPlan,
    sample_rate: int,
    speech_end_sample: int,
) -> None:
    write_pos = 0
    read_pos = 0
    for point, allocation in zip(plan.splice_points, plan.allocations):
        end_sample = min(time_to_sample_index(point.end_time, sample_rate), speech_end_sample)
        write_pos = _copy_clamped(source, read_pos, end_sample, target, write_pos)
        read_pos = max(read_pos, end_sample)
        if allocation > 0:
            # Target is pre-zeroed; skipping ahead leaves the gap silent.
            write_pos += time_to_sample_index(allocation, sample_rate)

    _copy_clamped(source, read_pos, speech_end_sample, target, write_pos)


def _copy_clamped(source: np.ndarray, start: int, end: int, target: np.ndarray, write_pos: int) -> int:
    length = min(end - start, len(target) - write_pos)
    if length <= 0:
        return write_pos
    target[write_pos : write_pos + length] = source[start : start + length]
    return write_pos + length
