from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Hashable, Optional, Tuple

from .alignment import WordAlignment
from .cache import AssetCache
from .injector import END_SILENCE_SECONDS, PacingPlan, inject_silence_between_sentences
from .merger import MIN_TOTAL_GAP_SECONDS, concatenate_with_silence_gaps
from .pacing import (
    DEFAULT_CONFIG,
    SPARSE_WORDS_PER_MINUTE,
    PacingConfig,
    PacingResult,
    calculate_pacing,
    estimate_speech_duration,
    target_word_count,
)
from .script_writer import ScriptWriter
from .split_text import count_words, strip_pause_markup
from .stretcher import StretchConfig, stretch_audio_to_duration
from .tts_engine import AlignedSpeech, SynthesisResult, TtsEngine
from .waveform import AudioBlob, guess_mime_type

logger = logging.getLogger(__name__)

__all__ = [
    "MeditationBuilder",
    "MeditationResult",
    "PacedAudio",
    "PacingStrategy",
    "PipelineConfig",
    "pace_speech",
]


class PacingStrategy(str, Enum):
    SENTENCE_SILENCE = "sentence_silence"
    BREAK_STRETCH = "break_stretch"
    PAUSE_MARKUP = "pause_markup"
    CLIP_CONCAT = "clip_concat"
    INTRO_FALLBACK = "intro_fallback"
    UNPACED = "unpaced"


@dataclass
class PipelineConfig:
    """
    Configuration for one meditation build.
    """

    words_per_minute: float = SPARSE_WORDS_PER_MINUTE
    end_silence_seconds: float = END_SILENCE_SECONDS
    pacing: PacingConfig = DEFAULT_CONFIG
    stretch: StretchConfig = field(default_factory=StretchConfig)
    clip_target_seconds: float = 60.0
    middle_target_seconds: float = 18.0
    min_total_gap_seconds: float = MIN_TOTAL_GAP_SECONDS
    max_retries: int = 3
    initial_retry_delay: float = 0.5
    retry_backoff_factor: float = 2.0


@dataclass(frozen=True)
class PacedAudio:
    audio: AudioBlob
    strategy: PacingStrategy
    plan: Optional[PacingPlan] = None


@dataclass
class MeditationResult:
    script: str
    audio: AudioBlob
    strategy: PacingStrategy
    target_duration: float
    requested_words: int
    retries: int = 0
    plan: Optional[PacingPlan] = None
    markup_pacing: Optional[PacingResult] = None
    alignment: Tuple[WordAlignment, ...] = field(default_factory=tuple)

    @property
    def word_count(self) -> int:
        return count_words(self.script)


def pace_speech(
    result: SynthesisResult,
    target_duration: float,
    *,
    end_silence_seconds: float = END_SILENCE_SECONDS,
    stretch_config: Optional[StretchConfig] = None,
) -> PacedAudio:
    """
    Bring synthesized speech up to ``target_duration`` seconds.

    Speech with word timing gets silence after each sentence; anything else has
    its existing pauses widened.
    """
    if isinstance(result, AlignedSpeech) and result.alignment:
        audio, plan = inject_silence_between_sentences(
            result.audio,
            result.alignment,
            target_duration,
            source_mime_type=result.mime_type,
            end_silence_seconds=end_silence_seconds,
        )
        if plan is None:
            return PacedAudio(audio=audio, strategy=PacingStrategy.UNPACED)
        return PacedAudio(audio=audio, strategy=PacingStrategy.SENTENCE_SILENCE, plan=plan)

    logger.warning("No word alignment available; stretching existing pauses instead.")
    audio = stretch_audio_to_duration(
        result.audio,
        target_duration,
        source_mime_type=result.mime_type,
        config=stretch_config or StretchConfig(),
    )
    return PacedAudio(audio=audio, strategy=PacingStrategy.BREAK_STRETCH)


class MeditationBuilder:
    """
    Writes a script, voices it and paces the result to a requested length.
    """

    def __init__(
        self,
        engine: TtsEngine,
        writer: ScriptWriter,
        config: Optional[PipelineConfig] = None,
        cache: Optional[AssetCache] = None,
    ) -> None:
        self.engine = engine
        self.writer = writer
        self.config = config or PipelineConfig()
        self.cache = cache if cache is not None else AssetCache()

    def build_personalized(self, context: str, duration_seconds: float) -> MeditationResult:
        word_count = target_word_count(duration_seconds, self.config.words_per_minute)
        logger.info("Requesting %d words for a %.1fs meditation.", word_count, duration_seconds)
        script = strip_pause_markup(self.writer.write_script(word_count, context))
        if not script:
            raise RuntimeError("Script writer returned no speakable text.")
        estimated = estimate_speech_duration(script, self.config.pacing.chars_per_second)
        if estimated > duration_seconds:
            logger.warning(
                "Script needs about %.1fs of speech for a %.1fs target; the result will run long.",
                estimated,
                duration_seconds,
            )

        synthesis, retries = self._synthesize_with_retry(script)
        paced = pace_speech(
            synthesis,
            duration_seconds,
            end_silence_seconds=self.config.end_silence_seconds,
            stretch_config=self.config.stretch,
        )
        return MeditationResult(
            script=script,
            audio=paced.audio,
            strategy=paced.strategy,
            target_duration=duration_seconds,
            requested_words=word_count,
            retries=retries,
            plan=paced.plan,
            alignment=synthesis.alignment if isinstance(synthesis, AlignedSpeech) else (),
        )

    def build_with_pause_markup(self, context: str, duration_seconds: float) -> MeditationResult:
        """
        Older path: pauses are written into the text as break tags and the engine
        renders them, so the audio is returned as synthesized.
        """
        word_count = target_word_count(duration_seconds, self.config.words_per_minute)
        script = strip_pause_markup(self.writer.write_script(word_count, context))
        if not script:
            raise RuntimeError("Script writer returned no speakable text.")

        pacing = calculate_pacing(script, duration_seconds, self.config.pacing)
        logger.info(
            "Pause markup: %d atoms, %.2fs speech estimate, %.2fs of breaks.",
            pacing.atom_count,
            pacing.estimated_speech_seconds,
            pacing.total_silence_to_add,
        )
        synthesis, retries = self._synthesize_with_retry(pacing.markup, is_ssml=True)
        return MeditationResult(
            script=script,
            audio=AudioBlob(data=synthesis.audio, mime_type=synthesis.mime_type),
            strategy=PacingStrategy.PAUSE_MARKUP,
            target_duration=duration_seconds,
            requested_words=word_count,
            retries=retries,
            markup_pacing=pacing,
        )

    def build_with_clips(
        self,
        context: str,
        intro_key: Hashable,
        outro_key: Hashable,
        loader: Callable[[Hashable], bytes],
    ) -> MeditationResult:
        """
        Sandwich a short generated middle between prerecorded intro and outro clips.

        The clips are fetched in the background while the script is written. If the
        middle cannot be voiced or joined, the intro alone is returned.
        """
        middle_words = target_word_count(self.config.middle_target_seconds, self.config.words_per_minute)
        target = self.config.clip_target_seconds

        with ThreadPoolExecutor(max_workers=2) as pool:
            intro_future = pool.submit(self.cache.get_or_load, intro_key, lambda: loader(intro_key))
            outro_future = pool.submit(self.cache.get_or_load, outro_key, lambda: loader(outro_key))
            script = strip_pause_markup(self.writer.write_script(middle_words, context))
            intro = intro_future.result()
            outro = outro_future.result()

        try:
            if not script:
                raise RuntimeError("Script writer returned no speakable text.")
            synthesis, retries = self._synthesize_with_retry(script)
            audio = concatenate_with_silence_gaps(
                [intro, synthesis.audio, outro],
                target,
                min_total_gap=self.config.min_total_gap_seconds,
            )
        except (RuntimeError, OSError, ValueError) as exc:
            logger.error("Clip assembly failed, falling back to the intro clip: %s", exc)
            return MeditationResult(
                script=script,
                audio=AudioBlob(data=intro, mime_type=guess_mime_type(intro)),
                strategy=PacingStrategy.INTRO_FALLBACK,
                target_duration=target,
                requested_words=middle_words,
            )

        return MeditationResult(
            script=script,
            audio=audio,
            strategy=PacingStrategy.CLIP_CONCAT,
            target_duration=target,
            requested_words=middle_words,
            retries=retries,
        )

    def _synthesize_with_retry(self, text: str, is_ssml: bool = False) -> tuple[SynthesisResult, int]:
        delay = self.config.initial_retry_delay
        attempt = 0
        retries = 0
        while True:
            try:
                return self.engine.synthesize(text, is_ssml=is_ssml), retries
            except Exception:
                attempt += 1
                if attempt >= self.config.max_retries:
                    logger.error("Synthesis permanently failed after %d attempts.", attempt)
                    raise
                retries += 1
                logger.warning(
                    "Synthesis failed (attempt %d/%d). Retrying in %.2fs.",
                    attempt,
                    self.config.max_retries,
                    delay,
                )
                time.sleep(delay)
                delay *= self.config.retry_backoff_factor
