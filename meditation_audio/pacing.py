"""
Pre-synthesis pacing: word budgets for script requests and the legacy pause-markup path.

The character-rate model here is only an estimate. Once speech has been synthesized
its word alignment is the authoritative timing (see :mod:`meditation_audio.injector`).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from .split_text import PunctuationClass, SpeechAtom, atomize_text, count_chars

logger = logging.getLogger(__name__)

__all__ = [
    "CHARS_PER_SECOND",
    "DENSE_WORDS_PER_MINUTE",
    "MAX_BREAK_SECONDS",
    "MIN_BREAK_SECONDS",
    "SILENCE_SAFETY_BUFFER",
    "SPARSE_WORDS_PER_MINUTE",
    "PacingConfig",
    "PacingResult",
    "SpeechAtomWithSilence",
    "calculate_pacing",
    "distribute_silence",
    "estimate_speech_duration",
    "format_break_tags",
    "target_word_count",
]

# Sparse narration leaves roughly 60% of the clip to injected silence.
SPARSE_WORDS_PER_MINUTE = 28.0
DENSE_WORDS_PER_MINUTE = 45.0
CHARS_PER_SECOND = 12.0

# Synthesized speech tends to run faster than the character estimate.
SILENCE_SAFETY_BUFFER = 1.1
MAX_BREAK_SECONDS = 3.0
MIN_BREAK_SECONDS = 0.1

WEIGHT_COMMA = 1
WEIGHT_SENTENCE = 3
WEIGHT_PARAGRAPH = 5


@dataclass(frozen=True)
class PacingConfig:
    chars_per_second: float = CHARS_PER_SECOND
    silence_safety_buffer: float = SILENCE_SAFETY_BUFFER
    max_break_seconds: float = MAX_BREAK_SECONDS
    min_break_seconds: float = MIN_BREAK_SECONDS
    weight_comma: int = WEIGHT_COMMA
    weight_sentence: int = WEIGHT_SENTENCE
    weight_paragraph: int = WEIGHT_PARAGRAPH

    def weights(self) -> Dict[PunctuationClass, int]:
        return {
            PunctuationClass.NONE: 0,
            PunctuationClass.COMMA: self.weight_comma,
            PunctuationClass.SENTENCE_END: self.weight_sentence,
            PunctuationClass.PARAGRAPH: self.weight_paragraph,
        }


DEFAULT_CONFIG = PacingConfig()


@dataclass(frozen=True)
class SpeechAtomWithSilence:
    atom: SpeechAtom
    silence_after: float

    @property
    def text(self) -> str:
        return self.atom.text


@dataclass(frozen=True)
class PacingResult:
    markup: str
    total_chars: int
    total_words: int
    estimated_speech_seconds: float
    raw_silence_budget: float
    final_silence_budget: float
    total_silence_to_add: float
    target_duration_seconds: float
    atoms: Tuple[SpeechAtomWithSilence, ...] = field(default_factory=tuple)

    @property
    def estimated_total_seconds(self) -> float:
        return self.estimated_speech_seconds + self.total_silence_to_add

    @property
    def atom_count(self) -> int:
        return len(self.atoms)


def target_word_count(duration_seconds: float, words_per_minute: float = SPARSE_WORDS_PER_MINUTE) -> int:
    """
    Number of words to request from the script writer for ``duration_seconds``.

    >>> target_word_count(60)
    28
    """
    if duration_seconds < 0:
        raise ValueError(f"Duration must be non-negative, got {duration_seconds}")
    # Half-up: 30s of dense narration is 22.5 words and asks for 23.
    return int(math.floor(duration_seconds / 60.0 * words_per_minute + 0.5))


def estimate_speech_duration(text: str, chars_per_second: float = CHARS_PER_SECOND) -> float:
    if chars_per_second <= 0:
        return 0.0
    return count_chars(text) / chars_per_second


def distribute_silence(
    atoms: Sequence[SpeechAtom],
    silence_budget: float,
    config: PacingConfig = DEFAULT_CONFIG,
) -> List[SpeechAtomWithSilence]:
    """
    Share ``silence_budget`` between atoms in proportion to their weights.

    The last atom never gets a pause, and any share below
    ``config.min_break_seconds`` is dropped to zero rather than emitted inaudibly.
    """
    total_weight = sum(atom.weight for atom in atoms[:-1]) if len(atoms) > 1 else 0
    time_per_unit = silence_budget / total_weight if total_weight > 0 else 0.0

    result: List[SpeechAtomWithSilence] = []
    last_index = len(atoms) - 1
    for index, atom in enumerate(atoms):
        silence_after = 0.0
        if index != last_index and atom.weight > 0 and time_per_unit > 0:
            silence_after = atom.weight * time_per_unit
            if silence_after < config.min_break_seconds:
                silence_after = 0.0
        result.append(SpeechAtomWithSilence(atom=atom, silence_after=silence_after))
    return result


def format_break_tags(total_seconds: float, config: PacingConfig = DEFAULT_CONFIG) -> str:
    """
    Render a pause as one or more ``<break time="X.Xs"/>`` tags.

    Each tag stays within ``config.max_break_seconds``; a remainder at or below the
    minimum perceptible pause is not emitted.
    """
    tags: List[str] = []
    remaining = total_seconds
    while remaining > config.min_break_seconds:
        duration = min(remaining, config.max_break_seconds)
        tags.append(f'<break time="{duration:.1f}s"/>')
        remaining -= duration
    return "".join(tags)


def calculate_pacing(
    text: str,
    target_duration_seconds: float,
    config: PacingConfig = DEFAULT_CONFIG,
) -> PacingResult:
    atoms = atomize_text(text, config.weights())
    total_chars = sum(atom.char_count for atom in atoms)
    total_words = sum(atom.word_count for atom in atoms)
    estimated_speech = total_chars / config.chars_per_second if config.chars_per_second > 0 else 0.0

    raw_budget = max(0.0, target_duration_seconds - estimated_speech)
    final_budget = raw_budget * config.silence_safety_buffer

    paced = distribute_silence(atoms, final_budget, config)
    total_silence = sum(item.silence_after for item in paced)

    logger.debug(
        "Pacing %d atoms: speech %.2fs, budget %.2fs (raw %.2fs), allocated %.2fs for target %.2fs",
        len(atoms),
        estimated_speech,
        final_budget,
        raw_budget,
        total_silence,
        target_duration_seconds,
    )

    return PacingResult(
        markup=_build_markup(paced, config),
        total_chars=total_chars,
        total_words=total_words,
        estimated_speech_seconds=estimated_speech,
        raw_silence_budget=raw_budget,
        final_silence_budget=final_budget,
        total_silence_to_add=total_silence,
        target_duration_seconds=target_duration_seconds,
        atoms=tuple(paced),
    )


def _build_markup(paced: Sequence[SpeechAtomWithSilence], config: PacingConfig) -> str:
    parts: List[str] = []
    for index, item in enumerate(paced):
        piece = item.atom.text + item.atom.punctuation_char.strip()
        if item.silence_after > 0:
            piece += format_break_tags(item.silence_after, config)
        parts.append(piece)
        if index != len(paced) - 1:
            parts.append("\n\n" if item.atom.punctuation is PunctuationClass.PARAGRAPH else " ")
    return "".join(parts)
