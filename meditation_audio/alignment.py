from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Sequence

logger = logging.getLogger(__name__)

__all__ = [
    "SplicePoint",
    "WordAlignment",
    "character_alignment_to_words",
    "find_splice_points",
]

SENTENCE_END_PATTERN = re.compile(r"[.?!][\"'”’)\]]*$")


@dataclass(frozen=True)
class WordAlignment:
    word: str
    start_time: float
    end_time: float


@dataclass(frozen=True)
class SplicePoint:
    """A sentence-ending word; silence may only be inserted right after ``end_time``."""

    word: str
    end_time: float


def character_alignment_to_words(
    characters: Sequence[str],
    start_times: Sequence[float],
    end_times: Sequence[float],
) -> List[WordAlignment]:
    """
    Collapse per-character synthesis timestamps into per-word timings.

    Whitespace closes the current word. A word starts at its first character's start
    time and ends at its last character's end time. Tokens that look like leaked
    markup tags are dropped.
    """
    if not (len(characters) == len(start_times) == len(end_times)):
        raise ValueError(
            "Character alignment arrays differ in length: "
            f"{len(characters)} characters, {len(start_times)} starts, {len(end_times)} ends"
        )

    words: List[WordAlignment] = []
    current: List[str] = []
    word_start = 0.0
    word_end = 0.0

    def flush() -> None:
        cleaned = "".join(current).strip()
        current.clear()
        if not cleaned:
            return
        if _looks_like_markup(cleaned):
            logger.debug("Dropping markup token from alignment: %s", cleaned)
            return
        words.append(WordAlignment(word=cleaned, start_time=word_start, end_time=word_end))

    for char, start, end in zip(characters, start_times, end_times):
        if char.isspace():
            flush()
            continue
        if not current:
            word_start = float(start)
        current.append(char)
        word_end = float(end)
    flush()

    return words


def find_splice_points(alignment: Sequence[WordAlignment]) -> List[SplicePoint]:
    return [
        SplicePoint(word=entry.word, end_time=entry.end_time)
        for entry in alignment
        if SENTENCE_END_PATTERN.search(entry.word)
    ]


def _looks_like_markup(token: str) -> bool:
    # A tag with attributes splits on its inner space, so check both halves.
    return token.startswith("<") or token.endswith(">") or "/>" in token
