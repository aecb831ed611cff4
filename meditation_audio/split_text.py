from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence

logger = logging.getLogger(__name__)

__all__ = [
    "PunctuationClass",
    "SpeechAtom",
    "atomize_text",
    "classify_punctuation",
    "count_chars",
    "count_words",
    "find_sentence_boundaries",
    "strip_pause_markup",
]

# Trailing whitespace belongs to the punctuation run, so ". \n" still closes a paragraph.
ATOM_PATTERN = re.compile(r"([^,.?!\n]+)([,.?!\n][,.?!\s]*)?")
BREAK_TAG_PATTERN = re.compile(r"<break[^>]*/?>", re.IGNORECASE)
PAUSE_CUE_PATTERN = re.compile(r"\[(?:long )?pause\]", re.IGNORECASE)
TERMINAL_MARKS = ".?!"


class PunctuationClass(str, Enum):
    NONE = "none"
    COMMA = "comma"
    SENTENCE_END = "sentenceEnd"
    PARAGRAPH = "paragraph"


@dataclass(frozen=True)
class SpeechAtom:
    """
    A run of words closed by punctuation, the unit pauses are weighed against.

    ``punctuation_char`` is what gets re-emitted after the text when markup is
    rebuilt: a comma, the first terminal mark of a run such as ``"?!"``, or the raw
    newline run of a paragraph break.
    """

    text: str
    punctuation: PunctuationClass
    punctuation_char: str
    weight: int
    word_count: int
    char_count: int


def count_words(text: str) -> int:
    return len(text.split())


def count_chars(text: str) -> int:
    """Count characters excluding whitespace."""
    return len(re.sub(r"\s", "", text or ""))


def classify_punctuation(punct: str) -> tuple[PunctuationClass, str]:
    """
    Classify a trailing punctuation run.

    Line breaks win over terminal marks, which win over commas.
    """
    if not punct:
        return PunctuationClass.NONE, ""
    if "\n" in punct:
        return PunctuationClass.PARAGRAPH, punct
    for char in punct:
        if char in TERMINAL_MARKS:
            return PunctuationClass.SENTENCE_END, char
    if "," in punct:
        return PunctuationClass.COMMA, ","
    return PunctuationClass.NONE, ""


def atomize_text(text: str, weights: dict[PunctuationClass, int]) -> List[SpeechAtom]:
    """
    Split ``text`` into speech atoms in a single left-to-right pass.

    ``weights`` maps each punctuation class to its pause weight.
    """
    atoms: List[SpeechAtom] = []
    for match in ATOM_PATTERN.finditer(text or ""):
        content = match.group(1).strip()
        if not content:
            continue
        punctuation, char = classify_punctuation(match.group(2) or "")
        atoms.append(
            SpeechAtom(
                text=content,
                punctuation=punctuation,
                punctuation_char=char,
                weight=weights.get(punctuation, 0),
                word_count=count_words(content),
                char_count=count_chars(content),
            )
        )

    logger.debug("Atomized %d characters into %d atoms.", len(text or ""), len(atoms))
    return atoms


def find_sentence_boundaries(atoms: Sequence[SpeechAtom]) -> List[int]:
    return [
        index
        for index, atom in enumerate(atoms)
        if atom.punctuation in (PunctuationClass.SENTENCE_END, PunctuationClass.PARAGRAPH)
    ]


def strip_pause_markup(script: str) -> str:
    """
    Remove inline pause markup so only speakable prose reaches the synthesizer.

    Pause tags, bracketed pause cues and ellipses are dropped and whitespace is
    collapsed; pauses are decided after synthesis instead.
    """
    cleaned = BREAK_TAG_PATTERN.sub("", script or "")
    cleaned = PAUSE_CUE_PATTERN.sub("", cleaned)
    cleaned = cleaned.replace("...", "")
    return re.sub(r"\s+", " ", cleaned).strip()
