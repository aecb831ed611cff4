"""
Meditation audio pacing utilities.

This package exposes the building blocks used by the CLI entry point:

- Script atomization and markup cleanup (`split_text`).
- Word budgets and pause-markup pacing (`pacing`).
- Character-to-word timing and sentence ends (`alignment`).
- Decoding, WAV encoding and sample arithmetic (`waveform`, `wav`).
- Silence injection, pause stretching and clip concatenation
  (`injector`, `stretcher`, `merger`).
- Engine and script writer abstractions (`tts_engine`, `script_writer`).
- Orchestration and run metadata (`pipeline`, `metadata`).
"""

from .split_text import atomize_text, strip_pause_markup
from .pacing import PacingConfig, PacingResult, calculate_pacing, target_word_count
from .alignment import SplicePoint, WordAlignment, character_alignment_to_words, find_splice_points
from .waveform import AudioBlob, AudioDecodeError, RawWaveform, decode_audio
from .wav import encode_wav
from .injector import PacingPlan, inject_silence_between_sentences
from .stretcher import StretchConfig, stretch_audio_to_duration
from .merger import concatenate_with_silence_gaps
from .cache import AssetCache
from .tts_engine import (
    AlignedSpeech,
    ElevenLabsTtsEngine,
    MockTtsEngine,
    PollyTtsEngine,
    TtsEngine,
    UnalignedSpeech,
)
from .script_writer import OpenAIScriptWriter, ScriptWriter, StaticScriptWriter
from .pipeline import MeditationBuilder, MeditationResult, PacingStrategy, PipelineConfig, pace_speech
from .metadata import MetadataBuilder

__all__ = [
    "atomize_text",
    "strip_pause_markup",
    "PacingConfig",
    "PacingResult",
    "calculate_pacing",
    "target_word_count",
    "SplicePoint",
    "WordAlignment",
    "character_alignment_to_words",
    "find_splice_points",
    "AudioBlob",
    "AudioDecodeError",
    "RawWaveform",
    "decode_audio",
    "encode_wav",
    "PacingPlan",
    "inject_silence_between_sentences",
    "StretchConfig",
    "stretch_audio_to_duration",
    "concatenate_with_silence_gaps",
    "AssetCache",
    "TtsEngine",
    "AlignedSpeech",
    "UnalignedSpeech",
    "ElevenLabsTtsEngine",
    "PollyTtsEngine",
    "MockTtsEngine",
    "ScriptWriter",
    "StaticScriptWriter",
    "OpenAIScriptWriter",
    "MeditationBuilder",
    "MeditationResult",
    "PacingStrategy",
    "PipelineConfig",
    "pace_speech",
    "MetadataBuilder",
]
