from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from .pipeline import MeditationResult, PipelineConfig
from .tts_engine import TtsEngine
from .waveform import AudioDecodeError, decode_segment

__all__ = ["MetadataBuilder"]


@dataclass
class MetadataBuilder:
    engine: TtsEngine
    config: PipelineConfig
    output_path: Path

    def build_metadata(
        self,
        *,
        result: MeditationResult,
        final_output: Path,
        options: Dict[str, object],
    ) -> Dict[str, object]:
        plan = result.plan
        metadata = {
            "created_at": datetime.now(timezone.utc).isoformat(),
            "engine": self.engine.descriptor(),
            "strategy": result.strategy.value,
            "mime_type": result.audio.mime_type,
            "target_duration_sec": result.target_duration,
            "output_duration_sec": _duration_seconds(result.audio.data),
            "requested_words": result.requested_words,
            "script_words": result.word_count,
            "retries": result.retries,
            "input_path": str(options.get("input_path")) if options.get("input_path") else None,
            "request": {
                "engine": options.get("engine"),
                "voice_id": options.get("voice_id"),
                "profile": options.get("profile"),
                "markup": bool(options.get("markup")),
                "intro": str(options.get("intro")) if options.get("intro") else None,
                "outro": str(options.get("outro")) if options.get("outro") else None,
            },
            "final_output": str(final_output),
            "plan": None,
            "markup": None,
            "config": {
                "words_per_minute": self.config.words_per_minute,
                "end_silence_sec": self.config.end_silence_seconds,
                "max_retries": self.config.max_retries,
            },
        }
        if plan is not None:
            metadata["plan"] = {
                "speech_sec": round(plan.speech_duration, 3),
                "total_silence_sec": round(plan.total_silence, 3),
                "end_reserve_sec": round(plan.end_silence_reserve, 3),
                "trailing_silence_sec": round(plan.trailing_silence, 3),
                "splices": [
                    {"word": point.word, "at_sec": round(point.end_time, 3), "silence_sec": round(allocation, 3)}
                    for point, allocation in zip(plan.splice_points, plan.allocations)
                ],
            }
        if result.markup_pacing is not None:
            pacing = result.markup_pacing
            metadata["markup"] = {
                "atoms": pacing.atom_count,
                "estimated_speech_sec": round(pacing.estimated_speech_seconds, 3),
                "silence_budget_sec": round(pacing.final_silence_budget, 3),
                "silence_added_sec": round(pacing.total_silence_to_add, 3),
            }
        return metadata

    def write_metadata(self, metadata: Dict[str, object]) -> None:
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        with self.output_path.open("w", encoding="utf-8") as f:
            json.dump(metadata, f, ensure_ascii=False, indent=2)


def _duration_seconds(data: bytes) -> Optional[float]:
    try:
        return round(len(decode_segment(data)) / 1000.0, 3)
    except AudioDecodeError:
        return None
