#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Sequence

from meditation_audio.metadata import MetadataBuilder
from meditation_audio.pacing import DENSE_WORDS_PER_MINUTE, SPARSE_WORDS_PER_MINUTE
from meditation_audio.pipeline import MeditationBuilder, MeditationResult, PipelineConfig
from meditation_audio.script_writer import OpenAIScriptWriter, ScriptWriter, StaticScriptWriter
from meditation_audio.tts_engine import ElevenLabsTtsEngine, MockTtsEngine, PollyTtsEngine, TtsEngine
from meditation_audio.waveform import MIME_TYPES, decode_segment

logger = logging.getLogger(__name__)

PROFILES = {"sparse": SPARSE_WORDS_PER_MINUTE, "dense": DENSE_WORDS_PER_MINUTE}


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate a guided meditation paced to a target length.")
    parser.add_argument("--input", help="Prepared script file. Used instead of a script writer.")
    parser.add_argument("--input-encoding", default="utf-8", help="Encoding used for the input file.")
    parser.add_argument("--context", default="", help="Free-form request passed to the script writer.")
    parser.add_argument("--writer", default="static", help="Script writer to use (static, openai).")
    parser.add_argument("--openai-api-key", help="API key for the OpenAI script writer.")
    parser.add_argument("--openai-model", default="gpt-4.1-nano", help="OpenAI chat model name.")
    parser.add_argument("--duration-sec", type=float, default=300.0, help="Target length of the meditation in seconds.")
    parser.add_argument("--profile", choices=sorted(PROFILES), default="sparse", help="Speaking density for the word budget.")
    parser.add_argument("--engine", default="elevenlabs", help="TTS engine to use (elevenlabs, polly, mock).")
    parser.add_argument("--api-key", help="API key for engines that require one (e.g. ElevenLabs).")
    parser.add_argument("--voice-id", help="Voice identifier (engine specific).")
    parser.add_argument("--model", default="eleven_turbo_v2_5", help="ElevenLabs model name.")
    parser.add_argument("--language-code", help="Language code hint for Polly.")
    parser.add_argument("--sample-rate", type=int, default=16000, help="Sample rate for Polly and mock output.")
    parser.add_argument("--markup", action="store_true", help="Encode pauses as break tags instead of editing the audio.")
    parser.add_argument("--intro", help="Prerecorded intro clip. Requires --outro.")
    parser.add_argument("--outro", help="Prerecorded outro clip. Requires --intro.")
    parser.add_argument("--middle-sec", type=float, default=18.0, help="Length of the generated middle between clips.")
    parser.add_argument("--end-silence-sec", type=float, default=2.0, help="Silence reserved after the last sentence.")
    parser.add_argument("--output", default="./output/meditation.wav", help="Path for the output audio.")
    parser.add_argument("--metadata-output", default="./output/metadata.json", help="Path for metadata JSON output.")
    parser.add_argument("--max-retries", type=int, default=3, help="Maximum synthesis attempts.")
    parser.add_argument("--retry-initial-delay", type=float, default=0.5, help="Initial retry delay in seconds.")
    parser.add_argument("--retry-backoff", type=float, default=2.0, help="Multiplier for retry backoff.")
    parser.add_argument("--debug", action="store_true", help="Enable verbose logging.")
    return parser.parse_args(argv)


def configure_logging(debug: bool) -> None:
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )


def load_input_text(path: Path, encoding: str) -> str:
    if not path.exists():
        raise FileNotFoundError(f"Input file does not exist: {path}")
    return path.read_text(encoding=encoding)


def create_engine(args: argparse.Namespace) -> TtsEngine:
    engine_name = (args.engine or "").lower()
    if engine_name in {"mock", "dummy"}:
        return MockTtsEngine(sample_rate=args.sample_rate)

    if engine_name in {"polly", "aws_polly"}:
        if not args.voice_id:
            raise ValueError("--voice-id is required when using the Polly engine.")
        return PollyTtsEngine(
            voice_id=args.voice_id,
            engine="neural",
            language_code=args.language_code,
            sample_rate=args.sample_rate,
        )

    if engine_name in {"elevenlabs", "eleven"}:
        api_key = args.api_key or os.environ.get("ELEVENLABS_API_KEY")
        if not api_key:
            raise ValueError("ElevenLabs engine requires an API key (use --api-key or ELEVENLABS_API_KEY env var).")
        return ElevenLabsTtsEngine(
            api_key=api_key,
            voice_id=args.voice_id or os.environ.get("ELEVENLABS_VOICE_ID"),
            model=args.model,
        )

    raise ValueError(f"Unsupported engine: {args.engine}")


def create_writer(args: argparse.Namespace) -> ScriptWriter:
    writer_name = (args.writer or "").lower()
    if writer_name == "static" or args.input:
        if not args.input:
            raise ValueError("--input is required unless a script writer such as --writer openai is used.")
        return StaticScriptWriter(load_input_text(Path(args.input), args.input_encoding))

    if writer_name == "openai":
        api_key = args.openai_api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OpenAI writer requires an API key (use --openai-api-key or OPENAI_API_KEY env var).")
        return OpenAIScriptWriter(api_key=api_key, model=args.openai_model)

    raise ValueError(f"Unsupported script writer: {args.writer}")


def build_metadata_options(args: argparse.Namespace) -> dict:
    return {
        "input_path": args.input,
        "engine": args.engine,
        "voice_id": args.voice_id,
        "profile": args.profile,
        "markup": args.markup,
        "intro": args.intro,
        "outro": args.outro,
    }


def write_audio(result: MeditationResult, output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    requested = output_path.suffix.lstrip(".").lower() or "wav"
    if MIME_TYPES.get(requested) == result.audio.mime_type:
        output_path.write_bytes(result.audio.data)
        return
    logger.info("Converting %s output to %s.", result.audio.mime_type, requested)
    decode_segment(result.audio.data).export(output_path, format=requested)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    configure_logging(args.debug)

    if args.duration_sec <= 0:
        raise ValueError("--duration-sec must be positive.")
    if bool(args.intro) != bool(args.outro):
        raise ValueError("--intro and --outro must be given together.")

    config = PipelineConfig(
        words_per_minute=PROFILES[args.profile],
        end_silence_seconds=args.end_silence_sec,
        clip_target_seconds=args.duration_sec,
        middle_target_seconds=args.middle_sec,
        max_retries=args.max_retries,
        initial_retry_delay=args.retry_initial_delay,
        retry_backoff_factor=args.retry_backoff,
    )
    engine = create_engine(args)
    writer = create_writer(args)
    builder = MeditationBuilder(engine, writer, config)

    if args.intro:
        result = builder.build_with_clips(
            args.context,
            args.intro,
            args.outro,
            lambda key: Path(key).read_bytes(),
        )
    elif args.markup:
        result = builder.build_with_pause_markup(args.context, args.duration_sec)
    else:
        result = builder.build_personalized(args.context, args.duration_sec)

    output_path = Path(args.output)
    write_audio(result, output_path)

    metadata_builder = MetadataBuilder(
        engine=engine,
        config=config,
        output_path=Path(args.metadata_output),
    )
    metadata = metadata_builder.build_metadata(
        result=result,
        final_output=output_path,
        options=build_metadata_options(args),
    )
    metadata_builder.write_metadata(metadata)
    logger.info("Metadata written to %s", metadata_builder.output_path)

    logger.info("Meditation complete (%s). Audio saved to %s", result.strategy.value, output_path)
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        logger.error("Interrupted by user.")
        sys.exit(1)
    except Exception as exc:
        logger.exception("Fatal error: %s", exc)
        sys.exit(1)
