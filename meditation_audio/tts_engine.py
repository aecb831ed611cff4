from __future__ import annotations

import base64
import io
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

import numpy as np
import requests
from pydub import AudioSegment

from .alignment import WordAlignment, character_alignment_to_words
from .wav import encode_wav

logger = logging.getLogger(__name__)

__all__ = [
    "AlignedSpeech",
    "ElevenLabsTtsEngine",
    "MockTtsEngine",
    "PollyTtsEngine",
    "SynthesisResult",
    "TtsEngine",
    "UnalignedSpeech",
]


@dataclass(frozen=True)
class AlignedSpeech:
    """Synthesized audio together with per-word timing."""

    audio: bytes
    alignment: Tuple[WordAlignment, ...]
    mime_type: str = "audio/mpeg"


@dataclass(frozen=True)
class UnalignedSpeech:
    """Synthesized audio from an engine (or request) that returned no timing data."""

    audio: bytes
    mime_type: str = "audio/mpeg"


SynthesisResult = Union[AlignedSpeech, UnalignedSpeech]


class TtsEngine(ABC):
    """
    Thin abstraction over a text-to-speech service returning encoded audio.
    """

    def __init__(self, *, audio_format: str = "mp3") -> None:
        self.audio_format = audio_format

    @abstractmethod
    def synthesize(self, text: str, is_ssml: bool = False) -> SynthesisResult:
        """
        Convert text (or text with inline pause tags) into audio, with word timing
        when the engine provides it.
        """

    def descriptor(self) -> str:
        return self.__class__.__name__


class MockTtsEngine(TtsEngine):
    """
    Deterministic offline engine for tests and dry runs.

    Every non-space character becomes ``char_seconds`` of a sine tone and every space
    the same length of silence; a space after ``.``, ``?`` or ``!`` lasts
    ``sentence_pause_seconds`` instead. ``padding_seconds`` of silence is appended
    after the last character, the way real encoders pad their output.
    """

    def __init__(
        self,
        *,
        char_seconds: float = 0.05,
        sentence_pause_seconds: float = 0.5,
        padding_seconds: float = 0.25,
        sample_rate: int = 16000,
        tone_hz: float = 220.0,
        amplitude: float = 0.3,
        with_alignment: bool = True,
    ) -> None:
        super().__init__(audio_format="wav")
        self.char_seconds = char_seconds
        self.sentence_pause_seconds = sentence_pause_seconds
        self.padding_seconds = padding_seconds
        self.sample_rate = sample_rate
        self.tone_hz = tone_hz
        self.amplitude = amplitude
        self.with_alignment = with_alignment
        self.requests: List[str] = []

    def synthesize(self, text: str, is_ssml: bool = False) -> SynthesisResult:
        self.requests.append(text)
        characters: List[str] = []
        starts: List[float] = []
        ends: List[float] = []
        pieces: List[np.ndarray] = []
        clock = 0.0
        previous = ""
        for char in text:
            if char.isspace():
                duration = self.sentence_pause_seconds if previous in (".", "?", "!") else self.char_seconds
                pieces.append(np.zeros(self._samples(duration), dtype=np.float32))
            else:
                duration = self.char_seconds
                pieces.append(self._tone(duration))
            characters.append(char)
            starts.append(clock)
            ends.append(clock + duration)
            clock += duration
            previous = char
        pieces.append(np.zeros(self._samples(self.padding_seconds), dtype=np.float32))

        samples = np.concatenate(pieces) if pieces else np.zeros(0, dtype=np.float32)
        audio = encode_wav([samples], self.sample_rate)
        if not self.with_alignment:
            return UnalignedSpeech(audio=audio, mime_type="audio/wav")
        words = character_alignment_to_words(characters, starts, ends)
        return AlignedSpeech(audio=audio, alignment=tuple(words), mime_type="audio/wav")

    def _samples(self, seconds: float) -> int:
        return int(round(seconds * self.sample_rate))

    def _tone(self, seconds: float) -> np.ndarray:
        t = np.arange(self._samples(seconds), dtype=np.float64) / self.sample_rate
        return (self.amplitude * np.sin(2 * np.pi * self.tone_hz * t)).astype(np.float32)


class ElevenLabsTtsEngine(TtsEngine):
    """
    ElevenLabs implementation using the ``with-timestamps`` endpoint, which returns
    base64 audio plus character-level timing.
    """

    API_URL = "https://api.elevenlabs.io/v1/text-to-speech/{voice_id}/with-timestamps"
    DEFAULT_VOICE_ID = "7AvtJrjTNyBhBxEvNPIZ"

    def __init__(
        self,
        *,
        api_key: str,
        voice_id: Optional[str] = None,
        model: str = "eleven_turbo_v2_5",
        output_format: str = "mp3_44100_128",
        speed: float = 1.05,
        stability: float = 0.51,
        similarity_boost: float = 0.51,
        timeout: float = 120.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__(audio_format=output_format.split("_", 1)[0])
        if not api_key:
            raise ValueError("ElevenLabs engine requires an API key.")
        self._api_key = api_key
        self._voice_id = voice_id or self.DEFAULT_VOICE_ID
        self._model = model
        self._output_format = output_format
        self._speed = speed
        self._stability = stability
        self._similarity_boost = similarity_boost
        self._timeout = timeout
        self._session = session or requests.Session()

    def synthesize(self, text: str, is_ssml: bool = False) -> SynthesisResult:
        payload = {
            "text": text,
            "model_id": self._model,
            "output_format": self._output_format,
            "speed": self._speed,
            "voice_settings": {
                "stability": self._stability,
                "similarity_boost": self._similarity_boost,
                "style": 0,
                "use_speaker_boost": True,
            },
        }
        headers = {"Content-Type": "application/json", "xi-api-key": self._api_key}
        url = self.API_URL.format(voice_id=self._voice_id)

        logger.debug("ElevenLabs request: model=%s voice=%s chars=%d", self._model, self._voice_id, len(text))
        response = self._session.post(url, json=payload, headers=headers, timeout=self._timeout)
        response.raise_for_status()
        data = response.json()

        encoded = data.get("audio_base64")
        if not encoded:
            raise RuntimeError("ElevenLabs response did not include audio.")
        audio = base64.b64decode(encoded)
        mime_type = "audio/mpeg" if self.audio_format == "mp3" else f"audio/{self.audio_format}"

        source = data.get("normalized_alignment") or data.get("alignment")
        if not source:
            logger.warning("ElevenLabs returned %d bytes of audio without alignment.", len(audio))
            return UnalignedSpeech(audio=audio, mime_type=mime_type)

        words = character_alignment_to_words(
            source.get("characters") or [],
            source.get("character_start_times_seconds") or [],
            source.get("character_end_times_seconds") or [],
        )
        logger.info("ElevenLabs returned %d bytes of audio aligned to %d words.", len(audio), len(words))
        return AlignedSpeech(audio=audio, alignment=tuple(words), mime_type=mime_type)


class PollyTtsEngine(TtsEngine):
    """
    Amazon Polly implementation. Polly returns no character timing for audio
    requests, so results are always :class:`UnalignedSpeech`.
    """

    def __init__(
        self,
        *,
        voice_id: str,
        engine: str = "neural",
        language_code: Optional[str] = None,
        sample_rate: int = 16000,
        output_format: str = "pcm",
        boto3_client: Optional[object] = None,
    ) -> None:
        super().__init__(audio_format="wav" if output_format.lower() == "pcm" else output_format)
        if boto3_client is None:
            try:
                import boto3  # type: ignore
            except ImportError as exc:  # pragma: no cover - optional dependency
                raise RuntimeError(
                    "boto3 is required for PollyTtsEngine but is not installed."
                ) from exc
            boto3_client = boto3.client("polly")

        self._client = boto3_client
        self._voice_id = voice_id
        self._engine = engine
        self._language_code = language_code
        self._sample_rate = sample_rate
        self._output_format = output_format

    def synthesize(self, text: str, is_ssml: bool = False) -> SynthesisResult:
        if is_ssml and not text.lstrip().startswith("<speak>"):
            text = f"<speak>{text}</speak>"
        params = {
            "Engine": self._engine,
            "VoiceId": self._voice_id,
            "OutputFormat": self._output_format,
            "SampleRate": str(self._sample_rate),
            "Text": text,
            "TextType": "ssml" if is_ssml else "text",
        }
        if self._language_code:
            params["LanguageCode"] = self._language_code

        logger.debug("Polly request params: %s", {k: v for k, v in params.items() if k != "Text"})
        response = self._client.synthesize_speech(**params)  # type: ignore[attr-defined]
        stream = response.get("AudioStream")
        if stream is None:
            raise RuntimeError("Polly response did not include AudioStream.")

        audio_bytes = stream.read() if hasattr(stream, "read") else stream
        if not audio_bytes:
            raise RuntimeError("Polly returned empty audio stream.")

        if self._output_format.lower() != "pcm":
            return UnalignedSpeech(audio=audio_bytes, mime_type=f"audio/{self.audio_format}")

        # Raw PCM has no header; wrap it so the rest of the pipeline can decode it.
        segment = AudioSegment(data=audio_bytes, sample_width=2, frame_rate=self._sample_rate, channels=1)
        buffer = io.BytesIO()
        segment.export(buffer, format="wav")
        return UnalignedSpeech(audio=buffer.getvalue(), mime_type="audio/wav")
