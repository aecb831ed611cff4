import pytest

from meditation_audio.alignment import WordAlignment
from meditation_audio.cache import AssetCache
from meditation_audio.pipeline import MeditationBuilder, PacingStrategy, PipelineConfig, pace_speech
from meditation_audio.script_writer import StaticScriptWriter
from meditation_audio.tts_engine import AlignedSpeech, MockTtsEngine, TtsEngine, UnalignedSpeech
from meditation_audio.waveform import decode_audio
from meditation_audio.wav import WAV_HEADER_SIZE

SCRIPT = "Close your eyes. Breathe in slowly. Let the day go."


class FlakyEngine(TtsEngine):
    """Fails a fixed number of times before delegating to the mock engine."""

    def __init__(self, failures, inner=None):
        super().__init__(audio_format="wav")
        self.failures = failures
        self.attempts = 0
        self.inner = inner or MockTtsEngine(sample_rate=8000)

    def synthesize(self, text, is_ssml=False):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise RuntimeError("temporary outage")
        return self.inner.synthesize(text, is_ssml=is_ssml)


def _config(**overrides):
    overrides.setdefault("initial_retry_delay", 0.0)
    return PipelineConfig(**overrides)


def test_personalized_meditation_hits_target_length():
    engine = MockTtsEngine(sample_rate=8000)
    writer = StaticScriptWriter(SCRIPT + ' <break time="1.0s"/>')
    builder = MeditationBuilder(engine, writer, _config())

    result = builder.build_personalized("help me unwind", 20.0)

    assert result.strategy is PacingStrategy.SENTENCE_SILENCE
    assert result.requested_words == 9
    assert writer.requests == [(9, "help me unwind")]
    assert engine.requests == [SCRIPT]
    assert result.audio.mime_type == "audio/wav"
    assert len(result.audio.data) - WAV_HEADER_SIZE == 20 * 8000 * 2
    assert len(result.plan.splice_points) == 3
    assert result.plan.speech_duration + result.plan.total_silence == pytest.approx(20.0)
    assert result.word_count == 10


def test_unaligned_speech_is_stretched():
    engine = MockTtsEngine(sample_rate=8000, with_alignment=False)
    builder = MeditationBuilder(engine, StaticScriptWriter(SCRIPT), _config())

    result = builder.build_personalized("", 15.0)

    assert result.strategy is PacingStrategy.BREAK_STRETCH
    assert result.plan is None
    assert decode_audio(result.audio.data).duration == pytest.approx(15.0)


def test_empty_alignment_falls_back_to_stretching():
    speech = MockTtsEngine(sample_rate=8000, with_alignment=False).synthesize(SCRIPT)
    aligned = AlignedSpeech(audio=speech.audio, alignment=(), mime_type=speech.mime_type)

    paced = pace_speech(aligned, 12.0)

    assert paced.strategy is PacingStrategy.BREAK_STRETCH
    assert decode_audio(paced.audio.data).duration == pytest.approx(12.0)


def test_undecodable_speech_is_passed_through():
    paced = pace_speech(UnalignedSpeech(audio=b"", mime_type="audio/mpeg"), 10.0)

    assert paced.audio.data == b""
    assert paced.audio.mime_type == "audio/mpeg"


def test_undecodable_aligned_speech_reports_no_plan():
    alignment = (
        WordAlignment("One.", 0.5, 1.0),
        WordAlignment("Two.", 1.5, 2.0),
        WordAlignment("Three.", 2.5, 3.0),
    )
    speech = AlignedSpeech(audio=b"garbage-bytes", alignment=alignment, mime_type="audio/mpeg")

    paced = pace_speech(speech, 10.0)

    assert paced.strategy is PacingStrategy.UNPACED
    assert paced.plan is None
    assert paced.audio.data == b"garbage-bytes"
    assert paced.audio.mime_type == "audio/mpeg"


def test_synthesis_is_retried_with_backoff():
    engine = FlakyEngine(failures=2)
    builder = MeditationBuilder(engine, StaticScriptWriter(SCRIPT), _config(max_retries=3))

    result = builder.build_personalized("", 15.0)

    assert engine.attempts == 3
    assert result.retries == 2


def test_synthesis_failure_surfaces_after_last_attempt():
    engine = FlakyEngine(failures=5)
    builder = MeditationBuilder(engine, StaticScriptWriter(SCRIPT), _config(max_retries=2))

    with pytest.raises(RuntimeError):
        builder.build_personalized("", 15.0)
    assert engine.attempts == 2


def test_empty_script_is_rejected():
    builder = MeditationBuilder(MockTtsEngine(), StaticScriptWriter("[pause] ..."), _config())

    with pytest.raises(RuntimeError):
        builder.build_personalized("", 10.0)


def test_pause_markup_path_sends_break_tags():
    engine = MockTtsEngine(sample_rate=8000)
    builder = MeditationBuilder(engine, StaticScriptWriter(SCRIPT), _config())

    result = builder.build_with_pause_markup("", 60.0)

    assert result.strategy is PacingStrategy.PAUSE_MARKUP
    assert "<break time=" in engine.requests[0]
    assert result.markup_pacing.total_silence_to_add > 0
    assert result.audio.mime_type == "audio/wav"


def test_clip_path_sandwiches_the_generated_middle(make_wav):
    loaded = []

    def loader(key):
        loaded.append(key)
        return make_wav(5.0, sample_rate=8000)

    engine = MockTtsEngine(sample_rate=8000)
    cache = AssetCache()
    config = _config(clip_target_seconds=20.0, middle_target_seconds=6.0)
    builder = MeditationBuilder(engine, StaticScriptWriter("Rest here. Stay."), config, cache)

    result = builder.build_with_clips("", "intro.wav", "outro.wav", loader)
    builder.build_with_clips("", "intro.wav", "outro.wav", loader)

    assert result.strategy is PacingStrategy.CLIP_CONCAT
    assert result.requested_words == 3
    assert decode_audio(result.audio.data).duration == pytest.approx(20.0, abs=0.001)
    assert sorted(loaded) == ["intro.wav", "outro.wav"]
    assert "intro.wav" in cache


def test_clip_path_falls_back_to_intro(make_wav):
    intro = make_wav(2.0)
    clips = {"intro": intro, "outro": make_wav(2.0)}
    builder = MeditationBuilder(FlakyEngine(failures=10), StaticScriptWriter("Rest."), _config(max_retries=1))

    result = builder.build_with_clips("", "intro", "outro", clips.__getitem__)

    assert result.strategy is PacingStrategy.INTRO_FALLBACK
    assert result.audio.data == intro
    assert result.audio.mime_type == "audio/wav"
