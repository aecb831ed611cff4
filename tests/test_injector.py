import numpy as np
import pytest

from meditation_audio.alignment import WordAlignment
from meditation_audio.injector import inject_silence, inject_silence_between_sentences, plan_sentence_silence
from meditation_audio.waveform import RawWaveform
from meditation_audio.wav import WAV_HEADER_SIZE, encode_wav

RATE = 8000


def _pcm(data):
    return np.frombuffer(data[WAV_HEADER_SIZE:], dtype="<i2")


def _speech(make_tone, make_silence, speech_seconds=4.0, padding_seconds=0.3):
    samples = np.concatenate([make_tone(speech_seconds, RATE), make_silence(padding_seconds, RATE)])
    return encode_wav([samples], RATE)


def test_plan_for_three_sentences(three_sentence_alignment):
    plan = plan_sentence_silence(three_sentence_alignment, 10.0)

    assert plan.speech_duration == pytest.approx(4.0)
    assert plan.total_silence == pytest.approx(6.0)
    assert plan.end_silence_reserve == pytest.approx(2.0)
    assert [point.end_time for point in plan.splice_points] == [1.2, 2.5, 4.0]
    assert plan.allocations == pytest.approx((2.0, 2.0, 0.0))
    assert plan.trailing_silence == pytest.approx(2.0)
    assert plan.distributed_silence + plan.trailing_silence == pytest.approx(plan.total_silence)
    assert plan.speech_duration + plan.total_silence == pytest.approx(10.0)


def test_inject_silence_between_three_sentences(make_tone, make_silence, three_sentence_alignment):
    source = _speech(make_tone, make_silence)

    blob, applied = inject_silence_between_sentences(source, three_sentence_alignment, 10.0, source_mime_type="audio/wav")

    assert applied.allocations == pytest.approx((2.0, 2.0, 0.0))
    assert blob.mime_type == "audio/wav"
    original = _pcm(source)
    paced = _pcm(blob.data)
    assert len(paced) == 10 * RATE
    np.testing.assert_array_equal(paced[:9600], original[:9600])
    assert not paced[9600:25600].any()
    np.testing.assert_array_equal(paced[25600:36000], original[9600:20000])
    assert not paced[36000:52000].any()
    np.testing.assert_array_equal(paced[52000:64000], original[20000:32000])
    # Engine padding after the last word is not carried over.
    assert not paced[64000:].any()


def test_single_sentence_sends_all_silence_to_the_end(make_tone, make_silence):
    alignment = [WordAlignment("Relax", 0.0, 0.5), WordAlignment("now.", 0.6, 1.0)]
    source = _speech(make_tone, make_silence, speech_seconds=1.0)

    plan = plan_sentence_silence(alignment, 5.0)
    blob, applied = inject_silence_between_sentences(source, alignment, 5.0)

    assert plan.allocations == (0.0,)
    assert plan.trailing_silence == pytest.approx(4.0)
    assert applied == plan
    paced = _pcm(blob.data)
    assert len(paced) == 5 * RATE
    np.testing.assert_array_equal(paced[:RATE], _pcm(source)[:RATE])
    assert not paced[RATE:].any()


def test_no_sentence_ends_appends_silence(make_tone, make_silence):
    alignment = [WordAlignment("breathe", 0.0, 1.0), WordAlignment("slowly", 1.1, 2.0)]
    source = _speech(make_tone, make_silence, speech_seconds=2.0)

    blob, _ = inject_silence_between_sentences(source, alignment, 6.0)

    paced = _pcm(blob.data)
    assert len(paced) == 6 * RATE
    np.testing.assert_array_equal(paced[: 2 * RATE], _pcm(source)[: 2 * RATE])
    assert not paced[2 * RATE :].any()


def test_small_gap_is_all_end_reserve(three_sentence_alignment):
    plan = plan_sentence_silence(three_sentence_alignment, 5.5)

    assert plan.end_silence_reserve == pytest.approx(1.5)
    assert plan.allocations == (0.0, 0.0, 0.0)
    assert plan.trailing_silence == pytest.approx(1.5)


def test_clip_past_target_is_returned_unchanged(make_tone, make_silence, three_sentence_alignment):
    source = _speech(make_tone, make_silence)

    blob, _ = inject_silence_between_sentences(source, three_sentence_alignment, 3.0)

    assert blob.mime_type == "audio/wav"
    np.testing.assert_array_equal(_pcm(blob.data), _pcm(source))


def test_stereo_channels_are_spliced_together(make_tone, three_sentence_alignment):
    tone = make_tone(4.0, RATE)
    waveform = RawWaveform(sample_rate=RATE, channels=[tone, -tone])

    paced, plan = inject_silence(waveform, three_sentence_alignment, 10.0)

    assert paced.num_channels == 2
    assert paced.num_samples == 10 * RATE
    np.testing.assert_allclose(paced.channels[0], -paced.channels[1])
    assert plan.insertion_count == 2


def test_undecodable_audio_is_passed_through():
    data = b"RIFF\x00\x00\x00\x00WAVEjunk"
    alignment = [WordAlignment("Hello.", 0.0, 1.0)]

    blob, applied = inject_silence_between_sentences(data, alignment, 10.0, source_mime_type="audio/mpeg")

    assert blob.data == data
    assert blob.mime_type == "audio/mpeg"
    assert applied is None


def test_untimed_alignment_uses_decoded_duration(make_tone, make_silence):
    alignment = [WordAlignment("Hum.", 0.0, 0.0)]
    source = _speech(make_tone, make_silence, speech_seconds=2.0)

    blob, applied = inject_silence_between_sentences(source, alignment, 5.0)

    assert applied.speech_duration == pytest.approx(2.3)
    assert applied.total_silence == pytest.approx(2.7)
    assert len(_pcm(blob.data)) == 5 * RATE
