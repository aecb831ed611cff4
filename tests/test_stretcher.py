import numpy as np

from meditation_audio.stretcher import StretchConfig, find_breaks, stretch_audio_to_duration, stretch_waveform
from meditation_audio.waveform import RawWaveform
from meditation_audio.wav import WAV_HEADER_SIZE, encode_wav

RATE = 8000


def _tone_gap_tone(make_tone, make_silence):
    return np.concatenate([make_tone(1.0, RATE), make_silence(1.0, RATE), make_tone(1.0, RATE)])


def test_find_breaks_locates_the_middle_of_a_pause(make_tone, make_silence):
    samples = _tone_gap_tone(make_tone, make_silence)

    breaks = find_breaks(samples, RATE)

    assert len(breaks) == 1
    # Quiet windows run from 8320 to 16000 on the 640-sample grid after the edge guard.
    assert breaks[0].position == 12160
    assert breaks[0].length == 7680


def test_short_pauses_and_edges_are_ignored(make_tone, make_silence):
    samples = np.concatenate(
        [make_silence(0.3, RATE), make_tone(1.0, RATE), make_silence(0.2, RATE), make_tone(1.0, RATE)]
    )

    assert find_breaks(samples, RATE) == []


def test_stretch_widens_the_detected_pause(make_tone, make_silence):
    source = _tone_gap_tone(make_tone, make_silence)
    waveform = RawWaveform(sample_rate=RATE, channels=[source])

    stretched = stretch_waveform(waveform, 5.0)

    output = stretched.channels[0]
    assert stretched.num_samples == 5 * RATE
    np.testing.assert_array_equal(output[:8000], source[:8000])
    assert not output[12160:28160].any()
    np.testing.assert_array_equal(output[30000:], source[14000:])


def test_stretch_without_pauses_pads_the_end(make_tone):
    source = make_tone(2.0, RATE)
    waveform = RawWaveform(sample_rate=RATE, channels=[source])

    stretched = stretch_waveform(waveform, 3.0)

    output = stretched.channels[0]
    assert stretched.num_samples == 3 * RATE
    fade = 240
    np.testing.assert_array_equal(output[: 2 * RATE - fade], source[: 2 * RATE - fade])
    assert np.abs(output[2 * RATE - 1]) <= np.abs(source[2 * RATE - 1])
    assert not output[2 * RATE :].any()


def test_stretch_audio_returns_wav_of_target_length(make_tone, make_silence):
    data = encode_wav([_tone_gap_tone(make_tone, make_silence)], RATE)

    blob = stretch_audio_to_duration(data, 6.0, source_mime_type="audio/wav")

    assert blob.mime_type == "audio/wav"
    assert len(blob.data) - WAV_HEADER_SIZE == 6 * RATE * 2


def test_audio_already_long_enough_is_returned_as_is(make_tone):
    data = encode_wav([make_tone(2.0, RATE)], RATE)

    blob = stretch_audio_to_duration(data, 1.5, source_mime_type="audio/x-test")

    assert blob.data == data
    assert blob.mime_type == "audio/x-test"


def test_undecodable_audio_is_returned_as_is():
    blob = stretch_audio_to_duration(b"", 10.0, source_mime_type="audio/mpeg")

    assert blob.data == b""
    assert blob.mime_type == "audio/mpeg"


def test_custom_threshold_treats_quiet_speech_as_pause(make_tone, make_silence):
    samples = np.concatenate(
        [make_tone(1.0, RATE), make_tone(1.0, RATE) * 0.01, make_tone(1.0, RATE)]
    )

    assert find_breaks(samples, RATE) != []
    assert find_breaks(samples, RATE, StretchConfig(rms_threshold=0.001)) == []
