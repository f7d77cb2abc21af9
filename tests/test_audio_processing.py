"""Tests for audio processing pure functions and the recording encoders.

These tests use real audio math without mocking.
"""

import numpy as np
import pytest

from webwhispr.lib.audio.encoder import OggOpusEncoder, WavEncoder, create_encoder
from webwhispr.lib.audio.processing import (
    AudioConfig,
    decode_audio,
    downmix,
    duration_seconds,
    encode_wav,
    float32_to_int16,
    int16_to_float32,
    prepare_for_engine,
    resample,
    stereo_to_mono,
)
from webwhispr.lib.livetypes import AudioDecodeError


def sine(freq: float, seconds: float, rate: int, amplitude: int = 12000) -> np.ndarray:
    t = np.arange(int(rate * seconds)) / rate
    return (np.sin(2 * np.pi * freq * t) * amplitude).astype(np.int16)


class TestStereoToMono:
    """Tests for stereo_to_mono."""

    def test_averages_pairs(self):
        stereo = np.array([100, 200, -300, -100], dtype=np.int16)

        mono = stereo_to_mono(stereo)

        np.testing.assert_array_equal(mono, np.array([150, -200], dtype=np.int16))
        assert mono.dtype == np.int16

    def test_no_overflow_near_full_scale(self):
        """L+R exceeds int16 but the average does not."""
        stereo = np.array([32000, 32000, -32000, -32000], dtype=np.int16)

        np.testing.assert_array_equal(stereo_to_mono(stereo), [32000, -32000])

    def test_odd_length_raises(self):
        with pytest.raises(ValueError, match="even number of samples"):
            stereo_to_mono(np.array([1, 2, 3], dtype=np.int16))

    def test_empty(self):
        assert len(stereo_to_mono(np.array([], dtype=np.int16))) == 0


class TestDownmix:
    """Tests for downmix."""

    def test_mono_unchanged(self):
        audio = np.array([1, 2, 3], dtype=np.int16)

        assert downmix(audio, 1) is audio

    def test_four_channels(self):
        audio = np.array([100, 200, 300, 400, 0, 0, 0, 40], dtype=np.int16)

        np.testing.assert_array_equal(downmix(audio, 4), [250, 10])

    def test_partial_trailing_frame_dropped(self):
        audio = np.array([30, 30, 30, 99], dtype=np.int16)

        np.testing.assert_array_equal(downmix(audio, 3), [30])


class TestResample:
    """Tests for resample."""

    def test_48k_to_16k(self):
        result = resample(np.zeros(4800, dtype=np.int16), 48000, 16000)

        assert len(result) == 1600
        assert result.dtype == np.int16

    def test_same_rate_is_identity(self):
        audio = np.array([5, 6, 7], dtype=np.int16)

        assert resample(audio, 16000, 16000) is audio

    def test_float_dtype_kept(self):
        audio = np.zeros(480, dtype=np.float32)

        assert resample(audio, 48000, 24000).dtype == np.float32

    def test_non_positive_rates_raise(self):
        audio = np.zeros(10, dtype=np.int16)

        with pytest.raises(ValueError, match="positive"):
            resample(audio, 0, 16000)
        with pytest.raises(ValueError, match="positive"):
            resample(audio, 48000, -16000)

    def test_tone_energy_preserved(self):
        """A 440 Hz tone keeps roughly the same RMS after downsampling."""
        tone = sine(440, 0.2, 48000)

        resampled = resample(tone, 48000, 16000)

        rms_before = np.sqrt(np.mean(tone.astype(np.float64) ** 2))
        rms_after = np.sqrt(np.mean(resampled.astype(np.float64) ** 2))
        assert rms_after == pytest.approx(rms_before, rel=0.05)


class TestSampleFormat:
    """Tests for int16 <-> float32 conversion."""

    def test_int16_to_float32_range(self):
        result = int16_to_float32(np.array([-32768, 0, 16384], dtype=np.int16))

        assert result.dtype == np.float32
        np.testing.assert_allclose(result, [-1.0, 0.0, 0.5])

    def test_float32_to_int16_clips(self):
        result = float32_to_int16(np.array([2.0, -2.0, 0.25], dtype=np.float32))

        np.testing.assert_array_equal(result, [32767, -32768, 8192])


class TestDecodeAudio:
    """Tests for decode_audio on captured payloads."""

    def test_mono_wav(self):
        tone = sine(300, 0.1, 48000)

        audio, rate = decode_audio(encode_wav(tone, 48000))

        assert rate == 48000
        np.testing.assert_array_equal(audio, tone)

    def test_stereo_wav_is_downmixed(self):
        stereo = np.array([1000, 3000] * 50, dtype=np.int16)

        audio, rate = decode_audio(encode_wav(stereo, 16000, channels=2))

        assert rate == 16000
        assert len(audio) == 50
        assert np.all(audio == 2000)

    def test_empty_payload(self):
        with pytest.raises(AudioDecodeError, match="Empty"):
            decode_audio(b"")

    def test_truncated_wav(self):
        with pytest.raises(AudioDecodeError):
            decode_audio(b"RIFF\x00\x00")

    def test_zero_sample_rate_wav(self):
        payload = bytearray(encode_wav(sine(300, 0.1, 16000), 16000))
        payload[24:28] = (0).to_bytes(4, "little")

        with pytest.raises(AudioDecodeError):
            decode_audio(bytes(payload))

    def test_garbage_payload(self):
        """Non-WAV bytes go through PyAV and fail cleanly."""
        pytest.importorskip("av")

        with pytest.raises(AudioDecodeError):
            decode_audio(b"\x00\x01\x02\x03 definitely not audio" * 10)


class TestPrepareForEngine:
    """Tests for the capture payload -> engine input pipeline."""

    def test_resamples_to_engine_rate(self):
        payload = encode_wav(sine(200, 0.5, 48000), 48000)

        audio = prepare_for_engine(payload, 16000)

        assert audio.dtype == np.float32
        assert len(audio) == 8000
        assert np.max(np.abs(audio)) <= 1.0

    def test_decode_error_propagates(self):
        with pytest.raises(AudioDecodeError):
            prepare_for_engine(b"", 16000)


class TestWavEncoder:
    """Tests for the default capture encoder."""

    def test_concatenates_frames(self):
        encoder = WavEncoder(48000)
        encoder.encode(np.array([1, 2, 3], dtype=np.int16))
        encoder.encode(np.array([4, 5], dtype=np.int16))

        audio, rate = decode_audio(encoder.finalize())

        assert rate == 48000
        np.testing.assert_array_equal(audio, [1, 2, 3, 4, 5])
        assert encoder.samples == 5

    def test_no_frames_gives_valid_empty_wav(self):
        payload = WavEncoder(16000).finalize()

        assert payload[:4] == b"RIFF"

    def test_create_encoder(self):
        assert isinstance(create_encoder("wav", 16000), WavEncoder)
        with pytest.raises(ValueError, match="Unknown capture format"):
            create_encoder("mp3", 16000)

    def test_ogg_opus_decodes_back(self):
        pytest.importorskip("av")
        encoder = create_encoder("ogg", 48000)
        tone = sine(440, 0.5, 48000)
        for start in range(0, len(tone), 960):
            encoder.encode(tone[start:start + 960])

        audio, rate = decode_audio(encoder.finalize())

        assert rate == 48000
        assert duration_seconds(audio, rate) == pytest.approx(0.5, abs=0.1)



class TestOggOpusEncoder:
    """Tests for the compressed capture encoder."""

    def test_16k_roundtrip_through_decoder(self):
        pytest.importorskip("av")
        encoder = OggOpusEncoder(16000)
        tone = sine(300, 1.0, 16000)
        for start in range(0, len(tone), 320):
            encoder.encode(tone[start:start + 320])

        payload = encoder.finalize()
        audio, rate = decode_audio(payload)

        assert payload[:4] == b"OggS"
        assert encoder.samples == 16000
        assert len(audio) > 0
        assert duration_seconds(audio, rate) == pytest.approx(1.0, abs=0.1)


class TestAudioConfig:
    """Tests for AudioConfig."""

    def test_bytes_per_second(self):
        assert AudioConfig(sample_rate=16000, channels=1).bytes_per_second == 32000
        assert AudioConfig(sample_rate=48000, channels=2).bytes_per_second == 192000

    def test_immutable(self):
        config = AudioConfig(sample_rate=16000, channels=1)

        with pytest.raises(Exception):
            config.sample_rate = 8000

    def test_duration_seconds(self):
        assert duration_seconds(np.zeros(24000), 48000) == 0.5
        assert duration_seconds(np.zeros(10), 0) == 0.0
