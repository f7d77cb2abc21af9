"""Pure audio processing functions.

All functions in this module are pure (no side effects, no I/O beyond
in-memory buffers). They can be tested in isolation without mocking anything.
"""

import io
import wave
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from ..livetypes import AudioDecodeError


@dataclass(frozen=True)
class AudioConfig:
    """Immutable audio configuration."""

    sample_rate: int
    channels: int

    @property
    def bytes_per_second(self) -> int:
        # int16 PCM
        return self.sample_rate * self.channels * 2


def stereo_to_mono(audio: np.ndarray) -> np.ndarray:
    """Convert interleaved stereo int16 audio to mono by averaging channels.

    Raises:
        ValueError: If audio has an odd number of samples

    Example:
        >>> stereo_to_mono(np.array([100, 200, 300, 400], dtype=np.int16))
        array([150, 350], dtype=int16)
    """
    if len(audio) == 0:
        return audio

    if len(audio) % 2 != 0:
        raise ValueError(
            f"Stereo audio must have even number of samples, got {len(audio)}"
        )

    # Average in int32 so L+R cannot overflow
    stereo_pairs = audio.reshape(-1, 2).astype(np.int32)
    return stereo_pairs.mean(axis=1).astype(np.int16)


def downmix(audio: np.ndarray, channels: int) -> np.ndarray:
    """Downmix interleaved audio with any channel count to mono."""
    if channels <= 1 or len(audio) == 0:
        return audio
    if channels == 2:
        return stereo_to_mono(audio)
    usable = len(audio) - len(audio) % channels
    frames = audio[:usable].reshape(-1, channels).astype(np.int32)
    return frames.mean(axis=1).astype(audio.dtype)


def resample(audio: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """Resample audio with scipy.signal.resample, keeping the input dtype.

    Raises:
        ValueError: If rates are not positive

    Example:
        >>> len(resample(np.zeros(4800, dtype=np.int16), 48000, 16000))
        1600
    """
    if source_rate <= 0 or target_rate <= 0:
        raise ValueError(f"Sample rates must be positive, got {source_rate}, {target_rate}")

    if source_rate == target_rate or len(audio) == 0:
        return audio

    from scipy import signal

    original_dtype = audio.dtype
    num_samples = int(len(audio) * target_rate / source_rate)
    resampled = signal.resample(audio, num_samples)

    if original_dtype == np.int16:
        return np.clip(resampled, -32768, 32767).astype(np.int16)
    return resampled.astype(original_dtype)


def int16_to_float32(audio: np.ndarray) -> np.ndarray:
    """Convert int16 PCM to float32 in [-1.0, 1.0), the format STT engines expect."""
    return audio.astype(np.float32) / 32768.0


def float32_to_int16(audio: np.ndarray) -> np.ndarray:
    """Inverse of int16_to_float32, clipping out-of-range samples."""
    scaled = audio * 32768.0
    return np.clip(scaled, -32768, 32767).astype(np.int16)


def encode_wav(audio: np.ndarray, sample_rate: int, channels: int = 1) -> bytes:
    """Wrap int16 PCM in a WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(audio.astype(np.int16).tobytes())
    return buffer.getvalue()


def decode_audio(data: bytes) -> Tuple[np.ndarray, int]:
    """Decode a captured recording into mono int16 PCM.

    WAV payloads are read with the ``wave`` module; anything else (Ogg/Opus,
    WebM) goes through PyAV.

    Returns:
        Tuple of (mono int16 audio, sample_rate)

    Raises:
        AudioDecodeError: If the payload is empty or cannot be decoded
    """
    if not data:
        raise AudioDecodeError("Empty audio payload")

    if data[:4] == b"RIFF":
        return _decode_wav(data)
    return _decode_container(data)


def _decode_wav(data: bytes) -> Tuple[np.ndarray, int]:
    try:
        with wave.open(io.BytesIO(data), "rb") as wav:
            sample_rate = wav.getframerate()
            channels = wav.getnchannels()
            sample_width = wav.getsampwidth()
            raw = wav.readframes(wav.getnframes())
    except (wave.Error, EOFError) as e:
        raise AudioDecodeError(f"Invalid WAV payload: {e}") from e

    if sample_width != 2:
        raise AudioDecodeError(f"Unsupported sample width: {sample_width} bytes")
    if sample_rate <= 0 or channels <= 0:
        raise AudioDecodeError(
            f"Invalid WAV header: {sample_rate} Hz, {channels} channel(s)"
        )

    usable = len(raw) - len(raw) % (2 * channels)
    audio = np.frombuffer(raw[:usable], dtype=np.int16)
    return downmix(audio, channels), sample_rate


def _decode_container(data: bytes) -> Tuple[np.ndarray, int]:
    import av

    chunks: list[np.ndarray] = []
    sample_rate = 0
    try:
        with av.open(io.BytesIO(data), mode="r") as container:
            stream = container.streams.audio[0]
            sample_rate = stream.rate
            resampler = av.AudioResampler(format="s16", layout="mono", rate=sample_rate)
            for frame in container.decode(stream):
                for out in resampler.resample(frame):
                    chunks.append(out.to_ndarray().reshape(-1))
    except (av.FFmpegError, IndexError, ValueError) as e:
        raise AudioDecodeError(f"Could not decode audio container: {e}") from e

    if not chunks or not sample_rate:
        raise AudioDecodeError("Audio container holds no samples")
    return np.concatenate(chunks).astype(np.int16), sample_rate


def prepare_for_engine(data: bytes, target_rate: int) -> np.ndarray:
    """Complete pipeline: payload -> mono int16 -> resample -> float32.

    Raises:
        AudioDecodeError: If the payload cannot be decoded
    """
    audio, sample_rate = decode_audio(data)
    audio = resample(audio, sample_rate, target_rate)
    return int16_to_float32(audio)


def duration_seconds(audio: np.ndarray, sample_rate: int) -> float:
    if sample_rate <= 0:
        return 0.0
    return len(audio) / sample_rate
