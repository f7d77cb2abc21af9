"""Encoders used by the capture sandbox to buffer a recording.

Frames go in as int16 PCM while the microphone is open; ``finalize`` returns
the complete payload once the device has been released.
"""

import io
import logging
from typing import Protocol

import numpy as np

from .processing import encode_wav

logger = logging.getLogger(__name__)


class AudioEncoder(Protocol):
    """Protocol for recording encoders."""

    def encode(self, pcm: np.ndarray) -> None:
        """Append int16 PCM samples (interleaved if multi-channel)."""
        ...

    def finalize(self) -> bytes:
        """Flush and return the whole encoded recording."""
        ...


class WavEncoder:
    """Lossless encoder: buffers PCM and wraps it in a WAV container."""

    mime_type = "audio/wav"

    def __init__(self, sample_rate: int, channels: int = 1):
        self.sample_rate = sample_rate
        self.channels = channels
        self._chunks: list[np.ndarray] = []
        self.samples = 0

    def encode(self, pcm: np.ndarray) -> None:
        self._chunks.append(pcm.astype(np.int16, copy=False))
        self.samples += len(pcm)

    def finalize(self) -> bytes:
        audio = np.concatenate(self._chunks) if self._chunks else np.zeros(0, dtype=np.int16)
        self._chunks = []
        return encode_wav(audio, self.sample_rate, self.channels)


class OggOpusEncoder:
    """Compressed encoder producing Ogg Opus through PyAV.

    Opus only accepts 8/12/16/24/48 kHz input.
    """

    mime_type = "audio/ogg"

    def __init__(self, sample_rate: int = 48000, channels: int = 1):
        import av

        self.sample_rate = sample_rate
        self.channels = channels
        self.samples = 0
        self._pts = 0
        self._layout = "mono" if channels == 1 else "stereo"
        self._output = io.BytesIO()
        self._container = av.open(self._output, mode="w", format="ogg")
        self._stream = self._container.add_stream(
            "libopus", rate=sample_rate, layout=self._layout
        )
        logger.debug("Ogg Opus encoder initialized: %dHz, %dch", sample_rate, channels)

    def encode(self, pcm: np.ndarray) -> None:
        import av

        frame = av.AudioFrame.from_ndarray(
            pcm.astype(np.int16, copy=False).reshape(1, -1),  # packed: (1, samples * channels)
            format="s16",
            layout=self._layout,
        )
        frame.sample_rate = self.sample_rate
        frame.pts = self._pts
        samples = len(pcm) // self.channels
        self._pts += samples
        self.samples += samples

        for packet in self._stream.encode(frame):
            self._container.mux(packet)

    def finalize(self) -> bytes:
        for packet in self._stream.encode(None):
            self._container.mux(packet)
        self._container.close()
        return self._output.getvalue()


def create_encoder(fmt: str, sample_rate: int, channels: int = 1) -> AudioEncoder:
    """Create an encoder by name ("wav" or "ogg").

    Raises:
        ValueError: For an unknown format
    """
    if fmt == "wav":
        return WavEncoder(sample_rate, channels)
    if fmt == "ogg":
        return OggOpusEncoder(sample_rate, channels)
    raise ValueError(f"Unknown capture format: {fmt}")
