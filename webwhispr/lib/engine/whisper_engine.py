"""Local Whisper engine using faster-whisper (CTranslate2)."""

import asyncio
import logging
from typing import Optional

import numpy as np

from ..constants import WHISPER_COMPUTE_TYPE, WHISPER_DEVICE, WHISPER_SAMPLE_RATE
from ..livetypes import EngineInitError
from ..models import get_model_name
from .base import ProgressCallback

logger = logging.getLogger(__name__)


class WhisperEngine:
    """Speech-to-text with a locally loaded Whisper model.

    The model is loaded once per engine instance; a configuration change
    discards the engine and a new one loads the new checkpoint.
    """

    sample_rate = WHISPER_SAMPLE_RATE

    def __init__(
        self,
        model_size: str,
        language: str,
        device: str = WHISPER_DEVICE,
        compute_type: str = WHISPER_COMPUTE_TYPE,
    ):
        self.model_name = get_model_name(model_size, language)
        self.device = device
        self.compute_type = compute_type
        self._model = None

    async def load(self, progress: ProgressCallback) -> None:
        if self._model is not None:
            return

        try:
            from faster_whisper import WhisperModel
        except ImportError as e:
            raise EngineInitError(
                "faster-whisper is not installed. Install with: pip install webwhispr[whisper]"
            ) from e

        logger.info(
            "Loading Whisper model: %s (device=%s, compute=%s)",
            self.model_name,
            self.device,
            self.compute_type,
        )
        progress(0)
        # Download and load are a single blocking call
        try:
            self._model = await asyncio.to_thread(
                WhisperModel,
                self.model_name,
                device=self.device,
                compute_type=self.compute_type,
            )
        except (OSError, RuntimeError, ValueError) as e:
            raise EngineInitError(f"Could not load Whisper model {self.model_name}: {e}") from e
        progress(100)

    def _run_transcription(self, audio: np.ndarray, language: Optional[str]) -> str:
        """Blocking transcription; call through asyncio.to_thread."""
        segments, _info = self._model.transcribe(
            audio,
            language=language,
            beam_size=5,
            vad_filter=True,
        )
        # Materialize the generator in this thread (CTranslate2 is not
        # safe to iterate across threads)
        return "".join(segment.text for segment in segments)

    async def transcribe(self, audio: np.ndarray, language: Optional[str]) -> str:
        if self._model is None:
            raise RuntimeError("Whisper model is not loaded")
        if len(audio) == 0:
            return ""
        text = await asyncio.to_thread(self._run_transcription, audio, language)
        return text.strip()

    async def close(self) -> None:
        self._model = None
