"""Remote engine: Kyutai STT on Modal over WebSocket."""

import logging
from typing import Optional

import numpy as np

from ..constants import KYUTAI_SAMPLE_RATE, MODAL_CHUNK_MS, MODAL_RECEIVE_TIMEOUT
from ..livetypes import EngineInitError, ModalConnectionError
from ..protocols.modal import ModalConfig, collect_transcript
from ..transport.modal_client import ModalSTTClient, stream_audio
from .base import ProgressCallback

logger = logging.getLogger(__name__)


class ModalEngine:
    """Sends each recording to Modal and folds the token stream into text.

    Kyutai handles English and French without a language hint, so the
    language argument is only logged.
    """

    sample_rate = KYUTAI_SAMPLE_RATE

    def __init__(
        self,
        config: Optional[ModalConfig] = None,
        receive_timeout: float = MODAL_RECEIVE_TIMEOUT,
    ):
        self.config = config or ModalConfig.from_env()
        self.receive_timeout = receive_timeout
        self._client: Optional[ModalSTTClient] = None

    @property
    def chunk_size(self) -> int:
        # float32 samples
        return self.sample_rate * 4 * MODAL_CHUNK_MS // 1000

    async def load(self, progress: ProgressCallback) -> None:
        """Open and close one connection so the Modal container is warm."""
        if self._client is not None:
            return
        if not self.config.is_configured():
            raise EngineInitError(
                "Modal not configured. Set MODAL_WORKSPACE, MODAL_KEY, and MODAL_SECRET."
            )

        client = ModalSTTClient(self.config)
        progress(0)
        try:
            async with client.connect():
                pass
        except ModalConnectionError as e:
            raise EngineInitError(f"Modal STT unreachable: {e}") from e
        progress(100)
        self._client = client

    async def transcribe(self, audio: np.ndarray, language: Optional[str]) -> str:
        if self._client is None:
            raise RuntimeError("Modal engine is not loaded")
        if len(audio) == 0:
            return ""

        logger.debug(
            "Streaming recording to Modal",
            extra={"samples": len(audio), "language": language},
        )
        messages = await stream_audio(
            self._client,
            audio.astype(np.float32).tobytes(),
            chunk_size=self.chunk_size,
            receive_timeout=self.receive_timeout,
        )
        errors = [msg.error_message for msg in messages if msg.is_error]
        if errors:
            raise RuntimeError(f"Modal STT error: {errors[0]}")
        return collect_transcript(messages)

    async def close(self) -> None:
        self._client = None
