"""Transcription engine protocol, configuration and registry."""

from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import numpy as np

from ..constants import DEFAULT_LANGUAGE, DEFAULT_MODEL_SIZE, ENGINE_PROVIDER
from ..preferences import Preferences

ProgressCallback = Callable[[int], None]


class TranscriptionEngine(Protocol):
    """Protocol for speech-to-text engines hosted by the EngineHost.

    ``load`` and ``transcribe`` may raise anything; the host maps load
    failures to EngineInitFailed and transcribe failures to DecodeFailed.
    """

    sample_rate: int

    async def load(self, progress: ProgressCallback) -> None:
        """Load the model, reporting download/load progress in percent."""
        ...

    async def transcribe(self, audio: np.ndarray, language: Optional[str]) -> str:
        """Transcribe mono float32 audio at ``sample_rate``."""
        ...

    async def close(self) -> None:
        ...


@dataclass(frozen=True)
class EngineConfig:
    """Engine selection, read when an EngineHost is created.

    Immutable - a configuration change means a new EngineHost.
    """

    provider: str = ENGINE_PROVIDER
    model_size: str = DEFAULT_MODEL_SIZE
    locale: str = DEFAULT_LANGUAGE

    @classmethod
    def from_preferences(
        cls, prefs: Preferences, provider: str = ENGINE_PROVIDER
    ) -> "EngineConfig":
        return cls(provider=provider, model_size=prefs.modelSize, locale=prefs.language)


def create_engine(config: EngineConfig) -> TranscriptionEngine:
    """Create the engine for a configuration.

    Raises:
        ValueError: For an unknown provider
    """
    if config.provider == "whisper":
        from .whisper_engine import WhisperEngine

        return WhisperEngine(model_size=config.model_size, language=config.locale)
    if config.provider == "modal":
        from .modal_engine import ModalEngine

        return ModalEngine()
    raise ValueError(f"Unknown engine provider: {config.provider}")
