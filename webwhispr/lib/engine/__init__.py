"""Transcription engines and the isolated engine host."""

from .base import EngineConfig, TranscriptionEngine, create_engine
from .host import EngineHost

__all__ = ["EngineConfig", "TranscriptionEngine", "create_engine", "EngineHost"]
