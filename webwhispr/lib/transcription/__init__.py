"""Transcription module - session model and the coordinator that drives it."""

from .coordinator import SessionCoordinator
from .session import InvalidTransition, Session, SessionState

__all__ = ["SessionCoordinator", "Session", "SessionState", "InvalidTransition"]
