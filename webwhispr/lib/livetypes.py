"""Pydantic models, enums and exceptions for the WebWhispr dictation service."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class FailureReason(str, Enum):
    """Reasons carried by CAPTURE_FAILED, RESULT_FAILED and SESSION_ERROR."""

    # Capture stage (user/environment fault, never retried)
    DEVICE_DENIED = "DeviceDenied"
    DEVICE_UNAVAILABLE = "DeviceUnavailable"

    # Engine stage
    ENGINE_INIT_FAILED = "EngineInitFailed"
    DECODE_FAILED = "DecodeFailed"
    NO_SPEECH_DETECTED = "NoSpeechDetected"

    # Synthesized by the coordinator
    TIMEOUT = "Timeout"
    ENGINE_RESET = "EngineReset"
    CANCELLED = "Cancelled"


class SettingsUpdateRequest(BaseModel):
    """Request to change the persisted dictation preferences."""

    modelSize: Optional[str] = Field(default=None, description="Whisper model size")
    language: Optional[str] = Field(default=None, description="Language code or 'multilingual'")


class SessionResponse(BaseModel):
    """Response to a session start/end request."""

    status: str = "ok"
    accepted: bool = True
    state: str = ""
    sessionId: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = ""
    engine_provider: str = ""
    modal_configured: bool = False


# Exceptions
class DeviceDeniedError(Exception):
    """Raised when the user or the OS refuses microphone access."""

    pass


class DeviceUnavailableError(Exception):
    """Raised when no usable audio input device can be opened."""

    pass


class EngineInitError(Exception):
    """Raised when the transcription engine cannot be loaded."""

    pass


class AudioDecodeError(Exception):
    """Raised when captured audio bytes cannot be decoded."""

    pass


class ModalConnectionError(Exception):
    """Error connecting to Modal."""

    pass


class TranscriptionProviderException(Exception):
    """Exception surfaced by the HTTP layer."""

    retcode: int

    def __init__(self, message: str, retcode: int = 500):
        super().__init__(message)
        self.retcode = retcode
