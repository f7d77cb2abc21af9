"""Kyutai STT on Modal: protocol definitions.

Pure functions for:
- Parsing messages sent back by the STT service
- Building the endpoint URL and authentication headers
- Folding a token stream into a transcript

No I/O, no state - just data transformations.
"""

import json
import os
from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterable

DEFAULT_HOST_SUFFIX = "kyutai-stt-rust-kyutaisttrustservice-serve.modal.run"


class ModalMessageType(Enum):
    """Types of messages from the Modal STT service."""

    TOKEN = auto()      # Partial transcription text
    VAD_END = auto()    # Voice activity detection - end of speech
    ERROR = auto()
    PING = auto()       # Keepalive
    UNKNOWN = auto()


@dataclass(frozen=True)
class ModalMessage:
    """Parsed message from the Modal STT service."""

    type: ModalMessageType
    text: str = ""
    error_message: str = ""
    raw: str = ""

    @property
    def is_token(self) -> bool:
        return self.type == ModalMessageType.TOKEN

    @property
    def is_vad_end(self) -> bool:
        return self.type == ModalMessageType.VAD_END

    @property
    def is_error(self) -> bool:
        return self.type == ModalMessageType.ERROR

    @property
    def has_text(self) -> bool:
        return bool(self.text)


@dataclass(frozen=True)
class ModalConfig:
    """Credentials and endpoint for the Modal STT service.

    Immutable - create a new instance to change values.
    """

    workspace: str
    key: str
    secret: str
    host_suffix: str = DEFAULT_HOST_SUFFIX

    @property
    def url(self) -> str:
        return get_modal_url(self.workspace, self.host_suffix)

    @property
    def headers(self) -> dict[str, str]:
        return get_modal_headers(self.key, self.secret)

    @classmethod
    def from_env(cls) -> "ModalConfig":
        """Create config from MODAL_* environment variables."""
        return cls(
            workspace=os.getenv("MODAL_WORKSPACE", ""),
            key=os.getenv("MODAL_KEY", ""),
            secret=os.getenv("MODAL_SECRET", ""),
            host_suffix=os.getenv("MODAL_STT_HOST_SUFFIX", DEFAULT_HOST_SUFFIX),
        )

    def is_configured(self) -> bool:
        return bool(self.workspace and self.key and self.secret)


def get_modal_url(workspace: str, host_suffix: str = DEFAULT_HOST_SUFFIX) -> str:
    """Construct the Modal WebSocket URL for a workspace."""
    return f"wss://{workspace}--{host_suffix}/v1/stream"


def get_modal_headers(key: str, secret: str) -> dict[str, str]:
    return {
        "Modal-Key": key,
        "Modal-Secret": secret,
    }


def parse_modal_message(raw_message: str) -> ModalMessage:
    """Parse a raw JSON message from Modal.

    Examples:
        >>> parse_modal_message('{"type": "token", "text": "hello"}').text
        'hello'

        >>> parse_modal_message('{"type": "error", "message": "bad input"}').is_error
        True
    """
    try:
        data = json.loads(raw_message)
    except json.JSONDecodeError:
        return ModalMessage(
            type=ModalMessageType.ERROR,
            error_message=f"Invalid JSON: {raw_message[:100]}",
            raw=raw_message,
        )

    if not isinstance(data, dict):
        return ModalMessage(type=ModalMessageType.UNKNOWN, raw=raw_message)

    msg_type_str = data.get("type", "")

    if msg_type_str == "token":
        return ModalMessage(
            type=ModalMessageType.TOKEN,
            text=data.get("text", ""),
            raw=raw_message,
        )
    elif msg_type_str == "vad_end":
        return ModalMessage(type=ModalMessageType.VAD_END, raw=raw_message)
    elif msg_type_str == "error":
        return ModalMessage(
            type=ModalMessageType.ERROR,
            error_message=data.get("message", "Unknown error"),
            raw=raw_message,
        )
    elif msg_type_str == "ping":
        return ModalMessage(type=ModalMessageType.PING, raw=raw_message)
    return ModalMessage(type=ModalMessageType.UNKNOWN, raw=raw_message)


def collect_transcript(messages: Iterable[ModalMessage]) -> str:
    """Join token texts up to (not including) the first VAD end.

    Tokens carry their own leading whitespace, so they are concatenated as-is
    and only the final text is stripped.
    """
    parts: list[str] = []
    for msg in messages:
        if msg.is_vad_end:
            break
        if msg.is_token and msg.has_text:
            parts.append(msg.text)
    return "".join(parts).strip()
