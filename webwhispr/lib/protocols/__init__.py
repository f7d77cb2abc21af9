"""Protocol definitions for inter-context messages and external services."""

from .messages import (
    Message,
    MessageType,
    TERMINAL_TYPES,
    encode_message,
    parse_message,
)
from .modal import (
    ModalConfig,
    ModalMessage,
    ModalMessageType,
    collect_transcript,
    parse_modal_message,
    get_modal_url,
    get_modal_headers,
)

__all__ = [
    "Message",
    "MessageType",
    "TERMINAL_TYPES",
    "encode_message",
    "parse_message",
    "ModalConfig",
    "ModalMessage",
    "ModalMessageType",
    "collect_transcript",
    "parse_modal_message",
    "get_modal_url",
    "get_modal_headers",
]
