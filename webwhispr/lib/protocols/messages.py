"""Control messages exchanged between the dictation contexts.

Pure definitions:
- Message types and the immutable message value
- Constructors for each message
- JSON wire codec for surfaces connected over WebSocket

No I/O, no state. Messages only carry immutable values, so posting one into
another context's inbox is a value copy.
"""

import base64
import binascii
import json
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..livetypes import FailureReason


class MessageType(str, Enum):
    """Types of messages routed between surface, coordinator, capture and engine."""

    # Surface -> Coordinator
    START_SESSION = "START_SESSION"
    END_SESSION = "END_SESSION"

    # Coordinator -> CaptureSandbox
    BEGIN_CAPTURE = "BEGIN_CAPTURE"
    END_CAPTURE = "END_CAPTURE"

    # CaptureSandbox -> Coordinator
    CAPTURE_STARTED = "CAPTURE_STARTED"
    CAPTURE_READY = "CAPTURE_READY"
    CAPTURE_FAILED = "CAPTURE_FAILED"

    # Coordinator -> EngineHost
    SUBMIT = "SUBMIT"
    RESET = "RESET"

    # EngineHost -> Coordinator
    PROGRESS = "PROGRESS"
    ENGINE_READY = "ENGINE_READY"
    RESULT = "RESULT"
    RESULT_FAILED = "RESULT_FAILED"

    # Coordinator -> Surface
    SESSION_STATUS = "SESSION_STATUS"
    SESSION_RESULT = "SESSION_RESULT"
    SESSION_ERROR = "SESSION_ERROR"

    # Context lifecycle
    READY = "READY"
    SWEEP = "SWEEP"

    UNKNOWN = "UNKNOWN"


TERMINAL_TYPES = frozenset(
    {
        MessageType.CAPTURE_READY,
        MessageType.CAPTURE_FAILED,
        MessageType.RESULT,
        MessageType.RESULT_FAILED,
        MessageType.SESSION_RESULT,
        MessageType.SESSION_ERROR,
    }
)


@dataclass(frozen=True)
class Message:
    """A tagged control message.

    Immutable data class; fields that a message type does not use stay at
    their defaults.
    """

    type: MessageType
    session_id: str = ""
    request_id: str = ""
    audio: bytes = b""
    locale: str = ""
    text: str = ""
    reason: Optional[FailureReason] = None
    percent: int = 0
    state: str = ""
    raw: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_TYPES

    @property
    def is_error(self) -> bool:
        return self.type in (
            MessageType.CAPTURE_FAILED,
            MessageType.RESULT_FAILED,
            MessageType.SESSION_ERROR,
        )

    @property
    def has_text(self) -> bool:
        return bool(self.text)


def start_session() -> Message:
    return Message(type=MessageType.START_SESSION)


def end_session() -> Message:
    return Message(type=MessageType.END_SESSION)


def begin_capture(session_id: str) -> Message:
    return Message(type=MessageType.BEGIN_CAPTURE, session_id=session_id)


def end_capture(session_id: str) -> Message:
    return Message(type=MessageType.END_CAPTURE, session_id=session_id)


def capture_started(session_id: str) -> Message:
    return Message(type=MessageType.CAPTURE_STARTED, session_id=session_id)


def capture_ready(session_id: str, audio: bytes) -> Message:
    return Message(type=MessageType.CAPTURE_READY, session_id=session_id, audio=bytes(audio))


def capture_failed(session_id: str, reason: FailureReason) -> Message:
    return Message(type=MessageType.CAPTURE_FAILED, session_id=session_id, reason=reason)


def submit(request_id: str, audio: bytes, locale: str) -> Message:
    return Message(
        type=MessageType.SUBMIT,
        request_id=request_id,
        audio=bytes(audio),
        locale=locale,
    )


def reset() -> Message:
    return Message(type=MessageType.RESET)


def progress(request_id: str, percent: int) -> Message:
    return Message(
        type=MessageType.PROGRESS,
        request_id=request_id,
        percent=max(0, min(100, int(percent))),
    )


def engine_ready() -> Message:
    return Message(type=MessageType.ENGINE_READY)


def result(request_id: str, text: str) -> Message:
    return Message(type=MessageType.RESULT, request_id=request_id, text=text)


def result_failed(request_id: str, reason: FailureReason) -> Message:
    return Message(type=MessageType.RESULT_FAILED, request_id=request_id, reason=reason)


def session_status(session_id: str, state: str, percent: int = 0) -> Message:
    return Message(
        type=MessageType.SESSION_STATUS,
        session_id=session_id,
        state=state,
        percent=percent,
    )


def session_result(session_id: str, text: str) -> Message:
    return Message(type=MessageType.SESSION_RESULT, session_id=session_id, text=text)


def session_error(session_id: str, reason: FailureReason) -> Message:
    return Message(type=MessageType.SESSION_ERROR, session_id=session_id, reason=reason)


def ready() -> Message:
    return Message(type=MessageType.READY)


def sweep() -> Message:
    return Message(type=MessageType.SWEEP)


def encode_message(msg: Message) -> str:
    """Serialize a message to JSON for a WebSocket surface.

    Only non-default fields are written; audio is base64 encoded.

    Examples:
        >>> encode_message(session_result("s1", "hello"))
        '{"type": "SESSION_RESULT", "sessionId": "s1", "text": "hello"}'
    """
    data: dict = {"type": msg.type.value}
    if msg.session_id:
        data["sessionId"] = msg.session_id
    if msg.request_id:
        data["requestId"] = msg.request_id
    if msg.audio:
        data["audio"] = base64.b64encode(msg.audio).decode("ascii")
    if msg.locale:
        data["locale"] = msg.locale
    if msg.text:
        data["text"] = msg.text
    if msg.reason is not None:
        data["reason"] = msg.reason.value
    if msg.type in (MessageType.PROGRESS, MessageType.SESSION_STATUS):
        data["percent"] = msg.percent
    if msg.state:
        data["state"] = msg.state
    return json.dumps(data)


def parse_message(raw_message: str) -> Message:
    """Parse a raw JSON message from a surface.

    Pure function - no side effects. Malformed input never raises: it comes
    back as an UNKNOWN message carrying the raw text.

    Examples:
        >>> parse_message('{"type": "START_SESSION"}')
        Message(type=<MessageType.START_SESSION: 'START_SESSION'>, ...)

        >>> parse_message('not json').type
        <MessageType.UNKNOWN: 'UNKNOWN'>
    """
    try:
        data = json.loads(raw_message)
    except json.JSONDecodeError:
        return Message(type=MessageType.UNKNOWN, raw=raw_message)

    if not isinstance(data, dict):
        return Message(type=MessageType.UNKNOWN, raw=raw_message)

    try:
        msg_type = MessageType(data.get("type", ""))
    except ValueError:
        return Message(type=MessageType.UNKNOWN, raw=raw_message)

    reason = None
    if data.get("reason"):
        try:
            reason = FailureReason(data["reason"])
        except ValueError:
            return Message(type=MessageType.UNKNOWN, raw=raw_message)

    audio = b""
    if data.get("audio"):
        try:
            audio = base64.b64decode(data["audio"], validate=True)
        except (binascii.Error, TypeError):
            return Message(type=MessageType.UNKNOWN, raw=raw_message)

    try:
        percent = int(data.get("percent", 0))
    except (TypeError, ValueError, OverflowError):
        percent = 0

    return Message(
        type=msg_type,
        session_id=str(data.get("sessionId", "")),
        request_id=str(data.get("requestId", "")),
        audio=audio,
        locale=str(data.get("locale", "")),
        text=str(data.get("text", "")),
        reason=reason,
        percent=percent,
        state=str(data.get("state", "")),
        raw=raw_message,
    )
