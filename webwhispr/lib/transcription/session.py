"""Recording session model - one record-to-transcribe attempt."""

import time
from dataclasses import dataclass, field
from enum import Enum
from secrets import token_urlsafe
from typing import Optional

from ..livetypes import FailureReason


class SessionState(str, Enum):
    IDLE = "Idle"
    CAPTURING = "Capturing"
    AWAITING_ENGINE = "AwaitingEngine"
    TRANSCRIBING = "Transcribing"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.FAILED)


# CAPTURING -> TRANSCRIBING covers a device that ends on its own
ALLOWED_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.CAPTURING}),
    SessionState.CAPTURING: frozenset(
        {SessionState.AWAITING_ENGINE, SessionState.TRANSCRIBING, SessionState.FAILED}
    ),
    SessionState.AWAITING_ENGINE: frozenset({SessionState.TRANSCRIBING, SessionState.FAILED}),
    SessionState.TRANSCRIBING: frozenset({SessionState.COMPLETED, SessionState.FAILED}),
    SessionState.COMPLETED: frozenset(),
    SessionState.FAILED: frozenset(),
}


class InvalidTransition(RuntimeError):
    """Raised when a session is moved along an edge the state machine lacks."""

    pass


def new_session_id() -> str:
    return token_urlsafe(9)


@dataclass
class Session:
    """A recording session, owned and mutated only by the coordinator."""

    id: str = field(default_factory=new_session_id)
    state: SessionState = SessionState.IDLE
    started_at: float = field(default_factory=time.monotonic)
    ttl: float = 0.0  # monotonic time at which capture is ended automatically
    request_id: str = ""
    text: str = ""
    reason: Optional[FailureReason] = None
    ended_at: Optional[float] = None

    def transition(self, new_state: SessionState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransition(
                f"Session {self.id}: {self.state.value} -> {new_state.value} is not allowed"
            )
        self.state = new_state
        if new_state.is_terminal:
            self.ended_at = time.monotonic()

    @property
    def is_active(self) -> bool:
        return self.state not in (SessionState.IDLE,) and not self.state.is_terminal

    @property
    def duration(self) -> Optional[float]:
        if self.ended_at is None:
            return None
        return self.ended_at - self.started_at

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "state": self.state.value,
            "requestId": self.request_id or None,
            "text": self.text or None,
            "reason": self.reason.value if self.reason else None,
            "duration": self.duration,
        }
