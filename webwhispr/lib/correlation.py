"""Correlation table for in-flight transcription requests.

Pure bookkeeping, no I/O. The coordinator puts an entry when it submits audio
to the engine host and takes it back when a terminal event arrives. Because
``take`` is destructive, a request id resolves at most once even if the engine
(or the transport) delivers a duplicate terminal event.
"""

import logging
import time
from dataclasses import dataclass
from secrets import token_urlsafe
from typing import Optional

logger = logging.getLogger(__name__)


def new_request_id() -> str:
    """Generate an opaque, unguessable request id."""
    return token_urlsafe(12)


@dataclass(frozen=True)
class PendingRequest:
    """Metadata for one submitted transcription request."""

    request_id: str
    session_id: str  # lookup only, the table does not own the session
    submitted_at: float
    deadline: float

    def is_expired(self, now: float) -> bool:
        return now >= self.deadline


class CorrelationTable:
    """Maps request ids to pending-request metadata."""

    def __init__(self) -> None:
        self._pending: dict[str, PendingRequest] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._pending

    def put(
        self,
        request_id: str,
        session_id: str,
        timeout: float,
        now: Optional[float] = None,
    ) -> PendingRequest:
        """Register a submitted request.

        Raises:
            ValueError: If the request id is already pending
        """
        if request_id in self._pending:
            raise ValueError(f"Request {request_id} is already pending")

        submitted_at = time.monotonic() if now is None else now
        entry = PendingRequest(
            request_id=request_id,
            session_id=session_id,
            submitted_at=submitted_at,
            deadline=submitted_at + timeout,
        )
        self._pending[request_id] = entry
        return entry

    def take(self, request_id: str) -> Optional[PendingRequest]:
        """Remove and return the entry, or None if it was already resolved."""
        entry = self._pending.pop(request_id, None)
        if entry is None:
            logger.debug(
                "No pending request for id, discarding",
                extra={"request_id": request_id},
            )
        return entry

    def sweep(self, now: Optional[float] = None) -> list[PendingRequest]:
        """Remove and return every entry whose deadline has passed."""
        now = time.monotonic() if now is None else now
        expired = [entry for entry in self._pending.values() if entry.is_expired(now)]
        for entry in expired:
            del self._pending[entry.request_id]
        return expired

    def pending_for_session(self, session_id: str) -> list[PendingRequest]:
        return [e for e in self._pending.values() if e.session_id == session_id]

    def next_deadline(self) -> Optional[float]:
        if not self._pending:
            return None
        return min(entry.deadline for entry in self._pending.values())
