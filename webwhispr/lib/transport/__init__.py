"""Transport layer: in-process mailboxes and the Modal WebSocket client."""

from .mailbox import IsolatedContext, Outbox
from .modal_client import ModalSTTClient, TranscriptionStream, stream_audio

__all__ = [
    "IsolatedContext",
    "Outbox",
    "ModalSTTClient",
    "TranscriptionStream",
    "stream_audio",
]
