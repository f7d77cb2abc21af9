"""Modal STT WebSocket client.

Handles the WebSocket connection to Kyutai STT on Modal. Only I/O lives here;
message parsing is in ``protocols.modal``.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncGenerator, Optional

import websockets
from websockets import ClientConnection

from ..constants import MODAL_CONNECT_TIMEOUT, MODAL_RECEIVE_TIMEOUT
from ..livetypes import ModalConnectionError
from ..protocols.modal import ModalConfig, ModalMessage, parse_modal_message

logger = logging.getLogger(__name__)


@dataclass
class TranscriptionStream:
    """An open STT stream: a sender for audio and a generator of messages."""

    send: "AudioSender"
    receive: AsyncGenerator[ModalMessage, None]


class AudioSender:
    """Sends float32 PCM chunks to Modal over WebSocket."""

    def __init__(self, ws: ClientConnection):
        self._ws = ws
        self._closed = False
        self.bytes_sent = 0

    async def send(self, audio_bytes: bytes) -> bool:
        """Send one audio chunk.

        Returns:
            True if sent, False if the connection is already closed
        """
        if self._closed:
            return False

        try:
            await self._ws.send(audio_bytes)
        except websockets.ConnectionClosed:
            self._closed = True
            return False
        self.bytes_sent += len(audio_bytes)
        return True

    async def close(self) -> None:
        self._closed = True


class ModalSTTClient:
    """Client for Modal's Kyutai STT service.

    Usage:
        client = ModalSTTClient(ModalConfig.from_env())

        async with client.connect() as stream:
            await stream.send.send(chunk)
            async for msg in stream.receive:
                ...
    """

    PING_INTERVAL = 30
    PING_TIMEOUT = 10

    def __init__(
        self,
        config: ModalConfig,
        connect_timeout: float = MODAL_CONNECT_TIMEOUT,
    ):
        self.config = config
        self.connect_timeout = connect_timeout

    def connect(self) -> "ModalConnection":
        """Return a context manager yielding a TranscriptionStream.

        Raises:
            ModalConnectionError: On entry, if the connection fails
        """
        return ModalConnection(self)

    async def _establish_connection(self) -> ClientConnection:
        if not self.config.is_configured():
            raise ModalConnectionError(
                "Modal not configured. Set MODAL_WORKSPACE, MODAL_KEY, and MODAL_SECRET."
            )

        logger.info("Connecting to Modal STT", extra={"url": self.config.url})
        try:
            ws = await asyncio.wait_for(
                websockets.connect(
                    self.config.url,
                    additional_headers=self.config.headers,
                    open_timeout=self.connect_timeout,
                    ping_interval=self.PING_INTERVAL,
                    ping_timeout=self.PING_TIMEOUT,
                    max_size=None,
                ),
                timeout=self.connect_timeout,
            )
        except asyncio.TimeoutError:
            raise ModalConnectionError(
                f"Timeout connecting to Modal STT after {self.connect_timeout}s"
            )
        except (OSError, websockets.WebSocketException) as e:
            raise ModalConnectionError(f"Failed to connect to Modal STT: {e}") from e

        logger.info("Connected to Modal STT")
        return ws


class ModalConnection:
    """Async context manager owning one Modal WebSocket."""

    def __init__(self, client: ModalSTTClient):
        self._client = client
        self._ws: Optional[ClientConnection] = None
        self._sender: Optional[AudioSender] = None

    async def __aenter__(self) -> TranscriptionStream:
        self._ws = await self._client._establish_connection()
        self._sender = AudioSender(self._ws)
        return TranscriptionStream(send=self._sender, receive=self._receive_messages())

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._sender:
            await self._sender.close()

        if self._ws:
            try:
                await self._ws.close()
            except websockets.WebSocketException as e:
                logger.debug("Error closing Modal connection: %s", e)

    async def _receive_messages(self) -> AsyncGenerator[ModalMessage, None]:
        if not self._ws:
            return

        try:
            async for raw_message in self._ws:
                msg = parse_modal_message(raw_message)
                yield msg
                if msg.is_error:
                    logger.error("Modal error: %s", msg.error_message)
                    break
        except websockets.ConnectionClosed as e:
            logger.info("Modal connection closed: %s", e)


async def stream_audio(
    client: ModalSTTClient,
    audio_bytes: bytes,
    chunk_size: int,
    receive_timeout: float = MODAL_RECEIVE_TIMEOUT,
) -> list[ModalMessage]:
    """Send a complete recording and gather the reply messages.

    Audio is sent in ``chunk_size`` byte frames while a receiver task collects
    messages until VAD end, a service error, or ``receive_timeout`` seconds
    without the stream finishing.

    Returns:
        Every message received, in order
    """
    messages: list[ModalMessage] = []

    async with client.connect() as stream:
        done = asyncio.Event()

        async def receive_results() -> None:
            async for msg in stream.receive:
                messages.append(msg)
                if msg.is_vad_end or msg.is_error:
                    break
            done.set()

        receive_task = asyncio.create_task(receive_results())
        try:
            for offset in range(0, len(audio_bytes), chunk_size):
                if not await stream.send.send(audio_bytes[offset:offset + chunk_size]):
                    break
            logger.debug("Sent %d bytes to Modal", stream.send.bytes_sent)

            try:
                await asyncio.wait_for(done.wait(), timeout=receive_timeout)
            except asyncio.TimeoutError:
                logger.info(
                    "No VAD end from Modal, using tokens received so far",
                    extra={"messages": len(messages)},
                )
        finally:
            receive_task.cancel()
            try:
                await receive_task
            except asyncio.CancelledError:
                pass

    return messages
