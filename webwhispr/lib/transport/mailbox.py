"""Isolated execution contexts that talk only through message passing.

Each context owns an inbox and a supervisor task that drains it. Peers never
touch each other's state: they post immutable ``Message`` values into an inbox
and receive replies through the outbox callable they were given.
"""

import asyncio
import logging
from contextlib import suppress
from typing import Callable, Optional

from ..constants import CONTEXT_HANDSHAKE_TIMEOUT, CONTEXT_STOP_TIMEOUT
from ..protocols.messages import Message, MessageType, ready

logger = logging.getLogger(__name__)

Outbox = Callable[[Message], None]

# Sentinel queued by stop(); processed after everything posted before it
_STOP = object()


class IsolatedContext:
    """Base class for an actor with its own inbox and supervisor task.

    Subclasses implement ``handle`` and optionally ``on_start`` / ``on_stop``.

    Usage:
        context = SomeContext(outbox=coordinator.post)
        await context.start()
        context.post(some_message)
        ...
        await context.stop()
    """

    name = "context"

    def __init__(self, outbox: Outbox) -> None:
        self._outbox = outbox
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._ready = asyncio.Event()
        self._closed = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    async def start(self, handshake_timeout: float = CONTEXT_HANDSHAKE_TIMEOUT) -> bool:
        """Start the supervisor task and wait for the readiness handshake.

        The handshake is best-effort: if the context does not acknowledge in
        time we log and carry on, since messages posted meanwhile stay queued.

        Returns:
            True if the handshake completed in time
        """
        if self._closed:
            raise RuntimeError(f"{self.name} has been stopped")

        if self._task is not None:
            logger.debug("%s already started", self.name)
            return self._ready.is_set()

        self._task = asyncio.create_task(self._run(), name=f"{self.name}-supervisor")
        self._inbox.put_nowait(ready())

        try:
            await asyncio.wait_for(self._ready.wait(), timeout=handshake_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Readiness handshake timed out, proceeding anyway",
                extra={"context": self.name, "timeout": handshake_timeout},
            )
            return False
        return True

    def post(self, message: Message) -> bool:
        """Enqueue a message without waiting.

        Returns:
            False if the context is stopped and the message was dropped
        """
        if self._closed:
            logger.debug(
                "Dropping message for stopped context",
                extra={"context": self.name, "message_type": message.type.value},
            )
            return False
        self._inbox.put_nowait(message)
        return True

    def emit(self, message: Message) -> None:
        """Send a message to the peer that owns this context."""
        self._outbox(message)

    async def stop(self, timeout: float = CONTEXT_STOP_TIMEOUT) -> None:
        """Drain what was already posted, stop the loop and release resources."""
        if self._closed:
            return
        self._closed = True

        if self._task is not None:
            self._inbox.put_nowait(_STOP)
            try:
                await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "Context did not drain in time, cancelling",
                    extra={"context": self.name, "timeout": timeout},
                )
                self._task.cancel()
                with suppress(asyncio.CancelledError):
                    await self._task

        try:
            await self.on_stop()
        except Exception as e:
            logger.exception(
                "Error while stopping context",
                exc_info=e,
                extra={"context": self.name},
            )
        logger.debug("%s stopped", self.name)

    async def _run(self) -> None:
        try:
            await self.on_start()
        except Exception as e:
            logger.exception(
                "Error while starting context",
                exc_info=e,
                extra={"context": self.name},
            )

        while True:
            message = await self._inbox.get()
            if message is _STOP:
                break

            if message.type == MessageType.READY:
                self._ready.set()
                continue

            try:
                await self.handle(message)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(
                    "Unhandled error while processing message",
                    exc_info=e,
                    extra={"context": self.name, "message_type": message.type.value},
                )

    async def on_start(self) -> None:
        pass

    async def on_stop(self) -> None:
        pass

    async def handle(self, message: Message) -> None:
        raise NotImplementedError
