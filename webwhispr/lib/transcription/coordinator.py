"""Session coordinator - the orchestration core of a dictation.

The coordinator is the only owner of session state. It creates a capture
sandbox per recording and an engine host on demand, routes control messages
between them, correlates transcription requests with their results and turns
every outcome into exactly one SESSION_RESULT or SESSION_ERROR for the
requesting surface.

All state changes happen on the coordinator's own supervisor task: the public
``begin`` / ``end`` / ``reset`` methods only post messages, and timers post
messages too, so handlers never race each other.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Optional

from ..capture.device import AudioDevice
from ..capture.sandbox import CaptureSandbox, EncoderFactory, default_encoder_factory
from ..constants import (
    CAPTURE_FINALIZE_TIMEOUT,
    CONTEXT_HANDSHAKE_TIMEOUT,
    CONTEXT_STOP_TIMEOUT,
    MAX_RECORDING_SECONDS,
    SESSION_HISTORY_SIZE,
    SWEEP_INTERVAL,
    TRANSCRIPTION_TIMEOUT,
)
from ..correlation import CorrelationTable, new_request_id
from ..engine.base import EngineConfig, create_engine
from ..engine.host import EngineFactory, EngineHost
from ..livetypes import FailureReason
from ..protocols.messages import (
    Message,
    MessageType,
    begin_capture,
    end_capture,
    end_session,
    reset,
    session_error,
    session_result,
    session_status,
    start_session,
    submit,
    sweep,
)
from ..transport.mailbox import IsolatedContext
from .session import Session, SessionState

logger = logging.getLogger(__name__)

Notify = Callable[[Message], Awaitable[None]]

# Fire request-timeout sweeps just after the deadline
_TIMER_SLACK = 0.01


class SessionCoordinator(IsolatedContext):
    """Drives the session state machine.

    Usage:
        coordinator = SessionCoordinator(
            notify=surface.deliver,
            device_factory=MicrophoneDevice,
            config_provider=lambda: EngineConfig.from_preferences(store.load()),
        )
        await coordinator.start()

        coordinator.begin()   # key pressed
        coordinator.end()     # key released
        # -> surface.deliver(SESSION_RESULT | SESSION_ERROR)

        await coordinator.stop()
    """

    name = "coordinator"

    def __init__(
        self,
        notify: Notify,
        device_factory: Callable[[], AudioDevice],
        config_provider: Callable[[], EngineConfig],
        engine_factory: EngineFactory = create_engine,
        encoder_factory: EncoderFactory = default_encoder_factory,
        transcription_timeout: float = TRANSCRIPTION_TIMEOUT,
        capture_finalize_timeout: float = CAPTURE_FINALIZE_TIMEOUT,
        max_recording_seconds: float = MAX_RECORDING_SECONDS,
        sweep_interval: float = SWEEP_INTERVAL,
        handshake_timeout: float = CONTEXT_HANDSHAKE_TIMEOUT,
        stop_timeout: float = CONTEXT_STOP_TIMEOUT,
    ) -> None:
        # Outgoing notifications are delivered by a separate task so that a
        # slow surface never stalls the state machine
        self._outgoing: asyncio.Queue[Optional[Message]] = asyncio.Queue()
        super().__init__(outbox=self._outgoing.put_nowait)
        self._notify = notify
        self._device_factory = device_factory
        self._config_provider = config_provider
        self._engine_factory = engine_factory
        self._encoder_factory = encoder_factory
        self.transcription_timeout = transcription_timeout
        self.capture_finalize_timeout = capture_finalize_timeout
        self.max_recording_seconds = max_recording_seconds
        self.sweep_interval = sweep_interval
        self.handshake_timeout = handshake_timeout
        self.stop_timeout = stop_timeout

        self.table = CorrelationTable()
        self._session: Optional[Session] = None
        self._capture: Optional[CaptureSandbox] = None
        self._engine: Optional[EngineHost] = None
        self._engine_warm = False
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._notifier: Optional[asyncio.Task] = None
        self._sweeper: Optional[asyncio.Task] = None
        self.history: deque[Session] = deque(maxlen=SESSION_HISTORY_SIZE)

        self._handlers = {
            MessageType.START_SESSION: self._on_start_session,
            MessageType.END_SESSION: self._on_end_session,
            MessageType.CAPTURE_STARTED: self._on_capture_started,
            MessageType.CAPTURE_READY: self._on_capture_ready,
            MessageType.CAPTURE_FAILED: self._on_capture_failed,
            MessageType.PROGRESS: self._on_progress,
            MessageType.ENGINE_READY: self._on_engine_ready,
            MessageType.RESULT: self._on_engine_outcome,
            MessageType.RESULT_FAILED: self._on_engine_outcome,
            MessageType.RESET: self._on_reset,
            MessageType.SWEEP: self._on_sweep,
        }

    # Surface API

    def begin(self) -> None:
        """Start a session; ignored while one is active."""
        self.post(start_session())

    def end(self) -> None:
        """End the capture phase; a no-op while idle."""
        self.post(end_session())

    def reset(self) -> None:
        """Discard the engine; in-flight requests fail with EngineReset."""
        self.post(reset())

    @property
    def state(self) -> SessionState:
        return self._session.state if self._session else SessionState.IDLE

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def has_capture(self) -> bool:
        return self._capture is not None

    @property
    def has_engine(self) -> bool:
        return self._engine is not None

    @property
    def engine_warm(self) -> bool:
        return self._engine_warm

    def snapshot(self) -> dict:
        return {
            "state": self.state.value,
            "session": self._session.to_dict() if self._session else None,
            "pendingRequests": len(self.table),
            "engine": {"running": self.has_engine, "ready": self._engine_warm},
            "history": [s.to_dict() for s in self.history],
        }

    # Context lifecycle

    async def on_start(self) -> None:
        self._notifier = asyncio.create_task(self._notify_loop(), name="coordinator-notifier")
        self._sweeper = asyncio.create_task(self._sweep_loop(), name="coordinator-sweeper")

    async def on_stop(self) -> None:
        self._cancel_timers()
        if self._sweeper:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None

        if self._session is not None:
            self._finish_failed(FailureReason.CANCELLED)

        await self._destroy_capture()
        engine, self._engine = self._engine, None
        if engine is not None:
            await engine.stop(self.stop_timeout)

        if self._notifier:
            self._outgoing.put_nowait(None)
            try:
                await asyncio.wait_for(self._notifier, timeout=self.handshake_timeout)
            except asyncio.TimeoutError:
                logger.warning("Surface notifications not drained before shutdown")
            self._notifier = None

    async def _notify_loop(self) -> None:
        while True:
            message = await self._outgoing.get()
            if message is None:
                break
            try:
                await self._notify(message)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(
                    "Error notifying surface",
                    exc_info=e,
                    extra={"message_type": message.type.value},
                )

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            if len(self.table):
                self.post(sweep())

    async def handle(self, message: Message) -> None:
        handler = self._handlers.get(message.type)
        if handler is None:
            logger.debug(
                "Coordinator ignoring message",
                extra={"message_type": message.type.value},
            )
            return
        await handler(message)

    # Capture stage

    async def _on_start_session(self, message: Message) -> None:
        if self._session is not None:
            logger.info(
                "START_SESSION ignored, a session is already active",
                extra={"session_id": self._session.id, "state": self._session.state.value},
            )
            return

        now = time.monotonic()
        session = Session(started_at=now, ttl=now + self.max_recording_seconds)
        session.transition(SessionState.CAPTURING)
        self._session = session
        logger.info("Session started", extra={"session_id": session.id})

        try:
            device = self._device_factory()
        except Exception as e:
            logger.exception(
                "Could not create audio device",
                exc_info=e,
                extra={"session_id": session.id},
            )
            self._finish_failed(FailureReason.DEVICE_UNAVAILABLE)
            return

        sandbox = CaptureSandbox(
            outbox=self.post,
            device=device,
            encoder_factory=self._encoder_factory,
        )
        self._capture = sandbox
        await sandbox.start(self.handshake_timeout)
        sandbox.post(begin_capture(session.id))

        self._arm_timer(
            "ttl",
            self.max_recording_seconds,
            Message(type=MessageType.END_SESSION, session_id=session.id),
        )

    async def _on_capture_started(self, message: Message) -> None:
        if not self._is_current(message) or self.state != SessionState.CAPTURING:
            return
        self.emit(session_status(message.session_id, SessionState.CAPTURING.value))

    async def _on_end_session(self, message: Message) -> None:
        session = self._session
        if session is None:
            logger.debug("END_SESSION while idle, nothing to do")
            return
        # An END carrying a session id comes from this session's TTL timer
        if message.session_id and message.session_id != session.id:
            return
        if session.state != SessionState.CAPTURING:
            logger.debug(
                "END_SESSION ignored",
                extra={"session_id": session.id, "state": session.state.value},
            )
            return

        if message.session_id:
            logger.info(
                "Maximum recording length reached, ending capture",
                extra={"session_id": session.id},
            )
        self._cancel_timer("ttl")
        session.transition(SessionState.AWAITING_ENGINE)
        self._capture.post(end_capture(session.id))
        self._arm_timer(
            "finalize",
            self.capture_finalize_timeout,
            Message(
                type=MessageType.CAPTURE_FAILED,
                session_id=session.id,
                reason=FailureReason.TIMEOUT,
            ),
        )
        self.emit(session_status(session.id, SessionState.AWAITING_ENGINE.value))

    async def _on_capture_failed(self, message: Message) -> None:
        if not self._is_current(message):
            logger.debug(
                "Discarding CAPTURE_FAILED from a previous session",
                extra={"session_id": message.session_id},
            )
            return
        if self.state not in (SessionState.CAPTURING, SessionState.AWAITING_ENGINE):
            return

        self._cancel_timer("ttl")
        self._cancel_timer("finalize")
        self._finish_failed(message.reason or FailureReason.DEVICE_UNAVAILABLE)
        await self._destroy_capture()

    async def _on_capture_ready(self, message: Message) -> None:
        if not self._is_current(message):
            logger.debug(
                "Discarding CAPTURE_READY from a previous session",
                extra={"session_id": message.session_id},
            )
            return
        session = self._session
        if session.state not in (SessionState.CAPTURING, SessionState.AWAITING_ENGINE):
            return

        self._cancel_timer("ttl")
        self._cancel_timer("finalize")
        # Microphone is gone before anything is submitted
        await self._destroy_capture()
        session.transition(SessionState.TRANSCRIBING)

        engine = await self._ensure_engine()
        request_id = new_request_id()
        self.table.put(request_id, session.id, self.transcription_timeout)
        session.request_id = request_id
        engine.post(submit(request_id, message.audio, self._config_provider().locale))
        self._arm_timer("request", self.transcription_timeout + _TIMER_SLACK, sweep())

        logger.info(
            "Recording submitted for transcription",
            extra={
                "session_id": session.id,
                "request_id": request_id,
                "bytes": len(message.audio),
            },
        )
        self.emit(session_status(session.id, SessionState.TRANSCRIBING.value))

    # Engine stage

    async def _ensure_engine(self) -> EngineHost:
        if self._engine is None or self._engine.closed:
            host = EngineHost(
                outbox=self.post,
                config_provider=self._config_provider,
                engine_factory=self._engine_factory,
            )
            self._engine = host
            self._engine_warm = False
            await host.start(self.handshake_timeout)
        return self._engine

    async def _on_progress(self, message: Message) -> None:
        session = self._session
        if session is None or session.request_id != message.request_id:
            return
        self.emit(session_status(session.id, session.state.value, message.percent))

    async def _on_engine_ready(self, message: Message) -> None:
        self._engine_warm = True

    async def _on_engine_outcome(self, message: Message) -> None:
        entry = self.table.take(message.request_id)
        if entry is None:
            # Duplicate, late or already timed out
            return

        session = self._session
        if (
            session is None
            or session.id != entry.session_id
            or session.state != SessionState.TRANSCRIBING
        ):
            logger.debug(
                "Discarding result for a finished session",
                extra={"request_id": entry.request_id, "session_id": entry.session_id},
            )
            return

        self._cancel_timer("request")
        if message.type == MessageType.RESULT:
            self._finish_completed(message.text)
        else:
            self._finish_failed(message.reason or FailureReason.DECODE_FAILED)

    async def _on_sweep(self, message: Message) -> None:
        for entry in self.table.sweep(time.monotonic()):
            logger.warning(
                "Transcription request timed out",
                extra={"request_id": entry.request_id, "session_id": entry.session_id},
            )
            session = self._session
            if (
                session is not None
                and session.id == entry.session_id
                and session.state == SessionState.TRANSCRIBING
            ):
                self._cancel_timer("request")
                self._finish_failed(FailureReason.TIMEOUT)

    async def _on_reset(self, message: Message) -> None:
        engine, self._engine = self._engine, None
        self._engine_warm = False
        if engine is None:
            logger.info("Engine reset requested, no engine running")
            return

        logger.info("Resetting engine", extra={"pending": len(self.table)})
        engine.post(reset())
        # RESET is drained before stop, so its EngineReset failures reach us first
        await engine.stop(self.stop_timeout)

    # Helpers

    def _is_current(self, message: Message) -> bool:
        return self._session is not None and message.session_id == self._session.id

    def _finish_completed(self, text: str) -> None:
        session = self._session
        session.text = text
        session.transition(SessionState.COMPLETED)
        self._close_session()
        logger.info(
            "Session completed",
            extra={"session_id": session.id, "chars": len(text)},
        )
        self.emit(session_result(session.id, text))

    def _finish_failed(self, reason: FailureReason) -> None:
        session = self._session
        session.reason = reason
        session.transition(SessionState.FAILED)
        self._close_session()
        if session.request_id:
            # Leave nothing behind for a session that is over
            self.table.take(session.request_id)
        logger.info(
            "Session failed",
            extra={"session_id": session.id, "reason": reason.value},
        )
        self.emit(session_error(session.id, reason))

    def _close_session(self) -> None:
        self._cancel_timers()
        self.history.append(self._session)
        self._session = None

    async def _destroy_capture(self) -> None:
        capture, self._capture = self._capture, None
        if capture is not None:
            await capture.stop(self.stop_timeout)

    def _arm_timer(self, name: str, delay: float, message: Message) -> None:
        self._cancel_timer(name)
        loop = asyncio.get_running_loop()
        self._timers[name] = loop.call_later(delay, self.post, message)

    def _cancel_timer(self, name: str) -> None:
        handle = self._timers.pop(name, None)
        if handle is not None:
            handle.cancel()

    def _cancel_timers(self) -> None:
        for name in list(self._timers):
            self._cancel_timer(name)
