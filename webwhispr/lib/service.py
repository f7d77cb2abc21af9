"""Application service connecting surfaces to the session coordinator."""

import asyncio
import logging
from itertools import count
from typing import Callable, Optional

from .capture.device import AudioDevice, MicrophoneDevice
from .constants import ENGINE_PROVIDER, MIC_TEST_SECONDS
from .engine.base import EngineConfig
from .livetypes import SessionResponse, SettingsUpdateRequest, TranscriptionProviderException
from .preferences import Preferences, PreferenceStore
from .protocols.messages import Message
from .transcription.coordinator import SessionCoordinator
from .transcription.session import SessionState

logger = logging.getLogger(__name__)

SURFACE_QUEUE_SIZE = 100


class Application:
    """Owns the coordinator, the preference store and the connected surfaces.

    Every coordinator notification is fanned out to all connected surfaces,
    each of which drains its own queue.
    """

    def __init__(
        self,
        store: Optional[PreferenceStore] = None,
        device_factory: Callable[[], AudioDevice] = MicrophoneDevice,
        provider: str = ENGINE_PROVIDER,
        **coordinator_options,
    ) -> None:
        self.store = store or PreferenceStore()
        self.provider = provider
        self.coordinator = SessionCoordinator(
            notify=self._broadcast,
            device_factory=device_factory,
            config_provider=self.engine_config,
            **coordinator_options,
        )
        self.surfaces: dict[int, asyncio.Queue[Message]] = {}
        self.surface_lock = asyncio.Lock()
        self._surface_ids = count(1)
        self._mic_test: Optional[asyncio.Task] = None
        self._started = False

    def engine_config(self) -> EngineConfig:
        """Read the current preferences; called on engine creation and reset."""
        return EngineConfig.from_preferences(self.store.load(), provider=self.provider)

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        await self.coordinator.start()

    async def _broadcast(self, message: Message) -> None:
        async with self.surface_lock:
            surfaces = list(self.surfaces.items())

        for surface_id, queue in surfaces:
            if queue.full():
                logger.warning(
                    "Surface queue full, dropping notification",
                    extra={"surface_id": surface_id, "message_type": message.type.value},
                )
                continue
            queue.put_nowait(message)

    async def register_surface(self) -> tuple[int, asyncio.Queue[Message]]:
        queue: asyncio.Queue[Message] = asyncio.Queue(maxsize=SURFACE_QUEUE_SIZE)
        async with self.surface_lock:
            surface_id = next(self._surface_ids)
            self.surfaces[surface_id] = queue
        logger.debug("Surface connected", extra={"surface_id": surface_id})
        return surface_id, queue

    async def unregister_surface(self, surface_id: int) -> None:
        async with self.surface_lock:
            self.surfaces.pop(surface_id, None)
        logger.debug("Surface disconnected", extra={"surface_id": surface_id})

    def _ensure_started(self) -> None:
        if not self._started or self.coordinator.closed:
            raise TranscriptionProviderException("Dictation service is not running", retcode=503)

    def begin_session(self) -> SessionResponse:
        """Ask the coordinator to start a session.

        The request is asynchronous; ``accepted`` reflects whether the
        coordinator was idle when it was posted.
        """
        self._ensure_started()
        active = self.coordinator.session
        self.coordinator.begin()
        if active is not None:
            return SessionResponse(accepted=False, state=active.state.value, sessionId=active.id)
        return SessionResponse(accepted=True, state=SessionState.CAPTURING.value)

    def end_session(self) -> SessionResponse:
        self._ensure_started()
        active = self.coordinator.session
        self.coordinator.end()
        if active is None:
            return SessionResponse(accepted=False, state=SessionState.IDLE.value)
        return SessionResponse(
            accepted=active.state == SessionState.CAPTURING,
            state=active.state.value,
            sessionId=active.id,
        )

    def get_settings(self) -> Preferences:
        return self.store.load()

    def update_settings(self, request: SettingsUpdateRequest) -> Preferences:
        """Persist new preferences; a change discards the current engine.

        Raises:
            ValidationError: If a value is not supported
        """
        prefs, changed = self.store.update(
            modelSize=request.modelSize,
            language=request.language,
        )
        if changed:
            logger.info(
                "Preferences changed, resetting engine",
                extra={"model_size": prefs.modelSize, "language": prefs.language},
            )
            self.coordinator.reset()
        return prefs

    def mic_test(self, seconds: float = MIC_TEST_SECONDS) -> SessionResponse:
        """Record for a few seconds to trigger and check microphone permission."""
        response = self.begin_session()
        if response.accepted:
            if self._mic_test is not None and not self._mic_test.done():
                self._mic_test.cancel()
            self._mic_test = asyncio.create_task(self._end_after(seconds), name="mic-test")
        return response

    async def _end_after(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
        logger.info("Microphone test finished, ending session")
        self.coordinator.end()

    def status(self) -> dict:
        snapshot = self.coordinator.snapshot()
        snapshot["surfaces"] = len(self.surfaces)
        snapshot["provider"] = self.provider
        return snapshot

    async def shutdown(self) -> None:
        """Cancel any active session and stop every context."""
        if self._mic_test is not None and not self._mic_test.done():
            self._mic_test.cancel()
        await self.coordinator.stop()
        async with self.surface_lock:
            self.surfaces.clear()
        self._started = False
