"""Engine host - isolated owner of the transcription engine.

SUBMIT never blocks the sender: work is queued and a single worker task runs
transcriptions one at a time. The engine is loaded lazily by the first
submission; later submissions wait for that same warm-up instead of starting
another. Every submitted request id gets exactly one RESULT or RESULT_FAILED.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ..audio.processing import prepare_for_engine
from ..livetypes import AudioDecodeError, FailureReason
from ..models import get_transcribe_language
from ..protocols.messages import (
    Message,
    MessageType,
    engine_ready,
    progress,
    result,
    result_failed,
)
from ..transport.mailbox import IsolatedContext, Outbox
from .base import EngineConfig, TranscriptionEngine, create_engine

logger = logging.getLogger(__name__)

EngineFactory = Callable[[EngineConfig], TranscriptionEngine]


@dataclass(frozen=True)
class _Job:
    request_id: str
    audio: bytes
    locale: str


class EngineHost(IsolatedContext):
    """Hosts one engine instance and serializes transcription requests."""

    name = "engine"

    def __init__(
        self,
        outbox: Outbox,
        config_provider: Callable[[], EngineConfig],
        engine_factory: EngineFactory = create_engine,
    ) -> None:
        super().__init__(outbox)
        self._config_provider = config_provider
        self._engine_factory = engine_factory
        self.config = config_provider()
        self._engine: Optional[TranscriptionEngine] = None
        self._warmup: Optional[asyncio.Task] = None
        self._worker: Optional[asyncio.Task] = None
        self._queue: asyncio.Queue[_Job] = asyncio.Queue()
        # Queued and in-progress requests, in submission order
        self._pending: dict[str, _Job] = {}

    @property
    def engine_loaded(self) -> bool:
        return (
            self._warmup is not None
            and self._warmup.done()
            and not self._warmup.cancelled()
            and self._warmup.exception() is None
        )

    @property
    def pending_requests(self) -> list[str]:
        return list(self._pending)

    async def handle(self, message: Message) -> None:
        if message.type == MessageType.SUBMIT:
            self._submit(message)
        elif message.type == MessageType.RESET:
            await self._reset()
        else:
            logger.debug(
                "Engine host ignoring message",
                extra={"message_type": message.type.value},
            )

    def _submit(self, message: Message) -> None:
        if message.request_id in self._pending:
            logger.debug(
                "Duplicate SUBMIT ignored",
                extra={"request_id": message.request_id},
            )
            return

        job = _Job(request_id=message.request_id, audio=message.audio, locale=message.locale)
        self._pending[job.request_id] = job
        self._queue.put_nowait(job)
        logger.info(
            "Transcription request queued",
            extra={"request_id": job.request_id, "queued": self._queue.qsize()},
        )

        self._ensure_warmup()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._work_loop(), name="engine-worker")

    def _ensure_warmup(self) -> asyncio.Task:
        if self._warmup is None:
            self._warmup = asyncio.create_task(self._load_engine(), name="engine-warmup")
        return self._warmup

    async def _load_engine(self) -> None:
        logger.info(
            "Loading transcription engine",
            extra={
                "provider": self.config.provider,
                "model_size": self.config.model_size,
                "locale": self.config.locale,
            },
        )
        engine = self._engine_factory(self.config)
        self._engine = engine
        await engine.load(self._on_progress)
        logger.info("Transcription engine ready", extra={"provider": self.config.provider})
        self.emit(engine_ready())

    def _on_progress(self, percent: int) -> None:
        for request_id in list(self._pending):
            self.emit(progress(request_id, percent))

    async def _work_loop(self) -> None:
        while True:
            job = await self._queue.get()
            if job.request_id not in self._pending:
                continue
            try:
                await self._process(job)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(
                    "Unexpected error processing transcription request",
                    exc_info=e,
                    extra={"request_id": job.request_id},
                )
                self._resolve(result_failed(job.request_id, FailureReason.DECODE_FAILED))

    async def _process(self, job: _Job) -> None:
        warmup = self._ensure_warmup()
        try:
            await warmup
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "Transcription engine failed to load: %s",
                e,
                extra={"provider": self.config.provider},
            )
            await self._discard_engine()
            # Everything queued was waiting on this warm-up
            self._fail_all(FailureReason.ENGINE_INIT_FAILED)
            return

        try:
            audio = await asyncio.to_thread(
                prepare_for_engine, job.audio, self._engine.sample_rate
            )
        except asyncio.CancelledError:
            raise
        except (AudioDecodeError, ValueError) as e:
            logger.warning(
                "Could not decode recording: %s", e, extra={"request_id": job.request_id}
            )
            self._resolve(result_failed(job.request_id, FailureReason.DECODE_FAILED))
            return
        except Exception as e:
            logger.exception(
                "Unexpected error decoding recording",
                exc_info=e,
                extra={"request_id": job.request_id},
            )
            self._resolve(result_failed(job.request_id, FailureReason.DECODE_FAILED))
            return

        try:
            text = await self._engine.transcribe(audio, get_transcribe_language(job.locale))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(
                "Transcription failed",
                exc_info=e,
                extra={"request_id": job.request_id},
            )
            self._resolve(result_failed(job.request_id, FailureReason.DECODE_FAILED))
            return

        text = text.strip()
        if not text:
            logger.info("No speech detected", extra={"request_id": job.request_id})
            self._resolve(result_failed(job.request_id, FailureReason.NO_SPEECH_DETECTED))
            return

        logger.info(
            "Transcription complete",
            extra={"request_id": job.request_id, "chars": len(text)},
        )
        self._resolve(result(job.request_id, text))

    def _resolve(self, message: Message) -> None:
        if self._pending.pop(message.request_id, None) is None:
            return
        self.emit(message)

    def _fail_all(self, reason: FailureReason) -> None:
        for request_id in list(self._pending):
            self._resolve(result_failed(request_id, reason))
        while not self._queue.empty():
            self._queue.get_nowait()

    async def _reset(self) -> None:
        logger.info(
            "Resetting transcription engine",
            extra={"pending": len(self._pending)},
        )
        await self._cancel_tasks()
        self._fail_all(FailureReason.ENGINE_RESET)
        await self._discard_engine()
        self.config = self._config_provider()

    async def _cancel_tasks(self) -> None:
        tasks = [t for t in (self._worker, self._warmup) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._worker = None

    async def _discard_engine(self) -> None:
        warmup, self._warmup = self._warmup, None
        if warmup is not None and warmup.done() and not warmup.cancelled():
            # Retrieve the exception so it is not reported as unhandled
            warmup.exception()

        engine, self._engine = self._engine, None
        if engine is None:
            return
        try:
            await engine.close()
        except Exception as e:
            logger.exception("Error closing transcription engine", exc_info=e)

    async def on_stop(self) -> None:
        await self._cancel_tasks()
        self._fail_all(FailureReason.ENGINE_RESET)
        await self._discard_engine()
