"""Capture sandbox - the only context that ever touches the microphone.

One sandbox lives for one recording. It opens the device on BEGIN_CAPTURE,
buffers encoded audio while the device is open and, on END_CAPTURE (or when
the device ends on its own), releases the device *before* emitting the
recording. Exactly one terminal event (CAPTURE_READY or CAPTURE_FAILED) is
emitted per sandbox.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

import numpy as np

from ..audio.encoder import AudioEncoder, create_encoder
from ..constants import CAPTURE_FORMAT
from ..livetypes import DeviceDeniedError, DeviceUnavailableError, FailureReason
from ..protocols.messages import (
    Message,
    MessageType,
    capture_failed,
    capture_ready,
    capture_started,
    end_capture,
)
from ..transport.mailbox import IsolatedContext, Outbox
from .device import AudioDevice

logger = logging.getLogger(__name__)

EncoderFactory = Callable[[int, int], AudioEncoder]


def default_encoder_factory(sample_rate: int, channels: int) -> AudioEncoder:
    return create_encoder(CAPTURE_FORMAT, sample_rate, channels)


class CaptureState(Enum):
    IDLE = "idle"
    RECORDING = "recording"
    FINISHED = "finished"


class CaptureSandbox(IsolatedContext):
    """Isolated owner of the audio device and the recording encoder."""

    name = "capture"

    def __init__(
        self,
        outbox: Outbox,
        device: AudioDevice,
        encoder_factory: EncoderFactory = default_encoder_factory,
    ) -> None:
        super().__init__(outbox)
        self._device = device
        self._encoder_factory = encoder_factory
        self._encoder: Optional[AudioEncoder] = None
        self._state = CaptureState.IDLE
        self._session_id = ""
        self._reader: Optional[asyncio.Task] = None
        self._device_open = False
        self._frames = 0
        self._device_ended = False

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def device_open(self) -> bool:
        return self._device_open

    async def handle(self, message: Message) -> None:
        if message.type == MessageType.BEGIN_CAPTURE:
            await self._begin(message.session_id)
        elif message.type == MessageType.END_CAPTURE:
            await self._end()
        else:
            logger.debug(
                "Capture sandbox ignoring message",
                extra={"message_type": message.type.value},
            )

    async def _begin(self, session_id: str) -> None:
        if self._state != CaptureState.IDLE:
            logger.debug(
                "BEGIN_CAPTURE ignored, sandbox already used",
                extra={"session_id": session_id, "state": self._state.value},
            )
            return

        self._session_id = session_id
        try:
            await self._device.open()
        except DeviceDeniedError as e:
            logger.warning(
                "Microphone permission denied: %s", e, extra={"session_id": session_id}
            )
            self._fail(FailureReason.DEVICE_DENIED)
            return
        except DeviceUnavailableError as e:
            logger.warning(
                "Microphone unavailable: %s", e, extra={"session_id": session_id}
            )
            self._fail(FailureReason.DEVICE_UNAVAILABLE)
            return
        except Exception as e:
            logger.exception(
                "Unexpected error opening audio device",
                exc_info=e,
                extra={"session_id": session_id},
            )
            await self._release_device()
            self._fail(FailureReason.DEVICE_UNAVAILABLE)
            return

        self._device_open = True
        self._state = CaptureState.RECORDING
        self._reader = asyncio.create_task(self._read_loop())
        self.emit(capture_started(session_id))
        logger.info("Recording started", extra={"session_id": session_id})

    async def _read_loop(self) -> None:
        try:
            while True:
                frame = await self._device.read()
                if frame is None:
                    logger.info(
                        "Audio device ended on its own",
                        extra={"session_id": self._session_id},
                    )
                    self._device_ended = True
                    break
                self._append(frame)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(
                "Error reading from audio device",
                exc_info=e,
                extra={"session_id": self._session_id},
            )
            self._device_ended = True

        # Finalize on the supervisor task, like an explicit END_CAPTURE
        self.post(end_capture(self._session_id))

    def _append(self, frame: bytes) -> None:
        if self._encoder is None:
            self._encoder = self._encoder_factory(
                self._device.sample_rate, self._device.channels
            )
        usable = len(frame) - len(frame) % 2
        self._encoder.encode(np.frombuffer(frame[:usable], dtype=np.int16))
        self._frames += 1

    async def _end(self) -> None:
        if self._state != CaptureState.RECORDING:
            logger.debug(
                "END_CAPTURE ignored",
                extra={"session_id": self._session_id, "state": self._state.value},
            )
            return

        await self._stop_reader()
        # The device must be released before the recording leaves the sandbox
        await self._release_device()

        # A device that stops before producing any audio is unusable
        if self._device_ended and self._frames == 0:
            self._fail(FailureReason.DEVICE_UNAVAILABLE)
            return

        try:
            if self._encoder is None:
                self._encoder = self._encoder_factory(
                    self._device.sample_rate, self._device.channels
                )
            audio = self._encoder.finalize()
        except Exception as e:
            logger.exception(
                "Failed to finalize recording",
                exc_info=e,
                extra={"session_id": self._session_id},
            )
            self._fail(FailureReason.DEVICE_UNAVAILABLE)
            return

        self._state = CaptureState.FINISHED
        logger.info(
            "Recording finished",
            extra={
                "session_id": self._session_id,
                "frames": self._frames,
                "bytes": len(audio),
            },
        )
        self.emit(capture_ready(self._session_id, audio))

    def _fail(self, reason: FailureReason) -> None:
        self._state = CaptureState.FINISHED
        self.emit(capture_failed(self._session_id, reason))

    async def _stop_reader(self) -> None:
        reader, self._reader = self._reader, None
        if reader is None or reader is asyncio.current_task():
            return
        reader.cancel()
        try:
            await reader
        except asyncio.CancelledError:
            pass

    async def _release_device(self) -> None:
        try:
            await self._device.close()
        except Exception as e:
            logger.exception(
                "Error releasing audio device",
                exc_info=e,
                extra={"session_id": self._session_id},
            )
        self._device_open = False

    async def on_stop(self) -> None:
        await self._stop_reader()
        if self._device_open:
            logger.info(
                "Sandbox destroyed while recording, releasing device",
                extra={"session_id": self._session_id},
            )
            await self._release_device()
        self._state = CaptureState.FINISHED
