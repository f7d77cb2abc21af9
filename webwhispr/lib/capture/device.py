"""Audio input devices for the capture sandbox."""

import asyncio
import logging
from typing import Optional, Protocol

import av
from aiortc.contrib.media import MediaPlayer
from aiortc.mediastreams import MediaStreamError, MediaStreamTrack

from ..constants import CAPTURE_SAMPLE_RATE, MIC_DEVICE, MIC_FORMAT
from ..livetypes import DeviceDeniedError, DeviceUnavailableError

logger = logging.getLogger(__name__)


class AudioDevice(Protocol):
    """Protocol for audio input devices.

    ``open`` raises DeviceDeniedError or DeviceUnavailableError. After
    ``close`` returns the underlying hardware is released.
    """

    sample_rate: int
    channels: int

    async def open(self) -> None:
        ...

    async def read(self) -> Optional[bytes]:
        """Get the next int16 PCM frame. Returns None when the input ends."""
        ...

    async def close(self) -> None:
        ...


class MicrophoneDevice:
    """Microphone opened through ffmpeg (aiortc MediaPlayer) as an audio track.

    Frames are pulled from the track by a background task into a bounded
    queue; when the queue is full the oldest frames are dropped rather than
    stalling the track.
    """

    def __init__(
        self,
        device: str = MIC_DEVICE,
        fmt: str = MIC_FORMAT,
        options: Optional[dict[str, str]] = None,
        queue_size: int = 100,
    ):
        self.device = device
        self.fmt = fmt
        self.options = options or {}
        self.sample_rate = CAPTURE_SAMPLE_RATE
        self.channels = 1
        self._player: Optional[MediaPlayer] = None
        self._track: Optional[MediaStreamTrack] = None
        self._frame_queue: asyncio.Queue[Optional[bytes]] = asyncio.Queue(maxsize=queue_size)
        self._task: Optional[asyncio.Task] = None
        self._format_known = False

    async def open(self) -> None:
        if self._player is not None:
            return

        logger.info(
            "Opening microphone",
            extra={"device": self.device, "format": self.fmt},
        )
        try:
            player = MediaPlayer(self.device, format=self.fmt, options=self.options)
        except PermissionError as e:
            raise DeviceDeniedError(f"Microphone access denied: {e}") from e
        except (OSError, av.FFmpegError, ValueError) as e:
            raise DeviceUnavailableError(f"Could not open microphone {self.device}: {e}") from e

        if player.audio is None:
            raise DeviceUnavailableError(f"No audio stream on input {self.device}")

        self._player = player
        self._track = player.audio
        self._task = asyncio.create_task(self._frame_loop())

    async def _frame_loop(self) -> None:
        try:
            while True:
                try:
                    frame = await self._track.recv()
                except MediaStreamError:
                    logger.info("Microphone track ended")
                    break

                if not self._format_known:
                    self.sample_rate = frame.sample_rate
                    self.channels = len(frame.layout.channels)
                    self._format_known = True
                    logger.info(
                        "Microphone format: %dHz, %d channels",
                        self.sample_rate,
                        self.channels,
                    )

                pcm_data = frame.to_ndarray().tobytes()
                if self._frame_queue.full():
                    self._frame_queue.get_nowait()
                    logger.warning("Microphone frame queue full, dropping oldest frame")
                self._frame_queue.put_nowait(pcm_data)
        finally:
            if self._frame_queue.full():
                self._frame_queue.get_nowait()
            self._frame_queue.put_nowait(None)

    async def read(self) -> Optional[bytes]:
        if self._player is None:
            return None
        return await self._frame_queue.get()

    async def close(self) -> None:
        """Stop the track and release the input device."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._track is not None:
            # Stopping the last track joins the player thread and closes the device
            await asyncio.to_thread(self._track.stop)
            self._track = None
            self._player = None
            logger.info("Microphone released", extra={"device": self.device})
