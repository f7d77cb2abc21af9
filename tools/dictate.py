"""
Push-to-talk dictation from the terminal.

Press Enter to start recording, Enter again to stop; the transcript is
printed once the engine answers. Ctrl-D quits.

Requirements:
  - Local engine: pip install -e '.[whisper]'
  - Remote engine: MODAL_WORKSPACE, MODAL_KEY, MODAL_SECRET and --engine modal

Usage:
  python tools/dictate.py --language en --model-size small
  python tools/dictate.py --engine modal --device hw:1 --format alsa
"""

import argparse
import asyncio
import logging
import sys
from functools import partial

from webwhispr.lib.capture.device import MicrophoneDevice
from webwhispr.lib.constants import (
    DEFAULT_LANGUAGE,
    DEFAULT_MODEL_SIZE,
    ENGINE_PROVIDER,
    MAX_RECORDING_SECONDS,
    MIC_DEVICE,
    MIC_FORMAT,
)
from webwhispr.lib.engine.base import EngineConfig
from webwhispr.lib.models import MODEL_SIZES, get_supported_languages
from webwhispr.lib.protocols.messages import Message, MessageType
from webwhispr.lib.transcription.coordinator import SessionCoordinator


async def _print_notification(message: Message) -> None:
    if message.type == MessageType.SESSION_RESULT:
        print(f"\n{message.text}\n")
    elif message.type == MessageType.SESSION_ERROR:
        print(f"[error] {message.reason.value}", file=sys.stderr)
    elif message.type == MessageType.SESSION_STATUS:
        suffix = f" {message.percent}%" if message.percent else ""
        print(f"[{message.state}]{suffix}", file=sys.stderr)


async def dictate(config: EngineConfig, device: str, fmt: str, max_seconds: float) -> None:
    coordinator = SessionCoordinator(
        notify=_print_notification,
        device_factory=partial(MicrophoneDevice, device=device, fmt=fmt),
        config_provider=lambda: config,
        max_recording_seconds=max_seconds,
    )
    await coordinator.start()
    print("Press Enter to start recording, Enter to stop, Ctrl-D to quit.", file=sys.stderr)
    try:
        while True:
            line = await asyncio.to_thread(sys.stdin.readline)
            if not line:
                break
            if coordinator.session is None:
                coordinator.begin()
            else:
                coordinator.end()
    finally:
        await coordinator.stop()


def parse_args(argv: list[str]) -> argparse.Namespace:
    languages = [lang["code"] for lang in get_supported_languages()]
    parser = argparse.ArgumentParser(description="Push-to-talk dictation in the terminal.")
    parser.add_argument("--engine", default=ENGINE_PROVIDER, choices=("whisper", "modal"), help="Transcription engine.")
    parser.add_argument("--model-size", default=DEFAULT_MODEL_SIZE, choices=MODEL_SIZES, help="Whisper model size.")
    parser.add_argument("--language", default=DEFAULT_LANGUAGE, choices=languages, help="Language code or 'multilingual'.")
    parser.add_argument("--device", default=MIC_DEVICE, help="ffmpeg input device (default: %(default)s).")
    parser.add_argument("--format", default=MIC_FORMAT, help="ffmpeg input format (default: %(default)s).")
    parser.add_argument("--max-seconds", type=float, default=MAX_RECORDING_SECONDS, help="Maximum recording length.")
    parser.add_argument("--verbose", action="store_true", help="Log debug output.")
    return parser.parse_args(argv)


def main(argv: list[str]) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    config = EngineConfig(provider=args.engine, model_size=args.model_size, locale=args.language)
    try:
        asyncio.run(dictate(config, args.device, args.format, args.max_seconds))
    except KeyboardInterrupt:
        return 130
    except Exception as exc:
        print(f"[error] {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
