"""Capture sandbox and audio input devices."""

from .device import AudioDevice, MicrophoneDevice
from .sandbox import CaptureSandbox, CaptureState

__all__ = ["AudioDevice", "MicrophoneDevice", "CaptureSandbox", "CaptureState"]
