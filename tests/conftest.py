"""Shared fixtures for coordinator-level tests."""

import pytest
import pytest_asyncio

from fakes import DeviceFactory, EngineFactory, RecordingSurface

from webwhispr.lib.engine.base import EngineConfig
from webwhispr.lib.transcription.coordinator import SessionCoordinator


@pytest.fixture
def events() -> list[str]:
    """Ordered log shared by fake devices and engines."""
    return []


@pytest.fixture
def surface() -> RecordingSurface:
    return RecordingSurface()


@pytest.fixture
def engine_config() -> dict:
    """Mutable holder read by the coordinator's config provider."""
    return {"config": EngineConfig(provider="fake", model_size="small", locale="en")}


@pytest_asyncio.fixture
async def make_coordinator(surface, events, engine_config):
    """Build and start coordinators with short timeouts; stopped on teardown."""
    started: list[SessionCoordinator] = []

    async def factory(devices=None, engines=None, **options) -> SessionCoordinator:
        options = {
            "transcription_timeout": 2.0,
            "capture_finalize_timeout": 1.0,
            "max_recording_seconds": 10.0,
            "sweep_interval": 0.05,
            "handshake_timeout": 0.5,
            "stop_timeout": 0.5,
            **options,
        }
        coordinator = SessionCoordinator(
            notify=surface.deliver,
            device_factory=devices or DeviceFactory(events=events),
            config_provider=lambda: engine_config["config"],
            engine_factory=engines or EngineFactory(events=events),
            **options,
        )
        await coordinator.start()
        started.append(coordinator)
        return coordinator

    yield factory

    for coordinator in started:
        await coordinator.stop()
