"""Tests for the Application service and the HTTP/WebSocket surface."""

import json

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from fakes import DeviceFactory, EngineFactory, wait_until

from webwhispr.lib import main
from webwhispr.lib.livetypes import SettingsUpdateRequest, TranscriptionProviderException
from webwhispr.lib.preferences import PreferenceStore
from webwhispr.lib.protocols.messages import MessageType
from webwhispr.lib.service import Application
from webwhispr.lib.transcription.session import SessionState

TERMINAL = ("SESSION_RESULT", "SESSION_ERROR")


def make_application(tmp_path, engines=None) -> Application:
    return Application(
        store=PreferenceStore(tmp_path / "preferences.json"),
        device_factory=DeviceFactory(),
        provider="fake",
        engine_factory=engines or EngineFactory(text="typed by voice"),
        handshake_timeout=0.5,
        stop_timeout=0.5,
        sweep_interval=0.05,
    )


@pytest_asyncio.fixture
async def application(tmp_path):
    app = make_application(tmp_path)
    await app.start()
    yield app
    await app.shutdown()


class TestApplication:
    """Tests for the service layer."""

    @pytest.mark.asyncio
    async def test_notifications_fan_out(self, application):
        _, first = await application.register_surface()
        _, second = await application.register_surface()
        received = {"first": [], "second": []}

        def drained(name, queue):
            while not queue.empty():
                received[name].append(queue.get_nowait())
            return any(m.is_terminal for m in received[name])

        application.begin_session()
        await wait_until(lambda: application.coordinator.state == SessionState.CAPTURING)
        application.end_session()
        await wait_until(lambda: drained("first", first) and drained("second", second))

        assert [m.type for m in received["first"]] == [m.type for m in received["second"]]
        assert received["first"][-1].type == MessageType.SESSION_RESULT
        assert received["first"][-1].text == "typed by voice"

    @pytest.mark.asyncio
    async def test_unregistered_surface_gets_nothing(self, application):
        surface_id, queue = await application.register_surface()
        await application.unregister_surface(surface_id)

        application.begin_session()
        await wait_until(lambda: application.coordinator.state == SessionState.CAPTURING)

        assert queue.empty()

    @pytest.mark.asyncio
    async def test_end_while_idle_not_accepted(self, application):
        response = application.end_session()

        assert not response.accepted
        assert response.state == "Idle"

    @pytest.mark.asyncio
    async def test_settings_change_resets_engine(self, application):
        application.begin_session()
        await wait_until(lambda: application.coordinator.state == SessionState.CAPTURING)
        application.end_session()
        await wait_until(lambda: application.coordinator.state == SessionState.IDLE)
        assert application.coordinator.has_engine

        prefs = application.update_settings(SettingsUpdateRequest(modelSize="tiny"))

        assert prefs.modelSize == "tiny"
        assert application.engine_config().model_size == "tiny"
        await wait_until(lambda: not application.coordinator.has_engine)

    @pytest.mark.asyncio
    async def test_unchanged_settings_keep_engine(self, application):
        application.begin_session()
        await wait_until(lambda: application.coordinator.state == SessionState.CAPTURING)
        application.end_session()
        await wait_until(lambda: application.coordinator.has_engine and application.coordinator.state == SessionState.IDLE)

        application.update_settings(SettingsUpdateRequest(language="en"))

        assert application.coordinator.has_engine

    @pytest.mark.asyncio
    async def test_mic_test_ends_by_itself(self, application):
        _, queue = await application.register_surface()

        response = application.mic_test(seconds=0.1)

        assert response.accepted
        await wait_until(lambda: application.coordinator.history)
        assert application.coordinator.history[0].state == SessionState.COMPLETED

    @pytest.mark.asyncio
    async def test_requests_after_shutdown_rejected(self, tmp_path):
        app = make_application(tmp_path)
        await app.start()
        await app.shutdown()

        with pytest.raises(TranscriptionProviderException) as exc_info:
            app.begin_session()
        assert exc_info.value.retcode == 503


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(main, "app_service", make_application(tmp_path))
    with TestClient(main.app) as test_client:
        yield test_client


class TestHttpApi:
    """Tests for the FastAPI endpoints."""

    def test_heartbeat(self, client):
        assert client.get("/heartbeat").json() == {"status": "ok"}

    def test_health(self, client):
        data = client.get("/health").json()

        assert data["status"] == "ok"
        assert data["engine_provider"] == "fake"

    def test_languages(self, client):
        data = client.get("/api/v1/languages").json()

        assert "multilingual" in [lang["code"] for lang in data["languages"]]
        assert data["modelSizes"] == ["tiny", "base", "small", "medium"]

    def test_settings_roundtrip(self, client):
        assert client.get("/api/v1/settings").json() == {"modelSize": "small", "language": "en"}

        response = client.put("/api/v1/settings", json={"language": "FR"})

        assert response.status_code == 200
        assert response.json()["language"] == "fr"
        assert client.get("/api/v1/settings").json()["language"] == "fr"

    def test_invalid_setting_rejected(self, client):
        response = client.put("/api/v1/settings", json={"modelSize": "huge"})

        assert response.status_code == 400

    def test_end_while_idle(self, client):
        data = client.post("/api/v1/session/end").json()

        assert data["accepted"] is False
        assert data["state"] == "Idle"

    def test_status(self, client):
        data = client.get("/api/v1/status").json()

        assert data["state"] == "Idle"
        assert data["provider"] == "fake"
        assert "version" in data

    def test_websocket_dictation(self, client):
        with client.websocket_connect("/api/v1/stream") as ws:
            ws.send_text(json.dumps({"type": "START_SESSION"}))
            first = ws.receive_json()
            assert first == {
                "type": "SESSION_STATUS",
                "sessionId": first["sessionId"],
                "state": "Capturing",
                "percent": 0,
            }

            ws.send_text(json.dumps({"type": "END_SESSION"}))
            message = ws.receive_json()
            while message["type"] not in TERMINAL:
                message = ws.receive_json()

        assert message == {
            "type": "SESSION_RESULT",
            "sessionId": first["sessionId"],
            "text": "typed by voice",
        }

    def test_websocket_ignores_garbage(self, client):
        with client.websocket_connect("/api/v1/stream") as ws:
            ws.send_text("not json")
            ws.send_text(json.dumps({"type": "START_SESSION"}))

            assert ws.receive_json()["state"] == "Capturing"

    def test_websocket_close_unregisters_surface(self, client):
        with client.websocket_connect("/api/v1/stream") as ws:
            ws.send_text(json.dumps({"type": "START_SESSION"}))
            assert ws.receive_json()["state"] == "Capturing"

        assert main.app_service.surfaces == {}
        assert client.post("/api/v1/session/end").json()["accepted"] is True

    def test_websocket_send_failure_is_contained(self, client, monkeypatch):
        def broken(message):
            raise RuntimeError("encoder failed")

        monkeypatch.setattr(main, "encode_message", broken)
        with client.websocket_connect("/api/v1/stream") as ws:
            ws.send_text(json.dumps({"type": "START_SESSION"}))
            client.get("/api/v1/status")

        assert main.app_service.surfaces == {}


def test_service_not_running_maps_to_503(tmp_path, monkeypatch):
    monkeypatch.setattr(main, "app_service", make_application(tmp_path))
    client = TestClient(main.app)

    response = client.post("/api/v1/session/start")

    assert response.status_code == 503
    assert "not running" in response.json()["error"]
