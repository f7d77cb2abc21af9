"""Tests for inter-context messages and the surface wire codec."""

import json

import pytest

from webwhispr.lib.livetypes import FailureReason
from webwhispr.lib.protocols.messages import (
    Message,
    MessageType,
    capture_failed,
    capture_ready,
    encode_message,
    parse_message,
    progress,
    result,
    session_error,
    session_result,
    session_status,
    submit,
)


class TestConstructors:
    """Tests for message constructors and properties."""

    def test_submit_carries_payload(self):
        msg = submit("r1", b"\x00\x01", "fr")

        assert msg.type == MessageType.SUBMIT
        assert msg.request_id == "r1"
        assert msg.audio == b"\x00\x01"
        assert msg.locale == "fr"

    @pytest.mark.parametrize("raw,expected", [(-5, 0), (42, 42), (250, 100)])
    def test_progress_clamped(self, raw, expected):
        assert progress("r1", raw).percent == expected

    def test_terminal_and_error_flags(self):
        assert result("r", "text").is_terminal
        assert not result("r", "text").is_error
        assert capture_failed("s", FailureReason.DEVICE_DENIED).is_error
        assert capture_ready("s", b"x").is_terminal
        assert not progress("r", 10).is_terminal

    def test_frozen(self):
        msg = session_result("s1", "hello")

        with pytest.raises(Exception):
            msg.text = "changed"


class TestEncodeMessage:
    """Tests for encode_message."""

    def test_result_omits_defaults(self):
        data = json.loads(encode_message(session_result("s1", "hello")))

        assert data == {"type": "SESSION_RESULT", "sessionId": "s1", "text": "hello"}

    def test_error_reason_value(self):
        data = json.loads(encode_message(session_error("s1", FailureReason.TIMEOUT)))

        assert data["reason"] == "Timeout"

    def test_status_always_has_percent(self):
        data = json.loads(encode_message(session_status("s1", "Capturing")))

        assert data["percent"] == 0
        assert data["state"] == "Capturing"

    def test_audio_is_base64(self):
        data = json.loads(encode_message(capture_ready("s1", b"\xff\x00")))

        assert data["audio"] == "/wA="


class TestParseMessage:
    """Tests for parse_message."""

    def test_control_message(self):
        msg = parse_message('{"type": "START_SESSION"}')

        assert msg.type == MessageType.START_SESSION
        assert msg.session_id == ""

    def test_encoded_error_parses_back(self):
        original = session_error("abc", FailureReason.NO_SPEECH_DETECTED)

        parsed = parse_message(encode_message(original))

        assert parsed.type == original.type
        assert parsed.session_id == "abc"
        assert parsed.reason == FailureReason.NO_SPEECH_DETECTED

    def test_audio_decoded(self):
        assert parse_message('{"type": "CAPTURE_READY", "audio": "/wA="}').audio == b"\xff\x00"

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "[1, 2]",
            '{"type": "LAUNCH_ROCKET"}',
            '{"text": "no type"}',
            '{"type": "SESSION_ERROR", "reason": "Exploded"}',
            '{"type": "CAPTURE_READY", "audio": "***"}',
        ],
    )
    def test_malformed_is_unknown(self, raw):
        msg = parse_message(raw)

        assert msg.type == MessageType.UNKNOWN
        assert msg.raw == raw

    def test_bad_percent_defaults_to_zero(self):
        msg = parse_message('{"type": "SESSION_STATUS", "percent": "lots"}')

        assert msg.type == MessageType.SESSION_STATUS
        assert msg.percent == 0

    @pytest.mark.parametrize("percent", ["1e999", "-1e999", "NaN"])
    def test_non_finite_percent_defaults_to_zero(self, percent):
        msg = parse_message('{"type": "SESSION_STATUS", "percent": ' + percent + "}")

        assert msg.type == MessageType.SESSION_STATUS
        assert msg.percent == 0

    def test_raw_preserved(self):
        raw = '{"type": "END_SESSION"}'

        assert parse_message(raw) == Message(type=MessageType.END_SESSION, raw=raw)
