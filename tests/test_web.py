"""Tests for the REST API and the WebSocket session protocol."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from carassist.config import AppConfig
from carassist.recording.event_logger import AlertLogger
from carassist.recording.models import ConfigurationError
from carassist.web.app import create_app

CAR = {"labels": [{"identifier": "car", "confidence": 0.9}],
       "bounding_box": [0.0, 0.0, 0.5, 0.5]}


@pytest.fixture
def alert_logger(tmp_path):
    logger = AlertLogger(str(tmp_path / "alerts.db"))
    yield logger
    logger.close()


@pytest.fixture
def client(alert_logger):
    return TestClient(create_app(AppConfig(), alert_logger))


def start_session(ws, **frame) -> dict:
    ws.send_json({"type": "start", **frame})
    return ws.receive_json()


class TestRestApi:
    def test_health(self, client):
        """Health endpoint answers ok."""
        assert client.get("/api/health").json() == {"status": "ok"}

    def test_config(self, client):
        """The config endpoint reports the effective policy and frame."""
        data = client.get("/api/config").json()
        assert data["policy"]["proximity_threshold"] == 0.15
        assert data["policy"]["watched_classes"] == ["traffic light"]
        assert data["frame"]["rotation"] == 90
        assert data["default_color"] == [1.0, 0.0, 0.0, 1.0]

    def test_alerts_empty(self, client):
        """History is empty on a fresh database."""
        assert client.get("/api/alerts").json() == []

    def test_invalid_policy_rejected_at_build(self, alert_logger):
        """An invalid policy fails at app construction."""
        config = AppConfig()
        config.policy.proximity_threshold = 1.5
        with pytest.raises(ConfigurationError):
            create_app(config, alert_logger)


class TestSession:
    def test_frame_round_trip(self, client):
        """A frame message returns render instructions and commands."""
        with client.websocket_connect("/ws/session") as ws:
            ready = start_session(ws)
            assert ready["type"] == "ready"

            ws.send_json({"type": "frame", "now": 0.0, "inference_ms": 8.0,
                          "observations": [CAR]})
            result = ws.receive_json()
            assert result["type"] == "frame_result"
            assert result["frame"] == 1
            assert [r["type"] for r in result["render"]] == [
                "draw_box", "draw_inference_time_label"]
            assert result["render"][0]["rect"]["width"] == pytest.approx(320.0)
            assert result["commands"] == [
                {"type": "show_visual_alert", "hold_seconds": 1.0},
                {"type": "play_audio", "cue": "alert"},
            ]

            ws.send_json({"type": "frame", "now": 0.1, "observations": [CAR]})
            assert ws.receive_json()["commands"] == []

    def test_signals_rearm_channels(self, client):
        """Signals from the client re-arm the matching channels."""
        with client.websocket_connect("/ws/session") as ws:
            start_session(ws)
            ws.send_json({"type": "frame", "now": 0.0, "observations": [CAR]})
            ws.receive_json()

            ws.send_json({"type": "visual_hold_elapsed"})
            assert ws.receive_json() == {"type": "commands",
                                         "commands": [{"type": "hide_visual_alert"}]}
            ws.send_json({"type": "playback_failed", "cue": "alert",
                          "reason": "decode error"})
            assert ws.receive_json()["commands"] == []

            ws.send_json({"type": "frame", "now": 0.2, "observations": [CAR]})
            assert len(ws.receive_json()["commands"]) == 2

    def test_alerts_logged(self, client):
        """Alerts from a session land in the history API."""
        with client.websocket_connect("/ws/session") as ws:
            start_session(ws)
            ws.send_json({"type": "frame", "now": 0.0, "observations": [CAR]})
            ws.receive_json()

        alerts = client.get("/api/alerts").json()
        assert len(alerts) == 1
        assert alerts[0]["kind"] == "proximity"
        assert client.get("/api/alert-stats").json()["total"] == 1

        assert client.delete("/api/alerts").json()["deleted"] == 1
        assert client.get("/api/alerts").json() == []

    def test_sessions_are_independent(self, client):
        """Each connection debounces on its own channel state."""
        with client.websocket_connect("/ws/session") as first:
            start_session(first)
            first.send_json({"type": "frame", "now": 0.0, "observations": [CAR]})
            assert first.receive_json()["commands"]

            with client.websocket_connect("/ws/session") as second:
                start_session(second)
                second.send_json({"type": "frame", "now": 0.0, "observations": [CAR]})
                assert second.receive_json()["commands"]
                assert client.get("/api/stats").json()["active_sessions"] == 2

    def test_malformed_messages(self, client):
        """Bad messages get an error reply and the session continues."""
        with client.websocket_connect("/ws/session") as ws:
            start_session(ws)
            ws.send_json({"type": "frame", "observations": []})
            assert ws.receive_json()["type"] == "error"
            ws.send_json({"type": "dance"})
            assert ws.receive_json()["type"] == "error"
            ws.send_json({"type": "playback_finished"})
            assert ws.receive_json()["type"] == "error"

            # Bad observations are dropped, the frame still renders
            ws.send_json({"type": "frame", "now": 1.0,
                          "observations": [{"labels": []}, CAR]})
            assert len(ws.receive_json()["render"]) == 1

    def test_non_object_observations_keep_session(self, client):
        """Observations that are not objects are dropped; the session survives."""
        with client.websocket_connect("/ws/session") as ws:
            start_session(ws)
            ws.send_json({"type": "frame", "now": 0.0,
                          "observations": ["oops", 5, [0.1], CAR]})
            result = ws.receive_json()
            assert result["type"] == "frame_result"
            assert len(result["render"]) == 1

            ws.send_json({"type": "frame", "now": 0.1, "observations": "oops"})
            result = ws.receive_json()
            assert result["render"] == []
            assert result["frame"] == 2

    def test_visual_channel_ignores_playback_signals(self, client):
        """Playback signals addressed to the tint do not hide it."""
        with client.websocket_connect("/ws/session") as ws:
            start_session(ws)
            ws.send_json({"type": "frame", "now": 0.0, "observations": [CAR]})
            ws.receive_json()

            ws.send_json({"type": "playback_finished", "cue": "visual"})
            assert ws.receive_json()["commands"] == []
            ws.send_json({"type": "visual_hold_elapsed"})
            assert ws.receive_json()["commands"] == [{"type": "hide_visual_alert"}]

    def test_zero_sized_frame_rejects_session(self, client):
        """A zero-sized frame refuses the session."""
        with client.websocket_connect("/ws/session") as ws:
            reply = start_session(ws, frame_width=0, frame_height=480)
            assert reply["type"] == "error"

    def test_first_message_must_be_start(self, client):
        """Anything before a start message is refused."""
        with client.websocket_connect("/ws/session") as ws:
            ws.send_json({"type": "frame", "now": 0.0})
            assert ws.receive_json()["type"] == "error"
