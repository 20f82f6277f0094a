"""
Tests for the /osc WebSocket route and the HTTP endpoints.

The app runs with ``get_bridge`` overridden by the ``bridge`` fixture: a mock
translator plus a real registry, dispatcher and broker whose FX files live
in a temp dir and are answered by a ScriptedHost.  The lifespan is not
entered, so no UDP socket is bound.
"""

import pytest
from fastapi.testclient import TestClient

from api.deps import get_bridge
from api.main import app
from core.mixer.types import ControlMessage


@pytest.fixture()
def client(bridge):
    app.dependency_overrides[get_bridge] = lambda: bridge
    yield TestClient(app)
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# WebSocket
# ---------------------------------------------------------------------------


class TestOscSocket:
    def test_connect_triggers_full_refresh(self, client, bridge) -> None:
        with client.websocket_connect("/osc"):
            pass
        bridge.translator.full_refresh.assert_called_once_with()

    def test_disconnect_unregisters(self, client, bridge) -> None:
        with client.websocket_connect("/osc"):
            pass
        assert len(bridge.registry) == 0

    def test_fx_read_result_broadcast(self, client, bridge) -> None:
        bridge.host.responses["R,1"] = "P,1,2,3,0.5\nE,1,2,0\n"
        with client.websocket_connect("/osc") as ws:
            ws.send_json({"type": "fxRead", "trackIdx": 1})
            data = ws.receive_json()
        assert data == {
            "type": "fxValues",
            "trackIdx": 1,
            "params": [{"fxIdx": 2, "paramIdx": 3, "value": 0.5}],
            "bypassed": {"2": True},
        }

    def test_sends_read_all_broadcast(self, client, bridge) -> None:
        bridge.host.responses["SENDS"] = "S,1,0,0.8\nS,2,0,1.0\n"
        with client.websocket_connect("/osc") as ws:
            ws.send_json({"type": "sendsReadAll"})
            data = ws.receive_json()
        assert data == {
            "type": "allSendValues",
            "tracks": {"1": [{"sendIdx": 0, "vol": 0.8}], "2": [{"sendIdx": 0, "vol": 1.0}]},
        }

    def test_osc_message_relayed(self, client, bridge) -> None:
        bridge.host.responses["SENDS"] = "S,1,0,0.8\n"
        with client.websocket_connect("/osc") as ws:
            ws.send_json({"type": "osc", "address": "/track/1/mute", "args": [1]})
            ws.send_json({"type": "sendsReadAll"})
            ws.receive_json()
        bridge.translator.send.assert_called_once_with(ControlMessage("/track/1/mute", (1,)))

    def test_invalid_messages_keep_connection_open(self, client, bridge) -> None:
        bridge.host.responses["SENDS"] = "S,3,1,0.4\n"
        with client.websocket_connect("/osc") as ws:
            ws.send_text("not json")
            ws.send_json({"type": "volume", "trackIdx": 1})
            ws.send_json({"type": "fxRead"})
            ws.send_json({"type": "sendsReadAll"})
            data = ws.receive_json()
        assert data["tracks"] == {"3": [{"sendIdx": 1, "vol": 0.4}]}

    def test_fx_write_appends_command(self, client, bridge) -> None:
        bridge.host.responses["SENDS"] = "S,1,0,0.8\n"
        with client.websocket_connect("/osc") as ws:
            ws.send_json({"type": "fx", "trackIdx": 3, "fxIdx": 1, "paramIdx": 4, "value": 1.0})
            ws.send_json({"type": "sendsReadAll"})
            ws.receive_json()
        assert bridge.broker._channel.command_path.read_text() == "3,1,4,1\nSENDS\n"


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


class TestHttpEndpoints:
    def test_health(self, client) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {
            "status": "ok",
            "clients": 0,
            "osc_listening": False,
            "fx_busy": False,
        }

    def test_health_counts_clients(self, client, bridge) -> None:
        bridge.host.responses["SENDS"] = "S,1,0,0.8\n"
        with client.websocket_connect("/osc") as ws:
            ws.send_json({"type": "sendsReadAll"})
            ws.receive_json()
            assert client.get("/health").json()["clients"] == 1

    def test_metrics(self, client) -> None:
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]
        assert "mixer_fx_requests_total" in response.text


class TestLifespan:
    def test_listener_started_and_stopped(self, bridge) -> None:
        app.dependency_overrides[get_bridge] = lambda: bridge
        try:
            with TestClient(app):
                bridge.translator.start.assert_awaited_once()
                bridge.translator.stop.assert_not_called()
        finally:
            app.dependency_overrides.clear()
        bridge.translator.stop.assert_called_once_with()
