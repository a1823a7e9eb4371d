"""
End-to-end tests over the WebSocket route.

REST calls and WebSocket sessions share the TestClient event loop, so a
frame dispatched by a REST call is readable from the socket once the call
returns.
"""

import time
from contextlib import ExitStack

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from conftest import receive_event
from ws_gateway.main import create_app

API = "/api/websocket"


class TestRooms:
    """Room join notifications between clients."""

    def test_second_member_announced_to_first(self, client):
        with client.websocket_connect("/ws") as first:
            first_id = receive_event(first, "connected")["socketId"]
            first.send_json({"event": "join-room", "data": "lobby"})
            assert receive_event(first, "room-joined") == {"room": "lobby"}

            with client.websocket_connect("/ws") as second:
                second_id = receive_event(second, "connected")["socketId"]
                second.send_json({"event": "join-room", "data": "lobby"})
                assert receive_event(second, "room-joined") == {"room": "lobby"}

                assert receive_event(first, "user-joined") == {"socketId": second_id, "room": "lobby"}

                # The joiner is not told about itself
                second.send_json({"event": "ping", "data": None})
                assert second.receive_json()["event"] == "pong"

        assert first_id != second_id


class TestSubscriptions:
    """Typed subscriptions driven by the publish endpoint."""

    def test_publish_reaches_matching_subscribers_only(self, client):
        with client.websocket_connect("/ws") as ws_a, client.websocket_connect("/ws") as ws_b:
            receive_event(ws_a, "connected")
            receive_event(ws_b, "connected")

            ws_a.send_json({"event": "subscribe", "data": {"type": "sensor-data", "filters": {"location": "a", "floor": 1}}})
            ack = receive_event(ws_a, "subscribed")
            ws_b.send_json({"event": "subscribe", "data": {"type": "sensor-data", "filters": {"location": "b"}}})
            receive_event(ws_b, "subscribed")

            response = client.post(
                f"{API}/publish",
                json={"type": "sensor-data", "data": {"t": 22.5}, "filters": {"floor": 1, "location": "a"}},
            )
            update = receive_event(ws_a, "data-update")

            ws_b.send_json({"event": "ping", "data": None})
            next_for_b = ws_b.receive_json()

        assert ack["type"] == "sensor-data"
        assert ack["filters"] == {"location": "a", "floor": 1}
        assert ack["room"].startswith("sensor-data_")
        assert response.status_code == 200
        assert update["type"] == "sensor-data"
        assert update["data"] == {"t": 22.5}
        assert update["filters"] == {"floor": 1, "location": "a"}
        assert next_for_b["event"] == "pong"

    def test_invalid_subscribe_answers_error(self, client):
        with client.websocket_connect("/ws") as ws:
            receive_event(ws, "connected")
            ws.send_json({"event": "subscribe", "data": {"filters": {}}})
            assert receive_event(ws, "error") == {"message": "Failed to subscribe"}


class TestBroadcast:
    """REST broadcast to every connected client."""

    def test_broadcast_reaches_all_clients(self, client):
        with ExitStack() as stack:
            sockets = [stack.enter_context(client.websocket_connect("/ws")) for _ in range(3)]
            for ws in sockets:
                receive_event(ws, "connected")

            response = client.post(f"{API}/broadcast", json={"message": "hello"})
            payloads = [receive_event(ws, "broadcast") for ws in sockets]

        assert response.json()["data"]["clientCount"] == 3
        for payload in payloads:
            assert payload["data"]["message"] == "hello"
            assert payload["data"]["sentBy"] == "server"


class TestSessionEvents:
    """Authentication, heartbeats and session lifecycle."""

    def test_authenticate(self, client):
        with client.websocket_connect("/ws") as ws:
            socket_id = receive_event(ws, "connected")["socketId"]
            ws.send_json({"event": "authenticate", "data": {"username": "ana", "roles": ["admin"]}})
            result = receive_event(ws, "authenticated")

            clients = client.get(f"{API}/clients").json()["data"]["clients"]

        assert result == {"success": True, "user": {"id": socket_id, "username": "ana", "roles": ["admin"]}}
        assert clients[0]["username"] == "ana"

    def test_plain_text_ping(self, client):
        with client.websocket_connect("/ws") as ws:
            receive_event(ws, "connected")
            ws.send_text("ping")
            assert ws.receive_json() == {"event": "pong"}

    def test_ping_event_echo(self, client):
        with client.websocket_connect("/ws") as ws:
            receive_event(ws, "connected")
            ws.send_json({"event": "ping", "data": "hello"})
            assert receive_event(ws, "pong")["echo"] == "hello"

    def test_unknown_event(self, client):
        with client.websocket_connect("/ws") as ws:
            receive_event(ws, "connected")
            ws.send_json({"event": "teleport", "data": {}})
            assert receive_event(ws, "error") == {"message": "Unknown event: teleport"}

    def test_forced_disconnect_closes_socket(self, client):
        with client.websocket_connect("/ws") as ws:
            socket_id = receive_event(ws, "connected")["socketId"]
            client.post(f"{API}/clients/{socket_id}/disconnect", json={"reason": "bye"})

            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()

        assert exc_info.value.code == 1000

    def test_registry_empty_after_client_leaves(self, client):
        with client.websocket_connect("/ws") as ws:
            receive_event(ws, "connected")
            ws.send_json({"event": "join-room", "data": "lobby"})
            receive_event(ws, "room-joined")

        assert client.get(f"{API}/clients").json()["data"]["count"] == 0
        assert client.get(f"{API}/rooms/lobby/clients").json()["data"]["count"] == 0

    def test_disallowed_origin_rejected(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws", headers={"origin": "http://evil.example"}):
                pass

        assert exc_info.value.code == 4003


class TestIdleConnections:
    """Listen-only clients and the opt-in idle timeout."""

    def test_listen_only_subscriber_outlives_ping_timeout(self, test_settings):
        cfg = test_settings.model_copy(update={"ws_ping_interval": 0.1, "ws_ping_timeout": 0.2})

        with TestClient(create_app(cfg)) as client:
            with client.websocket_connect("/ws") as ws:
                receive_event(ws, "connected")
                ws.send_json({"event": "subscribe", "data": {"type": "sensor-data", "filters": {"location": "a"}}})
                receive_event(ws, "subscribed")

                time.sleep(0.5)

                assert client.get(f"{API}/clients").json()["data"]["count"] == 1
                client.post(f"{API}/publish", json={"type": "sensor-data", "data": {"t": 1}, "filters": {"location": "a"}})
                assert receive_event(ws, "data-update")["data"] == {"t": 1}

    def test_idle_timeout_closes_silent_client(self, test_settings):
        cfg = test_settings.model_copy(update={"ws_idle_timeout": 0.2})

        with TestClient(create_app(cfg)) as client:
            with client.websocket_connect("/ws") as ws:
                receive_event(ws, "connected")

                with pytest.raises(WebSocketDisconnect) as exc_info:
                    ws.receive_json()

            assert exc_info.value.code == 4008
            assert client.get(f"{API}/clients").json()["data"]["count"] == 0
