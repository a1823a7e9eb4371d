"""
Tests for client event parsing and routing.

Tests verify:
- Every client event name has a handler
- Malformed frames are answered with error events, never exceptions
- message routing by type
"""

import json

import pytest

from ws_gateway.components.events.router import ClientEventRouter
from ws_gateway.components.events.types import (
    ClientEventName,
    InvalidClientEvent,
    JoinRoom,
    Subscribe,
    parse_client_event,
)


def frame(event, data=None) -> str:
    return json.dumps({"event": event, "data": data})


@pytest.fixture
def router_for(manager):
    def _router(connection_id):
        return ClientEventRouter(connection_id, manager)
    return _router


class TestParseClientEvent:
    """Tests for parse_client_event()."""

    def test_join_room(self):
        assert parse_client_event(frame("join-room", "lobby")) == JoinRoom(room="lobby")

    def test_subscribe_defaults_filters(self):
        event = parse_client_event(frame("subscribe", {"type": "prices"}))
        assert event == Subscribe(type="prices", filters={})

    def test_not_json(self):
        with pytest.raises(InvalidClientEvent) as exc_info:
            parse_client_event("{not json")
        assert exc_info.value.event is None

    def test_unknown_event(self):
        with pytest.raises(InvalidClientEvent, match="Unknown event"):
            parse_client_event(frame("teleport", {}))

    def test_invalid_payload_keeps_event_name(self):
        with pytest.raises(InvalidClientEvent) as exc_info:
            parse_client_event(frame("subscribe", {"filters": {}}))
        assert exc_info.value.event is ClientEventName.SUBSCRIBE

    def test_room_name_must_be_string(self):
        with pytest.raises(InvalidClientEvent):
            parse_client_event(frame("join-room", {"room": "lobby"}))


class TestClientEventRouter:
    """Tests for ClientEventRouter dispatching."""

    def test_handler_table_is_exhaustive(self, router_for, connect):
        x, _ = connect()
        router = router_for(x)
        assert set(router._handlers) == set(ClientEventName)

    def test_authenticate(self, manager, router_for, connect):
        x, tx = connect()

        router_for(x).handle(frame("authenticate", {"username": "ana", "roles": ["viewer"]}))

        assert tx.data_for("authenticated") == [
            {"success": True, "user": {"id": x, "username": "ana", "roles": ["viewer"]}}
        ]
        assert manager.registry.get(x).username == "ana"

    def test_authenticate_failure(self, router_for, connect):
        x, tx = connect()

        router_for(x).handle(frame("authenticate", {"roles": "admin"}))

        assert tx.data_for("authenticated") == [{"success": False, "error": "Authentication failed"}]

    def test_invalid_subscribe_answers_error(self, manager, router_for, connect):
        x, tx = connect()

        handled = router_for(x).handle(frame("subscribe", "not-an-object"))

        assert handled is False
        assert tx.data_for("error") == [{"message": "Failed to subscribe"}]
        assert manager.registry.get(x).rooms == set()
        assert manager.metrics.get_snapshot()["events_rejected"] == 1

    def test_malformed_frame_answers_error(self, router_for, connect):
        x, tx = connect()

        router_for(x).handle("definitely not json")

        assert tx.data_for("error") == [{"message": "Invalid message format"}]

    def test_join_and_leave(self, manager, router_for, connect):
        x, tx = connect()
        router = router_for(x)

        router.handle(frame("join-room", "lobby"))
        assert manager.rooms.members_of("lobby") == frozenset({x})

        router.handle(frame("leave-room", "lobby"))
        assert manager.rooms.members_of("lobby") == frozenset()
        assert tx.events()[-2:] == ["room-joined", "room-left"]

    def test_message_broadcast(self, router_for, connect):
        x, _ = connect()
        _, ty = connect()

        router_for(x).handle(frame("message", {"type": "broadcast", "data": {"t": 1}}))

        assert ty.data_for("broadcast")[0]["data"] == {"t": 1}

    def test_message_to_room(self, manager, router_for, connect):
        x, _ = connect()
        y, ty = connect()
        manager.rooms.join(y, "ops")

        router_for(x).handle(frame("message", {"type": "room-message", "data": {"room": "ops", "text": "hi"}}))

        payload = ty.data_for("room-message")[0]
        assert payload["room"] == "ops"
        assert payload["data"]["type"] == "room-message"
        assert payload["data"]["userId"] == x
        assert payload["data"]["data"] == {"room": "ops", "text": "hi"}

    def test_message_to_room_without_room_fails(self, router_for, connect):
        x, tx = connect()

        router_for(x).handle(frame("message", {"type": "room-message", "data": {}}))

        assert tx.data_for("error") == [{"message": "Failed to handle message"}]

    def test_other_message_types_only_logged(self, router_for, connect):
        x, tx = connect()
        _, ty = connect()
        tx.clear()
        ty.clear()

        assert router_for(x).handle(frame("message", {"type": "chat", "data": "hello"})) is True
        assert tx.events() == []
        assert ty.events() == []

    def test_ping_echoes(self, router_for, connect):
        x, tx = connect()

        router_for(x).handle(frame("ping", {"n": 7}))

        pong = tx.data_for("pong")[0]
        assert pong["echo"] == {"n": 7}
        assert isinstance(pong["timestamp"], int)
