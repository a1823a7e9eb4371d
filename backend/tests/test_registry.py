"""
Tests for the connection registry.

Tests verify:
- Registration greets the connection and rejects duplicate ids
- Authentication attaches a self-declared identity
- Removal cleans every room and is idempotent
"""

import re

import pytest

from conftest import FakeTransport
from ws_gateway.components.connection.registry import ConnectionRegistry, Identity


class TestRegister:
    """Tests for register()."""

    def test_register_sends_connected_ack(self):
        registry = ConnectionRegistry()
        transport = FakeTransport()

        connection = registry.register("abc", transport)

        assert connection.id == "abc"
        assert connection.identity is None
        assert connection.rooms == set()
        assert transport.events() == ["connected"]
        ack = transport.data_for("connected")[0]
        assert ack["socketId"] == "abc"
        assert isinstance(ack["timestamp"], int)

    def test_duplicate_id_rejected(self):
        registry = ConnectionRegistry()
        registry.register("abc", FakeTransport())

        with pytest.raises(ValueError):
            registry.register("abc", FakeTransport())

        assert registry.count() == 1

    def test_register_survives_failing_transport(self):
        registry = ConnectionRegistry()

        registry.register("abc", FakeTransport(fail=True))

        assert registry.is_connected("abc")

    def test_list_preserves_registration_order(self):
        registry = ConnectionRegistry()
        for cid in ("c", "a", "b"):
            registry.register(cid, FakeTransport())

        assert [c.id for c in registry.list()] == ["c", "a", "b"]


class TestAuthenticate:
    """Tests for authenticate()."""

    def test_attaches_identity(self):
        registry = ConnectionRegistry()
        registry.register("abc", FakeTransport())

        user = registry.authenticate("abc", Identity(username="ana", roles=("admin",)))

        assert user == {"id": "abc", "username": "ana", "roles": ["admin"]}
        assert registry.get("abc").to_dict()["username"] == "ana"

    def test_unknown_id_is_noop(self):
        registry = ConnectionRegistry()

        assert registry.authenticate("missing", Identity(username="ana")) is None

    def test_connected_at_serialized_as_utc_iso(self):
        registry = ConnectionRegistry()
        registry.register("abc", FakeTransport())

        connected_at = registry.get("abc").to_dict()["connectedAt"]

        assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d\.\d{3}Z", connected_at)


class TestMembershipAndRemoval:
    """Tests for membership primitives and remove()."""

    def test_membership_changes_reported(self):
        registry = ConnectionRegistry()
        registry.register("abc", FakeTransport())

        assert registry.add_membership("abc", "lobby") is True
        assert registry.add_membership("abc", "lobby") is False
        assert registry.members_of("lobby") == frozenset({"abc"})
        assert registry.drop_membership("abc", "lobby") is True
        assert registry.drop_membership("abc", "lobby") is False

    def test_empty_room_deleted(self):
        registry = ConnectionRegistry()
        registry.register("abc", FakeTransport())
        registry.add_membership("abc", "lobby")

        registry.drop_membership("abc", "lobby")

        assert "lobby" not in registry.rooms()
        assert registry.members_of("lobby") == frozenset()

    def test_unknown_id_cannot_join(self):
        registry = ConnectionRegistry()

        assert registry.add_membership("ghost", "lobby") is False
        assert registry.rooms() == []

    def test_remove_clears_every_room(self):
        registry = ConnectionRegistry()
        registry.register("x", FakeTransport())
        registry.register("y", FakeTransport())
        for room in ("r1", "r2", "r3"):
            registry.add_membership("x", room)
        registry.add_membership("y", "r2")

        removed = registry.remove("x")

        assert removed.id == "x"
        assert not registry.is_connected("x")
        assert registry.rooms() == ["r2"]
        for room in ("r1", "r2", "r3"):
            assert "x" not in registry.members_of(room)

    def test_remove_is_idempotent(self):
        registry = ConnectionRegistry()
        registry.register("x", FakeTransport())
        registry.add_membership("x", "lobby")

        registry.remove("x")
        rooms_after_first = registry.rooms()

        assert registry.remove("x") is None
        assert registry.rooms() == rooms_after_first
        assert registry.count() == 0
