"""
Connection Registry for WebSocket Gateway.

Owns every connection record and all room membership. Rooms are implicit:
they exist only as ``room name -> set of connection ids`` and a room whose
last member leaves is deleted immediately.

All methods are synchronous and run on the event loop, so each mutation
completes before the next one starts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, TypedDict, TYPE_CHECKING

from shared.config.logging import get_logger
from ws_gateway.components.connection.transport import TransportError
from ws_gateway.components.core.constants import ServerEvent, now_ms, utc_iso

if TYPE_CHECKING:
    from ws_gateway.components.connection.transport import Transport

logger = get_logger(__name__)


class ConnectionNotFoundError(LookupError):
    """An operation addressed a connection id that is not registered."""

    def __init__(self, connection_id: str):
        super().__init__(f"Connection not found: {connection_id}")
        self.connection_id = connection_id


@dataclass(frozen=True)
class Identity:
    """Self-declared identity attached by the authenticate event."""

    username: str
    roles: tuple[str, ...] = ()


class SafeIdentity(TypedDict):
    """Identity as echoed back to clients and the control surface."""

    id: str
    username: str
    roles: list[str]


@dataclass(eq=False)
class Connection:
    """One live transport session."""

    id: str
    transport: "Transport"
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    identity: Identity | None = None
    rooms: set[str] = field(default_factory=set)

    @property
    def username(self) -> str | None:
        return self.identity.username if self.identity else None

    @property
    def roles(self) -> list[str]:
        return list(self.identity.roles) if self.identity else []

    def safe_identity(self) -> SafeIdentity:
        return {"id": self.id, "username": self.username or "", "roles": self.roles}

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the control surface client listing."""
        return {
            "id": self.id,
            "username": self.username,
            "roles": self.roles,
            "connectedAt": utc_iso(self.connected_at),
        }


class ConnectionRegistry:
    """
    Registry of live connections and their room memberships.

    Usage:
        registry = ConnectionRegistry()
        connection = registry.register(connection_id, transport)
        registry.add_membership(connection_id, "lobby")
        ...
        registry.remove(connection_id)
    """

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        self._rooms: dict[str, set[str]] = {}

    # =========================================================================
    # Connection records
    # =========================================================================

    def register(self, connection_id: str, transport: "Transport") -> Connection:
        """
        Record a new connection and greet it.

        Args:
            connection_id: Unique id assigned by the endpoint.
            transport: Outbound side of the session.

        Returns:
            The new Connection.

        Raises:
            ValueError: If the id is already registered.
        """
        if connection_id in self._connections:
            raise ValueError(f"Connection already registered: {connection_id}")

        connection = Connection(id=connection_id, transport=transport)
        self._connections[connection_id] = connection

        try:
            transport.send({
                "event": ServerEvent.CONNECTED.value,
                "data": {
                    "message": "Connected to WebSocket server",
                    "socketId": connection_id,
                    "timestamp": now_ms(),
                },
            })
        except TransportError as e:
            logger.warning("Failed to send connected acknowledgement", connection_id=connection_id, error=str(e))

        logger.info("Client connected", connection_id=connection_id, total=len(self._connections))
        return connection

    def authenticate(self, connection_id: str, identity: Identity) -> SafeIdentity | None:
        """
        Attach a self-declared identity. No credential check is performed.

        Returns:
            The identity as shown to clients, or None if the id is unknown.
        """
        connection = self._connections.get(connection_id)
        if connection is None:
            return None
        connection.identity = identity
        logger.info("Client authenticated", connection_id=connection_id, username=identity.username)
        return connection.safe_identity()

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def list(self) -> list[Connection]:
        """All live connections in registration order."""
        return list(self._connections.values())

    def count(self) -> int:
        return len(self._connections)

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self._connections

    def remove(self, connection_id: str) -> Connection | None:
        """
        Drop a connection and every room membership it held.

        Idempotent: removing an unknown id returns None and changes nothing.
        """
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return None

        for room in list(connection.rooms):
            self._discard_member(room, connection_id)

        logger.info(
            "Client removed",
            connection_id=connection_id,
            rooms=len(connection.rooms),
            total=len(self._connections),
        )
        return connection

    # =========================================================================
    # Room membership
    # =========================================================================

    def add_membership(self, connection_id: str, room: str) -> bool:
        """
        Add a connection to a room.

        Returns:
            True if membership changed, False if already a member or unknown id.
        """
        connection = self._connections.get(connection_id)
        if connection is None or room in connection.rooms:
            return False
        connection.rooms.add(room)
        self._rooms.setdefault(room, set()).add(connection_id)
        return True

    def drop_membership(self, connection_id: str, room: str) -> bool:
        """
        Remove a connection from a room.

        Returns:
            True if membership changed, False if it was not a member.
        """
        connection = self._connections.get(connection_id)
        if connection is None or room not in connection.rooms:
            return False
        connection.rooms.discard(room)
        self._discard_member(room, connection_id)
        return True

    def members_of(self, room: str) -> frozenset[str]:
        """Snapshot of a room's members. Unknown rooms are empty."""
        return frozenset(self._rooms.get(room, ()))

    def rooms(self) -> list[str]:
        """Names of all non-empty rooms."""
        return list(self._rooms)

    def _discard_member(self, room: str, connection_id: str) -> None:
        members = self._rooms.get(room)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self._rooms[room]

    def get_stats(self) -> dict[str, int]:
        return {
            "connected_clients": len(self._connections),
            "rooms": len(self._rooms),
            "authenticated_clients": sum(1 for c in self._connections.values() if c.identity),
        }
