"""
Room/Channel Manager.

Join and leave semantics on top of the registry's membership primitives,
with peer notifications, and room-scoped delivery.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from shared.config.logging import get_logger
from ws_gateway.components.connection.transport import send_frame
from ws_gateway.components.core.constants import ServerEvent
from ws_gateway.components.core.context import sanitize_log_data
from ws_gateway.components.events.types import Envelope

if TYPE_CHECKING:
    from ws_gateway.components.connection.registry import ConnectionRegistry

logger = get_logger(__name__)


class RoomManager:
    """
    Manages room membership with notifications.

    A member is never notified about its own join or leave through the
    ``user-joined`` / ``user-left`` events; it gets ``room-joined`` /
    ``room-left`` instead.
    """

    def __init__(self, registry: "ConnectionRegistry") -> None:
        self._registry = registry

    @property
    def registry(self) -> "ConnectionRegistry":
        return self._registry

    def join(self, connection_id: str, room: str, notify: bool = True) -> bool:
        """
        Add a connection to a room.

        Args:
            connection_id: The joining connection.
            room: Room name.
            notify: Send ``room-joined`` / ``user-joined``. Subscription
                channels join silently.

        Returns:
            True if membership changed. Unknown ids and re-joins return False;
            a re-join is still acknowledged with ``room-joined``.
        """
        connection = self._registry.get(connection_id)
        if connection is None:
            logger.warning(
                "Join for unknown connection ignored",
                connection_id=connection_id,
                room=sanitize_log_data(room),
            )
            return False

        existing = self._registry.members_of(room)
        changed = self._registry.add_membership(connection_id, room)

        if notify:
            send_frame(
                connection.transport,
                Envelope.system(ServerEvent.ROOM_JOINED, {"room": room}).to_frame(),
                connection_id,
            )
            if changed:
                self._notify_members(
                    existing,
                    Envelope.system(ServerEvent.USER_JOINED, {"socketId": connection_id, "room": room}),
                )

        if changed:
            logger.info("Client joined room", connection_id=connection_id, room=sanitize_log_data(room))
        return changed

    def leave(self, connection_id: str, room: str, notify: bool = True) -> bool:
        """
        Remove a connection from a room.

        The leaver always gets ``room-left``; remaining members get
        ``user-left`` only if the connection actually was a member.

        Returns:
            True if membership changed.
        """
        connection = self._registry.get(connection_id)
        if connection is None:
            return False

        changed = self._registry.drop_membership(connection_id, room)

        if notify:
            send_frame(
                connection.transport,
                Envelope.system(ServerEvent.ROOM_LEFT, {"room": room}).to_frame(),
                connection_id,
            )
            if changed:
                self._notify_members(
                    self._registry.members_of(room),
                    Envelope.system(ServerEvent.USER_LEFT, {"socketId": connection_id, "room": room}),
                )

        if changed:
            logger.info("Client left room", connection_id=connection_id, room=sanitize_log_data(room))
        return changed

    def members_of(self, room: str) -> frozenset[str]:
        return self._registry.members_of(room)

    def deliver(self, room: str, envelope: Envelope) -> int:
        """
        Send an envelope to every current member of a room.

        Returns:
            Number of members the frame was handed to. An empty or unknown
            room delivers to nobody and returns 0.
        """
        return self._notify_members(self._registry.members_of(room), envelope)

    def _notify_members(self, members: frozenset[str], envelope: Envelope) -> int:
        frame = envelope.to_frame()
        delivered = 0
        for member_id in members:
            member = self._registry.get(member_id)
            if member is None:
                continue
            if send_frame(member.transport, frame, member_id):
                delivered += 1
        return delivered
