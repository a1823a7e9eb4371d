"""
Dispatch API.

Single choke point for every delivery path: socket event handlers, the REST
control surface and internal timers all send through a Dispatcher, so
envelope shape, logging and metrics are the same regardless of the caller.

Transport writes are fire-and-forget. A failing recipient is logged and
counted, and never stops delivery to the others.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, TYPE_CHECKING

from shared.config.logging import get_logger
from ws_gateway.components.connection.registry import ConnectionNotFoundError
from ws_gateway.components.connection.transport import send_frame
from ws_gateway.components.core.constants import (
    DEFAULT_DISCONNECT_REASON,
    ServerEvent,
    WSCloseCode,
)
from ws_gateway.components.core.context import sanitize_log_data
from ws_gateway.components.events.types import Envelope
from ws_gateway.components.rooms.subscriptions import subscription_key

if TYPE_CHECKING:
    from ws_gateway.components.connection.registry import ConnectionRegistry
    from ws_gateway.components.metrics.collector import MetricsCollector
    from ws_gateway.components.rooms.manager import RoomManager
    from ws_gateway.components.rooms.subscriptions import SubscriptionRouter

logger = get_logger(__name__)

# RFC 6455 limits the close reason to 123 bytes
MAX_CLOSE_REASON_BYTES = 123


def truncate_close_reason(reason: str) -> str:
    """Trim a close reason to the size a close frame can carry."""
    encoded = reason.encode("utf-8")
    if len(encoded) <= MAX_CLOSE_REASON_BYTES:
        return reason
    return encoded[:MAX_CLOSE_REASON_BYTES].decode("utf-8", errors="ignore")


class Dispatcher:
    """
    Delivers envelopes to connections, rooms and subscribers.

    Args:
        registry: Connection registry (read-only here).
        rooms: Room manager used for room-scoped delivery.
        subscriptions: Subscription router used for typed publishes.
        metrics: Collector for delivery counters.
        release_callback: Called with ``(connection_id, reason)`` to run the
            disconnect cascade after a forced disconnect.
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        rooms: "RoomManager",
        subscriptions: "SubscriptionRouter",
        metrics: "MetricsCollector",
        release_callback: Callable[[str, str], Any],
    ) -> None:
        self._registry = registry
        self._rooms = rooms
        self._subscriptions = subscriptions
        self._metrics = metrics
        self._release = release_callback

    # =========================================================================
    # Delivery
    # =========================================================================

    def broadcast_all(self, payload: Any, sender_id: str | None = None) -> int:
        """
        Send ``broadcast {data, timestamp}`` to every registered connection.

        Returns:
            Number of connections the frame was handed to.
        """
        frame = Envelope.broadcast(payload, sender_id).to_frame()
        delivered = 0
        failed = 0
        for connection in self._registry.list():
            if send_frame(connection.transport, frame, connection.id):
                delivered += 1
            else:
                failed += 1

        self._metrics.record_delivery("broadcasts", delivered, failed)
        logger.info("Broadcast sent", recipients=delivered, failed=failed, sender_id=sender_id)
        return delivered

    def send_to_room(self, room: str, payload: Any, sender_id: str | None = None) -> int:
        """
        Send ``room-message {room, data, timestamp}`` to a room's members.

        Returns:
            Number of members the frame was handed to; 0 for an empty room.
        """
        members = self._rooms.members_of(room)
        delivered = self._rooms.deliver(room, Envelope.room_message(room, payload, sender_id))

        self._metrics.record_delivery("room_messages", delivered, len(members) - delivered)
        logger.info(
            "Room message sent",
            room=sanitize_log_data(room),
            recipients=delivered,
            sender_id=sender_id,
        )
        return delivered

    def send_to_connection(self, connection_id: str, payload: Any, sender_id: str | None = None) -> None:
        """
        Send ``direct-message {data, timestamp}`` to one connection.

        Raises:
            ConnectionNotFoundError: If the id is not registered.
        """
        connection = self._registry.get(connection_id)
        if connection is None:
            raise ConnectionNotFoundError(connection_id)

        ok = send_frame(
            connection.transport,
            Envelope.direct_message(payload, sender_id).to_frame(),
            connection_id,
        )
        self._metrics.record_delivery("direct_messages", int(ok), int(not ok))
        logger.info("Direct message sent", connection_id=connection_id, delivered=ok, sender_id=sender_id)

    def publish_typed(self, type_: str, data: Any, filters: Mapping[str, Any] | None = None) -> int:
        """
        Send ``data-update`` to the subscribers of ``(type, filters)``.

        Raises:
            ValueError: If type or filters are invalid.

        Returns:
            Number of subscribers the update was handed to.
        """
        members = self._rooms.members_of(subscription_key(type_, filters))
        delivered = self._subscriptions.publish(type_, data, filters)
        self._metrics.record_delivery("publishes", delivered, len(members) - delivered)
        logger.info("Data published", type=sanitize_log_data(type_), recipients=delivered)
        return delivered

    def emit(self, connection_id: str, event: ServerEvent | str, payload: Any) -> bool:
        """
        Send a system event to one connection (acks, pong, errors).

        Returns:
            True if the frame was handed to the transport, False if the
            connection is unknown or its transport rejected the frame.
        """
        connection = self._registry.get(connection_id)
        if connection is None:
            return False
        return send_frame(connection.transport, Envelope.system(event, payload).to_frame(), connection_id)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def disconnect(
        self,
        connection_id: str,
        reason: str | None = None,
        code: int = WSCloseCode.NORMAL,
    ) -> str:
        """
        Force-close a connection and run the disconnect cascade immediately.

        The transport is closed with ``code`` (1000 unless given) and the
        connection leaves every room before this returns, so no later delivery reaches it.

        Returns:
            The effective reason.

        Raises:
            ConnectionNotFoundError: If the id is not registered.
        """
        connection = self._registry.get(connection_id)
        if connection is None:
            raise ConnectionNotFoundError(connection_id)

        effective_reason = reason or DEFAULT_DISCONNECT_REASON
        try:
            connection.transport.close(code, truncate_close_reason(effective_reason))
        except Exception as e:
            logger.warning("Error closing transport", connection_id=connection_id, error=str(e))

        self._metrics.increment_forced_disconnects()
        self._release(connection_id, effective_reason)
        logger.info(
            "Client disconnected by server",
            connection_id=connection_id,
            reason=sanitize_log_data(effective_reason),
        )
        return effective_reason
