"""
Subscription Router.

A typed subscription ``(type, filters)`` is an ordinary room whose name is
derived deterministically from its arguments, so subscribers and publishers
that use equal filters always meet in the same room regardless of key order.
"""

from __future__ import annotations

import json
from typing import Any, Mapping, TYPE_CHECKING

from shared.config.logging import get_logger
from ws_gateway.components.connection.transport import send_frame
from ws_gateway.components.core.constants import ServerEvent
from ws_gateway.components.events.types import Envelope

if TYPE_CHECKING:
    from ws_gateway.components.rooms.manager import RoomManager

logger = get_logger(__name__)


def canonical_filters(filters: Mapping[str, Any] | None) -> str:
    """
    Serialize filters with sorted keys at every nesting level.

    Raises:
        ValueError: If filters is not a mapping or is not JSON-serializable.
    """
    if filters is None:
        filters = {}
    if not isinstance(filters, Mapping):
        raise ValueError("Subscription filters must be an object")
    try:
        return json.dumps(filters, sort_keys=True, separators=(",", ":"))
    except TypeError as e:
        raise ValueError(f"Subscription filters are not serializable: {e}") from e


def subscription_key(type_: str, filters: Mapping[str, Any] | None = None) -> str:
    """
    Room name for a typed subscription: ``"{type}_{canonical filters}"``.

    ``None`` filters are treated as ``{}``.

    Raises:
        ValueError: If type is not a non-empty string or filters is invalid.
    """
    if not isinstance(type_, str) or not type_:
        raise ValueError("Subscription type must be a non-empty string")
    return f"{type_}_{canonical_filters(filters)}"


class SubscriptionRouter:
    """Maps typed subscriptions onto rooms."""

    subscription_key = staticmethod(subscription_key)

    def __init__(self, rooms: "RoomManager") -> None:
        self._rooms = rooms

    def subscribe(
        self,
        connection_id: str,
        type_: str,
        filters: Mapping[str, Any] | None = None,
    ) -> str:
        """
        Join the subscription room and acknowledge with ``subscribed``.

        Room-join notifications are not sent for subscription channels.

        Returns:
            The subscription room name.
        """
        room = subscription_key(type_, filters)
        filters = dict(filters or {})
        self._rooms.join(connection_id, room, notify=False)
        self._ack(connection_id, ServerEvent.SUBSCRIBED, {"type": type_, "filters": filters, "room": room})
        logger.info("Client subscribed", connection_id=connection_id, type=type_)
        return room

    def unsubscribe(
        self,
        connection_id: str,
        type_: str,
        filters: Mapping[str, Any] | None = None,
    ) -> str:
        """Leave the subscription room and acknowledge with ``unsubscribed``."""
        room = subscription_key(type_, filters)
        filters = dict(filters or {})
        self._rooms.leave(connection_id, room, notify=False)
        self._ack(connection_id, ServerEvent.UNSUBSCRIBED, {"type": type_, "filters": filters})
        logger.info("Client unsubscribed", connection_id=connection_id, type=type_)
        return room

    def publish(self, type_: str, data: Any, filters: Mapping[str, Any] | None = None) -> int:
        """
        Deliver a ``data-update`` to the subscribers of ``(type, filters)``.

        Returns:
            Number of subscribers the update was handed to.
        """
        room = subscription_key(type_, filters)
        delivered = self._rooms.deliver(room, Envelope.data_update(type_, data, filters or {}))
        logger.debug("Published data update", type=type_, recipients=delivered)
        return delivered

    def _ack(self, connection_id: str, event: ServerEvent, payload: dict[str, Any]) -> None:
        connection = self._rooms.registry.get(connection_id)
        if connection is None:
            return
        send_frame(connection.transport, Envelope.system(event, payload).to_frame(), connection_id)
