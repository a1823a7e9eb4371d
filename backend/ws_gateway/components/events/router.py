"""
Client Event Router - handles inbound events for one connection.

Parses each text frame into a client event and dispatches it through a
handler table keyed by ``ClientEventName``. The table is checked for
exhaustiveness when the router is built, so adding an event name without a
handler fails at the first connection instead of silently dropping frames.

No handler lets an exception reach the transport: failures are answered
with an ``error {message}`` frame.

Usage:
    router = ClientEventRouter(connection_id, manager, context)
    router.handle(text)
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, TYPE_CHECKING

from shared.config.logging import get_logger
from ws_gateway.components.connection.registry import Identity
from ws_gateway.components.core.constants import ServerEvent, now_ms
from ws_gateway.components.core.context import sanitize_log_data
from ws_gateway.components.events.types import (
    Authenticate,
    ClientEvent,
    ClientEventName,
    ClientMessage,
    InvalidClientEvent,
    JoinRoom,
    LeaveRoom,
    Ping,
    Subscribe,
    Unsubscribe,
    parse_client_event,
)

if TYPE_CHECKING:
    from ws_gateway.components.core.context import WebSocketContext
    from ws_gateway.connection_manager import ConnectionManager

logger = get_logger(__name__)

# Error text sent to the client when handling an event fails
FAILURE_MESSAGES: dict[ClientEventName, str] = {
    ClientEventName.AUTHENTICATE: "Authentication failed",
    ClientEventName.JOIN_ROOM: "Failed to join room",
    ClientEventName.LEAVE_ROOM: "Failed to leave room",
    ClientEventName.MESSAGE: "Failed to handle message",
    ClientEventName.SUBSCRIBE: "Failed to subscribe",
    ClientEventName.UNSUBSCRIBE: "Failed to unsubscribe",
    ClientEventName.PING: "Failed to handle ping",
}

# Message types with server-side routing; anything else is accepted and logged
MESSAGE_TYPE_BROADCAST = "broadcast"
MESSAGE_TYPE_ROOM = "room-message"


class ClientEventRouter:
    """
    Routes client events of one connection to the gateway components.

    Args:
        connection_id: The connection whose frames this router handles.
        manager: Composition root giving access to registry, rooms,
            subscriptions, dispatcher and metrics.
        context: Audit context of the connection.
    """

    def __init__(
        self,
        connection_id: str,
        manager: "ConnectionManager",
        context: "WebSocketContext | None" = None,
    ) -> None:
        self._connection_id = connection_id
        self._manager = manager
        self._context = context
        self._handlers: dict[ClientEventName, Callable[[Any], None]] = {
            ClientEventName.AUTHENTICATE: self._on_authenticate,
            ClientEventName.JOIN_ROOM: self._on_join_room,
            ClientEventName.LEAVE_ROOM: self._on_leave_room,
            ClientEventName.MESSAGE: self._on_message,
            ClientEventName.SUBSCRIBE: self._on_subscribe,
            ClientEventName.UNSUBSCRIBE: self._on_unsubscribe,
            ClientEventName.PING: self._on_ping,
        }
        missing = set(ClientEventName) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for client events: {sorted(e.value for e in missing)}")

    @property
    def connection_id(self) -> str:
        return self._connection_id

    # =========================================================================
    # Entry point
    # =========================================================================

    def handle(self, text: str) -> bool:
        """
        Parse and handle one inbound text frame.

        Returns:
            True if the event was handled, False if it was rejected.
        """
        try:
            event = parse_client_event(text)
        except InvalidClientEvent as e:
            self._reject(e)
            return False

        return self.dispatch(event)

    def dispatch(self, event: ClientEvent) -> bool:
        """Run the handler for an already parsed event."""
        try:
            self._handlers[event.name](event)
        except Exception as e:
            logger.error(
                "Error handling client event",
                connection_id=self._connection_id,
                client_event=event.name.value,
                error=str(e),
                exc_info=True,
            )
            self._manager.metrics.increment_events_rejected()
            self._send_failure(event.name)
            return False

        self._manager.metrics.increment_events_handled()
        return True

    def _reject(self, error: InvalidClientEvent) -> None:
        self._manager.metrics.increment_events_rejected()
        logger.warning(
            "Rejected client frame",
            connection_id=self._connection_id,
            client_event=error.event.value if error.event else None,
            error=sanitize_log_data(str(error)),
        )
        if error.event is None:
            self._manager.dispatcher.emit(self._connection_id, ServerEvent.ERROR, {"message": str(error)})
        else:
            self._send_failure(error.event)

    def _send_failure(self, name: ClientEventName) -> None:
        message = FAILURE_MESSAGES[name]
        if name is ClientEventName.AUTHENTICATE:
            self._manager.dispatcher.emit(
                self._connection_id,
                ServerEvent.AUTHENTICATED,
                {"success": False, "error": message},
            )
        else:
            self._manager.dispatcher.emit(self._connection_id, ServerEvent.ERROR, {"message": message})

    # =========================================================================
    # Handlers
    # =========================================================================

    def _on_authenticate(self, event: Authenticate) -> None:
        user = self._manager.registry.authenticate(
            self._connection_id,
            Identity(username=event.username, roles=event.roles),
        )
        if user is None:
            return

        self._manager.dispatcher.emit(
            self._connection_id,
            ServerEvent.AUTHENTICATED,
            {"success": True, "user": user},
        )
        if self._context is not None:
            self._context.username = event.username
            self._context.audit("AUTHENTICATED", roles=list(event.roles))

    def _on_join_room(self, event: JoinRoom) -> None:
        self._manager.rooms.join(self._connection_id, event.room)

    def _on_leave_room(self, event: LeaveRoom) -> None:
        self._manager.rooms.leave(self._connection_id, event.room)

    def _on_message(self, event: ClientMessage) -> None:
        dispatcher = self._manager.dispatcher

        if event.type == MESSAGE_TYPE_BROADCAST:
            dispatcher.broadcast_all(event.data, sender_id=self._connection_id)
        elif event.type == MESSAGE_TYPE_ROOM:
            room = event.data.get("room") if isinstance(event.data, Mapping) else None
            if not isinstance(room, str) or not room:
                raise ValueError("room-message requires data.room")
            dispatcher.send_to_room(
                room,
                {
                    "type": event.type,
                    "data": event.data,
                    "timestamp": now_ms(),
                    "userId": self._connection_id,
                },
                sender_id=self._connection_id,
            )

        logger.debug(
            "Message handled",
            connection_id=self._connection_id,
            type=sanitize_log_data(event.type),
        )

    def _on_subscribe(self, event: Subscribe) -> None:
        self._manager.subscriptions.subscribe(self._connection_id, event.type, event.filters)

    def _on_unsubscribe(self, event: Unsubscribe) -> None:
        self._manager.subscriptions.unsubscribe(self._connection_id, event.type, event.filters)

    def _on_ping(self, event: Ping) -> None:
        self._manager.dispatcher.emit(
            self._connection_id,
            ServerEvent.PONG,
            {"timestamp": now_ms(), "echo": event.echo},
        )
