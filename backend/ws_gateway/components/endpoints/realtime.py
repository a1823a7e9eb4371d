"""
Realtime WebSocket Endpoint.

Runs one client session from handshake to cleanup:

1. Validate origin (reject with 4003 before accepting)
2. Accept within the handshake timeout
3. Register the connection (client receives ``connected``)
4. Message loop: receive (optional idle timeout), size check, heartbeat, event routing
5. Disconnect cascade and writer shutdown, whatever ended the loop
"""

from __future__ import annotations

import asyncio
import uuid
from typing import TYPE_CHECKING

from fastapi import WebSocket, WebSocketDisconnect

from shared.config.logging import get_logger
from ws_gateway.components.connection.heartbeat import handle_heartbeat
from ws_gateway.components.connection.transport import WebSocketTransport
from ws_gateway.components.core.constants import (
    ServerEvent,
    WSCloseCode,
    validate_websocket_origin,
)
from ws_gateway.components.core.context import WebSocketContext, sanitize_log_data
from ws_gateway.components.events.router import ClientEventRouter

if TYPE_CHECKING:
    from ws_gateway.connection_manager import ConnectionManager

logger = get_logger(__name__)

# Disconnect reasons recorded in the audit log
REASON_CLIENT = "client disconnect"
REASON_SERVER = "server disconnect"
REASON_TIMEOUT = "receive timeout"
REASON_TOO_BIG = "message too big"
REASON_TRANSPORT = "transport error"


class RealtimeEndpoint:
    """
    Handler for one connection on the realtime WebSocket route.

    Usage:
        endpoint = RealtimeEndpoint(websocket, manager, "/ws")
        await endpoint.run()
    """

    def __init__(
        self,
        websocket: WebSocket,
        manager: "ConnectionManager",
        endpoint_name: str,
    ):
        """
        Initialize the endpoint handler.

        Args:
            websocket: The WebSocket connection.
            manager: ConnectionManager instance.
            endpoint_name: Name for logging (e.g., "/ws").
        """
        self.websocket = websocket
        self.manager = manager
        self.endpoint_name = endpoint_name

        settings = manager.settings
        # None waits forever; liveness then comes from protocol-level pings
        self.receive_timeout = settings.ws_idle_timeout
        self.accept_timeout = settings.ws_accept_timeout
        self.max_message_size = settings.ws_max_message_size
        self.send_queue_size = settings.ws_send_queue_size

        self.connection_id = uuid.uuid4().hex
        self.context = WebSocketContext.from_websocket(websocket, endpoint_name)
        self.transport: WebSocketTransport | None = None

    # =========================================================================
    # Handshake
    # =========================================================================

    async def validate_origin(self) -> bool:
        """Reject disallowed origins before accepting the handshake."""
        if self.manager.is_shutting_down():
            await self.websocket.close(code=WSCloseCode.GOING_AWAY, reason="Server shutting down")
            return False

        if validate_websocket_origin(self.context.origin, self.manager.settings):
            return True

        self.manager.metrics.increment_connections_rejected_origin()
        self.context.audit("REJECTED", reason="invalid_origin")
        await self.websocket.close(code=WSCloseCode.FORBIDDEN, reason="Origin not allowed")
        return False

    async def accept(self) -> bool:
        try:
            await asyncio.wait_for(self.websocket.accept(), timeout=self.accept_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(
                "WebSocket accept timed out",
                endpoint=self.endpoint_name,
                timeout=self.accept_timeout,
            )
            return False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def run(self) -> None:
        """
        Main entry point - run the WebSocket session.

        The disconnect cascade always runs, whether the client left, the
        server forced a disconnect, or the loop failed.
        """
        if not await self.validate_origin():
            return
        if not await self.accept():
            return

        self.transport = WebSocketTransport(self.websocket, queue_size=self.send_queue_size)
        self.transport.start(name=f"ws_writer_{self.connection_id[:8]}")
        self.manager.connect(self.connection_id, self.transport)

        self.context.connection_id = self.connection_id
        self.context.audit("CONNECT")

        router = ClientEventRouter(self.connection_id, self.manager, self.context)
        reason = REASON_CLIENT
        try:
            reason = await self._message_loop(router)
        except WebSocketDisconnect:
            reason = REASON_CLIENT
        except RuntimeError as e:
            # Starlette raises RuntimeError when receiving on a closed socket
            logger.debug("Receive on closed socket", connection_id=self.connection_id, error=str(e))
            reason = REASON_TRANSPORT
        finally:
            # Release before any await so cancellation cannot skip the cascade
            if self.manager.release(self.connection_id, reason) is None:
                reason = REASON_SERVER
            self.context.audit("DISCONNECT", reason=reason)
            await self.transport.aclose()

    async def _message_loop(self, router: ClientEventRouter) -> str:
        """
        Receive and handle frames until the session ends.

        Returns:
            The reason the loop stopped.
        """
        while True:
            text = await self._receive_with_timeout()
            if text is None:
                logger.info(
                    "Connection timed out (no messages)",
                    endpoint=self.endpoint_name,
                    identifier=self.context.identifier,
                    timeout=self.receive_timeout,
                )
                self.manager.metrics.increment_connection_timeouts()
                self.transport.close(WSCloseCode.HEARTBEAT_TIMEOUT, "Connection timeout")
                return REASON_TIMEOUT

            # Force-disconnected while the frame was in flight
            if not self.manager.registry.is_connected(self.connection_id):
                return REASON_SERVER

            if len(text.encode("utf-8")) > self.max_message_size:
                logger.warning(
                    "Message too large",
                    identifier=self.context.identifier,
                    limit=self.max_message_size,
                )
                self.transport.close(WSCloseCode.MESSAGE_TOO_BIG, "Message too big")
                return REASON_TOO_BIG

            self.manager.record_activity(self.connection_id)

            if handle_heartbeat(self.transport, text):
                continue

            router.handle(text)

    async def _receive_with_timeout(self) -> str | None:
        """
        Receive one text frame.

        Binary frames are decoded as UTF-8; undecodable ones are answered
        with an error event and skipped.

        Returns:
            Frame text, or None when ``ws_idle_timeout`` elapsed.

        Raises:
            WebSocketDisconnect: When the client goes away.
        """
        while True:
            try:
                message = await asyncio.wait_for(
                    self.websocket.receive(),
                    timeout=self.receive_timeout,
                )
            except asyncio.TimeoutError:
                return None

            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(code=message.get("code", WSCloseCode.NORMAL))

            text = message.get("text")
            if text is not None:
                return text

            raw = message.get("bytes") or b""
            try:
                return raw.decode("utf-8")
            except UnicodeDecodeError:
                logger.debug(
                    "Undecodable binary frame",
                    identifier=self.context.identifier,
                    preview=sanitize_log_data(raw[:32]),
                )
                self.manager.dispatcher.emit(
                    self.connection_id,
                    ServerEvent.ERROR,
                    {"message": "Binary frames are not supported"},
                )
