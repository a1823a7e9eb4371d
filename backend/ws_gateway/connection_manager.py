"""
WebSocket Connection Manager.

Thin orchestrator that composes the gateway components:
- ConnectionRegistry: connection records and room membership
- RoomManager: join/leave with peer notifications
- SubscriptionRouter: typed subscriptions on top of rooms
- Dispatcher: every outbound delivery path
- HeartbeatTracker: last activity per connection, for reaping
- MetricsCollector: counters for the health endpoint

One instance is created per application and stored on ``app.state``.
"""

from __future__ import annotations

import time
from typing import Any, TYPE_CHECKING

from shared.config.settings import Settings, settings as default_settings
from shared.config.logging import get_logger
from ws_gateway.components.broadcast.dispatcher import Dispatcher
from ws_gateway.components.connection.heartbeat import HeartbeatTracker
from ws_gateway.components.connection.registry import ConnectionRegistry
from ws_gateway.components.core.constants import WSCloseCode
from ws_gateway.components.metrics.collector import MetricsCollector
from ws_gateway.components.rooms.manager import RoomManager
from ws_gateway.components.rooms.subscriptions import SubscriptionRouter

if TYPE_CHECKING:
    from ws_gateway.components.connection.registry import Connection
    from ws_gateway.components.connection.transport import Transport

logger = get_logger(__name__)

__all__ = ["ConnectionManager", "IDLE_TIMEOUT_REASON"]

IDLE_TIMEOUT_REASON = "idle timeout"


class ConnectionManager:
    """
    Manages WebSocket connections for the realtime gateway.

    Configuration from settings:
    - ws_idle_timeout: Seconds without an inbound frame before a connection is
      reaped (default: None, never; liveness is left to protocol pings)
    """

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize the connection manager with composed components."""
        self._settings = settings or default_settings
        self._started_at = time.monotonic()
        self._shutting_down = False

        self._metrics = MetricsCollector()
        self._heartbeat_tracker = HeartbeatTracker(timeout_seconds=self._settings.ws_idle_timeout)
        self._registry = ConnectionRegistry()
        self._rooms = RoomManager(self._registry)
        self._subscriptions = SubscriptionRouter(self._rooms)

        # Dispatcher runs the disconnect cascade through release()
        self._dispatcher = Dispatcher(
            registry=self._registry,
            rooms=self._rooms,
            subscriptions=self._subscriptions,
            metrics=self._metrics,
            release_callback=self.release,
        )

    # =========================================================================
    # Components
    # =========================================================================

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def rooms(self) -> RoomManager:
        return self._rooms

    @property
    def subscriptions(self) -> SubscriptionRouter:
        return self._subscriptions

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def heartbeat(self) -> HeartbeatTracker:
        return self._heartbeat_tracker

    @property
    def uptime(self) -> float:
        """Seconds since the manager was created."""
        return time.monotonic() - self._started_at

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def connect(self, connection_id: str, transport: "Transport") -> "Connection":
        """
        Register a newly accepted transport.

        Raises:
            ValueError: If the id is already registered.
        """
        connection = self._registry.register(connection_id, transport)
        self._heartbeat_tracker.record(connection_id)
        self._metrics.increment_connections_accepted()
        return connection

    def record_activity(self, connection_id: str) -> None:
        self._heartbeat_tracker.record(connection_id)

    def release(self, connection_id: str, reason: str = "client disconnect") -> "Connection | None":
        """
        Disconnect cascade: forget the connection and every room it was in.

        Safe to call more than once; only the first call has an effect.
        """
        self._heartbeat_tracker.remove(connection_id)
        connection = self._registry.remove(connection_id)
        if connection is None:
            return None

        self._metrics.increment_connections_closed()
        logger.info(
            "Client disconnected",
            connection_id=connection_id,
            reason=reason,
            duration_seconds=round(time.time() - connection.connected_at.timestamp(), 1),
        )
        return connection

    def disconnect(self, connection_id: str, reason: str | None = None) -> str:
        """Force-disconnect a connection. See Dispatcher.disconnect."""
        return self._dispatcher.disconnect(connection_id, reason)

    def reap_stale_connections(self) -> int:
        """
        Force-disconnect connections idle longer than ``ws_idle_timeout``.

        Closes them with 4008. Does nothing when no idle timeout is set.

        Returns:
            Number of connections reaped.
        """
        reaped = 0
        for connection_id in self._heartbeat_tracker.get_stale_connections():
            if not self._registry.is_connected(connection_id):
                self._heartbeat_tracker.remove(connection_id)
                continue
            self._metrics.increment_connection_timeouts()
            self._dispatcher.disconnect(
                connection_id,
                IDLE_TIMEOUT_REASON,
                code=WSCloseCode.HEARTBEAT_TIMEOUT,
            )
            reaped += 1

        if reaped:
            logger.info("Reaped stale connections", count=reaped)
        return reaped

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        """Get connection statistics for the health endpoint."""
        return {
            **self._registry.get_stats(),
            "uptime_seconds": round(self.uptime, 1),
            "heartbeat": self._heartbeat_tracker.get_stats(),
            "metrics": self._metrics.get_snapshot(),
        }

    # =========================================================================
    # Shutdown
    # =========================================================================

    def shutdown(self) -> int:
        """
        Graceful shutdown - close all connections with 1001.

        Returns:
            Number of connections closed.
        """
        self._shutting_down = True
        logger.info("WebSocket manager shutting down...")

        closed = 0
        for connection in self._registry.list():
            try:
                connection.transport.close(WSCloseCode.GOING_AWAY, "Server shutdown")
                closed += 1
            except Exception as e:
                logger.warning("Error closing connection", connection_id=connection.id, error=str(e))
            self.release(connection.id, "server shutdown")

        logger.info("WebSocket shutdown complete", closed=closed)
        return closed

    def is_shutting_down(self) -> bool:
        return self._shutting_down
