"""
Heartbeat Tracker for WebSocket Gateway.

Tracks last activity time for each connection id so the reaper task can
force-disconnect connections that went silent without closing.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from shared.config.logging import get_logger
from ws_gateway.components.connection.transport import TransportError
from ws_gateway.components.core.constants import MSG_PING_PLAIN, MSG_PONG_JSON

if TYPE_CHECKING:
    from ws_gateway.components.connection.transport import Transport

logger = get_logger(__name__)


class HeartbeatTracker:
    """
    Tracks heartbeat timestamps for connections.

    All access happens on the event loop, so no locking is needed.

    Each connection's last activity time is recorded when:
    - Connection is established
    - Any frame is received (including heartbeats)

    Connections without recent activity are considered stale. With no
    timeout, activity is still recorded but no tracked connection goes stale.
    """

    def __init__(self, timeout_seconds: float | None = 60.0):
        """
        Initialize heartbeat tracker.

        Args:
            timeout_seconds: Seconds without activity before connection is stale,
                or None to never report tracked connections as stale.
        """
        self._timeout = timeout_seconds
        self._last_heartbeat: dict[str, float] = {}

    @property
    def timeout(self) -> float | None:
        """Get the heartbeat timeout in seconds."""
        return self._timeout

    @property
    def tracked_count(self) -> int:
        """Get number of connections being tracked."""
        return len(self._last_heartbeat)

    def record(self, connection_id: str, timestamp: float | None = None) -> None:
        """
        Record activity from a connection.

        Args:
            connection_id: The connection to record.
            timestamp: Optional Unix timestamp. If None, uses current time.
        """
        self._last_heartbeat[connection_id] = timestamp if timestamp is not None else time.time()

    def remove(self, connection_id: str) -> None:
        """Stop tracking a connection. Unknown ids are ignored."""
        self._last_heartbeat.pop(connection_id, None)

    def get_last_activity(self, connection_id: str) -> float | None:
        """
        Get the last activity time for a connection.

        Returns:
            Unix timestamp of last activity, or None if not tracked.
        """
        return self._last_heartbeat.get(connection_id)

    def is_stale(self, connection_id: str, now: float | None = None) -> bool:
        """
        Check if a connection is stale (no recent activity).

        Unknown connections are considered stale.
        """
        last_time = self._last_heartbeat.get(connection_id)
        if last_time is None:
            return True
        if self._timeout is None:
            return False
        now = now if now is not None else time.time()
        return now - last_time > self._timeout

    def get_stale_connections(self, now: float | None = None) -> list[str]:
        """
        Get all connection ids that haven't been active within timeout.

        Tracking is not modified; the caller removes them through the normal
        disconnect path.
        """
        if self._timeout is None:
            return []
        now = now if now is not None else time.time()
        return [
            connection_id
            for connection_id, last_time in list(self._last_heartbeat.items())
            if now - last_time > self._timeout
        ]

    def get_stats(self) -> dict[str, float | int | None]:
        """Get heartbeat tracker statistics."""
        now = time.time()
        ages = [now - t for t in self._last_heartbeat.values()]

        return {
            "tracked_connections": len(ages),
            "timeout_seconds": self._timeout,
            "oldest_heartbeat_age": max(ages) if ages else 0,
            "newest_heartbeat_age": min(ages) if ages else 0,
        }


def handle_heartbeat(transport: Transport, data: str) -> bool:
    """
    Answer the plain-text transport heartbeat.

    The pong goes through the connection's outbound queue so it is ordered
    with every other frame sent to that client.

    Args:
        transport: Outbound side of the connection.
        data: The received text frame.

    Returns:
        True if the frame was a heartbeat and was handled, False otherwise.
    """
    if data != MSG_PING_PLAIN:
        return False

    try:
        transport.send(MSG_PONG_JSON)
    except TransportError as e:
        # Connection may be closing - the receive loop handles cleanup
        logger.debug("Heartbeat response dropped", error=str(e))
    return True
