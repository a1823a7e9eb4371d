"""
Connection management components.

Connection records and room membership, outbound transport, heartbeat.
"""

from ws_gateway.components.connection.transport import (
    Transport,
    TransportError,
    WebSocketTransport,
    send_frame,
)
from ws_gateway.components.connection.registry import (
    Connection,
    ConnectionNotFoundError,
    ConnectionRegistry,
    Identity,
    SafeIdentity,
)
from ws_gateway.components.connection.heartbeat import HeartbeatTracker, handle_heartbeat

__all__ = [
    # Transport
    "Transport",
    "TransportError",
    "WebSocketTransport",
    "send_frame",
    # Registry
    "Connection",
    "ConnectionNotFoundError",
    "ConnectionRegistry",
    "Identity",
    "SafeIdentity",
    # Heartbeat
    "HeartbeatTracker",
    "handle_heartbeat",
]
