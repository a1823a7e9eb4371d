"""
Core WebSocket Gateway components.

Foundational components: constants and context. FastAPI dependencies live in
``ws_gateway.components.core.dependencies``.
"""

from ws_gateway.components.core.constants import (
    WSCloseCode,
    WSConstants,
    ServerEvent,
    now_ms,
    validate_websocket_origin,
)
from ws_gateway.components.core.context import WebSocketContext, sanitize_log_data

__all__ = [
    # Constants
    "WSCloseCode",
    "WSConstants",
    "ServerEvent",
    "now_ms",
    "validate_websocket_origin",
    # Context
    "WebSocketContext",
    "sanitize_log_data",
]
