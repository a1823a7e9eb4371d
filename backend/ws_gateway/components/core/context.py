"""
WebSocket Context for audit logging.

Encapsulates connection metadata so lifecycle audit calls do not repeat the
same parameter list everywhere.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from fastapi import WebSocket


# Control characters, zero-width marks and bidi overrides
_CONTROL_CHAR_PATTERN = re.compile(
    r'[\x00-\x1f\x7f-\x9f'
    r'\u200b-\u200f'  # Zero-width and direction marks
    r'\u202a-\u202e'  # Bidirectional text formatting
    r'\u2066-\u2069'  # Isolate formatting characters
    r'\ufeff]'  # BOM
)


def sanitize_log_data(data: Any, max_length: int = 100) -> str:
    """
    Sanitize client-provided data before logging.

    Truncates first so escaping cannot be cut in half, then strips control
    characters and escapes JSON-dangerous characters.

    Args:
        data: Raw client data (non-strings are converted with str()).
        max_length: Maximum length to include in logs.

    Returns:
        Sanitized, truncated string safe for structured logging.
    """
    if not isinstance(data, str):
        data = str(data)

    truncated = data[:max_length] if len(data) > max_length else data
    was_truncated = len(data) > max_length

    sanitized = _CONTROL_CHAR_PATTERN.sub('', truncated)

    # Replace backslashes first to avoid double-escaping
    sanitized = sanitized.replace('\\', '\\\\')
    sanitized = sanitized.replace('"', '\\"')

    if was_truncated:
        return sanitized + "..."
    return sanitized


@dataclass
class WebSocketContext:
    """
    Context object for WebSocket connection metadata.

    Usage:
        ctx = WebSocketContext.from_websocket(websocket, "/ws")
        ctx.connection_id = connection.id
        ctx.audit("CONNECT")
        # ... later
        ctx.audit("DISCONNECT", reason="client_disconnect")
    """

    endpoint: str
    origin: str | None = None
    client_host: str | None = None
    connection_id: str | None = None
    username: str | None = None

    @classmethod
    def from_websocket(cls, websocket: "WebSocket", endpoint: str) -> "WebSocketContext":
        """
        Create context from a WebSocket connection before it is registered.

        Args:
            websocket: The WebSocket connection.
            endpoint: The endpoint path (e.g., "/ws").

        Returns:
            WebSocketContext with basic connection info.
        """
        client = getattr(websocket, "client", None)
        return cls(
            endpoint=endpoint,
            origin=websocket.headers.get("origin"),
            client_host=client.host if client else None,
        )

    def to_audit_dict(self, event_type: str, **extra: Any) -> dict[str, Any]:
        """
        Convert to dictionary for audit logging.

        Only includes non-None fields to reduce log noise.
        """
        result: dict[str, Any] = {
            "event_type": event_type,
            "endpoint": self.endpoint,
        }
        if self.origin:
            result["origin"] = self.origin
        if self.connection_id:
            result["connection_id"] = self.connection_id
        if self.username:
            result["username"] = self.username
        if self.client_host:
            result["client_host"] = self.client_host

        result.update(extra)
        return result

    def audit(
        self,
        event_type: str,
        logger_func: Any = None,
        **extra: Any,
    ) -> None:
        """
        Log an audit event.

        Args:
            event_type: The audit event type.
            logger_func: Optional custom logger function (default: audit_ws_connection).
            **extra: Additional fields to log.
        """
        if logger_func is None:
            from shared.config.logging import audit_ws_connection
            logger_func = audit_ws_connection

        logger_func(**self.to_audit_dict(event_type, **extra))

    @property
    def identifier(self) -> str:
        """Human-readable identifier for this connection."""
        if self.username and self.connection_id:
            return f"{self.username}:{self.connection_id}"
        if self.connection_id:
            return f"conn:{self.connection_id}"
        return "unregistered"
