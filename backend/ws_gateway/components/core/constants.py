"""
WebSocket Gateway Constants.

Close codes, wire event names and operational defaults shared by every
gateway component.
"""

import time
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Final

from shared.config.logging import get_logger

__all__ = [
    "WSCloseCode",
    "WSConstants",
    "ServerEvent",
    "MSG_PING_PLAIN",
    "MSG_PONG_JSON",
    "DEFAULT_ALLOWED_ORIGINS",
    "DEFAULT_DISCONNECT_REASON",
    "validate_websocket_origin",
    "now_ms",
    "utc_iso",
]

logger = get_logger(__name__)


class WSCloseCode(IntEnum):
    """
    WebSocket close codes used by the gateway.

    Standard codes (1000-1999) from RFC 6455.
    Custom codes (4000-4999) for application-specific errors.
    """

    # Standard codes (RFC 6455)
    NORMAL = 1000  # Normal closure, also used for server-forced disconnects
    GOING_AWAY = 1001  # Server shutting down or client navigating away
    MESSAGE_TOO_BIG = 1009  # Message too large to process

    # Custom application codes (4000-4999)
    FORBIDDEN = 4003  # Origin not in the allowlist
    HEARTBEAT_TIMEOUT = 4008  # No frame received within ws_idle_timeout


class ServerEvent(str, Enum):
    """Event names the gateway emits to clients."""

    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    ROOM_JOINED = "room-joined"
    ROOM_LEFT = "room-left"
    USER_JOINED = "user-joined"
    USER_LEFT = "user-left"
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBED = "unsubscribed"
    BROADCAST = "broadcast"
    ROOM_MESSAGE = "room-message"
    DIRECT_MESSAGE = "direct-message"
    DATA_UPDATE = "data-update"
    PONG = "pong"
    ERROR = "error"


class WSConstants:
    """
    WebSocket Gateway operational constants.

    These are defaults used when settings are not available. At runtime the
    ConnectionManager and the endpoint read from ``shared.config.settings``,
    which can override them through environment variables.
    """

    # SEND_QUEUE_SIZE: 256 frames per connection
    # Bounded so a slow client cannot buffer unbounded memory.
    SEND_QUEUE_SIZE: Final[int] = 256

    # TRANSPORT_CLOSE_TIMEOUT: 2 seconds
    # Time given to the writer task to flush queued frames on shutdown.
    TRANSPORT_CLOSE_TIMEOUT: Final[float] = 2.0

    # MAX_ROOM_NAME_LENGTH: 256 characters
    # Room names are caller-chosen; this only guards against abuse.
    MAX_ROOM_NAME_LENGTH: Final[int] = 256


# Plain-text heartbeat protocol (outside the JSON event protocol)
MSG_PING_PLAIN: Final[str] = "ping"
MSG_PONG_JSON: Final[str] = '{"event":"pong"}'

DEFAULT_DISCONNECT_REASON: Final[str] = "Disconnected by server"


# Default development origins
DEFAULT_ALLOWED_ORIGINS: Final[tuple[str, ...]] = (
    "http://localhost:3000", "http://localhost:3001",
    "http://localhost:5173",
    "http://127.0.0.1:3000", "http://127.0.0.1:3001",
    "http://127.0.0.1:5173",
)


def validate_websocket_origin(origin: str | None, settings: object) -> bool:
    """
    Validate WebSocket origin header against allowed origins.

    Args:
        origin: The Origin header value, or None if not present.
        settings: Settings object with environment and allowed_origins attributes.

    Returns:
        True if origin is allowed, False otherwise.
    """
    allowed_origins_str = getattr(settings, "allowed_origins", None)
    if allowed_origins_str:
        allowed = [o.strip() for o in allowed_origins_str.split(",") if o.strip()]
    else:
        allowed = list(DEFAULT_ALLOWED_ORIGINS)

    # Non-browser clients send no Origin header
    if not origin:
        if getattr(settings, "environment", "production") == "development":
            return True
        logger.warning("WebSocket connection rejected: missing Origin header in production")
        return False

    if origin in allowed or "*" in allowed:
        return True

    logger.warning(
        "WebSocket connection rejected: origin not in allowed list",
        origin=origin,
        allowed_count=len(allowed),
    )
    return False


def now_ms() -> int:
    """Current time as epoch milliseconds, the timestamp unit on the wire."""
    return int(time.time() * 1000)


def utc_iso(moment: datetime | None = None) -> str:
    """UTC ISO-8601 timestamp with millisecond precision and a Z suffix."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
