"""
Event Value Objects for WebSocket Gateway.

Two families of immutable objects:

- ``Envelope``: a message on its way from the Dispatch API to clients.
  Transient; nothing keeps an envelope after it has been handed to the
  transports.
- Client events: one frozen dataclass per inbound event name. Frames are
  parsed and validated at construction time; invalid frames raise
  ``InvalidClientEvent``.

Every WebSocket text frame is a JSON object ``{"event": name, "data": payload}``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Self, Union

from ws_gateway.components.core.constants import ServerEvent, WSConstants, now_ms


# =============================================================================
# Outbound envelopes
# =============================================================================


class EnvelopeKind(str, Enum):
    """What kind of delivery produced an envelope."""

    BROADCAST = "broadcast"
    ROOM_MESSAGE = "room-message"
    DIRECT_MESSAGE = "direct-message"
    DATA_UPDATE = "data-update"
    SYSTEM = "system"


@dataclass(frozen=True, slots=True)
class Envelope:
    """
    Immutable message envelope.

    Attributes:
        kind: Delivery kind.
        event: Wire event name sent to clients.
        payload: The ``data`` part of the wire frame.
        sender_id: Connection that originated the message, if any.
        timestamp: Epoch milliseconds at creation.
    """

    kind: EnvelopeKind
    event: str
    payload: Any
    sender_id: str | None = None
    timestamp: int = field(default_factory=now_ms)

    def to_frame(self) -> dict[str, Any]:
        return {"event": self.event, "data": self.payload}

    @classmethod
    def broadcast(cls, data: Any, sender_id: str | None = None) -> Self:
        ts = now_ms()
        return cls(
            kind=EnvelopeKind.BROADCAST,
            event=ServerEvent.BROADCAST.value,
            payload={"data": data, "timestamp": ts},
            sender_id=sender_id,
            timestamp=ts,
        )

    @classmethod
    def room_message(cls, room: str, data: Any, sender_id: str | None = None) -> Self:
        ts = now_ms()
        return cls(
            kind=EnvelopeKind.ROOM_MESSAGE,
            event=ServerEvent.ROOM_MESSAGE.value,
            payload={"room": room, "data": data, "timestamp": ts},
            sender_id=sender_id,
            timestamp=ts,
        )

    @classmethod
    def direct_message(cls, data: Any, sender_id: str | None = None) -> Self:
        ts = now_ms()
        return cls(
            kind=EnvelopeKind.DIRECT_MESSAGE,
            event=ServerEvent.DIRECT_MESSAGE.value,
            payload={"data": data, "timestamp": ts},
            sender_id=sender_id,
            timestamp=ts,
        )

    @classmethod
    def data_update(cls, type_: str, data: Any, filters: Mapping[str, Any]) -> Self:
        ts = now_ms()
        return cls(
            kind=EnvelopeKind.DATA_UPDATE,
            event=ServerEvent.DATA_UPDATE.value,
            payload={"type": type_, "data": data, "filters": dict(filters), "timestamp": ts},
            timestamp=ts,
        )

    @classmethod
    def system(cls, event: ServerEvent | str, payload: Any) -> Self:
        name = event.value if isinstance(event, ServerEvent) else event
        return cls(kind=EnvelopeKind.SYSTEM, event=name, payload=payload)


# =============================================================================
# Inbound client events
# =============================================================================


class InvalidClientEvent(ValueError):
    """
    A client frame could not be parsed into a known event.

    ``event`` is the event name when it could be read, so the caller can
    answer with the event-specific error message.
    """

    def __init__(self, message: str, event: "ClientEventName | None" = None):
        super().__init__(message)
        self.event = event


class ClientEventName(str, Enum):
    """Event names accepted from clients."""

    AUTHENTICATE = "authenticate"
    JOIN_ROOM = "join-room"
    LEAVE_ROOM = "leave-room"
    MESSAGE = "message"
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    PING = "ping"


def _require_room_name(data: Any) -> str:
    if not isinstance(data, str) or not data:
        raise ValueError("Room name must be a non-empty string")
    if len(data) > WSConstants.MAX_ROOM_NAME_LENGTH:
        raise ValueError(f"Room name longer than {WSConstants.MAX_ROOM_NAME_LENGTH} characters")
    return data


def _require_mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"{what} must be an object")
    return data


@dataclass(frozen=True, slots=True)
class Authenticate:
    """``authenticate {username, roles[]}``"""

    name = ClientEventName.AUTHENTICATE
    username: str
    roles: tuple[str, ...] = ()

    @classmethod
    def from_data(cls, data: Any) -> Self:
        data = _require_mapping(data, "Authentication data")
        username = data.get("username")
        if not isinstance(username, str) or not username:
            raise ValueError("username must be a non-empty string")
        roles = data.get("roles") or []
        if not isinstance(roles, list) or not all(isinstance(r, str) for r in roles):
            raise ValueError("roles must be a list of strings")
        return cls(username=username, roles=tuple(roles))


@dataclass(frozen=True, slots=True)
class JoinRoom:
    """``join-room roomName``"""

    name = ClientEventName.JOIN_ROOM
    room: str

    @classmethod
    def from_data(cls, data: Any) -> Self:
        return cls(room=_require_room_name(data))


@dataclass(frozen=True, slots=True)
class LeaveRoom:
    """``leave-room roomName``"""

    name = ClientEventName.LEAVE_ROOM
    room: str

    @classmethod
    def from_data(cls, data: Any) -> Self:
        return cls(room=_require_room_name(data))


@dataclass(frozen=True, slots=True)
class ClientMessage:
    """``message {type, data}``"""

    name = ClientEventName.MESSAGE
    type: str
    data: Any = None

    @classmethod
    def from_data(cls, data: Any) -> Self:
        data = _require_mapping(data, "Message")
        msg_type = data.get("type")
        if not isinstance(msg_type, str) or not msg_type:
            raise ValueError("Message type must be a non-empty string")
        return cls(type=msg_type, data=data.get("data"))


@dataclass(frozen=True, slots=True)
class Subscribe:
    """``subscribe {type, filters}``"""

    name = ClientEventName.SUBSCRIBE
    type: str
    filters: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_data(cls, data: Any) -> Self:
        data = _require_mapping(data, "Subscription")
        sub_type = data.get("type")
        if not isinstance(sub_type, str) or not sub_type:
            raise ValueError("Subscription type must be a non-empty string")
        filters = data.get("filters")
        if filters is None:
            filters = {}
        return cls(type=sub_type, filters=dict(_require_mapping(filters, "Subscription filters")))


@dataclass(frozen=True, slots=True)
class Unsubscribe:
    """``unsubscribe {type, filters}``"""

    name = ClientEventName.UNSUBSCRIBE
    type: str
    filters: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_data(cls, data: Any) -> Self:
        sub = Subscribe.from_data(data)
        return cls(type=sub.type, filters=sub.filters)


@dataclass(frozen=True, slots=True)
class Ping:
    """``ping <any>``; answered with ``pong {timestamp, echo}``."""

    name = ClientEventName.PING
    echo: Any = None

    @classmethod
    def from_data(cls, data: Any) -> Self:
        return cls(echo=data)


ClientEvent = Union[Authenticate, JoinRoom, LeaveRoom, ClientMessage, Subscribe, Unsubscribe, Ping]

CLIENT_EVENT_TYPES: dict[ClientEventName, type] = {
    ClientEventName.AUTHENTICATE: Authenticate,
    ClientEventName.JOIN_ROOM: JoinRoom,
    ClientEventName.LEAVE_ROOM: LeaveRoom,
    ClientEventName.MESSAGE: ClientMessage,
    ClientEventName.SUBSCRIBE: Subscribe,
    ClientEventName.UNSUBSCRIBE: Unsubscribe,
    ClientEventName.PING: Ping,
}


def parse_client_event(text: str) -> ClientEvent:
    """
    Parse one inbound text frame.

    Args:
        text: Raw frame text, expected to be ``{"event": name, "data": payload}``.

    Returns:
        The validated client event.

    Raises:
        InvalidClientEvent: If the frame is not JSON, names an unknown event,
            or its payload fails validation.
    """
    try:
        frame = json.loads(text)
    except json.JSONDecodeError:
        raise InvalidClientEvent("Invalid message format") from None

    if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
        raise InvalidClientEvent("Invalid message format")

    try:
        name = ClientEventName(frame["event"])
    except ValueError:
        raise InvalidClientEvent(f"Unknown event: {frame['event']}") from None

    try:
        return CLIENT_EVENT_TYPES[name].from_data(frame.get("data"))
    except ValueError as e:
        raise InvalidClientEvent(str(e), event=name) from e
