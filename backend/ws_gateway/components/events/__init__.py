"""
Event handling components.

Envelopes, client event types and validation, and per-connection routing.
"""

from ws_gateway.components.events.types import (
    ClientEvent,
    ClientEventName,
    Envelope,
    EnvelopeKind,
    InvalidClientEvent,
    parse_client_event,
)
from ws_gateway.components.events.router import ClientEventRouter

__all__ = [
    # Event types
    "ClientEvent",
    "ClientEventName",
    "Envelope",
    "EnvelopeKind",
    "InvalidClientEvent",
    "parse_client_event",
    # Event router
    "ClientEventRouter",
]
