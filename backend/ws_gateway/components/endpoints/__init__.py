"""
WebSocket endpoint handlers.
"""

from ws_gateway.components.endpoints.realtime import RealtimeEndpoint

__all__ = ["RealtimeEndpoint"]
