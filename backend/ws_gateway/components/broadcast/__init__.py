"""
Message delivery components.
"""

from ws_gateway.components.broadcast.dispatcher import Dispatcher

__all__ = ["Dispatcher"]
