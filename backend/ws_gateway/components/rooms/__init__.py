"""
Room and subscription components.
"""

from ws_gateway.components.rooms.manager import RoomManager
from ws_gateway.components.rooms.subscriptions import SubscriptionRouter, subscription_key

__all__ = [
    "RoomManager",
    "SubscriptionRouter",
    "subscription_key",
]
