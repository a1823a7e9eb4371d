"""
Realtime Gateway.

WebSocket rooms, typed subscriptions and broadcasts, driven from socket
events, the REST control surface and internal timers.
"""
