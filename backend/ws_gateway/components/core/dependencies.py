"""
FastAPI dependencies shared by the REST routes and the WebSocket route.
"""

from starlette.requests import HTTPConnection

from ws_gateway.connection_manager import ConnectionManager


def get_connection_manager(conn: HTTPConnection) -> ConnectionManager:
    """
    Return the ConnectionManager of the running application.

    ``HTTPConnection`` resolves for both HTTP requests and WebSocket
    connections, so REST and socket handlers share the same state.
    """
    return conn.app.state.manager
