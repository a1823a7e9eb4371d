"""
Pytest configuration and fixtures for gateway tests.
"""

import itertools
from typing import Any

import pytest
from fastapi.testclient import TestClient

from shared.config.settings import Settings
from ws_gateway.components.connection.transport import TransportError
from ws_gateway.connection_manager import ConnectionManager
from ws_gateway.main import create_app


_id_counter = itertools.count(1)


class FakeTransport:
    """
    In-memory transport recording every frame handed to it.

    Set ``fail=True`` to make every send raise TransportError, like a
    connection whose outbound queue is full.
    """

    def __init__(self, fail: bool = False):
        self.frames: list[Any] = []
        self.closed_with: tuple[int, str | None] | None = None
        self.fail = fail

    @property
    def closed(self) -> bool:
        return self.closed_with is not None

    def send(self, frame):
        if self.fail:
            raise TransportError("Outbound queue full (0 frames)")
        if self.closed:
            raise TransportError("Transport is closed")
        self.frames.append(frame)

    def close(self, code=1000, reason=None):
        if self.closed_with is None:
            self.closed_with = (int(code), reason)

    def events(self) -> list[str]:
        """Event names of the JSON frames received, in order."""
        return [f["event"] for f in self.frames if isinstance(f, dict)]

    def data_for(self, event: str) -> list[Any]:
        """Payloads of every frame with the given event name."""
        return [f["data"] for f in self.frames if isinstance(f, dict) and f["event"] == event]

    def clear(self) -> None:
        self.frames.clear()


@pytest.fixture
def test_settings():
    """Development settings isolated from any local .env file."""
    return Settings(
        _env_file=None,
        environment="development",
        debug=False,
        allowed_origins="",
        monitoring_enabled=False,
    )


@pytest.fixture
def manager(test_settings):
    """A fresh ConnectionManager with no connections."""
    return ConnectionManager(test_settings)


@pytest.fixture
def connect(manager):
    """
    Register fake connections.

    Usage:
        conn_id, transport = connect()
    """
    def _connect(connection_id: str | None = None, fail: bool = False):
        connection_id = connection_id or f"conn-{next(_id_counter)}"
        transport = FakeTransport(fail=fail)
        manager.connect(connection_id, transport)
        return connection_id, transport

    return _connect


@pytest.fixture
def app(test_settings):
    return create_app(test_settings)


@pytest.fixture
def client(app):
    """
    Test client running the app lifespan.

    REST calls and WebSocket sessions share one event loop, so they see the
    same ConnectionManager state.
    """
    with TestClient(app) as test_client:
        yield test_client


def receive_event(ws, event: str, max_frames: int = 20) -> dict:
    """Read frames from a test WebSocket until one with the given event arrives."""
    for _ in range(max_frames):
        frame = ws.receive_json()
        if frame.get("event") == event:
            return frame["data"]
    raise AssertionError(f"Event {event!r} not received within {max_frames} frames")
