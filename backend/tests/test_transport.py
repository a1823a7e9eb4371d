"""
Tests for the queue-backed WebSocket transport.

Tests verify:
- Frames are written in the order they were sent
- A full queue rejects sends with TransportError
- Close waits for queued frames and is idempotent
"""

import asyncio
import json

import pytest
from starlette.websockets import WebSocketState

from ws_gateway.components.connection.transport import (
    TransportError,
    WebSocketTransport,
    encode_frame,
)


class FakeWebSocket:
    """Records what the writer task sends."""

    def __init__(self):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[str] = []
        self.closed_with = None

    async def send_text(self, text: str) -> None:
        self.sent.append(text)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed_with = (code, reason)
        self.application_state = WebSocketState.DISCONNECTED


class TestEncodeFrame:

    def test_compact_json(self):
        assert encode_frame({"event": "pong", "data": None}) == '{"event":"pong","data":null}'


class TestWebSocketTransport:
    """Tests for WebSocketTransport."""

    @pytest.mark.asyncio
    async def test_frames_written_in_order(self):
        ws = FakeWebSocket()
        transport = WebSocketTransport(ws, queue_size=10)
        transport.start()

        for i in range(5):
            transport.send({"event": "n", "data": i})
        transport.close(1000, "done")
        await transport.aclose()

        assert [json.loads(t)["data"] for t in ws.sent] == [0, 1, 2, 3, 4]
        assert ws.closed_with == (1000, "done")
        assert transport.frames_sent == 5

    @pytest.mark.asyncio
    async def test_string_frames_sent_verbatim(self):
        ws = FakeWebSocket()
        transport = WebSocketTransport(ws)
        transport.start()

        transport.send('{"event":"pong"}')
        transport.close()
        await transport.aclose()

        assert ws.sent == ['{"event":"pong"}']

    @pytest.mark.asyncio
    async def test_full_queue_raises(self):
        transport = WebSocketTransport(FakeWebSocket(), queue_size=2)

        transport.send({"event": "a"})
        transport.send({"event": "b"})
        with pytest.raises(TransportError):
            transport.send({"event": "c"})

    @pytest.mark.asyncio
    async def test_close_gets_through_full_queue(self):
        ws = FakeWebSocket()
        transport = WebSocketTransport(ws, queue_size=1)
        transport.send({"event": "a"})

        transport.close(1000, "bye")
        transport.start()
        await transport.aclose()

        assert ws.sent == []
        assert ws.closed_with == (1000, "bye")

    @pytest.mark.asyncio
    async def test_send_after_close_raises(self):
        transport = WebSocketTransport(FakeWebSocket())
        transport.close()
        transport.close()

        assert transport.closed is True
        with pytest.raises(TransportError):
            transport.send({"event": "late"})

    @pytest.mark.asyncio
    async def test_aclose_without_close_cancels_writer(self):
        ws = FakeWebSocket()
        transport = WebSocketTransport(ws)
        transport.start()
        await asyncio.sleep(0)

        await transport.aclose()

        assert transport.closed is True
        assert ws.closed_with is None
