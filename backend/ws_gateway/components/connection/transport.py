"""
Outbound transport for a single WebSocket connection.

Writes are fire-and-forget: ``send`` enqueues a frame on a bounded
per-connection queue and returns immediately. One writer task per connection
drains the queue in order, so frames reach a client in the order they were
dispatched and callers never wait on a slow socket.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Protocol, TYPE_CHECKING

from starlette.websockets import WebSocketState

from shared.config.logging import get_logger
from ws_gateway.components.core.constants import WSCloseCode, WSConstants

if TYPE_CHECKING:
    from fastapi import WebSocket

logger = get_logger(__name__)


class TransportError(RuntimeError):
    """A frame could not be handed to the transport."""


class Transport(Protocol):
    """Outbound side of a connection as seen by the registry and dispatcher."""

    @property
    def closed(self) -> bool: ...

    def send(self, frame: dict[str, Any] | str) -> None: ...

    def close(self, code: int = WSCloseCode.NORMAL, reason: str | None = None) -> None: ...


def is_ws_connected(ws: "WebSocket") -> bool:
    """
    Check if WebSocket is in connected state before sending.

    Starlette does not expose transitional states, so a connection may
    appear connected briefly after a disconnect was initiated.
    """
    return (
        ws.client_state == WebSocketState.CONNECTED
        and ws.application_state == WebSocketState.CONNECTED
    )


def encode_frame(frame: dict[str, Any]) -> str:
    """Serialize a frame as compact JSON."""
    return json.dumps(frame, separators=(",", ":"), default=str)


def send_frame(transport: Transport, frame: dict[str, Any], connection_id: str | None = None) -> bool:
    """
    Hand one frame to a transport without letting a failure escape.

    Returns:
        True if the frame was enqueued, False if this recipient failed.
    """
    try:
        transport.send(frame)
        return True
    except TransportError as e:
        logger.warning("Dropped frame for connection", connection_id=connection_id, error=str(e))
    except Exception as e:
        logger.error(
            "Unexpected error sending frame",
            connection_id=connection_id,
            error=str(e),
            exc_info=True,
        )
    return False


@dataclass(frozen=True, slots=True)
class _CloseRequest:
    code: int
    reason: str | None


class WebSocketTransport:
    """
    Queue-backed transport over a Starlette WebSocket.

    Call ``start()`` after the socket is accepted and ``aclose()`` when the
    endpoint exits.
    """

    def __init__(
        self,
        websocket: "WebSocket",
        queue_size: int = WSConstants.SEND_QUEUE_SIZE,
    ) -> None:
        self._websocket = websocket
        self._queue: asyncio.Queue[dict[str, Any] | str | _CloseRequest] = asyncio.Queue(maxsize=queue_size)
        self._writer: asyncio.Task | None = None
        self._closing = False
        self._frames_sent = 0

    @property
    def closed(self) -> bool:
        return self._closing

    @property
    def pending(self) -> int:
        """Frames waiting in the outbound queue."""
        return self._queue.qsize()

    @property
    def frames_sent(self) -> int:
        return self._frames_sent

    def start(self, name: str | None = None) -> None:
        """Start the writer task."""
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop(), name=name or "ws_writer")

    def send(self, frame: dict[str, Any] | str) -> None:
        """
        Enqueue a frame for delivery.

        Dict frames are JSON-encoded by the writer; strings are sent verbatim.

        Raises:
            TransportError: If the transport is closing or its queue is full.
        """
        if self._closing:
            raise TransportError("Transport is closed")
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            raise TransportError(
                f"Outbound queue full ({self._queue.maxsize} frames)"
            ) from None

    def close(self, code: int = WSCloseCode.NORMAL, reason: str | None = None) -> None:
        """
        Request closing the socket after the frames already queued.

        Idempotent. If the queue is full the pending frames are discarded so
        the close request always gets through.
        """
        if self._closing:
            return
        self._closing = True
        request = _CloseRequest(code=int(code), reason=reason)
        try:
            self._queue.put_nowait(request)
        except asyncio.QueueFull:
            dropped = 0
            while not self._queue.empty():
                self._queue.get_nowait()
                dropped += 1
            logger.warning("Dropped queued frames to close transport", dropped=dropped)
            self._queue.put_nowait(request)

    async def aclose(self, timeout: float = WSConstants.TRANSPORT_CLOSE_TIMEOUT) -> None:
        """
        Stop the writer task.

        If a close was requested the writer gets ``timeout`` seconds to flush
        and send the close frame; otherwise it is cancelled right away since
        the peer is already gone.
        """
        was_closing = self._closing
        self._closing = True
        writer = self._writer
        if writer is None or writer.done():
            return

        try:
            if was_closing:
                await asyncio.wait({writer}, timeout=timeout)
                if not writer.done():
                    logger.debug("Writer did not finish before timeout", pending=self.pending)
        finally:
            if not writer.done():
                writer.cancel()

    async def _write_loop(self) -> None:
        while True:
            item = await self._queue.get()

            if isinstance(item, _CloseRequest):
                if is_ws_connected(self._websocket):
                    try:
                        await self._websocket.close(code=item.code, reason=item.reason)
                    except (RuntimeError, OSError) as e:
                        logger.debug("Close failed", error=str(e))
                return

            if not is_ws_connected(self._websocket):
                self._closing = True
                return

            try:
                text = item if isinstance(item, str) else encode_frame(item)
                await self._websocket.send_text(text)
                self._frames_sent += 1
            except Exception as e:
                # Peer went away mid-write; the receive loop handles cleanup
                logger.debug("Send failed", error=str(e))
                self._closing = True
                return
