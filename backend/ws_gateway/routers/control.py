"""
Control surface: REST endpoints that drive the gateway.

Every endpoint calls exactly one Dispatch API or registry operation and
wraps the result in ``{"success": true, "data": ..., "message"?: ...}``.
Errors are rendered by the handlers in ``shared.utils.exceptions``.
"""

from contextlib import contextmanager
from typing import Any, Iterator

from fastapi import APIRouter, Body, Depends

from shared.config.logging import control_logger as logger
from shared.utils.exceptions import AppException, InternalError, NotFoundError
from ws_gateway.components.connection.registry import ConnectionNotFoundError
from ws_gateway.components.core.constants import utc_iso
from ws_gateway.components.core.dependencies import get_connection_manager
from ws_gateway.connection_manager import ConnectionManager
from ws_gateway.routers.schemas import (
    BroadcastRequest,
    DirectMessageRequest,
    DisconnectRequest,
    PublishRequest,
    RoomMessageRequest,
)

router = APIRouter(tags=["websocket"])

SENT_BY_SERVER = "server"


def _ok(data: Any, message: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True}
    if message is not None:
        body["message"] = message
    body["data"] = data
    return body


@contextmanager
def _operation(failure: str) -> Iterator[None]:
    """Turn unexpected errors into a 500 labelled with the failed operation."""
    try:
        yield
    except AppException:
        raise
    except Exception as e:
        logger.error(failure, error=str(e), exc_info=True)
        raise InternalError(failure, message=str(e), error_type=type(e).__name__) from e


# =============================================================================
# Queries
# =============================================================================


@router.get("/clients")
async def list_clients(manager: ConnectionManager = Depends(get_connection_manager)):
    with _operation("Failed to get clients info"):
        clients = manager.registry.list()
        return _ok({
            "count": len(clients),
            "clients": [c.to_dict() for c in clients],
        })


@router.get("/rooms/{room_name}/clients")
async def list_room_clients(
    room_name: str,
    manager: ConnectionManager = Depends(get_connection_manager),
):
    with _operation("Failed to get room clients"):
        members = sorted(manager.rooms.members_of(room_name))
        return _ok({"room": room_name, "count": len(members), "clients": members})


@router.get("/status")
async def get_status(manager: ConnectionManager = Depends(get_connection_manager)):
    with _operation("Failed to get WebSocket status"):
        return _ok({
            "status": "active",
            "connectedClients": manager.registry.count(),
            "uptime": round(manager.uptime, 3),
            "timestamp": utc_iso(),
        })


# =============================================================================
# Delivery
# =============================================================================


@router.post("/broadcast")
async def broadcast(
    body: BroadcastRequest,
    manager: ConnectionManager = Depends(get_connection_manager),
):
    with _operation("Failed to broadcast message"):
        manager.dispatcher.broadcast_all({
            "type": body.type,
            "message": body.message,
            "data": body.data,
            "sentBy": SENT_BY_SERVER,
            "sentAt": utc_iso(),
        })
        logger.info("Broadcast message sent", type=body.type)
        return _ok(
            {"type": body.type, "message": body.message, "clientCount": manager.registry.count()},
            message="Message broadcast successfully",
        )


@router.post("/rooms/{room_name}/message")
async def send_room_message(
    room_name: str,
    body: RoomMessageRequest,
    manager: ConnectionManager = Depends(get_connection_manager),
):
    with _operation("Failed to send room message"):
        manager.dispatcher.send_to_room(room_name, {
            "type": body.type,
            "message": body.message,
            "sentBy": SENT_BY_SERVER,
            "sentAt": utc_iso(),
        })
        client_count = len(manager.rooms.members_of(room_name))
        logger.info("Room message sent", room=room_name, client_count=client_count)
        return _ok(
            {"room": room_name, "message": body.message, "clientCount": client_count},
            message="Message sent to room successfully",
        )


@router.post("/clients/{socket_id}/message")
async def send_direct_message(
    socket_id: str,
    body: DirectMessageRequest,
    manager: ConnectionManager = Depends(get_connection_manager),
):
    with _operation("Failed to send direct message"):
        try:
            manager.dispatcher.send_to_connection(socket_id, {
                "message": body.message,
                "data": body.data,
                "sentBy": SENT_BY_SERVER,
                "sentAt": utc_iso(),
            })
        except ConnectionNotFoundError:
            raise NotFoundError("Client not found or disconnected", socket_id=socket_id) from None
        logger.info("Direct message sent", socket_id=socket_id)
        return _ok(
            {"socketId": socket_id, "message": body.message},
            message="Direct message sent successfully",
        )


@router.post("/publish")
async def publish_data(
    body: PublishRequest,
    manager: ConnectionManager = Depends(get_connection_manager),
):
    with _operation("Failed to publish data"):
        manager.dispatcher.publish_typed(body.type, body.data, body.filters)
        logger.info("Data published", type=body.type, filters=body.filters)
        return _ok(
            {"type": body.type, "filters": body.filters, "timestamp": utc_iso()},
            message="Data published successfully",
        )


# =============================================================================
# Lifecycle
# =============================================================================


@router.post("/clients/{socket_id}/disconnect")
async def disconnect_client(
    socket_id: str,
    body: DisconnectRequest | None = Body(default=None),
    manager: ConnectionManager = Depends(get_connection_manager),
):
    with _operation("Failed to disconnect client"):
        requested = body.reason if body else None
        try:
            reason = manager.dispatcher.disconnect(socket_id, requested)
        except ConnectionNotFoundError:
            raise NotFoundError("Client not found or already disconnected", socket_id=socket_id) from None
        logger.info("Client disconnected via API", socket_id=socket_id, reason=reason)
        return _ok(
            {"socketId": socket_id, "reason": reason},
            message="Client disconnected successfully",
        )
