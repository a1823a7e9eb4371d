"""
Pydantic schemas for the control surface.

Request bodies only; responses use the ``{success, data?, message?}``
envelope built in the router.
"""

from typing import Any

from pydantic import BaseModel, Field


class BroadcastRequest(BaseModel):
    message: str = Field(min_length=1)
    type: str = "general"
    data: Any = None


class RoomMessageRequest(BaseModel):
    message: str = Field(min_length=1)
    type: str = "room-message"


class DirectMessageRequest(BaseModel):
    message: str = Field(min_length=1)
    data: Any = None


class PublishRequest(BaseModel):
    type: str = Field(min_length=1)
    data: Any
    filters: dict[str, Any] = Field(default_factory=dict)


class DisconnectRequest(BaseModel):
    reason: str | None = None
