"""Message schemas for API requests and responses."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models import MessageType


class MessageResponse(BaseModel):
    """Schema for message API responses."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: UUID
    conversation_id: UUID
    sender_id: UUID | None = None
    sender_type: str
    content: str
    message_type: str
    platform_message_id: str | None = None
    is_read: bool
    read_at: datetime | None = None
    metadata: dict = Field(default_factory=dict, validation_alias="meta")
    created_at: datetime


class SendMessageRequest(BaseModel):
    """An agent reply.

    ``send_type`` picks the platform payload (text, template, media, photo,
    document, location, html); ``options`` holds its extra fields such as
    ``media_url``, ``template_name`` or ``subject``.
    """

    conversation_id: UUID
    content: str = Field(..., min_length=1)
    message_type: MessageType = MessageType.TEXT
    send_type: str = "text"
    options: dict = Field(default_factory=dict)


class DeliveryStatus(BaseModel):
    status: Literal["sent", "failed"]
    error: str | None = None


class SendMessageResponse(BaseModel):
    """The stored agent message plus the outcome of the platform send."""

    message: MessageResponse
    delivery: DeliveryStatus


class MessageListResponse(BaseModel):
    messages: list[MessageResponse]
    pagination: dict[str, int]
