"""Conversation schemas for API requests and responses."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models import ConversationPriority, ConversationStatus
from app.schemas.customer import CustomerSummary
from app.schemas.message import MessageResponse


class ConversationResponse(BaseModel):
    """Schema for conversation API responses."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: UUID
    platform: str
    platform_id: str
    status: str
    priority: str
    assigned_to: UUID | None = None
    customer_id: UUID | None = None
    last_message_at: datetime | None = None
    last_message_from: str | None = None
    unread_count: int
    metadata: dict = Field(default_factory=dict, validation_alias="meta")
    created_at: datetime
    updated_at: datetime


class ConversationSummary(ConversationResponse):
    """Inbox row: conversation, customer and latest message."""

    customer: CustomerSummary | None = None
    last_message: MessageResponse | None = None


class ConversationDetail(ConversationResponse):
    """Conversation with its customer and full message history."""

    customer: CustomerSummary | None = None
    messages: list[MessageResponse] = Field(default_factory=list)


class ConversationListResponse(BaseModel):
    conversations: list[ConversationSummary]
    pagination: dict[str, int]


class AssignConversationRequest(BaseModel):
    """Assign to an agent; null unassigns."""

    assigned_to: UUID | None = None


class UpdateConversationRequest(BaseModel):
    """Schema for status/priority updates - all fields optional."""

    status: ConversationStatus | None = None
    priority: ConversationPriority | None = None


class ReadConversationResponse(BaseModel):
    conversation: ConversationResponse
    marked_read: int


class PlatformStatusCount(BaseModel):
    platform: str
    status: str
    count: int


class ConversationStats(BaseModel):
    by_platform: list[PlatformStatusCount]
    total_unread: int
    total_conversations: int
