"""Pydantic schemas for the Omnidesk API."""

from app.schemas.conversation import (
    AssignConversationRequest,
    ConversationDetail,
    ConversationListResponse,
    ConversationResponse,
    ConversationStats,
    ConversationSummary,
    ReadConversationResponse,
    UpdateConversationRequest,
)
from app.schemas.customer import CustomerSummary
from app.schemas.message import (
    DeliveryStatus,
    MessageListResponse,
    MessageResponse,
    SendMessageRequest,
    SendMessageResponse,
)
from app.schemas.webhook import LeadCreatedResponse, WebhookAck, WordPressLeadPayload

__all__ = [
    # Conversation
    "ConversationResponse",
    "ConversationSummary",
    "ConversationDetail",
    "ConversationListResponse",
    "ConversationStats",
    "AssignConversationRequest",
    "UpdateConversationRequest",
    "ReadConversationResponse",
    # Customer
    "CustomerSummary",
    # Message
    "MessageResponse",
    "MessageListResponse",
    "SendMessageRequest",
    "SendMessageResponse",
    "DeliveryStatus",
    # Webhooks
    "WebhookAck",
    "WordPressLeadPayload",
    "LeadCreatedResponse",
]
