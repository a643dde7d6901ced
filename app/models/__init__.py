"""SQLAlchemy models for Omnidesk."""

from app.models.base import Base, TimestampMixin, UUIDMixin
from app.models.conversation import (
    Conversation,
    ConversationPriority,
    ConversationStatus,
    LastMessageFrom,
    Platform,
)
from app.models.customer import Customer, CustomerStatus
from app.models.function_trace import FunctionTrace, FunctionTraceType
from app.models.lead import Lead, LeadStatus
from app.models.message import (
    ImmutableMessageError,
    Message,
    MessageSenderType,
    MessageType,
)
from app.models.user import User

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    # Models
    "User",
    "Customer",
    "Conversation",
    "Message",
    "Lead",
    "FunctionTrace",
    # Enums
    "Platform",
    "ConversationStatus",
    "ConversationPriority",
    "LastMessageFrom",
    "CustomerStatus",
    "MessageSenderType",
    "MessageType",
    "LeadStatus",
    "FunctionTraceType",
    # Errors
    "ImmutableMessageError",
]
