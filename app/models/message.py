"""Message model - append-only log of everything said in a conversation."""

import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text, Uuid, event, inspect
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, JSONType, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.conversation import Conversation


class MessageSenderType(str, Enum):
    """Message sender type enum."""

    CUSTOMER = "customer"
    AGENT = "agent"
    SYSTEM = "system"


class MessageType(str, Enum):
    """Message content type enum."""

    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    AUDIO = "audio"
    VIDEO = "video"
    LOCATION = "location"
    UNSUPPORTED = "unsupported"


class ImmutableMessageError(Exception):
    """Raised when code tries to rewrite an existing message."""


# Everything else on a message (read flags, metadata, platform id) may change
IMMUTABLE_FIELDS = ("conversation_id", "sender_type", "message_type", "content")


class Message(Base, UUIDMixin, TimestampMixin):
    """A single message in a conversation."""

    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_conversation_created", "conversation_id", "created_at"),
        Index("ix_messages_platform_message_id", "platform_message_id"),
    )

    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    sender_type: Mapped[str] = mapped_column(String(20), nullable=False)

    content: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MessageType.TEXT.value
    )

    # Not unique: receipts and retries can reference the same platform id
    platform_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    meta: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False, default=dict)

    # Relationships
    conversation: Mapped["Conversation"] = relationship("Conversation", back_populates="messages")

    def __repr__(self) -> str:
        """String representation."""
        content_preview = self.content[:50] + "..." if len(self.content) > 50 else self.content
        return (
            f"<Message(id={self.id}, sender_type='{self.sender_type}', "
            f"message_type='{self.message_type}', content='{content_preview}')>"
        )


@event.listens_for(Message, "before_update")
def _reject_content_changes(mapper, connection, target: Message) -> None:
    state = inspect(target)
    for field in IMMUTABLE_FIELDS:
        if state.attrs[field].history.has_changes():
            raise ImmutableMessageError(f"Message.{field} cannot be changed once stored")
