"""Conversation model - one thread per (platform, platform_id)."""

import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, JSONType, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.customer import Customer
    from app.models.message import Message
    from app.models.user import User


class Platform(str, Enum):
    """Messaging platforms a conversation can live on."""

    WHATSAPP = "whatsapp"
    TELEGRAM = "telegram"
    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"
    EMAIL = "email"


class ConversationStatus(str, Enum):
    """Conversation status enum.

    Messages only ever move a conversation from NEW to IN_PROGRESS;
    RESOLVED and CLOSED are set by agents.
    """

    NEW = "new"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class ConversationPriority(str, Enum):
    """Conversation priority enum."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class LastMessageFrom(str, Enum):
    """Who sent the latest message."""

    CUSTOMER = "customer"
    AGENT = "agent"


class Conversation(Base, UUIDMixin, TimestampMixin):
    """A conversation thread on a single platform."""

    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("platform", "platform_id", name="uq_conversation_platform_platform_id"),
        Index("ix_conversations_last_message_at", "last_message_at"),
        Index("ix_conversations_assigned_to", "assigned_to"),
    )

    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    # Phone number, chat id, sender id or email address depending on platform
    platform_id: Mapped[str] = mapped_column(String(255), nullable=False)

    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(), ForeignKey("customers.id", ondelete="SET NULL"), nullable=True
    )
    assigned_to: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ConversationStatus.NEW.value
    )
    priority: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ConversationPriority.MEDIUM.value
    )

    last_message_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_message_from: Mapped[str | None] = mapped_column(String(20), nullable=True)
    unread_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # "metadata" is reserved on declarative classes
    meta: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False, default=dict)

    # Relationships
    customer: Mapped["Customer"] = relationship("Customer", back_populates="conversations")
    assignee: Mapped["User"] = relationship("User", back_populates="assigned_conversations")
    messages: Mapped[list["Message"]] = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.created_at",
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Conversation(id={self.id}, platform='{self.platform}', "
            f"platform_id='{self.platform_id}', status='{self.status}', unread={self.unread_count})>"
        )
