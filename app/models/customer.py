"""Customer model - the CRM contact behind one or more conversations."""

import uuid
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.conversation import Conversation


class CustomerStatus(str, Enum):
    """Sales pipeline status."""

    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    PROPOSAL = "proposal"
    CLOSED = "closed"
    LOST = "lost"


class Customer(Base, UUIDMixin, TimestampMixin):
    """A CRM customer.

    Messaging platforms identify customers by a platform handle. WhatsApp,
    Telegram, Facebook and Instagram keep that handle in ``phone`` (together
    with ``source`` for the non-WhatsApp platforms), email keeps it in
    ``email``.
    """

    __tablename__ = "customers"
    __table_args__ = (
        Index("ix_customers_phone_source", "phone", "source"),
        Index("ix_customers_email_source", "email", "source"),
    )

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(100), nullable=True)
    company: Mapped[str | None] = mapped_column(String(255), nullable=True)
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CustomerStatus.NEW.value
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    assigned_to: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    conversations: Mapped[list["Conversation"]] = relationship(
        "Conversation", back_populates="customer", passive_deletes=True
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        """String representation."""
        return f"<Customer(id={self.id}, name='{self.full_name}', source='{self.source}')>"
