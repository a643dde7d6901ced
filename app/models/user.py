"""User model - CRM agents who answer conversations."""

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.conversation import Conversation


class User(Base, UUIDMixin, TimestampMixin):
    """A CRM agent. Credentials live in the auth service; this row is the identity."""

    __tablename__ = "users"

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    assigned_conversations: Mapped[list["Conversation"]] = relationship(
        "Conversation", back_populates="assignee"
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        """String representation."""
        return f"<User(id={self.id}, email='{self.email}')>"
