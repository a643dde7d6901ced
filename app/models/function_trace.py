"""FunctionTrace model - stores automatic function call traces for debugging.

Traces are captured by the @traced decorator. Every webhook delivery gets a
correlation id, so all calls made while ingesting one payload can be read back
in order.
"""

import uuid
from enum import Enum

from sqlalchemy import Boolean, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class FunctionTraceType(str, Enum):
    """Types of function traces."""

    SERVICE = "service"
    ADAPTER = "adapter"
    EXTERNAL_API = "external_api"


class FunctionTrace(Base, UUIDMixin, TimestampMixin):
    """Stores function call trace data captured by @traced decorator.

    Traces are grouped by correlation_id - all traces from a single request
    (e.g., webhook handler) share the same correlation_id.
    """

    __tablename__ = "function_traces"

    # Grouping - all traces from one request share this ID
    correlation_id: Mapped[uuid.UUID] = mapped_column(Uuid(), nullable=False, index=True)

    # Order within correlation
    sequence_number: Mapped[int] = mapped_column(Integer, nullable=False)

    # Function info
    function_name: Mapped[str] = mapped_column(String(255), nullable=False)
    module_path: Mapped[str] = mapped_column(String(255), nullable=False)
    trace_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=FunctionTraceType.SERVICE.value,
    )

    # Execution data
    input_summary: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    output_summary: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False)

    # Context
    platform: Mapped[str | None] = mapped_column(String(20), nullable=True)
    platform_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Error tracking
    is_error: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    error_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_func_trace_corr_seq", "correlation_id", "sequence_number"),
        Index("ix_func_trace_created", "created_at"),
        Index("ix_func_trace_platform", "platform", "platform_id"),
        Index("ix_func_trace_error", "is_error"),
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<FunctionTrace(id={self.id}, corr={self.correlation_id}, "
            f"func='{self.function_name}', seq={self.sequence_number}, "
            f"duration={self.duration_ms}ms, error={self.is_error})>"
        )
