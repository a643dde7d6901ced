"""Trace context management using contextvars.

Context variables propagate through awaits, so every @traced call made while
handling one webhook delivery lands under the same correlation_id.
"""

from contextvars import ContextVar
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from app.models.function_trace import FunctionTrace


_correlation_id: ContextVar[UUID | None] = ContextVar("correlation_id", default=None)
_platform: ContextVar[str | None] = ContextVar("platform", default=None)
_platform_id: ContextVar[str | None] = ContextVar("platform_id", default=None)
_sequence_counter: ContextVar[int] = ContextVar("sequence_counter", default=0)
_pending_traces: ContextVar[list["FunctionTrace"] | None] = ContextVar(
    "pending_traces", default=None
)


def start_trace_context(platform: str | None = None, platform_id: str | None = None) -> UUID:
    """Initialize trace context at request start. Returns correlation_id."""
    corr_id = uuid4()
    _correlation_id.set(corr_id)
    _platform.set(platform)
    _platform_id.set(platform_id)
    _sequence_counter.set(0)
    _pending_traces.set([])
    return corr_id


def get_correlation_id() -> UUID | None:
    """Get the current correlation ID, or None if no trace context."""
    return _correlation_id.get()


def get_platform() -> str | None:
    return _platform.get()


def get_platform_id() -> str | None:
    return _platform_id.get()


def set_platform_id(platform_id: str | None) -> None:
    """Update the platform id once an event has been parsed.

    A single webhook payload may carry events for several conversations, so
    this is set per event rather than at request start.
    """
    _platform_id.set(platform_id)


def get_next_sequence_number() -> int:
    """Get and increment the sequence counter."""
    seq = _sequence_counter.get()
    _sequence_counter.set(seq + 1)
    return seq


def add_pending_trace(trace: "FunctionTrace") -> None:
    """Add a trace to the pending list for later persistence."""
    traces = _pending_traces.get()
    if traces is not None:
        traces.append(trace)


async def save_pending_traces(db: "AsyncSession") -> int:
    """Persist all pending traces. Call before the request's final commit.

    Returns:
        Number of traces saved
    """
    traces = _pending_traces.get()
    if not traces:
        return 0

    db.add_all(traces)
    await db.flush()
    _pending_traces.set([])
    return len(traces)


def clear_trace_context() -> None:
    """Clear all trace context. Call after saving traces."""
    _correlation_id.set(None)
    _platform.set(None)
    _platform_id.set(None)
    _sequence_counter.set(0)
    _pending_traces.set(None)
