"""Tracing infrastructure for automatic function call capture.

Usage:
    from app.services.tracing import traced, start_trace_context, save_pending_traces

    # At webhook entry:
    correlation_id = start_trace_context(platform="telegram")

    @traced
    async def resolve_conversation(db, event, adapter):
        ...

    # Before commit:
    await save_pending_traces(db)
"""

from app.services.tracing.context import (
    clear_trace_context,
    get_correlation_id,
    get_platform,
    get_platform_id,
    save_pending_traces,
    set_platform_id,
    start_trace_context,
)
from app.services.tracing.decorator import traced

__all__ = [
    "traced",
    "start_trace_context",
    "get_correlation_id",
    "get_platform",
    "get_platform_id",
    "set_platform_id",
    "save_pending_traces",
    "clear_trace_context",
]
