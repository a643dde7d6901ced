"""The @traced decorator for automatic function call tracing.

Usage:
    @traced
    async def record_inbound_message(db, conversation, event):
        ...

    @traced(trace_type="external_api", capture_args=["outgoing"])
    async def send_message(self, outgoing):
        ...
"""

import asyncio
import functools
import time
from typing import Any, Callable, ParamSpec, TypeVar

from app.models.function_trace import FunctionTrace, FunctionTraceType
from app.services.tracing.context import (
    add_pending_trace,
    get_correlation_id,
    get_next_sequence_number,
    get_platform,
    get_platform_id,
)
from app.services.tracing.sanitize import build_input_summary, build_output_summary

P = ParamSpec("P")
T = TypeVar("T")


def _record(
    fn: Callable,
    trace_type: str,
    seq: int,
    input_summary: dict,
    output_summary: dict,
    started: float,
    error: BaseException | None,
) -> None:
    add_pending_trace(
        FunctionTrace(
            correlation_id=get_correlation_id(),
            sequence_number=seq,
            function_name=fn.__name__,
            module_path=fn.__module__,
            trace_type=trace_type,
            input_summary=input_summary,
            output_summary=output_summary,
            duration_ms=int((time.perf_counter() - started) * 1000),
            platform=get_platform(),
            platform_id=get_platform_id(),
            is_error=error is not None,
            error_type=type(error).__name__ if error else None,
            error_message=str(error)[:500] if error else None,
        )
    )


def traced(
    func: Callable[P, T] | None = None,
    *,
    trace_type: str = FunctionTraceType.SERVICE.value,
    capture_args: list[str] | None = None,
) -> Callable[P, T] | Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator to automatically trace function calls.

    Works with and without arguments, on sync and async functions. Outside a
    trace context (no correlation id) the function runs untouched.

    Args:
        func: The function to decorate (when used without parentheses)
        trace_type: Type of trace ("service", "adapter", "external_api")
        capture_args: List of argument names to capture (None = all)
    """

    def decorator(fn: Callable[P, T]) -> Callable[P, T]:
        if asyncio.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> Any:
                if get_correlation_id() is None:
                    return await fn(*args, **kwargs)

                input_summary = build_input_summary(fn, args, kwargs, capture_args)
                seq = get_next_sequence_number()
                started = time.perf_counter()
                output_summary: dict = {}
                error: BaseException | None = None
                try:
                    result = await fn(*args, **kwargs)
                    output_summary = build_output_summary(result)
                    return result
                except Exception as e:
                    error = e
                    raise
                finally:
                    _record(fn, trace_type, seq, input_summary, output_summary, started, error)

            return async_wrapper

        @functools.wraps(fn)
        def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> Any:
            if get_correlation_id() is None:
                return fn(*args, **kwargs)

            input_summary = build_input_summary(fn, args, kwargs, capture_args)
            seq = get_next_sequence_number()
            started = time.perf_counter()
            output_summary: dict = {}
            error: BaseException | None = None
            try:
                result = fn(*args, **kwargs)
                output_summary = build_output_summary(result)
                return result
            except Exception as e:
                error = e
                raise
            finally:
                _record(fn, trace_type, seq, input_summary, output_summary, started, error)

        return sync_wrapper

    if func is not None:
        return decorator(func)
    return decorator
