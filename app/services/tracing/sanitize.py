"""Input/output sanitization for trace data.

Webhook payloads carry customer text and contact details, so traces keep
truncated summaries only and mask anything that looks like a credential.
"""

import dataclasses
import inspect
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable
from uuid import UUID

MAX_STRING_LENGTH = 200
MAX_COLLECTION_ITEMS = 10
MAX_DEPTH = 3

# Case-insensitive partial match on field names
SENSITIVE_FIELDS = {
    "password",
    "token",
    "secret",
    "api_key",
    "apikey",
    "authorization",
    "credential",
}

# Arguments that are infrastructure, not data
SKIPPED_ARGS = {"self", "cls", "db"}


def is_sensitive_field(name: str) -> bool:
    """Check if a field name suggests sensitive data."""
    name_lower = name.lower()
    return any(sensitive in name_lower for sensitive in SENSITIVE_FIELDS)


def _truncate(value: str) -> str:
    if len(value) > MAX_STRING_LENGTH:
        return value[:MAX_STRING_LENGTH] + f"... ({len(value)} chars)"
    return value


def _sanitize_mapping(items: list[tuple[Any, Any]], depth: int) -> dict:
    result = {
        str(k): sanitize_value(v, field_name=str(k), depth=depth + 1)
        for k, v in items[:MAX_COLLECTION_ITEMS]
    }
    if len(items) > MAX_COLLECTION_ITEMS:
        result["_truncated"] = True
        result["_total"] = len(items)
    return result


def sanitize_value(value: Any, field_name: str = "", depth: int = 0) -> Any:
    """Reduce a value to a small, JSON-serializable summary."""
    if field_name and is_sensitive_field(field_name):
        return "[REDACTED]"
    if depth > MAX_DEPTH:
        return f"<{type(value).__name__}>"

    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, str):
        return _truncate(value)
    if isinstance(value, bytes):
        return f"<bytes: {len(value)} bytes>"
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()

    if isinstance(value, (list, tuple, set)):
        items = [sanitize_value(v, depth=depth + 1) for v in list(value)[:MAX_COLLECTION_ITEMS]]
        if len(value) > MAX_COLLECTION_ITEMS:
            return {"_type": type(value).__name__, "_truncated": True, "_total": len(value), "items": items}
        return items

    if isinstance(value, dict):
        return _sanitize_mapping(list(value.items()), depth)

    # Normalized events and outgoing messages
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        fields = [(f.name, getattr(value, f.name)) for f in dataclasses.fields(value)]
        return {"_type": type(value).__name__, **_sanitize_mapping(fields, depth)}

    if hasattr(value, "model_dump"):
        return {"_type": type(value).__name__, **_sanitize_mapping(list(value.model_dump().items()), depth)}

    # ORM rows: identity only
    if hasattr(value, "__tablename__"):
        return {"_type": type(value).__name__, "id": str(value.id) if getattr(value, "id", None) else None}

    return f"<{type(value).__name__}>"


def build_input_summary(
    func: Callable,
    args: tuple,
    kwargs: dict,
    capture_args: list[str] | None = None,
) -> dict:
    """Build a sanitized summary of function inputs keyed by parameter name."""
    try:
        params = list(inspect.signature(func).parameters.keys())
    except (ValueError, TypeError):
        params = []

    named = [
        (params[i] if i < len(params) else f"arg_{i}", arg) for i, arg in enumerate(args)
    ]
    named.extend(kwargs.items())

    return {
        name: sanitize_value(value, field_name=name)
        for name, value in named
        if name not in SKIPPED_ARGS and (capture_args is None or name in capture_args)
    }


def build_output_summary(result: Any) -> dict:
    """Build a sanitized summary of a function's return value."""
    sanitized = sanitize_value(result)
    if isinstance(sanitized, dict):
        return sanitized
    if isinstance(sanitized, list):
        return {"_items": sanitized}
    return {"_value": sanitized}
