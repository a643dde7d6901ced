"""Messaging platform adapters.

Adapters live in their own modules; ``app.services.dispatch`` wires them up.
This package root only exposes the normalized records and errors so that core
services can import them without pulling in every adapter.
"""

from app.services.platforms.errors import (
    InvalidOutgoingMessageError,
    MalformedEventError,
    PlatformAPIError,
    PlatformError,
    PlatformNotConfiguredError,
    UnsupportedMessageTypeError,
    UnsupportedPlatformError,
)
from app.services.platforms.types import (
    ContentKind,
    CustomerIdentity,
    DecodedContent,
    DeliveryReceipt,
    InboundEvent,
    IngestedMessage,
    OutgoingMessage,
    ParsedEvent,
    WebhookResult,
)

__all__ = [
    "ContentKind",
    "CustomerIdentity",
    "DecodedContent",
    "DeliveryReceipt",
    "InboundEvent",
    "IngestedMessage",
    "OutgoingMessage",
    "ParsedEvent",
    "WebhookResult",
    "PlatformError",
    "PlatformAPIError",
    "PlatformNotConfiguredError",
    "InvalidOutgoingMessageError",
    "UnsupportedMessageTypeError",
    "UnsupportedPlatformError",
    "MalformedEventError",
]
