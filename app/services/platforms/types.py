"""Normalized records exchanged between platform adapters and the core."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from app.models.conversation import Platform
from app.models.message import MessageType

if TYPE_CHECKING:
    from app.models import Conversation, Message

UNSUPPORTED_PLACEHOLDER = "[Unsupported message type]"


class ContentKind(str, Enum):
    """Shape of an inbound message body, decoded once per platform."""

    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    VOICE = "voice"
    VIDEO = "video"
    DOCUMENT = "document"
    LOCATION = "location"
    CONTACT = "contact"
    STICKER = "sticker"
    QUICK_REPLY = "quick_reply"
    ATTACHMENT = "attachment"
    UNSUPPORTED = "unsupported"


CONTENT_KIND_MESSAGE_TYPES: dict[ContentKind, MessageType] = {
    ContentKind.TEXT: MessageType.TEXT,
    ContentKind.IMAGE: MessageType.IMAGE,
    ContentKind.AUDIO: MessageType.AUDIO,
    ContentKind.VOICE: MessageType.AUDIO,
    ContentKind.VIDEO: MessageType.VIDEO,
    ContentKind.DOCUMENT: MessageType.FILE,
    ContentKind.LOCATION: MessageType.LOCATION,
    ContentKind.CONTACT: MessageType.TEXT,
    ContentKind.STICKER: MessageType.IMAGE,
    ContentKind.QUICK_REPLY: MessageType.TEXT,
    ContentKind.ATTACHMENT: MessageType.UNSUPPORTED,
    ContentKind.UNSUPPORTED: MessageType.UNSUPPORTED,
}


@dataclass(frozen=True)
class DecodedContent:
    """Displayable text plus the kind it was decoded from."""

    kind: ContentKind
    text: str

    @property
    def message_type(self) -> MessageType:
        return CONTENT_KIND_MESSAGE_TYPES[self.kind]

    @classmethod
    def unsupported(cls) -> DecodedContent:
        return cls(ContentKind.UNSUPPORTED, UNSUPPORTED_PLACEHOLDER)


@dataclass
class CustomerIdentity:
    """How to find the customer behind an event, and how to create one."""

    source: str
    lookup: dict[str, str]
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    notes: str | None = None


@dataclass
class InboundEvent:
    """A customer message, normalized."""

    platform: Platform
    platform_id: str
    content: DecodedContent
    sent_at: datetime
    customer: CustomerIdentity
    platform_message_id: str | None = None
    conversation_metadata: dict = field(default_factory=dict)
    message_metadata: dict = field(default_factory=dict)


@dataclass
class DeliveryReceipt:
    """Platform confirmation that previously sent messages changed state."""

    platform: Platform
    platform_message_ids: list[str]
    status: str
    at: datetime | None = None


ParsedEvent = InboundEvent | DeliveryReceipt


@dataclass
class OutgoingMessage:
    """An agent reply ready for a platform adapter.

    ``type`` is the platform send type (text, template, media, photo, ...);
    ``options`` carries the type-specific fields such as ``media_url`` or
    ``template_name``.
    """

    to: str
    content: str
    type: str = "text"
    options: dict = field(default_factory=dict)


@dataclass
class IngestedMessage:
    conversation: Conversation
    message: Message


@dataclass
class WebhookResult:
    """Per-delivery tally returned by ``process_webhook``."""

    processed: int = 0
    failed: int = 0
    ignored: int = 0
    ingested: list[IngestedMessage] = field(default_factory=list)

    def as_response(self) -> dict:
        return {
            "status": "processed",
            "processed": self.processed,
            "failed": self.failed,
            "ignored": self.ignored,
        }
