"""Message store - append-only message log plus the conversation aggregates it drives.

Every write that adds a message also updates the owning conversation's
last-message fields, unread counter and status in one UPDATE statement so
concurrent deliveries cannot lose increments.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import (
    Conversation,
    ConversationStatus,
    LastMessageFrom,
    Message,
    MessageSenderType,
    MessageType,
)
from app.models.base import utcnow
from app.services.tracing import traced

if TYPE_CHECKING:
    from app.services.platforms.types import DeliveryReceipt, InboundEvent

logger = logging.getLogger(__name__)


async def _touch_conversation(
    db: AsyncSession,
    conversation: Conversation,
    *,
    at: datetime,
    sender: LastMessageFrom,
    increment_unread: bool,
) -> None:
    values: dict[str, Any] = {
        "last_message_at": at,
        "last_message_from": sender.value,
        # A message only ever advances NEW; agent-set states are kept
        "status": case(
            (Conversation.status == ConversationStatus.NEW.value, ConversationStatus.IN_PROGRESS.value),
            else_=Conversation.status,
        ),
        "updated_at": utcnow(),
    }
    if increment_unread:
        values["unread_count"] = Conversation.unread_count + 1

    await db.execute(
        update(Conversation)
        .where(Conversation.id == conversation.id)
        .values(**values)
    )
    await db.refresh(conversation)


@traced
async def record_inbound_message(db: AsyncSession, conversation: Conversation, event: InboundEvent) -> Message:
    """Store a customer message and bump the conversation's unread state."""
    message = Message(
        conversation_id=conversation.id,
        sender_type=MessageSenderType.CUSTOMER.value,
        content=event.content.text,
        message_type=event.content.message_type.value,
        platform_message_id=event.platform_message_id,
        is_read=False,
        meta={"content_kind": event.content.kind.value, **event.message_metadata},
    )
    db.add(message)
    await db.flush()

    await _touch_conversation(
        db, conversation, at=event.sent_at, sender=LastMessageFrom.CUSTOMER, increment_unread=True
    )
    await db.refresh(message)
    return message


@traced
async def record_agent_message(
    db: AsyncSession,
    conversation: Conversation,
    agent_id: UUID | None,
    content: str,
    message_type: MessageType = MessageType.TEXT,
    metadata: dict | None = None,
) -> Message:
    """Store an agent reply. Agent messages are born read."""
    now = utcnow()
    message = Message(
        conversation_id=conversation.id,
        sender_id=agent_id,
        sender_type=MessageSenderType.AGENT.value,
        content=content,
        message_type=message_type.value,
        is_read=True,
        read_at=now,
        meta=dict(metadata or {}),
    )
    db.add(message)
    await db.flush()

    await _touch_conversation(db, conversation, at=now, sender=LastMessageFrom.AGENT, increment_unread=False)
    await db.refresh(message)
    return message


async def attach_delivery_ack(
    db: AsyncSession, message: Message, platform_message_id: str | None, ack: dict
) -> Message:
    """Record the platform's acknowledgement on an outbound message."""
    message.platform_message_id = platform_message_id
    message.meta = {
        **message.meta,
        "platform_response": ack,
        "delivery_status": "sent",
    }
    await db.flush()
    return message


async def record_delivery_failure(db: AsyncSession, message: Message, error: Exception) -> Message:
    """Mark an outbound message as not delivered. The message itself stays."""
    message.meta = {
        **message.meta,
        "delivery_status": "failed",
        "delivery_error": f"{type(error).__name__}: {error}"[:500],
    }
    await db.flush()
    return message


@traced
async def apply_delivery_receipt(db: AsyncSession, receipt: DeliveryReceipt) -> int:
    """Attach a delivery/read receipt to the messages it refers to.

    Returns:
        Number of messages updated
    """
    result = await db.execute(
        select(Message)
        .join(Conversation, Message.conversation_id == Conversation.id)
        .where(
            Conversation.platform == receipt.platform.value,
            Message.platform_message_id.in_(receipt.platform_message_ids),
        )
    )
    messages = list(result.scalars().all())
    for message in messages:
        message.meta = {
            **message.meta,
            "delivery_status": receipt.status,
            "delivery_updated_at": receipt.at.isoformat() if receipt.at else None,
        }
    await db.flush()

    if not messages:
        logger.debug(f"No {receipt.platform.value} messages match receipt {receipt.platform_message_ids}")
    return len(messages)


@traced
async def mark_conversation_read(db: AsyncSession, conversation: Conversation) -> int:
    """Zero the unread counter and mark all unread messages read.

    Returns:
        Number of messages flipped to read
    """
    now = utcnow()
    result = await db.execute(
        update(Message)
        .where(Message.conversation_id == conversation.id, Message.is_read.is_(False))
        .values(is_read=True, read_at=now)
    )
    await db.execute(
        update(Conversation)
        .where(Conversation.id == conversation.id)
        .values(unread_count=0, updated_at=now)
    )
    await db.refresh(conversation)
    return result.rowcount or 0


async def mark_message_read(db: AsyncSession, message_id: UUID) -> Message | None:
    """Mark a single message read, decrementing its conversation's counter."""
    message = await db.get(Message, message_id)
    if message is None or message.is_read:
        return message

    message.is_read = True
    message.read_at = utcnow()
    await db.flush()

    if message.sender_type == MessageSenderType.CUSTOMER.value:
        await db.execute(
            update(Conversation)
            .where(Conversation.id == message.conversation_id, Conversation.unread_count > 0)
            .values(unread_count=Conversation.unread_count - 1)
        )
    return message


async def list_messages(
    db: AsyncSession, conversation_id: UUID, page: int = 1, limit: int = 50
) -> tuple[list[Message], int]:
    """Messages of a conversation in display order (oldest first)."""
    total = await db.scalar(
        select(func.count()).select_from(Message).where(Message.conversation_id == conversation_id)
    )
    result = await db.execute(
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.asc(), Message.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total or 0
