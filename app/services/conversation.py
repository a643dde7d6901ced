"""Conversation service - resolution of inbound events to threads, and inbox queries."""

from __future__ import annotations

import logging
import math
import uuid
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models import (
    Conversation,
    ConversationPriority,
    ConversationStatus,
    Customer,
    Message,
    Platform,
)
from app.models.base import utcnow
from app.services import customer as customer_service
from app.services.tracing import traced

if TYPE_CHECKING:
    from app.services.platforms.base import PlatformAdapter
    from app.services.platforms.types import InboundEvent

logger = logging.getLogger(__name__)

SORTABLE_COLUMNS = {
    "last_message_at": Conversation.last_message_at,
    "created_at": Conversation.created_at,
    "updated_at": Conversation.updated_at,
    "unread_count": Conversation.unread_count,
    "priority": Conversation.priority,
    "status": Conversation.status,
}


class ConversationNotFoundError(Exception):
    """Raised when a conversation id does not exist."""

    def __init__(self, conversation_id: UUID):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation {conversation_id} not found")


async def get_conversation(db: AsyncSession, conversation_id: UUID) -> Conversation | None:
    """Get conversation by ID with its customer loaded."""
    result = await db.execute(
        select(Conversation)
        .options(selectinload(Conversation.customer))
        .where(Conversation.id == conversation_id)
    )
    return result.scalar_one_or_none()


async def get_conversation_or_raise(db: AsyncSession, conversation_id: UUID) -> Conversation:
    conversation = await get_conversation(db, conversation_id)
    if conversation is None:
        raise ConversationNotFoundError(conversation_id)
    return conversation


async def get_conversation_detail(db: AsyncSession, conversation_id: UUID) -> Conversation | None:
    """Get a conversation with its customer and full message history."""
    result = await db.execute(
        select(Conversation)
        .options(selectinload(Conversation.customer), selectinload(Conversation.messages))
        .where(Conversation.id == conversation_id)
    )
    return result.scalar_one_or_none()


async def find_conversation(db: AsyncSession, platform: Platform, platform_id: str) -> Conversation | None:
    """Get the conversation for a (platform, platform_id) pair."""
    result = await db.execute(
        select(Conversation)
        .options(selectinload(Conversation.customer))
        .where(
            Conversation.platform == platform.value,
            Conversation.platform_id == platform_id,
        )
    )
    return result.scalar_one_or_none()


def _dialect_insert(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"Conversation upsert not supported on {dialect}")


@traced
async def resolve_conversation(
    db: AsyncSession,
    event: InboundEvent,
    adapter: PlatformAdapter | None = None,
) -> Conversation:
    """Find or create the conversation (and customer) for an inbound event.

    Creation is an INSERT ... ON CONFLICT DO NOTHING on the
    (platform, platform_id) unique constraint, so concurrent first deliveries
    for the same sender converge on one row. Only the writer whose insert
    landed links a customer.
    """
    conversation = await find_conversation(db, event.platform, event.platform_id)
    if conversation is not None:
        return conversation

    now = utcnow()
    insert = _dialect_insert(db)
    stmt = (
        insert(Conversation.__table__)
        .values(
            id=uuid.uuid4(),
            platform=event.platform.value,
            platform_id=event.platform_id,
            status=ConversationStatus.NEW.value,
            priority=ConversationPriority.MEDIUM.value,
            unread_count=0,
            metadata=event.conversation_metadata,
            created_at=now,
            updated_at=now,
        )
        .on_conflict_do_nothing(index_elements=["platform", "platform_id"])
    )
    result = await db.execute(stmt)
    inserted = result.rowcount == 1

    conversation = await find_conversation(db, event.platform, event.platform_id)
    if conversation is None:
        raise RuntimeError(
            f"Conversation for {event.platform.value}:{event.platform_id} vanished after upsert"
        )

    if not inserted:
        logger.info(f"Lost creation race for {event.platform.value}:{event.platform_id}, reusing {conversation.id}")
        return conversation

    customer = await customer_service.find_customer(db, event.customer.lookup)
    if customer is None:
        if adapter is not None:
            await adapter.enrich_customer(event)
        customer = await customer_service.get_or_create_customer(db, event.customer)

    conversation.customer_id = customer.id
    conversation.meta = event.conversation_metadata
    await db.flush()
    await db.refresh(conversation, ["customer"])
    logger.info(
        f"Created {event.platform.value} conversation {conversation.id} for customer {customer.id}"
    )
    return conversation


async def list_conversations(
    db: AsyncSession,
    *,
    platform: Platform | None = None,
    status: ConversationStatus | None = None,
    assigned_to: UUID | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
    sort_by: str = "last_message_at",
    sort_order: str = "desc",
) -> tuple[list[Conversation], int]:
    """List conversations for the inbox with filters and pagination.

    Returns:
        (conversations on this page, total matching conversations)
    """
    query = select(Conversation).outerjoin(Customer, Conversation.customer_id == Customer.id)

    if platform is not None:
        query = query.where(Conversation.platform == platform.value)
    if status is not None:
        query = query.where(Conversation.status == status.value)
    if assigned_to is not None:
        query = query.where(Conversation.assigned_to == assigned_to)
    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(
                Conversation.platform_id.ilike(pattern),
                Customer.first_name.ilike(pattern),
                Customer.last_name.ilike(pattern),
                Customer.email.ilike(pattern),
                Customer.phone.ilike(pattern),
            )
        )

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    column = SORTABLE_COLUMNS.get(sort_by, Conversation.last_message_at)
    ordering = column.asc() if sort_order == "asc" else column.desc()
    if sort_order == "asc":
        ordering = ordering.nulls_first()
    else:
        ordering = ordering.nulls_last()

    result = await db.execute(
        query.options(selectinload(Conversation.customer))
        .order_by(ordering, Conversation.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total or 0


async def latest_messages(db: AsyncSession, conversation_ids: list[UUID]) -> dict[UUID, Message]:
    """Latest message per conversation, for inbox previews."""
    if not conversation_ids:
        return {}

    ranked = (
        select(
            Message.id,
            func.row_number()
            .over(
                partition_by=Message.conversation_id,
                order_by=Message.created_at.desc(),
            )
            .label("rank"),
        )
        .where(Message.conversation_id.in_(conversation_ids))
        .subquery()
    )
    result = await db.execute(
        select(Message).join(ranked, Message.id == ranked.c.id).where(ranked.c.rank == 1)
    )
    return {message.conversation_id: message for message in result.scalars().all()}


def pagination(total: int, page: int, limit: int) -> dict[str, int]:
    return {"total": total, "page": page, "limit": limit, "pages": math.ceil(total / limit) if limit else 0}


@traced
async def assign_conversation(db: AsyncSession, conversation: Conversation, user_id: UUID | None) -> Conversation:
    """Assign (or unassign, with None) a conversation to an agent."""
    conversation.assigned_to = user_id
    await db.flush()
    await db.refresh(conversation)
    logger.info(f"Conversation {conversation.id} assigned to {user_id}")
    return conversation


@traced
async def update_conversation(
    db: AsyncSession,
    conversation: Conversation,
    status: ConversationStatus | None = None,
    priority: ConversationPriority | None = None,
) -> Conversation:
    """Apply an agent's status/priority change."""
    if status is not None:
        conversation.status = status.value
    if priority is not None:
        conversation.priority = priority.value
    await db.flush()
    await db.refresh(conversation)
    return conversation


async def assigned_conversation_ids(db: AsyncSession, user_id: UUID) -> list[UUID]:
    """Ids of conversations assigned to an agent (for realtime room joins)."""
    result = await db.execute(select(Conversation.id).where(Conversation.assigned_to == user_id))
    return list(result.scalars().all())


async def conversation_stats(db: AsyncSession) -> dict[str, Any]:
    """Counts per (platform, status) plus inbox totals."""
    rows = await db.execute(
        select(Conversation.platform, Conversation.status, func.count())
        .group_by(Conversation.platform, Conversation.status)
        .order_by(Conversation.platform, Conversation.status)
    )
    by_platform = [
        {"platform": platform, "status": status, "count": count} for platform, status, count in rows.all()
    ]
    total_unread = await db.scalar(select(func.coalesce(func.sum(Conversation.unread_count), 0)))
    total_conversations = await db.scalar(select(func.count()).select_from(Conversation))
    return {
        "by_platform": by_platform,
        "total_unread": int(total_unread or 0),
        "total_conversations": int(total_conversations or 0),
    }
