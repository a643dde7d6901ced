"""Customer service - lookup and creation of CRM customers for platform senders."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Customer
from app.services.tracing import traced

if TYPE_CHECKING:
    from app.services.platforms.types import CustomerIdentity

logger = logging.getLogger(__name__)

# Columns a platform may use to identify its senders
LOOKUP_COLUMNS = {"phone", "email", "source"}


async def get_customer(db: AsyncSession, customer_id: UUID) -> Customer | None:
    """Get customer by ID."""
    result = await db.execute(select(Customer).where(Customer.id == customer_id))
    return result.scalar_one_or_none()


async def find_customer(db: AsyncSession, lookup: dict[str, str]) -> Customer | None:
    """Find the oldest customer matching every lookup column."""
    unknown = set(lookup) - LOOKUP_COLUMNS
    if unknown:
        raise ValueError(f"Unsupported customer lookup columns: {sorted(unknown)}")

    query = select(Customer)
    for column, value in lookup.items():
        query = query.where(getattr(Customer, column) == value)
    result = await db.execute(query.order_by(Customer.created_at).limit(1))
    return result.scalar_one_or_none()


@traced
async def get_or_create_customer(db: AsyncSession, identity: CustomerIdentity) -> Customer:
    """Get the customer behind a platform identity, creating it on first contact.

    Customers are not unique per identity at the database level; duplicates
    are tolerated and the oldest match wins.
    """
    customer = await find_customer(db, identity.lookup)
    if customer:
        return customer

    customer = Customer(
        first_name=identity.first_name,
        last_name=identity.last_name,
        email=identity.email,
        phone=identity.phone,
        source=identity.source,
        notes=identity.notes,
    )
    db.add(customer)
    await db.flush()
    await db.refresh(customer)
    logger.info(f"Created {identity.source} customer {customer.id} ({customer.full_name})")
    return customer
