"""Lead service - website contact form intake."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Lead, LeadStatus
from app.schemas.webhook import WordPressLeadPayload
from app.services.tracing import traced

logger = logging.getLogger(__name__)

WORDPRESS_SOURCE_DETAILS = "WordPress Contact Form"


@traced
async def create_wordpress_lead(db: AsyncSession, payload: WordPressLeadPayload) -> Lead:
    """Create a lead from a WordPress form submission."""
    lead = Lead(
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=payload.email,
        phone=payload.phone,
        company=payload.company,
        message=payload.message,
        source=payload.source,
        source_details=WORDPRESS_SOURCE_DETAILS,
        status=LeadStatus.NEW.value,
        priority="medium",
    )
    db.add(lead)
    await db.flush()
    await db.refresh(lead)
    logger.info(f"Created lead {lead.id} from {WORDPRESS_SOURCE_DETAILS}")
    return lead
