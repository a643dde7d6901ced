"""Webhook schemas."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class WebhookAck(BaseModel):
    """Acknowledgement returned to platforms once a payload has been read."""

    status: str = "processed"
    processed: int = 0
    failed: int = 0
    ignored: int = 0


class WordPressLeadPayload(BaseModel):
    """Contact form submission posted by the WordPress site (camelCase keys)."""

    model_config = ConfigDict(populate_by_name=True)

    first_name: str = Field(..., min_length=1, validation_alias="firstName")
    last_name: str = Field("", validation_alias="lastName")
    email: str | None = None
    phone: str | None = None
    company: str | None = None
    message: str | None = None
    source: str = "website"


class LeadCreatedResponse(BaseModel):
    message: str = "Lead created successfully"
    lead_id: UUID
