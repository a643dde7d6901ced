"""Customer schemas for API responses."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class CustomerSummary(BaseModel):
    """Customer as embedded in conversation responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    source: str
    status: str
    created_at: datetime
