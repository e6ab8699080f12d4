"""Business, service and prompt records loaded from the business stores."""

from pydantic import BaseModel, Field
from typing import Optional


class Business(BaseModel):
    """Snapshot of a tenant business taken at call start."""
    id: str
    name: str
    business_type: str = "home services"
    external_account_id: Optional[str] = None
    timezone: str = "Australia/Melbourne"
    phone_number: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    service_area: Optional[str] = None
    hours: Optional[str] = None
    deposit_percentage: float = 0.0


class Service(BaseModel):
    """A bookable service with the extra fields a quote for it needs."""
    id: str
    business_id: str
    name: str
    description: str = ""
    requirements: list[str] = Field(default_factory=list)
    job_scope_options: list[str] = Field(default_factory=list)
    pricing_summary: Optional[str] = None
    estimated_duration_minutes: Optional[int] = None


class PromptRecord(BaseModel):
    """Active system prompt template for a business."""
    content: str
    name: str
    version: str = "1"
