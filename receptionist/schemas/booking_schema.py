"""Quote, payment, availability and booking data models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class QuoteRequest(BaseModel):
    """What the caller asked to be priced."""
    service_name: str
    job_scope: Optional[str] = None
    requirements: dict[str, Any] = Field(default_factory=dict)


class QuoteResult(BaseModel):
    """Priced quote returned by the quote engine."""
    quote_id: str
    total_estimate_amount: float
    deposit_amount: float = 0.0
    total_estimate_time_minutes: Optional[int] = None
    currency: str = "AUD"
    breakdown: dict[str, Any] = Field(default_factory=dict)


class QuoteRecord(BaseModel):
    """A request and its result, as kept on the session."""
    request: QuoteRequest
    result: QuoteResult

    @property
    def quote_id(self) -> str:
        return self.result.quote_id


class DepositPaymentState(BaseModel):
    """Deposit owed on the selected quote."""
    status: PaymentStatus = PaymentStatus.PENDING
    quote_id: str
    amount: float
    payment_link: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PaymentLinkResult(BaseModel):
    success: bool
    payment_link: Optional[str] = None
    error: Optional[str] = None


class DayAvailability(BaseModel):
    """Calendar availability for a single day."""
    date: str
    available: bool
    slots: list[str] = Field(default_factory=list)
    message: str = ""


class Booking(BaseModel):
    """Confirmed booking record."""
    id: str
    quote_id: str
    customer_id: str
    date: str
    time: str
    status: str = "confirmed"


class BookingOutcome(BaseModel):
    """Result from the booking engine; failures carry a caller-safe error."""
    success: bool
    booking: Optional[Booking] = None
    error: Optional[str] = None
