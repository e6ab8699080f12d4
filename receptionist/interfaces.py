"""Collaborator interfaces consumed by the orchestration core.

Persistence, pricing, calendars, payments and messaging live outside the
core. Implementations raise ``InfrastructureError`` (or any exception) on
storage or upstream failure; they never encode those failures as data.
"""

from typing import TYPE_CHECKING, Any, Optional, Protocol

from receptionist.schemas.booking_schema import (
    Booking,
    BookingOutcome,
    DayAvailability,
    PaymentLinkResult,
    QuoteRequest,
    QuoteResult,
)
from receptionist.schemas.business_schema import Business, PromptRecord, Service
from receptionist.schemas.conversation_schema import Interaction
from receptionist.schemas.customer_schema import CustomerLookup
from receptionist.schemas.tool_schema import Tool

if TYPE_CHECKING:
    from receptionist.sessions.session import Session


class BusinessStore(Protocol):
    async def get_business_by_external_account_id(self, account_id: str) -> Optional[Business]: ...

    async def get_business(self, business_id: str) -> Optional[Business]: ...

    def build_customer_facing_info(self, business: Business) -> str: ...


class ServiceStore(Protocol):
    async def list_service_names(self, business_id: str) -> list[str]: ...

    async def get_service(self, business_id: str, name: str) -> Optional[Service]: ...


class ToolCatalogStore(Protocol):
    async def list_active_tool_names(self, business_id: str) -> list[str]: ...

    async def get_tools_by_names(self, business_id: str, names: list[str]) -> list[Tool]: ...


class PromptStore(Protocol):
    async def get_active_prompt(self, business_id: str, prompt_kind: str) -> Optional[PromptRecord]: ...


class QuoteEngine(Protocol):
    async def calculate(self, request: QuoteRequest, service: Service, business: Business) -> QuoteResult: ...


class BookingEngine(Protocol):
    async def create_booking(
        self,
        quote_request: QuoteRequest,
        quote_result: QuoteResult,
        user_id: str,
        date: str,
        time: str,
    ) -> BookingOutcome: ...


class CustomerStore(Protocol):
    async def create_or_find_customer(self, data: dict[str, Any]) -> CustomerLookup: ...


class AvailabilityStore(Protocol):
    async def check_day(
        self, business: Business, date: str, estimated_minutes: Optional[int]
    ) -> DayAvailability: ...


class PaymentService(Protocol):
    async def create_payment_link(self, session: "Session") -> PaymentLinkResult: ...


class NotificationSender(Protocol):
    async def send_payment_link(self, session: "Session", date: str, time: str) -> bool: ...

    async def send_booking_confirmation(self, session: "Session", booking: Booking) -> bool: ...


class DurableSessionStore(Protocol):
    async def save(self, snapshot: dict[str, Any]) -> None: ...

    async def save_fields(self, session_id: str, business_id: str, fields: dict[str, Any]) -> None: ...

    async def load(self, session_id: str, business_id: str) -> Optional[dict[str, Any]]: ...

    async def delete(self, session_id: str, business_id: str) -> None: ...

    async def extend_ttl(self, session_id: str, business_id: str, seconds: int) -> None: ...


class SessionArchive(Protocol):
    async def archive(self, snapshot: dict[str, Any], interactions: list[Interaction]) -> None: ...
