"""
In-memory collaborators.

These stand in for the business database, pricing engine, calendar, CRM,
payments and SMS so the core can run end to end in the console demo and in
tests. In production each is replaced by a client for the real system.
"""

import logging
import uuid
from datetime import date as date_cls
from typing import TYPE_CHECKING, Any, Iterable, Optional

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
from receptionist.schemas.customer_schema import Customer, CustomerLookup
from receptionist.schemas.tool_schema import Tool
from receptionist.tools.catalog import DEFAULT_TOOLS
from receptionist.utils import normalize_phone

if TYPE_CHECKING:
    from receptionist.sessions.session import Session

logger = logging.getLogger(__name__)

DEMO_BUSINESS = Business(
    id="biz-reliable",
    name="Reliable Home Services",
    business_type="pool and home services",
    external_account_id="AC-demo",
    timezone="Australia/Melbourne",
    phone_number="+61390000000",
    service_area="Greater Melbourne metro area",
    hours="Monday to Friday 8am to 6pm, Saturday 9am to 2pm, closed Sunday",
    deposit_percentage=0.2,
)

DEMO_SERVICES: tuple[Service, ...] = (
    Service(
        id="svc-pool-cleaning",
        business_id=DEMO_BUSINESS.id,
        name="Pool Cleaning",
        description="Skimming, vacuuming, filter clean and water balancing.",
        requirements=["customer_address", "square_meters"],
        job_scope_options=["Standard clean", "Green pool recovery"],
        pricing_summary="From $120 per visit",
        estimated_duration_minutes=90,
    ),
    Service(
        id="svc-pool-repairs",
        business_id=DEMO_BUSINESS.id,
        name="Pool Repairs",
        description="Pump, filter, heater and leak repairs.",
        requirements=["customer_address"],
        job_scope_options=["Pump", "Filter", "Heater", "Leak detection"],
        pricing_summary="$150 call-out plus parts",
        estimated_duration_minutes=120,
    ),
    Service(
        id="svc-furniture-removal",
        business_id=DEMO_BUSINESS.id,
        name="Furniture Removal",
        description="Moving furniture between homes or to storage.",
        requirements=["pickup_addresses", "dropoff_addresses", "number_of_people", "number_of_rooms"],
        pricing_summary="$95 per mover per hour",
        estimated_duration_minutes=180,
    ),
)

# Rates used by SimpleQuoteEngine, keyed by service id
BASE_RATES: dict[str, float] = {
    "svc-pool-cleaning": 120.0,
    "svc-pool-repairs": 150.0,
    "svc-furniture-removal": 190.0,
}
PER_UNIT_RATES: dict[str, float] = {
    "square_meters": 1.5,
    "number_of_people": 95.0,
    "number_of_rooms": 40.0,
    "number_of_vehicles": 120.0,
}

OPEN_HOURS_WEEKDAY = ["08:00", "09:00", "10:00", "11:00", "13:00", "14:00", "15:00", "16:00"]
OPEN_HOURS_SATURDAY = ["09:00", "10:00", "11:00", "12:00", "13:00"]


class InMemoryBusinessStore:
    def __init__(self, businesses: Iterable[Business] = (DEMO_BUSINESS,)) -> None:
        self._businesses = {b.id: b for b in businesses}

    async def get_business_by_external_account_id(self, account_id: str) -> Optional[Business]:
        return next(
            (b for b in self._businesses.values() if b.external_account_id == account_id), None
        )

    async def get_business(self, business_id: str) -> Optional[Business]:
        return self._businesses.get(business_id)

    def build_customer_facing_info(self, business: Business) -> str:
        lines = [f"Business name: {business.name}"]
        if business.hours:
            lines.append(f"Hours: {business.hours}")
        if business.service_area:
            lines.append(f"Service area: {business.service_area}")
        if business.phone_number:
            lines.append(f"Phone: {business.phone_number}")
        return "\n".join(lines)


class InMemoryServiceStore:
    def __init__(self, services: Iterable[Service] = DEMO_SERVICES) -> None:
        self._services: dict[str, dict[str, Service]] = {}
        for service in services:
            self._services.setdefault(service.business_id, {})[service.name] = service

    async def list_service_names(self, business_id: str) -> list[str]:
        return list(self._services.get(business_id, {}))

    async def get_service(self, business_id: str, name: str) -> Optional[Service]:
        return self._services.get(business_id, {}).get(name)


class InMemoryToolCatalogStore:
    def __init__(self, tools: Iterable[Tool] = DEFAULT_TOOLS, active: Optional[dict[str, list[str]]] = None) -> None:
        self._tools = {tool.name: tool for tool in tools}
        self._active = active

    async def list_active_tool_names(self, business_id: str) -> list[str]:
        if self._active is not None:
            return list(self._active.get(business_id, []))
        return list(self._tools)

    async def get_tools_by_names(self, business_id: str, names: list[str]) -> list[Tool]:
        return [self._tools[name] for name in names if name in self._tools]


class InMemoryPromptStore:
    def __init__(self, prompts: Optional[dict[tuple[str, str], PromptRecord]] = None) -> None:
        self._prompts = dict(prompts or {})

    async def get_active_prompt(self, business_id: str, prompt_kind: str) -> Optional[PromptRecord]:
        return self._prompts.get((business_id, prompt_kind))


class SimpleQuoteEngine:
    """Base rate per service plus per-unit charges for numeric requirements."""

    async def calculate(self, request: QuoteRequest, service: Service, business: Business) -> QuoteResult:
        total = BASE_RATES.get(service.id, 100.0)
        for name, value in request.requirements.items():
            rate = PER_UNIT_RATES.get(name)
            if rate is None:
                continue
            try:
                total += rate * float(value)
            except (TypeError, ValueError):
                continue
        if request.job_scope and "recovery" in request.job_scope.lower():
            total *= 1.5
        total = round(total, 2)
        return QuoteResult(
            quote_id=f"Q-{uuid.uuid4().hex[:6].upper()}",
            total_estimate_amount=total,
            deposit_amount=round(total * business.deposit_percentage, 2),
            total_estimate_time_minutes=service.estimated_duration_minutes,
        )


class InMemoryAvailabilityStore:
    """Weekday and Saturday slots; Sundays and explicitly booked-out days are closed."""

    def __init__(self, booked_out: Iterable[str] = ()) -> None:
        self.booked_out = set(booked_out)

    async def check_day(self, business: Business, date: str, estimated_minutes: Optional[int]) -> DayAvailability:
        day = date_cls.fromisoformat(date)
        if day.weekday() == 6 or date in self.booked_out:
            return DayAvailability(
                date=date, available=False, message="No availability for this date, please try another date."
            )
        slots = OPEN_HOURS_SATURDAY if day.weekday() == 5 else OPEN_HOURS_WEEKDAY
        if estimated_minutes and estimated_minutes > 180:
            slots = [slot for slot in slots if slot < "12:00"]
        return DayAvailability(date=date, available=True, slots=list(slots))


class InMemoryCustomerStore:
    def __init__(self) -> None:
        self.customers: dict[str, Customer] = {}

    async def create_or_find_customer(self, data: dict[str, Any]) -> CustomerLookup:
        phone = normalize_phone(data["phone_number"])
        existing = self.customers.get(phone)
        if existing is not None:
            logger.debug("Returning customer found: %s", existing.id)
            return CustomerLookup(customer=existing, is_existing=True)
        customer = Customer(
            id=f"CU-{uuid.uuid4().hex[:8]}",
            first_name=data["first_name"],
            last_name=data.get("last_name"),
            phone_number=phone,
        )
        self.customers[phone] = customer
        return CustomerLookup(customer=customer, is_existing=False)


class InMemoryBookingEngine:
    def __init__(self) -> None:
        self.bookings: dict[str, Booking] = {}

    async def create_booking(
        self,
        quote_request: QuoteRequest,
        quote_result: QuoteResult,
        user_id: str,
        date: str,
        time: str,
    ) -> BookingOutcome:
        taken = any(b.date == date and b.time == time for b in self.bookings.values())
        if taken:
            return BookingOutcome(success=False, error=f"{date} at {time} was just taken. Please choose another time.")
        booking = Booking(
            id=f"BK-{uuid.uuid4().hex[:6].upper()}",
            quote_id=quote_result.quote_id,
            customer_id=user_id,
            date=date,
            time=time,
        )
        self.bookings[booking.id] = booking
        return BookingOutcome(success=True, booking=booking)


class InMemoryPaymentService:
    async def create_payment_link(self, session: "Session") -> PaymentLinkResult:
        quote_id = session.selected_quote.quote_id if session.selected_quote else "none"
        return PaymentLinkResult(success=True, payment_link=f"https://pay.example.com/{session.id}/{quote_id}")


class RecordingNotificationSender:
    """Keeps every message it would have sent."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def send_payment_link(self, session: "Session", date: str, time: str) -> bool:
        self.sent.append({"kind": "payment_link", "session_id": session.id, "date": date, "time": time})
        return True

    async def send_booking_confirmation(self, session: "Session", booking: Booking) -> bool:
        self.sent.append({"kind": "booking_confirmation", "session_id": session.id, "booking_id": booking.id})
        return True


class InMemorySessionStore:
    """DurableSessionStore kept in a dict; TTLs are recorded, not enforced."""

    def __init__(self) -> None:
        self.records: dict[tuple[str, str], dict[str, Any]] = {}
        self.ttls: dict[tuple[str, str], int] = {}

    async def save(self, snapshot: dict[str, Any]) -> None:
        self.records.setdefault((snapshot["id"], snapshot["business_id"]), {}).update(snapshot)

    async def save_fields(self, session_id: str, business_id: str, fields: dict[str, Any]) -> None:
        self.records.setdefault((session_id, business_id), {}).update(fields)

    async def load(self, session_id: str, business_id: str) -> Optional[dict[str, Any]]:
        record = self.records.get((session_id, business_id))
        return dict(record) if record else None

    async def delete(self, session_id: str, business_id: str) -> None:
        self.records.pop((session_id, business_id), None)

    async def extend_ttl(self, session_id: str, business_id: str, seconds: int) -> None:
        self.ttls[(session_id, business_id)] = seconds


class InMemorySessionArchive:
    def __init__(self) -> None:
        self.archived: list[tuple[dict[str, Any], list[Interaction]]] = []

    async def archive(self, snapshot: dict[str, Any], interactions: list[Interaction]) -> None:
        self.archived.append((snapshot, interactions))
