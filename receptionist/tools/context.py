"""Collaborators handed to every tool handler."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Optional

from receptionist.conversation.stage_gate import StageGate
from receptionist.interfaces import (
    AvailabilityStore,
    BookingEngine,
    CustomerStore,
    NotificationSender,
    PaymentService,
    QuoteEngine,
    ServiceStore,
)
from receptionist.sessions.session import Session
from receptionist.telemetry import LoggingTelemetry, SafeTelemetry, Telemetry
from receptionist.tools.matching import FuzzyMatcher

logger = logging.getLogger(__name__)


@dataclass
class ToolDependencies:
    service_store: ServiceStore
    quote_engine: QuoteEngine
    availability_store: AvailabilityStore
    customer_store: CustomerStore
    booking_engine: BookingEngine
    payment_service: PaymentService
    notifications: NotificationSender
    stage_gate: StageGate
    matcher: FuzzyMatcher = field(default_factory=FuzzyMatcher)
    telemetry: Telemetry = field(default_factory=lambda: SafeTelemetry(LoggingTelemetry()))
    default_timezone: str = "Australia/Melbourne"
    _background: set[asyncio.Task] = field(default_factory=set, repr=False)

    def timezone_for(self, session: Session) -> str:
        return session.business.timezone or self.default_timezone

    def spawn(self, coro: Awaitable[Any], label: str, session: Optional[Session] = None) -> asyncio.Task:
        """Run ``coro`` without awaiting it; failures are logged and reported, never raised."""
        task = asyncio.ensure_future(coro)
        self._background.add(task)

        def _done(t: asyncio.Task) -> None:
            self._background.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.warning("Background %s failed: %s", label, exc)
                self.telemetry.report_error(exc, {
                    "operation": label,
                    "session_id": session.id if session else None,
                    "business_id": session.business_id if session else None,
                })

        task.add_done_callback(_done)
        return task

    async def drain(self) -> None:
        """Wait for outstanding background work, e.g. before shutdown."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
