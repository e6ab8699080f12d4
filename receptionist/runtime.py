"""
Wiring for one receptionist process.

Builds the shared components once (registry, pool, stage gate, dispatcher,
session service) and hands out a RealtimeBridge per inbound call. Nothing
here is a module-level singleton; entry points construct a ``Receptionist``
and pass it where it is needed.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from receptionist.backends import memory
from receptionist.config import AppConfig
from receptionist.conversation.stage_gate import StageGate, build_stage_gate
from receptionist.errors import ConfigurationError
from receptionist.realtime.bridge import Connector, RealtimeBridge
from receptionist.realtime.pool import ConnectionPool
from receptionist.schemas.conversation_schema import Channel
from receptionist.sessions.redis_store import RedisSessionStore
from receptionist.sessions.registry import SessionRegistry
from receptionist.sessions.service import SessionService
from receptionist.telemetry import LoggingTelemetry, SafeTelemetry, Telemetry
from receptionist.tools.catalog import ToolCatalog
from receptionist.tools.context import ToolDependencies
from receptionist.tools.dispatcher import ToolDispatcher
from receptionist.tools.matching import FuzzyMatcher
from receptionist.utils import extract_phone_from_sip

logger = logging.getLogger(__name__)


@dataclass
class Receptionist:
    config: AppConfig
    registry: SessionRegistry
    sessions: SessionService
    stage_gate: StageGate
    deps: ToolDependencies
    dispatcher: ToolDispatcher
    pool: Optional[ConnectionPool]
    telemetry: Telemetry

    async def start_call(
        self,
        call_id: str,
        account_id: str,
        caller: Optional[str] = None,
        channel: Channel = Channel.PHONE,
        connector: Optional[Connector] = None,
    ) -> RealtimeBridge:
        """Create (or fetch) the session for an inbound call and build its bridge."""
        if self.pool is None:
            raise ConfigurationError("No upstream credentials configured; set OPENAI_API_KEYS")
        phone = extract_phone_from_sip(caller) if caller and "sip:" in caller else caller
        session, created = await self.sessions.create_for_account(call_id, account_id, channel, phone)
        logger.info("Call %s %s session for business %s", call_id, "created" if created else "resumed", session.business_id)
        return RealtimeBridge(
            session,
            self.dispatcher,
            self.pool,
            self.config.realtime,
            telemetry=self.telemetry,
            connector=connector,
        )

    async def shutdown(self) -> None:
        await self.deps.drain()
        await self.registry.drain()
        store = self.registry.store
        if isinstance(store, RedisSessionStore):
            await store.close()


def build_receptionist(
    config: AppConfig,
    telemetry: Optional[Telemetry] = None,
    business_store=None,
    service_store=None,
    tool_store=None,
    prompt_store=None,
    quote_engine=None,
    availability_store=None,
    customer_store=None,
    booking_engine=None,
    payment_service=None,
    notifications=None,
    session_store=None,
    archive=None,
) -> Receptionist:
    """Assemble a Receptionist; any collaborator left as None gets its in-memory version."""
    telemetry = SafeTelemetry(telemetry or LoggingTelemetry())
    service_store = service_store or memory.InMemoryServiceStore()
    business_store = business_store or memory.InMemoryBusinessStore()

    if session_store is None and config.session.redis_url:
        session_store = RedisSessionStore.from_url(
            config.session.redis_url,
            ttl_seconds=config.session.ttl_seconds,
            key_prefix=config.session.key_prefix,
        )

    registry = SessionRegistry(
        store=session_store,
        archive=archive,
        telemetry=telemetry,
        cleanup_delay_sec=config.session.cleanup_delay_sec,
        ttl_seconds=config.session.ttl_seconds,
        sync_retries=config.session.sync_retries,
        sync_retry_delay_sec=config.session.sync_retry_delay_sec,
    )
    matcher = FuzzyMatcher(config.tools.fuzzy_threshold)
    gate = build_stage_gate(config.tools.policy, service_store, matcher=matcher)
    deps = ToolDependencies(
        service_store=service_store,
        quote_engine=quote_engine or memory.SimpleQuoteEngine(),
        availability_store=availability_store or memory.InMemoryAvailabilityStore(),
        customer_store=customer_store or memory.InMemoryCustomerStore(),
        booking_engine=booking_engine or memory.InMemoryBookingEngine(),
        payment_service=payment_service or memory.InMemoryPaymentService(),
        notifications=notifications or memory.RecordingNotificationSender(),
        stage_gate=gate,
        matcher=matcher,
        telemetry=telemetry,
        default_timezone=config.tools.default_timezone,
    )
    sessions = SessionService(
        registry,
        business_store,
        service_store,
        prompt_store or memory.InMemoryPromptStore(),
        ToolCatalog(tool_store or memory.InMemoryToolCatalogStore()),
        gate,
        default_timezone=config.tools.default_timezone,
    )
    pool = ConnectionPool(config.pool.api_keys) if config.pool.api_keys else None
    return Receptionist(
        config=config,
        registry=registry,
        sessions=sessions,
        stage_gate=gate,
        deps=deps,
        dispatcher=ToolDispatcher(deps, telemetry=telemetry),
        pool=pool,
        telemetry=telemetry,
    )
