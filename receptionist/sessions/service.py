"""
Inbound-call session setup.

``create_or_get`` returns the live session for a call id or builds a new
one: bind the business snapshot, load its tool catalog, grant the initial
tools and render the instructions.
"""

import logging
from typing import Optional

from receptionist.conversation.stage_gate import StageGate
from receptionist.errors import ConfigurationError, SessionEndedError
from receptionist.interfaces import BusinessStore, PromptStore, ServiceStore
from receptionist.logging_context import set_call_context
from receptionist.prompts.system_prompts import (
    DEFAULT_PROMPT_TEMPLATE,
    PROMPT_KIND_RECEPTIONIST,
    render_instructions,
)
from receptionist.schemas.business_schema import Business
from receptionist.schemas.conversation_schema import Channel, SessionStatus
from receptionist.sessions.registry import SessionRegistry
from receptionist.sessions.session import Session
from receptionist.tools.catalog import ToolCatalog
from receptionist.utils import business_today, normalize_phone

logger = logging.getLogger(__name__)


class SessionService:
    def __init__(
        self,
        registry: SessionRegistry,
        business_store: BusinessStore,
        service_store: ServiceStore,
        prompt_store: PromptStore,
        catalog: ToolCatalog,
        stage_gate: StageGate,
        default_timezone: str = "Australia/Melbourne",
    ) -> None:
        self.registry = registry
        self.business_store = business_store
        self.service_store = service_store
        self.prompt_store = prompt_store
        self.catalog = catalog
        self.stage_gate = stage_gate
        self.default_timezone = default_timezone

    async def create_or_get(
        self,
        call_id: str,
        business: Business,
        channel: Channel = Channel.PHONE,
        customer_phone_number: Optional[str] = None,
    ) -> tuple[Session, bool]:
        """Return ``(session, created)`` for ``call_id``.

        An ended session still waiting for cleanup is never handed out again.
        """
        set_call_context(call_id, business.id)
        existing = await self.registry.get(call_id, business.id)
        if existing is not None:
            if existing.status == SessionStatus.ENDED:
                raise SessionEndedError(call_id)
            return existing, False

        session = Session(
            id=call_id,
            business=business,
            channel=channel,
            customer_phone_number=normalize_phone(customer_phone_number) if customer_phone_number else None,
        )
        await self.prepare(session)
        registered = await self.registry.add(session)
        return registered, registered is session

    async def create_for_account(
        self,
        call_id: str,
        account_id: str,
        channel: Channel = Channel.PHONE,
        customer_phone_number: Optional[str] = None,
    ) -> tuple[Session, bool]:
        """Resolve the business from the telephony account that received the call."""
        business = await self.business_store.get_business_by_external_account_id(account_id)
        if business is None:
            raise ConfigurationError(f"No business configured for account {account_id}")
        return await self.create_or_get(call_id, business, channel, customer_phone_number)

    async def prepare(self, session: Session) -> None:
        """Load tools and instructions. Store failures propagate."""
        names, definitions = await self.catalog.load_business_tools(session.business_id)
        session.load_tool_catalog(names, definitions)
        session.replace_granted_tools(self.stage_gate.initial_tools(session))

        prompt = await self.prompt_store.get_active_prompt(session.business_id, PROMPT_KIND_RECEPTIONIST)
        template = prompt.content if prompt is not None else DEFAULT_PROMPT_TEMPLATE
        if prompt is None:
            logger.warning("No active prompt for business %s; using default template", session.business_id)

        service_names = await self.service_store.list_service_names(session.business_id)
        session.set_instructions(render_instructions(
            template,
            session.business,
            service_names,
            self.business_store.build_customer_facing_info(session.business),
            session.all_tool_names,
            today=business_today(session.business.timezone or self.default_timezone),
        ))
        logger.info(
            "Prepared session %s: %d catalog tools, granted %s",
            session.id, len(session.all_tool_names), session.granted_tool_names(),
        )
