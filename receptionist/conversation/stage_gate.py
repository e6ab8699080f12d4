"""
Tool-availability policies.

Two policies share one interface. ``RequestBasedPolicy`` starts small and
grows the granted set when the model asks for a tool by name.
``StageIndexedPolicy`` ties the granted set to the conversation stage and
swaps it wholesale as the stage advances. Both always keep the permanent
tools granted.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from receptionist.conversation.state_machine import STAGE_TOOLS, ConversationStage
from receptionist.interfaces import ServiceStore
from receptionist.schemas.business_schema import Service
from receptionist.schemas.tool_schema import Tool
from receptionist.sessions.session import Session
from receptionist.tools.catalog import INITIAL_REQUESTED_TOOLS, PERMANENT_TOOLS
from receptionist.tools.matching import FuzzyMatcher
from receptionist.tools.schema_resolver import DynamicSchemaResolver

logger = logging.getLogger(__name__)


class GrantOutcome(str, Enum):
    GRANTED = "granted"
    ALREADY_GRANTED = "already_granted"
    UNKNOWN = "unknown"
    MISSING_CONTEXT = "missing_context"
    STAGE_CLOSED = "stage_closed"


@dataclass(frozen=True)
class GrantResult:
    """Outcome of a grant request plus a caller-safe explanation."""
    outcome: GrantOutcome
    tool_name: str
    message: str
    tool: Optional[Tool] = None

    @property
    def available(self) -> bool:
        return self.outcome in (GrantOutcome.GRANTED, GrantOutcome.ALREADY_GRANTED)


class StageGate(ABC):
    """Decides which tools a session may use right now."""

    name: str = ""

    def __init__(
        self,
        service_store: ServiceStore,
        resolver: Optional[DynamicSchemaResolver] = None,
        matcher: Optional[FuzzyMatcher] = None,
    ) -> None:
        self.service_store = service_store
        self.resolver = resolver or DynamicSchemaResolver()
        self.matcher = matcher or FuzzyMatcher()

    def granted_tools_for(self, session: Session) -> list[Tool]:
        return list(session.granted_tools)

    @abstractmethod
    def initial_tools(self, session: Session) -> list[Tool]:
        """Tools exposed when the call starts."""

    @abstractmethod
    async def request_grant(
        self, session: Session, tool_name: str, service_name: Optional[str] = None
    ) -> GrantResult:
        """Handle an explicit request for ``tool_name``."""

    @abstractmethod
    def advance(self, session: Session, completed_tool_name: str) -> ConversationStage:
        """React to ``completed_tool_name`` succeeding."""

    def _definitions(self, session: Session, names: Sequence[str]) -> list[Tool]:
        tools = []
        for name in names:
            if not session.is_grantable(name):
                continue
            tool = session.tool_definition(name)
            if tool is None:
                logger.warning("No definition for grantable tool %s", name)
                continue
            tools.append(tool)
        return tools

    def _permanent(self, session: Session) -> list[Tool]:
        return self._definitions(session, PERMANENT_TOOLS)

    async def _find_service(self, session: Session, service_name: str) -> Optional[Service]:
        """Exact lookup first, then the closest service name the business offers."""
        service = await self.service_store.get_service(session.business_id, service_name)
        if service is not None:
            return service
        names = await self.service_store.list_service_names(session.business_id)
        match = self.matcher(service_name, names)
        if match is None:
            return None
        return await self.service_store.get_service(session.business_id, match)


class RequestBasedPolicy(StageGate):
    """Progressive injection: the model unlocks tools through ``request_tool``."""

    name = "request"

    def __init__(
        self,
        service_store: ServiceStore,
        resolver: Optional[DynamicSchemaResolver] = None,
        matcher: Optional[FuzzyMatcher] = None,
        bootstrap_tools: Sequence[str] = INITIAL_REQUESTED_TOOLS,
    ) -> None:
        super().__init__(service_store, resolver, matcher)
        self.bootstrap_tools = tuple(bootstrap_tools)

    def initial_tools(self, session: Session) -> list[Tool]:
        return self._definitions(session, [*self.bootstrap_tools, *PERMANENT_TOOLS])

    async def request_grant(
        self, session: Session, tool_name: str, service_name: Optional[str] = None
    ) -> GrantResult:
        tool_name = (tool_name or "").strip()
        service_name = (service_name or "").strip() or None
        tool = session.tool_definition(tool_name) if session.is_grantable(tool_name) else None
        if tool is None:
            return GrantResult(GrantOutcome.UNKNOWN, tool_name, f"{tool_name or 'That tool'} does not exist")

        existing = session.granted_tool(tool_name)
        if not tool.dynamic_parameters:
            if existing is not None:
                return GrantResult(GrantOutcome.ALREADY_GRANTED, tool_name, f"{tool_name} already available", existing)
            session.grant_tool(tool)
            logger.info("Granted %s to session %s", tool_name, session.id)
            return GrantResult(GrantOutcome.GRANTED, tool_name, f"{tool_name} ready. Continue with your request.", tool)

        if existing is not None and (
            service_name is None or (existing.service_name or "").casefold() == service_name.casefold()
        ):
            return GrantResult(GrantOutcome.ALREADY_GRANTED, tool_name, f"{tool_name} already available", existing)
        if service_name is None:
            return GrantResult(
                GrantOutcome.MISSING_CONTEXT,
                tool_name,
                f"service_name is required when requesting {tool_name}. "
                "Please specify which service the customer needs based on the conversation.",
            )

        service = await self._find_service(session, service_name)
        if service is None:
            names = await self.service_store.list_service_names(session.business_id)
            return GrantResult(
                GrantOutcome.MISSING_CONTEXT,
                tool_name,
                f"Service '{service_name}' not found. Available services: {', '.join(names) or 'none'}",
            )
        if existing is not None and existing.service_name == service.name:
            return GrantResult(GrantOutcome.ALREADY_GRANTED, tool_name, f"{tool_name} already available", existing)

        resolved = self.resolver.resolve(tool, service)
        session.select_service(service)
        session.grant_tool(resolved)
        logger.info("Granted %s for service %s to session %s", tool_name, service.name, session.id)
        return GrantResult(
            GrantOutcome.GRANTED,
            tool_name,
            f"{tool_name} ready for {service.name}. Continue with your request.",
            resolved,
        )

    def advance(self, session: Session, completed_tool_name: str) -> ConversationStage:
        return session.stage


class StageIndexedPolicy(StageGate):
    """Stage-driven exposure: each stage has a fixed tool set."""

    name = "stage"

    def initial_tools(self, session: Session) -> list[Tool]:
        return self.tools_for_stage(session, session.stage)

    def tools_for_stage(self, session: Session, stage: ConversationStage) -> list[Tool]:
        tools = []
        for tool in self._definitions(session, STAGE_TOOLS[stage]):
            if tool.dynamic_parameters and session.selected_service is not None:
                tool = self.resolver.resolve(tool, session.selected_service)
            tools.append(tool)
        return tools + self._permanent(session)

    async def request_grant(
        self, session: Session, tool_name: str, service_name: Optional[str] = None
    ) -> GrantResult:
        tool_name = (tool_name or "").strip()
        if not session.is_grantable(tool_name) or session.tool_definition(tool_name) is None:
            return GrantResult(GrantOutcome.UNKNOWN, tool_name, f"{tool_name or 'That tool'} does not exist")
        existing = session.granted_tool(tool_name)
        if existing is not None:
            return GrantResult(GrantOutcome.ALREADY_GRANTED, tool_name, f"{tool_name} already available", existing)
        return GrantResult(
            GrantOutcome.STAGE_CLOSED,
            tool_name,
            f"{tool_name} is not available at the {session.stage.value.replace('_', ' ')} step. "
            "Finish the current step first.",
        )

    def advance(self, session: Session, completed_tool_name: str) -> ConversationStage:
        before = session.stage
        after = session.advance_stage(completed_tool_name)
        if after != before:
            session.replace_granted_tools(self.tools_for_stage(session, after))
            logger.info(
                "Session %s advanced %s -> %s; tools: %s",
                session.id, before.value, after.value, session.granted_tool_names(),
            )
        return after


POLICIES: dict[str, type[StageGate]] = {
    RequestBasedPolicy.name: RequestBasedPolicy,
    StageIndexedPolicy.name: StageIndexedPolicy,
}


def build_stage_gate(
    policy: str,
    service_store: ServiceStore,
    resolver: Optional[DynamicSchemaResolver] = None,
    matcher: Optional[FuzzyMatcher] = None,
) -> StageGate:
    try:
        gate_cls = POLICIES[policy]
    except KeyError:
        raise ValueError(f"Unknown tool policy {policy!r}; expected one of {sorted(POLICIES)}") from None
    return gate_cls(service_store, resolver=resolver, matcher=matcher)
