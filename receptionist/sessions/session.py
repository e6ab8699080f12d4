"""
Per-call session aggregate.

The session is mutated only through its methods. Methods that touch a
sync-worthy field notify registered listeners with the field name and a
JSON-ready copy of the new value, which is how the registry schedules
durable writes without intercepting attribute access.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from receptionist.conversation.state_machine import ConversationStage, ConversationStateMachine
from receptionist.errors import ConfigurationError
from receptionist.schemas.booking_schema import DepositPaymentState, QuoteRecord, QuoteRequest
from receptionist.schemas.business_schema import Business, Service
from receptionist.schemas.conversation_schema import (
    Channel,
    Interaction,
    PendingToolExecution,
    SessionStatus,
    TokenUsage,
)
from receptionist.schemas.customer_schema import Customer
from receptionist.schemas.tool_schema import Tool
from receptionist.tools.catalog import PERMANENT_TOOLS

logger = logging.getLogger(__name__)

SYNC_FIELDS: frozenset[str] = frozenset({
    "quotes",
    "selected_quote",
    "selected_service",
    "customer",
    "customer_id",
    "granted_tools",
    "interactions",
    "token_usage",
    "status",
    "deposit_payment_state",
    "pending_tool_execution",
    "ai_instructions",
    "stage",
})

FieldListener = Callable[["Session", str, Any], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _dump(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple)):
        return [_dump(item) for item in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "value") and isinstance(getattr(value, "value"), str):
        return value.value
    return value


@dataclass(eq=False)
class Session:
    """
    Aggregate root for one live call.

    Owned by a single event-processing flow. ``business`` is the snapshot
    taken at call start; ``all_tool_names`` is the business's catalog and
    ``tool_definitions`` holds the matching Tool records (plus the permanent
    tools) so stage changes never need a store round-trip.
    """

    id: str
    business: Business
    channel: Channel = Channel.PHONE
    customer_phone_number: Optional[str] = None
    customer_id: Optional[str] = None
    customer: Optional[Customer] = None
    status: SessionStatus = SessionStatus.ACTIVE
    all_tool_names: list[str] = field(default_factory=list)
    tool_definitions: dict[str, Tool] = field(default_factory=dict, repr=False)
    granted_tools: list[Tool] = field(default_factory=list)
    ai_instructions: str = ""
    quotes: list[QuoteRecord] = field(default_factory=list)
    selected_quote: Optional[QuoteRecord] = None
    selected_quote_request: Optional[QuoteRequest] = None
    selected_service: Optional[Service] = None
    deposit_payment_state: Optional[DepositPaymentState] = None
    pending_tool_execution: Optional[PendingToolExecution] = None
    interactions: list[Interaction] = field(default_factory=list)
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    started_at: datetime = field(default_factory=_utcnow)
    ended_at: Optional[datetime] = None
    duration_in_minutes: Optional[float] = None
    connection_handle: Optional[Any] = field(default=None, repr=False)
    state_machine: ConversationStateMachine = field(default_factory=ConversationStateMachine, repr=False)
    _listeners: list[FieldListener] = field(default_factory=list, repr=False)

    @property
    def business_id(self) -> str:
        return self.business.id

    @property
    def stage(self) -> ConversationStage:
        return self.state_machine.current_stage

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    # --- change notification ---

    def add_listener(self, listener: FieldListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: FieldListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _changed(self, field_name: str) -> None:
        if field_name not in SYNC_FIELDS or not self._listeners:
            return
        value = self.serialize_field(field_name)
        for listener in list(self._listeners):
            try:
                listener(self, field_name, value)
            except Exception:
                logger.exception("Session listener failed for field %s", field_name)

    def serialize_field(self, field_name: str) -> Any:
        if field_name == "stage":
            return self.stage.value
        return _dump(getattr(self, field_name))

    # --- tools ---

    def load_tool_catalog(self, names: Iterable[str], definitions: Iterable[Tool]) -> None:
        """Bind the business's tool catalog. Called once while preparing the session."""
        self.all_tool_names = list(names)
        self.tool_definitions = {tool.name: tool for tool in definitions}

    def is_grantable(self, tool_name: str) -> bool:
        return tool_name in PERMANENT_TOOLS or tool_name in self.all_tool_names

    def tool_definition(self, tool_name: str) -> Optional[Tool]:
        return self.tool_definitions.get(tool_name)

    def granted_tool(self, tool_name: str) -> Optional[Tool]:
        for tool in self.granted_tools:
            if tool.name == tool_name:
                return tool
        return None

    def granted_tool_names(self) -> list[str]:
        return [tool.name for tool in self.granted_tools]

    def tool_inventory_signature(self) -> tuple[tuple[str, str], ...]:
        """Identity of the exposed inventory; changes whenever a tool or its schema changes."""
        return tuple((tool.name, tool.version) for tool in self.granted_tools)

    def grant_tool(self, tool: Tool) -> None:
        """Expose ``tool``, replacing any granted tool with the same name in place."""
        if not self.is_grantable(tool.name):
            raise ConfigurationError(
                f"Tool '{tool.name}' is not in the catalog for business {self.business_id}"
            )
        for index, existing in enumerate(self.granted_tools):
            if existing.name == tool.name:
                self.granted_tools[index] = tool
                break
        else:
            self.granted_tools.append(tool)
        self._changed("granted_tools")

    def replace_granted_tools(self, tools: Iterable[Tool]) -> None:
        tools = list(tools)
        for tool in tools:
            if not self.is_grantable(tool.name):
                raise ConfigurationError(
                    f"Tool '{tool.name}' is not in the catalog for business {self.business_id}"
                )
        by_name: dict[str, Tool] = {}
        for tool in tools:
            by_name.setdefault(tool.name, tool)
        self.granted_tools = list(by_name.values())
        self._changed("granted_tools")

    # --- conversation progress ---

    def advance_stage(self, tool_name: str) -> ConversationStage:
        before = self.stage
        after = self.state_machine.advance(tool_name)
        if after != before:
            self._changed("stage")
        return after

    def set_instructions(self, instructions: str) -> None:
        self.ai_instructions = instructions
        self._changed("ai_instructions")

    def select_service(self, service: Service) -> None:
        self.selected_service = service
        self._changed("selected_service")

    # --- customer ---

    def bind_customer(self, customer: Customer) -> None:
        self.customer = customer
        self.customer_id = customer.id
        self._changed("customer")
        self._changed("customer_id")

    # --- quotes and payment ---

    def add_quote(self, record: QuoteRecord) -> None:
        """Append a quote and make it the active selection."""
        self.quotes.append(record)
        self._changed("quotes")
        self.selected_quote = record
        self.selected_quote_request = record.request
        self._changed("selected_quote")

    def find_quote(self, quote_id: str) -> Optional[QuoteRecord]:
        for record in self.quotes:
            if record.quote_id == quote_id:
                return record
        return None

    def select_quote(self, quote_id: str) -> Optional[QuoteRecord]:
        """Select a quote already in ``quotes``; unknown ids leave the selection untouched."""
        record = self.find_quote(quote_id)
        if record is None:
            return None
        self.selected_quote = record
        self.selected_quote_request = record.request
        self._changed("selected_quote")
        return record

    def set_deposit_payment_state(self, state: Optional[DepositPaymentState]) -> None:
        self.deposit_payment_state = state
        self._changed("deposit_payment_state")

    # --- interactions and tool executions ---

    def add_interaction(self, interaction: Interaction) -> Interaction:
        """Append a turn. While a tool result is pending, the turn is annotated with it."""
        pending = self.pending_tool_execution
        if pending is not None and interaction.tool_name is None:
            interaction = self._annotated(interaction, pending)
        self.interactions.append(interaction)
        self._changed("interactions")
        return interaction

    def record_tool_execution(self, pending: PendingToolExecution) -> None:
        """Mark ``pending`` as in flight and annotate the latest turn with it."""
        self.pending_tool_execution = pending
        self._changed("pending_tool_execution")
        if self.interactions:
            self.interactions[-1] = self._annotated(self.interactions[-1], pending)
            self._changed("interactions")

    def clear_pending_tool_execution(self) -> None:
        if self.pending_tool_execution is None:
            return
        self.pending_tool_execution = None
        self._changed("pending_tool_execution")

    @staticmethod
    def _annotated(interaction: Interaction, pending: PendingToolExecution) -> Interaction:
        return interaction.model_copy(update={
            "tool_name": pending.name,
            "tool_call_id": pending.call_id,
            "tool_result": pending.result,
            "tool_schema_version": pending.schema_version,
        })

    def add_token_usage(self, usage: dict[str, Any]) -> None:
        self.token_usage = self.token_usage.add(usage)
        self._changed("token_usage")

    # --- transport and lifecycle ---

    def attach_connection(self, handle: Any) -> None:
        self.connection_handle = handle

    def detach_connection(self) -> Any:
        handle, self.connection_handle = self.connection_handle, None
        return handle

    def end(self, now: Optional[datetime] = None) -> bool:
        """Move to ``ended``. Returns False when the session had already ended."""
        if self.status == SessionStatus.ENDED:
            return False
        self.ended_at = now or _utcnow()
        self.duration_in_minutes = round(
            max((self.ended_at - self.started_at).total_seconds(), 0.0) / 60.0, 2
        )
        self.status = SessionStatus.ENDED
        logger.info(
            "Session %s ended after %.2f minutes (stages: %s)",
            self.id, self.duration_in_minutes, " -> ".join(self.state_machine.get_stage_trace()),
        )
        self._changed("status")
        return True

    # --- persistence ---

    def to_snapshot(self) -> dict[str, Any]:
        """JSON-ready copy of everything needed to rebuild the session elsewhere."""
        return {
            "id": self.id,
            "business_id": self.business_id,
            "business": _dump(self.business),
            "channel": self.channel.value,
            "customer_phone_number": self.customer_phone_number,
            "customer_id": self.customer_id,
            "customer": _dump(self.customer),
            "status": self.status.value,
            "stage": self.stage.value,
            "all_tool_names": list(self.all_tool_names),
            "tool_definitions": [_dump(t) for t in self.tool_definitions.values()],
            "granted_tools": _dump(self.granted_tools),
            "ai_instructions": self.ai_instructions,
            "quotes": _dump(self.quotes),
            "selected_quote": _dump(self.selected_quote),
            "selected_service": _dump(self.selected_service),
            "deposit_payment_state": _dump(self.deposit_payment_state),
            "pending_tool_execution": _dump(self.pending_tool_execution),
            "interactions": _dump(self.interactions),
            "token_usage": _dump(self.token_usage),
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_in_minutes": self.duration_in_minutes,
        }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> "Session":
        """Rebuild a session from ``to_snapshot`` output (or a partially synced record)."""
        selected = data.get("selected_quote")
        quotes = [QuoteRecord.model_validate(q) for q in data.get("quotes") or []]
        selected_record = None
        if selected:
            selected_id = QuoteRecord.model_validate(selected).quote_id
            selected_record = next((q for q in quotes if q.quote_id == selected_id), None)
        ended_at = data.get("ended_at")
        session = cls(
            id=data["id"],
            business=Business.model_validate(data["business"]),
            channel=Channel(data.get("channel", Channel.PHONE.value)),
            customer_phone_number=data.get("customer_phone_number"),
            customer_id=data.get("customer_id"),
            customer=Customer.model_validate(data["customer"]) if data.get("customer") else None,
            status=SessionStatus(data.get("status", SessionStatus.ACTIVE.value)),
            all_tool_names=list(data.get("all_tool_names") or []),
            tool_definitions={
                t["name"]: Tool.model_validate(t) for t in data.get("tool_definitions") or []
            },
            granted_tools=[Tool.model_validate(t) for t in data.get("granted_tools") or []],
            ai_instructions=data.get("ai_instructions", ""),
            quotes=quotes,
            selected_quote=selected_record,
            selected_quote_request=selected_record.request if selected_record else None,
            selected_service=(
                Service.model_validate(data["selected_service"]) if data.get("selected_service") else None
            ),
            deposit_payment_state=(
                DepositPaymentState.model_validate(data["deposit_payment_state"])
                if data.get("deposit_payment_state") else None
            ),
            pending_tool_execution=(
                PendingToolExecution.model_validate(data["pending_tool_execution"])
                if data.get("pending_tool_execution") else None
            ),
            interactions=[Interaction.model_validate(i) for i in data.get("interactions") or []],
            token_usage=TokenUsage.model_validate(data.get("token_usage") or {}),
            started_at=datetime.fromisoformat(data["started_at"]) if data.get("started_at") else _utcnow(),
            ended_at=datetime.fromisoformat(ended_at) if ended_at else None,
            duration_in_minutes=data.get("duration_in_minutes"),
            state_machine=ConversationStateMachine(
                ConversationStage(data.get("stage", ConversationStage.SERVICE_SELECTION.value))
            ),
        )
        return session
