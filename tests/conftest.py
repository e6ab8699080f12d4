"""Shared test fixtures and helpers."""

import json
from datetime import timedelta
from typing import Any, Iterable, Optional

import pytest

from receptionist.backends import memory
from receptionist.conversation.stage_gate import build_stage_gate
from receptionist.schemas.business_schema import Business
from receptionist.sessions.session import Session
from receptionist.telemetry import RecordingTelemetry
from receptionist.tools.catalog import DEFAULT_TOOLS, DEFAULT_TOOLS_BY_NAME, PERMANENT_TOOLS
from receptionist.tools.context import ToolDependencies
from receptionist.tools.dispatcher import ToolDispatcher
from receptionist.utils import business_today

FULL_CATALOG = [tool.name for tool in DEFAULT_TOOLS if tool.name not in PERMANENT_TOOLS]
BOOKING_CATALOG = [
    "get_service_details",
    "get_quote",
    "check_day_availability",
    "create_user",
    "create_booking",
    "request_tool",
]


def future_weekday(days_ahead: int = 7, timezone_name: str = "Australia/Melbourne") -> str:
    """A Monday-Friday date at least ``days_ahead`` days after the business's today."""
    day = business_today(timezone_name) + timedelta(days=days_ahead)
    while day.weekday() >= 5:
        day += timedelta(days=1)
    return day.isoformat()


def future_sunday(timezone_name: str = "Australia/Melbourne") -> str:
    day = business_today(timezone_name) + timedelta(days=7)
    while day.weekday() != 6:
        day += timedelta(days=1)
    return day.isoformat()


def make_deps(policy: str = "request", telemetry: Optional[RecordingTelemetry] = None, **overrides) -> ToolDependencies:
    """In-memory collaborators wired to a fresh stage gate."""
    service_store = overrides.pop("service_store", None) or memory.InMemoryServiceStore()
    kwargs: dict[str, Any] = {
        "service_store": service_store,
        "quote_engine": memory.SimpleQuoteEngine(),
        "availability_store": memory.InMemoryAvailabilityStore(),
        "customer_store": memory.InMemoryCustomerStore(),
        "booking_engine": memory.InMemoryBookingEngine(),
        "payment_service": memory.InMemoryPaymentService(),
        "notifications": memory.RecordingNotificationSender(),
        "stage_gate": build_stage_gate(policy, service_store),
        "telemetry": telemetry if telemetry is not None else RecordingTelemetry(),
    }
    kwargs.update(overrides)
    return ToolDependencies(**kwargs)


def make_session(
    deps: ToolDependencies,
    catalog: Iterable[str] = FULL_CATALOG,
    session_id: str = "CA-test-001",
    business: Business = memory.DEMO_BUSINESS,
) -> Session:
    """A prepared session: catalog loaded and the gate's initial tools granted."""
    session = Session(id=session_id, business=business, customer_phone_number="+61412345678")
    names = list(catalog)
    definitions = [DEFAULT_TOOLS_BY_NAME[name] for name in dict.fromkeys([*names, *PERMANENT_TOOLS])]
    session.load_tool_catalog([name for name in names if name not in PERMANENT_TOOLS], definitions)
    session.replace_granted_tools(deps.stage_gate.initial_tools(session))
    return session


class FakeRealtimeSocket:
    """Stands in for the upstream websocket: replays frames and records what is sent."""

    def __init__(self, frames: Iterable[Any] = ()) -> None:
        self.frames = list(frames)
        self.sent: list[dict[str, Any]] = []
        self.closed = False

    async def send(self, data: str) -> None:
        self.sent.append(json.loads(data))

    async def close(self) -> None:
        self.closed = True

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for frame in self.frames:
            yield frame if isinstance(frame, str) else json.dumps(frame)

    def sent_types(self) -> list[str]:
        return [message["type"] for message in self.sent]

    def results(self) -> list[dict[str, Any]]:
        return [
            json.loads(message["item"]["output"])
            for message in self.sent
            if message["type"] == "conversation.item.create"
        ]


def function_call(call_id: str, name: str, arguments: Any) -> dict[str, Any]:
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return {"type": "response.function_call_arguments.done", "call_id": call_id, "name": name, "arguments": arguments}


def response_done(call_id: Optional[str] = None, usage: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    output = [{"type": "function_call", "call_id": call_id}] if call_id else [{"type": "message"}]
    return {"type": "response.done", "response": {"output": output, "usage": usage or {}}}


@pytest.fixture
def telemetry():
    return RecordingTelemetry()


@pytest.fixture
def deps(telemetry):
    return make_deps("request", telemetry)


@pytest.fixture
def stage_deps(telemetry):
    return make_deps("stage", telemetry)


@pytest.fixture
def session(deps):
    return make_session(deps)


@pytest.fixture
def stage_session(stage_deps):
    return make_session(stage_deps)


@pytest.fixture
def dispatcher(deps):
    return ToolDispatcher(deps)


@pytest.fixture
def stage_dispatcher(stage_deps):
    return ToolDispatcher(stage_deps)
