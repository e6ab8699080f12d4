"""Tests for tool dispatch, tracing and stage advancement."""

import pytest

from receptionist.backends.memory import DEMO_SERVICES, InMemoryServiceStore
from receptionist.conversation.state_machine import ConversationStage
from receptionist.errors import ConfigurationError, InfrastructureError, ToolCallFailed
from receptionist.schemas.conversation_schema import SessionStatus
from receptionist.tools.dispatcher import DEFAULT_HANDLERS, ToolDispatcher
from tests.conftest import BOOKING_CATALOG, future_weekday, make_deps, make_session


class TestUngrantedTools:
    @pytest.mark.asyncio
    async def test_ungranted_tool_is_unavailable(self):
        deps = make_deps("request")
        session = make_session(deps, catalog=BOOKING_CATALOG)
        result = await ToolDispatcher(deps).dispatch("get_quote", {"service_name": "Pool Cleaning"}, session)
        assert result["success"] is False
        assert result["message"].startswith("get_quote unavailable")
        assert session.stage == ConversationStage.SERVICE_SELECTION
        assert session.quotes == []

    @pytest.mark.asyncio
    async def test_unavailable_call_is_reported_without_values(self, dispatcher, session, telemetry):
        await dispatcher.dispatch("create_user", {"first_name": "John", "mobile_number": "0412345678"}, session)
        error = telemetry.errors[-1]
        assert isinstance(error["error"], ToolCallFailed)
        assert error["context"]["argument_keys"] == ["first_name", "mobile_number"]
        assert "John" not in str(error["context"])


class TestRequestToolFlow:
    @pytest.mark.asyncio
    async def test_request_grants_resolved_get_quote(self, dispatcher, session):
        result = await dispatcher.dispatch(
            "request_tool", {"tool_name": "get_quote", "service_name": "Pool Cleaning"}, session
        )
        assert result["success"] is True
        assert result["outcome"] == "granted"
        tool = session.granted_tool("get_quote")
        properties = tool.function_schema.parameters["properties"]
        assert properties["job_scope"]["enum"] == ["Standard clean", "Green pool recovery"]
        assert "square_meters" in properties

    @pytest.mark.asyncio
    async def test_request_unknown_tool_is_a_failure_payload(self, dispatcher, session):
        result = await dispatcher.dispatch("request_tool", {"tool_name": "launch_rocket"}, session)
        assert result["success"] is False
        assert result["outcome"] == "unknown"

    @pytest.mark.asyncio
    async def test_granted_tool_then_runs(self, dispatcher, session):
        await dispatcher.dispatch("request_tool", {"tool_name": "get_quote", "service_name": "Pool Cleaning"}, session)
        result = await dispatcher.dispatch("get_quote", {
            "job_scope": "Standard clean", "customer_address": "1 Main St", "square_meters": 40,
        }, session)
        assert result["success"] is True
        assert result["total_estimate_amount"] == 180.0


class TestServiceLookup:
    @pytest.mark.asyncio
    async def test_typo_resolves_to_service(self):
        deps = make_deps("request", service_store=InMemoryServiceStore(DEMO_SERVICES[:2]))
        session = make_session(deps)
        result = await ToolDispatcher(deps).dispatch(
            "get_service_details", {"service_name": "poool cleening"}, session
        )
        assert result["success"] is True
        assert result["service_name"] == "Pool Cleaning"
        assert result["requirements"] == ["customer_address", "square_meters"]


class TestStageIndexedDispatch:
    @pytest.mark.asyncio
    async def test_walk_to_completed(self, stage_deps, stage_dispatcher, stage_session):
        day = future_weekday()
        steps = [
            ("get_service_details", {"service_name": "Pool Cleaning"}),
            ("get_quote", {"job_scope": "Standard clean", "customer_address": "1 Main St", "square_meters": 40}),
            ("check_day_availability", {"date": day}),
            ("create_user", {"first_name": "John", "mobile_number": "0412 345 678"}),
        ]
        for name, args in steps:
            result = await stage_dispatcher.dispatch(name, args, stage_session)
            assert result["success"] is True, result

        assert stage_session.stage == ConversationStage.BOOKING
        quote_id = stage_session.selected_quote.quote_id
        result = await stage_dispatcher.dispatch(
            "create_booking", {"preferred_date": day, "preferred_time": "10:00", "quote_id": quote_id}, stage_session
        )
        assert result["success"] is True
        assert stage_session.stage == ConversationStage.COMPLETED
        assert stage_session.granted_tool_names() == ["request_tool"]

        after = await stage_dispatcher.dispatch("get_quote", {"service_name": "Pool Cleaning"}, stage_session)
        assert after["success"] is False
        assert "unavailable" in after["message"]

        await stage_deps.drain()
        assert stage_deps.notifications.sent[-1]["kind"] == "booking_confirmation"

    @pytest.mark.asyncio
    async def test_failure_does_not_advance(self, stage_dispatcher, stage_session):
        result = await stage_dispatcher.dispatch("get_service_details", {"service_name": "tax advice"}, stage_session)
        assert result["success"] is False
        assert stage_session.stage == ConversationStage.SERVICE_SELECTION

    @pytest.mark.asyncio
    async def test_next_stage_tools_granted(self, stage_dispatcher, stage_session):
        await stage_dispatcher.dispatch("get_service_details", {"service_name": "pool repairs"}, stage_session)
        assert stage_session.granted_tool_names() == ["get_quote", "select_quote", "request_tool"]
        assert stage_session.granted_tool("get_quote").service_name == "Pool Repairs"


class TestMalformedArguments:
    @pytest.mark.asyncio
    async def test_bad_json_is_failure_payload(self, dispatcher, session, telemetry):
        result = await dispatcher.dispatch_call("get_service_details", "{not json", session)
        assert result["success"] is False
        assert "Could not read the arguments" in result["message"]
        assert session.status == SessionStatus.ACTIVE
        assert telemetry.errors[-1]["context"]["operation"] == "parse_tool_arguments"

    @pytest.mark.asyncio
    async def test_json_that_is_not_an_object(self, dispatcher, session):
        result = await dispatcher.dispatch_call("get_service_details", "[1, 2]", session)
        assert result["success"] is False

    @pytest.mark.asyncio
    async def test_empty_arguments_mean_no_arguments(self, dispatcher, session):
        result = await dispatcher.dispatch_call("get_service_details", "", session)
        assert result["success"] is False
        assert "Available services" in result["message"]

    @pytest.mark.asyncio
    async def test_json_string_dispatched(self, dispatcher, session):
        result = await dispatcher.dispatch_call("get_service_details", '{"service_name": "Pool Repairs"}', session)
        assert result["success"] is True


class TestFailures:
    @pytest.mark.asyncio
    async def test_infrastructure_error_reraised_and_reported(self, deps, session, telemetry):
        async def broken(args, session, deps):
            raise InfrastructureError("database unavailable", "get_service")

        dispatcher = ToolDispatcher(deps, handlers={**DEFAULT_HANDLERS, "get_service_details": broken})
        with pytest.raises(InfrastructureError):
            await dispatcher.dispatch("get_service_details", {"service_name": "Pool Cleaning"}, session)
        reported = telemetry.errors[-1]
        assert isinstance(reported["error"], InfrastructureError)
        assert reported["context"]["session_id"] == session.id
        assert reported["context"]["business_id"] == session.business_id
        assert reported["context"]["argument_keys"] == ["service_name"]

    @pytest.mark.asyncio
    async def test_granted_tool_without_handler(self, deps, session):
        dispatcher = ToolDispatcher(deps, handlers={})
        with pytest.raises(ConfigurationError, match="no handler"):
            await dispatcher.dispatch("get_service_details", {}, session)

    @pytest.mark.asyncio
    async def test_missing_tool_name(self, dispatcher, session):
        with pytest.raises(ConfigurationError):
            await dispatcher.dispatch("", {}, session)

    @pytest.mark.asyncio
    async def test_handler_returning_non_payload(self, deps, session):
        async def sloppy(args, session, deps):
            return "done"

        dispatcher = ToolDispatcher(deps, handlers={"get_service_details": sloppy})
        with pytest.raises(ConfigurationError):
            await dispatcher.dispatch("get_service_details", {}, session)

    @pytest.mark.asyncio
    async def test_failing_telemetry_never_breaks_dispatch(self, session):
        class BrokenTelemetry:
            def breadcrumb(self, message, category, data=None):
                raise RuntimeError("collector down")

            def report_error(self, error, context):
                raise RuntimeError("collector down")

        deps = make_deps("request", telemetry=BrokenTelemetry())
        result = await ToolDispatcher(deps).dispatch("get_service_details", {"service_name": "Pool Cleaning"}, session)
        assert result["success"] is True


class TestTracing:
    @pytest.mark.asyncio
    async def test_completion_breadcrumb(self, dispatcher, session, telemetry):
        await dispatcher.dispatch("get_service_details", {"service_name": "Pool Cleaning"}, session)
        crumb = telemetry.breadcrumbs[-1]
        assert crumb["message"] == "Completed get_service_details"
        assert crumb["data"]["success"] is True
        assert crumb["data"]["duration_ms"] >= 0

    @pytest.mark.asyncio
    async def test_success_reports_no_error(self, dispatcher, session, telemetry):
        await dispatcher.dispatch("get_service_details", {"service_name": "Pool Cleaning"}, session)
        assert telemetry.errors == []
