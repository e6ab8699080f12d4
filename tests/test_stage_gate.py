"""Tests for the request-based and stage-indexed tool policies."""

import pytest

from receptionist.backends.memory import DEMO_SERVICES
from receptionist.conversation.stage_gate import (
    GrantOutcome,
    RequestBasedPolicy,
    StageIndexedPolicy,
    build_stage_gate,
)
from receptionist.conversation.state_machine import ConversationStage
from receptionist.tools.catalog import DEFAULT_TOOLS_BY_NAME
from tests.conftest import BOOKING_CATALOG, make_deps, make_session


class TestBuildStageGate:
    def test_request_policy(self, deps):
        assert isinstance(deps.stage_gate, RequestBasedPolicy)

    def test_stage_policy(self, stage_deps):
        assert isinstance(stage_deps.stage_gate, StageIndexedPolicy)

    def test_unknown_policy_rejected(self, deps):
        with pytest.raises(ValueError, match="Unknown tool policy"):
            build_stage_gate("random", deps.service_store)


class TestRequestBasedInitialTools:
    def test_bootstrap_plus_request_tool(self, session):
        assert session.granted_tool_names() == ["get_service_details", "request_tool"]

    def test_granted_tools_for_is_a_copy(self, deps, session):
        tools = deps.stage_gate.granted_tools_for(session)
        tools.clear()
        assert len(session.granted_tools) == 2


class TestRequestBasedGrants:
    @pytest.mark.asyncio
    async def test_grant_plain_tool(self, deps, session):
        result = await deps.stage_gate.request_grant(session, "create_user")
        assert result.outcome == GrantOutcome.GRANTED
        assert result.available
        assert "create_user" in session.granted_tool_names()

    @pytest.mark.asyncio
    async def test_second_request_is_already_granted(self, deps, session):
        await deps.stage_gate.request_grant(session, "create_user")
        result = await deps.stage_gate.request_grant(session, "create_user")
        assert result.outcome == GrantOutcome.ALREADY_GRANTED
        assert session.granted_tool_names().count("create_user") == 1

    @pytest.mark.asyncio
    async def test_unknown_tool(self, deps, session):
        result = await deps.stage_gate.request_grant(session, "launch_rocket")
        assert result.outcome == GrantOutcome.UNKNOWN
        assert not result.available
        assert result.message == "launch_rocket does not exist"

    @pytest.mark.asyncio
    async def test_tool_outside_business_catalog_is_unknown(self):
        deps = make_deps("request")
        session = make_session(deps, catalog=BOOKING_CATALOG)
        result = await deps.stage_gate.request_grant(session, "select_quote")
        assert result.outcome == GrantOutcome.UNKNOWN
        assert "select_quote" not in session.granted_tool_names()

    @pytest.mark.asyncio
    async def test_dynamic_tool_without_service(self, deps, session):
        result = await deps.stage_gate.request_grant(session, "get_quote")
        assert result.outcome == GrantOutcome.MISSING_CONTEXT
        assert "service_name is required" in result.message
        assert session.granted_tool("get_quote") is None

    @pytest.mark.asyncio
    async def test_dynamic_tool_with_unknown_service(self, deps, session):
        result = await deps.stage_gate.request_grant(session, "get_quote", "tax advice")
        assert result.outcome == GrantOutcome.MISSING_CONTEXT
        assert "Available services" in result.message
        assert session.granted_tool("get_quote") is None

    @pytest.mark.asyncio
    async def test_dynamic_tool_resolved_for_service(self, deps, session):
        result = await deps.stage_gate.request_grant(session, "get_quote", "Pool Cleaning")
        assert result.outcome == GrantOutcome.GRANTED
        tool = session.granted_tool("get_quote")
        assert tool.service_name == "Pool Cleaning"
        assert tool.function_schema.parameters["properties"]["job_scope"]["enum"] == [
            "Standard clean", "Green pool recovery",
        ]
        assert session.selected_service.name == "Pool Cleaning"

    @pytest.mark.asyncio
    async def test_dynamic_tool_service_name_fuzzy_matched(self, deps, session):
        result = await deps.stage_gate.request_grant(session, "get_quote", "pool cleening")
        assert result.outcome == GrantOutcome.GRANTED
        assert session.granted_tool("get_quote").service_name == "Pool Cleaning"

    @pytest.mark.asyncio
    async def test_same_service_again_is_already_granted(self, deps, session):
        await deps.stage_gate.request_grant(session, "get_quote", "Pool Cleaning")
        again = await deps.stage_gate.request_grant(session, "get_quote", "pool cleaning")
        without = await deps.stage_gate.request_grant(session, "get_quote")
        assert again.outcome == GrantOutcome.ALREADY_GRANTED
        assert without.outcome == GrantOutcome.ALREADY_GRANTED

    @pytest.mark.asyncio
    async def test_other_service_replaces_resolved_tool(self, deps, session):
        await deps.stage_gate.request_grant(session, "get_quote", "Pool Cleaning")
        result = await deps.stage_gate.request_grant(session, "get_quote", "Pool Repairs")
        assert result.outcome == GrantOutcome.GRANTED
        assert session.granted_tool_names().count("get_quote") == 1
        tool = session.granted_tool("get_quote")
        assert tool.service_name == "Pool Repairs"
        assert "Leak detection" in tool.function_schema.parameters["properties"]["job_scope"]["enum"]

    @pytest.mark.asyncio
    async def test_catalog_definition_untouched(self, deps, session):
        await deps.stage_gate.request_grant(session, "get_quote", "Pool Cleaning")
        base = DEFAULT_TOOLS_BY_NAME["get_quote"].function_schema.parameters
        assert "enum" not in base["properties"]["job_scope"]
        assert "customer_address" not in base["properties"]

    def test_advance_is_identity(self, deps, session):
        assert deps.stage_gate.advance(session, "get_service_details") == ConversationStage.SERVICE_SELECTION
        assert session.stage == ConversationStage.SERVICE_SELECTION


class TestStageIndexedPolicy:
    def test_initial_tools_follow_first_stage(self, stage_session):
        assert stage_session.granted_tool_names() == ["get_service_details", "request_tool"]

    def test_advance_swaps_tool_set(self, stage_deps, stage_session):
        stage_session.select_service(DEMO_SERVICES[0])
        stage = stage_deps.stage_gate.advance(stage_session, "get_service_details")
        assert stage == ConversationStage.QUOTING
        assert stage_session.granted_tool_names() == ["get_quote", "select_quote", "request_tool"]
        assert stage_session.granted_tool("get_quote").service_name == "Pool Cleaning"

    def test_unmapped_tool_leaves_tools_alone(self, stage_deps, stage_session):
        before = stage_session.granted_tool_names()
        stage_deps.stage_gate.advance(stage_session, "request_tool")
        assert stage_session.granted_tool_names() == before
        assert stage_session.stage == ConversationStage.SERVICE_SELECTION

    def test_completed_keeps_only_permanent_tools(self, stage_deps, stage_session):
        tools = stage_deps.stage_gate.tools_for_stage(stage_session, ConversationStage.COMPLETED)
        assert [tool.name for tool in tools] == ["request_tool"]

    def test_stage_tool_missing_from_catalog_is_skipped(self):
        deps = make_deps("stage")
        session = make_session(deps, catalog=BOOKING_CATALOG)
        tools = deps.stage_gate.tools_for_stage(session, ConversationStage.QUOTING)
        assert [tool.name for tool in tools] == ["get_quote", "request_tool"]

    @pytest.mark.asyncio
    async def test_request_for_later_stage_tool_is_stage_closed(self, stage_deps, stage_session):
        result = await stage_deps.stage_gate.request_grant(stage_session, "create_booking")
        assert result.outcome == GrantOutcome.STAGE_CLOSED
        assert "service selection" in result.message
        assert stage_session.granted_tool("create_booking") is None

    @pytest.mark.asyncio
    async def test_request_for_current_tool_is_already_granted(self, stage_deps, stage_session):
        result = await stage_deps.stage_gate.request_grant(stage_session, "get_service_details")
        assert result.outcome == GrantOutcome.ALREADY_GRANTED

    @pytest.mark.asyncio
    async def test_request_for_unknown_tool(self, stage_deps, stage_session):
        result = await stage_deps.stage_gate.request_grant(stage_session, "launch_rocket")
        assert result.outcome == GrantOutcome.UNKNOWN
