"""Tests for per-service schema resolution of dynamic tools."""

import pytest

from receptionist.backends.memory import DEMO_SERVICES
from receptionist.schemas.business_schema import Service
from receptionist.tools.catalog import DEFAULT_TOOLS_BY_NAME
from receptionist.tools.schema_resolver import DynamicSchemaResolver, requirement_property

POOL_CLEANING, POOL_REPAIRS, FURNITURE_REMOVAL = DEMO_SERVICES


@pytest.fixture
def resolver():
    return DynamicSchemaResolver()


@pytest.fixture
def get_quote():
    return DEFAULT_TOOLS_BY_NAME["get_quote"]


class TestResolveParameters:
    def test_requirements_become_required_properties(self, resolver, get_quote):
        params = resolver.resolve(get_quote, POOL_CLEANING).function_schema.parameters
        assert params["properties"]["customer_address"]["type"] == "string"
        assert params["properties"]["square_meters"]["type"] == "number"
        assert params["required"] == ["service_name", "customer_address", "square_meters", "job_scope"]

    def test_job_scope_pinned_to_options(self, resolver, get_quote):
        params = resolver.resolve(get_quote, POOL_REPAIRS).function_schema.parameters
        assert params["properties"]["job_scope"]["enum"] == ["Pump", "Filter", "Heater", "Leak detection"]
        assert params["properties"]["job_scope"]["description"] == "Scope of the job"

    def test_no_job_scope_options_leaves_it_optional(self, resolver, get_quote):
        params = resolver.resolve(get_quote, FURNITURE_REMOVAL).function_schema.parameters
        assert "enum" not in params["properties"]["job_scope"]
        assert "job_scope" not in params["required"]

    def test_address_lists_are_arrays(self, resolver, get_quote):
        params = resolver.resolve(get_quote, FURNITURE_REMOVAL).function_schema.parameters
        assert params["properties"]["pickup_addresses"] == {
            "type": "array",
            "items": {"type": "string"},
            "description": "All pickup addresses for the job",
        }

    def test_extra_properties_rejected(self, resolver, get_quote):
        params = resolver.resolve(get_quote, POOL_CLEANING).function_schema.parameters
        assert params["additionalProperties"] is False

    def test_unknown_requirement_gets_labelled_string(self):
        assert requirement_property("pool_depth") == {
            "type": "string",
            "description": "Additional requirement: pool depth",
        }

    def test_empty_base_parameters(self, resolver):
        service = Service(id="s1", business_id="b1", name="Gutter Cleaning", requirements=["number_of_stories"])
        params = resolver.resolve_parameters({}, service)
        assert params["type"] == "object"
        assert params["required"] == ["number_of_stories"]


class TestResolveTool:
    def test_resolved_tool_metadata(self, resolver, get_quote):
        tool = resolver.resolve(get_quote, POOL_CLEANING)
        assert tool.name == "get_quote"
        assert tool.service_name == "Pool Cleaning"
        assert tool.version == "1:svc-pool-cleaning"
        assert tool.function_schema.description == "Get price quote for Pool Cleaning"

    def test_catalog_tool_not_mutated(self, resolver, get_quote):
        before = get_quote.model_dump()
        resolver.resolve(get_quote, POOL_CLEANING)
        assert get_quote.model_dump() == before

    def test_each_resolution_is_a_new_schema(self, resolver, get_quote):
        first = resolver.resolve(get_quote, POOL_CLEANING)
        second = resolver.resolve(get_quote, POOL_CLEANING)
        assert first == second
        assert first.function_schema.parameters is not second.function_schema.parameters

    def test_realtime_shape(self, resolver, get_quote):
        payload = resolver.resolve(get_quote, POOL_CLEANING).to_realtime()
        assert payload["type"] == "function"
        assert payload["name"] == "get_quote"
        assert "strict" not in payload
