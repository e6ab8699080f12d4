"""
Tool catalog: the built-in tool definitions and a business-scoped view over
the catalog store.

Definitions are immutable ``Tool`` records. ``get_quote`` is the one tool
with dynamic parameters; its schema is specialised per service by
``DynamicSchemaResolver`` before it is exposed.
"""

import logging
from typing import Any, Iterable

from receptionist.interfaces import ToolCatalogStore
from receptionist.schemas.tool_schema import FunctionSchema, Tool

logger = logging.getLogger(__name__)

PERMANENT_TOOLS: tuple[str, ...] = ("request_tool",)
INITIAL_REQUESTED_TOOLS: tuple[str, ...] = ("get_service_details",)


def _schema(name: str, description: str, properties: dict[str, Any], required: Iterable[str] = ()) -> FunctionSchema:
    return FunctionSchema(
        name=name,
        description=description,
        parameters={
            "type": "object",
            "properties": properties,
            "required": list(required),
        },
    )


_DATE = {"type": "string", "description": "Date in YYYY-MM-DD format"}
_TIME = {"type": "string", "description": "Time in HH:MM 24-hour format"}

DEFAULT_TOOLS: tuple[Tool, ...] = (
    Tool(
        name="request_tool",
        description="Request access to another tool when the conversation needs it.",
        function_schema=_schema(
            "request_tool",
            "Request a tool that is not yet available. Provide service_name when requesting get_quote.",
            {
                "tool_name": {"type": "string", "description": "Name of the tool to unlock"},
                "service_name": {"type": "string", "description": "Service the caller is asking about"},
                "reason": {"type": "string", "description": "Why the tool is needed"},
            },
            required=["tool_name"],
        ),
    ),
    Tool(
        name="get_service_details",
        description="Look up a service offered by the business.",
        function_schema=_schema(
            "get_service_details",
            "Get details and pricing information for a service the caller mentions.",
            {"service_name": {"type": "string", "description": "Service name as the caller said it"}},
            required=["service_name"],
        ),
        business_specific=True,
    ),
    Tool(
        name="get_quote",
        description="Price a job for a specific service.",
        function_schema=_schema(
            "get_quote",
            "Get a price quote for the selected service.",
            {
                "service_name": {"type": "string", "description": "Service to quote"},
                "job_scope": {"type": "string", "description": "Scope of the job"},
            },
            required=["service_name"],
        ),
        dynamic_parameters=True,
        business_specific=True,
    ),
    Tool(
        name="select_quote",
        description="Choose one of the quotes already given on this call.",
        function_schema=_schema(
            "select_quote",
            "Select which quote the caller wants to proceed with.",
            {"quote_id": {"type": "string", "description": "Quote id from get_quote"}},
            required=["quote_id"],
        ),
    ),
    Tool(
        name="check_day_availability",
        description="Check open time slots on a day.",
        function_schema=_schema(
            "check_day_availability",
            "Check availability for a date in the business timezone.",
            {
                "date": _DATE,
                "quote_total_estimate_time_minutes": {
                    "type": "number",
                    "description": "Estimated job length from the quote",
                },
            },
            required=["date"],
        ),
    ),
    Tool(
        name="create_user",
        description="Create or find the caller's customer profile.",
        function_schema=_schema(
            "create_user",
            "Create the customer profile. The mobile number identifies the customer.",
            {
                "first_name": {"type": "string", "description": "Customer first name"},
                "last_name": {"type": "string", "description": "Customer last name"},
                "mobile_number": {"type": "string", "description": "Customer mobile number"},
            },
            required=["first_name", "mobile_number"],
        ),
    ),
    Tool(
        name="create_booking",
        description="Book the selected quote.",
        function_schema=_schema(
            "create_booking",
            "Create the booking for the selected quote at the agreed date and time.",
            {"preferred_date": _DATE, "preferred_time": _TIME, "quote_id": {"type": "string"}},
            required=["preferred_date", "preferred_time", "quote_id"],
        ),
    ),
    Tool(
        name="send_payment_link",
        description="Send a deposit payment link to the caller.",
        function_schema=_schema(
            "send_payment_link",
            "Create a deposit payment link for the selected quote and text it to the caller.",
            {"preferred_date": _DATE, "preferred_time": _TIME, "quote_id": {"type": "string"}},
            required=["preferred_date", "preferred_time", "quote_id"],
        ),
    ),
    Tool(
        name="check_payment_status",
        description="Check whether the deposit has been paid.",
        function_schema=_schema(
            "check_payment_status",
            "Check the deposit payment status for the selected quote.",
            {},
        ),
    ),
)

DEFAULT_TOOLS_BY_NAME: dict[str, Tool] = {tool.name: tool for tool in DEFAULT_TOOLS}


class ToolCatalog:
    """Business-scoped access to tool definitions.

    Store failures propagate; a session cannot start without its catalog.
    """

    def __init__(self, store: ToolCatalogStore) -> None:
        self.store = store

    async def load_business_tools(self, business_id: str) -> tuple[list[str], list[Tool]]:
        """Return the business's active tool names and their definitions, plus permanent tools."""
        names = await self.store.list_active_tool_names(business_id)
        wanted = list(dict.fromkeys([*names, *PERMANENT_TOOLS]))
        tools = await self.store.get_tools_by_names(business_id, wanted)
        by_name = {tool.name: tool for tool in tools}
        for name in PERMANENT_TOOLS:
            by_name.setdefault(name, DEFAULT_TOOLS_BY_NAME[name])
        missing = [name for name in names if name not in by_name]
        if missing:
            logger.warning("Business %s lists tools without definitions: %s", business_id, missing)
        names = [name for name in names if name in by_name]
        logger.debug("Loaded %d tools for business %s", len(by_name), business_id)
        return names, [by_name[name] for name in wanted if name in by_name]

