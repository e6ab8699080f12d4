"""
Per-service specialisation of dynamic tool schemas.

``get_quote`` declares only the fields every service shares. For a concrete
service the resolver appends one property per service requirement and pins
``job_scope`` to the service's options. The catalog entry is never touched;
each call builds a new ``Tool``.
"""

import copy
import logging
from typing import Any

from receptionist.schemas.business_schema import Service
from receptionist.schemas.tool_schema import FunctionSchema, Tool

logger = logging.getLogger(__name__)

_ADDRESS_LIST = {"type": "array", "items": {"type": "string"}}

REQUIREMENT_PROPERTIES: dict[str, dict[str, Any]] = {
    "pickup_addresses": {**_ADDRESS_LIST, "description": "All pickup addresses for the job"},
    "dropoff_addresses": {**_ADDRESS_LIST, "description": "All drop-off addresses for the job"},
    "customer_address": {"type": "string", "description": "Address where the service takes place"},
    "number_of_people": {"type": "number", "description": "Number of people needed for the job"},
    "number_of_rooms": {"type": "number", "description": "Number of rooms involved"},
    "square_meters": {"type": "number", "description": "Area in square meters"},
    "number_of_vehicles": {"type": "number", "description": "Number of vehicles needed"},
}


def requirement_property(requirement: str) -> dict[str, Any]:
    """Schema for one requirement; unknown names become a labelled string."""
    known = REQUIREMENT_PROPERTIES.get(requirement)
    if known is not None:
        return copy.deepcopy(known)
    label = requirement.replace("_", " ")
    return {"type": "string", "description": f"Additional requirement: {label}"}


class DynamicSchemaResolver:
    """Builds service-specific schemas for tools flagged ``dynamic_parameters``."""

    def resolve_parameters(self, parameters: dict[str, Any], service: Service) -> dict[str, Any]:
        resolved = copy.deepcopy(parameters) if parameters else {}
        resolved.setdefault("type", "object")
        properties: dict[str, Any] = resolved.setdefault("properties", {})
        required: list[str] = resolved.setdefault("required", [])

        for requirement in service.requirements:
            if requirement not in properties:
                properties[requirement] = requirement_property(requirement)
            if requirement not in required:
                required.append(requirement)

        if service.job_scope_options:
            scope = properties.get("job_scope") or {
                "type": "string",
                "description": "Scope of the job",
            }
            properties["job_scope"] = {**scope, "type": "string", "enum": list(service.job_scope_options)}
            if "job_scope" not in required:
                required.append("job_scope")

        resolved["additionalProperties"] = False
        return resolved

    def resolve(self, tool: Tool, service: Service) -> Tool:
        """Return a new Tool whose schema is specialised for ``service``."""
        base = tool.function_schema
        schema = FunctionSchema(
            type=base.type,
            name=base.name,
            description=f"Get price quote for {service.name}",
            parameters=self.resolve_parameters(base.parameters, service),
            strict=base.strict,
        )
        logger.debug(
            "Resolved %s for service %s (%d requirements, %d job scopes)",
            tool.name, service.name, len(service.requirements), len(service.job_scope_options),
        )
        return tool.model_copy(update={
            "function_schema": schema,
            "service_name": service.name,
            "version": f"{tool.version}:{service.id}",
        })
