"""Tool catalog entries and the function schemas sent upstream."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class FunctionSchema(BaseModel):
    """Realtime function definition: the shape the model sees."""

    model_config = ConfigDict(frozen=True)

    type: str = "function"
    name: str
    description: str
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )
    strict: Optional[bool] = None

    def to_realtime(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class OutputTemplate(BaseModel):
    """Expected result fields and message templates for a tool.

    Kept as stored in the catalog; tool results are always sent as flat
    ``{"success", "message", **data}`` payloads, so nothing renders it.
    """

    model_config = ConfigDict(frozen=True)

    data_structure: dict[str, str] = Field(default_factory=dict)
    success_message: str = ""
    error_message: str = ""


class Tool(BaseModel):
    """A catalog entry. Resolved dynamic tools are new instances tagged with their service."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    version: str = "1"
    function_schema: FunctionSchema
    dynamic_parameters: bool = False
    output_template: Optional[OutputTemplate] = None
    business_specific: bool = False
    service_name: Optional[str] = None

    def to_realtime(self) -> dict[str, Any]:
        return self.function_schema.to_realtime()
