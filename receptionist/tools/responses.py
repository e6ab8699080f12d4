"""
Wire payloads for tool results.

Every payload is a flat merge: ``{"success": bool, "message": str, **data}``.
``success`` and ``message`` always win over data keys of the same name, a
failed payload never carries an empty message, and exception objects are
reduced to their rendered text.
"""

import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel

DEFAULT_FAILURE_MESSAGE = "Sorry, that didn't work. Please try again."
SYSTEM_ERROR_MESSAGE = (
    "Sorry, a system error occurred on our side. We will follow up with you shortly."
)


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, BaseException):
        return str(value) or type(value).__name__
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_plain(v) for v in value]
    return value


def build_tool_response(
    data: Optional[Mapping[str, Any]],
    message: str,
    success: bool,
) -> dict[str, Any]:
    """Merge ``data`` under the standard ``success`` / ``message`` keys."""
    message = message.strip() if isinstance(message, str) else ""
    if not success and not message:
        message = DEFAULT_FAILURE_MESSAGE
    response: dict[str, Any] = {"success": bool(success), "message": message}
    for key, value in (data or {}).items():
        if key in ("success", "message"):
            continue
        response[key] = _plain(value)
    return response


def tool_unavailable_response(tool_name: str) -> dict[str, Any]:
    return build_tool_response(
        None,
        f"{tool_name} unavailable. Tool not currently available. "
        "Use 'request_tool' to request access to it first.",
        False,
    )


def invalid_arguments_response(tool_name: str) -> dict[str, Any]:
    return build_tool_response(
        None,
        f"Could not read the arguments for {tool_name}. Please call it again with valid JSON arguments.",
        False,
    )


def system_error_response() -> dict[str, Any]:
    return build_tool_response(None, SYSTEM_ERROR_MESSAGE, False)


def to_wire(response: Mapping[str, Any]) -> str:
    """Serialise a payload for the ``function_call_output`` item."""
    return json.dumps(_plain(response), ensure_ascii=False)
