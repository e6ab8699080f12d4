"""
Routes model-issued function calls to tool handlers.

A call for a tool the session has not been granted gets the "unavailable"
payload and runs nothing. Handlers return user-input failures as payloads
and raise on infrastructure failure; the dispatcher reports the exception
with redacted context and re-raises it. Successful calls may advance the
conversation stage through the StageGate.
"""

import json
import time
from typing import Any, Awaitable, Callable, Mapping, Optional

from receptionist.conversation.stage_gate import StageGate
from receptionist.errors import ConfigurationError, ToolCallFailed
from receptionist.logging_context import get_call_logger, set_call_context
from receptionist.sessions.session import Session
from receptionist.telemetry import SafeTelemetry, Telemetry, redact_arguments
from receptionist.tools import availability, booking, customer, request, services
from receptionist.tools.context import ToolDependencies
from receptionist.tools.responses import (
    build_tool_response,
    invalid_arguments_response,
    tool_unavailable_response,
)

logger = get_call_logger(__name__)

ToolHandler = Callable[[dict[str, Any], Session, ToolDependencies], Awaitable[dict[str, Any]]]

DEFAULT_HANDLERS: dict[str, ToolHandler] = {
    "request_tool": request.request_tool,
    "get_service_details": services.get_service_details,
    "get_quote": services.get_quote,
    "select_quote": services.select_quote,
    "check_day_availability": availability.check_day_availability,
    "create_user": customer.create_user,
    "create_booking": booking.create_booking,
    "send_payment_link": booking.send_payment_link,
    "check_payment_status": booking.check_payment_status,
}


class ToolDispatcher:
    """Executes tool calls for one process; safe to share across sessions."""

    def __init__(
        self,
        deps: ToolDependencies,
        handlers: Optional[Mapping[str, ToolHandler]] = None,
        telemetry: Optional[Telemetry] = None,
    ) -> None:
        self.deps = deps
        self.handlers: dict[str, ToolHandler] = dict(DEFAULT_HANDLERS if handlers is None else handlers)
        inner = telemetry if telemetry is not None else deps.telemetry
        self.telemetry = inner if isinstance(inner, SafeTelemetry) else SafeTelemetry(inner)

    @property
    def stage_gate(self) -> StageGate:
        return self.deps.stage_gate

    async def dispatch_call(self, tool_name: str, raw_arguments: Any, session: Session) -> dict[str, Any]:
        """Parse the argument string from the wire and dispatch.

        Malformed JSON, or JSON that is not an object, becomes a failure payload.
        """
        if isinstance(raw_arguments, Mapping):
            return await self.dispatch(tool_name, raw_arguments, session)
        try:
            arguments = json.loads(raw_arguments) if raw_arguments else {}
        except (TypeError, ValueError) as exc:
            return self._reject_arguments(tool_name, exc, session)
        if not isinstance(arguments, dict):
            return self._reject_arguments(tool_name, ValueError("arguments must be a JSON object"), session)
        return await self.dispatch(tool_name, arguments, session)

    def _reject_arguments(self, tool_name: str, error: Exception, session: Session) -> dict[str, Any]:
        logger.warning("Malformed arguments for %s: %s", tool_name, error)
        self.telemetry.report_error(error, {
            "session_id": session.id,
            "business_id": session.business_id,
            "tool_name": tool_name,
            "operation": "parse_tool_arguments",
        })
        return invalid_arguments_response(tool_name)

    async def dispatch(self, tool_name: str, arguments: Mapping[str, Any], session: Session) -> dict[str, Any]:
        if not tool_name:
            raise ConfigurationError("dispatch requires a tool name")
        if not isinstance(arguments, Mapping):
            raise ConfigurationError(f"arguments for {tool_name} must be a mapping, got {type(arguments).__name__}")
        if not session.id or not session.business_id:
            raise ConfigurationError("dispatch requires a session with id and business_id")

        set_call_context(session.id, session.business_id)
        context = {
            "session_id": session.id,
            "business_id": session.business_id,
            "tool_name": tool_name,
            "argument_keys": redact_arguments(arguments),
        }
        start = time.monotonic()
        self.telemetry.breadcrumb(f"Executing {tool_name}", "tool-execution", context)

        if session.granted_tool(tool_name) is None:
            logger.info("Tool %s not granted (granted: %s)", tool_name, session.granted_tool_names())
            result = tool_unavailable_response(tool_name)
            self._trace(tool_name, start, result, context)
            return result

        handler = self.handlers.get(tool_name)
        if handler is None:
            raise ConfigurationError(f"Tool '{tool_name}' is granted but has no handler")

        try:
            result = await handler(dict(arguments), session, self.deps)
        except Exception as exc:
            duration_ms = round((time.monotonic() - start) * 1000, 1)
            logger.error("Tool %s raised %s after %.1fms", tool_name, type(exc).__name__, duration_ms)
            self.telemetry.report_error(exc, {**context, "duration_ms": duration_ms, "error_name": type(exc).__name__})
            raise

        if not isinstance(result, Mapping) or "success" not in result:
            raise ConfigurationError(f"Handler for {tool_name} returned {type(result).__name__}, not a tool response")
        if not isinstance(result.get("message"), str):
            result = build_tool_response(result, "", bool(result["success"]))

        if result["success"]:
            self.stage_gate.advance(session, tool_name)
        self._trace(tool_name, start, result, context)
        return dict(result)

    def _trace(self, tool_name: str, start: float, result: Mapping[str, Any], context: dict[str, Any]) -> None:
        duration_ms = round((time.monotonic() - start) * 1000, 1)
        success = bool(result.get("success"))
        self.telemetry.breadcrumb(
            f"Completed {tool_name}",
            "tool-execution",
            {"tool_name": tool_name, "duration_ms": duration_ms, "success": success},
        )
        if not success:
            self.telemetry.report_error(
                ToolCallFailed(tool_name, str(result.get("message", ""))),
                {**context, "duration_ms": duration_ms},
            )
        logger.debug("Tool %s finished in %.1fms (success=%s)", tool_name, duration_ms, success)
