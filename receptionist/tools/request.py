"""The permanent ``request_tool`` tool."""

from typing import Any

from receptionist.sessions.session import Session
from receptionist.tools.context import ToolDependencies
from receptionist.tools.responses import build_tool_response


async def request_tool(args: dict[str, Any], session: Session, deps: ToolDependencies) -> dict[str, Any]:
    result = await deps.stage_gate.request_grant(
        session,
        str(args.get("tool_name") or ""),
        args.get("service_name"),
    )
    return build_tool_response(
        {"tool_name": result.tool_name, "available": result.available, "outcome": result.outcome.value},
        result.message,
        result.available,
    )
