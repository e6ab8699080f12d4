"""Calendar availability tool."""

import logging
from typing import Any

from receptionist.sessions.session import Session
from receptionist.tools.context import ToolDependencies
from receptionist.tools.responses import build_tool_response
from receptionist.utils import is_past_date, is_valid_date

logger = logging.getLogger(__name__)


async def check_day_availability(args: dict[str, Any], session: Session, deps: ToolDependencies) -> dict[str, Any]:
    date = str(args.get("date") or "").strip()
    if not is_valid_date(date):
        return build_tool_response(None, "Invalid date format. Please use YYYY-MM-DD.", False)
    if is_past_date(date, deps.timezone_for(session)):
        return build_tool_response(None, "Cannot check past dates. Please select a future date.", False)

    minutes = args.get("quote_total_estimate_time_minutes")
    if minutes is None and session.selected_quote is not None:
        minutes = session.selected_quote.result.total_estimate_time_minutes
    try:
        minutes = int(minutes) if minutes is not None else None
    except (TypeError, ValueError):
        minutes = None

    day = await deps.availability_store.check_day(session.business, date, minutes)
    if not day.available or not day.slots:
        return build_tool_response(
            {"date": date, "available_slots": []},
            day.message or "No availability for this date, please try another date.",
            False,
        )

    logger.debug("%d slots on %s for business %s", len(day.slots), date, session.business_id)
    return build_tool_response(
        {"date": date, "available_slots": day.slots},
        day.message or f"Available times on {date}: {', '.join(day.slots)}.",
        True,
    )
