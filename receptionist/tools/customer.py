"""Customer profile tool. The mobile number is the customer's identifier."""

import logging
from typing import Any

from receptionist.sessions.session import Session
from receptionist.tools.context import ToolDependencies
from receptionist.tools.responses import build_tool_response
from receptionist.utils import normalize_phone

logger = logging.getLogger(__name__)

MIN_PHONE_DIGITS = 8


async def create_user(args: dict[str, Any], session: Session, deps: ToolDependencies) -> dict[str, Any]:
    first_name = str(args.get("first_name") or "").strip()
    last_name = str(args.get("last_name") or "").strip() or None
    mobile_number = normalize_phone(str(args.get("mobile_number") or ""))

    if not first_name:
        return build_tool_response(None, "First name is required to create your profile.", False)
    if len(mobile_number.lstrip("+")) < MIN_PHONE_DIGITS:
        return build_tool_response(None, "Mobile number is required to create your profile.", False)

    lookup = await deps.customer_store.create_or_find_customer({
        "business_id": session.business_id,
        "first_name": first_name,
        "last_name": last_name,
        "phone_number": mobile_number,
    })
    session.bind_customer(lookup.customer)

    if lookup.is_existing:
        logger.info("Returning customer %s bound to session %s", lookup.customer.id, session.id)
        message = f"Welcome back, {lookup.customer.first_name}. Your profile is ready."
    else:
        message = f"Profile created for {first_name}."
    return build_tool_response(
        {"user_id": lookup.customer.id, "is_existing": lookup.is_existing},
        message,
        True,
    )
