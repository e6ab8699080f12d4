"""Service lookup and quoting tools."""

import logging
from typing import Any, Optional

from receptionist.errors import InfrastructureError
from receptionist.schemas.booking_schema import DepositPaymentState, QuoteRecord, QuoteRequest
from receptionist.schemas.business_schema import Service
from receptionist.sessions.session import Session
from receptionist.tools.context import ToolDependencies
from receptionist.tools.responses import build_tool_response

logger = logging.getLogger(__name__)


def _blank(value: Any) -> bool:
    return value is None or value == "" or value == []


async def _resolve_service(name: str, session: Session, deps: ToolDependencies) -> Optional[Service]:
    current = session.selected_service
    if current is not None and current.name.casefold() == name.casefold():
        return current
    names = await deps.service_store.list_service_names(session.business_id)
    match = deps.matcher(name, names)
    if match is None:
        return None
    service = await deps.service_store.get_service(session.business_id, match)
    if service is None:
        raise InfrastructureError(f"Service '{match}' is listed but could not be loaded", "get_service")
    return service


async def get_service_details(args: dict[str, Any], session: Session, deps: ToolDependencies) -> dict[str, Any]:
    """Fuzzy-match the caller's wording to one of the business's services."""
    service_name = str(args.get("service_name") or "").strip()
    names = await deps.service_store.list_service_names(session.business_id)
    if not service_name:
        return build_tool_response(
            {"available_services": names},
            f"Which service do you need? Available services: {', '.join(names)}",
            False,
        )

    match = deps.matcher(service_name, names)
    if match is None:
        logger.info("No service match for %r in business %s", service_name, session.business_id)
        return build_tool_response(
            {"available_services": names},
            f'Sorry, I couldn\'t find "{service_name}". Available services: {", ".join(names)}',
            False,
        )

    service = await deps.service_store.get_service(session.business_id, match)
    if service is None:
        raise InfrastructureError(f"Service '{match}' is listed but could not be loaded", "get_service")

    session.select_service(service)
    return build_tool_response(
        {
            "service_name": service.name,
            "description": service.description,
            "pricing": service.pricing_summary,
            "requirements": service.requirements,
            "job_scope_options": service.job_scope_options,
            "estimated_duration_minutes": service.estimated_duration_minutes,
        },
        f"Found {service.name}. {service.description}".strip(),
        True,
    )


async def get_quote(args: dict[str, Any], session: Session, deps: ToolDependencies) -> dict[str, Any]:
    granted = session.granted_tool("get_quote")
    service_name = str(
        args.get("service_name")
        or (granted.service_name if granted else None)
        or (session.selected_service.name if session.selected_service else "")
    ).strip()
    if not service_name:
        return build_tool_response(None, "Please tell me which service you would like a quote for.", False)

    service = await _resolve_service(service_name, session, deps)
    if service is None:
        return build_tool_response(None, f"Service not found: {service_name}", False)

    missing = [req for req in service.requirements if _blank(args.get(req))]
    if missing:
        labels = ", ".join(req.replace("_", " ") for req in missing)
        return build_tool_response(
            {"missing_fields": missing},
            f"I still need the following to quote {service.name}: {labels}.",
            False,
        )

    job_scope = args.get("job_scope")
    if service.job_scope_options and job_scope not in service.job_scope_options:
        return build_tool_response(
            {"job_scope_options": service.job_scope_options},
            f"Please choose a job scope for {service.name}: {', '.join(service.job_scope_options)}.",
            False,
        )

    request = QuoteRequest(
        service_name=service.name,
        job_scope=job_scope,
        requirements={req: args[req] for req in service.requirements},
    )
    result = await deps.quote_engine.calculate(request, service, session.business)
    session.select_service(service)
    session.add_quote(QuoteRecord(request=request, result=result))
    logger.info("Quote %s for %s: %.2f", result.quote_id, service.name, result.total_estimate_amount)

    return build_tool_response(
        {
            "quote_id": result.quote_id,
            "service_name": service.name,
            "total_estimate_amount": result.total_estimate_amount,
            "deposit_amount": result.deposit_amount,
            "total_estimate_time_minutes": result.total_estimate_time_minutes,
            "currency": result.currency,
        },
        f"The estimate for {service.name} is ${result.total_estimate_amount:.2f}"
        + (f" with a ${result.deposit_amount:.2f} deposit." if result.deposit_amount > 0 else "."),
        True,
    )


async def select_quote(args: dict[str, Any], session: Session, deps: ToolDependencies) -> dict[str, Any]:
    quote_id = str(args.get("quote_id") or "").strip()
    if not session.quotes:
        return build_tool_response(None, "No quotes available. Please get a quote first.", False)

    record = session.select_quote(quote_id)
    if record is None:
        available = [
            {
                "quote_id": q.quote_id,
                "service_name": q.request.service_name,
                "total_amount": q.result.total_estimate_amount,
                "deposit_amount": q.result.deposit_amount,
            }
            for q in session.quotes
        ]
        listing = ", ".join(f"{q['quote_id']} (${q['total_amount']:.2f})" for q in available)
        return build_tool_response(
            {"available_quotes": available},
            f"Quote not found: {quote_id}. Select one of the available quotes: {listing}",
            False,
        )

    if record.result.deposit_amount > 0:
        session.set_deposit_payment_state(
            DepositPaymentState(quote_id=record.quote_id, amount=record.result.deposit_amount)
        )
    return build_tool_response(
        {"quote_id": record.quote_id, "total_estimate_amount": record.result.total_estimate_amount},
        f"Great choice! Quote {record.quote_id} for {record.request.service_name} is selected.",
        True,
    )
