"""Booking, deposit payment link and payment status tools."""

import logging
from typing import Any, Optional

from receptionist.schemas.booking_schema import DepositPaymentState, PaymentStatus
from receptionist.sessions.session import Session
from receptionist.tools.context import ToolDependencies
from receptionist.tools.responses import build_tool_response
from receptionist.utils import is_past_date, is_valid_date, is_valid_time

logger = logging.getLogger(__name__)


def _validate_slot(args: dict[str, Any], session: Session, deps: ToolDependencies) -> Optional[dict[str, Any]]:
    """Return a failure payload for a bad date/time pair, else None."""
    date = str(args.get("preferred_date") or "").strip()
    time = str(args.get("preferred_time") or "").strip()
    if not is_valid_date(date):
        return build_tool_response(None, "Invalid date format. Please use YYYY-MM-DD format.", False)
    if not is_valid_time(time):
        return build_tool_response(None, "Invalid time format. Please use HH:MM format (24-hour).", False)
    if is_past_date(date, deps.timezone_for(session)):
        return build_tool_response(None, "Cannot book past dates. Please select a future date.", False)
    return None


async def create_booking(args: dict[str, Any], session: Session, deps: ToolDependencies) -> dict[str, Any]:
    failure = _validate_slot(args, session, deps)
    if failure is not None:
        return failure
    date = str(args["preferred_date"]).strip()
    time = str(args["preferred_time"]).strip()
    quote_id = str(args.get("quote_id") or "").strip()

    if session.selected_quote is None:
        return build_tool_response(None, "No quote selected. Please get a quote first.", False)
    if session.selected_quote.quote_id != quote_id:
        return build_tool_response(None, "Quote ID mismatch. Please get a fresh quote.", False)
    if session.customer is None or not session.customer_id:
        return build_tool_response(None, "User profile required. Please create a user profile first.", False)

    outcome = await deps.booking_engine.create_booking(
        session.selected_quote.request,
        session.selected_quote.result,
        session.customer_id,
        date,
        time,
    )
    if not outcome.success or outcome.booking is None:
        return build_tool_response(
            None,
            outcome.error or "Booking could not be created. We will contact you shortly.",
            False,
        )

    booking = outcome.booking
    deps.spawn(
        deps.notifications.send_booking_confirmation(session, booking),
        "booking confirmation",
        session,
    )
    logger.info("Booking %s created for session %s", booking.id, session.id)
    return build_tool_response(
        {"booking_id": booking.id, "quote_id": booking.quote_id, "date": date, "time": time},
        f"Booking confirmed for {date} at {time}. You will receive a confirmation message shortly.",
        True,
    )


async def send_payment_link(args: dict[str, Any], session: Session, deps: ToolDependencies) -> dict[str, Any]:
    failure = _validate_slot(args, session, deps)
    if failure is not None:
        return failure
    date = str(args["preferred_date"]).strip()
    time = str(args["preferred_time"]).strip()

    if session.customer is None:
        return build_tool_response(None, "No customer data found. Please create a customer profile first.", False)
    if not session.quotes:
        return build_tool_response(None, "No quotes available. Please get a quote first.", False)
    record = session.select_quote(str(args.get("quote_id") or "").strip())
    if record is None:
        return build_tool_response(None, "Quote not found. Please select a quote first.", False)
    if record.result.deposit_amount <= 0:
        return build_tool_response(None, "No deposit is required for this quote. You can go ahead and book.", False)

    state = session.deposit_payment_state
    if state is None or state.quote_id != record.quote_id:
        state = DepositPaymentState(quote_id=record.quote_id, amount=record.result.deposit_amount)
        session.set_deposit_payment_state(state)

    link = await deps.payment_service.create_payment_link(session)
    if not link.success or not link.payment_link:
        logger.warning("Payment link failed for session %s: %s", session.id, link.error)
        return build_tool_response(
            None,
            "Sorry, a system error occurred with the payment link. We will contact you shortly.",
            False,
        )
    session.set_deposit_payment_state(state.model_copy(update={"payment_link": link.payment_link}))

    if not await deps.notifications.send_payment_link(session, date, time):
        logger.warning("Payment link created but SMS failed for session %s", session.id)

    return build_tool_response(
        {"payment_link": link.payment_link, "deposit_amount": record.result.deposit_amount},
        f"We just sent a payment link for the deposit of ${record.result.deposit_amount:.2f} "
        "(all fees included). Please complete the payment to proceed with booking.",
        True,
    )


async def check_payment_status(args: dict[str, Any], session: Session, deps: ToolDependencies) -> dict[str, Any]:
    if session.selected_quote is None:
        return build_tool_response(None, "No quote selected. Please get a quote first.", False)
    state = session.deposit_payment_state
    quote_id = session.selected_quote.quote_id
    if state is None or state.quote_id != quote_id:
        return build_tool_response(
            {"quote_id": quote_id},
            "No deposit payment has been started for the current quote.",
            False,
        )

    data = {"payment_status": state.status.value, "quote_id": quote_id, "amount": state.amount}
    if state.status == PaymentStatus.COMPLETED:
        return build_tool_response(data, "Payment completed successfully! You can now proceed with booking.", True)
    if state.status == PaymentStatus.PENDING:
        return build_tool_response(
            {**data, "payment_link": state.payment_link},
            "Payment is still pending. Please complete the payment using the link sent to your phone.",
            False,
        )
    return build_tool_response(data, "Payment failed. Please create a new payment link to try again.", False)
