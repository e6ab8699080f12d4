"""Correlation ID logging context for tracing a call across modules.

Provides a call_id-aware logger that attaches the current call and business
identifiers to every log message, so a single caller's journey through the
bridge, dispatcher and tool handlers can be followed in the logs.

Usage:
    from receptionist.logging_context import get_call_logger, set_call_context

    set_call_context("CA-abc123", business_id="biz-1")
    logger = get_call_logger(__name__)
    logger.info("Dispatching tool")  # -> [CA-abc123] Dispatching tool
"""

import logging
from contextvars import ContextVar
from typing import Optional

_call_id: ContextVar[str] = ContextVar("call_id", default="NO_CALL_ID")
_business_id: ContextVar[str] = ContextVar("business_id", default="")


def set_call_id(call_id: str) -> None:
    """Set the correlation ID for the current async context."""
    _call_id.set(call_id)


def get_call_id() -> str:
    """Retrieve the current correlation ID."""
    return _call_id.get()


def set_call_context(call_id: str, business_id: Optional[str] = None) -> None:
    """Bind both the call id and the owning business to the current context."""
    _call_id.set(call_id)
    if business_id is not None:
        _business_id.set(business_id)


def get_business_id() -> str:
    return _business_id.get()


class CallIdFilter(logging.Filter):
    """Injects call_id and business_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.call_id = _call_id.get()  # type: ignore[attr-defined]
        record.business_id = _business_id.get()  # type: ignore[attr-defined]
        return True


def get_call_logger(name: str) -> logging.Logger:
    """Return a logger with the CallIdFilter attached.

    The filter adds ``call_id`` and ``business_id`` to each record so
    formatters can include ``%(call_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, CallIdFilter) for f in logger.filters):
        logger.addFilter(CallIdFilter())
    return logger
