"""Breadcrumb and error reporting for the orchestration core.

Telemetry is fire-and-forget: whatever collaborator is plugged in, a failure
inside it is logged and never reaches the operation that reported.
"""

import logging
from typing import Any, Mapping, Optional, Protocol

logger = logging.getLogger(__name__)


class Telemetry(Protocol):
    def breadcrumb(self, message: str, category: str, data: Optional[Mapping[str, Any]] = None) -> None:
        ...

    def report_error(self, error: BaseException, context: Mapping[str, Any]) -> None:
        ...


class LoggingTelemetry:
    """Telemetry that writes to the standard logging tree."""

    def __init__(self, name: str = "receptionist.telemetry") -> None:
        self._log = logging.getLogger(name)

    def breadcrumb(self, message: str, category: str, data: Optional[Mapping[str, Any]] = None) -> None:
        self._log.debug("[%s] %s %s", category, message, dict(data or {}))

    def report_error(self, error: BaseException, context: Mapping[str, Any]) -> None:
        self._log.error("%s: %s %s", type(error).__name__, error, dict(context))


class RecordingTelemetry:
    """Keeps every breadcrumb and error in memory; used by tests and the console demo."""

    def __init__(self) -> None:
        self.breadcrumbs: list[dict[str, Any]] = []
        self.errors: list[dict[str, Any]] = []

    def breadcrumb(self, message: str, category: str, data: Optional[Mapping[str, Any]] = None) -> None:
        self.breadcrumbs.append({"message": message, "category": category, "data": dict(data or {})})

    def report_error(self, error: BaseException, context: Mapping[str, Any]) -> None:
        self.errors.append({"error": error, "context": dict(context)})


class SafeTelemetry:
    """Wraps a telemetry collaborator so it can never fail its caller."""

    def __init__(self, inner: Telemetry) -> None:
        self.inner = inner

    def breadcrumb(self, message: str, category: str, data: Optional[Mapping[str, Any]] = None) -> None:
        try:
            self.inner.breadcrumb(message, category, data)
        except Exception:
            logger.warning("Telemetry breadcrumb failed for %r", message, exc_info=True)

    def report_error(self, error: BaseException, context: Mapping[str, Any]) -> None:
        try:
            self.inner.report_error(error, context)
        except Exception:
            logger.warning("Telemetry error report failed for %s", type(error).__name__, exc_info=True)


def redact_arguments(arguments: Mapping[str, Any]) -> list[str]:
    """Keep only argument names so values (names, phone numbers) never leave the process."""
    return sorted(str(key) for key in arguments)
