"""
Realtime receptionist entry point.

Opens one realtime bridge for an inbound call and runs it until the
upstream connection closes. Telephony webhooks call ``handle_call``; the
command line is for development against a live upstream.

Usage:
    Live call:    python main.py call <call_id> <account_id> [caller]
    Console mode: python main.py console [--scenario booking|stage|errors]
"""

import asyncio
import logging
import sys
from typing import Optional

from receptionist.config import settings
from receptionist.errors import ConfigurationError
from receptionist.runtime import Receptionist, build_receptionist

logger = logging.getLogger(__name__)


async def handle_call(receptionist: Receptionist, call_id: str, account_id: str, caller: Optional[str] = None) -> None:
    """Serve one call end to end; the session is ended and flushed when the bridge closes."""
    bridge = await receptionist.start_call(call_id, account_id, caller=caller)
    await bridge.serve()
    logger.info("Call %s finished with status %s", call_id, bridge.session.status.value)


async def _run_call(call_id: str, account_id: str, caller: Optional[str]) -> None:
    receptionist = build_receptionist(settings)
    if receptionist.pool is None:
        raise ConfigurationError("OPENAI_API_KEYS must list at least one credential")
    try:
        await handle_call(receptionist, call_id, account_id, caller)
    finally:
        await receptionist.shutdown()


def _run_console_mode() -> None:
    """Start the offline console demo (no API keys required)."""
    import console_demo

    sys.argv = [sys.argv[0], *sys.argv[2:]]
    console_demo.main()


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "console":
        _run_console_mode()
    elif len(sys.argv) >= 4 and sys.argv[1] == "call":
        asyncio.run(_run_call(sys.argv[2], sys.argv[3], sys.argv[4] if len(sys.argv) > 4 else None))
    else:
        print(__doc__)
        sys.exit(2)
