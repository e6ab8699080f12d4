"""
Per-call bridge between a Session and the realtime model connection.

The bridge owns one websocket for its lifetime:
``disconnected -> connecting -> open -> closed``. A closed bridge is never
reopened. Inbound frames are handled one at a time in arrival order, so a
function call's tool-inventory update always reaches the model before its
result. Sends on a bridge that is not open are dropped, not raised.
"""

import asyncio
import json
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from receptionist.config import RealtimeConfig
from receptionist.errors import BridgeStateError, ConfigurationError, InfrastructureError
from receptionist.logging_context import get_call_logger, set_call_context
from receptionist.realtime import messages
from receptionist.realtime.pool import ConnectionPool
from receptionist.schemas.conversation_schema import Interaction, InteractionRole, PendingToolExecution
from receptionist.schemas.tool_schema import Tool
from receptionist.sessions.session import Session
from receptionist.telemetry import LoggingTelemetry, SafeTelemetry, Telemetry
from receptionist.tools.dispatcher import ToolDispatcher
from receptionist.tools.responses import system_error_response, to_wire

logger = get_call_logger(__name__)

Connector = Callable[[str, dict[str, str]], Awaitable[Any]]


class BridgeState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


async def connect_websocket(url: str, headers: dict[str, str]) -> Any:
    return await websockets.connect(url, additional_headers=headers, max_size=None)


class RealtimeBridge:
    def __init__(
        self,
        session: Session,
        dispatcher: ToolDispatcher,
        pool: ConnectionPool,
        config: RealtimeConfig,
        telemetry: Optional[Telemetry] = None,
        connector: Optional[Connector] = None,
    ) -> None:
        self.session = session
        self.dispatcher = dispatcher
        self.pool = pool
        self.config = config
        self.telemetry = SafeTelemetry(telemetry or LoggingTelemetry())
        self._connector = connector or connect_websocket
        self._ws: Any = None
        self._credential_index: Optional[int] = None
        self.state = BridgeState.DISCONNECTED
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[None]]] = {
            messages.SESSION_CREATED: self._on_session_created,
            messages.FUNCTION_CALL_ARGUMENTS_DONE: self._on_function_call,
            messages.RESPONSE_DONE: self._on_response_done,
            messages.ASSISTANT_TRANSCRIPT_DONE: self._on_assistant_transcript,
            messages.USER_TRANSCRIPT_DONE: self._on_user_transcript,
            messages.ERROR: self._on_error,
        }

    @property
    def is_open(self) -> bool:
        return self.state == BridgeState.OPEN and self._ws is not None

    # --- lifecycle ---

    async def open(self) -> None:
        """Assign a credential and connect, bounded by the configured timeout."""
        if self.state != BridgeState.DISCONNECTED:
            raise BridgeStateError(f"Cannot open a bridge in state {self.state.value}")
        set_call_context(self.session.id, self.session.business_id)
        self.state = BridgeState.CONNECTING
        credential, self._credential_index = self.pool.assign()
        url = f"{self.config.url}?model={self.config.model}"
        headers = {"Authorization": f"Bearer {credential}", "OpenAI-Beta": "realtime=v1"}

        try:
            self._ws = await asyncio.wait_for(
                self._connector(url, headers), timeout=self.config.connect_timeout_sec
            )
        except (asyncio.TimeoutError, OSError, WebSocketException) as exc:
            logger.error("Realtime connection failed: %s", exc or type(exc).__name__)
            self.telemetry.report_error(exc, {
                "session_id": self.session.id,
                "business_id": self.session.business_id,
                "operation": "realtime_connect",
            })
            await self.close(reason="connect failed")
            raise

        self.state = BridgeState.OPEN
        self.session.attach_connection(self._ws)
        logger.info("Realtime connection open on credential %d", self._credential_index)

    async def run(self) -> None:
        """Process inbound frames until the connection closes, then close the bridge."""
        if not self.is_open:
            raise BridgeStateError(f"Cannot run a bridge in state {self.state.value}")
        set_call_context(self.session.id, self.session.business_id)
        try:
            async for raw in self._ws:
                await self.handle_message(raw)
        except ConnectionClosed as exc:
            logger.info("Realtime connection closed: %s", exc)
        finally:
            await self.close(reason="connection closed")

    async def serve(self) -> None:
        await self.open()
        await self.run()

    async def close(self, reason: str = "closed") -> None:
        """Release the credential and end the session. Safe to call more than once."""
        if self.state == BridgeState.CLOSED:
            return
        self.state = BridgeState.CLOSED
        ws, self._ws = self._ws, None
        self.session.detach_connection()
        if ws is not None:
            try:
                await ws.close()
            except (OSError, WebSocketException) as exc:
                logger.debug("Error while closing websocket: %s", exc)
        self._release_credential()
        if self.session.end():
            logger.info("Call ended (%s)", reason)

    def _release_credential(self) -> None:
        index, self._credential_index = self._credential_index, None
        if index is not None:
            self.pool.release(index)

    # --- inbound ---

    async def handle_message(self, raw: Any) -> None:
        """Decode one frame. Malformed frames are logged and skipped."""
        try:
            event = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed realtime frame: %.200r", raw)
            return
        if not isinstance(event, dict) or not isinstance(event.get("type"), str):
            logger.warning("Ignoring realtime frame without a type: %.200r", raw)
            return
        await self.handle_event(event)

    async def handle_event(self, event: dict[str, Any]) -> None:
        """Route one decoded event. A payload of the wrong shape is logged and skipped."""
        handler = self._handlers.get(event["type"])
        if handler is None:
            logger.debug("Unhandled realtime event %s", event["type"])
            return
        try:
            await handler(event)
        except ConfigurationError:
            raise
        except (AttributeError, TypeError, KeyError, ValueError) as exc:
            logger.warning("Ignoring malformed %s event: %s", event["type"], exc)
            self.telemetry.report_error(exc, {
                "session_id": self.session.id,
                "business_id": self.session.business_id,
                "operation": "realtime_event",
                "event_type": event["type"],
            })

    async def _on_session_created(self, event: dict[str, Any]) -> None:
        # The first response is the receptionist's greeting.
        if await self.send_session_update():
            await self.request_next_turn()

    async def _on_function_call(self, event: dict[str, Any]) -> None:
        call_id = event.get("call_id")
        name = event.get("name")
        if not call_id or not name:
            logger.warning("Function call event missing call_id or name: %s", event.get("event_id"))
            return
        await self.execute_function_call(call_id, name, event.get("arguments", ""))

    async def execute_function_call(self, call_id: str, name: str, arguments: Any) -> dict[str, Any]:
        """Dispatch, sync the tool inventory if it changed, then send the result."""
        inventory_before = self.session.tool_inventory_signature()
        granted = self.session.granted_tool(name)
        try:
            result = await self.dispatcher.dispatch_call(name, arguments, self.session)
        except ConfigurationError:
            raise
        except Exception:
            logger.exception("Tool %s failed; sending system error to the model", name)
            result = system_error_response()

        if self.session.tool_inventory_signature() != inventory_before:
            await self.push_tool_inventory()

        self.session.record_tool_execution(PendingToolExecution(
            name=name,
            call_id=call_id,
            result=result,
            schema_name=name,
            schema_version=granted.version if granted else "unavailable",
        ))
        await self.send_function_result(call_id, result)
        return result

    async def _on_response_done(self, event: dict[str, Any]) -> None:
        response = event.get("response")
        if not isinstance(response, dict):
            logger.warning("response.done without a response object: %.200r", response)
            return
        usage = response.get("usage")
        if isinstance(usage, dict):
            self.session.add_token_usage(usage)
        outputs = response.get("output")
        if not isinstance(outputs, list):
            return
        if any(isinstance(item, dict) and item.get("type") == "function_call" for item in outputs):
            self.session.clear_pending_tool_execution()
            await self.request_next_turn()

    async def _on_assistant_transcript(self, event: dict[str, Any]) -> None:
        transcript = (event.get("transcript") or "").strip()
        if transcript:
            self.session.add_interaction(Interaction(role=InteractionRole.ASSISTANT, content=transcript))

    async def _on_user_transcript(self, event: dict[str, Any]) -> None:
        transcript = (event.get("transcript") or "").strip()
        if transcript:
            self.session.add_interaction(Interaction(role=InteractionRole.USER, content=transcript))

    async def _on_error(self, event: dict[str, Any]) -> None:
        error = event.get("error") or {}
        message = error.get("message") if isinstance(error, dict) else str(error)
        logger.error("Realtime error event: %s", message)
        self.telemetry.report_error(
            InfrastructureError(message or "realtime error", "realtime_event"),
            {
                "session_id": self.session.id,
                "business_id": self.session.business_id,
                "error_type": error.get("type") if isinstance(error, dict) else None,
            },
        )

    # --- outbound ---

    async def _send(self, payload: dict[str, Any]) -> bool:
        if not self.is_open:
            logger.debug("Dropping %s: bridge is %s", payload.get("type"), self.state.value)
            return False
        try:
            await self._ws.send(json.dumps(payload))
        except ConnectionClosed as exc:
            logger.warning("Send of %s failed, connection closed: %s", payload.get("type"), exc)
            return False
        return True

    async def send_session_update(self) -> bool:
        return await self._send(messages.session_update(
            self.config, self.session.ai_instructions, self.session.granted_tools
        ))

    async def push_tool_inventory(self, tools: Optional[Iterable[Tool]] = None) -> bool:
        tools = list(self.session.granted_tools if tools is None else tools)
        logger.info("Pushing tool inventory: %s", [tool.name for tool in tools])
        return await self._send(messages.tools_update(tools))

    async def send_function_result(self, call_id: str, result: dict[str, Any]) -> bool:
        return await self._send(messages.function_call_output(call_id, to_wire(result)))

    async def request_next_turn(self) -> bool:
        return await self._send(messages.response_create())
