"""
Offline console demo: plays a scripted realtime-model conversation through
the real bridge, dispatcher and stage gate without any API keys.

The "model" is a list of protocol events fed over an in-process transport.
Everything the bridge sends back (session config, tool inventory updates,
function results, turn requests) is printed as it happens.

Usage:
    python console_demo.py
    python console_demo.py --scenario stage
    python console_demo.py --scenario errors
"""

import argparse
import asyncio
import json
from datetime import date, timedelta
from typing import Any, Iterable

from receptionist.backends.memory import DEMO_BUSINESS
from receptionist.config import AppConfig, PoolConfig, SessionConfig, ToolConfig, settings
from receptionist.runtime import build_receptionist
from receptionist.telemetry import RecordingTelemetry

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"


def _next_weekday(offset_days: int = 3) -> str:
    day = date.today() + timedelta(days=offset_days)
    while day.weekday() >= 5:
        day += timedelta(days=1)
    return day.isoformat()


class ScriptedTransport:
    """Stands in for the websocket: yields scripted events, prints what the bridge sends."""

    def __init__(self, events: Iterable[dict[str, Any]]) -> None:
        self._events = list(events)
        self.sent: list[dict[str, Any]] = []
        self.last_quote_id = ""

    async def send(self, frame: str) -> None:
        payload = json.loads(frame)
        self.sent.append(payload)
        kind = payload["type"]
        if kind == "session.update":
            tools = [t["name"] for t in payload["session"].get("tools", [])]
            print(f"{DIM}  >> session.update tools={tools}{RESET}")
        elif kind == "conversation.item.create":
            output = json.loads(payload["item"]["output"])
            self.last_quote_id = output.get("quote_id", self.last_quote_id)
            colour = GREEN if output["success"] else RED
            print(f"{colour}{BOLD}[Tool result]{RESET} {colour}{output['message']}{RESET}")
        else:
            print(f"{DIM}  >> {kind}{RESET}")

    async def close(self) -> None:
        return None

    def __aiter__(self):
        return self._frames()

    async def _frames(self):
        for event in self._events:
            if isinstance(event, str):
                print(f"\n{YELLOW}[Transport]{RESET} garbled frame {event!r}")
                yield event
                continue
            if event["type"] == "response.function_call_arguments.done":
                args = event["arguments"]
                if isinstance(args, dict):
                    args = {k: (self.last_quote_id if v == "$QUOTE" else v) for k, v in args.items()}
                    event = {**event, "arguments": json.dumps(args)}
                print(f"\n{BLUE}[Model]{RESET} calls {event['name']} {event['arguments']}")
            elif event["type"].endswith("transcription.completed"):
                print(f"\n{BLUE}[Caller]{RESET} {event['transcript']}")
            yield json.dumps(event)


def _call(call_id: str, name: str, arguments: Any) -> list[dict[str, Any]]:
    return [
        {"type": "response.function_call_arguments.done", "call_id": call_id, "name": name, "arguments": arguments},
        {"type": "response.done", "response": {
            "output": [{"type": "function_call", "call_id": call_id}],
            "usage": {"input_tokens": 120, "output_tokens": 30, "total_tokens": 150},
        }},
    ]


def _said(text: str) -> dict[str, Any]:
    return {"type": "conversation.item.input_audio_transcription.completed", "transcript": text}


def _booking_script(day: str) -> list[dict[str, Any]]:
    return [
        {"type": "session.created"},
        _said("Hi, I need someone to clean my pool"),
        *_call("c1", "get_service_details", {"service_name": "poool cleening"}),
        *_call("c2", "request_tool", {"tool_name": "get_quote", "service_name": "Pool Cleaning"}),
        *_call("c3", "get_quote", {
            "service_name": "Pool Cleaning", "job_scope": "Standard clean",
            "customer_address": "42 Wallaby Way, Sydney", "square_meters": 40,
        }),
        *_call("c4", "request_tool", {"tool_name": "check_day_availability"}),
        *_call("c5", "check_day_availability", {"date": day}),
        *_call("c6", "request_tool", {"tool_name": "create_user"}),
        *_call("c7", "create_user", {"first_name": "John", "last_name": "Smith", "mobile_number": "0412 345 678"}),
        *_call("c8", "request_tool", {"tool_name": "create_booking"}),
        *_call("c9", "create_booking", {"preferred_date": day, "preferred_time": "10:00", "quote_id": "$QUOTE"}),
    ]


def _stage_script(day: str) -> list[dict[str, Any]]:
    return [
        {"type": "session.created"},
        *_call("s1", "get_service_details", {"service_name": "furniture removal"}),
        *_call("s2", "get_quote", {
            "pickup_addresses": ["1 Smith St, Fitzroy"], "dropoff_addresses": ["9 High St, Kew"],
            "number_of_people": 2, "number_of_rooms": 3,
        }),
        *_call("s3", "check_day_availability", {"date": day}),
        *_call("s4", "create_user", {"first_name": "Sarah", "mobile_number": "0498765432"}),
        *_call("s5", "create_booking", {"preferred_date": day, "preferred_time": "09:00", "quote_id": "$QUOTE"}),
        *_call("s6", "get_quote", {"service_name": "Pool Repairs"}),
    ]


def _errors_script(day: str) -> list[dict[str, Any]]:
    return [
        {"type": "session.created"},
        *_call("e1", "get_quote", {"service_name": "Pool Cleaning"}),
        *_call("e2", "request_tool", {"tool_name": "get_quote"}),
        *_call("e3", "request_tool", {"tool_name": "launch_rocket"}),
        *_call("e4", "get_service_details", "{not json"),
        "this frame is not json",
        *_call("e5", "get_service_details", {"service_name": "roof plumbing"}),
        {"type": "error", "error": {"type": "invalid_request_error", "message": "demo upstream error"}},
    ]


SCENARIOS = {
    "booking": ("request", _booking_script),
    "stage": ("stage", _stage_script),
    "errors": ("request", _errors_script),
}


async def run_scenario(scenario: str) -> None:
    policy, script = SCENARIOS[scenario]
    config = AppConfig(
        realtime=settings.realtime,
        pool=PoolConfig(api_keys=("demo-key-1", "demo-key-2")),
        session=SessionConfig(cleanup_delay_sec=0, redis_url=""),
        tools=ToolConfig(policy=policy, fuzzy_threshold=settings.tools.fuzzy_threshold),
        log_level=settings.log_level,
        agent_name=settings.agent_name,
    )
    telemetry = RecordingTelemetry()
    receptionist = build_receptionist(config, telemetry=telemetry)
    transport = ScriptedTransport(script(_next_weekday()))

    async def connector(url: str, headers: dict[str, str]) -> ScriptedTransport:
        return transport

    print()
    print(f"{BOLD}{'=' * 60}{RESET}")
    print(f"{BOLD}  AI RECEPTIONIST - Scenario: {scenario} (policy: {policy}){RESET}")
    print(f"{BOLD}  Business: {DEMO_BUSINESS.name}{RESET}")
    print(f"{BOLD}{'=' * 60}{RESET}")

    bridge = await receptionist.start_call(
        f"CA-demo-{scenario}", DEMO_BUSINESS.external_account_id, caller="+61412345678", connector=connector
    )
    await bridge.serve()
    await receptionist.shutdown()

    session = bridge.session
    print(f"\n{BOLD}{'=' * 60}{RESET}")
    print(f"{BOLD}  Scenario '{scenario}' complete.{RESET}")
    print(f"{DIM}  Status: {session.status.value}, stage trace: "
          f"{' -> '.join(session.state_machine.get_stage_trace())}{RESET}")
    print(f"{DIM}  Granted tools: {session.granted_tool_names()}{RESET}")
    print(f"{DIM}  Quotes: {[q.quote_id for q in session.quotes]}, tokens: {session.token_usage.total_tokens}{RESET}")
    print(f"{DIM}  Pool counters after close: {list(receptionist.pool.counters)}{RESET}")
    print(f"{YELLOW}  Failures reported: {len(telemetry.errors)}{RESET}")
    print(f"{BOLD}{'=' * 60}{RESET}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline AI receptionist demo")
    parser.add_argument("--scenario", choices=sorted(SCENARIOS), default="booking")
    args = parser.parse_args()
    asyncio.run(run_scenario(args.scenario))


if __name__ == "__main__":
    main()
