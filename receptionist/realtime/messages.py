"""Outbound realtime protocol messages and inbound event names."""

from typing import Any, Iterable

from receptionist.config import RealtimeConfig
from receptionist.schemas.tool_schema import Tool

SESSION_CREATED = "session.created"
FUNCTION_CALL_ARGUMENTS_DONE = "response.function_call_arguments.done"
RESPONSE_DONE = "response.done"
ASSISTANT_TRANSCRIPT_DONE = "response.audio_transcript.done"
USER_TRANSCRIPT_DONE = "conversation.item.input_audio_transcription.completed"
ERROR = "error"


def tool_schemas(tools: Iterable[Tool]) -> list[dict[str, Any]]:
    return [tool.to_realtime() for tool in tools]


def session_update(config: RealtimeConfig, instructions: str, tools: Iterable[Tool]) -> dict[str, Any]:
    """Initial configuration: model, instructions, audio formats and the granted tools."""
    return {
        "type": "session.update",
        "session": {
            "model": config.model,
            "modalities": ["audio", "text"],
            "instructions": instructions,
            "voice": config.voice,
            "input_audio_format": config.input_audio_format,
            "output_audio_format": config.output_audio_format,
            "input_audio_transcription": {"model": config.transcription_model},
            "turn_detection": {"type": "server_vad"},
            "tools": tool_schemas(tools),
            "tool_choice": "auto",
        },
    }


def tools_update(tools: Iterable[Tool]) -> dict[str, Any]:
    """Replace the upstream tool inventory without touching other session settings."""
    return {"type": "session.update", "session": {"tools": tool_schemas(tools), "tool_choice": "auto"}}


def function_call_output(call_id: str, output: str) -> dict[str, Any]:
    return {
        "type": "conversation.item.create",
        "item": {"type": "function_call_output", "call_id": call_id, "output": output},
    }


def response_create() -> dict[str, Any]:
    return {"type": "response.create"}
