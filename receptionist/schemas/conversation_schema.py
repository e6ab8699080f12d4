"""Conversation log, token accounting and session enums."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class SessionStatus(str, Enum):
    ACTIVE = "active"
    ENDED = "ended"


class Channel(str, Enum):
    PHONE = "phone"
    WHATSAPP = "whatsapp"
    WEBSITE = "website"


class InteractionRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Interaction(BaseModel):
    """One conversational turn, optionally annotated with the tool call it led to."""

    role: InteractionRole
    content: str
    created_at: datetime = Field(default_factory=_utcnow)
    tool_name: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_result: Optional[dict[str, Any]] = None
    tool_schema_version: Optional[str] = None


class TokenUsage(BaseModel):
    """Running counters for upstream token consumption."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    input_audio_tokens: int = 0
    output_audio_tokens: int = 0

    def add(self, usage: dict[str, Any]) -> "TokenUsage":
        """Return new counters with a ``response.done`` usage block added.

        Negative or missing values count as zero so the counters never go down.
        """
        input_details = usage.get("input_token_details")
        output_details = usage.get("output_token_details")
        if not isinstance(input_details, dict):
            input_details = {}
        if not isinstance(output_details, dict):
            output_details = {}

        def _count(value: Any) -> int:
            return value if isinstance(value, int) and value > 0 else 0

        return TokenUsage(
            input_tokens=self.input_tokens + _count(usage.get("input_tokens")),
            output_tokens=self.output_tokens + _count(usage.get("output_tokens")),
            total_tokens=self.total_tokens + _count(usage.get("total_tokens")),
            input_audio_tokens=self.input_audio_tokens + _count(input_details.get("audio_tokens")),
            output_audio_tokens=self.output_audio_tokens + _count(output_details.get("audio_tokens")),
        )


class PendingToolExecution(BaseModel):
    """A tool result sent upstream and not yet acknowledged by a finished turn."""

    name: str
    call_id: str
    result: dict[str, Any]
    schema_name: str
    schema_version: str
