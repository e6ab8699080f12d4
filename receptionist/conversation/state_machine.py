"""
Finite state machine for the booking conversation.

Six stages, each unlocked by successfully running one designated tool.
The tool-to-stage table is total: any tool without an entry for the current
stage leaves it unchanged, and ``completed`` never moves.

Usage:
    stage = advance_stage(ConversationStage.SERVICE_SELECTION, "get_service_details")
    assert stage == ConversationStage.QUOTING
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class ConversationStage(str, Enum):
    """All stages of a booking conversation."""
    SERVICE_SELECTION = "service_selection"
    QUOTING = "quoting"
    AVAILABILITY = "availability"
    USER_MANAGEMENT = "user_management"
    BOOKING = "booking"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Transition:
    """A single stage advance caused by a tool succeeding."""
    from_stage: ConversationStage
    to_stage: ConversationStage
    tool_name: str


@dataclass(frozen=True)
class StageEntry:
    """Recorded history entry for a stage visit."""
    stage: ConversationStage
    entered_at: datetime
    tool_name: Optional[str] = None


TRANSITIONS: tuple[Transition, ...] = (
    Transition(ConversationStage.SERVICE_SELECTION, ConversationStage.QUOTING,
               "get_service_details"),
    Transition(ConversationStage.QUOTING, ConversationStage.AVAILABILITY,
               "get_quote"),
    Transition(ConversationStage.AVAILABILITY, ConversationStage.USER_MANAGEMENT,
               "check_day_availability"),
    Transition(ConversationStage.USER_MANAGEMENT, ConversationStage.BOOKING,
               "create_user"),
    Transition(ConversationStage.BOOKING, ConversationStage.COMPLETED,
               "create_booking"),
)

_TRANSITION_INDEX: dict[tuple[ConversationStage, str], ConversationStage] = {
    (t.from_stage, t.tool_name): t.to_stage for t in TRANSITIONS
}

STAGE_TOOLS: dict[ConversationStage, tuple[str, ...]] = {
    ConversationStage.SERVICE_SELECTION: ("get_service_details",),
    ConversationStage.QUOTING: ("get_quote", "select_quote"),
    ConversationStage.AVAILABILITY: ("check_day_availability",),
    ConversationStage.USER_MANAGEMENT: ("create_user",),
    ConversationStage.BOOKING: ("create_booking", "send_payment_link", "check_payment_status"),
    ConversationStage.COMPLETED: (),
}

STAGE_ADVANCING_TOOLS: frozenset[str] = frozenset(t.tool_name for t in TRANSITIONS)


def advance_stage(stage: ConversationStage, tool_name: str) -> ConversationStage:
    """Return the stage after ``tool_name`` succeeds in ``stage``."""
    return _TRANSITION_INDEX.get((stage, tool_name), stage)


def is_terminal(stage: ConversationStage) -> bool:
    return stage == ConversationStage.COMPLETED


class ConversationStateMachine:
    """Tracks one conversation's stage and the path it took to get there."""

    def __init__(self, initial: ConversationStage = ConversationStage.SERVICE_SELECTION) -> None:
        self._current_stage = initial
        self._history: list[StageEntry] = [
            StageEntry(stage=initial, entered_at=datetime.now(timezone.utc))
        ]

    @property
    def current_stage(self) -> ConversationStage:
        return self._current_stage

    def advance(self, tool_name: str) -> ConversationStage:
        """
        Advance after ``tool_name`` succeeded.

        Returns:
            The (possibly unchanged) current stage.
        """
        new_stage = advance_stage(self._current_stage, tool_name)
        if new_stage == self._current_stage:
            return new_stage

        old_stage = self._current_stage
        self._current_stage = new_stage
        self._history.append(StageEntry(
            stage=new_stage,
            entered_at=datetime.now(timezone.utc),
            tool_name=tool_name,
        ))
        logger.debug(
            "Stage transition: %s -> %s (tool: %s)",
            old_stage.value, new_stage.value, tool_name,
        )
        return new_stage

    def is_terminal(self) -> bool:
        return is_terminal(self._current_stage)

    def get_history(self) -> list[StageEntry]:
        """Return the full stage history."""
        return list(self._history)

    def get_stage_trace(self) -> list[str]:
        """Return stage names in visit order, e.g. for logging a finished call."""
        return [entry.stage.value for entry in self._history]
