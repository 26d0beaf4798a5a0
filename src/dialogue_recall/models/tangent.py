"""Tangent ("rabbit hole") models for dialogue_recall."""

from datetime import datetime
from enum import StrEnum
from typing import Self

from pydantic import BaseModel, Field

from dialogue_recall.config import MAX_TANGENT_DEPTH

__all__ = [
    "TangentEventDTO",
    "TangentStatus",
    "TangentSuggestion",
]


class TangentStatus(StrEnum):
    """Status of a tangent event."""

    ACTIVE = "active"
    RETURNED = "returned"
    ABANDONED = "abandoned"


class TangentSuggestion(BaseModel, frozen=True):
    """A detected tangent offered to the learner but not yet entered."""

    event_id: str
    topic: str
    trigger_message_index: int = Field(ge=0)
    related_point_ids: tuple[str, ...] = Field(default=())
    user_initiated: bool = True
    confidence: float = 0.0


class TangentEventDTO(BaseModel, frozen=True):
    """A conversational detour the learner chose to follow.

    Attributes:
        id: Unique event identifier
        session_id: Owning session
        topic: Short label for the tangent
        trigger_message_index: Index of the message that started it
        return_message_index: Index of the message that ended it, None while active
        depth: Nesting depth, 1 for a tangent entered from the main discussion
        related_point_ids: Target points the tangent touches
        user_initiated: Whether the learner (rather than the tutor) steered away
        status: Current status
        created_at: When the learner entered it (UTC)
        schema_version: Schema version for forward compatibility
    """

    id: str = Field(description="Tangent event ID")
    session_id: str = Field(description="Session ID")
    topic: str = Field(description="Tangent topic label")
    trigger_message_index: int = Field(ge=0)
    return_message_index: int | None = Field(default=None, ge=0)
    depth: int = Field(default=1, ge=1, le=MAX_TANGENT_DEPTH)
    related_point_ids: tuple[str, ...] = Field(default=())
    user_initiated: bool = True
    status: TangentStatus = Field(default=TangentStatus.ACTIVE)
    created_at: datetime
    schema_version: int = Field(default=1)

    def close(self, status: TangentStatus, return_message_index: int) -> Self:
        """Return a closed copy of this event."""
        return self.model_copy(
            update={"status": status, "return_message_index": return_message_index}
        )
