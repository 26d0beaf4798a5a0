"""Recall models for dialogue_recall.

These models represent the facts a learner studies ("recall points"),
the sets that group them, and the spaced-repetition memory state
attached to each point.
"""

from datetime import datetime
from enum import StrEnum
from typing import Self

from pydantic import BaseModel, Field

__all__ = [
    "LearningPhase",
    "MemoryState",
    "RecallAttempt",
    "RecallPointDTO",
    "RecallRating",
    "RecallSetDTO",
]


class RecallRating(StrEnum):
    """Qualitative recall quality fed to the scheduler."""

    FORGOT = "forgot"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"


class LearningPhase(StrEnum):
    """Lifecycle phase of a point's memory state."""

    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"


class MemoryState(BaseModel, frozen=True):
    """Spaced-repetition state of a single recall point.

    Attributes:
        stability: Resistance to memory decay (days until retrievability drops to 90%)
        difficulty: Intrinsic difficulty of the point
        due: When the point is next due for review (UTC)
        repetitions: Number of resolved reviews
        lapses: Number of reviews rated forgot
        phase: Lifecycle phase
        learning_step: Position within learning/relearning steps, if in one
        last_review: Time of the last resolved review (UTC)
        schema_version: Schema version for forward compatibility
    """

    stability: float = Field(default=0.0, ge=0.0, description="Memory stability")
    difficulty: float = Field(default=0.0, ge=0.0, description="Point difficulty")
    due: datetime = Field(description="Next due time (UTC)")
    repetitions: int = Field(default=0, ge=0, description="Resolved reviews")
    lapses: int = Field(default=0, ge=0, description="Reviews rated forgot")
    phase: LearningPhase = Field(default=LearningPhase.NEW)
    learning_step: int | None = Field(default=None, ge=0)
    last_review: datetime | None = Field(default=None)
    schema_version: int = Field(default=1)


class RecallAttempt(BaseModel, frozen=True):
    """One resolved entry in a point's recall history."""

    timestamp: datetime
    success: bool
    confidence: float | None = None


class RecallPointDTO(BaseModel, frozen=True):
    """A single fact the learner is meant to remember.

    Attributes:
        id: Unique point identifier
        recall_set_id: Owning set
        content: The fact itself
        context: Supporting context shown to the tutor
        memory_state: Current spaced-repetition state
        recall_history: Append-only list of resolved attempts, oldest first
        schema_version: Schema version for forward compatibility
    """

    id: str = Field(description="Point ID")
    recall_set_id: str = Field(description="Owning recall set ID")
    content: str = Field(description="Fact to recall")
    context: str = Field(default="", description="Supporting context")
    memory_state: MemoryState
    recall_history: tuple[RecallAttempt, ...] = Field(default=())
    schema_version: int = Field(default=1)

    def with_attempt(self, memory_state: MemoryState, attempt: RecallAttempt) -> Self:
        """Return a copy with an advanced memory state and one more history entry."""
        return self.model_copy(
            update={
                "memory_state": memory_state,
                "recall_history": (*self.recall_history, attempt),
            }
        )


class RecallSetDTO(BaseModel, frozen=True):
    """A named collection of recall points studied together."""

    id: str = Field(description="Set ID")
    name: str = Field(description="Display name")
    description: str = Field(default="", description="What the set covers")
    schema_version: int = Field(default=1)
