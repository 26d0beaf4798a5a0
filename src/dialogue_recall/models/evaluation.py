"""Evaluation models for dialogue_recall.

An evaluation is the judgment on whether a single recall point has been
demonstrated in the recent conversation.
"""

from typing import Self

from pydantic import BaseModel, Field

from dialogue_recall.models.llm import LLMUsage
from dialogue_recall.models.recall import RecallRating

__all__ = [
    "EnhancedRecallEvaluation",
    "RecallEvaluation",
]


class RecallEvaluation(BaseModel, frozen=True):
    """Judgment for one point.

    Confidence is nominally in [0, 1] but is not validated here; the
    built-in evaluators clamp what they parse, and the rating mapping
    tolerates anything else.

    Attributes:
        success: Whether the learner demonstrated the point
        confidence: Confidence in the judgment
        reasoning: Short explanation
        usage: Token usage of the call that produced it, if any
    """

    success: bool
    confidence: float
    reasoning: str = ""
    usage: LLMUsage | None = Field(default=None, exclude=True)

    @classmethod
    def degraded(cls, reason: str) -> Self:
        """Default returned when the evaluation call fails or cannot be parsed."""
        return cls(success=False, confidence=0.0, reasoning=f"Evaluation unavailable: {reason}")


class EnhancedRecallEvaluation(RecallEvaluation, frozen=True):
    """Evaluation with concept coverage and a suggested rating."""

    demonstrated_concepts: tuple[str, ...] = Field(default=())
    missed_concepts: tuple[str, ...] = Field(default=())
    suggested_rating: RecallRating = RecallRating.FORGOT
