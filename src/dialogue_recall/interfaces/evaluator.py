"""Evaluator interface for dialogue_recall."""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from dialogue_recall.models.evaluation import RecallEvaluation
from dialogue_recall.models.recall import RecallPointDTO
from dialogue_recall.models.session import SessionMessageDTO

__all__ = [
    "EvaluatorInterface",
]


@runtime_checkable
class EvaluatorInterface(Protocol):
    """Contract for judging whether a point was recalled.

    The orchestrator does not catch exceptions raised here; an
    implementation that wants outages to degrade must return a
    "not recalled, zero confidence" evaluation itself.
    """

    async def evaluate(
        self,
        point: RecallPointDTO,
        recent_messages: Sequence[SessionMessageDTO],
    ) -> RecallEvaluation:
        """Judge one point against the recent conversation.

        Args:
            point: Point to judge
            recent_messages: Conversation so far, oldest first

        Returns:
            Evaluation for the point
        """
        ...
