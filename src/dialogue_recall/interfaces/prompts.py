"""Prompt builder interface for dialogue_recall.

Prompt text is opaque to the orchestrator: it asks the builder for a
string and forwards it to the LLM client.
"""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from dialogue_recall.models.recall import RecallPointDTO, RecallSetDTO
from dialogue_recall.models.session import SessionMessageDTO

__all__ = [
    "PromptBuilderInterface",
]


@runtime_checkable
class PromptBuilderInterface(Protocol):
    """Contract for building tutor, evaluator and tangent prompts."""

    def tutor_system_prompt(
        self,
        recall_set: RecallSetDTO,
        current_point: RecallPointDTO | None,
        recalled_points: Sequence[RecallPointDTO],
        remaining_points: Sequence[RecallPointDTO],
    ) -> str:
        """System prompt for the tutor while probing the current point."""
        ...

    def opening_prompt(self, point: RecallPointDTO, resumed: bool) -> str:
        """Instruction for the first assistant message of a session."""
        ...

    def feedback_instruction(
        self,
        recalled_points: Sequence[RecallPointDTO],
        next_point: RecallPointDTO | None,
    ) -> str:
        """Extra system guidance after points were recalled this turn."""
        ...

    def evaluation_prompt(
        self,
        point: RecallPointDTO,
        excerpt: Sequence[SessionMessageDTO],
        enhanced: bool,
    ) -> str:
        """Prompt asking for a JSON judgment on one point."""
        ...

    def tangent_detection_prompt(
        self,
        excerpt: Sequence[SessionMessageDTO],
        current_point: RecallPointDTO | None,
        all_points: Sequence[RecallPointDTO],
        known_topics: Sequence[str],
    ) -> str:
        """Prompt asking whether the conversation drifted off topic."""
        ...

    def tangent_return_prompt(
        self,
        topic: str,
        excerpt: Sequence[SessionMessageDTO],
        current_point: RecallPointDTO | None,
    ) -> str:
        """Prompt asking whether a tangent has ended."""
        ...

    def tangent_system_prompt(
        self,
        topic: str,
        recall_set: RecallSetDTO,
        current_point: RecallPointDTO | None,
    ) -> str:
        """System prompt for exploratory discussion inside a tangent."""
        ...
