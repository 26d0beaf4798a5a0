"""LLM interface for dialogue_recall.

This module defines the Protocol for language-model calls. Prompts are
either a plain string (a single user turn) or a conversation of
alternating user/assistant messages.
"""

from collections.abc import AsyncIterator, Sequence
from typing import ClassVar, Protocol, runtime_checkable

from dialogue_recall.models.llm import LLMMessage, LLMResponse

__all__ = [
    "LLMInterface",
    "Prompt",
]

type Prompt = str | Sequence[LLMMessage]


@runtime_checkable
class LLMInterface(Protocol):
    """Contract for language-model completion.

    Implementations raise dialogue_recall.errors.LLMError for every
    provider failure, including empty responses.
    """

    config_class: ClassVar[type | None] = None

    @property
    def model_name(self) -> str:
        """Model identifier used for cost accounting."""
        ...

    async def complete(
        self,
        prompt: Prompt,
        *,
        system: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> LLMResponse:
        """Run a single-shot completion.

        Args:
            prompt: User prompt or conversation
            system: Optional system prompt
            temperature: Sampling temperature
            max_tokens: Upper bound on generated tokens

        Returns:
            Generated text with usage, when the provider reports it
        """
        ...

    def stream(
        self,
        prompt: Prompt,
        *,
        system: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> AsyncIterator[str]:
        """Stream a completion as text deltas.

        Args:
            prompt: User prompt or conversation
            system: Optional system prompt
            temperature: Sampling temperature
            max_tokens: Upper bound on generated tokens

        Returns:
            Async iterator of text fragments in order
        """
        ...
