"""Anthropic LLM provider for dialogue_recall.

This module provides the Anthropic implementation of the LLM interface,
used for tutor responses, recall evaluation and tangent detection.
"""

from collections.abc import AsyncIterator
from typing import Any, Self

import anthropic
from anthropic import AsyncAnthropic

from dialogue_recall.config import LLMSettings
from dialogue_recall.errors import LLMError, LLMErrorType
from dialogue_recall.infra.llm.errors import translate_sdk_error
from dialogue_recall.interfaces.llm import LLMInterface, Prompt
from dialogue_recall.logging import get_logger
from dialogue_recall.models.llm import LLMResponse, LLMUsage

__all__ = [
    "AnthropicProvider",
]

logger = get_logger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"

# Sent as the first turn when a conversation opens with the tutor
_CONVERSATION_START = "(The study session begins.)"


def _to_messages(prompt: Prompt) -> list[dict[str, str]]:
    """Convert a prompt to Anthropic messages.

    The API wants the conversation to open with a user turn; consecutive
    turns by the same role are merged.
    """
    if isinstance(prompt, str):
        return [{"role": "user", "content": prompt}]

    messages: list[dict[str, str]] = []
    for message in prompt:
        if messages and messages[-1]["role"] == message.role:
            messages[-1]["content"] += f"\n\n{message.content}"
        else:
            messages.append({"role": message.role, "content": message.content})
    if not messages or messages[0]["role"] != "user":
        messages.insert(0, {"role": "user", "content": _CONVERSATION_START})
    return messages


class AnthropicProvider(LLMInterface):
    """Anthropic implementation of LLM interface.

    Every SDK failure is re-raised as LLMError; an empty completion is
    reported as a malformed response.
    """

    config_class = LLMSettings

    def __init__(self, settings: LLMSettings) -> None:
        """Initialize Anthropic provider.

        Args:
            settings: LLM configuration settings
        """
        self._settings = settings
        api_key = settings.api_key.get_secret_value() if settings.api_key else None
        self._client = AsyncAnthropic(
            api_key=api_key,
            timeout=settings.timeout_seconds,
            max_retries=settings.max_retries,
        )
        self._model = settings.model or DEFAULT_MODEL

    @classmethod
    async def from_config(cls, config: LLMSettings) -> Self:
        """Factory method for orchestrator instantiation.

        Args:
            config: LLM settings

        Returns:
            AnthropicProvider instance
        """
        return cls(config)

    @classmethod
    async def from_dict(cls, config: dict[str, Any]) -> Self:
        """Factory method for custom config dict.

        Args:
            config: Dictionary with LLM settings

        Returns:
            AnthropicProvider instance
        """
        settings = LLMSettings(**config)
        return cls(settings)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.close()

    @property
    def model_name(self) -> str:
        return self._model

    async def complete(
        self,
        prompt: Prompt,
        *,
        system: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> LLMResponse:
        """Run a single-shot completion."""
        try:
            response = await self._client.messages.create(
                **self._request(prompt, system, temperature, max_tokens)
            )
        except anthropic.APIError as e:
            error = translate_sdk_error(anthropic, e)
            logger.warning(
                "llm_call_failed", provider="anthropic", error_type=error.error_type.value
            )
            raise error from e

        text = "".join(block.text for block in response.content if block.type == "text")
        if not text.strip():
            raise LLMError(
                LLMErrorType.MALFORMED_RESPONSE, "Anthropic returned an empty completion"
            )

        usage = LLMUsage(
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        return LLMResponse(text=text, usage=usage, model=response.model)

    async def stream(
        self,
        prompt: Prompt,
        *,
        system: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> AsyncIterator[str]:
        """Stream a completion as text deltas."""
        try:
            async with self._client.messages.stream(
                **self._request(prompt, system, temperature, max_tokens)
            ) as stream:
                async for text in stream.text_stream:
                    if text:
                        yield text
        except anthropic.APIError as e:
            error = translate_sdk_error(anthropic, e)
            logger.warning(
                "llm_stream_failed", provider="anthropic", error_type=error.error_type.value
            )
            raise error from e

    def _request(
        self,
        prompt: Prompt,
        system: str | None,
        temperature: float,
        max_tokens: int,
    ) -> dict[str, Any]:
        request: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": _to_messages(prompt),
        }
        if system:
            request["system"] = system
        return request
