"""OpenAI LLM provider for dialogue_recall.

This module provides the OpenAI implementation of the LLM interface.
"""

from collections.abc import AsyncIterator
from typing import Any, Self

import openai
from openai import AsyncOpenAI

from dialogue_recall.config import LLMSettings
from dialogue_recall.errors import LLMError, LLMErrorType
from dialogue_recall.infra.llm.errors import translate_sdk_error
from dialogue_recall.interfaces.llm import LLMInterface, Prompt
from dialogue_recall.logging import get_logger
from dialogue_recall.models.llm import LLMResponse, LLMUsage

__all__ = [
    "OpenAIProvider",
]

logger = get_logger(__name__)


def _to_messages(prompt: Prompt, system: str | None) -> list[dict[str, str]]:
    messages: list[dict[str, str]] = []
    if system:
        messages.append({"role": "system", "content": system})
    if isinstance(prompt, str):
        messages.append({"role": "user", "content": prompt})
    else:
        messages.extend({"role": m.role, "content": m.content} for m in prompt)
    return messages


class OpenAIProvider(LLMInterface):
    """OpenAI implementation of LLM interface.

    Uses the chat completions API. Every SDK failure is re-raised as
    LLMError.
    """

    config_class = LLMSettings

    def __init__(self, settings: LLMSettings) -> None:
        """Initialize OpenAI provider.

        Args:
            settings: LLM configuration settings
        """
        self._settings = settings
        api_key = settings.api_key.get_secret_value() if settings.api_key else None
        self._client = AsyncOpenAI(
            api_key=api_key,
            timeout=settings.timeout_seconds,
            max_retries=settings.max_retries,
        )
        self._model = settings.model

    @classmethod
    async def from_config(cls, config: LLMSettings) -> Self:
        """Factory method for orchestrator instantiation.

        Args:
            config: LLM settings

        Returns:
            OpenAIProvider instance
        """
        return cls(config)

    @classmethod
    async def from_dict(cls, config: dict[str, Any]) -> Self:
        """Factory method for custom config dict.

        Args:
            config: Dictionary with LLM settings

        Returns:
            OpenAIProvider instance
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
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=_to_messages(prompt, system),
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.APIError as e:
            error = translate_sdk_error(openai, e)
            logger.warning(
                "llm_call_failed", provider="openai", error_type=error.error_type.value
            )
            raise error from e

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise LLMError(LLMErrorType.MALFORMED_RESPONSE, "OpenAI returned an empty completion")

        usage = None
        if response.usage is not None:
            usage = LLMUsage(
                input_tokens=response.usage.prompt_tokens,
                output_tokens=response.usage.completion_tokens,
            )
        return LLMResponse(text=content, usage=usage, model=response.model)

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
            stream = await self._client.chat.completions.create(
                model=self._model,
                messages=_to_messages(prompt, system),
                temperature=temperature,
                max_tokens=max_tokens,
                stream=True,
            )
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except openai.APIError as e:
            error = translate_sdk_error(openai, e)
            logger.warning(
                "llm_stream_failed", provider="openai", error_type=error.error_type.value
            )
            raise error from e
