"""LLM provider implementations for dialogue_recall."""

from dialogue_recall.config import LLMSettings
from dialogue_recall.infra.llm.anthropic_provider import AnthropicProvider
from dialogue_recall.infra.llm.errors import translate_sdk_error
from dialogue_recall.infra.llm.openai_provider import OpenAIProvider

__all__ = ["AnthropicProvider", "OpenAIProvider", "create_llm_provider", "translate_sdk_error"]

_PROVIDERS = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
}


async def create_llm_provider(settings: LLMSettings) -> AnthropicProvider | OpenAIProvider:
    """Instantiate the provider named by ``settings.provider``.

    Raises:
        ValueError: If the provider name is not recognised
    """
    try:
        provider_class = _PROVIDERS[settings.provider.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown LLM provider {settings.provider!r}; expected one of {sorted(_PROVIDERS)}"
        ) from None
    return await provider_class.from_config(settings)
