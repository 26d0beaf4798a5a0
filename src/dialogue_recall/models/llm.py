"""Language-model exchange models for dialogue_recall."""

from typing import Literal

from pydantic import BaseModel, Field

__all__ = [
    "LLMMessage",
    "LLMResponse",
    "LLMUsage",
]


class LLMUsage(BaseModel, frozen=True):
    """Token usage reported by a provider for one call."""

    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class LLMMessage(BaseModel, frozen=True):
    """One turn of conversation sent to a provider."""

    role: Literal["user", "assistant"]
    content: str


class LLMResponse(BaseModel, frozen=True):
    """Single-shot completion result."""

    text: str
    usage: LLMUsage | None = None
    model: str | None = None
