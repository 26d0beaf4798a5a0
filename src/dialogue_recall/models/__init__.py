"""Public DTO models for dialogue_recall.

This module exports all public data transfer objects.
"""

from dialogue_recall.models.evaluation import EnhancedRecallEvaluation, RecallEvaluation
from dialogue_recall.models.llm import LLMMessage, LLMResponse, LLMUsage
from dialogue_recall.models.metrics import (
    MessageTiming,
    RecallOutcomeDTO,
    SessionMetricsSummary,
    SessionStats,
    TokenUsageSummary,
)
from dialogue_recall.models.recall import (
    LearningPhase,
    MemoryState,
    RecallAttempt,
    RecallPointDTO,
    RecallRating,
    RecallSetDTO,
)
from dialogue_recall.models.session import (
    MessageRole,
    SessionDTO,
    SessionMessageDTO,
    SessionStatus,
)
from dialogue_recall.models.tangent import TangentEventDTO, TangentStatus, TangentSuggestion

__all__ = [
    "EnhancedRecallEvaluation",
    "LLMMessage",
    "LLMResponse",
    "LLMUsage",
    "LearningPhase",
    "MemoryState",
    "MessageRole",
    "MessageTiming",
    "RecallAttempt",
    "RecallEvaluation",
    "RecallOutcomeDTO",
    "RecallPointDTO",
    "RecallRating",
    "RecallSetDTO",
    "SessionDTO",
    "SessionMessageDTO",
    "SessionMetricsSummary",
    "SessionStats",
    "SessionStatus",
    "TangentEventDTO",
    "TangentStatus",
    "TangentSuggestion",
    "TokenUsageSummary",
]
