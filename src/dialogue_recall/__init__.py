"""dialogue_recall - Conversational spaced-repetition study sessions.

This package provides tools for:
- Running tutor-led recall sessions over a set of facts ("recall points")
- Judging from free-form conversation whether each point was recalled
- Scheduling the next review of every point with FSRS
- Detecting and managing conversational tangents
- Collecting per-session metrics and an engagement score

Example usage:
    from dialogue_recall import SessionOrchestrator

    # Config loaded from .env automatically
    async with await SessionOrchestrator.from_config() as orchestrator:
        await orchestrator.start_session("set_biology")
        print(await orchestrator.get_opening_message())
        result = await orchestrator.process_user_message("Mitochondria make ATP")
        if result.completion_pending:
            summary = await orchestrator.finalize_session()
"""

__version__ = "0.1.0"

from dialogue_recall.config import DialogueRecallConfig
from dialogue_recall.errors import (
    DialogueRecallError,
    LLMError,
    LLMErrorType,
    NoActiveSessionError,
    NoPointsDueError,
    SessionNotActiveError,
    SessionNotCompleteError,
    UnknownTangentError,
)
from dialogue_recall.infra.llm.anthropic_provider import AnthropicProvider
from dialogue_recall.infra.llm.openai_provider import OpenAIProvider
from dialogue_recall.infra.mongo.repositories import MongoSessionRepository
from dialogue_recall.interfaces.evaluator import EvaluatorInterface
from dialogue_recall.interfaces.llm import LLMInterface
from dialogue_recall.interfaces.prompts import PromptBuilderInterface
from dialogue_recall.interfaces.storage import MetricsStorageInterface, SessionStorageInterface
from dialogue_recall.models.metrics import SessionMetricsSummary
from dialogue_recall.models.recall import MemoryState, RecallPointDTO, RecallRating, RecallSetDTO
from dialogue_recall.models.session import SessionDTO, SessionMessageDTO, SessionStatus
from dialogue_recall.protocol.handler import SessionChannelHandler
from dialogue_recall.services.evaluator import EnhancedRecallEvaluator, RecallEvaluator
from dialogue_recall.services.metrics_collector import SessionMetricsCollector
from dialogue_recall.services.prompts import DefaultPromptBuilder
from dialogue_recall.services.scheduler import RecallScheduler
from dialogue_recall.services.tangent_detector import TangentDetector
from dialogue_recall.session.events import SessionEvent, SessionEventChannel, SessionEventType
from dialogue_recall.session.orchestrator import SessionOrchestrator, TurnResult

__all__ = [
    "__version__",
    # Orchestrator
    "SessionOrchestrator",
    "TurnResult",
    "SessionChannelHandler",
    "DialogueRecallConfig",
    # Interfaces
    "EvaluatorInterface",
    "LLMInterface",
    "MetricsStorageInterface",
    "PromptBuilderInterface",
    "SessionStorageInterface",
    # Implementations
    "AnthropicProvider",
    "DefaultPromptBuilder",
    "EnhancedRecallEvaluator",
    "MongoSessionRepository",
    "OpenAIProvider",
    "RecallEvaluator",
    "RecallScheduler",
    "SessionMetricsCollector",
    "TangentDetector",
    # Events
    "SessionEvent",
    "SessionEventChannel",
    "SessionEventType",
    # Models
    "MemoryState",
    "RecallPointDTO",
    "RecallRating",
    "RecallSetDTO",
    "SessionDTO",
    "SessionMessageDTO",
    "SessionMetricsSummary",
    "SessionStatus",
    # Errors
    "DialogueRecallError",
    "LLMError",
    "LLMErrorType",
    "NoActiveSessionError",
    "NoPointsDueError",
    "SessionNotActiveError",
    "SessionNotCompleteError",
    "UnknownTangentError",
]
