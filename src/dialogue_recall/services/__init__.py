"""Services for dialogue_recall.

This module exports the collaborators the session orchestrator composes.
"""

from dialogue_recall.services.evaluator import (
    EnhancedRecallEvaluator,
    RatingBands,
    RecallEvaluator,
    rating_for_confidence,
)
from dialogue_recall.services.metrics_collector import (
    SessionMetricsCollector,
    calculate_cost,
    engagement_score,
)
from dialogue_recall.services.prompts import DefaultPromptBuilder
from dialogue_recall.services.scheduler import RecallScheduler
from dialogue_recall.services.tangent_detector import (
    OpenTangent,
    TangentDetector,
    TangentObservation,
    TangentState,
)

__all__ = [
    "DefaultPromptBuilder",
    "EnhancedRecallEvaluator",
    "OpenTangent",
    "RatingBands",
    "RecallEvaluator",
    "RecallScheduler",
    "SessionMetricsCollector",
    "TangentDetector",
    "TangentObservation",
    "TangentState",
    "calculate_cost",
    "engagement_score",
    "rating_for_confidence",
]
