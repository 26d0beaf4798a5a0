"""Session metrics collection for dialogue_recall.

The collector accumulates message timings, token usage, resolved recall
outcomes and tangent records while a session runs, and computes the
SessionMetricsSummary once at finalize time.
"""

from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime

import numpy as np
from pydantic import BaseModel

from dialogue_recall.logging import get_logger
from dialogue_recall.models.evaluation import RecallEvaluation
from dialogue_recall.models.llm import LLMUsage
from dialogue_recall.models.metrics import (
    MessageTiming,
    RecallOutcomeDTO,
    SessionMetricsSummary,
    SessionStats,
    TokenUsageSummary,
)
from dialogue_recall.models.recall import RecallRating
from dialogue_recall.models.session import MessageRole, SessionDTO, SessionMessageDTO
from dialogue_recall.models.tangent import TangentEventDTO, TangentStatus
from dialogue_recall.utils.ids import generate_id, utc_now

__all__ = [
    "DEFAULT_PRICING",
    "MODEL_PRICING",
    "PAUSE_THRESHOLD_MS",
    "ModelPricing",
    "SessionMetricsCollector",
    "calculate_cost",
    "engagement_score",
]

logger = get_logger(__name__)

# Gaps longer than this between messages count as pause time, not activity
PAUSE_THRESHOLD_MS = 5 * 60 * 1000

# Response-time variance at or above this (30 s squared, in ms^2) scores zero consistency
CONSISTENCY_VARIANCE_CEILING = 900_000_000

RECALL_WEIGHT = 0.4
CONSISTENCY_WEIGHT = 0.25
TANGENT_WEIGHT = 0.2
COMPLETION_WEIGHT = 0.15


class ModelPricing(BaseModel, frozen=True):
    """USD price per million tokens."""

    input_per_million: float
    output_per_million: float


MODEL_PRICING: dict[str, ModelPricing] = {
    "claude-opus-4": ModelPricing(input_per_million=15.0, output_per_million=75.0),
    "claude-sonnet-4": ModelPricing(input_per_million=3.0, output_per_million=15.0),
    "claude-3-5-haiku": ModelPricing(input_per_million=0.8, output_per_million=4.0),
    "gpt-4o-mini": ModelPricing(input_per_million=0.15, output_per_million=0.6),
    "gpt-4o": ModelPricing(input_per_million=2.5, output_per_million=10.0),
}

DEFAULT_PRICING = MODEL_PRICING["claude-sonnet-4"]


def calculate_cost(
    model: str | None,
    input_tokens: int,
    output_tokens: int,
    pricing: Mapping[str, ModelPricing] = MODEL_PRICING,
) -> float:
    """Estimate the USD cost of token usage.

    The longest pricing key that prefixes the model name wins, so dated
    model ids resolve to their family; unknown models use DEFAULT_PRICING.
    """
    price = DEFAULT_PRICING
    if model:
        matches = [key for key in pricing if model.startswith(key)]
        if matches:
            price = pricing[max(matches, key=len)]
    return (
        input_tokens * price.input_per_million + output_tokens * price.output_per_million
    ) / 1_000_000


def engagement_score(
    outcomes: Sequence[RecallOutcomeDTO],
    tangents: Sequence[TangentEventDTO],
    latencies_ms: Sequence[int],
) -> int:
    """Composite 0..100 engagement score.

    Args:
        outcomes: Resolved recall outcomes
        tangents: Tangent events with their final status
        latencies_ms: Inter-message latencies

    Returns:
        Weighted blend of recall success, response consistency,
        tangent handling and completion, rounded and clamped
    """
    if outcomes:
        weighted = sum(o.confidence for o in outcomes if o.success)
        recall_score = weighted / len(outcomes) * 100
    else:
        recall_score = 50.0

    variance = float(np.var(latencies_ms)) if len(latencies_ms) >= 2 else 0.0
    consistency_score = (1 - min(variance / CONSISTENCY_VARIANCE_CEILING, 1.0)) * 100

    abandoned = sum(1 for t in tangents if t.status is TangentStatus.ABANDONED)
    if not tangents:
        tangent_score = 85.0
    elif len(tangents) <= 2 and abandoned == 0:
        tangent_score = 100.0
    elif abandoned == 0:
        tangent_score = 70.0
    else:
        tangent_score = max(0.0, 80 - abandoned / len(tangents) * 60)

    completion_score = 100.0 if outcomes else 0.0

    score = (
        recall_score * RECALL_WEIGHT
        + consistency_score * CONSISTENCY_WEIGHT
        + tangent_score * TANGENT_WEIGHT
        + completion_score * COMPLETION_WEIGHT
    )
    return round(max(0.0, min(100.0, score)))


def _ms(start: datetime, end: datetime) -> int:
    return max(0, int((end - start).total_seconds() * 1000))


class SessionMetricsCollector:
    """Accumulates per-session counters.

    Example:
        collector = SessionMetricsCollector(model_name="claude-sonnet-4-20250514")
        collector.start(session)
        collector.record_message(message, usage)
        ...
        summary = collector.finalize_session(session, now)
    """

    def __init__(
        self,
        model_name: str | None = None,
        pricing: Mapping[str, ModelPricing] = MODEL_PRICING,
    ) -> None:
        """Initialize collector.

        Args:
            model_name: Model used for cost estimation
            pricing: Per-model prices
        """
        self._model_name = model_name
        self._pricing = pricing
        self.reset()

    def reset(self) -> None:
        """Drop everything recorded so far."""
        self._session_id: str | None = None
        self._started_at: datetime | None = None
        self._timings: list[MessageTiming] = []
        self._outcomes: list[RecallOutcomeDTO] = []
        self._tangents: dict[str, TangentEventDTO] = {}
        self._input_tokens = 0
        self._output_tokens = 0

    def start(self, session: SessionDTO) -> None:
        """Begin collecting for a session, discarding earlier data."""
        self.reset()
        self._session_id = session.id
        self._started_at = session.started_at

    def restore(
        self,
        messages: Iterable[SessionMessageDTO],
        outcomes: Iterable[RecallOutcomeDTO] = (),
        tangents: Iterable[TangentEventDTO] = (),
    ) -> None:
        """Rebuild counters of a resumed session from persisted records."""
        for message in messages:
            self.record_message(message)
        self._outcomes.extend(outcomes)
        for event in tangents:
            self._tangents[event.id] = event

    @property
    def outcomes(self) -> list[RecallOutcomeDTO]:
        return list(self._outcomes)

    @property
    def timings(self) -> list[MessageTiming]:
        return list(self._timings)

    def record_message(
        self,
        message: SessionMessageDTO,
        usage: LLMUsage | None = None,
    ) -> MessageTiming:
        """Record a persisted message and the tokens spent producing it."""
        previous = self._timings[-1] if self._timings else None
        timing = MessageTiming(
            message_id=message.id,
            message_index=len(self._timings),
            role=message.role,
            timestamp=message.timestamp,
            latency_ms=_ms(previous.timestamp, message.timestamp) if previous else None,
            input_tokens=usage.input_tokens if usage else 0,
            output_tokens=usage.output_tokens if usage else 0,
        )
        self._timings.append(timing)
        self.record_usage(usage)
        return timing

    def record_usage(self, usage: LLMUsage | None) -> None:
        """Add tokens from a call that produced no message (evaluation, detection)."""
        if usage is None:
            return
        self._input_tokens += usage.input_tokens
        self._output_tokens += usage.output_tokens

    def record_recall_outcome(
        self,
        point_id: str,
        evaluation: RecallEvaluation,
        message_index_start: int,
        message_index_end: int,
        rating: RecallRating | None = None,
        recorded_at: datetime | None = None,
    ) -> RecallOutcomeDTO:
        """Record the resolution of one point.

        Args:
            point_id: Resolved point
            evaluation: Evaluation that resolved it
            message_index_start: First message of the point's discussion
            message_index_end: Last message of the point's discussion
            rating: Rating fed to the scheduler
            recorded_at: Resolution time (defaults to now)

        Returns:
            The recorded outcome
        """
        if self._session_id is None:
            raise RuntimeError("Metrics collection not started. Call start() first.")

        start = min(message_index_start, message_index_end)
        duration_ms = 0
        if 0 <= start and message_index_end < len(self._timings):
            duration_ms = _ms(
                self._timings[start].timestamp, self._timings[message_index_end].timestamp
            )

        outcome = RecallOutcomeDTO(
            id=generate_id("out"),
            session_id=self._session_id,
            recall_point_id=point_id,
            success=evaluation.success,
            confidence=evaluation.confidence,
            rating=rating,
            reasoning=evaluation.reasoning,
            message_index_start=start,
            message_index_end=message_index_end,
            duration_ms=duration_ms,
            recorded_at=recorded_at or utc_now(),
        )
        self._outcomes.append(outcome)
        return outcome

    def record_tangent(self, event: TangentEventDTO) -> None:
        """Record a tangent event, replacing an earlier record with the same id."""
        self._tangents[event.id] = event

    def current_stats(self, now: datetime | None = None) -> SessionStats:
        """Live counters for display while the session runs."""
        now = now or utc_now()
        return SessionStats(
            message_count=len(self._timings),
            elapsed_ms=_ms(self._started_at, now) if self._started_at else 0,
            recalled_count=sum(1 for o in self._outcomes if o.success),
            tangent_count=len(self._tangents),
            total_tokens=self._input_tokens + self._output_tokens,
        )

    def finalize_session(self, session: SessionDTO, ended_at: datetime) -> SessionMetricsSummary:
        """Compute the session summary.

        Tangents still active are counted as abandoned.

        Args:
            session: Session being finalized
            ended_at: End time

        Returns:
            Summary of the whole session
        """
        last_index = max(len(self._timings) - 1, 0)
        tangents = [
            t.close(TangentStatus.ABANDONED, last_index) if t.status is TangentStatus.ACTIVE else t
            for t in self._tangents.values()
        ]

        latencies = [t.latency_ms for t in self._timings if t.latency_ms is not None]
        pause_ms = sum(latency for latency in latencies if latency > PAUSE_THRESHOLD_MS)
        duration_ms = _ms(session.started_at, ended_at)

        recalled = sum(1 for o in self._outcomes if o.success)
        total_points = len(session.target_point_ids)

        summary = SessionMetricsSummary(
            session_id=session.id,
            started_at=session.started_at,
            ended_at=ended_at,
            duration_ms=duration_ms,
            active_time_ms=max(0, duration_ms - pause_ms),
            total_points=total_points,
            recalled_points=recalled,
            recall_rate=min(1.0, recalled / total_points) if total_points else 0.0,
            average_confidence=_mean(o.confidence for o in self._outcomes),
            average_recall_time_ms=round(_mean(o.duration_ms for o in self._outcomes)),
            message_count=len(self._timings),
            average_user_response_ms=round(self._mean_latency(MessageRole.USER)),
            average_assistant_response_ms=round(self._mean_latency(MessageRole.ASSISTANT)),
            token_usage=TokenUsageSummary(
                input_tokens=self._input_tokens,
                output_tokens=self._output_tokens,
                cost_usd=calculate_cost(
                    self._model_name, self._input_tokens, self._output_tokens, self._pricing
                ),
            ),
            tangent_count=len(tangents),
            tangents_returned=sum(1 for t in tangents if t.status is TangentStatus.RETURNED),
            tangents_abandoned=sum(1 for t in tangents if t.status is TangentStatus.ABANDONED),
            engagement_score=engagement_score(self._outcomes, tangents, latencies),
            computed_at=ended_at,
        )
        logger.info(
            "session_metrics_finalized",
            session_id=session.id,
            recall_rate=summary.recall_rate,
            engagement_score=summary.engagement_score,
            total_tokens=summary.token_usage.total_tokens,
        )
        return summary

    def _mean_latency(self, role: MessageRole) -> float:
        return _mean(
            t.latency_ms for t in self._timings if t.role is role and t.latency_ms is not None
        )


def _mean(values: Iterable[float]) -> float:
    data = list(values)
    return float(np.mean(data)) if data else 0.0
