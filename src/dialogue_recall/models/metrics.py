"""Metrics models for dialogue_recall.

These models hold per-message timings, resolved recall outcomes and the
summary computed once a session is finalized.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from dialogue_recall.models.recall import RecallRating
from dialogue_recall.models.session import MessageRole

__all__ = [
    "MessageTiming",
    "RecallOutcomeDTO",
    "SessionMetricsSummary",
    "SessionStats",
    "TokenUsageSummary",
]


class MessageTiming(BaseModel, frozen=True):
    """Timing and token data for one recorded message.

    Attributes:
        message_id: Message this entry describes
        message_index: Position of the message in the session
        role: Author role
        timestamp: When the message was created (UTC)
        latency_ms: Time since the previous message, None for the first
        input_tokens: Prompt tokens spent producing it
        output_tokens: Completion tokens spent producing it
    """

    message_id: str
    message_index: int = Field(ge=0)
    role: MessageRole
    timestamp: datetime
    latency_ms: int | None = Field(default=None, ge=0)
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)


class RecallOutcomeDTO(BaseModel, frozen=True):
    """A resolved evaluation for one point, recorded the moment it resolved.

    Attributes:
        id: Unique outcome identifier
        session_id: Owning session
        recall_point_id: Point that was resolved
        success: Whether the point was recalled
        confidence: Evaluation confidence
        rating: Rating fed to the scheduler
        reasoning: Evaluation reasoning
        message_index_start: First message of the point's discussion (inclusive)
        message_index_end: Last message of the point's discussion (inclusive)
        duration_ms: Wall time covered by that message range
        recorded_at: When the outcome was recorded (UTC)
        schema_version: Schema version for forward compatibility
    """

    id: str
    session_id: str
    recall_point_id: str
    success: bool
    confidence: float
    rating: RecallRating | None = None
    reasoning: str = ""
    message_index_start: int = Field(ge=0)
    message_index_end: int = Field(ge=0)
    duration_ms: int = Field(default=0, ge=0)
    recorded_at: datetime
    schema_version: int = Field(default=1)


class TokenUsageSummary(BaseModel, frozen=True):
    """Accumulated token usage and its estimated cost."""

    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    cost_usd: float = Field(default=0.0, ge=0.0)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class SessionStats(BaseModel, frozen=True):
    """Live counters for an in-progress session."""

    message_count: int = 0
    elapsed_ms: int = 0
    recalled_count: int = 0
    tangent_count: int = 0
    total_tokens: int = 0


class SessionMetricsSummary(BaseModel, frozen=True):
    """Session summary computed once at finalize time and never mutated.

    Attributes:
        session_id: Session the summary describes
        started_at: Session start (UTC)
        ended_at: Session end (UTC)
        duration_ms: Wall time from start to end
        active_time_ms: Duration minus detected pauses
        total_points: Number of target points
        recalled_points: Outcomes resolved as successful
        recall_rate: recalled_points / total_points
        average_confidence: Mean confidence over resolved outcomes
        average_recall_time_ms: Mean outcome duration
        message_count: Messages recorded
        average_user_response_ms: Mean latency of learner messages
        average_assistant_response_ms: Mean latency of assistant messages
        token_usage: Token totals and cost
        tangent_count: Tangents entered
        tangents_returned: Tangents closed by returning
        tangents_abandoned: Tangents left open at the end
        engagement_score: Composite score, 0..100
        computed_at: When the summary was computed (UTC)
        schema_version: Schema version for forward compatibility
    """

    session_id: str
    started_at: datetime
    ended_at: datetime
    duration_ms: int = Field(ge=0)
    active_time_ms: int = Field(ge=0)
    total_points: int = Field(ge=0)
    recalled_points: int = Field(ge=0)
    recall_rate: float = Field(ge=0.0, le=1.0)
    average_confidence: float = 0.0
    average_recall_time_ms: int = 0
    message_count: int = 0
    average_user_response_ms: int = 0
    average_assistant_response_ms: int = 0
    token_usage: TokenUsageSummary = Field(default_factory=TokenUsageSummary)
    tangent_count: int = 0
    tangents_returned: int = 0
    tangents_abandoned: int = 0
    engagement_score: int = Field(ge=0, le=100)
    computed_at: datetime
    schema_version: int = Field(default=1)
