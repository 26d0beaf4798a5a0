"""Unit tests for session metrics collection."""

from datetime import timedelta

import pytest

from dialogue_recall.models.evaluation import RecallEvaluation
from dialogue_recall.models.llm import LLMUsage
from dialogue_recall.models.metrics import RecallOutcomeDTO
from dialogue_recall.models.recall import RecallRating
from dialogue_recall.models.session import MessageRole, SessionDTO
from dialogue_recall.models.tangent import TangentEventDTO, TangentStatus
from dialogue_recall.services.metrics_collector import (
    PAUSE_THRESHOLD_MS,
    SessionMetricsCollector,
    calculate_cost,
    engagement_score,
)
from tests.mocks.factories import NOW, make_message


def outcome(success: bool, confidence: float, point_id: str = "pt_1") -> RecallOutcomeDTO:
    return RecallOutcomeDTO(
        id=f"out_{point_id}",
        session_id="sess_1",
        recall_point_id=point_id,
        success=success,
        confidence=confidence,
        message_index_start=0,
        message_index_end=1,
        recorded_at=NOW,
    )


def tangent(event_id: str, status: TangentStatus = TangentStatus.RETURNED) -> TangentEventDTO:
    return TangentEventDTO(
        id=event_id,
        session_id="sess_1",
        topic=f"topic {event_id}",
        trigger_message_index=1,
        status=status,
        created_at=NOW,
    )


@pytest.fixture
def session() -> SessionDTO:
    return SessionDTO(
        id="sess_1",
        recall_set_id="set_history",
        target_point_ids=("pt_1", "pt_2"),
        started_at=NOW,
    )


class TestCalculateCost:
    """Tests for calculate_cost."""

    def test_known_model(self) -> None:
        cost = calculate_cost("claude-sonnet-4-20250514", 1_000_000, 1_000_000)
        assert cost == pytest.approx(18.0)

    def test_longest_prefix_wins(self) -> None:
        mini = calculate_cost("gpt-4o-mini-2024-07-18", 1_000_000, 0)
        full = calculate_cost("gpt-4o-2024-08-06", 1_000_000, 0)
        assert mini == pytest.approx(0.15)
        assert full == pytest.approx(2.5)

    def test_unknown_model_uses_default(self) -> None:
        assert calculate_cost("some-local-model", 2_000_000, 0) == pytest.approx(6.0)
        assert calculate_cost(None, 0, 1_000_000) == pytest.approx(15.0)


class TestEngagementScore:
    """Tests for engagement_score."""

    def test_neutral_session(self) -> None:
        # recall 50, consistency 100, tangents 85, completion 0
        assert engagement_score([], [], []) == 62

    def test_perfect_session(self) -> None:
        outcomes = [outcome(True, 1.0, "a"), outcome(True, 1.0, "b")]
        tangents = [tangent("rh_1")]
        assert engagement_score(outcomes, tangents, [4000, 4000, 4000]) == 100

    def test_failed_recalls_weigh_zero(self) -> None:
        outcomes = [outcome(True, 0.8, "a"), outcome(False, 0.9, "b")]
        # recall 40, consistency 100, tangents 85, completion 100
        assert engagement_score(outcomes, [], []) == 73

    def test_erratic_timing_lowers_score(self) -> None:
        outcomes = [outcome(True, 1.0)]
        steady = engagement_score(outcomes, [], [5000, 5000, 5000])
        erratic = engagement_score(outcomes, [], [1000, 90_000, 2000, 120_000])
        assert erratic < steady

    @pytest.mark.parametrize(
        ("statuses", "expected_tangent_score"),
        [
            ([TangentStatus.RETURNED] * 3, 70.0),
            ([TangentStatus.RETURNED, TangentStatus.ABANDONED], 50.0),
            ([TangentStatus.ABANDONED] * 4, 20.0),
        ],
    )
    def test_tangent_handling(
        self, statuses: list[TangentStatus], expected_tangent_score: float
    ) -> None:
        tangents = [tangent(f"rh_{i}", status) for i, status in enumerate(statuses)]
        outcomes = [outcome(True, 1.0)]
        expected = round(40 + 25 + expected_tangent_score * 0.2 + 15)
        assert engagement_score(outcomes, tangents, []) == expected


class TestSessionMetricsCollector:
    """Tests for SessionMetricsCollector."""

    def test_outcome_requires_start(self) -> None:
        collector = SessionMetricsCollector()
        with pytest.raises(RuntimeError):
            collector.record_recall_outcome(
                "pt_1", RecallEvaluation(success=True, confidence=1.0), 0, 1
            )

    def test_record_message_latency(self, session: SessionDTO) -> None:
        collector = SessionMetricsCollector()
        collector.start(session)

        first = collector.record_message(make_message(0, MessageRole.ASSISTANT, "Hi"))
        second = collector.record_message(make_message(1, MessageRole.USER, "Hello"))

        assert first.latency_ms is None
        assert second.latency_ms == 10_000
        assert second.message_index == 1

    def test_outcome_duration_spans_messages(self, session: SessionDTO) -> None:
        collector = SessionMetricsCollector()
        collector.start(session)
        for i in range(4):
            collector.record_message(make_message(i, MessageRole.USER, "m"))

        recorded = collector.record_recall_outcome(
            "pt_1",
            RecallEvaluation(success=True, confidence=0.9, reasoning="ok"),
            1,
            3,
            rating=RecallRating.EASY,
            recorded_at=NOW,
        )

        assert recorded.duration_ms == 20_000
        assert recorded.rating == RecallRating.EASY
        assert recorded.session_id == "sess_1"
        assert collector.outcomes == [recorded]

    def test_current_stats(self, session: SessionDTO) -> None:
        collector = SessionMetricsCollector()
        collector.start(session)
        collector.record_message(
            make_message(0, MessageRole.ASSISTANT, "Hi"),
            LLMUsage(input_tokens=50, output_tokens=5),
        )
        collector.record_usage(LLMUsage(input_tokens=10, output_tokens=2))
        collector.record_tangent(tangent("rh_1", TangentStatus.ACTIVE))

        stats = collector.current_stats(NOW + timedelta(seconds=30))

        assert stats.message_count == 1
        assert stats.elapsed_ms == 30_000
        assert stats.total_tokens == 67
        assert stats.tangent_count == 1

    def test_finalize_session(self, session: SessionDTO) -> None:
        collector = SessionMetricsCollector(model_name="claude-sonnet-4-20250514")
        collector.start(session)
        collector.record_message(
            make_message(0, MessageRole.ASSISTANT, "Q1"),
            LLMUsage(input_tokens=1000, output_tokens=100),
        )
        collector.record_message(make_message(1, MessageRole.USER, "A1"))
        collector.record_message(make_message(2, MessageRole.ASSISTANT, "Q2"))
        collector.record_message(make_message(3, MessageRole.USER, "A2"))
        collector.record_recall_outcome(
            "pt_1", RecallEvaluation(success=True, confidence=0.9), 0, 1, recorded_at=NOW
        )
        collector.record_recall_outcome(
            "pt_2", RecallEvaluation(success=True, confidence=0.7), 2, 3, recorded_at=NOW
        )
        collector.record_tangent(tangent("rh_1", TangentStatus.RETURNED))
        collector.record_tangent(tangent("rh_2", TangentStatus.ACTIVE))

        summary = collector.finalize_session(session, NOW + timedelta(minutes=2))

        assert summary.duration_ms == 120_000
        assert summary.active_time_ms == 120_000
        assert summary.total_points == 2
        assert summary.recalled_points == 2
        assert summary.recall_rate == 1.0
        assert summary.average_confidence == pytest.approx(0.8)
        assert summary.average_recall_time_ms == 10_000
        assert summary.message_count == 4
        assert summary.average_user_response_ms == 10_000
        assert summary.token_usage.total_tokens == 1100
        assert summary.token_usage.cost_usd == pytest.approx(0.0045)
        assert summary.tangent_count == 2
        assert summary.tangents_returned == 1
        assert summary.tangents_abandoned == 1
        assert 0 <= summary.engagement_score <= 100
        assert summary.computed_at == NOW + timedelta(minutes=2)

    def test_long_gaps_count_as_pauses(self, session: SessionDTO) -> None:
        collector = SessionMetricsCollector()
        collector.start(session)
        gap = timedelta(milliseconds=PAUSE_THRESHOLD_MS + 60_000)
        collector.record_message(make_message(0, MessageRole.ASSISTANT, "Q"))
        collector.record_message(make_message(1, MessageRole.USER, "A", start=NOW + gap))

        summary = collector.finalize_session(session, NOW + gap + timedelta(seconds=10))

        assert summary.duration_ms - summary.active_time_ms == int(
            (gap + timedelta(seconds=10)).total_seconds() * 1000
        )

    def test_restore_rebuilds_counters(self, session: SessionDTO) -> None:
        collector = SessionMetricsCollector()
        collector.start(session)
        messages = [make_message(i, MessageRole.USER, "m") for i in range(3)]
        previous = outcome(True, 0.9)

        collector.restore(messages, [previous], [tangent("rh_1")])

        stats = collector.current_stats(NOW)
        assert stats.message_count == 3
        assert stats.recalled_count == 1
        assert stats.tangent_count == 1
        assert collector.outcomes == [previous]
