"""Unit tests for dialogue_recall models."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from dialogue_recall.models.evaluation import EnhancedRecallEvaluation, RecallEvaluation
from dialogue_recall.models.llm import LLMUsage
from dialogue_recall.models.metrics import RecallOutcomeDTO, TokenUsageSummary
from dialogue_recall.models.recall import (
    LearningPhase,
    MemoryState,
    RecallAttempt,
    RecallPointDTO,
    RecallRating,
)
from dialogue_recall.models.session import SessionDTO, SessionStatus
from dialogue_recall.models.tangent import TangentEventDTO, TangentStatus
from tests.mocks.factories import NOW


class TestMemoryState:
    """Tests for MemoryState model."""

    def test_defaults_describe_new_point(self) -> None:
        state = MemoryState(due=NOW)
        assert state.phase == LearningPhase.NEW
        assert state.repetitions == 0
        assert state.lapses == 0
        assert state.last_review is None
        assert state.schema_version == 1

    def test_negative_counts_rejected(self) -> None:
        with pytest.raises(ValidationError):
            MemoryState(due=NOW, repetitions=-1)

    def test_frozen_model(self) -> None:
        state = MemoryState(due=NOW)
        with pytest.raises(ValidationError):
            state.repetitions = 3  # type: ignore[misc]


class TestRecallPointDTO:
    """Tests for RecallPointDTO model."""

    def test_with_attempt_appends_history(self) -> None:
        point = RecallPointDTO(
            id="pt_1",
            recall_set_id="set_1",
            content="Water boils at 100C at sea level",
            memory_state=MemoryState(due=NOW),
        )
        advanced = MemoryState(due=NOW + timedelta(days=1), repetitions=1, last_review=NOW)
        attempt = RecallAttempt(timestamp=NOW, success=True, confidence=0.9)

        updated = point.with_attempt(advanced, attempt)

        assert updated.memory_state == advanced
        assert updated.recall_history == (attempt,)
        # Original untouched
        assert point.recall_history == ()
        assert point.memory_state.repetitions == 0

    def test_history_keeps_order(self) -> None:
        point = RecallPointDTO(
            id="pt_1",
            recall_set_id="set_1",
            content="fact",
            memory_state=MemoryState(due=NOW),
        )
        first = RecallAttempt(timestamp=NOW, success=False, confidence=0.1)
        second = RecallAttempt(timestamp=NOW + timedelta(days=1), success=True, confidence=0.8)

        updated = point.with_attempt(point.memory_state, first).with_attempt(
            point.memory_state, second
        )

        assert updated.recall_history == (first, second)


class TestSessionDTO:
    """Tests for SessionDTO model."""

    def test_is_fully_recalled(self) -> None:
        session = SessionDTO(
            id="sess_1",
            recall_set_id="set_1",
            target_point_ids=("a", "b"),
            started_at=NOW,
            recalled_point_ids=("b",),
        )
        assert session.is_fully_recalled is False

        done = session.model_copy(update={"recalled_point_ids": ("b", "a")})
        assert done.is_fully_recalled is True

    def test_default_status(self) -> None:
        session = SessionDTO(
            id="sess_1", recall_set_id="set_1", target_point_ids=("a",), started_at=NOW
        )
        assert session.status == SessionStatus.IN_PROGRESS
        assert session.ended_at is None
        assert session.active_tangent_id is None

    @pytest.mark.parametrize(
        ("status", "terminal"),
        [
            (SessionStatus.IN_PROGRESS, False),
            (SessionStatus.PAUSED, False),
            (SessionStatus.COMPLETED, True),
            (SessionStatus.ABANDONED, True),
        ],
    )
    def test_terminal_statuses(self, status: SessionStatus, terminal: bool) -> None:
        assert status.is_terminal is terminal


class TestTangentEventDTO:
    """Tests for TangentEventDTO model."""

    def test_depth_is_bounded(self) -> None:
        with pytest.raises(ValidationError):
            TangentEventDTO(
                id="rh_1",
                session_id="sess_1",
                topic="Tudors",
                trigger_message_index=2,
                depth=4,
                created_at=NOW,
            )

    def test_close(self) -> None:
        event = TangentEventDTO(
            id="rh_1",
            session_id="sess_1",
            topic="Tudors",
            trigger_message_index=2,
            created_at=NOW,
        )

        closed = event.close(TangentStatus.RETURNED, 6)

        assert closed.status == TangentStatus.RETURNED
        assert closed.return_message_index == 6
        assert event.status == TangentStatus.ACTIVE


class TestEvaluationModels:
    """Tests for evaluation and usage models."""

    def test_degraded(self) -> None:
        evaluation = RecallEvaluation.degraded("timeout")
        assert evaluation.success is False
        assert evaluation.confidence == 0.0
        assert "timeout" in evaluation.reasoning

    def test_usage_not_serialized(self) -> None:
        evaluation = RecallEvaluation(
            success=True,
            confidence=0.8,
            usage=LLMUsage(input_tokens=10, output_tokens=5),
        )
        assert "usage" not in evaluation.model_dump()

    def test_enhanced_defaults(self) -> None:
        evaluation = EnhancedRecallEvaluation(success=False, confidence=0.1)
        assert evaluation.suggested_rating == RecallRating.FORGOT
        assert evaluation.demonstrated_concepts == ()

    def test_usage_totals(self) -> None:
        assert LLMUsage(input_tokens=120, output_tokens=30).total_tokens == 150
        assert TokenUsageSummary(input_tokens=1, output_tokens=2).total_tokens == 3


class TestRecallOutcomeDTO:
    """Tests for RecallOutcomeDTO model."""

    def test_negative_index_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RecallOutcomeDTO(
                id="out_1",
                session_id="sess_1",
                recall_point_id="pt_1",
                success=True,
                confidence=0.9,
                message_index_start=-1,
                message_index_end=2,
                recorded_at=NOW,
            )
