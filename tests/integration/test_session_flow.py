"""Integration tests for complete recall sessions.

Sessions run against the MongoDB repository over the in-memory client,
with scripted tutor and evaluator doubles.
"""

import json

import pytest

from dialogue_recall.errors import SessionNotCompleteError
from dialogue_recall.infra.mongo.repositories import MongoSessionRepository
from dialogue_recall.models.recall import RecallRating, RecallSetDTO
from dialogue_recall.models.session import MessageRole, SessionStatus
from dialogue_recall.protocol.handler import SessionChannelHandler
from dialogue_recall.session.orchestrator import SessionOrchestrator
from tests.mocks.factories import FakeClock
from tests.mocks.mock_llm import ScriptedEvaluator, ScriptedLLM, missed, recalled


class TestCompleteSession:
    """A session from first question to stored summary."""

    @pytest.mark.asyncio
    async def test_full_session(
        self,
        orchestrator: SessionOrchestrator,
        seeded_repository: MongoSessionRepository,
        evaluator: ScriptedEvaluator,
        sample_recall_set: RecallSetDTO,
    ) -> None:
        """Two points in one answer, one miss, then a boundary recall completes the session."""
        state = await orchestrator.start_session(sample_recall_set)
        session_id = state.session_id
        await orchestrator.get_opening_message()
        recalled_counts = []

        evaluator.queue("pt_magna", recalled(0.95))
        evaluator.queue("pt_parliament", recalled(0.7))
        first = await orchestrator.process_user_message(
            "Magna Carta in 1215, and de Montfort's parliament in 1265"
        )
        recalled_counts.append(first.recalled_count)

        evaluator.queue("pt_model", recalled(0.59))
        second = await orchestrator.process_user_message("The Model Parliament was... 1300?")
        recalled_counts.append(second.recalled_count)

        evaluator.queue("pt_model", recalled(0.6))
        third = await orchestrator.process_user_message("No wait, 1295 under Edward I")
        recalled_counts.append(third.recalled_count)

        assert first.recalled_this_turn == ["pt_magna", "pt_parliament"]
        assert second.recalled_this_turn == []
        assert third.recalled_this_turn == ["pt_model"]
        assert recalled_counts == [2, 2, 3]
        assert third.completion_pending

        summary = await orchestrator.finalize_session()

        assert summary.recalled_points == 3
        assert summary.recall_rate == 1.0
        assert summary.message_count == 7
        stored = await seeded_repository.get_session(session_id)
        assert stored is not None
        assert stored.status == SessionStatus.COMPLETED
        assert set(stored.recalled_point_ids) == {"pt_magna", "pt_parliament", "pt_model"}
        assert await seeded_repository.get_session_metrics(session_id) == summary

        outcomes = await seeded_repository.get_recall_outcomes(session_id)
        ratings = {o.recall_point_id: o.rating for o in outcomes}
        assert ratings == {
            "pt_magna": RecallRating.EASY,
            "pt_parliament": RecallRating.GOOD,
            "pt_model": RecallRating.GOOD,
        }
        for point_id in ratings:
            point = await seeded_repository.get_recall_point(point_id)
            assert point is not None
            assert point.memory_state.repetitions == 1
            assert len(point.recall_history) == 1
            assert point.memory_state.due > point.memory_state.last_review

        messages = await seeded_repository.get_session_messages(session_id)
        assert [m.role for m in messages] == [
            MessageRole.ASSISTANT,
            *[MessageRole.USER, MessageRole.ASSISTANT] * 3,
        ]
        assert all(a.timestamp < b.timestamp for a, b in zip(messages, messages[1:], strict=False))

    @pytest.mark.asyncio
    async def test_repeated_misses_leave_points_untouched(
        self,
        orchestrator: SessionOrchestrator,
        seeded_repository: MongoSessionRepository,
        evaluator: ScriptedEvaluator,
        sample_recall_set: RecallSetDTO,
    ) -> None:
        """Missed points are neither recalled nor rescheduled."""
        await orchestrator.start_session(sample_recall_set)
        for point_id in ("pt_magna", "pt_parliament", "pt_model"):
            evaluator.queue(point_id, missed(), missed(0.4), recalled(0.3))

        for answer in ("I'm not sure", "Something about a king?", "Runnymede maybe"):
            result = await orchestrator.process_user_message(answer)
            assert result.recalled_count == 0

        with pytest.raises(SessionNotCompleteError):
            await orchestrator.finalize_session()
        for point in await seeded_repository.find_due_points("set_history", orchestrator._clock()):
            assert point.memory_state.repetitions == 0
            assert point.recall_history == ()


class TestInterruptedSession:
    """Sessions that are abandoned or paused before completion."""

    @pytest.mark.asyncio
    async def test_abandon_keeps_progress_made(
        self,
        orchestrator: SessionOrchestrator,
        seeded_repository: MongoSessionRepository,
        evaluator: ScriptedEvaluator,
        sample_recall_set: RecallSetDTO,
    ) -> None:
        """Points recalled before abandoning stay rescheduled; the rest stay due."""
        state = await orchestrator.start_session(sample_recall_set)
        evaluator.queue("pt_magna", recalled(0.9))
        await orchestrator.process_user_message("1215, at Runnymede")

        await orchestrator.abandon_session()

        stored = await seeded_repository.get_session(state.session_id)
        assert stored is not None
        assert stored.status == SessionStatus.ABANDONED
        assert stored.recalled_point_ids == ("pt_magna",)
        still_due = await seeded_repository.find_due_points("set_history", orchestrator._clock())
        assert [p.id for p in still_due] == ["pt_parliament", "pt_model"]
        assert all(p.memory_state.repetitions == 0 for p in still_due)

    @pytest.mark.asyncio
    async def test_pause_and_resume_in_new_process(
        self,
        orchestrator: SessionOrchestrator,
        seeded_repository: MongoSessionRepository,
        evaluator: ScriptedEvaluator,
        sample_recall_set: RecallSetDTO,
        clock: FakeClock,
    ) -> None:
        """A paused session resumes with its progress and can be completed."""
        state = await orchestrator.start_session(sample_recall_set)
        await orchestrator.get_opening_message()
        evaluator.queue("pt_magna", recalled(0.9))
        await orchestrator.process_user_message("Magna Carta, 1215")
        await orchestrator.pause_session()

        resumed_evaluator = ScriptedEvaluator()
        resumed = SessionOrchestrator(
            seeded_repository,
            ScriptedLLM(),
            evaluator=resumed_evaluator,
            metrics_store=seeded_repository,
            clock=clock,
        )
        resumed_state = await resumed.start_session("set_history")

        assert resumed_state.session_id == state.session_id
        assert resumed_state.recalled_point_ids == ("pt_magna",)
        assert len(resumed_state.messages) == 3

        resumed_evaluator.queue("pt_parliament", recalled(0.8))
        resumed_evaluator.queue("pt_model", recalled(0.8))
        result = await resumed.process_user_message("1265 and 1295")
        summary = await resumed.finalize_session()

        assert result.completion_pending
        assert "pt_magna" not in resumed_evaluator.calls
        assert summary.recalled_points == 3
        assert summary.message_count == 5


class TestChannelSession:
    """A session driven through the real-time message protocol."""

    @pytest.mark.asyncio
    async def test_session_over_channel(
        self,
        orchestrator: SessionOrchestrator,
        seeded_repository: MongoSessionRepository,
        evaluator: ScriptedEvaluator,
    ) -> None:
        sent: list[dict] = []

        async def send(message: dict) -> None:
            sent.append(message)

        handler = SessionChannelHandler(orchestrator, send)
        assert await handler.open("set_history")
        for point_id in ("pt_magna", "pt_parliament", "pt_model"):
            evaluator.queue(point_id, recalled(0.9))

        await handler.handle_raw(
            json.dumps({"type": "user_message", "content": "1215, 1265, 1295"})
        )
        await handler.handle_raw(json.dumps({"type": "leave_session"}))

        types = [m["type"] for m in sent]
        assert types[0] == "session_started"
        assert types.count("point_recalled") == 3
        assert "session_complete_overlay" in types
        assert types[-1] == "session_complete"
        assert sent[-1]["summary"]["recalled_points"] == 3
        state = orchestrator.state
        assert state is not None
        stored = await seeded_repository.get_session(state.session_id)
        assert stored is not None
        assert stored.status == SessionStatus.COMPLETED
