"""Immutable session state and its pure reducers.

Every change to an active session goes through a reducer in this module.
A reducer takes the current SessionState plus its input and returns a
SessionTransition: the next state and the list of effects (persistence
writes, outcome records, events) the caller must execute, in order.
Reducers perform no I/O and read no clock.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Self

from pydantic import BaseModel, Field

from dialogue_recall.models.evaluation import RecallEvaluation
from dialogue_recall.models.recall import (
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
from dialogue_recall.models.tangent import TangentEventDTO, TangentStatus
from dialogue_recall.services.evaluator import RatingBands, rating_for_confidence
from dialogue_recall.services.scheduler import RecallScheduler
from dialogue_recall.services.tangent_detector import TangentState
from dialogue_recall.session.events import SessionEventType
from dialogue_recall.utils.json_response import clamp_confidence

__all__ = [
    "Effect",
    "PersistMemoryState",
    "PersistProgress",
    "PersistStatus",
    "PersistTangent",
    "PublishEvent",
    "RecordOutcome",
    "SessionState",
    "SessionTransition",
    "abandon",
    "append_message",
    "close_tangents",
    "dismiss_overlay",
    "finalize",
    "pause",
    "resolve_points",
    "resume",
    "with_tangent",
]


# Effects


@dataclass(frozen=True)
class PersistMemoryState:
    """Write a point's advanced memory state and history."""

    point: RecallPointDTO


@dataclass(frozen=True)
class PersistProgress:
    """Write the recalled set and active tangent reference of a session."""

    session: SessionDTO


@dataclass(frozen=True)
class PersistStatus:
    """Write a session status change."""

    session_id: str
    status: SessionStatus
    ended_at: datetime | None = None


@dataclass(frozen=True)
class PersistTangent:
    """Write a tangent event."""

    event: TangentEventDTO


@dataclass(frozen=True)
class RecordOutcome:
    """Record a resolved point with the metrics collector."""

    point_id: str
    evaluation: RecallEvaluation
    rating: RecallRating
    message_index_start: int
    message_index_end: int
    resolved_at: datetime


@dataclass(frozen=True)
class PublishEvent:
    """Publish an event on the session channel."""

    type: SessionEventType
    data: dict[str, Any] = field(default_factory=dict)


type Effect = (
    PersistMemoryState | PersistProgress | PersistStatus | PersistTangent | RecordOutcome
    | PublishEvent
)


class SessionState(BaseModel, frozen=True):
    """Authoritative in-memory view of one active session.

    Attributes:
        session: Session row as last persisted
        recall_set: Set being studied
        points: Target points in target order, with current memory state
        messages: Conversation so far, oldest first
        tangent: Tangent tracking state
        probe_point_id: Point the tutor is currently probing
        probe_message_count: Learner messages since the probe point became current
        segment_start_index: First message after the most recent resolution
        completion_pending: Every point is recalled but the session is not finalized
        overlay_dismissed: The learner chose to keep discussing after completion
        last_evaluations: Most recent evaluation per point
    """

    session: SessionDTO
    recall_set: RecallSetDTO
    points: tuple[RecallPointDTO, ...]
    messages: tuple[SessionMessageDTO, ...] = Field(default=())
    tangent: TangentState = Field(default_factory=TangentState)
    probe_point_id: str | None = None
    probe_message_count: int = Field(default=0, ge=0)
    segment_start_index: int = Field(default=0, ge=0)
    completion_pending: bool = False
    overlay_dismissed: bool = False
    last_evaluations: dict[str, RecallEvaluation] = Field(default_factory=dict)

    @classmethod
    def create(
        cls,
        session: SessionDTO,
        recall_set: RecallSetDTO,
        points: Sequence[RecallPointDTO],
        messages: Sequence[SessionMessageDTO] = (),
        tangent: TangentState | None = None,
    ) -> Self:
        """Build the state of a new or resumed session."""
        recalled = set(session.recalled_point_ids)
        by_id = {p.id: p for p in points}
        ordered = tuple(by_id[pid] for pid in session.target_point_ids if pid in by_id)
        probe = next((p.id for p in ordered if p.id not in recalled), None)
        return cls(
            session=session,
            recall_set=recall_set,
            points=ordered,
            messages=tuple(messages),
            tangent=tangent or TangentState(),
            probe_point_id=probe,
            segment_start_index=len(messages),
            completion_pending=session.is_fully_recalled and not session.status.is_terminal,
        )

    @property
    def session_id(self) -> str:
        return self.session.id

    @property
    def recalled_point_ids(self) -> tuple[str, ...]:
        return self.session.recalled_point_ids

    @property
    def unresolved_points(self) -> list[RecallPointDTO]:
        recalled = set(self.session.recalled_point_ids)
        return [p for p in self.points if p.id not in recalled]

    @property
    def recalled_points(self) -> list[RecallPointDTO]:
        recalled = set(self.session.recalled_point_ids)
        return [p for p in self.points if p.id in recalled]

    @property
    def current_point(self) -> RecallPointDTO | None:
        if self.probe_point_id is None:
            return None
        return self.point(self.probe_point_id)

    @property
    def recalled_count(self) -> int:
        return len(self.session.recalled_point_ids)

    @property
    def total_points(self) -> int:
        return len(self.session.target_point_ids)

    @property
    def is_fully_recalled(self) -> bool:
        return self.session.is_fully_recalled

    @property
    def last_message_index(self) -> int:
        return max(len(self.messages) - 1, 0)

    def point(self, point_id: str) -> RecallPointDTO | None:
        return next((p for p in self.points if p.id == point_id), None)


@dataclass(frozen=True)
class SessionTransition:
    """Result of a reducer: the next state and the effects to execute."""

    state: SessionState
    effects: tuple[Effect, ...] = ()
    resolved_point_ids: tuple[str, ...] = ()


def append_message(state: SessionState, message: SessionMessageDTO) -> SessionTransition:
    """Add a persisted message to the conversation."""
    update: dict[str, Any] = {"messages": (*state.messages, message)}
    if message.role is MessageRole.USER and state.probe_point_id is not None:
        update["probe_message_count"] = state.probe_message_count + 1

    event_type = (
        SessionEventType.USER_MESSAGE
        if message.role is MessageRole.USER
        else SessionEventType.ASSISTANT_MESSAGE
    )
    return SessionTransition(
        state=state.model_copy(update=update),
        effects=(
            PublishEvent(
                event_type,
                {
                    "message_id": message.id,
                    "content": message.content,
                    "message_index": len(state.messages),
                },
            ),
        ),
    )


def resolve_points(
    state: SessionState,
    evaluations: Sequence[tuple[str, RecallEvaluation]],
    *,
    scheduler: RecallScheduler,
    recall_threshold: float,
    bands: RatingBands,
    now: datetime,
    force_point_id: str | None = None,
) -> SessionTransition:
    """Apply a round of evaluations.

    A point resolves when its evaluation reports success at or above the
    recall threshold, or when it is ``force_point_id``. Every resolved
    point gets its memory state advanced once and one history entry, and
    is added to the recalled set. Evaluations are applied in the order
    given.

    Args:
        state: Current state
        evaluations: (point id, evaluation) pairs for unresolved points
        scheduler: Scheduler used to advance memory states
        recall_threshold: Minimum confidence for a successful recall
        bands: Confidence bands mapping confidence onto ratings
        now: Resolution time
        force_point_id: Point to resolve regardless of its evaluation

    Returns:
        Transition with the resolved point ids in resolution order
    """
    recalled = list(state.session.recalled_point_ids)
    points = {p.id: p for p in state.points}
    last_evaluations = dict(state.last_evaluations)
    effects: list[Effect] = []
    resolved: list[str] = []
    end_index = state.last_message_index

    for point_id, evaluation in evaluations:
        point = points.get(point_id)
        if point is None or point_id in recalled:
            continue

        # NaN compares unequal to itself and is replaced too
        confidence = clamp_confidence(evaluation.confidence)
        if confidence != evaluation.confidence:
            evaluation = evaluation.model_copy(update={"confidence": confidence})
        last_evaluations[point_id] = evaluation
        qualifies = evaluation.success and evaluation.confidence >= recall_threshold
        effects.append(
            PublishEvent(
                SessionEventType.POINT_EVALUATED,
                {
                    "point_id": point_id,
                    "success": evaluation.success,
                    "confidence": evaluation.confidence,
                    "reasoning": evaluation.reasoning,
                    "recalled": qualifies,
                },
            )
        )
        if not qualifies and point_id != force_point_id:
            continue

        if evaluation.success:
            rating = rating_for_confidence(evaluation.confidence, bands)
        else:
            rating = RecallRating.FORGOT
        updated = point.with_attempt(
            scheduler.advance(point.memory_state, rating, now),
            RecallAttempt(
                timestamp=now, success=evaluation.success, confidence=evaluation.confidence
            ),
        )
        points[point_id] = updated
        recalled.append(point_id)
        resolved.append(point_id)

        effects.append(PersistMemoryState(updated))
        effects.append(
            RecordOutcome(
                point_id=point_id,
                evaluation=evaluation,
                rating=rating,
                message_index_start=min(state.segment_start_index, end_index),
                message_index_end=end_index,
                resolved_at=now,
            )
        )
        if qualifies:
            effects.append(
                PublishEvent(
                    SessionEventType.POINT_RECALLED,
                    {
                        "point_id": point_id,
                        "confidence": evaluation.confidence,
                        "rating": rating.value,
                        "recalled_count": len(recalled),
                        "total_points": state.total_points,
                    },
                )
            )
        effects.append(
            PublishEvent(
                SessionEventType.POINT_COMPLETED,
                {
                    "point_id": point_id,
                    "success": evaluation.success,
                    "forced": not qualifies,
                    "due": updated.memory_state.due.isoformat(),
                },
            )
        )

    if not resolved:
        return SessionTransition(
            state=state.model_copy(update={"last_evaluations": last_evaluations}),
            effects=tuple(effects),
        )

    session = state.session.model_copy(update={"recalled_point_ids": tuple(recalled)})
    effects.append(PersistProgress(session))

    recalled_set = set(recalled)
    ordered = tuple(points[p.id] for p in state.points)
    probe = next((p.id for p in ordered if p.id not in recalled_set), None)
    update: dict[str, Any] = {
        "session": session,
        "points": ordered,
        "last_evaluations": last_evaluations,
        "segment_start_index": end_index + 1,
        "tangent": state.tangent.with_points_recalled(len(resolved)),
        "probe_point_id": probe,
    }
    if probe != state.probe_point_id:
        update["probe_message_count"] = 0
        if probe is not None:
            effects.append(PublishEvent(SessionEventType.POINT_STARTED, {"point_id": probe}))

    if session.is_fully_recalled and not state.completion_pending:
        update["completion_pending"] = True
        effects.append(
            PublishEvent(
                SessionEventType.SESSION_COMPLETE_OVERLAY,
                {"recalled_count": len(recalled), "total_points": state.total_points},
            )
        )

    return SessionTransition(
        state=state.model_copy(update=update),
        effects=tuple(effects),
        resolved_point_ids=tuple(resolved),
    )


def with_tangent(state: SessionState, tangent: TangentState) -> SessionTransition:
    """Replace the tangent state, persisting the active tangent reference if it changed."""
    active_id = tangent.current.event.id if tangent.current else None
    if active_id == state.session.active_tangent_id:
        return SessionTransition(state=state.model_copy(update={"tangent": tangent}))

    session = state.session.model_copy(update={"active_tangent_id": active_id})
    return SessionTransition(
        state=state.model_copy(update={"tangent": tangent, "session": session}),
        effects=(PersistProgress(session),),
    )


def close_tangents(state: SessionState) -> SessionTransition:
    """Close every open tangent as abandoned and drop any pending suggestion."""
    closed = [
        t.event.close(TangentStatus.ABANDONED, state.last_message_index)
        for t in state.tangent.active
    ]
    tangent = state.tangent.model_copy(update={"active": (), "pending": None})
    transition = with_tangent(state, tangent)
    return SessionTransition(
        state=transition.state,
        effects=(*(PersistTangent(event) for event in closed), *transition.effects),
    )


def _set_status(
    state: SessionState,
    status: SessionStatus,
    event_type: SessionEventType,
    ended_at: datetime | None = None,
    **data: Any,
) -> SessionTransition:
    session = state.session.model_copy(update={"status": status, "ended_at": ended_at})
    return SessionTransition(
        state=state.model_copy(update={"session": session}),
        effects=(
            PersistStatus(session.id, status, ended_at),
            PublishEvent(
                event_type,
                {
                    "status": status.value,
                    "recalled_count": state.recalled_count,
                    "total_points": state.total_points,
                    **data,
                },
            ),
        ),
    )


def _chain(first: SessionTransition, second: SessionTransition) -> SessionTransition:
    return SessionTransition(
        state=second.state,
        effects=(*first.effects, *second.effects),
        resolved_point_ids=(*first.resolved_point_ids, *second.resolved_point_ids),
    )


def finalize(state: SessionState, now: datetime) -> SessionTransition:
    """Mark the session completed and close open tangents as abandoned.

    A session that is already completed or abandoned is left unchanged.
    """
    if state.session.status.is_terminal:
        return SessionTransition(state=state)
    closed = close_tangents(state)
    completed = _set_status(
        closed.state.model_copy(update={"completion_pending": False}),
        SessionStatus.COMPLETED,
        SessionEventType.SESSION_COMPLETED,
        ended_at=now,
    )
    return _chain(closed, completed)


def abandon(state: SessionState, now: datetime) -> SessionTransition:
    """Mark the session abandoned without touching any memory state."""
    if state.session.status.is_terminal:
        return SessionTransition(state=state)
    closed = close_tangents(state)
    abandoned = _set_status(
        closed.state,
        SessionStatus.ABANDONED,
        SessionEventType.SESSION_ABANDONED,
        ended_at=now,
    )
    return _chain(closed, abandoned)


def pause(state: SessionState) -> SessionTransition:
    """Pause an in-progress session."""
    if state.session.status is not SessionStatus.IN_PROGRESS:
        return SessionTransition(state=state)
    return _set_status(
        state,
        SessionStatus.PAUSED,
        SessionEventType.SESSION_PAUSED,
        completion_pending=state.completion_pending,
    )


def resume(state: SessionState) -> SessionTransition:
    """Return a paused session to in progress."""
    if state.session.status is not SessionStatus.PAUSED:
        return SessionTransition(state=state)
    return _set_status(state, SessionStatus.IN_PROGRESS, SessionEventType.SESSION_RESUMED)


def dismiss_overlay(state: SessionState) -> SessionTransition:
    """Keep discussing after every point was recalled."""
    return SessionTransition(state=state.model_copy(update={"overlay_dismissed": True}))
