"""Session orchestrator for dialogue_recall.

The SessionOrchestrator drives one study session at a time. It owns the
authoritative SessionState, calls the evaluator, tangent detector and
LLM, runs the pure reducers from dialogue_recall.session.state and
executes the effects they return (persistence writes, metrics records,
events) in order.

Collaborator failures propagate out of the call that hit them. State
already committed stays committed; the in-memory state only advances
once a reducer's effects have all been executed.
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Self

from dialogue_recall.config import DialogueRecallConfig, SessionSettings
from dialogue_recall.errors import (
    LLMError,
    LLMErrorType,
    NoActiveSessionError,
    NoPointsDueError,
    SessionNotActiveError,
    SessionNotCompleteError,
    UnknownTangentError,
)
from dialogue_recall.interfaces.evaluator import EvaluatorInterface
from dialogue_recall.interfaces.llm import LLMInterface
from dialogue_recall.interfaces.prompts import PromptBuilderInterface
from dialogue_recall.interfaces.storage import MetricsStorageInterface, SessionStorageInterface
from dialogue_recall.logging import (
    bind_session_context,
    clear_session_context,
    configure_logging,
    get_logger,
)
from dialogue_recall.models.llm import LLMMessage, LLMUsage
from dialogue_recall.models.metrics import SessionMetricsSummary, SessionStats
from dialogue_recall.models.recall import RecallPointDTO, RecallSetDTO
from dialogue_recall.models.session import (
    MessageRole,
    SessionDTO,
    SessionMessageDTO,
    SessionStatus,
)
from dialogue_recall.models.tangent import TangentEventDTO, TangentStatus, TangentSuggestion
from dialogue_recall.services.evaluator import RatingBands, RecallEvaluator
from dialogue_recall.services.metrics_collector import SessionMetricsCollector
from dialogue_recall.services.prompts import DefaultPromptBuilder
from dialogue_recall.services.scheduler import RecallScheduler
from dialogue_recall.services.tangent_detector import OpenTangent, TangentDetector, TangentState
from dialogue_recall.session import state as reducers
from dialogue_recall.session.events import SessionEvent, SessionEventChannel, SessionEventType
from dialogue_recall.session.state import (
    Effect,
    PersistMemoryState,
    PersistProgress,
    PersistStatus,
    PersistTangent,
    PublishEvent,
    RecordOutcome,
    SessionState,
    SessionTransition,
)
from dialogue_recall.utils.ids import generate_id, utc_now

__all__ = [
    "ChunkCallback",
    "SessionOrchestrator",
    "SessionSnapshot",
    "TangentExit",
    "TurnResult",
]

logger = get_logger(__name__)

type ChunkCallback = Callable[[str], Awaitable[None]]


@dataclass
class TangentExit:
    """Outcome of leaving a tangent."""

    event: TangentEventDTO
    points_recalled_during: int
    completion_pending: bool

    @property
    def label(self) -> str:
        return self.event.topic


@dataclass
class TurnResult:
    """What one learner turn produced."""

    response: str
    recalled_this_turn: list[str] = field(default_factory=list)
    recalled_count: int = 0
    total_points: int = 0
    completion_pending: bool = False
    tangent_suggestion: TangentSuggestion | None = None
    tangent_exit: TangentExit | None = None

    @property
    def point_advanced(self) -> bool:
        return bool(self.recalled_this_turn)

    @property
    def completed(self) -> bool:
        return self.completion_pending


@dataclass
class SessionSnapshot:
    """Read-only projection of the active session for display."""

    session_id: str
    status: SessionStatus
    current_point_id: str | None
    recalled_count: int
    total_points: int
    message_count: int
    point_checklist: dict[str, bool]
    completion_pending: bool
    in_tangent: bool
    tangent_topic: str | None = None
    pending_tangent: TangentSuggestion | None = None
    overlay_dismissed: bool = False
    stats: SessionStats = field(default_factory=SessionStats)


class SessionOrchestrator:
    """Turn-based controller for conversational recall sessions.

    Example:
        orchestrator = SessionOrchestrator(storage, llm, tangent_detector=detector)
        await orchestrator.start_session(recall_set)
        opening = await orchestrator.get_opening_message()
        result = await orchestrator.process_user_message("It was signed in 1215")
        if result.completion_pending:
            summary = await orchestrator.finalize_session()
    """

    def __init__(
        self,
        storage: SessionStorageInterface,
        llm: LLMInterface,
        *,
        evaluator: EvaluatorInterface | None = None,
        scheduler: RecallScheduler | None = None,
        prompts: PromptBuilderInterface | None = None,
        tangent_detector: TangentDetector | None = None,
        metrics_collector: SessionMetricsCollector | None = None,
        metrics_store: MetricsStorageInterface | None = None,
        events: SessionEventChannel | None = None,
        settings: SessionSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize orchestrator.

        Args:
            storage: Recall point, session and message persistence
            llm: LLM client for tutor responses
            evaluator: Recall evaluator (defaults to RecallEvaluator over ``llm``)
            scheduler: Spaced-repetition scheduler
            prompts: Prompt builder
            tangent_detector: Tangent detector; None disables tangent handling
            metrics_collector: Metrics collector
            metrics_store: Outcome, tangent and summary persistence; None keeps them in memory
            events: Event channel to publish to
            settings: Thresholds and generation settings
            clock: Source of the current UTC time
        """
        self._storage = storage
        self._llm = llm
        self._prompts = prompts or DefaultPromptBuilder()
        self._evaluator = evaluator or RecallEvaluator(llm, self._prompts)
        self._scheduler = scheduler or RecallScheduler()
        self._tangents = tangent_detector
        self._metrics = metrics_collector or SessionMetricsCollector(model_name=llm.model_name)
        self._metrics_store = metrics_store
        self._events = events or SessionEventChannel()
        self._settings = settings or SessionSettings()
        self._bands = RatingBands.from_settings(self._settings)
        self._clock = clock

        self._state: SessionState | None = None
        self._summary: SessionMetricsSummary | None = None
        self._lock = asyncio.Lock()
        self._owned: list[Any] = []

    @classmethod
    async def from_config(cls, config: DialogueRecallConfig | None = None) -> Self:
        """Build an orchestrator backed by MongoDB and the configured LLM provider.

        Args:
            config: Full configuration (defaults loaded from environment)

        Returns:
            Orchestrator owning its storage and LLM client
        """
        from dialogue_recall.infra.llm import create_llm_provider
        from dialogue_recall.infra.mongo.repositories import MongoSessionRepository

        config = config or DialogueRecallConfig()
        configure_logging(level=config.logging.level, json_output=config.logging.json_output)

        storage = await MongoSessionRepository.from_config(config.mongo)
        llm = await create_llm_provider(config.llm)
        prompts = DefaultPromptBuilder()
        instance = cls(
            storage,
            llm,
            evaluator=RecallEvaluator(llm, prompts, config.evaluator),
            scheduler=RecallScheduler(config.scheduler),
            prompts=prompts,
            tangent_detector=TangentDetector(llm, prompts, config.tangent),
            metrics_store=storage if config.metrics_enabled else None,
            settings=config.session,
        )
        instance._owned = [storage, llm]
        return instance

    async def close(self) -> None:
        """Close owned resources and end event subscriptions."""
        self._events.close()
        for resource in self._owned:
            await resource.close()
        self._owned = []

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @property
    def events(self) -> SessionEventChannel:
        return self._events

    @property
    def state(self) -> SessionState | None:
        return self._state

    @property
    def settings(self) -> SessionSettings:
        return self._settings

    # Lifecycle

    async def start_session(self, recall_set: RecallSetDTO | str) -> SessionState:
        """Start a session for a set, or resume its unfinished one.

        An in-progress or paused session of the set is resumed with its
        messages, recalled points, open tangents and recorded outcomes.
        Otherwise every point due now becomes a target, earliest due first.

        Args:
            recall_set: Set or set ID

        Returns:
            The loaded session state

        Raises:
            NoPointsDueError: If no session exists and nothing is due
        """
        async with self._lock:
            if isinstance(recall_set, str):
                loaded = await self._storage.get_recall_set(recall_set)
                if loaded is None:
                    raise ValueError(f"Unknown recall set: {recall_set}")
                recall_set = loaded

            existing = await self._storage.find_in_progress_session(recall_set.id)
            if existing is None:
                existing = await self._storage.find_paused_session(recall_set.id)
            if existing is not None:
                return await self._resume(existing, recall_set)

            now = self._clock()
            due = await self._storage.find_due_points(recall_set.id, now)
            if not due:
                raise NoPointsDueError(recall_set.id)

            session = SessionDTO(
                id=generate_id("sess"),
                recall_set_id=recall_set.id,
                target_point_ids=tuple(p.id for p in due),
                started_at=now,
            )
            await self._storage.create_session(session)

            tangent = self._tangents.reset() if self._tangents else TangentState()
            self._state = SessionState.create(session, recall_set, due, tangent=tangent)
            self._summary = None
            self._metrics.start(session)
            bind_session_context(session.id, recall_set.id)

            logger.info("session_started", total_points=len(due))
            self._publish(
                SessionEventType.SESSION_STARTED,
                {"recall_set_id": recall_set.id, "total_points": len(due), "resumed": False},
            )
            self._publish(SessionEventType.POINT_STARTED, {"point_id": due[0].id})
            return self._state

    async def _resume(self, session: SessionDTO, recall_set: RecallSetDTO) -> SessionState:
        points: list[RecallPointDTO] = []
        for point_id in session.target_point_ids:
            point = await self._storage.get_recall_point(point_id)
            if point is not None:
                points.append(point)
        messages = await self._storage.get_session_messages(session.id)

        tangent_events: list[TangentEventDTO] = []
        outcomes = []
        if self._metrics_store is not None:
            tangent_events = await self._metrics_store.get_tangent_events(session.id)
            outcomes = await self._metrics_store.get_recall_outcomes(session.id)

        tangent = self._tangents.reset() if self._tangents else TangentState()
        open_events = sorted(
            (e for e in tangent_events if e.status is TangentStatus.ACTIVE),
            key=lambda e: e.depth,
        )
        tangent = tangent.model_copy(
            update={
                "active": tuple(OpenTangent(event=e) for e in open_events),
                "known_topics": tuple(dict.fromkeys(e.topic.lower() for e in tangent_events)),
            }
        )

        self._metrics.start(session)
        self._metrics.restore(messages, outcomes, tangent_events)
        self._state = SessionState.create(session, recall_set, points, messages, tangent)
        self._summary = None
        bind_session_context(session.id, recall_set.id)

        await self._apply(reducers.resume(self._state))
        logger.info(
            "session_resumed",
            recalled_count=self._state.recalled_count,
            total_points=self._state.total_points,
            message_count=len(messages),
            open_tangents=len(open_events),
        )
        self._publish(
            SessionEventType.SESSION_STARTED,
            {
                "recall_set_id": recall_set.id,
                "total_points": self._state.total_points,
                "recalled_count": self._state.recalled_count,
                "resumed": True,
            },
        )
        return self._state

    async def pause_session(self) -> None:
        """Pause the active session so it can be resumed later."""
        async with self._lock:
            state = self._require_active()
            await self._apply(reducers.pause(state))
            logger.info("session_paused", recalled_count=state.recalled_count)

    async def abandon_session(self) -> None:
        """Abandon the session. Memory states and recall histories are left untouched."""
        async with self._lock:
            state = self._require_state()
            await self._apply(reducers.abandon(state, self._clock()))
            logger.info(
                "session_abandoned",
                recalled_count=state.recalled_count,
                total_points=state.total_points,
            )
            clear_session_context()

    async def finalize_session(self, *, strict_metrics: bool = False) -> SessionMetricsSummary:
        """Complete the session and compute its metrics summary.

        Open tangents are closed as abandoned. Finalizing an already
        completed session returns the summary computed the first time.

        Args:
            strict_metrics: Re-raise metrics persistence failures instead of logging them

        Returns:
            Session metrics summary

        Raises:
            SessionNotCompleteError: If a target point is still unrecalled
            SessionNotActiveError: If the session was abandoned
        """
        async with self._lock:
            state = self._require_state()
            if state.session.status is SessionStatus.COMPLETED and self._summary is not None:
                return self._summary
            if state.session.status is SessionStatus.ABANDONED:
                raise SessionNotActiveError(state.session_id, state.session.status.value)
            if not state.is_fully_recalled:
                raise SessionNotCompleteError(
                    f"{state.total_points - state.recalled_count} of {state.total_points} "
                    "points are not recalled yet"
                )

            now = self._clock()
            await self._apply(reducers.finalize(state, now))
            assert self._state is not None

            summary = self._metrics.finalize_session(self._state.session, now)
            if self._metrics_store is not None:
                try:
                    await self._metrics_store.save_session_metrics(summary)
                except Exception as e:
                    if strict_metrics:
                        raise
                    logger.error("session_metrics_persist_failed", error=str(e))

            self._summary = summary
            logger.info(
                "session_completed",
                total_points=self._state.total_points,
                engagement_score=summary.engagement_score,
            )
            clear_session_context()
            return summary

    def get_session_state(self) -> SessionSnapshot | None:
        """Read-only projection of the active session, or None if there is none.

        An abandoned session is no longer active and projects to None.
        """
        state = self._state
        if state is None or state.session.status is SessionStatus.ABANDONED:
            return None
        recalled = set(state.recalled_point_ids)
        current_tangent = state.tangent.current
        return SessionSnapshot(
            session_id=state.session_id,
            status=state.session.status,
            current_point_id=state.probe_point_id,
            recalled_count=state.recalled_count,
            total_points=state.total_points,
            message_count=len(state.messages),
            point_checklist={pid: pid in recalled for pid in state.session.target_point_ids},
            completion_pending=state.completion_pending,
            in_tangent=state.tangent.inside,
            tangent_topic=current_tangent.event.topic if current_tangent else None,
            pending_tangent=state.tangent.pending,
            overlay_dismissed=state.overlay_dismissed,
            stats=self._metrics.current_stats(self._clock()),
        )

    # Turns

    async def get_opening_message(self, on_chunk: ChunkCallback | None = None) -> str:
        """Generate and persist the first assistant message of the session.

        Args:
            on_chunk: Receives streamed text fragments when given

        Returns:
            The opening message text
        """
        async with self._lock:
            state = self._require_active()
            point = state.current_point or state.points[0]
            system = self._prompts.tutor_system_prompt(
                state.recall_set,
                state.current_point,
                state.recalled_points,
                state.unresolved_points,
            )
            history = [
                *self._conversation(state.messages),
                LLMMessage(
                    role="user",
                    content=self._prompts.opening_prompt(point, resumed=bool(state.messages)),
                ),
            ]
            text, usage = await self._generate(
                system, history, self._settings.tutor_max_tokens, on_chunk
            )
            await self._save_message(MessageRole.ASSISTANT, text, usage)
            return text

    async def process_user_message(
        self,
        content: str,
        on_chunk: ChunkCallback | None = None,
    ) -> TurnResult:
        """Process one learner message.

        Persists the message, auto-declines a pending tangent suggestion,
        runs tangent detection, evaluates every unresolved point, advances
        the memory state of each point recalled, and generates the next
        assistant message.

        Args:
            content: Learner message text
            on_chunk: Receives streamed fragments of the assistant response

        Returns:
            TurnResult describing the turn
        """
        async with self._lock:
            self._require_active()
            await self._save_message(MessageRole.USER, content)

            suggestion: TangentSuggestion | None = None
            tangent_exit: TangentExit | None = None
            if self._tangents is not None:
                assert self._state is not None
                if self._state.tangent.pending is not None:
                    await self._decline_pending(auto=True)
                else:
                    suggestion, tangent_exit = await self._observe_tangents()

            resolved = await self._evaluate_and_resolve(force_current=False)
            response = await self._respond(resolved, on_chunk)
            return self._turn_result(response, resolved, suggestion, tangent_exit)

    async def trigger_evaluation(
        self,
        *,
        force: bool = False,
        on_chunk: ChunkCallback | None = None,
    ) -> TurnResult:
        """Evaluate and respond without a new learner message.

        Args:
            force: Resolve the current point with its evaluation even if it does not qualify
            on_chunk: Receives streamed fragments of the assistant response

        Returns:
            TurnResult describing the evaluation round
        """
        async with self._lock:
            self._require_active()
            resolved = await self._evaluate_and_resolve(force_current=force)
            response = await self._respond(resolved, on_chunk)
            return self._turn_result(response, resolved, None, None)

    # Tangents

    async def enter_tangent(
        self,
        event_id: str | None = None,
        topic: str | None = None,
    ) -> TangentEventDTO:
        """Enter the suggested tangent, or open one on ``topic``.

        Raises:
            UnknownTangentError: If tangent handling is disabled or there is nothing to enter
        """
        async with self._lock:
            state = self._require_active()
            detector = self._require_tangents()
            tangent, event = detector.enter(
                state.tangent,
                state.session_id,
                self._clock(),
                event_id=event_id,
                topic=topic,
                message_index=state.last_message_index,
            )
            transition = reducers.with_tangent(state, tangent)
            await self._apply(
                SessionTransition(
                    state=transition.state,
                    effects=(
                        PersistTangent(event),
                        *transition.effects,
                        PublishEvent(
                            SessionEventType.TANGENT_ENTERED,
                            {"event_id": event.id, "topic": event.topic, "depth": event.depth},
                        ),
                    ),
                )
            )
            return event

    async def decline_tangent(self) -> TangentSuggestion | None:
        """Decline the pending tangent suggestion and start the cooldown."""
        async with self._lock:
            self._require_active()
            self._require_tangents()
            return await self._decline_pending(auto=False)

    async def exit_tangent(self) -> TangentExit:
        """Leave the innermost tangent.

        Raises:
            UnknownTangentError: If no tangent is open
        """
        async with self._lock:
            state = self._require_active()
            detector = self._require_tangents()
            tangent, closed = detector.exit(state.tangent, state.last_message_index)
            return await self._close_tangent(tangent, closed, auto=False)

    async def dismiss_overlay(self) -> None:
        """Keep discussing after every point was recalled."""
        async with self._lock:
            state = self._require_active()
            await self._apply(reducers.dismiss_overlay(state))

    # Internals

    def _require_state(self) -> SessionState:
        if self._state is None:
            raise NoActiveSessionError("No session loaded. Call start_session() first.")
        return self._state

    def _require_active(self) -> SessionState:
        state = self._require_state()
        if state.session.status is not SessionStatus.IN_PROGRESS:
            raise SessionNotActiveError(state.session_id, state.session.status.value)
        return state

    def _require_tangents(self) -> TangentDetector:
        if self._tangents is None:
            raise UnknownTangentError("Tangent handling is disabled for this orchestrator")
        return self._tangents

    async def _decline_pending(self, auto: bool) -> TangentSuggestion | None:
        assert self._state is not None and self._tangents is not None
        tangent, declined = self._tangents.decline(self._state.tangent)
        if declined is None:
            return None
        transition = reducers.with_tangent(self._state, tangent)
        await self._apply(
            SessionTransition(
                state=transition.state,
                effects=(
                    *transition.effects,
                    PublishEvent(
                        SessionEventType.TANGENT_DECLINED,
                        {"event_id": declined.event_id, "topic": declined.topic, "auto": auto},
                    ),
                ),
            )
        )
        return declined

    async def _observe_tangents(self) -> tuple[TangentSuggestion | None, TangentExit | None]:
        assert self._state is not None and self._tangents is not None
        state = self._state
        tangent, observation = await self._tangents.observe(
            state.tangent, state.messages, state.current_point, state.points
        )
        self._metrics.record_usage(observation.usage)

        if observation.returned is not None:
            return None, await self._close_tangent(tangent, observation.returned, auto=True)

        transition = reducers.with_tangent(state, tangent)
        effects: tuple[Effect, ...] = transition.effects
        if observation.suggestion is not None:
            suggestion = observation.suggestion
            effects = (
                *effects,
                PublishEvent(
                    SessionEventType.TANGENT_DETECTED,
                    {
                        "event_id": suggestion.event_id,
                        "topic": suggestion.topic,
                        "related_point_ids": list(suggestion.related_point_ids),
                        "user_initiated": suggestion.user_initiated,
                    },
                ),
            )
        await self._apply(SessionTransition(state=transition.state, effects=effects))
        return observation.suggestion, None

    async def _close_tangent(
        self,
        tangent: TangentState,
        closed: OpenTangent,
        auto: bool,
    ) -> TangentExit:
        assert self._state is not None
        transition = reducers.with_tangent(self._state, tangent)
        await self._apply(
            SessionTransition(
                state=transition.state,
                effects=(
                    PersistTangent(closed.event),
                    *transition.effects,
                    PublishEvent(
                        SessionEventType.TANGENT_EXITED,
                        {
                            "event_id": closed.event.id,
                            "topic": closed.event.topic,
                            "points_recalled_during": closed.points_recalled,
                            "auto": auto,
                        },
                    ),
                ),
            )
        )
        return TangentExit(
            event=closed.event,
            points_recalled_during=closed.points_recalled,
            completion_pending=transition.state.completion_pending,
        )

    async def _evaluate_and_resolve(self, force_current: bool) -> list[str]:
        assert self._state is not None
        state = self._state
        unresolved = state.unresolved_points
        if not unresolved:
            return []

        evaluations = []
        for point in unresolved:
            evaluation = await self._evaluator.evaluate(point, state.messages)
            self._metrics.record_usage(evaluation.usage)
            evaluations.append((point.id, evaluation))

        force_id = None
        cap = self._settings.max_messages_per_point
        if state.probe_point_id is not None and (
            force_current or (cap is not None and state.probe_message_count >= cap)
        ):
            force_id = state.probe_point_id

        transition = reducers.resolve_points(
            state,
            evaluations,
            scheduler=self._scheduler,
            recall_threshold=self._settings.recall_threshold,
            bands=self._bands,
            now=self._clock(),
            force_point_id=force_id,
        )
        await self._apply(transition)
        if transition.resolved_point_ids:
            logger.info(
                "points_resolved",
                point_ids=list(transition.resolved_point_ids),
                recalled_count=transition.state.recalled_count,
                total_points=transition.state.total_points,
                forced=force_id in transition.resolved_point_ids,
            )
        return list(transition.resolved_point_ids)

    async def _respond(self, resolved: Sequence[str], on_chunk: ChunkCallback | None) -> str:
        assert self._state is not None
        state = self._state
        current_tangent = state.tangent.current

        if current_tangent is not None:
            system = self._prompts.tangent_system_prompt(
                current_tangent.event.topic, state.recall_set, state.current_point
            )
            history = self._conversation(
                state.messages[current_tangent.event.trigger_message_index :]
            )
            max_tokens = self._settings.tangent_max_tokens
        else:
            system = self._prompts.tutor_system_prompt(
                state.recall_set,
                state.current_point,
                state.recalled_points,
                state.unresolved_points,
            )
            if resolved:
                recalled = [p for pid in resolved if (p := state.point(pid)) is not None]
                system = "\n\n".join(
                    [system, self._prompts.feedback_instruction(recalled, state.current_point)]
                )
            history = self._conversation(state.messages)
            max_tokens = self._settings.tutor_max_tokens

        text, usage = await self._generate(system, history, max_tokens, on_chunk)
        await self._save_message(MessageRole.ASSISTANT, text, usage)
        return text

    async def _generate(
        self,
        system: str,
        history: list[LLMMessage],
        max_tokens: int,
        on_chunk: ChunkCallback | None,
    ) -> tuple[str, LLMUsage | None]:
        if on_chunk is None:
            response = await self._llm.complete(
                history,
                system=system,
                temperature=self._settings.tutor_temperature,
                max_tokens=max_tokens,
            )
            return response.text, response.usage

        parts: list[str] = []
        async for piece in self._llm.stream(
            history,
            system=system,
            temperature=self._settings.tutor_temperature,
            max_tokens=max_tokens,
        ):
            parts.append(piece)
            await on_chunk(piece)
        text = "".join(parts)
        if not text.strip():
            raise LLMError(LLMErrorType.MALFORMED_RESPONSE, "Streamed response was empty")
        return text, None

    async def _save_message(
        self,
        role: MessageRole,
        content: str,
        usage: LLMUsage | None = None,
    ) -> SessionMessageDTO:
        assert self._state is not None
        now = self._clock()
        if self._state.messages and now <= self._state.messages[-1].timestamp:
            now = self._state.messages[-1].timestamp + timedelta(microseconds=1)

        message = SessionMessageDTO(
            id=generate_id("msg"),
            session_id=self._state.session_id,
            role=role,
            content=content,
            timestamp=now,
            token_count=usage.output_tokens if usage else None,
        )
        await self._storage.create_message(message)
        self._metrics.record_message(message, usage)
        await self._apply(reducers.append_message(self._state, message))
        return message

    async def _apply(self, transition: SessionTransition) -> None:
        for effect in transition.effects:
            await self._execute(effect, transition.state)
        self._state = transition.state

    async def _execute(self, effect: Effect, state: SessionState) -> None:
        if isinstance(effect, PersistMemoryState):
            await self._storage.update_memory_state(effect.point)
        elif isinstance(effect, PersistProgress):
            await self._storage.update_session_progress(
                effect.session.id,
                effect.session.recalled_point_ids,
                effect.session.active_tangent_id,
            )
        elif isinstance(effect, PersistStatus):
            await self._persist_status(effect)
        elif isinstance(effect, PersistTangent):
            self._metrics.record_tangent(effect.event)
            if self._metrics_store is not None:
                await self._metrics_store.save_tangent_event(effect.event)
        elif isinstance(effect, RecordOutcome):
            outcome = self._metrics.record_recall_outcome(
                effect.point_id,
                effect.evaluation,
                effect.message_index_start,
                effect.message_index_end,
                rating=effect.rating,
                recorded_at=effect.resolved_at,
            )
            if self._metrics_store is not None:
                await self._metrics_store.save_recall_outcome(outcome)
        elif isinstance(effect, PublishEvent):
            self._events.publish(
                SessionEvent(
                    type=effect.type,
                    session_id=state.session_id,
                    timestamp=self._clock(),
                    data=effect.data,
                )
            )

    async def _persist_status(self, effect: PersistStatus) -> None:
        status = effect.status
        if status is SessionStatus.COMPLETED:
            assert effect.ended_at is not None
            await self._storage.complete_session(effect.session_id, effect.ended_at)
        elif status is SessionStatus.ABANDONED:
            assert effect.ended_at is not None
            await self._storage.abandon_session(effect.session_id, effect.ended_at)
        elif status is SessionStatus.PAUSED:
            await self._storage.pause_session(effect.session_id)
        else:
            await self._storage.resume_session(effect.session_id)

    def _publish(self, event_type: SessionEventType, data: dict[str, Any]) -> None:
        assert self._state is not None
        self._events.publish(
            SessionEvent(
                type=event_type,
                session_id=self._state.session_id,
                timestamp=self._clock(),
                data=data,
            )
        )

    @staticmethod
    def _conversation(messages: Sequence[SessionMessageDTO]) -> list[LLMMessage]:
        return [
            LLMMessage(role=m.role.value, content=m.content)
            for m in messages
            if m.role is not MessageRole.SYSTEM
        ]

    def _turn_result(
        self,
        response: str,
        resolved: list[str],
        suggestion: TangentSuggestion | None,
        tangent_exit: TangentExit | None,
    ) -> TurnResult:
        assert self._state is not None
        return TurnResult(
            response=response,
            recalled_this_turn=resolved,
            recalled_count=self._state.recalled_count,
            total_points=self._state.total_points,
            completion_pending=self._state.completion_pending,
            tangent_suggestion=suggestion,
            tangent_exit=tangent_exit,
        )
