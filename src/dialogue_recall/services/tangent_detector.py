"""Tangent ("rabbit hole") detection for dialogue_recall.

The detector holds no per-session state. Everything it tracks (pending
suggestion, open tangent stack, decline cooldown) lives in a frozen
TangentState value that callers thread through each call, so a session
can be rebuilt from storage without losing it.

Detection and return checks are LLM calls. A failed or unparseable call
is logged and treated as "no signal"; tangents are advisory and never
block a turn.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Self

from pydantic import BaseModel, Field

from dialogue_recall.config import MAX_TANGENT_DEPTH, TangentSettings
from dialogue_recall.errors import LLMError, UnknownTangentError
from dialogue_recall.interfaces.llm import LLMInterface
from dialogue_recall.interfaces.prompts import PromptBuilderInterface
from dialogue_recall.logging import get_logger
from dialogue_recall.models.llm import LLMUsage
from dialogue_recall.models.recall import RecallPointDTO
from dialogue_recall.models.session import MessageRole, SessionMessageDTO
from dialogue_recall.models.tangent import TangentEventDTO, TangentStatus, TangentSuggestion
from dialogue_recall.utils.ids import generate_id
from dialogue_recall.utils.json_response import clamp_confidence, extract_json_object

__all__ = [
    "OpenTangent",
    "TangentDetector",
    "TangentObservation",
    "TangentState",
]

logger = get_logger(__name__)


class OpenTangent(BaseModel, frozen=True):
    """A tangent the learner is currently inside."""

    event: TangentEventDTO
    points_recalled: int = 0


class TangentState(BaseModel, frozen=True):
    """Per-session tangent tracking.

    Attributes:
        pending: Suggestion awaiting the learner's accept/decline
        active: Stack of entered tangents, innermost last
        cooldown_remaining: Learner messages left before detection resumes
        known_topics: Topics already suggested or entered, lowercased
    """

    pending: TangentSuggestion | None = None
    active: tuple[OpenTangent, ...] = Field(default=())
    cooldown_remaining: int = Field(default=0, ge=0)
    known_topics: tuple[str, ...] = Field(default=())

    @property
    def inside(self) -> bool:
        return bool(self.active)

    @property
    def current(self) -> OpenTangent | None:
        return self.active[-1] if self.active else None

    @property
    def depth(self) -> int:
        return len(self.active)

    def with_points_recalled(self, count: int) -> Self:
        """Credit newly recalled points to every open tangent."""
        if not self.active or count <= 0:
            return self
        return self.model_copy(
            update={
                "active": tuple(
                    t.model_copy(update={"points_recalled": t.points_recalled + count})
                    for t in self.active
                )
            }
        )


class TangentObservation(BaseModel, frozen=True):
    """What a detector pass found for one learner message."""

    suggestion: TangentSuggestion | None = None
    returned: OpenTangent | None = None
    usage: LLMUsage | None = None


class TangentDetector:
    """Detects tangents and returns from them.

    Example:
        state = detector.reset()
        state, observation = await detector.observe(state, messages, point, points)
        if observation.suggestion:
            ...  # offer it; the learner accepts with enter() or declines
    """

    config_class = TangentSettings

    def __init__(
        self,
        llm: LLMInterface,
        prompts: PromptBuilderInterface,
        settings: TangentSettings | None = None,
    ) -> None:
        """Initialize detector.

        Args:
            llm: LLM client used for detection and return checks
            prompts: Prompt builder
            settings: Thresholds, window and cooldown settings
        """
        self._llm = llm
        self._prompts = prompts
        self._settings = settings or TangentSettings()

    @property
    def settings(self) -> TangentSettings:
        return self._settings

    def reset(self) -> TangentState:
        """Fresh state for a new session."""
        return TangentState()

    async def observe(
        self,
        state: TangentState,
        messages: Sequence[SessionMessageDTO],
        current_point: RecallPointDTO | None,
        all_points: Sequence[RecallPointDTO],
    ) -> tuple[TangentState, TangentObservation]:
        """Inspect the conversation after a learner message.

        Inside a tangent this checks for a return; otherwise, unless a
        suggestion is pending or the cooldown is running, it checks for a
        new tangent.

        Args:
            state: Current tangent state
            messages: Full session conversation, oldest first
            current_point: Point currently being probed
            all_points: Every target point of the session

        Returns:
            Tuple of (new state, observation)
        """
        if state.inside:
            return await self._check_return(state, messages, current_point)

        if state.cooldown_remaining > 0:
            return (
                state.model_copy(update={"cooldown_remaining": state.cooldown_remaining - 1}),
                TangentObservation(),
            )

        if state.pending is not None:
            return state, TangentObservation()

        return await self._detect(state, messages, current_point, all_points)

    def decline(self, state: TangentState) -> tuple[TangentState, TangentSuggestion | None]:
        """Decline the pending suggestion and start the cooldown.

        Declining with nothing pending is a no-op.
        """
        if state.pending is None:
            return state, None
        declined = state.pending
        logger.info("tangent_declined", topic=declined.topic, event_id=declined.event_id)
        return (
            state.model_copy(
                update={"pending": None, "cooldown_remaining": self._settings.cooldown_messages}
            ),
            declined,
        )

    def enter(
        self,
        state: TangentState,
        session_id: str,
        now: datetime,
        *,
        event_id: str | None = None,
        topic: str | None = None,
        message_index: int = 0,
    ) -> tuple[TangentState, TangentEventDTO]:
        """Enter a tangent.

        The pending suggestion is used when its id matches (or no id is
        given); otherwise a learner-initiated tangent on ``topic`` is opened
        at ``message_index``. Entering while inside a tangent nests it, up
        to the configured maximum depth.

        Raises:
            UnknownTangentError: If there is neither a matching suggestion nor a topic
        """
        pending = state.pending
        if pending is not None and event_id not in (None, pending.event_id):
            pending = None

        if pending is None and not topic:
            raise UnknownTangentError("No pending tangent suggestion to enter")

        depth = min(state.depth + 1, self._settings.max_depth, MAX_TANGENT_DEPTH)
        if pending is not None:
            event = TangentEventDTO(
                id=pending.event_id,
                session_id=session_id,
                topic=topic or pending.topic,
                trigger_message_index=pending.trigger_message_index,
                depth=depth,
                related_point_ids=pending.related_point_ids,
                user_initiated=pending.user_initiated,
                created_at=now,
            )
        else:
            event = TangentEventDTO(
                id=event_id or generate_id("rh"),
                session_id=session_id,
                topic=topic or "",
                trigger_message_index=message_index,
                depth=depth,
                user_initiated=True,
                created_at=now,
            )

        logger.info("tangent_entered", topic=event.topic, event_id=event.id, depth=depth)
        return (
            state.model_copy(
                update={
                    "pending": None,
                    "active": (*state.active, OpenTangent(event=event)),
                    "known_topics": _add_topic(state.known_topics, event.topic),
                }
            ),
            event,
        )

    def exit(self, state: TangentState, message_index: int) -> tuple[TangentState, OpenTangent]:
        """Close the innermost tangent as returned.

        Raises:
            UnknownTangentError: If no tangent is open
        """
        if not state.active:
            raise UnknownTangentError("Not inside a tangent")
        current = state.active[-1]
        closed = current.model_copy(
            update={"event": current.event.close(TangentStatus.RETURNED, message_index)}
        )
        logger.info(
            "tangent_exited",
            topic=closed.event.topic,
            event_id=closed.event.id,
            points_recalled=closed.points_recalled,
        )
        return state.model_copy(update={"active": state.active[:-1]}), closed

    async def _detect(
        self,
        state: TangentState,
        messages: Sequence[SessionMessageDTO],
        current_point: RecallPointDTO | None,
        all_points: Sequence[RecallPointDTO],
    ) -> tuple[TangentState, TangentObservation]:
        window = self._window(messages)
        if len(window) < self._settings.min_messages:
            return state, TangentObservation()

        prompt = self._prompts.tangent_detection_prompt(
            window, current_point, all_points, state.known_topics
        )
        data, usage = await self._ask(prompt, "tangent_detection_failed")
        if data is None:
            return state, TangentObservation(usage=usage)

        confidence = clamp_confidence(data.get("confidence", 0.0))
        topic = str(data.get("topic") or "").strip()
        if (
            data.get("is_tangent") is not True
            or confidence < self._settings.detection_threshold
            or not topic
        ):
            return state, TangentObservation(usage=usage)

        if topic.lower() in state.known_topics:
            logger.debug("tangent_topic_already_seen", topic=topic)
            return state, TangentObservation(usage=usage)

        role = MessageRole.ASSISTANT if data.get("initiated_by") == "assistant" else None
        trigger_index = _trigger_index(messages, role)
        valid_ids = {p.id for p in all_points}
        related = data.get("related_point_ids")
        suggestion = TangentSuggestion(
            event_id=generate_id("rh"),
            topic=topic,
            trigger_message_index=trigger_index,
            related_point_ids=tuple(
                pid for pid in (related if isinstance(related, list) else []) if pid in valid_ids
            ),
            user_initiated=messages[trigger_index].role is MessageRole.USER,
            confidence=confidence,
        )
        logger.info(
            "tangent_detected",
            topic=topic,
            event_id=suggestion.event_id,
            confidence=confidence,
        )
        return (
            state.model_copy(
                update={
                    "pending": suggestion,
                    "known_topics": _add_topic(state.known_topics, topic),
                }
            ),
            TangentObservation(suggestion=suggestion, usage=usage),
        )

    async def _check_return(
        self,
        state: TangentState,
        messages: Sequence[SessionMessageDTO],
        current_point: RecallPointDTO | None,
    ) -> tuple[TangentState, TangentObservation]:
        current = state.active[-1]
        since_trigger = list(messages[current.event.trigger_message_index :])
        window = self._window(since_trigger)

        prompt = self._prompts.tangent_return_prompt(current.event.topic, window, current_point)
        data, usage = await self._ask(prompt, "tangent_return_check_failed")
        if data is None:
            return state, TangentObservation(usage=usage)

        confidence = clamp_confidence(data.get("confidence", 0.0))
        if data.get("has_returned") is not True or confidence < self._settings.return_threshold:
            return state, TangentObservation(usage=usage)

        state, closed = self.exit(state, len(messages) - 1)
        return state, TangentObservation(returned=closed, usage=usage)

    async def _ask(self, prompt: str, failure_event: str) -> tuple[dict | None, LLMUsage | None]:
        try:
            response = await self._llm.complete(
                prompt,
                temperature=self._settings.temperature,
                max_tokens=self._settings.max_tokens,
            )
        except LLMError as e:
            logger.warning(failure_event, error_type=e.error_type.value, error=str(e))
            return None, None
        try:
            return extract_json_object(response.text), response.usage
        except ValueError as e:
            logger.warning(failure_event, error=str(e))
            return None, response.usage

    def _window(self, messages: Sequence[SessionMessageDTO]) -> list[SessionMessageDTO]:
        conversation = [m for m in messages if m.role is not MessageRole.SYSTEM]
        return conversation[-self._settings.window_size :]


def _trigger_index(messages: Sequence[SessionMessageDTO], role: MessageRole | None) -> int:
    """Index of the latest message by ``role``, or of the latest message."""
    if role is not None:
        for index in range(len(messages) - 1, -1, -1):
            if messages[index].role is role:
                return index
    return len(messages) - 1


def _add_topic(topics: tuple[str, ...], topic: str) -> tuple[str, ...]:
    key = topic.lower()
    if not key or key in topics:
        return topics
    return (*topics, key)
