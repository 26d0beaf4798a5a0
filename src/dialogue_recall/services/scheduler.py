"""Spaced-repetition scheduling for dialogue_recall.

This module wraps the FSRS algorithm from the ``fsrs`` package. The
algorithm's card only carries stability, difficulty, due date and
learning step; repetition and lapse counts and the "new" phase are
tracked here on top of it.
"""

from datetime import UTC, datetime, timedelta

from fsrs import Card, Rating, Scheduler, State

from dialogue_recall.config import SchedulerSettings
from dialogue_recall.logging import get_logger
from dialogue_recall.models.recall import LearningPhase, MemoryState, RecallRating

__all__ = [
    "RecallScheduler",
]

logger = get_logger(__name__)

_RATINGS: dict[RecallRating, Rating] = {
    RecallRating.FORGOT: Rating.Again,
    RecallRating.HARD: Rating.Hard,
    RecallRating.GOOD: Rating.Good,
    RecallRating.EASY: Rating.Easy,
}

_PHASES: dict[State, LearningPhase] = {
    State.Learning: LearningPhase.LEARNING,
    State.Review: LearningPhase.REVIEW,
    State.Relearning: LearningPhase.RELEARNING,
}

_STATES: dict[LearningPhase, State] = {phase: state for state, phase in _PHASES.items()}

# The algorithm's card id is irrelevant to scheduling
_CARD_ID = 1


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class RecallScheduler:
    """Advances memory states with FSRS.

    ``advance`` is a pure function of (state, rating, now): fuzzing is
    disabled unless explicitly configured and no clock is read.

    Example:
        scheduler = RecallScheduler()
        state = scheduler.create_initial_state(now)
        state = scheduler.advance(state, RecallRating.GOOD, now)
    """

    config_class = SchedulerSettings

    def __init__(self, settings: SchedulerSettings | None = None) -> None:
        """Initialize scheduler.

        Args:
            settings: Scheduler settings (defaults loaded from environment)
        """
        self._settings = settings or SchedulerSettings()
        self._scheduler = Scheduler(
            desired_retention=self._settings.desired_retention,
            maximum_interval=self._settings.maximum_interval_days,
            enable_fuzzing=self._settings.enable_fuzzing,
        )

    def create_initial_state(self, now: datetime) -> MemoryState:
        """Create the state of a point that has never been reviewed."""
        return MemoryState(due=_as_utc(now))

    def advance(self, state: MemoryState, rating: RecallRating, now: datetime) -> MemoryState:
        """Apply one rating and return the next memory state.

        Args:
            state: Current memory state
            rating: Qualitative recall rating
            now: Review time

        Returns:
            New state with repetitions incremented, lapses incremented
            on forgot, and last_review set to now
        """
        now = _as_utc(now)
        card, _ = self._scheduler.review_card(self._to_card(state), _RATINGS[rating], now)

        next_state = MemoryState(
            stability=card.stability or 0.0,
            difficulty=card.difficulty or 0.0,
            due=_as_utc(card.due),
            repetitions=state.repetitions + 1,
            lapses=state.lapses + (1 if rating is RecallRating.FORGOT else 0),
            phase=_PHASES[card.state],
            learning_step=card.step,
            last_review=now,
        )
        interval = self.interval(next_state)
        logger.debug(
            "memory_state_advanced",
            rating=rating.value,
            phase=next_state.phase.value,
            due=next_state.due.isoformat(),
            interval_days=round(interval.total_seconds() / 86400, 2) if interval else None,
            stability=round(next_state.stability, 4),
        )
        return next_state

    def is_due(self, state: MemoryState, now: datetime) -> bool:
        """Whether a point is due at the given time."""
        return state.due <= _as_utc(now)

    def retrievability(self, state: MemoryState, now: datetime) -> float:
        """Probability of successful recall at the given time, 0 for new points."""
        if state.phase is LearningPhase.NEW or state.last_review is None:
            return 0.0
        return self._scheduler.get_card_retrievability(self._to_card(state), _as_utc(now))

    def interval(self, state: MemoryState) -> timedelta | None:
        """Time between the last review and the due date, None if never reviewed."""
        if state.last_review is None:
            return None
        return state.due - state.last_review

    @staticmethod
    def _to_card(state: MemoryState) -> Card:
        if state.phase is LearningPhase.NEW:
            return Card(card_id=_CARD_ID, state=State.Learning, step=0, due=state.due)

        fsrs_state = _STATES[state.phase]
        step = None
        if fsrs_state is not State.Review:
            step = state.learning_step or 0
        return Card(
            card_id=_CARD_ID,
            state=fsrs_state,
            step=step,
            stability=state.stability,
            difficulty=state.difficulty,
            due=_as_utc(state.due),
            last_review=_as_utc(state.last_review) if state.last_review else None,
        )
