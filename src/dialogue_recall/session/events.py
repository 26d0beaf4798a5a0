"""Session event channel for dialogue_recall.

The orchestrator publishes typed events to a channel; consumers subscribe
independently, each with its own queue. Publishing never blocks and never
raises into the orchestrator, so a slow or failing consumer cannot affect
session state.
"""

import asyncio
from collections.abc import AsyncIterator
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from dialogue_recall.logging import get_logger
from dialogue_recall.utils.ids import utc_now

__all__ = [
    "SessionEvent",
    "SessionEventChannel",
    "SessionEventType",
    "Subscription",
]

logger = get_logger(__name__)


class SessionEventType(StrEnum):
    """Types of events emitted while a session runs."""

    SESSION_STARTED = "session_started"
    SESSION_RESUMED = "session_resumed"
    POINT_STARTED = "point_started"
    USER_MESSAGE = "user_message"
    ASSISTANT_MESSAGE = "assistant_message"
    POINT_EVALUATED = "point_evaluated"
    POINT_RECALLED = "point_recalled"
    POINT_COMPLETED = "point_completed"
    SESSION_COMPLETE_OVERLAY = "session_complete_overlay"
    SESSION_PAUSED = "session_paused"
    SESSION_ABANDONED = "session_abandoned"
    SESSION_COMPLETED = "session_completed"
    TANGENT_DETECTED = "tangent_detected"
    TANGENT_DECLINED = "tangent_declined"
    TANGENT_ENTERED = "tangent_entered"
    TANGENT_EXITED = "tangent_exited"


class SessionEvent(BaseModel, frozen=True):
    """A single observable state change."""

    type: SessionEventType
    session_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    data: dict[str, Any] = Field(default_factory=dict)


class Subscription:
    """A consumer's view of the channel.

    Iterate it to receive events until the channel closes, or call
    ``get_nowait_all`` to drain what has arrived so far.
    """

    def __init__(self, channel: "SessionEventChannel", maxsize: int) -> None:
        self._channel = channel
        self._queue: asyncio.Queue[SessionEvent | None] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0
        self._closed = False

    def _offer(self, event: SessionEvent) -> bool:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    def _end(self) -> None:
        self._closed = True
        # A full queue has no waiting reader; get() sees the flag once drained
        if not self._queue.full():
            self._queue.put_nowait(None)

    async def get(self) -> SessionEvent | None:
        """Wait for the next event; None once the channel is closed."""
        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()

    def get_nowait_all(self) -> list[SessionEvent]:
        """Drain every queued event without waiting."""
        events: list[SessionEvent] = []
        while not self._queue.empty():
            event = self._queue.get_nowait()
            if event is not None:
                events.append(event)
        return events

    def close(self) -> None:
        """Stop receiving events."""
        self._channel.unsubscribe(self)

    def __aiter__(self) -> AsyncIterator[SessionEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[SessionEvent]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event


class SessionEventChannel:
    """Fan-out of session events to independent subscribers.

    Example:
        channel = SessionEventChannel()
        subscription = channel.subscribe()
        channel.publish(SessionEvent(type=SessionEventType.USER_MESSAGE, session_id=sid))
        async for event in subscription:
            ...
    """

    def __init__(self, maxsize: int = 1000) -> None:
        """Initialize channel.

        Args:
            maxsize: Per-subscriber queue bound; events beyond it are dropped
        """
        self._maxsize = maxsize
        self._subscribers: list[Subscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        """Register a new subscriber."""
        subscription = Subscription(self, self._maxsize)
        self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscriber and end its iteration."""
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)
            subscription._end()

    def publish(self, event: SessionEvent) -> None:
        """Deliver an event to every subscriber without waiting."""
        for subscription in self._subscribers:
            if not subscription._offer(event):
                logger.warning(
                    "session_event_dropped",
                    event_type=event.type.value,
                    dropped=subscription.dropped,
                )

    def close(self) -> None:
        """End iteration for every subscriber."""
        for subscription in list(self._subscribers):
            self.unsubscribe(subscription)
