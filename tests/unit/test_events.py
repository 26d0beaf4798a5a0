"""Unit tests for the session event channel."""

import asyncio

import pytest

from dialogue_recall.session.events import SessionEvent, SessionEventChannel, SessionEventType


def event(event_type: SessionEventType = SessionEventType.USER_MESSAGE) -> SessionEvent:
    return SessionEvent(type=event_type, session_id="sess_1", data={"content": "hi"})


class TestSessionEventChannel:
    """Tests for SessionEventChannel."""

    def test_fan_out_to_every_subscriber(self) -> None:
        channel = SessionEventChannel()
        first = channel.subscribe()
        second = channel.subscribe()

        channel.publish(event())

        assert len(first.get_nowait_all()) == 1
        assert len(second.get_nowait_all()) == 1

    def test_publish_without_subscribers(self) -> None:
        channel = SessionEventChannel()
        channel.publish(event())
        assert channel.subscriber_count == 0

    def test_full_queue_drops_instead_of_blocking(self) -> None:
        channel = SessionEventChannel(maxsize=2)
        slow = channel.subscribe()

        for _ in range(5):
            channel.publish(event())

        assert len(slow.get_nowait_all()) == 2
        assert slow.dropped == 3

    def test_order_preserved(self) -> None:
        channel = SessionEventChannel()
        subscription = channel.subscribe()

        channel.publish(event(SessionEventType.POINT_EVALUATED))
        channel.publish(event(SessionEventType.POINT_RECALLED))

        assert [e.type for e in subscription.get_nowait_all()] == [
            SessionEventType.POINT_EVALUATED,
            SessionEventType.POINT_RECALLED,
        ]

    @pytest.mark.asyncio
    async def test_iteration_ends_on_close(self) -> None:
        channel = SessionEventChannel()
        subscription = channel.subscribe()

        async def consume() -> list[SessionEvent]:
            return [e async for e in subscription]

        task = asyncio.create_task(consume())
        channel.publish(event())
        channel.publish(event(SessionEventType.SESSION_COMPLETED))
        channel.close()

        received = await asyncio.wait_for(task, timeout=1)
        assert [e.type for e in received] == [
            SessionEventType.USER_MESSAGE,
            SessionEventType.SESSION_COMPLETED,
        ]
        assert channel.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_unsubscribe_one(self) -> None:
        channel = SessionEventChannel()
        leaving = channel.subscribe()
        staying = channel.subscribe()

        leaving.close()
        channel.publish(event())

        assert await leaving.get() is None
        assert len(staying.get_nowait_all()) == 1

    @pytest.mark.asyncio
    async def test_close_ends_iteration_when_queue_full(self) -> None:
        channel = SessionEventChannel(maxsize=2)
        behind = channel.subscribe()
        channel.publish(event(SessionEventType.POINT_EVALUATED))
        channel.publish(event(SessionEventType.POINT_RECALLED))

        channel.close()

        async def consume() -> list[SessionEvent]:
            return [e async for e in behind]

        received = await asyncio.wait_for(consume(), timeout=1)
        assert [e.type for e in received] == [
            SessionEventType.POINT_EVALUATED,
            SessionEventType.POINT_RECALLED,
        ]
        assert behind.dropped == 0
        assert await behind.get() is None
