"""Tests for EventBus — observer notifications."""

import asyncio

import pytest

from castbridge.core.event_bus import (
    ALL_TOPICS,
    CONNECTION_LOST,
    SESSIONS_CHANGED,
    EventBus,
)


@pytest.mark.asyncio
async def test_publish_and_listen():
    bus = EventBus()
    queue = bus.subscribe(SESSIONS_CHANGED)

    await bus.publish(SESSIONS_CHANGED, {"casts": []})
    await bus.publish_end(SESSIONS_CHANGED)

    events = [e async for e in bus.listen(queue)]
    assert events == [{"casts": []}]


@pytest.mark.asyncio
async def test_multiple_subscribers():
    bus = EventBus()
    q1 = bus.subscribe(SESSIONS_CHANGED)
    q2 = bus.subscribe(SESSIONS_CHANGED)

    delivered = await bus.publish(SESSIONS_CHANGED, "event-1")
    assert delivered == 2

    await bus.publish_end(SESSIONS_CHANGED)
    assert [e async for e in bus.listen(q1)] == ["event-1"]
    assert [e async for e in bus.listen(q2)] == ["event-1"]


@pytest.mark.asyncio
async def test_topic_isolation():
    bus = EventBus()
    q_sessions = bus.subscribe(SESSIONS_CHANGED)
    q_lost = bus.subscribe(CONNECTION_LOST)

    await bus.publish(SESSIONS_CHANGED, "a")
    await bus.publish(CONNECTION_LOST, "b")

    assert q_sessions.get_nowait() == "a"
    assert q_lost.get_nowait() == "b"
    assert q_sessions.empty() and q_lost.empty()


@pytest.mark.asyncio
async def test_all_topics_receives_topic_and_event():
    bus = EventBus()
    queue = bus.subscribe(ALL_TOPICS)

    delivered = await bus.publish(CONNECTION_LOST, {"reason": "reconnecting"})

    assert delivered == 1
    assert queue.get_nowait() == (CONNECTION_LOST, {"reason": "reconnecting"})


@pytest.mark.asyncio
async def test_publish_with_no_observers_is_not_an_error():
    bus = EventBus()
    assert await bus.publish(SESSIONS_CHANGED, "event") == 0
    assert bus.published_count == 1


@pytest.mark.asyncio
async def test_unsubscribe_idempotent():
    bus = EventBus()
    queue = bus.subscribe(SESSIONS_CHANGED)
    assert bus.subscriber_count(SESSIONS_CHANGED) == 1

    bus.unsubscribe(SESSIONS_CHANGED, queue)
    bus.unsubscribe(SESSIONS_CHANGED, queue)
    assert bus.subscriber_count(SESSIONS_CHANGED) == 0


@pytest.mark.asyncio
async def test_queue_full_drops_event():
    """A full subscriber queue drops the event instead of blocking."""
    bus = EventBus()
    bus.subscribe(SESSIONS_CHANGED, maxsize=2)

    await bus.publish(SESSIONS_CHANGED, 1)
    await bus.publish(SESSIONS_CHANGED, 2)
    assert await bus.publish(SESSIONS_CHANGED, 3) == 0


@pytest.mark.asyncio
async def test_concurrent_publish_and_listen():
    bus = EventBus()
    queue = bus.subscribe(SESSIONS_CHANGED)
    received = []

    async def publisher():
        for i in range(10):
            await bus.publish(SESSIONS_CHANGED, i)
            await asyncio.sleep(0)
        await bus.publish_end(SESSIONS_CHANGED)

    async def listener():
        async for event in bus.listen(queue):
            received.append(event)

    await asyncio.gather(publisher(), listener())
    assert received == list(range(10))
