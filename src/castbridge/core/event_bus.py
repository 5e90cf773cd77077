"""
Event Bus — lightweight async pub/sub for observer notifications.

Observers (a popup, the HTTP adapter, tests) subscribe to the topics they
care about. Nobody listening is the normal case, so publishing never fails
and never blocks the publisher.

Design:
- Topic-based: publishers write to topics, subscribers listen on topics
- Each subscriber gets its own asyncio.Queue (no cross-talk)
- Non-blocking: publish() uses put_nowait and drops on a full queue
- ALL_TOPICS subscribers receive (topic, event) tuples for every publish

Topics:
- sessions.changed          — active casts changed (payload: casts)
- connection.state_changed  — peer connected / state adopted from the context
- connection.lost           — temporary or permanent loss (payload: reason)
- network.health_changed    — peer reported speaker network health
- speaker.event             — opaque domain events forwarded from the context
- peer.state_changed        — speaker groups updated by a topology event
- media.state_changed       — a source reported new media state or artwork

Usage:
    bus = EventBus()
    queue = bus.subscribe(SESSIONS_CHANGED)
    await bus.publish(SESSIONS_CHANGED, {"casts": [...]})
    async for event in bus.listen(queue):
        ...
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, AsyncGenerator

logger = logging.getLogger(__name__)

SESSIONS_CHANGED = "sessions.changed"
CONNECTION_STATE_CHANGED = "connection.state_changed"
CONNECTION_LOST = "connection.lost"
NETWORK_HEALTH_CHANGED = "network.health_changed"
SPEAKER_EVENT = "speaker.event"
PEER_STATE_CHANGED = "peer.state_changed"
MEDIA_STATE_CHANGED = "media.state_changed"
ALL_TOPICS = "*"

# Sentinel to signal end of stream
_STREAM_END = object()


class EventBus:
    """
    Async pub/sub bus. Single event loop; each subscriber has its own Queue
    so a slow observer never blocks a fast one.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[asyncio.Queue]] = defaultdict(list)
        self._published = 0

    async def publish(self, topic: str, event: Any) -> int:
        """
        Publish an event to all subscribers of a topic.

        Returns the number of subscribers that received it (including
        ALL_TOPICS subscribers). Zero is not an error.
        """
        self._published += 1
        delivered = 0
        for queue in self._subscribers.get(topic, []):
            delivered += self._offer(queue, event, topic)
        for queue in self._subscribers.get(ALL_TOPICS, []):
            delivered += self._offer(queue, (topic, event), topic)
        if delivered == 0:
            logger.debug("No observers for %s", topic)
        return delivered

    @staticmethod
    def _offer(queue: asyncio.Queue, item: Any, topic: str) -> int:
        try:
            queue.put_nowait(item)
            return 1
        except asyncio.QueueFull:
            logger.warning(
                "Event bus: subscriber queue full for topic %s, dropping event",
                topic,
            )
            return 0

    def subscribe(self, topic: str, maxsize: int = 1000) -> asyncio.Queue:
        """Subscribe to a topic (or ALL_TOPICS). Returns the subscriber queue."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._subscribers[topic].append(queue)
        logger.debug(
            "Subscribed to topic: %s (total: %d)", topic, len(self._subscribers[topic])
        )
        return queue

    def unsubscribe(self, topic: str, queue: asyncio.Queue) -> None:
        """Remove a subscriber's queue. Safe to call twice."""
        queues = self._subscribers.get(topic, [])
        try:
            queues.remove(queue)
            if not queues:
                del self._subscribers[topic]
        except ValueError:
            pass

    async def publish_end(self, topic: str) -> None:
        """Signal end-of-stream to all subscribers of a topic."""
        for queue in self._subscribers.get(topic, []):
            try:
                queue.put_nowait(_STREAM_END)
            except asyncio.QueueFull:
                pass

    async def listen(self, queue: asyncio.Queue) -> AsyncGenerator[Any, None]:
        """Yield events from a subscriber queue until end-of-stream."""
        while True:
            item = await queue.get()
            if item is _STREAM_END:
                break
            yield item

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, []))

    @property
    def published_count(self) -> int:
        """Total publish() calls, delivered or not."""
        return self._published
