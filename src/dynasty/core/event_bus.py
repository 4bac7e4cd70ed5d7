"""In-memory async event bus for league notifications.

The league core publishes logical notifications (a new deadline, a season
rollover, expired offers, a signed coach). The Discord bot subscribes to
everything and decides where each one is delivered. Publishing never
raises: with no subscriber attached, events are dropped, and a full
subscriber queue drops the event for that subscriber only.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import defaultdict
from typing import Any

logger = logging.getLogger(__name__)

LEAGUE_ADVANCED = "league.advanced"
LEAGUE_WEEK_RECAP = "league.week_recap"
LEAGUE_NEW_SEASON = "league.new_season"
OFFERS_EXPIRED = "offers.expired"
COACH_SIGNED = "coach.signed"
COACH_MOVED = "coach.moved"
GAME_RECORDED = "game.recorded"
NEWS_PRESS_RELEASE = "news.press_release"

EventEnvelope = dict[str, Any]


class EventBus:
    """Async pub/sub event bus.

    Usage:
        bus = EventBus()

        # Subscriber (Discord bot)
        async with bus.subscribe() as sub:
            async for event in sub:
                await deliver(event["type"], event["data"])

        # Publisher (league core)
        await bus.publish(OFFERS_EXPIRED, {"guild_id": "1", "user_id": "2", "team_names": []})
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[asyncio.Queue[EventEnvelope]]] = defaultdict(list)
        self._wildcard_subscribers: list[asyncio.Queue[EventEnvelope]] = []

    async def publish(self, event_type: str, data: dict[str, Any]) -> int:
        """Deliver an event to typed and wildcard subscribers.

        Returns how many subscriber queues accepted it.
        """
        envelope: EventEnvelope = {"type": event_type, "data": data}
        delivered = 0
        queues = [*self._subscribers.get(event_type, []), *self._wildcard_subscribers]
        for queue in queues:
            try:
                queue.put_nowait(envelope)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(
                    "event_dropped type=%s guild=%s reason=queue_full",
                    event_type,
                    data.get("guild_id"),
                )
        if not queues:
            logger.debug("event_unobserved type=%s guild=%s", event_type, data.get("guild_id"))
        return delivered

    def subscribe(self, event_type: str | None = None, max_size: int = 500) -> Subscription:
        """Subscribe to one event type, or to every event when *event_type* is None.

        Use the returned Subscription as an async context manager.
        """
        queue: asyncio.Queue[EventEnvelope] = asyncio.Queue(maxsize=max_size)
        return Subscription(self, queue, event_type)

    def _register(self, queue: asyncio.Queue[EventEnvelope], event_type: str | None) -> None:
        if event_type is None:
            self._wildcard_subscribers.append(queue)
        else:
            self._subscribers[event_type].append(queue)

    def _unregister(self, queue: asyncio.Queue[EventEnvelope], event_type: str | None) -> None:
        target = self._wildcard_subscribers if event_type is None else self._subscribers[event_type]
        with contextlib.suppress(ValueError):
            target.remove(queue)

    @property
    def subscriber_count(self) -> int:
        typed = sum(len(subs) for subs in self._subscribers.values())
        return typed + len(self._wildcard_subscribers)


class Subscription:
    """An active subscription. Async context manager and async iterator."""

    def __init__(
        self,
        bus: EventBus,
        queue: asyncio.Queue[EventEnvelope],
        event_type: str | None,
    ) -> None:
        self._bus = bus
        self._queue = queue
        self._event_type = event_type
        self._active = False

    async def __aenter__(self) -> Subscription:
        self._bus._register(self._queue, self._event_type)
        self._active = True
        return self

    async def __aexit__(self, *args: object) -> None:
        self._active = False
        self._bus._unregister(self._queue, self._event_type)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> EventEnvelope:
        if not self._active:
            raise StopAsyncIteration
        try:
            return await self._queue.get()
        except asyncio.CancelledError:
            raise StopAsyncIteration from None

    async def get(self, timeout: float | None = None) -> EventEnvelope | None:
        """Next event, or None if nothing arrives within *timeout* seconds."""
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except TimeoutError:
            return None

    def drain(self) -> list[EventEnvelope]:
        """Return every event already queued without waiting."""
        events: list[EventEnvelope] = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events
