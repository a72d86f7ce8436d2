"""In-process change feed for the vacancy collection.

The store (or the database webhook route) publishes one event per insert,
update or delete; subscribers only learn that *something* changed.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncIterator, Literal

logger = logging.getLogger(__name__)

ChangeKind = Literal["insert", "update", "delete"]


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    kind: ChangeKind
    record_id: int | str | None = None
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Subscription:
    """Queue-backed async iterator handed out by :meth:`ChangeFeed.subscribe`."""

    def __init__(self, feed: "ChangeFeed") -> None:
        self._feed = feed
        self._queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue()
        self._closed = False

    def push(self, event: ChangeEvent | None) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    def drain(self) -> list[ChangeEvent]:
        """Pop every event already queued without waiting."""

        drained: list[ChangeEvent] = []
        while True:
            try:
                event = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return drained
            if event is None:
                self._closed = True
                return drained
            drained.append(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)
        self._feed.unsubscribe(self)

    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        return self

    async def __anext__(self) -> ChangeEvent:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        event = await self._queue.get()
        if event is None:
            self._closed = True
            raise StopAsyncIteration
        return event


class ChangeFeed:
    def __init__(self) -> None:
        self._subscribers: list[Subscription] = []
        self.published = 0

    def subscribe(self) -> Subscription:
        subscription = Subscription(self)
        self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: ChangeEvent) -> None:
        self.published += 1
        logger.debug("vacancy change %s id=%s -> %d subscriber(s)", event.kind, event.record_id, len(self._subscribers))
        for subscription in list(self._subscribers):
            subscription.push(event)


def event_from_webhook(payload: dict) -> ChangeEvent:
    """Translate a database webhook body (``type`` + ``record``/``old_record``)."""

    kind = str(payload.get("type") or payload.get("eventType") or "update").lower()
    if kind not in {"insert", "update", "delete"}:
        kind = "update"
    row = payload.get("record") or payload.get("old_record") or {}
    record_id = row.get("id") if isinstance(row, dict) else None
    return ChangeEvent(kind=kind, record_id=record_id)  # type: ignore[arg-type]


_feed = ChangeFeed()


def configure_change_feed(feed: ChangeFeed) -> None:
    global _feed
    _feed = feed


def get_change_feed() -> ChangeFeed:
    """Return the process-wide change feed."""

    return _feed
