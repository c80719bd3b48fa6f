"""In-process change feed.

Every write made through the SQL gateway is published here in commit
order. Subscribers either receive events pushed onto an asyncio queue or
pull them with a sequence cursor (the ``/changes`` long-poll endpoint).
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any

from feedsync.core.settings import settings
from feedsync.schemas import ChangeBatch, ChangeEvent, ChangeType
from feedsync.services.gateway import ChangeStream

logger = logging.getLogger(__name__)


def parse_filter(expression: str | None) -> tuple[str, str] | None:
    """Parse a ``column=eq.value`` predicate.

    Raises:
        ValueError: If the expression is not an equality predicate.
    """
    if not expression:
        return None
    column, sep, rest = expression.partition("=")
    if not sep or not rest.startswith("eq.") or not column:
        raise ValueError(f"Unsupported change filter: {expression!r}")
    return column, rest[3:]


def matches(event: ChangeEvent, table: str, predicate: tuple[str, str] | None) -> bool:
    """Return True if ``event`` belongs to ``table`` and satisfies ``predicate``."""
    if event.table != table:
        return False
    if predicate is None:
        return True
    column, value = predicate
    actual = event.record.get(column)
    return actual is not None and str(actual) == value


class QueueChangeStream(ChangeStream):
    """Push subscription backed by an asyncio queue."""

    def __init__(self, feed: ChangeFeed, table: str, predicate: tuple[str, str] | None) -> None:
        self.table = table
        self.predicate = predicate
        self._feed = feed
        self._queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue()
        self._closed = False

    def offer(self, event: ChangeEvent) -> None:
        if not self._closed and matches(event, self.table, self.predicate):
            self._queue.put_nowait(event)

    def disconnect(self) -> None:
        """End delivery as if the connection dropped."""
        self._closed = True
        self._queue.put_nowait(None)

    async def __anext__(self) -> ChangeEvent:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event

    async def close(self) -> None:
        if self._closed:
            return
        self._feed.unsubscribe(self)
        self.disconnect()


class ChangeFeed:
    """Sequence-numbered, bounded log of row changes."""

    def __init__(self, max_events: int | None = None) -> None:
        self._log: deque[ChangeEvent] = deque(maxlen=max_events or settings.change_log_size)
        self._sequence = 0
        self._streams: list[QueueChangeStream] = []
        self._waiters: set[asyncio.Event] = set()

    @property
    def head(self) -> int:
        """Sequence number of the most recent event."""
        return self._sequence

    def publish(
        self,
        table: str,
        event_type: ChangeType,
        *,
        new: dict[str, Any] | None = None,
        old: dict[str, Any] | None = None,
    ) -> ChangeEvent:
        """Append an event and deliver it to matching subscribers.

        Must be called from the event loop thread.
        """
        self._sequence += 1
        event = ChangeEvent(
            table=table,
            event_type=event_type,
            new=new or {},
            old=old or {},
            sequence=self._sequence,
        )
        self._log.append(event)
        for stream in list(self._streams):
            stream.offer(event)
        for waiter in self._waiters:
            waiter.set()
        logger.debug("Published %s %s #%s", table, event_type, event.sequence)
        return event

    def subscribe(self, table: str, filter: str | None = None) -> QueueChangeStream:
        stream = QueueChangeStream(self, table, parse_filter(filter))
        self._streams.append(stream)
        return stream

    def unsubscribe(self, stream: QueueChangeStream) -> None:
        if stream in self._streams:
            self._streams.remove(stream)

    def disconnect_all(self) -> None:
        """Drop every push subscription, e.g. on server shutdown."""
        streams, self._streams = self._streams, []
        for stream in streams:
            stream.disconnect()

    def since(self, table: str, after: int, filter: str | None = None) -> list[ChangeEvent]:
        predicate = parse_filter(filter)
        return [
            event
            for event in self._log
            if event.sequence > after and matches(event, table, predicate)
        ]

    async def pull(
        self,
        table: str,
        after: int | None = None,
        filter: str | None = None,
        wait: float = 0.0,
    ) -> ChangeBatch:
        """Return events after ``after``, waiting up to ``wait`` seconds for one.

        Without a cursor the caller only learns the current head, so a new
        subscriber starts from "now".
        """
        if after is None:
            parse_filter(filter)
            return ChangeBatch(events=[], cursor=self._sequence)

        events = self.since(table, after, filter)
        deadline = asyncio.get_running_loop().time() + max(0.0, wait)
        while not events:
            remaining = deadline - asyncio.get_running_loop().time()
            if remaining <= 0:
                break
            waiter = asyncio.Event()
            self._waiters.add(waiter)
            try:
                await asyncio.wait_for(waiter.wait(), timeout=remaining)
            except TimeoutError:
                break
            finally:
                self._waiters.discard(waiter)
            events = self.since(table, after, filter)

        cursor = events[-1].sequence if events else max(after, self._sequence)
        return ChangeBatch(events=events, cursor=cursor)
