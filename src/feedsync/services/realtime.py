"""Realtime change subscriptions with bounded reconnect.

Each :class:`RealtimeChannel` owns one change stream for one table and
moves through ``disconnected -> connecting -> subscribed``. When the stream
drops it reconnects with exponential backoff; once the attempts are used up
it stays disconnected until :meth:`RealtimeChannel.reconnect` is called.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from feedsync.core.settings import settings
from feedsync.schemas import ChangeEvent
from feedsync.services.gateway import ChangeStream, FeedGateway, GatewayError

logger = logging.getLogger(__name__)

EventHandler = Callable[[ChangeEvent], Awaitable[None]]


class ChannelState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """Delay before reconnect ``attempt`` (1-based): base doubling, capped."""
    return min(base * 2 ** (attempt - 1), cap)


class RealtimeChannel:
    """One table subscription delivering events to a handler in order."""

    def __init__(
        self,
        gateway: FeedGateway,
        table: str,
        handler: EventHandler,
        *,
        filter: str | None = None,
        backoff_base: float | None = None,
        backoff_cap: float | None = None,
        max_attempts: int | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.gateway = gateway
        self.table = table
        self.filter = filter
        self._handler = handler
        self.backoff_base = (
            settings.realtime_backoff_base_seconds if backoff_base is None else backoff_base
        )
        self.backoff_cap = settings.realtime_backoff_cap_seconds if backoff_cap is None else backoff_cap
        self.max_attempts = settings.realtime_max_attempts if max_attempts is None else max_attempts
        self._sleep = sleep

        self.state = ChannelState.DISCONNECTED
        self.attempts = 0
        self.exhausted = False
        self.subscribed_event = asyncio.Event()
        self._stream: ChangeStream | None = None
        self._task: asyncio.Task[None] | None = None
        self._closing = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def open(self) -> None:
        """Start the subscription loop if it is not already running."""
        if self.running:
            return
        self._closing = False
        self._task = asyncio.create_task(self._run(), name=f"realtime:{self.table}")

    def reconnect(self) -> bool:
        """Restart a channel that gave up; returns True if a restart happened."""
        if self.running or self._closing:
            return False
        self.attempts = 0
        self.exhausted = False
        self.open()
        return True

    async def close(self) -> None:
        """Stop the loop and release the stream. Safe to call repeatedly."""
        self._closing = True
        if self._stream is not None:
            await self._stream.close()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self.state = ChannelState.DISCONNECTED
        self.subscribed_event.clear()

    async def _run(self) -> None:
        while not self._closing:
            self.state = ChannelState.CONNECTING
            try:
                stream = await self.gateway.subscribe(self.table, self.filter)
            except GatewayError as exc:
                logger.warning("Subscribe to %s failed: %s", self.table, exc)
                if not await self._backoff():
                    return
                continue

            self._stream = stream
            self.state = ChannelState.SUBSCRIBED
            self.attempts = 0
            self.subscribed_event.set()
            logger.info("Subscribed to %s changes", self.table)
            try:
                async for event in stream:
                    await self._dispatch(event)
            except GatewayError as exc:
                logger.warning("Change stream for %s dropped: %s", self.table, exc)
            finally:
                self._stream = None
                self.subscribed_event.clear()
                await stream.close()

            if self._closing:
                break
            if not await self._backoff():
                return
        self.state = ChannelState.DISCONNECTED

    async def _backoff(self) -> bool:
        self.state = ChannelState.DISCONNECTED
        self.attempts += 1
        if self.attempts > self.max_attempts:
            self.exhausted = True
            logger.warning(
                "Giving up on %s after %d reconnect attempts", self.table, self.max_attempts
            )
            return False
        delay = backoff_delay(self.attempts, self.backoff_base, self.backoff_cap)
        logger.info("Reconnecting to %s in %.1fs (attempt %d)", self.table, delay, self.attempts)
        await self._sleep(delay)
        return not self._closing

    async def _dispatch(self, event: ChangeEvent) -> None:
        try:
            await self._handler(event)
        except GatewayError as exc:
            logger.warning("Could not apply %s %s: %s", self.table, event.event_type, exc)
        except Exception:
            logger.exception("Handler failed for %s %s", self.table, event.event_type)
