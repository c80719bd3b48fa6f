"""Applies realtime change events to the in-memory feeds."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from feedsync.schemas import ChangeEvent, FeedName, RelationType
from feedsync.services.aggregator import FeedAggregator
from feedsync.services.gateway import (
    TABLE_BOOKMARKS,
    TABLE_COMMENTS,
    TABLE_FOLLOWS,
    TABLE_LIKES,
    TABLE_NOTIFICATIONS,
    TABLE_POSTS,
    FeedGateway,
)
from feedsync.services.notifier import Notifier
from feedsync.services.overlay import PendingOverlay
from feedsync.services.realtime import RealtimeChannel
from feedsync.services.store import FeedStore
from feedsync.services.suggestions import SuggestionEngine

logger = logging.getLogger(__name__)

NotificationCallback = Callable[[dict[str, Any]], Awaitable[None] | None]

EDGE_COUNTERS: dict[RelationType, tuple[str, str]] = {
    RelationType.LIKE: ("likes_count", "is_liked"),
    RelationType.BOOKMARK: ("bookmarks_count", "is_bookmarked"),
}


class RealtimeSynchronizer:
    """Owns the viewer's change subscriptions and their handlers."""

    def __init__(
        self,
        gateway: FeedGateway,
        store: FeedStore,
        aggregator: FeedAggregator,
        suggestions: SuggestionEngine,
        overlay: PendingOverlay,
        notifier: Notifier,
        *,
        on_notification: NotificationCallback | None = None,
        channel_factory: Callable[..., RealtimeChannel] = RealtimeChannel,
    ) -> None:
        self.gateway = gateway
        self.store = store
        self.aggregator = aggregator
        self.suggestions = suggestions
        self.overlay = overlay
        self.notifier = notifier
        self.on_notification = on_notification
        self._channel_factory = channel_factory
        self.channels: dict[str, RealtimeChannel] = {}

    @property
    def viewer_id(self) -> str | None:
        return self.aggregator.viewer_id

    def _specs(self) -> list[tuple[str, str | None, Callable[[ChangeEvent], Awaitable[None]]]]:
        specs: list[tuple[str, str | None, Callable[[ChangeEvent], Awaitable[None]]]] = [
            (TABLE_POSTS, None, self.handle_post),
            (TABLE_LIKES, None, self.handle_like),
            (TABLE_COMMENTS, None, self.handle_comment),
        ]
        viewer = self.viewer_id
        if viewer is not None:
            specs += [
                (TABLE_BOOKMARKS, f"user_id=eq.{viewer}", self.handle_bookmark),
                (TABLE_FOLLOWS, f"follower_id=eq.{viewer}", self.handle_follow),
                (TABLE_NOTIFICATIONS, f"user_id=eq.{viewer}", self.handle_notification),
            ]
        return specs

    def start(self) -> None:
        """Open one channel per table for the current viewer."""
        for table, filter, handler in self._specs():
            if table in self.channels:
                continue
            channel = self._channel_factory(self.gateway, table, handler, filter=filter)
            self.channels[table] = channel
            channel.open()

    async def stop(self) -> None:
        channels, self.channels = self.channels, {}
        for channel in channels.values():
            await channel.close()

    async def restart(self) -> None:
        """Resubscribe, e.g. after the viewer changed."""
        await self.stop()
        self.start()

    def reconnect_exhausted(self) -> int:
        """Restart channels that gave up; returns how many restarted."""
        return sum(1 for channel in self.channels.values() if channel.exhausted and channel.reconnect())

    # Post events ---------------------------------------------------------

    async def handle_post(self, event: ChangeEvent) -> None:
        post_id = event.record.get("id")
        if not post_id:
            return
        post_id = str(post_id)

        if event.event_type == "delete":
            if self.store.remove(post_id):
                logger.debug("Removed deleted post %s", post_id)
            return

        if event.event_type == "insert":
            if self.store.is_buffered(post_id) or post_id in self.store.ids(FeedName.HOME):
                return
            post = await self.aggregator.hydrate_post(post_id)
            if post is not None and self.store.buffer_insert(post):
                logger.debug("Buffered new post %s", post_id)
            return

        if not self.store.contains(post_id):
            return
        post = await self.aggregator.hydrate_post(post_id)
        # The post may have been deleted or the feeds reset while fetching.
        if post is None or not self.store.contains(post_id):
            return
        self.store.upsert(post)

    # Edge events ---------------------------------------------------------

    async def handle_like(self, event: ChangeEvent) -> None:
        self._apply_edge(RelationType.LIKE, event)

    async def handle_bookmark(self, event: ChangeEvent) -> None:
        self._apply_edge(RelationType.BOOKMARK, event)

    def _apply_edge(self, relation: RelationType, event: ChangeEvent) -> None:
        record = event.record
        post_id = record.get("post_id")
        if post_id is None or event.event_type == "update":
            return
        post_id = str(post_id)
        if self.store.get(post_id) is None:
            return

        counter, flag = EDGE_COUNTERS[relation]
        value = event.event_type == "insert"
        delta = 1 if value else -1
        from_viewer = self.viewer_id is not None and str(record.get("user_id")) == self.viewer_id

        if from_viewer and self.overlay.consume(relation, post_id, value):
            # Our own optimistic toggle already moved the counter. A newer
            # toggle still in flight owns the flag.
            if not self.overlay.pending(relation, post_id):
                self.store.update(post_id, lambda post: {flag: value})
            return

        if from_viewer:
            self.store.update(
                post_id,
                lambda post: {flag: value, counter: max(0, getattr(post, counter) + delta)},
            )
        else:
            self.store.apply_delta(post_id, counter, delta)

    async def handle_comment(self, event: ChangeEvent) -> None:
        post_id = event.record.get("post_id")
        if post_id is None or event.event_type == "update":
            return
        delta = 1 if event.event_type == "insert" else -1
        self.store.apply_delta(str(post_id), "comments_count", delta)

    async def handle_follow(self, event: ChangeEvent) -> None:
        if event.event_type == "update":
            return
        if str(event.record.get("follower_id")) != self.viewer_id:
            return
        await self.suggestions.refresh()

    async def handle_notification(self, event: ChangeEvent) -> None:
        if event.event_type != "insert":
            return
        title = event.new.get("title") or "New notification"
        self.notifier.info(str(title), detail=event.new.get("message"))
        if self.on_notification is not None:
            result = self.on_notification(dict(event.new))
            if result is not None:
                await result
