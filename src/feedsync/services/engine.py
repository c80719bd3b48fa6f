"""Feed engine facade.

One :class:`FeedEngine` instance owns every in-memory feed, the realtime
subscriptions that keep them current and the suggestion list. UI layers
read snapshots from it and route every mutation through its action
methods, so optimistic updates and realtime deltas meet in one place.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from datetime import datetime

from feedsync.core.settings import settings
from feedsync.db.time import utcnow
from feedsync.schemas import (
    Edge,
    FeedName,
    FilterBy,
    Group,
    Hashtag,
    Post,
    PostCreate,
    RelationType,
    ScoredUser,
    SortBy,
    SuggestionPage,
)
from feedsync.schemas.post import Privacy
from feedsync.services.aggregator import FeedAggregator
from feedsync.services.cache import OfflineStore, SnapshotCache
from feedsync.services.gateway import FeedGateway, GatewayError
from feedsync.services.notifier import Notifier
from feedsync.services.overlay import PendingOverlay
from feedsync.services.realtime import RealtimeChannel
from feedsync.services.store import FeedStore, PageStateView
from feedsync.services.suggestions import SuggestionEngine
from feedsync.services.synchronizer import (
    EDGE_COUNTERS,
    NotificationCallback,
    RealtimeSynchronizer,
)
from feedsync.services.text import extract_hashtags

logger = logging.getLogger(__name__)

EDGE_FEEDS: dict[RelationType, FeedName] = {
    RelationType.LIKE: FeedName.LIKED,
    RelationType.BOOKMARK: FeedName.BOOKMARKED,
}


class FeedEngine:
    """Explicit engine instance with a ``start``/``dispose`` lifecycle."""

    def __init__(
        self,
        gateway: FeedGateway,
        *,
        viewer_id: str | None = None,
        cache: SnapshotCache | None = None,
        offline: OfflineStore | None = None,
        notifier: Notifier | None = None,
        sort_by: SortBy = SortBy.NEWEST,
        filter_by: FilterBy = FilterBy.ALL,
        on_notification: NotificationCallback | None = None,
        channel_factory: Callable[..., RealtimeChannel] = RealtimeChannel,
        connectivity: Callable[[], bool] | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.gateway = gateway
        self.filter_by = filter_by
        self.store = FeedStore()
        self.notifier = notifier or Notifier()
        self._owns_cache = cache is None
        self.cache = cache or SnapshotCache.from_settings()
        self._owns_offline = offline is None
        self.offline = offline or OfflineStore()
        self.overlay = PendingOverlay(settings.pending_action_ttl_seconds)
        self.aggregator = FeedAggregator(
            gateway,
            self.store,
            cache=self.cache,
            offline=self.offline,
            notifier=self.notifier,
            viewer_id=viewer_id,
            sort_by=sort_by,
            connectivity=connectivity,
            rng=rng,
            clock=clock,
        )
        self.suggestion_engine = SuggestionEngine(gateway, viewer_id=viewer_id, clock=clock)
        self.synchronizer = RealtimeSynchronizer(
            gateway,
            self.store,
            self.aggregator,
            self.suggestion_engine,
            self.overlay,
            self.notifier,
            on_notification=on_notification,
            channel_factory=channel_factory,
        )
        self._started = False
        self._disposed = False

    @property
    def viewer_id(self) -> str | None:
        return self.aggregator.viewer_id

    @property
    def sort_by(self) -> SortBy:
        return self.aggregator.sort_by

    # Lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        """Warm from cache, subscribe to changes and load first pages."""
        if self._started:
            return
        self._started = True
        await self.aggregator.warm_start()
        self.synchronizer.start()
        await self._load_discovery()

    async def _load_discovery(self) -> None:
        for feed in (FeedName.HOME, FeedName.TRENDING):
            await self.aggregator.fetch_page(feed)
        await self._load_suggestions()

    async def _load_suggestions(self) -> None:
        if self.viewer_id is None:
            return
        try:
            await self.suggestion_engine.compute()
        except GatewayError as exc:
            logger.warning("Could not load suggestions: %s", exc)
            self.notifier.error("Could not load suggestions", detail=str(exc))

    async def dispose(self) -> None:
        """Close every subscription. Safe to call more than once."""
        if self._disposed:
            return
        self._disposed = True
        await self.synchronizer.stop()
        if self._owns_cache:
            await self.cache.close()
        if self._owns_offline:
            self.offline.dispose()

    async def _reset_and_reload(self, *, clear_viewed: bool = False) -> None:
        """Start every feed over and load the first page of each again."""
        self.aggregator.reset(clear_viewed=clear_viewed)
        self.overlay.clear()
        if not self._started:
            return
        feeds = [FeedName.HOME, FeedName.TRENDING]
        if self.viewer_id is not None:
            feeds.append(FeedName.OWN)
        for feed in feeds:
            await self.aggregator.fetch_page(feed)
        await self.aggregator.fetch_groups(reload=True)
        await self.aggregator.fetch_trending_hashtags()
        await self._load_suggestions()

    async def set_viewer(self, viewer_id: str | None) -> None:
        """Switch the signed-in viewer; every feed starts over."""
        if viewer_id == self.viewer_id:
            return
        self.aggregator.viewer_id = viewer_id
        self.suggestion_engine.set_viewer(viewer_id)
        if self._started:
            await self.synchronizer.restart()
        await self._reset_and_reload(clear_viewed=True)

    async def set_sort(self, sort_by: SortBy) -> None:
        if sort_by == self.aggregator.sort_by:
            return
        self.aggregator.sort_by = sort_by
        await self._reset_and_reload()

    async def set_filter(self, filter_by: FilterBy) -> None:
        if filter_by == self.filter_by:
            return
        self.filter_by = filter_by
        await self._reset_and_reload()

    # Paging --------------------------------------------------------------

    async def load_more(self, feed: FeedName) -> bool:
        return await self.aggregator.fetch_page(feed)

    async def refresh(self, feed: FeedName = FeedName.HOME) -> bool:
        """Reload ``feed`` from its first page and revive dropped channels.

        The current list stays visible until the new first page arrives.
        """
        restarted = self.synchronizer.reconnect_exhausted()
        if restarted:
            logger.info("Reconnected %d realtime channels", restarted)
        if self.store.state(feed).loading:
            return False
        self.aggregator.rewind(feed)
        return await self.aggregator.fetch_page(feed)

    async def load_groups(self, *, reload: bool = False) -> bool:
        return await self.aggregator.fetch_groups(reload=reload)

    async def trending_hashtags(self) -> list[Hashtag]:
        return await self.aggregator.fetch_trending_hashtags()

    async def load_suggestions(self, offset: int = 0, limit: int | None = None) -> SuggestionPage:
        return await self.suggestion_engine.page(offset, limit)

    # Actions -------------------------------------------------------------

    def _require_viewer(self) -> str:
        if self.viewer_id is None:
            raise PermissionError("This action requires a signed-in viewer")
        return self.viewer_id

    async def toggle_like(self, post_id: str) -> bool:
        return await self._toggle_edge(RelationType.LIKE, post_id)

    async def toggle_bookmark(self, post_id: str) -> bool:
        return await self._toggle_edge(RelationType.BOOKMARK, post_id)

    async def _toggle_edge(self, relation: RelationType, post_id: str) -> bool:
        """Flip the viewer's edge optimistically, then write it through.

        Returns False, with the local change reverted, if the write fails.
        """
        viewer_id = self._require_viewer()
        post = self.store.get(post_id)
        if post is None:
            raise KeyError(post_id)

        _, flag = EDGE_COUNTERS[relation]
        value = not getattr(post, flag)
        delta = 1 if value else -1
        self._set_edge(relation, post_id, value, delta)
        self.overlay.add(relation, post_id, value)

        edge = Edge(relation=relation, subject_id=viewer_id, object_id=post_id)
        try:
            if value:
                await self.gateway.insert_edge(edge)
            else:
                await self.gateway.delete_edge(edge)
        except GatewayError as exc:
            self.overlay.discard(relation, post_id)
            self._set_edge(relation, post_id, not value, -delta)
            logger.warning("Failed to %s %s: %s", relation.value, post_id, exc)
            self.notifier.error(f"Could not update {relation.value}", detail=str(exc))
            return False
        return True

    def _set_edge(self, relation: RelationType, post_id: str, value: bool, delta: int) -> None:
        counter, flag = EDGE_COUNTERS[relation]
        post = self.store.update(
            post_id,
            lambda current: {flag: value, counter: max(0, getattr(current, counter) + delta)},
        )
        feed = EDGE_FEEDS[relation]
        if post is None:
            return
        if value:
            self.store.prepend(feed, [post])
        else:
            self.store.remove_from(feed, post_id)

    async def share_post(self, post_id: str) -> bool:
        if self.store.apply_delta(post_id, "shares_count", 1) is None:
            raise KeyError(post_id)
        try:
            shared = await self.gateway.share_post(post_id)
        except GatewayError as exc:
            self.store.apply_delta(post_id, "shares_count", -1)
            logger.warning("Failed to share %s: %s", post_id, exc)
            self.notifier.error("Could not share post", detail=str(exc))
            return False
        self.store.update(post_id, lambda post: {"shares_count": shared.shares_count})
        return True

    async def follow_user(self, user_id: str) -> bool:
        viewer_id = self._require_viewer()
        edge = Edge(relation=RelationType.FOLLOW, subject_id=viewer_id, object_id=user_id)
        try:
            await self.gateway.insert_edge(edge)
        except GatewayError as exc:
            logger.warning("Failed to follow %s: %s", user_id, exc)
            self.notifier.error("Could not follow user", detail=str(exc))
            return False
        self.suggestion_engine.remove(user_id)
        return True

    async def create_post(
        self,
        content: str,
        privacy: Privacy = "public",
        group_id: str | None = None,
    ) -> Post:
        """Publish a composed post and show it in the viewer's own feed.

        Other feeds pick it up through the new-post buffer.
        """
        viewer_id = self._require_viewer()
        payload = PostCreate(content=content, privacy=privacy, group_id=group_id)
        post = await self.gateway.create_post(viewer_id, payload, extract_hashtags(content))
        try:
            post = await self.aggregator.hydrate_post(post.id) or post
        except GatewayError as exc:
            logger.warning("Created post %s shown without relations: %s", post.id, exc)
        self.store.prepend(FeedName.OWN, [post])
        return post

    def mark_viewed(self, post_ids: list[str]) -> None:
        self.store.viewed.update(post_ids)

    def show_new_posts(self) -> int:
        """Merge the new-post buffer into the visible feeds."""
        posts = self.store.take_buffer()
        if not posts:
            return 0
        viewer_id = self.viewer_id
        self.store.prepend(FeedName.HOME, posts)
        self.store.prepend(FeedName.TRENDING, [p for p in posts if p.author_id != viewer_id])
        if viewer_id is not None:
            self.store.prepend(FeedName.OWN, [p for p in posts if p.author_id == viewer_id])
        return len(posts)

    def clear_new_posts(self) -> None:
        self.store.clear_buffer()

    # Read-only snapshots -------------------------------------------------

    def posts(self, feed: FeedName) -> list[Post]:
        return self.store.posts(feed)

    def page_state(self, feed: FeedName) -> PageStateView:
        return self.store.view(feed)

    def new_posts(self) -> list[Post]:
        return self.store.buffered()

    @property
    def new_posts_count(self) -> int:
        return self.store.buffer_size

    @property
    def has_new_posts(self) -> bool:
        return self.store.has_new_posts

    def suggestions(self) -> list[ScoredUser]:
        return self.suggestion_engine.ranked

    def groups(self) -> list[Group]:
        return list(self.aggregator.groups)
