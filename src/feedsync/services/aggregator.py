"""Feed aggregation: fetch, rank, hydrate, merge and persist pages.

Each logical feed keeps an offset into the gateway's raw result space.
Ranked feeds (home, trending) read a superset of rows, rank it and keep
one page; the offset then advances by the raw rows read so the next page
starts after everything already considered.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from feedsync.core.settings import settings
from feedsync.db.time import as_utc, utcnow
from feedsync.schemas import (
    FEED_MODES,
    RANKED_FEEDS,
    FeedName,
    FeedQuery,
    FeedSnapshot,
    Group,
    Hashtag,
    Post,
    SortBy,
)
from feedsync.services.cache import OfflineStore, SnapshotCache
from feedsync.services.gateway import TABLE_GROUPS, TABLE_POSTS, FeedGateway, GatewayError
from feedsync.services.notifier import Notifier
from feedsync.services.ranking import rank_home, rank_trending
from feedsync.services.relations import RelationBatchLoader
from feedsync.services.store import FeedStore

logger = logging.getLogger(__name__)

HASHTAGS_CACHE_KEY = "hashtags"


class FeedAggregator:
    """Produces ranked, deduplicated, paginated feeds into a :class:`FeedStore`."""

    def __init__(
        self,
        gateway: FeedGateway,
        store: FeedStore,
        *,
        cache: SnapshotCache,
        offline: OfflineStore,
        notifier: Notifier,
        loader: RelationBatchLoader | None = None,
        viewer_id: str | None = None,
        sort_by: SortBy = SortBy.NEWEST,
        page_size: int | None = None,
        superset_factor: int | None = None,
        own_post_grace: timedelta | None = None,
        connectivity: Callable[[], bool] | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.gateway = gateway
        self.store = store
        self.cache = cache
        self.offline = offline
        self.notifier = notifier
        self.loader = loader or RelationBatchLoader(gateway)
        self.viewer_id = viewer_id
        self.sort_by = sort_by
        self.page_size = page_size or settings.page_size
        self.superset_factor = max(1, superset_factor or settings.superset_factor)
        self.own_post_grace = own_post_grace or timedelta(seconds=settings.own_post_grace_seconds)
        self._connectivity = connectivity or (lambda: self.gateway.is_online)
        self._rng = rng or random.Random()
        self._clock = clock
        self.generation = 0
        self.groups: list[Group] = []
        self.groups_offset = 0
        self.groups_has_more = True
        self.hashtags: list[Hashtag] = []

    def is_online(self) -> bool:
        return self._connectivity()

    def reset(self, *, clear_viewed: bool = False) -> None:
        """Clear every cursor and list; in-flight results become stale."""
        self.generation += 1
        self.store.reset(clear_viewed=clear_viewed)
        self.groups = []
        self.groups_offset = 0
        self.groups_has_more = True
        logger.debug("Feeds reset (generation %d)", self.generation)

    def rewind(self, feed: FeedName) -> None:
        """Restart ``feed`` from the first page without clearing its list."""
        state = self.store.state(feed)
        state.offset = 0
        state.has_more = True

    async def warm_start(self) -> None:
        """Show cached snapshots before the first network round trip."""
        for feed in FeedName:
            snapshot = await self.cache.get(feed.value)
            if snapshot is None or self.store.ids(feed):
                continue
            self.store.replace_feed(feed, snapshot.posts)
        hashtags = await self.cache.get_json(HASHTAGS_CACHE_KEY)
        if hashtags and not self.hashtags:
            self.hashtags = [Hashtag.model_validate(item) for item in hashtags]

    def _query(self, feed: FeedName, offset: int) -> FeedQuery:
        ranked = feed in RANKED_FEEDS
        return FeedQuery(
            mode=FEED_MODES[feed],
            offset=offset,
            limit=self.page_size * self.superset_factor if ranked else self.page_size,
            sort_by=self.sort_by if feed == FeedName.HOME else SortBy.NEWEST,
            viewed_post_ids=sorted(self.store.viewed) if ranked else [],
        )

    def select(self, feed: FeedName, rows: list[Post]) -> list[Post]:
        """Rank raw rows for ``feed`` and keep one page."""
        if feed == FeedName.HOME:
            ranked = rank_home(
                rows,
                viewer_id=self.viewer_id,
                viewed=self.store.viewed,
                now=self._clock(),
                own_post_grace=self.own_post_grace,
                rng=self._rng,
            )
        elif feed == FeedName.TRENDING:
            ranked = rank_trending(
                rows, viewer_id=self.viewer_id, viewed=self.store.viewed, rng=self._rng
            )
        else:
            ranked = list(rows)
        return ranked[: self.page_size]

    async def fetch_page(self, feed: FeedName) -> bool:
        """Fetch and merge the next page of ``feed``.

        Returns False without a request while a fetch for the same feed is
        outstanding or when no more pages exist. Gateway failures never
        clear the current list.
        """
        state = self.store.state(feed)
        if state.loading:
            logger.debug("Skipping %s fetch: already loading", feed.value)
            return False
        if not state.has_more:
            logger.debug("Skipping %s fetch: no more pages", feed.value)
            return False

        generation = self.generation
        state.loading = True
        try:
            page = await self.gateway.query_posts(self._query(feed, state.offset), self.viewer_id)
            selected = self.select(feed, page.posts)
            posts = await self.loader.hydrate(selected, self.viewer_id)
        except GatewayError as exc:
            if generation != self.generation:
                return False
            return await self._recover(feed, exc)
        finally:
            state.loading = False

        if generation != self.generation:
            logger.debug("Discarding %s page from before a reset", feed.value)
            return False

        if feed == FeedName.LIKED:
            posts = [post.model_copy(update={"is_liked": True}) for post in posts]
        elif feed == FeedName.BOOKMARKED:
            posts = [post.model_copy(update={"is_bookmarked": True}) for post in posts]

        if state.offset == 0:
            self.store.replace_feed(feed, posts)
        else:
            self.store.append(feed, posts)
        state.offset += len(page.posts)
        state.has_more = page.has_more and bool(page.posts)
        await self._persist(feed, posts)
        return True

    async def _persist(self, feed: FeedName, fetched: list[Post]) -> None:
        state = self.store.state(feed)
        snapshot = FeedSnapshot(posts=self.store.posts(feed), has_more=state.has_more)
        await self.cache.set(feed.value, snapshot)
        try:
            await self.offline.save_all(TABLE_POSTS, fetched)
        except SQLAlchemyError as exc:
            logger.warning("Offline write-through failed for %s: %s", feed.value, exc)

    async def _recover(self, feed: FeedName, exc: GatewayError) -> bool:
        if not self.is_online():
            posts = await self._cached_posts(feed)
            if posts:
                self.store.replace_feed(feed, posts)
                self.store.state(feed).has_more = False
                logger.warning(
                    "Gateway unavailable, showing %d cached %s posts: %s",
                    len(posts),
                    feed.value,
                    exc,
                )
                return True

        logger.warning("Failed to load %s feed: %s", feed.value, exc)
        self.notifier.error(f"Could not load the {feed.value} feed", detail=str(exc))
        return False

    async def _cached_posts(self, feed: FeedName) -> list[Post]:
        snapshot = await self.cache.get(feed.value)
        if snapshot is not None and snapshot.posts:
            return snapshot.posts
        if feed != FeedName.HOME:
            return []
        try:
            rows = await self.offline.get_all(TABLE_POSTS)
        except SQLAlchemyError as exc:
            logger.warning("Offline store unreadable: %s", exc)
            return []
        posts = [Post.model_validate(row) for row in rows]
        return sorted(posts, key=lambda post: as_utc(post.created_at), reverse=True)

    async def hydrate_post(self, post_id: str) -> Post | None:
        """Fetch one post with the viewer's relations, or None if it is gone."""
        post = await self.gateway.fetch_post(post_id)
        if post is None:
            return None
        hydrated = await self.loader.hydrate([post], self.viewer_id)
        return hydrated[0]

    async def fetch_groups(self, *, reload: bool = False) -> bool:
        """Load the next page of the group directory.

        Public groups are merged with the viewer's active memberships; the
        membership entry wins when a group appears in both.
        """
        if reload:
            self.groups_offset = 0
            self.groups_has_more = True
        if not self.groups_has_more:
            return False

        generation = self.generation
        limit = settings.groups_page_size
        try:
            page = await self.gateway.list_groups(self.viewer_id, self.groups_offset, limit)
        except GatewayError as exc:
            if generation != self.generation:
                return False
            if not self.is_online():
                rows = await self.offline.get_all(TABLE_GROUPS)
                if rows:
                    self.groups = [Group.model_validate(row) for row in rows][:limit]
                    self.groups_has_more = False
                    return True
            logger.warning("Failed to load groups: %s", exc)
            self.notifier.error("Could not load groups", detail=str(exc))
            return False

        if generation != self.generation:
            return False

        merged: dict[str, Group] = {}
        existing = [] if self.groups_offset == 0 else self.groups
        for group in [*existing, *page.public]:
            merged.setdefault(group.id, group)
        for group in page.memberships:
            merged[group.id] = group
        ordered = sorted(merged.values(), key=lambda g: as_utc(g.created_at), reverse=True)
        self.groups = ordered[: self.groups_offset + limit]
        self.groups_offset += len(page.public)
        self.groups_has_more = page.has_more
        try:
            await self.offline.save_all(TABLE_GROUPS, self.groups)
        except SQLAlchemyError as exc:
            logger.warning("Offline write-through failed for groups: %s", exc)
        return True

    async def fetch_trending_hashtags(self) -> list[Hashtag]:
        """Return hashtags ordered by post count, from cache when offline."""
        try:
            self.hashtags = await self.gateway.trending_hashtags(settings.trending_hashtags_limit)
        except GatewayError as exc:
            cached = await self.cache.get_json(HASHTAGS_CACHE_KEY)
            if cached is not None:
                self.hashtags = [Hashtag.model_validate(item) for item in cached]
                logger.warning("Using cached trending hashtags: %s", exc)
            else:
                logger.warning("Failed to load trending hashtags: %s", exc)
                self.notifier.error("Could not load trending hashtags", detail=str(exc))
            return list(self.hashtags)

        await self.cache.set_json(
            HASHTAGS_CACHE_KEY, [tag.model_dump(mode="json") for tag in self.hashtags]
        )
        return list(self.hashtags)
