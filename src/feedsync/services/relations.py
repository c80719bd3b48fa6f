"""Batch loading of per-post side relations."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field

from feedsync.schemas import Hashtag, Post, RelationKind, RelationLink, Tag
from feedsync.services.gateway import FeedGateway

logger = logging.getLogger(__name__)


@dataclass
class RelationBatch:
    """Relations for a set of posts, keyed by post identity."""

    hashtags: dict[str, list[Hashtag]] = field(default_factory=dict)
    tags: dict[str, list[Tag]] = field(default_factory=dict)
    liked: set[str] = field(default_factory=set)
    bookmarked: set[str] = field(default_factory=set)

    def apply(self, posts: list[Post]) -> list[Post]:
        """Return hydrated copies of ``posts``.

        The viewer flags come only from this batch, never from counters.
        """
        return [
            post.model_copy(
                update={
                    "hashtags": self.hashtags.get(post.id, []),
                    "tags": self.tags.get(post.id, []),
                    "is_liked": post.id in self.liked,
                    "is_bookmarked": post.id in self.bookmarked,
                }
            )
            for post in posts
        ]


def _group_unique(links: list[RelationLink], attr: str) -> dict[str, list]:
    grouped: dict[str, dict[str, Hashtag | Tag]] = defaultdict(dict)
    for link in links:
        item = getattr(link, attr)
        if item is not None:
            grouped[link.post_id].setdefault(item.id, item)
    return {post_id: list(items.values()) for post_id, items in grouped.items()}


class RelationBatchLoader:
    """Fetches hashtags, tags and viewer edges with one request per relation."""

    def __init__(self, gateway: FeedGateway) -> None:
        self.gateway = gateway

    async def _viewer_links(
        self, kind: RelationKind, post_ids: list[str], viewer_id: str | None
    ) -> list[RelationLink]:
        if viewer_id is None:
            return []
        return await self.gateway.fetch_relation(kind, post_ids, viewer_id)

    async def load(self, post_ids: list[str], viewer_id: str | None = None) -> RelationBatch:
        """Load every relation for ``post_ids``.

        An empty input returns an empty batch without touching the gateway.
        Gateway errors propagate to the caller.
        """
        ids = list(dict.fromkeys(post_ids))
        if not ids:
            return RelationBatch()

        hashtag_links, tag_links, like_links, bookmark_links = await asyncio.gather(
            self.gateway.fetch_relation(RelationKind.HASHTAGS, ids, viewer_id),
            self.gateway.fetch_relation(RelationKind.TAGS, ids, viewer_id),
            self._viewer_links(RelationKind.LIKES, ids, viewer_id),
            self._viewer_links(RelationKind.BOOKMARKS, ids, viewer_id),
        )
        logger.debug("Loaded relations for %d posts", len(ids))
        return RelationBatch(
            hashtags=_group_unique(hashtag_links, "hashtag"),
            tags=_group_unique(tag_links, "tag"),
            liked={link.post_id for link in like_links if link.user_id == viewer_id},
            bookmarked={link.post_id for link in bookmark_links if link.user_id == viewer_id},
        )

    async def hydrate(self, posts: list[Post], viewer_id: str | None = None) -> list[Post]:
        batch = await self.load([post.id for post in posts], viewer_id)
        return batch.apply(posts)
