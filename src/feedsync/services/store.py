"""Normalized in-memory post store.

Posts live once in an entity table keyed by identity; each feed and the
new-post buffer are ordered lists of identities projected over that table.
A counter delta or replacement is applied once and every projection sees
it.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from feedsync.schemas import FeedName, Post


@dataclass
class FeedPageState:
    """Pagination state of one feed."""

    post_ids: list[str] = field(default_factory=list)
    offset: int = 0
    has_more: bool = True
    loading: bool = False


@dataclass(frozen=True)
class PageStateView:
    """Read-only copy of a feed's pagination state."""

    offset: int
    has_more: bool
    loading: bool
    size: int


class FeedStore:
    """Entity table plus per-feed projections."""

    def __init__(self) -> None:
        self._entities: dict[str, Post] = {}
        self._feeds: dict[FeedName, FeedPageState] = {}
        self._buffer: list[str] = []
        self.viewed: set[str] = set()
        self.has_new_posts = False
        self.reset()

    def reset(self, *, clear_viewed: bool = False) -> None:
        """Drop every list, cursor and flag.

        Fresh state objects are created so a fetch that captured the old
        state cannot write into the new one. The viewed set belongs to the
        viewer and survives unless ``clear_viewed`` is set.
        """
        self._entities.clear()
        self._feeds = {name: FeedPageState() for name in FeedName}
        self._buffer = []
        if clear_viewed:
            self.viewed = set()
        self.has_new_posts = False

    def state(self, feed: FeedName) -> FeedPageState:
        return self._feeds[feed]

    def view(self, feed: FeedName) -> PageStateView:
        state = self._feeds[feed]
        return PageStateView(
            offset=state.offset,
            has_more=state.has_more,
            loading=state.loading,
            size=len(state.post_ids),
        )

    def get(self, post_id: str) -> Post | None:
        return self._entities.get(post_id)

    def posts(self, feed: FeedName) -> list[Post]:
        """Snapshot of a feed, detached from the store."""
        return [self._entities[pid].model_copy(deep=True) for pid in self._feeds[feed].post_ids]

    def ids(self, feed: FeedName) -> list[str]:
        return list(self._feeds[feed].post_ids)

    def feeds_containing(self, post_id: str) -> list[FeedName]:
        return [name for name, state in self._feeds.items() if post_id in state.post_ids]

    def contains(self, post_id: str) -> bool:
        """True if the post is in any feed or in the buffer."""
        return post_id in self._buffer or bool(self.feeds_containing(post_id))

    def upsert(self, post: Post) -> None:
        self._entities[post.id] = post

    def replace_feed(self, feed: FeedName, posts: Iterable[Post]) -> None:
        """Make ``posts`` the whole content of ``feed``, deduplicated."""
        ids: list[str] = []
        for post in posts:
            if post.id in ids:
                continue
            self.upsert(post)
            ids.append(post.id)
        self._feeds[feed].post_ids = ids
        self._collect()

    def append(self, feed: FeedName, posts: Iterable[Post]) -> int:
        """Append posts not already in ``feed``; returns how many were added."""
        state = self._feeds[feed]
        added = 0
        for post in posts:
            self.upsert(post)
            if post.id not in state.post_ids:
                state.post_ids.append(post.id)
                added += 1
        return added

    def prepend(self, feed: FeedName, posts: Iterable[Post]) -> int:
        """Insert posts at the head of ``feed`` in the given order, skipping duplicates."""
        state = self._feeds[feed]
        fresh: list[str] = []
        for post in posts:
            self.upsert(post)
            if post.id not in state.post_ids and post.id not in fresh:
                fresh.append(post.id)
        state.post_ids[:0] = fresh
        return len(fresh)

    def remove_from(self, feed: FeedName, post_id: str) -> None:
        state = self._feeds[feed]
        if post_id in state.post_ids:
            state.post_ids.remove(post_id)
            self._collect()

    def remove(self, post_id: str) -> bool:
        """Remove a post from every feed and the buffer."""
        found = False
        for state in self._feeds.values():
            if post_id in state.post_ids:
                state.post_ids.remove(post_id)
                found = True
        if post_id in self._buffer:
            self._buffer.remove(post_id)
            found = True
        if not self._buffer:
            self.has_new_posts = False
        self._entities.pop(post_id, None)
        return found

    def update(self, post_id: str, changes: Callable[[Post], dict[str, object]]) -> Post | None:
        """Apply field changes computed from the current entity."""
        post = self._entities.get(post_id)
        if post is None:
            return None
        updated = post.model_copy(update=changes(post))
        self._entities[post_id] = updated
        return updated

    def apply_delta(self, post_id: str, counter: str, delta: int) -> Post | None:
        """Shift a counter by ``delta``, floored at zero."""
        return self.update(
            post_id, lambda post: {counter: max(0, getattr(post, counter) + delta)}
        )

    # New-post buffer -----------------------------------------------------

    def buffer_insert(self, post: Post) -> bool:
        """Prepend to the buffer; False if the post was already buffered."""
        if post.id in self._buffer:
            return False
        self.upsert(post)
        self._buffer.insert(0, post.id)
        self.has_new_posts = True
        return True

    def is_buffered(self, post_id: str) -> bool:
        return post_id in self._buffer

    def buffered(self) -> list[Post]:
        return [self._entities[pid].model_copy(deep=True) for pid in self._buffer]

    @property
    def buffer_size(self) -> int:
        return len(self._buffer)

    def take_buffer(self) -> list[Post]:
        """Empty the buffer and return its posts, newest first."""
        posts = [self._entities[pid] for pid in self._buffer]
        self._buffer = []
        self.has_new_posts = False
        return posts

    def clear_buffer(self) -> None:
        self._buffer = []
        self.has_new_posts = False
        self._collect()

    def _collect(self) -> None:
        """Forget entities no projection references any more."""
        referenced = set(self._buffer)
        for state in self._feeds.values():
            referenced.update(state.post_ids)
        for post_id in [pid for pid in self._entities if pid not in referenced]:
            del self._entities[post_id]
