"""Remote data gateway boundary.

The engine only ever talks to the relational store through a
:class:`FeedGateway`. Two implementations ship with feedsync: an in-process
SQLAlchemy gateway used by the reference server and an HTTP gateway that
speaks to that server.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from feedsync.schemas import (
    ChangeEvent,
    Edge,
    FeedPage,
    FeedQuery,
    FollowLink,
    GroupPage,
    Hashtag,
    Post,
    PostCreate,
    RelationKind,
    RelationLink,
    SocialUser,
)

TABLE_POSTS = "social_posts"
TABLE_LIKES = "social_likes"
TABLE_BOOKMARKS = "social_bookmarks"
TABLE_COMMENTS = "social_comments"
TABLE_FOLLOWS = "social_follows"
TABLE_GROUP_MEMBERS = "social_group_members"
TABLE_NOTIFICATIONS = "social_notifications"
TABLE_GROUPS = "social_groups"


class GatewayError(RuntimeError):
    """Base exception raised for gateway failures."""


class GatewayUnavailableError(GatewayError):
    """Raised when the gateway cannot be reached."""


class GatewayTimeoutError(GatewayUnavailableError):
    """Raised when a gateway call exceeds its deadline."""


class NotFoundError(GatewayError):
    """Raised when the referenced entity does not exist."""


class ChangeStream(ABC):
    """Ordered stream of change events for one subscription.

    Iteration ends when the stream is closed; a dropped connection surfaces
    as a :class:`GatewayError` from ``__anext__``.
    """

    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        return self

    @abstractmethod
    async def __anext__(self) -> ChangeEvent: ...

    @abstractmethod
    async def close(self) -> None:
        """Stop delivery and release the subscription."""


class FeedGateway(ABC):
    """Black-box access to the remote relational store."""

    @property
    def is_online(self) -> bool:
        """Connectivity probe consulted when a call fails."""
        return True

    @abstractmethod
    async def query_posts(self, query: FeedQuery, viewer_id: str | None) -> FeedPage:
        """Return raw, unhydrated rows for one feed query."""

    @abstractmethod
    async def fetch_post(self, post_id: str) -> Post | None:
        """Return a single post without viewer relations, or None."""

    @abstractmethod
    async def fetch_relation(
        self,
        kind: RelationKind,
        post_ids: list[str],
        viewer_id: str | None = None,
    ) -> list[RelationLink]:
        """Return every edge of ``kind`` for the given posts.

        Like and bookmark queries are scoped to ``viewer_id``.
        """

    @abstractmethod
    async def insert_edge(self, edge: Edge) -> None:
        """Create an edge; inserting an existing edge is a no-op."""

    @abstractmethod
    async def delete_edge(self, edge: Edge) -> None:
        """Remove an edge; removing a missing edge is a no-op."""

    @abstractmethod
    async def create_post(self, author_id: str, payload: PostCreate, hashtags: list[str]) -> Post:
        """Persist a new post with its hashtags."""

    @abstractmethod
    async def share_post(self, post_id: str) -> Post:
        """Increment the share counter of a post."""

    @abstractmethod
    async def fetch_user(self, user_id: str) -> SocialUser | None:
        """Return a profile or None."""

    @abstractmethod
    async def fetch_users(self, user_ids: list[str]) -> list[SocialUser]:
        """Return the profiles that exist among ``user_ids``."""

    @abstractmethod
    async def list_following(self, user_id: str) -> list[str]:
        """Return the identities ``user_id`` follows, most recent first."""

    @abstractmethod
    async def list_following_of(self, user_ids: list[str]) -> list[FollowLink]:
        """Return the follow edges whose follower is in ``user_ids``."""

    @abstractmethod
    async def popular_users(self, exclude_ids: list[str], limit: int) -> list[SocialUser]:
        """Return profiles ordered by follower count."""

    @abstractmethod
    async def list_groups(self, viewer_id: str | None, offset: int, limit: int) -> GroupPage:
        """Return a page of public groups plus the viewer's active memberships."""

    @abstractmethod
    async def trending_hashtags(self, limit: int) -> list[Hashtag]:
        """Return hashtags ordered by post count."""

    @abstractmethod
    async def subscribe(self, table: str, filter: str | None = None) -> ChangeStream:
        """Open a change stream for ``table``.

        ``filter`` uses the ``column=eq.value`` predicate form.
        """

    async def close(self) -> None:
        """Release transport resources."""
        return None
