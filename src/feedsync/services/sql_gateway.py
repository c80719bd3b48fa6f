"""SQLAlchemy-backed gateway.

Blocking database work runs in worker threads; change events are published
back on the event loop after each commit so subscribers see them in commit
order.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from feedsync.db.time import as_utc
from feedsync.repositories.edge_repo import EdgeRepository
from feedsync.repositories.post_repo import PostRepository
from feedsync.repositories.user_repo import GroupRepository, UserRepository
from feedsync.schemas import (
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
    RelationType,
    SocialUser,
)
from feedsync.services.changefeed import ChangeFeed
from feedsync.services.gateway import (
    TABLE_BOOKMARKS,
    TABLE_FOLLOWS,
    TABLE_GROUP_MEMBERS,
    TABLE_LIKES,
    TABLE_POSTS,
    ChangeStream,
    FeedGateway,
    GatewayError,
    GatewayUnavailableError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

EDGE_TABLES: dict[RelationType, str] = {
    RelationType.LIKE: TABLE_LIKES,
    RelationType.BOOKMARK: TABLE_BOOKMARKS,
    RelationType.FOLLOW: TABLE_FOLLOWS,
    RelationType.GROUP_MEMBERSHIP: TABLE_GROUP_MEMBERS,
}


def _post_row(post: Post) -> dict[str, object]:
    return {
        "id": post.id,
        "author_id": post.author_id,
        "group_id": post.group_id,
        "privacy": post.privacy,
        "likes_count": post.likes_count,
        "comments_count": post.comments_count,
        "shares_count": post.shares_count,
        "bookmarks_count": post.bookmarks_count,
        "created_at": as_utc(post.created_at).isoformat(),
    }


class SqlFeedGateway(FeedGateway):
    """Gateway over a local relational store."""

    def __init__(
        self,
        session_factory: sessionmaker[Session] | Callable[[], Session],
        changes: ChangeFeed | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.changes = changes or ChangeFeed()

    def _run(self, work: Callable[[Session], T]) -> T:
        session = self._session_factory()
        try:
            result = work(session)
            session.commit()
            return result
        except SQLAlchemyError:
            session.rollback()
            raise
        finally:
            session.close()

    async def _call(self, work: Callable[[Session], T]) -> T:
        try:
            return await asyncio.to_thread(self._run, work)
        except LookupError as exc:
            raise NotFoundError(str(exc)) from exc
        except OperationalError as exc:
            logger.warning("Relational store unavailable: %s", exc)
            raise GatewayUnavailableError(f"Store unavailable: {exc}") from exc
        except SQLAlchemyError as exc:
            logger.error("Relational store error: %s", exc, exc_info=True)
            raise GatewayError(f"Store error: {exc}") from exc

    async def query_posts(self, query: FeedQuery, viewer_id: str | None) -> FeedPage:
        return await self._call(lambda s: PostRepository(s).query_feed(query, viewer_id))

    async def fetch_post(self, post_id: str) -> Post | None:
        return await self._call(lambda s: PostRepository(s).get_schema(post_id))

    async def fetch_relation(
        self,
        kind: RelationKind,
        post_ids: list[str],
        viewer_id: str | None = None,
    ) -> list[RelationLink]:
        return await self._call(lambda s: PostRepository(s).relation_links(kind, post_ids, viewer_id))

    async def insert_edge(self, edge: Edge) -> None:
        row = await self._call(lambda s: EdgeRepository(s).insert(edge))
        if row is not None:
            self.changes.publish(EDGE_TABLES[edge.relation], "insert", new=row)

    async def delete_edge(self, edge: Edge) -> None:
        row = await self._call(lambda s: EdgeRepository(s).delete(edge))
        if row is not None:
            self.changes.publish(EDGE_TABLES[edge.relation], "delete", old=row)

    async def create_post(self, author_id: str, payload: PostCreate, hashtags: list[str]) -> Post:
        def work(session: Session) -> Post:
            repo = PostRepository(session)
            created = repo.create(author_id, payload, hashtags)
            schema = repo.get_schema(created.id)
            if schema is None:
                raise LookupError(f"post {created.id} not found")
            return schema

        post = await self._call(work)
        self.changes.publish(TABLE_POSTS, "insert", new=_post_row(post))
        return post

    async def share_post(self, post_id: str) -> Post:
        def work(session: Session) -> Post:
            repo = PostRepository(session)
            if repo.increment_shares(post_id) is None:
                raise LookupError(f"post {post_id} not found")
            schema = repo.get_schema(post_id)
            if schema is None:
                raise LookupError(f"post {post_id} not found")
            return schema

        post = await self._call(work)
        self.changes.publish(TABLE_POSTS, "update", new=_post_row(post), old={"id": post.id})
        return post

    async def fetch_user(self, user_id: str) -> SocialUser | None:
        return await self._call(lambda s: UserRepository(s).get(user_id))

    async def fetch_users(self, user_ids: list[str]) -> list[SocialUser]:
        return await self._call(lambda s: UserRepository(s).get_many(user_ids))

    async def list_following(self, user_id: str) -> list[str]:
        return await self._call(lambda s: UserRepository(s).following_ids(user_id))

    async def list_following_of(self, user_ids: list[str]) -> list[FollowLink]:
        return await self._call(lambda s: UserRepository(s).following_of(user_ids))

    async def popular_users(self, exclude_ids: list[str], limit: int) -> list[SocialUser]:
        return await self._call(lambda s: UserRepository(s).popular(exclude_ids, limit))

    async def list_groups(self, viewer_id: str | None, offset: int, limit: int) -> GroupPage:
        return await self._call(lambda s: GroupRepository(s).page(viewer_id, offset, limit))

    async def trending_hashtags(self, limit: int) -> list[Hashtag]:
        return await self._call(lambda s: PostRepository(s).trending_hashtags(limit))

    async def subscribe(self, table: str, filter: str | None = None) -> ChangeStream:
        try:
            return self.changes.subscribe(table, filter)
        except ValueError as exc:
            raise GatewayError(str(exc)) from exc
