"""Data access helpers for relation edges and their counters."""
from __future__ import annotations

from typing import Any

from sqlalchemy import case, update
from sqlalchemy.orm import Session

from feedsync.db.time import utcnow
from feedsync.models import Bookmark, Follow, Group, GroupMember, Like, Post, SocialUser
from feedsync.schemas import Edge, RelationType

__all__ = ["EdgeRepository"]


def _bump(column: Any, delta: int) -> Any:
    """Return ``column + delta`` floored at zero."""
    return case((column + delta < 0, 0), else_=column + delta)


class EdgeRepository:
    """Writes edges and keeps the denormalized counters they drive in step."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def insert(self, edge: Edge) -> dict[str, Any] | None:
        """Create ``edge``; return its row, or None if it already existed.

        Raises:
            LookupError: If the edge's object does not exist.
        """
        row = self._row(edge)
        target = {
            RelationType.LIKE: Post,
            RelationType.BOOKMARK: Post,
            RelationType.FOLLOW: SocialUser,
            RelationType.GROUP_MEMBERSHIP: Group,
        }[edge.relation]
        if self.session.get(target, edge.object_id) is None:
            raise LookupError(f"{edge.relation.value} target {edge.object_id} not found")
        if self._find(edge) is not None:
            return None
        if edge.relation == RelationType.GROUP_MEMBERSHIP:
            row["role"] = edge.role or "member"
            row["status"] = edge.status or "active"
            self.session.add(GroupMember(**row, joined_at=edge.created_at or utcnow()))
        else:
            model = self._model(edge.relation)
            self.session.add(model(**row, created_at=edge.created_at or utcnow()))
        self._adjust(edge, +1)
        self.session.flush()
        return row

    def delete(self, edge: Edge) -> dict[str, Any] | None:
        """Remove ``edge``; return its former row, or None if it was absent."""
        existing = self._find(edge)
        if existing is None:
            return None
        row = self._row(edge)
        if isinstance(existing, GroupMember):
            row["role"] = existing.role
            row["status"] = existing.status
        self.session.delete(existing)
        self._adjust(edge, -1)
        self.session.flush()
        return row

    @staticmethod
    def _model(relation: RelationType) -> Any:
        return {
            RelationType.LIKE: Like,
            RelationType.BOOKMARK: Bookmark,
            RelationType.FOLLOW: Follow,
            RelationType.GROUP_MEMBERSHIP: GroupMember,
        }[relation]

    @staticmethod
    def _row(edge: Edge) -> dict[str, Any]:
        if edge.relation in (RelationType.LIKE, RelationType.BOOKMARK):
            return {"user_id": edge.subject_id, "post_id": edge.object_id}
        if edge.relation == RelationType.FOLLOW:
            if edge.subject_id == edge.object_id:
                raise ValueError("Users cannot follow themselves")
            return {"follower_id": edge.subject_id, "following_id": edge.object_id}
        return {"user_id": edge.subject_id, "group_id": edge.object_id}

    def _find(self, edge: Edge) -> Any:
        row = self._row(edge)
        model = self._model(edge.relation)
        if edge.relation == RelationType.FOLLOW:
            return self.session.get(model, (row["follower_id"], row["following_id"]))
        if edge.relation == RelationType.GROUP_MEMBERSHIP:
            return self.session.get(model, (row["group_id"], row["user_id"]))
        return self.session.get(model, (row["user_id"], row["post_id"]))

    def _adjust(self, edge: Edge, delta: int) -> None:
        if edge.relation == RelationType.LIKE:
            self.session.execute(
                update(Post)
                .where(Post.id == edge.object_id)
                .values(likes_count=_bump(Post.likes_count, delta))
            )
        elif edge.relation == RelationType.BOOKMARK:
            self.session.execute(
                update(Post)
                .where(Post.id == edge.object_id)
                .values(bookmarks_count=_bump(Post.bookmarks_count, delta))
            )
        elif edge.relation == RelationType.FOLLOW:
            self.session.execute(
                update(SocialUser)
                .where(SocialUser.id == edge.subject_id)
                .values(following_count=_bump(SocialUser.following_count, delta))
            )
            self.session.execute(
                update(SocialUser)
                .where(SocialUser.id == edge.object_id)
                .values(followers_count=_bump(SocialUser.followers_count, delta))
            )
        else:
            self.session.execute(
                update(Group)
                .where(Group.id == edge.object_id)
                .values(members_count=_bump(Group.members_count, delta))
            )
