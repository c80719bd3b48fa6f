"""Data access helpers for profiles, the follow graph and groups."""
from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from feedsync.db.time import as_utc
from feedsync.models import Follow, Group, GroupMember, SocialUser
from feedsync.schemas import FollowLink, GroupPage
from feedsync.schemas import Group as GroupSchema
from feedsync.schemas import SocialUser as SocialUserSchema

__all__ = ["GroupRepository", "UserRepository"]


def _user_schema(user: SocialUser) -> SocialUserSchema:
    return SocialUserSchema(
        id=user.id,
        username=user.username,
        display_name=user.display_name,
        avatar_url=user.avatar_url,
        bio=user.bio,
        interests=list(user.interests or []),
        followers_count=user.followers_count,
        following_count=user.following_count,
        posts_count=user.posts_count,
        last_active=as_utc(user.last_active) if user.last_active else None,
        is_verified=user.is_verified,
        is_contributor=user.is_contributor,
    )


class UserRepository:
    """Read access to social profiles and follow edges."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: str) -> SocialUserSchema | None:
        user = self.session.get(SocialUser, user_id)
        return _user_schema(user) if user else None

    def get_many(self, user_ids: Sequence[str]) -> list[SocialUserSchema]:
        if not user_ids:
            return []
        users = self.session.scalars(select(SocialUser).where(SocialUser.id.in_(user_ids)))
        by_id = {user.id: user for user in users}
        return [_user_schema(by_id[uid]) for uid in user_ids if uid in by_id]

    def following_ids(self, user_id: str) -> list[str]:
        """Return who ``user_id`` follows, most recent first."""
        return list(
            self.session.scalars(
                select(Follow.following_id)
                .where(Follow.follower_id == user_id)
                .order_by(desc(Follow.created_at), Follow.following_id)
            )
        )

    def following_of(self, user_ids: Sequence[str]) -> list[FollowLink]:
        """Return every follow edge whose follower is in ``user_ids``."""
        if not user_ids:
            return []
        rows = self.session.execute(
            select(Follow.follower_id, Follow.following_id).where(
                Follow.follower_id.in_(user_ids)
            )
        )
        return [
            FollowLink(follower_id=follower_id, following_id=following_id)
            for follower_id, following_id in rows
        ]

    def popular(self, exclude_ids: Sequence[str], limit: int) -> list[SocialUserSchema]:
        stmt = select(SocialUser)
        if exclude_ids:
            stmt = stmt.where(SocialUser.id.not_in(exclude_ids))
        stmt = stmt.order_by(desc(SocialUser.followers_count), SocialUser.username).limit(limit)
        return [_user_schema(user) for user in self.session.scalars(stmt)]


class GroupRepository:
    """Read access to the group directory."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def page(self, viewer_id: str | None, offset: int, limit: int) -> GroupPage:
        """Return public groups for one page and the viewer's active memberships."""
        rows = list(
            self.session.scalars(
                select(Group)
                .where(Group.privacy == "public")
                .order_by(desc(Group.created_at), Group.id)
                .offset(offset)
                .limit(limit + 1)
            )
        )
        public = [self._schema(group) for group in rows[:limit]]

        memberships: list[GroupSchema] = []
        if viewer_id is not None:
            joined = self.session.execute(
                select(Group, GroupMember)
                .join(GroupMember, GroupMember.group_id == Group.id)
                .where(GroupMember.user_id == viewer_id, GroupMember.status == "active")
                .order_by(desc(Group.created_at))
            )
            memberships = [self._schema(group, member) for group, member in joined]

        return GroupPage(public=public, memberships=memberships, has_more=len(rows) > limit)

    @staticmethod
    def _schema(group: Group, member: GroupMember | None = None) -> GroupSchema:
        return GroupSchema(
            id=group.id,
            name=group.name,
            description=group.description,
            privacy=group.privacy,
            created_by=group.created_by,
            members_count=group.members_count,
            created_at=as_utc(group.created_at),
            is_member=member is not None,
            member_role=member.role if member else None,
            member_status=member.status if member else None,
        )
