"""SQLAlchemy models for groups and group membership."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from feedsync.db.session import Base
from feedsync.db.time import utcnow
from feedsync.models.user import new_id


class Group(Base):
    """Study or interest group that posts can belong to."""

    __tablename__ = "social_groups"
    __table_args__ = (
        CheckConstraint("privacy IN ('public', 'private')", name="ck_social_groups_privacy"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    privacy: Mapped[str] = mapped_column(String(16), nullable=False, default="public")
    created_by: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("social_users.id", ondelete="CASCADE"),
        nullable=False,
    )
    members_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class GroupMember(Base):
    """Membership edge (user, group, role, status)."""

    __tablename__ = "social_group_members"

    group_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("social_groups.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("social_users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    # member | moderator | admin
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="member")
    # active | pending | banned
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class Notification(Base):
    """Notification addressed to a single user."""

    __tablename__ = "social_notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("social_users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
