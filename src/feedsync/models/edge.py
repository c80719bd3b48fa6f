"""Per-user edges on posts.

The composite primary key prevents the same user liking or bookmarking a
post twice, mirroring the uniqueness of a vote.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from feedsync.db.session import Base
from feedsync.db.time import utcnow


class Like(Base):
    """A user liking a post."""

    __tablename__ = "social_likes"
    __table_args__ = (Index("ix_social_likes_post_id", "post_id"),)

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("social_users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    post_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("social_posts.id", ondelete="CASCADE"),
        primary_key=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class Bookmark(Base):
    """A user bookmarking a post."""

    __tablename__ = "social_bookmarks"
    __table_args__ = (Index("ix_social_bookmarks_post_id", "post_id"),)

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("social_users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    post_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("social_posts.id", ondelete="CASCADE"),
        primary_key=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
