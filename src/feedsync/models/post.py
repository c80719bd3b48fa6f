"""SQLAlchemy models for posts and the relations hanging off them."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from feedsync.db.session import Base
from feedsync.db.time import utcnow
from feedsync.models.user import new_id


class Post(Base):
    """Primary content entity produced by users."""

    __tablename__ = "social_posts"
    __table_args__ = (
        CheckConstraint(
            "privacy IN ('public', 'followers', 'private')",
            name="ck_social_posts_privacy",
        ),
        Index("ix_social_posts_created_at", "created_at"),
        Index("ix_social_posts_author_id", "author_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    author_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("social_users.id", ondelete="CASCADE"),
        nullable=False,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    privacy: Mapped[str] = mapped_column(String(16), nullable=False, default="public")
    group_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("social_groups.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Denormalized engagement counters; edge writes keep them in step.
    likes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    comments_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shares_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bookmarks_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class Media(Base):
    """Attachment belonging to a post, kept in insertion order."""

    __tablename__ = "social_media"
    __table_args__ = (
        CheckConstraint("type IN ('image', 'video', 'document')", name="ck_social_media_type"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    post_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("social_posts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    filename: Mapped[str | None] = mapped_column(Text, nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class Hashtag(Base):
    """Normalized hashtag shared across posts."""

    __tablename__ = "social_hashtags"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    posts_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class PostHashtag(Base):
    """Many-to-many link between posts and hashtags."""

    __tablename__ = "social_post_hashtags"

    post_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("social_posts.id", ondelete="CASCADE"),
        primary_key=True,
    )
    hashtag_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("social_hashtags.id", ondelete="CASCADE"),
        primary_key=True,
    )


class Tag(Base):
    """Curated topic tag."""

    __tablename__ = "social_tags"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)


class PostTag(Base):
    """Many-to-many link between posts and tags."""

    __tablename__ = "social_post_tags"

    post_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("social_posts.id", ondelete="CASCADE"),
        primary_key=True,
    )
    tag_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("social_tags.id", ondelete="CASCADE"),
        primary_key=True,
    )


class Comment(Base):
    """Comment on a post. Only its existence matters to the feed."""

    __tablename__ = "social_comments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    post_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("social_posts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("social_users.id", ondelete="CASCADE"),
        nullable=False,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
