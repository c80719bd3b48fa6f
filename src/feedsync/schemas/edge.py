"""Relation edge schemas."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from feedsync.schemas.post import Hashtag, Tag


class RelationType(str, Enum):
    """Edge predicates the engine reads or writes."""

    LIKE = "like"
    BOOKMARK = "bookmark"
    FOLLOW = "follow"
    GROUP_MEMBERSHIP = "group_membership"


class RelationKind(str, Enum):
    """Per-post side relations fetched in batches."""

    HASHTAGS = "hashtags"
    TAGS = "tags"
    LIKES = "likes"
    BOOKMARKS = "bookmarks"


class Edge(BaseModel):
    """(subject, predicate, object) triple.

    For likes and bookmarks the subject is a user and the object a post;
    for follows both are users; for memberships the object is a group.
    """

    relation: RelationType
    subject_id: str = Field(alias="subjectId")
    object_id: str = Field(alias="objectId")
    role: str | None = None
    status: str | None = None
    created_at: datetime | None = Field(default=None, alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)


class RelationLink(BaseModel):
    """One row of a batch relation query.

    Hashtag and tag rows carry the linked entity; like and bookmark rows
    carry the user that owns the edge.
    """

    post_id: str = Field(alias="postId")
    hashtag: Hashtag | None = None
    tag: Tag | None = None
    user_id: str | None = Field(default=None, alias="userId")

    model_config = ConfigDict(populate_by_name=True)


class RelationQuery(BaseModel):
    """Batch relation request body."""

    post_ids: list[str] = Field(default_factory=list, alias="postIds")

    model_config = ConfigDict(populate_by_name=True)


class RelationRows(BaseModel):
    """Batch relation response body."""

    links: list[RelationLink] = Field(default_factory=list)
