"""Post-related Pydantic schemas."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt

from feedsync.db.time import utcnow

Privacy = Literal["public", "followers", "private"]
MediaType = Literal["image", "video", "document"]


class FeedName(str, Enum):
    """Logical feeds held in memory by the engine."""

    HOME = "home"
    TRENDING = "trending"
    OWN = "own"
    LIKED = "liked"
    BOOKMARKED = "bookmarked"


class FeedMode(str, Enum):
    """Query modes understood by the gateway's feed endpoint."""

    FEED = "feed"
    TRENDING = "trending"
    USER = "user"
    LIKED = "liked"
    BOOKMARKED = "bookmarked"


class SortBy(str, Enum):
    """Home feed ordering of the raw superset."""

    NEWEST = "newest"
    POPULAR = "popular"


class FilterBy(str, Enum):
    """Home feed filter; changing it resets every feed."""

    ALL = "all"
    FOLLOWING = "following"
    GROUPS = "groups"


FEED_MODES: dict[FeedName, FeedMode] = {
    FeedName.HOME: FeedMode.FEED,
    FeedName.TRENDING: FeedMode.TRENDING,
    FeedName.OWN: FeedMode.USER,
    FeedName.LIKED: FeedMode.LIKED,
    FeedName.BOOKMARKED: FeedMode.BOOKMARKED,
}

RANKED_FEEDS = frozenset({FeedName.HOME, FeedName.TRENDING})


class MediaAttachment(BaseModel):
    """Attachment shown with a post."""

    id: str
    type: MediaType
    url: str
    filename: str | None = None


class Hashtag(BaseModel):
    """Hashtag attached to one or more posts."""

    id: str
    name: str
    posts_count: NonNegativeInt = 0


class Tag(BaseModel):
    """Curated tag attached to one or more posts."""

    id: str
    name: str


class UserSummary(BaseModel):
    """Author details embedded in a post."""

    id: str
    username: str
    display_name: str
    avatar_url: str | None = None
    is_verified: bool = False
    is_contributor: bool = False


class GroupSummary(BaseModel):
    """Parent group details embedded in a post."""

    id: str
    name: str
    privacy: Literal["public", "private"] = "public"


class Post(BaseModel):
    """Post as held by the engine.

    ``is_liked`` and ``is_bookmarked`` are per-viewer and never stored; the
    relation loader or a realtime edge event for the viewer sets them.
    """

    id: str
    author_id: str
    author: UserSummary | None = None
    content: str
    privacy: Privacy = "public"
    group_id: str | None = None
    group: GroupSummary | None = None
    media: list[MediaAttachment] = Field(default_factory=list)

    likes_count: NonNegativeInt = 0
    comments_count: NonNegativeInt = 0
    shares_count: NonNegativeInt = 0
    bookmarks_count: NonNegativeInt = 0
    created_at: datetime

    is_liked: bool = False
    is_bookmarked: bool = False
    hashtags: list[Hashtag] = Field(default_factory=list)
    tags: list[Tag] = Field(default_factory=list)


class PostCreate(BaseModel):
    """Payload handed over by the compose collaborator."""

    content: str = Field(..., min_length=1, max_length=5000)
    privacy: Privacy = "public"
    group_id: str | None = Field(default=None, alias="groupId")

    model_config = ConfigDict(populate_by_name=True)


class PostCreateRequest(PostCreate):
    """Compose request; hashtags are extracted from the body when omitted."""

    hashtags: list[str] | None = None


class FeedQuery(BaseModel):
    """Paged feed request sent to the gateway."""

    mode: FeedMode
    offset: NonNegativeInt = 0
    limit: int = Field(default=20, ge=1, le=500)
    sort_by: SortBy = Field(default=SortBy.NEWEST, alias="sortBy")
    viewed_post_ids: list[str] = Field(default_factory=list, alias="viewedPostIds")

    model_config = ConfigDict(populate_by_name=True)


class FeedPage(BaseModel):
    """Raw rows returned by the gateway for one feed query."""

    posts: list[Post] = Field(default_factory=list)
    has_more: bool = Field(default=False, alias="hasMore")

    model_config = ConfigDict(populate_by_name=True)


class FeedSnapshot(BaseModel):
    """Last-known-good copy of a feed kept in the local cache."""

    posts: list[Post] = Field(default_factory=list)
    has_more: bool = False
    saved_at: datetime = Field(default_factory=utcnow)
