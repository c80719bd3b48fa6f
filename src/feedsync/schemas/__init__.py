"""Pydantic schemas for the feedsync wire and in-memory types."""

from .change import ChangeBatch, ChangeEvent, ChangeType
from .edge import Edge, RelationKind, RelationLink, RelationQuery, RelationRows, RelationType
from .group import Group, GroupPage
from .post import (
    FEED_MODES,
    RANKED_FEEDS,
    FeedMode,
    FeedName,
    FeedPage,
    FeedQuery,
    FeedSnapshot,
    FilterBy,
    GroupSummary,
    Hashtag,
    MediaAttachment,
    Post,
    PostCreate,
    PostCreateRequest,
    SortBy,
    Tag,
    UserSummary,
)
from .user import (
    FollowLink,
    PopularUsersQuery,
    ScoredUser,
    SocialUser,
    SuggestionPage,
    SuggestionQuery,
    UserIds,
)

__all__ = [
    "ChangeBatch", "ChangeEvent", "ChangeType",
    "Edge", "RelationKind", "RelationLink", "RelationQuery", "RelationRows", "RelationType",
    "Group", "GroupPage",
    "FEED_MODES", "RANKED_FEEDS", "FeedMode", "FeedName", "FeedPage", "FeedQuery",
    "FeedSnapshot", "FilterBy", "GroupSummary", "Hashtag", "MediaAttachment", "Post",
    "PostCreate", "PostCreateRequest", "SortBy", "Tag", "UserSummary",
    "FollowLink", "PopularUsersQuery", "ScoredUser", "SocialUser", "SuggestionPage",
    "SuggestionQuery", "UserIds",
]
