"""Social profile schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt


class SocialUser(BaseModel):
    """Social profile as served by the gateway."""

    id: str
    username: str
    display_name: str
    avatar_url: str | None = None
    bio: str | None = None
    interests: list[str] = Field(default_factory=list)
    followers_count: NonNegativeInt = 0
    following_count: NonNegativeInt = 0
    posts_count: NonNegativeInt = 0
    last_active: datetime | None = None
    is_verified: bool = False
    is_contributor: bool = False


class ScoredUser(SocialUser):
    """Suggestion candidate with its ranking details."""

    recommendation_score: float = 0.0
    mutual_friends_count: NonNegativeInt = 0
    is_following: bool = False


class SuggestionQuery(BaseModel):
    """Suggestion page request."""

    offset: NonNegativeInt = 0
    limit: int = Field(default=10, ge=1, le=100)


class SuggestionPage(BaseModel):
    """Suggestion page response."""

    users: list[ScoredUser] = Field(default_factory=list)
    has_more: bool = Field(default=False, alias="hasMore")

    model_config = ConfigDict(populate_by_name=True)


class UserIds(BaseModel):
    """Request body naming a set of users."""

    user_ids: list[str] = Field(default_factory=list, alias="userIds")

    model_config = ConfigDict(populate_by_name=True)


class PopularUsersQuery(BaseModel):
    """Popularity-ordered sample request."""

    exclude_ids: list[str] = Field(default_factory=list, alias="excludeIds")
    limit: int = Field(default=50, ge=1, le=500)

    model_config = ConfigDict(populate_by_name=True)


class FollowLink(BaseModel):
    """Follow edge as returned by graph queries."""

    follower_id: str = Field(alias="followerId")
    following_id: str = Field(alias="followingId")

    model_config = ConfigDict(populate_by_name=True)
