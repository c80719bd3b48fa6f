"""Group schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt


class Group(BaseModel):
    """Group with the viewer's own membership, if any."""

    id: str
    name: str
    description: str | None = None
    privacy: Literal["public", "private"] = "public"
    created_by: str
    members_count: NonNegativeInt = 0
    created_at: datetime
    is_member: bool = False
    member_role: str | None = None
    member_status: str | None = None


class GroupPage(BaseModel):
    """Public groups plus the viewer's memberships for one page."""

    public: list[Group] = Field(default_factory=list)
    memberships: list[Group] = Field(default_factory=list)
    has_more: bool = Field(default=False, alias="hasMore")

    model_config = ConfigDict(populate_by_name=True)
