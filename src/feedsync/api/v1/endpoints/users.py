"""Profile and follow-graph endpoints used by the suggestion engine."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from feedsync.api.v1.dependencies import GatewayDep, ViewerDep
from feedsync.schemas import FollowLink, GroupPage, PopularUsersQuery, SocialUser, UserIds

router = APIRouter(tags=["users"])


@router.post("/users/lookup", response_model=list[SocialUser])
async def lookup_users(body: UserIds, gateway: GatewayDep) -> list[SocialUser]:
    return await gateway.fetch_users(body.user_ids)


@router.post("/users/following", response_model=list[FollowLink])
async def following_of(body: UserIds, gateway: GatewayDep) -> list[FollowLink]:
    """Return follow edges whose follower is one of the given users."""
    return await gateway.list_following_of(body.user_ids)


@router.post("/users/popular", response_model=list[SocialUser])
async def popular_users(body: PopularUsersQuery, gateway: GatewayDep) -> list[SocialUser]:
    return await gateway.popular_users(body.exclude_ids, body.limit)


@router.get("/users/{user_id}", response_model=SocialUser)
async def get_user(user_id: str, gateway: GatewayDep) -> SocialUser:
    user = await gateway.fetch_user(user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.get("/users/{user_id}/following", response_model=list[str])
async def list_following(user_id: str, gateway: GatewayDep) -> list[str]:
    return await gateway.list_following(user_id)


@router.get("/groups", response_model=GroupPage)
async def list_groups(
    gateway: GatewayDep,
    viewer_id: ViewerDep,
    offset: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
) -> GroupPage:
    """Return public groups plus the viewer's active memberships."""
    return await gateway.list_groups(viewer_id, offset, limit)
