"""Feed, suggestion and hashtag query endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Query

from feedsync.api.v1.dependencies import GatewayDep, RequiredViewerDep, ViewerDep
from feedsync.schemas import FeedPage, FeedQuery, Hashtag, SuggestionPage, SuggestionQuery
from feedsync.services.suggestions import SuggestionEngine

router = APIRouter(tags=["feed"])


@router.post("/feed", response_model=FeedPage)
async def query_feed(query: FeedQuery, gateway: GatewayDep, viewer_id: ViewerDep) -> FeedPage:
    """Return raw rows for one feed mode; relations are loaded separately."""
    return await gateway.query_posts(query, viewer_id)


@router.post("/suggestions", response_model=SuggestionPage)
async def suggest_users(
    query: SuggestionQuery,
    gateway: GatewayDep,
    viewer_id: RequiredViewerDep,
) -> SuggestionPage:
    """Return one page of ranked people-you-may-know candidates."""
    engine = SuggestionEngine(gateway, viewer_id=viewer_id)
    return await engine.page(query.offset, query.limit)


@router.get("/hashtags/trending", response_model=list[Hashtag])
async def trending_hashtags(
    gateway: GatewayDep,
    limit: int = Query(10, ge=1, le=100),
) -> list[Hashtag]:
    return await gateway.trending_hashtags(limit)
