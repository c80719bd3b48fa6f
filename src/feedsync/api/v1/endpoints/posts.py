"""Post endpoints: single fetch, compose, share and batch relations."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from feedsync.api.v1.dependencies import GatewayDep, RequiredViewerDep, ViewerDep
from feedsync.schemas import Post, PostCreateRequest, RelationKind, RelationQuery, RelationRows
from feedsync.services.text import extract_hashtags

router = APIRouter(tags=["posts"])


@router.get("/posts/{post_id}", response_model=Post)
async def get_post(post_id: str, gateway: GatewayDep) -> Post:
    post = await gateway.fetch_post(post_id)
    if post is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    return post


@router.post("/posts", response_model=Post, status_code=status.HTTP_201_CREATED)
async def create_post(
    payload: PostCreateRequest,
    gateway: GatewayDep,
    viewer_id: RequiredViewerDep,
) -> Post:
    """Publish a post authored by the viewer."""
    hashtags = payload.hashtags
    if hashtags is None:
        hashtags = extract_hashtags(payload.content)
    else:
        hashtags = list(dict.fromkeys(tag.lower().lstrip("#") for tag in hashtags if tag))
    return await gateway.create_post(viewer_id, payload, hashtags)


@router.post("/posts/{post_id}/share", response_model=Post)
async def share_post(post_id: str, gateway: GatewayDep) -> Post:
    return await gateway.share_post(post_id)


@router.post("/relations/{relation}", response_model=RelationRows)
async def fetch_relations(
    relation: RelationKind,
    query: RelationQuery,
    gateway: GatewayDep,
    viewer_id: ViewerDep,
) -> RelationRows:
    """Return one relation's edges for a batch of posts.

    Like and bookmark batches are scoped to the requesting viewer.
    """
    if not query.post_ids:
        return RelationRows()
    links = await gateway.fetch_relation(relation, query.post_ids, viewer_id)
    return RelationRows(links=links)
