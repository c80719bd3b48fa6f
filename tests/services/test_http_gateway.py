import json

import httpx
import pytest

from feedsync.core.security import decode_viewer_token
from feedsync.schemas import Edge, FeedMode, FeedQuery, RelationKind, RelationType
from feedsync.services.gateway import GatewayError, GatewayTimeoutError, GatewayUnavailableError
from feedsync.services.http_gateway import GatewayConfig, HttpFeedGateway

POST_JSON = {
    "id": "p1",
    "author_id": "author",
    "content": "hello",
    "likes_count": 2,
    "created_at": "2026-01-01T12:00:00+00:00",
}


def _config(**overrides):
    values = {
        "base_url": "http://gateway.test",
        "timeout_seconds": 1.0,
        "shared_secret": None,
        "token_ttl_seconds": 60,
        "algorithm": "HS256",
        "poll_wait_seconds": 0.0,
    }
    values.update(overrides)
    return GatewayConfig(**values)


def _gateway(handler, **overrides):
    return HttpFeedGateway(
        _config(**overrides), viewer_id="viewer", transport=httpx.MockTransport(handler)
    )


@pytest.mark.asyncio
async def test_query_posts_sends_camel_case_body() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["viewer"] = request.headers.get("X-Viewer-Id")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"posts": [POST_JSON], "hasMore": True})

    gateway = _gateway(handler)
    page = await gateway.query_posts(FeedQuery(mode=FeedMode.FEED, limit=60), "viewer")
    await gateway.close()

    assert seen["path"] == "/api/v1/feed"
    assert seen["viewer"] == "viewer"
    assert seen["body"]["sortBy"] == "newest"
    assert seen["body"]["limit"] == 60
    assert [p.id for p in page.posts] == ["p1"]
    assert page.has_more is True


@pytest.mark.asyncio
async def test_shared_secret_sends_signed_token() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("Authorization")
        seen["viewer"] = request.headers.get("X-Viewer-Id")
        return httpx.Response(200, json={"links": []})

    gateway = _gateway(handler, shared_secret="s3cret")
    await gateway.fetch_relation(RelationKind.LIKES, ["p1"], "viewer")
    await gateway.close()

    scheme, token = seen["auth"].split(" ", 1)
    assert scheme == "Bearer"
    assert decode_viewer_token(token, "s3cret") == "viewer"
    assert seen["viewer"] is None


@pytest.mark.asyncio
async def test_missing_post_maps_to_none() -> None:
    gateway = _gateway(lambda request: httpx.Response(404, json={"detail": "Post not found"}))
    assert await gateway.fetch_post("missing") is None
    await gateway.close()


@pytest.mark.asyncio
async def test_server_error_raises_gateway_error_and_stays_online() -> None:
    gateway = _gateway(lambda request: httpx.Response(500, json={"detail": "boom"}))
    with pytest.raises(GatewayError):
        await gateway.trending_hashtags(10)
    assert gateway.is_online is True
    await gateway.close()


@pytest.mark.asyncio
async def test_transport_failure_marks_gateway_offline() -> None:
    state = {"fail": True}

    def handler(request: httpx.Request) -> httpx.Response:
        if state["fail"]:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json=[])

    gateway = _gateway(handler)
    with pytest.raises(GatewayUnavailableError):
        await gateway.trending_hashtags(10)
    assert gateway.is_online is False

    state["fail"] = False
    assert await gateway.trending_hashtags(10) == []
    assert gateway.is_online is True
    await gateway.close()


@pytest.mark.asyncio
async def test_timeout_maps_to_timeout_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    gateway = _gateway(handler)
    with pytest.raises(GatewayTimeoutError):
        await gateway.fetch_user("u1")
    assert gateway.is_online is False
    await gateway.close()


@pytest.mark.asyncio
async def test_delete_edge_sends_body_as_subject() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["viewer"] = request.headers.get("X-Viewer-Id")
        seen["body"] = json.loads(request.content)
        return httpx.Response(204)

    gateway = _gateway(handler)
    await gateway.delete_edge(
        Edge(relation=RelationType.BOOKMARK, subject_id="someone", object_id="p1")
    )
    await gateway.close()

    assert seen["method"] == "DELETE"
    assert seen["path"] == "/api/v1/edges"
    assert seen["viewer"] == "someone"
    assert seen["body"]["objectId"] == "p1"
    assert seen["body"]["relation"] == "bookmark"


@pytest.mark.asyncio
async def test_polling_stream_follows_cursor() -> None:
    requests = []
    empty_polls = {"left": 1}

    def handler(request: httpx.Request) -> httpx.Response:
        params = dict(request.url.params)
        requests.append(params)
        if "after" not in params:
            return httpx.Response(200, json={"events": [], "cursor": 5})
        after = int(params["after"])
        if empty_polls["left"]:
            empty_polls["left"] -= 1
            return httpx.Response(200, json={"events": [], "cursor": after})
        event = {
            "table": "social_posts",
            "event_type": "insert",
            "new": {"id": f"p{after + 1}"},
            "sequence": after + 1,
        }
        return httpx.Response(200, json={"events": [event], "cursor": after + 1})

    gateway = _gateway(handler)
    stream = await gateway.subscribe("social_posts", "author_id=eq.a")
    first = await stream.__anext__()
    second = await stream.__anext__()
    await stream.close()
    await gateway.close()

    assert requests[0]["table"] == "social_posts"
    assert requests[0]["filter"] == "author_id=eq.a"
    assert "after" not in requests[0]
    assert [r["after"] for r in requests[1:]] == ["5", "5", "6"]
    assert [first.sequence, second.sequence] == [6, 7]
    assert stream.cursor == 7
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()
