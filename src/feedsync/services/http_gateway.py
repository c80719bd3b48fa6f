"""HTTP gateway client.

Talks to the reference server's ``/api/v1`` routes with an httpx
``AsyncClient``. Transport failures and timeouts are mapped onto the
gateway exception hierarchy and flip the connectivity probe to offline
until the next successful response.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from feedsync.core.security import create_viewer_token
from feedsync.core.settings import settings
from feedsync.schemas import (
    ChangeBatch,
    ChangeEvent,
    Edge,
    FeedPage,
    FeedQuery,
    FollowLink,
    GroupPage,
    Hashtag,
    Post,
    PostCreate,
    RelationKind,
    RelationLink,
    RelationRows,
    SocialUser,
)
from feedsync.services.gateway import (
    ChangeStream,
    FeedGateway,
    GatewayError,
    GatewayTimeoutError,
    GatewayUnavailableError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

HTTP_NOT_FOUND = 404
HTTP_BAD_REQUEST = 400
HTTP_INTERNAL_SERVER_ERROR = 500


@dataclass(frozen=True)
class GatewayConfig:
    """Immutable configuration for the HTTP gateway."""

    base_url: str
    timeout_seconds: float
    shared_secret: str | None
    token_ttl_seconds: int
    algorithm: str
    poll_wait_seconds: float


def load_gateway_config() -> GatewayConfig:
    """Build configuration object from global settings."""

    return GatewayConfig(
        base_url=settings.gateway_base_url,
        timeout_seconds=float(settings.gateway_timeout_seconds),
        shared_secret=settings.gateway_shared_secret,
        token_ttl_seconds=settings.gateway_token_ttl_seconds,
        algorithm=settings.jwt_algorithm,
        poll_wait_seconds=float(settings.changes_poll_wait_seconds),
    )


class PollingChangeStream(ChangeStream):
    """Change stream driven by long-poll cursor pulls."""

    def __init__(
        self,
        gateway: HttpFeedGateway,
        table: str,
        filter: str | None,
        cursor: int,
    ) -> None:
        self._gateway = gateway
        self._table = table
        self._filter = filter
        self.cursor = cursor
        self._pending: deque[ChangeEvent] = deque()
        self._closed = False

    async def __anext__(self) -> ChangeEvent:
        while not self._pending:
            if self._closed:
                raise StopAsyncIteration
            batch = await self._gateway.pull_changes(
                self._table,
                after=self.cursor,
                filter=self._filter,
                wait=self._gateway.config.poll_wait_seconds,
            )
            self.cursor = max(self.cursor, batch.cursor)
            self._pending.extend(batch.events)
        return self._pending.popleft()

    async def close(self) -> None:
        self._closed = True
        self._pending.clear()


class HttpFeedGateway(FeedGateway):
    """HTTP client wrapper for the reference gateway server."""

    def __init__(
        self,
        config: GatewayConfig | None = None,
        *,
        viewer_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or load_gateway_config()
        self.viewer_id = viewer_id
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()
        self._online = True

    @property
    def is_online(self) -> bool:
        return self._online

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                # Long polls must outlive the server-side wait.
                timeout = self.config.timeout_seconds + self.config.poll_wait_seconds
                self._client = httpx.AsyncClient(
                    base_url=self.config.base_url,
                    timeout=httpx.Timeout(timeout),
                    transport=self._transport,
                )
        return self._client

    def _build_auth_headers(self, viewer_id: str | None) -> dict[str, str]:
        headers: dict[str, str] = {}
        if viewer_id is None:
            return headers
        if self.config.shared_secret:
            token = create_viewer_token(
                viewer_id,
                self.config.shared_secret,
                ttl_seconds=self.config.token_ttl_seconds,
                algorithm=self.config.algorithm,
            )
            headers["Authorization"] = f"Bearer {token}"
        else:
            headers["X-Viewer-Id"] = viewer_id
        return headers

    @dataclass
    class RequestParams:
        """Parameters for HTTP requests."""
        method: str
        path: str
        json_data: Any | None = None
        params: Mapping[str, Any] | None = None
        viewer_id: str | None = None

    async def _request(self, params: RequestParams) -> httpx.Response:
        client = await self._ensure_client()
        viewer_id = params.viewer_id if params.viewer_id is not None else self.viewer_id
        try:
            response = await client.request(
                params.method,
                params.path,
                json=params.json_data,
                params=params.params,
                headers=self._build_auth_headers(viewer_id),
            )
        except httpx.TimeoutException as exc:
            self._online = False
            raise GatewayTimeoutError(f"Gateway request timed out: {exc}") from exc
        except httpx.TransportError as exc:
            self._online = False
            raise GatewayUnavailableError(f"Gateway unreachable: {exc}") from exc
        except httpx.HTTPError as exc:
            raise GatewayError(f"Gateway request failed: {exc}") from exc

        self._online = True
        if response.status_code == HTTP_NOT_FOUND:
            raise NotFoundError(f"{params.method} {params.path} not found")
        if response.status_code >= HTTP_INTERNAL_SERVER_ERROR:
            raise GatewayError(f"Gateway responded with {response.status_code}")
        if response.status_code >= HTTP_BAD_REQUEST:
            raise GatewayError(
                f"Gateway rejected {params.method} {params.path} "
                f"({response.status_code}): {response.text}"
            )
        return response

    async def query_posts(self, query: FeedQuery, viewer_id: str | None) -> FeedPage:
        response = await self._request(
            self.RequestParams(
                method="POST",
                path="/api/v1/feed",
                json_data=query.model_dump(mode="json", by_alias=True),
                viewer_id=viewer_id,
            )
        )
        return FeedPage.model_validate(response.json())

    async def fetch_post(self, post_id: str) -> Post | None:
        try:
            response = await self._request(
                self.RequestParams(method="GET", path=f"/api/v1/posts/{post_id}")
            )
        except NotFoundError:
            return None
        return Post.model_validate(response.json())

    async def fetch_relation(
        self,
        kind: RelationKind,
        post_ids: list[str],
        viewer_id: str | None = None,
    ) -> list[RelationLink]:
        response = await self._request(
            self.RequestParams(
                method="POST",
                path=f"/api/v1/relations/{kind.value}",
                json_data={"postIds": post_ids},
                viewer_id=viewer_id,
            )
        )
        return RelationRows.model_validate(response.json()).links

    async def insert_edge(self, edge: Edge) -> None:
        await self._request(
            self.RequestParams(
                method="POST",
                path="/api/v1/edges",
                json_data=edge.model_dump(mode="json", by_alias=True),
                viewer_id=edge.subject_id,
            )
        )

    async def delete_edge(self, edge: Edge) -> None:
        await self._request(
            self.RequestParams(
                method="DELETE",
                path="/api/v1/edges",
                json_data=edge.model_dump(mode="json", by_alias=True),
                viewer_id=edge.subject_id,
            )
        )

    async def create_post(self, author_id: str, payload: PostCreate, hashtags: list[str]) -> Post:
        body = payload.model_dump(mode="json", by_alias=True)
        body["hashtags"] = hashtags
        response = await self._request(
            self.RequestParams(
                method="POST", path="/api/v1/posts", json_data=body, viewer_id=author_id
            )
        )
        return Post.model_validate(response.json())

    async def share_post(self, post_id: str) -> Post:
        response = await self._request(
            self.RequestParams(method="POST", path=f"/api/v1/posts/{post_id}/share")
        )
        return Post.model_validate(response.json())

    async def fetch_user(self, user_id: str) -> SocialUser | None:
        try:
            response = await self._request(
                self.RequestParams(method="GET", path=f"/api/v1/users/{user_id}")
            )
        except NotFoundError:
            return None
        return SocialUser.model_validate(response.json())

    async def fetch_users(self, user_ids: list[str]) -> list[SocialUser]:
        response = await self._request(
            self.RequestParams(
                method="POST", path="/api/v1/users/lookup", json_data={"userIds": user_ids}
            )
        )
        return [SocialUser.model_validate(item) for item in response.json()]

    async def list_following(self, user_id: str) -> list[str]:
        response = await self._request(
            self.RequestParams(method="GET", path=f"/api/v1/users/{user_id}/following")
        )
        return [str(item) for item in response.json()]

    async def list_following_of(self, user_ids: list[str]) -> list[FollowLink]:
        response = await self._request(
            self.RequestParams(
                method="POST", path="/api/v1/users/following", json_data={"userIds": user_ids}
            )
        )
        return [FollowLink.model_validate(item) for item in response.json()]

    async def popular_users(self, exclude_ids: list[str], limit: int) -> list[SocialUser]:
        response = await self._request(
            self.RequestParams(
                method="POST",
                path="/api/v1/users/popular",
                json_data={"excludeIds": exclude_ids, "limit": limit},
            )
        )
        return [SocialUser.model_validate(item) for item in response.json()]

    async def list_groups(self, viewer_id: str | None, offset: int, limit: int) -> GroupPage:
        response = await self._request(
            self.RequestParams(
                method="GET",
                path="/api/v1/groups",
                params={"offset": offset, "limit": limit},
                viewer_id=viewer_id,
            )
        )
        return GroupPage.model_validate(response.json())

    async def trending_hashtags(self, limit: int) -> list[Hashtag]:
        response = await self._request(
            self.RequestParams(
                method="GET", path="/api/v1/hashtags/trending", params={"limit": limit}
            )
        )
        return [Hashtag.model_validate(item) for item in response.json()]

    async def pull_changes(
        self,
        table: str,
        *,
        after: int | None = None,
        filter: str | None = None,
        wait: float = 0.0,
    ) -> ChangeBatch:
        """Pull change events after a cursor, long-polling up to ``wait`` seconds."""
        params: dict[str, Any] = {"table": table, "wait": wait}
        if after is not None:
            params["after"] = after
        if filter:
            params["filter"] = filter
        response = await self._request(
            self.RequestParams(method="GET", path="/api/v1/changes", params=params)
        )
        return ChangeBatch.model_validate(response.json())

    async def subscribe(self, table: str, filter: str | None = None) -> ChangeStream:
        head = await self.pull_changes(table, filter=filter)
        logger.debug("Subscribed to %s at cursor %s", table, head.cursor)
        return PollingChangeStream(self, table, filter, head.cursor)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
