# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from datetime import datetime, timedelta
from itertools import count
from typing import Any
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("OFFLINE_DATABASE_URL", "sqlite://")

from feedsync.api.v1.dependencies import get_change_feed, get_gateway
from feedsync.db.session import Base
from feedsync.db.time import utcnow
from feedsync.main import app as fastapi_app
from feedsync.models import Post as PostRow
from feedsync.models import SocialUser as SocialUserRow
from feedsync.schemas import FeedPage, GroupPage, Post
from feedsync.services.cache import OfflineStore, SnapshotCache
from feedsync.services.changefeed import ChangeFeed
from feedsync.services.gateway import FeedGateway
from feedsync.services.notifier import Notifier
from feedsync.services.sql_gateway import SqlFeedGateway

TEST_DB_URL = "sqlite://"
VIEWER_ID = "viewer"

_USERNAME_COUNTER = count(1)


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> Iterator[sessionmaker[Session]]:
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    try:
        yield factory
    finally:
        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def change_feed() -> ChangeFeed:
    return ChangeFeed(max_events=100)


@pytest.fixture()
def sql_gateway(
    session_factory: sessionmaker[Session], change_feed: ChangeFeed
) -> SqlFeedGateway:
    return SqlFeedGateway(session_factory, change_feed)


@pytest.fixture()
def app(sql_gateway: SqlFeedGateway, change_feed: ChangeFeed) -> Iterator[FastAPI]:
    fastapi_app.dependency_overrides[get_gateway] = lambda: sql_gateway
    fastapi_app.dependency_overrides[get_change_feed] = lambda: change_feed
    try:
        yield fastapi_app
    finally:
        fastapi_app.dependency_overrides.clear()


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., SocialUserRow]:
    """Return a factory persisting social profiles."""

    def _make(user_id: str, **fields: Any) -> SocialUserRow:
        n = next(_USERNAME_COUNTER)
        user = SocialUserRow(
            id=user_id,
            username=fields.pop("username", f"{user_id}-{n}"),
            display_name=fields.pop("display_name", user_id.title()),
            **fields,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture()
def make_post_row(db_session: Session) -> Callable[..., PostRow]:
    """Return a factory persisting posts with an explicit creation time."""

    def _make(post_id: str, author_id: str, **fields: Any) -> PostRow:
        age = fields.pop("age", timedelta(minutes=1))
        post = PostRow(
            id=post_id,
            author_id=author_id,
            content=fields.pop("content", f"post {post_id}"),
            created_at=fields.pop("created_at", utcnow() - age),
            **fields,
        )
        db_session.add(post)
        db_session.commit()
        return post

    return _make


def build_post(
    post_id: str,
    *,
    author_id: str = "author",
    likes: int = 0,
    comments: int = 0,
    shares: int = 0,
    created_at: datetime | None = None,
    **fields: Any,
) -> Post:
    return Post(
        id=post_id,
        author_id=author_id,
        content=fields.pop("content", f"post {post_id}"),
        likes_count=likes,
        comments_count=comments,
        shares_count=shares,
        created_at=created_at or utcnow() - timedelta(hours=1),
        **fields,
    )


@pytest.fixture()
def post_factory() -> Callable[..., Post]:
    """Return a builder for in-memory post schemas."""
    return build_post


@pytest.fixture()
def mock_gateway() -> AsyncMock:
    gateway = AsyncMock(spec=FeedGateway)
    gateway.is_online = True
    gateway.query_posts.return_value = FeedPage(posts=[], has_more=False)
    gateway.fetch_relation.return_value = []
    gateway.fetch_post.return_value = None
    gateway.list_groups.return_value = GroupPage()
    gateway.trending_hashtags.return_value = []
    return gateway


@pytest.fixture()
def snapshot_cache() -> SnapshotCache:
    return SnapshotCache()


@pytest.fixture()
def offline_store() -> Iterator[OfflineStore]:
    store = OfflineStore(TEST_DB_URL)
    try:
        yield store
    finally:
        store.dispose()


@pytest.fixture()
def notifier() -> Notifier:
    return Notifier()
