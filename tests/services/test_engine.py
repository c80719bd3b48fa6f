import random
from unittest.mock import AsyncMock, MagicMock

import pytest

from feedsync.db.time import utcnow
from feedsync.schemas import (
    ChangeEvent,
    FeedMode,
    FeedName,
    FeedPage,
    FilterBy,
    Group,
    GroupPage,
    Hashtag,
    RelationType,
    SortBy,
)
from feedsync.services.engine import FeedEngine
from feedsync.services.gateway import GatewayError


@pytest.fixture
def channels():
    return []


@pytest.fixture
def channel_factory(channels):
    def _factory(gateway, table, handler, *, filter=None):
        channel = MagicMock()
        channel.table = table
        channel.exhausted = False
        channel.close = AsyncMock()
        channels.append(channel)
        return channel

    return _factory


@pytest.fixture
def gateway(mock_gateway, post_factory):
    mock_gateway.query_posts.return_value = FeedPage(
        posts=[post_factory("p1", likes=2), post_factory("p2", author_id="viewer")],
        has_more=False,
    )
    mock_gateway.fetch_user.return_value = None
    mock_gateway.list_following.return_value = []
    mock_gateway.list_following_of.return_value = []
    mock_gateway.fetch_users.return_value = []
    mock_gateway.popular_users.return_value = []
    return mock_gateway


@pytest.fixture
def engine(gateway, snapshot_cache, offline_store, notifier, channel_factory):
    return FeedEngine(
        gateway,
        viewer_id="viewer",
        cache=snapshot_cache,
        offline=offline_store,
        notifier=notifier,
        channel_factory=channel_factory,
        rng=random.Random(3),
    )


@pytest.mark.asyncio
async def test_start_loads_discovery_feeds_and_subscribes(engine, gateway, channels) -> None:
    await engine.start()

    modes = [call.args[0].mode.value for call in gateway.query_posts.await_args_list]
    assert modes == ["feed", "trending"]
    assert "p1" in [p.id for p in engine.posts(FeedName.HOME)]
    assert [p.id for p in engine.posts(FeedName.TRENDING)] == ["p1"]
    assert len(channels) == 6
    gateway.fetch_user.assert_awaited_once_with("viewer")


@pytest.mark.asyncio
async def test_start_twice_is_noop(engine, gateway) -> None:
    await engine.start()
    await engine.start()
    assert gateway.query_posts.await_count == 2


@pytest.mark.asyncio
async def test_toggle_like_is_optimistic(engine, gateway) -> None:
    await engine.start()

    assert await engine.toggle_like("p1") is True

    post = engine.store.get("p1")
    assert post.likes_count == 3
    assert post.is_liked is True
    assert engine.store.ids(FeedName.LIKED) == ["p1"]
    edge = gateway.insert_edge.await_args.args[0]
    assert (edge.relation, edge.subject_id, edge.object_id) == (RelationType.LIKE, "viewer", "p1")


@pytest.mark.asyncio
async def test_toggle_like_echo_is_applied_once(engine) -> None:
    await engine.start()
    await engine.toggle_like("p1")

    await engine.synchronizer.handle_like(
        ChangeEvent(
            table="social_likes", event_type="insert", new={"user_id": "viewer", "post_id": "p1"}
        )
    )

    assert engine.store.get("p1").likes_count == 3


@pytest.mark.asyncio
async def test_failed_toggle_reverts(engine, gateway, notifier) -> None:
    await engine.start()
    gateway.insert_edge.side_effect = GatewayError("nope")

    assert await engine.toggle_bookmark("p1") is False

    post = engine.store.get("p1")
    assert post.bookmarks_count == 0
    assert post.is_bookmarked is False
    assert engine.store.ids(FeedName.BOOKMARKED) == []
    assert len(engine.overlay) == 0
    assert [n.level for n in notifier.active] == ["error"]


@pytest.mark.asyncio
async def test_unlike_removes_from_liked_feed(engine, gateway) -> None:
    await engine.start()
    await engine.toggle_like("p1")

    assert await engine.toggle_like("p1") is True

    assert engine.store.get("p1").likes_count == 2
    assert engine.store.ids(FeedName.LIKED) == []
    gateway.delete_edge.assert_awaited_once()


@pytest.mark.asyncio
async def test_actions_need_viewer_and_known_post(engine) -> None:
    await engine.start()
    with pytest.raises(KeyError):
        await engine.toggle_like("unknown")

    await engine.set_viewer(None)
    with pytest.raises(PermissionError):
        await engine.toggle_like("p1")


@pytest.mark.asyncio
async def test_share_takes_server_count(engine, gateway, post_factory) -> None:
    await engine.start()
    gateway.share_post.return_value = post_factory("p1", shares=7)

    assert await engine.share_post("p1") is True
    assert engine.store.get("p1").shares_count == 7


@pytest.mark.asyncio
async def test_failed_share_reverts(engine, gateway) -> None:
    await engine.start()
    gateway.share_post.side_effect = GatewayError("nope")

    assert await engine.share_post("p1") is False
    assert engine.store.get("p1").shares_count == 0


@pytest.mark.asyncio
async def test_follow_removes_suggestion(engine, gateway) -> None:
    await engine.start()
    engine.suggestion_engine.remove = MagicMock()

    assert await engine.follow_user("u9") is True

    engine.suggestion_engine.remove.assert_called_once_with("u9")
    edge = gateway.insert_edge.await_args.args[0]
    assert edge.relation == RelationType.FOLLOW


@pytest.mark.asyncio
async def test_create_post_extracts_hashtags_and_shows_in_own_feed(
    engine, gateway, post_factory
) -> None:
    created = post_factory("fresh", author_id="viewer", content="Hello #Python #python")
    gateway.create_post.return_value = created
    gateway.fetch_post.return_value = created

    post = await engine.create_post("Hello #Python #python")

    author_id, payload, hashtags = gateway.create_post.await_args.args
    assert author_id == "viewer"
    assert payload.content == "Hello #Python #python"
    assert hashtags == ["python"]
    assert post.id == "fresh"
    assert engine.store.ids(FeedName.OWN)[0] == "fresh"


@pytest.mark.asyncio
async def test_show_new_posts_routes_by_author(engine, post_factory) -> None:
    engine.store.buffer_insert(post_factory("theirs"))
    engine.store.buffer_insert(post_factory("mine", author_id="viewer"))
    assert engine.new_posts_count == 2

    assert engine.show_new_posts() == 2

    assert engine.store.ids(FeedName.HOME) == ["mine", "theirs"]
    assert engine.store.ids(FeedName.TRENDING) == ["theirs"]
    assert engine.store.ids(FeedName.OWN) == ["mine"]
    assert engine.has_new_posts is False


def _echo(table, event_type, post_id="p1"):
    record = {"user_id": "viewer", "post_id": post_id}
    if event_type == "insert":
        return ChangeEvent(table=table, event_type="insert", new=record)
    return ChangeEvent(table=table, event_type="delete", old=record)


@pytest.mark.asyncio
async def test_like_then_unlike_echoes_leave_counter_unchanged(engine) -> None:
    await engine.start()
    await engine.toggle_like("p1")
    await engine.toggle_like("p1")

    await engine.synchronizer.handle_like(_echo("social_likes", "insert"))
    post = engine.store.get("p1")
    assert (post.likes_count, post.is_liked) == (2, False)

    await engine.synchronizer.handle_like(_echo("social_likes", "delete"))
    post = engine.store.get("p1")
    assert (post.likes_count, post.is_liked) == (2, False)
    assert len(engine.overlay) == 0


@pytest.mark.asyncio
async def test_repeated_bookmark_toggles_settle_on_last(engine) -> None:
    await engine.start()
    await engine.toggle_bookmark("p1")
    await engine.toggle_bookmark("p1")
    await engine.toggle_bookmark("p1")

    for event_type in ("insert", "delete", "insert"):
        await engine.synchronizer.handle_bookmark(_echo("social_bookmarks", event_type))

    post = engine.store.get("p1")
    assert (post.bookmarks_count, post.is_bookmarked) == (1, True)


@pytest.mark.asyncio
async def test_sort_change_reloads_every_feed(engine, gateway) -> None:
    await engine.start()
    engine.mark_viewed(["p1"])
    gateway.list_groups.return_value = GroupPage(
        public=[Group(id="g1", name="Readers", created_by="u1", created_at=utcnow())]
    )
    gateway.trending_hashtags.return_value = [Hashtag(id="h1", name="python", posts_count=3)]
    gateway.query_posts.reset_mock()

    await engine.set_sort(SortBy.POPULAR)

    queries = [call.args[0] for call in gateway.query_posts.await_args_list]
    assert [q.mode for q in queries] == [FeedMode.FEED, FeedMode.TRENDING, FeedMode.USER]
    assert queries[0].sort_by == SortBy.POPULAR
    assert queries[0].viewed_post_ids == ["p1"]
    assert [p.id for p in engine.posts(FeedName.TRENDING)] == ["p1"]
    assert engine.store.ids(FeedName.OWN) == ["p1", "p2"]
    assert [g.id for g in engine.groups()] == ["g1"]
    assert [t.name for t in engine.aggregator.hashtags] == ["python"]
    assert engine.store.viewed == {"p1"}


@pytest.mark.asyncio
async def test_filter_change_keeps_viewed_posts(engine, gateway) -> None:
    await engine.start()
    engine.mark_viewed(["p1"])

    await engine.set_filter(FilterBy.FOLLOWING)

    assert engine.store.viewed == {"p1"}
    assert [p.id for p in engine.posts(FeedName.TRENDING)] == ["p1"]
    assert gateway.query_posts.await_count == 5


@pytest.mark.asyncio
async def test_refresh_revives_exhausted_channels(engine, channels) -> None:
    await engine.start()
    channels[0].exhausted = True
    channels[0].reconnect.return_value = True

    assert await engine.refresh(FeedName.HOME) is True

    channels[0].reconnect.assert_called_once()
    assert engine.page_state(FeedName.HOME).offset == 2


@pytest.mark.asyncio
async def test_set_viewer_resubscribes(engine, channels) -> None:
    await engine.start()
    engine.mark_viewed(["p1"])

    await engine.set_viewer("someone-else")

    assert len(channels) == 12
    assert engine.store.viewed == set()
    for channel in channels[:6]:
        channel.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_dispose_is_idempotent(engine, channels) -> None:
    await engine.start()

    await engine.dispose()
    await engine.dispose()

    for channel in channels:
        channel.close.assert_awaited_once()
