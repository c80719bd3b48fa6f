import asyncio

import pytest

from feedsync.services.changefeed import ChangeFeed, parse_filter


def test_parse_filter_accepts_equality() -> None:
    assert parse_filter("user_id=eq.viewer") == ("user_id", "viewer")
    assert parse_filter(None) is None


@pytest.mark.parametrize("expression", ["user_id", "user_id=gt.3", "=eq.x"])
def test_parse_filter_rejects_other_predicates(expression) -> None:
    with pytest.raises(ValueError):
        parse_filter(expression)


@pytest.mark.asyncio
async def test_subscription_receives_matching_events_only() -> None:
    feed = ChangeFeed(max_events=10)
    stream = feed.subscribe("social_bookmarks", "user_id=eq.viewer")

    feed.publish("social_likes", "insert", new={"user_id": "viewer", "post_id": "p"})
    feed.publish("social_bookmarks", "insert", new={"user_id": "other", "post_id": "p"})
    feed.publish("social_bookmarks", "delete", old={"user_id": "viewer", "post_id": "p"})

    event = await asyncio.wait_for(stream.__anext__(), timeout=1)
    assert event.event_type == "delete"
    assert event.record == {"user_id": "viewer", "post_id": "p"}

    await stream.close()
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()


@pytest.mark.asyncio
async def test_disconnect_all_ends_streams() -> None:
    feed = ChangeFeed(max_events=10)
    stream = feed.subscribe("social_posts")

    feed.disconnect_all()

    assert [event async for event in stream] == []


@pytest.mark.asyncio
async def test_pull_without_cursor_returns_head() -> None:
    feed = ChangeFeed(max_events=10)
    feed.publish("social_posts", "insert", new={"id": "p1"})

    batch = await feed.pull("social_posts")

    assert batch.events == []
    assert batch.cursor == 1


@pytest.mark.asyncio
async def test_pull_returns_events_after_cursor() -> None:
    feed = ChangeFeed(max_events=10)
    feed.publish("social_posts", "insert", new={"id": "p1"})
    feed.publish("social_likes", "insert", new={"post_id": "p1", "user_id": "u"})
    feed.publish("social_posts", "insert", new={"id": "p2"})

    batch = await feed.pull("social_posts", after=1)

    assert [event.new["id"] for event in batch.events] == ["p2"]
    assert batch.cursor == 3


@pytest.mark.asyncio
async def test_pull_waits_for_next_event() -> None:
    feed = ChangeFeed(max_events=10)
    pending = asyncio.create_task(feed.pull("social_posts", after=0, wait=2.0))
    await asyncio.sleep(0)

    feed.publish("social_posts", "insert", new={"id": "late"})

    batch = await asyncio.wait_for(pending, timeout=1)
    assert [event.new["id"] for event in batch.events] == ["late"]


@pytest.mark.asyncio
async def test_pull_wait_times_out_empty() -> None:
    feed = ChangeFeed(max_events=10)
    batch = await feed.pull("social_posts", after=0, wait=0.01)
    assert batch.events == []
    assert batch.cursor == 0


def test_log_is_bounded() -> None:
    feed = ChangeFeed(max_events=2)
    for n in range(3):
        feed.publish("social_posts", "insert", new={"id": f"p{n}"})
    assert [event.sequence for event in feed.since("social_posts", 0)] == [2, 3]
    assert feed.head == 3
