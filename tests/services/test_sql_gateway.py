from datetime import timedelta

import pytest

from feedsync.models import Group, GroupMember, Hashtag, PostHashtag
from feedsync.schemas import (
    Edge,
    FeedMode,
    FeedQuery,
    PostCreate,
    RelationKind,
    RelationType,
    SortBy,
)
from feedsync.services.gateway import NotFoundError


@pytest.fixture
def seeded(make_user, make_post_row):
    make_user("viewer")
    make_user("author", followers_count=3)
    make_post_row("old", "author", age=timedelta(hours=3), likes_count=9)
    make_post_row("mid", "author", age=timedelta(hours=2))
    make_post_row("new", "author", age=timedelta(hours=1))
    make_post_row("mine", "viewer", age=timedelta(minutes=30))
    make_post_row("hidden", "author", privacy="private")


def _like(post_id, user_id="viewer"):
    return Edge(relation=RelationType.LIKE, subject_id=user_id, object_id=post_id)


@pytest.mark.asyncio
async def test_feed_query_pages_newest_first(sql_gateway, seeded) -> None:
    page = await sql_gateway.query_posts(FeedQuery(mode=FeedMode.FEED, limit=2), "viewer")
    assert [p.id for p in page.posts] == ["mine", "new"]
    assert page.has_more is True

    rest = await sql_gateway.query_posts(
        FeedQuery(mode=FeedMode.FEED, offset=2, limit=10), "viewer"
    )
    assert [p.id for p in rest.posts] == ["mid", "old"]
    assert rest.has_more is False


@pytest.mark.asyncio
async def test_feed_query_keeps_viewed_posts(sql_gateway, seeded) -> None:
    query = FeedQuery(mode=FeedMode.FEED, limit=10, viewed_post_ids=["new", "old"])

    page = await sql_gateway.query_posts(query, "viewer")

    assert [p.id for p in page.posts] == ["mine", "new", "mid", "old"]


@pytest.mark.asyncio
async def test_popular_sort_and_trending_exclude_viewer(sql_gateway, seeded) -> None:
    popular = await sql_gateway.query_posts(
        FeedQuery(mode=FeedMode.FEED, sort_by=SortBy.POPULAR, limit=1), None
    )
    assert [p.id for p in popular.posts] == ["old"]

    trending = await sql_gateway.query_posts(FeedQuery(mode=FeedMode.TRENDING), "viewer")
    assert "mine" not in {p.id for p in trending.posts}
    assert "hidden" not in {p.id for p in trending.posts}


@pytest.mark.asyncio
async def test_like_edge_updates_counter_and_publishes_once(
    sql_gateway, change_feed, seeded
) -> None:
    await sql_gateway.insert_edge(_like("new"))
    await sql_gateway.insert_edge(_like("new"))

    post = await sql_gateway.fetch_post("new")
    assert post.likes_count == 1
    events = change_feed.since("social_likes", 0)
    assert len(events) == 1
    assert events[0].new == {"user_id": "viewer", "post_id": "new"}

    await sql_gateway.delete_edge(_like("new"))
    await sql_gateway.delete_edge(_like("new"))

    post = await sql_gateway.fetch_post("new")
    assert post.likes_count == 0
    assert [e.event_type for e in change_feed.since("social_likes", 0)] == ["insert", "delete"]


@pytest.mark.asyncio
async def test_edge_on_missing_post_raises_not_found(sql_gateway, seeded) -> None:
    with pytest.raises(NotFoundError):
        await sql_gateway.insert_edge(_like("nope"))


@pytest.mark.asyncio
async def test_liked_feed_orders_by_edge_time(sql_gateway, seeded) -> None:
    await sql_gateway.insert_edge(_like("old"))
    await sql_gateway.insert_edge(_like("new"))

    page = await sql_gateway.query_posts(FeedQuery(mode=FeedMode.LIKED), "viewer")

    assert [p.id for p in page.posts] == ["new", "old"]
    links = await sql_gateway.fetch_relation(RelationKind.LIKES, ["old", "mid", "new"], "viewer")
    assert {link.post_id for link in links} == {"old", "new"}


@pytest.mark.asyncio
async def test_follow_edges_feed_graph_queries(sql_gateway, make_user, seeded) -> None:
    make_user("third", followers_count=10)
    await sql_gateway.insert_edge(
        Edge(relation=RelationType.FOLLOW, subject_id="viewer", object_id="author")
    )
    await sql_gateway.insert_edge(
        Edge(relation=RelationType.FOLLOW, subject_id="author", object_id="third")
    )

    assert await sql_gateway.list_following("viewer") == ["author"]
    links = await sql_gateway.list_following_of(["author"])
    assert [(l.follower_id, l.following_id) for l in links] == [("author", "third")]
    author = await sql_gateway.fetch_user("author")
    assert author.followers_count == 4
    popular = await sql_gateway.popular_users(["viewer"], 5)
    assert [u.id for u in popular] == ["third", "author"]


@pytest.mark.asyncio
async def test_self_follow_is_rejected(sql_gateway, seeded) -> None:
    with pytest.raises(ValueError):
        await sql_gateway.insert_edge(
            Edge(relation=RelationType.FOLLOW, subject_id="viewer", object_id="viewer")
        )


@pytest.mark.asyncio
async def test_create_post_links_hashtags(sql_gateway, change_feed, seeded) -> None:
    post = await sql_gateway.create_post(
        "viewer", PostCreate(content="hi #python"), ["python"]
    )

    assert post.author.id == "viewer"
    links = await sql_gateway.fetch_relation(RelationKind.HASHTAGS, [post.id])
    assert [link.hashtag.name for link in links] == ["python"]
    trending = await sql_gateway.trending_hashtags(5)
    assert [(t.name, t.posts_count) for t in trending] == [("python", 1)]
    assert change_feed.since("social_posts", 0)[0].new["id"] == post.id


@pytest.mark.asyncio
async def test_share_publishes_post_update(sql_gateway, change_feed, seeded) -> None:
    shared = await sql_gateway.share_post("mid")
    assert shared.shares_count == 1
    event = change_feed.since("social_posts", 0)[-1]
    assert event.event_type == "update"
    assert event.new["shares_count"] == 1

    with pytest.raises(NotFoundError):
        await sql_gateway.share_post("nope")


@pytest.mark.asyncio
async def test_hashtag_relation_batch(sql_gateway, db_session, seeded) -> None:
    tag = Hashtag(id="h1", name="news", posts_count=2)
    db_session.add(tag)
    db_session.add_all(
        [PostHashtag(post_id="old", hashtag_id="h1"), PostHashtag(post_id="new", hashtag_id="h1")]
    )
    db_session.commit()

    links = await sql_gateway.fetch_relation(RelationKind.HASHTAGS, ["old", "mid", "new"])

    assert sorted(link.post_id for link in links) == ["new", "old"]


@pytest.mark.asyncio
async def test_group_page_includes_memberships(sql_gateway, db_session, seeded) -> None:
    db_session.add_all(
        [
            Group(id="g-public", name="Public", created_by="author"),
            Group(id="g-private", name="Private", privacy="private", created_by="author"),
            GroupMember(group_id="g-private", user_id="viewer", role="admin"),
        ]
    )
    db_session.commit()

    page = await sql_gateway.list_groups("viewer", 0, 10)

    assert [g.id for g in page.public] == ["g-public"]
    assert [(g.id, g.member_role) for g in page.memberships] == [("g-private", "admin")]
    assert page.has_more is False
