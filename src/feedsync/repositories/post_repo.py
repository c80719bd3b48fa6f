"""Data access helpers for working with posts."""
from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence

from sqlalchemy import desc, or_, select, update
from sqlalchemy.orm import Session

from feedsync.db.time import as_utc
from feedsync.models import Bookmark, Group, Hashtag, Like, Media, Post, PostHashtag, PostTag, Tag
from feedsync.models import SocialUser
from feedsync.schemas import (
    FeedMode,
    FeedPage,
    FeedQuery,
    GroupSummary,
    MediaAttachment,
    PostCreate,
    RelationKind,
    RelationLink,
    SortBy,
    UserSummary,
)
from feedsync.schemas import Hashtag as HashtagSchema
from feedsync.schemas import Post as PostSchema
from feedsync.schemas import Tag as TagSchema

__all__ = ["PostRepository"]


class PostRepository:
    """Thin wrapper around database access for post entities."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    def get_by_id(self, post_id: str) -> Post | None:
        """Return a post by identifier."""
        return self.session.get(Post, post_id)

    def get_schema(self, post_id: str) -> PostSchema | None:
        """Return a post with author, group and media, or None."""
        post = self.get_by_id(post_id)
        if post is None:
            return None
        return self.to_schemas([post])[0]

    def query_feed(self, query: FeedQuery, viewer_id: str | None) -> FeedPage:
        """Return one page of raw rows for a feed mode.

        One extra row is read to decide ``has_more`` without a count query.
        ``viewed_post_ids`` never filters rows; the client ranks viewed
        posts last instead.
        """
        stmt = select(Post)
        if query.mode in (FeedMode.FEED, FeedMode.TRENDING):
            visible = Post.privacy == "public"
            if viewer_id is not None:
                visible = or_(visible, Post.author_id == viewer_id)
            stmt = stmt.where(visible)
            if query.mode == FeedMode.TRENDING:
                if viewer_id is not None:
                    stmt = stmt.where(Post.author_id != viewer_id)
                stmt = stmt.order_by(desc(Post.likes_count), desc(Post.created_at), Post.id)
            elif query.sort_by == SortBy.POPULAR:
                stmt = stmt.order_by(desc(Post.likes_count), desc(Post.created_at), Post.id)
            else:
                stmt = stmt.order_by(desc(Post.created_at), Post.id)
        elif viewer_id is None:
            return FeedPage(posts=[], has_more=False)
        elif query.mode == FeedMode.USER:
            stmt = stmt.where(Post.author_id == viewer_id).order_by(
                desc(Post.created_at), Post.id
            )
        else:
            edge = Like if query.mode == FeedMode.LIKED else Bookmark
            stmt = (
                stmt.join(edge, edge.post_id == Post.id)
                .where(edge.user_id == viewer_id)
                .order_by(desc(edge.created_at), Post.id)
            )

        rows = list(
            self.session.scalars(stmt.offset(query.offset).limit(query.limit + 1))
        )
        has_more = len(rows) > query.limit
        return FeedPage(posts=self.to_schemas(rows[: query.limit]), has_more=has_more)

    def to_schemas(self, posts: Sequence[Post]) -> list[PostSchema]:
        """Convert ORM posts into schemas with authors, groups and media attached."""
        if not posts:
            return []
        author_ids = {post.author_id for post in posts}
        group_ids = {post.group_id for post in posts if post.group_id}
        post_ids = [post.id for post in posts]

        authors = {
            user.id: user
            for user in self.session.scalars(
                select(SocialUser).where(SocialUser.id.in_(author_ids))
            )
        }
        groups = {}
        if group_ids:
            groups = {
                group.id: group
                for group in self.session.scalars(select(Group).where(Group.id.in_(group_ids)))
            }
        media: dict[str, list[Media]] = defaultdict(list)
        for item in self.session.scalars(
            select(Media).where(Media.post_id.in_(post_ids)).order_by(Media.position)
        ):
            media[item.post_id].append(item)

        result = []
        for post in posts:
            author = authors.get(post.author_id)
            group = groups.get(post.group_id) if post.group_id else None
            result.append(
                PostSchema(
                    id=post.id,
                    author_id=post.author_id,
                    author=UserSummary(
                        id=author.id,
                        username=author.username,
                        display_name=author.display_name,
                        avatar_url=author.avatar_url,
                        is_verified=author.is_verified,
                        is_contributor=author.is_contributor,
                    )
                    if author
                    else None,
                    content=post.content,
                    privacy=post.privacy,
                    group_id=post.group_id,
                    group=GroupSummary(id=group.id, name=group.name, privacy=group.privacy)
                    if group
                    else None,
                    media=[
                        MediaAttachment(
                            id=item.id, type=item.type, url=item.url, filename=item.filename
                        )
                        for item in media[post.id]
                    ],
                    likes_count=post.likes_count,
                    comments_count=post.comments_count,
                    shares_count=post.shares_count,
                    bookmarks_count=post.bookmarks_count,
                    created_at=as_utc(post.created_at),
                )
            )
        return result

    def relation_links(
        self,
        kind: RelationKind,
        post_ids: Sequence[str],
        viewer_id: str | None,
    ) -> list[RelationLink]:
        """Return one relation's edges for a set of posts in a single query."""
        if not post_ids:
            return []
        if kind == RelationKind.HASHTAGS:
            rows = self.session.execute(
                select(PostHashtag.post_id, Hashtag)
                .join(Hashtag, Hashtag.id == PostHashtag.hashtag_id)
                .where(PostHashtag.post_id.in_(post_ids))
            )
            return [
                RelationLink(
                    post_id=post_id,
                    hashtag=HashtagSchema(id=tag.id, name=tag.name, posts_count=tag.posts_count),
                )
                for post_id, tag in rows
            ]
        if kind == RelationKind.TAGS:
            rows = self.session.execute(
                select(PostTag.post_id, Tag)
                .join(Tag, Tag.id == PostTag.tag_id)
                .where(PostTag.post_id.in_(post_ids))
            )
            return [
                RelationLink(post_id=post_id, tag=TagSchema(id=tag.id, name=tag.name))
                for post_id, tag in rows
            ]

        if viewer_id is None:
            return []
        edge = Like if kind == RelationKind.LIKES else Bookmark
        rows = self.session.execute(
            select(edge.post_id, edge.user_id).where(
                edge.post_id.in_(post_ids), edge.user_id == viewer_id
            )
        )
        return [RelationLink(post_id=post_id, user_id=user_id) for post_id, user_id in rows]

    def create(self, author_id: str, payload: PostCreate, hashtags: Sequence[str]) -> Post:
        """Insert a new post, link its hashtags and bump the author's post count.

        Args:
            author_id: Identity of the composing user.
            payload: Body, privacy tier and optional group.
            hashtags: Lower-cased, de-duplicated hashtag names.
        """
        post = Post(
            author_id=author_id,
            content=payload.content,
            privacy=payload.privacy,
            group_id=payload.group_id,
        )
        self.session.add(post)
        self.session.flush()

        for name in hashtags:
            tag = self.session.scalar(select(Hashtag).where(Hashtag.name == name))
            if tag is None:
                tag = Hashtag(name=name, posts_count=0)
                self.session.add(tag)
                self.session.flush()
            tag.posts_count += 1
            self.session.add(PostHashtag(post_id=post.id, hashtag_id=tag.id))

        self.session.execute(
            update(SocialUser)
            .where(SocialUser.id == author_id)
            .values(posts_count=SocialUser.posts_count + 1)
        )
        self.session.flush()
        return post

    def increment_shares(self, post_id: str) -> Post | None:
        """Increment the share counter for a post."""
        post = self.get_by_id(post_id)
        if post is None:
            return None
        post.shares_count += 1
        self.session.flush()
        return post

    def trending_hashtags(self, limit: int) -> list[HashtagSchema]:
        """Return hashtags ordered by how many posts use them."""
        rows = self.session.scalars(
            select(Hashtag)
            .where(Hashtag.posts_count > 0)
            .order_by(desc(Hashtag.posts_count), Hashtag.name)
            .limit(limit)
        )
        return [
            HashtagSchema(id=tag.id, name=tag.name, posts_count=tag.posts_count) for tag in rows
        ]
