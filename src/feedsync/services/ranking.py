"""Scoring and ordering for the discovery feeds.

Both ranked feeds partition rows into unviewed and viewed posts. Unviewed
posts are ordered by an engagement score plus bounded random jitter; viewed
posts follow, newest first. Repeats are deprioritised, never dropped.
"""

from __future__ import annotations

import random
from collections.abc import Collection, Sequence
from datetime import datetime, timedelta

from feedsync.db.time import as_utc, utcnow
from feedsync.schemas import Post

RECENCY_BONUS_MAX = 10.0
RECENCY_WINDOW_HOURS = 24.0
HOME_JITTER = 5.0
TRENDING_JITTER = 2.0


def recency_bonus(created_at: datetime, now: datetime) -> float:
    """Linear decay from 10 at creation to 0 after 24 hours."""
    age_hours = (as_utc(now) - as_utc(created_at)).total_seconds() / 3600
    if age_hours <= 0:
        return RECENCY_BONUS_MAX
    return max(0.0, RECENCY_BONUS_MAX * (1 - age_hours / RECENCY_WINDOW_HOURS))


def home_score(post: Post, now: datetime, jitter: float) -> float:
    return (
        post.likes_count
        + 2 * post.comments_count
        + 3 * post.shares_count
        + recency_bonus(post.created_at, now)
        + jitter
    )


def trending_score(post: Post, jitter: float) -> float:
    return 3 * post.likes_count + 2 * post.comments_count + 5 * post.shares_count + jitter


def partition_viewed(
    posts: Sequence[Post], viewed: Collection[str]
) -> tuple[list[Post], list[Post]]:
    """Split into (unviewed, viewed) preserving input order."""
    unviewed = [post for post in posts if post.id not in viewed]
    seen = [post for post in posts if post.id in viewed]
    return unviewed, seen


def _by_recency(posts: list[Post]) -> list[Post]:
    return sorted(posts, key=lambda post: as_utc(post.created_at), reverse=True)


def rank_home(
    posts: Sequence[Post],
    *,
    viewer_id: str | None,
    viewed: Collection[str],
    now: datetime | None = None,
    own_post_grace: timedelta = timedelta(minutes=5),
    rng: random.Random | None = None,
) -> list[Post]:
    """Order a home-feed superset.

    The viewer's own posts are kept only while younger than ``own_post_grace``.
    """
    now = now or utcnow()
    rng = rng or random.Random()
    candidates = [
        post
        for post in posts
        if viewer_id is None
        or post.author_id != viewer_id
        or as_utc(now) - as_utc(post.created_at) < own_post_grace
    ]
    unviewed, seen = partition_viewed(candidates, viewed)
    scored = [(home_score(post, now, rng.random() * HOME_JITTER), post) for post in unviewed]
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [post for _, post in scored] + _by_recency(seen)


def rank_trending(
    posts: Sequence[Post],
    *,
    viewer_id: str | None,
    viewed: Collection[str],
    rng: random.Random | None = None,
) -> list[Post]:
    """Order a trending superset; the viewer's own posts are always excluded."""
    rng = rng or random.Random()
    candidates = [post for post in posts if viewer_id is None or post.author_id != viewer_id]
    unviewed, seen = partition_viewed(candidates, viewed)
    scored = [(trending_score(post, rng.random() * TRENDING_JITTER), post) for post in unviewed]
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [post for _, post in scored] + _by_recency(seen)
