"""People-you-may-know ranking over the follow graph."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Collection
from datetime import datetime, timedelta

from feedsync.core.settings import settings
from feedsync.db.time import as_utc, utcnow
from feedsync.schemas import ScoredUser, SocialUser, SuggestionPage
from feedsync.services.gateway import FeedGateway

logger = logging.getLogger(__name__)

MUTUAL_WEIGHT = 15
INTEREST_WEIGHT = 10
FOLLOWERS_CAP = 20.0
POSTS_CAP = 15.0


def activity_bonus(last_active: datetime | None, now: datetime) -> float:
    """15 if active within 3 days, 5 within 7 days, else 0."""
    if last_active is None:
        return 0.0
    idle = as_utc(now) - as_utc(last_active)
    if idle < timedelta(days=3):
        return 15.0
    if idle < timedelta(days=7):
        return 5.0
    return 0.0


def score_user(
    user: SocialUser,
    *,
    mutual_count: int,
    viewer_interests: Collection[str],
    now: datetime,
) -> float:
    shared = len({i.lower() for i in user.interests} & set(viewer_interests))
    return (
        MUTUAL_WEIGHT * mutual_count
        + INTEREST_WEIGHT * shared
        + min(user.followers_count / 10, FOLLOWERS_CAP)
        + min(user.posts_count / 5, POSTS_CAP)
        + activity_bonus(user.last_active, now)
    )


class SuggestionEngine:
    """Ranks candidate users once per session and pages through the result.

    The ranked list is fixed until :meth:`invalidate`, so offsets are stable
    and no candidate repeats across pages.
    """

    def __init__(
        self,
        gateway: FeedGateway,
        *,
        viewer_id: str | None = None,
        followings_sample: int | None = None,
        mutual_pool: int | None = None,
        popular_pool: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.gateway = gateway
        self.viewer_id = viewer_id
        self.followings_sample = followings_sample or settings.suggestion_followings_sample
        self.mutual_pool = mutual_pool or settings.suggestion_mutual_pool
        self.popular_pool = popular_pool or settings.suggestion_popular_pool
        self._clock = clock
        self._ranked: list[ScoredUser] | None = None
        self._hidden: set[str] = set()

    @property
    def ranked(self) -> list[ScoredUser]:
        return self._visible(self._ranked or [])

    def _visible(self, users: list[ScoredUser]) -> list[ScoredUser]:
        return [user for user in users if user.id not in self._hidden]

    def invalidate(self) -> None:
        self._ranked = None
        self._hidden = set()

    def set_viewer(self, viewer_id: str | None) -> None:
        self.viewer_id = viewer_id
        self.invalidate()

    def remove(self, user_id: str) -> None:
        """Hide a user, e.g. right after following them.

        The user keeps their slot in the ranked list so page offsets the
        caller already holds stay valid.
        """
        self._hidden.add(user_id)

    async def compute(self) -> list[ScoredUser]:
        """Return the ranked candidates, building them on first use."""
        if self._ranked is None:
            self._ranked = await self._build()
        return self._visible(self._ranked)

    async def refresh(self) -> list[ScoredUser]:
        self.invalidate()
        return await self.compute()

    async def page(self, offset: int = 0, limit: int | None = None) -> SuggestionPage:
        limit = limit or settings.suggested_users_page_size
        await self.compute()
        ranked = self._ranked or []
        users = self._visible(ranked[offset : offset + limit])
        return SuggestionPage(users=users, has_more=offset + limit < len(ranked))

    async def _build(self) -> list[ScoredUser]:
        viewer_id = self.viewer_id
        if viewer_id is None:
            return []

        viewer = await self.gateway.fetch_user(viewer_id)
        interests = {i.lower() for i in viewer.interests} if viewer else set()
        following = await self.gateway.list_following(viewer_id)
        excluded = {viewer_id, *following}

        sample = following[: self.followings_sample]
        links = await self.gateway.list_following_of(sample) if sample else []
        mutual = Counter(
            link.following_id for link in links if link.following_id not in excluded
        )
        mutual_ids = [user_id for user_id, _ in mutual.most_common(self.mutual_pool)]
        mutual_users = await self.gateway.fetch_users(mutual_ids) if mutual_ids else []
        popular = await self.gateway.popular_users(
            sorted(excluded | set(mutual_ids)), self.popular_pool
        )

        now = self._clock()
        candidates: dict[str, ScoredUser] = {}
        for user in [*mutual_users, *popular]:
            if user.id in excluded or user.id in candidates:
                continue
            count = mutual.get(user.id, 0)
            candidates[user.id] = ScoredUser(
                **user.model_dump(),
                recommendation_score=score_user(
                    user, mutual_count=count, viewer_interests=interests, now=now
                ),
                mutual_friends_count=count,
            )
        ranked = sorted(
            candidates.values(), key=lambda user: user.recommendation_score, reverse=True
        )
        logger.debug("Ranked %d suggestion candidates for %s", len(ranked), viewer_id)
        return ranked
