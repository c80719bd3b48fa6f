"""Short-lived record of the viewer's own optimistic edge toggles.

When the viewer likes or bookmarks a post the engine applies the change
locally and records it here. The realtime echo of that write consumes the
entry instead of applying a second counter delta. Toggling the same post
again before the first echo arrives queues a second entry, and echoes
consume them oldest first.
"""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from feedsync.schemas import RelationType


@dataclass
class PendingAction:
    relation: RelationType
    post_id: str
    value: bool
    expires_at: float


class PendingOverlay:
    """Pending actions queued per (relation, post)."""

    def __init__(self, ttl_seconds: float = 30.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._actions: dict[tuple[RelationType, str], deque[PendingAction]] = {}

    def add(self, relation: RelationType, post_id: str, value: bool) -> None:
        self.prune()
        self._actions.setdefault((relation, post_id), deque()).append(
            PendingAction(
                relation=relation,
                post_id=post_id,
                value=value,
                expires_at=self._clock() + self.ttl_seconds,
            )
        )

    def consume(self, relation: RelationType, post_id: str, value: bool) -> bool:
        """Remove and report the oldest live entry matching ``value``."""
        key = (relation, post_id)
        queue = self._actions.get(key)
        if queue is None:
            return False
        now = self._clock()
        while queue and queue[0].expires_at <= now:
            queue.popleft()
        matched = False
        for action in queue:
            if action.value == value:
                queue.remove(action)
                matched = True
                break
        if not queue:
            del self._actions[key]
        return matched

    def discard(self, relation: RelationType, post_id: str) -> None:
        """Drop the newest entry for a write that failed."""
        key = (relation, post_id)
        queue = self._actions.get(key)
        if queue:
            queue.pop()
            if not queue:
                del self._actions[key]

    def pending(self, relation: RelationType, post_id: str) -> bool:
        return bool(self._actions.get((relation, post_id)))

    def prune(self) -> int:
        """Forget entries whose echo never arrived."""
        now = self._clock()
        dropped = 0
        for key in list(self._actions):
            queue = self._actions[key]
            live = deque(action for action in queue if action.expires_at > now)
            dropped += len(queue) - len(live)
            if live:
                self._actions[key] = live
            else:
                del self._actions[key]
        return dropped

    def clear(self) -> None:
        self._actions.clear()

    def __len__(self) -> int:
        return sum(len(queue) for queue in self._actions.values())
