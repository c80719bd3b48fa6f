"""Change-feed pull endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Query

from feedsync.api.v1.dependencies import ChangeFeedDep
from feedsync.schemas import ChangeBatch

router = APIRouter(tags=["changes"])

MAX_WAIT_SECONDS = 30.0


@router.get("/changes", response_model=ChangeBatch)
async def pull_changes(
    changes: ChangeFeedDep,
    table: str = Query(..., min_length=1),
    after: int | None = Query(None, ge=0),
    filter: str | None = Query(None),
    wait: float = Query(0.0, ge=0.0),
) -> ChangeBatch:
    """Return events for ``table`` after the ``after`` cursor.

    Without ``after`` only the current cursor is returned. With ``wait`` the
    request is held until an event arrives or the wait elapses.
    """
    return await changes.pull(table, after, filter, min(wait, MAX_WAIT_SECONDS))
