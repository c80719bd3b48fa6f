"""Version 1 API endpoints."""

from .endpoints import (
    changes_router,
    edges_router,
    feed_router,
    posts_router,
    users_router,
)

__all__ = [
    "changes_router",
    "edges_router",
    "feed_router",
    "posts_router",
    "users_router",
]
