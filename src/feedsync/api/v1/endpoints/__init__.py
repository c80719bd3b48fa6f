"""API endpoint modules for version 1."""

from .changes import router as changes_router
from .edges import router as edges_router
from .feed import router as feed_router
from .posts import router as posts_router
from .users import router as users_router

__all__ = [
    "changes_router",
    "edges_router",
    "feed_router",
    "posts_router",
    "users_router",
]
