# src/feedsync/services/__init__.py
"""Feed engine services."""

from .aggregator import FeedAggregator
from .cache import OfflineStore, SnapshotCache
from .changefeed import ChangeFeed
from .engine import FeedEngine
from .gateway import (
    FeedGateway,
    GatewayError,
    GatewayTimeoutError,
    GatewayUnavailableError,
    NotFoundError,
)
from .http_gateway import HttpFeedGateway
from .notifier import Notifier
from .realtime import RealtimeChannel
from .relations import RelationBatchLoader
from .sql_gateway import SqlFeedGateway
from .suggestions import SuggestionEngine
from .synchronizer import RealtimeSynchronizer

__all__ = [
    "ChangeFeed",
    "FeedAggregator",
    "FeedEngine",
    "FeedGateway",
    "GatewayError",
    "GatewayTimeoutError",
    "GatewayUnavailableError",
    "HttpFeedGateway",
    "NotFoundError",
    "Notifier",
    "OfflineStore",
    "RealtimeChannel",
    "RealtimeSynchronizer",
    "RelationBatchLoader",
    "SnapshotCache",
    "SqlFeedGateway",
    "SuggestionEngine",
]
