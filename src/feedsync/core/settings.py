"""Application settings and configuration.

This module defines all configuration options for feedsync. Settings are
loaded from environment variables with sensible defaults, so both the
reference gateway server and the client-side engine can be configured from
the same `.env` file.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables.

    Client-side engine knobs (page sizes, ranking windows, realtime backoff)
    and server-side knobs (database, change log) share one class; each
    process simply ignores what it does not use.
    """

    # Application metadata
    app_name: str = Field(default="feedsync", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")

    # Relational store behind the reference gateway
    database_url: str = Field(default="sqlite:///./feedsync.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Client-side durable stores
    offline_database_url: str = Field(
        default="sqlite:///./feedsync-offline.db",
        alias="OFFLINE_DATABASE_URL",
    )
    feed_cache_redis_url: str | None = Field(default=None, alias="FEED_CACHE_REDIS_URL")

    # Gateway client
    gateway_base_url: str = Field(default="http://localhost:8000", alias="GATEWAY_BASE_URL")
    gateway_timeout_seconds: float = Field(default=10.0, alias="GATEWAY_TIMEOUT_SECONDS")
    gateway_shared_secret: str | None = Field(default=None, alias="GATEWAY_SHARED_SECRET")
    gateway_token_ttl_seconds: int = Field(default=300, alias="GATEWAY_TOKEN_TTL_SECONDS")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    changes_poll_wait_seconds: float = Field(default=2.0, alias="CHANGES_POLL_WAIT_SECONDS")

    # Feed pagination and ranking
    page_size: int = Field(default=20, alias="FEED_PAGE_SIZE")
    superset_factor: int = Field(default=3, alias="FEED_SUPERSET_FACTOR")
    own_post_grace_seconds: int = Field(default=300, alias="OWN_POST_GRACE_SECONDS")
    groups_page_size: int = Field(default=10, alias="GROUPS_PAGE_SIZE")
    suggested_users_page_size: int = Field(default=10, alias="SUGGESTED_USERS_PAGE_SIZE")
    trending_hashtags_limit: int = Field(default=10, alias="TRENDING_HASHTAGS_LIMIT")

    # Realtime reconnect policy
    realtime_backoff_base_seconds: float = Field(
        default=1.0,
        alias="REALTIME_BACKOFF_BASE_SECONDS",
    )
    realtime_backoff_cap_seconds: float = Field(
        default=10.0,
        alias="REALTIME_BACKOFF_CAP_SECONDS",
    )
    realtime_max_attempts: int = Field(default=3, alias="REALTIME_MAX_ATTEMPTS")

    # Optimistic actions waiting for their own realtime echo
    pending_action_ttl_seconds: float = Field(default=30.0, alias="PENDING_ACTION_TTL_SECONDS")

    # Suggestion candidate pools
    suggestion_followings_sample: int = Field(default=50, alias="SUGGESTION_FOLLOWINGS_SAMPLE")
    suggestion_mutual_pool: int = Field(default=100, alias="SUGGESTION_MUTUAL_POOL")
    suggestion_popular_pool: int = Field(default=50, alias="SUGGESTION_POPULAR_POOL")

    # Change feed retention on the reference server
    change_log_size: int = Field(default=1000, alias="CHANGE_LOG_SIZE")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def superset_size(self) -> int:
        """Return how many raw rows a ranked feed reads per page."""
        return self.page_size * max(1, self.superset_factor)


settings = Settings()
