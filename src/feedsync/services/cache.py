"""Persistent local cache for feed snapshots and offline entities.

``SnapshotCache`` keeps the last-known-good copy of each feed, keyed by feed
name. It is backed by Redis when a URL is configured and falls back to an
in-process dict otherwise, or once Redis stops answering. ``OfflineStore``
is the durable write-through mirror of individual entities, used only as
a last-resort read path when the gateway is unreachable.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterable
from typing import Any

import redis.asyncio as redis
from pydantic import BaseModel
from redis.exceptions import RedisError
from sqlalchemy import delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from feedsync.core.settings import settings
from feedsync.db.session import build_engine
from feedsync.db.time import utcnow
from feedsync.models import OfflineBase, OfflineEntity
from feedsync.schemas import FeedSnapshot

logger = logging.getLogger(__name__)


class SnapshotCache:
    """Key-value snapshot store with no expiry."""

    def __init__(
        self,
        redis_url: str | None = None,
        *,
        client: Any | None = None,
        namespace: str = "feedsync:snapshot",
    ) -> None:
        self._namespace = namespace
        self._memory: dict[str, str] = {}
        self._redis = client
        if self._redis is None and redis_url:
            self._redis = redis.from_url(redis_url)

    @classmethod
    def from_settings(cls) -> SnapshotCache:
        return cls(settings.feed_cache_redis_url)

    @property
    def backend(self) -> str:
        return "redis" if self._redis is not None else "memory"

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    def _drop_redis(self, exc: RedisError) -> None:
        logger.warning("Snapshot cache falling back to memory: %s", exc)
        self._redis = None

    async def get_json(self, key: str) -> Any | None:
        """Return the decoded value stored under ``key``, or None."""
        raw: str | bytes | None = None
        if self._redis is not None:
            try:
                raw = await self._redis.get(self._key(key))
            except RedisError as exc:
                self._drop_redis(exc)
        if raw is None:
            raw = self._memory.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set_json(self, key: str, value: Any) -> None:
        """Store a JSON-serialisable value under ``key``."""
        payload = json.dumps(value)
        self._memory[key] = payload
        if self._redis is not None:
            try:
                await self._redis.set(self._key(key), payload)
            except RedisError as exc:
                self._drop_redis(exc)

    async def get(self, key: str) -> FeedSnapshot | None:
        """Return the snapshot for a feed, or None."""
        value = await self.get_json(key)
        if value is None:
            return None
        return FeedSnapshot.model_validate(value)

    async def set(self, key: str, snapshot: FeedSnapshot) -> None:
        """Replace the snapshot for a feed."""
        await self.set_json(key, snapshot.model_dump(mode="json"))

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()


class OfflineStore:
    """Durable entity mirror in a local SQLite database."""

    def __init__(self, url: str | None = None, *, engine: Engine | None = None) -> None:
        self._engine = engine or build_engine(url or settings.offline_database_url)
        OfflineBase.metadata.create_all(bind=self._engine)
        self._sessions = sessionmaker(bind=self._engine, expire_on_commit=False)

    def _get_all(self, table: str) -> list[dict[str, Any]]:
        with self._sessions() as session:
            rows = session.scalars(
                select(OfflineEntity)
                .where(OfflineEntity.table_name == table)
                .order_by(OfflineEntity.updated_at.desc(), OfflineEntity.entity_id)
            )
            return [json.loads(row.payload) for row in rows]

    def _save_all(self, table: str, entities: list[dict[str, Any]]) -> int:
        with self._sessions() as session, session.begin():
            for entity in entities:
                entity_id = str(entity["id"])
                payload = json.dumps(entity)
                row = session.get(OfflineEntity, (table, entity_id))
                if row is None:
                    session.add(
                        OfflineEntity(table_name=table, entity_id=entity_id, payload=payload)
                    )
                else:
                    row.payload = payload
                    row.updated_at = utcnow()
        return len(entities)

    def _clear(self, table: str | None) -> None:
        with self._sessions() as session, session.begin():
            stmt = delete(OfflineEntity)
            if table is not None:
                stmt = stmt.where(OfflineEntity.table_name == table)
            session.execute(stmt)

    async def get_all(self, table: str) -> list[dict[str, Any]]:
        """Return every stored entity of ``table``, most recently saved first."""
        return await asyncio.to_thread(self._get_all, table)

    async def save_all(self, table: str, entities: Iterable[BaseModel | dict[str, Any]]) -> int:
        """Upsert entities by identity; returns how many were written."""
        payloads = [
            entity.model_dump(mode="json") if isinstance(entity, BaseModel) else dict(entity)
            for entity in entities
        ]
        if not payloads:
            return 0
        return await asyncio.to_thread(self._save_all, table, payloads)

    async def clear(self, table: str | None = None) -> None:
        await asyncio.to_thread(self._clear, table)

    def dispose(self) -> None:
        self._engine.dispose()
