"""Client-side durable mirror of last-known-good entities.

Lives in its own metadata because it is created in the local offline
database, never in the relational store behind the gateway.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from feedsync.db.time import utcnow


class OfflineBase(DeclarativeBase):
    """Declarative base for the offline database."""


class OfflineEntity(OfflineBase):
    """One cached entity, keyed by (table, id), stored as JSON text."""

    __tablename__ = "offline_entities"

    table_name: Mapped[str] = mapped_column(String(64), primary_key=True)
    entity_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
