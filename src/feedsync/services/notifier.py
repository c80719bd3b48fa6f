"""Dismissible transient notices surfaced to the UI layer."""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from feedsync.db.time import utcnow

logger = logging.getLogger(__name__)

NoticeLevel = Literal["info", "error"]


@dataclass
class Notice:
    id: int
    level: NoticeLevel
    message: str
    detail: str | None = None
    created_at: datetime = field(default_factory=utcnow)


class Notifier:
    """Holds active notices and forwards new ones to listeners.

    Notices never touch feed state; dismissing one only removes it here.
    """

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._notices: dict[int, Notice] = {}
        self._listeners: list[Callable[[Notice], None]] = []

    def subscribe(self, listener: Callable[[Notice], None]) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, level: NoticeLevel, message: str, detail: str | None = None) -> Notice:
        notice = Notice(id=next(self._ids), level=level, message=message, detail=detail)
        self._notices[notice.id] = notice
        for listener in list(self._listeners):
            try:
                listener(notice)
            except Exception:
                logger.exception("Notice listener failed for %r", message)
        return notice

    def info(self, message: str, detail: str | None = None) -> Notice:
        return self.notify("info", message, detail)

    def error(self, message: str, detail: str | None = None) -> Notice:
        return self.notify("error", message, detail)

    @property
    def active(self) -> list[Notice]:
        return list(self._notices.values())

    def dismiss(self, notice_id: int) -> bool:
        return self._notices.pop(notice_id, None) is not None

    def clear(self) -> None:
        self._notices.clear()
