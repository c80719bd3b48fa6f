"""Change feed schemas."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

ChangeType = Literal["insert", "update", "delete"]


class ChangeEvent(BaseModel):
    """Row-level change published for one table.

    ``new`` is empty for deletes and ``old`` carries at least the primary
    key columns for updates and deletes.
    """

    table: str
    event_type: ChangeType
    new: dict[str, Any] = Field(default_factory=dict)
    old: dict[str, Any] = Field(default_factory=dict)
    sequence: int = 0

    @property
    def record(self) -> dict[str, Any]:
        """Row the event is about: ``new`` unless it is a delete."""
        return self.old if self.event_type == "delete" else self.new


class ChangeBatch(BaseModel):
    """Events returned by a cursor pull."""

    events: list[ChangeEvent] = Field(default_factory=list)
    cursor: int = 0
