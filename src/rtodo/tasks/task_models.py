# src/rtodo/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum
from typing import Any

from ..errors import ValidationError


class Position(StrEnum):
    """Where move_to_date places a task inside the destination partition."""

    FRONT = "front"
    END = "end"

    @classmethod
    def parse(cls, raw: str | Position) -> Position:
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            raise ValidationError(f"position must be 'front' or 'end', got {raw!r}") from None


@dataclass(frozen=True, slots=True)
class Partition:
    """Unit of manual ordering: all tasks sharing one (date_scope, completed) pair."""

    date_scope: date
    completed: bool


@dataclass(frozen=True, slots=True)
class Task:
    id: int
    text: str
    completed: bool
    created_at: datetime
    sort_order: int
    date_scope: date

    @property
    def partition(self) -> Partition:
        return Partition(self.date_scope, self.completed)

    def to_payload(self) -> dict[str, Any]:
        """JSON-friendly representation used in bus events."""
        return {
            "id": self.id,
            "text": self.text,
            "completed": self.completed,
            "created_at": self.created_at.isoformat(),
            "sort_order": self.sort_order,
            "date_scope": self.date_scope.isoformat(),
        }


def parse_day(raw: date | str) -> date:
    """Accept a date or an ISO YYYY-MM-DD string."""
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError(f"invalid date: {raw!r}")
    try:
        return date.fromisoformat(raw.strip())
    except ValueError:
        raise ValidationError(f"invalid date: {raw!r}") from None


def clean_text(text: str) -> str:
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("text is required")
    return text.strip()
