# src/rtodo/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The service, bus and view store depend on Protocols instead of concrete classes.
This keeps the storage backend and the event transport swappable and makes testing easier.
"""

from collections.abc import Callable, Iterable
from datetime import date
from typing import Any, Awaitable, Protocol

from ..tasks.task_models import Position, Task

EventHandler = Callable[[str, Any], "Awaitable[None] | None"]
Unsubscribe = Callable[[], None]


class EventTransport(Protocol):
    """
    Carries encoded bus messages between EventBus instances.

    Implementations: same-process broadcast channel, cross-process Unix sockets.
    A transport delivers every sent message to every attached receiver, sender included.
    """

    def attach(self, receiver: Callable[[bytes], None]) -> None: ...
    def detach(self) -> None: ...
    def send(self, message: bytes) -> None: ...


class EventPublisher(Protocol):
    def publish(self, event_name: str, payload: Any = None) -> None: ...


class EventSource(Protocol):
    def subscribe(self, event_name: str, handler: EventHandler) -> Unsubscribe: ...


class TaskRepo(Protocol):
    """Synchronous storage API (TaskStore)."""

    def today(self) -> date: ...
    def count(self) -> int: ...
    def list_all(self) -> list[Task]: ...
    def list_by_date(self, day: date | str) -> list[Task]: ...
    def list_dates_at_or_before(self, today: date | str | None = None) -> list[date]: ...
    def list_dates_after(self, today: date | str | None = None) -> list[date]: ...
    def add(self, text: str, day: date | str | None = None) -> Task: ...
    def toggle(self, task_id: int) -> Task: ...
    def edit(self, task_id: int, text: str) -> Task: ...
    def delete(self, task_id: int) -> bool: ...
    def clear_completed(self) -> int: ...
    def reorder(self, ordered_ids: Iterable[int]) -> None: ...
    def move_to_date(
            self,
            task_id: int,
            target_day: date | str,
            position: Position | str = Position.END,
    ) -> Task: ...
    def close(self) -> None: ...


class TaskOperations(Protocol):
    """Async caller-facing API (TaskService); what the view store talks to."""

    def today(self) -> date: ...
    async def list_by_date(self, day: date | str) -> list[Task]: ...
    async def add(self, text: str, day: date | str | None = None) -> Task: ...
    async def toggle(self, task_id: int) -> Task: ...
    async def edit(self, task_id: int, text: str) -> Task: ...
    async def delete(self, task_id: int) -> bool: ...
    async def clear_completed(self) -> int: ...
    async def reorder(self, ordered_ids: Iterable[int]) -> None: ...
    async def move_to_date(
            self,
            task_id: int,
            target_day: date | str,
            position: Position | str = Position.END,
    ) -> Task: ...
