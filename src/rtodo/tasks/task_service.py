# src/rtodo/tasks/task_service.py

"""
Async facade over TaskStore.

- reads run in a worker thread and may overlap each other
- writes go through one WriteQueue (FIFO, one in flight per process)
- events are published only after the write committed
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from datetime import date

from ..core.ports import EventPublisher, TaskRepo
from ..events.bus import TASK_ADDED, TASK_DELETED, TASK_UPDATED, TASKS_CLEARED, TASKS_REORDERED
from ..telemetry import LatencyRecorder
from .task_models import Position, Task
from .write_queue import WriteQueue

logger = logging.getLogger(__name__)


class TaskService:
    def __init__(
        self,
        store: TaskRepo,
        bus: EventPublisher,
        *,
        telemetry: LatencyRecorder | None = None,
        queue: WriteQueue | None = None,
    ) -> None:
        self._store = store
        self._bus = bus
        self._telemetry = telemetry or LatencyRecorder()
        self._queue = queue or WriteQueue()

    @property
    def store(self) -> TaskRepo:
        return self._store

    @property
    def telemetry(self) -> LatencyRecorder:
        return self._telemetry

    def today(self) -> date:
        return self._store.today()

    # ---- reads ----

    async def list_all(self) -> list[Task]:
        return await asyncio.to_thread(self._store.list_all)

    async def list_by_date(self, day: date | str) -> list[Task]:
        return await asyncio.to_thread(self._store.list_by_date, day)

    async def list_dates_at_or_before(self, today: date | str | None = None) -> list[date]:
        return await asyncio.to_thread(self._store.list_dates_at_or_before, today)

    async def list_dates_after(self, today: date | str | None = None) -> list[date]:
        return await asyncio.to_thread(self._store.list_dates_after, today)

    # ---- writes ----

    async def add(self, text: str, day: date | str | None = None) -> Task:
        async with self._telemetry.measure("db.add"):
            task = await self._queue.submit(self._store.add, text, day, label="add")
        self._bus.publish(TASK_ADDED, {"task": task.to_payload()})
        return task

    async def toggle(self, task_id: int) -> Task:
        async with self._telemetry.measure("db.toggle"):
            task = await self._queue.submit(self._store.toggle, task_id, label="toggle")
        self._bus.publish(TASK_UPDATED, {"task": task.to_payload(), "action": "toggled"})
        return task

    async def edit(self, task_id: int, text: str) -> Task:
        task = await self._queue.submit(self._store.edit, task_id, text, label="edit")
        self._bus.publish(TASK_UPDATED, {"task": task.to_payload(), "action": "edited"})
        return task

    async def delete(self, task_id: int) -> bool:
        removed = await self._queue.submit(self._store.delete, task_id, label="delete")
        if removed:
            self._bus.publish(TASK_DELETED, {"id": int(task_id)})
        return removed

    async def clear_completed(self) -> int:
        n = await self._queue.submit(self._store.clear_completed, label="clear_completed")
        if n > 0:
            self._bus.publish(TASKS_CLEARED, {"count": n})
        return n

    async def reorder(self, ordered_ids: Iterable[int]) -> None:
        ids = [int(i) for i in ordered_ids]
        async with self._telemetry.measure("db.reorder"):
            await self._queue.submit(self._store.reorder, ids, label="reorder")
        self._bus.publish(TASKS_REORDERED, {"ids": ids})

    async def move_to_date(
        self,
        task_id: int,
        target_day: date | str,
        position: Position | str = Position.END,
    ) -> Task:
        async with self._telemetry.measure("db.move"):
            task = await self._queue.submit(
                self._store.move_to_date, task_id, target_day, position, label="move_to_date"
            )
        self._bus.publish(TASKS_REORDERED, {"ids": [task.id]})
        return task

    async def aclose(self) -> None:
        await self._queue.aclose()
        self._store.close()
        logger.info("TaskService closed")
