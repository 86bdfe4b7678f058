# src/rtodo/view/store.py

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import date
from enum import StrEnum

from ..core.ports import EventSource, TaskOperations, Unsubscribe
from ..errors import RtodoError
from ..events.bus import TASK_EVENTS
from ..tasks.task_models import Position, Task, parse_day

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class ViewPhase(StrEnum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class ViewContext:
    """
    Which date a view is showing.

    day=None means "unset": the view shows today without pinning it, and
    mutations do not reload on their own (the caller decides what to load next).
    """

    day: date | None = None

    @property
    def pinned(self) -> bool:
        return self.day is not None


@dataclass(frozen=True, slots=True)
class ViewState:
    tasks: tuple[Task, ...] = ()
    loading: bool = False
    error: str | None = None
    phase: ViewPhase = ViewPhase.IDLE


@dataclass(frozen=True, slots=True)
class TaskCounts:
    total: int
    active: int
    completed: int


@dataclass(slots=True)
class _Subscribers:
    listeners: list[Listener] = field(default_factory=list)

    def notify(self) -> None:
        for listener in list(self.listeners):
            try:
                listener()
            except Exception:
                logger.exception("View listener failed")


class ViewStore:
    """
    In-memory projection of one date's tasks for a window.

    Every load is a full replace, so duplicate or late bus events are harmless.
    Errors from the service are caught and kept in state.error; the last good
    task list stays visible.
    """

    def __init__(self, service: TaskOperations, *, today: Callable[[], date] | None = None) -> None:
        self._service = service
        self._today = today or service.today
        self._state = ViewState()
        self._subs = _Subscribers()
        self.context = ViewContext()
        # bumped per load; a load that finishes after a newer one started is dropped
        self._generation = 0

    # ---- observable state ----

    def get_state(self) -> ViewState:
        return self._state

    def subscribe(self, listener: Listener) -> Unsubscribe:
        self._subs.listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._subs.listeners:
                self._subs.listeners.remove(listener)

        return unsubscribe

    def _set_state(self, **updates) -> None:
        self._state = replace(self._state, **updates)
        self._subs.notify()

    def _fail(self, error: Exception) -> None:
        logger.warning("View operation failed: %s", error)
        self._set_state(loading=False, error=str(error), phase=ViewPhase.ERROR)

    # ---- loading ----

    async def load(self, day: date | str | None = None) -> None:
        """Load day (or today) and make it the current context."""
        try:
            ctx = ViewContext(None if day is None else parse_day(day))
        except RtodoError as e:
            self._fail(e)
            return
        self.context = ctx
        await self._load(ctx)

    async def _load(self, ctx: ViewContext) -> None:
        self._generation += 1
        generation = self._generation
        self._set_state(loading=True, error=None, phase=ViewPhase.LOADING)
        try:
            tasks = await self._service.list_by_date(ctx.day or self._today())
        except RtodoError as e:
            if generation == self._generation:
                self._fail(e)
            return
        if generation != self._generation:
            logger.debug("Dropping superseded load day=%s", ctx.day)
            return
        self._set_state(tasks=tuple(tasks), loading=False, phase=ViewPhase.READY)

    async def reload(self) -> None:
        await self._load(self.context)

    async def _reload_if_pinned(self, ctx: ViewContext | None) -> None:
        ctx = self.context if ctx is None else ctx
        if not ctx.pinned:
            return
        self.context = ctx
        await self._load(ctx)

    # ---- mutations ----

    async def add(self, text: str, day: date | str | None = None, ctx: ViewContext | None = None) -> None:
        try:
            await self._service.add(text, day)
        except RtodoError as e:
            self._fail(e)
            return
        await self._reload_if_pinned(ctx)

    async def toggle(self, task_id: int, ctx: ViewContext | None = None) -> None:
        try:
            await self._service.toggle(task_id)
        except RtodoError as e:
            self._fail(e)
            return
        await self._reload_if_pinned(ctx)

    async def edit(self, task_id: int, text: str, ctx: ViewContext | None = None) -> None:
        try:
            await self._service.edit(task_id, text)
        except RtodoError as e:
            self._fail(e)
            return
        await self._reload_if_pinned(ctx)

    async def delete(self, task_id: int, ctx: ViewContext | None = None) -> None:
        try:
            await self._service.delete(task_id)
        except RtodoError as e:
            self._fail(e)
            return
        await self._reload_if_pinned(ctx)

    async def reorder(self, ordered_ids: Iterable[int], ctx: ViewContext | None = None) -> None:
        try:
            await self._service.reorder(ordered_ids)
        except RtodoError as e:
            self._fail(e)
            return
        await self._reload_if_pinned(ctx)

    async def clear_completed(self, ctx: ViewContext | None = None) -> None:
        try:
            await self._service.clear_completed()
        except RtodoError as e:
            self._fail(e)
            return
        await self._reload_if_pinned(ctx)

    async def move_to_date(
        self,
        task_id: int,
        day: date | str,
        position: Position | str = Position.END,
        ctx: ViewContext | None = None,
    ) -> None:
        try:
            await self._service.move_to_date(task_id, day, position)
        except RtodoError as e:
            self._fail(e)
            return
        await self._reload_if_pinned(ctx)

    # ---- derived ----

    def get_first_incomplete(self) -> Task | None:
        for task in self._state.tasks:
            if not task.completed:
                return task
        return None

    def counts(self) -> TaskCounts:
        tasks = self._state.tasks
        active = sum(1 for t in tasks if not t.completed)
        return TaskCounts(total=len(tasks), active=active, completed=len(tasks) - active)

    # ---- bus ----

    def attach(self, bus: EventSource, events: Iterable[str] = TASK_EVENTS) -> Unsubscribe:
        """Reload the current context whenever another view (or this one) changes data."""

        async def on_event(event_name: str, payload) -> None:
            logger.debug("View reload on %s", event_name)
            await self.reload()

        unsubscribers = [bus.subscribe(name, on_event) for name in events]

        def detach() -> None:
            for unsub in unsubscribers:
                unsub()

        return detach
