# src/rtodo/core/state.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..events.bus import EventBus
from ..tasks.task_service import TaskService
from ..view.store import ViewStore
from .ports import Unsubscribe

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: object

    bus: EventBus
    tasks: TaskService
    view: ViewStore

    detach_view: Unsubscribe | None = None
    closed: bool = field(default=False)

    async def aclose(self) -> None:
        """Deliver pending debounced events, then stop the writer and the bus."""
        if self.closed:
            return
        self.closed = True
        if self.detach_view is not None:
            self.detach_view()
        try:
            self.bus.flush()
        except Exception:
            logger.exception("Bus flush failed on shutdown.")
        await self.bus.drain()
        await self.tasks.aclose()
        self.bus.close()
