# src/rtodo/events/debounce.py

"""
Per-event-name debounce.

Each debounced event name owns one slot with an explicit state:

    IDLE --push--> PENDING --timer/flush--> FLUSHED --push--> PENDING ...

While PENDING, every push replaces the payload and restarts the timer, so a burst
becomes a single delivery carrying the latest payload.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class DebounceState(StrEnum):
    IDLE = "idle"
    PENDING = "pending"
    FLUSHED = "flushed"


@dataclass(slots=True)
class _Slot:
    state: DebounceState = DebounceState.IDLE
    payload: Any = None
    handle: asyncio.TimerHandle | None = None


class Debouncer:
    def __init__(
        self,
        delays: Mapping[str, float],
        deliver: Callable[[str, Any], None],
    ) -> None:
        # delays are in seconds; names with delay <= 0 are not debounced
        self._delays = {name: float(d) for name, d in delays.items() if float(d) > 0}
        self._deliver = deliver
        self._slots: dict[str, _Slot] = {}

    def wants(self, event_name: str) -> bool:
        return event_name in self._delays

    def state(self, event_name: str) -> DebounceState:
        slot = self._slots.get(event_name)
        return DebounceState.IDLE if slot is None else slot.state

    def push(self, event_name: str, payload: Any) -> None:
        """Must be called from a running event loop."""
        loop = asyncio.get_running_loop()
        slot = self._slots.setdefault(event_name, _Slot())
        if slot.handle is not None:
            slot.handle.cancel()
        slot.payload = payload
        slot.state = DebounceState.PENDING
        slot.handle = loop.call_later(self._delays[event_name], self._fire, event_name)

    def _fire(self, event_name: str) -> None:
        slot = self._slots.get(event_name)
        if slot is None or slot.state is not DebounceState.PENDING:
            return
        payload = slot.payload
        slot.state = DebounceState.FLUSHED
        slot.payload = None
        slot.handle = None
        try:
            self._deliver(event_name, payload)
        except Exception:
            logger.exception("Debounced delivery failed event=%s", event_name)

    def flush(self) -> None:
        """Deliver everything pending right now."""
        for name, slot in list(self._slots.items()):
            if slot.state is DebounceState.PENDING:
                if slot.handle is not None:
                    slot.handle.cancel()
                self._fire(name)

    def cancel_all(self) -> None:
        for slot in self._slots.values():
            if slot.handle is not None:
                slot.handle.cancel()
        self._slots.clear()
