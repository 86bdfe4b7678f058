# src/rtodo/events/__init__.py

from .bus import (
    TASK_ADDED,
    TASK_DELETED,
    TASK_EVENTS,
    TASK_UPDATED,
    TASKS_CLEARED,
    TASKS_REORDERED,
    EventBus,
)
from .debounce import Debouncer, DebounceState
from .transports import LocalBroadcastTransport, UnixSocketTransport, create_transport

__all__ = [
    "TASK_ADDED",
    "TASK_DELETED",
    "TASK_EVENTS",
    "TASK_UPDATED",
    "TASKS_CLEARED",
    "TASKS_REORDERED",
    "DebounceState",
    "Debouncer",
    "EventBus",
    "LocalBroadcastTransport",
    "UnixSocketTransport",
    "create_transport",
]
