# src/rtodo/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- picks the event transport once,
- wires store, bus, service and view into AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.state import AppState
from ..events.bus import TASKS_REORDERED, EventBus
from ..events.transports import create_transport
from ..tasks.task_service import TaskService
from ..tasks.task_store import TaskStore
from ..telemetry import LatencyRecorder
from ..view.store import ViewStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    if settings.event_transport == "socket":
        settings.event_socket_dir.mkdir(parents=True, exist_ok=True)


def create_app_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Must run inside an event loop: the socket transport registers its reader on it.
    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    store = TaskStore(settings.db_path, busy_timeout=settings.busy_timeout_seconds)
    bus = EventBus(
        create_transport(settings),
        debounce={TASKS_REORDERED: settings.reorder_debounce_ms / 1000.0},
    )
    service = TaskService(
        store,
        bus,
        telemetry=LatencyRecorder(log_every=settings.telemetry_log_every),
    )
    view = ViewStore(service)
    detach = view.attach(bus)

    logger.info(
        "App state ready db=%s transport=%s",
        settings.db_path,
        settings.event_transport,
    )
    return AppState(settings=settings, bus=bus, tasks=service, view=view, detach_view=detach)
