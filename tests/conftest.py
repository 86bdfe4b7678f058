# tests/conftest.py

from __future__ import annotations

import uuid
from datetime import date, datetime
from pathlib import Path
from types import SimpleNamespace

import pytest
import pytest_asyncio

from rtodo.events.bus import TASK_EVENTS, EventBus
from rtodo.events.transports import LocalBroadcastTransport
from rtodo.tasks.task_service import TaskService
from rtodo.tasks.task_store import TaskStore
from rtodo.view.store import ViewStore

from .fakes import EventRecorder, FixedClock

TODAY = date(2025, 1, 1)


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 1, 1, 9, 30, 0))


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "rtodo.sqlite3"


@pytest.fixture()
def store(db_path: Path, clock: FixedClock) -> TaskStore:
    """
    Real SQLite store on a per-test file.

    NOTE: ordering and transaction behaviour live in SQL, so we never fake the store.
    """
    return TaskStore(db_path, busy_timeout=2.0, clock=clock)


@pytest.fixture()
def channel() -> str:
    # unique per test so buses from different tests never hear each other
    return f"test-{uuid.uuid4().hex}"


@pytest.fixture()
def bus(channel: str):
    b = EventBus(LocalBroadcastTransport(channel))
    yield b
    b.close()


@pytest.fixture()
def recorder(bus: EventBus) -> EventRecorder:
    return EventRecorder(bus, TASK_EVENTS)


@pytest_asyncio.fixture()
async def service(store: TaskStore, bus: EventBus):
    svc = TaskService(store, bus)
    yield svc
    await svc.aclose()


@pytest.fixture()
def view(service: TaskService) -> ViewStore:
    return ViewStore(service)


@pytest.fixture()
def settings(tmp_path: Path, channel: str) -> SimpleNamespace:
    """
    Minimal settings object compatible with the composition root.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="rtodo-test",
        log_level="DEBUG",
        console_enabled=False,
        data_dir=tmp_path,
        db_path=tmp_path / "app.sqlite3",
        busy_timeout_seconds=2.0,
        event_transport="local",
        event_channel=channel,
        event_socket_dir=tmp_path / "bus",
        reorder_debounce_ms=10,
        telemetry_log_every=20,
    )
