# src/rtodo/events/bus.py

from __future__ import annotations

import asyncio
import contextlib
import inspect
import json
import logging
from collections.abc import Mapping
from typing import Any

from ..core.ports import EventHandler, EventTransport, Unsubscribe
from ..errors import SerializationError
from .debounce import Debouncer

logger = logging.getLogger(__name__)

TASK_ADDED = "task-added"
TASK_UPDATED = "task-updated"
TASK_DELETED = "task-deleted"
TASKS_REORDERED = "tasks-reordered"
TASKS_CLEARED = "tasks-cleared"

TASK_EVENTS = (TASK_ADDED, TASK_UPDATED, TASK_DELETED, TASKS_REORDERED, TASKS_CLEARED)

# seconds
DEFAULT_DEBOUNCE: dict[str, float] = {TASKS_REORDERED: 0.080}


def encode_message(event_name: str, payload: Any) -> bytes:
    try:
        raw = json.dumps(
            {"event": event_name, "payload": payload},
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError) as e:
        raise SerializationError(f"payload for {event_name!r} is not JSON-serializable: {e}") from e
    return raw.encode("utf-8")


def decode_message(data: bytes) -> tuple[str, Any] | None:
    try:
        obj = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return None
    if not isinstance(obj, dict) or not isinstance(obj.get("event"), str):
        return None
    return obj["event"], obj.get("payload")


class EventBus:
    """
    Pub/sub for change notifications, fire-and-forget.

    publish() encodes the payload as JSON and hands it to the transport; the
    transport brings it back to every attached bus (this one included, and buses
    in other processes for the socket transport), which then runs the local
    handlers for that event name.

    Debounced names (tasks-reordered by default) are coalesced: a burst of
    publishes inside the window yields one delivery with the latest payload.

    Handler exceptions are logged and swallowed so one bad subscriber cannot
    block the others or the publisher.
    """

    def __init__(
        self,
        transport: EventTransport,
        *,
        debounce: Mapping[str, float] | None = None,
    ) -> None:
        self._transport = transport
        self._handlers: dict[str, list[EventHandler]] = {}
        self._debouncer = Debouncer(DEFAULT_DEBOUNCE if debounce is None else debounce, self._send)
        self._tasks: set[asyncio.Task[Any]] = set()
        self._closed = False
        transport.attach(self._receive)

    @property
    def debouncer(self) -> Debouncer:
        return self._debouncer

    def subscribe(self, event_name: str, handler: EventHandler) -> Unsubscribe:
        self._handlers.setdefault(event_name, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_name)
            if handlers is None:
                return
            with contextlib.suppress(ValueError):
                handlers.remove(handler)

        return unsubscribe

    def publish(self, event_name: str, payload: Any = None) -> None:
        # Encode up front so a bad payload fails at the call site, debounced or not.
        message = encode_message(event_name, payload)
        if self._closed:
            logger.debug("Bus closed; dropping event=%s", event_name)
            return
        if self._debouncer.wants(event_name):
            self._debouncer.push(event_name, message)
            return
        self._transport.send(message)

    def _send(self, event_name: str, message: bytes) -> None:
        if self._closed:
            return
        self._transport.send(message)

    def _receive(self, data: bytes) -> None:
        decoded = decode_message(data)
        if decoded is None:
            logger.warning("Ignoring malformed bus message (%d bytes)", len(data))
            return
        event_name, payload = decoded

        for handler in list(self._handlers.get(event_name, ())):
            try:
                result = handler(event_name, payload)
            except Exception:
                logger.exception("Event handler failed event=%s", event_name)
                continue
            if inspect.isawaitable(result):
                self._schedule(event_name, result)

    def _schedule(self, event_name: str, awaitable: Any) -> None:
        try:
            task = asyncio.ensure_future(awaitable, loop=asyncio.get_running_loop())
        except RuntimeError:
            logger.warning("No running loop for async handler event=%s", event_name)
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        self._tasks.add(task)

        def _done(t: asyncio.Task[Any]) -> None:
            self._tasks.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.error("Async event handler failed event=%s", event_name, exc_info=exc)

        task.add_done_callback(_done)

    async def drain(self) -> None:
        """Wait for async handlers already scheduled (tests, shutdown)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def flush(self) -> None:
        self._debouncer.flush()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._debouncer.cancel_all()
        self._transport.detach()
        self._handlers.clear()
