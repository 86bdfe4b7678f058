# src/rtodo/tasks/write_queue.py

"""
Single-writer FIFO queue.

All writes of one process go through one worker coroutine, so at most one logical
write is in flight and writes apply in submission order. The blocking SQLite call
runs in a worker thread; the event loop never blocks on the database lock.

A failed write resolves its own future with the exception and the worker moves on.
Once a write has started it runs to commit or rollback even if its caller is cancelled.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from ..errors import StorageUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class _Job:
    fn: Callable[..., Any]
    args: tuple[Any, ...]
    future: asyncio.Future[Any]
    label: str


class WriteQueue:
    def __init__(self) -> None:
        self._queue: asyncio.Queue[_Job] | None = None
        self._worker: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def pending(self) -> int:
        return 0 if self._queue is None else self._queue.qsize()

    def _ensure_worker(self) -> asyncio.Queue[_Job]:
        if self._queue is None:
            self._queue = asyncio.Queue()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(
                self._run(self._queue), name="rtodo-write-queue"
            )
        return self._queue

    async def submit(self, fn: Callable[..., T], *args: Any, label: str = "") -> T:
        """Queue fn(*args) behind every earlier write and await its result."""
        if self._closed:
            raise StorageUnavailableError("TaskService is closed")
        queue = self._ensure_worker()
        fut: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        await queue.put(_Job(fn=fn, args=args, future=fut, label=label or getattr(fn, "__name__", "write")))
        # shield: a cancelled caller must not abort a write that already started
        return await asyncio.shield(fut)

    async def _run(self, queue: asyncio.Queue[_Job]) -> None:
        while True:
            job = await queue.get()
            try:
                result = await asyncio.to_thread(job.fn, *job.args)
            except Exception as e:
                logger.debug("Write %s failed: %s", job.label, e)
                if not job.future.done():
                    job.future.set_exception(e)
            else:
                if not job.future.done():
                    job.future.set_result(result)
            finally:
                queue.task_done()

    async def drain(self) -> None:
        if self._queue is not None:
            await self._queue.join()

    async def aclose(self) -> None:
        """Finish queued writes, then stop the worker."""
        self._closed = True
        await self.drain()
        if self._worker is not None:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None
