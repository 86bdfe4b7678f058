# src/rtodo/cli/console.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from datetime import datetime

from ..core.state import AppState
from ..errors import RtodoError
from .commands import registry as command_registry
from .commands import render_view

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


async def _read_line(prompt: str) -> str:
    """
    input() on a daemon thread.

    A cancelled console leaves that thread blocked on stdin; being a daemon and
    outside the loop's executor, it cannot hold up interpreter shutdown.
    """
    loop = asyncio.get_running_loop()
    fut: asyncio.Future[str] = loop.create_future()

    def deliver(line: str | None, exc: BaseException | None) -> None:
        if fut.done():
            return
        if exc is not None:
            fut.set_exception(exc)
        else:
            fut.set_result(line or "")

    def run() -> None:
        try:
            line = input(prompt)
        except (EOFError, KeyboardInterrupt, OSError) as e:
            line, exc = None, e
        else:
            exc = None
        # loop may be gone by the time a line arrives
        with contextlib.suppress(RuntimeError):
            loop.call_soon_threadsafe(deliver, line, exc)

    threading.Thread(target=run, name="rtodo-console-input", daemon=True).start()
    return await fut


async def run_console_loop(state: AppState) -> None:
    """
    Line-based front end over the view store.

    input() runs on a daemon thread so bus events from other windows keep
    reloading the view while the prompt is waiting.
    """
    logger.info("Console started.")
    _print_ts("[CONSOLE] Use /help for commands. Plain text adds a task. Use /exit to quit.\n")

    await state.view.load()
    print(render_view(state))

    while True:
        try:
            line = (await _read_line(">>> ")).strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not line:
            continue

        if line.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        if not line.startswith("/"):
            line = f"/add {line}"

        try:
            reply = await command_registry.handle(state, line)
        except RtodoError as e:
            reply = f"Error: {e}"
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."

        if reply is not None:
            print(reply)

    logger.info("Console finished.")
