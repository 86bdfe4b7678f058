# src/rtodo/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState inside the event loop, runs the console
until /exit (or, with the console disabled, just keeps the view in sync with
the other windows until Ctrl+C), then shuts down cleanly.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from ..config import get_settings
from ..logging_setup import setup_logging
from .bootstrap import create_app_state
from .console import run_console_loop

logger = logging.getLogger(__name__)


async def _run(settings) -> None:
    state = create_app_state(settings=settings)
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Some platforms (Windows) do not support loop signal handlers.
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, stop.set)

    try:
        if settings.console_enabled:
            console = asyncio.create_task(run_console_loop(state))
            waiter = asyncio.create_task(stop.wait())
            await asyncio.wait({console, waiter}, return_when=asyncio.FIRST_COMPLETED)
            waiter.cancel()
            if not console.done():
                logger.info("Signal received, shutting down...")
                console.cancel()
        else:
            await state.view.load()
            logger.info("Console disabled. Keeping view in sync. Press Ctrl+C to stop.")
            await stop.wait()
    finally:
        await state.aclose()


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_run(settings))
    logger.info("Bye.")


if __name__ == "__main__":
    main()
