# src/rtodo/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

# Chatty at INFO: socket attach/prune lines and periodic p95 reports.
_QUIET_BELOW_WARNING = ("rtodo.events.transports", "rtodo.telemetry")


class _ConsoleNoiseFilter(logging.Filter):
    """Keep the prompt readable: rtodo logs pass, noisy rtodo modules and everything else need a higher level."""

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name.startswith(_QUIET_BELOW_WARNING):
            return record.levelno >= logging.WARNING
        if name == "rtodo" or name.startswith("rtodo."):
            return True
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/rtodo",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Filtered stderr handler for the console, full-detail rtodo.log next to the database.

    Call once, before the first log line. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "rtodo.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    to_file = logging.FileHandler(log_file, encoding="utf-8")
    to_file.setLevel(file_level)
    to_file.setFormatter(fmt)
    root.addHandler(to_file)

    return log_file
