# src/rtodo/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- Nothing required at import time; every value has a local default.
- All local state (database, logs, event sockets) under one gitignored data dir.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "RTODO"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    console_enabled: bool

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    db_path: Path

    # ---- Storage ----
    busy_timeout_seconds: float

    # ---- Events ----
    event_transport: str
    event_channel: str
    event_socket_dir: Path
    reorder_debounce_ms: int

    # ---- Telemetry ----
    telemetry_log_every: int

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "rtodo").strip() or "rtodo"
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/rtodo"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "rtodo.sqlite3")

        # SQLite lock wait before a write fails with TransactionConflictError.
        busy_timeout_seconds = max(0.0, _env_float(_k("BUSY_TIMEOUT_SECONDS"), 5.0))

        # "socket" when main and compact windows run as separate processes.
        event_transport = _env(_k("EVENT_TRANSPORT"), "local").strip().lower() or "local"
        event_channel = _env(_k("EVENT_CHANNEL"), "rtodo-events").strip() or "rtodo-events"
        event_socket_dir = _env_path(_k("EVENT_SOCKET_DIR"), data_dir / "bus")
        reorder_debounce_ms = max(0, _env_int(_k("REORDER_DEBOUNCE_MS"), 80))

        telemetry_log_every = max(1, _env_int(_k("TELEMETRY_LOG_EVERY"), 20))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            data_dir=data_dir,
            db_path=db_path,
            busy_timeout_seconds=busy_timeout_seconds,
            event_transport=event_transport,
            event_channel=event_channel,
            event_socket_dir=event_socket_dir,
            reorder_debounce_ms=reorder_debounce_ms,
            telemetry_log_every=telemetry_log_every,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
