# src/dayfuse/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- Components receive values by injection; only the composition root reads get_settings().
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

ENV_PREFIX = "DAYFUSE"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


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

    # ---- Connector flags ----
    console_enabled: bool
    notifications_supported: bool

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    reminders_db_path: Path

    # ---- Scheduling ----
    reconcile_interval_seconds: float
    stale_grace_seconds: float
    retention_days: float
    timezone: str

    # ---- Calendar export ----
    default_event_minutes: int
    ics_uid_domain: str
    ics_prodid: str

    # ---- Delivery worker ----
    app_root_url: str
    worker_version: str

    @property
    def tzinfo(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            return ZoneInfo("UTC")

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "dayfuse") or "dayfuse"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        notifications_supported = _env_bool(_k("NOTIFICATIONS_SUPPORTED"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/dayfuse"))
        reminders_db_path = _env_path(_k("REMINDERS_DB_PATH"), data_dir / "reminders.sqlite3")

        reconcile_interval_seconds = _env_float(_k("RECONCILE_INTERVAL_SECONDS"), 60.0)
        stale_grace_seconds = _env_float(_k("STALE_GRACE_SECONDS"), 24 * 60 * 60.0)
        retention_days = _env_float(_k("RETENTION_DAYS"), 7.0)
        timezone = _env(_k("TIMEZONE"), "UTC").strip() or "UTC"

        default_event_minutes = _env_int(_k("DEFAULT_EVENT_MINUTES"), 30)
        ics_uid_domain = _env(_k("ICS_UID_DOMAIN"), "dayfuse.app").strip() or "dayfuse.app"
        ics_prodid = _env(_k("ICS_PRODID"), "-//DayFuse//Task Reminder//EN")

        app_root_url = _env(_k("APP_ROOT_URL"), "/").strip() or "/"
        worker_version = _env(_k("WORKER_VERSION"), "1")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            notifications_supported=notifications_supported,
            data_dir=data_dir,
            reminders_db_path=reminders_db_path,
            reconcile_interval_seconds=reconcile_interval_seconds,
            stale_grace_seconds=stale_grace_seconds,
            retention_days=retention_days,
            timezone=timezone,
            default_event_minutes=default_event_minutes,
            ics_uid_domain=ics_uid_domain,
            ics_prodid=ics_prodid,
            app_root_url=app_root_url,
            worker_version=worker_version,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
