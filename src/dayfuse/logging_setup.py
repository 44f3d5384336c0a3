# src/dayfuse/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FILE_NAME = "dayfuse.log"

# Components that run on the background loop; their INFO lines would interleave with the REPL.
BACKGROUND_LOGGERS = (
    "dayfuse.reminders.reminder_scheduler",
    "dayfuse.reminders.reminder_store",
    "dayfuse.connectors.background_runner",
    "dayfuse.worker.",
)


def level_from_name(name: str | None, default: int = logging.INFO) -> int:
    """'debug' / 'WARNING' / '10' -> logging level; unknown names give `default`."""
    raw = str(name or "").strip().upper()
    if raw.isdigit():
        return int(raw)
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else default


class _ConsoleNoiseFilter(logging.Filter):
    """
    Console filter for the interactive REPL:
    - dayfuse logs pass, background components only at WARNING+
    - captured Python warnings ('py.warnings') and third-party logs only at ERROR+
    """

    def __init__(self, background_level: int = logging.WARNING) -> None:
        super().__init__()
        self._background_level = background_level

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        if name.startswith("dayfuse."):
            if name.startswith(BACKGROUND_LOGGERS):
                return record.levelno >= self._background_level
            return True

        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/dayfuse",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Console handler (filtered, for the REPL) + file handler (everything) under log_dir.

    Call once, before the first log line. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Re-running setup must not duplicate output.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(threadName)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    # warnings.warn(...) -> 'py.warnings' logger
    logging.captureWarnings(True)
    return log_file
