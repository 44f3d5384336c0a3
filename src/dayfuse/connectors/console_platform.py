# src/dayfuse/connectors/console_platform.py

from __future__ import annotations

"""
Console implementations of the platform ports.

The terminal plays the foreground UI:
- notifications are printed and kept "open" until closed or clicked (/click),
- the consent prompt is a y/n question,
- the worker runtime sees a single foreground client ("console") while the REPL runs.
"""

import asyncio
import logging
import threading
from datetime import datetime
from typing import Any

logger = logging.getLogger(__name__)

CONSOLE_CLIENT_ID = "console"


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


class ConsoleAlerts:
    """Toast surface: one line per alert."""

    def info(self, message: str) -> None:
        _print_ts(f"[INFO] {message}")

    def warning(self, message: str) -> None:
        _print_ts(f"[WARN] {message}")

    def error(self, message: str) -> None:
        _print_ts(f"[ERROR] {message}")


class ConsoleNotificationPlatform:
    def __init__(self, *, supported: bool = True, permission: str = "default") -> None:
        self._supported = supported
        self._permission = permission
        self._lock = threading.Lock()
        self._open: dict[str, dict[str, Any]] = {}

    def query_permission(self) -> str | None:
        if not self._supported:
            return None
        return self._permission

    def set_permission(self, value: str) -> None:
        """External settings change (granted <-> denied)."""
        self._permission = value

    async def request_permission(self) -> str:
        if not self._supported:
            raise RuntimeError("notifications are not supported on this console")
        loop = asyncio.get_running_loop()
        answer = await loop.run_in_executor(None, input, "Allow reminder notifications? [y/N]: ")
        self._permission = "granted" if answer.strip().lower() in ("y", "yes") else "denied"
        return self._permission

    async def show_notification(
            self,
            *,
            title: str,
            body: str,
            tag: str,
            data: dict[str, Any] | None = None,
    ) -> None:
        if self._permission != "granted":
            raise RuntimeError("notification permission not granted")
        with self._lock:
            self._open[tag] = {"title": title, "body": body, "data": dict(data or {})}
        _print_ts(f"[REMINDER] {title}: {body}  (/click {tag})")

    def open_notifications(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return dict(self._open)

    def close(self, tag: str) -> None:
        with self._lock:
            self._open.pop(tag, None)


class ConsoleWorkerRuntime:
    """Host side of the delivery worker for the console."""

    def __init__(self, platform: ConsoleNotificationPlatform) -> None:
        self._platform = platform
        self._clients: set[str] = set()
        self._lock = threading.Lock()
        self.opened_urls: list[str] = []

    def attach(self, client_id: str = CONSOLE_CLIENT_ID) -> None:
        with self._lock:
            self._clients.add(client_id)

    def detach(self, client_id: str = CONSOLE_CLIENT_ID) -> None:
        with self._lock:
            self._clients.discard(client_id)

    async def match_clients(self) -> list[str]:
        with self._lock:
            return sorted(self._clients)

    async def claim_clients(self) -> None:
        logger.info("Delivery worker claimed %d client(s)", len(self._clients))

    async def skip_waiting(self) -> None:
        logger.info("Delivery worker skip-waiting requested")

    async def close_notification(self, tag: str) -> None:
        self._platform.close(tag)

    async def focus_client(self, client_id: str) -> None:
        _print_ts(f"[WORKER] focus {client_id}")

    async def open_window(self, url: str) -> None:
        self.opened_urls.append(url)
        _print_ts(f"[WORKER] open {url}")

    async def post_message(self, client_id: str, payload: dict[str, Any]) -> None:
        _print_ts(f"[WORKER] -> {client_id}: {payload}")
