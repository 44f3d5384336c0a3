# src/dayfuse/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the notification platform, storage and UI surfaces swappable and makes testing easier.
"""

from datetime import datetime
from typing import Any, Awaitable, Protocol

from ..reminders.reminder_models import Reminder


class NotificationPlatform(Protocol):
    """
    OS/browser notification facility.

    query_permission() returns the raw platform value ("default" | "granted" | "denied"),
    or None when the platform has no notification concept at all.
    """

    def query_permission(self) -> str | None: ...

    def request_permission(self) -> Awaitable[str]: ...

    def show_notification(
            self,
            *,
            title: str,
            body: str,
            tag: str,
            data: dict[str, Any] | None = None,
    ) -> Awaitable[None]: ...


class UserAlerts(Protocol):
    """Toast/alert surface of the foreground UI."""

    def info(self, message: str) -> None: ...
    def warning(self, message: str) -> None: ...
    def error(self, message: str) -> None: ...


class ReminderRepo(Protocol):
    @property
    def durable(self) -> bool: ...

    def get_reminder(self, task_id: str) -> Reminder | None: ...
    def list_reminders(self) -> list[Reminder]: ...
    def list_pending(self) -> list[Reminder]: ...
    def save_reminder(self, reminder: Reminder) -> None: ...
    # Drops fired/cancelled reminders last updated before older_than, with their artifacts.
    def prune_terminal(self, older_than: datetime) -> int: ...

    # Fallback artifacts (ICS text keyed by task_id)
    def save_artifact(self, task_id: str, ics: str) -> None: ...
    def get_artifact(self, task_id: str) -> str | None: ...
    def delete_artifact(self, task_id: str) -> None: ...


class WorkerRuntime(Protocol):
    """
    Host side of the delivery worker: the effects it can perform.

    Client ids are opaque strings naming open foreground contexts.
    """

    def match_clients(self) -> Awaitable[list[str]]: ...
    def claim_clients(self) -> Awaitable[None]: ...
    def skip_waiting(self) -> Awaitable[None]: ...
    def close_notification(self, tag: str) -> Awaitable[None]: ...
    def focus_client(self, client_id: str) -> Awaitable[None]: ...
    def open_window(self, url: str) -> Awaitable[None]: ...
    def post_message(self, client_id: str, payload: dict[str, Any]) -> Awaitable[None]: ...
