# src/dayfuse/reminders/errors.py

from __future__ import annotations


class ReminderError(Exception):
    """Base class for reminder subsystem errors."""


class CapabilityUnavailable(ReminderError):
    """The platform has no notification concept. Always resolved to DENIED."""


class PromptDismissed(ReminderError):
    """The consent prompt was ignored or declined. Always resolved to DENIED."""


class DeliveryFailed(ReminderError):
    """The primary channel raised while showing a notification."""

    def __init__(self, task_id: str, cause: BaseException | None = None) -> None:
        super().__init__(f"primary delivery failed for task_id={task_id}: {cause!r}")
        self.task_id = task_id
        self.cause = cause


class StorageUnavailable(ReminderError):
    """Durable storage could not be opened; reminders live in memory only."""


class InvalidTransition(ReminderError, ValueError):
    """A reminder was asked to leave a terminal state."""
