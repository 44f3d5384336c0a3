# src/dayfuse/reminders/reminder_api.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timezone, tzinfo

from ..core.state import AppState
from .calendar_export import CalendarArtifact, parse_ics
from .reminder_models import CalendarEvent, Reminder, ReminderState, Task

logger = logging.getLogger(__name__)


def reminder_text(task: Task) -> tuple[str, str]:
    """(title, body) copied into the reminder at schedule time."""
    title = (task.title or "").strip() or "Task Reminder"
    body = (task.description or "").strip() or f"Time for: {title}"
    return title, body


def sync_task_reminder(state: AppState, task: Task, *, tz: tzinfo | None = None) -> Reminder | None:
    """
    Keep the task's reminder in line with the task (call on create and on edit).

    - completed task or no due date/time -> cancel the pending reminder
    - unchanged title/body/due instant   -> keep the existing reminder unless it was cancelled
      (it may already have fired; re-saving the task must not fire it twice)
    - anything else                       -> schedule(), replacing the previous reminder
    """
    if tz is None:
        tz = getattr(state.settings, "tzinfo", None) or timezone.utc
    due_at = task.due_instant(tz)

    if task.completed or due_at is None:
        state.scheduler.cancel(task.id)
        return None

    title, body = reminder_text(task)
    existing = state.scheduler.get(task.id)
    if (
        existing is not None
        and existing.state is not ReminderState.CANCELLED
        and existing.due_at == due_at
        and existing.title == title
        and existing.body == body
        and existing.duration_minutes == task.duration_minutes
    ):
        return existing

    return state.scheduler.schedule(task.id, title, body, due_at, duration_minutes=task.duration_minutes)


def forget_task(state: AppState, task_id: str) -> bool:
    """Task deleted: drop its pending reminder."""
    return state.scheduler.cancel(task_id)


@dataclass(slots=True, frozen=True)
class ExportBundle:
    event: CalendarEvent
    artifact: CalendarArtifact
    google_url: str
    outlook_url: str


def export_for_task(state: AppState, task_id: str) -> ExportBundle | None:
    """
    Everything the UI needs to offer a reminder for manual export.

    Prefers the stored fallback artifact; otherwise derives the event from the reminder.
    How (and whether) the UI surfaces this is a UI policy.
    """
    exporter = state.exporter
    ics = state.scheduler.fallback_artifact(task_id)
    if ics is not None:
        try:
            event = parse_ics(ics)
        except ValueError:
            logger.exception("Stored fallback artifact for task_id=%s is unreadable", task_id)
            event = None
    else:
        event = None

    if event is None:
        reminder = state.scheduler.get(task_id)
        if reminder is None:
            return None
        event = exporter.to_calendar_event(reminder)

    return ExportBundle(
        event=event,
        artifact=exporter.download_artifact(event),
        google_url=exporter.to_provider_url(event, "google"),
        outlook_url=exporter.to_provider_url(event, "outlook"),
    )
