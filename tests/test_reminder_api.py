# tests/test_reminder_api.py

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from dayfuse.reminders.reminder_api import export_for_task, forget_task, reminder_text, sync_task_reminder
from dayfuse.reminders.reminder_models import ReminderState, Task

DUE = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)


def _task(**kw) -> Task:
    base = dict(id="t1", title="Pay rent", due_date=date(2025, 1, 1), due_time="09:00")
    base.update(kw)
    return Task(**base)


def test_reminder_text_defaults() -> None:
    assert reminder_text(_task()) == ("Pay rent", "Time for: Pay rent")
    assert reminder_text(_task(description="Transfer to landlord")) == ("Pay rent", "Transfer to landlord")
    assert reminder_text(_task(title="  ")) == ("Task Reminder", "Time for: Task Reminder")


def test_due_instant_uses_local_timezone() -> None:
    task = _task(due_time=time(9, 0))

    assert task.due_instant(ZoneInfo("Europe/Berlin")) == DUE - timedelta(hours=1)
    assert task.due_instant(timezone.utc) == DUE
    assert _task(due_time=None).due_instant(timezone.utc) is None
    assert _task(due_date=None).due_instant(timezone.utc) is None


def test_sync_schedules_new_task(state) -> None:
    reminder = sync_task_reminder(state, _task())

    assert reminder is not None
    assert reminder.due_at == DUE
    assert state.scheduler.get("t1").is_pending


def test_sync_without_due_time_cancels(state) -> None:
    sync_task_reminder(state, _task())

    assert sync_task_reminder(state, _task(due_time="")) is None
    assert state.scheduler.get("t1").state is ReminderState.CANCELLED


def test_sync_completed_task_cancels(state) -> None:
    sync_task_reminder(state, _task())

    assert sync_task_reminder(state, _task(completed=True)) is None
    assert state.scheduler.get("t1").state is ReminderState.CANCELLED


def test_sync_unchanged_task_keeps_existing_reminder(state) -> None:
    first = sync_task_reminder(state, _task())
    again = sync_task_reminder(state, _task())

    assert again == first


@pytest.mark.asyncio
async def test_resaving_fired_task_does_not_fire_again(state) -> None:
    sync_task_reminder(state, _task())
    await state.scheduler.reconcile()
    assert len(state.platform.shown) == 1

    kept = sync_task_reminder(state, _task())
    report = await state.scheduler.reconcile()

    assert kept.state is ReminderState.FIRED
    assert report.fired == []
    assert len(state.platform.shown) == 1


def test_sync_edited_due_time_reschedules(state) -> None:
    sync_task_reminder(state, _task())

    moved = sync_task_reminder(state, _task(due_time="10:30"))

    assert moved.due_at == DUE + timedelta(minutes=90)
    assert moved.is_pending


def test_sync_reopened_task_reschedules_cancelled_reminder(state) -> None:
    sync_task_reminder(state, _task())
    sync_task_reminder(state, _task(completed=True))

    reopened = sync_task_reminder(state, _task())

    assert reopened.is_pending


def test_sync_uses_settings_timezone(state) -> None:
    state.settings.tzinfo = ZoneInfo("America/New_York")

    reminder = sync_task_reminder(state, _task())

    assert reminder.due_at == DUE + timedelta(hours=5)


def test_forget_task(state) -> None:
    sync_task_reminder(state, _task())

    assert forget_task(state, "t1") is True
    assert forget_task(state, "t1") is False


def test_export_for_unknown_task(state) -> None:
    assert export_for_task(state, "missing") is None


def test_export_for_pending_task_derives_event(state) -> None:
    sync_task_reminder(state, _task(duration_minutes=60))

    bundle = export_for_task(state, "t1")

    assert bundle.event.end == DUE + timedelta(hours=1)
    assert bundle.artifact.filename == "pay_rent_reminder.ics"
    assert bundle.google_url.startswith("https://calendar.google.com/")
    assert bundle.outlook_url.startswith("https://outlook.live.com/")


@pytest.mark.asyncio
async def test_export_prefers_stored_fallback_artifact(state) -> None:
    state.platform.permission = "denied"
    sync_task_reminder(state, _task())
    await state.scheduler.reconcile()

    bundle = export_for_task(state, "t1")

    assert bundle.artifact.data.decode("utf-8") == state.scheduler.fallback_artifact("t1")
    assert bundle.event.uid == "t1@dayfuse.app"
