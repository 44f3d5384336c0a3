# tests/test_reminder_store.py

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from dayfuse.reminders.errors import StorageUnavailable
from dayfuse.reminders.reminder_models import DeliveryChannel, Reminder, ReminderState
from dayfuse.reminders.reminder_store import (
    STORAGE_WARNING,
    MemoryReminderStore,
    SqliteReminderStore,
    open_reminder_store,
)

from .fakes import FakeAlerts

DUE = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)


def _reminder(task_id: str, due_at: datetime = DUE, **kw) -> Reminder:
    return Reminder(task_id=task_id, title=kw.pop("title", "Pay rent"), body="", due_at=due_at, **kw)


@pytest.fixture(params=["sqlite", "memory"])
def any_store(request, tmp_path):
    if request.param == "sqlite":
        return SqliteReminderStore(tmp_path / "reminders.sqlite3")
    return MemoryReminderStore()


def test_save_and_get_roundtrip(any_store) -> None:
    fired_at = DUE + timedelta(seconds=3)
    reminder = _reminder("t1", duration_minutes=45).fire(DeliveryChannel.FALLBACK, now=fired_at)

    any_store.save_reminder(reminder)
    got = any_store.get_reminder("t1")

    assert got is not None
    assert got.state is ReminderState.FIRED
    assert got.delivery_channel is DeliveryChannel.FALLBACK
    assert got.due_at == DUE
    assert got.due_at.tzinfo is not None
    assert got.fired_at == fired_at
    assert got.duration_minutes == 45
    assert got.created_at > 0


def test_save_upserts_by_task_id(any_store) -> None:
    any_store.save_reminder(_reminder("t1"))
    any_store.save_reminder(_reminder("t1", title="Pay rent twice"))

    assert any_store.count_reminders() == 1
    assert any_store.get_reminder("t1").title == "Pay rent twice"


def test_list_pending_orders_by_due_then_task_id(any_store) -> None:
    any_store.save_reminder(_reminder("b", DUE))
    any_store.save_reminder(_reminder("a", DUE))
    any_store.save_reminder(_reminder("early", DUE - timedelta(hours=1)))
    any_store.save_reminder(_reminder("gone", DUE).cancel(now=DUE))

    assert [r.task_id for r in any_store.list_pending()] == ["early", "a", "b"]
    assert len(any_store.list_reminders()) == 4


def test_artifacts_are_stored_per_task(any_store) -> None:
    assert any_store.get_artifact("t1") is None

    any_store.save_artifact("t1", "BEGIN:VCALENDAR\r\nEND:VCALENDAR\r\n")
    any_store.save_artifact("t1", "BEGIN:VCALENDAR\r\nX:1\r\nEND:VCALENDAR\r\n")

    assert "X:1" in any_store.get_artifact("t1")
    any_store.delete_artifact("t1")
    assert any_store.get_artifact("t1") is None


def test_prune_terminal_removes_old_fired_and_cancelled_with_artifacts(any_store) -> None:
    old = DUE - timedelta(days=10)
    any_store.save_reminder(_reminder("fired", old).fire(DeliveryChannel.FALLBACK, now=old))
    any_store.save_artifact("fired", "BEGIN:VCALENDAR\r\nEND:VCALENDAR\r\n")
    any_store.save_reminder(_reminder("cancelled", old).cancel(now=old))
    any_store.save_reminder(_reminder("recent", DUE).fire(DeliveryChannel.PRIMARY, now=DUE))
    any_store.save_reminder(_reminder("overdue", old, updated_at=old.timestamp()))

    removed = any_store.prune_terminal(DUE - timedelta(days=7))

    assert removed == 2
    assert any_store.get_reminder("fired") is None
    assert any_store.get_artifact("fired") is None
    assert any_store.get_reminder("cancelled") is None
    assert any_store.get_reminder("recent") is not None
    # Pending reminders are never pruned, however old.
    assert any_store.get_reminder("overdue").is_pending


def test_prune_terminal_on_empty_store(any_store) -> None:
    assert any_store.prune_terminal(DUE) == 0


def test_sqlite_store_is_durable_across_instances(tmp_path) -> None:
    path = tmp_path / "reminders.sqlite3"
    SqliteReminderStore(path).save_reminder(_reminder("t1"))

    reopened = SqliteReminderStore(path)

    assert reopened.durable is True
    assert reopened.get_reminder("t1").is_pending


def test_unknown_state_from_db_is_treated_as_terminal(tmp_path) -> None:
    path = tmp_path / "reminders.sqlite3"
    store = SqliteReminderStore(path)
    store.save_reminder(_reminder("t1"))

    with sqlite3.connect(path) as conn:
        conn.execute("UPDATE reminders SET state = 'snoozed' WHERE task_id = 't1'")

    assert store.get_reminder("t1").state is ReminderState.CANCELLED
    assert store.list_pending() == []


def test_schema_migration_adds_missing_columns(tmp_path) -> None:
    path = tmp_path / "reminders.sqlite3"
    with sqlite3.connect(path) as conn:
        conn.execute(
            """
            CREATE TABLE reminders (
                task_id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                body TEXT NOT NULL DEFAULT '',
                due_at REAL NOT NULL,
                state TEXT NOT NULL DEFAULT 'pending',
                created_at REAL NOT NULL,
                updated_at REAL NOT NULL
            )
            """
        )
        conn.execute(
            "INSERT INTO reminders(task_id, title, body, due_at, state, created_at, updated_at) "
            "VALUES ('old', 'Old task', '', ?, 'pending', 1, 1)",
            (DUE.timestamp(),),
        )

    store = SqliteReminderStore(path)
    old = store.get_reminder("old")

    assert old.is_pending
    assert old.delivery_channel is None
    assert old.duration_minutes is None


def test_unopenable_path_raises_storage_unavailable(tmp_path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    with pytest.raises(StorageUnavailable):
        SqliteReminderStore(blocker / "reminders.sqlite3")


def test_open_reminder_store_degrades_to_memory_and_warns_once(tmp_path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    alerts = FakeAlerts()

    store = open_reminder_store(blocker / "reminders.sqlite3", alerts=alerts)

    assert isinstance(store, MemoryReminderStore)
    assert store.durable is False
    assert alerts.messages == [("warning", STORAGE_WARNING)]

    store.save_reminder(_reminder("t1"))
    assert store.get_reminder("t1") is not None
    assert len(alerts.messages) == 1


def test_open_reminder_store_prefers_sqlite(tmp_path) -> None:
    alerts = FakeAlerts()

    store = open_reminder_store(tmp_path / "reminders.sqlite3", alerts=alerts)

    assert isinstance(store, SqliteReminderStore)
    assert alerts.messages == []


def test_row_without_due_at_is_rejected() -> None:
    with pytest.raises(ValueError):
        SqliteReminderStore._row_to_reminder({"task_id": "t1", "due_at": None})
