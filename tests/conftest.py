# tests/conftest.py

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

from dayfuse.core.state import AppState
from dayfuse.reminders.calendar_export import CalendarEventExporter
from dayfuse.reminders.permission_gate import PermissionGate
from dayfuse.reminders.reminder_scheduler import ReminderScheduler
from dayfuse.reminders.reminder_store import SqliteReminderStore
from dayfuse.worker.delivery_worker import DeliveryWorkerCoordinator

from .fakes import FakeAlerts, FakeClock, FakePlatform, FakeWorkerRuntime

# 2025-01-01T09:00:01Z: one second after the "Pay rent" reminder is due.
NOW = datetime(2025, 1, 1, 9, 0, 1, tzinfo=timezone.utc)


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the command handlers.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        console_enabled=False,
        notifications_supported=True,
        data_dir=tmp_path,
        reminders_db_path=tmp_path / "reminders.sqlite3",
        reconcile_interval_seconds=0.01,
        stale_grace_seconds=24 * 60 * 60,
        retention_days=7,
        tzinfo=timezone.utc,
        default_event_minutes=30,
        ics_uid_domain="dayfuse.app",
        ics_prodid="-//DayFuse//Task Reminder//EN",
        app_root_url="/",
        worker_version="1",
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(NOW)


@pytest.fixture()
def platform() -> FakePlatform:
    return FakePlatform(permission="granted")


@pytest.fixture()
def alerts() -> FakeAlerts:
    return FakeAlerts()


@pytest.fixture()
def store(settings: SimpleNamespace) -> SqliteReminderStore:
    return SqliteReminderStore(settings.reminders_db_path)


@pytest.fixture()
def exporter() -> CalendarEventExporter:
    return CalendarEventExporter()


@pytest.fixture()
def gate(platform: FakePlatform) -> PermissionGate:
    return PermissionGate(platform)


@pytest.fixture()
def scheduler(
    store: SqliteReminderStore,
    gate: PermissionGate,
    platform: FakePlatform,
    exporter: CalendarEventExporter,
    alerts: FakeAlerts,
    clock: FakeClock,
) -> ReminderScheduler:
    return ReminderScheduler(store, gate, platform, exporter, alerts=alerts, clock=clock)


@pytest.fixture()
def state(
    settings: SimpleNamespace,
    store: SqliteReminderStore,
    platform: FakePlatform,
    gate: PermissionGate,
    exporter: CalendarEventExporter,
    scheduler: ReminderScheduler,
    alerts: FakeAlerts,
) -> AppState:
    """
    AppState wired with deterministic fakes.

    NOTE: We keep a real SQLite store here because its correctness is part of what we want to test.
    """
    return AppState(
        settings=settings,
        store=store,
        platform=platform,
        gate=gate,
        exporter=exporter,
        scheduler=scheduler,
        worker=DeliveryWorkerCoordinator(app_root_url="/", version="1"),
        worker_runtime=FakeWorkerRuntime(clients=["console"]),
        alerts=alerts,
    )
