# src/dayfuse/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (store/platform/gate/scheduler/worker).
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..connectors.console_platform import ConsoleAlerts, ConsoleNotificationPlatform, ConsoleWorkerRuntime
from ..core.ports import NotificationPlatform, UserAlerts, WorkerRuntime
from ..core.state import AppState
from ..reminders.calendar_export import CalendarEventExporter
from ..reminders.permission_gate import PermissionGate
from ..reminders.reminder_scheduler import ReminderScheduler
from ..reminders.reminder_store import open_reminder_store
from ..worker.delivery_worker import DeliveryWorkerCoordinator

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    try:
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        settings.reminders_db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        # open_reminder_store() reports the storage problem to the user.
        logger.warning("Could not create local data directories.", exc_info=True)


def create_initial_state(
    *,
    settings=None,
    platform: NotificationPlatform | None = None,
    alerts: UserAlerts | None = None,
    worker_runtime: WorkerRuntime | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings and platform ports injectable makes the app easier to test and avoids
    hidden global config reads. If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if alerts is None:
        alerts = ConsoleAlerts()
    if platform is None:
        platform = ConsoleNotificationPlatform(supported=settings.notifications_supported)
    if worker_runtime is None:
        if not isinstance(platform, ConsoleNotificationPlatform):
            raise ValueError("worker_runtime is required with a non-console platform")
        worker_runtime = ConsoleWorkerRuntime(platform)

    store = open_reminder_store(settings.reminders_db_path, alerts=alerts)
    gate = PermissionGate(platform)
    exporter = CalendarEventExporter(
        uid_domain=settings.ics_uid_domain,
        prodid=settings.ics_prodid,
        default_event_minutes=settings.default_event_minutes,
    )
    scheduler = ReminderScheduler(
        store,
        gate,
        platform,
        exporter,
        grace_seconds=settings.stale_grace_seconds,
        alerts=alerts,
    )
    worker = DeliveryWorkerCoordinator(app_root_url=settings.app_root_url, version=settings.worker_version)

    return AppState(
        settings=settings,
        store=store,
        platform=platform,
        gate=gate,
        exporter=exporter,
        scheduler=scheduler,
        worker=worker,
        worker_runtime=worker_runtime,
        alerts=alerts,
    )
