# src/dayfuse/core/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..reminders.calendar_export import CalendarEventExporter
from ..reminders.permission_gate import PermissionGate
from ..reminders.reminder_scheduler import ReminderScheduler
from ..worker.delivery_worker import DeliveryWorkerCoordinator
from .ports import NotificationPlatform, ReminderRepo, UserAlerts, WorkerRuntime

if TYPE_CHECKING:
    from ..connectors.background_runner import BackgroundRunner


@dataclass
class AppState:
    # Settings are kept on the state so command handlers can read them.
    settings: object

    store: ReminderRepo
    platform: NotificationPlatform
    gate: PermissionGate
    exporter: CalendarEventExporter
    scheduler: ReminderScheduler
    worker: DeliveryWorkerCoordinator
    worker_runtime: WorkerRuntime
    alerts: UserAlerts

    lock: threading.Lock = field(default_factory=threading.Lock)
    # Background event loop runner (set by cli.main once the scheduler thread is up).
    runner: BackgroundRunner | None = None
