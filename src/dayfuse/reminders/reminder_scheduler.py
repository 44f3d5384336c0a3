# src/dayfuse/reminders/reminder_scheduler.py

from __future__ import annotations

"""
Reminder scheduler.

Split in two:
- compute_reconcile(): a pure function that, given "now", the pending reminders and the current
  notification capability, returns the fired reminders and the delivery effects to perform;
- ReminderScheduler: applies those effects against the platform and the store, one reminder at a
  time, and coalesces overlapping reconcile() calls (timer + visibility can race).

run_reminder_scheduler() is the thin polling driver. To stop it, cancel the coroutine/task.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from ..core.ports import NotificationPlatform, ReminderRepo, UserAlerts
from .calendar_export import CalendarEventExporter
from .errors import DeliveryFailed, InvalidTransition
from .permission_gate import PermissionGate
from .reminder_models import DeliveryChannel, NotificationCapability, Reminder, ensure_utc

logger = logging.getLogger(__name__)

DEFAULT_STALE_GRACE_SECONDS = 24 * 60 * 60
DEFAULT_RETENTION_SECONDS = 7 * 24 * 60 * 60

FALLBACK_ALERT = (
    'Reminder "{title}" is due but could not be shown as a notification. '
    "It was saved as a calendar event: /export {task_id}"
)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class ShowNotification:
    """Primary channel: show an OS-level notification for `reminder`."""

    reminder: Reminder
    missed: bool = False


@dataclass(slots=True, frozen=True)
class StageFallback:
    """Fallback channel: persist `ics` for `reminder` so the UI can offer it for export."""

    reminder: Reminder
    ics: str
    missed: bool = False


DeliveryEffect = ShowNotification | StageFallback


@dataclass(slots=True, frozen=True)
class FiredReminder:
    reminder: Reminder
    channel: DeliveryChannel
    missed: bool


@dataclass(slots=True)
class ReconcileReport:
    started_at: datetime
    fired: list[FiredReminder] = field(default_factory=list)
    errors: int = 0

    @property
    def primary_count(self) -> int:
        return sum(1 for f in self.fired if f.channel is DeliveryChannel.PRIMARY)

    @property
    def fallback_count(self) -> int:
        return sum(1 for f in self.fired if f.channel is DeliveryChannel.FALLBACK)


def compute_reconcile(
    now: datetime,
    reminders: list[Reminder],
    capability: NotificationCapability,
    *,
    exporter: CalendarEventExporter,
    grace_seconds: float = DEFAULT_STALE_GRACE_SECONDS,
) -> tuple[list[Reminder], list[DeliveryEffect]]:
    """
    Pure reconciliation step.

    Returns (updated_reminders, effects), both ordered by ascending due_at.
    updated_reminders assume every effect succeeds; the caller rewrites a failed
    ShowNotification into a StageFallback (see fallback_effect()).

    Reminders overdue by more than grace_seconds are handled the same way; they only carry
    missed=True for presentation.
    """
    now = ensure_utc(now)
    grace = timedelta(seconds=max(0.0, float(grace_seconds)))
    due = sorted((r for r in reminders if r.is_due(now)), key=lambda r: (r.due_at, r.task_id))

    updated: list[Reminder] = []
    effects: list[DeliveryEffect] = []
    for reminder in due:
        missed = now - reminder.due_at > grace
        if capability is NotificationCapability.GRANTED:
            updated.append(reminder.fire(DeliveryChannel.PRIMARY, now=now))
            effects.append(ShowNotification(reminder=reminder, missed=missed))
        else:
            effect = fallback_effect(reminder, exporter=exporter, missed=missed)
            updated.append(reminder.fire(DeliveryChannel.FALLBACK, now=now))
            effects.append(effect)
    return updated, effects


def fallback_effect(reminder: Reminder, *, exporter: CalendarEventExporter, missed: bool = False) -> StageFallback:
    ics = exporter.to_ics(exporter.to_calendar_event(reminder))
    return StageFallback(reminder=reminder, ics=ics, missed=missed)


def notification_tag(task_id: str) -> str:
    return f"task-{task_id}"


class ReminderScheduler:
    """
    Durable reminder queue.

    The store is the source of truth: every transition is a single read-modify-persist step,
    written through before the call returns. Nothing is cached between passes.
    """

    def __init__(
        self,
        store: ReminderRepo,
        gate: PermissionGate,
        platform: NotificationPlatform,
        exporter: CalendarEventExporter,
        *,
        grace_seconds: float = DEFAULT_STALE_GRACE_SECONDS,
        alerts: UserAlerts | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._gate = gate
        self._platform = platform
        self._exporter = exporter
        self._grace_seconds = grace_seconds
        self._alerts = alerts
        self._clock = clock
        self._inflight: asyncio.Task[ReconcileReport] | None = None

    @property
    def store(self) -> ReminderRepo:
        return self._store

    @property
    def exporter(self) -> CalendarEventExporter:
        return self._exporter

    # ---- foreground API ----

    def schedule(
        self,
        task_id: str,
        title: str,
        body: str,
        due_at: datetime,
        *,
        duration_minutes: int | None = None,
    ) -> Reminder:
        """Upsert a pending reminder for task_id, replacing any previous one."""
        task_id = str(task_id).strip()
        if not task_id:
            raise ValueError("task_id is required")

        now = self._clock()
        ts = now.timestamp()
        reminder = Reminder(
            task_id=task_id,
            title=title,
            body=body,
            due_at=ensure_utc(due_at),
            duration_minutes=duration_minutes,
            created_at=ts,
            updated_at=ts,
        )
        self._store.save_reminder(reminder)
        # A previous fallback artifact belongs to the replaced reminder.
        self._store.delete_artifact(task_id)
        logger.info("Reminder scheduled task_id=%s due_at=%s", task_id, reminder.due_at.isoformat())
        return reminder

    def cancel(self, task_id: str) -> bool:
        """pending -> cancelled. Returns False when there was nothing pending to cancel."""
        current = self._store.get_reminder(str(task_id))
        if current is None or not current.is_pending:
            logger.debug("cancel(%s): nothing pending", task_id)
            return False

        self._store.save_reminder(current.cancel(now=self._clock()))
        logger.info("Reminder cancelled task_id=%s", task_id)
        return True

    def get(self, task_id: str) -> Reminder | None:
        return self._store.get_reminder(str(task_id))

    def pending(self) -> list[Reminder]:
        return self._store.list_pending()

    def fallback_artifact(self, task_id: str) -> str | None:
        return self._store.get_artifact(str(task_id))

    def prune_history(self, retention_seconds: float = DEFAULT_RETENTION_SECONDS) -> int:
        """Drop fired/cancelled reminders older than retention_seconds. Pending ones are never touched."""
        cutoff = self._clock() - timedelta(seconds=max(0.0, float(retention_seconds)))
        return self._store.prune_terminal(cutoff)

    # ---- reconciliation ----

    async def reconcile(self) -> ReconcileReport:
        """
        Fire every due pending reminder exactly once.

        Re-entrant calls while a pass is running await that pass instead of starting another.
        """
        if self._inflight is not None and not self._inflight.done():
            logger.debug("reconcile already in flight; coalescing")
            return await asyncio.shield(self._inflight)

        self._inflight = asyncio.ensure_future(self._reconcile_once())
        return await asyncio.shield(self._inflight)

    async def on_visibility_change(self, visible: bool) -> ReconcileReport | None:
        """Foreground regained visibility: catch reminders that became due while hidden."""
        if not visible:
            return None
        return await self.reconcile()

    async def _reconcile_once(self) -> ReconcileReport:
        now = self._clock()
        report = ReconcileReport(started_at=now)

        try:
            pending = self._store.list_pending()
        except Exception:
            logger.exception("list_pending failed")
            report.errors += 1
            return report

        capability = self._gate.current_capability()
        _, effects = compute_reconcile(
            now,
            pending,
            capability,
            exporter=self._exporter,
            grace_seconds=self._grace_seconds,
        )
        if effects:
            logger.info("Reconcile: %d due reminder(s), capability=%s", len(effects), capability.value)

        for effect in effects:
            try:
                fired = await self._apply(effect, now)
            except Exception:
                logger.exception("reconcile failed task_id=%s", effect.reminder.task_id)
                report.errors += 1
                continue
            if fired is not None:
                report.fired.append(fired)
                if fired.channel is DeliveryChannel.FALLBACK:
                    self._alert_fallback(fired.reminder)
        return report

    def _alert_fallback(self, reminder: Reminder) -> None:
        if self._alerts is None:
            return
        try:
            self._alerts.info(FALLBACK_ALERT.format(title=reminder.title, task_id=reminder.task_id))
        except Exception:
            logger.exception("Fallback alert failed task_id=%s", reminder.task_id)

    async def _apply(self, effect: DeliveryEffect, now: datetime) -> FiredReminder | None:
        task_id = effect.reminder.task_id

        # Re-read: another context (or a cancel() while we awaited) may have moved it on.
        current = self._store.get_reminder(task_id)
        if current is None or not current.is_pending or current.due_at != effect.reminder.due_at:
            logger.debug("Reminder %s changed since planning; skipping", task_id)
            return None

        if isinstance(effect, ShowNotification):
            try:
                await self._deliver_primary(current)
            except DeliveryFailed:
                logger.exception("Primary delivery failed; staging fallback for task_id=%s", task_id)
                effect = fallback_effect(current, exporter=self._exporter, missed=effect.missed)
            else:
                return self._mark_fired(current, DeliveryChannel.PRIMARY, now, effect.missed)

        return self._mark_fired(current, DeliveryChannel.FALLBACK, now, effect.missed, ics=effect.ics)

    async def _deliver_primary(self, reminder: Reminder) -> None:
        try:
            await self._platform.show_notification(
                title=reminder.title,
                body=reminder.body,
                tag=notification_tag(reminder.task_id),
                data={"taskId": reminder.task_id},
            )
        except Exception as e:
            raise DeliveryFailed(reminder.task_id, e) from e

    def _mark_fired(
        self,
        planned: Reminder,
        channel: DeliveryChannel,
        now: datetime,
        missed: bool,
        *,
        ics: str | None = None,
    ) -> FiredReminder | None:
        """Persist the transition; the fallback artifact is written only if the transition holds."""
        task_id = planned.task_id
        current = self._store.get_reminder(task_id)
        if current is None or current.due_at != planned.due_at or current.created_at != planned.created_at:
            # Rescheduled while the notification call was in flight: the new reminder stays pending.
            logger.info("Reminder %s was replaced during delivery", task_id)
            return None
        try:
            fired = current.fire(channel, now=now)
        except InvalidTransition:
            # Cancelled while the notification call was in flight; the user already saw it.
            logger.info("Reminder %s left pending during delivery (state=%s)", task_id, current.state.value)
            return None
        if ics is not None:
            self._store.save_artifact(task_id, ics)
        self._store.save_reminder(fired)
        logger.info("Reminder %s -> fired via %s%s", task_id, channel.value, " (missed)" if missed else "")
        return FiredReminder(reminder=fired, channel=channel, missed=missed)


async def run_reminder_scheduler(
        scheduler: ReminderScheduler,
        *,
        interval_seconds: float = 60.0,
        retention_seconds: float | None = DEFAULT_RETENTION_SECONDS,
) -> None:
    """
    Simple polling driver.

    Reconciles once immediately (process start), then every interval_seconds.
    Terminal reminders older than retention_seconds are pruned at start and after each pass
    (None keeps them forever). A failing pass is logged and never ends the loop.
    """
    sleep_s = max(0.5, float(interval_seconds))

    def prune() -> None:
        if retention_seconds is None:
            return
        try:
            scheduler.prune_history(retention_seconds)
        except Exception:
            logger.exception("reminder history prune failed")

    prune()
    while True:
        try:
            report = await scheduler.reconcile()
            if report.fired:
                logger.debug(
                    "reconcile pass fired=%d primary=%d fallback=%d",
                    len(report.fired),
                    report.primary_count,
                    report.fallback_count,
                )
        except Exception:
            logger.exception("reconcile pass failed")
        prune()

        await asyncio.sleep(sleep_s)
