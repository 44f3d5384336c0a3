# src/dayfuse/reminders/reminder_models.py

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from enum import StrEnum

from .errors import InvalidTransition

DEFAULT_EVENT_MINUTES = 30


class ReminderState(StrEnum):
    """
    Reminder lifecycle.

    pending -> fired | cancelled, exactly once. Terminal states never return to pending.
    """

    PENDING = "pending"
    FIRED = "fired"
    CANCELLED = "cancelled"

    @classmethod
    def from_db(cls, raw: str | None) -> ReminderState:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            # Unknown value from a newer schema: treat as terminal so it can never fire twice.
            return cls.CANCELLED


class DeliveryChannel(StrEnum):
    PRIMARY = "primary"
    FALLBACK = "fallback"

    @classmethod
    def from_db(cls, raw: str | None) -> DeliveryChannel | None:
        if not raw:
            return None
        try:
            return cls(raw)
        except ValueError:
            return None


class NotificationCapability(StrEnum):
    UNKNOWN = "unknown"
    REQUESTING = "requesting"
    GRANTED = "granted"
    DENIED = "denied"


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(slots=True, frozen=True)
class Reminder:
    task_id: str
    title: str
    body: str
    due_at: datetime
    state: ReminderState = ReminderState.PENDING
    delivery_channel: DeliveryChannel | None = None

    duration_minutes: int | None = None
    created_at: float = 0.0
    updated_at: float = 0.0
    fired_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.state is ReminderState.PENDING

    def is_due(self, now: datetime) -> bool:
        return self.is_pending and self.due_at <= now

    def fire(self, channel: DeliveryChannel, *, now: datetime) -> Reminder:
        if not self.is_pending:
            raise InvalidTransition(f"cannot fire reminder task_id={self.task_id} in state {self.state}")
        return replace(
            self,
            state=ReminderState.FIRED,
            delivery_channel=channel,
            fired_at=now,
            updated_at=now.timestamp(),
        )

    def cancel(self, *, now: datetime) -> Reminder:
        if not self.is_pending:
            raise InvalidTransition(f"cannot cancel reminder task_id={self.task_id} in state {self.state}")
        return replace(self, state=ReminderState.CANCELLED, updated_at=now.timestamp())


@dataclass(slots=True, frozen=True)
class CalendarEvent:
    uid: str
    title: str
    description: str
    start: datetime
    end: datetime


@dataclass(slots=True)
class Task:
    """
    Task entity as handed over by the task list (storage lives elsewhere).

    due_time is either a datetime.time or an "HH:MM" string, as the task form produces it.
    """

    id: str
    title: str
    description: str = ""
    due_date: date | None = None
    due_time: time | str | None = None
    completed: bool = False
    duration_minutes: int | None = None

    def due_instant(self, tz: tzinfo) -> datetime | None:
        """Local wall-clock due date + time in `tz`, as a UTC instant. None if unscheduled."""
        if self.due_date is None or self.due_time in (None, ""):
            return None
        t = self.due_time
        if isinstance(t, str):
            hh, _, mm = t.strip().partition(":")
            t = time(int(hh), int(mm or 0))
        local = datetime.combine(self.due_date, t.replace(second=0, microsecond=0), tzinfo=tz)
        return local.astimezone(timezone.utc)


def event_end(
    start: datetime,
    duration_minutes: int | None,
    default_minutes: int = DEFAULT_EVENT_MINUTES,
) -> datetime:
    minutes = duration_minutes if duration_minutes and duration_minutes > 0 else default_minutes
    return start + timedelta(minutes=minutes)
