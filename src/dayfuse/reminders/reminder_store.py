# src/dayfuse/reminders/reminder_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import threading
import time
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

from ..core.ports import UserAlerts
from .errors import StorageUnavailable
from .reminder_models import DeliveryChannel, Reminder, ReminderState, ensure_utc

logger = logging.getLogger(__name__)

STORAGE_WARNING = (
    "Reminder storage is unavailable. Reminders will work for this session "
    "but will not survive a restart."
)


def _ts(value: datetime | None) -> float | None:
    return ensure_utc(value).timestamp() if value is not None else None


def _dt(value: float | None) -> datetime | None:
    return datetime.fromtimestamp(float(value), tz=timezone.utc) if value is not None else None


class SqliteReminderStore:
    """
    SQLite reminder store. The single source of truth for reminder state.

    The schema is migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection
    """

    durable = True

    def __init__(self, db_path: str | Path = "reminders.sqlite3") -> None:
        self._db_path = Path(db_path)
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._ensure_schema()
        except (OSError, sqlite3.Error) as e:
            raise StorageUnavailable(f"cannot open reminder store at {self._db_path}: {e}") from e
        logger.info("ReminderStore ready db=%s total=%s", self._db_path, self.count_reminders())

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS reminders (
                    task_id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    body TEXT NOT NULL DEFAULT '',
                    due_at REAL NOT NULL,
                    state TEXT NOT NULL DEFAULT 'pending',
                    delivery_channel TEXT,
                    duration_minutes INTEGER,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    fired_at REAL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS fallback_artifacts (
                    task_id TEXT PRIMARY KEY,
                    ics TEXT NOT NULL,
                    created_at REAL NOT NULL
                )
                """
            )

            cur.execute("PRAGMA table_info(reminders)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE reminders ADD COLUMN {name} {decl}")
                logger.info("ReminderStore migration: added column %s", name)

            add_col("delivery_channel", "TEXT")
            add_col("duration_minutes", "INTEGER")
            add_col("fired_at", "REAL")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_reminders_state_due ON reminders(state, due_at)")
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_reminder(row: sqlite3.Row) -> Reminder:
        due_at = _dt(row["due_at"])
        if due_at is None:
            raise ValueError(f"reminder row task_id={row['task_id']} has no due_at")
        return Reminder(
            task_id=str(row["task_id"]),
            title=str(row["title"] or ""),
            body=str(row["body"] or ""),
            due_at=due_at,
            state=ReminderState.from_db(row["state"]),
            delivery_channel=DeliveryChannel.from_db(row["delivery_channel"]),
            duration_minutes=int(row["duration_minutes"]) if row["duration_minutes"] is not None else None,
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
            fired_at=_dt(row["fired_at"]),
        )

    # ---- public API ----

    def count_reminders(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM reminders").fetchone()
            return int(n)
        finally:
            conn.close()

    def get_reminder(self, task_id: str) -> Reminder | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM reminders WHERE task_id = ?", (str(task_id),)).fetchone()
            return self._row_to_reminder(row) if row else None
        finally:
            conn.close()

    def list_reminders(self) -> list[Reminder]:
        conn = self._get_conn()
        try:
            rows = conn.execute("SELECT * FROM reminders ORDER BY due_at ASC, task_id ASC").fetchall()
            return [self._row_to_reminder(r) for r in rows]
        finally:
            conn.close()

    def list_pending(self) -> list[Reminder]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM reminders WHERE state = 'pending' ORDER BY due_at ASC, task_id ASC"
            ).fetchall()
            return [self._row_to_reminder(r) for r in rows]
        finally:
            conn.close()

    def save_reminder(self, reminder: Reminder) -> None:
        """Upsert the full record (last writer wins)."""
        now = time.time()
        created_at = reminder.created_at or now
        updated_at = reminder.updated_at or now

        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO reminders(
                    task_id, title, body, due_at, state, delivery_channel,
                    duration_minutes, created_at, updated_at, fired_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(task_id) DO UPDATE SET
                    title = excluded.title,
                    body = excluded.body,
                    due_at = excluded.due_at,
                    state = excluded.state,
                    delivery_channel = excluded.delivery_channel,
                    duration_minutes = excluded.duration_minutes,
                    created_at = excluded.created_at,
                    updated_at = excluded.updated_at,
                    fired_at = excluded.fired_at
                """,
                (
                    str(reminder.task_id),
                    reminder.title,
                    reminder.body,
                    _ts(reminder.due_at),
                    reminder.state.value,
                    reminder.delivery_channel.value if reminder.delivery_channel else None,
                    reminder.duration_minutes,
                    created_at,
                    updated_at,
                    _ts(reminder.fired_at),
                ),
            )
            conn.commit()
            logger.debug(
                "Reminder saved task_id=%s state=%s due_at=%s",
                reminder.task_id,
                reminder.state.value,
                reminder.due_at.isoformat(),
            )
        finally:
            conn.close()

    def prune_terminal(self, older_than: datetime) -> int:
        """Delete fired/cancelled reminders (and their artifacts) last updated before older_than."""
        cutoff = ensure_utc(older_than).timestamp()
        conn = self._get_conn()
        try:
            conn.execute(
                """
                DELETE FROM fallback_artifacts WHERE task_id IN (
                    SELECT task_id FROM reminders WHERE state != 'pending' AND updated_at < ?
                )
                """,
                (cutoff,),
            )
            cur = conn.execute(
                "DELETE FROM reminders WHERE state != 'pending' AND updated_at < ?",
                (cutoff,),
            )
            conn.commit()
            removed = int(cur.rowcount or 0)
        finally:
            conn.close()
        if removed:
            logger.info("ReminderStore pruned %d terminal reminder(s)", removed)
        return removed

    def save_artifact(self, task_id: str, ics: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO fallback_artifacts(task_id, ics, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT(task_id) DO UPDATE SET ics = excluded.ics, created_at = excluded.created_at
                """,
                (str(task_id), ics, time.time()),
            )
            conn.commit()
        finally:
            conn.close()

    def get_artifact(self, task_id: str) -> str | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT ics FROM fallback_artifacts WHERE task_id = ?", (str(task_id),)
            ).fetchone()
            return str(row["ics"]) if row else None
        finally:
            conn.close()

    def delete_artifact(self, task_id: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM fallback_artifacts WHERE task_id = ?", (str(task_id),))
            conn.commit()
        finally:
            conn.close()


class MemoryReminderStore:
    """Session-only store used when SQLite cannot be opened (and in tests)."""

    durable = False

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reminders: dict[str, Reminder] = {}
        self._artifacts: dict[str, str] = {}

    def close(self) -> None:
        return

    def count_reminders(self) -> int:
        with self._lock:
            return len(self._reminders)

    def get_reminder(self, task_id: str) -> Reminder | None:
        with self._lock:
            return self._reminders.get(str(task_id))

    def list_reminders(self) -> list[Reminder]:
        with self._lock:
            items = list(self._reminders.values())
        return sorted(items, key=lambda r: (r.due_at, r.task_id))

    def list_pending(self) -> list[Reminder]:
        return [r for r in self.list_reminders() if r.is_pending]

    def save_reminder(self, reminder: Reminder) -> None:
        now = time.time()
        stored = replace(
            reminder,
            created_at=reminder.created_at or now,
            updated_at=reminder.updated_at or now,
        )
        with self._lock:
            self._reminders[str(reminder.task_id)] = stored

    def prune_terminal(self, older_than: datetime) -> int:
        cutoff = ensure_utc(older_than).timestamp()
        with self._lock:
            stale = [
                task_id
                for task_id, r in self._reminders.items()
                if not r.is_pending and r.updated_at < cutoff
            ]
            for task_id in stale:
                del self._reminders[task_id]
                self._artifacts.pop(task_id, None)
        return len(stale)

    def save_artifact(self, task_id: str, ics: str) -> None:
        with self._lock:
            self._artifacts[str(task_id)] = ics

    def get_artifact(self, task_id: str) -> str | None:
        with self._lock:
            return self._artifacts.get(str(task_id))

    def delete_artifact(self, task_id: str) -> None:
        with self._lock:
            self._artifacts.pop(str(task_id), None)


def open_reminder_store(
    db_path: str | Path,
    *,
    alerts: UserAlerts | None = None,
) -> SqliteReminderStore | MemoryReminderStore:
    """
    Open the durable store, degrading to memory-only for this session if that fails.

    The degradation is reported exactly once through `alerts`.
    """
    try:
        return SqliteReminderStore(db_path)
    except StorageUnavailable:
        logger.exception("Reminder storage unavailable; using memory-only store.")
        if alerts is not None:
            try:
                alerts.warning(STORAGE_WARNING)
            except Exception:
                logger.debug("alerts.warning failed.", exc_info=True)
        return MemoryReminderStore()
