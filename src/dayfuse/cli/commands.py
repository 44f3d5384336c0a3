# src/dayfuse/cli/commands.py

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Callable, Coroutine
from datetime import date
from pathlib import Path
from typing import Any, TypeVar, cast

from ..core.state import AppState
from ..reminders.reminder_api import export_for_task, forget_task, sync_task_reminder
from ..reminders.reminder_models import ReminderState, Task
from ..worker.delivery_worker import MessageEvent, NotificationClickEvent

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

T = TypeVar("T")

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _run(state: AppState, coro: Coroutine[Any, Any, T], timeout: float | None = None) -> T:
    """Run a coroutine on the scheduler loop (or inline when no background loop is running)."""
    if state.runner is not None:
        return state.runner.submit(coro).result(timeout)
    return asyncio.run(coro)


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    pending = state.scheduler.pending()
    storage = "durable (SQLite)" if state.store.durable else "MEMORY ONLY (lost on restart)"
    return (
        "Status:\n"
        f"  Notifications: {state.gate.current_capability().value}\n"
        f"  Storage: {storage}\n"
        f"  Pending reminders: {len(pending)}\n"
        f"  Delivery worker: {state.worker.state.value} (v{state.worker.version})"
    )


def cmd_add(state: AppState, args: list[str]) -> str:
    """
    /add <task_id> <YYYY-MM-DD> <HH:MM> <title...>
    """
    if len(args) < 4:
        return "Usage: /add <task_id> <YYYY-MM-DD> <HH:MM> <title...>"

    task_id, raw_date, raw_time = args[0], args[1], args[2]
    title = " ".join(args[3:])
    try:
        task = Task(id=task_id, title=title, due_date=date.fromisoformat(raw_date), due_time=raw_time)
        reminder = sync_task_reminder(state, task)
    except ValueError as e:
        return f"Invalid task: {e}"

    if reminder is None:
        return f"No reminder for task {task_id}."
    local = reminder.due_at.astimezone(getattr(state.settings, "tzinfo", None))
    return f"Reminder for {task_id} set for {local:%Y-%m-%d %H:%M %Z}."


def cmd_cancel(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /cancel <task_id>"
    if forget_task(state, args[0]):
        return f"Reminder for {args[0]} cancelled."
    return f"No pending reminder for {args[0]}."


def cmd_list(state: AppState, args: list[str]) -> str:
    reminders = state.store.list_reminders()
    if not args or args[0].lower() != "all":
        reminders = [r for r in reminders if r.state is ReminderState.PENDING]
    if not reminders:
        return "No reminders."
    lines = ["Reminders:"]
    for r in reminders:
        channel = f" via {r.delivery_channel.value}" if r.delivery_channel else ""
        lines.append(f"  {r.task_id}: {r.title} @ {r.due_at:%Y-%m-%d %H:%M}Z [{r.state.value}{channel}]")
    return "\n".join(lines)


def cmd_permission(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /permission          -> show capability
    /permission request  -> ask for consent (at most one prompt at a time)
    """
    if not args:
        return f"Notifications: {state.gate.current_capability().value}. Use /permission request."

    if args[0].lower() != "request":
        return "Usage: /permission [request]"

    if emit:
        with contextlib.suppress(Exception):
            emit("[NOTIFY] Requesting notification permission...")
    cap = _run(state, state.gate.request_capability())
    if cap.value == "granted":
        state.alerts.info("Notifications enabled.")
    else:
        state.alerts.warning("Notifications are off. Reminders will be saved as calendar events instead.")
    return f"Notifications: {cap.value}."


def cmd_test(state: AppState, args: list[str]) -> str:
    ok = _run(state, state.gate.send_test(), timeout=10.0)
    return "Test notification sent." if ok else "Test notification failed (permission not granted?)."


def cmd_reconcile(state: AppState, args: list[str]) -> str:
    report = _run(state, state.scheduler.reconcile(), timeout=60.0)
    if not report.fired:
        return "Nothing due."
    return f"Fired {len(report.fired)} reminder(s): {report.primary_count} notified, {report.fallback_count} saved as calendar events."


def cmd_export(state: AppState, args: list[str]) -> str:
    """
    /export <task_id> [google|outlook|ics [path]]
    """
    if not args:
        return "Usage: /export <task_id> [google|outlook|ics [path]]"

    bundle = export_for_task(state, args[0])
    if bundle is None:
        return f"No reminder for {args[0]}."

    kind = args[1].lower() if len(args) > 1 else "all"
    if kind == "google":
        return bundle.google_url
    if kind == "outlook":
        return bundle.outlook_url
    if kind == "ics":
        target = Path(args[2]) if len(args) > 2 else Path(bundle.artifact.filename)
        try:
            target.write_bytes(bundle.artifact.data)
        except OSError as e:
            return f"Failed to write {target}: {e}"
        return f"Saved {target}."
    return (
        f"{bundle.event.title} ({bundle.event.start:%Y-%m-%d %H:%M}Z)\n"
        f"  Google:  {bundle.google_url}\n"
        f"  Outlook: {bundle.outlook_url}\n"
        f"  File:    /export {args[0]} ics"
    )


def cmd_click(state: AppState, args: list[str]) -> str:
    """
    /click <tag> [complete|snooze]
    """
    if not args:
        open_tags = sorted(getattr(state.platform, "open_notifications", dict)())
        return "Open notifications: " + (", ".join(open_tags) if open_tags else "none")

    tag = args[0]
    task_id = tag[len("task-"):] if tag.startswith("task-") else None
    action = args[1].lower() if len(args) > 1 else None
    event = NotificationClickEvent(tag=tag, task_id=task_id, action=action)
    effects = _run(state, state.worker.dispatch(event, state.worker_runtime), timeout=10.0)
    return f"Handled click on {tag} ({len(effects)} effect(s))."


def cmd_update(state: AppState, args: list[str]) -> str:
    effects = _run(
        state,
        state.worker.dispatch(MessageEvent(data={"type": "SKIP_WAITING"}), state.worker_runtime),
        timeout=10.0,
    )
    return "Update applied." if effects else "No update waiting."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show notification/storage/worker status.")
registry.register("add", cmd_add, help_text="Schedule: /add <task_id> <YYYY-MM-DD> <HH:MM> <title>.")
registry.register("cancel", cmd_cancel, help_text="Cancel a task reminder: /cancel <task_id>.")
registry.register("list", cmd_list, help_text="List pending reminders (/list all for every state).")
registry.register("permission", cmd_permission, help_text="Notifications: /permission [request].")
registry.register("test", cmd_test, help_text="Send a test notification.")
registry.register("reconcile", cmd_reconcile, help_text="Fire due reminders now.")
registry.register(
    "export", cmd_export, help_text="Calendar export: /export <task_id> [google|outlook|ics [path]]."
)
registry.register("click", cmd_click, help_text="Click a notification: /click <tag> [complete|snooze].")
registry.register("update", cmd_update, help_text="Let a waiting delivery worker take over now.")
