# src/dayfuse/connectors/background_runner.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import Coroutine
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, TypeVar

from ..core.state import AppState
from ..reminders.reminder_scheduler import run_reminder_scheduler
from ..worker.delivery_worker import ActivateEvent, InstallEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def submit(self, coro: Coroutine[Any, Any, T]) -> Future[T]:
        """Run a coroutine on the background loop; returns a concurrent Future."""
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except Exception:
            logger.debug("Failed to signal background stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


async def _run_background(state: AppState, stop_event: asyncio.Event) -> None:
    settings = state.settings

    # Worker lifecycle: install + activate once per process (no predecessor in a fresh process).
    try:
        await state.worker.dispatch(InstallEvent(has_predecessor=False), state.worker_runtime)
        await state.worker.dispatch(ActivateEvent(), state.worker_runtime)
    except Exception:
        logger.exception("Delivery worker startup failed.")

    interval = float(getattr(settings, "reconcile_interval_seconds", 60.0))
    retention_days = float(getattr(settings, "retention_days", 7.0))
    # retention_days <= 0 keeps reminder history forever.
    retention = retention_days * 24 * 60 * 60 if retention_days > 0 else None
    scheduler_task = asyncio.create_task(
        run_reminder_scheduler(state.scheduler, interval_seconds=interval, retention_seconds=retention)
    )
    try:
        await stop_event.wait()
    finally:
        scheduler_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await scheduler_task
        logger.info("Reminder scheduler stopped.")


def start_in_background(state: AppState) -> BackgroundRunner | None:
    """
    Start the reminder scheduler + delivery worker in a background thread.

    Why a thread:
    - console REPL is blocking (input()).
    - the scheduler is async and wants its own event loop.
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(_run_background(state, stop_event))
        finally:
            with contextlib.suppress(Exception):
                loop.stop()
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="dayfuse-scheduler", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Scheduler thread did not initialize properly.")
        return None

    logger.info("Scheduler background thread started.")
    return BackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
