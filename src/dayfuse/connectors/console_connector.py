# src/dayfuse/connectors/console_connector.py

from __future__ import annotations

import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


def _reconcile_on_focus(state: AppState) -> None:
    """The console got input again: treat it as the foreground becoming visible."""
    runner = state.runner
    if runner is None:
        return
    try:
        runner.submit(state.scheduler.on_visibility_change(True))
    except Exception:
        logger.debug("visibility reconcile submit failed.", exc_info=True)


def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started.")
    _print_ts("[CONSOLE] Use /help for commands. Use /exit to quit.\n")

    attach = getattr(state.worker_runtime, "attach", None)
    detach = getattr(state.worker_runtime, "detach", None)
    if attach is not None:
        attach()

    def emit(text: str) -> None:
        # Immediate user-visible feedback for long operations (e.g., consent prompt)
        print(f"[{_ts_local()}] {text}", flush=True)

    try:
        while True:
            try:
                user_input = input(">>> ").strip()
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            _reconcile_on_focus(state)

            if not user_input:
                continue

            if user_input.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            try:
                with state.lock:
                    cmd_response = command_registry.handle(state, user_input, emit=emit)
            except Exception:
                logger.exception("Command handler crashed.")
                cmd_response = "Internal error while handling a command."

            if cmd_response is None:
                cmd_response = "Commands start with '/'. Use /help to list available commands."
            _print_ts(cmd_response)
    finally:
        if detach is not None:
            detach()

    logger.info("Console connector finished.")
