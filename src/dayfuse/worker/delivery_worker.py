# src/dayfuse/worker/delivery_worker.py

from __future__ import annotations

"""
Delivery worker coordinator.

The background context that outlives the foreground UI, modeled as a message-passing actor:
- inbound events: install, activate, notification click, control message,
- outbound effects: skip waiting, claim clients, close notification, focus/open a client,
  post a message.

handle() is pure (event + snapshot of open clients -> effects). dispatch() is the thin
driver that asks a WorkerRuntime for the client snapshot and applies the effects.
"""

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any
from urllib.parse import urlencode

from ..core.ports import WorkerRuntime

logger = logging.getLogger(__name__)

MSG_SKIP_WAITING = "SKIP_WAITING"
MSG_CHECK_UPDATE = "CHECK_UPDATE"
MSG_UPDATE_AVAILABLE = "SW_UPDATE_AVAILABLE"
MSG_UPDATING = "SW_UPDATING"
MSG_NOTIFICATION_ACTION = "NOTIFICATION_ACTION"

NOTIFICATION_ACTIONS = ("complete", "snooze")


class WorkerState(StrEnum):
    INSTALLING = "installing"
    INSTALLED = "installed"  # waiting for the previous version to let go
    ACTIVATED = "activated"
    RUNNING = "running"


# ---- inbound events ----


@dataclass(slots=True, frozen=True)
class InstallEvent:
    has_predecessor: bool = False


@dataclass(slots=True, frozen=True)
class ActivateEvent:
    pass


@dataclass(slots=True, frozen=True)
class NotificationClickEvent:
    tag: str
    task_id: str | None = None
    action: str | None = None


@dataclass(slots=True, frozen=True)
class MessageEvent:
    data: dict[str, Any] = field(default_factory=dict)
    source_client_id: str | None = None


WorkerEvent = InstallEvent | ActivateEvent | NotificationClickEvent | MessageEvent


# ---- outbound effects ----


@dataclass(slots=True, frozen=True)
class SkipWaiting:
    pass


@dataclass(slots=True, frozen=True)
class ClaimClients:
    pass


@dataclass(slots=True, frozen=True)
class CloseNotification:
    tag: str


@dataclass(slots=True, frozen=True)
class FocusClient:
    client_id: str


@dataclass(slots=True, frozen=True)
class OpenWindow:
    url: str


@dataclass(slots=True, frozen=True)
class PostMessage:
    client_id: str
    payload: dict[str, Any]


WorkerEffect = SkipWaiting | ClaimClients | CloseNotification | FocusClient | OpenWindow | PostMessage


class DeliveryWorkerCoordinator:
    def __init__(self, *, app_root_url: str = "/", version: str = "1") -> None:
        self._root = app_root_url if app_root_url.endswith("/") else app_root_url + "/"
        self._version = version
        self._state = WorkerState.INSTALLING
        self._has_predecessor = False

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def version(self) -> str:
        return self._version

    def handle(self, event: WorkerEvent, clients: list[str]) -> list[WorkerEffect]:
        if isinstance(event, InstallEvent):
            return self._on_install(event)
        if isinstance(event, ActivateEvent):
            return self._on_activate(clients)
        if isinstance(event, NotificationClickEvent):
            return self._on_click(event, clients)
        if isinstance(event, MessageEvent):
            return self._on_message(event, clients)
        logger.warning("Unknown worker event %r ignored", event)
        return []

    def confirm_claimed(self) -> None:
        """All foreground contexts are now controlled by this worker."""
        if self._state is WorkerState.ACTIVATED:
            self._state = WorkerState.RUNNING
            logger.info("Delivery worker v%s running", self._version)

    async def dispatch(self, event: WorkerEvent, runtime: WorkerRuntime) -> list[WorkerEffect]:
        clients = await runtime.match_clients()
        effects = self.handle(event, clients)
        for effect in effects:
            try:
                await apply_effect(effect, runtime)
            except Exception:
                logger.exception("Worker effect failed: %r", effect)
                continue
            if isinstance(effect, ClaimClients):
                self.confirm_claimed()
        return effects

    # ---- handlers ----

    def _on_install(self, event: InstallEvent) -> list[WorkerEffect]:
        if self._state is not WorkerState.INSTALLING:
            logger.warning("install in state %s ignored", self._state.value)
            return []
        self._has_predecessor = event.has_predecessor
        self._state = WorkerState.INSTALLED
        logger.info("Delivery worker v%s installed (predecessor=%s)", self._version, event.has_predecessor)
        return []

    def _on_activate(self, clients: list[str]) -> list[WorkerEffect]:
        if self._state is not WorkerState.INSTALLED:
            logger.warning("activate in state %s ignored", self._state.value)
            return []
        self._state = WorkerState.ACTIVATED
        effects: list[WorkerEffect] = [ClaimClients()]
        if self._has_predecessor:
            payload = {"type": MSG_UPDATE_AVAILABLE, "version": self._version, "canUpdate": True}
            effects += [PostMessage(client_id=c, payload=payload) for c in clients]
            self._has_predecessor = False
        return effects

    def _on_click(self, event: NotificationClickEvent, clients: list[str]) -> list[WorkerEffect]:
        if self._state not in (WorkerState.ACTIVATED, WorkerState.RUNNING):
            logger.warning("notificationclick in state %s ignored", self._state.value)
            return []

        effects: list[WorkerEffect] = [CloseNotification(tag=event.tag)]
        action = event.action if event.action in NOTIFICATION_ACTIONS else None

        if clients:
            target = clients[0]
            effects.append(FocusClient(client_id=target))
            if action and event.task_id:
                effects.append(
                    PostMessage(
                        client_id=target,
                        payload={"type": MSG_NOTIFICATION_ACTION, "action": action, "taskId": event.task_id},
                    )
                )
            return effects

        effects.append(OpenWindow(url=self.click_url(event.task_id, action)))
        return effects

    def _on_message(self, event: MessageEvent, clients: list[str]) -> list[WorkerEffect]:
        msg_type = str((event.data or {}).get("type") or "")

        if msg_type == MSG_SKIP_WAITING:
            if self._state is not WorkerState.INSTALLED:
                logger.debug("SKIP_WAITING in state %s: nothing to skip", self._state.value)
                return []
            logger.info("Delivery worker v%s skipping wait", self._version)
            payload = {"type": MSG_UPDATING, "message": "Applying update..."}
            return [SkipWaiting(), *(PostMessage(client_id=c, payload=payload) for c in clients)]

        if msg_type == MSG_CHECK_UPDATE:
            if not event.source_client_id:
                return []
            payload = {"hasUpdate": self._state is WorkerState.INSTALLED, "version": self._version}
            return [PostMessage(client_id=event.source_client_id, payload=payload)]

        logger.debug("Unknown worker message type %r ignored", msg_type)
        return []

    def click_url(self, task_id: str | None, action: str | None) -> str:
        if action and task_id:
            return f"{self._root}dashboard?{urlencode({'action': action, 'task': task_id})}"
        return self._root


async def apply_effect(effect: WorkerEffect, runtime: WorkerRuntime) -> None:
    if isinstance(effect, SkipWaiting):
        await runtime.skip_waiting()
    elif isinstance(effect, ClaimClients):
        await runtime.claim_clients()
    elif isinstance(effect, CloseNotification):
        await runtime.close_notification(effect.tag)
    elif isinstance(effect, FocusClient):
        await runtime.focus_client(effect.client_id)
    elif isinstance(effect, OpenWindow):
        await runtime.open_window(effect.url)
    elif isinstance(effect, PostMessage):
        await runtime.post_message(effect.client_id, effect.payload)
    else:
        raise TypeError(f"unknown worker effect: {effect!r}")
