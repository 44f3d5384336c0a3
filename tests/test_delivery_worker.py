# tests/test_delivery_worker.py

from __future__ import annotations

import pytest

from dayfuse.worker.delivery_worker import (
    MSG_CHECK_UPDATE,
    MSG_NOTIFICATION_ACTION,
    MSG_SKIP_WAITING,
    MSG_UPDATE_AVAILABLE,
    MSG_UPDATING,
    ActivateEvent,
    ClaimClients,
    CloseNotification,
    DeliveryWorkerCoordinator,
    FocusClient,
    InstallEvent,
    MessageEvent,
    NotificationClickEvent,
    OpenWindow,
    PostMessage,
    SkipWaiting,
    WorkerState,
)

from .fakes import FakeWorkerRuntime


def _running_worker(**kw) -> DeliveryWorkerCoordinator:
    worker = DeliveryWorkerCoordinator(**kw)
    worker.handle(InstallEvent(), [])
    worker.handle(ActivateEvent(), [])
    worker.confirm_claimed()
    return worker


def test_lifecycle_install_activate_run() -> None:
    worker = DeliveryWorkerCoordinator()
    assert worker.state is WorkerState.INSTALLING

    assert worker.handle(InstallEvent(), []) == []
    assert worker.state is WorkerState.INSTALLED

    assert worker.handle(ActivateEvent(), ["c1"]) == [ClaimClients()]
    assert worker.state is WorkerState.ACTIVATED

    worker.confirm_claimed()
    assert worker.state is WorkerState.RUNNING


def test_activate_with_predecessor_announces_update_to_every_client() -> None:
    worker = DeliveryWorkerCoordinator(version="2")
    worker.handle(InstallEvent(has_predecessor=True), [])

    effects = worker.handle(ActivateEvent(), ["c1", "c2"])

    payload = {"type": MSG_UPDATE_AVAILABLE, "version": "2", "canUpdate": True}
    assert effects == [
        ClaimClients(),
        PostMessage(client_id="c1", payload=payload),
        PostMessage(client_id="c2", payload=payload),
    ]


def test_out_of_order_lifecycle_events_are_ignored() -> None:
    worker = DeliveryWorkerCoordinator()

    assert worker.handle(ActivateEvent(), ["c1"]) == []
    assert worker.state is WorkerState.INSTALLING

    worker.handle(InstallEvent(), [])
    assert worker.handle(InstallEvent(), []) == []
    assert worker.state is WorkerState.INSTALLED


def test_click_before_activation_is_ignored() -> None:
    worker = DeliveryWorkerCoordinator()
    worker.handle(InstallEvent(), [])

    assert worker.handle(NotificationClickEvent(tag="task-1", task_id="1"), ["c1"]) == []


def test_click_focuses_existing_client() -> None:
    worker = _running_worker()

    effects = worker.handle(NotificationClickEvent(tag="task-1", task_id="1"), ["c1", "c2"])

    assert effects == [CloseNotification(tag="task-1"), FocusClient(client_id="c1")]


def test_click_with_action_forwards_it_to_the_focused_client() -> None:
    worker = _running_worker()

    effects = worker.handle(NotificationClickEvent(tag="task-1", task_id="1", action="snooze"), ["c1"])

    assert effects == [
        CloseNotification(tag="task-1"),
        FocusClient(client_id="c1"),
        PostMessage(client_id="c1", payload={"type": MSG_NOTIFICATION_ACTION, "action": "snooze", "taskId": "1"}),
    ]


def test_click_without_clients_opens_app_root() -> None:
    worker = _running_worker(app_root_url="https://dayfuse.app")

    effects = worker.handle(NotificationClickEvent(tag="task-1", task_id="1"), [])

    assert effects == [CloseNotification(tag="task-1"), OpenWindow(url="https://dayfuse.app/")]


def test_click_action_without_clients_opens_dashboard() -> None:
    worker = _running_worker()

    effects = worker.handle(NotificationClickEvent(tag="task-7", task_id="7", action="complete"), [])

    assert effects[-1] == OpenWindow(url="/dashboard?action=complete&task=7")


def test_unknown_click_action_is_dropped() -> None:
    worker = _running_worker()

    effects = worker.handle(NotificationClickEvent(tag="task-7", task_id="7", action="delete"), [])

    assert effects[-1] == OpenWindow(url="/")


def test_skip_waiting_only_while_installed() -> None:
    worker = DeliveryWorkerCoordinator()
    worker.handle(InstallEvent(has_predecessor=True), [])

    effects = worker.handle(MessageEvent(data={"type": MSG_SKIP_WAITING}), ["c1"])

    assert effects == [
        SkipWaiting(),
        PostMessage(client_id="c1", payload={"type": MSG_UPDATING, "message": "Applying update..."}),
    ]

    running = _running_worker()
    assert running.handle(MessageEvent(data={"type": MSG_SKIP_WAITING}), ["c1"]) == []


def test_check_update_replies_to_the_asking_client() -> None:
    waiting = DeliveryWorkerCoordinator(version="3")
    waiting.handle(InstallEvent(), [])

    effects = waiting.handle(MessageEvent(data={"type": MSG_CHECK_UPDATE}, source_client_id="c9"), ["c1", "c9"])
    assert effects == [PostMessage(client_id="c9", payload={"hasUpdate": True, "version": "3"})]

    running = _running_worker(version="3")
    effects = running.handle(MessageEvent(data={"type": MSG_CHECK_UPDATE}, source_client_id="c9"), ["c9"])
    assert effects == [PostMessage(client_id="c9", payload={"hasUpdate": False, "version": "3"})]


def test_unknown_message_is_ignored() -> None:
    worker = _running_worker()

    assert worker.handle(MessageEvent(data={"type": "PING"}), ["c1"]) == []
    assert worker.handle(MessageEvent(data={}), ["c1"]) == []


@pytest.mark.asyncio
async def test_dispatch_applies_effects_and_confirms_claim() -> None:
    runtime = FakeWorkerRuntime(clients=["console"])
    worker = DeliveryWorkerCoordinator()

    await worker.dispatch(InstallEvent(), runtime)
    await worker.dispatch(ActivateEvent(), runtime)

    assert worker.state is WorkerState.RUNNING
    assert runtime.calls == [("claim_clients", None)]

    await worker.dispatch(NotificationClickEvent(tag="task-1", task_id="1"), runtime)

    assert runtime.calls[1:] == [("close_notification", "task-1"), ("focus_client", "console")]


@pytest.mark.asyncio
async def test_dispatch_keeps_going_when_an_effect_fails() -> None:
    class FlakyRuntime(FakeWorkerRuntime):
        async def close_notification(self, tag: str) -> None:
            raise RuntimeError("already closed")

    runtime = FlakyRuntime(clients=[])
    worker = DeliveryWorkerCoordinator()
    await worker.dispatch(InstallEvent(), runtime)
    await worker.dispatch(ActivateEvent(), runtime)

    await worker.dispatch(NotificationClickEvent(tag="task-1", task_id="1"), runtime)

    assert ("open_window", "/") in runtime.calls
