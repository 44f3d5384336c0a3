# src/dayfuse/reminders/permission_gate.py

from __future__ import annotations

"""
Notification capability gate.

Wraps the platform's notification permission:
- current_capability() is a synchronous re-query (never raises),
- request_capability() runs at most one consent prompt at a time; concurrent callers share it,
- send_test() shows one immediate, non-persisted notification.

Platform errors never escape: they resolve to DENIED.
"""

import asyncio
import logging

from ..core.ports import NotificationPlatform
from .errors import CapabilityUnavailable, PromptDismissed
from .reminder_models import NotificationCapability

logger = logging.getLogger(__name__)

TEST_NOTIFICATION_TITLE = "DayFuse Test Notification"
TEST_NOTIFICATION_BODY = "Notifications are working correctly!"
TEST_NOTIFICATION_TAG = "test-notification"

_PLATFORM_VALUES = {
    "default": NotificationCapability.UNKNOWN,
    "prompt": NotificationCapability.UNKNOWN,
    "granted": NotificationCapability.GRANTED,
    "denied": NotificationCapability.DENIED,
}


def _from_platform(raw: str | None) -> NotificationCapability:
    if raw is None:
        raise CapabilityUnavailable("platform has no notification support")
    return _PLATFORM_VALUES.get(str(raw).strip().lower(), NotificationCapability.DENIED)


class PermissionGate:
    def __init__(self, platform: NotificationPlatform) -> None:
        self._platform = platform
        self._pending: asyncio.Task[NotificationCapability] | None = None
        self._last_seen: NotificationCapability | None = None

    @property
    def prompt_in_flight(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def current_capability(self) -> NotificationCapability:
        if self.prompt_in_flight:
            return NotificationCapability.REQUESTING

        try:
            cap = _from_platform(self._platform.query_permission())
        except CapabilityUnavailable:
            cap = NotificationCapability.DENIED
        except Exception:
            logger.exception("Notification permission query failed; treating as denied.")
            cap = NotificationCapability.DENIED

        if cap != self._last_seen:
            if self._last_seen is not None:
                logger.info("Notification capability changed %s -> %s", self._last_seen.value, cap.value)
            self._last_seen = cap
        return cap

    async def request_capability(self) -> NotificationCapability:
        if self._pending is not None:
            # Coalesce: every caller awaits the same prompt. shield() keeps one caller's
            # cancellation from cancelling the prompt for the others.
            return await asyncio.shield(self._pending)

        cap = self.current_capability()
        if cap is not NotificationCapability.UNKNOWN:
            # granted: idempotent; denied: platforms do not re-prompt.
            return cap

        self._pending = asyncio.ensure_future(self._prompt())
        return await asyncio.shield(self._pending)

    async def _prompt(self) -> NotificationCapability:
        logger.info("Requesting notification permission...")
        try:
            raw = await self._platform.request_permission()
            cap = _from_platform(raw)
            if cap is not NotificationCapability.GRANTED:
                raise PromptDismissed(f"platform answered {raw!r}")
        except PromptDismissed as e:
            logger.info("Notification permission not granted (%s)", e)
            cap = NotificationCapability.DENIED
        except CapabilityUnavailable:
            logger.info("Notification permission unavailable on this platform.")
            cap = NotificationCapability.DENIED
        except Exception:
            logger.exception("Notification permission prompt failed; treating as denied.")
            cap = NotificationCapability.DENIED
        finally:
            self._pending = None

        self._last_seen = cap
        logger.info("Notification permission resolved: %s", cap.value)
        return cap

    async def send_test(self) -> bool:
        cap = self.current_capability()
        if cap is not NotificationCapability.GRANTED:
            logger.info("Test notification skipped: capability is %s", cap.value)
            return False

        try:
            await self._platform.show_notification(
                title=TEST_NOTIFICATION_TITLE,
                body=TEST_NOTIFICATION_BODY,
                tag=TEST_NOTIFICATION_TAG,
            )
        except Exception:
            logger.exception("Test notification failed.")
            return False
        return True
