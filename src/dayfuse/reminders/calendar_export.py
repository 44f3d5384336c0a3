# src/dayfuse/reminders/calendar_export.py

from __future__ import annotations

"""
Calendar export (fallback channel).

Turns a Reminder into a provider-agnostic CalendarEvent and renders it as:
- an iCalendar (RFC 5545) document with a single VEVENT,
- a Google / Outlook "new event" deep link,
- a downloadable artifact (bytes + filename) for the UI layer.

Everything here is pure: the same reminder always produces the same bytes.
DTSTAMP is pinned to DTSTART instead of "now" for that reason.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import urlencode

from .reminder_models import DEFAULT_EVENT_MINUTES, CalendarEvent, Reminder, ensure_utc, event_end

logger = logging.getLogger(__name__)

ICS_CONTENT_TYPE = "text/calendar;charset=utf-8"
ICS_DATE_FORMAT = "%Y%m%dT%H%M%SZ"
ICS_LINE_LIMIT = 75  # octets, excluding CRLF

GOOGLE_CALENDAR_URL = "https://calendar.google.com/calendar/render"
OUTLOOK_CALENDAR_URL = "https://outlook.live.com/calendar/0/deeplink/compose"
PROVIDERS = ("google", "outlook")

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")
_FILENAME_UNSAFE = re.compile(r"[^a-z0-9]", re.IGNORECASE)


@dataclass(slots=True, frozen=True)
class CalendarArtifact:
    filename: str
    content_type: str
    data: bytes


def format_ics_datetime(value: datetime) -> str:
    return ensure_utc(value).strftime(ICS_DATE_FORMAT)


def parse_ics_datetime(raw: str) -> datetime:
    raw = raw.strip()
    if len(raw) == 8:
        # VALUE=DATE: midnight UTC
        return datetime.strptime(raw, "%Y%m%d").replace(tzinfo=timezone.utc)
    return datetime.strptime(raw.rstrip("Z"), "%Y%m%dT%H%M%S").replace(tzinfo=timezone.utc)


def escape_text(value: str) -> str:
    """Escape a TEXT property value (RFC 5545 3.3.11)."""
    value = value.replace("\r\n", "\n").replace("\r", "\n")
    value = _CONTROL_CHARS.sub("", value)
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
    )


def unescape_text(value: str) -> str:
    out: list[str] = []
    it = iter(value)
    for ch in it:
        if ch != "\\":
            out.append(ch)
            continue
        nxt = next(it, "")
        out.append("\n" if nxt in ("n", "N") else nxt)
    return "".join(out)


def fold_line(line: str) -> str:
    """Fold a content line at 75 octets without splitting a UTF-8 sequence."""
    if len(line.encode("utf-8")) <= ICS_LINE_LIMIT:
        return line

    parts: list[str] = []
    current = ""
    current_len = 0
    limit = ICS_LINE_LIMIT
    for ch in line:
        n = len(ch.encode("utf-8"))
        if current_len + n > limit:
            parts.append(current)
            current = ""
            current_len = 0
            limit = ICS_LINE_LIMIT - 1  # continuation lines start with a space
        current += ch
        current_len += n
    parts.append(current)
    return "\r\n ".join(parts)


def unfold_lines(text: str) -> list[str]:
    lines: list[str] = []
    for raw in text.replace("\r\n", "\n").split("\n"):
        if raw[:1] in (" ", "\t") and lines:
            lines[-1] += raw[1:]
        elif raw:
            lines.append(raw)
    return lines


def sanitize(value: str | None) -> str:
    if not value:
        return ""
    return _CONTROL_CHARS.sub("", str(value)).strip()


class CalendarEventExporter:
    """Stateless exporter; configuration only affects identifiers and defaults."""

    def __init__(
        self,
        *,
        uid_domain: str = "dayfuse.app",
        prodid: str = "-//DayFuse//Task Reminder//EN",
        default_event_minutes: int = DEFAULT_EVENT_MINUTES,
    ) -> None:
        self._uid_domain = uid_domain
        self._prodid = prodid
        self._default_minutes = max(1, int(default_event_minutes))

    def event_uid(self, task_id: str) -> str:
        return f"{task_id}@{self._uid_domain}"

    def to_calendar_event(self, reminder: Reminder) -> CalendarEvent:
        start = ensure_utc(reminder.due_at).replace(microsecond=0)
        return CalendarEvent(
            uid=self.event_uid(reminder.task_id),
            title=reminder.title,
            description=reminder.body,
            start=start,
            end=event_end(start, reminder.duration_minutes, self._default_minutes),
        )

    def to_ics(self, event: CalendarEvent) -> str:
        start = format_ics_datetime(event.start)
        lines = [
            "BEGIN:VCALENDAR",
            "VERSION:2.0",
            f"PRODID:{self._prodid}",
            "CALSCALE:GREGORIAN",
            "METHOD:PUBLISH",
            "BEGIN:VEVENT",
            f"UID:{escape_text(event.uid)}",
            f"DTSTAMP:{start}",
            f"DTSTART:{start}",
            f"DTEND:{format_ics_datetime(event.end)}",
            f"SUMMARY:{escape_text(event.title)}",
            f"DESCRIPTION:{escape_text(event.description)}",
            "STATUS:CONFIRMED",
            "TRANSP:OPAQUE",
            "BEGIN:VALARM",
            "TRIGGER:PT0M",
            "ACTION:DISPLAY",
            f"DESCRIPTION:{escape_text(event.title)}",
            "END:VALARM",
            "END:VEVENT",
            "END:VCALENDAR",
        ]
        return "\r\n".join(fold_line(line) for line in lines) + "\r\n"

    def to_provider_url(self, event: CalendarEvent, provider: str) -> str:
        title = sanitize(event.title)
        details = sanitize(event.description)
        p = (provider or "").strip().lower()

        if p == "google":
            params = {
                "action": "TEMPLATE",
                "text": title,
                "dates": f"{format_ics_datetime(event.start)}/{format_ics_datetime(event.end)}",
                "details": details,
            }
            return f"{GOOGLE_CALENDAR_URL}?{urlencode(params)}"

        if p == "outlook":
            params = {
                "path": "/calendar/action/compose",
                "rru": "addevent",
                "subject": title,
                "startdt": ensure_utc(event.start).strftime("%Y-%m-%dT%H:%M:%SZ"),
                "enddt": ensure_utc(event.end).strftime("%Y-%m-%dT%H:%M:%SZ"),
                "body": details,
            }
            return f"{OUTLOOK_CALENDAR_URL}?{urlencode(params)}"

        raise ValueError(f"unknown calendar provider: {provider!r} (expected one of {PROVIDERS})")

    def download_artifact(self, event: CalendarEvent) -> CalendarArtifact:
        slug = _FILENAME_UNSAFE.sub("_", event.title).lower() or "task"
        return CalendarArtifact(
            filename=f"{slug}_reminder.ics",
            content_type=ICS_CONTENT_TYPE,
            data=self.to_ics(event).encode("utf-8"),
        )


def parse_ics(text: str) -> CalendarEvent:
    """
    Parse the first VEVENT of an iCalendar document.

    Only the properties this module writes are recovered. VALARM content is skipped.
    """
    props: dict[str, str] = {}
    in_event = False
    in_alarm = False

    for line in unfold_lines(text):
        name_part, sep, value = line.partition(":")
        if not sep:
            continue
        name = name_part.split(";", 1)[0].upper()

        if name == "BEGIN" and value.upper() == "VEVENT":
            in_event = True
            continue
        if name == "END" and value.upper() == "VEVENT":
            break
        if not in_event:
            continue
        if name == "BEGIN" and value.upper() == "VALARM":
            in_alarm = True
            continue
        if name == "END" and value.upper() == "VALARM":
            in_alarm = False
            continue
        if in_alarm:
            continue
        props.setdefault(name, value)

    if "DTSTART" not in props:
        raise ValueError("no VEVENT with DTSTART found")

    start = parse_ics_datetime(props["DTSTART"])
    end = parse_ics_datetime(props["DTEND"]) if "DTEND" in props else event_end(start, None)
    return CalendarEvent(
        uid=unescape_text(props.get("UID", "")),
        title=unescape_text(props.get("SUMMARY", "")),
        description=unescape_text(props.get("DESCRIPTION", "")),
        start=start,
        end=end,
    )
