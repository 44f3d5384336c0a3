"""
Reminder subsystem.

Components:
- reminder_models.py: data structures (Reminder, ReminderState, CalendarEvent, Task)
- reminder_store.py: SQLite-backed storage with a memory-only fallback
- reminder_scheduler.py: reconciliation pass + polling driver loop
- permission_gate.py: notification capability and consent negotiation
- calendar_export.py: CalendarEvent / iCalendar / provider deep links
- reminder_api.py: small high-level helpers used by the rest of the app
"""
