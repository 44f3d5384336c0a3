# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file,
see src/dayfuse/config.py). Nothing here is imported at runtime.
"""

ENV_VARS = {
    # App / logging
    "DAYFUSE_APP_NAME": "App display name (default: dayfuse).",
    "DAYFUSE_LOG_LEVEL": "Console logging level (default: INFO).",
    # Connectors
    "DAYFUSE_CONSOLE_ENABLED": "Run the console REPL (true/false, default: true).",
    "DAYFUSE_NOTIFICATIONS_SUPPORTED": (
        "Whether the console offers notifications at all (default: true). "
        "false => every due reminder goes to the calendar fallback."
    ),
    # Paths (gitignored)
    "DAYFUSE_DATA_DIR": "Local data directory, also holds dayfuse.log (default: .local/dayfuse).",
    "DAYFUSE_REMINDERS_DB_PATH": "Reminder SQLite path (default: <data_dir>/reminders.sqlite3).",
    # Scheduling
    "DAYFUSE_RECONCILE_INTERVAL_SECONDS": "Polling interval of the reminder scheduler (default: 60).",
    "DAYFUSE_STALE_GRACE_SECONDS": (
        "Reminders overdue by more than this are reported as missed (default: 86400)."
    ),
    "DAYFUSE_RETENTION_DAYS": (
        "Fired/cancelled reminders and their calendar files are deleted after this many days "
        "(default: 7; 0 keeps them forever)."
    ),
    "DAYFUSE_TIMEZONE": "IANA zone for task due date/time (default: UTC).",
    # Calendar export
    "DAYFUSE_DEFAULT_EVENT_MINUTES": "Event length when a task has no duration (default: 30).",
    "DAYFUSE_ICS_UID_DOMAIN": "Domain part of the iCalendar UID <task_id>@<domain> (default: dayfuse.app).",
    "DAYFUSE_ICS_PRODID": "iCalendar PRODID (default: -//DayFuse//Task Reminder//EN).",
    # Delivery worker
    "DAYFUSE_APP_ROOT_URL": "URL opened when a notification is clicked with no open client (default: /).",
    "DAYFUSE_WORKER_VERSION": "Version reported by the delivery worker (default: 1).",
}
