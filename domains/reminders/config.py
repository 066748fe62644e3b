"""Reminders domain configuration."""

import os

from config import DATA_DIR

# SQLite database holding reminders, member history and scheduled events
REMINDERS_DB = os.environ.get("REMINDERS_DB", str(DATA_DIR / "reminders.db"))

# Limits
MAX_REMINDERS_PER_USER = 100
MAX_REMINDER_YEARS = 10
LIST_MESSAGE_LIMIT = 50

# Absolute reminder dates without a zone are interpreted in this zone
DEFAULT_TIMEZONE = os.environ.get("REMINDERS_DEFAULT_TIMEZONE", "GMT")

# Guild ID stored for reminders created in DMs
DIRECT_MESSAGE_GUILD_ID = -1

# Guild ID stored on events migrated from the legacy scheduler
MIGRATED_EVENT_GUILD_ID = 1

# Sweep engine
SWEEP_INTERVAL_SECONDS = int(os.environ.get("REMINDERS_SWEEP_INTERVAL", 10))
EVENT_MAX_RETRIES = int(os.environ.get("REMINDERS_EVENT_MAX_RETRIES", 10))
EVENT_RETRY_BASE_SECONDS = 10
EVENT_RETRY_MAX_SECONDS = 3600

# Retention
# Claims older than this are assumed abandoned (crash mid-send, failed release)
CLAIM_TIMEOUT_SECONDS = 300
DELETED_RETENTION_DAYS = 30
PROCESSED_EVENT_RETENTION_DAYS = 7

# Timezone autocomplete
TIMEZONE_AUTOCOMPLETE_LIMIT = 25
