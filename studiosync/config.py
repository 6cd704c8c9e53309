import json
import os
from datetime import datetime, timezone
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./studiosync.db")

# Fixed timezone used to turn calendar instants into booking dates and display times
DISPLAY_TIMEZONE = os.getenv("DISPLAY_TIMEZONE", "America/New_York")

# Google Calendar (service account JSON, inline)
GOOGLE_SERVICE_ACCOUNT_KEY = os.getenv("GOOGLE_SERVICE_ACCOUNT_KEY")
# Operator calendar: events created by staff directly in Google Calendar
GOOGLE_CALENDAR_ID = os.getenv("GOOGLE_CALENDAR_ID")
# Online booking calendar: events created after a confirmed checkout
GOOGLE_CALENDAR_ID_WEBSITE = os.getenv("GOOGLE_CALENDAR_ID_WEBSITE")

# Push notification channels: public base URL of this service and the shared channel token
CALENDAR_WEBHOOK_URL = os.getenv("CALENDAR_WEBHOOK_URL")
CALENDAR_CHANNEL_TOKEN = os.getenv("CALENDAR_CHANNEL_TOKEN")

# Notification dedup timings (seconds)
WEBHOOK_COOLDOWN_SECONDS = float(os.getenv("WEBHOOK_COOLDOWN_SECONDS", "15"))
EVENT_COOLDOWN_SECONDS = float(os.getenv("EVENT_COOLDOWN_SECONDS", "30"))
PROCESSING_TIMEOUT_SECONDS = float(os.getenv("PROCESSING_TIMEOUT_SECONDS", "45"))
# "memory" (process-local) or "redis"
DEDUP_BACKEND = os.getenv("DEDUP_BACKEND", "memory").lower()

# Redis (dedup store when DEDUP_BACKEND=redis, and the ARQ worker queue)
REDIS_URL = os.getenv("REDIS_URL")

# How far back a change notification looks for updated events
NOTIFICATION_LOOKBACK_MINUTES = int(os.getenv("NOTIFICATION_LOOKBACK_MINUTES", "10"))
# Events whose `updated` stamp is older than this are ignored by the notification path
NOTIFICATION_MAX_EVENT_AGE_MINUTES = int(os.getenv("NOTIFICATION_MAX_EVENT_AGE_MINUTES", "15"))

# Reconciliation window relative to "now"
RECONCILE_DAYS_BACK = int(os.getenv("RECONCILE_DAYS_BACK", "0"))
RECONCILE_DAYS_FORWARD = int(os.getenv("RECONCILE_DAYS_FORWARD", "365"))
# Nightly reconcile cron (UTC)
RECONCILE_CRON_HOUR = int(os.getenv("RECONCILE_CRON_HOUR", "7"))
RECONCILE_CRON_MINUTE = int(os.getenv("RECONCILE_CRON_MINUTE", "0"))

# Events starting before this instant are always classified as manual bookings
MIGRATION_CUTOVER = datetime(2024, 6, 13, tzinfo=timezone.utc)


class ConfigurationError(RuntimeError):
    """Raised at startup when required settings are missing or invalid"""

    pass


def load_service_account_info(raw: str | None = None) -> dict:
    """
    Parse the inline service account JSON.
    Tolerates the value being wrapped in a pair of single or double quotes.
    """
    raw = GOOGLE_SERVICE_ACCOUNT_KEY if raw is None else raw
    if not raw:
        raise ConfigurationError("GOOGLE_SERVICE_ACCOUNT_KEY is not set")

    raw = raw.strip()
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in ("'", '"'):
        raw = raw[1:-1]

    try:
        info = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"GOOGLE_SERVICE_ACCOUNT_KEY is not valid JSON: {e}") from e

    if not isinstance(info, dict) or "client_email" not in info:
        raise ConfigurationError("GOOGLE_SERVICE_ACCOUNT_KEY is missing client_email")
    return info


def get_calendar_ids() -> dict[str, str]:
    """Configured calendar ids keyed by calendar source value"""
    calendars = {
        "operator": GOOGLE_CALENDAR_ID,
        "online": GOOGLE_CALENDAR_ID_WEBSITE,
    }
    return {source: calendar_id for source, calendar_id in calendars.items() if calendar_id}


def validate_calendar_settings() -> None:
    """
    Fail fast before any processing begins.
    Checks credentials, calendar ids and the display timezone.
    """
    load_service_account_info()

    if not get_calendar_ids():
        raise ConfigurationError(
            "No calendar configured: set GOOGLE_CALENDAR_ID and/or GOOGLE_CALENDAR_ID_WEBSITE"
        )

    try:
        ZoneInfo(DISPLAY_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f"DISPLAY_TIMEZONE is not a valid IANA zone: {DISPLAY_TIMEZONE}") from e

    if DEDUP_BACKEND not in ("memory", "redis"):
        raise ConfigurationError(f"DEDUP_BACKEND must be 'memory' or 'redis', got {DEDUP_BACKEND!r}")
