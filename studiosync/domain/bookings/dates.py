"""
Canonical booking dates.

A booking's date is derived exactly once, when a calendar event is
normalized: the event's start instant is converted into the display
timezone and the calendar date of that wall-clock time is stored as a
plain ``date``. Nothing downstream converts it through a timezone again.

Rows written by older revisions of the sync code stored a date that is
one day early. Every reader goes through ``resolve_canonical_date`` with
the row's ``source_version`` so that correction lives in one place.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo

CURRENT_SOURCE_VERSION = "v4.0-canonical-date"

# Revisions whose stored date already is the canonical date
CANONICAL_SOURCE_VERSIONS = frozenset({"v2.5-date-timezone-fixed", CURRENT_SOURCE_VERSION})
CANONICAL_SOURCE_MARKERS = ("v3.1-date-corrected", "v3.4-calendar-database-synced")

# Untagged rows and every other revision stored the date one day early
LEGACY_DATE_OFFSET = timedelta(days=1)


def is_current_source_version(source_version: Optional[str]) -> bool:
    return source_version == CURRENT_SOURCE_VERSION


def needs_legacy_correction(source_version: Optional[str]) -> bool:
    if not source_version:
        return True
    if source_version in CANONICAL_SOURCE_VERSIONS:
        return False
    return not any(marker in source_version for marker in CANONICAL_SOURCE_MARKERS)


def _stored_date_part(stored: Union[date, datetime]) -> date:
    # Legacy rows may carry a full timestamp; their date digits are the UTC ones
    if isinstance(stored, datetime):
        if stored.tzinfo is not None:
            stored = stored.astimezone(timezone.utc)
        return stored.date()
    return stored


def resolve_canonical_date(stored: Union[date, datetime], source_version: Optional[str]) -> date:
    """
    Return the calendar date a stored booking actually falls on.

    Args:
        stored: The value persisted in ``canonical_date``
        source_version: The row's ``source_version`` tag

    Returns:
        The date to group, filter and display the booking by
    """
    stored_date = _stored_date_part(stored)
    if needs_legacy_correction(source_version):
        return stored_date + LEGACY_DATE_OFFSET
    return stored_date


def canonical_date_from_instant(instant: datetime, display_timezone: str) -> date:
    """Calendar date of ``instant`` as seen on a wall clock in ``display_timezone``"""
    if instant.tzinfo is None:
        raise ValueError("Event instants must be timezone-aware")
    return instant.astimezone(ZoneInfo(display_timezone)).date()


def format_display_date(value: date) -> str:
    """date(2025, 7, 30) -> "Jul 30, 2025" """
    return f"{value.strftime('%b')} {value.day}, {value.year}"
