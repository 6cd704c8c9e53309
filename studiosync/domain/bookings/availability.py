"""
Blocked half-hour slots per canonical date, computed on demand from bookings.

Dates come from resolve_canonical_date(stored, source_version) and are
never converted through a timezone here.
"""

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Iterable, Optional

from ...models import Booking
from ...utils.time_slots import SLOT_MINUTES, minutes_to_time_string, time_string_to_minutes
from .dates import resolve_canonical_date
from .schemas import BLOCKING_PAYMENT_STATUSES
from .studios import conflicting_studios

logger = logging.getLogger(__name__)

# Mandatory gap before and after every booking
BUFFER_MINUTES = 30
MINUTES_PER_DAY = 24 * 60


def _floor_to_slot(minutes: int) -> int:
    return minutes - minutes % SLOT_MINUTES


def booking_slot_range(start_time: str, end_time: str) -> range:
    """
    Slot starts (minutes after midnight) covered by [start - buffer, end + buffer).
    An end before the start means the booking runs past midnight, so the range
    continues past 24:00. An end equal to the start is treated as one slot long.
    """
    start = time_string_to_minutes(start_time)
    end = time_string_to_minutes(end_time)
    if end < start:
        end += MINUTES_PER_DAY
    elif end == start:
        end = start + SLOT_MINUTES

    first = max(_floor_to_slot(start - BUFFER_MINUTES), 0)
    last = end + BUFFER_MINUTES
    return range(first, last, SLOT_MINUTES)


def blocked_slots(bookings: Iterable[Booking], studio: Optional[str] = None) -> dict[date, set[int]]:
    """
    Map canonical date -> blocked slot starts (minutes after midnight).

    Args:
        bookings: Stored bookings; only success/manual ones block
        studio: When given, only bookings in a studio sharing space with it count
    """
    relevant = conflicting_studios(studio) if studio else None
    blocked: dict[date, set[int]] = defaultdict(set)

    for booking in bookings:
        if booking.payment_status not in BLOCKING_PAYMENT_STATUSES:
            continue
        if relevant is not None and booking.studio not in relevant:
            continue

        try:
            slots = booking_slot_range(booking.start_time, booking.end_time)
        except ValueError as e:
            logger.warning(f"⚠️ Booking #{booking.id} has unreadable times, not blocking: {e}")
            continue

        day = resolve_canonical_date(booking.canonical_date, booking.source_version)
        for minutes in slots:
            # Slots past midnight belong to the next day
            overflow, minutes = divmod(minutes, MINUTES_PER_DAY)
            blocked[day + timedelta(days=overflow)].add(minutes)

    return dict(blocked)


def blocked_slot_strings(bookings: Iterable[Booking], studio: str, day: date) -> list[str]:
    """Blocked slots for one studio on one date as "h:mm AM" strings, in order"""
    slots = blocked_slots(bookings, studio).get(day, set())
    return [minutes_to_time_string(m) for m in sorted(slots)]


def is_slot_available(bookings: Iterable[Booking], studio: str, day: date, start_time: str) -> bool:
    minutes = _floor_to_slot(time_string_to_minutes(start_time))
    return minutes not in blocked_slots(bookings, studio).get(day, set())
