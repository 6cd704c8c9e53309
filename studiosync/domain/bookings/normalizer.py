"""
Calendar event -> booking fields.

Pure and deterministic: the same event, source and timezone always give
the same NormalizedBooking, and nothing here touches the network or the
database.
"""

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from ...config import DISPLAY_TIMEZONE, MIGRATION_CUTOVER
from ...utils.sanitization import sanitize_fields
from ...utils.time_slots import format_12_hour
from .content_parser import EventContentParser, default_parser
from .dates import CURRENT_SOURCE_VERSION, canonical_date_from_instant
from .schemas import CalendarSource, EventTime, ExternalEvent, NormalizedBooking, PaymentStatus


class EventSkipped(Exception):
    """The event can never produce a booking (all-day, cancelled, ...)"""

    def __init__(self, event_id: str, reason: str):
        super().__init__(f"Skipped {event_id}: {reason}")
        self.event_id = event_id
        self.reason = reason


def _aware_instant(event_time: EventTime) -> datetime:
    moment = event_time.date_time
    if moment.tzinfo is None:
        # Offset-less dateTime values are wall-clock times in the event's own zone
        zone = ZoneInfo(event_time.time_zone) if event_time.time_zone else timezone.utc
        moment = moment.replace(tzinfo=zone)
    return moment


def assign_payment_status(start: datetime, calendar_source: CalendarSource) -> PaymentStatus:
    """
    Events before the migration cutover are always manual; old data is never
    reclassified. After it, online-calendar events were paid through checkout.
    """
    if start < MIGRATION_CUTOVER:
        return PaymentStatus.MANUAL
    if calendar_source == CalendarSource.ONLINE:
        return PaymentStatus.SUCCESS
    return PaymentStatus.MANUAL


def normalize_event(
    event: ExternalEvent,
    calendar_source: CalendarSource,
    display_timezone: Optional[str] = None,
    parser: EventContentParser = default_parser,
) -> NormalizedBooking:
    """
    Turn an external calendar event into canonical booking fields.

    The canonical date is the calendar date of the event's start instant in
    the display timezone, not in the timezone attached to the event.

    Raises:
        EventSkipped: For cancelled and all-day events
    """
    display_timezone = display_timezone or DISPLAY_TIMEZONE

    if event.is_cancelled:
        raise EventSkipped(event.id, "cancelled")
    if event.is_all_day:
        raise EventSkipped(event.id, "all-day")
    if not event.has_start_time:
        raise EventSkipped(event.id, "no start time")

    start = _aware_instant(event.start)
    if event.end is not None and event.end.date_time is not None:
        end = _aware_instant(event.end)
    else:
        end = start

    zone = ZoneInfo(display_timezone)
    customer = sanitize_fields(
        parser.parse_customer(event.description),
        ["customer_name", "customer_email", "customer_phone"],
    )

    return NormalizedBooking(
        studio=parser.parse_studio(event.summary),
        canonical_date=canonical_date_from_instant(start, display_timezone),
        start_time=format_12_hour(start.astimezone(zone)),
        end_time=format_12_hour(end.astimezone(zone)),
        payment_status=assign_payment_status(start, calendar_source),
        external_event_id=event.id,
        calendar_source=calendar_source,
        source_version=CURRENT_SOURCE_VERSION,
        event_updated_at=event.updated,
        **customer,
    )
