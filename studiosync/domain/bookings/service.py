"""Booking service - Read-path business logic for bookings"""

import logging
from datetime import date

from sqlalchemy.orm import Session

from ...models import Booking
from .availability import blocked_slot_strings
from .dates import format_display_date, resolve_canonical_date
from .repository import BookingRepository
from .schemas import BLOCKING_PAYMENT_STATUSES, AvailabilityResponse, BookingResponse

logger = logging.getLogger(__name__)


def to_booking_response(booking: Booking) -> BookingResponse:
    """Every date leaving the service goes through resolve_canonical_date"""
    day = resolve_canonical_date(booking.canonical_date, booking.source_version)
    return BookingResponse(
        id=booking.id,
        studio=booking.studio,
        date=day,
        displayDate=format_display_date(day),
        startTime=booking.start_time,
        endTime=booking.end_time,
        customerName=booking.customer_name or "",
        customerEmail=booking.customer_email or "",
        customerPhone=booking.customer_phone or "",
        paymentStatus=booking.payment_status,
        externalEventId=booking.external_event_id,
        calendarSource=booking.calendar_source,
        sourceVersion=booking.source_version,
        needsReview=bool(booking.needs_review),
        reviewNote=booking.review_note,
        createdAt=booking.created_at,
    )


class BookingService:
    """Service for booking queries"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BookingRepository()

    def get_bookings(self) -> list[BookingResponse]:
        bookings = self.repo.list_bookings(self.db)
        responses = [to_booking_response(b) for b in bookings]
        # Stored order can differ from resolved order for legacy rows
        responses.sort(key=lambda r: (r.date, r.id))
        return responses

    def get_availability(self, studio: str, day: date) -> AvailabilityResponse:
        bookings = self.repo.list_bookings_between(self.db, day, day)
        bookings = [b for b in bookings if b.payment_status in BLOCKING_PAYMENT_STATUSES]
        slots = blocked_slot_strings(bookings, studio, day)
        logger.debug(f"{studio} on {day.isoformat()}: {len(slots)} blocked slots")
        return AvailabilityResponse(studio=studio, date=day, blockedSlots=slots)

    def get_bookings_needing_review(self) -> list[BookingResponse]:
        return [to_booking_response(b) for b in self.repo.list_needing_review(self.db)]
