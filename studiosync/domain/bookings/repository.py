"""Booking repository - Database operations for bookings"""

from datetime import date, timedelta

from sqlalchemy.orm import Session

from ...models import Booking


class BookingRepository:
    """Repository for booking database operations"""

    @staticmethod
    def find_by_external_event_id(db: Session, external_event_id: str) -> list[Booking]:
        """All bookings for a calendar event, oldest first"""
        return (
            db.query(Booking)
            .filter(Booking.external_event_id == external_event_id)
            .order_by(Booking.created_at.asc(), Booking.id.asc())
            .all()
        )

    @staticmethod
    def list_bookings(db: Session) -> list[Booking]:
        return db.query(Booking).order_by(Booking.canonical_date.asc(), Booking.id.asc()).all()

    @staticmethod
    def list_bookings_between(db: Session, first: date, last: date) -> list[Booking]:
        """
        Bookings whose stored date falls in [first, last].
        Callers must still resolve legacy dates; the range is widened by a day
        on each side so corrected rows near the edges are not missed.
        """
        return (
            db.query(Booking)
            .filter(
                Booking.canonical_date >= first - timedelta(days=1),
                Booking.canonical_date <= last + timedelta(days=1),
            )
            .order_by(Booking.canonical_date.asc(), Booking.id.asc())
            .all()
        )

    @staticmethod
    def list_needing_review(db: Session) -> list[Booking]:
        return (
            db.query(Booking)
            .filter(Booking.needs_review.is_(True))
            .order_by(Booking.canonical_date.asc())
            .all()
        )

    @staticmethod
    def create_booking(db: Session, **booking_data) -> Booking:
        """Insert a booking; IntegrityError propagates to the caller"""
        booking = Booking(**booking_data)
        db.add(booking)
        db.commit()
        db.refresh(booking)
        return booking

    @staticmethod
    def update_booking(db: Session, booking: Booking, **updates) -> Booking:
        for key, value in updates.items():
            if hasattr(booking, key):
                setattr(booking, key, value)
        db.commit()
        db.refresh(booking)
        return booking

    @staticmethod
    def delete_bookings(db: Session, bookings: list[Booking]) -> int:
        for booking in bookings:
            db.delete(booking)
        db.commit()
        return len(bookings)
