"""
Idempotent booking upsert keyed by calendar event id.

This is the only code path that turns a calendar event into a Booking.
Correctness under concurrent and repeated delivery rests on the unique
index on ``bookings.external_event_id``: whichever writer commits first
wins and every other insert fails with IntegrityError, which is reported
as ALREADY_EXISTS. The notification deduplicator upstream only saves
work; it does not make this safe on its own.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import Booking
from ...utils.sanitization import has_markup, strip_markup
from .dates import CURRENT_SOURCE_VERSION, is_current_source_version, resolve_canonical_date
from .repository import BookingRepository
from .schemas import NormalizedBooking, UpsertOutcome

logger = logging.getLogger(__name__)

REPAIRABLE_TEXT_FIELDS = ("customer_name", "customer_email", "customer_phone")


@dataclass
class UpsertResult:
    outcome: UpsertOutcome
    booking: Optional[Booking]
    duplicates_removed: int = 0
    migrated: bool = False
    flagged: bool = False


class BookingUpsertGuard:
    """Decides create / skip / repair for one normalized calendar event"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BookingRepository()

    def upsert(self, normalized: NormalizedBooking, migrate_legacy: bool = False) -> UpsertResult:
        """
        Create the booking for ``normalized.external_event_id`` unless one exists.

        Args:
            normalized: Output of the normalizer
            migrate_legacy: Allow rewriting the date of rows tagged with an older
                source version (reconcile job only)
        """
        event_id = normalized.external_event_id
        existing = self.repo.find_by_external_event_id(self.db, event_id)

        if not existing:
            return self._insert(normalized)

        booking, removed = self.remove_duplicates(existing)
        repaired = self._repair_markup(booking)

        migrated = flagged = False
        if migrate_legacy:
            migrated, flagged = self._migrate_legacy_date(booking, normalized)

        outcome = UpsertOutcome.REPAIRED if (repaired or migrated) else UpsertOutcome.ALREADY_EXISTS
        return UpsertResult(
            outcome=outcome,
            booking=booking,
            duplicates_removed=removed,
            migrated=migrated,
            flagged=flagged,
        )

    def _insert(self, normalized: NormalizedBooking) -> UpsertResult:
        event_id = normalized.external_event_id
        try:
            booking = self.repo.create_booking(self.db, **normalized.to_model_fields())
        except IntegrityError:
            self.db.rollback()
            winners = self.repo.find_by_external_event_id(self.db, event_id)
            if not winners:
                # Not the event-id constraint; a real data error
                raise
            logger.info(f"⚠️ Concurrent insert won the race for event {event_id}")
            return UpsertResult(outcome=UpsertOutcome.ALREADY_EXISTS, booking=winners[0])

        logger.info(
            f"✅ Booking created: {booking.customer_name or 'No name'} - {booking.studio} - "
            f"{booking.canonical_date.isoformat()} {booking.start_time}-{booking.end_time}"
        )
        return UpsertResult(outcome=UpsertOutcome.CREATED, booking=booking)

    def remove_cancelled(self, event_id: str) -> int:
        """Delete every booking for a cancelled calendar event so its slots open up again"""
        existing = self.repo.find_by_external_event_id(self.db, event_id)
        if not existing:
            return 0

        removed = self.repo.delete_bookings(self.db, existing)
        logger.info(f"🗑️ Removed {removed} booking(s) for cancelled event {event_id}")
        return removed

    def remove_duplicates(self, bookings: list[Booking]) -> tuple[Booking, int]:
        """
        Keep the earliest-created booking of a set sharing one event id and
        delete the rest. ``bookings`` must be ordered oldest first.
        """
        keep, extras = bookings[0], bookings[1:]
        if not extras:
            return keep, 0

        logger.warning(
            f"🧹 {len(bookings)} bookings share event {keep.external_event_id}; "
            f"keeping #{keep.id} ({keep.created_at})"
        )
        removed = self.repo.delete_bookings(self.db, extras)
        return keep, removed

    def _repair_markup(self, booking: Booking) -> bool:
        updates = {}
        for field in REPAIRABLE_TEXT_FIELDS:
            value = getattr(booking, field)
            if has_markup(value):
                updates[field] = strip_markup(value)

        if not updates:
            return False

        for field, cleaned in updates.items():
            logger.info(f"🧹 Repaired {field} on booking #{booking.id}: {getattr(booking, field)!r} -> {cleaned!r}")
        self.repo.update_booking(self.db, booking, **updates)
        return True

    def _migrate_legacy_date(self, booking: Booking, normalized: NormalizedBooking) -> tuple[bool, bool]:
        """
        Bring a row written by older sync code onto the current source version.

        The date is only rewritten when the legacy correction rule and the
        current normalizer agree. Disagreements are flagged for manual review
        and left untouched.

        Returns:
            (migrated, newly_flagged)
        """
        if is_current_source_version(booking.source_version):
            return False, False

        resolved = resolve_canonical_date(booking.canonical_date, booking.source_version)
        if resolved == normalized.canonical_date:
            logger.info(
                f"📅 Migrated booking #{booking.id} from {booking.source_version or 'untagged'} "
                f"to {CURRENT_SOURCE_VERSION} ({resolved.isoformat()})"
            )
            self.repo.update_booking(
                self.db,
                booking,
                canonical_date=normalized.canonical_date,
                source_version=CURRENT_SOURCE_VERSION,
                needs_review=False,
                review_note=None,
            )
            return True, False

        if booking.needs_review:
            return False, False

        note = (
            f"Stored {booking.canonical_date} ({booking.source_version or 'untagged'}) resolves to "
            f"{resolved.isoformat()} but calendar event gives {normalized.canonical_date.isoformat()}"
        )
        logger.warning(f"⚠️ Booking #{booking.id} flagged for review: {note}")
        self.repo.update_booking(self.db, booking, needs_review=True, review_note=note)
        return False, True
