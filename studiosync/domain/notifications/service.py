"""Calendar change notification processing"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from ...config import NOTIFICATION_LOOKBACK_MINUTES, NOTIFICATION_MAX_EVENT_AGE_MINUTES
from ..bookings.normalizer import EventSkipped, normalize_event
from ..bookings.schemas import CalendarSource, ExternalEvent, NotificationSummary, UpsertOutcome
from ..bookings.upsert_guard import BookingUpsertGuard
from .deduplicator import DedupDecision, NotificationDeduplicator

logger = logging.getLogger(__name__)


class CalendarNotificationService:
    """
    Turns one push notification into booking writes:
    dedup gate -> list recently updated events -> normalize -> upsert.
    """

    def __init__(self, db: Session, calendar_client, deduplicator: NotificationDeduplicator):
        self.db = db
        self.calendar_client = calendar_client
        self.deduplicator = deduplicator
        self.guard = BookingUpsertGuard(db)

    async def process_notification(
        self,
        calendar_source: CalendarSource,
        calendar_id: str,
        resource_id: str,
        resource_state: str,
        channel_id: str,
        now: Optional[datetime] = None,
    ) -> NotificationSummary:
        """
        Handle one delivery.

        Raises:
            CalendarAPIError: If the changed events cannot be listed
        """
        decision = self.deduplicator.begin(resource_id, resource_state, channel_id)
        if decision is not DedupDecision.PROCEED:
            return NotificationSummary(status=decision.value, calendar_source=calendar_source)

        try:
            if resource_state == "sync":
                logger.info(f"✅ Sync handshake acknowledged for channel {channel_id} ({calendar_source.value})")
                return NotificationSummary(status="sync", calendar_source=calendar_source)

            now = now or datetime.now(timezone.utc)
            events = await self.calendar_client.list_events(
                calendar_id,
                updated_min=now - timedelta(minutes=NOTIFICATION_LOOKBACK_MINUTES),
                order_by="updated",
            )
            summary = NotificationSummary(
                status="processed", calendar_source=calendar_source, events_fetched=len(events)
            )

            recent = self._recently_updated(events, now)
            if not recent:
                # The change may not be visible to list yet; the nightly reconcile catches it
                logger.info(f"⏭️ No recently updated events on {calendar_source.value} calendar yet")

            for event in recent:
                self._process_event(event, calendar_source, summary)

            logger.info(
                f"✅ Notification processed ({calendar_source.value}): {summary.created} created, "
                f"{summary.repaired} repaired, {summary.already_existing} existing, {summary.removed} removed, "
                f"{summary.skipped} skipped, {len(summary.errors)} errors"
            )
            self.deduplicator.sweep()
            return summary
        finally:
            self.deduplicator.complete(resource_id, resource_state, channel_id)

    def _recently_updated(self, events: list[ExternalEvent], now: datetime) -> list[ExternalEvent]:
        cutoff = now - timedelta(minutes=NOTIFICATION_MAX_EVENT_AGE_MINUTES)
        return [event for event in events if event.updated is None or event.updated >= cutoff]

    def _process_event(self, event: ExternalEvent, calendar_source: CalendarSource, summary: NotificationSummary) -> None:
        if event.is_cancelled:
            # Removal is idempotent, so cancellations skip the event cooldown
            self._remove_cancelled(event, summary)
            return

        if not self.deduplicator.claim_event(event.id):
            summary.skipped += 1
            return

        try:
            normalized = normalize_event(event, calendar_source)
            result = self.guard.upsert(normalized)
        except EventSkipped as e:
            logger.info(f"⏭️ {e}")
            summary.skipped += 1
            return
        except Exception as e:
            self.db.rollback()
            self.deduplicator.release_event(event.id)
            logger.error(f"❌ Failed to process event {event.id}: {type(e).__name__}: {e}")
            summary.errors.append(f"{event.id}: {e}")
            return

        summary.duplicates_removed += result.duplicates_removed
        if result.outcome is UpsertOutcome.CREATED:
            summary.created += 1
        elif result.outcome is UpsertOutcome.REPAIRED:
            summary.repaired += 1
        else:
            summary.already_existing += 1

    def _remove_cancelled(self, event: ExternalEvent, summary: NotificationSummary) -> None:
        try:
            removed = self.guard.remove_cancelled(event.id)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to remove bookings for cancelled event {event.id}: {type(e).__name__}: {e}")
            summary.errors.append(f"{event.id}: {e}")
            return

        if removed:
            summary.removed += removed
        else:
            summary.skipped += 1
