"""
Reconciliation job - walks a calendar window and upserts every timed event.

Safe to re-run and to run alongside live notification processing: the
upsert guard makes every repeat an ALREADY_EXISTS or REPAIRED outcome.
Rows written by older sync revisions are migrated onto the current
source version here, or flagged for review when the dates disagree.
Bookings whose event was cancelled are deleted.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from ...config import RECONCILE_DAYS_BACK, RECONCILE_DAYS_FORWARD, get_calendar_ids
from .normalizer import EventSkipped, normalize_event
from .repository import BookingRepository
from .schemas import CalendarSource, NormalizedBooking, ReconcileSummary, UpsertOutcome
from .upsert_guard import BookingUpsertGuard

logger = logging.getLogger(__name__)


def reconcile_window(
    days_back: int = RECONCILE_DAYS_BACK,
    days_forward: int = RECONCILE_DAYS_FORWARD,
    now: Optional[datetime] = None,
) -> tuple[datetime, datetime]:
    now = now or datetime.now(timezone.utc)
    return now - timedelta(days=days_back), now + timedelta(days=days_forward)


async def reconcile(
    calendar_client,
    db: Session,
    calendar_source: CalendarSource,
    calendar_id: str,
    range_start: datetime,
    range_end: datetime,
    dry_run: bool = False,
) -> ReconcileSummary:
    """
    Bring the bookings table in line with one calendar over [range_start, range_end].

    Args:
        calendar_client: Anything with GoogleCalendarClient.list_events
        db: Database session
        calendar_source: Which calendar the events come from
        calendar_id: Provider id of that calendar
        range_start: Window start (aware datetime)
        range_end: Window end (aware datetime)
        dry_run: Report what would be created without writing

    Raises:
        CalendarAPIError: If the events cannot be listed
    """
    mode = "DRY RUN" if dry_run else "EXECUTE"
    logger.info(
        f"🔄 Reconciling {calendar_source.value} calendar [{mode}] "
        f"{range_start.date().isoformat()} -> {range_end.date().isoformat()}"
    )

    events = await calendar_client.list_events(calendar_id, time_min=range_start, time_max=range_end)
    summary = ReconcileSummary(calendar_source=calendar_source, dry_run=dry_run)
    guard = BookingUpsertGuard(db)

    for event in events:
        summary.scanned += 1
        try:
            if event.is_cancelled:
                _remove_cancelled(db, guard, event.id, summary)
                continue

            normalized = normalize_event(event, calendar_source)
            if dry_run:
                _preview(db, normalized, summary)
                continue

            result = guard.upsert(normalized, migrate_legacy=True)
        except EventSkipped as e:
            logger.debug(f"⏭️ {e}")
            summary.skipped += 1
            continue
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Reconcile failed for event {event.id}: {type(e).__name__}: {e}")
            summary.errors.append(f"{event.id}: {e}")
            continue

        summary.duplicates_removed += result.duplicates_removed
        summary.migrated += int(result.migrated)
        summary.flagged += int(result.flagged)
        if result.outcome is UpsertOutcome.CREATED:
            summary.created += 1
        elif result.outcome is UpsertOutcome.REPAIRED:
            summary.repaired += 1
        else:
            summary.already_existing += 1

    logger.info(
        f"✅ Reconcile {calendar_source.value} [{mode}]: scanned={summary.scanned} created={summary.created} "
        f"skipped={summary.skipped} repaired={summary.repaired} existing={summary.already_existing} "
        f"removed={summary.removed} duplicates_removed={summary.duplicates_removed} migrated={summary.migrated} "
        f"flagged={summary.flagged} errors={len(summary.errors)}"
    )
    return summary


def _remove_cancelled(db: Session, guard: BookingUpsertGuard, event_id: str, summary: ReconcileSummary) -> None:
    if summary.dry_run:
        removed = len(BookingRepository.find_by_external_event_id(db, event_id))
        if removed:
            logger.info(f"📝 Would remove {removed} booking(s) for cancelled event {event_id}")
    else:
        removed = guard.remove_cancelled(event_id)

    if removed:
        summary.removed += removed
    else:
        summary.skipped += 1


def _preview(db: Session, normalized: NormalizedBooking, summary: ReconcileSummary) -> None:
    existing = BookingRepository.find_by_external_event_id(db, normalized.external_event_id)
    if not existing:
        logger.info(
            f"📝 Would create: {normalized.studio} {normalized.canonical_date.isoformat()} "
            f"{normalized.start_time}-{normalized.end_time} ({normalized.external_event_id})"
        )
        summary.created += 1
        return
    summary.already_existing += 1
    summary.duplicates_removed += len(existing) - 1


async def reconcile_all(
    calendar_client,
    db: Session,
    range_start: datetime,
    range_end: datetime,
    sources: Optional[list[CalendarSource]] = None,
    dry_run: bool = False,
) -> list[ReconcileSummary]:
    """Reconcile every configured calendar (or just ``sources``); one failing calendar does not stop the others"""
    calendar_ids = get_calendar_ids()
    summaries = []

    for source in sources or list(CalendarSource):
        calendar_id = calendar_ids.get(source.value)
        if not calendar_id:
            logger.info(f"⏭️ No calendar configured for {source.value}, skipping")
            continue
        try:
            summaries.append(
                await reconcile(calendar_client, db, source, calendar_id, range_start, range_end, dry_run)
            )
        except Exception as e:
            logger.error(f"❌ Reconcile of {source.value} calendar failed: {type(e).__name__}: {e}")
            summaries.append(ReconcileSummary(calendar_source=source, dry_run=dry_run, errors=[str(e)]))

    return summaries
