"""
Calendar reconciliation runner
Usage: python run_reconciliation.py [--execute] [--source operator|online] [--days-back N] [--days-forward N]

Dry run by default; pass --execute to write bookings.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from studiosync.config import (  # noqa: E402
    RECONCILE_DAYS_BACK,
    RECONCILE_DAYS_FORWARD,
    ConfigurationError,
    validate_calendar_settings,
)
from studiosync.database import Base, SessionLocal, engine  # noqa: E402
from studiosync.domain.bookings.reconciliation import reconcile_all, reconcile_window  # noqa: E402
from studiosync.domain.bookings.schemas import CalendarSource  # noqa: E402
from studiosync.services.google_calendar_service import GoogleCalendarClient  # noqa: E402

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Reconcile bookings against Google Calendar")
    parser.add_argument("--execute", action="store_true", help="write changes (default is a dry run)")
    parser.add_argument(
        "--source",
        choices=[s.value for s in CalendarSource],
        action="append",
        help="calendar to reconcile; repeat for several (default: all configured)",
    )
    parser.add_argument("--days-back", type=int, default=RECONCILE_DAYS_BACK)
    parser.add_argument("--days-forward", type=int, default=RECONCILE_DAYS_FORWARD)
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)
    validate_calendar_settings()
    Base.metadata.create_all(bind=engine, checkfirst=True)

    range_start, range_end = reconcile_window(args.days_back, args.days_forward)
    sources = [CalendarSource(s) for s in args.source] if args.source else None

    db = SessionLocal()
    try:
        summaries = await reconcile_all(
            GoogleCalendarClient(), db, range_start, range_end, sources=sources, dry_run=not args.execute
        )
    finally:
        db.close()

    for summary in summaries:
        logger.info(f"📊 {summary.model_dump_json(indent=2)}")

    if not args.execute:
        logger.info("ℹ️ Dry run only. Re-run with --execute to apply.")

    return 1 if any(s.errors for s in summaries) else 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except ConfigurationError as e:
        logger.error(f"❌ Configuration error: {e}")
        sys.exit(2)
    except KeyboardInterrupt:
        logger.info("👋 Reconciliation stopped by user")
    except Exception as e:
        logger.error(f"❌ Reconciliation crashed: {e}")
        sys.exit(1)
