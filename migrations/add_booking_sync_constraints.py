"""
Bring an existing bookings table up to the sync schema (PostgreSQL)

Columns:
- calendar_source VARCHAR(20)
- event_updated_at TIMESTAMPTZ
- source_version VARCHAR(100)
- needs_review BOOLEAN NOT NULL DEFAULT FALSE
- review_note TEXT

Index:
- uq_bookings_external_event_id UNIQUE (external_event_id)

Rows sharing an external_event_id are collapsed to the earliest-created one
first, otherwise the unique index cannot be built.
"""

# Ensure this script can be run directly from repo root
import sys
from pathlib import Path

CURRENT_DIR = Path(__file__).resolve().parent
PROJECT_DIR = CURRENT_DIR.parent
if str(PROJECT_DIR) not in sys.path:
    sys.path.insert(0, str(PROJECT_DIR))

from sqlalchemy import text  # noqa: E402

from studiosync.database import engine  # noqa: E402

COLUMNS = (
    "calendar_source VARCHAR(20)",
    "event_updated_at TIMESTAMPTZ",
    "source_version VARCHAR(100)",
    "needs_review BOOLEAN NOT NULL DEFAULT FALSE",
    "review_note TEXT",
)


def upgrade():
    with engine.connect() as conn:
        for column in COLUMNS:
            conn.execute(text(f"ALTER TABLE bookings ADD COLUMN IF NOT EXISTS {column};"))

        removed = conn.execute(
            text(
                """
                DELETE FROM bookings b
                USING bookings keep
                WHERE b.external_event_id IS NOT NULL
                  AND b.external_event_id = keep.external_event_id
                  AND (b.created_at, b.id) > (keep.created_at, keep.id);
                """
            )
        ).rowcount
        print(f"Removed {removed} duplicate bookings")

        conn.execute(
            text(
                """
                CREATE UNIQUE INDEX IF NOT EXISTS uq_bookings_external_event_id
                ON bookings (external_event_id);
                """
            )
        )
        conn.commit()
        print("Migration add_booking_sync_constraints applied successfully")


if __name__ == "__main__":
    upgrade()
