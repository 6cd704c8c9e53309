from sqlalchemy import Boolean, Column, Date, DateTime, Index, Integer, String, Text
from sqlalchemy.sql import func

from .database import Base


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    studio = Column(String(255), nullable=False, index=True)

    # Calendar date with no time-of-day and no timezone
    canonical_date = Column(Date, nullable=False, index=True)
    # Wall-clock strings in the display timezone, e.g. "3:00 PM"
    start_time = Column(String(20), nullable=False)
    end_time = Column(String(20), nullable=False)

    customer_name = Column(String(255), nullable=False, default="")
    customer_email = Column(String(255), nullable=False, default="")
    customer_phone = Column(String(50), nullable=False, default="")

    payment_status = Column(String(20), nullable=False, default="pending")  # pending, success, manual

    # Originating calendar event; NULLs never collide so uniqueness only binds set values
    external_event_id = Column(String(1024), nullable=True)
    calendar_source = Column(String(20), nullable=True)  # operator, online
    event_updated_at = Column(DateTime(timezone=True), nullable=True)

    # Which revision of the normalization rules produced canonical_date
    source_version = Column(String(100), nullable=True)

    # Set by the reconcile job when a legacy date disagrees with the current rules
    needs_review = Column(Boolean, default=False, nullable=False)
    review_note = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("uq_bookings_external_event_id", "external_event_id", unique=True),
    )


class CalendarWatchChannel(Base):
    __tablename__ = "calendar_watch_channels"

    id = Column(Integer, primary_key=True, index=True)
    channel_id = Column(String(255), unique=True, nullable=False, index=True)
    resource_id = Column(String(255), nullable=True)
    calendar_id = Column(String(500), nullable=False)
    calendar_source = Column(String(20), nullable=False)
    address = Column(String(1000), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
