"""Booking domain schemas - Pydantic models and enums"""

from datetime import date as date_type
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    MANUAL = "manual"


# Only these statuses occupy the studio
BLOCKING_PAYMENT_STATUSES = frozenset({PaymentStatus.SUCCESS.value, PaymentStatus.MANUAL.value})


class CalendarSource(str, Enum):
    """Which Google calendar an event was read from"""

    OPERATOR = "operator"  # staff-created events
    ONLINE = "online"  # events created by the online checkout flow


class UpsertOutcome(str, Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    REPAIRED = "repaired"


class EventTime(BaseModel):
    """Start or end of a Google Calendar event"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    date_time: Optional[datetime] = Field(None, alias="dateTime")
    all_day_date: Optional[date_type] = Field(None, alias="date")
    time_zone: Optional[str] = Field(None, alias="timeZone")


class ExternalEvent(BaseModel):
    """Read-only view of a Google Calendar event resource"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    summary: str = ""
    description: str = ""
    status: Optional[str] = None
    start: Optional[EventTime] = None
    end: Optional[EventTime] = None
    updated: Optional[datetime] = None
    created: Optional[datetime] = None

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"

    @property
    def is_all_day(self) -> bool:
        return self.start is not None and self.start.date_time is None and self.start.all_day_date is not None

    @property
    def has_start_time(self) -> bool:
        return self.start is not None and self.start.date_time is not None


class NormalizedBooking(BaseModel):
    """Booking fields derived from one calendar event"""

    studio: str
    canonical_date: date_type
    start_time: str
    end_time: str
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    payment_status: PaymentStatus
    external_event_id: str
    calendar_source: CalendarSource
    source_version: str
    event_updated_at: Optional[datetime] = None

    def to_model_fields(self) -> dict:
        data = self.model_dump()
        data["payment_status"] = self.payment_status.value
        data["calendar_source"] = self.calendar_source.value
        return data


class BookingResponse(BaseModel):
    """Schema for booking response; ``date`` is already corrected for legacy rows"""

    id: int
    studio: str
    date: date_type
    displayDate: str
    startTime: str
    endTime: str
    customerName: str
    customerEmail: str
    customerPhone: str
    paymentStatus: str
    externalEventId: Optional[str] = None
    calendarSource: Optional[str] = None
    sourceVersion: Optional[str] = None
    needsReview: bool = False
    reviewNote: Optional[str] = None
    createdAt: Optional[datetime] = None


class AvailabilityResponse(BaseModel):
    studio: str
    date: date_type
    blockedSlots: list[str]


class ReconcileSummary(BaseModel):
    """Counters returned by one reconciliation run over one calendar"""

    calendar_source: CalendarSource
    dry_run: bool = False
    scanned: int = 0
    created: int = 0
    skipped: int = 0
    repaired: int = 0
    already_existing: int = 0
    duplicates_removed: int = 0
    removed: int = 0  # bookings deleted because their event was cancelled
    migrated: int = 0
    flagged: int = 0
    errors: list[str] = Field(default_factory=list)


class NotificationSummary(BaseModel):
    """Outcome of one change notification"""

    status: str  # processed, sync, rate_limited, already_in_flight
    calendar_source: CalendarSource
    events_fetched: int = 0
    created: int = 0
    skipped: int = 0
    repaired: int = 0
    already_existing: int = 0
    duplicates_removed: int = 0
    removed: int = 0  # bookings deleted because their event was cancelled
    errors: list[str] = Field(default_factory=list)
