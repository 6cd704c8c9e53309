from datetime import datetime, timezone
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from studiosync.cache import MemoryExpiringStore
from studiosync.database import Base, get_db
from studiosync.domain.bookings.schemas import ExternalEvent
from studiosync.domain.notifications.deduplicator import NotificationDeduplicator, get_deduplicator
from studiosync.services.google_calendar_service import CalendarAPIError, get_calendar_client


def make_event(
    event_id: str = "e1",
    summary: str = "Booking for THE GROUND",
    description: str = "Customer Name: Jane\nCustomer Email: jane@x.com",
    start: Optional[str] = "2025-07-30T19:00:00Z",
    end: Optional[str] = "2025-07-30T20:00:00Z",
    all_day: Optional[str] = None,
    status: str = "confirmed",
    updated: Optional[str] = None,
) -> ExternalEvent:
    payload = {
        "id": event_id,
        "summary": summary,
        "description": description,
        "status": status,
    }
    if all_day:
        payload["start"] = {"date": all_day}
        payload["end"] = {"date": all_day}
    else:
        payload["start"] = {"dateTime": start}
        if end:
            payload["end"] = {"dateTime": end}
    if updated:
        payload["updated"] = updated
    return ExternalEvent.model_validate(payload)


class FakeCalendarClient:
    """Stands in for GoogleCalendarClient; records calls, never touches the network"""

    def __init__(self, events=None, error: Optional[Exception] = None):
        self.events = list(events or [])
        self.error = error
        self.list_calls = []
        self.watch_calls = []

    async def list_events(self, calendar_id, time_min=None, time_max=None, updated_min=None, order_by="startTime"):
        self.list_calls.append(
            {
                "calendar_id": calendar_id,
                "time_min": time_min,
                "time_max": time_max,
                "updated_min": updated_min,
                "order_by": order_by,
            }
        )
        if self.error:
            raise self.error
        return list(self.events)

    async def watch(self, calendar_id, address, channel_id=None, token=None, ttl_seconds=None):
        self.watch_calls.append({"calendar_id": calendar_id, "address": address, "token": token})
        return {
            "channel_id": channel_id or "channel-123",
            "resource_id": "resource-abc",
            "expires_at": datetime(2099, 1, 1, tzinfo=timezone.utc),
        }


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_calendar():
    return FakeCalendarClient()


@pytest.fixture
def failing_calendar():
    return FakeCalendarClient(error=CalendarAPIError(503, "backend unavailable"))


@pytest.fixture
def dedup():
    return NotificationDeduplicator(store=MemoryExpiringStore())


@pytest.fixture
def api_client(engine, fake_calendar, dedup, monkeypatch):
    """TestClient with the database, calendar client and dedup state swapped for test doubles"""
    from studiosync.main import app
    from studiosync.routes import calendar_webhooks, google_calendar

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    calendars = {"operator": "cal-operator", "online": "cal-online"}
    monkeypatch.setattr(calendar_webhooks, "get_calendar_ids", lambda: calendars)
    monkeypatch.setattr(google_calendar, "get_calendar_ids", lambda: calendars)
    monkeypatch.setattr(calendar_webhooks, "CALENDAR_CHANNEL_TOKEN", None)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_calendar_client] = lambda: fake_calendar
    app.dependency_overrides[get_deduplicator] = lambda: dedup

    yield TestClient(app)

    app.dependency_overrides.clear()
