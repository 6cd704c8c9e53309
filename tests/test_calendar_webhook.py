"""Tests for the change-notification pipeline and its webhook route."""

from datetime import datetime, timedelta, timezone

import pytest

from studiosync.domain.bookings.schemas import CalendarSource
from studiosync.domain.notifications.service import CalendarNotificationService
from studiosync.models import Booking
from studiosync.routes import calendar_webhooks
from studiosync.services.google_calendar_service import CalendarAPIError
from tests.conftest import FakeCalendarClient, make_event

NOW = datetime(2025, 7, 30, 18, 0, tzinfo=timezone.utc)


def headers(state="exists", resource="resource-1", channel="channel-1", token=None):
    result = {
        "X-Goog-Resource-ID": resource,
        "X-Goog-Resource-State": state,
        "X-Goog-Channel-ID": channel,
    }
    if token:
        result["X-Goog-Channel-Token"] = token
    return result


class TestNotificationService:
    async def process(self, service, state="exists", channel="channel-1", source=CalendarSource.OPERATOR):
        return await service.process_notification(source, "cal", "resource-1", state, channel, now=NOW)

    async def test_creates_booking_from_recent_event(self, db, dedup):
        client = FakeCalendarClient([make_event(updated="2025-07-30T17:58:00Z")])
        summary = await self.process(CalendarNotificationService(db, client, dedup))

        assert summary.status == "processed"
        assert summary.created == 1
        assert db.query(Booking).count() == 1
        call = client.list_calls[0]
        assert call["updated_min"] == NOW - timedelta(minutes=10)
        assert call["order_by"] == "updated"

    async def test_sync_handshake_fetches_nothing(self, db, dedup):
        client = FakeCalendarClient([make_event()])
        service = CalendarNotificationService(db, client, dedup)

        summary = await self.process(service, state="sync")

        assert summary.status == "sync"
        assert client.list_calls == []
        # Completion is still recorded, so an immediate replay is rate limited
        assert (await self.process(service, state="sync")).status == "rate_limited"

    async def test_stale_events_are_ignored(self, db, dedup):
        client = FakeCalendarClient([make_event(updated="2025-07-30T17:30:00Z")])
        summary = await self.process(CalendarNotificationService(db, client, dedup))

        assert summary.events_fetched == 1
        assert summary.created == 0
        assert db.query(Booking).count() == 0

    async def test_event_not_visible_yet_is_not_an_error(self, db, dedup):
        summary = await self.process(CalendarNotificationService(db, FakeCalendarClient([]), dedup))

        assert summary.status == "processed"
        assert summary.errors == []

    async def test_replayed_delivery_creates_one_booking(self, db, dedup):
        client = FakeCalendarClient([make_event()])
        service = CalendarNotificationService(db, client, dedup)

        first = await self.process(service)
        # Same change delivered on a second channel: event cooldown skips it
        second = await self.process(service, channel="channel-2")

        assert first.created == 1
        assert second.created == 0
        assert second.skipped == 1
        assert db.query(Booking).count() == 1

    async def test_unique_index_holds_without_dedup_state(self, db):
        from studiosync.cache import MemoryExpiringStore
        from studiosync.domain.notifications.deduplicator import NotificationDeduplicator

        client = FakeCalendarClient([make_event()])
        # Fresh dedup state each time, as on two separate instances
        for channel in ("channel-1", "channel-2"):
            dedup = NotificationDeduplicator(store=MemoryExpiringStore())
            await self.process(CalendarNotificationService(db, client, dedup), channel=channel)

        assert db.query(Booking).count() == 1

    async def test_cancelled_and_all_day_events_are_skipped(self, db, dedup):
        client = FakeCalendarClient(
            [make_event("c1", status="cancelled"), make_event("a1", all_day="2025-07-30"), make_event("ok")]
        )
        summary = await self.process(CalendarNotificationService(db, client, dedup))

        assert summary.skipped == 2
        assert summary.created == 1

    async def test_cancelled_event_removes_its_booking(self, db, dedup):
        client = FakeCalendarClient([make_event(updated="2025-07-30T17:58:00Z")])
        service = CalendarNotificationService(db, client, dedup)
        await self.process(service)
        assert db.query(Booking).count() == 1

        # Cancelled a moment later, still inside the event cooldown
        client.events = [make_event(status="cancelled", updated="2025-07-30T17:59:00Z")]
        summary = await self.process(service, channel="channel-2")

        assert summary.removed == 1
        assert summary.skipped == 0
        assert db.query(Booking).count() == 0

    async def test_per_event_failure_is_isolated_and_retryable(self, db, dedup, monkeypatch):
        client = FakeCalendarClient([make_event("bad"), make_event("good")])
        service = CalendarNotificationService(db, client, dedup)
        real_upsert = service.guard.upsert

        def flaky_upsert(normalized, migrate_legacy=False):
            if normalized.external_event_id == "bad":
                raise RuntimeError("write failed")
            return real_upsert(normalized, migrate_legacy)

        monkeypatch.setattr(service.guard, "upsert", flaky_upsert)
        summary = await self.process(service)

        assert summary.created == 1
        assert summary.errors == ["bad: write failed"]
        # The failed event was released, so the next delivery may retry it
        assert dedup.claim_event("bad") is True
        assert dedup.claim_event("good") is False

    async def test_list_failure_propagates_and_releases_in_flight(self, db, dedup, failing_calendar):
        service = CalendarNotificationService(db, failing_calendar, dedup)

        with pytest.raises(CalendarAPIError):
            await self.process(service)

        # Not wedged: the next delivery is rate limited, not in flight
        assert (await self.process(service)).status == "rate_limited"

    async def test_online_source_marks_success(self, db, dedup):
        client = FakeCalendarClient([make_event()])
        await self.process(CalendarNotificationService(db, client, dedup), source=CalendarSource.ONLINE)

        assert db.query(Booking).one().payment_status == "success"


class TestWebhookRoute:
    def test_notification_creates_booking(self, api_client, fake_calendar):
        fake_calendar.events = [make_event()]

        response = api_client.post("/webhooks/google-calendar/operator", headers=headers())

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "processed"
        assert body["created"] == 1
        assert fake_calendar.list_calls[0]["calendar_id"] == "cal-operator"

        bookings = api_client.get("/bookings").json()
        assert len(bookings) == 1
        assert bookings[0]["studio"] == "THE GROUND"
        assert bookings[0]["date"] == "2025-07-30"
        assert bookings[0]["startTime"] == "3:00 PM"
        assert bookings[0]["customerName"] == "Jane"
        assert bookings[0]["paymentStatus"] == "manual"

    def test_cancelled_event_frees_its_slots(self, api_client, fake_calendar):
        fake_calendar.events = [make_event()]
        api_client.post("/webhooks/google-calendar/operator", headers=headers())

        fake_calendar.events = [make_event(status="cancelled")]
        response = api_client.post("/webhooks/google-calendar/operator", headers=headers(channel="channel-2"))

        assert response.json()["removed"] == 1
        availability = api_client.get(
            "/bookings/availability", params={"studio": "THE GROUND", "date": "2025-07-30"}
        ).json()
        assert availability["blockedSlots"] == []

    def test_sync_handshake_answers_200(self, api_client, fake_calendar):
        response = api_client.post("/webhooks/google-calendar/online", headers=headers(state="sync"))

        assert response.status_code == 200
        assert response.json()["status"] == "sync"
        assert fake_calendar.list_calls == []

    def test_replay_within_cooldown_answers_200(self, api_client, fake_calendar):
        api_client.post("/webhooks/google-calendar/operator", headers=headers())
        response = api_client.post("/webhooks/google-calendar/operator", headers=headers())

        assert response.status_code == 200
        assert response.json()["status"] == "rate_limited"
        assert len(fake_calendar.list_calls) == 1

    def test_in_flight_duplicate_answers_200(self, api_client, dedup):
        dedup.begin("resource-1", "exists", "channel-1")

        response = api_client.post("/webhooks/google-calendar/operator", headers=headers())

        assert response.status_code == 200
        assert response.json()["status"] == "already_in_flight"

    def test_list_failure_answers_500(self, api_client, fake_calendar):
        fake_calendar.error = CalendarAPIError(503, "backend unavailable")

        response = api_client.post("/webhooks/google-calendar/operator", headers=headers())

        assert response.status_code == 500
        assert response.json()["message"] == "Failed to fetch calendar events"
        assert "backend unavailable" in response.json()["error"]

    def test_missing_headers_answer_400(self, api_client):
        response = api_client.post(
            "/webhooks/google-calendar/operator", headers={"X-Goog-Resource-State": "exists"}
        )
        assert response.status_code == 400

    def test_unknown_source_is_rejected(self, api_client):
        response = api_client.post("/webhooks/google-calendar/elsewhere", headers=headers())
        assert response.status_code == 422

    def test_unconfigured_calendar_answers_404(self, api_client, monkeypatch):
        monkeypatch.setattr(calendar_webhooks, "get_calendar_ids", lambda: {"operator": "cal-operator"})
        response = api_client.post("/webhooks/google-calendar/online", headers=headers())
        assert response.status_code == 404

    def test_channel_token_is_checked_when_configured(self, api_client, monkeypatch):
        monkeypatch.setattr(calendar_webhooks, "CALENDAR_CHANNEL_TOKEN", "s3cret")

        missing = api_client.post("/webhooks/google-calendar/operator", headers=headers())
        wrong = api_client.post("/webhooks/google-calendar/operator", headers=headers(token="nope"))
        right = api_client.post("/webhooks/google-calendar/operator", headers=headers(token="s3cret"))

        assert missing.status_code == 401
        assert wrong.status_code == 401
        assert right.status_code == 200
