"""Tests for the Google Calendar REST client against a mocked transport."""

import json
from datetime import datetime, timezone

import httpx
import pytest

from studiosync.services.google_calendar_service import CalendarAPIError, GoogleCalendarClient


class StaticCredentials:
    """google-auth credential stand-in that is always valid"""

    valid = True
    token = "test-token"

    def refresh(self, request):
        raise AssertionError("valid credentials must not refresh")


class ExpiredCredentials:
    def __init__(self):
        self.valid = False
        self.token = None
        self.refreshed = 0

    def refresh(self, request):
        self.refreshed += 1
        self.valid = True
        self.token = "fresh-token"


def event_payload(event_id, start="2025-07-30T19:00:00Z"):
    return {
        "id": event_id,
        "status": "confirmed",
        "summary": "Booking for THE LAB",
        "start": {"dateTime": start},
        "end": {"dateTime": "2025-07-30T20:00:00Z"},
        "updated": "2025-07-30T17:59:00.000Z",
    }


async def test_list_events_follows_pages_and_sends_filters():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if "pageToken" not in request.url.params:
            return httpx.Response(200, json={"items": [event_payload("e1")], "nextPageToken": "p2"})
        return httpx.Response(200, json={"items": [event_payload("e2"), {"id": "gone", "status": "cancelled"}]})

    client = GoogleCalendarClient(credentials=StaticCredentials(), transport=httpx.MockTransport(handler))
    events = await client.list_events(
        "studio@group.calendar.google.com",
        updated_min=datetime(2025, 7, 30, 17, 50, tzinfo=timezone.utc),
        order_by="updated",
    )

    assert [e.id for e in events] == ["e1", "e2", "gone"]
    assert events[2].start is None

    first = requests[0]
    # raw_path keeps the percent-encoding that url.path decodes
    assert first.url.raw_path.split(b"?")[0] == b"/calendar/v3/calendars/studio%40group.calendar.google.com/events"
    assert first.headers["Authorization"] == "Bearer test-token"
    assert first.url.params["singleEvents"] == "true"
    assert first.url.params["orderBy"] == "updated"
    assert first.url.params["updatedMin"] == "2025-07-30T17:50:00Z"
    assert "timeMin" not in first.url.params
    assert requests[1].url.params["pageToken"] == "p2"


async def test_list_events_sends_time_window():
    seen = {}

    def handler(request):
        seen.update(request.url.params)
        return httpx.Response(200, json={"items": []})

    client = GoogleCalendarClient(credentials=StaticCredentials(), transport=httpx.MockTransport(handler))
    await client.list_events(
        "cal",
        time_min=datetime(2025, 7, 1, tzinfo=timezone.utc),
        time_max=datetime(2025, 8, 1, tzinfo=timezone.utc),
    )

    assert seen["timeMin"] == "2025-07-01T00:00:00Z"
    assert seen["timeMax"] == "2025-08-01T00:00:00Z"
    assert seen["orderBy"] == "startTime"


async def test_error_status_raises_calendar_api_error():
    client = GoogleCalendarClient(
        credentials=StaticCredentials(),
        transport=httpx.MockTransport(lambda request: httpx.Response(403, text="forbidden")),
    )

    with pytest.raises(CalendarAPIError) as exc_info:
        await client.list_events("cal")
    assert exc_info.value.status_code == 403


async def test_transport_error_raises_calendar_api_error():
    def handler(request):
        raise httpx.ConnectError("no route to host", request=request)

    client = GoogleCalendarClient(credentials=StaticCredentials(), transport=httpx.MockTransport(handler))

    with pytest.raises(CalendarAPIError) as exc_info:
        await client.list_events("cal")
    assert exc_info.value.status_code is None


async def test_expired_credentials_are_refreshed():
    credentials = ExpiredCredentials()
    seen = []

    def handler(request):
        seen.append(request.headers["Authorization"])
        return httpx.Response(200, json={"items": []})

    client = GoogleCalendarClient(credentials=credentials, transport=httpx.MockTransport(handler))
    await client.list_events("cal")
    await client.list_events("cal")

    assert credentials.refreshed == 1
    assert seen == ["Bearer fresh-token", "Bearer fresh-token"]


async def test_watch_registers_channel():
    captured = {}

    def handler(request):
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"kind": "api#channel", "id": "chan-1", "resourceId": "res-9", "expiration": "1767225600000"},
        )

    client = GoogleCalendarClient(credentials=StaticCredentials(), transport=httpx.MockTransport(handler))
    result = await client.watch("cal", "https://api.example.com/hook", channel_id="chan-1", token="s3cret")

    assert captured["path"] == "/calendar/v3/calendars/cal/events/watch"
    assert captured["body"] == {
        "id": "chan-1",
        "type": "web_hook",
        "address": "https://api.example.com/hook",
        "token": "s3cret",
    }
    assert result == {
        "channel_id": "chan-1",
        "resource_id": "res-9",
        "expires_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
    }
