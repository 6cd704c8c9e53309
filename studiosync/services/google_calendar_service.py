"""
Google Calendar Service
Reads events and registers push channels with a service account
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import quote

import httpx
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from ..config import load_service_account_info
from ..domain.bookings.schemas import ExternalEvent

logger = logging.getLogger(__name__)

GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
CALENDAR_SCOPES = ["https://www.googleapis.com/auth/calendar"]
MAX_RESULTS_PER_PAGE = 250


class CalendarAPIError(Exception):
    """Google Calendar answered with a non-success status or could not be reached"""

    def __init__(self, status_code: Optional[int], message: str):
        super().__init__(f"Google Calendar API error ({status_code}): {message}")
        self.status_code = status_code
        self.message = message


def _rfc3339(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class GoogleCalendarClient:
    """
    Thin async wrapper over the Calendar v3 REST endpoints the sync needs.

    Args:
        credentials: google-auth credentials; built from GOOGLE_SERVICE_ACCOUNT_KEY when omitted
        transport: Optional httpx transport (tests pass an httpx.MockTransport)
        timeout: Per-request timeout in seconds
    """

    def __init__(self, credentials=None, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = 30.0):
        if credentials is None:
            credentials = service_account.Credentials.from_service_account_info(
                load_service_account_info(), scopes=CALENDAR_SCOPES
            )
        self.credentials = credentials
        self.transport = transport
        self.timeout = timeout

    async def _access_token(self) -> str:
        if not self.credentials.valid:
            logger.info("🔄 Refreshing Google service account token...")
            # google-auth refresh is blocking
            await asyncio.to_thread(self.credentials.refresh, GoogleAuthRequest())
        return self.credentials.token

    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        access_token = await self._access_token()
        async with httpx.AsyncClient(
            base_url=GOOGLE_CALENDAR_API, timeout=self.timeout, transport=self.transport
        ) as client:
            try:
                response = await client.request(
                    method,
                    path,
                    headers={"Authorization": f"Bearer {access_token}"},
                    **kwargs,
                )
            except httpx.HTTPError as e:
                logger.error(f"❌ Google Calendar request failed: {method} {path}: {e}")
                raise CalendarAPIError(None, str(e)) from e

        if response.status_code not in (200, 201):
            logger.error(f"❌ Google Calendar {method} {path} -> {response.status_code}: {response.text}")
            raise CalendarAPIError(response.status_code, response.text)
        return response.json()

    async def list_events(
        self,
        calendar_id: str,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
        updated_min: Optional[datetime] = None,
        order_by: str = "startTime",
    ) -> list[ExternalEvent]:
        """
        List single (recurrence-expanded) events, following every page.

        Args:
            calendar_id: Calendar to read
            time_min: Lower bound on event end
            time_max: Upper bound on event start
            updated_min: Only events modified after this instant
            order_by: "startTime" or "updated"

        Raises:
            CalendarAPIError: On any non-success response
        """
        params: dict[str, Any] = {
            "singleEvents": "true",
            "orderBy": order_by,
            "maxResults": MAX_RESULTS_PER_PAGE,
        }
        if time_min:
            params["timeMin"] = _rfc3339(time_min)
        if time_max:
            params["timeMax"] = _rfc3339(time_max)
        if updated_min:
            params["updatedMin"] = _rfc3339(updated_min)

        path = f"/calendars/{quote(calendar_id, safe='')}/events"
        events: list[ExternalEvent] = []
        page_token = None

        while True:
            if page_token:
                params["pageToken"] = page_token
            payload = await self._request("GET", path, params=params)

            for item in payload.get("items", []):
                events.append(ExternalEvent.model_validate(item))

            page_token = payload.get("nextPageToken")
            if not page_token:
                break

        logger.info(f"📅 Fetched {len(events)} events from calendar {calendar_id}")
        return events

    async def watch(
        self,
        calendar_id: str,
        address: str,
        channel_id: Optional[str] = None,
        token: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
    ) -> dict[str, Any]:
        """
        Register a push-notification channel for a calendar's events.

        Returns:
            {"channel_id", "resource_id", "expires_at"}
        """
        body: dict[str, Any] = {
            "id": channel_id or str(uuid.uuid4()),
            "type": "web_hook",
            "address": address,
        }
        if token:
            body["token"] = token
        if ttl_seconds:
            body["params"] = {"ttl": str(ttl_seconds)}

        payload = await self._request(
            "POST", f"/calendars/{quote(calendar_id, safe='')}/events/watch", json=body
        )

        expires_at = None
        if payload.get("expiration"):
            expires_at = datetime.fromtimestamp(int(payload["expiration"]) / 1000, tz=timezone.utc)

        logger.info(f"✅ Watch channel {payload.get('id')} registered for {calendar_id}")
        return {
            "channel_id": payload.get("id", body["id"]),
            "resource_id": payload.get("resourceId"),
            "expires_at": expires_at,
        }


# Shared client; credentials are refreshed in place
_calendar_client: Optional[GoogleCalendarClient] = None


def get_calendar_client() -> GoogleCalendarClient:
    global _calendar_client
    if _calendar_client is None:
        _calendar_client = GoogleCalendarClient()
    return _calendar_client
