"""
Google Calendar Webhook Routes
Receives push notifications for the operator and online booking calendars
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..config import CALENDAR_CHANNEL_TOKEN, get_calendar_ids
from ..database import get_db
from ..domain.bookings.schemas import CalendarSource
from ..domain.notifications.deduplicator import NotificationDeduplicator, get_deduplicator
from ..domain.notifications.service import CalendarNotificationService
from ..services.google_calendar_service import CalendarAPIError, get_calendar_client
from ..webhook_security import verify_google_channel_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/google-calendar", tags=["google-calendar-webhooks"])


def get_notification_service(
    db: Session = Depends(get_db),
    calendar_client=Depends(get_calendar_client),
    deduplicator: NotificationDeduplicator = Depends(get_deduplicator),
) -> CalendarNotificationService:
    """Dependency injection for CalendarNotificationService"""
    return CalendarNotificationService(db, calendar_client, deduplicator)


@router.post("/{source}")
async def handle_google_calendar_notification(
    source: CalendarSource,
    request: Request,
    service: CalendarNotificationService = Depends(get_notification_service),
):
    """
    Handle a Google Calendar push notification.

    Replays, concurrent duplicates and the initial sync handshake all
    answer 200 so Google stops retrying. A failure to list the changed
    events answers 500.
    """
    verify_google_channel_token(request, CALENDAR_CHANNEL_TOKEN)

    resource_id = request.headers.get("X-Goog-Resource-ID")
    resource_state = request.headers.get("X-Goog-Resource-State")
    channel_id = request.headers.get("X-Goog-Channel-ID")
    if not resource_id or not resource_state or not channel_id:
        raise HTTPException(status_code=400, detail="Missing Google Calendar notification headers")

    calendar_id = get_calendar_ids().get(source.value)
    if not calendar_id:
        raise HTTPException(status_code=404, detail=f"No calendar configured for {source.value}")

    logger.info(f"📥 Calendar notification: source={source.value} state={resource_state} channel={channel_id}")

    try:
        summary = await service.process_notification(
            source, calendar_id, resource_id, resource_state, channel_id
        )
    except CalendarAPIError as e:
        logger.error(f"❌ Could not list changed events for {source.value}: {e}")
        return JSONResponse(
            status_code=500,
            content={"message": "Failed to fetch calendar events", "error": str(e)},
        )

    return summary.model_dump(mode="json")
