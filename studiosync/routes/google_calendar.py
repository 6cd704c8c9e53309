"""
Google Calendar Watch Routes
Registers and lists push-notification channels
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..config import CALENDAR_CHANNEL_TOKEN, CALENDAR_WEBHOOK_URL, get_calendar_ids
from ..database import get_db
from ..domain.bookings.schemas import CalendarSource
from ..models import CalendarWatchChannel
from ..services.google_calendar_service import CalendarAPIError, get_calendar_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/google-calendar", tags=["google-calendar"])


class WatchChannelResponse(BaseModel):
    channelId: str
    resourceId: Optional[str] = None
    calendarId: str
    calendarSource: str
    address: str
    expiresAt: Optional[datetime] = None
    expired: bool = False


def _is_expired(expires_at: Optional[datetime]) -> bool:
    if expires_at is None:
        return False
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= datetime.now(timezone.utc)


def _to_response(channel: CalendarWatchChannel) -> WatchChannelResponse:
    return WatchChannelResponse(
        channelId=channel.channel_id,
        resourceId=channel.resource_id,
        calendarId=channel.calendar_id,
        calendarSource=channel.calendar_source,
        address=channel.address,
        expiresAt=channel.expires_at,
        expired=_is_expired(channel.expires_at),
    )


@router.post("/watch/{source}", response_model=WatchChannelResponse)
async def register_watch_channel(
    source: CalendarSource,
    db: Session = Depends(get_db),
    calendar_client=Depends(get_calendar_client),
):
    """Ask Google to push change notifications for one calendar to this service"""
    if not CALENDAR_WEBHOOK_URL:
        raise HTTPException(status_code=400, detail="CALENDAR_WEBHOOK_URL is not configured")

    calendar_id = get_calendar_ids().get(source.value)
    if not calendar_id:
        raise HTTPException(status_code=404, detail=f"No calendar configured for {source.value}")

    address = f"{CALENDAR_WEBHOOK_URL.rstrip('/')}/webhooks/google-calendar/{source.value}"
    try:
        result = await calendar_client.watch(calendar_id, address, token=CALENDAR_CHANNEL_TOKEN)
    except CalendarAPIError as e:
        raise HTTPException(status_code=502, detail=f"Failed to register watch channel: {e.message}")

    channel = CalendarWatchChannel(
        channel_id=result["channel_id"],
        resource_id=result["resource_id"],
        calendar_id=calendar_id,
        calendar_source=source.value,
        address=address,
        expires_at=result["expires_at"],
    )
    db.add(channel)
    db.commit()
    db.refresh(channel)

    logger.info(f"✅ Watching {source.value} calendar via channel {channel.channel_id}")
    return _to_response(channel)


@router.get("/watch", response_model=list[WatchChannelResponse])
async def list_watch_channels(db: Session = Depends(get_db)):
    """Stored watch channels, newest first, with an expired flag"""
    channels = db.query(CalendarWatchChannel).order_by(CalendarWatchChannel.id.desc()).all()
    return [_to_response(c) for c in channels]
