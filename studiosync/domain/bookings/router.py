"""Booking router - FastAPI endpoints for the booking read path"""

import logging
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from .schemas import AvailabilityResponse, BookingResponse
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


@router.get("", response_model=list[BookingResponse])
async def get_bookings(service: BookingService = Depends(get_booking_service)):
    """All bookings, each with its resolved canonical date"""
    return service.get_bookings()


@router.get("/availability", response_model=AvailabilityResponse)
async def get_availability(
    studio: str = Query(..., min_length=1),
    day: date = Query(..., alias="date"),
    service: BookingService = Depends(get_booking_service),
):
    """Blocked half-hour slots for a studio on a date, including shared-space studios"""
    return service.get_availability(studio, day)


@router.get("/review", response_model=list[BookingResponse])
async def get_bookings_needing_review(service: BookingService = Depends(get_booking_service)):
    """Bookings the reconcile job could not migrate automatically"""
    return service.get_bookings_needing_review()
