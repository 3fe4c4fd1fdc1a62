"""Booking router - FastAPI endpoints for bookings, availability, series and waitlists"""

import logging
import os
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter
from .recurring import RecurringBookingService
from .schemas import (
    AvailabilityResponse,
    BookingCancel,
    BookingCreate,
    BookingReschedule,
    BookingResponse,
    BookingStatus,
    BookingStatusUpdate,
    CancellationResponse,
    PriceQuoteRequest,
    PriceQuoteResponse,
    RecurringBookingCreate,
    RecurringBookingResponse,
    WaitlistCreate,
    WaitlistResponse,
)
from .service import BookingService
from .waitlist import WaitlistService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])

rate_limit_booking = create_rate_limiter(
    limit=int(os.getenv("BOOKING_CREATE_RPM", "20")),
    window_seconds=60,
    key_prefix="booking_create",
)


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


def get_waitlist_service(db: Session = Depends(get_db)) -> WaitlistService:
    return WaitlistService(db)


def get_recurring_service(db: Session = Depends(get_db)) -> RecurringBookingService:
    return RecurringBookingService(db)


# ============================================================================
# AVAILABILITY AND PRICING
# ============================================================================


@router.get("/availability", response_model=AvailabilityResponse)
async def get_availability(
    service_id: int,
    day: date = Query(..., alias="date"),
    service: BookingService = Depends(get_booking_service),
):
    """Free start times for a service on a day"""
    beauty_service = service.get_active_service(service_id)
    return AvailabilityResponse(
        service_id=service_id,
        date=day,
        duration_minutes=beauty_service.duration_minutes,
        slots=service.get_available_slots(service_id, day),
    )


@router.post("/price-quote", response_model=PriceQuoteResponse)
async def price_quote(data: PriceQuoteRequest, service: BookingService = Depends(get_booking_service)):
    quote = service.quote_price(service.get_active_service(data.service_id), data.start_time)
    return PriceQuoteResponse(service_id=data.service_id, start_time=data.start_time, **quote.as_dict())


# ============================================================================
# RECURRING SERIES
# ============================================================================


@router.post("/recurring", response_model=RecurringBookingResponse, status_code=201)
async def create_recurring_booking(
    data: RecurringBookingCreate,
    current_user: User = Depends(get_current_user),
    service: RecurringBookingService = Depends(get_recurring_service),
):
    return service.create_recurring_booking(data, current_user)


# ============================================================================
# WAITLIST
# ============================================================================


@router.post("/waitlist", response_model=WaitlistResponse, status_code=201)
async def join_waitlist(
    data: WaitlistCreate,
    current_user: User = Depends(get_current_user),
    service: WaitlistService = Depends(get_waitlist_service),
):
    return service.to_response(service.join_waitlist(data, current_user))


@router.get("/waitlist", response_model=list[WaitlistResponse])
async def list_waitlist(
    current_user: User = Depends(get_current_user),
    service: WaitlistService = Depends(get_waitlist_service),
):
    return [service.to_response(e) for e in service.list_for_customer(current_user)]


@router.delete("/waitlist/{entry_id}", response_model=WaitlistResponse)
async def leave_waitlist(
    entry_id: int,
    current_user: User = Depends(get_current_user),
    service: WaitlistService = Depends(get_waitlist_service),
):
    return service.to_response(service.leave_waitlist(entry_id, current_user))


# ============================================================================
# BOOKINGS
# ============================================================================


@router.post("", response_model=BookingResponse, status_code=201, dependencies=[Depends(rate_limit_booking)])
async def create_booking(
    data: BookingCreate,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return service.create_booking(data, current_user)


@router.get("", response_model=list[BookingResponse])
async def list_bookings(
    as_provider: bool = False,
    status: Optional[BookingStatus] = None,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Bookings made by the current user, or received as a provider"""
    return service.list_bookings(current_user, as_provider, status)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return service.get_booking(booking_id, current_user)


@router.post("/{booking_id}/cancel", response_model=CancellationResponse)
async def cancel_booking(
    booking_id: int,
    data: BookingCancel,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return service.cancel_booking(booking_id, current_user, data.reason)


@router.post("/{booking_id}/reschedule", response_model=BookingResponse)
async def reschedule_booking(
    booking_id: int,
    data: BookingReschedule,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return service.reschedule_booking(booking_id, current_user, data.start_time)


@router.patch("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: int,
    data: BookingStatusUpdate,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Provider confirms, completes or marks a no-show"""
    return service.update_status(booking_id, current_user, data.status)
