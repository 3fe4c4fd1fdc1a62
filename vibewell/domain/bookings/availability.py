"""Business hours and slot calculation shared by bookings and the waitlist"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from ...config import DEFAULT_BUSINESS_END_HOUR, DEFAULT_BUSINESS_START_HOUR, DEFAULT_SLOT_INTERVAL_MINUTES
from ...models import BeautyService, ProviderProfile
from .repository import BookingRepository


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def overlaps(start1: datetime, end1: datetime, start2: datetime, end2: datetime) -> bool:
    return start1 < end2 and start2 < end1


def business_window(provider: Optional[ProviderProfile], day: date) -> tuple[datetime, datetime]:
    """Opening and closing time of a provider on a day, in naive UTC"""
    start_hour = provider.business_hours_start if provider else DEFAULT_BUSINESS_START_HOUR
    end_hour = provider.business_hours_end if provider else DEFAULT_BUSINESS_END_HOUR
    midnight = datetime.combine(day, time.min)
    return midnight + timedelta(hours=start_hour), midnight + timedelta(hours=end_hour)


def within_business_hours(provider: Optional[ProviderProfile], start: datetime, end: datetime) -> bool:
    opens, closes = business_window(provider, start.date())
    return opens <= start and end <= closes


def available_slots(
    db: Session,
    service: BeautyService,
    day: date,
    now: Optional[datetime] = None,
    exclude_booking_id: Optional[int] = None,
) -> list[datetime]:
    """
    Start times on a day where the whole service fits inside business hours
    without touching another active booking of the same provider.

    Slots already in the past (relative to now) are left out.
    """
    provider = service.provider
    interval = timedelta(
        minutes=(provider.slot_interval_minutes if provider else None) or DEFAULT_SLOT_INTERVAL_MINUTES
    )
    duration = timedelta(minutes=service.duration_minutes)
    opens, closes = business_window(provider, day)

    existing = [
        b
        for b in BookingRepository.get_provider_bookings_between(db, service.provider_id, opens, closes)
        if b.id != exclude_booking_id
    ]

    slots = []
    slot = opens
    while slot + duration <= closes:
        slot_end = slot + duration
        if (now is None or slot > now) and not any(
            overlaps(slot, slot_end, b.start_time, b.end_time) for b in existing
        ):
            slots.append(slot)
        slot += interval
    return slots
