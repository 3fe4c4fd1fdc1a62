"""Recurring bookings - Weekly, biweekly and monthly series created atomically"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta
from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import User
from ..notifications.schemas import NotificationType
from ..notifications.service import NotificationService
from .availability import utcnow
from .schemas import RecurrenceFrequency, RecurringBookingCreate
from .service import BookingService, describe_start

logger = logging.getLogger(__name__)

MAX_OCCURRENCES = 52


def generate_recurring_dates(
    start: datetime,
    frequency: RecurrenceFrequency,
    end_date: date,
    skip_dates: Optional[list[date]] = None,
    limit: Optional[int] = None,
) -> list[datetime]:
    """
    Occurrence start times from start until end_date inclusive.

    Monthly series keep the day of month of the first occurrence, clamped to
    the last day of shorter months (Jan 31 -> Feb 28 -> Mar 31).
    """
    skipped = set(skip_dates or [])
    occurrences = []
    index = 0
    while True:
        if frequency == RecurrenceFrequency.WEEKLY:
            current = start + timedelta(weeks=index)
        elif frequency == RecurrenceFrequency.BIWEEKLY:
            current = start + timedelta(weeks=2 * index)
        else:
            current = start + relativedelta(months=index)

        if current.date() > end_date:
            break
        if current.date() not in skipped:
            occurrences.append(current)
            if limit is not None and len(occurrences) >= limit:
                break
        index += 1
    return occurrences


class RecurringBookingService:
    """Creates a booking series; either every occurrence is booked or none is"""

    def __init__(self, db: Session):
        self.db = db
        self.bookings = BookingService(db)
        self.notifications = NotificationService(db)

    def create_recurring_booking(self, data: RecurringBookingCreate, user: User) -> dict:
        service = self.bookings.get_active_service(data.service_id)
        if service.provider and service.provider.user_id == user.id:
            raise HTTPException(status_code=400, detail="Providers cannot book their own services")
        if data.end_date < data.start_time.date():
            raise HTTPException(status_code=400, detail="end_date must not be before the first occurrence")

        occurrences = generate_recurring_dates(
            data.start_time, data.frequency, data.end_date, data.skip_dates, limit=MAX_OCCURRENCES + 1
        )
        if not occurrences:
            raise HTTPException(status_code=400, detail="The series has no occurrences")
        if len(occurrences) > MAX_OCCURRENCES:
            raise HTTPException(
                status_code=400, detail=f"A series may contain at most {MAX_OCCURRENCES} occurrences"
            )

        # Validate every occurrence before writing anything
        planned = []
        now = utcnow()
        for start in occurrences:
            try:
                end = self.bookings.validate_slot(service, start)
            except HTTPException as e:
                raise HTTPException(
                    status_code=e.status_code, detail=f"Occurrence on {start.date().isoformat()}: {e.detail}"
                ) from e
            planned.append((start, end, self.bookings.quote_price(service, start, now)))

        try:
            group = self.bookings.repo.add_recurring_group(
                self.db,
                customer_id=user.id,
                service_id=service.id,
                frequency=data.frequency.value,
                start_time=data.start_time,
                end_date=data.end_date,
                excluded_dates=sorted(d.isoformat() for d in data.skip_dates),
            )
            created = [
                self.bookings.repo.add_booking(
                    self.db,
                    customer_id=user.id,
                    provider_id=service.provider_id,
                    service_id=service.id,
                    start_time=start,
                    end_time=end,
                    status="CONFIRMED",
                    price=quote.price,
                    price_adjustments=quote.adjustments,
                    notes=data.notes,
                    recurring_group_id=group.id,
                )
                for start, end, quote in planned
            ]
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"❌ Recurring booking series for user {user.id} rolled back")
            raise

        for booking in created:
            self.db.refresh(booking)
        logger.info(
            f"📆 Recurring {data.frequency.value} series {group.id}: {len(created)} bookings "
            f"for service {service.id}"
        )

        self.notifications.notify_user(
            user,
            NotificationType.BOOKING_CONFIRMATION,
            "Recurring booking confirmed",
            f"{len(created)} {service.name} appointments booked, starting {describe_start(created[0].start_time)}.",
            {
                "recurring_group_id": group.id,
                "service_name": service.name,
                "start_time": describe_start(created[0].start_time),
            },
        )
        return {"group_id": group.id, "frequency": data.frequency, "bookings": created}
