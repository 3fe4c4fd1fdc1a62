"""Waitlist service - Priority queue of customers waiting for a free slot"""

import logging
import math
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import User, WaitlistEntry
from ...shared import safe_math
from ..notifications.schemas import NotificationType
from ..notifications.service import NotificationService
from .availability import available_slots, utcnow
from .repository import BookingRepository
from .schemas import WaitlistCreate

logger = logging.getLogger(__name__)

# (minimum bookings in the past year, multiplier), checked in order
LOYALTY_TIERS = ((20, 2.0), (10, 1.5), (5, 1.25))
DAILY_PRIORITY_BOOST = 0.1


def loyalty_multiplier(bookings_last_year: int) -> float:
    for minimum, multiplier in LOYALTY_TIERS:
        if bookings_last_year >= minimum:
            return multiplier
    return 1.0


def calculate_priority(base_priority: float, bookings_last_year: int, days_waiting: int) -> float:
    """base * loyalty multiplier + 0.1 per full day on the waitlist"""
    weighted = safe_math.multiply(base_priority, loyalty_multiplier(bookings_last_year))
    return round(safe_math.add(weighted, safe_math.multiply(max(days_waiting, 0), DAILY_PRIORITY_BOOST)), 4)


class WaitlistService:
    """Service layer for waitlist business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BookingRepository()
        self.notifications = NotificationService(db)

    def priority_for(self, entry: WaitlistEntry, now: Optional[datetime] = None) -> float:
        now = now or utcnow()
        bookings = self.repo.count_customer_bookings_since(self.db, entry.customer_id, now - timedelta(days=365))
        created = entry.created_at or now
        days_waiting = math.floor((now - created).total_seconds() / 86400)
        return calculate_priority(entry.base_priority, bookings, days_waiting)

    def to_response(self, entry: WaitlistEntry) -> dict:
        return {
            "id": entry.id,
            "customer_id": entry.customer_id,
            "service_id": entry.service_id,
            "preferred_dates": entry.preferred_dates or [],
            "base_priority": entry.base_priority,
            "priority": self.priority_for(entry),
            "status": entry.status,
            "notified_at": entry.notified_at,
            "created_at": entry.created_at,
        }

    def join_waitlist(self, data: WaitlistCreate, user: User) -> WaitlistEntry:
        service = self.repo.get_service(self.db, data.service_id)
        if not service or not service.is_active:
            raise HTTPException(status_code=404, detail="Service not found")

        today = utcnow().date()
        if any(d < today for d in data.preferred_dates):
            raise HTTPException(status_code=400, detail="Preferred dates must not be in the past")

        if any(e.customer_id == user.id for e in self.repo.get_pending_waitlist(self.db, service.id)):
            raise HTTPException(status_code=409, detail="You are already on the waitlist for this service")

        entry = self.repo.add_waitlist_entry(
            self.db,
            customer_id=user.id,
            service_id=service.id,
            preferred_dates=sorted({d.isoformat() for d in data.preferred_dates}),
            base_priority=data.base_priority,
            status="PENDING",
        )
        logger.info(f"⏳ User {user.id} joined waitlist for service {service.id} (entry {entry.id})")

        for day in data.preferred_dates:
            if self.process_waitlist(service.id, day):
                break
        self.db.refresh(entry)
        return entry

    def list_for_customer(self, user: User) -> list[WaitlistEntry]:
        return self.repo.get_waitlist_for_customer(self.db, user.id)

    def leave_waitlist(self, entry_id: int, user: User) -> WaitlistEntry:
        entry = self.repo.get_waitlist_entry(self.db, entry_id)
        if not entry or entry.customer_id != user.id:
            raise HTTPException(status_code=404, detail="Waitlist entry not found")
        entry.status = "EXPIRED"
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def process_waitlist(self, service_id: int, day: date) -> Optional[WaitlistEntry]:
        """
        Offer a free slot on a day to the highest-priority pending entry that
        listed that day. The entry is marked NOTIFIED; nothing is reserved.
        """
        service = self.repo.get_service(self.db, service_id)
        if not service or not service.is_active:
            return None

        now = utcnow()
        slots = available_slots(self.db, service, day, now=now)
        if not slots:
            return None

        day_iso = day.isoformat()
        candidates = [e for e in self.repo.get_pending_waitlist(self.db, service_id) if day_iso in (e.preferred_dates or [])]
        if not candidates:
            return None

        # Highest priority first; earliest entry wins a tie
        entry = max(candidates, key=lambda e: (self.priority_for(e, now), -e.id))
        entry.status = "NOTIFIED"
        entry.notified_at = now
        self.db.commit()

        self.notifications.notify_user(
            entry.customer,
            NotificationType.WAITLIST_SLOT_AVAILABLE,
            "Slot available!",
            f"A slot is now available for {service.name} on {day.strftime('%a %d %b %Y')}.",
            {
                "service_id": service.id,
                "service_name": service.name,
                "date": day_iso,
                "slots": [s.isoformat() for s in slots[:10]],
            },
        )
        logger.info(f"🔔 Waitlist entry {entry.id} notified of {len(slots)} free slots on {day_iso}")
        return entry

    def expire_past_entries(self, today: Optional[date] = None) -> int:
        """Expire pending entries whose preferred dates have all passed"""
        today_iso = (today or utcnow().date()).isoformat()
        expired = 0
        for entry in self.db.query(WaitlistEntry).filter(WaitlistEntry.status == "PENDING").all():
            if all(d < today_iso for d in (entry.preferred_dates or [])):
                entry.status = "EXPIRED"
                expired += 1
        if expired:
            self.db.commit()
        return expired
