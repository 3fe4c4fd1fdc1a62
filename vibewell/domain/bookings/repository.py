"""Booking repository - Database operations for bookings, recurring groups and waitlists"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import BeautyService, Booking, RecurringBookingGroup, WaitlistEntry

ACTIVE_STATUSES = ("PENDING", "CONFIRMED")


class BookingRepository:
    """Repository for booking database operations"""

    @staticmethod
    def get_service(db: Session, service_id: int) -> Optional[BeautyService]:
        return (
            db.query(BeautyService)
            .options(joinedload(BeautyService.provider))
            .filter(BeautyService.id == service_id)
            .first()
        )

    @staticmethod
    def get_booking(db: Session, booking_id: int) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.id == booking_id).first()

    @staticmethod
    def find_conflicts(
        db: Session,
        provider_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[int] = None,
    ) -> list[Booking]:
        """Active bookings of a provider overlapping [start, end)"""
        query = db.query(Booking).filter(
            Booking.provider_id == provider_id,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.start_time < end,
            Booking.end_time > start,
        )
        if exclude_booking_id is not None:
            query = query.filter(Booking.id != exclude_booking_id)
        return query.all()

    @staticmethod
    def get_provider_bookings_between(
        db: Session, provider_id: int, start: datetime, end: datetime
    ) -> list[Booking]:
        return (
            db.query(Booking)
            .filter(
                Booking.provider_id == provider_id,
                Booking.status.in_(ACTIVE_STATUSES),
                Booking.start_time < end,
                Booking.end_time > start,
            )
            .order_by(Booking.start_time)
            .all()
        )

    @staticmethod
    def count_service_bookings_on_day(db: Session, service_id: int, day_start: datetime) -> int:
        """Same-day demand: every non-cancelled booking of the service that day"""
        return (
            db.query(Booking)
            .filter(
                Booking.service_id == service_id,
                Booking.status != "CANCELLED",
                Booking.start_time >= day_start,
                Booking.start_time < day_start + timedelta(days=1),
            )
            .count()
        )

    @staticmethod
    def count_customer_bookings_since(db: Session, customer_id: int, since: datetime) -> int:
        return (
            db.query(Booking)
            .filter(Booking.customer_id == customer_id, Booking.created_at >= since)
            .count()
        )

    @staticmethod
    def list_for_customer(db: Session, customer_id: int, status: Optional[str] = None) -> list[Booking]:
        query = db.query(Booking).filter(Booking.customer_id == customer_id)
        if status:
            query = query.filter(Booking.status == status)
        return query.order_by(Booking.start_time.desc()).all()

    @staticmethod
    def list_for_provider(db: Session, provider_id: int, status: Optional[str] = None) -> list[Booking]:
        query = db.query(Booking).filter(Booking.provider_id == provider_id)
        if status:
            query = query.filter(Booking.status == status)
        return query.order_by(Booking.start_time.desc()).all()

    @staticmethod
    def add_booking(db: Session, **data) -> Booking:
        """Stage a booking without committing"""
        booking = Booking(**data)
        db.add(booking)
        return booking

    @staticmethod
    def add_recurring_group(db: Session, **data) -> RecurringBookingGroup:
        group = RecurringBookingGroup(**data)
        db.add(group)
        db.flush()
        return group

    # ========================================================================
    # BACKGROUND JOB QUERIES
    # ========================================================================

    @staticmethod
    def get_due_reminders(db: Session, window_start: datetime, window_end: datetime) -> list[Booking]:
        return (
            db.query(Booking)
            .filter(
                Booking.status == "CONFIRMED",
                Booking.reminder_sent.is_(False),
                Booking.start_time >= window_start,
                Booking.start_time < window_end,
            )
            .all()
        )

    @staticmethod
    def get_stale_pending(db: Session, created_before: datetime) -> list[Booking]:
        return (
            db.query(Booking)
            .filter(Booking.status == "PENDING", Booking.created_at < created_before)
            .all()
        )

    # ========================================================================
    # WAITLIST
    # ========================================================================

    @staticmethod
    def add_waitlist_entry(db: Session, **data) -> WaitlistEntry:
        entry = WaitlistEntry(**data)
        db.add(entry)
        db.commit()
        db.refresh(entry)
        return entry

    @staticmethod
    def get_pending_waitlist(db: Session, service_id: int) -> list[WaitlistEntry]:
        return (
            db.query(WaitlistEntry)
            .filter(WaitlistEntry.service_id == service_id, WaitlistEntry.status == "PENDING")
            .order_by(WaitlistEntry.created_at)
            .all()
        )

    @staticmethod
    def get_waitlist_for_customer(db: Session, customer_id: int) -> list[WaitlistEntry]:
        return (
            db.query(WaitlistEntry)
            .filter(WaitlistEntry.customer_id == customer_id)
            .order_by(WaitlistEntry.created_at.desc())
            .all()
        )

    @staticmethod
    def get_waitlist_entry(db: Session, entry_id: int) -> Optional[WaitlistEntry]:
        return db.query(WaitlistEntry).filter(WaitlistEntry.id == entry_id).first()
