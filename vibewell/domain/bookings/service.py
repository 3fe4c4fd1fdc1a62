"""Booking service - Scheduling, cancellation and status rules"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import FREE_CANCELLATION_HOURS
from ...models import BeautyService, Booking, User
from ..notifications.schemas import NotificationType
from ..notifications.service import NotificationService
from ..payments.service import REFUNDABLE_STATUSES, PaymentService
from .availability import available_slots, utcnow, within_business_hours
from .pricing import PriceQuote, calculate_dynamic_price
from .repository import BookingRepository
from .schemas import BookingCreate, BookingStatus
from .waitlist import WaitlistService

logger = logging.getLogger(__name__)

# Transitions a provider may apply through update_status
ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.COMPLETED, BookingStatus.NO_SHOW, BookingStatus.CANCELLED},
}
# Outcomes that can only be recorded once the appointment has started
AFTER_START_STATUSES = {BookingStatus.COMPLETED, BookingStatus.NO_SHOW}


def describe_start(start: datetime) -> str:
    return start.strftime("%a %d %b %Y at %H:%M UTC")


class BookingService:
    """Service layer for booking business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BookingRepository()
        self.notifications = NotificationService(db)

    # ========================================================================
    # LOOKUPS
    # ========================================================================

    def get_active_service(self, service_id: int) -> BeautyService:
        service = self.repo.get_service(self.db, service_id)
        if not service:
            raise HTTPException(status_code=404, detail="Service not found")
        if not service.is_active:
            raise HTTPException(status_code=400, detail="Service is not available for booking")
        return service

    def _is_provider_of(self, booking: Booking, user: User) -> bool:
        return bool(booking.provider and booking.provider.user_id == user.id)

    def _refund_outstanding(self, booking: Booking, by_provider: bool) -> bool:
        """A cancelled booking still holding a payment its cancellation should have refunded"""
        if not booking.cancelled_at:
            return False
        early_enough = booking.start_time - booking.cancelled_at >= timedelta(hours=FREE_CANCELLATION_HOURS)
        if not (early_enough or by_provider):
            return False
        return any(
            payment.status in REFUNDABLE_STATUSES and (payment.is_refundable or by_provider)
            for payment in booking.payments
        )

    def get_booking(self, booking_id: int, user: User) -> Booking:
        """A booking visible to its customer, its provider or an admin"""
        booking = self.repo.get_booking(self.db, booking_id)
        if not booking or not (
            booking.customer_id == user.id or self._is_provider_of(booking, user) or user.role == "admin"
        ):
            raise HTTPException(status_code=404, detail="Booking not found")
        return booking

    def list_bookings(self, user: User, as_provider: bool = False, status: Optional[BookingStatus] = None) -> list[Booking]:
        status_value = status.value if status else None
        if as_provider:
            profile = user.provider_profile
            if not profile:
                raise HTTPException(status_code=403, detail="Provider account required")
            return self.repo.list_for_provider(self.db, profile.id, status_value)
        return self.repo.list_for_customer(self.db, user.id, status_value)

    # ========================================================================
    # PRICING AND AVAILABILITY
    # ========================================================================

    def quote_price(self, service: BeautyService, start: datetime, now: Optional[datetime] = None) -> PriceQuote:
        day_start = datetime.combine(start.date(), time.min)
        same_day = self.repo.count_service_bookings_on_day(self.db, service.id, day_start)
        return calculate_dynamic_price(service.price, start, now or utcnow(), same_day)

    def get_available_slots(self, service_id: int, day: date) -> list[datetime]:
        service = self.get_active_service(service_id)
        return available_slots(self.db, service, day, now=utcnow())

    def validate_slot(
        self, service: BeautyService, start: datetime, exclude_booking_id: Optional[int] = None
    ) -> datetime:
        """Check a requested start time and return the matching end time"""
        end = start + timedelta(minutes=service.duration_minutes)
        if start <= utcnow():
            raise HTTPException(status_code=400, detail="Booking must start in the future")
        if not within_business_hours(service.provider, start, end):
            raise HTTPException(status_code=400, detail="Requested time is outside business hours")

        conflicts = self.repo.find_conflicts(self.db, service.provider_id, start, end, exclude_booking_id)
        if conflicts:
            logger.info(f"⛔ Slot {start.isoformat()} conflicts with bookings {[b.id for b in conflicts]}")
            raise HTTPException(status_code=409, detail="This time slot is no longer available")
        return end

    # ========================================================================
    # CREATE / RESCHEDULE
    # ========================================================================

    def create_booking(self, data: BookingCreate, user: User) -> Booking:
        service = self.get_active_service(data.service_id)
        if service.provider and service.provider.user_id == user.id:
            raise HTTPException(status_code=400, detail="Providers cannot book their own services")

        end = self.validate_slot(service, data.start_time)
        quote = self.quote_price(service, data.start_time)

        booking = self.repo.add_booking(
            self.db,
            customer_id=user.id,
            provider_id=service.provider_id,
            service_id=service.id,
            start_time=data.start_time,
            end_time=end,
            status=BookingStatus.PENDING.value,
            price=quote.price,
            price_adjustments=quote.adjustments,
            notes=data.notes,
        )
        self.db.commit()
        self.db.refresh(booking)
        logger.info(
            f"📅 Booking {booking.id} created: service {service.id} at {booking.start_time.isoformat()} "
            f"for {booking.price}"
        )

        details = {
            "booking_id": booking.id,
            "service_name": service.name,
            "start_time": describe_start(booking.start_time),
            "price": booking.price,
        }
        self.notifications.notify_user(
            user,
            NotificationType.BOOKING_CONFIRMATION,
            "Booking received",
            f"Your {service.name} appointment on {describe_start(booking.start_time)} is booked.",
            details,
        )
        if service.provider and service.provider.user:
            self.notifications.notify_user(
                service.provider.user,
                NotificationType.BOOKING_UPDATE,
                "New booking",
                f"New {service.name} booking on {describe_start(booking.start_time)}.",
                details,
            )
        return booking

    def reschedule_booking(self, booking_id: int, user: User, new_start: datetime) -> Booking:
        """Move an active booking; the quoted price is kept"""
        booking = self.get_booking(booking_id, user)
        if booking.status not in (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value):
            raise HTTPException(status_code=400, detail=f"Cannot reschedule a {booking.status.lower()} booking")
        if not booking.service:
            raise HTTPException(status_code=400, detail="The booked service no longer exists")

        old_start = booking.start_time
        booking.end_time = self.validate_slot(booking.service, new_start, exclude_booking_id=booking.id)
        booking.start_time = new_start
        booking.reminder_sent = False
        self.db.commit()
        self.db.refresh(booking)
        logger.info(f"🔁 Booking {booking.id} moved {old_start.isoformat()} -> {new_start.isoformat()}")

        details = {
            "booking_id": booking.id,
            "service_name": booking.service.name,
            "start_time": describe_start(new_start),
            "price": booking.price,
        }
        message = f"Your {booking.service.name} appointment moved to {describe_start(new_start)}."
        self._notify_other_party(booking, user, NotificationType.BOOKING_UPDATE, "Booking rescheduled", message, details)
        self._notify_actor(booking, user, NotificationType.BOOKING_UPDATE, "Booking rescheduled", message, details)

        self._offer_freed_slot(booking.service_id, old_start.date())
        return booking

    # ========================================================================
    # CANCEL / STATUS
    # ========================================================================

    def cancel_booking(self, booking_id: int, user: User, reason: Optional[str] = None) -> dict:
        """
        Cancel as customer or provider.

        Completed payments are refunded when the cancellation comes at least
        FREE_CANCELLATION_HOURS before the start, or when the provider cancels
        (deposits included in that case). A failed refund rolls the
        cancellation back. A cancelled booking whose owed refund never went
        through may be cancelled again to retry it.
        """
        booking = self.get_booking(booking_id, user)
        by_provider = self._is_provider_of(booking, user)
        retry = booking.status == BookingStatus.CANCELLED.value
        if retry and not self._refund_outstanding(booking, by_provider):
            raise HTTPException(status_code=400, detail="Booking is already cancelled")
        if booking.status in (BookingStatus.COMPLETED.value, BookingStatus.NO_SHOW.value):
            raise HTTPException(status_code=400, detail="Completed bookings cannot be cancelled")

        cancelled_at = booking.cancelled_at if retry else utcnow()
        early_enough = booking.start_time - cancelled_at >= timedelta(hours=FREE_CANCELLATION_HOURS)

        if not retry:
            booking.status = BookingStatus.CANCELLED.value
            booking.cancelled_at = cancelled_at
            booking.cancellation_reason = reason
            self.db.flush()

        refund_amount = 0.0
        if early_enough or by_provider:
            try:
                refund_amount = PaymentService(self.db).refund_booking_payments(
                    booking, user, reason or booking.cancellation_reason or "Booking cancelled", force=by_provider
                )
            except HTTPException:
                self.db.rollback()
                logger.error(f"❌ Refund failed for booking {booking_id}, cancellation rolled back")
                raise
        self.db.commit()
        logger.info(
            f"🗑️ Booking {booking.id} cancelled by user {user.id} (provider={by_provider}, retry={retry})"
        )

        self.db.refresh(booking)
        service_name = booking.service.name if booking.service else "appointment"
        details = {
            "booking_id": booking.id,
            "service_name": service_name,
            "start_time": describe_start(booking.start_time),
            "reason": reason,
            "refunded": refund_amount > 0,
        }
        message = f"The {service_name} appointment on {describe_start(booking.start_time)} was cancelled."
        self._notify_other_party(booking, user, NotificationType.BOOKING_CANCELLED, "Booking cancelled", message, details)
        self._notify_actor(booking, user, NotificationType.BOOKING_CANCELLED, "Booking cancelled", message, details)

        if booking.service_id:
            self._offer_freed_slot(booking.service_id, booking.start_time.date())

        return {"booking": booking, "refunded": refund_amount > 0, "refund_amount": refund_amount}

    def update_status(self, booking_id: int, user: User, status: BookingStatus) -> Booking:
        booking = self.get_booking(booking_id, user)
        if not self._is_provider_of(booking, user) and user.role != "admin":
            raise HTTPException(status_code=403, detail="Only the provider can change booking status")

        current = BookingStatus(booking.status)
        if status not in ALLOWED_TRANSITIONS.get(current, set()):
            raise HTTPException(
                status_code=400, detail=f"Cannot change booking from {current.value} to {status.value}"
            )

        if status == BookingStatus.CANCELLED:
            return self.cancel_booking(booking_id, user, "Cancelled by provider")["booking"]

        if status in AFTER_START_STATUSES and utcnow() < booking.start_time:
            raise HTTPException(status_code=400, detail=f"Cannot mark a booking {status.value} before it starts")

        booking.status = status.value
        self.db.commit()
        self.db.refresh(booking)
        logger.info(f"📌 Booking {booking.id}: {current.value} -> {status.value}")

        if status == BookingStatus.CONFIRMED:
            service_name = booking.service.name if booking.service else "appointment"
            self.notifications.notify_user(
                booking.customer,
                NotificationType.BOOKING_CONFIRMATION,
                "Booking confirmed",
                f"Your {service_name} appointment on {describe_start(booking.start_time)} is confirmed.",
                {
                    "booking_id": booking.id,
                    "service_name": service_name,
                    "start_time": describe_start(booking.start_time),
                    "price": booking.price,
                },
            )
        return booking

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _notify_other_party(
        self, booking: Booking, actor: User, type: NotificationType, title: str, message: str, data: dict
    ) -> None:
        if booking.customer_id == actor.id:
            recipient = booking.provider.user if booking.provider else None
        else:
            recipient = booking.customer
        if recipient:
            self.notifications.notify_user(recipient, type, title, message, data)

    def _notify_actor(
        self, booking: Booking, actor: User, type: NotificationType, title: str, message: str, data: dict
    ) -> None:
        self.notifications.notify_user(actor, type, title, message, data)

    def _offer_freed_slot(self, service_id: int, day: date) -> None:
        try:
            WaitlistService(self.db).process_waitlist(service_id, day)
        except HTTPException as e:
            logger.debug(f"Waitlist not processed for service {service_id}: {e.detail}")
