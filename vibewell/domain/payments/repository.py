"""Payment repository - Database operations for payments"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Booking, Payment, User


class PaymentRepository:
    """Repository for payment database operations"""

    @staticmethod
    def get_booking(db: Session, booking_id: int) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.id == booking_id).first()

    @staticmethod
    def get_payment(db: Session, payment_id: int) -> Optional[Payment]:
        return db.query(Payment).filter(Payment.id == payment_id).first()

    @staticmethod
    def get_by_intent(db: Session, payment_intent_id: str) -> Optional[Payment]:
        return db.query(Payment).filter(Payment.stripe_payment_intent_id == payment_intent_id).first()

    @staticmethod
    def get_for_booking(db: Session, booking_id: int, kind: Optional[str] = None) -> list[Payment]:
        query = db.query(Payment).filter(Payment.booking_id == booking_id)
        if kind:
            query = query.filter(Payment.kind == kind)
        return query.order_by(Payment.created_at).all()

    @staticmethod
    def create_payment(db: Session, **data) -> Payment:
        payment = Payment(**data)
        db.add(payment)
        db.commit()
        db.refresh(payment)
        return payment

    @staticmethod
    def list_for_user(db: Session, user_id: int) -> list[Payment]:
        return (
            db.query(Payment)
            .filter(Payment.user_id == user_id)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .all()
        )

    @staticmethod
    def list_for_user_between(db: Session, user_id: int, start: datetime, end: datetime) -> list[Payment]:
        return (
            db.query(Payment)
            .filter(Payment.user_id == user_id, Payment.created_at >= start, Payment.created_at <= end)
            .all()
        )

    @staticmethod
    def get_user(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()
