"""Payment service - Stripe payments, deposits, refunds and webhook handling"""

import logging
from datetime import datetime, timezone
from typing import Optional

import stripe
from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import STRIPE_CURRENCY
from ...models import Booking, Payment, User
from ...shared import safe_math
from ..audit import compliance_audit
from ..audit.schemas import FinancialTransactionAudit, TransactionIssue
from ..notifications.schemas import NotificationType
from ..notifications.service import NotificationService
from .repository import PaymentRepository
from .schemas import CurrencyTotals, PaymentKind, PaymentStatistics, PaymentStatus
from .stripe_service import StripeService, stripe_service

logger = logging.getLogger(__name__)

PAYABLE_BOOKING_STATUSES = ("PENDING", "CONFIRMED")
REFUNDABLE_STATUSES = (PaymentStatus.COMPLETED.value, PaymentStatus.PARTIALLY_REFUNDED.value)


def to_cents(amount: float) -> int:
    return int(round(safe_math.multiply(amount, 100)))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PaymentService:
    """Service layer for payment business logic"""

    def __init__(self, db: Session, stripe_client: Optional[StripeService] = None):
        self.db = db
        self.repo = PaymentRepository()
        self.stripe = stripe_client or stripe_service
        self.notifications = NotificationService(db)

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _get_payable_booking(self, booking_id: int, user: User) -> Booking:
        booking = self.repo.get_booking(self.db, booking_id)
        if not booking or booking.customer_id != user.id:
            raise HTTPException(status_code=404, detail="Booking not found")
        if booking.status not in PAYABLE_BOOKING_STATUSES:
            raise HTTPException(status_code=400, detail=f"Cannot pay for a {booking.status.lower()} booking")
        return booking

    def _ensure_customer(self, user: User) -> str:
        if user.stripe_customer_id:
            return user.stripe_customer_id
        try:
            customer_id = self.stripe.get_or_create_customer(user.email, user.full_name, user.id)
        except (stripe.StripeError, RuntimeError) as e:
            raise HTTPException(status_code=502, detail="Payment provider unavailable") from e
        user.stripe_customer_id = customer_id
        self.db.commit()
        return customer_id

    def _start_intent(self, booking: Booking, user: User, amount: float, kind: PaymentKind, refundable: bool) -> dict:
        customer_id = self._ensure_customer(user)
        try:
            intent = self.stripe.create_payment_intent(
                to_cents(amount),
                STRIPE_CURRENCY,
                customer_id,
                metadata={"booking_id": str(booking.id), "user_id": str(user.id), "kind": kind.value},
            )
        except (stripe.StripeError, RuntimeError) as e:
            raise HTTPException(status_code=502, detail="Payment provider unavailable") from e

        payment = self.repo.create_payment(
            self.db,
            booking_id=booking.id,
            user_id=user.id,
            amount=amount,
            currency=STRIPE_CURRENCY,
            status=PaymentStatus.PENDING.value,
            kind=kind.value,
            is_refundable=refundable,
            stripe_payment_intent_id=intent.id,
        )
        logger.info(f"💳 {kind.value} payment {payment.id} started for booking {booking.id}: {amount}")
        return {
            "payment_id": payment.id,
            "client_secret": intent.client_secret,
            "amount": amount,
            "currency": STRIPE_CURRENCY,
            "kind": kind,
        }

    def _paid_deposits(self, booking_id: int) -> float:
        deposits = self.repo.get_for_booking(self.db, booking_id, PaymentKind.DEPOSIT.value)
        return safe_math.safe_sum(
            safe_math.subtract(d.amount, d.refunded_amount) for d in deposits if d.status in REFUNDABLE_STATUSES
        )

    def _audit_transaction(
        self, payment: Payment, transaction_type: str, status: str, issues: Optional[list[TransactionIssue]] = None
    ) -> None:
        compliance_audit.audit_financial_transaction(
            FinancialTransactionAudit(
                id=f"payment-{payment.id}-{transaction_type}",
                transaction_type=transaction_type,
                amount=payment.amount,
                currency=payment.currency,
                status=status,
                issues=issues or [],
            )
        )

    # ========================================================================
    # PAYMENTS
    # ========================================================================

    def create_payment_intent(self, booking_id: int, user: User) -> dict:
        """Charge the booking price minus any deposit already paid"""
        booking = self._get_payable_booking(booking_id, user)

        existing = self.repo.get_for_booking(self.db, booking.id, PaymentKind.FULL.value)
        if any(p.status in REFUNDABLE_STATUSES for p in existing):
            raise HTTPException(status_code=409, detail="Booking is already paid")

        amount = round(safe_math.subtract(booking.price, self._paid_deposits(booking.id)), 2)
        if amount <= 0:
            raise HTTPException(status_code=400, detail="Nothing left to pay for this booking")

        return self._start_intent(booking, user, amount, PaymentKind.FULL, refundable=True)

    def create_deposit(self, booking_id: int, user: User) -> dict:
        """Deposit = booking price * the service's deposit percentage; deposits are non-refundable"""
        booking = self._get_payable_booking(booking_id, user)
        percentage = booking.service.deposit_percentage if booking.service else 0
        if not percentage:
            raise HTTPException(status_code=400, detail="This service does not take deposits")

        existing = self.repo.get_for_booking(self.db, booking.id, PaymentKind.DEPOSIT.value)
        if any(p.status in (PaymentStatus.PENDING.value, *REFUNDABLE_STATUSES) for p in existing):
            raise HTTPException(status_code=409, detail="A deposit already exists for this booking")

        amount = round(safe_math.divide(safe_math.multiply(booking.price, percentage), 100), 2)
        return self._start_intent(booking, user, amount, PaymentKind.DEPOSIT, refundable=False)

    # ========================================================================
    # WEBHOOKS
    # ========================================================================

    def handle_webhook(self, payload: bytes, signature: Optional[str]) -> dict:
        try:
            event = self.stripe.construct_event(payload, signature)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning(f"⚠️ Rejected Stripe webhook: {e}")
            raise HTTPException(status_code=400, detail="Invalid webhook signature") from e

        event_type = event["type"]
        intent = event["data"]["object"]
        logger.info(f"📨 Stripe webhook received: {event_type}")

        if event_type == "payment_intent.succeeded":
            self._handle_succeeded(intent)
        elif event_type == "payment_intent.payment_failed":
            self._handle_failed(intent)
        else:
            logger.debug(f"Ignoring Stripe event {event_type}")
            return {"received": True, "handled": False}
        return {"received": True, "handled": True}

    def _handle_succeeded(self, intent) -> None:
        payment = self.repo.get_by_intent(self.db, intent["id"])
        if not payment:
            logger.warning(f"⚠️ No payment for PaymentIntent {intent['id']}")
            return
        if payment.status != PaymentStatus.PENDING.value:
            logger.info(f"Payment {payment.id} already {payment.status}, skipping")
            return

        payment.status = PaymentStatus.COMPLETED.value
        booking = payment.booking
        if booking and booking.status == "PENDING":
            booking.status = "CONFIRMED"
        self.db.commit()

        issues = []
        received = intent.get("amount_received", intent.get("amount"))
        if received is not None and received != to_cents(payment.amount):
            issues.append(
                TransactionIssue(
                    type="reconciliation",
                    description=f"Stripe received {received} cents but payment {payment.id} expects {to_cents(payment.amount)}",
                    severity="critical",
                )
            )
        transaction_type = "deposit" if payment.kind == PaymentKind.DEPOSIT.value else "payment"
        self._audit_transaction(payment, transaction_type, "success", issues)

        self.notifications.notify_user(
            payment.user,
            NotificationType.PAYMENT,
            "Payment received",
            f"Your payment of {payment.amount:.2f} {payment.currency.upper()} was successful.",
            {
                "payment_id": payment.id,
                "booking_id": payment.booking_id,
                "amount": payment.amount,
                "currency": payment.currency,
                "status": payment.status,
            },
        )
        logger.info(f"✅ Payment {payment.id} completed for booking {payment.booking_id}")

    def _handle_failed(self, intent) -> None:
        payment = self.repo.get_by_intent(self.db, intent["id"])
        if not payment:
            logger.warning(f"⚠️ No payment for PaymentIntent {intent['id']}")
            return

        error = intent.get("last_payment_error") or {}
        payment.status = PaymentStatus.FAILED.value
        payment.failure_message = (error.get("message") or "Payment failed")[:500]
        self.db.commit()

        self.notifications.notify_user(
            payment.user,
            NotificationType.PAYMENT,
            "Payment failed",
            f"Your payment of {payment.amount:.2f} {payment.currency.upper()} could not be processed.",
            {
                "payment_id": payment.id,
                "booking_id": payment.booking_id,
                "amount": payment.amount,
                "currency": payment.currency,
                "status": payment.status,
            },
        )
        logger.warning(f"❌ Payment {payment.id} failed: {payment.failure_message}")

    # ========================================================================
    # REFUNDS
    # ========================================================================

    def refund_payment(
        self,
        payment_id: int,
        user: User,
        amount: Optional[float] = None,
        reason: Optional[str] = None,
        force: bool = False,
    ) -> Payment:
        """
        Refund a completed payment, fully or in part.

        Only the paying customer, the booking's provider or an admin may refund.
        Non-refundable deposits need force=True. A refund that brings the
        payment to zero cancels its booking.
        """
        payment = self.repo.get_payment(self.db, payment_id)
        if not payment:
            raise HTTPException(status_code=404, detail="Payment not found")

        booking = payment.booking
        is_provider = bool(booking and booking.provider and booking.provider.user_id == user.id)
        if payment.user_id != user.id and not is_provider and user.role != "admin":
            raise HTTPException(status_code=404, detail="Payment not found")

        if payment.status not in REFUNDABLE_STATUSES:
            raise HTTPException(status_code=400, detail="Only completed payments can be refunded")
        if not payment.is_refundable and not force:
            raise HTTPException(status_code=400, detail="This payment is not refundable")

        remaining = round(safe_math.subtract(payment.amount, payment.refunded_amount), 2)
        refund_amount = remaining if amount is None else round(amount, 2)
        if refund_amount <= 0 or refund_amount > remaining:
            raise HTTPException(status_code=400, detail=f"Refund amount must be between 0 and {remaining:.2f}")

        try:
            refund = self.stripe.create_refund(payment.stripe_payment_intent_id, to_cents(refund_amount), reason)
        except (stripe.StripeError, RuntimeError) as e:
            raise HTTPException(status_code=502, detail="Refund failed at payment provider") from e

        payment.refunded_amount = round(safe_math.add(payment.refunded_amount, refund_amount), 2)
        payment.stripe_refund_id = refund.id
        payment.refund_reason = reason
        fully_refunded = payment.refunded_amount >= payment.amount
        payment.status = (PaymentStatus.REFUNDED if fully_refunded else PaymentStatus.PARTIALLY_REFUNDED).value

        if fully_refunded and booking and booking.status in PAYABLE_BOOKING_STATUSES:
            booking.status = "CANCELLED"
            booking.cancelled_at = _utcnow()
            booking.cancellation_reason = reason or "Refunded"
        self.db.commit()
        self.db.refresh(payment)

        issues = []
        if payment.refunded_amount > payment.amount:
            issues.append(
                TransactionIssue(
                    type="integrity",
                    description=f"Payment {payment.id} refunded {payment.refunded_amount} of {payment.amount}",
                    severity="critical",
                )
            )
        self._audit_transaction(payment, "refund", "success", issues)

        self.notifications.notify_user(
            payment.user,
            NotificationType.PAYMENT,
            "Refund issued",
            f"{refund_amount:.2f} {payment.currency.upper()} has been refunded to your original payment method.",
            {
                "payment_id": payment.id,
                "booking_id": payment.booking_id,
                "amount": refund_amount,
                "currency": payment.currency,
                "status": payment.status,
            },
        )
        logger.info(f"↩️ Refunded {refund_amount} on payment {payment.id} ({payment.status})")
        return payment

    def refund_booking_payments(self, booking: Booking, actor: User, reason: Optional[str], force: bool = False) -> float:
        """Refund every refundable payment of a cancelled booking; returns the total refunded"""
        total = 0.0
        for payment in self.repo.get_for_booking(self.db, booking.id):
            if payment.status not in REFUNDABLE_STATUSES or (not payment.is_refundable and not force):
                continue
            before = payment.refunded_amount
            self.refund_payment(payment.id, actor, reason=reason, force=force)
            total = safe_math.add(total, safe_math.subtract(payment.refunded_amount, before))
        return round(total, 2)

    # ========================================================================
    # HISTORY
    # ========================================================================

    def payment_history(self, user: User) -> list[Payment]:
        return self.repo.list_for_user(self.db, user.id)

    def payment_statistics(self, user: User, start: datetime, end: datetime) -> PaymentStatistics:
        if end < start:
            raise HTTPException(status_code=400, detail="end must not be before start")

        payments = self.repo.list_for_user_between(self.db, user.id, start, end)
        by_status = {status.value: 0 for status in PaymentStatus}
        totals: dict[str, CurrencyTotals] = {}

        for payment in payments:
            by_status[payment.status] = by_status.get(payment.status, 0) + 1
            bucket = totals.setdefault(payment.currency, CurrencyTotals())
            if payment.status in (*REFUNDABLE_STATUSES, PaymentStatus.REFUNDED.value):
                bucket.completed = round(safe_math.add(bucket.completed, payment.amount), 2)
                bucket.refunded = round(safe_math.add(bucket.refunded, payment.refunded_amount), 2)
                bucket.net = round(safe_math.subtract(bucket.completed, bucket.refunded), 2)

        settled = sum(
            by_status[s]
            for s in (
                PaymentStatus.COMPLETED.value,
                PaymentStatus.PARTIALLY_REFUNDED.value,
                PaymentStatus.REFUNDED.value,
            )
        )
        attempted = settled + by_status[PaymentStatus.FAILED.value]
        return PaymentStatistics(
            start=start,
            end=end,
            total_payments=len(payments),
            by_status=by_status,
            totals_by_currency=totals,
            success_rate=round(safe_math.divide(settled * 100, attempted), 2) if attempted else 0.0,
        )
