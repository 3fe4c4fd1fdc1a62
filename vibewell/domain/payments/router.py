"""Payment router - Payment intents, deposits, refunds and the Stripe webhook"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ..bookings.schemas import to_naive_utc
from .schemas import (
    PaymentIntentRequest,
    PaymentIntentResponse,
    PaymentResponse,
    PaymentStatistics,
    RefundRequest,
)
from .service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


def get_payment_service(db: Session = Depends(get_db)) -> PaymentService:
    """Dependency injection for PaymentService"""
    return PaymentService(db)


@router.post("/intent", response_model=PaymentIntentResponse, status_code=201)
async def create_payment_intent(
    data: PaymentIntentRequest,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return service.create_payment_intent(data.booking_id, current_user)


@router.post("/deposit", response_model=PaymentIntentResponse, status_code=201)
async def create_deposit(
    data: PaymentIntentRequest,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return service.create_deposit(data.booking_id, current_user)


@router.post("/webhook")
async def stripe_webhook(request: Request, service: PaymentService = Depends(get_payment_service)):
    """Stripe webhook endpoint; authenticity comes from the signature, not a bearer token"""
    payload = await request.body()
    return service.handle_webhook(payload, request.headers.get("Stripe-Signature"))


@router.post("/{payment_id}/refund", response_model=PaymentResponse)
async def refund_payment(
    payment_id: int,
    data: RefundRequest,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return service.refund_payment(payment_id, current_user, data.amount, data.reason)


@router.get("/history", response_model=list[PaymentResponse])
async def payment_history(
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return service.payment_history(current_user)


@router.get("/statistics", response_model=PaymentStatistics)
async def payment_statistics(
    start: datetime,
    end: datetime,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return service.payment_statistics(current_user, to_naive_utc(start), to_naive_utc(end))
