"""Stripe service - Integration with the Stripe API"""

import json
import logging
from typing import Optional

import stripe

from ...config import STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET

logger = logging.getLogger(__name__)


class StripeService:
    """Service for Stripe API operations"""

    def __init__(self):
        self.api_key = STRIPE_SECRET_KEY
        if not self.api_key:
            logger.warning("STRIPE_SECRET_KEY not set; payment endpoints will fail until configured")
        else:
            stripe.api_key = self.api_key

    def is_available(self) -> bool:
        return bool(self.api_key)

    def _require_client(self) -> None:
        if not self.api_key:
            raise RuntimeError("Stripe is not configured")

    def get_or_create_customer(self, email: Optional[str], name: Optional[str], user_id: int) -> str:
        """Create a Stripe customer for a user and return its id"""
        self._require_client()
        try:
            customer = stripe.Customer.create(
                email=email,
                name=name,
                metadata={"user_id": str(user_id)},
            )
            logger.info(f"Stripe customer created for user {user_id}: {customer.id}")
            return customer.id
        except stripe.StripeError as e:
            logger.error(f"Failed to create Stripe customer for user {user_id}: {e}")
            raise

    def create_payment_intent(
        self, amount_cents: int, currency: str, customer_id: str, metadata: Optional[dict] = None
    ):
        self._require_client()
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount_cents,
                currency=currency,
                customer=customer_id,
                metadata=metadata or {},
                automatic_payment_methods={"enabled": True},
            )
            logger.info(f"PaymentIntent {intent.id} created for {amount_cents} {currency}")
            return intent
        except stripe.StripeError as e:
            logger.error(f"Failed to create PaymentIntent: {e}")
            raise

    def create_refund(self, payment_intent_id: str, amount_cents: int, reason: Optional[str] = None):
        self._require_client()
        try:
            refund = stripe.Refund.create(
                payment_intent=payment_intent_id,
                amount=amount_cents,
                metadata={"reason": reason or ""},
            )
            logger.info(f"Refund {refund.id} created for {payment_intent_id}: {amount_cents}")
            return refund
        except stripe.StripeError as e:
            logger.error(f"Failed to refund {payment_intent_id}: {e}")
            raise

    def construct_event(self, payload: bytes, signature: Optional[str]) -> dict:
        """Verify a webhook signature and return the event as plain JSON"""
        if not STRIPE_WEBHOOK_SECRET:
            raise ValueError("Stripe webhook secret not configured")
        if not signature:
            raise ValueError("Missing Stripe-Signature header")
        stripe.Webhook.construct_event(payload, signature, STRIPE_WEBHOOK_SECRET)
        return json.loads(payload)


stripe_service = StripeService()
