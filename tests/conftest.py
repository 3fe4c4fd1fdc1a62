"""
Pytest configuration and fixtures.

Environment is fixed before the application is imported: in-memory SQLite,
no rate limiting, test Stripe/Auth0 settings. Outbound email, SMS, Stripe and
Redis are replaced per test.
"""

import hashlib
import hmac
import json
import os
import tempfile
import time as time_module
from datetime import datetime, time, timedelta
from types import SimpleNamespace
from unittest import mock

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_vibewell"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_vibewell"
os.environ["AUTH0_DOMAIN"] = "vibewell-test.eu.auth0.com"
os.environ["AUTH0_AUDIENCE"] = "https://api.vibewell.test"
os.environ["AUDIT_REPORTS_DIR"] = tempfile.mkdtemp(prefix="vibewell-audit-")

import pytest  # noqa: E402
import stripe  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from vibewell.auth import get_current_user  # noqa: E402
from vibewell.cache import Cache  # noqa: E402
from vibewell.database import Base, SessionLocal, engine, get_db  # noqa: E402
from vibewell.domain.audit import audit_controller  # noqa: E402
from vibewell.domain.bookings.availability import utcnow  # noqa: E402
from vibewell.domain.payments.stripe_service import StripeService  # noqa: E402
from vibewell.main import app  # noqa: E402
from vibewell.models import BeautyService, Booking, ProviderProfile, User  # noqa: E402

WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]


def future_at(days: int = 3, hour: int = 10, minute: int = 0) -> datetime:
    """Naive UTC datetime `days` from today at a fixed time"""
    return datetime.combine(utcnow().date() + timedelta(days=days), time(hour, minute))


def signed_webhook(event: dict, secret: str = WEBHOOK_SECRET) -> tuple[str, str]:
    """Payload and Stripe-Signature header for a webhook event"""
    payload = json.dumps(event)
    timestamp = int(time_module.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return payload, f"t={timestamp},v1={signature}"


class FakeStripe(StripeService):
    """Records API calls instead of talking to Stripe; webhook verification stays real"""

    def __init__(self):
        super().__init__()
        self.intents = []
        self.refunds = []
        self.fail_refunds = False

    def get_or_create_customer(self, email, name, user_id):
        return f"cus_test_{user_id}"

    def create_payment_intent(self, amount_cents, currency, customer_id, metadata=None):
        number = len(self.intents) + 1
        intent = SimpleNamespace(
            id=f"pi_test_{number}",
            client_secret=f"pi_test_{number}_secret_abc",
            amount=amount_cents,
            currency=currency,
            metadata=metadata or {},
        )
        self.intents.append(intent)
        return intent

    def create_refund(self, payment_intent_id, amount_cents, reason=None):
        if self.fail_refunds:
            raise stripe.StripeError("card_declined")
        refund = SimpleNamespace(
            id=f"re_test_{len(self.refunds) + 1}", payment_intent=payment_intent_id, amount=amount_cents
        )
        self.refunds.append(refund)
        return refund


# ============================================================================
# DATABASE / CLIENT
# ============================================================================


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    """Authenticate subsequent requests as the given user"""

    def _login(user):
        app.dependency_overrides[get_current_user] = lambda: user
        return user

    return _login


# ============================================================================
# OUTBOUND SIDE EFFECTS
# ============================================================================


@pytest.fixture(autouse=True)
def no_cache(monkeypatch):
    monkeypatch.setattr(Cache, "_get_client", lambda self: None)


@pytest.fixture(autouse=True)
def email_mock(monkeypatch):
    sender = mock.MagicMock(return_value={"id": "email_test"})
    monkeypatch.setattr("vibewell.domain.notifications.service.send_notification_email", sender)
    return sender


@pytest.fixture(autouse=True)
def sms_mock(monkeypatch):
    sender = mock.MagicMock(return_value=(True, None))
    monkeypatch.setattr("vibewell.domain.notifications.service.send_sms", sender)
    return sender


@pytest.fixture(autouse=True)
def fake_stripe(monkeypatch):
    fake = FakeStripe()
    monkeypatch.setattr("vibewell.domain.payments.service.stripe_service", fake)
    return fake


@pytest.fixture(autouse=True)
def clean_audit(tmp_path, monkeypatch):
    monkeypatch.setattr(audit_controller, "reports_dir", tmp_path / "audit")
    audit_controller.clear_all_audit_data()
    yield
    audit_controller.clear_all_audit_data()


# ============================================================================
# FACTORIES
# ============================================================================


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make_user(role="customer", **fields):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            auth0_sub=f"auth0|user{n}",
            email=fields.pop("email", f"user{n}@example.com"),
            full_name=fields.pop("full_name", f"User {n}"),
            role=role,
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_provider(db, make_user):
    def _make_provider(**profile):
        user = make_user(role="provider")
        provider = ProviderProfile(
            user_id=user.id,
            business_name=profile.pop("business_name", f"Glow Studio {user.id}"),
            **profile,
        )
        db.add(provider)
        db.commit()
        db.refresh(provider)
        return provider

    return _make_provider


@pytest.fixture
def make_service(db):
    def _make_service(provider, **fields):
        service = BeautyService(
            provider_id=provider.id,
            name=fields.pop("name", "Signature Facial"),
            category=fields.pop("category", "skin"),
            price=fields.pop("price", 100.0),
            duration_minutes=fields.pop("duration_minutes", 60),
            **fields,
        )
        db.add(service)
        db.commit()
        db.refresh(service)
        return service

    return _make_service


@pytest.fixture
def make_booking(db):
    def _make_booking(customer, service, start, status="CONFIRMED", **fields):
        booking = Booking(
            customer_id=customer.id,
            provider_id=service.provider_id,
            service_id=service.id,
            start_time=start,
            end_time=start + timedelta(minutes=service.duration_minutes),
            status=status,
            price=fields.pop("price", service.price),
            **fields,
        )
        db.add(booking)
        db.commit()
        db.refresh(booking)
        return booking

    return _make_booking


@pytest.fixture
def customer(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(role="admin")


@pytest.fixture
def provider(make_provider):
    return make_provider()


@pytest.fixture
def facial(make_service, provider):
    return make_service(provider)
