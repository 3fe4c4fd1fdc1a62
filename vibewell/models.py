import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_public_id():
    """Generate a unique public ID for secure public access"""
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    auth0_sub = Column(String(255), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=True)
    full_name = Column(String(255), nullable=True)
    phone_number = Column(String(50), nullable=True)  # E.164
    avatar_url = Column(String(500), nullable=True)
    role = Column(String(20), default="customer", nullable=False)  # customer, provider, admin
    stripe_customer_id = Column(String(255), nullable=True, index=True)

    # Notification preferences
    notify_email = Column(Boolean, default=True, nullable=False)
    notify_sms = Column(Boolean, default=False, nullable=False)
    notify_in_app = Column(Boolean, default=True, nullable=False)
    muted_notification_types = Column(JSON, default=list, nullable=True)  # e.g. ["REVIEW"]

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    provider_profile = relationship("ProviderProfile", back_populates="user", uselist=False)
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")


class ProviderProfile(Base):
    __tablename__ = "provider_profiles"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, index=True, default=generate_public_id)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    business_name = Column(String(255), nullable=False)
    bio = Column(Text, nullable=True)
    location = Column(String(500), nullable=True)
    timezone = Column(String(64), default="UTC")
    # Business hours as whole UTC hours, end exclusive
    business_hours_start = Column(Integer, default=9, nullable=False)
    business_hours_end = Column(Integer, default=17, nullable=False)
    slot_interval_minutes = Column(Integer, default=30, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="provider_profile")
    services = relationship("BeautyService", back_populates="provider", cascade="all, delete-orphan")
    reviews = relationship("Review", back_populates="provider", cascade="all, delete-orphan")


class BeautyService(Base):
    __tablename__ = "beauty_services"

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("provider_profiles.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    category = Column(String(100), nullable=False, index=True)  # hair, makeup, skin, nails, massage, ...
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    deposit_percentage = Column(Float, default=0, nullable=False)  # 0-100
    supports_try_on = Column(Boolean, default=False, nullable=False)
    try_on_product_type = Column(String(50), nullable=True)  # makeup, skin, hair
    try_on_color = Column(String(7), nullable=True)  # #RRGGBB for lipstick/liner previews
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    provider = relationship("ProviderProfile", back_populates="services")
    bookings = relationship("Booking", back_populates="service")


class RecurringBookingGroup(Base):
    __tablename__ = "recurring_booking_groups"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    service_id = Column(Integer, ForeignKey("beauty_services.id"), nullable=False)
    frequency = Column(String(20), nullable=False)  # WEEKLY, BIWEEKLY, MONTHLY
    start_time = Column(DateTime, nullable=False)
    end_date = Column(Date, nullable=False)
    excluded_dates = Column(JSON, default=list)  # ISO dates skipped by the series
    created_at = Column(DateTime, server_default=func.now())

    bookings = relationship("Booking", back_populates="recurring_group")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, index=True, default=generate_public_id)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("provider_profiles.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("beauty_services.id"), nullable=True, index=True)
    start_time = Column(DateTime, nullable=False, index=True)  # naive UTC
    end_time = Column(DateTime, nullable=False)
    status = Column(
        String(20), default="PENDING", nullable=False, index=True
    )  # PENDING, CONFIRMED, CANCELLED, COMPLETED, NO_SHOW
    price = Column(Float, nullable=False)
    price_adjustments = Column(JSON, default=list)  # dynamic pricing breakdown
    notes = Column(String(1000), nullable=True)
    recurring_group_id = Column(Integer, ForeignKey("recurring_booking_groups.id"), nullable=True)
    reminder_sent = Column(Boolean, default=False, nullable=False)
    cancellation_reason = Column(String(500), nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    customer = relationship("User", foreign_keys=[customer_id])
    provider = relationship("ProviderProfile")
    service = relationship("BeautyService", back_populates="bookings")
    recurring_group = relationship("RecurringBookingGroup", back_populates="bookings")
    payments = relationship("Payment", back_populates="booking")


class WaitlistEntry(Base):
    __tablename__ = "waitlist_entries"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("beauty_services.id"), nullable=False, index=True)
    preferred_dates = Column(JSON, default=list)  # ISO dates
    base_priority = Column(Float, default=1.0, nullable=False)
    status = Column(String(20), default="PENDING", nullable=False)  # PENDING, NOTIFIED, BOOKED, EXPIRED
    notified_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    customer = relationship("User")
    service = relationship("BeautyService")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    currency = Column(String(3), default="usd", nullable=False)
    status = Column(
        String(30), default="PENDING", nullable=False
    )  # PENDING, COMPLETED, FAILED, REFUNDED, PARTIALLY_REFUNDED
    kind = Column(String(20), default="FULL", nullable=False)  # FULL, DEPOSIT
    is_refundable = Column(Boolean, default=True, nullable=False)
    stripe_payment_intent_id = Column(String(255), unique=True, index=True, nullable=True)
    stripe_refund_id = Column(String(255), nullable=True)
    refunded_amount = Column(Float, default=0, nullable=False)
    refund_reason = Column(String(500), nullable=True)
    failure_message = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    booking = relationship("Booking", back_populates="payments")
    user = relationship("User")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), index=True)

    user = relationship("User", back_populates="notifications")


class Review(Base):
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), unique=True, nullable=False)
    provider_id = Column(Integer, ForeignKey("provider_profiles.id"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    rating = Column(Integer, nullable=False)  # 1-5
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    provider = relationship("ProviderProfile", back_populates="reviews")
    customer = relationship("User")
