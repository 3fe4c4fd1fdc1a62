"""Booking domain schemas - Pydantic models for validation"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import sanitize_text


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"


class RecurrenceFrequency(str, Enum):
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"


def to_naive_utc(value: datetime) -> datetime:
    """Bookings are stored as naive UTC; aware inputs are converted"""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class BookingCreate(BaseModel):
    service_id: int
    start_time: datetime
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("start_time")
    @classmethod
    def normalize_start(cls, v):
        return to_naive_utc(v)

    @field_validator("notes")
    @classmethod
    def clean_notes(cls, v):
        return sanitize_text(v, max_length=1000)


class BookingReschedule(BaseModel):
    start_time: datetime

    @field_validator("start_time")
    @classmethod
    def normalize_start(cls, v):
        return to_naive_utc(v)


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("reason")
    @classmethod
    def clean_reason(cls, v):
        return sanitize_text(v, max_length=500)


class BookingStatusUpdate(BaseModel):
    status: BookingStatus


class BookingResponse(BaseModel):
    id: int
    public_id: str
    customer_id: int
    provider_id: int
    service_id: Optional[int] = None
    start_time: datetime
    end_time: datetime
    status: BookingStatus
    price: float
    price_adjustments: Optional[list[dict]] = None
    notes: Optional[str] = None
    recurring_group_id: Optional[int] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CancellationResponse(BaseModel):
    booking: BookingResponse
    refunded: bool
    refund_amount: float = 0.0


class AvailabilityResponse(BaseModel):
    service_id: int
    date: date
    duration_minutes: int
    slots: list[datetime]


class RecurringBookingCreate(BaseModel):
    service_id: int
    start_time: datetime
    frequency: RecurrenceFrequency
    end_date: date
    skip_dates: list[date] = Field(default_factory=list)
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("start_time")
    @classmethod
    def normalize_start(cls, v):
        return to_naive_utc(v)

    @field_validator("notes")
    @classmethod
    def clean_notes(cls, v):
        return sanitize_text(v, max_length=1000)


class RecurringBookingResponse(BaseModel):
    group_id: int
    frequency: RecurrenceFrequency
    bookings: list[BookingResponse]


class WaitlistCreate(BaseModel):
    service_id: int
    preferred_dates: list[date] = Field(..., min_length=1, max_length=14)
    base_priority: float = Field(1.0, gt=0, le=10)


class WaitlistResponse(BaseModel):
    id: int
    customer_id: int
    service_id: int
    preferred_dates: list[date]
    base_priority: float
    priority: float
    status: str
    notified_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class PriceQuoteRequest(BaseModel):
    service_id: int
    start_time: datetime

    @field_validator("start_time")
    @classmethod
    def normalize_start(cls, v):
        return to_naive_utc(v)


class PriceAdjustment(BaseModel):
    type: str
    amount: float


class PriceQuoteResponse(BaseModel):
    service_id: int
    start_time: datetime
    base_price: float
    price: float
    adjustments: list[PriceAdjustment]
