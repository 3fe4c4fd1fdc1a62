"""Payment domain schemas - Pydantic models for validation"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import sanitize_text


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"


class PaymentKind(str, Enum):
    FULL = "FULL"
    DEPOSIT = "DEPOSIT"


class PaymentIntentRequest(BaseModel):
    booking_id: int


class PaymentIntentResponse(BaseModel):
    payment_id: int
    client_secret: Optional[str] = None
    amount: float
    currency: str
    kind: PaymentKind


class RefundRequest(BaseModel):
    amount: Optional[float] = Field(None, gt=0)
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("reason")
    @classmethod
    def clean_reason(cls, v):
        return sanitize_text(v, max_length=500)


class PaymentResponse(BaseModel):
    id: int
    booking_id: int
    amount: float
    currency: str
    status: PaymentStatus
    kind: PaymentKind
    is_refundable: bool
    refunded_amount: float
    refund_reason: Optional[str] = None
    failure_message: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CurrencyTotals(BaseModel):
    completed: float = 0.0
    refunded: float = 0.0
    net: float = 0.0


class PaymentStatistics(BaseModel):
    start: datetime
    end: datetime
    total_payments: int
    by_status: dict[str, int]
    totals_by_currency: dict[str, CurrencyTotals]
    success_rate: float
