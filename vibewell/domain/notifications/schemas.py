"""Notification domain schemas - Pydantic models for validation"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class NotificationType(str, Enum):
    BOOKING_CONFIRMATION = "BOOKING_CONFIRMATION"
    BOOKING_REMINDER = "BOOKING_REMINDER"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    BOOKING_UPDATE = "BOOKING_UPDATE"
    PAYMENT = "PAYMENT"
    WAITLIST_SLOT_AVAILABLE = "WAITLIST_SLOT_AVAILABLE"
    REVIEW = "REVIEW"
    AUDIT_ALERT = "AUDIT_ALERT"
    SYSTEM = "SYSTEM"


class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    message: str
    data: Optional[dict[str, Any]] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    total: int
    unread_count: int
    page: int
    page_size: int


class NotificationPreferences(BaseModel):
    email: bool
    sms: bool
    in_app: bool
    muted_types: list[NotificationType] = Field(default_factory=list)


class NotificationPreferencesUpdate(BaseModel):
    """Partial update - omitted fields keep their current value"""

    email: Optional[bool] = None
    sms: Optional[bool] = None
    in_app: Optional[bool] = None
    muted_types: Optional[list[NotificationType]] = None


class DeliveryResult(BaseModel):
    """Outcome of one notify_user call, per channel"""

    notification_id: Optional[int] = None
    skipped: bool = False
    in_app: bool = False
    email_sent: bool = False
    sms_sent: bool = False
    email_error: Optional[str] = None
    sms_error: Optional[str] = None


class BulkNotifyRequest(BaseModel):
    user_ids: list[int] = Field(..., min_length=1, max_length=1000)
    type: NotificationType = NotificationType.SYSTEM
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1, max_length=5000)
    data: Optional[dict[str, Any]] = None


class BulkNotifyResponse(BaseModel):
    requested: int
    delivered: int
    missing_user_ids: list[int]
