"""Provider domain schemas - Profiles, services and reviews"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...shared.validators import sanitize_text, validate_hex_color

SERVICE_CATEGORIES = ("hair", "makeup", "skin", "nails", "massage", "spa", "wellness", "fitness", "brows", "lashes")
TRY_ON_PRODUCT_TYPES = ("makeup", "skin", "hair")


class ProviderProfileCreate(BaseModel):
    business_name: str = Field(..., min_length=1, max_length=255)
    bio: Optional[str] = None
    location: Optional[str] = Field(None, max_length=500)
    timezone: str = "UTC"
    business_hours_start: int = Field(9, ge=0, le=23)
    business_hours_end: int = Field(17, ge=1, le=24)
    slot_interval_minutes: int = Field(30, ge=5, le=240)

    @field_validator("bio")
    @classmethod
    def clean_bio(cls, v):
        return sanitize_text(v)

    @model_validator(mode="after")
    def check_hours(self):
        if self.business_hours_end <= self.business_hours_start:
            raise ValueError("business_hours_end must be after business_hours_start")
        return self


class ProviderProfileUpdate(BaseModel):
    business_name: Optional[str] = Field(None, min_length=1, max_length=255)
    bio: Optional[str] = None
    location: Optional[str] = Field(None, max_length=500)
    timezone: Optional[str] = None
    business_hours_start: Optional[int] = Field(None, ge=0, le=23)
    business_hours_end: Optional[int] = Field(None, ge=1, le=24)
    slot_interval_minutes: Optional[int] = Field(None, ge=5, le=240)

    @field_validator("bio")
    @classmethod
    def clean_bio(cls, v):
        return sanitize_text(v)


class ProviderProfileResponse(BaseModel):
    id: int
    public_id: str
    business_name: str
    bio: Optional[str] = None
    location: Optional[str] = None
    timezone: str
    business_hours_start: int
    business_hours_end: int
    slot_interval_minutes: int
    is_verified: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BeautyServiceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    category: str
    description: Optional[str] = None
    price: float = Field(..., gt=0)
    duration_minutes: int = Field(..., ge=5, le=720)
    deposit_percentage: float = Field(0, ge=0, le=100)
    supports_try_on: bool = False
    try_on_product_type: Optional[str] = None
    try_on_color: Optional[str] = None

    @field_validator("category")
    @classmethod
    def check_category(cls, v):
        v = v.lower()
        if v not in SERVICE_CATEGORIES:
            raise ValueError(f"category must be one of: {', '.join(SERVICE_CATEGORIES)}")
        return v

    @field_validator("description")
    @classmethod
    def clean_description(cls, v):
        return sanitize_text(v)

    @field_validator("try_on_color")
    @classmethod
    def check_color(cls, v):
        return validate_hex_color(v)

    @model_validator(mode="after")
    def check_try_on(self):
        if self.supports_try_on and self.try_on_product_type not in TRY_ON_PRODUCT_TYPES:
            raise ValueError(f"try_on_product_type must be one of: {', '.join(TRY_ON_PRODUCT_TYPES)}")
        return self


class BeautyServiceUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[float] = Field(None, gt=0)
    duration_minutes: Optional[int] = Field(None, ge=5, le=720)
    deposit_percentage: Optional[float] = Field(None, ge=0, le=100)
    supports_try_on: Optional[bool] = None
    try_on_product_type: Optional[str] = None
    try_on_color: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("description")
    @classmethod
    def clean_description(cls, v):
        return sanitize_text(v)

    @field_validator("try_on_color")
    @classmethod
    def check_color(cls, v):
        return validate_hex_color(v)


class BeautyServiceResponse(BaseModel):
    id: int
    provider_id: int
    name: str
    category: str
    description: Optional[str] = None
    price: float
    duration_minutes: int
    deposit_percentage: float
    supports_try_on: bool
    try_on_product_type: Optional[str] = None
    try_on_color: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


class RatingSummary(BaseModel):
    average: float = 0.0
    count: int = 0
    distribution: dict[int, int] = Field(default_factory=lambda: {i: 0 for i in range(1, 6)})


class ProviderListItem(BaseModel):
    id: int
    public_id: str
    business_name: str
    location: Optional[str] = None
    is_verified: bool
    categories: list[str]
    min_price: Optional[float] = None
    rating: RatingSummary


class ProviderDetailResponse(ProviderProfileResponse):
    services: list[BeautyServiceResponse]
    rating: RatingSummary


class ReviewCreate(BaseModel):
    booking_id: int
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=5000)

    @field_validator("comment")
    @classmethod
    def clean_comment(cls, v):
        return sanitize_text(v)


class ReviewResponse(BaseModel):
    id: int
    booking_id: int
    provider_id: int
    customer_id: int
    rating: int
    comment: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
