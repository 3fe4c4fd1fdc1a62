"""Provider service - Business logic for profiles, services and reviews"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...cache import PROVIDER_LIST_TTL, cache, invalidate_provider_catalogue, provider_list_key
from ...models import BeautyService, ProviderProfile, Review, User
from ...shared import safe_math
from ..notifications.schemas import NotificationType
from ..notifications.service import NotificationService
from .repository import ProviderRepository
from .schemas import (
    BeautyServiceCreate,
    BeautyServiceUpdate,
    ProviderDetailResponse,
    ProviderListItem,
    ProviderProfileCreate,
    ProviderProfileUpdate,
    RatingSummary,
    ReviewCreate,
)

logger = logging.getLogger(__name__)


def build_rating_summary(distribution: dict[int, int]) -> RatingSummary:
    full = {i: distribution.get(i, 0) for i in range(1, 6)}
    count = safe_math.safe_sum(full.values())
    if not count:
        return RatingSummary(distribution=full)

    total = safe_math.safe_sum(safe_math.multiply(r, c) for r, c in full.items())
    return RatingSummary(average=round(safe_math.divide(total, count), 2), count=count, distribution=full)


class ProviderService:
    """Service layer for provider business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ProviderRepository()

    # ========================================================================
    # PROFILE
    # ========================================================================

    def get_own_profile(self, user: User) -> ProviderProfile:
        profile = self.repo.get_profile_by_user(self.db, user.id)
        if not profile:
            raise HTTPException(status_code=404, detail="Provider profile not found")
        return profile

    def create_profile(self, data: ProviderProfileCreate, user: User) -> ProviderProfile:
        if self.repo.get_profile_by_user(self.db, user.id):
            raise HTTPException(status_code=409, detail="Provider profile already exists")

        logger.info(f"🏪 Creating provider profile for user {user.id}: {data.business_name}")
        if user.role == "customer":
            user.role = "provider"
        profile = self.repo.create_profile(self.db, user.id, **data.model_dump())
        invalidate_provider_catalogue()
        return profile

    def update_profile(self, data: ProviderProfileUpdate, user: User) -> ProviderProfile:
        profile = self.get_own_profile(user)
        updates = data.model_dump(exclude_unset=True)

        start = updates.get("business_hours_start", profile.business_hours_start)
        end = updates.get("business_hours_end", profile.business_hours_end)
        if end <= start:
            raise HTTPException(status_code=400, detail="business_hours_end must be after business_hours_start")

        profile = self.repo.update(self.db, profile, **updates)
        invalidate_provider_catalogue()
        return profile

    # ========================================================================
    # SERVICES
    # ========================================================================

    def _get_own_service(self, service_id: int, user: User) -> BeautyService:
        profile = self.get_own_profile(user)
        service = self.repo.get_service(self.db, service_id)
        if not service or service.provider_id != profile.id:
            raise HTTPException(status_code=404, detail="Service not found")
        return service

    def list_own_services(self, user: User) -> list[BeautyService]:
        return self.repo.get_services(self.db, self.get_own_profile(user).id, active_only=False)

    def add_service(self, data: BeautyServiceCreate, user: User) -> BeautyService:
        profile = self.get_own_profile(user)
        service = self.repo.create_service(self.db, profile.id, **data.model_dump())
        logger.info(f"💅 Provider {profile.id} added service {service.id}: {service.name}")
        invalidate_provider_catalogue()
        return service

    def update_service(self, service_id: int, data: BeautyServiceUpdate, user: User) -> BeautyService:
        service = self._get_own_service(service_id, user)
        updates = data.model_dump(exclude_unset=True)
        supports_try_on = updates.get("supports_try_on", service.supports_try_on)
        if supports_try_on and not updates.get("try_on_product_type", service.try_on_product_type):
            raise HTTPException(status_code=400, detail="Try-on services need a try_on_product_type")

        service = self.repo.update(self.db, service, **updates)
        invalidate_provider_catalogue()
        return service

    def deactivate_service(self, service_id: int, user: User) -> BeautyService:
        """Hide a service from new bookings; existing bookings keep their reference"""
        service = self._get_own_service(service_id, user)
        service = self.repo.update(self.db, service, is_active=False)
        logger.info(f"🚫 Service {service.id} deactivated")
        invalidate_provider_catalogue()
        return service

    # ========================================================================
    # PUBLIC CATALOGUE
    # ========================================================================

    def list_providers(
        self,
        category: Optional[str] = None,
        search: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
    ) -> list[dict]:
        key = provider_list_key(category, search, min_price, max_price)
        cached = cache.get(key)
        if cached is not None:
            return cached

        providers = self.repo.search_providers(self.db, category, search, min_price, max_price)
        ratings = self.repo.rating_counts(self.db, [p.id for p in providers]) if providers else {}

        items = []
        for provider in providers:
            active = [s for s in provider.services if s.is_active]
            items.append(
                ProviderListItem(
                    id=provider.id,
                    public_id=provider.public_id,
                    business_name=provider.business_name,
                    location=provider.location,
                    is_verified=provider.is_verified,
                    categories=sorted({s.category for s in active}),
                    min_price=min((s.price for s in active), default=None),
                    rating=build_rating_summary(ratings.get(provider.id, {})),
                ).model_dump(mode="json")
            )

        cache.set(key, items, ttl=PROVIDER_LIST_TTL)
        return items

    def get_provider_detail(self, public_id: str) -> ProviderDetailResponse:
        provider = self.repo.get_profile_by_public_id(self.db, public_id)
        if not provider:
            raise HTTPException(status_code=404, detail="Provider not found")

        services = self.repo.get_services(self.db, provider.id)
        return ProviderDetailResponse(
            id=provider.id,
            public_id=provider.public_id,
            business_name=provider.business_name,
            bio=provider.bio,
            location=provider.location,
            timezone=provider.timezone,
            business_hours_start=provider.business_hours_start,
            business_hours_end=provider.business_hours_end,
            slot_interval_minutes=provider.slot_interval_minutes,
            is_verified=provider.is_verified,
            created_at=provider.created_at,
            services=services,
            rating=self.get_rating_summary(provider.id),
        )

    # ========================================================================
    # REVIEWS
    # ========================================================================

    def get_rating_summary(self, provider_id: int) -> RatingSummary:
        return build_rating_summary(self.repo.rating_counts(self.db, [provider_id]).get(provider_id, {}))

    def list_reviews(self, public_id: str, page: int = 1, page_size: int = 20) -> list[Review]:
        provider = self.repo.get_profile_by_public_id(self.db, public_id)
        if not provider:
            raise HTTPException(status_code=404, detail="Provider not found")
        return self.repo.get_reviews(self.db, provider.id, (page - 1) * page_size, page_size)

    def create_review(self, data: ReviewCreate, user: User) -> Review:
        """One review per completed booking, written by the booking's customer"""
        booking = self.repo.get_booking(self.db, data.booking_id)
        if not booking or booking.customer_id != user.id:
            raise HTTPException(status_code=404, detail="Booking not found")
        if booking.status != "COMPLETED":
            raise HTTPException(status_code=400, detail="Only completed bookings can be reviewed")
        if self.repo.get_review_for_booking(self.db, booking.id):
            raise HTTPException(status_code=409, detail="This booking has already been reviewed")

        review = self.repo.create_review(
            self.db,
            booking_id=booking.id,
            provider_id=booking.provider_id,
            customer_id=user.id,
            rating=data.rating,
            comment=data.comment,
        )
        logger.info(f"⭐ Review {review.id} ({review.rating}/5) for provider {review.provider_id}")
        invalidate_provider_catalogue()

        provider = self.repo.get_profile(self.db, booking.provider_id)
        if provider and provider.user:
            NotificationService(self.db).notify_user(
                provider.user,
                NotificationType.REVIEW,
                "New review received",
                f"You received a {review.rating}-star review.",
                {"review_id": review.id, "booking_id": booking.id, "rating": review.rating},
            )
        return review
