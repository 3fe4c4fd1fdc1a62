"""Provider repository - Database operations for profiles, services and reviews"""

from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from ...models import BeautyService, Booking, ProviderProfile, Review


class ProviderRepository:
    """Repository for provider database operations"""

    @staticmethod
    def get_profile_by_user(db: Session, user_id: int) -> Optional[ProviderProfile]:
        return db.query(ProviderProfile).filter(ProviderProfile.user_id == user_id).first()

    @staticmethod
    def get_profile(db: Session, provider_id: int) -> Optional[ProviderProfile]:
        return db.query(ProviderProfile).filter(ProviderProfile.id == provider_id).first()

    @staticmethod
    def get_profile_by_public_id(db: Session, public_id: str) -> Optional[ProviderProfile]:
        return db.query(ProviderProfile).filter(ProviderProfile.public_id == public_id).first()

    @staticmethod
    def create_profile(db: Session, user_id: int, **data) -> ProviderProfile:
        profile = ProviderProfile(user_id=user_id, **data)
        db.add(profile)
        db.commit()
        db.refresh(profile)
        return profile

    @staticmethod
    def update(db: Session, obj, **updates):
        """Apply field updates to a profile or service row"""
        for key, value in updates.items():
            setattr(obj, key, value)
        db.commit()
        db.refresh(obj)
        return obj

    @staticmethod
    def search_providers(
        db: Session,
        category: Optional[str] = None,
        search: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
    ) -> list[ProviderProfile]:
        """Providers with at least one active service matching every filter"""
        service_filter = select(BeautyService.provider_id).where(BeautyService.is_active.is_(True))
        if category:
            service_filter = service_filter.where(BeautyService.category == category.lower())
        if min_price is not None:
            service_filter = service_filter.where(BeautyService.price >= min_price)
        if max_price is not None:
            service_filter = service_filter.where(BeautyService.price <= max_price)

        query = (
            db.query(ProviderProfile)
            .options(selectinload(ProviderProfile.services))
            .filter(ProviderProfile.id.in_(service_filter))
        )
        if search:
            term = f"%{search.strip()}%"
            query = query.filter(
                or_(
                    ProviderProfile.business_name.ilike(term),
                    ProviderProfile.bio.ilike(term),
                    ProviderProfile.location.ilike(term),
                )
            )
        return query.order_by(ProviderProfile.is_verified.desc(), ProviderProfile.business_name).all()

    # ========================================================================
    # SERVICES
    # ========================================================================

    @staticmethod
    def get_services(db: Session, provider_id: int, active_only: bool = True) -> list[BeautyService]:
        query = db.query(BeautyService).filter(BeautyService.provider_id == provider_id)
        if active_only:
            query = query.filter(BeautyService.is_active.is_(True))
        return query.order_by(BeautyService.category, BeautyService.name).all()

    @staticmethod
    def get_service(db: Session, service_id: int) -> Optional[BeautyService]:
        return db.query(BeautyService).filter(BeautyService.id == service_id).first()

    @staticmethod
    def create_service(db: Session, provider_id: int, **data) -> BeautyService:
        service = BeautyService(provider_id=provider_id, **data)
        db.add(service)
        db.commit()
        db.refresh(service)
        return service

    # ========================================================================
    # REVIEWS
    # ========================================================================

    @staticmethod
    def get_booking(db: Session, booking_id: int) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.id == booking_id).first()

    @staticmethod
    def get_review_for_booking(db: Session, booking_id: int) -> Optional[Review]:
        return db.query(Review).filter(Review.booking_id == booking_id).first()

    @staticmethod
    def create_review(db: Session, **data) -> Review:
        review = Review(**data)
        db.add(review)
        db.commit()
        db.refresh(review)
        return review

    @staticmethod
    def get_reviews(db: Session, provider_id: int, offset: int = 0, limit: int = 20) -> list[Review]:
        return (
            db.query(Review)
            .filter(Review.provider_id == provider_id)
            .order_by(Review.created_at.desc(), Review.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    @staticmethod
    def rating_counts(db: Session, provider_ids: list[int]) -> dict[int, dict[int, int]]:
        """{provider_id: {rating: count}} for the given providers"""
        rows = (
            db.query(Review.provider_id, Review.rating, func.count(Review.id))
            .filter(Review.provider_id.in_(provider_ids))
            .group_by(Review.provider_id, Review.rating)
            .all()
        )
        counts: dict[int, dict[int, int]] = {}
        for provider_id, rating, count in rows:
            counts.setdefault(provider_id, {})[rating] = count
        return counts
