"""Provider router - Public catalogue plus provider-owned profile and service endpoints"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_provider
from ...database import get_db
from ...models import User
from .schemas import (
    BeautyServiceCreate,
    BeautyServiceResponse,
    BeautyServiceUpdate,
    ProviderDetailResponse,
    ProviderListItem,
    ProviderProfileCreate,
    ProviderProfileResponse,
    ProviderProfileUpdate,
    RatingSummary,
    ReviewCreate,
    ReviewResponse,
)
from .service import ProviderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/providers", tags=["Providers"])


def get_provider_service(db: Session = Depends(get_db)) -> ProviderService:
    """Dependency injection for ProviderService"""
    return ProviderService(db)


# ============================================================================
# OWN PROFILE
# ============================================================================


@router.post("/me", response_model=ProviderProfileResponse, status_code=201)
async def create_profile(
    data: ProviderProfileCreate,
    current_user: User = Depends(get_current_user),
    service: ProviderService = Depends(get_provider_service),
):
    """Become a provider by creating a business profile"""
    return service.create_profile(data, current_user)


@router.get("/me", response_model=ProviderProfileResponse)
async def get_own_profile(
    current_user: User = Depends(require_provider),
    service: ProviderService = Depends(get_provider_service),
):
    return service.get_own_profile(current_user)


@router.patch("/me", response_model=ProviderProfileResponse)
async def update_own_profile(
    data: ProviderProfileUpdate,
    current_user: User = Depends(require_provider),
    service: ProviderService = Depends(get_provider_service),
):
    return service.update_profile(data, current_user)


# ============================================================================
# OWN SERVICES
# ============================================================================


@router.get("/me/services", response_model=list[BeautyServiceResponse])
async def list_own_services(
    current_user: User = Depends(require_provider),
    service: ProviderService = Depends(get_provider_service),
):
    """All services including deactivated ones"""
    return service.list_own_services(current_user)


@router.post("/me/services", response_model=BeautyServiceResponse, status_code=201)
async def add_service(
    data: BeautyServiceCreate,
    current_user: User = Depends(require_provider),
    service: ProviderService = Depends(get_provider_service),
):
    return service.add_service(data, current_user)


@router.patch("/me/services/{service_id}", response_model=BeautyServiceResponse)
async def update_service(
    service_id: int,
    data: BeautyServiceUpdate,
    current_user: User = Depends(require_provider),
    service: ProviderService = Depends(get_provider_service),
):
    return service.update_service(service_id, data, current_user)


@router.delete("/me/services/{service_id}", response_model=BeautyServiceResponse)
async def deactivate_service(
    service_id: int,
    current_user: User = Depends(require_provider),
    service: ProviderService = Depends(get_provider_service),
):
    return service.deactivate_service(service_id, current_user)


# ============================================================================
# REVIEWS
# ============================================================================


@router.post("/reviews", response_model=ReviewResponse, status_code=201)
async def create_review(
    data: ReviewCreate,
    current_user: User = Depends(get_current_user),
    service: ProviderService = Depends(get_provider_service),
):
    return service.create_review(data, current_user)


# ============================================================================
# PUBLIC CATALOGUE
# ============================================================================


@router.get("", response_model=list[ProviderListItem])
async def list_providers(
    category: Optional[str] = None,
    search: Optional[str] = Query(None, max_length=100),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    service: ProviderService = Depends(get_provider_service),
):
    return service.list_providers(category, search, min_price, max_price)


@router.get("/{public_id}", response_model=ProviderDetailResponse)
async def get_provider(public_id: str, service: ProviderService = Depends(get_provider_service)):
    return service.get_provider_detail(public_id)


@router.get("/{public_id}/reviews", response_model=list[ReviewResponse])
async def list_reviews(
    public_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    service: ProviderService = Depends(get_provider_service),
):
    return service.list_reviews(public_id, page, page_size)


@router.get("/{public_id}/rating", response_model=RatingSummary)
async def get_rating(public_id: str, service: ProviderService = Depends(get_provider_service)):
    return service.get_provider_detail(public_id).rating
