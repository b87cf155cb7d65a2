"""
Pydantic v2 schemas for the Provider API
========================================

Search results, availability summaries, provider detail and the
provider/admin management endpoints.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from fundi.api.schemas.booking import PointIn, ProviderRatingOut
from fundi.api.schemas.job import PaginationMeta, PointOut
from fundi.models.provider import Provider, ProviderStatus, ServiceCategory


# ---------------------------------------------------------------------------
# Provider output
# ---------------------------------------------------------------------------

class ProviderOut(BaseModel):
    """Provider detail."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    business_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    status: ProviderStatus
    categories: list[ServiceCategory]
    location: Optional[PointOut] = None
    location_updated_at: Optional[datetime] = None
    is_available: bool
    rating: ProviderRatingOut
    base_price_cents: int
    price_per_km_cents: Optional[int] = None
    currency: str

    @classmethod
    def from_provider(cls, provider: Provider) -> "ProviderOut":
        location = None
        if provider.longitude is not None and provider.latitude is not None:
            location = PointOut(longitude=provider.longitude, latitude=provider.latitude)
        return cls(
            id=provider.id,
            business_name=provider.business_name,
            email=provider.email,
            phone=provider.phone,
            status=provider.status,
            categories=provider.categories,
            location=location,
            location_updated_at=provider.location_updated_at,
            is_available=provider.is_available,
            rating=ProviderRatingOut(
                average=provider.rating_average,
                count=provider.rating_count,
            ),
            base_price_cents=provider.base_price_cents,
            price_per_km_cents=provider.price_per_km_cents,
            currency=provider.currency,
        )


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

class ProviderSearchResult(BaseModel):
    provider_id: uuid.UUID
    business_name: str
    categories: list[ServiceCategory]
    location: PointOut
    distance_m: float
    is_available: bool
    status: ProviderStatus
    rating: ProviderRatingOut
    base_price_cents: int
    price_per_km_cents: Optional[int] = None
    currency: str
    composite_score: Optional[float] = None


class ProviderSearchResponse(BaseModel):
    category: ServiceCategory
    origin: PointOut
    radius_m: float
    sort_by: str
    total: int
    results: list[ProviderSearchResult]


class AvailabilitySummaryOut(BaseModel):
    category: ServiceCategory
    radius_m: float
    total_providers: int
    available_now: int
    verified: int
    average_rating: float


# ---------------------------------------------------------------------------
# Management
# ---------------------------------------------------------------------------

class ProviderCreateRequest(BaseModel):
    """Admin registration of a provider.

    ``id`` should match the subject the identity service issues to the
    provider, so their tokens resolve to this record.
    """

    id: Optional[uuid.UUID] = None
    business_name: str = Field(min_length=1, max_length=200)
    email: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=30)
    categories: list[ServiceCategory] = Field(min_length=1)
    location: Optional[PointIn] = None
    is_available: bool = False
    status: ProviderStatus = ProviderStatus.PENDING
    base_price_cents: int = Field(default=0, ge=0)
    price_per_km_cents: Optional[int] = Field(default=None, ge=0)
    currency: str = Field(default="KES", min_length=3, max_length=3)


class LocationUpdateRequest(BaseModel):
    longitude: float
    latitude: float
    is_available: Optional[bool] = None


class LocationUpdateOut(BaseModel):
    provider_id: uuid.UUID
    location: PointOut
    is_available: bool
    location_updated_at: datetime


class SuspensionRequest(BaseModel):
    suspended: bool
    reason: Optional[str] = Field(default=None, max_length=1000)


class ProviderRatingEntry(BaseModel):
    job_id: uuid.UUID
    client_id: uuid.UUID
    category: ServiceCategory
    score: float
    review: Optional[str] = None
    rated_at: Optional[datetime] = None


class ProviderRatingListResponse(BaseModel):
    rating: ProviderRatingOut
    data: list[ProviderRatingEntry]
    meta: PaginationMeta
