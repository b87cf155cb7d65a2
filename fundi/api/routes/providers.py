"""
Provider API Routes
===================

REST endpoints for provider discovery and provider management.

Routes:
  GET    /api/v1/providers/search               -- Radius search with filters/sort
  GET    /api/v1/providers/availability         -- Availability summary for an area
  PUT    /api/v1/providers/me/location          -- Provider location/availability fix
  POST   /api/v1/providers                      -- Register a provider (admin)
  GET    /api/v1/providers/{provider_id}        -- Provider detail
  GET    /api/v1/providers/{provider_id}/ratings -- Ratings history
  PATCH  /api/v1/providers/{provider_id}/suspension -- Suspend/reinstate (admin)
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from fundi.api.deps import AdminActor, DBSession, ProviderActor
from fundi.api.errors import to_http_exception
from fundi.api.schemas.booking import ProviderRatingOut
from fundi.api.schemas.job import PaginationMeta, PointOut
from fundi.api.schemas.provider import (
    AvailabilitySummaryOut,
    LocationUpdateOut,
    LocationUpdateRequest,
    ProviderCreateRequest,
    ProviderOut,
    ProviderRatingEntry,
    ProviderRatingListResponse,
    ProviderSearchResponse,
    ProviderSearchResult,
    SuspensionRequest,
)
from fundi.core.config import settings
from fundi.core.exceptions import FundiError
from fundi.services import locationIndex, matchingEngine, providerService, ratingAggregator
from fundi.services.geoService import Point

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/providers", tags=["Providers"])


# ---------------------------------------------------------------------------
# GET /api/v1/providers/search -- Radius search
# ---------------------------------------------------------------------------

@router.get(
    "/search",
    response_model=ProviderSearchResponse,
    summary="Search providers near a point",
    description=(
        "Returns providers offering the category within the radius of the "
        "origin, filtered by rating, price, availability and verification, "
        "ordered by the requested sort key. Distances are in metres."
    ),
)
async def search_providers(
    db: DBSession,
    longitude: float = Query(..., description="Origin longitude"),
    latitude: float = Query(..., description="Origin latitude"),
    category: str = Query(..., description="Service category"),
    radius_m: Optional[float] = Query(default=None, description="Search radius in metres"),
    min_rating: float = Query(default=0.0),
    min_price_cents: Optional[int] = Query(default=None),
    max_price_cents: Optional[int] = Query(default=None),
    available_now: bool = Query(default=False),
    verified_only: bool = Query(default=False),
    text: Optional[str] = Query(default=None, max_length=100),
    sort_by: str = Query(default="distance"),
    limit: Optional[int] = Query(default=None),
) -> ProviderSearchResponse:
    try:
        query = matchingEngine.build_query(
            longitude=longitude,
            latitude=latitude,
            category=category,
            radius_m=radius_m,
            min_rating=min_rating,
            min_price_cents=min_price_cents,
            max_price_cents=max_price_cents,
            available_now=available_now,
            verified_only=verified_only,
            text=text,
            sort_by=sort_by,
            limit=limit,
        )
        matches = await matchingEngine.search_providers(db, query)
    except FundiError as exc:
        raise to_http_exception(exc)

    results = [
        ProviderSearchResult(
            provider_id=m.provider.id,
            business_name=m.provider.business_name,
            categories=m.provider.categories,
            location=PointOut(
                longitude=m.provider.longitude,
                latitude=m.provider.latitude,
            ),
            distance_m=round(m.distance_m, 2),
            is_available=m.provider.is_available,
            status=m.provider.status,
            rating=ProviderRatingOut(
                average=m.provider.rating_average,
                count=m.provider.rating_count,
            ),
            base_price_cents=m.provider.base_price_cents,
            price_per_km_cents=m.provider.price_per_km_cents,
            currency=m.provider.currency,
            composite_score=m.composite_score if query.sort_by.value == "best_match" else None,
        )
        for m in matches
    ]

    return ProviderSearchResponse(
        category=query.category,
        origin=PointOut(longitude=query.origin.longitude, latitude=query.origin.latitude),
        radius_m=query.radius_m,
        sort_by=query.sort_by.value,
        total=len(results),
        results=results,
    )


# ---------------------------------------------------------------------------
# GET /api/v1/providers/availability -- Area summary
# ---------------------------------------------------------------------------

@router.get(
    "/availability",
    response_model=AvailabilitySummaryOut,
    summary="Provider availability summary for an area",
)
async def availability_summary(
    db: DBSession,
    longitude: float = Query(...),
    latitude: float = Query(...),
    category: str = Query(...),
    radius_m: Optional[float] = Query(default=None),
) -> AvailabilitySummaryOut:
    try:
        query = matchingEngine.build_query(
            longitude=longitude,
            latitude=latitude,
            category=category,
            radius_m=radius_m,
        )
        summary = await matchingEngine.availability_summary(
            db, query.origin, query.category, query.radius_m
        )
    except FundiError as exc:
        raise to_http_exception(exc)

    return AvailabilitySummaryOut(
        category=summary.category,
        radius_m=summary.radius_m,
        total_providers=summary.total_providers,
        available_now=summary.available_now,
        verified=summary.verified,
        average_rating=summary.average_rating,
    )


# ---------------------------------------------------------------------------
# PUT /api/v1/providers/me/location -- Location fix
# ---------------------------------------------------------------------------

@router.put(
    "/me/location",
    response_model=LocationUpdateOut,
    summary="Update the calling provider's location and availability",
)
async def update_my_location(
    db: DBSession,
    actor: ProviderActor,
    body: LocationUpdateRequest,
) -> LocationUpdateOut:
    try:
        point = Point.parse(body.longitude, body.latitude)
        fix = await locationIndex.update_provider_location(
            db, actor.id, point, is_available=body.is_available
        )
    except FundiError as exc:
        raise to_http_exception(exc)

    return LocationUpdateOut(
        provider_id=fix.provider_id,
        location=PointOut(longitude=fix.longitude, latitude=fix.latitude),
        is_available=fix.is_available,
        location_updated_at=fix.location_updated_at,
    )


# ---------------------------------------------------------------------------
# POST /api/v1/providers -- Register (admin)
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=ProviderOut,
    status_code=status.HTTP_201_CREATED,
    summary="Register a provider",
)
async def create_provider(
    db: DBSession,
    actor: AdminActor,
    body: ProviderCreateRequest,
) -> ProviderOut:
    try:
        location = (
            Point.parse(body.location.longitude, body.location.latitude)
            if body.location
            else None
        )
        provider = await providerService.create_provider(
            db,
            provider_id=body.id,
            business_name=body.business_name,
            email=body.email,
            phone=body.phone,
            categories=body.categories,
            location=location,
            is_available=body.is_available,
            status=body.status,
            base_price_cents=body.base_price_cents,
            price_per_km_cents=body.price_per_km_cents,
            currency=body.currency,
        )
    except FundiError as exc:
        raise to_http_exception(exc)

    return ProviderOut.from_provider(provider)


# ---------------------------------------------------------------------------
# GET /api/v1/providers/{provider_id} -- Detail
# ---------------------------------------------------------------------------

@router.get(
    "/{provider_id}",
    response_model=ProviderOut,
    summary="Get provider detail",
)
async def get_provider(
    db: DBSession,
    provider_id: uuid.UUID,
) -> ProviderOut:
    provider = await providerService.get_provider(db, provider_id)
    if provider is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Provider with id '{provider_id}' not found.",
        )
    return ProviderOut.from_provider(provider)


# ---------------------------------------------------------------------------
# GET /api/v1/providers/{provider_id}/ratings -- Ratings history
# ---------------------------------------------------------------------------

@router.get(
    "/{provider_id}/ratings",
    response_model=ProviderRatingListResponse,
    summary="List ratings received by a provider",
)
async def list_provider_ratings(
    db: DBSession,
    provider_id: uuid.UUID,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
) -> ProviderRatingListResponse:
    try:
        stats = await ratingAggregator.get_rating_stats(db, provider_id)
        result = await ratingAggregator.list_provider_ratings(
            db, provider_id, page=page, page_size=page_size
        )
    except FundiError as exc:
        raise to_http_exception(exc)

    return ProviderRatingListResponse(
        rating=ProviderRatingOut(average=stats.average, count=stats.count),
        data=[
            ProviderRatingEntry(
                job_id=job.id,
                client_id=job.client_id,
                category=job.category,
                score=job.rating_score,
                review=job.rating_review,
                rated_at=job.rated_at,
            )
            for job in result.items
        ],
        meta=PaginationMeta(
            page=result.page,
            page_size=result.page_size,
            total_items=result.total_items,
            total_pages=result.total_pages,
        ),
    )


# ---------------------------------------------------------------------------
# PATCH /api/v1/providers/{provider_id}/suspension -- Suspend (admin)
# ---------------------------------------------------------------------------

@router.patch(
    "/{provider_id}/suspension",
    response_model=ProviderOut,
    summary="Suspend or reinstate a provider",
)
async def set_provider_suspension(
    db: DBSession,
    actor: AdminActor,
    provider_id: uuid.UUID,
    body: SuspensionRequest,
) -> ProviderOut:
    try:
        provider = await providerService.set_suspension(
            db, provider_id, body.suspended, body.reason
        )
    except FundiError as exc:
        raise to_http_exception(exc)

    return ProviderOut.from_provider(provider)
