"""
Provider Matching Engine
========================

Finds, filters and orders providers for a client's search. Pure read path:
nothing here writes to the store.

Pipeline:
  1. Validate the query (origin, radius, category, filter bounds)
  2. Location index: providers offering the category within the radius,
     annotated with distance in metres
  3. Eligibility filters:
       - never suspended
       - rating average >= min_rating (an unrated provider counts as 0)
       - base price within [min_price_cents, max_price_cents]
       - available now, when requested
       - verified, when requested
       - business name contains the text filter, when given
  4. Order by the requested sort key
  5. Truncate to the requested limit

Key functions:
  - search_providers        -- full pipeline, returns ordered matches
  - availability_summary    -- counts for an area (no truncation)
  - check_provider_eligible -- used when a booking is submitted
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fundi.algorithms.providerRanking import RankingCandidate, SortKey, rank_providers
from fundi.core.config import settings
from fundi.core.exceptions import (
    InvalidQueryError,
    NotFoundError,
    ProviderIneligibleError,
)
from fundi.models.provider import Provider, ProviderStatus, ServiceCategory
from fundi.services import locationIndex
from fundi.services.geoService import Point, ProviderDistance

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Query and result types
# ---------------------------------------------------------------------------

@dataclass
class SearchFilters:
    """Optional eligibility filters applied after the radius lookup."""

    min_rating: float = 0.0
    min_price_cents: Optional[int] = None
    max_price_cents: Optional[int] = None
    available_now: bool = False
    verified_only: bool = False
    text: Optional[str] = None


@dataclass
class SearchQuery:
    """A validated provider search."""

    origin: Point
    category: ServiceCategory
    radius_m: float = field(default_factory=lambda: settings.search_default_radius_m)
    filters: SearchFilters = field(default_factory=SearchFilters)
    sort_by: SortKey = SortKey.DISTANCE
    limit: int = field(default_factory=lambda: settings.search_default_limit)


@dataclass(frozen=True)
class ProviderMatch:
    """One search result."""

    provider: Provider
    distance_m: float
    composite_score: float = 0.0

    @property
    def provider_id(self) -> uuid.UUID:
        return self.provider.id


@dataclass(frozen=True)
class AvailabilitySummary:
    category: ServiceCategory
    radius_m: float
    total_providers: int
    available_now: int
    verified: int
    average_rating: float


# ---------------------------------------------------------------------------
# Query construction / validation
# ---------------------------------------------------------------------------

def parse_category(value: Any) -> ServiceCategory:
    """Resolve a category string.

    Raises:
        InvalidQueryError: If the category is not one we serve.
    """
    if isinstance(value, ServiceCategory):
        return value
    try:
        return ServiceCategory(str(value).strip().lower())
    except ValueError:
        raise InvalidQueryError(
            f"Unknown service category '{value}'. Must be one of: "
            f"{', '.join(c.value for c in ServiceCategory)}."
        )


def build_query(
    *,
    longitude: Any,
    latitude: Any,
    category: Any,
    radius_m: Optional[float] = None,
    min_rating: float = 0.0,
    min_price_cents: Optional[int] = None,
    max_price_cents: Optional[int] = None,
    available_now: bool = False,
    verified_only: bool = False,
    text: Optional[str] = None,
    sort_by: Any = SortKey.DISTANCE,
    limit: Optional[int] = None,
) -> SearchQuery:
    """Turn raw request parameters into a ``SearchQuery``.

    Raises:
        InvalidQueryError: On any out-of-range or unknown parameter.
    """
    origin = Point.parse(longitude, latitude)
    resolved_category = parse_category(category)

    radius = settings.search_default_radius_m if radius_m is None else float(radius_m)
    if not math.isfinite(radius) or radius <= 0:
        raise InvalidQueryError("Radius must be a positive number of metres.")
    if radius > settings.search_max_radius_m:
        raise InvalidQueryError(
            f"Radius {radius:.0f}m exceeds the maximum of "
            f"{settings.search_max_radius_m:.0f}m."
        )

    if not math.isfinite(min_rating) or min_rating < 0:
        raise InvalidQueryError("min_rating must be a non-negative number.")
    if min_price_cents is not None and min_price_cents < 0:
        raise InvalidQueryError("min_price_cents must be non-negative.")
    if (
        min_price_cents is not None
        and max_price_cents is not None
        and min_price_cents > max_price_cents
    ):
        raise InvalidQueryError("min_price_cents cannot exceed max_price_cents.")

    try:
        sort_key = SortKey(sort_by)
    except ValueError:
        raise InvalidQueryError(
            f"Unknown sort key '{sort_by}'. Must be one of: "
            f"{', '.join(k.value for k in SortKey)}."
        )

    resolved_limit = settings.search_default_limit if limit is None else limit
    if resolved_limit < 1:
        raise InvalidQueryError("limit must be at least 1.")
    resolved_limit = min(resolved_limit, settings.search_max_results)

    return SearchQuery(
        origin=origin,
        category=resolved_category,
        radius_m=radius,
        filters=SearchFilters(
            min_rating=min_rating,
            min_price_cents=min_price_cents,
            max_price_cents=max_price_cents,
            available_now=available_now,
            verified_only=verified_only,
            text=text.strip() if text and text.strip() else None,
        ),
        sort_by=sort_key,
        limit=resolved_limit,
    )


# ---------------------------------------------------------------------------
# Eligibility filters
# ---------------------------------------------------------------------------

def _passes_filters(provider: Provider, filters: SearchFilters) -> bool:
    if provider.status == ProviderStatus.SUSPENDED:
        return False
    if (provider.rating_average or 0.0) < filters.min_rating:
        return False
    if filters.min_price_cents is not None and provider.base_price_cents < filters.min_price_cents:
        return False
    if filters.max_price_cents is not None and provider.base_price_cents > filters.max_price_cents:
        return False
    if filters.available_now and not provider.is_available:
        return False
    if filters.verified_only and provider.status != ProviderStatus.VERIFIED:
        return False
    if filters.text and filters.text.lower() not in provider.business_name.lower():
        return False
    return True


def apply_filters(
    nearby: list[ProviderDistance],
    filters: SearchFilters,
) -> list[ProviderDistance]:
    """Drop providers that fail any eligibility filter."""
    return [pd for pd in nearby if _passes_filters(pd.provider, filters)]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def search_providers(
    db: AsyncSession,
    query: SearchQuery,
) -> list[ProviderMatch]:
    """Run the full search pipeline.

    Returns an empty list when nothing matches. Every returned match has
    ``distance_m <= query.radius_m``.
    """
    nearby = await locationIndex.find_within_radius(
        db, query.origin, query.radius_m, query.category
    )
    eligible = apply_filters(nearby, query.filters)

    candidates = [
        RankingCandidate(
            provider=pd.provider,
            provider_id=pd.provider.id,
            distance_m=pd.distance_m,
            rating_average=pd.provider.rating_average or 0.0,
            rating_count=pd.provider.rating_count or 0,
            base_price_cents=pd.provider.base_price_cents,
            is_available=pd.provider.is_available,
        )
        for pd in eligible
    ]
    ranked = rank_providers(candidates, query.sort_by, radius_m=query.radius_m)

    logger.info(
        "Search %s within %.0fm: %d nearby, %d eligible, returning %d (sort=%s)",
        query.category.value,
        query.radius_m,
        len(nearby),
        len(eligible),
        min(len(ranked), query.limit),
        query.sort_by.value,
    )

    return [
        ProviderMatch(
            provider=c.provider,
            distance_m=c.distance_m,
            composite_score=c.composite_score,
        )
        for c in ranked[: query.limit]
    ]


async def availability_summary(
    db: AsyncSession,
    origin: Point,
    category: ServiceCategory,
    radius_m: float,
) -> AvailabilitySummary:
    """Count non-suspended providers of a category in an area."""
    nearby = await locationIndex.find_within_radius(db, origin, radius_m, category)
    active = [pd.provider for pd in nearby if pd.provider.status != ProviderStatus.SUSPENDED]

    rated = [p for p in active if (p.rating_count or 0) > 0]
    average = (
        round(sum(p.rating_average for p in rated) / len(rated), 2) if rated else 0.0
    )

    return AvailabilitySummary(
        category=category,
        radius_m=radius_m,
        total_providers=len(active),
        available_now=sum(1 for p in active if p.is_available),
        verified=sum(1 for p in active if p.status == ProviderStatus.VERIFIED),
        average_rating=average,
    )


async def check_provider_eligible(
    db: AsyncSession,
    provider_id: uuid.UUID,
    category: ServiceCategory,
) -> Provider:
    """Confirm a provider can be booked for ``category``.

    Raises:
        NotFoundError: If the provider does not exist.
        ProviderIneligibleError: If the provider is suspended or does not
            offer the category.
    """
    result = await db.execute(select(Provider).where(Provider.id == provider_id))
    provider = result.scalar_one_or_none()
    if provider is None:
        raise NotFoundError("Provider", provider_id)

    if provider.status == ProviderStatus.SUSPENDED:
        raise ProviderIneligibleError(
            f"Provider '{provider_id}' is suspended and cannot accept bookings."
        )
    if category not in provider.categories:
        raise ProviderIneligibleError(
            f"Provider '{provider_id}' does not offer '{category.value}'."
        )
    return provider
