"""
Location Index
==============

Radius-bounded lookup of providers by service category, plus the write
path for provider location fixes.

Lookups run a bounding-box prefilter in SQL (``providers.latitude`` is
indexed) and then apply the exact haversine check in Python, so every
returned candidate is guaranteed to be within the radius.

Location writes are a single UPDATE that sets longitude, latitude and the
fix timestamp together, so concurrent fixes resolve last-write-wins and a
reader never observes half of one fix and half of another.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fundi.core.exceptions import NotFoundError
from fundi.models.provider import Provider, ProviderCategory, ProviderStatus, ServiceCategory
from fundi.services.geoService import (
    Point,
    ProviderDistance,
    bounding_box,
    filter_by_radius,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocationFix:
    """Row returned after a location write."""

    provider_id: uuid.UUID
    longitude: float
    latitude: float
    is_available: bool
    location_updated_at: datetime


async def find_within_radius(
    db: AsyncSession,
    origin: Point,
    radius_m: float,
    category: ServiceCategory,
) -> list[ProviderDistance]:
    """Return every provider offering ``category`` within ``radius_m`` of
    ``origin``, annotated with distance and ordered closest first.

    Suspended providers are included; eligibility is the matching engine's
    concern.
    """
    box = bounding_box(origin, radius_m)

    filters = [
        ProviderCategory.category == category,
        Provider.latitude.is_not(None),
        Provider.longitude.is_not(None),
        Provider.latitude.between(box.min_lat, box.max_lat),
    ]
    if box.min_lon is not None and box.max_lon is not None:
        filters.append(Provider.longitude.between(box.min_lon, box.max_lon))

    stmt = (
        select(Provider)
        .join(ProviderCategory, ProviderCategory.provider_id == Provider.id)
        .where(*filters)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    candidates = result.scalars().unique().all()

    within = filter_by_radius(candidates, origin, radius_m)

    logger.debug(
        "Location index: %d in box, %d within %.0fm of (%.6f, %.6f) for %s",
        len(candidates),
        len(within),
        radius_m,
        origin.longitude,
        origin.latitude,
        category.value,
    )
    return within


async def update_provider_location(
    db: AsyncSession,
    provider_id: uuid.UUID,
    point: Point,
    *,
    is_available: Optional[bool] = None,
) -> LocationFix:
    """Write a new location fix (and optionally availability) for a provider.

    A suspended provider keeps ``is_available = False`` regardless of the
    requested value.

    Raises:
        NotFoundError: If the provider does not exist.
    """
    values: dict = {
        "longitude": point.longitude,
        "latitude": point.latitude,
        "location_updated_at": datetime.now(timezone.utc),
    }
    if is_available is not None:
        values["is_available"] = case(
            (Provider.status == ProviderStatus.SUSPENDED, False),
            else_=is_available,
        )

    stmt = (
        update(Provider)
        .where(Provider.id == provider_id)
        .values(**values)
        .returning(
            Provider.id,
            Provider.longitude,
            Provider.latitude,
            Provider.is_available,
            Provider.location_updated_at,
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    row = result.one_or_none()
    if row is None:
        raise NotFoundError("Provider", provider_id)

    logger.info(
        "Provider %s location updated to (%.6f, %.6f) available=%s",
        provider_id,
        row.longitude,
        row.latitude,
        row.is_available,
    )
    return LocationFix(
        provider_id=row.id,
        longitude=row.longitude,
        latitude=row.latitude,
        is_available=bool(row.is_available),
        location_updated_at=row.location_updated_at,
    )
