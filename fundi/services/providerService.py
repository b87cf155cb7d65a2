"""
Provider Service
================

Provider registration and administration: create, fetch, suspend and
reinstate. Location writes live in ``locationIndex``; rating writes live in
``ratingAggregator``.

Suspension is a single UPDATE that also forces ``is_available`` off, so a
suspended provider is never observed as available. Reinstatement restores
``verified`` when the provider had been verified before, ``pending``
otherwise.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import case, literal, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fundi.core.exceptions import ConflictError, NotFoundError
from fundi.models.provider import (
    Provider,
    ProviderCategory,
    ProviderStatus,
    ServiceCategory,
)
from fundi.services.geoService import Point

logger = logging.getLogger(__name__)


async def get_provider(
    db: AsyncSession,
    provider_id: uuid.UUID,
) -> Provider | None:
    """Fetch a provider with categories loaded, refreshing any stale copy."""
    result = await db.execute(
        select(Provider)
        .where(Provider.id == provider_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def create_provider(
    db: AsyncSession,
    *,
    business_name: str,
    categories: list[ServiceCategory],
    provider_id: Optional[uuid.UUID] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    location: Optional[Point] = None,
    is_available: bool = False,
    status: ProviderStatus = ProviderStatus.PENDING,
    base_price_cents: int = 0,
    price_per_km_cents: Optional[int] = None,
    currency: str = "KES",
) -> Provider:
    """Register a provider.

    Raises:
        ConflictError: If a provider with ``provider_id`` already exists.
    """
    now = datetime.now(timezone.utc)
    provider = Provider(
        id=provider_id or uuid.uuid4(),
        business_name=business_name,
        email=email,
        phone=phone,
        status=status,
        verified_at=now if status == ProviderStatus.VERIFIED else None,
        suspended_at=now if status == ProviderStatus.SUSPENDED else None,
        longitude=location.longitude if location else None,
        latitude=location.latitude if location else None,
        location_updated_at=now if location else None,
        is_available=is_available and status != ProviderStatus.SUSPENDED,
        base_price_cents=base_price_cents,
        price_per_km_cents=price_per_km_cents,
        currency=currency.upper(),
        rating_average=0.0,
        rating_count=0,
        rating_total=0.0,
    )
    provider.category_links = [
        ProviderCategory(category=category) for category in dict.fromkeys(categories)
    ]

    try:
        async with db.begin_nested():
            db.add(provider)
    except IntegrityError:
        raise ConflictError(f"Provider with id '{provider.id}' already exists.")

    logger.info(
        "Provider registered: %s (%s) categories=%s status=%s",
        provider.id,
        business_name,
        ",".join(c.value for c in provider.categories),
        status.value,
    )
    return provider


async def set_suspension(
    db: AsyncSession,
    provider_id: uuid.UUID,
    suspended: bool,
    reason: Optional[str] = None,
) -> Provider:
    """Suspend or reinstate a provider.

    Raises:
        NotFoundError: If the provider does not exist.
    """
    if suspended:
        values = {
            "status": ProviderStatus.SUSPENDED,
            "is_available": False,
            "suspended_at": datetime.now(timezone.utc),
            "suspension_reason": reason,
        }
        stmt = update(Provider).where(Provider.id == provider_id)
    else:
        status_type = Provider.status.type
        values = {
            "status": case(
                (
                    Provider.verified_at.is_not(None),
                    literal(ProviderStatus.VERIFIED, status_type),
                ),
                else_=literal(ProviderStatus.PENDING, status_type),
            ),
            "suspended_at": None,
            "suspension_reason": None,
        }
        # Reinstating a provider that is not suspended is a no-op
        stmt = update(Provider).where(
            Provider.id == provider_id,
            Provider.status == ProviderStatus.SUSPENDED,
        )

    result = await db.execute(
        stmt.values(**values)
        .returning(Provider.id)
        .execution_options(synchronize_session=False)
    )
    updated = result.scalar_one_or_none()

    provider = await get_provider(db, provider_id)
    if provider is None:
        raise NotFoundError("Provider", provider_id)

    if updated is not None:
        logger.info(
            "Provider %s %s (reason=%s)",
            provider_id,
            "suspended" if suspended else "reinstated",
            reason,
        )
    return provider
