"""
Shared pytest fixtures for Fundi backend unit tests.

Provides mock database sessions and sample domain objects that mirror
production ORM models without requiring a live database connection.
"""

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from fundi.models.provider import Provider, ProviderStatus, ServiceCategory


# ---------------------------------------------------------------------------
# Database session mock
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_db() -> AsyncMock:
    """Async mock of ``AsyncSession``.

    Provides a mock that supports ``db.execute()``, ``db.add()``,
    ``db.flush()``, and ``db.commit()`` out of the box.  Individual tests
    can configure ``mock_db.execute.return_value`` to control query results.
    """
    session = AsyncMock()
    session.add = MagicMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


# ---------------------------------------------------------------------------
# Provider fixtures
# ---------------------------------------------------------------------------


def make_provider(
    *,
    business_name: str = "Nairobi Plumbing Co",
    longitude: float | None = 36.8219,
    latitude: float | None = -1.2921,
    status: ProviderStatus = ProviderStatus.VERIFIED,
    is_available: bool = True,
    rating_average: float = 0.0,
    rating_count: int = 0,
    base_price_cents: int = 1500,
    categories: tuple[ServiceCategory, ...] = (ServiceCategory.PLUMBING,),
    provider_id: uuid.UUID | None = None,
) -> Provider:
    """Build a provider stand-in with the attributes the services read."""
    provider = MagicMock(spec=Provider)
    provider.id = provider_id or uuid.uuid4()
    provider.business_name = business_name
    provider.longitude = longitude
    provider.latitude = latitude
    provider.status = status
    provider.is_available = is_available
    provider.rating_average = rating_average
    provider.rating_count = rating_count
    provider.rating_total = rating_average * rating_count
    provider.base_price_cents = base_price_cents
    provider.price_per_km_cents = None
    provider.currency = "KES"
    provider.categories = sorted(categories, key=lambda c: c.value)
    provider.created_at = datetime(2026, 1, 10, tzinfo=timezone.utc)
    provider.updated_at = datetime(2026, 1, 10, tzinfo=timezone.utc)
    return provider


@pytest.fixture
def sample_provider() -> Provider:
    """A verified, available plumber in central Nairobi."""
    return make_provider()


@pytest.fixture
def suspended_provider() -> Provider:
    return make_provider(
        business_name="Suspended Fixers",
        status=ProviderStatus.SUSPENDED,
        is_available=False,
    )
