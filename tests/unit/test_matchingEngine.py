"""
Unit tests for the Provider Matching Engine.

Covers query validation, eligibility filters and the search pipeline with
the location index mocked out.
"""

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from fundi.algorithms.providerRanking import SortKey
from fundi.core.config import settings
from fundi.core.exceptions import (
    InvalidQueryError,
    NotFoundError,
    ProviderIneligibleError,
)
from fundi.models.provider import ProviderStatus, ServiceCategory
from fundi.services.geoService import Point, ProviderDistance
from fundi.services.matchingEngine import (
    SearchFilters,
    apply_filters,
    availability_summary,
    build_query,
    check_provider_eligible,
    parse_category,
    search_providers,
)
from tests.conftest import make_provider


NAIROBI_CBD = Point(longitude=36.8219, latitude=-1.2921)


def _query(**overrides):
    params = {"longitude": 36.8219, "latitude": -1.2921, "category": "plumbing"}
    params.update(overrides)
    return build_query(**params)


# ---------------------------------------------------------------------------
# Query validation
# ---------------------------------------------------------------------------


class TestBuildQuery:

    def test_defaults(self):
        query = _query()
        assert query.origin == NAIROBI_CBD
        assert query.category == ServiceCategory.PLUMBING
        assert query.radius_m == settings.search_default_radius_m
        assert query.sort_by == SortKey.DISTANCE
        assert query.limit == settings.search_default_limit

    def test_category_is_case_insensitive(self):
        assert _query(category=" Plumbing ").category == ServiceCategory.PLUMBING

    def test_unknown_category(self):
        with pytest.raises(InvalidQueryError, match="Unknown service category"):
            _query(category="astrology")

    @pytest.mark.parametrize("radius", [0, -5, float("nan"), float("inf")])
    def test_non_positive_or_non_finite_radius(self, radius):
        with pytest.raises(InvalidQueryError):
            _query(radius_m=radius)

    def test_radius_above_maximum(self):
        with pytest.raises(InvalidQueryError, match="exceeds the maximum"):
            _query(radius_m=settings.search_max_radius_m + 1)

    def test_invalid_origin(self):
        with pytest.raises(InvalidQueryError):
            _query(latitude=95)

    def test_negative_min_rating(self):
        with pytest.raises(InvalidQueryError):
            _query(min_rating=-1)

    def test_inverted_price_range(self):
        with pytest.raises(InvalidQueryError):
            _query(min_price_cents=5000, max_price_cents=1000)

    def test_unknown_sort_key(self):
        with pytest.raises(InvalidQueryError, match="Unknown sort key"):
            _query(sort_by="popularity")

    def test_limit_is_capped(self):
        assert _query(limit=10_000).limit == settings.search_max_results

    def test_zero_limit_rejected(self):
        with pytest.raises(InvalidQueryError):
            _query(limit=0)

    def test_blank_text_filter_is_dropped(self):
        assert _query(text="   ").filters.text is None

    def test_parse_category_passthrough(self):
        assert parse_category(ServiceCategory.MOVING) is ServiceCategory.MOVING


# ---------------------------------------------------------------------------
# Eligibility filters
# ---------------------------------------------------------------------------


class TestFilters:

    def _nearby(self, *providers):
        return [ProviderDistance(provider=p, distance_m=100.0) for p in providers]

    def test_suspended_always_excluded(self, sample_provider, suspended_provider):
        kept = apply_filters(
            self._nearby(sample_provider, suspended_provider), SearchFilters()
        )
        assert [pd.provider for pd in kept] == [sample_provider]

    def test_min_rating_treats_unrated_as_zero(self):
        unrated = make_provider()
        rated = make_provider(rating_average=4.2, rating_count=5)
        kept = apply_filters(self._nearby(unrated, rated), SearchFilters(min_rating=4.0))
        assert [pd.provider for pd in kept] == [rated]

    def test_price_range(self):
        cheap = make_provider(base_price_cents=500)
        mid = make_provider(base_price_cents=2000)
        dear = make_provider(base_price_cents=9000)
        kept = apply_filters(
            self._nearby(cheap, mid, dear),
            SearchFilters(min_price_cents=1000, max_price_cents=5000),
        )
        assert [pd.provider for pd in kept] == [mid]

    def test_available_now(self):
        busy = make_provider(is_available=False)
        free = make_provider()
        kept = apply_filters(self._nearby(busy, free), SearchFilters(available_now=True))
        assert [pd.provider for pd in kept] == [free]

    def test_verified_only(self):
        pending = make_provider(status=ProviderStatus.PENDING)
        verified = make_provider()
        kept = apply_filters(
            self._nearby(pending, verified), SearchFilters(verified_only=True)
        )
        assert [pd.provider for pd in kept] == [verified]

    def test_text_matches_business_name(self):
        plumber = make_provider(business_name="Kilimani Plumbing")
        other = make_provider(business_name="Westlands Fixers")
        kept = apply_filters(self._nearby(plumber, other), SearchFilters(text="plumb"))
        assert [pd.provider for pd in kept] == [plumber]


# ---------------------------------------------------------------------------
# Search pipeline
# ---------------------------------------------------------------------------


class TestSearchProviders:

    async def test_orders_and_truncates(self, mock_db):
        near = make_provider(business_name="near", longitude=36.8220, latitude=-1.2922)
        mid = make_provider(business_name="mid", longitude=36.8300, latitude=-1.2921)
        far = make_provider(business_name="far", longitude=36.8400, latitude=-1.2921)
        nearby = [
            ProviderDistance(provider=near, distance_m=15.0),
            ProviderDistance(provider=mid, distance_m=900.0),
            ProviderDistance(provider=far, distance_m=2000.0),
        ]
        with patch(
            "fundi.services.matchingEngine.locationIndex.find_within_radius",
            new_callable=AsyncMock,
            return_value=nearby,
        ):
            matches = await search_providers(mock_db, _query(limit=2))

        assert [m.provider.business_name for m in matches] == ["near", "mid"]
        assert all(m.distance_m <= 5000 for m in matches)

    async def test_empty_result(self, mock_db):
        with patch(
            "fundi.services.matchingEngine.locationIndex.find_within_radius",
            new_callable=AsyncMock,
            return_value=[],
        ):
            assert await search_providers(mock_db, _query()) == []

    async def test_availability_summary_counts(self, mock_db, suspended_provider):
        available = make_provider(rating_average=4.0, rating_count=2)
        busy = make_provider(is_available=False, status=ProviderStatus.PENDING)
        nearby = [
            ProviderDistance(provider=available, distance_m=10.0),
            ProviderDistance(provider=busy, distance_m=20.0),
            ProviderDistance(provider=suspended_provider, distance_m=30.0),
        ]
        with patch(
            "fundi.services.matchingEngine.locationIndex.find_within_radius",
            new_callable=AsyncMock,
            return_value=nearby,
        ):
            summary = await availability_summary(
                mock_db, NAIROBI_CBD, ServiceCategory.PLUMBING, 1000.0
            )

        assert summary.total_providers == 2
        assert summary.available_now == 1
        assert summary.verified == 1
        assert summary.average_rating == 4.0


# ---------------------------------------------------------------------------
# Booking eligibility
# ---------------------------------------------------------------------------


class TestCheckProviderEligible:

    def _result(self, provider):
        result = MagicMock()
        result.scalar_one_or_none.return_value = provider
        return result

    async def test_missing_provider(self, mock_db):
        mock_db.execute.return_value = self._result(None)
        with pytest.raises(NotFoundError):
            await check_provider_eligible(mock_db, uuid.uuid4(), ServiceCategory.PLUMBING)

    async def test_suspended_provider(self, mock_db, suspended_provider):
        mock_db.execute.return_value = self._result(suspended_provider)
        with pytest.raises(ProviderIneligibleError, match="suspended"):
            await check_provider_eligible(
                mock_db, suspended_provider.id, ServiceCategory.PLUMBING
            )

    async def test_category_not_offered(self, mock_db, sample_provider):
        mock_db.execute.return_value = self._result(sample_provider)
        with pytest.raises(ProviderIneligibleError, match="does not offer"):
            await check_provider_eligible(
                mock_db, sample_provider.id, ServiceCategory.MOVING
            )

    async def test_eligible(self, mock_db, sample_provider):
        mock_db.execute.return_value = self._result(sample_provider)
        provider = await check_provider_eligible(
            mock_db, sample_provider.id, ServiceCategory.PLUMBING
        )
        assert provider is sample_provider
