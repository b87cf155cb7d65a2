"""
Provider Ranking Algorithm
==========================

Orders search candidates by one of the client-selectable sort keys:

  - ``distance``      closest first
  - ``rating``        highest average first, ties by more ratings
  - ``price_low``     cheapest base price first
  - ``price_high``    most expensive base price first
  - ``availability``  available-now first, then closest
  - ``best_match``    weighted composite of rating, distance, review volume,
                      price and availability

Every key falls back to distance ascending and then provider id, so the
ordering is deterministic for identical inputs.

The ``best_match`` composite normalises each component to 0-100 and takes
the weighted sum (rating 0.4, distance 0.25, price 0.15, review volume 0.1,
availability 0.1). Price is scored against the cheapest and dearest
candidate in the same result set; review volume saturates at
``REVIEW_VOLUME_CAP`` ratings.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Callable


class SortKey(str, enum.Enum):
    DISTANCE = "distance"
    RATING = "rating"
    PRICE_LOW = "price_low"
    PRICE_HIGH = "price_high"
    AVAILABILITY = "availability"
    BEST_MATCH = "best_match"


# ---------------------------------------------------------------------------
# Composite weights (must sum to 1.0)
# ---------------------------------------------------------------------------

DEFAULT_WEIGHTS: dict[str, float] = {
    "rating": 0.4,
    "distance": 0.25,
    "price": 0.15,
    "reviews": 0.1,
    "availability": 0.1,
}

MAX_RATING: float = 5.0
REVIEW_VOLUME_CAP: int = 50


# ---------------------------------------------------------------------------
# Candidate data class
# ---------------------------------------------------------------------------

@dataclass
class RankingCandidate:
    """Input data for a single provider to be ranked."""

    provider: Any                   # The provider ORM object
    provider_id: Any                # Provider UUID
    distance_m: float               # Haversine distance from the search origin
    rating_average: float
    rating_count: int
    base_price_cents: int
    is_available: bool
    composite_score: float = 0.0


# ---------------------------------------------------------------------------
# Normalisation functions
# ---------------------------------------------------------------------------

def _normalise_rating(average: float) -> float:
    clamped = max(0.0, min(average, MAX_RATING))
    return (clamped / MAX_RATING) * 100.0


def _normalise_distance(distance_m: float, radius_m: float) -> float:
    """Closer is better: 0 m = 100, at the radius edge = 0."""
    if radius_m <= 0 or distance_m <= 0:
        return 100.0
    if distance_m >= radius_m:
        return 0.0
    return ((radius_m - distance_m) / radius_m) * 100.0


def _normalise_review_volume(count: int) -> float:
    return (min(max(count, 0), REVIEW_VOLUME_CAP) / REVIEW_VOLUME_CAP) * 100.0


def _normalise_price(price_cents: int, price_range: tuple[int, int] | None) -> float:
    """Cheapest in the set = 100, dearest = 0. A flat set scores 100."""
    if price_range is None:
        return 100.0
    low, high = price_range
    if high <= low:
        return 100.0
    clamped = max(low, min(price_cents, high))
    return ((high - clamped) / (high - low)) * 100.0


def composite_score(
    candidate: RankingCandidate,
    radius_m: float,
    weights: dict[str, float] | None = None,
    *,
    price_range: tuple[int, int] | None = None,
) -> float:
    w = weights or DEFAULT_WEIGHTS

    weight_sum = sum(w.values())
    if abs(weight_sum - 1.0) > 0.01:
        raise ValueError(
            f"Ranking weights must sum to 1.0, got {weight_sum:.4f}. "
            f"Weights: {w}"
        )

    score = (
        _normalise_rating(candidate.rating_average) * w.get("rating", 0.0)
        + _normalise_distance(candidate.distance_m, radius_m) * w.get("distance", 0.0)
        + _normalise_price(candidate.base_price_cents, price_range) * w.get("price", 0.0)
        + _normalise_review_volume(candidate.rating_count) * w.get("reviews", 0.0)
        + (100.0 if candidate.is_available else 0.0) * w.get("availability", 0.0)
    )
    return round(score, 2)


# ---------------------------------------------------------------------------
# Sort keys
# ---------------------------------------------------------------------------

def _tiebreak(c: RankingCandidate) -> tuple:
    return (c.distance_m, str(c.provider_id))


_SORT_KEYS: dict[SortKey, Callable[[RankingCandidate], tuple]] = {
    SortKey.DISTANCE: lambda c: _tiebreak(c),
    SortKey.RATING: lambda c: (-c.rating_average, -c.rating_count, *_tiebreak(c)),
    SortKey.PRICE_LOW: lambda c: (c.base_price_cents, *_tiebreak(c)),
    SortKey.PRICE_HIGH: lambda c: (-c.base_price_cents, *_tiebreak(c)),
    SortKey.AVAILABILITY: lambda c: (not c.is_available, *_tiebreak(c)),
    SortKey.BEST_MATCH: lambda c: (-c.composite_score, *_tiebreak(c)),
}


# ---------------------------------------------------------------------------
# Ranking function
# ---------------------------------------------------------------------------

def rank_providers(
    candidates: list[RankingCandidate],
    sort_by: SortKey = SortKey.DISTANCE,
    *,
    radius_m: float = 0.0,
    weights: dict[str, float] | None = None,
) -> list[RankingCandidate]:
    """Return ``candidates`` ordered by ``sort_by``.

    ``radius_m`` and ``weights`` only matter for ``best_match``, where the
    composite score is filled in on each candidate before sorting.
    """
    if sort_by == SortKey.BEST_MATCH and candidates:
        prices = [c.base_price_cents for c in candidates]
        price_range = (min(prices), max(prices))
        for candidate in candidates:
            candidate.composite_score = composite_score(
                candidate, radius_m, weights, price_range=price_range
            )

    return sorted(candidates, key=_SORT_KEYS[sort_by])
