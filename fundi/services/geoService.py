"""
Geo Service
===========

Geographic utility functions for distance calculations and radius filtering.
Used by the location index to filter and annotate providers by proximity.

Uses the haversine formula for great-circle distance between two points
on Earth's surface. Accurate enough for service radius calculations
(error < 0.5% for distances under 100 km).

Points are ``(longitude, latitude)`` in decimal degrees. Distances are in
metres.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Sequence

from fundi.core.exceptions import InvalidQueryError

# Earth's mean radius in metres
EARTH_RADIUS_M: float = 6371e3

# Metres spanned by one degree of latitude
_METRES_PER_DEGREE_LAT: float = math.pi * EARTH_RADIUS_M / 180.0


@dataclass(frozen=True)
class Point:
    """A validated WGS84 point."""

    longitude: float
    latitude: float

    @classmethod
    def parse(cls, longitude: Any, latitude: Any) -> "Point":
        """Build a point from untrusted input.

        Raises:
            InvalidQueryError: If either coordinate is not a finite number
                within range.
        """
        try:
            lon = float(longitude)
            lat = float(latitude)
        except (TypeError, ValueError):
            raise InvalidQueryError("Coordinates must be numbers.")
        if not (math.isfinite(lon) and math.isfinite(lat)):
            raise InvalidQueryError("Coordinates must be finite.")
        if not -180.0 <= lon <= 180.0:
            raise InvalidQueryError(f"Longitude {lon} is outside [-180, 180].")
        if not -90.0 <= lat <= 90.0:
            raise InvalidQueryError(f"Latitude {lat} is outside [-90, 90].")
        return cls(longitude=lon, latitude=lat)


def haversine_distance(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
) -> float:
    """Calculate the great-circle distance between two points using the
    haversine formula.

    Args:
        lat1: Latitude of point 1 in decimal degrees.
        lon1: Longitude of point 1 in decimal degrees.
        lat2: Latitude of point 2 in decimal degrees.
        lon2: Longitude of point 2 in decimal degrees.

    Returns:
        Distance in metres.
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2
    )
    # Rounding can push a fractionally above 1 for antipodal points
    a = min(1.0, a)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def distance_between(a: Point, b: Point) -> float:
    """Haversine distance in metres between two points."""
    return haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude)


@dataclass(frozen=True)
class BoundingBox:
    """Coarse lat/lng window used as an index-friendly SQL prefilter.

    ``min_lon``/``max_lon`` are ``None`` when the window would wrap the
    antimeridian or touch a pole; callers then skip the longitude bound.
    """

    min_lat: float
    max_lat: float
    min_lon: float | None
    max_lon: float | None


def bounding_box(center: Point, radius_m: float) -> BoundingBox:
    """Return a box guaranteed to contain every point within ``radius_m``."""
    delta_lat = radius_m / _METRES_PER_DEGREE_LAT
    min_lat = center.latitude - delta_lat
    max_lat = center.latitude + delta_lat

    if min_lat <= -90.0 or max_lat >= 90.0:
        return BoundingBox(max(min_lat, -90.0), min(max_lat, 90.0), None, None)

    # Widest longitude span occurs at the latitude farthest from the equator
    widest_lat = max(abs(min_lat), abs(max_lat))
    delta_lon = delta_lat / math.cos(math.radians(widest_lat))
    min_lon = center.longitude - delta_lon
    max_lon = center.longitude + delta_lon

    if delta_lon >= 180.0 or min_lon < -180.0 or max_lon > 180.0:
        return BoundingBox(min_lat, max_lat, None, None)

    return BoundingBox(min_lat, max_lat, min_lon, max_lon)


@dataclass
class ProviderDistance:
    """A provider paired with their calculated distance from a reference point."""

    provider: Any
    distance_m: float


def filter_by_radius(
    providers: Sequence[Any],
    center: Point,
    radius_m: float,
) -> list[ProviderDistance]:
    """Filter a list of providers to those within a given radius of a center
    point.

    Args:
        providers: Sequence of provider objects with ``latitude`` and
            ``longitude`` attributes.
        center: The search origin.
        radius_m: Radius in metres (inclusive).

    Returns:
        List of ProviderDistance objects sorted by distance (closest first).
    """
    results: list[ProviderDistance] = []

    for provider in providers:
        # Skip providers without location data
        if provider.latitude is None or provider.longitude is None:
            continue

        distance = haversine_distance(
            center.latitude,
            center.longitude,
            float(provider.latitude),
            float(provider.longitude),
        )

        if distance <= radius_m:
            results.append(ProviderDistance(provider=provider, distance_m=distance))

    results.sort(key=lambda pd: (pd.distance_m, str(pd.provider.id)))

    return results
