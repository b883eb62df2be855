"""
AnalyticsGeoService - Geographic aggregation.

Works on already-resolved geo attributes; IP lookup happens upstream.

Key behaviors:
- Country, region and city breakdowns ranked by page views
- Rows without a region (or city) are left out of that breakdown
- Great-circle distance via the Haversine formula
- Greedy single-pass clustering of nearby points
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from analytics_engine.core.entities import Coordinates, GeoLocation
from analytics_engine.core.rounding import percentage, round_half_up

UNKNOWN_COUNTRY = "Unknown"
DEFAULT_TIMEZONE = "UTC"


# --- Configuration ---


@dataclass(frozen=True)
class GeoConfig:
    """Geographic aggregation configuration."""

    earth_radius_km: float = 6371.0
    unknown_country_label: str = UNKNOWN_COUNTRY
    default_timezone: str = DEFAULT_TIMEZONE


DEFAULT_CONFIG = GeoConfig()


# --- Data Models ---


@dataclass(frozen=True)
class GeoAnalytics:
    """Traffic for one location."""

    location: str
    visitors: int
    page_views: int
    sessions: int


@dataclass(frozen=True)
class Bounds:
    """Bounding box in decimal degrees."""

    north: float
    south: float
    east: float
    west: float


@dataclass(frozen=True)
class LocationCluster:
    """
    A seed location and everything absorbed into its cluster.

    ``id`` is the anchor's id, or ``cluster-<n>`` (creation order) when the
    anchor has none.
    """

    id: str
    anchor: GeoLocation
    members: tuple[GeoLocation, ...]


# --- Aggregation ---


def _aggregate(
    locations: Iterable[GeoLocation],
    key_for: Callable[[GeoLocation], str | None],
) -> list[GeoAnalytics]:
    """
    Group locations by key.

    Each input row stands for one pageview with its own synthetic visitor
    and session identity, so visitors and sessions count rows.
    """
    visitors: dict[str, set[str]] = {}
    sessions: dict[str, set[str]] = {}
    page_views: dict[str, int] = {}

    for index, location in enumerate(locations):
        key = key_for(location)
        if key is None:
            continue
        visitors.setdefault(key, set()).add(f"visitor-{index}")
        sessions.setdefault(key, set()).add(f"session-{index}")
        page_views[key] = page_views.get(key, 0) + 1

    results = [
        GeoAnalytics(
            location=key,
            visitors=len(visitors[key]),
            page_views=count,
            sessions=len(sessions[key]),
        )
        for key, count in page_views.items()
    ]
    return sorted(results, key=lambda item: item.page_views, reverse=True)


def aggregate_by_country(
    locations: Iterable[GeoLocation],
    config: GeoConfig = DEFAULT_CONFIG,
) -> list[GeoAnalytics]:
    """Traffic per country; missing countries count as Unknown."""
    return _aggregate(locations, lambda loc: loc.country or config.unknown_country_label)


def aggregate_by_region(
    locations: Iterable[GeoLocation],
    config: GeoConfig = DEFAULT_CONFIG,
) -> list[GeoAnalytics]:
    """Traffic per ``"{country} - {region}"``; rows without a region are skipped."""
    return _aggregate(
        locations,
        lambda loc: (
            f"{loc.country or config.unknown_country_label} - {loc.region}" if loc.region else None
        ),
    )


def aggregate_by_city(
    locations: Iterable[GeoLocation],
    config: GeoConfig = DEFAULT_CONFIG,
) -> list[GeoAnalytics]:
    """Traffic per ``"{city}, {country}"``; rows without a city are skipped."""
    return _aggregate(
        locations,
        lambda loc: (
            f"{loc.city}, {loc.country or config.unknown_country_label}" if loc.city else None
        ),
    )


def country_distribution(
    locations: Sequence[GeoLocation],
    config: GeoConfig = DEFAULT_CONFIG,
) -> dict[str, float]:
    """Percentage of rows per country, one decimal."""
    counts: dict[str, int] = {}
    for location in locations:
        country = location.country or config.unknown_country_label
        counts[country] = counts.get(country, 0) + 1

    total = len(locations)
    return {country: percentage(count, total) for country, count in counts.items()}


def top_countries(
    locations: Iterable[GeoLocation],
    limit: int,
    config: GeoConfig = DEFAULT_CONFIG,
) -> list[GeoAnalytics]:
    """The ``limit`` countries with the most page views."""
    if limit < 0:
        msg = f"limit must be non-negative, got {limit}"
        raise ValueError(msg)
    return aggregate_by_country(locations, config)[:limit]


def filter_by_country_code(
    locations: Iterable[GeoLocation],
    country_code: str,
) -> list[GeoLocation]:
    return [loc for loc in locations if loc.country_code == country_code]


def get_timezone(location: GeoLocation, config: GeoConfig = DEFAULT_CONFIG) -> str:
    return location.timezone or config.default_timezone


# --- Coordinates ---


def is_valid_coordinates(latitude: float, longitude: float) -> bool:
    """Latitude in [-90, 90], longitude in [-180, 180], inclusive."""
    return Coordinates(latitude=latitude, longitude=longitude).is_valid()


def is_within_bounds(point: Coordinates, bounds: Bounds) -> bool:
    """Check whether ``point`` lies inside ``bounds`` (edges included)."""
    return (
        bounds.south <= point.latitude <= bounds.north
        and bounds.west <= point.longitude <= bounds.east
    )


def calculate_distance(
    a: Coordinates,
    b: Coordinates,
    config: GeoConfig = DEFAULT_CONFIG,
) -> float:
    """
    Great-circle distance in kilometres, one decimal.

    Raises ValueError if either point is outside the valid coordinate range.
    """
    for point in (a, b):
        if not point.is_valid():
            msg = f"Invalid coordinates: ({point.latitude}, {point.longitude})"
            raise ValueError(msg)

    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    delta_lat = math.radians(b.latitude - a.latitude)
    delta_lon = math.radians(b.longitude - a.longitude)

    h = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return round_half_up(config.earth_radius_km * c)


def group_nearby_locations(
    locations: Sequence[GeoLocation],
    max_distance_km: float,
    config: GeoConfig = DEFAULT_CONFIG,
) -> list[LocationCluster]:
    """
    Greedy single-pass clustering.

    Each unprocessed location with coordinates seeds a cluster and absorbs
    every later-unprocessed location within ``max_distance_km`` of the seed.
    Locations without coordinates, or with out-of-range ones, are skipped
    entirely.
    """
    if max_distance_km < 0:
        msg = f"max_distance_km must be non-negative, got {max_distance_km}"
        raise ValueError(msg)

    processed: set[int] = set()
    clusters: list[LocationCluster] = []

    for i, seed in enumerate(locations):
        seed_point = seed.coordinates
        if i in processed or seed_point is None or not seed_point.is_valid():
            continue

        processed.add(i)
        members = [seed]

        for j, other in enumerate(locations):
            other_point = other.coordinates
            if j in processed or other_point is None or not other_point.is_valid():
                continue
            if calculate_distance(seed_point, other_point, config) <= max_distance_km:
                members.append(other)
                processed.add(j)

        cluster_id = seed.id or f"cluster-{len(clusters)}"
        clusters.append(LocationCluster(id=cluster_id, anchor=seed, members=tuple(members)))

    return clusters


# --- Geo Service ---


class GeoService:
    """Geographic aggregation service."""

    def __init__(self, config: GeoConfig | None = None) -> None:
        """Initialize service."""
        self._config = config or DEFAULT_CONFIG

    def by_country(self, locations: Iterable[GeoLocation]) -> list[GeoAnalytics]:
        return aggregate_by_country(locations, self._config)

    def by_region(self, locations: Iterable[GeoLocation]) -> list[GeoAnalytics]:
        return aggregate_by_region(locations, self._config)

    def by_city(self, locations: Iterable[GeoLocation]) -> list[GeoAnalytics]:
        return aggregate_by_city(locations, self._config)

    def country_distribution(self, locations: Sequence[GeoLocation]) -> dict[str, float]:
        return country_distribution(locations, self._config)

    def top_countries(self, locations: Iterable[GeoLocation], limit: int) -> list[GeoAnalytics]:
        return top_countries(locations, limit, self._config)

    def distance(self, a: Coordinates, b: Coordinates) -> float:
        return calculate_distance(a, b, self._config)

    def cluster(
        self,
        locations: Sequence[GeoLocation],
        max_distance_km: float,
    ) -> list[LocationCluster]:
        return group_nearby_locations(locations, max_distance_km, self._config)


# --- Factory ---


def create_geo_service(config: GeoConfig | None = None) -> GeoService:
    """Create a GeoService."""
    return GeoService(config=config)
