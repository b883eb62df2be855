"""
Domain entities for the analytics engine.

Records arrive from the ingestion layer already geo-resolved and with any
visitor identifier already anonymised; the engine never sees raw IPs.

Invariants:
- Records and sessions are immutable once built
- A session's page views keep their insertion (chronological) order
- ``Session.bounced`` is derived from the page view count, never stored
- All instants are compared in UTC; naive datetimes are read as UTC
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import UTC, datetime

__all__ = [
    "AggregatedBucket",
    "ConversionEvent",
    "Coordinates",
    "EventRecord",
    "GeoLocation",
    "Session",
    "TimeRange",
    "to_utc",
]


def to_utc(timestamp: datetime) -> datetime:
    """Normalise a datetime to an aware UTC datetime."""
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=UTC)
    return timestamp.astimezone(UTC)


# --- Geography ---


@dataclass(frozen=True)
class Coordinates:
    """A point in decimal degrees."""

    latitude: float
    longitude: float

    def is_valid(self) -> bool:
        """Latitude in [-90, 90] and longitude in [-180, 180], both finite."""
        if not (math.isfinite(self.latitude) and math.isfinite(self.longitude)):
            return False
        return -90 <= self.latitude <= 90 and -180 <= self.longitude <= 180


@dataclass(frozen=True)
class GeoLocation:
    """Resolved geographic attributes of a single record."""

    country: str | None = None
    country_code: str | None = None
    region: str | None = None
    city: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    timezone: str | None = None
    id: str | None = None

    @property
    def coordinates(self) -> Coordinates | None:
        """Coordinates when both latitude and longitude are present."""
        if self.latitude is None or self.longitude is None:
            return None
        return Coordinates(latitude=self.latitude, longitude=self.longitude)


# --- Events and Sessions ---


@dataclass(frozen=True)
class EventRecord:
    """A single pageview or custom event."""

    timestamp: datetime
    session_id: str
    path: str
    user_id: str | None = None
    referrer: str | None = None
    user_agent: str | None = None
    country: str | None = None
    country_code: str | None = None
    region: str | None = None
    city: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    timezone: str | None = None
    language: str | None = None
    duration: float | None = None  # seconds spent on this page
    exit_page: bool | None = None
    event_name: str | None = None  # set for custom events, None for pageviews

    def __post_init__(self) -> None:
        if self.duration is not None and self.duration < 0:
            msg = f"duration must be non-negative, got {self.duration}"
            raise ValueError(msg)
        object.__setattr__(self, "timestamp", to_utc(self.timestamp))

    def location(self) -> GeoLocation:
        """Geo attributes of this record."""
        return GeoLocation(
            country=self.country,
            country_code=self.country_code,
            region=self.region,
            city=self.city,
            latitude=self.latitude,
            longitude=self.longitude,
            timezone=self.timezone,
        )


@dataclass(frozen=True)
class Session:
    """A visit: the ordered page views sharing one session id."""

    id: str
    start_time: datetime
    page_views: tuple[EventRecord, ...] = ()
    user_id: str | None = None
    end_time: datetime | None = None  # None while the session is still open
    converted: bool | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "start_time", to_utc(self.start_time))
        if self.end_time is not None:
            object.__setattr__(self, "end_time", to_utc(self.end_time))
        object.__setattr__(self, "page_views", tuple(self.page_views))

    @property
    def bounced(self) -> bool:
        """A session with at most one page view is a bounce."""
        return len(self.page_views) <= 1

    @property
    def duration_seconds(self) -> float | None:
        """Elapsed seconds, or None for an open session."""
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()


@dataclass(frozen=True)
class ConversionEvent:
    """A goal completion attributed to a session."""

    session_id: str
    timestamp: datetime
    event_type: str
    value: float | None = None


# --- Aggregates ---


@dataclass(frozen=True)
class AggregatedBucket:
    """Counts for one time period."""

    period: str
    page_views: int = 0
    unique_visitors: int = 0
    sessions: int = 0

    def is_empty(self) -> bool:
        """True when every count is zero."""
        return self.page_views == 0 and self.unique_visitors == 0 and self.sessions == 0


@dataclass(frozen=True)
class TimeRange:
    """Inclusive time window ``start <= t <= end``."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        start = to_utc(self.start)
        end = to_utc(self.end)
        if start > end:
            msg = f"TimeRange start {start.isoformat()} is after end {end.isoformat()}"
            raise ValueError(msg)
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    def contains(self, timestamp: datetime) -> bool:
        """Check whether ``timestamp`` falls inside the window (both ends inclusive)."""
        return self.start <= to_utc(timestamp) <= self.end
