"""
AnalyticsAggregateService - Time-period bucketing.

Buckets event records into fixed calendar periods or custom minute windows
for charting.

Key behaviors:
- Bucket events into hour/day/week/month/year periods or custom windows
- Period keys are UTC instants formatted ``YYYY-MM-DDTHH:MM:SSZ``, so keys
  of one granularity sort lexicographically in chronological order
- Weeks start on Sunday by default; Monday is configurable
- Optional inclusive time-range filter
- Gap filling, merging, rolling averages, growth rates and top periods
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum

from analytics_engine.core.entities import AggregatedBucket, EventRecord, TimeRange, to_utc
from analytics_engine.core.rounding import round_half_up

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
PERIOD_KEY_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
_ONE_MS = timedelta(milliseconds=1)


# --- Enums ---


class BucketType(str, Enum):
    """Time bucket types."""

    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    CUSTOM = "custom"  # fixed window of ``window_minutes``


class WeekStart(str, Enum):
    """First day of a week bucket."""

    SUNDAY = "sunday"
    MONDAY = "monday"


class Metric(str, Enum):
    """Bucket field used by rolling averages."""

    PAGE_VIEWS = "page_views"
    UNIQUE_VISITORS = "unique_visitors"
    SESSIONS = "sessions"


# --- Configuration ---


@dataclass(frozen=True)
class AggregateConfig:
    """Aggregate configuration."""

    week_start: WeekStart = WeekStart.SUNDAY
    default_bucket_type: BucketType = BucketType.DAY
    top_periods_limit: int = 10


DEFAULT_CONFIG = AggregateConfig()


# --- Data Models ---


@dataclass(frozen=True)
class RollingPoint:
    """A bucket value alongside its trailing average."""

    period: str
    value: int
    rolling_avg: float


@dataclass(frozen=True)
class SeriesPoint:
    """A raw (timestamp, value) sample."""

    timestamp: datetime
    value: float


# --- Bucket Calculation ---


def _window(window_minutes: int | None) -> timedelta:
    if window_minutes is None:
        msg = "window_minutes is required for custom buckets"
        raise ValueError(msg)
    if window_minutes <= 0:
        msg = f"Window size must be positive, got {window_minutes}"
        raise ValueError(msg)
    return timedelta(minutes=window_minutes)


def _floor_to_window(timestamp: datetime, window: timedelta) -> datetime:
    elapsed_ms = (timestamp - EPOCH) // _ONE_MS
    window_ms = window // _ONE_MS
    return EPOCH + timedelta(milliseconds=(elapsed_ms // window_ms) * window_ms)


def calculate_bucket_start(
    timestamp: datetime,
    bucket_type: BucketType,
    *,
    window_minutes: int | None = None,
    week_start: WeekStart = WeekStart.SUNDAY,
) -> datetime:
    """
    Calculate the start of a time bucket for a given timestamp.

    All timestamps are normalized to UTC.
    """
    ts = to_utc(timestamp)
    midnight = ts.replace(hour=0, minute=0, second=0, microsecond=0)

    if bucket_type == BucketType.HOUR:
        return ts.replace(minute=0, second=0, microsecond=0)
    elif bucket_type == BucketType.DAY:
        return midnight
    elif bucket_type == BucketType.WEEK:
        # weekday(): Monday=0 .. Sunday=6
        if week_start == WeekStart.SUNDAY:
            days_back = (ts.weekday() + 1) % 7
        else:
            days_back = ts.weekday()
        return midnight - timedelta(days=days_back)
    elif bucket_type == BucketType.MONTH:
        return midnight.replace(day=1)
    elif bucket_type == BucketType.YEAR:
        return midnight.replace(month=1, day=1)
    elif bucket_type == BucketType.CUSTOM:
        return _floor_to_window(ts, _window(window_minutes))
    else:
        msg = f"Unknown bucket type: {bucket_type}"
        raise ValueError(msg)


def calculate_bucket_end(
    bucket_start: datetime,
    bucket_type: BucketType,
    *,
    window_minutes: int | None = None,
) -> datetime:
    """Calculate the end of a time bucket (exclusive)."""
    if bucket_type == BucketType.HOUR:
        return bucket_start + timedelta(hours=1)
    elif bucket_type == BucketType.DAY:
        return bucket_start + timedelta(days=1)
    elif bucket_type == BucketType.WEEK:
        return bucket_start + timedelta(weeks=1)
    elif bucket_type == BucketType.MONTH:
        if bucket_start.month == 12:
            return bucket_start.replace(year=bucket_start.year + 1, month=1)
        return bucket_start.replace(month=bucket_start.month + 1)
    elif bucket_type == BucketType.YEAR:
        return bucket_start.replace(year=bucket_start.year + 1)
    elif bucket_type == BucketType.CUSTOM:
        return bucket_start + _window(window_minutes)
    else:
        msg = f"Unknown bucket type: {bucket_type}"
        raise ValueError(msg)


def format_period_key(bucket_start: datetime) -> str:
    """Canonical period key for a bucket start."""
    return to_utc(bucket_start).strftime(PERIOD_KEY_FORMAT)


def parse_period_key(period: str) -> datetime:
    """Inverse of :func:`format_period_key`."""
    return datetime.strptime(period, PERIOD_KEY_FORMAT).replace(tzinfo=UTC)


def iso_week_key(timestamp: datetime) -> str:
    """ISO-8601 week label such as ``2024-W01`` (Monday weeks, ISO year)."""
    year, week, _ = to_utc(timestamp).isocalendar()
    return f"{year}-W{week:02d}"


# --- Aggregation ---


def aggregate_events(
    events: Iterable[EventRecord],
    bucket_type: BucketType,
    time_range: TimeRange | None = None,
    *,
    window_minutes: int | None = None,
    config: AggregateConfig = DEFAULT_CONFIG,
) -> list[AggregatedBucket]:
    """
    Aggregate events into buckets, sorted ascending by period.

    When ``time_range`` is given only events with
    ``start <= timestamp <= end`` are counted.
    """
    if bucket_type == BucketType.CUSTOM:
        _window(window_minutes)

    page_views: dict[str, int] = {}
    visitors: dict[str, set[str]] = {}
    sessions: dict[str, set[str]] = {}

    for event in events:
        if time_range is not None and not time_range.contains(event.timestamp):
            continue

        key = format_period_key(
            calculate_bucket_start(
                event.timestamp,
                bucket_type,
                window_minutes=window_minutes,
                week_start=config.week_start,
            )
        )

        page_views[key] = page_views.get(key, 0) + 1
        visitors.setdefault(key, set())
        sessions.setdefault(key, set()).add(event.session_id)
        if event.user_id:
            visitors[key].add(event.user_id)

    return [
        AggregatedBucket(
            period=key,
            page_views=page_views[key],
            unique_visitors=len(visitors[key]),
            sessions=len(sessions[key]),
        )
        for key in sorted(page_views)
    ]


def fill_missing_periods(
    buckets: Sequence[AggregatedBucket],
    bucket_type: BucketType,
    time_range: TimeRange,
    *,
    window_minutes: int | None = None,
    config: AggregateConfig = DEFAULT_CONFIG,
) -> list[AggregatedBucket]:
    """
    Insert zero-valued buckets for every period in ``time_range`` that has
    no bucket yet.

    Existing buckets are kept unchanged, including any outside the range.
    """
    if time_range is None:
        msg = "fill_missing_periods requires a time range"
        raise ValueError(msg)

    by_period = {bucket.period: bucket for bucket in buckets}
    filled = dict(by_period)

    current = calculate_bucket_start(
        time_range.start,
        bucket_type,
        window_minutes=window_minutes,
        week_start=config.week_start,
    )
    while current <= time_range.end:
        key = format_period_key(current)
        if key not in filled:
            filled[key] = AggregatedBucket(period=key)
        current = calculate_bucket_end(current, bucket_type, window_minutes=window_minutes)

    return [filled[key] for key in sorted(filled)]


def merge_buckets(datasets: Iterable[Sequence[AggregatedBucket]]) -> list[AggregatedBucket]:
    """Sum buckets sharing a period across datasets; union the rest."""
    merged: dict[str, AggregatedBucket] = {}

    for dataset in datasets:
        for bucket in dataset:
            existing = merged.get(bucket.period)
            if existing is None:
                merged[bucket.period] = bucket
                continue
            merged[bucket.period] = AggregatedBucket(
                period=bucket.period,
                page_views=existing.page_views + bucket.page_views,
                unique_visitors=existing.unique_visitors + bucket.unique_visitors,
                sessions=existing.sessions + bucket.sessions,
            )

    return [merged[key] for key in sorted(merged)]


def rolling_average(
    buckets: Sequence[AggregatedBucket],
    window_size: int,
    metric: Metric | str = Metric.PAGE_VIEWS,
) -> list[RollingPoint]:
    """
    Trailing average of ``metric`` over up to ``window_size`` buckets.

    Near the start the window is shorter. Averages round to one decimal.
    """
    if window_size <= 0:
        msg = f"Window size must be positive, got {window_size}"
        raise ValueError(msg)

    field_name = Metric(metric).value
    values = [getattr(bucket, field_name) for bucket in buckets]

    points = []
    for index, bucket in enumerate(buckets):
        window = values[max(0, index - window_size + 1) : index + 1]
        points.append(
            RollingPoint(
                period=bucket.period,
                value=values[index],
                rolling_avg=round_half_up(sum(window) / len(window)),
            )
        )
    return points


def growth_rate(current: float, previous: float) -> float:
    """
    Percentage change from ``previous`` to ``current``, one decimal.

    Growth from zero is reported as 100 (or 0 when still zero).
    """
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round_half_up((current - previous) / previous * 100)


def growth_between(current: AggregatedBucket, previous: AggregatedBucket) -> float:
    """Growth rate of page views between two buckets."""
    return growth_rate(current.page_views, previous.page_views)


def top_periods(buckets: Sequence[AggregatedBucket], limit: int = 10) -> list[AggregatedBucket]:
    """Busiest buckets by page views."""
    if limit < 0:
        msg = f"limit must be non-negative, got {limit}"
        raise ValueError(msg)
    return sorted(buckets, key=lambda bucket: bucket.page_views, reverse=True)[:limit]


# --- Raw Series Helpers ---


def group_by_time_bucket(
    events: Iterable[EventRecord],
    bucket_ms: int,
) -> dict[int, list[EventRecord]]:
    """Group events by ``floor(epoch_ms / bucket_ms) * bucket_ms``."""
    if bucket_ms <= 0:
        msg = f"bucket_ms must be positive, got {bucket_ms}"
        raise ValueError(msg)

    groups: dict[int, list[EventRecord]] = {}
    for event in events:
        elapsed_ms = (event.timestamp - EPOCH) // _ONE_MS
        groups.setdefault((elapsed_ms // bucket_ms) * bucket_ms, []).append(event)
    return groups


def resample_series(points: Iterable[SeriesPoint], interval_minutes: int) -> list[SeriesPoint]:
    """Average samples falling in the same fixed window."""
    window = _window(interval_minutes)

    grouped: dict[datetime, list[float]] = {}
    for point in points:
        start = _floor_to_window(to_utc(point.timestamp), window)
        grouped.setdefault(start, []).append(point.value)

    return [
        SeriesPoint(timestamp=start, value=sum(values) / len(values))
        for start, values in sorted(grouped.items())
    ]


def fill_series_gaps(points: Sequence[SeriesPoint], interval_minutes: int) -> list[SeriesPoint]:
    """
    Insert zero samples where consecutive points are more than one interval
    apart.
    """
    interval = _window(interval_minutes)
    if not points:
        return []

    result: list[SeriesPoint] = []
    for current, following in zip(points, points[1:]):
        result.append(current)
        gap = following.timestamp - current.timestamp
        if gap > interval:
            for step in range(1, gap // interval):
                result.append(SeriesPoint(timestamp=current.timestamp + step * interval, value=0))
    result.append(points[-1])
    return result


# --- Aggregate Service ---


class AggregateService:
    """
    Analytics aggregate service.

    Binds the week-start convention and defaults to the bucketing functions.
    """

    def __init__(self, config: AggregateConfig | None = None) -> None:
        """Initialize service."""
        self._config = config or DEFAULT_CONFIG

    @property
    def config(self) -> AggregateConfig:
        return self._config

    def aggregate(
        self,
        events: Iterable[EventRecord],
        bucket_type: BucketType | None = None,
        time_range: TimeRange | None = None,
        *,
        window_minutes: int | None = None,
    ) -> list[AggregatedBucket]:
        """Bucket events, using the configured default granularity if none given."""
        return aggregate_events(
            events,
            bucket_type or self._config.default_bucket_type,
            time_range,
            window_minutes=window_minutes,
            config=self._config,
        )

    def fill_missing_periods(
        self,
        buckets: Sequence[AggregatedBucket],
        bucket_type: BucketType,
        time_range: TimeRange,
        *,
        window_minutes: int | None = None,
    ) -> list[AggregatedBucket]:
        return fill_missing_periods(
            buckets,
            bucket_type,
            time_range,
            window_minutes=window_minutes,
            config=self._config,
        )

    def merge(self, datasets: Iterable[Sequence[AggregatedBucket]]) -> list[AggregatedBucket]:
        return merge_buckets(datasets)

    def rolling_average(
        self,
        buckets: Sequence[AggregatedBucket],
        window_size: int,
        metric: Metric | str = Metric.PAGE_VIEWS,
    ) -> list[RollingPoint]:
        return rolling_average(buckets, window_size, metric)

    def top_periods(
        self,
        buckets: Sequence[AggregatedBucket],
        limit: int | None = None,
    ) -> list[AggregatedBucket]:
        return top_periods(buckets, self._config.top_periods_limit if limit is None else limit)


# --- Factory ---


def create_aggregate_service(config: AggregateConfig | None = None) -> AggregateService:
    """Create an AggregateService."""
    return AggregateService(config=config)
