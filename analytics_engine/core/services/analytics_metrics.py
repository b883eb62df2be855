"""
AnalyticsMetricsService - Session and pageview metrics.

Pure statistics over sessions, pageviews and conversion events for the
dashboard summary.

Key behaviors:
- Percentages round half-up to one decimal; durations to whole seconds
- Session durations only consider sessions with an end time; open sessions
  are left out of numerator and denominator
- Percentile uses linear interpolation between closest ranks (R-7)
- Empty inputs give zero results; contract violations raise ValueError
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from analytics_engine.core.entities import ConversionEvent, EventRecord, Session
from analytics_engine.core.rounding import percentage, round_half_up, round_seconds
from analytics_engine.core.services.analytics_aggregate import growth_rate

# --- Enums ---


class Trend(str, Enum):
    """Direction of change between two periods."""

    UP = "up"
    DOWN = "down"
    FLAT = "flat"


# --- Configuration ---


@dataclass(frozen=True)
class EngagementWeights:
    """Points awarded towards the 0-100 engagement score."""

    points_per_page_view: float = 5
    page_view_cap: float = 30
    points_per_minute: float = 4
    duration_cap: float = 40
    conversion_points: float = 30
    max_score: int = 100


@dataclass(frozen=True)
class MetricsConfig:
    """Metrics configuration."""

    anomaly_threshold: float = 2.0
    trending_min_growth: float = 50.0
    engagement: EngagementWeights = field(default_factory=EngagementWeights)

    # (label, exclusive upper bound in seconds); longer sessions fall in the
    # overflow label
    duration_buckets: tuple[tuple[str, float], ...] = (
        ("0-30s", 30),
        ("30s-1m", 60),
        ("1m-3m", 180),
        ("3m-10m", 600),
    )
    duration_overflow_label: str = "10m+"


DEFAULT_CONFIG = MetricsConfig()


# --- Data Models ---


@dataclass(frozen=True)
class MetricsSummary:
    """Headline metrics for a set of pageviews and sessions."""

    total_page_views: int
    unique_visitors: int
    total_sessions: int
    bounce_rate: float
    avg_session_duration: int
    median_session_duration: int
    avg_page_views_per_session: float
    return_visitor_rate: float
    session_quality: float
    conversion_rate: float | None = None


@dataclass(frozen=True)
class PerformanceMetrics:
    """Mean and percentiles of a measured value."""

    metric: str
    value: float
    p50: float
    p75: float
    p95: float


@dataclass(frozen=True)
class TimeMetrics:
    """Time-on-page figures in whole seconds."""

    avg_time_on_page: int
    median_time_on_page: int
    total_time_on_site: int


@dataclass(frozen=True)
class TrendingPage:
    """A page whose views grew between two periods."""

    path: str
    current: int
    previous: int
    growth: int


@dataclass(frozen=True)
class VisitorRatio:
    """Distinct visitors with one session versus several."""

    new: int
    returning: int


@dataclass(frozen=True)
class Comparison:
    """Change of a figure against the previous period."""

    change: float
    change_percent: float
    trend: Trend


@dataclass(frozen=True)
class AnomalyReport:
    """Anomalous values alongside the series mean and deviation."""

    anomalies: tuple[float, ...]
    mean: float
    std_dev: float


# --- Session Metrics ---


def _closed_durations(sessions: Iterable[Session]) -> list[float]:
    return [s.duration_seconds for s in sessions if s.duration_seconds is not None]


def _median(values: Sequence[float]) -> float:
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2
    return ordered[mid]


def bounce_rate(sessions: Sequence[Session]) -> float:
    """Percentage of sessions with at most one page view."""
    bounced = sum(1 for session in sessions if session.bounced)
    return percentage(bounced, len(sessions))


def avg_session_duration(sessions: Iterable[Session]) -> int:
    """Mean duration of closed sessions, whole seconds."""
    durations = _closed_durations(sessions)
    if not durations:
        return 0
    return round_seconds(sum(durations) / len(durations))


def median_session_duration(sessions: Iterable[Session]) -> int:
    """Median duration of closed sessions, whole seconds."""
    durations = _closed_durations(sessions)
    if not durations:
        return 0
    return round_seconds(_median(durations))


def avg_page_views_per_session(sessions: Sequence[Session]) -> float:
    if not sessions:
        return 0.0
    total = sum(len(session.page_views) for session in sessions)
    return round_half_up(total / len(sessions))


def conversion_rate(
    sessions: Sequence[Session],
    conversions: Iterable[ConversionEvent],
) -> float:
    """Percentage of sessions that appear in ``conversions``."""
    converted_ids = {conversion.session_id for conversion in conversions}
    converted = sum(1 for session in sessions if session.id in converted_ids)
    return percentage(converted, len(sessions))


def _sessions_per_user(sessions: Iterable[Session]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for session in sessions:
        if session.user_id:
            counts[session.user_id] = counts.get(session.user_id, 0) + 1
    return counts


def return_visitor_rate(sessions: Iterable[Session]) -> float:
    """Percentage of distinct visitors with more than one session."""
    per_user = _sessions_per_user(sessions)
    returning = sum(1 for count in per_user.values() if count > 1)
    return percentage(returning, len(per_user))


def visitor_ratio(sessions: Iterable[Session]) -> VisitorRatio:
    """Count new (single-session) and returning visitors."""
    per_user = _sessions_per_user(sessions)
    returning = sum(1 for count in per_user.values() if count > 1)
    return VisitorRatio(new=len(per_user) - returning, returning=returning)


def engagement_score(session: Session, config: MetricsConfig = DEFAULT_CONFIG) -> int:
    """
    Score a session from 0 to 100.

    Page views, time spent and conversion each contribute capped points.
    Open sessions earn no duration points.
    """
    weights = config.engagement
    score = min(len(session.page_views) * weights.points_per_page_view, weights.page_view_cap)

    duration = session.duration_seconds
    if duration is not None:
        score += min(duration / 60 * weights.points_per_minute, weights.duration_cap)

    if session.converted:
        score += weights.conversion_points

    return min(int(round_half_up(score, 0)), weights.max_score)


def session_quality(sessions: Sequence[Session], config: MetricsConfig = DEFAULT_CONFIG) -> float:
    """Mean engagement score."""
    if not sessions:
        return 0.0
    total = sum(engagement_score(session, config) for session in sessions)
    return round_half_up(total / len(sessions))


def pages_per_session_distribution(sessions: Iterable[Session]) -> dict[int, int]:
    """Number of sessions per page-view count."""
    distribution: dict[int, int] = {}
    for session in sessions:
        count = len(session.page_views)
        distribution[count] = distribution.get(count, 0) + 1
    return dict(sorted(distribution.items()))


def duration_buckets(
    sessions: Iterable[Session],
    config: MetricsConfig = DEFAULT_CONFIG,
) -> dict[str, int]:
    """Closed sessions counted per duration band."""
    buckets = {label: 0 for label, _ in config.duration_buckets}
    buckets[config.duration_overflow_label] = 0

    for duration in _closed_durations(sessions):
        for label, upper in config.duration_buckets:
            if duration < upper:
                buckets[label] += 1
                break
        else:
            buckets[config.duration_overflow_label] += 1

    return buckets


# --- Pageview Metrics ---


def unique_visitors(page_views: Iterable[EventRecord]) -> int:
    """Distinct non-empty visitor ids."""
    return len({pv.user_id for pv in page_views if pv.user_id})


def exit_rate(page_views: Iterable[EventRecord], path: str) -> float:
    """Percentage of views of ``path`` that ended the session."""
    for_path = [pv for pv in page_views if pv.path == path]
    exits = sum(1 for pv in for_path if pv.exit_page)
    return percentage(exits, len(for_path))


def avg_time_on_page(page_views: Iterable[EventRecord]) -> int:
    """Mean duration of pageviews that carry one, whole seconds."""
    return time_metrics(page_views).avg_time_on_page


def time_metrics(page_views: Iterable[EventRecord]) -> TimeMetrics:
    durations = [pv.duration for pv in page_views if pv.duration is not None]
    if not durations:
        return TimeMetrics(avg_time_on_page=0, median_time_on_page=0, total_time_on_site=0)

    total = sum(durations)
    return TimeMetrics(
        avg_time_on_page=round_seconds(total / len(durations)),
        median_time_on_page=round_seconds(_median(durations)),
        total_time_on_site=round_seconds(total),
    )


def trending_pages(
    current: Iterable[EventRecord],
    previous: Iterable[EventRecord],
    min_growth: float | None = None,
    config: MetricsConfig = DEFAULT_CONFIG,
) -> list[TrendingPage]:
    """
    Pages whose view count grew by at least ``min_growth`` percent.

    Pages new in the current period count as 100% growth and are always
    included. Sorted by growth, largest first.
    """
    threshold = config.trending_min_growth if min_growth is None else min_growth

    current_counts: dict[str, int] = {}
    for pv in current:
        current_counts[pv.path] = current_counts.get(pv.path, 0) + 1
    previous_counts: dict[str, int] = {}
    for pv in previous:
        previous_counts[pv.path] = previous_counts.get(pv.path, 0) + 1

    trending = []
    for path, count in current_counts.items():
        before = previous_counts.get(path, 0)
        if before == 0:
            trending.append(TrendingPage(path=path, current=count, previous=0, growth=100))
            continue
        growth = int(round_half_up((count - before) / before * 100, 0))
        if growth >= threshold:
            trending.append(TrendingPage(path=path, current=count, previous=before, growth=growth))

    return sorted(trending, key=lambda page: page.growth, reverse=True)


# --- Statistics ---


def percentile(values: Sequence[float], p: float) -> float:
    """
    Linear-interpolation percentile, one decimal.

    Raises ValueError if ``p`` is outside [0, 100]. Empty input gives 0.
    """
    if not 0 <= p <= 100:
        msg = f"Percentile must be between 0 and 100, got {p}"
        raise ValueError(msg)
    if not values:
        return 0.0

    ordered = sorted(values)
    index = p / 100 * (len(ordered) - 1)
    lower = math.floor(index)
    upper = math.ceil(index)
    weight = index - lower

    return round_half_up(ordered[lower] * (1 - weight) + ordered[upper] * weight)


def performance_metrics(values: Sequence[float], metric: str) -> PerformanceMetrics:
    mean = round_half_up(sum(values) / len(values)) if values else 0.0
    return PerformanceMetrics(
        metric=metric,
        value=mean,
        p50=percentile(values, 50),
        p75=percentile(values, 75),
        p95=percentile(values, 95),
    )


def compare(current: float, previous: float) -> Comparison:
    """Absolute and relative change with its direction."""
    change = current - previous
    if change > 0:
        trend = Trend.UP
    elif change < 0:
        trend = Trend.DOWN
    else:
        trend = Trend.FLAT
    return Comparison(change=change, change_percent=growth_rate(current, previous), trend=trend)


def detect_anomalies(
    values: Sequence[float],
    threshold: float | None = None,
    config: MetricsConfig = DEFAULT_CONFIG,
) -> AnomalyReport:
    """
    Flag values more than ``threshold`` deviations from the mean.

    Uses the population standard deviation, floored at 1 so a flat series
    never divides by zero. Anomalies keep input order.
    """
    limit = config.anomaly_threshold if threshold is None else threshold
    if limit < 0:
        msg = f"Anomaly threshold must be non-negative, got {limit}"
        raise ValueError(msg)
    if not values:
        return AnomalyReport(anomalies=(), mean=0.0, std_dev=0.0)

    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    std_dev = math.sqrt(variance)
    divisor = max(std_dev, 1)

    return AnomalyReport(
        anomalies=tuple(v for v in values if abs(v - mean) / divisor > limit),
        mean=round_half_up(mean),
        std_dev=round_half_up(std_dev),
    )


def calculate_summary(
    page_views: Sequence[EventRecord],
    sessions: Sequence[Session],
    conversions: Iterable[ConversionEvent] | None = None,
    config: MetricsConfig = DEFAULT_CONFIG,
) -> MetricsSummary:
    """Headline metrics; conversion rate only when conversions are supplied."""
    return MetricsSummary(
        total_page_views=len(page_views),
        unique_visitors=unique_visitors(page_views),
        total_sessions=len(sessions),
        bounce_rate=bounce_rate(sessions),
        avg_session_duration=avg_session_duration(sessions),
        median_session_duration=median_session_duration(sessions),
        avg_page_views_per_session=avg_page_views_per_session(sessions),
        return_visitor_rate=return_visitor_rate(sessions),
        session_quality=session_quality(sessions, config),
        conversion_rate=None if conversions is None else conversion_rate(sessions, conversions),
    )


# --- Metrics Service ---


class MetricsService:
    """Metrics service bound to a configuration."""

    def __init__(self, config: MetricsConfig | None = None) -> None:
        """Initialize service."""
        self._config = config or DEFAULT_CONFIG

    @property
    def config(self) -> MetricsConfig:
        return self._config

    def summary(
        self,
        page_views: Sequence[EventRecord],
        sessions: Sequence[Session],
        conversions: Iterable[ConversionEvent] | None = None,
    ) -> MetricsSummary:
        return calculate_summary(page_views, sessions, conversions, self._config)

    def engagement_score(self, session: Session) -> int:
        return engagement_score(session, self._config)

    def session_quality(self, sessions: Sequence[Session]) -> float:
        return session_quality(sessions, self._config)

    def duration_buckets(self, sessions: Iterable[Session]) -> dict[str, int]:
        return duration_buckets(sessions, self._config)

    def trending_pages(
        self,
        current: Iterable[EventRecord],
        previous: Iterable[EventRecord],
    ) -> list[TrendingPage]:
        return trending_pages(current, previous, config=self._config)

    def detect_anomalies(self, values: Sequence[float]) -> AnomalyReport:
        return detect_anomalies(values, config=self._config)


# --- Factory ---


def create_metrics_service(config: MetricsConfig | None = None) -> MetricsService:
    """Create a MetricsService."""
    return MetricsService(config=config)
