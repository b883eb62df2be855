"""
Regression tests for engine-wide invariants.

Each property is checked over a seeded batch of generated inputs so the
same cases run every time.
"""

from __future__ import annotations

import random
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

import pytest

from analytics_engine.core.entities import (
    AggregatedBucket,
    Coordinates,
    EventRecord,
    Session,
    TimeRange,
)
from analytics_engine.core.services.analytics_aggregate import (
    BucketType,
    aggregate_events,
    fill_missing_periods,
    growth_rate,
    rolling_average,
)
from analytics_engine.core.services.analytics_device import classify_user_agent
from analytics_engine.core.services.analytics_geo import calculate_distance
from analytics_engine.core.services.analytics_metrics import bounce_rate, percentile
from analytics_engine.core.services.analytics_referrer import classify_referrer
from tests.user_agents import CHROME_WINDOWS, GOOGLEBOT, SAFARI_IPHONE

START = datetime(2024, 1, 1, tzinfo=UTC)
SEEDS = range(10)


def _random_events(rng: random.Random, count: int) -> list[EventRecord]:
    """Events scattered over roughly ten days, in no particular order."""
    return [
        EventRecord(
            timestamp=START + timedelta(minutes=rng.randrange(0, 10 * 24 * 60)),
            session_id=f"s{rng.randrange(20)}",
            path="/",
            user_id=f"u{rng.randrange(10)}",
        )
        for _ in range(count)
    ]


def _random_sessions(rng: random.Random, count: int) -> list[Session]:
    sessions = []
    for i in range(count):
        views = tuple(
            EventRecord(timestamp=START, session_id=str(i), path="/")
            for _ in range(rng.randrange(0, 5))
        )
        sessions.append(Session(id=str(i), start_time=START, page_views=views))
    return sessions


# --- Sessions ---


@pytest.mark.parametrize("seed", SEEDS)
def test_bounce_rate_matches_definition(seed: int) -> None:
    """Bounce rate is the rounded share of sessions with at most one view."""
    rng = random.Random(seed)
    sessions = _random_sessions(rng, rng.randrange(1, 30))

    rate = bounce_rate(sessions)
    bounced = sum(1 for s in sessions if len(s.page_views) <= 1)

    expected = (Decimal(bounced * 100) / Decimal(len(sessions))).quantize(
        Decimal("0.1"), rounding=ROUND_HALF_UP
    )

    assert 0 <= rate <= 100
    assert rate == float(expected)


def test_page_views_keep_order(make_session: Callable[..., Session]) -> None:
    """Session page views are never reordered."""
    session = make_session(pages=4)
    assert [pv.path for pv in session.page_views] == [f"/page-{i}" for i in range(4)]


# --- Time buckets ---


@pytest.mark.parametrize("bucket_type", [BucketType.HOUR, BucketType.DAY, BucketType.WEEK])
@pytest.mark.parametrize("seed", SEEDS)
def test_buckets_sorted_and_complete(seed: int, bucket_type: BucketType) -> None:
    """Buckets ascend and their page views add up to the filtered events."""
    rng = random.Random(seed)
    events = _random_events(rng, 200)
    window = TimeRange(START + timedelta(days=2), START + timedelta(days=7))

    buckets = aggregate_events(events, bucket_type, window)
    periods = [b.period for b in buckets]

    assert periods == sorted(periods)
    assert len(set(periods)) == len(periods)
    assert sum(b.page_views for b in buckets) == sum(
        1 for e in events if window.contains(e.timestamp)
    )


@pytest.mark.parametrize("seed", SEEDS)
def test_fill_then_strip_round_trips(seed: int) -> None:
    """Dropping synthetic empty buckets restores the original list."""
    rng = random.Random(seed)
    window = TimeRange(START, START + timedelta(days=10))
    buckets = aggregate_events(_random_events(rng, 15), BucketType.HOUR, window)

    filled = fill_missing_periods(buckets, BucketType.HOUR, window)

    assert len(filled) >= len(buckets)
    assert [b for b in filled if not b.is_empty()] == buckets


@pytest.mark.parametrize("seed", SEEDS)
def test_rolling_window_of_one_is_identity(seed: int) -> None:
    """A one-bucket window reproduces the series."""
    rng = random.Random(seed)
    buckets = [
        AggregatedBucket(period=f"2024-01-{day:02d}T00:00:00Z", page_views=rng.randrange(100))
        for day in range(1, 20)
    ]
    points = rolling_average(buckets, 1)
    assert [p.rolling_avg for p in points] == [float(b.page_views) for b in buckets]


@pytest.mark.parametrize("value", [0.5, 1, 7, 1234.5])
def test_growth_rate_identities(value: float) -> None:
    """No change is zero growth; growth from zero is 100."""
    assert growth_rate(value, value) == 0
    assert growth_rate(value, 0) == 100
    assert growth_rate(0, 0) == 0


@pytest.mark.parametrize("seed", SEEDS)
def test_statistics_do_not_mutate_input(seed: int) -> None:
    """Percentile and rolling average leave their inputs alone."""
    rng = random.Random(seed)
    values = [rng.randrange(1000) for _ in range(25)]
    snapshot = list(values)
    percentile(values, rng.uniform(0, 100))
    assert values == snapshot

    buckets = [AggregatedBucket(period=str(i), page_views=v) for i, v in enumerate(values)]
    snapshot_buckets = list(buckets)
    rolling_average(buckets, 3)
    assert buckets == snapshot_buckets


# --- Geography ---


@pytest.mark.parametrize("seed", SEEDS)
def test_distance_zero_and_symmetric(seed: int) -> None:
    """Distance to self is zero; argument order does not matter."""
    rng = random.Random(seed)
    a = Coordinates(rng.uniform(-90, 90), rng.uniform(-180, 180))
    b = Coordinates(rng.uniform(-90, 90), rng.uniform(-180, 180))

    assert calculate_distance(a, a) == 0
    assert calculate_distance(a, b) == calculate_distance(b, a)


# --- Classifiers ---


@pytest.mark.parametrize("user_agent", [CHROME_WINDOWS, SAFARI_IPHONE, GOOGLEBOT, "", None])
def test_device_classification_idempotent(user_agent: str | None) -> None:
    """Classifying twice gives identical results."""
    assert classify_user_agent(user_agent) == classify_user_agent(user_agent)


# --- Scenarios ---


def test_iphone_scenario() -> None:
    """iPhone Safari user agent."""
    info = classify_user_agent(SAFARI_IPHONE)
    assert (info.os, info.os_version, info.device.value, info.is_mobile) == (
        "iOS",
        "17.0",
        "Mobile",
        True,
    )


def test_google_search_scenario() -> None:
    """Google search referrer without a current host."""
    info = classify_referrer("https://www.google.com/search?q=analytics")
    assert (info.source, info.medium, info.search_term) == ("google", "search", "analytics")


def test_hourly_scenario(make_record: Callable[..., EventRecord]) -> None:
    """Three events over two hours give two ascending buckets."""
    buckets = aggregate_events([make_record(60), make_record(15), make_record(30)], BucketType.HOUR)
    assert [b.page_views for b in buckets] == [2, 1]
    assert buckets[0].period < buckets[1].period


def test_percentile_scenario() -> None:
    """Median and upper quartile of 1..5."""
    assert percentile([1, 2, 3, 4, 5], 50) == 3
    assert percentile([1, 2, 3, 4, 5], 75) == 4


def test_bounce_scenario(make_session: Callable[..., Session]) -> None:
    """Two bounces in three sessions."""
    sessions = [make_session("a", 1), make_session("b", 2), make_session("c", 1)]
    assert bounce_rate(sessions) == 66.7
