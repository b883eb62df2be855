"""
AnalyticsReferrerService - Referrer and UTM classification.

Classifies where a visit came from.

Key behaviors:
- Empty or unparseable referrers are direct traffic
- Same-host referrers are internal and kept as their own medium
- Search engines, then social networks, then UTM tags, then plain referral
- Search terms come from the first non-empty search parameter
- Handle edge cases (missing, malformed data) without raising
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from urllib.parse import SplitResult, parse_qs, urlsplit

from analytics_engine.core.ranking import RankedStat, rank_labels
from analytics_engine.core.rounding import percentage

DIRECT_SOURCE = "(direct)"


# --- Enums ---


class Medium(str, Enum):
    """Traffic medium. UTM-tagged traffic may carry any other string."""

    DIRECT = "direct"
    SEARCH = "search"
    SOCIAL = "social"
    REFERRAL = "referral"
    EMAIL = "email"
    INTERNAL = "internal"


# --- Configuration ---


@dataclass(frozen=True)
class ReferrerConfig:
    """Referrer classification configuration."""

    # Matched as substrings of the referrer hostname, in order
    search_engines: tuple[str, ...] = (
        "google",
        "bing",
        "yahoo",
        "duckduckgo",
        "baidu",
        "yandex",
    )

    social_networks: tuple[str, ...] = (
        "facebook",
        "twitter",
        "linkedin",
        "instagram",
        "pinterest",
        "reddit",
        "tiktok",
        "youtube",
    )

    # Query parameters holding the search phrase, in priority order
    search_params: tuple[str, ...] = ("q", "query", "search", "p", "text")

    # Domain -> canonical source label (exact or subdomain match)
    source_aliases: tuple[tuple[str, str], ...] = (
        ("google.com", "google"),
        ("google.co.uk", "google"),
        ("facebook.com", "facebook"),
        ("fb.com", "facebook"),
        ("t.co", "twitter"),
        ("twitter.com", "twitter"),
        ("x.com", "twitter"),
        ("linkedin.com", "linkedin"),
        ("lnkd.in", "linkedin"),
        ("youtu.be", "youtube"),
    )


DEFAULT_CONFIG = ReferrerConfig()


# --- Data Models ---


@dataclass(frozen=True)
class ReferrerInfo:
    """Classified referrer."""

    source: str
    medium: str
    campaign: str | None = None
    search_term: str | None = None
    is_internal: bool = False


DIRECT = ReferrerInfo(source=DIRECT_SOURCE, medium=Medium.DIRECT.value)


# --- Parsing Functions ---


def _normalize_host(host: str) -> str:
    host = host.strip().lower()
    return host.removeprefix("www.")


def _split_url(url: str | None) -> tuple[SplitResult, str] | None:
    """Split an absolute URL; None when it has no scheme or host."""
    if not url:
        return None
    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname
    except ValueError:
        return None
    if not parts.scheme or not hostname:
        return None
    return parts, _normalize_host(hostname)


def _first_param(query: str, names: Iterable[str]) -> str | None:
    params = parse_qs(query)
    for name in names:
        values = params.get(name)
        if values and values[0]:
            return values[0]
    return None


def extract_domain(referrer: str | None) -> str | None:
    """Hostname without ``www.``; None when the referrer cannot be parsed."""
    split = _split_url(referrer)
    if split is None:
        return None
    return split[1]


def extract_search_term(
    referrer: str | None,
    config: ReferrerConfig = DEFAULT_CONFIG,
) -> str | None:
    """Search phrase from the first present search parameter."""
    split = _split_url(referrer)
    if split is None:
        return None
    return _first_param(split[0].query, config.search_params)


def classify_referrer(
    referrer: str | None,
    current_host: str | None = None,
    config: ReferrerConfig = DEFAULT_CONFIG,
) -> ReferrerInfo:
    """
    Classify a referrer URL.

    Priority:
    1. Internal (same host as ``current_host``)
    2. Known search engine
    3. Known social network
    4. ``utm_source`` tag
    5. Plain referral from the hostname
    """
    split = _split_url(referrer)
    if split is None:
        return DIRECT

    parts, hostname = split

    if current_host and hostname == _normalize_host(current_host):
        return ReferrerInfo(source=hostname, medium=Medium.INTERNAL.value, is_internal=True)

    for engine in config.search_engines:
        if engine in hostname:
            return ReferrerInfo(
                source=engine,
                medium=Medium.SEARCH.value,
                search_term=_first_param(parts.query, config.search_params),
            )

    for network in config.social_networks:
        if network in hostname:
            return ReferrerInfo(source=network, medium=Medium.SOCIAL.value)

    utm_source = _first_param(parts.query, ("utm_source",))
    if utm_source:
        return ReferrerInfo(
            source=utm_source,
            medium=_first_param(parts.query, ("utm_medium",)) or Medium.REFERRAL.value,
            campaign=_first_param(parts.query, ("utm_campaign",)),
        )

    return ReferrerInfo(source=hostname, medium=Medium.REFERRAL.value)


def classify_medium(referrer: str | None, config: ReferrerConfig = DEFAULT_CONFIG) -> str:
    """Medium of a referrer."""
    return classify_referrer(referrer, config=config).medium


def is_search(referrer: str | None, config: ReferrerConfig = DEFAULT_CONFIG) -> bool:
    return classify_medium(referrer, config) == Medium.SEARCH.value


def is_social(referrer: str | None, config: ReferrerConfig = DEFAULT_CONFIG) -> bool:
    return classify_medium(referrer, config) == Medium.SOCIAL.value


def is_direct(referrer: str | None) -> bool:
    """No referrer at all."""
    return not referrer


def is_valid_referrer(referrer: str | None) -> bool:
    """Referrer parses as an absolute URL with a host."""
    return _split_url(referrer) is not None


def normalize_source(source: str, config: ReferrerConfig = DEFAULT_CONFIG) -> str:
    """
    Map known domain variants to a canonical source label.

    ``fb.com`` and ``m.facebook.com`` both become ``facebook``. Unknown
    sources are returned unchanged.
    """
    candidate = _normalize_host(source)
    for domain, label in config.source_aliases:
        if candidate == domain or candidate.endswith("." + domain):
            return label
    return source


# --- Aggregate Helpers ---


def source_stats(
    referrers: Sequence[str | None],
    current_host: str | None = None,
    config: ReferrerConfig = DEFAULT_CONFIG,
) -> list[RankedStat]:
    """Traffic share per source, largest first."""
    return rank_labels(classify_referrer(ref, current_host, config).source for ref in referrers)


def medium_stats(
    referrers: Sequence[str | None],
    current_host: str | None = None,
    config: ReferrerConfig = DEFAULT_CONFIG,
) -> list[RankedStat]:
    """Traffic share per medium, largest first."""
    return rank_labels(classify_referrer(ref, current_host, config).medium for ref in referrers)


def top_referrers(
    referrers: Sequence[str | None],
    limit: int,
    current_host: str | None = None,
    config: ReferrerConfig = DEFAULT_CONFIG,
) -> list[RankedStat]:
    """The ``limit`` largest sources."""
    if limit < 0:
        msg = f"limit must be non-negative, got {limit}"
        raise ValueError(msg)
    return source_stats(referrers, current_host, config)[:limit]


def filter_by_medium(
    referrers: Iterable[str | None],
    medium: str,
    current_host: str | None = None,
    config: ReferrerConfig = DEFAULT_CONFIG,
) -> list[str | None]:
    """Referrers classified under ``medium``."""
    return [
        ref for ref in referrers if classify_referrer(ref, current_host, config).medium == medium
    ]


def organic_percentage(
    referrers: Sequence[str | None],
    config: ReferrerConfig = DEFAULT_CONFIG,
) -> float:
    """Share of referrers classified as search."""
    organic = sum(1 for ref in referrers if is_search(ref, config))
    return percentage(organic, len(referrers))


# --- Referrer Service ---


class ReferrerService:
    """
    Referrer classification service.

    Optionally bound to the site's own host so same-site navigation is
    reported as internal.
    """

    def __init__(
        self,
        config: ReferrerConfig | None = None,
        current_host: str | None = None,
    ) -> None:
        """Initialize service."""
        self._config = config or DEFAULT_CONFIG
        self._current_host = current_host

    @property
    def config(self) -> ReferrerConfig:
        return self._config

    def classify(self, referrer: str | None) -> ReferrerInfo:
        return classify_referrer(referrer, self._current_host, self._config)

    def source_stats(self, referrers: Sequence[str | None]) -> list[RankedStat]:
        return source_stats(referrers, self._current_host, self._config)

    def medium_stats(self, referrers: Sequence[str | None]) -> list[RankedStat]:
        return medium_stats(referrers, self._current_host, self._config)

    def top_referrers(self, referrers: Sequence[str | None], limit: int) -> list[RankedStat]:
        return top_referrers(referrers, limit, self._current_host, self._config)

    def filter_by_medium(self, referrers: Iterable[str | None], medium: str) -> list[str | None]:
        return filter_by_medium(referrers, medium, self._current_host, self._config)

    def organic_percentage(self, referrers: Sequence[str | None]) -> float:
        return organic_percentage(referrers, self._config)

    def normalize_source(self, source: str) -> str:
        return normalize_source(source, self._config)


# --- Factory ---


def create_referrer_service(
    config: ReferrerConfig | None = None,
    current_host: str | None = None,
) -> ReferrerService:
    """Create a ReferrerService."""
    return ReferrerService(config=config, current_host=current_host)
