"""
AnalyticsDeviceService - User agent classification.

Turns a raw user agent string into browser, OS and device class, and flags
automated traffic.

Key behaviors:
- Bot detection is an independent keyword scan; a bot may still report a
  real browser
- Browser and OS detection walk ordered rule tables, first match wins
  (Edge before Chrome, Chrome before Safari, iOS before macOS,
  Android before Linux)
- Tablet is checked before Mobile
- Empty user agents classify as Unknown desktop, non-bot
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from analytics_engine.core.ranking import RankedStat, rank_labels
from analytics_engine.core.rounding import percentage

UNKNOWN = "Unknown"


# --- Enums ---


class DeviceType(str, Enum):
    """Device class."""

    DESKTOP = "Desktop"
    MOBILE = "Mobile"
    TABLET = "Tablet"


# --- Rule Tables ---


@dataclass(frozen=True)
class BrowserRule:
    """Browser match: any marker present and no exclude present."""

    name: str
    markers: tuple[str, ...]
    version_pattern: str
    excludes: tuple[str, ...] = ()

    def matches(self, ua: str) -> bool:
        if any(token in ua for token in self.excludes):
            return False
        return any(token in ua for token in self.markers)


@dataclass(frozen=True)
class OSRule:
    """
    Operating system match.

    The version comes either from ``version_pattern`` (first group, with
    underscores turned into dots) or from a ``version_map`` of tokens.
    """

    name: str
    markers: tuple[str, ...]
    version_pattern: str | None = None
    version_map: tuple[tuple[str, str], ...] = ()

    def matches(self, ua: str) -> bool:
        return any(token in ua for token in self.markers)

    def version(self, ua: str) -> str | None:
        for token, label in self.version_map:
            if token in ua:
                return label
        if self.version_pattern is None:
            return None
        match = re.search(self.version_pattern, ua)
        if match is None:
            return None
        return match.group(1).replace("_", ".")


DEFAULT_BROWSER_RULES: tuple[BrowserRule, ...] = (
    BrowserRule("Edge", ("edg/",), r"edg/([\d.]+)"),
    BrowserRule("Chrome", ("chrome/",), r"chrome/([\d.]+)"),
    BrowserRule("Firefox", ("firefox/",), r"firefox/([\d.]+)"),
    BrowserRule("Safari", ("safari/",), r"version/([\d.]+)", excludes=("chrome",)),
    BrowserRule("Opera", ("opr/", "opera/"), r"(?:opr|opera)/([\d.]+)"),
    BrowserRule("Internet Explorer", ("msie", "trident/"), r"(?:msie |rv:)([\d.]+)"),
)

DEFAULT_WINDOWS_VERSIONS: tuple[tuple[str, str], ...] = (
    ("windows nt 10.0", "10"),
    ("windows nt 6.3", "8.1"),
    ("windows nt 6.2", "8"),
    ("windows nt 6.1", "7"),
)


def build_os_rules(
    windows_versions: tuple[tuple[str, str], ...] = DEFAULT_WINDOWS_VERSIONS,
) -> tuple[OSRule, ...]:
    """OS rule table in precedence order."""
    return (
        OSRule("Windows", ("windows",), version_map=windows_versions),
        OSRule("iOS", ("iphone", "ipad", "ipod"), version_pattern=r"os ([\d_]+)"),
        OSRule("macOS", ("mac os x",), version_pattern=r"mac os x ([\d_]+)"),
        OSRule("Android", ("android",), version_pattern=r"android ([\d.]+)"),
        OSRule("Linux", ("linux",)),
        OSRule("Chrome OS", ("cros",)),
    )


# --- Configuration ---


@dataclass(frozen=True)
class DeviceConfig:
    """User agent classification configuration."""

    bot_keywords: tuple[str, ...] = (
        "bot",
        "crawler",
        "spider",
        "scraper",
        "headless",
        "phantom",
        "selenium",
        "webdriver",
        "curl",
        "wget",
        "http",
        "python",
    )

    browser_rules: tuple[BrowserRule, ...] = DEFAULT_BROWSER_RULES
    os_rules: tuple[OSRule, ...] = field(default_factory=build_os_rules)

    # Device markers, all lowercase
    tablet_markers: tuple[str, ...] = ("ipad",)
    mobile_markers: tuple[str, ...] = ("mobile", "iphone", "ipod")

    # Major versions below these are considered outdated
    min_browser_versions: tuple[tuple[str, int], ...] = (
        ("Chrome", 100),
        ("Firefox", 100),
        ("Safari", 15),
        ("Edge", 100),
    )

    browser_aliases: tuple[tuple[str, str], ...] = (
        ("chrome", "Chrome"),
        ("firefox", "Firefox"),
        ("safari", "Safari"),
        ("edge", "Edge"),
        ("opera", "Opera"),
        ("ie", "Internet Explorer"),
        ("internet explorer", "Internet Explorer"),
    )


DEFAULT_CONFIG = DeviceConfig()


# --- Data Models ---


@dataclass(frozen=True)
class DetectedName:
    """Detected browser or OS name with optional version."""

    name: str
    version: str | None = None


@dataclass(frozen=True)
class DeviceInfo:
    """Classified user agent."""

    browser: str = UNKNOWN
    browser_version: str | None = None
    os: str = UNKNOWN
    os_version: str | None = None
    device: DeviceType = DeviceType.DESKTOP
    is_bot: bool = False

    @property
    def is_mobile(self) -> bool:
        return self.device == DeviceType.MOBILE

    @property
    def is_tablet(self) -> bool:
        return self.device == DeviceType.TABLET

    @property
    def is_desktop(self) -> bool:
        return self.device == DeviceType.DESKTOP


# --- Detection Functions ---


def is_bot(user_agent: str | None, config: DeviceConfig = DEFAULT_CONFIG) -> bool:
    """Case-insensitive keyword scan for automated clients."""
    if not user_agent:
        return False
    ua = user_agent.lower()
    return any(keyword in ua for keyword in config.bot_keywords)


def detect_browser(
    user_agent: str | None,
    config: DeviceConfig = DEFAULT_CONFIG,
) -> DetectedName:
    """Detect browser name and version."""
    if not user_agent:
        return DetectedName(UNKNOWN)

    ua = user_agent.lower()
    for rule in config.browser_rules:
        if rule.matches(ua):
            match = re.search(rule.version_pattern, ua)
            return DetectedName(rule.name, match.group(1) if match else None)

    return DetectedName(UNKNOWN)


def detect_os(
    user_agent: str | None,
    config: DeviceConfig = DEFAULT_CONFIG,
) -> DetectedName:
    """Detect operating system name and version."""
    if not user_agent:
        return DetectedName(UNKNOWN)

    ua = user_agent.lower()
    for rule in config.os_rules:
        if rule.matches(ua):
            return DetectedName(rule.name, rule.version(ua))

    return DetectedName(UNKNOWN)


def detect_device_type(
    user_agent: str | None,
    config: DeviceConfig = DEFAULT_CONFIG,
) -> DeviceType:
    """Classify as Tablet, Mobile or Desktop (in that order)."""
    if not user_agent:
        return DeviceType.DESKTOP

    ua = user_agent.lower()

    if any(token in ua for token in config.tablet_markers):
        return DeviceType.TABLET
    if "tablet" in ua and "mobile" not in ua:
        return DeviceType.TABLET

    # Android phones carry "mobile"; Android tablets do not
    if any(token in ua for token in config.mobile_markers):
        return DeviceType.MOBILE

    return DeviceType.DESKTOP


def classify_user_agent(
    user_agent: str | None,
    config: DeviceConfig = DEFAULT_CONFIG,
) -> DeviceInfo:
    """Classify a user agent string."""
    if not user_agent:
        return DeviceInfo()

    browser = detect_browser(user_agent, config)
    os_info = detect_os(user_agent, config)

    return DeviceInfo(
        browser=browser.name,
        browser_version=browser.version,
        os=os_info.name,
        os_version=os_info.version,
        device=detect_device_type(user_agent, config),
        is_bot=is_bot(user_agent, config),
    )


def is_outdated(browser: str, version: str, config: DeviceConfig = DEFAULT_CONFIG) -> bool:
    """
    Check whether a browser's major version is below the supported minimum.

    Browsers without a configured minimum, and versions that do not start
    with a number, are never reported as outdated.
    """
    minimum = dict(config.min_browser_versions).get(browser)
    if minimum is None:
        return False

    try:
        major = int(version.split(".")[0])
    except ValueError:
        return False

    return major < minimum


def normalize_browser_name(name: str, config: DeviceConfig = DEFAULT_CONFIG) -> str:
    """Map browser aliases to canonical names; unknown names pass through."""
    return dict(config.browser_aliases).get(name.lower(), name)


# --- Aggregate Helpers ---


def browser_stats(
    user_agents: Sequence[str | None],
    config: DeviceConfig = DEFAULT_CONFIG,
) -> list[RankedStat]:
    """Browser share, largest first."""
    return rank_labels(detect_browser(ua, config).name for ua in user_agents)


def os_stats(
    user_agents: Sequence[str | None],
    config: DeviceConfig = DEFAULT_CONFIG,
) -> list[RankedStat]:
    """Operating system share, largest first."""
    return rank_labels(detect_os(ua, config).name for ua in user_agents)


def device_stats(
    user_agents: Sequence[str | None],
    config: DeviceConfig = DEFAULT_CONFIG,
) -> list[RankedStat]:
    """Device class share, largest first."""
    return rank_labels(detect_device_type(ua, config).value for ua in user_agents)


def mobile_percentage(
    user_agents: Sequence[str | None],
    config: DeviceConfig = DEFAULT_CONFIG,
) -> float:
    """Share of mobile and tablet user agents."""
    handheld = sum(
        1 for ua in user_agents if detect_device_type(ua, config) != DeviceType.DESKTOP
    )
    return percentage(handheld, len(user_agents))


def filter_bots(
    user_agents: Iterable[str | None],
    config: DeviceConfig = DEFAULT_CONFIG,
) -> list[str | None]:
    """Drop user agents that look automated."""
    return [ua for ua in user_agents if not is_bot(ua, config)]


# --- Device Service ---


class DeviceService:
    """
    User agent classification service.

    Binds a configuration to the module-level detection functions.
    """

    def __init__(self, config: DeviceConfig | None = None) -> None:
        """Initialize service."""
        self._config = config or DEFAULT_CONFIG

    @property
    def config(self) -> DeviceConfig:
        return self._config

    def classify(self, user_agent: str | None) -> DeviceInfo:
        return classify_user_agent(user_agent, self._config)

    def is_bot(self, user_agent: str | None) -> bool:
        return is_bot(user_agent, self._config)

    def browser_stats(self, user_agents: Sequence[str | None]) -> list[RankedStat]:
        return browser_stats(user_agents, self._config)

    def os_stats(self, user_agents: Sequence[str | None]) -> list[RankedStat]:
        return os_stats(user_agents, self._config)

    def device_stats(self, user_agents: Sequence[str | None]) -> list[RankedStat]:
        return device_stats(user_agents, self._config)

    def mobile_percentage(self, user_agents: Sequence[str | None]) -> float:
        return mobile_percentage(user_agents, self._config)

    def filter_bots(self, user_agents: Iterable[str | None]) -> list[str | None]:
        return filter_bots(user_agents, self._config)

    def is_outdated(self, browser: str, version: str) -> bool:
        return is_outdated(browser, version, self._config)

    def normalize_browser_name(self, name: str) -> str:
        return normalize_browser_name(name, self._config)


# --- Factory ---


def create_device_service(config: DeviceConfig | None = None) -> DeviceService:
    """Create a DeviceService."""
    return DeviceService(config=config)
