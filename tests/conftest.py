from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from analytics_engine.core.entities import EventRecord, Session
from analytics_engine.rules.loader import load_rules
from analytics_engine.rules.models import Rules


@pytest.fixture
def base_time() -> datetime:
    """A fixed Saturday morning."""
    return datetime(2024, 6, 15, 10, 0, 0, tzinfo=UTC)


@pytest.fixture
def make_record(base_time: datetime) -> Callable[..., EventRecord]:
    """Factory for event records offset in minutes from ``base_time``."""

    def _make(minutes: float = 0, **overrides: Any) -> EventRecord:
        fields: dict[str, Any] = {
            "timestamp": base_time + timedelta(minutes=minutes),
            "session_id": "s1",
            "path": "/",
        }
        fields.update(overrides)
        return EventRecord(**fields)

    return _make


@pytest.fixture
def make_session(base_time: datetime) -> Callable[..., Session]:
    """Factory for sessions with ``pages`` page views lasting ``seconds``."""

    def _make(
        session_id: str = "s1",
        pages: int = 1,
        seconds: float | None = 60,
        **overrides: Any,
    ) -> Session:
        views = tuple(
            EventRecord(
                timestamp=base_time + timedelta(seconds=i),
                session_id=session_id,
                path=f"/page-{i}",
            )
            for i in range(pages)
        )
        end = None if seconds is None else base_time + timedelta(seconds=seconds)
        fields: dict[str, Any] = {
            "id": session_id,
            "start_time": base_time,
            "page_views": views,
            "end_time": end,
        }
        fields.update(overrides)
        return Session(**fields)

    return _make


@pytest.fixture
def project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def rules(project_root: Path) -> Rules:
    """The rules file shipped at the project root."""
    return load_rules(project_root / "rules.yaml")
