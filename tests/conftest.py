from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from veilstat.components.identity import IdentityHasher
from veilstat.components.ingestion import InMemoryEventStore
from veilstat.core.entities import EventKind, StoredEvent
from veilstat.rules.loader import default_rules
from veilstat.rules.models import Rules

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)

BROWSER_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
BOT_UA = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"


class MockTimePort:
    """Mock time provider."""

    def __init__(self, now: datetime = NOW) -> None:
        self._now = now

    def now_utc(self) -> datetime:
        return self._now

    def set_now(self, now: datetime) -> None:
        self._now = now

    def advance(self, **kwargs: float) -> None:
        self._now = self._now + timedelta(**kwargs)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def time_port() -> MockTimePort:
    """Mock time provider pinned to NOW."""
    return MockTimePort()


@pytest.fixture
def rules() -> Rules:
    return default_rules()


@pytest.fixture
def event_store() -> InMemoryEventStore:
    """Fresh event store."""
    return InMemoryEventStore()


@pytest.fixture
def hasher(time_port: MockTimePort) -> IdentityHasher:
    return IdentityHasher("test-secret", time_port)


@pytest.fixture
def browser_ua() -> str:
    return BROWSER_UA


@pytest.fixture
def bot_ua() -> str:
    return BOT_UA


@pytest.fixture
def make_event() -> Callable[..., StoredEvent]:
    """Factory for stored events; created_at defaults to NOW."""

    def _make(
        session_id: str | None = "s1",
        path: str = "/",
        kind: EventKind = EventKind.PAGEVIEW,
        created_at: datetime = NOW,
        site_id: str = "site-1",
        visitor_id: str | None = None,
        **fields: Any,
    ) -> StoredEvent:
        return StoredEvent(
            site_id=site_id,
            kind=kind,
            visitor_id=visitor_id or f"v-{session_id}",
            session_id=session_id,
            created_at=created_at,
            path=path,
            **fields,
        )

    return _make


@pytest.fixture
def make_payload(now: datetime) -> Callable[..., dict[str, Any]]:
    """Factory for valid collection payload events (client timestamp = NOW in ms)."""

    def _make(**overrides: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "siteId": "site-1",
            "type": "pageview",
            "path": "/",
            "timestamp": int(now.timestamp() * 1000),
            "visitorId": "client-visitor",
            "sessionId": "client-session",
        }
        payload.update(overrides)
        return {k: v for k, v in payload.items() if v is not None}

    return _make
