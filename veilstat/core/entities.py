"""
Domain entities for veilstat.

- StoredEvent: immutable, append-only visit event (pseudonymized)
- EventKind: closed set of event kinds accepted at the collection endpoint
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import uuid4

__all__ = [
    "EventKind",
    "StoredEvent",
    "EVENT_COLUMNS",
]


class EventKind(str, Enum):
    """Event kinds accepted by the collection endpoint."""

    PAGEVIEW = "pageview"
    EVENT = "event"
    ENGAGEMENT = "engagement"
    HEARTBEAT = "heartbeat"


@dataclass(frozen=True)
class StoredEvent:
    """
    A persisted visit event.

    Privacy invariant: only pseudonyms and coarse classifications are held.
    No raw network origin, user-agent or client-supplied identifier is kept.
    """

    site_id: str
    kind: EventKind
    visitor_id: str
    created_at: datetime
    path: str
    session_id: str | None = None
    client_ts: datetime | None = None
    referrer: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    device: str | None = None
    browser: str | None = None
    os: str | None = None
    country: str | None = None
    region: str | None = None
    category: str | None = None
    action: str | None = None
    label: str | None = None
    goal_id: str | None = None
    duration: float | None = None
    scroll_depth: float | None = None
    value: float | None = None
    id: str = field(default_factory=lambda: uuid4().hex)

    @property
    def is_pageview(self) -> bool:
        return self.kind == EventKind.PAGEVIEW


# Column order used by the sqlite schema and row mapping.
EVENT_COLUMNS: tuple[str, ...] = (
    "id",
    "site_id",
    "kind",
    "session_id",
    "visitor_id",
    "path",
    "referrer",
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "device",
    "browser",
    "os",
    "country",
    "region",
    "category",
    "action",
    "label",
    "goal_id",
    "duration",
    "scroll_depth",
    "value",
    "created_at",
    "client_ts",
)
