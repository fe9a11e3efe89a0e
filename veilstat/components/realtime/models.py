"""
Realtime component input/output models.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from veilstat.core.entities import StoredEvent

MAX_WINDOW_MINUTES = 1440


@dataclass(frozen=True)
class ActiveSession:
    """Live projection of one session, keyed by session pseudonym."""

    session_id: str
    site_id: str
    started_at: datetime
    last_activity: datetime
    page_count: int
    landing_path: str
    current_path: str
    visitor_id: str | None = None
    country: str | None = None
    device: str | None = None

    def is_active(self, now: datetime, timeout: timedelta) -> bool:
        return now - self.last_activity < timeout

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "startTime": self.started_at.isoformat(),
            "lastActivity": self.last_activity.isoformat(),
            "pageViews": self.page_count,
            "landingPage": self.landing_path,
            "currentPage": self.current_path,
            "country": self.country,
            "device": self.device,
        }


@dataclass
class SiteShard:
    """Mutable per-site state. Only touched while the site's lock is held."""

    sessions: dict[str, ActiveSession] = field(default_factory=dict)
    events: deque[StoredEvent] = field(default_factory=deque)


@dataclass(frozen=True)
class TopItem:
    key: str
    visitors: int


@dataclass(frozen=True)
class RealtimeMetrics:
    bounce_rate: float = 0.0
    pages_per_session: float = 0.0
    avg_session_duration: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "bounceRate": self.bounce_rate,
            "pagesPerSession": self.pages_per_session,
            "avgSessionDuration": self.avg_session_duration,
        }


@dataclass(frozen=True)
class PeakStats:
    peak_visitors: int = 0
    peak_time: datetime | None = None
    avg_visitors_per_bucket: int = 0


@dataclass(frozen=True)
class RealtimeSnapshot:
    """Live view of one site over a trailing time window."""

    site_id: str
    time_window_minutes: int
    active_visitors: int
    page_views: int
    top_pages: list[TopItem]
    top_countries: list[TopItem]
    top_referrers: list[TopItem]
    metrics: RealtimeMetrics
    peak: PeakStats
    current_visitors: int
    recent_events: list[StoredEvent]
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "siteId": self.site_id,
            "timeWindow": self.time_window_minutes,
            "activeVisitors": self.active_visitors,
            "pageViews": self.page_views,
            "topPages": [{"path": t.key, "visitors": t.visitors} for t in self.top_pages],
            "topCountries": [
                {"country": t.key, "visitors": t.visitors} for t in self.top_countries
            ],
            "topReferrers": [
                {"referrer": t.key, "visitors": t.visitors} for t in self.top_referrers
            ],
            "metrics": self.metrics.to_dict(),
            "peakVisitors": self.peak.peak_visitors,
            "peakTime": self.peak.peak_time.isoformat() if self.peak.peak_time else None,
            "avgVisitorsPerBucket": self.peak.avg_visitors_per_bucket,
            "currentVisitors": self.current_visitors,
            "recentEvents": [_event_summary(e) for e in self.recent_events],
            "timestamp": self.timestamp.isoformat(),
        }


def _event_summary(event: StoredEvent) -> dict[str, Any]:
    return {
        "id": event.id,
        "type": event.kind.value,
        "timestamp": event.created_at.isoformat(),
        "sessionId": event.session_id,
        "path": event.path,
        "country": event.country,
        "device": event.device,
        "browser": event.browser,
        "referrer": event.referrer,
    }


@dataclass(frozen=True)
class RealtimeConfig:
    """Session timeout and snapshot shape."""

    session_timeout: timedelta = timedelta(minutes=30)
    default_window_minutes: int = 30
    max_window_minutes: int = MAX_WINDOW_MINUTES
    top_n: int = 10
    recent_events: int = 50
    peak_bucket_minutes: int = 5

    @property
    def retention(self) -> timedelta:
        """How long raw events stay in the recent-event buffer."""
        return timedelta(minutes=self.max_window_minutes)
