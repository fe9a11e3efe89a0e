"""
RealtimeTracker - in-memory live session state.

Key behaviors:
- track_event is an ingestion listener; every kind lands in the recent
  event buffer, only pageviews touch the session map
- A pageview for an expired session starts a fresh session
- The session store is injected and owned by the caller, so tests get
  isolated instances
- Locks are per site: ingestion for one site never waits on another
- The event buffer stays ordered by created_at even when events arrive late
- Reads never create shards; expiry drops shards left with no state
"""

from __future__ import annotations

import logging
from bisect import insort
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta
from threading import Lock
from typing import Any

from veilstat.core.entities import StoredEvent
from veilstat.core.errors import FieldError, ValidationError
from veilstat.core.ports import TimePort
from veilstat.rules.models import Rules

from .component import (
    peak_buckets,
    session_key,
    session_metrics,
    top_by_sessions,
    validate_time_window,
)
from .models import ActiveSession, RealtimeConfig, RealtimeSnapshot, SiteShard
from .ports import SessionStorePort

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = RealtimeConfig()


def config_from_rules(rules: Rules) -> RealtimeConfig:
    """Build RealtimeConfig from the rules file."""
    section = rules.realtime
    return RealtimeConfig(
        session_timeout=timedelta(minutes=rules.privacy.session_timeout_minutes),
        default_window_minutes=section.default_window_minutes,
        max_window_minutes=section.max_window_minutes,
        top_n=section.top_n,
        recent_events=section.recent_events,
        peak_bucket_minutes=section.peak_bucket_minutes,
    )


class InMemorySessionStore:
    """Per-site shards, each guarded by its own lock."""

    def __init__(self) -> None:
        self._shards: dict[str, SiteShard] = {}
        self._locks: dict[str, Lock] = {}
        self._registry_lock = Lock()

    def _lock_for(self, site_id: str, create: bool) -> Lock | None:
        with self._registry_lock:
            lock = self._locks.get(site_id)
            if lock is None and create:
                lock = self._locks[site_id] = Lock()
                self._shards[site_id] = SiteShard()
            return lock

    def _is_current(self, site_id: str, lock: Lock) -> bool:
        with self._registry_lock:
            return self._locks.get(site_id) is lock

    @contextmanager
    def locked(self, site_id: str, create: bool = True) -> Iterator[SiteShard]:
        while True:
            lock = self._lock_for(site_id, create)
            if lock is None:
                # Unknown site on a read path: hand out a detached empty shard
                yield SiteShard()
                return
            with lock:
                # A shard discarded while we waited gets recreated on retry
                if self._is_current(site_id, lock):
                    yield self._shards[site_id]
                    return

    def discard(self, site_id: str) -> None:
        """Forget a site's shard. Caller holds the site's lock."""
        with self._registry_lock:
            self._shards.pop(site_id, None)
            self._locks.pop(site_id, None)

    def site_ids(self) -> Iterator[str]:
        with self._registry_lock:
            ids = list(self._shards)
        return iter(ids)


def _prune(shard: SiteShard, cutoff: datetime) -> None:
    while shard.events and shard.events[0].created_at < cutoff:
        shard.events.popleft()


def _buffer(shard: SiteShard, event: StoredEvent) -> None:
    """Insert keeping the buffer ordered by created_at; ties keep arrival order."""
    events = shard.events
    if not events or events[-1].created_at <= event.created_at:
        events.append(event)
    else:
        insort(events, event, key=_created_at)


def _created_at(event: StoredEvent) -> datetime:
    return event.created_at


class RealtimeTracker:
    """Live visitor views for dashboards."""

    def __init__(
        self,
        store: SessionStorePort,
        clock: TimePort,
        config: RealtimeConfig = DEFAULT_CONFIG,
    ) -> None:
        self._store = store
        self._clock = clock
        self._config = config

    def track_event(self, event: StoredEvent) -> None:
        """Record one stored event."""
        with self._store.locked(event.site_id) as shard:
            _buffer(shard, event)
            _prune(shard, self._clock.now_utc() - self._config.retention)

            if not event.is_pageview or not event.session_id:
                return

            session = shard.sessions.get(event.session_id)
            if session is None or not session.is_active(event.created_at, self._config.session_timeout):
                session = ActiveSession(
                    session_id=event.session_id,
                    site_id=event.site_id,
                    started_at=event.created_at,
                    last_activity=event.created_at,
                    page_count=0,
                    landing_path=event.path,
                    current_path=event.path,
                    visitor_id=event.visitor_id,
                    country=event.country,
                    device=event.device,
                )
            latest = event.created_at >= session.last_activity
            earliest = event.created_at < session.started_at
            shard.sessions[event.session_id] = replace(
                session,
                page_count=session.page_count + 1,
                started_at=event.created_at if earliest else session.started_at,
                landing_path=event.path if earliest else session.landing_path,
                last_activity=event.created_at if latest else session.last_activity,
                current_path=event.path if latest else session.current_path,
            )

    def get_active_sessions(self, site_id: str) -> list[ActiveSession]:
        """Sessions with activity inside the timeout."""
        now = self._clock.now_utc()
        with self._store.locked(site_id, create=False) as shard:
            return [
                s for s in shard.sessions.values() if s.is_active(now, self._config.session_timeout)
            ]

    def expire_inactive_sessions(self) -> int:
        """
        Evict timed-out sessions and events past retention for every site.

        Returns:
            Number of sessions evicted
        """
        now = self._clock.now_utc()
        evicted = 0
        for site_id in self._store.site_ids():
            with self._store.locked(site_id, create=False) as shard:
                stale = [
                    sid
                    for sid, s in shard.sessions.items()
                    if not s.is_active(now, self._config.session_timeout)
                ]
                for sid in stale:
                    del shard.sessions[sid]
                evicted += len(stale)
                _prune(shard, now - self._config.retention)
                if not shard.sessions and not shard.events:
                    self._store.discard(site_id)
        if evicted:
            logger.debug("Expired %d inactive sessions", evicted)
        return evicted

    def get_realtime(self, site_id: Any, time_window: Any = None) -> RealtimeSnapshot:
        """
        Snapshot of a site's activity over the trailing window.

        Raises:
            ValidationError: missing siteId or out-of-range window
        """
        if not isinstance(site_id, str) or not site_id:
            raise ValidationError([FieldError("site_id_required", "siteId is required", "siteId")])
        minutes = validate_time_window(
            time_window,
            self._config.default_window_minutes,
            self._config.max_window_minutes,
        )

        now = self._clock.now_utc()
        cutoff = now - timedelta(minutes=minutes)
        with self._store.locked(site_id, create=False) as shard:
            events = [e for e in shard.events if e.created_at >= cutoff]

        pageviews = [e for e in events if e.is_pageview]
        top_n = self._config.top_n
        recent = events[::-1]

        return RealtimeSnapshot(
            site_id=site_id,
            time_window_minutes=minutes,
            active_visitors=len({session_key(e) for e in events}),
            page_views=len(pageviews),
            top_pages=top_by_sessions(pageviews, lambda e: e.path, top_n),
            top_countries=top_by_sessions(events, lambda e: e.country, top_n),
            top_referrers=top_by_sessions(events, lambda e: e.referrer, top_n),
            metrics=session_metrics(pageviews),
            peak=peak_buckets(events, self._config.peak_bucket_minutes),
            current_visitors=len(self.get_active_sessions(site_id)),
            recent_events=recent[: self._config.recent_events],
            timestamp=now,
        )


def create_realtime_tracker(
    clock: TimePort,
    store: SessionStorePort | None = None,
    rules: Rules | None = None,
) -> RealtimeTracker:
    """Factory for RealtimeTracker. A fresh in-memory store is used by default."""
    config = config_from_rules(rules) if rules is not None else DEFAULT_CONFIG
    return RealtimeTracker(store or InMemorySessionStore(), clock, config)
