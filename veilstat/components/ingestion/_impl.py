"""
In-memory adapters for the ingestion component (testing/dev).
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from threading import Lock

from veilstat.core.entities import StoredEvent
from veilstat.core.errors import PersistenceError


class InMemoryEventStore:
    """In-memory event store for testing/dev."""

    def __init__(self) -> None:
        self._events: list[StoredEvent] = []
        self._lock = Lock()
        self.fail_writes = False

    def insert_many(self, events: Sequence[StoredEvent]) -> int:
        if self.fail_writes:
            raise PersistenceError("simulated write failure")
        with self._lock:
            self._events.extend(events)
        return len(events)

    def list_events(
        self,
        site_id: str,
        start: datetime,
        end: datetime,
    ) -> list[StoredEvent]:
        with self._lock:
            snapshot = list(self._events)
        matched = [
            e
            for e in snapshot
            if e.site_id == site_id and start <= e.created_at < end
        ]
        # Stable sort keeps insertion order on equal timestamps
        return sorted(matched, key=lambda e: e.created_at)

    def get_all(self) -> list[StoredEvent]:
        """Get all stored events (for testing)."""
        with self._lock:
            return list(self._events)


class InMemorySiteRegistry:
    """Site lookup backed by a fixed set of ids."""

    def __init__(self, site_ids: set[str] | None = None) -> None:
        self._site_ids = set(site_ids or ())

    def add(self, site_id: str) -> None:
        self._site_ids.add(site_id)

    def exists(self, site_id: str) -> bool:
        return site_id in self._site_ids
