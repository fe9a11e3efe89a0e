"""
Persistence Port Interfaces.

Protocol-based interfaces for storage the core depends on.
Implementations: SQLite (adapters.sqlite_db), in-memory (per component).

Key requirements:
- batch() is atomic: every statement commits or none does
- Range/site predicates are pushed down; everything else is filtered
  in-process, so results never depend on what the backend can push down
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol

from veilstat.core.entities import StoredEvent

Statement = tuple[str, Sequence[Any]]


class PersistencePort(Protocol):
    """Low-level statement executor."""

    def execute(self, query: str, args: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Run one statement and return rows as dicts."""
        ...

    def batch(self, statements: Sequence[Statement]) -> list[int]:
        """Run statements in one transaction. Returns per-statement rowcounts."""
        ...


class EventStorePort(Protocol):
    """
    Append-only event storage.

    Invariants:
    - Events are never mutated or deleted through this port
    - insert_many is all-or-nothing
    """

    def insert_many(self, events: Sequence[StoredEvent]) -> int:
        """Persist events atomically. Returns number written."""
        ...

    def list_events(
        self,
        site_id: str,
        start: datetime,
        end: datetime,
    ) -> list[StoredEvent]:
        """
        List events for a site with start <= created_at < end.

        Session-scoped metrics need every event of a session, so no
        dimension predicates are pushed down here.

        Returns:
            Events ordered by created_at ascending (insertion order on ties).
        """
        ...


class SiteLookupPort(Protocol):
    """Site registry owned outside the core."""

    def exists(self, site_id: str) -> bool:
        """Check whether the site is registered."""
        ...
