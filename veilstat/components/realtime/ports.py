"""
Realtime component port definitions.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import AbstractContextManager
from typing import Protocol

from veilstat.core.ports import TimePort

from .models import SiteShard


class SessionStorePort(Protocol):
    """
    Owner of live session state.

    Invariants:
    - A shard is only read or written inside locked(site_id)
    - Shards for different sites never share a lock
    - Reading an unknown site leaves the store unchanged
    """

    def locked(
        self, site_id: str, create: bool = True
    ) -> AbstractContextManager[SiteShard]:
        """
        Hold the site's lock and yield its shard.

        With create=False an unknown site yields a detached empty shard.
        """
        ...

    def discard(self, site_id: str) -> None:
        """Forget a site's shard. Caller holds the site's lock."""
        ...

    def site_ids(self) -> Iterator[str]:
        ...


__all__ = ["SessionStorePort", "TimePort"]
