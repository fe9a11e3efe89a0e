"""
Ingestion component port definitions.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from veilstat.core.entities import StoredEvent
from veilstat.core.ports import EventStorePort, SiteLookupPort, TimePort


class RateLimiterPort(Protocol):
    """Sliding-window rate limiter."""

    def allow_request(self, key: str, window: int, limit: int) -> bool:
        """Record and allow the request, or deny it without recording."""
        ...

    def retry_after(self, key: str, window: int) -> int:
        """Seconds until the oldest request in the window expires."""
        ...


# Called once per stored event after the batch commits
EventListener = Callable[[StoredEvent], None]

__all__ = [
    "EventListener",
    "EventStorePort",
    "RateLimiterPort",
    "SiteLookupPort",
    "TimePort",
]
