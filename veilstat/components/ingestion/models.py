"""
Ingestion component input/output models.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class IngestionConfig:
    """Validation and pipeline configuration."""

    allowed_kinds: frozenset[str] = frozenset(
        {"pageview", "event", "engagement", "heartbeat"}
    )
    session_bearing_kinds: frozenset[str] = frozenset(
        {"pageview", "engagement", "heartbeat"}
    )
    max_clock_skew_seconds: int = 3600
    max_batch_size: int = 100
    max_path_length: int = 2048

    # Rate limiting, keyed by anonymized origin
    rate_limit_window_seconds: int = 60
    rate_limit_max_requests: int = 600

    forbidden_fields: frozenset[str] = field(
        default_factory=lambda: frozenset(
            {
                "ip",
                "ip_address",
                "ipAddress",
                "user_agent",
                "userAgent",
                "ua_raw",
                "cookie",
                "cookie_id",
                "email",
            }
        ),
    )


@dataclass(frozen=True)
class CollectRequest:
    """One inbound collection call as seen by the pipeline."""

    body: Any
    headers: Mapping[str, str] = field(default_factory=dict)
    peer: str | None = None


@dataclass(frozen=True)
class CollectResult:
    """
    Outcome of a collect call.

    accepted counts every event in the request (bots included);
    stored counts rows actually written.
    """

    accepted: int
    stored: int
    dropped_bots: int = 0
