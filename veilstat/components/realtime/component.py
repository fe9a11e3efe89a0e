"""
Realtime component - live snapshot calculations.

Pure functions over a list of recent events; RealtimeTracker supplies the
events and the session map.

Invariants:
- Visitor counts are distinct sessions, never raw event counts
- Top lists are descending by visitors; ties keep first-seen order
- bounceRate is in [0, 100] and is 100 when every session has one pageview
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from veilstat.core.entities import StoredEvent
from veilstat.core.errors import FieldError, ValidationError
from veilstat.core.services.metrics import mean, percent, round_1dp, round_int

from .models import MAX_WINDOW_MINUTES, PeakStats, RealtimeMetrics, TopItem


def session_key(event: StoredEvent) -> str:
    """Sessionless kinds (custom events) count under their visitor pseudonym."""
    return event.session_id or event.visitor_id


def validate_time_window(
    value: Any,
    default: int,
    max_minutes: int = MAX_WINDOW_MINUTES,
) -> int:
    """
    Resolve the requested window in minutes.

    Raises:
        ValidationError: window is not an integer in 1..max_minutes
    """
    if value is None or value == "":
        return default
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(
            [FieldError("invalid_time_window", "timeWindow must be an integer", "timeWindow")]
        )
    if value <= 0:
        raise ValidationError(
            [FieldError("invalid_time_window", "timeWindow must be positive", "timeWindow")]
        )
    if value > max_minutes:
        raise ValidationError(
            [
                FieldError(
                    "invalid_time_window",
                    f"timeWindow cannot exceed {max_minutes} minutes",
                    "timeWindow",
                )
            ]
        )
    return value


def top_by_sessions(
    events: Iterable[StoredEvent],
    key: Callable[[StoredEvent], str | None],
    limit: int,
) -> list[TopItem]:
    """Top values of key by distinct-session count. Events with no value are skipped."""
    seen: dict[str, set[str]] = {}
    for event in events:
        value = key(event)
        if not value:
            continue
        seen.setdefault(value, set()).add(session_key(event))
    ranked = sorted(seen.items(), key=lambda item: len(item[1]), reverse=True)
    return [TopItem(value, len(sessions)) for value, sessions in ranked[:limit]]


def session_metrics(pageviews: Iterable[StoredEvent]) -> RealtimeMetrics:
    """Bounce rate, pages per session and mean duration from pageview events."""
    counts: dict[str, int] = {}
    first: dict[str, datetime] = {}
    last: dict[str, datetime] = {}
    for event in pageviews:
        key = session_key(event)
        counts[key] = counts.get(key, 0) + 1
        at = event.created_at
        first[key] = min(first.get(key, at), at)
        last[key] = max(last.get(key, at), at)

    total = len(counts)
    if total == 0:
        return RealtimeMetrics()

    bounced = sum(1 for c in counts.values() if c == 1)
    durations = [
        (last[key] - first[key]).total_seconds() for key, c in counts.items() if c > 1
    ]
    return RealtimeMetrics(
        bounce_rate=percent(bounced, total),
        pages_per_session=round_1dp(sum(counts.values()) / total),
        avg_session_duration=round_int(mean(durations)),
    )


def peak_buckets(events: Iterable[StoredEvent], bucket_minutes: int) -> PeakStats:
    """
    Bucket events into fixed windows aligned to the epoch.

    The first bucket (chronologically seen) wins ties for the peak.
    """
    size = bucket_minutes * 60
    buckets: dict[int, set[str]] = {}
    for event in events:
        index = int(event.created_at.timestamp() // size)
        buckets.setdefault(index, set()).add(session_key(event))

    if not buckets:
        return PeakStats()

    peak_index, peak = None, 0
    for index, sessions in buckets.items():
        if len(sessions) > peak:
            peak_index, peak = index, len(sessions)

    total = sum(len(s) for s in buckets.values())
    return PeakStats(
        peak_visitors=peak,
        peak_time=datetime.fromtimestamp(peak_index * size, tz=UTC),
        avg_visitors_per_bucket=round_int(total / len(buckets)),
    )
