"""
Realtime component - Live sessions and trailing-window activity snapshots.
"""

from ._impl import (
    DEFAULT_CONFIG,
    InMemorySessionStore,
    RealtimeTracker,
    config_from_rules,
    create_realtime_tracker,
)
from .component import (
    peak_buckets,
    session_key,
    session_metrics,
    top_by_sessions,
    validate_time_window,
)
from .models import (
    MAX_WINDOW_MINUTES,
    ActiveSession,
    PeakStats,
    RealtimeConfig,
    RealtimeMetrics,
    RealtimeSnapshot,
    SiteShard,
    TopItem,
)
from .ports import SessionStorePort

__all__ = [
    "DEFAULT_CONFIG",
    "MAX_WINDOW_MINUTES",
    "ActiveSession",
    "InMemorySessionStore",
    "PeakStats",
    "RealtimeConfig",
    "RealtimeMetrics",
    "RealtimeSnapshot",
    "RealtimeTracker",
    "SessionStorePort",
    "SiteShard",
    "TopItem",
    "config_from_rules",
    "create_realtime_tracker",
    "peak_buckets",
    "session_key",
    "session_metrics",
    "top_by_sessions",
    "validate_time_window",
]
