"""
Realtime API Routes.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from veilstat.api.deps import get_realtime_tracker
from veilstat.components.realtime import RealtimeTracker

router = APIRouter()


@router.get("")
def get_realtime(
    site_id: str | None = Query(None, alias="siteId"),
    time_window: str | None = Query(None, alias="timeWindow"),
    tracker: RealtimeTracker = Depends(get_realtime_tracker),
) -> dict[str, Any]:
    """Live snapshot over the trailing timeWindow minutes (default 30, max 1440)."""
    tracker.expire_inactive_sessions()
    return tracker.get_realtime(site_id, time_window).to_dict()


@router.get("/sessions")
def get_active_sessions(
    site_id: str = Query(..., alias="siteId"),
    tracker: RealtimeTracker = Depends(get_realtime_tracker),
) -> dict[str, Any]:
    sessions = tracker.get_active_sessions(site_id)
    return {"siteId": site_id, "count": len(sessions), "sessions": [s.to_dict() for s in sessions]}
