"""
Alert component port definitions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from veilstat.core.ports import TimePort

from .models import AlertState, Channel, TriggerResult


class MetricSourcePort(Protocol):
    """Totals for a site over a half-open datetime window (QueryEngine)."""

    def totals_between(self, site_id: str, start: datetime, end: datetime) -> dict[str, Any]:
        ...


class AlertStateRepoPort(Protocol):
    """
    Trigger state and history storage.

    Invariants:
    - try_mark_triggered is a compare-and-set: of two overlapping callers
      inside one cooldown window exactly one succeeds
    - History is append-only
    """

    def get(self, alert_id: str) -> AlertState | None:
        ...

    def try_mark_triggered(self, alert_id: str, now: datetime, not_after: datetime) -> bool:
        """
        Record a trigger at now if the last trigger is absent or <= not_after.

        Returns:
            True if this caller recorded the trigger
        """
        ...

    def append_history(self, trigger: TriggerResult) -> None:
        ...

    def list_history(self, alert_id: str) -> list[TriggerResult]:
        ...


class NotifierPort(Protocol):
    """Delivers one trigger to one channel. Raises on delivery failure."""

    def send(self, trigger: TriggerResult, channel: Channel) -> None:
        ...


__all__ = [
    "AlertStateRepoPort",
    "MetricSourcePort",
    "NotifierPort",
    "TimePort",
]
