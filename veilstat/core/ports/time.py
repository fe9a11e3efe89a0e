from __future__ import annotations

from datetime import datetime
from typing import Protocol


class TimePort(Protocol):
    """Time provider interface. All values are timezone-aware UTC."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...
