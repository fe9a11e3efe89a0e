import math
from datetime import datetime, timedelta
from threading import Lock

from veilstat.adapters.clock import SystemClock
from veilstat.core.ports import TimePort
from veilstat.rules.models import RateLimitRules


class RateLimiter:
    """Sliding-window limiter keyed by caller."""

    def __init__(
        self,
        rules: RateLimitRules | None = None,
        time_port: TimePort | None = None,
    ):
        self.rules = rules if rules is not None else RateLimitRules()
        self._time = time_port if time_port is not None else SystemClock()
        self._history: dict[str, list[datetime]] = {}
        self._lock = Lock()

    def _cleanup(self, key: str, window: int) -> None:
        cutoff = self._time.now_utc() - timedelta(seconds=window)
        if key in self._history:
            self._history[key] = [t for t in self._history[key] if t > cutoff]
            if not self._history[key]:
                del self._history[key]

    def allow_request(self, key: str, window: int, limit: int) -> bool:
        """
        Check if request is allowed.
        If allowed, records the attempt and returns True.
        If denied, returns False.
        """
        if limit <= 0:
            return False

        with self._lock:
            self._cleanup(key, window)
            current_count = len(self._history.get(key, []))

            if current_count >= limit:
                return False

            self._history.setdefault(key, []).append(self._time.now_utc())
            return True

    def retry_after(self, key: str, window: int) -> int:
        """Seconds until the oldest attempt in the window expires (at least 1)."""
        with self._lock:
            self._cleanup(key, window)
            attempts = self._history.get(key)
            if not attempts:
                return 1
            expires = attempts[0] + timedelta(seconds=window)
            remaining = (expires - self._time.now_utc()).total_seconds()
            return max(1, math.ceil(remaining))
