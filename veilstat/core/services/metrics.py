"""
Numeric helpers shared by query, funnel, alert and realtime evaluators.

Rounding is half-up (2.5 -> 3), matching what dashboards display,
rather than Python's round-half-to-even.
"""

from __future__ import annotations

import math
from collections.abc import Iterable


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round half away from zero."""
    factor = 10**ndigits
    sign = -1 if value < 0 else 1
    # + 0.0 folds -0.0 into 0.0
    return sign * math.floor(abs(value) * factor + 0.5) / factor + 0.0


def round_int(value: float) -> int:
    return int(round_half_up(value))


def round_1dp(value: float) -> float:
    return round_half_up(value, 1)


def mean(values: Iterable[float]) -> float:
    """Arithmetic mean; 0.0 for an empty input."""
    items = list(values)
    if not items:
        return 0.0
    return sum(items) / len(items)


def percent(part: float, whole: float) -> float:
    """part / whole * 100, rounded to one decimal; 0.0 when whole is 0."""
    if not whole:
        return 0.0
    return round_1dp(part / whole * 100)
