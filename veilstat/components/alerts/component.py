"""
Alert component - threshold, comparison and anomaly decisions.

evaluate() is a pure function of (alert, state, now, metric source): it
never reads the wall clock and never mutates state. AlertRunner applies
the decision (compare-and-set, history, dispatch).

Invariants:
- Disabled alerts never trigger
- An alert that triggered at T does not trigger again before T + cooldown,
  whatever the metric does; cooldown length is fixed per alert type
- Anomaly detection needs at least two baseline periods
"""

from __future__ import annotations

import statistics
from datetime import datetime, timedelta
from typing import Any

from veilstat.core.services.metrics import round_1dp

from ..query import compare_periods
from .models import (
    Alert,
    AlertConfig,
    AlertOperator,
    AlertState,
    AlertType,
    CompareWith,
    TriggerResult,
)
from .ports import MetricSourcePort

DEFAULT_CONFIG = AlertConfig()

_COMPARE_SHIFTS = {
    CompareWith.PREVIOUS_WEEK: timedelta(days=7),
    CompareWith.PREVIOUS_MONTH: timedelta(days=30),
}

_OPERATOR_SYMBOLS = {
    AlertOperator.GT: ">",
    AlertOperator.LT: "<",
    AlertOperator.GTE: ">=",
    AlertOperator.LTE: "<=",
    AlertOperator.EQ: "==",
    AlertOperator.NE: "!=",
}


def compare_value(value: float, operator: AlertOperator, threshold: float) -> bool:
    if operator == AlertOperator.GT:
        return value > threshold
    if operator == AlertOperator.LT:
        return value < threshold
    if operator == AlertOperator.GTE:
        return value >= threshold
    if operator == AlertOperator.LTE:
        return value <= threshold
    if operator == AlertOperator.EQ:
        return value == threshold
    return value != threshold


def in_cooldown(
    alert: Alert,
    state: AlertState | None,
    now: datetime,
    config: AlertConfig = DEFAULT_CONFIG,
) -> bool:
    if state is None or state.last_triggered_at is None:
        return False
    return now < state.last_triggered_at + config.cooldown_for(alert.type)


def baseline_window(alert: Alert, now: datetime) -> tuple[datetime, datetime]:
    """Comparison window for the alert's compareWith setting."""
    if alert.compare_with == CompareWith.PREVIOUS_PERIOD:
        return now - 2 * alert.period, now - alert.period
    shift = _COMPARE_SHIFTS[alert.compare_with]
    return now - alert.period - shift, now - shift


def anomaly_band(
    baseline: list[float],
    factor: float,
    flat_fraction: float = DEFAULT_CONFIG.flat_baseline_fraction,
) -> tuple[float, float] | None:
    """
    (mean, allowed deviation) for a baseline, or None if too short.

    A flat baseline (zero spread) falls back to factor * flat_fraction of
    the mean, with a floor of 1 so an all-zero history is not hair-trigger.
    """
    if len(baseline) < 2:
        return None
    center = statistics.fmean(baseline)
    spread = statistics.pstdev(baseline)
    if spread > 0:
        return center, factor * spread
    return center, max(1.0, factor * flat_fraction * center)


def _metric(totals: dict[str, Any], name: str) -> float:
    return float(totals.get(name) or 0)


def evaluate(
    alert: Alert,
    state: AlertState | None,
    now: datetime,
    source: MetricSourcePort,
    config: AlertConfig = DEFAULT_CONFIG,
) -> TriggerResult | None:
    """
    Decide whether an alert fires at now.

    Returns:
        TriggerResult when the condition holds and the alert is enabled and
        out of cooldown; None otherwise.
    """
    if not alert.enabled or in_cooldown(alert, state, now, config):
        return None

    current = source.totals_between(alert.site_id, now - alert.period, now)
    value = _metric(current, alert.metric)
    symbol = _OPERATOR_SYMBOLS[alert.operator]

    if alert.type == AlertType.THRESHOLD:
        if not compare_value(value, alert.operator, alert.threshold):
            return None
        return TriggerResult(
            alert_id=alert.id,
            site_id=alert.site_id,
            alert_type=alert.type,
            metric=alert.metric,
            current_value=value,
            reference_value=alert.threshold,
            message=f"{alert.name}: {alert.metric} is {value:g} ({symbol} {alert.threshold:g})",
            triggered_at=now,
        )

    if alert.type == AlertType.COMPARISON:
        start, end = baseline_window(alert, now)
        previous = source.totals_between(alert.site_id, start, end)
        change = compare_periods(current, previous, metrics=(alert.metric,))[alert.metric]
        if not compare_value(change.change_percent, alert.operator, alert.threshold):
            return None
        return TriggerResult(
            alert_id=alert.id,
            site_id=alert.site_id,
            alert_type=alert.type,
            metric=alert.metric,
            current_value=value,
            reference_value=change.previous,
            message=(
                f"{alert.name}: {alert.metric} changed {change.change_percent:+g}% "
                f"vs {alert.compare_with.value} ({symbol} {alert.threshold:g}%)"
            ),
            triggered_at=now,
        )

    baseline = [
        _metric(
            source.totals_between(
                alert.site_id, now - (i + 1) * alert.period, now - i * alert.period
            ),
            alert.metric,
        )
        for i in range(1, config.baseline_periods + 1)
    ]
    band = anomaly_band(
        baseline,
        config.sensitivity_factors[alert.sensitivity],
        config.flat_baseline_fraction,
    )
    if band is None:
        return None
    center, allowed = band
    if abs(value - center) <= allowed:
        return None
    return TriggerResult(
        alert_id=alert.id,
        site_id=alert.site_id,
        alert_type=alert.type,
        metric=alert.metric,
        current_value=value,
        reference_value=round_1dp(center),
        message=(
            f"{alert.name}: {alert.metric} is {value:g}, outside "
            f"{round_1dp(center):g} +/- {round_1dp(allowed):g} ({alert.sensitivity.value})"
        ),
        triggered_at=now,
    )
