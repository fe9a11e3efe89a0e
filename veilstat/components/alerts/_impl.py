"""
AlertRunner - applies alert decisions.

Key behaviors:
- Compare-and-set on trigger state so overlapping ticks notify once
- History is appended before any channel is contacted
- Each channel is isolated: one failing notifier never blocks the others
- One failing alert never blocks evaluation of the rest of the tick, whether
  it fails while evaluating or while saving its trigger
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta
from threading import Lock

from veilstat.core.ports import TimePort
from veilstat.rules.models import Rules

from .component import DEFAULT_CONFIG, evaluate
from .models import (
    Alert,
    AlertConfig,
    AlertState,
    ChannelKind,
    Sensitivity,
    TriggerResult,
)
from .ports import AlertStateRepoPort, MetricSourcePort, NotifierPort

logger = logging.getLogger(__name__)


def config_from_rules(rules: Rules) -> AlertConfig:
    """Build AlertConfig from the rules file."""
    section = rules.alerts
    return AlertConfig(
        threshold_cooldown=timedelta(minutes=section.cooldown_minutes.threshold),
        comparison_cooldown=timedelta(minutes=section.cooldown_minutes.comparison),
        anomaly_cooldown=timedelta(minutes=section.cooldown_minutes.anomaly),
        sensitivity_factors={
            Sensitivity.LOW: section.sensitivity.low,
            Sensitivity.MEDIUM: section.sensitivity.medium,
            Sensitivity.HIGH: section.sensitivity.high,
        },
        baseline_periods=section.baseline_periods,
    )


class InMemoryAlertStateRepo:
    """In-memory trigger state for testing/dev."""

    def __init__(self) -> None:
        self._states: dict[str, AlertState] = {}
        self._history: list[TriggerResult] = []
        self._lock = Lock()

    def get(self, alert_id: str) -> AlertState | None:
        with self._lock:
            return self._states.get(alert_id)

    def try_mark_triggered(self, alert_id: str, now: datetime, not_after: datetime) -> bool:
        with self._lock:
            state = self._states.get(alert_id)
            if state is not None and state.last_triggered_at is not None:
                if state.last_triggered_at > not_after:
                    return False
            count = state.trigger_count if state else 0
            self._states[alert_id] = AlertState(alert_id, now, count + 1)
            return True

    def append_history(self, trigger: TriggerResult) -> None:
        with self._lock:
            self._history.append(trigger)

    def list_history(self, alert_id: str) -> list[TriggerResult]:
        with self._lock:
            return [t for t in self._history if t.alert_id == alert_id]


class AlertRunner:
    """Evaluates a set of alerts once per tick."""

    def __init__(
        self,
        source: MetricSourcePort,
        state_repo: AlertStateRepoPort,
        clock: TimePort,
        notifiers: Mapping[ChannelKind, NotifierPort] | None = None,
        config: AlertConfig = DEFAULT_CONFIG,
    ) -> None:
        self._source = source
        self._state_repo = state_repo
        self._clock = clock
        self._notifiers = dict(notifiers or {})
        self._config = config

    def evaluate_one(self, alert: Alert, now: datetime | None = None) -> TriggerResult | None:
        """Dry-run decision for one alert; no state is changed."""
        now = now or self._clock.now_utc()
        return evaluate(alert, self._state_repo.get(alert.id), now, self._source, self._config)

    def run_tick(
        self,
        alerts: Sequence[Alert],
        now: datetime | None = None,
    ) -> list[TriggerResult]:
        """
        Evaluate every alert and apply triggers.

        Returns:
            Triggers recorded by this tick
        """
        now = now or self._clock.now_utc()
        fired: list[TriggerResult] = []

        for alert in alerts:
            try:
                result = self.evaluate_one(alert, now)
            except Exception:
                logger.exception("Alert %s evaluation failed", alert.id)
                continue

            if result is None:
                logger.debug("Alert %s did not trigger", alert.id)
                continue

            cooldown = self._config.cooldown_for(alert.type)
            try:
                marked = self._state_repo.try_mark_triggered(alert.id, now, now - cooldown)
            except Exception:
                logger.exception("Alert %s: trigger state could not be saved", alert.id)
                continue
            if not marked:
                logger.debug("Alert %s already triggered by a concurrent tick", alert.id)
                continue

            logger.info("Alert %s triggered: %s", alert.id, result.message)
            try:
                self._state_repo.append_history(result)
            except Exception:
                # Cooldown is already claimed; channels are still notified
                logger.exception("Alert %s: trigger history could not be saved", alert.id)
            self._dispatch(alert, result)
            fired.append(result)

        return fired

    def _dispatch(self, alert: Alert, result: TriggerResult) -> None:
        for channel in alert.channels:
            notifier = self._notifiers.get(channel.kind)
            if notifier is None:
                logger.warning("Alert %s: no notifier for channel %s", alert.id, channel.kind.value)
                continue
            try:
                notifier.send(result, channel)
            except Exception as e:
                logger.error(
                    "Alert %s: %s notification failed: %s", alert.id, channel.kind.value, e
                )


def create_alert_runner(
    source: MetricSourcePort,
    state_repo: AlertStateRepoPort,
    clock: TimePort,
    notifiers: Mapping[ChannelKind, NotifierPort] | None = None,
    rules: Rules | None = None,
) -> AlertRunner:
    """Factory for AlertRunner."""
    config = config_from_rules(rules) if rules is not None else DEFAULT_CONFIG
    return AlertRunner(source, state_repo, clock, notifiers, config)
