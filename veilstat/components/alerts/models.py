"""
Alert component input/output models.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any
from uuid import uuid4

from veilstat.core.errors import FieldError, ValidationError

ALERT_METRICS: tuple[str, ...] = (
    "pageViews",
    "uniqueVisitors",
    "sessions",
    "bounceRate",
    "avgSessionDuration",
)

_PERIOD_RE = re.compile(r"^(\d+)([mhdw])$")
_PERIOD_UNITS = {"m": "minutes", "h": "hours", "d": "days", "w": "weeks"}


class AlertType(str, Enum):
    THRESHOLD = "threshold"
    COMPARISON = "comparison"
    ANOMALY = "anomaly"


class AlertOperator(str, Enum):
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    EQ = "eq"
    NE = "ne"


class CompareWith(str, Enum):
    PREVIOUS_PERIOD = "previous_period"
    PREVIOUS_WEEK = "previous_week"
    PREVIOUS_MONTH = "previous_month"


class Sensitivity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ChannelKind(str, Enum):
    LOG = "log"
    WEBHOOK = "webhook"


def parse_period(value: str) -> timedelta | None:
    """'30m', '1h', '7d', '2w' -> timedelta; None if malformed or zero."""
    match = _PERIOD_RE.match(value.strip()) if isinstance(value, str) else None
    if not match or int(match.group(1)) == 0:
        return None
    return timedelta(**{_PERIOD_UNITS[match.group(2)]: int(match.group(1))})


@dataclass(frozen=True)
class Channel:
    kind: ChannelKind
    target: str | None = None


@dataclass(frozen=True)
class Alert:
    """
    Alert definition.

    Owned externally; this core only reads it and updates trigger state.
    """

    id: str
    site_id: str
    name: str
    type: AlertType
    metric: str
    operator: AlertOperator
    threshold: float
    period: timedelta
    compare_with: CompareWith = CompareWith.PREVIOUS_PERIOD
    sensitivity: Sensitivity = Sensitivity.MEDIUM
    enabled: bool = True
    channels: tuple[Channel, ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> Alert:
        """
        Parse a camelCase alert definition.

        Raises:
            ValidationError: every malformed field
        """
        if not isinstance(data, dict):
            raise ValidationError([FieldError("invalid_alert", "alert must be an object", "alert")])

        errors: list[FieldError] = []

        def enum_field(enum_cls: type[Enum], key: str, default: Any = None) -> Any:
            raw = data.get(key, default)
            try:
                return enum_cls(raw)
            except ValueError:
                allowed = ", ".join(str(m.value) for m in enum_cls)
                errors.append(FieldError(f"invalid_{key}", f"{key} must be one of {allowed}", key))
                return None

        site_id = data.get("siteId")
        if not isinstance(site_id, str) or not site_id:
            errors.append(FieldError("site_id_required", "siteId is required", "siteId"))

        alert_type = enum_field(AlertType, "type")
        operator = enum_field(AlertOperator, "operator", "gt")
        compare_with = enum_field(CompareWith, "compareWith", "previous_period")
        sensitivity = enum_field(Sensitivity, "sensitivity", "medium")

        metric = data.get("metric")
        if metric not in ALERT_METRICS:
            errors.append(
                FieldError("invalid_metric", f"metric must be one of {', '.join(ALERT_METRICS)}", "metric")
            )

        threshold = data.get("threshold", 0)
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
            errors.append(FieldError("invalid_threshold", "threshold must be numeric", "threshold"))

        period = parse_period(data.get("period", "24h"))
        if period is None:
            errors.append(
                FieldError("invalid_period", "period must look like 30m, 1h, 7d or 2w", "period")
            )

        channels: list[Channel] = []
        raw_channels = data.get("channels", [])
        if not isinstance(raw_channels, list):
            errors.append(FieldError("invalid_channels", "channels must be a list", "channels"))
            raw_channels = []
        for index, raw in enumerate(raw_channels):
            try:
                kind = ChannelKind(raw.get("type") if isinstance(raw, dict) else None)
            except ValueError:
                errors.append(
                    FieldError("invalid_channel", f"channels[{index}]: unknown type", f"channels[{index}]")
                )
                continue
            target = raw.get("url") or raw.get("target")
            if kind == ChannelKind.WEBHOOK and not target:
                errors.append(
                    FieldError("invalid_channel", f"channels[{index}]: url is required", f"channels[{index}]")
                )
                continue
            channels.append(Channel(kind=kind, target=target))

        if errors:
            raise ValidationError(errors)

        return cls(
            id=str(data.get("id") or uuid4().hex),
            site_id=site_id,
            name=str(data.get("name") or f"{alert_type.value} {metric}"),
            type=alert_type,
            metric=metric,
            operator=operator,
            threshold=float(threshold),
            period=period,
            compare_with=compare_with,
            sensitivity=sensitivity,
            enabled=bool(data.get("enabled", True)),
            channels=tuple(channels),
        )


@dataclass(frozen=True)
class AlertState:
    """Mutable trigger state, persisted separately from the definition."""

    alert_id: str
    last_triggered_at: datetime | None = None
    trigger_count: int = 0


@dataclass(frozen=True)
class TriggerResult:
    """A positive alert decision."""

    alert_id: str
    site_id: str
    alert_type: AlertType
    metric: str
    current_value: float
    reference_value: float | None
    message: str
    triggered_at: datetime
    id: str = field(default_factory=lambda: uuid4().hex)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "alertId": self.alert_id,
            "siteId": self.site_id,
            "type": self.alert_type.value,
            "metric": self.metric,
            "currentValue": self.current_value,
            "referenceValue": self.reference_value,
            "message": self.message,
            "triggeredAt": self.triggered_at.isoformat(),
        }


@dataclass(frozen=True)
class AlertConfig:
    """Cooldowns, sensitivity bands and baseline depth."""

    threshold_cooldown: timedelta = timedelta(hours=1)
    comparison_cooldown: timedelta = timedelta(hours=24)
    anomaly_cooldown: timedelta = timedelta(hours=6)
    sensitivity_factors: dict[Sensitivity, float] = field(
        default_factory=lambda: {
            Sensitivity.LOW: 3.0,
            Sensitivity.MEDIUM: 2.0,
            Sensitivity.HIGH: 1.5,
        }
    )
    baseline_periods: int = 7
    # Band used when the baseline has zero spread, as a fraction of its mean
    flat_baseline_fraction: float = 0.1

    def cooldown_for(self, alert_type: AlertType) -> timedelta:
        if alert_type == AlertType.THRESHOLD:
            return self.threshold_cooldown
        if alert_type == AlertType.COMPARISON:
            return self.comparison_cooldown
        return self.anomaly_cooldown
