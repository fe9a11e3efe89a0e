"""
Alerts component - Threshold/comparison/anomaly evaluation with cooldowns.
"""

from ._impl import (
    AlertRunner,
    InMemoryAlertStateRepo,
    config_from_rules,
    create_alert_runner,
)
from .component import (
    DEFAULT_CONFIG,
    anomaly_band,
    baseline_window,
    compare_value,
    evaluate,
    in_cooldown,
)
from .models import (
    ALERT_METRICS,
    Alert,
    AlertConfig,
    AlertOperator,
    AlertState,
    AlertType,
    Channel,
    ChannelKind,
    CompareWith,
    Sensitivity,
    TriggerResult,
    parse_period,
)
from .ports import AlertStateRepoPort, MetricSourcePort, NotifierPort

__all__ = [
    "ALERT_METRICS",
    "DEFAULT_CONFIG",
    "Alert",
    "AlertConfig",
    "AlertOperator",
    "AlertRunner",
    "AlertState",
    "AlertStateRepoPort",
    "AlertType",
    "Channel",
    "ChannelKind",
    "CompareWith",
    "InMemoryAlertStateRepo",
    "MetricSourcePort",
    "NotifierPort",
    "Sensitivity",
    "TriggerResult",
    "anomaly_band",
    "baseline_window",
    "compare_value",
    "config_from_rules",
    "create_alert_runner",
    "evaluate",
    "in_cooldown",
    "parse_period",
]
