"""
Funnels component - Sequential step matching and drop-off statistics.
"""

from .component import (
    FunnelEvaluator,
    SessionProgress,
    compute_step_stats,
    evaluate_funnel_events,
    match_session,
    path_matches,
    run_evaluate_funnel,
    step_matches,
)
from .models import (
    MAX_STEPS,
    MIN_STEPS,
    EventStep,
    Funnel,
    FunnelResult,
    FunnelStep,
    GoalStep,
    MatchType,
    PageviewStep,
    StepStats,
    validate_funnel,
)

__all__ = [
    "MAX_STEPS",
    "MIN_STEPS",
    "EventStep",
    "Funnel",
    "FunnelEvaluator",
    "FunnelResult",
    "FunnelStep",
    "GoalStep",
    "MatchType",
    "PageviewStep",
    "SessionProgress",
    "StepStats",
    "compute_step_stats",
    "evaluate_funnel_events",
    "match_session",
    "path_matches",
    "run_evaluate_funnel",
    "step_matches",
    "validate_funnel",
]
