"""
Funnel component input/output models.

Steps form a closed union: PageviewStep | EventStep | GoalStep.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from veilstat.core.errors import FieldError, ValidationError

MIN_STEPS = 2
MAX_STEPS = 10


class MatchType(str, Enum):
    """How a pageview step compares its path."""

    EXACT = "exact"
    PREFIX = "prefix"
    CONTAINS = "contains"
    REGEX = "regex"


@dataclass(frozen=True)
class PageviewStep:
    path: str
    match_type: MatchType = MatchType.EXACT
    name: str | None = None

    @property
    def label(self) -> str:
        return self.name or self.path


@dataclass(frozen=True)
class EventStep:
    action: str
    category: str | None = None
    name: str | None = None

    @property
    def label(self) -> str:
        return self.name or (f"{self.category}:{self.action}" if self.category else self.action)


@dataclass(frozen=True)
class GoalStep:
    goal_id: str
    name: str | None = None

    @property
    def label(self) -> str:
        return self.name or f"goal:{self.goal_id}"


FunnelStep = Union[PageviewStep, EventStep, GoalStep]


@dataclass(frozen=True)
class Funnel:
    """Read-only funnel definition owned by an external management surface."""

    name: str
    steps: tuple[FunnelStep, ...]
    time_window_seconds: int
    id: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> Funnel:
        """
        Parse a camelCase funnel definition.

        Raises:
            ValidationError: malformed definition (all problems reported)
        """
        if not isinstance(data, dict):
            raise ValidationError(
                [FieldError("invalid_funnel", "funnel must be an object", "funnel")]
            )

        errors: list[FieldError] = []
        raw_steps = data.get("steps")
        steps: list[FunnelStep] = []
        if not isinstance(raw_steps, list):
            errors.append(FieldError("invalid_steps", "steps must be a list", "steps"))
        else:
            for index, raw in enumerate(raw_steps):
                step = _parse_step(raw, index, errors)
                if step is not None:
                    steps.append(step)

        window = data.get("timeWindow")
        if isinstance(window, bool) or not isinstance(window, (int, float)):
            errors.append(
                FieldError("invalid_time_window", "timeWindow must be a number of seconds", "timeWindow")
            )
            window = 0

        if errors:
            raise ValidationError(errors)

        funnel = cls(
            name=str(data.get("name") or "Funnel"),
            steps=tuple(steps),
            time_window_seconds=int(window),
            id=data.get("id"),
        )
        funnel_errors = validate_funnel(funnel)
        if funnel_errors:
            raise ValidationError(funnel_errors)
        return funnel


def _parse_step(raw: Any, index: int, errors: list[FieldError]) -> FunnelStep | None:
    field_name = f"steps[{index}]"
    if not isinstance(raw, dict):
        errors.append(FieldError("invalid_step", f"{field_name} must be an object", field_name))
        return None

    kind = raw.get("type")
    name = raw.get("name")
    if kind == "pageview":
        path = raw.get("path")
        if not isinstance(path, str) or not path:
            errors.append(FieldError("step_path_required", f"{field_name}: path is required", field_name))
            return None
        try:
            match_type = MatchType(raw.get("matchType", "exact"))
        except ValueError:
            errors.append(
                FieldError("invalid_match_type", f"{field_name}: unknown matchType", field_name)
            )
            return None
        return PageviewStep(path=path, match_type=match_type, name=name)

    if kind == "event":
        action = raw.get("action")
        if not isinstance(action, str) or not action:
            errors.append(
                FieldError("step_action_required", f"{field_name}: action is required", field_name)
            )
            return None
        return EventStep(action=action, category=raw.get("category"), name=name)

    if kind == "goal":
        goal_id = raw.get("goalId")
        if not isinstance(goal_id, str) or not goal_id:
            errors.append(
                FieldError("step_goal_required", f"{field_name}: goalId is required", field_name)
            )
            return None
        return GoalStep(goal_id=goal_id, name=name)

    errors.append(
        FieldError("invalid_step_type", f"{field_name}: unknown step type '{kind}'", field_name)
    )
    return None


def validate_funnel(funnel: Funnel) -> list[FieldError]:
    """Step count within bounds, positive window, compilable regexes."""
    errors: list[FieldError] = []
    if not MIN_STEPS <= len(funnel.steps) <= MAX_STEPS:
        errors.append(
            FieldError(
                "invalid_step_count",
                f"A funnel needs between {MIN_STEPS} and {MAX_STEPS} steps",
                "steps",
            )
        )
    if funnel.time_window_seconds <= 0:
        errors.append(
            FieldError("invalid_time_window", "timeWindow must be positive", "timeWindow")
        )
    for index, step in enumerate(funnel.steps):
        if isinstance(step, PageviewStep) and step.match_type == MatchType.REGEX:
            try:
                re.compile(step.path)
            except re.error:
                errors.append(
                    FieldError("invalid_regex", f"steps[{index}]: invalid regex", f"steps[{index}]")
                )
    return errors


# --- Outputs ---


@dataclass(frozen=True)
class StepStats:
    index: int
    name: str
    visitors: int
    drop_off: int
    drop_off_rate: float
    progress_rate: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.index + 1,
            "name": self.name,
            "visitors": self.visitors,
            "dropOff": self.drop_off,
            "dropOffRate": self.drop_off_rate,
            "progressRate": self.progress_rate,
        }


@dataclass(frozen=True)
class FunnelResult:
    funnel_name: str
    steps: tuple[StepStats, ...]
    total_visitors: int
    completions: int
    conversion_rate: float
    avg_time_to_complete: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "funnel": self.funnel_name,
            "steps": [s.to_dict() for s in self.steps],
            "totalVisitors": self.total_visitors,
            "completions": self.completions,
            "conversionRate": self.conversion_rate,
            "avgTimeToComplete": self.avg_time_to_complete,
        }
