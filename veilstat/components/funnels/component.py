"""
Funnel component - ordered step matching per session.

Invariants:
- Steps must be reached in order; no skipping, no reordering
- Every later step must match within time_window_seconds of the step-1 match
- A session that reaches step k counts toward steps 1..k, so visitor
  counts are monotonically non-increasing
- An attempt whose window lapsed may restart at a later step-1 match;
  each session keeps its furthest attempt (earliest on ties)
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from veilstat.core.entities import StoredEvent
from veilstat.core.ports import EventStorePort
from veilstat.core.services.metrics import mean, percent, round_int

from .models import (
    EventStep,
    Funnel,
    FunnelResult,
    FunnelStep,
    GoalStep,
    MatchType,
    PageviewStep,
    StepStats,
)


# --- Pure Functions (Functional Core) ---


def path_matches(step: PageviewStep, path: str) -> bool:
    if step.match_type == MatchType.EXACT:
        return path == step.path
    if step.match_type == MatchType.PREFIX:
        return path.startswith(step.path)
    if step.match_type == MatchType.CONTAINS:
        return step.path in path
    return re.search(step.path, path) is not None


def step_matches(step: FunnelStep, event: StoredEvent) -> bool:
    """Check whether one event satisfies one step."""
    if isinstance(step, PageviewStep):
        return event.is_pageview and path_matches(step, event.path)
    if isinstance(step, EventStep):
        if event.action != step.action:
            return False
        return step.category is None or event.category == step.category
    if isinstance(step, GoalStep):
        return event.goal_id == step.goal_id
    raise TypeError(f"Unknown funnel step: {step!r}")


@dataclass(frozen=True)
class SessionProgress:
    """Furthest attempt of one session through a funnel."""

    reached: int
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


def match_session(
    events: Sequence[StoredEvent],
    steps: Sequence[FunnelStep],
    window_seconds: int,
) -> SessionProgress:
    """
    Scan one session's events chronologically.

    Returns the furthest attempt; finished_at is set only on completion.
    """
    best = SessionProgress(reached=0)
    pointer = 0
    started_at: datetime | None = None

    for event in events:
        if pointer and started_at is not None:
            elapsed = (event.created_at - started_at).total_seconds()
            if elapsed > window_seconds:
                pointer = 0
                started_at = None

        if pointer and step_matches(steps[pointer], event):
            pointer += 1
            if pointer > best.reached:
                best = SessionProgress(reached=pointer, started_at=started_at)
            if pointer == len(steps):
                return SessionProgress(
                    reached=pointer, started_at=started_at, finished_at=event.created_at
                )
        elif not pointer and step_matches(steps[0], event):
            pointer = 1
            started_at = event.created_at
            if best.reached == 0:
                best = SessionProgress(reached=1, started_at=started_at)

    return best


def compute_step_stats(counts: Sequence[int], names: Sequence[str] | None = None) -> list[StepStats]:
    """
    Drop-off and progress per step from visitor counts.

    Step 1 always has zero drop-off and 100% progress.
    """
    stats: list[StepStats] = []
    first = counts[0] if counts else 0
    for index, visitors in enumerate(counts):
        name = names[index] if names else f"Step {index + 1}"
        if index == 0:
            stats.append(StepStats(index, name, visitors, 0, 0.0, 100.0))
            continue
        previous = counts[index - 1]
        drop_off = previous - visitors
        stats.append(
            StepStats(
                index=index,
                name=name,
                visitors=visitors,
                drop_off=drop_off,
                drop_off_rate=percent(drop_off, previous),
                progress_rate=percent(visitors, first),
            )
        )
    return stats


def evaluate_funnel_events(funnel: Funnel, events: Sequence[StoredEvent]) -> FunnelResult:
    """Evaluate a funnel over events already restricted to one site and period."""
    sessions: dict[str, list[StoredEvent]] = {}
    for event in events:
        if event.session_id is not None:
            sessions.setdefault(event.session_id, []).append(event)

    n_steps = len(funnel.steps)
    counts = [0] * n_steps
    durations: list[float] = []

    for session_events in sessions.values():
        ordered = sorted(session_events, key=lambda e: e.created_at)
        progress = match_session(ordered, funnel.steps, funnel.time_window_seconds)
        for k in range(progress.reached):
            counts[k] += 1
        if progress.reached == n_steps and progress.duration_seconds is not None:
            durations.append(progress.duration_seconds)

    completions = counts[-1] if counts else 0
    return FunnelResult(
        funnel_name=funnel.name,
        steps=tuple(compute_step_stats(counts, [s.label for s in funnel.steps])),
        total_visitors=len(sessions),
        completions=completions,
        conversion_rate=percent(completions, counts[0] if counts else 0),
        avg_time_to_complete=round_int(mean(durations)),
    )


# --- Service ---


class FunnelEvaluator:
    """Reads a site's events for a period and evaluates a funnel over them."""

    def __init__(self, store: EventStorePort) -> None:
        self._store = store

    def evaluate(
        self,
        funnel: Funnel,
        site_id: str,
        start: datetime,
        end: datetime,
    ) -> FunnelResult:
        events = self._store.list_events(site_id, start, end)
        return evaluate_funnel_events(funnel, events)


def run_evaluate_funnel(
    funnel: Funnel,
    site_id: str,
    start: datetime,
    end: datetime,
    *,
    store: EventStorePort,
) -> FunnelResult:
    """Entry point: evaluate one funnel definition for a site and period."""
    return FunnelEvaluator(store).evaluate(funnel, site_id, start, end)
