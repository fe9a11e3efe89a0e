"""
QueryEngine - read-only analytics queries over the event store.

Stateless apart from its injected ports; safe to share across requests
and threads.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any

from veilstat.core.ports import EventStorePort, TimePort
from veilstat.rules.models import Rules

from .component import (
    DEFAULT_LIMIT,
    DEFAULT_MAX_LIMIT,
    DEFAULT_MAX_RANGE_DAYS,
    apply_filters,
    build_traffic_rows,
    compare_periods,
    compute_totals,
    day_bounds,
    group_rows,
    order_rows,
    paginate,
    project_metrics,
    validate_query,
)
from .models import PeriodComparison, QueryMetadata, QueryRequest, QueryResult, ValidatedQuery


@dataclass(frozen=True)
class QueryConfig:
    """Query engine limits."""

    max_range_days: int = DEFAULT_MAX_RANGE_DAYS
    default_limit: int = DEFAULT_LIMIT
    max_limit: int = DEFAULT_MAX_LIMIT

    @classmethod
    def from_rules(cls, rules: Rules) -> QueryConfig:
        return cls(
            max_range_days=rules.query.max_range_days,
            default_limit=rules.query.default_limit,
            max_limit=rules.query.max_limit,
        )


DEFAULT_CONFIG = QueryConfig()


class QueryEngine:
    """Executes validated queries against the event store."""

    def __init__(
        self,
        store: EventStorePort,
        clock: TimePort,
        config: QueryConfig = DEFAULT_CONFIG,
    ) -> None:
        self._store = store
        self._clock = clock
        self._config = config

    def validate(self, request: QueryRequest) -> ValidatedQuery:
        return validate_query(
            request,
            today=self._clock.now_utc().date(),
            max_range_days=self._config.max_range_days,
            default_limit=self._config.default_limit,
            max_limit=self._config.max_limit,
        )

    def execute(self, request: QueryRequest) -> QueryResult:
        """
        Run one query.

        Raises:
            ValidationError: every violation in the request, aggregated
        """
        return self._run(self.validate(request))

    def _run(self, query: ValidatedQuery) -> QueryResult:
        start, end = day_bounds(query.start, query.end)
        rows = build_traffic_rows(self._store.list_events(query.site_id, start, end))

        filtered = apply_filters(rows, query.filters)
        totals = compute_totals(filtered)

        if query.group_by:
            results = group_rows(filtered, query.group_by)
        else:
            results = [row.to_dict() for row in filtered]

        if query.order_by:
            results = order_rows(results, query.order_by)

        page, has_more = paginate(results, query.limit, query.offset)
        if query.metrics:
            page = [project_metrics(row, query.metrics) for row in page]

        return QueryResult(
            rows=page,
            totals=totals,
            metadata=QueryMetadata(
                start_date=query.start.isoformat(),
                end_date=query.end.isoformat(),
                total_rows=len(results),
                has_more=has_more,
                limit=query.limit,
                offset=query.offset,
                group_by=query.group_by,
            ),
        )

    def totals_between(self, site_id: str, start: datetime, end: datetime) -> dict[str, Any]:
        """Unfiltered totals for an arbitrary half-open datetime window."""
        rows = build_traffic_rows(self._store.list_events(site_id, start, end))
        return compute_totals(rows)

    def compare(
        self,
        current: QueryRequest,
        previous: QueryRequest | None = None,
    ) -> PeriodComparison:
        """
        Compare totals of two independent queries.

        When previous is omitted, the window of equal length immediately
        before the current one is used.
        """
        current_query = self.validate(current)
        if previous is None:
            length = current_query.end - current_query.start + timedelta(days=1)
            previous_query = replace(
                current_query,
                start=current_query.start - length,
                end=current_query.start - timedelta(days=1),
            )
        else:
            previous_query = self.validate(previous)

        current_result = self._run(current_query)
        previous_result = self._run(previous_query)
        return PeriodComparison(
            current=current_result.totals,
            previous=previous_result.totals,
            changes=compare_periods(current_result.totals, previous_result.totals),
        )


def create_query_engine(
    store: EventStorePort,
    clock: TimePort,
    rules: Rules | None = None,
) -> QueryEngine:
    """Factory for QueryEngine."""
    config = QueryConfig.from_rules(rules) if rules is not None else DEFAULT_CONFIG
    return QueryEngine(store, clock, config)
