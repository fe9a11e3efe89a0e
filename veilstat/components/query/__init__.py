"""
Query component - Filter/group/order/paginate analytics over stored events.
"""

from ._impl import DEFAULT_CONFIG, QueryConfig, QueryEngine, create_query_engine
from .component import (
    apply_filters,
    build_traffic_rows,
    compare_periods,
    compute_totals,
    day_bounds,
    group_rows,
    matches_filter,
    order_rows,
    paginate,
    parse_order_by,
    parse_query_date,
    project_metrics,
    resolve_period,
    validate_query,
)
from .models import (
    DIMENSIONS,
    METRICS,
    PERIODS,
    FilterOperator,
    MetricChange,
    OrderBy,
    PeriodComparison,
    QueryFilter,
    QueryMetadata,
    QueryRequest,
    QueryResult,
    SortDirection,
    TrafficRow,
    ValidatedQuery,
)

__all__ = [
    "DEFAULT_CONFIG",
    "DIMENSIONS",
    "METRICS",
    "PERIODS",
    "FilterOperator",
    "MetricChange",
    "OrderBy",
    "PeriodComparison",
    "QueryConfig",
    "QueryEngine",
    "QueryFilter",
    "QueryMetadata",
    "QueryRequest",
    "QueryResult",
    "SortDirection",
    "TrafficRow",
    "ValidatedQuery",
    "apply_filters",
    "build_traffic_rows",
    "compare_periods",
    "compute_totals",
    "create_query_engine",
    "day_bounds",
    "group_rows",
    "matches_filter",
    "order_rows",
    "paginate",
    "parse_order_by",
    "parse_query_date",
    "project_metrics",
    "resolve_period",
    "validate_query",
]
