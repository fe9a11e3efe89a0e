"""
Query component - roll-up, filter, group, order and paginate stored events.

Processing order:
1. Roll events in range up into daily traffic rows
2. Filter rows by the AND of all predicates
3. Totals over the filtered rows (before grouping/pagination)
4. Optional grouping by one dimension
5. Optional ordering by "field:direction" (stable)
6. Pagination

Invariants:
- Totals never depend on limit/offset
- Ordering is stable: equal keys keep input order in both directions
- bounceRate is always within [0, 100]
- changePercent is 0.0 when the previous value is 0 (never NaN/Infinity)
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

from veilstat.core.entities import StoredEvent
from veilstat.core.errors import FieldError, ValidationError
from veilstat.core.services.metrics import mean, percent, round_1dp, round_int

from .models import (
    DIMENSIONS,
    METRICS,
    PERIODS,
    FilterOperator,
    MetricChange,
    OrderBy,
    QueryFilter,
    QueryRequest,
    SortDirection,
    TrafficRow,
    ValidatedQuery,
)

DEFAULT_MAX_RANGE_DAYS = 90
DEFAULT_LIMIT = 100
DEFAULT_MAX_LIMIT = 1000

NUMERIC_OPERATORS = frozenset(
    {FilterOperator.GT, FilterOperator.LT, FilterOperator.GTE, FilterOperator.LTE}
)

_ORDER_BY_RE = re.compile(r"^([A-Za-z_]+)(?::([A-Za-z]+))?$")


# --- Dates ---


def parse_query_date(value: Any) -> date | None:
    """Parse YYYY-MM-DD or an ISO-8601 datetime; None if unparseable."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def resolve_period(period: str, today: date) -> tuple[date, date]:
    """Server-built date range for a period enum value."""
    days = PERIODS[period]
    return today - timedelta(days=days), today


def day_bounds(start: date, end: date) -> tuple[datetime, datetime]:
    """Inclusive date range -> half-open UTC datetime range."""
    return (
        datetime.combine(start, time.min, tzinfo=UTC),
        datetime.combine(end + timedelta(days=1), time.min, tzinfo=UTC),
    )


# --- Validation ---


def _coerce_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and re.fullmatch(r"-?\d+", value.strip()):
        return int(value)
    return None


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_order_by(value: str) -> OrderBy | None:
    match = _ORDER_BY_RE.match(value.strip())
    if not match:
        return None
    direction = (match.group(2) or "desc").lower()
    if direction not in ("asc", "desc"):
        return None
    return OrderBy(field=match.group(1), direction=SortDirection(direction))


def _validate_filters(raw: Any, errors: list[FieldError]) -> tuple[QueryFilter, ...]:
    if not isinstance(raw, list):
        errors.append(FieldError("invalid_filters", "filters must be a list", "filters"))
        return ()

    known = set(DIMENSIONS) | set(METRICS)
    filters: list[QueryFilter] = []
    for index, item in enumerate(raw):
        name = f"filters[{index}]"
        if not isinstance(item, dict):
            errors.append(FieldError("invalid_filter", f"{name} must be an object", name))
            continue
        dimension = item.get("dimension")
        op_value = item.get("operator")
        value = item.get("value")
        valid = True
        if not isinstance(dimension, str) or dimension not in known:
            errors.append(
                FieldError("unknown_dimension", f"Unknown filter dimension: {dimension}", name)
            )
            valid = False
        try:
            operator = FilterOperator(op_value)
        except ValueError:
            errors.append(
                FieldError("unknown_operator", f"Unknown filter operator: {op_value}", name)
            )
            continue
        if operator == FilterOperator.IN and not isinstance(value, list):
            errors.append(
                FieldError("invalid_filter_value", f"{name}: 'in' requires a list", name)
            )
            valid = False
        elif operator in NUMERIC_OPERATORS and _to_number(value) is None:
            errors.append(
                FieldError(
                    "invalid_filter_value",
                    f"{name}: '{operator.value}' requires a numeric value",
                    name,
                )
            )
            valid = False
        if valid:
            filters.append(QueryFilter(str(dimension), operator, value))
    return tuple(filters)


def validate_query(
    request: QueryRequest,
    today: date,
    max_range_days: int = DEFAULT_MAX_RANGE_DAYS,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = DEFAULT_MAX_LIMIT,
) -> ValidatedQuery:
    """
    Validate a raw query, reporting every violation at once.

    Order: required fields -> date parse -> start <= end -> span ->
    limit/offset -> metrics -> filters/groupBy/orderBy.

    Raises:
        ValidationError: with one FieldError per violation
    """
    errors: list[FieldError] = []

    site_id = request.site_id
    if not site_id or not isinstance(site_id, str):
        errors.append(FieldError("site_id_required", "siteId is required", "siteId"))

    explicit = request.start_date is not None or request.end_date is not None
    from_period = False
    start: date | None = None
    end: date | None = None

    if not explicit and request.period is not None:
        if not isinstance(request.period, str) or request.period not in PERIODS:
            errors.append(
                FieldError(
                    "invalid_period",
                    f"period must be one of {', '.join(PERIODS)}",
                    "period",
                )
            )
        else:
            start, end = resolve_period(request.period, today)
            from_period = True
    else:
        if not request.start_date:
            errors.append(FieldError("start_date_required", "startDate is required", "startDate"))
        if not request.end_date:
            errors.append(FieldError("end_date_required", "endDate is required", "endDate"))
        if request.start_date:
            start = parse_query_date(request.start_date)
            if start is None:
                errors.append(FieldError("invalid_date", "Invalid date format", "startDate"))
        if request.end_date:
            end = parse_query_date(request.end_date)
            if end is None:
                errors.append(FieldError("invalid_date", "Invalid date format", "endDate"))

    if start is not None and end is not None:
        if start > end:
            errors.append(
                FieldError("invalid_range", "startDate must be before endDate", "dateRange")
            )
        elif not from_period and (end - start).days > max_range_days:
            errors.append(
                FieldError(
                    "range_too_large",
                    f"Date range cannot exceed {max_range_days} days",
                    "dateRange",
                )
            )

    limit = default_limit
    if request.limit is not None:
        parsed_limit = _coerce_int(request.limit)
        if parsed_limit is None or parsed_limit <= 0:
            errors.append(FieldError("invalid_limit", "Limit must be positive", "limit"))
        elif parsed_limit > max_limit:
            errors.append(
                FieldError("invalid_limit", f"Limit cannot exceed {max_limit}", "limit")
            )
        else:
            limit = parsed_limit

    offset = 0
    if request.offset is not None:
        parsed_offset = _coerce_int(request.offset)
        if parsed_offset is None or parsed_offset < 0:
            errors.append(FieldError("invalid_offset", "Offset cannot be negative", "offset"))
        else:
            offset = parsed_offset

    metrics: tuple[str, ...] | None = None
    if request.metrics is not None:
        if not isinstance(request.metrics, list) or not request.metrics:
            errors.append(
                FieldError("metrics_required", "At least one metric is required", "metrics")
            )
        else:
            unknown = [m for m in request.metrics if m not in METRICS]
            if unknown:
                errors.append(
                    FieldError(
                        "unknown_metric",
                        f"Unknown metric(s): {', '.join(map(str, unknown))}",
                        "metrics",
                    )
                )
            else:
                metrics = tuple(request.metrics)

    filters: tuple[QueryFilter, ...] = ()
    if request.filters is not None:
        filters = _validate_filters(request.filters, errors)

    group_by: str | None = None
    if request.group_by is not None:
        if not isinstance(request.group_by, str) or request.group_by not in DIMENSIONS:
            errors.append(
                FieldError("unknown_dimension", f"Unknown groupBy: {request.group_by}", "groupBy")
            )
        else:
            group_by = request.group_by

    order_by: OrderBy | None = None
    if request.order_by is not None:
        parsed = parse_order_by(request.order_by) if isinstance(request.order_by, str) else None
        sortable = ({group_by} if group_by else set(DIMENSIONS)) | set(METRICS)
        if parsed is None or parsed.field not in sortable:
            errors.append(
                FieldError(
                    "invalid_order_by",
                    f"orderBy must be <field>:<asc|desc> over {', '.join(sorted(sortable))}",
                    "orderBy",
                )
            )
        else:
            order_by = parsed

    if errors or start is None or end is None:
        raise ValidationError(errors)

    return ValidatedQuery(
        site_id=site_id,
        start=start,
        end=end,
        metrics=metrics,
        filters=filters,
        group_by=group_by,
        order_by=order_by,
        limit=limit,
        offset=offset,
    )


# --- Roll-up ---


def _session_stats(events: Sequence[StoredEvent]) -> dict[str, tuple[int, float]]:
    """session id -> (pageview count, duration seconds first..last event)."""
    counts: dict[str, int] = {}
    first: dict[str, datetime] = {}
    last: dict[str, datetime] = {}
    for event in events:
        sid = event.session_id
        if sid is None:
            continue
        if sid not in first or event.created_at < first[sid]:
            first[sid] = event.created_at
        if sid not in last or event.created_at > last[sid]:
            last[sid] = event.created_at
        if event.is_pageview:
            counts[sid] = counts.get(sid, 0) + 1
    return {
        sid: (counts.get(sid, 0), (last[sid] - first[sid]).total_seconds())
        for sid in first
    }


def build_traffic_rows(events: Sequence[StoredEvent]) -> list[TrafficRow]:
    """
    Roll pageview events up into daily rows, one per dimension combination.

    Session-scoped metrics (bounce, duration) consider every event of the
    session within the supplied events, not only those in the row.
    """
    stats = _session_stats(events)
    groups: dict[tuple[Any, ...], dict[str, Any]] = {}

    for event in events:
        if not event.is_pageview:
            continue
        dims = {
            name: (
                event.created_at.date().isoformat()
                if attr == "date"
                else getattr(event, attr)
            )
            for name, attr in DIMENSIONS.items()
        }
        key = tuple(dims.values())
        acc = groups.get(key)
        if acc is None:
            acc = {"dims": dims, "page_views": 0, "sessions": {}, "visitors": set()}
            groups[key] = acc
        acc["page_views"] += 1
        acc["visitors"].add(event.visitor_id)
        if event.session_id is not None:
            acc["sessions"][event.session_id] = None

    rows: list[TrafficRow] = []
    for acc in groups.values():
        session_ids = list(acc["sessions"])
        bounces = sum(1 for sid in session_ids if stats[sid][0] == 1)
        durations = [stats[sid][1] for sid in session_ids]
        rows.append(
            TrafficRow(
                dimensions=acc["dims"],
                page_views=acc["page_views"],
                sessions=len(session_ids),
                visitors=frozenset(acc["visitors"]),
                bounce_rate=percent(bounces, len(session_ids)),
                avg_session_duration=round_int(mean(durations)),
            )
        )
    return rows


# --- Filtering ---


def matches_filter(value: Any, query_filter: QueryFilter) -> bool:
    """Evaluate one predicate against a stored value."""
    op = query_filter.operator
    expected = query_filter.value

    if op == FilterOperator.EQ:
        return value == expected
    if op == FilterOperator.NE:
        return value != expected
    if op == FilterOperator.IN:
        return isinstance(expected, list) and value in expected
    if op == FilterOperator.CONTAINS:
        return value is not None and str(expected) in str(value)

    left = _to_number(value)
    right = _to_number(expected)
    if left is None or right is None:
        return False
    if op == FilterOperator.GT:
        return left > right
    if op == FilterOperator.LT:
        return left < right
    if op == FilterOperator.GTE:
        return left >= right
    return left <= right


def apply_filters(rows: Iterable[TrafficRow], filters: Sequence[QueryFilter]) -> list[TrafficRow]:
    return [
        row
        for row in rows
        if all(matches_filter(row.get(f.dimension), f) for f in filters)
    ]


# --- Aggregation ---


def _aggregate(rows: Sequence[TrafficRow]) -> dict[str, Any]:
    if not rows:
        return {
            "pageViews": 0,
            "uniqueVisitors": 0,
            "sessions": 0,
            "bounceRate": 0.0,
            "avgSessionDuration": 0,
        }
    visitors: set[str] = set()
    for row in rows:
        visitors |= row.visitors
    return {
        "pageViews": sum(r.page_views for r in rows),
        "uniqueVisitors": len(visitors),
        "sessions": sum(r.sessions for r in rows),
        "bounceRate": round_1dp(mean(r.bounce_rate for r in rows)),
        "avgSessionDuration": round_int(mean(r.avg_session_duration for r in rows)),
    }


def compute_totals(rows: Sequence[TrafficRow]) -> dict[str, Any]:
    """Totals over filtered rows: sums, distinct visitors, mean rates."""
    return _aggregate(rows)


def group_rows(rows: Sequence[TrafficRow], dimension: str) -> list[dict[str, Any]]:
    """Partition by one dimension; groups keep first-seen order."""
    grouped: dict[Any, list[TrafficRow]] = {}
    for row in rows:
        grouped.setdefault(row.get(dimension), []).append(row)
    return [{dimension: key, **_aggregate(members)} for key, members in grouped.items()]


def order_rows(rows: Sequence[dict[str, Any]], order_by: OrderBy) -> list[dict[str, Any]]:
    """
    Stable sort by one field.

    Numbers compare numerically, everything else as strings. Rows missing
    the field sort last in either direction.
    """
    name = order_by.field
    present = [r for r in rows if r.get(name) is not None]
    missing = [r for r in rows if r.get(name) is None]

    numeric = all(
        isinstance(r[name], (int, float)) and not isinstance(r[name], bool) for r in present
    )
    descending = order_by.direction == SortDirection.DESC
    if numeric:
        ordered = sorted(present, key=lambda r: r[name], reverse=descending)
    else:
        ordered = sorted(present, key=lambda r: str(r[name]), reverse=descending)
    return ordered + missing


def paginate(rows: Sequence[Any], limit: int, offset: int) -> tuple[list[Any], bool]:
    """Slice one page; hasMore = offset + limit < total."""
    return list(rows[offset : offset + limit]), offset + limit < len(rows)


def project_metrics(row: dict[str, Any], metrics: Sequence[str]) -> dict[str, Any]:
    """Keep dimension values and only the requested metrics."""
    return {k: v for k, v in row.items() if k not in METRICS or k in metrics}


# --- Comparison ---


def compare_periods(
    current: dict[str, Any],
    previous: dict[str, Any],
    metrics: Sequence[str] = METRICS,
) -> dict[str, MetricChange]:
    """Per-metric change between two totals; changePercent is 0.0 when previous is 0."""
    changes: dict[str, MetricChange] = {}
    for name in metrics:
        cur = float(current.get(name) or 0)
        prev = float(previous.get(name) or 0)
        change = cur - prev
        change_percent = round_1dp(change / prev * 100) if prev else 0.0
        changes[name] = MetricChange(
            current=cur,
            previous=prev,
            change=round_1dp(change),
            change_percent=change_percent,
        )
    return changes
