"""
Query component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any

# --- Vocabulary ---

METRICS: tuple[str, ...] = (
    "pageViews",
    "uniqueVisitors",
    "sessions",
    "bounceRate",
    "avgSessionDuration",
)

# Output dimension name -> StoredEvent attribute
DIMENSIONS: dict[str, str] = {
    "date": "date",
    "path": "path",
    "referrer": "referrer",
    "utmSource": "utm_source",
    "utmMedium": "utm_medium",
    "utmCampaign": "utm_campaign",
    "device": "device",
    "browser": "browser",
    "os": "os",
    "country": "country",
    "region": "region",
}

PERIODS: dict[str, int] = {
    "24h": 1,
    "7d": 7,
    "30d": 30,
    "90d": 90,
    "365d": 365,
}


class FilterOperator(str, Enum):
    """Filter predicate operators."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    IN = "in"
    CONTAINS = "contains"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


# --- Inputs ---


@dataclass(frozen=True)
class QueryFilter:
    """Validated filter predicate."""

    dimension: str
    operator: FilterOperator
    value: Any


@dataclass(frozen=True)
class OrderBy:
    field: str
    direction: SortDirection = SortDirection.DESC


@dataclass(frozen=True)
class QueryRequest:
    """
    Raw query as received from a caller.

    Values are kept as supplied so that validation can report every
    problem at once; see QueryEngine.validate.
    """

    site_id: Any = None
    start_date: Any = None
    end_date: Any = None
    period: Any = None
    metrics: Any = None
    filters: Any = None
    group_by: Any = None
    order_by: Any = None
    limit: Any = None
    offset: Any = None

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> QueryRequest:
        """Build from camelCase request fields."""
        return cls(
            site_id=data.get("siteId"),
            start_date=data.get("startDate"),
            end_date=data.get("endDate"),
            period=data.get("period"),
            metrics=data.get("metrics"),
            filters=data.get("filters"),
            group_by=data.get("groupBy"),
            order_by=data.get("orderBy"),
            limit=data.get("limit"),
            offset=data.get("offset"),
        )


@dataclass(frozen=True)
class ValidatedQuery:
    """Query after validation; every field is well-typed."""

    site_id: str
    start: date
    end: date
    metrics: tuple[str, ...] | None = None
    filters: tuple[QueryFilter, ...] = ()
    group_by: str | None = None
    order_by: OrderBy | None = None
    limit: int = 100
    offset: int = 0


# --- Outputs ---


@dataclass
class TrafficRow:
    """
    One daily traffic row.

    visitors holds the distinct visitor pseudonyms behind uniqueVisitors so
    that grouping can count distinct visitors instead of summing.
    """

    dimensions: dict[str, Any]
    page_views: int
    sessions: int
    visitors: frozenset[str]
    bounce_rate: float
    avg_session_duration: int

    @property
    def unique_visitors(self) -> int:
        return len(self.visitors)

    def get(self, name: str) -> Any:
        if name in self.dimensions:
            return self.dimensions[name]
        return self.metrics().get(name)

    def metrics(self) -> dict[str, Any]:
        return {
            "pageViews": self.page_views,
            "uniqueVisitors": self.unique_visitors,
            "sessions": self.sessions,
            "bounceRate": self.bounce_rate,
            "avgSessionDuration": self.avg_session_duration,
        }

    def to_dict(self) -> dict[str, Any]:
        return {**self.dimensions, **self.metrics()}


@dataclass(frozen=True)
class QueryMetadata:
    start_date: str
    end_date: str
    total_rows: int
    has_more: bool
    limit: int
    offset: int
    group_by: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "startDate": self.start_date,
            "endDate": self.end_date,
            "totalRows": self.total_rows,
            "hasMore": self.has_more,
            "limit": self.limit,
            "offset": self.offset,
            "groupBy": self.group_by,
        }


@dataclass(frozen=True)
class QueryResult:
    rows: list[dict[str, Any]]
    totals: dict[str, Any]
    metadata: QueryMetadata

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": self.rows,
            "totals": self.totals,
            "metadata": self.metadata.to_dict(),
        }


@dataclass(frozen=True)
class MetricChange:
    current: float
    previous: float
    change: float
    change_percent: float

    def to_dict(self) -> dict[str, float]:
        return {
            "current": self.current,
            "previous": self.previous,
            "change": self.change,
            "changePercent": self.change_percent,
        }


@dataclass(frozen=True)
class PeriodComparison:
    current: dict[str, Any]
    previous: dict[str, Any]
    changes: dict[str, MetricChange] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "current": self.current,
            "previous": self.previous,
            "change": {name: c.to_dict() for name, c in self.changes.items()},
        }
