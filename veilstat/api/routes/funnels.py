"""
Funnel API Routes.

Funnel definitions are owned elsewhere; this endpoint only evaluates the
definition it is given.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from veilstat.api.deps import get_funnel_evaluator, get_query_engine
from veilstat.components.funnels import Funnel, FunnelEvaluator
from veilstat.components.query import QueryEngine, QueryRequest, day_bounds

router = APIRouter()


@router.post("/evaluate")
def evaluate_funnel(
    payload: dict[str, Any] = Body(...),
    evaluator: FunnelEvaluator = Depends(get_funnel_evaluator),
    engine: QueryEngine = Depends(get_query_engine),
) -> dict[str, Any]:
    """
    Body: {siteId, funnel: {...}, period | startDate/endDate}.
    """
    funnel = Funnel.from_dict(payload.get("funnel"))
    # Date handling (period, explicit range, span limit) is shared with queries
    window = engine.validate(
        QueryRequest(
            site_id=payload.get("siteId"),
            start_date=payload.get("startDate"),
            end_date=payload.get("endDate"),
            period=payload.get("period"),
        )
    )
    start, end = day_bounds(window.start, window.end)
    return evaluator.evaluate(funnel, window.site_id, start, end).to_dict()
