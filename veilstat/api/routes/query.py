"""
Query API Routes.

GET takes flat query-string parameters (metrics comma-separated, filters
as a JSON array); POST takes the same fields as a JSON object.
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Body, Depends, Request

from veilstat.api.deps import get_query_engine
from veilstat.components.query import QueryEngine, QueryRequest
from veilstat.core.errors import FieldError, ValidationError

router = APIRouter()


def _params_to_mapping(params: dict[str, str]) -> dict[str, Any]:
    data: dict[str, Any] = dict(params)
    if "metrics" in data:
        data["metrics"] = [m.strip() for m in data["metrics"].split(",") if m.strip()]
    if "filters" in data:
        try:
            data["filters"] = json.loads(data["filters"])
        except ValueError:
            raise ValidationError(
                [FieldError("invalid_filters", "filters must be a JSON array", "filters")]
            ) from None
    return data


@router.get("")
def query_get(request: Request, engine: QueryEngine = Depends(get_query_engine)) -> dict[str, Any]:
    data = _params_to_mapping(dict(request.query_params))
    return engine.execute(QueryRequest.from_mapping(data)).to_dict()


@router.post("")
def query_post(
    payload: dict[str, Any] = Body(...),
    engine: QueryEngine = Depends(get_query_engine),
) -> dict[str, Any]:
    return engine.execute(QueryRequest.from_mapping(payload)).to_dict()


@router.get("/compare")
def query_compare(
    request: Request,
    engine: QueryEngine = Depends(get_query_engine),
) -> dict[str, Any]:
    """
    Compare totals for the current range against a previous one.

    previousStartDate/previousEndDate select the previous range; without
    them the equal-length range immediately before is used.
    """
    data = _params_to_mapping(dict(request.query_params))
    previous = None
    if data.get("previousStartDate") or data.get("previousEndDate"):
        previous = QueryRequest.from_mapping(
            {
                **data,
                "period": None,
                "startDate": data.get("previousStartDate"),
                "endDate": data.get("previousEndDate"),
            }
        )
    return engine.compare(QueryRequest.from_mapping(data), previous).to_dict()
