"""
Collection API Routes.

Public endpoint the tracking script posts to. Accepts one event object or
a batch envelope {"batch": true, "events": [...]}.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Request
from pydantic import BaseModel

from veilstat.api.deps import get_ingestion_pipeline
from veilstat.components.ingestion import CollectRequest, IngestionPipeline, run_collect

router = APIRouter()


class CollectResponse(BaseModel):
    success: bool = True
    count: int


@router.post("/collect", response_model=CollectResponse)
@router.post("/track", response_model=CollectResponse)
def collect(
    request: Request,
    payload: Any = Body(None),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
) -> CollectResponse:
    """
    Ingest one event or a batch.

    Bot traffic is acknowledged like any other request but not stored.
    """
    result = run_collect(
        CollectRequest(
            body=payload,
            headers=dict(request.headers),
            peer=request.client.host if request.client else None,
        ),
        pipeline=pipeline,
    )
    return CollectResponse(count=result.accepted)
