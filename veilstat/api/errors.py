"""
Maps core errors onto JSON responses.

Body shape: {"error": <message>, "code": ..., "errors": [...]}.
PersistenceError bodies never carry storage detail.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from veilstat.core.errors import AnalyticsError, PersistenceError, RateLimited

logger = logging.getLogger(__name__)


async def analytics_error_handler(request: Request, exc: AnalyticsError) -> JSONResponse:
    headers = {}
    if isinstance(exc, RateLimited):
        headers["Retry-After"] = str(exc.retry_after_seconds)
    if isinstance(exc, PersistenceError):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # Malformed JSON and wrong body types are client errors like any other
    errors = [
        {
            "code": str(e.get("type", "invalid")),
            "message": str(e.get("msg", "")),
            "field": ".".join(str(p) for p in e.get("loc", ()) if p != "body") or "body",
        }
        for e in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request body", "code": "validation_error", "errors": errors},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AnalyticsError, analytics_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
