"""
Error taxonomy shared by every component.

Key behaviors:
- ValidationError carries field-level detail and is never retried
- RateLimited carries the back-off duration for the Retry-After header
- NotFound names the missing resource
- PersistenceError hides storage internals from clients (message is generic,
  the underlying cause is kept for logging only)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class FieldError:
    """A single field-level validation failure."""

    code: str
    message: str
    field_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "field": self.field_name}


class AnalyticsError(Exception):
    """Base class for errors surfaced to callers of the core."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code}


class ValidationError(AnalyticsError):
    """Malformed, missing or out-of-range input (400)."""

    status_code = 400
    code = "validation_error"

    def __init__(self, errors: list[FieldError], message: str | None = None) -> None:
        if message is None:
            message = "; ".join(e.message for e in errors) or "Invalid request"
        super().__init__(message)
        self.errors = list(errors)

    @property
    def fields(self) -> list[str]:
        return [e.field_name for e in self.errors if e.field_name]

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["errors"] = [e.to_dict() for e in self.errors]
        return body


class RateLimited(AnalyticsError):
    """Client exceeded its request budget (429)."""

    status_code = 429
    code = "rate_limited"

    def __init__(self, retry_after_seconds: int) -> None:
        super().__init__("Too many requests")
        self.retry_after_seconds = max(1, int(retry_after_seconds))

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["retryAfter"] = self.retry_after_seconds
        return body


class NotFound(AnalyticsError):
    """Unknown site, funnel or alert reference (404)."""

    status_code = 404
    code = "not_found"

    def __init__(self, resource: str, identifier: str) -> None:
        super().__init__(f"{resource} not found: {identifier}")
        self.resource = resource
        self.identifier = identifier


class PersistenceError(AnalyticsError):
    """Storage unavailable or write failed (500)."""

    status_code = 500
    code = "internal_error"

    def __init__(self, detail: str) -> None:
        super().__init__("Internal error")
        self.detail = detail
