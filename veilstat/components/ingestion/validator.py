"""
Event validation for the collection endpoint.

Key behaviors:
- A body is either one event object or {batch: true, events: [...]}
- Envelope siteId is inherited by batch events that omit it
- Batches are all-or-nothing: the first invalid event fails the request
- Client timestamps are numeric (seconds or milliseconds) and must fall
  within the configured clock-skew window around server time
- PII-bearing fields are rejected outright
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Any

from veilstat.core.errors import FieldError, ValidationError

from .models import IngestionConfig

DEFAULT_CONFIG = IngestionConfig()

# Numeric properties accepted on any event kind: payload key -> upper bound
NUMERIC_PROPERTIES: dict[str, float | None] = {
    "duration": None,
    "scrollDepth": 100.0,
    "value": None,
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def normalize_payload(
    body: Any,
    config: IngestionConfig = DEFAULT_CONFIG,
) -> list[dict[str, Any]]:
    """
    Normalize a request body into a list of event dicts.

    Raises:
        ValidationError: body is not an object, or the batch envelope is
            empty, oversized or holds non-object entries.
    """
    if not isinstance(body, dict):
        raise ValidationError(
            [FieldError("invalid_body", "Request body must be a JSON object")]
        )

    if body.get("batch") is not True:
        return [body]

    events = body.get("events")
    if not isinstance(events, list) or not events:
        raise ValidationError(
            [FieldError("empty_batch", "Batch must contain at least one event", "events")]
        )
    if len(events) > config.max_batch_size:
        raise ValidationError(
            [
                FieldError(
                    "batch_too_large",
                    f"Batch exceeds maximum of {config.max_batch_size} events",
                    "events",
                )
            ]
        )

    envelope_site = body.get("siteId")
    normalized: list[dict[str, Any]] = []
    for index, event in enumerate(events):
        if not isinstance(event, dict):
            raise ValidationError(
                [
                    FieldError(
                        "invalid_event",
                        f"Event {index}: must be a JSON object",
                        f"events[{index}]",
                    )
                ]
            )
        if envelope_site is not None and "siteId" not in event:
            event = {"siteId": envelope_site, **event}
        normalized.append(event)
    return normalized


def parse_client_timestamp(ts: Any) -> datetime | None:
    """Parse a numeric Unix timestamp (seconds or milliseconds)."""
    if not _is_number(ts) or not math.isfinite(ts):
        return None
    try:
        # Values past 1e12 can only be milliseconds
        if ts > 1e12:
            return datetime.fromtimestamp(ts / 1000, tz=UTC)
        return datetime.fromtimestamp(ts, tz=UTC)
    except (ValueError, OverflowError, OSError):
        return None


def validate_timestamp(
    ts: Any,
    now: datetime,
    config: IngestionConfig = DEFAULT_CONFIG,
) -> list[FieldError]:
    """Client timestamp must be numeric and within +/- max_clock_skew_seconds."""
    if ts is None:
        return [FieldError("timestamp_required", "Event timestamp is required", "timestamp")]

    parsed = parse_client_timestamp(ts)
    if parsed is None:
        return [
            FieldError(
                "invalid_timestamp",
                "Event timestamp must be a numeric Unix timestamp",
                "timestamp",
            )
        ]

    skew = abs((now - parsed).total_seconds())
    if skew > config.max_clock_skew_seconds:
        return [
            FieldError(
                "timestamp_out_of_range",
                f"Event timestamp is more than {config.max_clock_skew_seconds}s "
                "from server time",
                "timestamp",
            )
        ]
    return []


def validate_event(
    data: dict[str, Any],
    now: datetime,
    config: IngestionConfig = DEFAULT_CONFIG,
) -> list[FieldError]:
    """
    Validate one event.

    Returns:
        List of field errors (empty if valid)
    """
    errors: list[FieldError] = []

    for field_name in sorted(config.forbidden_fields):
        if field_name in data:
            errors.append(
                FieldError(
                    "forbidden_field",
                    f"Field '{field_name}' is not allowed (PII)",
                    field_name,
                )
            )

    site_id = data.get("siteId")
    if site_id is None or site_id == "":
        errors.append(FieldError("site_id_required", "siteId is required", "siteId"))
    elif not isinstance(site_id, str):
        errors.append(FieldError("invalid_site_id", "siteId must be a string", "siteId"))

    kind = data.get("type")
    if not kind:
        errors.append(FieldError("type_required", "Event type is required", "type"))
    elif not isinstance(kind, str) or kind not in config.allowed_kinds:
        errors.append(
            FieldError("invalid_type", f"Event type '{kind}' is not allowed", "type")
        )
        kind = None

    path = data.get("path")
    url = data.get("url")
    location = path if path else url
    if not location:
        errors.append(FieldError("path_required", "path or url is required", "path"))
    elif not isinstance(location, str):
        errors.append(FieldError("invalid_path", "path/url must be a string", "path"))
    elif len(location) > config.max_path_length:
        errors.append(
            FieldError(
                "path_too_long",
                f"path/url exceeds {config.max_path_length} characters",
                "path",
            )
        )

    errors.extend(validate_timestamp(data.get("timestamp"), now, config))

    visitor = data.get("visitorId")
    if not visitor or not isinstance(visitor, str):
        errors.append(
            FieldError("visitor_id_required", "visitorId is required", "visitorId")
        )

    session = data.get("sessionId")
    if session is not None and not isinstance(session, str):
        errors.append(
            FieldError("invalid_session_id", "sessionId must be a string", "sessionId")
        )
    elif kind in config.session_bearing_kinds:
        if not session:
            errors.append(
                FieldError(
                    "session_id_required",
                    f"sessionId is required for '{kind}' events",
                    "sessionId",
                )
            )

    for prop, upper in NUMERIC_PROPERTIES.items():
        if prop not in data or data[prop] is None:
            continue
        value = data[prop]
        if not _is_number(value) or not math.isfinite(value) or value < 0:
            errors.append(
                FieldError(
                    "invalid_number",
                    f"{prop} must be a finite non-negative number",
                    prop,
                )
            )
        elif upper is not None and value > upper:
            errors.append(
                FieldError("out_of_range", f"{prop} must not exceed {upper:g}", prop)
            )

    return errors


def validate_batch(
    events: list[dict[str, Any]],
    now: datetime,
    config: IngestionConfig = DEFAULT_CONFIG,
) -> None:
    """
    Validate every event; the first invalid one fails the whole batch.

    Raises:
        ValidationError: carrying the failing event's errors. For batches of
            more than one event, messages and fields are prefixed with the
            event index.
    """
    indexed = len(events) > 1
    for index, event in enumerate(events):
        errors = validate_event(event, now, config)
        if not errors:
            continue
        if indexed:
            errors = [
                FieldError(
                    e.code,
                    f"Event {index}: {e.message}",
                    f"events[{index}].{e.field_name}" if e.field_name else None,
                )
                for e in errors
            ]
        raise ValidationError(errors)
