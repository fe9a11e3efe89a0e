"""
Tests for collection payload validation.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from veilstat.components.ingestion import (
    IngestionConfig,
    normalize_payload,
    parse_client_timestamp,
    validate_batch,
    validate_event,
    validate_timestamp,
)
from veilstat.core.errors import ValidationError


def _codes(errors) -> set[str]:
    return {e.code for e in errors}


class TestNormalizePayload:
    """Single events and batch envelopes."""

    def test_single_event_wrapped(self, make_payload) -> None:
        payload = make_payload()
        assert normalize_payload(payload) == [payload]

    def test_batch_unwrapped(self, make_payload) -> None:
        body = {"batch": True, "events": [make_payload(), make_payload(path="/a")]}
        events = normalize_payload(body)
        assert [e["path"] for e in events] == ["/", "/a"]

    def test_envelope_site_inherited(self, make_payload) -> None:
        body = {"batch": True, "siteId": "site-9", "events": [make_payload(siteId=None)]}
        assert normalize_payload(body)[0]["siteId"] == "site-9"

    def test_event_site_not_overridden(self, make_payload) -> None:
        body = {"batch": True, "siteId": "site-9", "events": [make_payload()]}
        assert normalize_payload(body)[0]["siteId"] == "site-1"

    @pytest.mark.parametrize("body", [None, [], "text", 42])
    def test_non_object_rejected(self, body) -> None:
        with pytest.raises(ValidationError) as exc:
            normalize_payload(body)
        assert exc.value.errors[0].code == "invalid_body"

    def test_empty_batch_rejected(self) -> None:
        with pytest.raises(ValidationError) as exc:
            normalize_payload({"batch": True, "events": []})
        assert exc.value.errors[0].code == "empty_batch"

    def test_oversized_batch_rejected(self, make_payload) -> None:
        config = IngestionConfig(max_batch_size=2)
        body = {"batch": True, "events": [make_payload() for _ in range(3)]}
        with pytest.raises(ValidationError) as exc:
            normalize_payload(body, config)
        assert exc.value.errors[0].code == "batch_too_large"

    def test_non_object_entry_rejected(self, make_payload) -> None:
        with pytest.raises(ValidationError) as exc:
            normalize_payload({"batch": True, "events": [make_payload(), "x"]})
        assert exc.value.errors[0].code == "invalid_event"
        assert exc.value.errors[0].message.startswith("Event 1:")


class TestTimestamps:
    """Client timestamps in seconds or milliseconds."""

    def test_milliseconds(self, now: datetime) -> None:
        assert parse_client_timestamp(now.timestamp() * 1000) == now

    def test_seconds(self, now: datetime) -> None:
        assert parse_client_timestamp(now.timestamp()) == now

    @pytest.mark.parametrize("value", ["1700000000", True, float("nan"), None])
    def test_non_numeric(self, value) -> None:
        assert parse_client_timestamp(value) is None

    def test_within_skew_accepted(self, now: datetime) -> None:
        ts = (now - timedelta(minutes=59)).timestamp() * 1000
        assert validate_timestamp(ts, now) == []

    def test_two_hours_old_rejected(self, now: datetime) -> None:
        ts = (now - timedelta(hours=2)).timestamp() * 1000
        errors = validate_timestamp(ts, now)
        assert _codes(errors) == {"timestamp_out_of_range"}
        assert errors[0].field_name == "timestamp"

    def test_future_rejected(self, now: datetime) -> None:
        ts = (now + timedelta(hours=2)).timestamp()
        assert _codes(validate_timestamp(ts, now)) == {"timestamp_out_of_range"}

    def test_missing(self, now: datetime) -> None:
        assert _codes(validate_timestamp(None, now)) == {"timestamp_required"}

    def test_custom_skew(self) -> None:
        now = datetime(2026, 1, 1, tzinfo=UTC)
        config = IngestionConfig(max_clock_skew_seconds=60)
        ts = (now - timedelta(seconds=90)).timestamp()
        assert _codes(validate_timestamp(ts, now, config)) == {"timestamp_out_of_range"}


class TestValidateEvent:
    """Field-level validation of one event."""

    def test_valid_pageview(self, make_payload, now) -> None:
        assert validate_event(make_payload(), now) == []

    def test_url_instead_of_path(self, make_payload, now) -> None:
        payload = make_payload(path=None, url="https://example.com/pricing")
        assert validate_event(payload, now) == []

    def test_missing_site(self, make_payload, now) -> None:
        assert "site_id_required" in _codes(validate_event(make_payload(siteId=None), now))

    def test_missing_type(self, make_payload, now) -> None:
        assert "type_required" in _codes(validate_event(make_payload(type=None), now))

    def test_unknown_type(self, make_payload, now) -> None:
        assert "invalid_type" in _codes(validate_event(make_payload(type="purchase"), now))

    def test_missing_path_and_url(self, make_payload, now) -> None:
        assert "path_required" in _codes(validate_event(make_payload(path=None), now))

    def test_path_too_long(self, make_payload, now) -> None:
        config = IngestionConfig(max_path_length=10)
        errors = validate_event(make_payload(path="/" + "a" * 20), now, config)
        assert "path_too_long" in _codes(errors)

    def test_missing_visitor(self, make_payload, now) -> None:
        errors = validate_event(make_payload(visitorId=None), now)
        assert "visitor_id_required" in _codes(errors)

    def test_pageview_requires_session(self, make_payload, now) -> None:
        errors = validate_event(make_payload(sessionId=None), now)
        assert "session_id_required" in _codes(errors)

    def test_custom_event_without_session(self, make_payload, now) -> None:
        payload = make_payload(type="event", sessionId=None, category="cta", action="click")
        assert validate_event(payload, now) == []

    @pytest.mark.parametrize("kind", ["pageview", "event"])
    @pytest.mark.parametrize("session", [12345, ["s"], {"id": "s"}])
    def test_non_string_session_rejected(self, make_payload, now, kind, session) -> None:
        payload = make_payload(type=kind, sessionId=session, action="click")
        errors = validate_event(payload, now)
        assert _codes(errors) == {"invalid_session_id"}

    @pytest.mark.parametrize("field_name", ["ip", "userAgent", "email", "cookie"])
    def test_pii_field_rejected(self, make_payload, now, field_name: str) -> None:
        errors = validate_event(make_payload(**{field_name: "x"}), now)
        assert "forbidden_field" in _codes(errors)

    @pytest.mark.parametrize("value", [-1, "10", float("inf"), True])
    def test_invalid_duration(self, make_payload, now, value) -> None:
        errors = validate_event(make_payload(type="engagement", duration=value), now)
        assert "invalid_number" in _codes(errors)

    def test_scroll_depth_bounded(self, make_payload, now) -> None:
        errors = validate_event(make_payload(type="engagement", scrollDepth=120), now)
        assert "out_of_range" in _codes(errors)

    def test_all_errors_collected(self, now) -> None:
        errors = validate_event({}, now)
        assert {
            "site_id_required",
            "type_required",
            "path_required",
            "timestamp_required",
            "visitor_id_required",
        } <= _codes(errors)


class TestValidateBatch:
    """All-or-nothing batch validation."""

    def test_valid_batch(self, make_payload, now) -> None:
        validate_batch([make_payload(), make_payload(path="/b")], now)

    def test_first_invalid_event_fails_batch(self, make_payload, now) -> None:
        stale = int((now - timedelta(hours=2)).timestamp() * 1000)
        events = [make_payload(), make_payload(timestamp=stale), make_payload()]
        with pytest.raises(ValidationError) as exc:
            validate_batch(events, now)
        assert "timestamp" in exc.value.message
        assert exc.value.errors[0].message.startswith("Event 1:")
        assert exc.value.fields == ["events[1].timestamp"]

    def test_single_event_not_prefixed(self, make_payload, now) -> None:
        with pytest.raises(ValidationError) as exc:
            validate_batch([make_payload(path=None)], now)
        assert exc.value.fields == ["path"]
