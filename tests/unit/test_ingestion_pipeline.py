"""
Tests for IngestionPipeline: the end-to-end collection flow.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from veilstat.app_shell.rate_limit import RateLimiter
from veilstat.components.ingestion import (
    CollectRequest,
    IngestionConfig,
    IngestionPipeline,
    InMemoryEventStore,
    InMemorySiteRegistry,
    create_ingestion_pipeline,
    run_collect,
)
from veilstat.core.entities import EventKind
from veilstat.core.errors import NotFound, PersistenceError, RateLimited, ValidationError
from veilstat.rules.models import RateLimitRules

from tests.conftest import BOT_UA, BROWSER_UA

# --- Fixtures ---


@pytest.fixture
def pipeline(event_store, hasher, time_port) -> IngestionPipeline:
    return IngestionPipeline(event_store, hasher, time_port)


def _request(body, user_agent: str = BROWSER_UA, **headers) -> CollectRequest:
    return CollectRequest(
        body=body,
        headers={"User-Agent": user_agent, **headers},
        peer="203.0.113.77",
    )


# --- Tests ---


class TestCollect:
    """Successful collection."""

    def test_single_event_stored(self, pipeline, event_store, make_payload) -> None:
        result = pipeline.collect(_request(make_payload(path="/pricing")))

        assert result.accepted == 1
        assert result.stored == 1
        stored = event_store.get_all()[0]
        assert stored.path == "/pricing"
        assert stored.kind == EventKind.PAGEVIEW

    def test_batch_of_three(self, pipeline, event_store, make_payload) -> None:
        body = {"batch": True, "events": [make_payload(path=f"/p{i}") for i in range(3)]}

        result = pipeline.collect(_request(body))

        assert result.accepted == 3
        assert len(event_store.get_all()) == 3

    def test_created_at_is_server_time(self, pipeline, event_store, make_payload, now) -> None:
        skewed = int((now - timedelta(minutes=10)).timestamp() * 1000)
        pipeline.collect(_request(make_payload(timestamp=skewed)))

        stored = event_store.get_all()[0]
        assert stored.created_at == now
        assert stored.client_ts == now - timedelta(minutes=10)

    def test_stored_event_is_pseudonymous(self, pipeline, event_store, make_payload) -> None:
        pipeline.collect(_request(make_payload(visitorId="alice@example.com")))

        stored = event_store.get_all()[0]
        values = {str(v) for v in vars(stored).values()}
        assert "203.0.113.77" not in values
        assert "alice@example.com" not in values
        assert BROWSER_UA not in values
        assert stored.visitor_id != "client-visitor"

    def test_dimensions_normalized(self, pipeline, event_store, make_payload) -> None:
        payload = make_payload(
            path=None,
            url="https://example.com/blog?utm_source=news&utm_medium=email",
            referrer="https://www.google.com/search?q=x",
        )
        pipeline.collect(_request(payload, **{"CF-IPCountry": "de"}))

        stored = event_store.get_all()[0]
        assert stored.path == "/blog"
        assert stored.referrer == "google.com"
        assert stored.utm_source == "news"
        assert stored.utm_medium == "email"
        assert stored.country == "DE"
        assert stored.device == "desktop"
        assert stored.browser == "Chrome"
        assert stored.os == "Windows"

    def test_same_session_token_same_pseudonym(
        self, pipeline, event_store, make_payload
    ) -> None:
        pipeline.collect(_request(make_payload(path="/a")))
        pipeline.collect(_request(make_payload(path="/b")))

        first, second = event_store.get_all()
        assert first.session_id == second.session_id
        assert first.visitor_id == second.visitor_id

    def test_run_collect_entry_point(self, pipeline, make_payload) -> None:
        result = run_collect(_request(make_payload()), pipeline=pipeline)
        assert result.stored == 1


class TestRejections:
    """Invalid input stores nothing."""

    def test_stale_timestamp_rejected(self, pipeline, event_store, make_payload, now) -> None:
        stale = int((now - timedelta(hours=2)).timestamp() * 1000)

        with pytest.raises(ValidationError) as exc:
            pipeline.collect(_request(make_payload(timestamp=stale)))

        assert "timestamp" in exc.value.message
        assert event_store.get_all() == []

    def test_one_bad_event_rejects_batch(self, pipeline, event_store, make_payload) -> None:
        body = {"batch": True, "events": [make_payload(), make_payload(type="bogus")]}

        with pytest.raises(ValidationError):
            pipeline.collect(_request(body))

        assert event_store.get_all() == []

    def test_unknown_site(self, event_store, hasher, time_port, make_payload) -> None:
        pipeline = IngestionPipeline(
            event_store, hasher, time_port, site_lookup=InMemorySiteRegistry({"site-1"})
        )

        with pytest.raises(NotFound):
            pipeline.collect(_request(make_payload(siteId="site-x")))

        assert event_store.get_all() == []

    def test_persistence_failure_propagates(
        self, pipeline, event_store, make_payload
    ) -> None:
        event_store.fail_writes = True

        with pytest.raises(PersistenceError):
            pipeline.collect(_request(make_payload()))

    def test_numeric_session_id_is_client_error(
        self, pipeline, event_store, make_payload
    ) -> None:
        payload = make_payload(type="event", sessionId=12345, action="click")

        with pytest.raises(ValidationError) as exc:
            pipeline.collect(_request(payload))

        assert exc.value.fields == ["sessionId"]
        assert event_store.get_all() == []


class TestBotFilter:
    """Bot traffic is acknowledged but never stored."""

    def test_bot_acknowledged_not_stored(self, pipeline, event_store, make_payload) -> None:
        body = {"batch": True, "events": [make_payload(), make_payload()]}

        result = pipeline.collect(_request(body, user_agent=BOT_UA))

        assert result.accepted == 2
        assert result.stored == 0
        assert result.dropped_bots == 2
        assert event_store.get_all() == []

    def test_bot_listeners_not_called(self, event_store, hasher, time_port, make_payload) -> None:
        seen = []
        pipeline = IngestionPipeline(event_store, hasher, time_port, listeners=[seen.append])

        pipeline.collect(_request(make_payload(), user_agent=BOT_UA))

        assert seen == []


class TestRateLimit:
    """Per-origin rate limiting."""

    def test_exceeding_budget_raises(self, event_store, hasher, time_port, make_payload) -> None:
        config = IngestionConfig(rate_limit_window_seconds=60, rate_limit_max_requests=2)
        limiter = RateLimiter(RateLimitRules(), time_port)
        pipeline = IngestionPipeline(
            event_store, hasher, time_port, config=config, rate_limiter=limiter
        )

        pipeline.collect(_request(make_payload()))
        pipeline.collect(_request(make_payload()))
        with pytest.raises(RateLimited) as exc:
            pipeline.collect(_request(make_payload()))

        assert exc.value.retry_after_seconds == 60
        assert len(event_store.get_all()) == 2

    def test_budget_shared_within_origin_fragment(
        self, event_store, hasher, time_port, make_payload
    ) -> None:
        config = IngestionConfig(rate_limit_max_requests=1)
        limiter = RateLimiter(RateLimitRules(), time_port)
        pipeline = IngestionPipeline(
            event_store, hasher, time_port, config=config, rate_limiter=limiter
        )

        pipeline.collect(_request(make_payload()))
        with pytest.raises(RateLimited):
            pipeline.collect(
                CollectRequest(make_payload(), {"user-agent": BROWSER_UA}, "203.0.113.5")
            )


class TestListeners:
    """Post-commit listener fan-out."""

    def test_listener_receives_stored_events(
        self, event_store, hasher, time_port, make_payload
    ) -> None:
        seen = []
        pipeline = IngestionPipeline(event_store, hasher, time_port, listeners=[seen.append])

        pipeline.collect(_request(make_payload()))

        assert seen == event_store.get_all()

    def test_listener_failure_isolated(self, event_store, hasher, time_port, make_payload) -> None:
        seen = []

        def broken(event) -> None:
            raise RuntimeError("projection down")

        pipeline = IngestionPipeline(
            event_store, hasher, time_port, listeners=[broken, seen.append]
        )

        result = pipeline.collect(_request(make_payload()))

        assert result.stored == 1
        assert len(seen) == 1

    def test_no_listener_call_on_failed_write(
        self, event_store, hasher, time_port, make_payload
    ) -> None:
        seen = []
        pipeline = IngestionPipeline(event_store, hasher, time_port)
        pipeline.add_listener(seen.append)
        event_store.fail_writes = True

        with pytest.raises(PersistenceError):
            pipeline.collect(_request(make_payload()))

        assert seen == []


class TestFactory:
    def test_rules_applied(self, hasher, time_port, rules, make_payload) -> None:
        rules.ingestion.max_batch_size = 1
        store = InMemoryEventStore()
        pipeline = create_ingestion_pipeline(store, hasher, time_port, rules=rules)

        with pytest.raises(ValidationError) as exc:
            pipeline.collect(_request({"batch": True, "events": [make_payload()] * 2}))

        assert exc.value.errors[0].code == "batch_too_large"
