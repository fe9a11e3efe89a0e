"""
Shared API test wiring: every route on one app, ports overridden with
in-memory fakes and a pinned clock.
"""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from veilstat.adapters.notifiers import LogNotifier
from veilstat.api import deps
from veilstat.api.errors import register_error_handlers
from veilstat.api.routes import alerts, collect, funnels, query, realtime
from veilstat.app_shell.rate_limit import RateLimiter
from veilstat.components.alerts import AlertRunner, ChannelKind, InMemoryAlertStateRepo
from veilstat.components.funnels import FunnelEvaluator
from veilstat.components.ingestion import IngestionPipeline, create_ingestion_pipeline
from veilstat.components.query import QueryEngine
from veilstat.components.realtime import RealtimeTracker, create_realtime_tracker

from tests.conftest import BROWSER_UA


@pytest.fixture
def tracker(time_port) -> RealtimeTracker:
    return create_realtime_tracker(time_port)


@pytest.fixture
def rate_limiter(rules, time_port) -> RateLimiter:
    return RateLimiter(rules.rate_limits, time_port)


@pytest.fixture
def pipeline(event_store, hasher, time_port, rules, rate_limiter, tracker) -> IngestionPipeline:
    return create_ingestion_pipeline(
        event_store,
        hasher,
        time_port,
        rules=rules,
        rate_limiter=rate_limiter,
        listeners=[tracker.track_event],
    )


@pytest.fixture
def engine(event_store, time_port) -> QueryEngine:
    return QueryEngine(event_store, time_port)


@pytest.fixture
def alert_state() -> InMemoryAlertStateRepo:
    return InMemoryAlertStateRepo()


@pytest.fixture
def log_notifier() -> LogNotifier:
    return LogNotifier()


@pytest.fixture
def alert_runner(engine, alert_state, time_port, log_notifier) -> AlertRunner:
    return AlertRunner(engine, alert_state, time_port, {ChannelKind.LOG: log_notifier})


@pytest.fixture
def app(pipeline, engine, event_store, tracker, alert_runner, alert_state) -> FastAPI:
    """Test FastAPI app with every analytics route."""
    app = FastAPI()
    register_error_handlers(app)
    app.include_router(collect.router, prefix="/api")
    app.include_router(query.router, prefix="/api/query")
    app.include_router(funnels.router, prefix="/api/funnels")
    app.include_router(alerts.router, prefix="/api/alerts")
    app.include_router(realtime.router, prefix="/api/realtime")

    app.dependency_overrides[deps.get_ingestion_pipeline] = lambda: pipeline
    app.dependency_overrides[deps.get_query_engine] = lambda: engine
    app.dependency_overrides[deps.get_funnel_evaluator] = lambda: FunnelEvaluator(event_store)
    app.dependency_overrides[deps.get_realtime_tracker] = lambda: tracker
    app.dependency_overrides[deps.get_alert_runner] = lambda: alert_runner
    app.dependency_overrides[deps.get_alert_state_repo] = lambda: alert_state
    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Test client sending a real browser user agent."""
    return TestClient(app, headers={"User-Agent": BROWSER_UA})
