"""
End-to-end flow through the real app: migrations on startup, collection
into SQLite, then query, realtime and alert history reads.
"""

from __future__ import annotations

import time
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from veilstat.api import deps
from veilstat.api.main import app

from tests.conftest import BROWSER_UA

RULES_PATH = Path("rules.yaml").resolve()

CACHED = (
    deps.get_settings,
    deps.get_rules,
    deps.get_database,
    deps.get_rate_limiter,
    deps.get_identity_hasher,
    deps.get_realtime_tracker,
)


@pytest.fixture
def app_client(tmp_path, monkeypatch):
    monkeypatch.setenv("VEILSTAT_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("VEILSTAT_RULES_PATH", str(RULES_PATH))
    monkeypatch.setenv("VEILSTAT_HASH_SECRET", "integration-secret")
    monkeypatch.delenv("VEILSTAT_SITE_IDS", raising=False)
    for func in CACHED:
        func.cache_clear()

    with TestClient(app, headers={"User-Agent": BROWSER_UA}) as client:
        yield client

    for func in CACHED:
        func.cache_clear()


def _event(path: str, **fields) -> dict:
    event = {
        "siteId": "site-e2e",
        "type": "pageview",
        "path": path,
        "timestamp": int(time.time() * 1000),
        "visitorId": "client-visitor",
        "sessionId": "client-session",
    }
    event.update(fields)
    return event


def test_health(app_client) -> None:
    assert app_client.get("/health").json() == {"status": "ok", "service": "veilstat"}


def test_collected_events_are_queryable(app_client, tmp_path) -> None:
    response = app_client.post(
        "/api/collect",
        json={"batch": True, "events": [_event("/"), _event("/pricing"), _event("/", sessionId="other")]},
    )
    assert response.json() == {"success": True, "count": 3}
    assert (tmp_path / "data" / "veilstat.db").exists()

    body = app_client.get("/api/query", params={"siteId": "site-e2e", "period": "7d"}).json()

    assert body["totals"]["pageViews"] == 3
    assert body["totals"]["sessions"] >= 2
    assert {row["path"] for row in body["data"]} == {"/", "/pricing"}


def test_collected_events_reach_realtime(app_client) -> None:
    app_client.post("/api/collect", json=_event("/live"))

    body = app_client.get("/api/realtime", params={"siteId": "site-e2e"}).json()

    assert body["pageViews"] == 1
    assert body["currentVisitors"] == 1
    assert body["recentEvents"][0]["path"] == "/live"
    # Pseudonymous session id, never the client's own identifier
    assert body["recentEvents"][0]["sessionId"] != "client-session"


def test_rejected_batch_stores_nothing(app_client) -> None:
    response = app_client.post(
        "/api/collect",
        json={"batch": True, "events": [_event("/"), _event("/x", timestamp=1)]},
    )
    assert response.status_code == 400

    body = app_client.get("/api/query", params={"siteId": "site-e2e", "period": "7d"}).json()
    assert body["totals"]["pageViews"] == 0


def test_alert_history_from_sqlite(app_client) -> None:
    body = app_client.get("/api/alerts/unknown/history").json()
    assert body["triggerCount"] == 0
    assert body["history"] == []
