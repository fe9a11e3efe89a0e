"""
Alert API Routes.

Alert definitions are owned elsewhere. evaluate is a dry run: it reports
the decision without recording a trigger or notifying anyone.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from veilstat.api.deps import get_alert_runner, get_alert_state_repo
from veilstat.components.alerts import Alert, AlertRunner, AlertStateRepoPort

router = APIRouter()


@router.post("/evaluate")
def evaluate_alert(
    payload: dict[str, Any] = Body(...),
    runner: AlertRunner = Depends(get_alert_runner),
) -> dict[str, Any]:
    alert = Alert.from_dict(payload.get("alert", payload))
    result = runner.evaluate_one(alert)
    return {
        "alertId": alert.id,
        "triggered": result is not None,
        "result": result.to_dict() if result else None,
    }


@router.get("/{alert_id}/history")
def alert_history(
    alert_id: str,
    repo: AlertStateRepoPort = Depends(get_alert_state_repo),
) -> dict[str, Any]:
    state = repo.get(alert_id)
    return {
        "alertId": alert_id,
        "lastTriggeredAt": (
            state.last_triggered_at.isoformat() if state and state.last_triggered_at else None
        ),
        "triggerCount": state.trigger_count if state else 0,
        "history": [t.to_dict() for t in repo.list_history(alert_id)],
    }
