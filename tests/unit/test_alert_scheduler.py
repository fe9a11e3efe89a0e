"""
Alert scheduler adapter tests.

Verifies the background loop ticks the runner, survives failing ticks and
stops cleanly.
"""

from __future__ import annotations

import threading
import time

from veilstat.adapters.alert_scheduler import AlertScheduler
from veilstat.components.alerts import Alert


class MockRunner:
    """Records ticks; optionally raises on the first one."""

    def __init__(self, fail_first: bool = False) -> None:
        self.ticks: list[list[Alert]] = []
        self._fail_first = fail_first
        self.ticked = threading.Event()

    def run_tick(self, alerts):
        self.ticks.append(list(alerts))
        if self._fail_first and len(self.ticks) == 1:
            raise RuntimeError("tick failed")
        if len(self.ticks) >= 2:
            self.ticked.set()
        return []


def _alerts() -> list[Alert]:
    return [
        Alert.from_dict(
            {"id": "a1", "siteId": "site-1", "type": "threshold", "metric": "sessions"}
        )
    ]


class TestAlertScheduler:
    def test_trigger_now_runs_one_tick(self) -> None:
        runner = MockRunner()
        scheduler = AlertScheduler(runner, _alerts)

        assert scheduler.trigger_now() == []
        assert [a.id for a in runner.ticks[0]] == ["a1"]

    def test_start_and_stop(self) -> None:
        runner = MockRunner()
        scheduler = AlertScheduler(runner, _alerts, poll_interval_seconds=0.01)

        scheduler.start()
        assert scheduler.is_running
        assert runner.ticked.wait(timeout=2.0)
        scheduler.stop()

        assert not scheduler.is_running
        count = len(runner.ticks)
        time.sleep(0.05)
        assert len(runner.ticks) == count

    def test_failing_tick_does_not_stop_loop(self) -> None:
        runner = MockRunner(fail_first=True)
        scheduler = AlertScheduler(runner, _alerts, poll_interval_seconds=0.01)

        scheduler.start()
        try:
            assert runner.ticked.wait(timeout=2.0)
        finally:
            scheduler.stop()

    def test_start_is_idempotent(self) -> None:
        scheduler = AlertScheduler(MockRunner(), _alerts, poll_interval_seconds=60)

        scheduler.start()
        first = scheduler._thread
        scheduler.start()

        assert scheduler._thread is first
        scheduler.stop()

    def test_stop_without_start(self) -> None:
        AlertScheduler(MockRunner(), _alerts).stop()
