"""
Alert Scheduler Adapter.

Runs AlertRunner ticks on a background thread at a fixed poll interval.
The core never owns the timer; this adapter is the only place that does.

Key behaviors:
- One tick per interval; a failing tick is logged and the loop continues
- stop() waits briefly for the current tick to finish
- trigger_now() runs one tick synchronously (CLI --once, tests)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence

from veilstat.components.alerts import Alert, AlertRunner, TriggerResult

logger = logging.getLogger(__name__)

AlertsProvider = Callable[[], Sequence[Alert]]


class AlertScheduler:
    """Background polling loop for alert evaluation."""

    def __init__(
        self,
        runner: AlertRunner,
        alerts_provider: AlertsProvider,
        poll_interval_seconds: float = 60.0,
    ) -> None:
        """
        Initialize scheduler.

        Args:
            runner: Alert runner to tick
            alerts_provider: Returns the current alert definitions
            poll_interval_seconds: Interval between ticks
        """
        self._runner = runner
        self._alerts_provider = alerts_provider
        self._poll_interval = poll_interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._running = False

    def start(self) -> None:
        """Start the background scheduler."""
        if self._running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._poll_loop, daemon=True)
        self._thread.start()
        self._running = True
        logger.info("Alert scheduler started (poll interval: %.1fs)", self._poll_interval)

    def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5.0)
        self._running = False
        logger.info("Alert scheduler stopped")

    def trigger_now(self) -> list[TriggerResult]:
        """Run one tick immediately."""
        return self._runner.run_tick(self._alerts_provider())

    @property
    def is_running(self) -> bool:
        return self._running

    def _poll_loop(self) -> None:
        while not self._stop_event.wait(timeout=self._poll_interval):
            try:
                fired = self.trigger_now()
                if fired:
                    logger.info("Alert tick fired %d alerts", len(fired))
            except Exception:
                logger.exception("Error in alert scheduler poll loop")
