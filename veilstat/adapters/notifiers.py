"""
Alert notification channels.

LogNotifier logs triggers instead of delivering them (local development and
tests). WebhookNotifier POSTs the trigger as JSON with a bounded number of
attempts.

Key behaviors:
- send() raises when delivery ultimately fails; AlertRunner isolates the
  failure to the channel
- Every failed attempt is logged at WARNING, exhaustion at ERROR
- Delivery is best-effort: nothing is queued for later
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import httpx

from veilstat.components.alerts.models import Channel, TriggerResult

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """Channel delivery failed after every attempt."""


@dataclass
class LogNotifier:
    """
    Notifier that logs instead of delivering.

    Triggers are kept in memory for test assertions.
    """

    sent: list[TriggerResult] = field(default_factory=list)
    log_level: int = logging.INFO

    def send(self, trigger: TriggerResult, channel: Channel) -> None:
        self.sent.append(trigger)
        logger.log(
            self.log_level,
            "ALERT (log): alert=%s site=%s metric=%s value=%s message=%s",
            trigger.alert_id,
            trigger.site_id,
            trigger.metric,
            trigger.current_value,
            trigger.message,
        )

    # --- Test Helper Methods ---

    def get_last(self) -> TriggerResult | None:
        return self.sent[-1] if self.sent else None

    def clear(self) -> None:
        self.sent.clear()


class WebhookNotifier:
    """POSTs triggers to the channel's URL."""

    def __init__(
        self,
        client: httpx.Client | None = None,
        max_attempts: int = 3,
        timeout_seconds: float = 5.0,
        backoff_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client or httpx.Client(timeout=timeout_seconds)
        self._max_attempts = max(1, max_attempts)
        self._backoff = backoff_seconds
        self._sleep = sleep

    def send(self, trigger: TriggerResult, channel: Channel) -> None:
        if not channel.target:
            raise NotificationError(f"Webhook channel for alert {trigger.alert_id} has no url")

        payload = {"alert": trigger.to_dict()}
        last_error: Exception | None = None

        for attempt in range(1, self._max_attempts + 1):
            try:
                response = self._client.post(channel.target, json=payload)
                response.raise_for_status()
                logger.info(
                    "Webhook delivered for alert %s (attempt %d)", trigger.alert_id, attempt
                )
                return
            except httpx.HTTPError as e:
                last_error = e
                logger.warning(
                    "Webhook attempt %d/%d for alert %s failed: %s",
                    attempt,
                    self._max_attempts,
                    trigger.alert_id,
                    e,
                )
                if attempt < self._max_attempts and self._backoff > 0:
                    self._sleep(self._backoff * attempt)

        logger.error(
            "Webhook for alert %s failed after %d attempts", trigger.alert_id, self._max_attempts
        )
        raise NotificationError(str(last_error)) from last_error

    def close(self) -> None:
        self._client.close()


# --- Factory Function ---


def create_webhook_notifier(
    max_attempts: int = 3,
    timeout_seconds: float = 5.0,
    transport: httpx.BaseTransport | None = None,
) -> WebhookNotifier:
    """
    Create a webhook notifier.

    Args:
        max_attempts: Delivery attempts per trigger
        timeout_seconds: Per-request timeout
        transport: Optional httpx transport (tests pass httpx.MockTransport)
    """
    client = httpx.Client(timeout=timeout_seconds, transport=transport)
    return WebhookNotifier(client, max_attempts=max_attempts, timeout_seconds=timeout_seconds)
