"""
EventBatcher - client-side event queue for the collection endpoint.

Delivery is at-most-once: a batch is posted once and forgotten. A failed
post is logged and dropped, never retried.

Key behaviors:
- Flush when the queue reaches max_batch items, flush_interval seconds
  after the first queued item, or on flush()/close()
- Any flush cancels the pending timer; the next queued item starts a new one
- Posts are serialized: at most one flush is in flight per batcher
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

import httpx

from veilstat import __version__

logger = logging.getLogger(__name__)

TimerFactory = Callable[[float, Callable[[], None]], threading.Timer]

# httpx's own user agent is on the bot list
DEFAULT_USER_AGENT = f"veilstat-client/{__version__}"


class EventBatcher:
    """Queues events and posts them as {"batch": true, "events": [...]}."""

    def __init__(
        self,
        endpoint: str,
        max_batch: int = 10,
        flush_interval: float = 5.0,
        client: httpx.Client | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        self._endpoint = endpoint
        self._max_batch = max_batch
        self._flush_interval = flush_interval
        self._client = client or httpx.Client(timeout=5.0, headers={"User-Agent": user_agent})
        self._timer_factory = timer_factory
        self._queue: list[dict[str, Any]] = []
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()
        self._send_lock = threading.Lock()
        self._closed = False

    def track(self, event: dict[str, Any]) -> None:
        """Queue one event."""
        batch: list[dict[str, Any]] = []
        with self._lock:
            if self._closed:
                raise RuntimeError("EventBatcher is closed")
            self._queue.append(event)
            if len(self._queue) >= self._max_batch:
                batch = self._take()
            elif self._timer is None:
                self._timer = self._timer_factory(self._flush_interval, self.flush)
                self._timer.daemon = True
                self._timer.start()
        if batch:
            self._send(batch)

    def flush(self) -> None:
        """Post whatever is queued now."""
        with self._lock:
            batch = self._take()
        if batch:
            self._send(batch)

    def close(self) -> None:
        """Flush and release the HTTP client (page hidden / process exit)."""
        with self._lock:
            self._closed = True
            batch = self._take()
        if batch:
            self._send(batch)
        self._client.close()

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._queue)

    def _take(self) -> list[dict[str, Any]]:
        # Caller holds self._lock
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        batch, self._queue = self._queue, []
        return batch

    def _send(self, batch: list[dict[str, Any]]) -> None:
        with self._send_lock:
            try:
                response = self._client.post(self._endpoint, json={"batch": True, "events": batch})
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.warning("Dropped batch of %d events: %s", len(batch), e)

    def __enter__(self) -> EventBatcher:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
