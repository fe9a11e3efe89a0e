"""
Ingestion component - accept, validate, pseudonymize and persist events.

Flow per collect call:
rate limit -> normalize/validate -> site check -> bot filter ->
identity hashing -> dimension normalization -> one atomic insert ->
listener fan-out.

Invariants:
- One batch is one write: either every non-bot event is stored or none is
- Bot traffic is acknowledged exactly like real traffic but never stored
- The raw origin, user agent and client visitorId never reach storage or logs
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from veilstat.core.entities import StoredEvent
from veilstat.core.errors import NotFound, PersistenceError, RateLimited, ValidationError
from veilstat.rules.models import Rules

from ..identity import IdentityHasher, anonymize_origin, client_origin
from ._normalize import build_stored_event
from .models import CollectRequest, CollectResult, IngestionConfig
from .ports import (
    EventListener,
    EventStorePort,
    RateLimiterPort,
    SiteLookupPort,
    TimePort,
)
from .validator import normalize_payload, parse_client_timestamp, validate_batch

logger = logging.getLogger(__name__)


def config_from_rules(rules: Rules) -> IngestionConfig:
    """Build IngestionConfig from the rules file sections."""
    ingestion = rules.ingestion
    collect = rules.rate_limits.collect
    return IngestionConfig(
        allowed_kinds=frozenset(ingestion.allowed_kinds),
        session_bearing_kinds=frozenset(ingestion.session_bearing_kinds),
        max_clock_skew_seconds=ingestion.max_clock_skew_seconds,
        max_batch_size=ingestion.max_batch_size,
        max_path_length=ingestion.max_path_length,
        rate_limit_window_seconds=collect.window_seconds,
        rate_limit_max_requests=collect.max_requests,
    )


class IngestionPipeline:
    """End-to-end collection flow for one request."""

    def __init__(
        self,
        store: EventStorePort,
        hasher: IdentityHasher,
        clock: TimePort,
        config: IngestionConfig | None = None,
        rate_limiter: RateLimiterPort | None = None,
        site_lookup: SiteLookupPort | None = None,
        listeners: Sequence[EventListener] = (),
    ) -> None:
        self._store = store
        self._hasher = hasher
        self._clock = clock
        self._config = config or IngestionConfig()
        self._rate_limiter = rate_limiter
        self._site_lookup = site_lookup
        self._listeners = list(listeners)

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def _check_rate_limit(self, origin: str | None) -> None:
        if self._rate_limiter is None:
            return
        key = f"collect:{anonymize_origin(origin)}"
        window = self._config.rate_limit_window_seconds
        if not self._rate_limiter.allow_request(
            key, window, self._config.rate_limit_max_requests
        ):
            raise RateLimited(self._rate_limiter.retry_after(key, window))

    def collect(self, request: CollectRequest) -> CollectResult:
        """
        Accept one collection request.

        Raises:
            RateLimited: origin fragment exceeded its budget
            ValidationError: body or any event invalid (nothing stored)
            NotFound: an event references an unregistered site
            PersistenceError: the batch write failed (nothing stored)
        """
        headers = {k.lower(): v for k, v in request.headers.items()}
        origin = client_origin(headers, request.peer)
        self._check_rate_limit(origin)

        now = self._clock.now_utc()
        try:
            events = normalize_payload(request.body, self._config)
            validate_batch(events, now, self._config)
        except ValidationError as e:
            logger.info(
                "Rejected collect request: %s",
                ", ".join(f"{err.code}:{err.field_name}" for err in e.errors),
            )
            raise

        if self._site_lookup is not None:
            for site_id in dict.fromkeys(e["siteId"] for e in events):
                if not self._site_lookup.exists(site_id):
                    raise NotFound("site", site_id)

        user_agent = headers.get("user-agent")
        # The user agent is request-scoped, so a bot verdict covers every event
        if self._hasher.is_bot(user_agent):
            logger.debug("Dropped %d bot event(s)", len(events))
            return CollectResult(accepted=len(events), stored=0, dropped_bots=len(events))

        stored: list[StoredEvent] = []
        for data in events:
            identity = self._hasher.identify(
                origin,
                user_agent,
                data["siteId"],
                data.get("sessionId"),
                when=now,
            )
            stored.append(
                build_stored_event(
                    data,
                    identity,
                    received_at=now,
                    client_ts=parse_client_timestamp(data.get("timestamp")),
                    user_agent=user_agent,
                    headers=headers,
                )
            )

        try:
            self._store.insert_many(stored)
        except PersistenceError as e:
            logger.error("Event batch write failed (%d events): %s", len(stored), e.detail)
            raise

        self._notify(stored)
        return CollectResult(accepted=len(events), stored=len(stored))

    def _notify(self, stored: list[StoredEvent]) -> None:
        for listener in self._listeners:
            for event in stored:
                try:
                    listener(event)
                except Exception:
                    # Listeners are read-side projections; ingestion has already committed
                    logger.exception("Event listener failed for site %s", event.site_id)


def create_ingestion_pipeline(
    store: EventStorePort,
    hasher: IdentityHasher,
    clock: TimePort,
    rules: Rules | None = None,
    rate_limiter: RateLimiterPort | None = None,
    site_lookup: SiteLookupPort | None = None,
    listeners: Sequence[EventListener] = (),
) -> IngestionPipeline:
    """Factory for IngestionPipeline."""
    config = config_from_rules(rules) if rules is not None else IngestionConfig()
    return IngestionPipeline(
        store,
        hasher,
        clock,
        config=config,
        rate_limiter=rate_limiter,
        site_lookup=site_lookup,
        listeners=listeners,
    )


def run_collect(request: CollectRequest, *, pipeline: IngestionPipeline) -> CollectResult:
    """Entry point: run one collection request through the pipeline."""
    return pipeline.collect(request)
