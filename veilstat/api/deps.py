import logging
import os
import secrets
from functools import lru_cache
from pathlib import Path

from fastapi import Depends

from veilstat.adapters.clock import SystemClock
from veilstat.adapters.notifiers import LogNotifier, create_webhook_notifier
from veilstat.adapters.sqlite_db import SQLiteAlertStateRepo, SQLiteDatabase, SQLiteEventRepo
from veilstat.app_shell.rate_limit import RateLimiter
from veilstat.components.alerts import (
    AlertRunner,
    AlertStateRepoPort,
    ChannelKind,
    create_alert_runner,
)
from veilstat.components.funnels import FunnelEvaluator
from veilstat.components.identity import IdentityHasher, create_identity_hasher
from veilstat.components.identity import config_from_rules as identity_config
from veilstat.components.ingestion import (
    InMemorySiteRegistry,
    IngestionPipeline,
    create_ingestion_pipeline,
)
from veilstat.components.query import QueryEngine, create_query_engine
from veilstat.components.realtime import RealtimeTracker, create_realtime_tracker
from veilstat.core.ports import EventStorePort, PersistencePort, TimePort
from veilstat.rules.loader import load_rules
from veilstat.rules.models import Rules

logger = logging.getLogger(__name__)


# --- Settings ---
class Settings:
    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        data_dir = os.environ.get("VEILSTAT_DATA_DIR", "./data")
        self.db_path = f"{data_dir}/veilstat.db"
        self.rules_path = Path(os.environ.get("VEILSTAT_RULES_PATH", self.base_dir / "rules.yaml"))
        self.migrations_dir = os.environ.get("VEILSTAT_MIGRATIONS_DIR")
        # Comma-separated registry of known sites; empty accepts any siteId
        self.site_ids = [
            s.strip() for s in os.environ.get("VEILSTAT_SITE_IDS", "").split(",") if s.strip()
        ]


@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def get_rules(settings: Settings = Depends(get_settings)) -> Rules:
    return load_rules(settings.rules_path)


def resolve_hash_secret(rules: Rules) -> str:
    secret = os.environ.get(rules.privacy.hash_secret_env)
    if secret:
        return secret
    logger.warning(
        "%s is not set; using a per-process secret (pseudonyms change on restart)",
        rules.privacy.hash_secret_env,
    )
    return secrets.token_hex(32)


# --- Adapters ---
def get_clock() -> TimePort:
    return SystemClock()


@lru_cache
def get_database(settings: Settings = Depends(get_settings)) -> PersistencePort:
    return SQLiteDatabase(settings.db_path)


def get_event_store(db: PersistencePort = Depends(get_database)) -> EventStorePort:
    return SQLiteEventRepo(db)


def get_alert_state_repo(db: PersistencePort = Depends(get_database)) -> AlertStateRepoPort:
    return SQLiteAlertStateRepo(db)


# Process-wide singletons; Rules is not hashable so these resolve it themselves
@lru_cache
def get_rate_limiter() -> RateLimiter:
    return RateLimiter(get_rules(get_settings()).rate_limits)


# --- Component Services ---
@lru_cache
def get_identity_hasher() -> IdentityHasher:
    rules = get_rules(get_settings())
    return create_identity_hasher(resolve_hash_secret(rules), SystemClock(), identity_config(rules))


@lru_cache
def get_realtime_tracker() -> RealtimeTracker:
    """Process-wide tracker; its session store lives as long as the app."""
    return create_realtime_tracker(SystemClock(), rules=get_rules(get_settings()))


def get_ingestion_pipeline(
    settings: Settings = Depends(get_settings),
    rules: Rules = Depends(get_rules),
    store: EventStorePort = Depends(get_event_store),
    hasher: IdentityHasher = Depends(get_identity_hasher),
    clock: TimePort = Depends(get_clock),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    tracker: RealtimeTracker = Depends(get_realtime_tracker),
) -> IngestionPipeline:
    site_lookup = InMemorySiteRegistry(settings.site_ids) if settings.site_ids else None
    return create_ingestion_pipeline(
        store,
        hasher,
        clock,
        rules=rules,
        rate_limiter=rate_limiter,
        site_lookup=site_lookup,
        listeners=[tracker.track_event],
    )


def get_query_engine(
    rules: Rules = Depends(get_rules),
    store: EventStorePort = Depends(get_event_store),
    clock: TimePort = Depends(get_clock),
) -> QueryEngine:
    return create_query_engine(store, clock, rules)


def get_funnel_evaluator(store: EventStorePort = Depends(get_event_store)) -> FunnelEvaluator:
    return FunnelEvaluator(store)


def get_alert_runner(
    rules: Rules = Depends(get_rules),
    engine: QueryEngine = Depends(get_query_engine),
    state_repo: AlertStateRepoPort = Depends(get_alert_state_repo),
    clock: TimePort = Depends(get_clock),
) -> AlertRunner:
    notifiers = {
        ChannelKind.LOG: LogNotifier(),
        ChannelKind.WEBHOOK: create_webhook_notifier(
            max_attempts=rules.alerts.webhook_max_attempts,
            timeout_seconds=rules.alerts.webhook_timeout_seconds,
        ),
    }
    return create_alert_runner(engine, state_repo, clock, notifiers, rules)
