"""
Ingestion component - Event collection, validation and persistence.
"""

from ._impl import InMemoryEventStore, InMemorySiteRegistry
from ._normalize import (
    derive_path,
    geo_from_headers,
    parse_user_agent,
    parse_utm,
    referrer_domain,
)
from .component import (
    IngestionPipeline,
    config_from_rules,
    create_ingestion_pipeline,
    run_collect,
)
from .models import CollectRequest, CollectResult, IngestionConfig
from .ports import EventListener, RateLimiterPort
from .validator import (
    normalize_payload,
    parse_client_timestamp,
    validate_batch,
    validate_event,
    validate_timestamp,
)

__all__ = [
    "CollectRequest",
    "CollectResult",
    "EventListener",
    "InMemoryEventStore",
    "InMemorySiteRegistry",
    "IngestionConfig",
    "IngestionPipeline",
    "RateLimiterPort",
    "config_from_rules",
    "create_ingestion_pipeline",
    "derive_path",
    "geo_from_headers",
    "normalize_payload",
    "parse_client_timestamp",
    "parse_user_agent",
    "parse_utm",
    "referrer_domain",
    "run_collect",
    "validate_batch",
    "validate_event",
    "validate_timestamp",
]
