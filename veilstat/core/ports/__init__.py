# veilstat - Ports (Protocol Interfaces)
# Abstract interfaces for adapters; no implementations here

from veilstat.core.ports.db import (
    EventStorePort,
    PersistencePort,
    SiteLookupPort,
    Statement,
)
from veilstat.core.ports.time import TimePort

__all__ = [
    "EventStorePort",
    "PersistencePort",
    "SiteLookupPort",
    "Statement",
    "TimePort",
]
