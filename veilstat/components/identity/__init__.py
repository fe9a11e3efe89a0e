"""
Identity component - Pseudonymous visitor/session identifiers and bot filter.
"""

from .component import (
    DEFAULT_CONFIG,
    IdentityHasher,
    anonymize_origin,
    classify_user_agent,
    client_origin,
    config_from_rules,
    create_identity_hasher,
    daily_salt,
    is_bot,
    session_pseudonym,
    visitor_pseudonym,
)
from .models import UNKNOWN_ORIGIN, IdentityConfig, UAClass, VisitorIdentity

__all__ = [
    "DEFAULT_CONFIG",
    "IdentityConfig",
    "IdentityHasher",
    "UAClass",
    "UNKNOWN_ORIGIN",
    "VisitorIdentity",
    "anonymize_origin",
    "classify_user_agent",
    "client_origin",
    "config_from_rules",
    "create_identity_hasher",
    "daily_salt",
    "is_bot",
    "session_pseudonym",
    "visitor_pseudonym",
]
