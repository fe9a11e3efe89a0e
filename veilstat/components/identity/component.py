"""
Identity component - origin anonymization, pseudonyms and bot filtering.

Derives stable, non-reversible identifiers for visitors and sessions from
request metadata. Nothing here ever persists or logs the raw inputs.

Invariants:
- anonymize_origin is deterministic and many-to-one (IPv4 /24, IPv6 /48)
- Pseudonyms are keyed HMAC-SHA256 digests truncated to a fixed length;
  the key is a per-day salt, so pseudonyms cannot be linked across days
- Bot classification checks crawler signatures before browser signatures
"""

from __future__ import annotations

import hashlib
import hmac
import ipaddress
from collections.abc import Mapping
from datetime import date, datetime

from veilstat.core.ports import TimePort
from veilstat.rules.models import Rules

from .models import UNKNOWN_ORIGIN, IdentityConfig, UAClass, VisitorIdentity

DEFAULT_CONFIG = IdentityConfig()


def config_from_rules(rules: Rules) -> IdentityConfig:
    """Build IdentityConfig from the privacy and bots sections."""
    return IdentityConfig(
        pseudonym_length=rules.privacy.pseudonym_length,
        treat_unknown_as=rules.bots.treat_unknown_as,
    ).with_extra_patterns(rules.bots.extra_patterns)


# --- Pure Functions (Functional Core) ---


def anonymize_origin(origin: str | None) -> str:
    """
    Reduce a network origin to a coarse fragment.

    IPv4 keeps the first three octets (last zeroed). IPv6 keeps the first
    three groups, the rest zeroed. IPv4-mapped IPv6 is treated as IPv4.
    Missing or unparseable input maps to the constant "unknown".
    """
    if not origin:
        return UNKNOWN_ORIGIN

    try:
        addr = ipaddress.ip_address(origin.strip())
    except ValueError:
        return UNKNOWN_ORIGIN

    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        addr = addr.ipv4_mapped

    prefix = 24 if addr.version == 4 else 48
    network = ipaddress.ip_network(f"{addr}/{prefix}", strict=False)
    return str(network.network_address)


def daily_salt(secret: str, day: date) -> str:
    """Rotating salt for one UTC day."""
    return hmac.new(
        secret.encode(), day.isoformat().encode(), hashlib.sha256
    ).hexdigest()


def _keyed_digest(salt: str, parts: tuple[str, ...], length: int) -> str:
    message = "|".join(parts).encode()
    return hmac.new(salt.encode(), message, hashlib.sha256).hexdigest()[:length]


def visitor_pseudonym(
    origin: str | None,
    user_agent: str | None,
    salt: str,
    length: int = DEFAULT_CONFIG.pseudonym_length,
) -> str:
    """HMAC of the anonymized origin and user-agent under the salt."""
    return _keyed_digest(salt, (anonymize_origin(origin), user_agent or ""), length)


def session_pseudonym(
    session_token: str,
    site_id: str,
    salt: str,
    length: int = DEFAULT_CONFIG.pseudonym_length,
) -> str:
    """HMAC of the client session token and site under the salt."""
    return _keyed_digest(salt, (session_token, site_id), length)


def classify_user_agent(
    user_agent: str | None,
    config: IdentityConfig = DEFAULT_CONFIG,
) -> UAClass:
    """
    Classify a user agent string.

    Returns BOT, REAL, or UNKNOWN based on patterns.
    """
    if not user_agent:
        return UAClass.UNKNOWN

    ua_lower = user_agent.lower()

    # Bot patterns take priority
    for pattern in config.bot_patterns:
        if pattern in ua_lower:
            return UAClass.BOT

    for pattern in config.real_browser_patterns:
        if pattern in ua_lower:
            return UAClass.REAL

    return UAClass.UNKNOWN


def is_bot(ua_class: UAClass, config: IdentityConfig = DEFAULT_CONFIG) -> bool:
    """Check if UA class should be treated as a bot."""
    if ua_class == UAClass.BOT:
        return True
    if ua_class == UAClass.UNKNOWN and config.treat_unknown_as == "bot":
        return True
    return False


def client_origin(headers: Mapping[str, str], peer: str | None) -> str | None:
    """First X-Forwarded-For entry, else the socket peer."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return peer


# --- Service ---


class IdentityHasher:
    """Bundles the hash secret, clock and config for the ingestion pipeline."""

    def __init__(
        self,
        secret: str,
        clock: TimePort,
        config: IdentityConfig = DEFAULT_CONFIG,
    ) -> None:
        if not secret:
            raise ValueError("Hash secret must not be empty")
        self._secret = secret
        self._clock = clock
        self._config = config
        # (day, salt) is replaced as a single reference
        self._cached_salt: tuple[date, str] | None = None

    @property
    def config(self) -> IdentityConfig:
        return self._config

    def salt_for(self, when: datetime | None = None) -> str:
        day = (when or self._clock.now_utc()).date()
        cached = self._cached_salt
        if cached is not None and cached[0] == day:
            return cached[1]
        salt = daily_salt(self._secret, day)
        self._cached_salt = (day, salt)
        return salt

    def classify(self, user_agent: str | None) -> UAClass:
        return classify_user_agent(user_agent, self._config)

    def is_bot(self, user_agent: str | None) -> bool:
        return is_bot(self.classify(user_agent), self._config)

    def identify(
        self,
        origin: str | None,
        user_agent: str | None,
        site_id: str,
        session_token: str | None,
        when: datetime | None = None,
    ) -> VisitorIdentity:
        salt = self.salt_for(when)
        length = self._config.pseudonym_length
        session_id = (
            session_pseudonym(session_token, site_id, salt, length)
            if session_token
            else None
        )
        return VisitorIdentity(
            visitor_id=visitor_pseudonym(origin, user_agent, salt, length),
            session_id=session_id,
            ua_class=self.classify(user_agent),
        )


def create_identity_hasher(
    secret: str,
    clock: TimePort,
    config: IdentityConfig | None = None,
) -> IdentityHasher:
    """Factory for IdentityHasher."""
    return IdentityHasher(secret, clock, config or DEFAULT_CONFIG)
