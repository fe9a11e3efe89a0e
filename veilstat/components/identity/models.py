"""
Identity component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class UAClass(str, Enum):
    """User agent classification."""

    BOT = "bot"
    REAL = "real"
    UNKNOWN = "unknown"


UNKNOWN_ORIGIN = "unknown"


@dataclass(frozen=True)
class IdentityConfig:
    """Hashing and bot classification configuration."""

    pseudonym_length: int = 16
    treat_unknown_as: str = "real"

    # Crawler signatures (lower-case substrings)
    bot_patterns: tuple[str, ...] = (
        "bot",
        "crawler",
        "spider",
        "scraper",
        "wget",
        "curl",
        "python-requests",
        "python-httpx",
        "go-http-client",
        "java/",
        "libwww",
        "httpclient",
        "headlesschrome",
        "phantomjs",
        "puppeteer",
        "selenium",
        "lighthouse",
        "pingdom",
        "uptimerobot",
        "slurp",
        "baiduspider",
        "facebookexternalhit",
        "bytespider",
    )

    real_browser_patterns: tuple[str, ...] = (
        "mozilla/5.0",
        "chrome/",
        "firefox/",
        "safari/",
        "edge/",
        "opera/",
        "msie",
        "trident/",
    )

    def with_extra_patterns(self, extra: list[str] | tuple[str, ...]) -> IdentityConfig:
        """Return a copy with additional bot signatures appended."""
        if not extra:
            return self
        return IdentityConfig(
            pseudonym_length=self.pseudonym_length,
            treat_unknown_as=self.treat_unknown_as,
            bot_patterns=self.bot_patterns + tuple(p.lower() for p in extra),
            real_browser_patterns=self.real_browser_patterns,
        )


@dataclass(frozen=True)
class VisitorIdentity:
    """Pseudonyms derived for one incoming event."""

    visitor_id: str
    session_id: str | None
    ua_class: UAClass
