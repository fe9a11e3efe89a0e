"""
Tests for the identity component: origin anonymization, pseudonyms, bot filter.
"""

from __future__ import annotations

import threading
from datetime import date, timedelta

import pytest

from veilstat.components.identity import (
    IdentityConfig,
    IdentityHasher,
    UAClass,
    anonymize_origin,
    classify_user_agent,
    client_origin,
    config_from_rules,
    daily_salt,
    is_bot,
    session_pseudonym,
    visitor_pseudonym,
)
from veilstat.rules.loader import default_rules


class TestAnonymizeOrigin:
    """Origin truncation before hashing."""

    def test_ipv4_last_octet_zeroed(self) -> None:
        assert anonymize_origin("203.0.113.57") == "203.0.113.0"

    def test_ipv6_keeps_first_three_groups(self) -> None:
        assert anonymize_origin("2001:db8:85a3:1234:5678:8a2e:370:7334") == "2001:db8:85a3::"

    def test_ipv4_mapped_ipv6_treated_as_ipv4(self) -> None:
        assert anonymize_origin("::ffff:198.51.100.23") == "198.51.100.0"

    def test_deterministic(self) -> None:
        assert anonymize_origin("192.0.2.200") == anonymize_origin("192.0.2.200")

    def test_many_to_one(self) -> None:
        """Every host in a /24 collapses to the same fragment."""
        fragments = {anonymize_origin(f"192.0.2.{i}") for i in range(256)}
        assert fragments == {"192.0.2.0"}

    @pytest.mark.parametrize("origin", [None, "", "not-an-ip", "999.1.1.1"])
    def test_unparseable_is_unknown(self, origin: str | None) -> None:
        assert anonymize_origin(origin) == "unknown"


class TestPseudonyms:
    """Keyed digests for visitors and sessions."""

    def test_visitor_pseudonym_ignores_last_octet(self) -> None:
        salt = daily_salt("secret", date(2026, 3, 10))
        ua = "Mozilla/5.0"
        assert visitor_pseudonym("10.1.2.3", ua, salt) == visitor_pseudonym("10.1.2.99", ua, salt)

    def test_visitor_pseudonym_never_contains_origin(self) -> None:
        salt = daily_salt("secret", date(2026, 3, 10))
        pseudonym = visitor_pseudonym("10.1.2.3", "ua", salt)
        assert "10.1.2" not in pseudonym
        assert len(pseudonym) == 16

    def test_salt_rotates_daily(self) -> None:
        day = date(2026, 3, 10)
        assert daily_salt("secret", day) != daily_salt("secret", day + timedelta(days=1))

    def test_session_pseudonym_scoped_to_site(self) -> None:
        salt = daily_salt("secret", date(2026, 3, 10))
        assert session_pseudonym("tok", "site-a", salt) != session_pseudonym("tok", "site-b", salt)

    def test_custom_length(self) -> None:
        salt = daily_salt("secret", date(2026, 3, 10))
        assert len(session_pseudonym("tok", "site", salt, length=32)) == 32


class TestBotClassification:
    """User-agent classification."""

    def test_crawler_is_bot(self, bot_ua: str) -> None:
        assert classify_user_agent(bot_ua) == UAClass.BOT

    def test_browser_is_real(self, browser_ua: str) -> None:
        assert classify_user_agent(browser_ua) == UAClass.REAL

    def test_headless_chrome_is_bot(self) -> None:
        ua = "Mozilla/5.0 (X11; Linux x86_64) HeadlessChrome/120.0 Safari/537.36"
        assert classify_user_agent(ua) == UAClass.BOT

    def test_missing_is_unknown(self) -> None:
        assert classify_user_agent(None) == UAClass.UNKNOWN

    def test_unknown_treated_as_real_by_default(self) -> None:
        assert is_bot(UAClass.UNKNOWN) is False

    def test_unknown_treated_as_bot_when_configured(self) -> None:
        config = IdentityConfig(treat_unknown_as="bot")
        assert is_bot(UAClass.UNKNOWN, config) is True

    def test_extra_patterns(self) -> None:
        config = IdentityConfig().with_extra_patterns(["InternalMonitor"])
        assert classify_user_agent("Mozilla/5.0 internalmonitor/1.0", config) == UAClass.BOT

    def test_config_from_rules(self) -> None:
        rules = default_rules()
        rules.bots.extra_patterns = ["acme-scanner"]
        config = config_from_rules(rules)
        assert "acme-scanner" in config.bot_patterns
        assert config.pseudonym_length == rules.privacy.pseudonym_length


class TestClientOrigin:
    def test_forwarded_for_first_entry(self) -> None:
        headers = {"x-forwarded-for": "198.51.100.7, 10.0.0.1"}
        assert client_origin(headers, "10.0.0.1") == "198.51.100.7"

    def test_falls_back_to_peer(self) -> None:
        assert client_origin({}, "192.0.2.4") == "192.0.2.4"


class TestIdentityHasher:
    """The bundled hasher used by ingestion."""

    def test_empty_secret_rejected(self, time_port) -> None:
        with pytest.raises(ValueError):
            IdentityHasher("", time_port)

    def test_identify_same_day_stable(self, hasher: IdentityHasher, browser_ua: str, now) -> None:
        a = hasher.identify("192.0.2.10", browser_ua, "site-1", "tok", when=now)
        b = hasher.identify("192.0.2.77", browser_ua, "site-1", "tok", when=now)
        assert a.visitor_id == b.visitor_id
        assert a.session_id == b.session_id
        assert a.ua_class == UAClass.REAL

    def test_identify_unlinkable_across_days(
        self, hasher: IdentityHasher, browser_ua: str, now
    ) -> None:
        today = hasher.identify("192.0.2.10", browser_ua, "site-1", "tok", when=now)
        tomorrow = hasher.identify(
            "192.0.2.10", browser_ua, "site-1", "tok", when=now + timedelta(days=1)
        )
        assert today.visitor_id != tomorrow.visitor_id

    def test_identify_without_session_token(self, hasher: IdentityHasher, now) -> None:
        identity = hasher.identify("192.0.2.10", None, "site-1", None, when=now)
        assert identity.session_id is None

    def test_salt_matches_day_under_concurrent_rotation(self, hasher: IdentityHasher, now) -> None:
        days = [now, now + timedelta(days=1)]
        expected = {d.date(): daily_salt("test-secret", d.date()) for d in days}
        mismatches: list[date] = []

        def worker(offset: int) -> None:
            for i in range(500):
                when = days[(i + offset) % 2]
                if hasher.salt_for(when) != expected[when.date()]:
                    mismatches.append(when.date())

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert mismatches == []
