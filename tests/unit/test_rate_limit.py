from datetime import timedelta

import pytest

from veilstat.app_shell.rate_limit import RateLimiter
from veilstat.rules.models import RateLimitRules, RateLimitWindow


@pytest.fixture
def limiter(time_port):
    return RateLimiter(
        RateLimitRules(collect=RateLimitWindow(window_seconds=60, max_requests=3)),
        time_port,
    )


def test_allow_request_basic(limiter):
    key = "test_key"
    window = 60
    limit = 2

    assert limiter.allow_request(key, window, limit) is True
    assert limiter.allow_request(key, window, limit) is True
    assert limiter.allow_request(key, window, limit) is False  # Limit reached


def test_cleanup_window(limiter, time_port):
    key = "sliding"

    assert limiter.allow_request(key, 60, 1) is True
    assert limiter.allow_request(key, 60, 1) is False

    time_port.advance(seconds=61)
    assert limiter.allow_request(key, 60, 1) is True


def test_denied_requests_not_recorded(limiter, time_port):
    key = "denied"
    assert limiter.allow_request(key, 60, 1) is True
    for _ in range(5):
        assert limiter.allow_request(key, 60, 1) is False

    # Only the first request occupies the window
    time_port.advance(seconds=61)
    assert limiter.allow_request(key, 60, 1) is True


def test_keys_independent(limiter):
    assert limiter.allow_request("a", 60, 1) is True
    assert limiter.allow_request("b", 60, 1) is True


def test_zero_limit_denies(limiter):
    assert limiter.allow_request("zero", 60, 0) is False


def test_retry_after(limiter, time_port):
    key = "retry"
    limiter.allow_request(key, 60, 1)
    time_port.advance(seconds=20)

    assert limiter.retry_after(key, 60) == 40


def test_retry_after_rounds_up(limiter, time_port):
    key = "retry_fraction"
    limiter.allow_request(key, 60, 1)
    time_port.set_now(time_port.now_utc() + timedelta(seconds=59, milliseconds=500))

    assert limiter.retry_after(key, 60) == 1


def test_retry_after_unknown_key(limiter):
    assert limiter.retry_after("nobody", 60) == 1


def test_rules_kept(limiter):
    assert limiter.rules.collect.max_requests == 3
