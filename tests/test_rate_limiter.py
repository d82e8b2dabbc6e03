"""Tests for fixed-window rate limiting."""

import pytest

from manaquery.models.failure import RateLimitExceededError
from manaquery.services.rate_limiter import (
    RateLimiter,
    extract_client_ip,
    get_rate_limiter,
    hash_ip,
    reset_rate_limiter,
)


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_limiter(clock: FakeClock, session: int = 3, ip: int = 5, global_: int = 100) -> RateLimiter:
    return RateLimiter(
        session_limit=session,
        ip_limit=ip,
        global_limit=global_,
        window_seconds=60,
        clock=clock,
    )


class TestRateLimiterConfiguration:
    def test_limits_must_be_ordered(self) -> None:
        with pytest.raises(ValueError, match="session <= ip <= global"):
            RateLimiter(session_limit=50, ip_limit=10, global_limit=100)

    def test_defaults_are_valid(self) -> None:
        limiter = RateLimiter()

        assert limiter.session_limit <= limiter.ip_limit <= limiter.global_limit


class TestRateLimiterWindows:
    def test_request_over_limit_denied_with_retry_after(self) -> None:
        clock = FakeClock()
        limiter = make_limiter(clock)

        for _ in range(5):
            limiter.check("1.2.3.4")

        with pytest.raises(RateLimitExceededError) as exc_info:
            limiter.check("1.2.3.4")

        assert exc_info.value.scope == "ip"
        assert exc_info.value.retry_after > 0
        assert exc_info.value.status_code == 429

    def test_window_reset_allows_again(self) -> None:
        clock = FakeClock()
        limiter = make_limiter(clock)
        for _ in range(5):
            limiter.check("1.2.3.4")

        clock.now += 61

        decision = limiter.check("1.2.3.4")
        assert decision.allowed

    def test_expired_entry_is_reset(self) -> None:
        clock = FakeClock()
        limiter = make_limiter(clock)
        for _ in range(5):
            limiter.check("1.2.3.4")
        entry = limiter.entry("ip:1.2.3.4")
        assert entry is not None

        entry.reset_time = clock.now - 1

        limiter.check("1.2.3.4")
        assert limiter.entry("ip:1.2.3.4").count == 1

    def test_distinct_keys_do_not_interfere(self) -> None:
        clock = FakeClock()
        limiter = make_limiter(clock)
        for _ in range(5):
            limiter.check("1.1.1.1")

        decision = limiter.check("2.2.2.2")

        assert decision.allowed

    def test_session_limit_checked_first(self) -> None:
        clock = FakeClock()
        limiter = make_limiter(clock)
        for _ in range(3):
            limiter.check("1.2.3.4", session_id="abc")

        with pytest.raises(RateLimitExceededError) as exc_info:
            limiter.check("1.2.3.4", session_id="abc")

        assert exc_info.value.scope == "session"

    def test_denied_request_not_counted(self) -> None:
        clock = FakeClock()
        limiter = make_limiter(clock)
        for _ in range(3):
            limiter.check("1.2.3.4", session_id="abc")

        with pytest.raises(RateLimitExceededError):
            limiter.check("1.2.3.4", session_id="abc")

        assert limiter.entry("ip:1.2.3.4").count == 3

    def test_global_limit_spans_clients(self) -> None:
        clock = FakeClock()
        limiter = make_limiter(clock, session=1, ip=2, global_=3)
        limiter.check("1.1.1.1")
        limiter.check("2.2.2.2")
        limiter.check("3.3.3.3")

        with pytest.raises(RateLimitExceededError) as exc_info:
            limiter.check("4.4.4.4")

        assert exc_info.value.scope == "global"

    def test_retry_after_counts_down(self) -> None:
        clock = FakeClock()
        limiter = make_limiter(clock)
        for _ in range(5):
            limiter.check("1.2.3.4")
        clock.now += 50

        with pytest.raises(RateLimitExceededError) as exc_info:
            limiter.check("1.2.3.4")

        assert exc_info.value.retry_after == 10


class TestClientIp:
    def test_first_forwarded_address_wins(self) -> None:
        headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.1"}

        assert extract_client_ip(headers) == "203.0.113.7"

    def test_real_ip_fallback(self) -> None:
        assert extract_client_ip({"x-real-ip": " 198.51.100.2 "}) == "198.51.100.2"

    def test_default_when_no_headers(self) -> None:
        assert extract_client_ip({}, default="peer") == "peer"

    def test_hash_is_truncated_and_stable(self) -> None:
        assert hash_ip("1.2.3.4") == hash_ip("1.2.3.4")
        assert len(hash_ip("1.2.3.4")) == 12
        assert "1.2.3.4" not in hash_ip("1.2.3.4")


class TestGlobalLimiter:
    def test_singleton_until_reset(self) -> None:
        first = get_rate_limiter()

        assert get_rate_limiter() is first
        reset_rate_limiter()
        assert get_rate_limiter() is not first
