"""
Rate Limiting for the translation endpoint.

Fixed windows counted independently per session id, per client IP, and
globally.

INVARIANTS:
- Session limit <= IP limit <= global limit
- Exceedance is TERMINAL: 429 with Retry-After, never queued
- Limits are enforced BEFORE the cache or compiler runs
- IPs appear in logs only as truncated SHA-256 hashes

Counters live in process memory. Two racing requests on one key may lose
an increment; that only loosens the limit slightly. Stale entries are
dropped once the table grows past MAX_TRACKED_KEYS, so counters stay bounded.
"""

import hashlib
import logging
import math
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from threading import Lock

from manaquery.config import (
    DEFAULT_CLIENT_IP,
    RATE_LIMIT_GLOBAL,
    RATE_LIMIT_PER_IP,
    RATE_LIMIT_PER_SESSION,
    RATE_LIMIT_WINDOW_SECONDS,
)
from manaquery.models.failure import RateLimitExceededError

logger = logging.getLogger(__name__)

MAX_TRACKED_KEYS = 10_000
GLOBAL_KEY = "global"


@dataclass
class RateLimitEntry:
    """Requests counted in the current window for one key."""

    count: int
    reset_time: float


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    """Outcome of one check."""

    allowed: bool
    scope: str
    limit: int
    remaining: int
    retry_after: int = 0


def hash_ip(ip_address: str) -> str:
    """
    Hash an IP address for privacy-safe logging.

    Uses SHA-256 truncated to 12 characters.
    """
    return hashlib.sha256(ip_address.encode()).hexdigest()[:12]


def extract_client_ip(headers: Mapping[str, str], default: str = DEFAULT_CLIENT_IP) -> str:
    """
    Client IP from proxy headers.

    Takes the FIRST X-Forwarded-For address, since later entries are
    appended by whoever forwarded the request and can be forged upstream.
    Falls back to X-Real-IP, then ``default``.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    return default


@dataclass
class RateLimiter:
    """
    Thread-safe fixed-window limiter.

    ``clock`` returns seconds and is injectable for tests.
    """

    session_limit: int = RATE_LIMIT_PER_SESSION
    ip_limit: int = RATE_LIMIT_PER_IP
    global_limit: int = RATE_LIMIT_GLOBAL
    window_seconds: float = RATE_LIMIT_WINDOW_SECONDS
    clock: Callable[[], float] = time.time

    _entries: dict[str, RateLimitEntry] = field(default_factory=dict)
    _lock: Lock = field(default_factory=Lock)

    def __post_init__(self) -> None:
        if not self.session_limit <= self.ip_limit <= self.global_limit:
            msg = (
                "Rate limits must satisfy session <= ip <= global, got "
                f"{self.session_limit}/{self.ip_limit}/{self.global_limit}"
            )
            raise ValueError(msg)

    def _evaluate(self, key: str, limit: int, scope: str, now: float) -> RateLimitDecision:
        entry = self._entries.get(key)
        if entry is None or now > entry.reset_time:
            return RateLimitDecision(True, scope, limit, remaining=limit - 1)
        if entry.count >= limit:
            retry_after = max(1, math.ceil(entry.reset_time - now))
            return RateLimitDecision(False, scope, limit, remaining=0, retry_after=retry_after)
        return RateLimitDecision(True, scope, limit, remaining=limit - entry.count - 1)

    def _increment(self, key: str, now: float) -> None:
        entry = self._entries.get(key)
        if entry is None or now > entry.reset_time:
            self._entries[key] = RateLimitEntry(count=1, reset_time=now + self.window_seconds)
        else:
            entry.count += 1

    def _cleanup(self, now: float) -> None:
        if len(self._entries) <= MAX_TRACKED_KEYS:
            return
        stale = [key for key, entry in self._entries.items() if now > entry.reset_time]
        for key in stale:
            del self._entries[key]
        logger.info("RATE_LIMIT_CLEANUP", extra={"removed": len(stale)})

    def check(self, ip_address: str, session_id: str | None = None) -> RateLimitDecision:
        """
        Count one request against every applicable window.

        Order of checks: session, IP, global. Nothing is counted unless all
        three allow the request.

        Raises:
            RateLimitExceededError: If any window is exhausted
        """
        now = self.clock()
        checks: list[tuple[str, int, str]] = []
        if session_id:
            checks.append((f"session:{session_id}", self.session_limit, "session"))
        checks.append((f"ip:{ip_address}", self.ip_limit, "ip"))
        checks.append((GLOBAL_KEY, self.global_limit, "global"))

        with self._lock:
            self._cleanup(now)
            decisions = [self._evaluate(key, limit, scope, now) for key, limit, scope in checks]
            for decision in decisions:
                if not decision.allowed:
                    logger.warning(
                        "RATE_LIMIT_EXCEEDED",
                        extra={
                            "scope": decision.scope,
                            "ip_hash": hash_ip(ip_address),
                            "limit": decision.limit,
                            "retry_after": decision.retry_after,
                        },
                    )
                    raise RateLimitExceededError(
                        decision.scope, decision.limit, decision.retry_after
                    )
            for key, _, _ in checks:
                self._increment(key, now)

        return min(decisions, key=lambda d: d.remaining)

    def entry(self, key: str) -> RateLimitEntry | None:
        """Current window for a raw key such as ``ip:1.2.3.4``."""
        with self._lock:
            return self._entries.get(key)

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()


# =============================================================================
# GLOBAL LIMITER INSTANCE
# =============================================================================

# Singleton limiter instance
_rate_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Get the global rate limiter instance."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter()
    return _rate_limiter


def reset_rate_limiter() -> None:
    """Reset the global rate limiter (for testing)."""
    global _rate_limiter
    _rate_limiter = None
