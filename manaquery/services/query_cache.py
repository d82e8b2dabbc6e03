"""
Translation cache.

Keyed by a hash of the normalized input text, the structured-filter
fingerprint, and a salt bumped whenever compiler output changes. Two tiers:

- InMemoryQueryCache: bounded LRU shared by requests in one process
- DatabaseQueryCache: the ``query_cache`` table, shared across processes

TTL is fixed per tier and independent of query complexity. Expired entries
are skipped on read and removed only by sweep_expired.

INVARIANT: Only successful results at or above CACHE_MIN_CONFIDENCE are
written. Concurrent identical misses may both write; the last write wins,
which is safe because compilation is deterministic.
"""

import hashlib
import json
import logging
import re
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from manaquery.config import (
    CACHE_MAX_SIZE,
    CACHE_MIN_CONFIDENCE,
    CACHE_TTL_SECONDS,
    PERSISTENT_CACHE_TTL_SECONDS,
    settings,
)
from manaquery.db.operations import (
    get_live_cache_row,
    record_cache_hit,
    sweep_expired_cache,
    upsert_cache_row,
)
from manaquery.models.translation import (
    Explanation,
    SearchFilters,
    TranslationResult,
    TranslationSource,
)

logger = logging.getLogger(__name__)

_UNCACHEABLE_SOURCES = frozenset(
    {TranslationSource.CACHE, TranslationSource.FALLBACK, TranslationSource.FORCED_FALLBACK}
)


def normalize_query_text(text: str) -> str:
    """Lower-case and collapse whitespace."""
    return re.sub(r"\s+", " ", text).strip().lower()


def build_cache_key(
    text: str,
    filters: SearchFilters | None = None,
    salt: str | None = None,
) -> str:
    """SHA-256 hex digest of normalized text, filter fingerprint, and salt."""
    fingerprint = json.dumps(filters.fingerprint() if filters else {}, sort_keys=True)
    material = f"{normalize_query_text(text)}|{fingerprint}|{salt or settings.cache_salt}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def should_cache(result: TranslationResult) -> bool:
    """Whether a fresh result is worth storing."""
    return (
        result.success
        and result.confidence >= CACHE_MIN_CONFIDENCE
        and result.source not in _UNCACHEABLE_SOURCES
    )


def as_cached(result: TranslationResult, original_query: str) -> TranslationResult:
    """Copy of a stored result as returned on a hit."""
    return result.model_copy(
        update={
            "original_query": original_query,
            "source": TranslationSource.CACHE,
            "response_time_ms": None,
        }
    )


@dataclass(frozen=True, slots=True)
class CacheHit:
    """A cache hit and the entry's hit count after this lookup."""

    result: TranslationResult
    hit_count: int


# =============================================================================
# IN-MEMORY TIER
# =============================================================================


@dataclass
class _MemoryEntry:
    result: TranslationResult
    expires_at: float
    hit_count: int = 0
    last_hit_at: float | None = None


class InMemoryQueryCache:
    """
    Bounded LRU with per-entry expiry.

    Thread-safe. When full, the least recently used entry is dropped.
    """

    def __init__(
        self,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        max_size: int = CACHE_MAX_SIZE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._entries: OrderedDict[str, _MemoryEntry] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    async def get(self, key: str, original_query: str) -> CacheHit | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.expires_at <= now:
                return None
            entry.hit_count += 1
            entry.last_hit_at = now
            self._entries.move_to_end(key)
            hit_count = entry.hit_count
            result = entry.result
        return CacheHit(result=as_cached(result, original_query), hit_count=hit_count)

    async def set(self, key: str, normalized_query: str, result: TranslationResult) -> None:
        now = self._clock()
        with self._lock:
            previous = self._entries.pop(key, None)
            self._entries[key] = _MemoryEntry(
                result=result,
                expires_at=now + self.ttl_seconds,
                hit_count=previous.hit_count if previous else 0,
            )
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    async def sweep_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


# =============================================================================
# PERSISTENT TIER
# =============================================================================


def _utc_now() -> datetime:
    return datetime.now(UTC)


class DatabaseQueryCache:
    """Cache backed by the ``query_cache`` table, bound to one session."""

    def __init__(
        self,
        session: AsyncSession,
        ttl_seconds: float = PERSISTENT_CACHE_TTL_SECONDS,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.session = session
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    async def get(self, key: str, original_query: str) -> CacheHit | None:
        row = await record_cache_hit(self.session, key, self._clock())
        if row is None:
            return None
        result = TranslationResult(
            original_query=original_query,
            scryfall_query=row.scryfall_query,
            explanation=Explanation(**row.explanation),
            success=True,
            source=TranslationSource.CACHE,
        )
        return CacheHit(result=result, hit_count=row.hit_count)

    async def set(self, key: str, normalized_query: str, result: TranslationResult) -> None:
        await upsert_cache_row(
            self.session,
            query_hash=key,
            normalized_query=normalized_query,
            scryfall_query=result.scryfall_query,
            confidence=result.confidence,
            explanation=result.explanation.model_dump(),
            source=result.source.value,
            expires_at=self._clock() + timedelta(seconds=self.ttl_seconds),
        )

    async def is_live(self, key: str) -> bool:
        return await get_live_cache_row(self.session, key, self._clock()) is not None

    async def sweep_expired(self) -> int:
        return await sweep_expired_cache(self.session, self._clock())


# =============================================================================
# TIERED CACHE
# =============================================================================


class TieredQueryCache:
    """Memory first, then the database; database hits warm the memory tier."""

    def __init__(
        self,
        memory: InMemoryQueryCache,
        persistent: DatabaseQueryCache | None = None,
    ) -> None:
        self.memory = memory
        self.persistent = persistent

    async def get(self, key: str, original_query: str) -> CacheHit | None:
        hit = await self.memory.get(key, original_query)
        if hit is not None:
            logger.info("CACHE_HIT", extra={"tier": "memory", "hits": hit.hit_count})
            return hit
        if self.persistent is None:
            return None
        hit = await self.persistent.get(key, original_query)
        if hit is None:
            logger.debug("CACHE_MISS", extra={"key": key[:12]})
            return None
        logger.info("CACHE_HIT", extra={"tier": "database", "hits": hit.hit_count})
        await self.memory.set(key, normalize_query_text(original_query), hit.result)
        return hit

    async def set(self, key: str, normalized_query: str, result: TranslationResult) -> bool:
        """Store a result in every tier. Returns False when the result is not cacheable."""
        if not should_cache(result):
            logger.debug(
                "CACHE_WRITE_SKIPPED",
                extra={"confidence": result.confidence, "source": result.source.value},
            )
            return False
        await self.memory.set(key, normalized_query, result)
        if self.persistent is not None:
            await self.persistent.set(key, normalized_query, result)
        return True

    async def sweep_expired(self) -> int:
        removed = await self.memory.sweep_expired()
        if self.persistent is not None:
            removed += await self.persistent.sweep_expired()
        return removed


# Default in-memory tier shared by requests in this process
_memory_cache: InMemoryQueryCache | None = None


def get_query_cache() -> InMemoryQueryCache:
    """
    Get the process-wide in-memory cache tier.

    Returns:
        Singleton InMemoryQueryCache
    """
    global _memory_cache
    if _memory_cache is None:
        _memory_cache = InMemoryQueryCache()
    return _memory_cache


def reset_query_cache() -> None:
    """Drop the process-wide cache tier (tests only)."""
    global _memory_cache
    _memory_cache = None
