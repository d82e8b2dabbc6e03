"""Tests for the translation cache tiers."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from manaquery.models.translation import (
    Explanation,
    SearchFilters,
    TranslationResult,
    TranslationSource,
)
from manaquery.services.query_cache import (
    DatabaseQueryCache,
    InMemoryQueryCache,
    TieredQueryCache,
    build_cache_key,
    should_cache,
)


def make_result(
    confidence: float = 0.9,
    source: TranslationSource = TranslationSource.DETERMINISTIC,
) -> TranslationResult:
    return TranslationResult(
        original_query="red creatures",
        scryfall_query="c:r t:creature game:paper",
        explanation=Explanation(readable="Red creatures", confidence=confidence),
        source=source,
    )


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestCacheKey:
    def test_normalized_text_shares_key(self) -> None:
        assert build_cache_key("Red  Creatures ") == build_cache_key("red creatures")

    def test_filters_change_key(self) -> None:
        plain = build_cache_key("red creatures")
        filtered = build_cache_key("red creatures", SearchFilters(format="modern"))

        assert plain != filtered

    def test_salt_changes_key(self) -> None:
        assert build_cache_key("red creatures", salt="a") != build_cache_key(
            "red creatures", salt="b"
        )


class TestShouldCache:
    def test_confident_result_cached(self) -> None:
        assert should_cache(make_result(0.9))

    def test_low_confidence_not_cached(self) -> None:
        assert not should_cache(make_result(0.5))

    @pytest.mark.parametrize(
        "source",
        [TranslationSource.FALLBACK, TranslationSource.FORCED_FALLBACK, TranslationSource.CACHE],
    )
    def test_fallback_and_cache_sources_not_cached(self, source: TranslationSource) -> None:
        assert not should_cache(make_result(0.95, source))


class TestInMemoryQueryCache:
    async def test_second_lookup_increments_hit_count_by_one(self) -> None:
        cache = InMemoryQueryCache()
        await cache.set("key", "red creatures", make_result())

        first = await cache.get("key", "red creatures")
        second = await cache.get("key", "Red Creatures")

        assert first is not None and second is not None
        assert second.hit_count == first.hit_count + 1
        assert second.result.source == TranslationSource.CACHE
        assert second.result.original_query == "Red Creatures"

    async def test_expired_entry_misses(self) -> None:
        clock = FakeClock()
        cache = InMemoryQueryCache(ttl_seconds=60, clock=clock)
        await cache.set("key", "red creatures", make_result())

        clock.now += 61

        assert await cache.get("key", "red creatures") is None

    async def test_sweep_removes_only_expired(self) -> None:
        clock = FakeClock()
        cache = InMemoryQueryCache(ttl_seconds=60, clock=clock)
        await cache.set("old", "old", make_result())
        clock.now += 30
        await cache.set("new", "new", make_result())
        clock.now += 31

        removed = await cache.sweep_expired()

        assert removed == 1
        assert len(cache) == 1

    async def test_bounded_size_evicts_least_recent(self) -> None:
        cache = InMemoryQueryCache(max_size=2)
        await cache.set("a", "a", make_result())
        await cache.set("b", "b", make_result())
        await cache.get("a", "a")
        await cache.set("c", "c", make_result())

        assert len(cache) == 2
        assert await cache.get("b", "b") is None
        assert await cache.get("a", "a") is not None


class TestDatabaseQueryCache:
    async def test_round_trip_counts_hits(self, session: AsyncSession) -> None:
        cache = DatabaseQueryCache(session)
        await cache.set("key", "red creatures", make_result())

        first = await cache.get("key", "red creatures")
        second = await cache.get("key", "red creatures")

        assert first is not None and second is not None
        assert first.hit_count == 1
        assert second.hit_count == 2
        assert second.result.scryfall_query == "c:r t:creature game:paper"
        assert second.result.source == TranslationSource.CACHE

    async def test_expired_row_misses_and_is_swept(self, session: AsyncSession) -> None:
        now = datetime.now(UTC)
        writer = DatabaseQueryCache(session, ttl_seconds=60, clock=lambda: now)
        await writer.set("key", "red creatures", make_result())

        later = DatabaseQueryCache(session, clock=lambda: now + timedelta(seconds=120))

        assert await later.get("key", "red creatures") is None
        assert not await later.is_live("key")
        assert await later.sweep_expired() == 1


class TestTieredQueryCache:
    async def test_database_hit_warms_memory(self, session: AsyncSession) -> None:
        memory = InMemoryQueryCache()
        await DatabaseQueryCache(session).set("key", "red creatures", make_result())
        cache = TieredQueryCache(memory, DatabaseQueryCache(session))

        hit = await cache.get("key", "red creatures")

        assert hit is not None
        assert len(memory) == 1

    async def test_uncacheable_result_not_written(self) -> None:
        memory = InMemoryQueryCache()
        cache = TieredQueryCache(memory)

        written = await cache.set("key", "red creatures", make_result(0.3))

        assert written is False
        assert len(memory) == 0
