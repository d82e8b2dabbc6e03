"""Tests for database CRUD operations."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from manaquery.db.operations import (
    append_translation_log,
    count_prior_attempts,
    create_feedback,
    create_rule,
    feedback_to_response,
    get_live_cache_row,
    get_rule_by_pattern,
    list_active_rules,
    list_feedback,
    list_rules,
    record_cache_hit,
    rule_to_model,
    rule_to_response,
    set_rule_active,
    sweep_expired_cache,
    transition_feedback,
    upsert_cache_row,
)
from manaquery.models.db import TranslationLogDB
from manaquery.models.failure import NotFoundError
from manaquery.models.feedback import FeedbackStatus


class TestRuleOperations:
    async def test_create_rule_defaults(self, session: AsyncSession) -> None:
        rule = await create_rule(session, "board wipes", "otag:board-wipe")

        assert rule.id is not None
        assert rule.is_active is True
        assert rule.aliases == []
        assert rule.confidence == 0.8

    async def test_active_rules_best_first(self, session: AsyncSession) -> None:
        await create_rule(session, "low", "t:creature", confidence=0.9)
        await create_rule(session, "high", "t:instant", priority=5, confidence=0.8)
        await create_rule(session, "mid", "t:sorcery", confidence=0.95)
        await create_rule(session, "off", "t:land", priority=10, is_active=False)
        await session.commit()

        rules = await list_active_rules(session)

        assert [rule.pattern for rule in rules] == ["high", "mid", "low"]

    async def test_list_rules_includes_inactive(self, session: AsyncSession) -> None:
        await create_rule(session, "on", "t:creature")
        await create_rule(session, "off", "t:land", is_active=False)
        await session.commit()

        rules = await list_rules(session)

        assert {rule.pattern for rule in rules} == {"on", "off"}

    async def test_get_rule_by_pattern_ignores_case(self, session: AsyncSession) -> None:
        await create_rule(session, "Mana Rocks", "otag:mana-rock")
        await session.commit()

        rule = await get_rule_by_pattern(session, "  mana rocks ")

        assert rule is not None
        assert rule.scryfall_syntax == "otag:mana-rock"

    async def test_get_rule_by_pattern_missing(self, session: AsyncSession) -> None:
        assert await get_rule_by_pattern(session, "nothing here") is None

    async def test_set_rule_active_is_idempotent(self, session: AsyncSession) -> None:
        rule = await create_rule(session, "board wipes", "otag:board-wipe")
        await session.commit()

        await set_rule_active(session, rule.id, False)
        again = await set_rule_active(session, rule.id, False)

        assert again.is_active is False
        assert await list_active_rules(session) == []

    async def test_set_rule_active_missing(self, session: AsyncSession) -> None:
        with pytest.raises(NotFoundError):
            await set_rule_active(session, "missing", True)

    async def test_rule_conversions(self, session: AsyncSession) -> None:
        rule = await create_rule(
            session,
            "mass removal",
            "otag:board-wipe",
            aliases=["board wipes", "wraths"],
            category="removal",
        )

        model = rule_to_model(rule)
        response = rule_to_response(rule)

        assert model.aliases == ("board wipes", "wraths")
        assert model.phrases == ("mass removal", "board wipes", "wraths")
        assert response.model_dump(by_alias=True)["scryfallSyntax"] == "otag:board-wipe"
        assert response.is_active is True


class TestFeedbackOperations:
    async def test_create_feedback_is_pending(self, session: AsyncSession) -> None:
        feedback = await create_feedback(session, "red creatures", "wrong colors", "c:r")

        response = feedback_to_response(feedback)

        assert response.processing_status == FeedbackStatus.PENDING
        assert response.translated_query == "c:r"
        assert response.processed_at is None

    async def test_list_feedback_by_status(self, session: AsyncSession) -> None:
        first = await create_feedback(session, "red creatures", "wrong colors")
        await create_feedback(session, "blue instants", "wrong type")
        await transition_feedback(
            session, first.id, FeedbackStatus.PENDING, FeedbackStatus.PROCESSING
        )
        await session.commit()

        processing = await list_feedback(session, FeedbackStatus.PROCESSING)
        everything = await list_feedback(session)

        assert [row.original_query for row in processing] == ["red creatures"]
        assert len(everything) == 2

    async def test_prior_attempts_match_leading_words(self, session: AsyncSession) -> None:
        earlier = await create_feedback(session, "Cheap red dragons please", "too expensive")
        await transition_feedback(
            session, earlier.id, FeedbackStatus.PENDING, FeedbackStatus.PROCESSING
        )
        await transition_feedback(
            session, earlier.id, FeedbackStatus.PROCESSING, FeedbackStatus.FAILED
        )
        current = await create_feedback(session, "cheap red dragons with flying", "no flyers")
        await session.commit()

        assert await count_prior_attempts(session, current.original_query, current.id) == 1

    async def test_wildcard_characters_match_literally(self, session: AsyncSession) -> None:
        for text in ("100x red goblins", "fire_ice", "fire-ice"):
            earlier = await create_feedback(session, text, "wrong cards")
            await transition_feedback(
                session, earlier.id, FeedbackStatus.PENDING, FeedbackStatus.PROCESSING
            )
            await transition_feedback(
                session, earlier.id, FeedbackStatus.PROCESSING, FeedbackStatus.FAILED
            )
        percent = await create_feedback(session, "100% red", "wrong cards")
        underscore = await create_feedback(session, "fire_ice", "wrong cards")
        await session.commit()

        assert await count_prior_attempts(session, percent.original_query, percent.id) == 0
        assert await count_prior_attempts(session, underscore.original_query, underscore.id) == 1

    async def test_pending_items_are_not_prior_attempts(self, session: AsyncSession) -> None:
        await create_feedback(session, "cheap red dragons", "too expensive")
        current = await create_feedback(session, "cheap red dragons", "no flyers")
        await session.commit()

        assert await count_prior_attempts(session, current.original_query, current.id) == 0


class TestCacheOperations:
    async def test_upsert_then_hit(self, session: AsyncSession) -> None:
        expires = datetime.now(UTC) + timedelta(hours=1)
        await upsert_cache_row(
            session,
            query_hash="abc",
            normalized_query="red creatures",
            scryfall_query="c:r t:creature game:paper",
            confidence=1.0,
            explanation={"readable": "Red creatures", "assumptions": []},
            source="deterministic",
            expires_at=expires,
        )
        await session.commit()

        assert await get_live_cache_row(session, "abc", datetime.now(UTC)) is not None
        row = await record_cache_hit(session, "abc", datetime.now(UTC))

        assert row is not None
        assert row.hit_count == 1
        assert row.last_hit_at is not None

    async def test_sweep_removes_only_expired(self, session: AsyncSession) -> None:
        now = datetime.now(UTC)
        for key, offset in (("old", -1), ("fresh", 1)):
            await upsert_cache_row(
                session,
                query_hash=key,
                normalized_query=key,
                scryfall_query="t:creature game:paper",
                confidence=0.9,
                explanation={"readable": key, "assumptions": []},
                source="deterministic",
                expires_at=now + timedelta(hours=offset),
            )
        await session.commit()

        removed = await sweep_expired_cache(session, now)
        await session.commit()

        assert removed == 1
        assert await get_live_cache_row(session, "old", now - timedelta(hours=2)) is None
        assert await get_live_cache_row(session, "fresh", now) is not None


class TestTelemetryOperations:
    async def test_append_translation_log(self, session: AsyncSession) -> None:
        await append_translation_log(
            session,
            natural_language_query="xyzzy plugh",
            translated_query='o:"xyzzy plugh" game:paper',
            model_used="fallback",
            confidence_score=0.3,
            response_time_ms=12,
            validation_issues=[],
            quality_flags=["fallback_text_search"],
            filters_applied=None,
            fallback_used=True,
        )
        await session.commit()

        rows = (await session.execute(select(TranslationLogDB))).scalars().all()

        assert len(rows) == 1
        assert rows[0].fallback_used is True
        assert rows[0].quality_flags == ["fallback_text_search"]
