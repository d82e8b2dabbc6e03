"""
Database CRUD operations.

Provides async functions for the persistent query cache, translation
rules, search feedback, and translation telemetry.

Expiry checks compare timestamps in SQL only; loaded datetimes are never
compared in Python, since SQLite returns them without a timezone.
"""

import re
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from manaquery.models.db import (
    QueryCacheDB,
    SearchFeedbackDB,
    TranslationLogDB,
    TranslationRuleDB,
    _utcnow,
)
from manaquery.models.failure import NotFoundError
from manaquery.models.feedback import (
    FeedbackItem,
    FeedbackResponse,
    FeedbackStatus,
    ensure_transition,
)
from manaquery.models.rules import RuleResponse, TranslationRule

# --- Query Cache Operations ---


async def get_live_cache_row(
    session: AsyncSession, query_hash: str, now: datetime
) -> QueryCacheDB | None:
    """
    Get a cache row that has not expired.

    Returns None on miss or when the row expired at or before ``now``.
    """
    result = await session.execute(
        select(QueryCacheDB).where(
            QueryCacheDB.query_hash == query_hash,
            QueryCacheDB.expires_at > now,
        )
    )
    return result.scalar_one_or_none()


async def record_cache_hit(
    session: AsyncSession, query_hash: str, now: datetime
) -> QueryCacheDB | None:
    """
    Count a hit on a live cache row.

    The increment is a single UPDATE so concurrent hits never read a stale
    count. Returns the refreshed row, or None if the row is missing or expired.
    """
    result = await session.execute(
        update(QueryCacheDB)
        .where(QueryCacheDB.query_hash == query_hash, QueryCacheDB.expires_at > now)
        .values(hit_count=QueryCacheDB.hit_count + 1, last_hit_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return None
    refreshed = await session.execute(
        select(QueryCacheDB)
        .where(QueryCacheDB.query_hash == query_hash)
        .execution_options(populate_existing=True)
    )
    return refreshed.scalar_one_or_none()


async def upsert_cache_row(
    session: AsyncSession,
    query_hash: str,
    normalized_query: str,
    scryfall_query: str,
    confidence: float,
    explanation: dict[str, Any],
    source: str,
    expires_at: datetime,
) -> QueryCacheDB:
    """
    Insert or overwrite a cache row.

    Last write wins; the hit count of an existing row is kept.
    """
    row = await session.get(QueryCacheDB, query_hash)
    if row is None:
        row = QueryCacheDB(query_hash=query_hash, hit_count=0)
        session.add(row)
    row.normalized_query = normalized_query
    row.scryfall_query = scryfall_query
    row.confidence = confidence
    row.explanation = explanation
    row.source = source
    row.expires_at = expires_at
    await session.flush()
    return row


async def sweep_expired_cache(session: AsyncSession, now: datetime) -> int:
    """
    Delete every cache row that expired at or before ``now``.

    Returns the number of rows removed.
    """
    result = await session.execute(delete(QueryCacheDB).where(QueryCacheDB.expires_at <= now))
    return result.rowcount or 0


# --- Translation Rule Operations ---


async def list_active_rules(session: AsyncSession) -> list[TranslationRuleDB]:
    """Active rules, best first (priority desc, confidence desc)."""
    result = await session.execute(
        select(TranslationRuleDB)
        .where(TranslationRuleDB.is_active.is_(True))
        .order_by(TranslationRuleDB.priority.desc(), TranslationRuleDB.confidence.desc())
    )
    return list(result.scalars().all())


async def list_rules(session: AsyncSession, limit: int = 200) -> list[TranslationRuleDB]:
    """All rules, newest first, for the admin surface."""
    result = await session.execute(
        select(TranslationRuleDB).order_by(TranslationRuleDB.created_at.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def get_rule(session: AsyncSession, rule_id: str) -> TranslationRuleDB | None:
    """Get a rule by id."""
    return await session.get(TranslationRuleDB, rule_id)


async def get_rule_by_pattern(session: AsyncSession, pattern: str) -> TranslationRuleDB | None:
    """Get a rule whose pattern matches, case-insensitively."""
    result = await session.execute(
        select(TranslationRuleDB)
        .where(func.lower(TranslationRuleDB.pattern) == pattern.strip().lower())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def create_rule(
    session: AsyncSession,
    pattern: str,
    scryfall_syntax: str,
    description: str | None = None,
    confidence: float = 0.8,
    aliases: list[str] | None = None,
    category: str | None = None,
    priority: int = 0,
    is_active: bool = True,
    source_feedback_id: str | None = None,
) -> TranslationRuleDB:
    """Insert a new rule."""
    rule = TranslationRuleDB(
        pattern=pattern,
        scryfall_syntax=scryfall_syntax,
        scryfall_templates=[],
        aliases=aliases or [],
        description=description,
        confidence=confidence,
        priority=priority,
        category=category,
        is_active=is_active,
        source_feedback_id=source_feedback_id,
    )
    session.add(rule)
    await session.flush()
    return rule


async def update_rule(
    session: AsyncSession,
    rule: TranslationRuleDB,
    scryfall_syntax: str,
    description: str | None,
    confidence: float,
) -> TranslationRuleDB:
    """Overwrite the translation carried by an existing rule."""
    rule.scryfall_syntax = scryfall_syntax
    rule.description = description
    rule.confidence = confidence
    rule.updated_at = _utcnow()
    await session.flush()
    return rule


async def set_rule_active(session: AsyncSession, rule_id: str, is_active: bool) -> TranslationRuleDB:
    """
    Activate or deactivate a rule. Idempotent.

    Raises:
        NotFoundError: If no rule has this id
    """
    rule = await get_rule(session, rule_id)
    if rule is None:
        raise NotFoundError("Rule", rule_id)
    if rule.is_active != is_active:
        rule.is_active = is_active
        rule.updated_at = _utcnow()
        await session.flush()
    return rule


def rule_to_model(rule: TranslationRuleDB) -> TranslationRule:
    """Convert a database rule to a domain model."""
    return TranslationRule(
        id=rule.id,
        pattern=rule.pattern,
        scryfall_syntax=rule.scryfall_syntax,
        description=rule.description,
        scryfall_templates=tuple(rule.scryfall_templates or ()),
        aliases=tuple(rule.aliases or ()),
        confidence=rule.confidence,
        priority=rule.priority,
        category=rule.category,
        is_active=rule.is_active,
        source_feedback_id=rule.source_feedback_id,
    )


def rule_to_response(rule: TranslationRuleDB) -> RuleResponse:
    """Convert a database rule to its admin representation."""
    return RuleResponse(
        id=rule.id,
        pattern=rule.pattern,
        scryfall_syntax=rule.scryfall_syntax,
        description=rule.description,
        aliases=list(rule.aliases or []),
        confidence=rule.confidence,
        priority=rule.priority,
        category=rule.category,
        is_active=rule.is_active,
        source_feedback_id=rule.source_feedback_id,
    )


# --- Feedback Operations ---

# Statuses that count as an earlier attempt when detecting retries
PRIOR_ATTEMPT_STATUSES = (
    FeedbackStatus.COMPLETED,
    FeedbackStatus.UPDATED_EXISTING,
    FeedbackStatus.DUPLICATE,
    FeedbackStatus.FAILED,
)


async def create_feedback(
    session: AsyncSession,
    original_query: str,
    issue_description: str,
    translated_query: str | None = None,
) -> SearchFeedbackDB:
    """Store a new pending feedback item."""
    feedback = SearchFeedbackDB(
        original_query=original_query,
        translated_query=translated_query,
        issue_description=issue_description,
        processing_status=FeedbackStatus.PENDING.value,
    )
    session.add(feedback)
    await session.flush()
    return feedback


async def get_feedback(session: AsyncSession, feedback_id: str) -> SearchFeedbackDB | None:
    """Get a feedback item by id, always re-read from the database."""
    result = await session.execute(
        select(SearchFeedbackDB)
        .where(SearchFeedbackDB.id == feedback_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_feedback(
    session: AsyncSession,
    status: FeedbackStatus | None = None,
    limit: int = 100,
) -> list[SearchFeedbackDB]:
    """Feedback items, newest first, optionally filtered by status."""
    query = select(SearchFeedbackDB).order_by(SearchFeedbackDB.created_at.desc()).limit(limit)
    if status is not None:
        query = query.where(SearchFeedbackDB.processing_status == status.value)
    result = await session.execute(query)
    return list(result.scalars().all())


async def list_pending_feedback_ids(session: AsyncSession, limit: int) -> list[str]:
    """Ids of pending feedback items, oldest first."""
    result = await session.execute(
        select(SearchFeedbackDB.id)
        .where(SearchFeedbackDB.processing_status == FeedbackStatus.PENDING.value)
        .order_by(SearchFeedbackDB.created_at.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def transition_feedback(
    session: AsyncSession,
    feedback_id: str,
    current: FeedbackStatus,
    target: FeedbackStatus,
    **values: Any,
) -> bool:
    """
    Move a feedback item from ``current`` to ``target``.

    The UPDATE only matches while the row is still in ``current``, so of
    two racing callers exactly one succeeds.

    Returns:
        True if this call made the transition

    Raises:
        InvalidTransitionError: If ``current -> target`` is not allowed at all
    """
    ensure_transition(current, target)
    result = await session.execute(
        update(SearchFeedbackDB)
        .where(
            SearchFeedbackDB.id == feedback_id,
            SearchFeedbackDB.processing_status == current.value,
        )
        .values(processing_status=target.value, **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def claim_feedback(session: AsyncSession, feedback_id: str) -> bool:
    """Exclusive ``pending -> processing`` claim. True if this caller won."""
    return await transition_feedback(
        session, feedback_id, FeedbackStatus.PENDING, FeedbackStatus.PROCESSING
    )


async def count_prior_attempts(session: AsyncSession, original_query: str, exclude_id: str) -> int:
    """
    Number of earlier processed feedback items on a similar query.

    Similar means the first three words appear in order; LIKE wildcards in
    the words match literally. A non-zero count marks the new item as a
    retry of a translation that did not work.
    """
    words = original_query.strip().lower().split()[:3]
    if not words:
        return 0
    escaped = [re.sub(r"([\\%_])", r"\\\1", word) for word in words]
    like = "%" + "%".join(escaped) + "%"
    result = await session.execute(
        select(func.count())
        .select_from(SearchFeedbackDB)
        .where(
            func.lower(SearchFeedbackDB.original_query).like(like, escape="\\"),
            SearchFeedbackDB.id != exclude_id,
            SearchFeedbackDB.processing_status.in_(
                [status.value for status in PRIOR_ATTEMPT_STATUSES]
            ),
        )
    )
    return int(result.scalar_one())


def feedback_to_model(feedback: SearchFeedbackDB) -> FeedbackItem:
    """Convert a database feedback row to a domain snapshot."""
    return FeedbackItem(
        id=feedback.id,
        original_query=feedback.original_query,
        issue_description=feedback.issue_description,
        translated_query=feedback.translated_query,
        processing_status=FeedbackStatus(feedback.processing_status),
        generated_rule_id=feedback.generated_rule_id,
        created_at=feedback.created_at,
        processed_at=feedback.processed_at,
    )


def feedback_to_response(feedback: SearchFeedbackDB) -> FeedbackResponse:
    """Convert a database feedback row to its API representation."""
    return FeedbackResponse(
        id=feedback.id,
        original_query=feedback.original_query,
        translated_query=feedback.translated_query,
        issue_description=feedback.issue_description,
        processing_status=FeedbackStatus(feedback.processing_status),
        generated_rule_id=feedback.generated_rule_id,
        processed_at=feedback.processed_at,
    )


# --- Telemetry Operations ---


async def append_translation_log(
    session: AsyncSession,
    natural_language_query: str,
    translated_query: str,
    model_used: str,
    confidence_score: float,
    response_time_ms: int,
    validation_issues: list[str],
    quality_flags: list[str],
    filters_applied: dict[str, Any] | None,
    fallback_used: bool,
) -> TranslationLogDB:
    """Append one telemetry row. Rows are never updated."""
    log = TranslationLogDB(
        natural_language_query=natural_language_query,
        translated_query=translated_query,
        model_used=model_used,
        confidence_score=confidence_score,
        response_time_ms=response_time_ms,
        validation_issues=validation_issues,
        quality_flags=quality_flags,
        filters_applied=filters_applied,
        fallback_used=fallback_used,
    )
    session.add(log)
    await session.flush()
    return log
