"""
SQLAlchemy ORM models for persistent storage.

Column semantics follow the relational schema shared with the admin
dashboard. Array columns are stored as JSON lists so the same models run
on PostgreSQL and SQLite.
"""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class QueryCacheDB(Base):
    """
    A cached translation keyed by the hash of its normalized input.

    Mutated on every hit; removed only by the expiry sweep.
    """

    __tablename__ = "query_cache"

    query_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    normalized_query: Mapped[str] = mapped_column(Text)
    scryfall_query: Mapped[str] = mapped_column(Text)
    confidence: Mapped[float] = mapped_column(Float)
    explanation: Mapped[dict[str, Any]] = mapped_column(JSON)
    source: Mapped[str] = mapped_column(String(32), default="deterministic")
    show_affiliate: Mapped[bool] = mapped_column(Boolean, default=True)
    hit_count: Mapped[int] = mapped_column(Integer, default=0)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    last_hit_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<QueryCacheDB(hash={self.query_hash[:8]}, hits={self.hit_count})>"


class TranslationRuleDB(Base):
    """
    A deterministic translation rule.

    Read by the compiler only while ``is_active`` is true.
    """

    __tablename__ = "translation_rules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    pattern: Mapped[str] = mapped_column(Text, index=True)
    scryfall_syntax: Mapped[str] = mapped_column(Text)
    scryfall_templates: Mapped[list[str]] = mapped_column(JSON, default=list)
    aliases: Mapped[list[str]] = mapped_column(JSON, default=list)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    confidence: Mapped[float] = mapped_column(Float, default=0.8)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    category: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    source_feedback_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("search_feedback.id", use_alter=True, name="fk_rule_source_feedback"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<TranslationRuleDB(pattern={self.pattern!r}, active={self.is_active})>"


class SearchFeedbackDB(Base):
    """User report of a bad translation, processed by the rule-learning worker."""

    __tablename__ = "search_feedback"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    original_query: Mapped[str] = mapped_column(Text)
    translated_query: Mapped[str | None] = mapped_column(Text, nullable=True)
    issue_description: Mapped[str] = mapped_column(Text)
    processing_status: Mapped[str] = mapped_column(String(32), default="pending", index=True)
    generated_rule_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("translation_rules.id"), nullable=True
    )
    processing_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, index=True)

    def __repr__(self) -> str:
        return f"<SearchFeedbackDB(id={self.id}, status={self.processing_status})>"


class TranslationLogDB(Base):
    """Append-only translation telemetry."""

    __tablename__ = "translation_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    natural_language_query: Mapped[str] = mapped_column(Text)
    translated_query: Mapped[str] = mapped_column(Text)
    model_used: Mapped[str] = mapped_column(String(64))
    confidence_score: Mapped[float] = mapped_column(Float)
    response_time_ms: Mapped[int] = mapped_column(Integer)
    validation_issues: Mapped[list[str]] = mapped_column(JSON, default=list)
    quality_flags: Mapped[list[str]] = mapped_column(JSON, default=list)
    filters_applied: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    fallback_used: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<TranslationLogDB(id={self.id}, model={self.model_used})>"
