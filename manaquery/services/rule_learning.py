"""
Feedback-to-rule learning.

A worker turns pending feedback items into translation rules:

    claim (pending -> processing, exclusive)
    -> synthesize {pattern, scryfall_syntax, description, confidence}
    -> validate syntax
    -> insert rule | update existing rule on retry | mark duplicate
    -> record terminal status and processed_at

INVARIANTS:
- Every exception during processing ends in ``failed``; the item is never
  left in ``processing`` by this worker
- Failed and skipped items are never retried automatically; only the
  admin re-trigger moves them back to ``pending``
- Synthesized syntax passes validate_query before it becomes a rule
- A proposal equal to the translation the user complained about is skipped
"""

import logging
import re
from dataclasses import dataclass
from typing import Protocol

import anthropic
from sqlalchemy.ext.asyncio import AsyncSession

from manaquery.config import FEEDBACK_BATCH_SIZE, FEEDBACK_MIN_RULE_CONFIDENCE, settings
from manaquery.db.operations import (
    claim_feedback,
    count_prior_attempts,
    create_rule,
    feedback_to_model,
    get_feedback,
    get_rule_by_pattern,
    list_pending_feedback_ids,
    transition_feedback,
    update_rule,
)
from manaquery.models.db import _utcnow
from manaquery.models.failure import (
    FeedbackProcessingError,
    InvalidTransitionError,
    NotFoundError,
    sanitize_error_message,
)
from manaquery.models.feedback import (
    RETRIGGERABLE_STATUSES,
    FeedbackItem,
    FeedbackStatus,
    ensure_transition,
)
from manaquery.models.rules import RuleProposal
from manaquery.models.translation import TranslationSource
from manaquery.parsers.intent_extractor import extract_intent
from manaquery.services.ai_fallback import ai_fallback_available, request_json
from manaquery.services.query_cache import normalize_query_text
from manaquery.services.query_compiler import compile_intent
from manaquery.services.syntax_validator import apply_auto_corrections, validate_query

logger = logging.getLogger(__name__)

LEARNED_RULE_CATEGORY = "learned"


@dataclass(frozen=True, slots=True)
class ProcessingOutcome:
    """Terminal result of processing one feedback item."""

    feedback_id: str
    status: FeedbackStatus
    rule_id: str | None = None
    note: str | None = None


# =============================================================================
# SYNTHESIZERS
# =============================================================================


class RuleSynthesizer(Protocol):
    """
    Proposes a rule for a feedback item.

    Returns None when its output cannot be interpreted at all; raises on
    transport failure.
    """

    async def synthesize(self, item: FeedbackItem, attempt: int) -> RuleProposal | None: ...


class DeterministicRuleSynthesizer:
    """
    Proposes the compiler's own translation of the original query.

    Used when no model is configured. Inputs the compiler cannot fully
    cover get a low-confidence proposal, which ends up skipped.
    """

    async def synthesize(self, item: FeedbackItem, attempt: int) -> RuleProposal | None:
        compiled = compile_intent(extract_intent(item.original_query))
        result = compiled.result
        confidence = result.confidence
        if compiled.needs_ai or result.source is TranslationSource.FALLBACK:
            confidence = 0.0
        return RuleProposal(
            pattern=normalize_query_text(item.original_query),
            scryfall_syntax=result.scryfall_query,
            description=result.explanation.readable,
            confidence=confidence,
        )


RULE_SYSTEM_PROMPT = """\
You are a Scryfall query expert. You turn a user's complaint about a bad \
search translation into a reusable translation rule.

Prefer otag: oracle tags (ramp, removal, draw, board-wipe, tutor, \
mana-rock, counterspell) over o:"..." text searches when one fits.

Respond with a single JSON object and nothing else:
{"pattern": "<lowercase natural-language phrase>", \
"scryfall_syntax": "<valid Scryfall syntax>", \
"description": "<what the rule does>", "confidence": <0.0-1.0>}

If no useful rule can be determined, set confidence to 0.
"""


class AnthropicRuleSynthesizer:
    """Claude-backed synthesizer."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        self.model = model or settings.ai_model
        self.client = client or anthropic.AsyncAnthropic(
            api_key=api_key or settings.anthropic_api_key
        )

    async def synthesize(self, item: FeedbackItem, attempt: int) -> RuleProposal | None:
        prompt = (
            f'User searched for: "{item.original_query}"\n'
            f'It was translated to: "{item.translated_query or "unknown"}"\n'
            f'User\'s issue: "{item.issue_description}"'
        )
        if attempt > 1:
            prompt += (
                f"\nThis is attempt #{attempt} for a similar query. "
                "Earlier rules did not work; try a different approach."
            )
        data = await request_json(self.client, self.model, RULE_SYSTEM_PROMPT, prompt)
        if data is None:
            return None
        try:
            confidence = float(data.get("confidence", 0))
        except (TypeError, ValueError):
            return None
        return RuleProposal(
            pattern=str(data.get("pattern") or "").strip().lower(),
            scryfall_syntax=str(data.get("scryfall_syntax") or "").strip(),
            description=str(data.get("description") or "").strip(),
            confidence=min(1.0, max(0.0, confidence)),
        )


def get_rule_synthesizer() -> RuleSynthesizer:
    """Claude when configured, otherwise the compiler."""
    if ai_fallback_available():
        return AnthropicRuleSynthesizer()
    return DeterministicRuleSynthesizer()


# =============================================================================
# WORKER
# =============================================================================


def _repeats_translation(syntax: str, translated_query: str | None) -> bool:
    if not translated_query:
        return False
    return validate_query(translated_query).sanitized.lower() == syntax.lower()


class FeedbackProcessor:
    """Processes feedback items inside one database session."""

    def __init__(self, session: AsyncSession, synthesizer: RuleSynthesizer) -> None:
        self.session = session
        self.synthesizer = synthesizer

    async def process_pending(self, batch_size: int = FEEDBACK_BATCH_SIZE) -> list[ProcessingOutcome]:
        """
        Process up to ``batch_size`` pending items, oldest first.

        Items claimed by another worker in the meantime are left alone.
        """
        outcomes: list[ProcessingOutcome] = []
        for feedback_id in await list_pending_feedback_ids(self.session, batch_size):
            outcome = await self.process_one(feedback_id)
            if outcome is not None:
                outcomes.append(outcome)
        logger.info("FEEDBACK_BATCH_COMPLETE", extra={"processed": len(outcomes)})
        return outcomes

    async def process_one(self, feedback_id: str) -> ProcessingOutcome | None:
        """
        Claim and process one item.

        Returns:
            The terminal outcome, or None if the item was not pending
        """
        if not await claim_feedback(self.session, feedback_id):
            logger.info("FEEDBACK_CLAIM_LOST", extra={"feedback_id": feedback_id})
            return None
        await self.session.commit()
        logger.info("FEEDBACK_CLAIMED", extra={"feedback_id": feedback_id})

        row = await get_feedback(self.session, feedback_id)
        if row is None:
            raise NotFoundError("Feedback", feedback_id)
        item = feedback_to_model(row)

        try:
            outcome = await self._learn(item)
        except Exception as exc:
            await self.session.rollback()
            error = exc if isinstance(exc, FeedbackProcessingError) else None
            detail = error.detail if error else f"{type(exc).__name__}: {exc}"
            logger.exception(
                "FEEDBACK_PROCESSING_FAILED",
                extra={"feedback_id": feedback_id, "detail": detail},
            )
            outcome = ProcessingOutcome(
                feedback_id, FeedbackStatus.FAILED, note=sanitize_error_message(detail or "")
            )

        await transition_feedback(
            self.session,
            feedback_id,
            FeedbackStatus.PROCESSING,
            outcome.status,
            generated_rule_id=outcome.rule_id,
            processing_note=outcome.note,
            processed_at=_utcnow(),
        )
        await self.session.commit()
        logger.info(
            "FEEDBACK_PROCESSED",
            extra={"feedback_id": feedback_id, "status": outcome.status.value},
        )
        return outcome

    async def _learn(self, item: FeedbackItem) -> ProcessingOutcome:
        previous_attempts = await count_prior_attempts(self.session, item.original_query, item.id)
        is_retry = previous_attempts > 0

        proposal = await self.synthesizer.synthesize(item, attempt=previous_attempts + 1)
        if proposal is None:
            raise FeedbackProcessingError(item.id, "Synthesizer output could not be parsed")

        if (
            not proposal.pattern
            or not proposal.scryfall_syntax
            or proposal.confidence < FEEDBACK_MIN_RULE_CONFIDENCE
        ):
            return ProcessingOutcome(
                item.id, FeedbackStatus.SKIPPED, note="No confident rule could be derived"
            )

        syntax, _ = apply_auto_corrections(proposal.scryfall_syntax, [])
        validation = validate_query(syntax)
        if not validation.valid:
            return ProcessingOutcome(
                item.id, FeedbackStatus.SKIPPED, note="; ".join(validation.issues)
            )
        syntax = validation.sanitized
        if _repeats_translation(syntax, item.translated_query):
            return ProcessingOutcome(
                item.id,
                FeedbackStatus.SKIPPED,
                note="Proposed rule repeats the reported translation",
            )
        pattern = re.sub(r"\s+", " ", proposal.pattern).strip()

        existing = await get_rule_by_pattern(self.session, pattern)
        if existing is not None:
            if not is_retry:
                return ProcessingOutcome(
                    item.id,
                    FeedbackStatus.DUPLICATE,
                    note=f"Rule for '{existing.pattern}' already exists",
                )
            await update_rule(
                self.session,
                existing,
                scryfall_syntax=syntax,
                description=f"{proposal.description} (updated after retry)",
                confidence=proposal.confidence,
            )
            return ProcessingOutcome(item.id, FeedbackStatus.UPDATED_EXISTING, rule_id=existing.id)

        rule = await create_rule(
            self.session,
            pattern=pattern,
            scryfall_syntax=syntax,
            description=proposal.description or None,
            confidence=proposal.confidence,
            aliases=list(proposal.aliases),
            category=LEARNED_RULE_CATEGORY,
            source_feedback_id=item.id,
        )
        return ProcessingOutcome(item.id, FeedbackStatus.COMPLETED, rule_id=rule.id)

    async def retrigger(self, feedback_id: str) -> ProcessingOutcome | None:
        """
        Admin re-trigger: move a failed or skipped item back to pending and
        process it again.

        Raises:
            NotFoundError: If the item does not exist
            InvalidTransitionError: If the item is not failed or skipped
        """
        row = await get_feedback(self.session, feedback_id)
        if row is None:
            raise NotFoundError("Feedback", feedback_id)
        current = FeedbackStatus(row.processing_status)
        if current not in RETRIGGERABLE_STATUSES:
            raise InvalidTransitionError(current.value, FeedbackStatus.PENDING.value)

        moved = await transition_feedback(
            self.session,
            feedback_id,
            current,
            FeedbackStatus.PENDING,
            processing_note=None,
            processed_at=None,
        )
        if not moved:
            raise InvalidTransitionError(current.value, FeedbackStatus.PENDING.value)
        await self.session.commit()
        logger.info("FEEDBACK_RETRIGGERED", extra={"feedback_id": feedback_id})
        return await self.process_one(feedback_id)


async def archive_feedback(session: AsyncSession, feedback_id: str) -> None:
    """
    Archive a terminal feedback item.

    Raises:
        NotFoundError: If the item does not exist
        InvalidTransitionError: If the item is not in a terminal state
    """
    row = await get_feedback(session, feedback_id)
    if row is None:
        raise NotFoundError("Feedback", feedback_id)
    current = FeedbackStatus(row.processing_status)
    ensure_transition(current, FeedbackStatus.ARCHIVED)
    if not await transition_feedback(session, feedback_id, current, FeedbackStatus.ARCHIVED):
        raise InvalidTransitionError(current.value, FeedbackStatus.ARCHIVED.value)
    logger.info(
        "FEEDBACK_ARCHIVED",
        extra={"feedback_id": feedback_id, "from_status": current.value},
    )
