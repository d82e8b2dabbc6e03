"""
End-to-end translation of one request.

    screen input -> cache lookup -> extract intent -> compile
    -> (AI fallback) -> auto-correct -> syntax validation
    -> live validation and relaxation -> cache write -> telemetry

Rate limiting happens before this pipeline, in the API layer.

INVARIANTS:
- Every returned query passed validate_query with valid=True
- Live validation and the AI fallback can only improve or annotate a
  result; their failures never fail the request
- Unknown keys or too many parameters in compiled output are a terminal 400
"""

import logging
import time
from collections.abc import Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from manaquery.config import (
    CONFIDENCE_FLOOR,
    OVERLY_BROAD_PENALTY,
    RELAXATION_PENALTY,
    TELEMETRY_CONFIDENCE_THRESHOLD,
    ZERO_RESULTS_PENALTY,
)
from manaquery.db.operations import append_translation_log
from manaquery.models.failure import FailureKind, InputValidationError
from manaquery.models.rules import TranslationRule
from manaquery.models.translation import (
    Explanation,
    TranslateRequest,
    TranslationResult,
    TranslationSource,
)
from manaquery.parsers.intent_extractor import extract_intent
from manaquery.services.ai_fallback import QueryTranslator
from manaquery.services.query_cache import (
    TieredQueryCache,
    build_cache_key,
    normalize_query_text,
)
from manaquery.services.query_compiler import CompiledQuery, compile_intent
from manaquery.services.rule_matcher import RuleMatcher, VectorRuleMatcher
from manaquery.services.scryfall_validator import LiveOutcome, ScryfallValidator
from manaquery.services.syntax_validator import (
    QueryValidation,
    apply_auto_corrections,
    detect_quality_flags,
    sanitize_input_query,
    validate_query,
)

logger = logging.getLogger(__name__)


def _invalid_query_error(validation: QueryValidation) -> InputValidationError:
    issue = validation.issues[-1] if validation.issues else "Invalid search syntax"
    kind = (
        FailureKind.TOO_MANY_PARAMETERS
        if issue.startswith("Too many")
        else FailureKind.UNKNOWN_SEARCH_KEY
    )
    return InputValidationError(issue, detail=validation.sanitized, kind=kind)


def _adjust_for_live_results(
    confidence: float, outcome: LiveOutcome, assumptions: list[str]
) -> float:
    validation = outcome.validation
    if outcome.removed:
        confidence -= RELAXATION_PENALTY
        assumptions.append(
            "Removed restrictive filter(s) to find results: " + ", ".join(outcome.removed)
        )
    if outcome.used_fallback:
        confidence -= RELAXATION_PENALTY
        assumptions.append("Used the simpler base query because the full query matched no cards")
    if validation is not None and validation.ok and validation.zero_results:
        confidence -= ZERO_RESULTS_PENALTY
        assumptions.append("No cards currently match this search")
    if validation is not None and validation.overly_broad:
        confidence -= OVERLY_BROAD_PENALTY
        assumptions.append(
            f"This search matches {validation.total_cards} cards; add details to narrow it"
        )
    return round(max(CONFIDENCE_FLOOR, confidence), 2)


class TranslationPipeline:
    """
    One request's worth of collaborators.

    Every collaborator is optional so the pipeline runs offline: no cache,
    no live validation, no AI.
    """

    def __init__(
        self,
        rules: Sequence[TranslationRule] = (),
        cache: TieredQueryCache | None = None,
        validator: ScryfallValidator | None = None,
        translator: QueryTranslator | None = None,
        matcher: RuleMatcher | None = None,
        session: AsyncSession | None = None,
    ) -> None:
        self.rules = rules
        self.cache = cache
        self.validator = validator
        self.translator = translator
        self.matcher = matcher or VectorRuleMatcher()
        self.session = session

    async def translate(self, request: TranslateRequest) -> TranslationResult:
        """
        Translate one request.

        Raises:
            InputValidationError: For spam input or unrepairable compiled syntax
        """
        started = time.perf_counter()

        screened = sanitize_input_query(request.query)
        if not screened.valid:
            logger.info("INPUT_REJECTED", extra={"reason": screened.reason})
            raise InputValidationError(screened.reason or "Invalid query")

        cache_key = build_cache_key(request.query, request.filters)
        if self.cache is not None and request.use_cache:
            hit = await self.cache.get(cache_key, request.query)
            if hit is not None:
                return hit.result.model_copy(
                    update={"response_time_ms": self._elapsed_ms(started)}
                )

        intent = extract_intent(screened.sanitized)
        compiled = compile_intent(intent, request.filters, self.rules, self.matcher)
        result = compiled.result
        model_used = result.source.value

        if compiled.needs_ai and self.translator is not None:
            ai_outcome = await self._try_ai(self.translator, request.query, compiled)
            if ai_outcome is not None:
                result, model_used = ai_outcome

        flags = detect_quality_flags(result.scryfall_query)
        corrected, corrections = apply_auto_corrections(result.scryfall_query, flags)

        validation = validate_query(corrected)
        if not validation.valid:
            logger.warning(
                "COMPILED_QUERY_INVALID",
                extra={"issues": validation.issues, "source": result.source.value},
            )
            raise _invalid_query_error(validation)

        query = validation.sanitized
        assumptions = list(result.explanation.assumptions)
        confidence = result.confidence

        if self.validator is not None:
            fallback_query = compiled.intent.deterministic_query
            outcome = await self.validator.validate_and_relax(
                query,
                fallback_query=fallback_query if fallback_query != query else None,
            )
            if outcome.changed:
                revalidated = validate_query(outcome.query)
                if revalidated.valid:
                    query = revalidated.sanitized
                else:
                    outcome = LiveOutcome(query=query, validation=None)
            if outcome.validation is not None:
                confidence = _adjust_for_live_results(confidence, outcome, assumptions)

        result = result.model_copy(
            update={
                "scryfall_query": query,
                "explanation": Explanation(
                    readable=result.explanation.readable,
                    assumptions=list(dict.fromkeys(assumptions)),
                    confidence=confidence,
                ),
                "response_time_ms": self._elapsed_ms(started),
            }
        )

        if self.cache is not None and request.use_cache:
            await self.cache.set(cache_key, normalize_query_text(request.query), result)

        await self._record_telemetry(
            request,
            result,
            model_used=model_used,
            issues=validation.issues + corrections,
            flags=flags,
        )
        logger.info(
            "TRANSLATION_COMPLETE",
            extra={
                "source": result.source.value,
                "confidence": result.confidence,
                "response_time_ms": result.response_time_ms,
            },
        )
        return result

    async def _try_ai(
        self, translator: QueryTranslator, text: str, compiled: CompiledQuery
    ) -> tuple[TranslationResult, str] | None:
        proposal = await translator.translate(text, compiled.intent.deterministic_query)
        if proposal is None:
            return None
        checked = validate_query(proposal.query)
        if not checked.valid:
            logger.warning("AI_QUERY_REJECTED", extra={"issues": checked.issues})
            return None
        result = TranslationResult(
            original_query=text,
            scryfall_query=checked.sanitized,
            explanation=Explanation(
                readable=proposal.explanation,
                assumptions=list(compiled.result.explanation.assumptions),
                confidence=proposal.confidence,
            ),
            success=True,
            source=TranslationSource.AI,
        )
        return result, proposal.model

    async def _record_telemetry(
        self,
        request: TranslateRequest,
        result: TranslationResult,
        model_used: str,
        issues: list[str],
        flags: list[str],
    ) -> None:
        fallback_used = result.source in (
            TranslationSource.FALLBACK,
            TranslationSource.FORCED_FALLBACK,
        )
        worth_logging = (
            result.confidence < TELEMETRY_CONFIDENCE_THRESHOLD or issues or flags or fallback_used
        )
        if self.session is None or not worth_logging:
            return
        try:
            await append_translation_log(
                self.session,
                natural_language_query=request.query,
                translated_query=result.scryfall_query,
                model_used=model_used,
                confidence_score=result.confidence,
                response_time_ms=result.response_time_ms or 0,
                validation_issues=issues,
                quality_flags=flags,
                filters_applied=request.filters.fingerprint() if request.filters else None,
                fallback_used=fallback_used,
            )
        except SQLAlchemyError:
            logger.warning("TELEMETRY_WRITE_FAILED", exc_info=True)
            await self.session.rollback()

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.perf_counter() - started) * 1000)
