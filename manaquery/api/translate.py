"""
Translation endpoint.

``POST /translate`` turns free text (plus optional structured filters)
into Scryfall search syntax. Rate limits are enforced before any parsing,
caching, or external call happens.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from manaquery.config import DEFAULT_CLIENT_IP, settings
from manaquery.db.database import get_session
from manaquery.db.operations import list_active_rules, rule_to_model
from manaquery.models.failure import ErrorResponse
from manaquery.models.translation import TranslateRequest, TranslationResult
from manaquery.services.ai_fallback import (
    AnthropicTranslator,
    QueryTranslator,
    ai_fallback_available,
)
from manaquery.services.query_cache import (
    DatabaseQueryCache,
    InMemoryQueryCache,
    TieredQueryCache,
    get_query_cache,
)
from manaquery.services.rate_limiter import RateLimiter, extract_client_ip, get_rate_limiter
from manaquery.services.scryfall_validator import ScryfallValidator, get_scryfall_validator
from manaquery.services.translation_pipeline import TranslationPipeline

router = APIRouter(tags=["translate"])

SESSION_HEADER = "x-session-id"


def cors_headers() -> dict[str, str]:
    """Headers returned on preflight requests."""
    return {
        "Access-Control-Allow-Origin": ", ".join(settings.cors_allowed_origins),
        "Access-Control-Allow-Methods": "POST, OPTIONS",
        "Access-Control-Allow-Headers": f"content-type, {SESSION_HEADER}",
        "Access-Control-Max-Age": "86400",
    }


def get_live_validator() -> ScryfallValidator | None:
    """The live validator, or None when live validation is switched off."""
    if not settings.live_validation_enabled:
        return None
    return get_scryfall_validator()


def get_query_translator() -> QueryTranslator | None:
    """The AI translator, or None unless enabled and configured."""
    if not ai_fallback_available():
        return None
    return AnthropicTranslator()


async def get_translation_pipeline(
    session: Annotated[AsyncSession, Depends(get_session)],
    memory_cache: Annotated[InMemoryQueryCache, Depends(get_query_cache)],
    validator: Annotated[ScryfallValidator | None, Depends(get_live_validator)],
    translator: Annotated[QueryTranslator | None, Depends(get_query_translator)],
) -> TranslationPipeline:
    """Assemble the pipeline for one request."""
    rules = [rule_to_model(rule) for rule in await list_active_rules(session)]
    return TranslationPipeline(
        rules=rules,
        cache=TieredQueryCache(memory_cache, DatabaseQueryCache(session)),
        validator=validator,
        translator=translator,
        session=session,
    )


def enforce_rate_limit(
    request: Request,
    limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
) -> None:
    """
    Count this request against the session, IP, and global windows.

    Raises:
        RateLimitExceededError: If any window is exhausted (HTTP 429)
    """
    peer = request.client.host if request.client else DEFAULT_CLIENT_IP
    ip_address = extract_client_ip(request.headers, default=peer)
    limiter.check(ip_address, request.headers.get(SESSION_HEADER))


@router.post(
    "/translate",
    response_model=TranslationResult,
    responses={
        400: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    dependencies=[Depends(enforce_rate_limit)],
)
async def translate(
    body: TranslateRequest,
    pipeline: Annotated[TranslationPipeline, Depends(get_translation_pipeline)],
) -> TranslationResult:
    """
    Translate a natural-language card search.

    Returns the query, a readable explanation with assumptions, and a
    confidence score. ``useCache: false`` bypasses the cache entirely.
    """
    return await pipeline.translate(body)


@router.options("/translate", status_code=status.HTTP_204_NO_CONTENT)
async def translate_options() -> Response:
    """Preflight: CORS headers only."""
    return Response(status_code=status.HTTP_204_NO_CONTENT, headers=cors_headers())
