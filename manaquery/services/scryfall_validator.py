"""
Live validation of compiled queries against the Scryfall search API.

A dry-run search (``/cards/search`` with extras) tells us whether a query
returns anything. Zero-result queries have speculative clauses stripped in
a fixed order, and as a last resort the deterministic base query is
substituted.

INVARIANT: Validation is a confidence signal, never a gate. Network
failure, timeouts, and exhausted retries all degrade to returning the
compiled query unchanged.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field

import httpx

from manaquery.config import (
    FETCH_TIMEOUT_SECONDS,
    LIVE_VALIDATION_DEADLINE_SECONDS,
    MAX_FETCH_RETRIES,
    OVERLY_BROAD_THRESHOLD,
    RETRY_BACKOFF_SECONDS,
    RETRYABLE_STATUS_CODES,
    settings,
)
from manaquery.models.failure import TransientNetworkError

logger = logging.getLogger(__name__)

# Most speculative first
RELAXABLE_CLAUSES: tuple[re.Pattern[str], ...] = (
    re.compile(r"(?<!\S)is:reprint\b", re.IGNORECASE),
    re.compile(r"(?<!\S)is:firstprint\b", re.IGNORECASE),
    re.compile(r"(?<!\S)f:\w+\b", re.IGNORECASE),
    re.compile(r"(?<!\S)id[=:]\w+\b", re.IGNORECASE),
    re.compile(r"(?<!\S)usd[<>]=?\d+(?:\.\d+)?", re.IGNORECASE),
)


@dataclass
class LiveValidation:
    """Classified response of one dry-run search."""

    ok: bool
    status: int
    total_cards: int | None = None
    overly_broad: bool = False
    zero_results: bool = False
    warnings: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def has_results(self) -> bool:
        return self.ok and not self.zero_results


@dataclass
class RelaxResult:
    """Query with speculative clauses stripped."""

    relaxed_query: str
    removed: list[str] = field(default_factory=list)


@dataclass
class LiveOutcome:
    """What validate_and_relax decided to return."""

    query: str
    validation: LiveValidation | None
    removed: list[str] = field(default_factory=list)
    used_fallback: bool = False
    timed_out: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.removed) or self.used_fallback


def relax_speculative_clauses(query: str) -> RelaxResult:
    """
    Strip every speculative clause, in priority order.

    A query without any speculative clause comes back unchanged with an
    empty ``removed`` list.
    """
    relaxed = query
    removed: list[str] = []
    for pattern in RELAXABLE_CLAUSES:
        for match in pattern.finditer(relaxed):
            removed.append(match.group(0).strip())
        relaxed = pattern.sub("", relaxed)
    return RelaxResult(relaxed_query=re.sub(r"\s+", " ", relaxed).strip(), removed=removed)


def has_speculative_clause(query: str) -> bool:
    return any(pattern.search(query) for pattern in RELAXABLE_CLAUSES)


class ScryfallValidator:
    """
    Dry-run client for the card search API.

    Retries retryable statuses and transport errors with linear backoff
    (``backoff * (attempt + 1)``), up to ``max_retries`` extra attempts.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float = FETCH_TIMEOUT_SECONDS,
        max_retries: int = MAX_FETCH_RETRIES,
        backoff: float = RETRY_BACKOFF_SECONDS,
        broad_threshold: int = OVERLY_BROAD_THRESHOLD,
    ) -> None:
        """
        Initialize the validator.

        Args:
            base_url: API base URL. Defaults to settings.scryfall_api_url.
            timeout: Per-request timeout in seconds.
            max_retries: Extra attempts after the first request.
            backoff: Base delay in seconds between attempts.
            broad_threshold: Result count above which a query is overly broad.
        """
        self.base_url = (base_url or settings.scryfall_api_url).rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff = backoff
        self.broad_threshold = broad_threshold

    async def _fetch(self, client: httpx.AsyncClient, query: str) -> httpx.Response:
        params = {"q": query, "extras": "true"}
        for attempt in range(self.max_retries + 1):
            try:
                response = await client.get(f"{self.base_url}/cards/search", params=params)
            except httpx.HTTPError as exc:
                if attempt < self.max_retries:
                    logger.info(
                        "LIVE_VALIDATION_RETRY",
                        extra={"attempt": attempt + 1, "error": type(exc).__name__},
                    )
                    await asyncio.sleep(self.backoff * (attempt + 1))
                    continue
                raise TransientNetworkError(f"{type(exc).__name__}: {exc}") from exc

            if response.status_code in RETRYABLE_STATUS_CODES and attempt < self.max_retries:
                logger.info(
                    "LIVE_VALIDATION_RETRY",
                    extra={"attempt": attempt + 1, "status": response.status_code},
                )
                await asyncio.sleep(self.backoff * (attempt + 1))
                continue
            return response

        # Unreachable: the last attempt always returns or raises
        raise TransientNetworkError("retries exhausted")

    async def validate(self, query: str) -> LiveValidation:
        """
        Run one dry-run search and classify the response.

        Never raises: transport failure is reported as ``ok=False, status=500``.
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await self._fetch(client, query)
        except TransientNetworkError as exc:
            logger.warning("LIVE_VALIDATION_FAILED", extra={"detail": exc.detail})
            return LiveValidation(ok=False, status=500, error=exc.message)

        if response.status_code == 404:
            return LiveValidation(ok=False, status=404, total_cards=0, zero_results=True)

        if response.status_code != 200:
            try:
                details = response.json().get("details")
            except ValueError:
                details = None
            logger.warning(
                "LIVE_VALIDATION_REJECTED",
                extra={"status": response.status_code, "details": details},
            )
            return LiveValidation(
                ok=False,
                status=response.status_code,
                error=details or f"Search service returned {response.status_code}",
            )

        data = response.json()
        total = int(data.get("total_cards", 0))
        return LiveValidation(
            ok=True,
            status=200,
            total_cards=total,
            overly_broad=total > self.broad_threshold,
            zero_results=total == 0,
            warnings=list(data.get("warnings") or []),
        )

    async def _validate_and_relax(self, query: str, fallback_query: str | None) -> LiveOutcome:
        validation = await self.validate(query)
        if not validation.zero_results:
            return LiveOutcome(query=query, validation=validation)

        current = query
        removed: list[str] = []
        for pattern in RELAXABLE_CLAUSES:
            matches = [m.group(0).strip() for m in pattern.finditer(current)]
            if not matches:
                continue
            candidate = re.sub(r"\s+", " ", pattern.sub("", current)).strip()
            if not candidate:
                continue
            candidate_validation = await self.validate(candidate)
            if not candidate_validation.ok and not candidate_validation.zero_results:
                # Network trouble mid-relaxation: keep the compiled query
                return LiveOutcome(query=query, validation=validation)
            current, validation = candidate, candidate_validation
            removed.extend(matches)
            logger.info("QUERY_RELAXED", extra={"removed": matches})
            if validation.has_results:
                return LiveOutcome(query=current, validation=validation, removed=removed)

        if fallback_query and fallback_query not in (query, current):
            fallback_validation = await self.validate(fallback_query)
            if fallback_validation.ok or fallback_validation.zero_results:
                logger.info("QUERY_FALLBACK_SUBSTITUTED", extra={"removed": removed})
                return LiveOutcome(
                    query=fallback_query,
                    validation=fallback_validation,
                    removed=removed,
                    used_fallback=True,
                )

        return LiveOutcome(query=current, validation=validation, removed=removed)

    async def validate_and_relax(
        self,
        query: str,
        fallback_query: str | None = None,
        deadline: float = LIVE_VALIDATION_DEADLINE_SECONDS,
    ) -> LiveOutcome:
        """
        Validate, relax on zero results, then fall back to the base query.

        Args:
            query: Sanitized compiled query
            fallback_query: Deterministic base query, substituted as a last resort
            deadline: Overall budget in seconds, retries included

        Returns:
            LiveOutcome; on deadline expiry the original query with
            ``timed_out=True`` and no validation
        """
        try:
            return await asyncio.wait_for(self._validate_and_relax(query, fallback_query), deadline)
        except TimeoutError:
            logger.warning("LIVE_VALIDATION_TIMEOUT", extra={"deadline": deadline})
            return LiveOutcome(query=query, validation=None, timed_out=True)


# Default validator instance
_validator: ScryfallValidator | None = None


def get_scryfall_validator() -> ScryfallValidator:
    """
    Get the default validator instance.

    Returns:
        Singleton ScryfallValidator
    """
    global _validator
    if _validator is None:
        _validator = ScryfallValidator()
    return _validator
