"""
Optional Claude fallback for inputs the deterministic compiler cannot cover.

Only runs when ``settings.ai_fallback_enabled`` is set AND an API key is
configured. Model output is untrusted: the caller passes it through the
same syntax validator as compiled output.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Protocol

import anthropic
from anthropic.types import TextBlock

from manaquery.config import settings

logger = logging.getLogger(__name__)

AI_TIMEOUT_SECONDS = 20.0
AI_MAX_RETRIES = 2
AI_MAX_TOKENS = 512

TRANSLATION_SYSTEM_PROMPT = """\
You translate Magic: The Gathering card searches written in plain English \
into Scryfall search syntax.

Rules:
- Use only these keys: c, id, t, o, kw, otag, mv, pow, tou, usd, f, r, is, \
year, game, name, set.
- Quote multi-word oracle text: o:"draw a card".
- Wrap alternatives in parentheses: (t:instant or t:sorcery).
- Prefer otag: for well-known card roles (ramp, removal, board-wipe, tutor).
- Never invent keys. Never add commentary outside the JSON object.

Reply with a single JSON object:
{"query": "<scryfall syntax>", "explanation": "<one sentence>", "confidence": <0.0-1.0>}
"""


@dataclass(frozen=True, slots=True)
class AiTranslation:
    """A translation proposed by the model."""

    query: str
    explanation: str
    confidence: float
    model: str


class QueryTranslator(Protocol):
    """Anything that can translate free text when the compiler cannot."""

    async def translate(self, text: str, partial_query: str | None) -> AiTranslation | None: ...


def ai_fallback_available() -> bool:
    """Whether the fallback is both enabled and configured."""
    return settings.ai_fallback_enabled and bool(settings.anthropic_api_key)


def extract_json_object(text: str) -> dict[str, Any] | None:
    """
    Parse the first JSON object in a model reply.

    Tolerates code fences and surrounding prose. Returns None if nothing
    parses to a dict.
    """
    match = re.search(r"\{.*\}", text, re.DOTALL)
    if match is None:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


async def request_json(
    client: anthropic.AsyncAnthropic,
    model: str,
    system: str,
    prompt: str,
) -> dict[str, Any] | None:
    """
    Send one prompt and parse the JSON object in the reply.

    Raises:
        anthropic.APIError: On transport or API failure (after SDK retries)
    """
    response = await client.messages.create(
        model=model,
        max_tokens=AI_MAX_TOKENS,
        system=system,
        messages=[{"role": "user", "content": prompt}],
    )
    text = "".join(block.text for block in response.content if isinstance(block, TextBlock))
    if response.usage:
        logger.info(
            "AI_CALL_COMPLETED",
            extra={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
        )
    return extract_json_object(text)


class AnthropicTranslator:
    """Claude-backed translator."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        self.model = model or settings.ai_model
        self.client = client or anthropic.AsyncAnthropic(
            api_key=api_key or settings.anthropic_api_key,
            timeout=AI_TIMEOUT_SECONDS,
            max_retries=AI_MAX_RETRIES,
        )

    async def translate(self, text: str, partial_query: str | None) -> AiTranslation | None:
        """
        Ask the model for a translation.

        Returns None on any API failure or unusable reply; the caller then
        keeps the best deterministic query.
        """
        prompt = f"Search: {text}"
        if partial_query:
            prompt += f"\nPartial translation already understood: {partial_query}"
        try:
            data = await request_json(self.client, self.model, TRANSLATION_SYSTEM_PROMPT, prompt)
        except anthropic.APIError as exc:
            logger.warning("AI_FALLBACK_FAILED", extra={"error": type(exc).__name__})
            return None

        if not data or not isinstance(data.get("query"), str) or not data["query"].strip():
            logger.warning("AI_FALLBACK_UNPARSEABLE")
            return None
        try:
            confidence = float(data.get("confidence", 0.6))
        except (TypeError, ValueError):
            confidence = 0.6
        return AiTranslation(
            query=data["query"].strip(),
            explanation=str(data.get("explanation") or "Translated by AI"),
            confidence=min(1.0, max(0.0, confidence)),
            model=self.model,
        )
