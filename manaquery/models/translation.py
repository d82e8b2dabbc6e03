"""
Request and response models for the translation endpoint.

Field names are snake_case in Python and camelCase on the wire.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from manaquery.config import CONFIDENCE_BUCKETS, MAX_INPUT_LENGTH
from manaquery.parsers.vocabulary import ALLOWED_FILTER_FORMATS


class TranslationSource(str, Enum):
    """Where a translation came from."""

    DETERMINISTIC = "deterministic"
    PATTERN_MATCH = "pattern_match"
    AI = "ai"
    CACHE = "cache"
    FALLBACK = "fallback"
    FORCED_FALLBACK = "forced_fallback"


def confidence_label(confidence: float) -> str:
    """Bucket a confidence score for display."""
    for threshold, label in CONFIDENCE_BUCKETS:
        if confidence >= threshold:
            return label
    return "Low"


class SearchFilters(BaseModel):
    """
    Structured filters sent alongside the free text.

    These always take precedence over values extracted from the text.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    format: str | None = None
    color_identity: list[str] | None = Field(default=None, alias="colorIdentity")
    max_cmc: float | None = Field(default=None, alias="maxCmc", ge=0, le=20)
    max_price: float | None = Field(default=None, alias="maxPrice", ge=0)
    rarity: str | None = None
    types: list[str] | None = None

    @field_validator("format")
    @classmethod
    def validate_format(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        if normalized not in ALLOWED_FILTER_FORMATS:
            raise ValueError(f"Unsupported format '{value}'")
        return normalized

    @field_validator("color_identity")
    @classmethod
    def validate_color_identity(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        if len(value) > 5:
            raise ValueError("colorIdentity accepts at most 5 colors")
        normalized = [color.strip().lower() for color in value]
        invalid = [color for color in normalized if color not in {"w", "u", "b", "r", "g", "c"}]
        if invalid:
            raise ValueError(f"Invalid color(s): {', '.join(invalid)}")
        return normalized

    @field_validator("rarity")
    @classmethod
    def validate_rarity(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        if normalized not in {"common", "uncommon", "rare", "mythic"}:
            raise ValueError(f"Unsupported rarity '{value}'")
        return normalized

    @field_validator("types")
    @classmethod
    def validate_types(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        normalized = [t.strip().lower() for t in value if t.strip()]
        bad = [t for t in normalized if not t.replace("-", "").isalpha()]
        if bad:
            raise ValueError(f"Invalid type(s): {', '.join(bad)}")
        return normalized

    def fingerprint(self) -> dict[str, Any]:
        """Stable dict of the filters that are actually set."""
        return self.model_dump(exclude_none=True)


class TranslateRequest(BaseModel):
    """Body of ``POST /translate``."""

    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(..., max_length=MAX_INPUT_LENGTH)
    filters: SearchFilters | None = None
    use_cache: bool = Field(default=True, alias="useCache")

    @field_validator("query")
    @classmethod
    def validate_query(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Query is required")
        return value.strip()


class Explanation(BaseModel):
    """Human-readable account of a translation."""

    readable: str
    assumptions: list[str] = Field(default_factory=list)
    confidence: float = Field(..., ge=0.0, le=1.0)


class TranslationResult(BaseModel):
    """Body of a successful ``POST /translate`` response."""

    model_config = ConfigDict(populate_by_name=True)

    original_query: str = Field(..., alias="originalQuery")
    scryfall_query: str = Field(..., alias="scryfallQuery")
    explanation: Explanation
    success: bool = True
    source: TranslationSource
    response_time_ms: int | None = Field(default=None, alias="responseTimeMs")

    @property
    def confidence(self) -> float:
        return self.explanation.confidence
