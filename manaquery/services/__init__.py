"""
ManaQuery services.

Translation pipeline, validation, caching, rate limiting, and rule learning.
"""

from manaquery.services.query_cache import (
    DatabaseQueryCache,
    InMemoryQueryCache,
    TieredQueryCache,
    build_cache_key,
)
from manaquery.services.query_compiler import CompiledQuery, compile_intent
from manaquery.services.rate_limiter import RateLimiter, get_rate_limiter
from manaquery.services.rule_learning import FeedbackProcessor, ProcessingOutcome
from manaquery.services.rule_matcher import AliasRuleMatcher, RuleMatcher, VectorRuleMatcher
from manaquery.services.scryfall_validator import (
    LiveValidation,
    ScryfallValidator,
    relax_speculative_clauses,
)
from manaquery.services.syntax_validator import (
    QueryValidation,
    sanitize_input_query,
    validate_query,
)
from manaquery.services.translation_pipeline import TranslationPipeline

__all__ = [
    # Compilation
    "CompiledQuery",
    "compile_intent",
    # Rule matching
    "AliasRuleMatcher",
    "RuleMatcher",
    "VectorRuleMatcher",
    # Validation
    "QueryValidation",
    "sanitize_input_query",
    "validate_query",
    "LiveValidation",
    "ScryfallValidator",
    "relax_speculative_clauses",
    # Caching and throttling
    "DatabaseQueryCache",
    "InMemoryQueryCache",
    "TieredQueryCache",
    "build_cache_key",
    "RateLimiter",
    "get_rate_limiter",
    # Rule learning
    "FeedbackProcessor",
    "ProcessingOutcome",
    "TranslationPipeline",
]
