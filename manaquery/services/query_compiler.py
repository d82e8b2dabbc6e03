"""
Deterministic compilation of a SearchIntent into search syntax.

Clause order is fixed:

    color/identity, types, mana value, power/toughness, tags/keywords,
    oracle text, format/rarity/price/year, game:paper

Source selection, first hit wins:

1. Hand-checked translation for the exact phrase        -> pattern_match
2. Learned rule whose pattern equals the input          -> pattern_match
3. Every fragment of the input mapped to a clause       -> deterministic
4. Learned rule similar to the input                    -> pattern_match
5. Otherwise the query needs the AI fallback; until then the best-effort
   base query is returned with source=fallback

INVARIANTS:
- Structured filters always override values extracted from the text
- Compilation is deterministic: same intent, filters, and rules give the
  same query and confidence
- Every default applied is recorded in the assumptions list
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, replace

from manaquery.config import (
    CONFIDENCE_AMBIGUITY_PENALTY,
    CONFIDENCE_BASE,
    CONFIDENCE_FLOOR,
    CONFIDENCE_MAPPED_WEIGHT,
    CONFIDENCE_WARNING_PENALTY,
)
from manaquery.models.intent import (
    Color,
    ColorConstraint,
    Comparator,
    NumericConstraint,
    SearchIntent,
    color_letters,
)
from manaquery.models.rules import TranslationRule
from manaquery.models.translation import (
    Explanation,
    SearchFilters,
    TranslationResult,
    TranslationSource,
)
from manaquery.parsers.vocabulary import HARDCODED_TRANSLATIONS
from manaquery.services.rule_matcher import AliasRuleMatcher, RuleMatch, RuleMatcher

logger = logging.getLogger(__name__)

GAME_FILTER = "game:paper"
HARDCODED_CONFIDENCE = 0.95

_COLOR_NAMES: dict[Color, str] = {
    Color.WHITE: "white",
    Color.BLUE: "blue",
    Color.BLACK: "black",
    Color.RED: "red",
    Color.GREEN: "green",
    Color.COLORLESS: "colorless",
}


@dataclass(frozen=True, slots=True)
class CompiledQuery:
    """Compiler output: the result plus what the pipeline needs next."""

    result: TranslationResult
    intent: SearchIntent
    clauses: tuple[str, ...]
    needs_ai: bool = False
    matched_rule: TranslationRule | None = None


# =============================================================================
# FILTER PRECEDENCE
# =============================================================================


def apply_filters(
    intent: SearchIntent,
    filters: SearchFilters | None,
) -> tuple[SearchIntent, list[str]]:
    """
    Merge structured filters into an intent.

    Returns:
        Tuple of (merged intent, assumptions describing each override)
    """
    if filters is None:
        return intent, []

    changes: dict[str, object] = {}
    notes: list[str] = []
    applied: list[str] = []

    if filters.format:
        if intent.formats and intent.formats != (filters.format,):
            notes.append(f"Format filter '{filters.format}' replaced formats found in the text")
        changes["formats"] = (filters.format,)
        applied.append("filter:format")

    if filters.color_identity:
        values = frozenset(Color(letter) for letter in filters.color_identity)
        if intent.colors is not None:
            notes.append("Color identity filter replaced colors found in the text")
        changes["colors"] = ColorConstraint(values, is_identity=True)
        changes["ambiguous_colors"] = False
        applied.append("filter:colorIdentity")

    if filters.max_cmc is not None:
        if intent.cmc is not None:
            notes.append("Max mana value filter replaced the mana value found in the text")
        changes["cmc"] = NumericConstraint(Comparator.LTE, filters.max_cmc)
        applied.append("filter:maxCmc")

    if filters.max_price is not None:
        if intent.price is not None:
            notes.append("Max price filter replaced the price found in the text")
        changes["price"] = NumericConstraint(Comparator.LTE, filters.max_price)
        applied.append("filter:maxPrice")

    if filters.rarity:
        changes["rarity"] = filters.rarity
        applied.append("filter:rarity")

    if filters.types:
        if intent.types or intent.type_groups:
            notes.append("Type filter replaced types found in the text")
        changes["types"] = tuple(dict.fromkeys(filters.types))
        changes["type_groups"] = ()
        applied.append("filter:types")

    changes["recognized"] = (*intent.recognized, *applied)
    return replace(intent, **changes), notes  # type: ignore[arg-type]


# =============================================================================
# RENDERING
# =============================================================================


def escape_oracle_fragment(fragment: str) -> str:
    """Quote one oracle-text fragment so it cannot break the outer query."""
    cleaned = fragment.replace("\\", "").replace('"', "'").strip()
    return f'o:"{cleaned}"'


def render_colors(colors: ColorConstraint) -> str:
    key = "id" if colors.is_identity else "c"
    letters = color_letters(colors.values)
    if colors.is_or and len(colors.values) > 1:
        return "(" + " or ".join(f"{key}:{letter}" for letter in letters) + ")"
    if colors.is_exact:
        return f"{key}={letters}"
    if colors.is_identity:
        return f"id<={letters}"
    return f"c:{letters}"


def render_clauses(intent: SearchIntent, include_game: bool = True) -> list[str]:
    """Render an intent to clauses in the fixed compiler order."""
    clauses: list[str] = []

    if intent.colors is not None:
        clauses.append(render_colors(intent.colors))

    grouped = {t for group in intent.type_groups for t in group}
    clauses.extend(f"t:{t}" for t in intent.types if t not in grouped)
    clauses.extend("(" + " or ".join(f"t:{t}" for t in group) + ")" for group in intent.type_groups)
    clauses.extend(f"-t:{t}" for t in intent.excluded_types if t not in grouped)

    if intent.cmc is not None:
        clauses.append(intent.cmc.render("mv"))
    if intent.power is not None:
        clauses.append(intent.power.render("pow"))
    if intent.toughness is not None:
        clauses.append(intent.toughness.render("tou"))

    clauses.extend(intent.tags)
    if intent.can_be_commander:
        clauses.append("is:commander")
    clauses.extend(escape_oracle_fragment(fragment) for fragment in intent.oracle_patterns)

    clauses.extend(f"f:{fmt}" for fmt in intent.formats)
    if intent.rarity:
        clauses.append(f"r:{intent.rarity}")
    if intent.price is not None:
        clauses.append(intent.price.render("usd"))
    if intent.year is not None:
        clauses.append(intent.year.render("year"))

    if include_game:
        clauses.append(GAME_FILTER)

    return dedupe_clauses(clauses)


def dedupe_clauses(clauses: Sequence[str]) -> list[str]:
    """Drop empty and repeated clauses, case-insensitively, keeping first occurrence."""
    seen: set[str] = set()
    unique: list[str] = []
    for clause in clauses:
        key = clause.lower()
        if key and key not in seen:
            seen.add(key)
            unique.append(clause)
    return unique


def _describe_colors(colors: ColorConstraint) -> str:
    names = [_COLOR_NAMES[c] for c in (Color(letter) for letter in color_letters(colors.values))]
    joined = " or ".join(names) if colors.is_or else " and ".join(names)
    if colors.is_identity:
        qualifier = "exactly" if colors.is_exact else "within"
        return f"color identity {qualifier} {joined}"
    if colors.is_exact:
        return f"exactly {joined}"
    return f"{joined} cards"


def describe_intent(intent: SearchIntent) -> str:
    """Plain-English summary of what the compiled query searches for."""
    parts: list[str] = []
    if intent.colors is not None:
        parts.append(_describe_colors(intent.colors))
    if intent.types:
        parts.append("type " + ", ".join(intent.types))
    for group in intent.type_groups:
        parts.append("either " + " or ".join(group))
    if intent.excluded_types:
        parts.append("not " + ", ".join(intent.excluded_types))
    for label, constraint in (
        ("mana value", intent.cmc),
        ("power", intent.power),
        ("toughness", intent.toughness),
        ("price in USD", intent.price),
        ("release year", intent.year),
    ):
        if constraint is not None:
            parts.append(f"{label} {constraint.render('').strip()}")
    for tag in intent.tags:
        kind, _, value = tag.partition(":")
        parts.append(f"with {value.replace('-', ' ')}" if kind == "kw" else f"tagged {value}")
    for fragment in intent.oracle_patterns:
        parts.append(f'text mentioning "{fragment}"')
    if intent.formats:
        parts.append("legal in " + ", ".join(intent.formats))
    if intent.rarity:
        parts.append(f"{intent.rarity} rarity")

    if not parts:
        return "Paper cards matching the search"
    return "Paper cards: " + "; ".join(parts)


# =============================================================================
# CONFIDENCE
# =============================================================================


def score_confidence(intent: SearchIntent) -> float:
    """
    Compiler estimate of how much of the input was captured.

    Weighted fraction of mapped fragments, minus a penalty per warning and a
    penalty for ambiguous color-pair inference. Nothing recognized scores the
    floor.
    """
    mapped = len(intent.recognized)
    if mapped == 0:
        return CONFIDENCE_FLOOR
    fraction = mapped / (mapped + len(intent.unresolved))
    score = CONFIDENCE_BASE + CONFIDENCE_MAPPED_WEIGHT * fraction
    score -= CONFIDENCE_WARNING_PENALTY * len(intent.warnings)
    if intent.ambiguous_colors:
        score -= CONFIDENCE_AMBIGUITY_PENALTY
    return round(min(1.0, max(CONFIDENCE_FLOOR, score)), 2)


# =============================================================================
# COMPILATION
# =============================================================================


def _result(
    intent: SearchIntent,
    query: str,
    readable: str,
    assumptions: list[str],
    confidence: float,
    source: TranslationSource,
) -> TranslationResult:
    return TranslationResult(
        original_query=intent.original_text,
        scryfall_query=query,
        explanation=Explanation(
            readable=readable,
            assumptions=list(dict.fromkeys(assumptions)),
            confidence=confidence,
        ),
        success=True,
        source=source,
    )


def rule_syntax(rule: TranslationRule) -> str:
    """The rule's syntax, or its first template when only templates are stored."""
    if rule.scryfall_syntax:
        return rule.scryfall_syntax
    return rule.scryfall_templates[0] if rule.scryfall_templates else ""


def _from_rule(
    intent: SearchIntent, filters: SearchFilters | None, match: RuleMatch
) -> CompiledQuery:
    # The rule replaces every text-derived clause; only filter notes apply
    filter_intent, assumptions = apply_filters(
        SearchIntent(original_text=intent.original_text, normalized_text=intent.normalized_text),
        filters,
    )
    rule = match.rule
    clauses = dedupe_clauses(
        [rule_syntax(rule), *render_clauses(filter_intent, include_game=False), GAME_FILTER]
    )
    readable = f"Using learned rule: {rule.description or rule.pattern}"
    confidence = round(min(rule.confidence, match.similarity), 2)
    result = _result(
        intent, " ".join(clauses), readable, assumptions, confidence, TranslationSource.PATTERN_MATCH
    )
    return CompiledQuery(result=result, intent=intent, clauses=tuple(clauses), matched_rule=rule)


def compile_intent(
    intent: SearchIntent,
    filters: SearchFilters | None = None,
    rules: Sequence[TranslationRule] = (),
    matcher: RuleMatcher | None = None,
) -> CompiledQuery:
    """
    Compile an intent (plus optional structured filters) to search syntax.

    Args:
        intent: Output of extract_intent
        filters: Structured filters; these win over extracted values
        rules: Candidate translation rules (inactive ones are ignored)
        matcher: Fuzzy strategy for step 4; exact alias matching always runs

    Returns:
        CompiledQuery whose ``intent`` carries ``deterministic_query``
    """
    hardcoded = HARDCODED_TRANSLATIONS.get(intent.original_text.strip().lower())
    if hardcoded is not None and filters is None:
        query, readable = hardcoded
        result = _result(
            intent, query, readable, [], HARDCODED_CONFIDENCE, TranslationSource.PATTERN_MATCH
        )
        intent = replace(intent, deterministic_query=query)
        return CompiledQuery(result=result, intent=intent, clauses=(query,))

    merged, assumptions = apply_filters(intent, filters)
    assumptions = [*merged.assumptions, *assumptions]

    if merged.colors is not None and merged.colors.is_identity and not merged.formats:
        merged = replace(merged, formats=("commander",))
        assumptions.append("Assumed Commander format since color identity was requested without a format")

    exact = AliasRuleMatcher().match(intent.original_text, rules) if rules else None
    if exact is not None:
        return _from_rule(merged, filters, exact)

    clauses = render_clauses(merged)
    query = " ".join(clauses)
    confidence = score_confidence(merged)
    has_content = bool(merged.recognized)
    if has_content:
        merged = replace(merged, deterministic_query=query)

    if has_content and not merged.unresolved:
        logger.debug("COMPILED_DETERMINISTIC", extra={"clauses": len(clauses)})
        result = _result(
            merged, query, describe_intent(merged), assumptions, confidence,
            TranslationSource.DETERMINISTIC,
        )
        return CompiledQuery(result=result, intent=merged, clauses=tuple(clauses))

    fuzzy = matcher.match(intent.original_text, rules) if matcher is not None and rules else None
    if fuzzy is not None:
        return _from_rule(merged, filters, fuzzy)

    if not has_content and merged.unresolved:
        # Best effort: search card text for the longest unrecognized phrase
        phrase = max(merged.unresolved, key=len)[:60]
        clauses = [escape_oracle_fragment(phrase), GAME_FILTER]
        query = " ".join(clauses)
        assumptions.append(f"Searched card text for '{phrase}' because no known phrase matched")

    logger.info(
        "COMPILE_NEEDS_FALLBACK",
        extra={"unresolved": len(merged.unresolved), "confidence": confidence},
    )
    result = _result(
        merged, query, describe_intent(merged), assumptions, confidence, TranslationSource.FALLBACK
    )
    return CompiledQuery(result=result, intent=merged, clauses=tuple(clauses), needs_ai=True)
