"""
Syntax validation and repair for compiled search queries.

Two entry points with different jobs:

- sanitize_input_query: screens the user's free text for spam before any
  work is done. Rejection here is a terminal 400.
- validate_query: checks and repairs a compiled query. Repairs are recorded
  as issues and leave the query valid; an unknown search key or too many
  parameters marks it invalid and nothing is repaired.

INVARIANT: Every query that leaves validate_query with valid=True has an
even number of double quotes, balanced parentheses, and only allow-listed
search keys.
"""

import logging
import re
from dataclasses import dataclass, field

from manaquery.config import (
    MAX_INPUT_LENGTH,
    MAX_QUERY_PARAMETERS,
    MAX_REPEATED_CHARACTERS,
    MAX_SCRYFALL_QUERY_LENGTH,
    MIN_ALPHANUMERIC_RATIO,
    MIN_INPUT_LENGTH,
)

logger = logging.getLogger(__name__)

VALID_SEARCH_KEYS: frozenset[str] = frozenset(
    {
        "c", "color", "id", "identity", "ci", "commander",
        "t", "type", "o", "oracle", "fo", "fulloracle", "kw", "keyword",
        "m", "mana", "mv", "cmc", "manavalue", "devotion", "produces",
        "pow", "power", "tou", "toughness", "pt", "powtou", "loy", "loyalty",
        "r", "rarity", "s", "set", "e", "edition", "b", "block", "cn", "number",
        "collector", "lang", "language", "st",
        "is", "not", "has", "include", "in",
        "f", "format", "legal", "banned", "restricted",
        "game", "games", "paper", "arena", "mtgo",
        "a", "art", "artist", "atag", "arttag", "ft", "flavor", "wm", "watermark",
        "border", "frame", "full", "textless", "stamp",
        "year", "date", "new", "old",
        "usd", "eur", "tix", "cheapest",
        "order", "sort", "dir", "direction", "unique", "as", "prefer",
        "cube", "name", "wildpair",
        "otag", "oracletag", "function",
    }
)

# Empty operators may only be stripped silently for these keys
_SPAM_OPERATOR_KEYS = "toc"

_KEY_PATTERN = re.compile(r"\b([a-zA-Z]+)[:=<>]")
_EMPTY_OPERATOR_PATTERN = re.compile(r"(?<![\w-])-?[a-zA-Z]+(?:[:=]|[<>]=?)(?=\s|\)|$)")
_UNSAFE_CHARACTERS = re.compile(r"[^\w\s:=\"'()<>!+\-/*\\{}.,^$|?\[\]]")
_YEAR_AS_SET = re.compile(r"\be:(\d{4})\b", re.IGNORECASE)
_POWER_TOUGHNESS_MATH = re.compile(r"\b(pow|power)\s*\+\s*(tou|toughness)\b", re.IGNORECASE)
_POWER_TOUGHNESS_CLAUSE = re.compile(
    r"\b(pow|power)\s*\+\s*(tou|toughness)\s*[<>=]+\s*\d+\b", re.IGNORECASE
)


@dataclass
class QueryValidation:
    """Outcome of validate_query."""

    valid: bool
    sanitized: str
    issues: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class InputCheck:
    """Outcome of sanitize_input_query."""

    valid: bool
    sanitized: str = ""
    reason: str | None = None


# =============================================================================
# HELPERS
# =============================================================================


def _collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def mask_literals(query: str) -> str:
    """
    Blank out quoted strings and /regex/ bodies, keeping positions.

    Key and parenthesis scans run on the masked text so that text such as
    ``o:"note: (this)"`` never counts as syntax.
    """
    masked: list[str] = []
    in_quote = False
    in_regex = False
    previous = ""
    for char in query:
        if in_quote:
            if char == '"':
                in_quote = False
                masked.append(char)
            else:
                masked.append(" ")
        elif in_regex:
            if char == "/" and previous != "\\":
                in_regex = False
                masked.append(char)
            else:
                masked.append(" ")
        elif char == '"':
            in_quote = True
            masked.append(char)
        elif char == "/" and previous in (":", "="):
            in_regex = True
            masked.append(char)
        else:
            masked.append(char)
        previous = char
    return "".join(masked)


def split_top_level(query: str) -> list[str]:
    """Split on spaces that are not inside double quotes."""
    tokens: list[str] = []
    current = ""
    in_quote = False
    for char in query:
        if char == '"':
            in_quote = not in_quote
        if char == " " and not in_quote:
            if current:
                tokens.append(current)
                current = ""
            continue
        current += char
    if current:
        tokens.append(current)
    return tokens


def search_keys(query: str) -> list[str]:
    """Every ``key:``/``key=``/``key<``/``key>`` key outside literals, lower-cased."""
    return [match.group(1).lower() for match in _KEY_PATTERN.finditer(mask_literals(query))]


def _remove_spans(text: str, spans: list[tuple[int, int]]) -> str:
    for start, end in sorted(spans, reverse=True):
        text = text[:start] + text[end:]
    return text


# =============================================================================
# INPUT SCREENING
# =============================================================================


def sanitize_input_query(text: str) -> InputCheck:
    """
    Reject junk input before spending any work on it.

    Checks length bounds, operator spam ("t: t: t:" and "t:t:t:"), the
    parameter ceiling, runs of repeated characters, and the share of
    letters and digits. Trailing and inline empty ``t:``/``o:``/``c:``
    operators are stripped, and repeated identical tokens collapsed.
    """
    trimmed = _collapse_whitespace(text)

    if len(trimmed) < MIN_INPUT_LENGTH:
        return InputCheck(False, reason=f"Query too short (minimum {MIN_INPUT_LENGTH} characters)")
    if len(trimmed) > MAX_INPUT_LENGTH:
        return InputCheck(False, reason=f"Query too long (maximum {MAX_INPUT_LENGTH} characters)")

    if re.search(rf"(?:[{_SPAM_OPERATOR_KEYS}]:\s*){{3,}}", trimmed, re.IGNORECASE):
        return InputCheck(False, reason="Invalid query format - repeated empty operators detected")

    if len(re.findall(r"\b[a-zA-Z]+[:=<>]", trimmed)) > MAX_QUERY_PARAMETERS:
        return InputCheck(
            False, reason=f"Too many search parameters (maximum {MAX_QUERY_PARAMETERS})"
        )

    sanitized = re.sub(
        rf"\s+[{_SPAM_OPERATOR_KEYS}]:\s*(?=[{_SPAM_OPERATOR_KEYS}]:|$)",
        " ",
        trimmed,
        flags=re.IGNORECASE,
    )
    sanitized = re.sub(rf"\s+[{_SPAM_OPERATOR_KEYS}]:\s+", " ", sanitized, flags=re.IGNORECASE)
    sanitized = _collapse_whitespace(sanitized)
    sanitized = remove_duplicate_parameters(sanitized)

    word_chars = sum(1 for char in sanitized if char.isalnum())
    if len(sanitized) > 10 and word_chars < len(sanitized) * MIN_ALPHANUMERIC_RATIO:
        return InputCheck(False, reason="Query contains too many special characters")

    if re.search(rf"(.)\1{{{MAX_REPEATED_CHARACTERS - 1},}}", sanitized):
        return InputCheck(False, reason="Invalid query format - repetitive character spam detected")

    return InputCheck(True, sanitized=sanitized)


# =============================================================================
# COMPILED QUERY VALIDATION
# =============================================================================


def normalize_or_groups(query: str) -> str:
    """
    Wrap top-level ``a OR b`` runs in parentheses.

    Only depth-zero OR tokens start a group; OR inside an existing group is
    left alone.
    """
    tokens = split_top_level(query)
    output: list[str] = []
    group: list[str] = []
    depth = 0

    def flush() -> None:
        if group:
            output.append("(" + " ".join(group) + ")")
            group.clear()

    for index, token in enumerate(tokens):
        depth_before = depth
        depth += token.count("(") - token.count(")")

        if depth_before == 0 and token.lower() == "or":
            if not group and output:
                group.append(output.pop())
            group.append(token)
            continue

        if group and depth_before == 0:
            group.append(token)
            upcoming = tokens[index + 1] if index + 1 < len(tokens) else ""
            if upcoming.lower() != "or":
                flush()
            continue

        output.append(token)

    flush()
    return " ".join(output)


def remove_duplicate_parameters(query: str) -> str:
    """Collapse repeated identical parameter tokens, case-insensitively."""
    seen: set[str] = set()
    kept: list[str] = []
    for token in split_top_level(query):
        is_parameter = (
            token.lower() != "or"
            and "(" not in token
            and ")" not in token
            and _KEY_PATTERN.search(mask_literals(token)) is not None
        )
        key = token.lower()
        if is_parameter and key in seen:
            continue
        if is_parameter:
            seen.add(key)
        kept.append(token)
    return " ".join(kept)


def _strip_unbalanced_parens(query: str) -> str:
    masked = mask_literals(query)
    opened: list[int] = []
    orphans: list[int] = []
    for index, char in enumerate(masked):
        if char == "(":
            opened.append(index)
        elif char == ")":
            if opened:
                opened.pop()
            else:
                orphans.append(index)
    drop = set(opened) | set(orphans)
    return "".join(char for index, char in enumerate(query) if index not in drop)


def _close_quotes(query: str, limit: int) -> tuple[str, bool]:
    if query.count('"') % 2 == 0:
        return query, False
    body = query
    while body and (len(body) + 1 > limit or body.count('"') % 2 == 0):
        body = body[:-1]
    return (body + '"' if body else ""), True


def _has_unclosed_single_quote(query: str) -> bool:
    stripped = re.sub(r"\w'\w", "", query)
    stripped = re.sub(r"\w'(?=\s|$)", "", stripped)
    return stripped.count("'") % 2 != 0


def _reject_keys(sanitized: str, issues: list[str]) -> QueryValidation | None:
    keys = search_keys(sanitized)
    unknown = list(dict.fromkeys(key for key in keys if key not in VALID_SEARCH_KEYS))
    if unknown:
        issues.append(f"Unknown search key(s): {', '.join(unknown)}")
        logger.info("QUERY_UNKNOWN_KEYS", extra={"keys": unknown})
        return QueryValidation(valid=False, sanitized=sanitized, issues=issues)
    if len(keys) > MAX_QUERY_PARAMETERS:
        issues.append(f"Too many search parameters (maximum {MAX_QUERY_PARAMETERS})")
        return QueryValidation(valid=False, sanitized=sanitized, issues=issues)
    return None


def validate_query(query: str, max_length: int = MAX_SCRYFALL_QUERY_LENGTH) -> QueryValidation:
    """
    Check and repair a compiled query.

    Args:
        query: Compiled search syntax
        max_length: Hard cap on the returned query length

    Returns:
        QueryValidation with the repaired query and one issue per repair.
        ``valid`` is False only for unknown keys and parameter overflow,
        whether present in the input or produced by a repair.
    """
    issues: list[str] = []
    sanitized = _collapse_whitespace(query)

    grouped = normalize_or_groups(sanitized)
    if grouped != sanitized:
        sanitized = grouped
        issues.append("Normalized OR groups with parentheses")

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length]
        issues.append(f"Query truncated to {max_length} characters")

    stripped = _collapse_whitespace(_UNSAFE_CHARACTERS.sub("", sanitized))
    if stripped != sanitized:
        sanitized = stripped
        issues.append("Removed unsupported characters")

    if _YEAR_AS_SET.search(sanitized):
        sanitized = _YEAR_AS_SET.sub(r"year=\1", sanitized)
        issues.append("Replaced invalid year set syntax with year=YYYY")

    if _POWER_TOUGHNESS_MATH.search(sanitized):
        sanitized = _collapse_whitespace(_POWER_TOUGHNESS_CLAUSE.sub("", sanitized))
        issues.append("Removed unsupported power+toughness math")

    open_braces = sanitized.count("{")
    close_braces = sanitized.count("}")
    if open_braces > close_braces:
        sanitized += "}" * (open_braces - close_braces)
        issues.append("Added missing closing brace(s)")
    elif close_braces > open_braces:
        sanitized = re.sub(r"^[^{]*}", "", sanitized)
        issues.append("Removed orphan closing brace(s)")

    rejected = _reject_keys(sanitized, issues)
    if rejected is not None:
        return rejected

    masked = mask_literals(sanitized)
    empties = [match.span() for match in _EMPTY_OPERATOR_PATTERN.finditer(masked)]
    if empties:
        sanitized = _collapse_whitespace(_remove_spans(sanitized, empties))
        issues.append("Removed empty search operator(s)")

    deduped = remove_duplicate_parameters(sanitized)
    if deduped != sanitized:
        sanitized = deduped
        issues.append("Removed duplicate parameters")

    balanced = _strip_unbalanced_parens(sanitized)
    if balanced != sanitized:
        sanitized = _collapse_whitespace(balanced)
        issues.append("Removed unbalanced parentheses")

    sanitized, closed = _close_quotes(sanitized, max_length)
    if closed:
        issues.append("Added missing closing quote")

    if _has_unclosed_single_quote(sanitized) and len(sanitized) < max_length:
        sanitized += "'"
        issues.append("Added missing closing quote")

    sanitized = re.sub(r"\(\s*\)", "", sanitized)
    sanitized = _collapse_whitespace(sanitized)

    # Repairs can join fragments into a new key token
    rejected = _reject_keys(sanitized, issues)
    if rejected is not None:
        return rejected

    if issues:
        logger.debug("QUERY_REPAIRED", extra={"issues": issues})
    return QueryValidation(valid=True, sanitized=sanitized, issues=issues)


def is_balanced(query: str) -> bool:
    """True when quotes are even and parentheses nest correctly."""
    if query.count('"') % 2 != 0:
        return False
    depth = 0
    for char in mask_literals(query):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


# =============================================================================
# QUALITY FLAGS
# =============================================================================

_VERBOSE_ORACLE: tuple[tuple[str, str, str, str], ...] = (
    (
        "verbose_etb_syntax",
        'o:"enters the battlefield"',
        'o:"enters"',
        "Simplified ETB syntax for broader results",
    ),
    (
        "verbose_ltb_syntax",
        'o:"leaves the battlefield"',
        'o:"leaves"',
        "Simplified LTB syntax for broader results",
    ),
    (
        "verbose_dies_syntax",
        'o:"when this creature dies"',
        'o:"dies"',
        'Simplified "dies" syntax for broader results',
    ),
)


def detect_quality_flags(query: str) -> list[str]:
    """Name the known weaknesses in a compiled query."""
    flags = [flag for flag, verbose, _, _ in _VERBOSE_ORACLE if verbose in query.lower()]
    if re.search(r'o:"[^"]{50,}"', query):
        flags.append("overly_long_oracle_text")
    if len(re.findall(r"\([^()]*\([^()]*\)", query)) > 1:
        flags.append("complex_nested_logic")
    return flags


def apply_auto_corrections(query: str, flags: list[str]) -> tuple[str, list[str]]:
    """
    Rewrite known weaknesses.

    Returns:
        Tuple of (corrected query, one description per correction)
    """
    corrected = query
    corrections: list[str] = []

    normalized = re.sub(r"\b(?:function|oracletag):", "otag:", corrected, flags=re.IGNORECASE)
    if normalized != corrected:
        corrected = normalized
        corrections.append("Normalized tag syntax to otag: for consistency")

    for flag, verbose, concise, description in _VERBOSE_ORACLE:
        if flag not in flags:
            continue
        rewritten = re.sub(re.escape(verbose), concise, corrected, flags=re.IGNORECASE)
        if rewritten != corrected:
            corrected = rewritten
            corrections.append(description)

    corrected = _collapse_whitespace(re.sub(r"\(\s*\)", "", corrected))
    return corrected, corrections
