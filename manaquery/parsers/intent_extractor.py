"""
Intent extraction from free-text card searches.

Extraction is phrase matching against the closed vocabulary in
``manaquery.parsers.vocabulary``. Each recognizer consumes the phrases it
understands from the working text and records them; whatever is left at the
end becomes a warning.

INVARIANTS:
- Extraction is pure: same input, same SearchIntent
- Extraction is total: it never raises, it only returns emptier intents
- Unrecognized fragments are reported in ``warnings``, never dropped silently
"""

import logging
import re
from dataclasses import dataclass, field

from manaquery.models.intent import (
    Color,
    ColorConstraint,
    Comparator,
    NumericConstraint,
    SearchIntent,
)
from manaquery.parsers.vocabulary import (
    BUDGET_ADJECTIVES,
    CARD_TYPES,
    COLOR_LETTERS,
    COLOR_WORDS,
    EXACT_CUES,
    EXCLUDABLE_TYPES,
    FILLER_WORDS,
    FORMAT_NAMES,
    IDENTITY_CUES,
    KEYWORDS,
    MULTICOLOR_NAMES,
    ORACLE_PHRASES,
    RARITIES,
    SYNONYMS,
    TAG_PHRASES,
    TRIBES,
    TYPE_SYNONYMS,
    WORD_NUMBERS,
)

logger = logging.getLogger(__name__)


def _phrase(phrase: str) -> re.Pattern[str]:
    """Compile a whole-phrase matcher that tolerates punctuation in the phrase."""
    return re.compile(rf"(?<![\w+]){re.escape(phrase)}(?![\w])", re.IGNORECASE)


_COLOR_WORD = r"(white|blue|black|red|green)"
_TYPE_WORD = r"(artifact|creature|instant|sorcery|land|enchantment|planeswalker|battle)"


# =============================================================================
# NORMALIZATION
# =============================================================================


def normalize_text(text: str) -> str:
    """
    Lower-case and canonicalize a query for matching.

    Folds smart quotes, applies synonyms, turns number words into digits,
    and collapses whitespace.
    """
    normalized = text.lower().strip()
    normalized = re.sub(r"[“”]", '"', normalized)
    normalized = re.sub(r"[‘’]", "'", normalized)

    for synonym, canonical in SYNONYMS.items():
        normalized = _phrase(synonym).sub(canonical, normalized)

    for word, number in WORD_NUMBERS.items():
        normalized = re.sub(rf"\b{word}\b", str(number), normalized)

    return re.sub(r"\s+", " ", normalized).strip()


# =============================================================================
# WORKING STATE
# =============================================================================


@dataclass
class _Extraction:
    """Mutable scratchpad; frozen into a SearchIntent at the end."""

    text: str
    colors: ColorConstraint | None = None
    types: list[str] = field(default_factory=list)
    type_groups: list[tuple[str, ...]] = field(default_factory=list)
    excluded_types: list[str] = field(default_factory=list)
    numeric: dict[str, NumericConstraint] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    oracle: list[str] = field(default_factory=list)
    formats: list[str] = field(default_factory=list)
    rarity: str | None = None
    is_commander: bool = False
    can_be_commander: bool = False
    ambiguous_colors: bool = False
    recognized: list[str] = field(default_factory=list)
    assumptions: list[str] = field(default_factory=list)

    def consume(self, match: re.Match[str]) -> None:
        """Record a match and blank it out of the working text."""
        self.recognized.append(match.group(0).strip())
        self.text = (self.text[: match.start()] + " " + self.text[match.end() :]).strip()
        self.text = re.sub(r"\s+", " ", self.text)

    def consume_all(self, pattern: re.Pattern[str]) -> list[re.Match[str]]:
        """Consume every non-overlapping match of ``pattern``."""
        matches = []
        while (match := pattern.search(self.text)) is not None:
            matches.append(match)
            self.consume(match)
        return matches

    def add_unique(self, bucket: list[str], value: str) -> None:
        if value not in bucket:
            bucket.append(value)


# =============================================================================
# RECOGNIZERS
# =============================================================================


def _parse_commander_context(state: _Extraction) -> None:
    pattern = re.compile(
        r"\b(?:for|in|legal in|legal for)\s+commander\b"
        r"|\bcommander[\s-]+(?:decks?|format|legal|staples?|cards?|playables?)\b"
    )
    if state.consume_all(pattern):
        state.add_unique(state.formats, "commander")
        state.is_commander = True
        return

    # "commander" on its own means a card that can be a commander
    bare = re.compile(r"\b(?:as\s+)?commanders?\b(?!\s+deck)")
    if state.consume_all(bare):
        state.is_commander = True
        state.can_be_commander = True


def _parse_formats(state: _Extraction) -> None:
    names = "|".join(name for name in FORMAT_NAMES if name != "commander")
    pattern = re.compile(rf"\b(?:from|in|for|legal in|legal for)\s+({names})\b")
    trailing = re.compile(rf"\b({names})\s+legal\b")
    for match in (*state.consume_all(pattern), *state.consume_all(trailing)):
        state.add_unique(state.formats, match.group(1))


def _parse_price(state: _Extraction) -> None:
    below = re.compile(
        r"\b(?:under|below|less than|cheaper than|at most)\s*\$\s*(\d+(?:\.\d+)?)"
        r"|\b(?:under|below|less than|cheaper than)\s*(\d+(?:\.\d+)?)\s*(?:dollars|bucks|usd)\b"
    )
    above = re.compile(
        r"\b(?:over|above|more than|at least)\s*\$\s*(\d+(?:\.\d+)?)"
        r"|\b(?:over|above|more than)\s*(\d+(?:\.\d+)?)\s*(?:dollars|bucks|usd)\b"
    )
    if match := below.search(state.text):
        value = float(match.group(1) or match.group(2))
        state.numeric["usd"] = NumericConstraint(Comparator.LT, value)
        state.consume(match)
        return
    if match := above.search(state.text):
        value = float(match.group(1) or match.group(2))
        state.numeric["usd"] = NumericConstraint(Comparator.GT, value)
        state.consume(match)
        return

    for adjective, op, value in BUDGET_ADJECTIVES:
        match = _phrase(adjective).search(state.text)
        if match:
            state.numeric["usd"] = NumericConstraint(Comparator(op), value)
            state.assumptions.append(f"Interpreted '{adjective}' as usd{op}{value:g}")
            state.consume(match)
            return


def _numeric_patterns(aliases: str) -> list[tuple[re.Pattern[str], Comparator]]:
    more = r"(?:more|greater|higher|bigger)"
    less = r"(?:less|fewer|lower|smaller)"
    specs: list[tuple[str, Comparator]] = [
        (rf"\b(?:at least|min(?:imum)?|>=)\s*(\d+)\s*(?:{aliases})\b", Comparator.GTE),
        (rf"\b(\d+)\s+or\s+{more}\s+(?:{aliases})\b", Comparator.GTE),
        (rf"\b(\d+)\s*(?:{aliases})\s+or\s+{more}\b", Comparator.GTE),
        (rf"\b(?:{aliases})\s*(?:of\s+)?(\d+)\s+or\s+{more}\b", Comparator.GTE),
        (rf"\b(\d+)\+\s*(?:{aliases})\b", Comparator.GTE),
        (rf"\b(?:{aliases})\s*(\d+)\+", Comparator.GTE),
        (rf"\b(?:at most|max(?:imum)?|<=)\s*(\d+)\s*(?:{aliases})\b", Comparator.LTE),
        (rf"\b(\d+)\s+or\s+{less}\s+(?:{aliases})\b", Comparator.LTE),
        (rf"\b(\d+)\s*(?:{aliases})\s+or\s+{less}\b", Comparator.LTE),
        (rf"\b(?:{aliases})\s*(?:of\s+)?(\d+)\s+or\s+{less}\b", Comparator.LTE),
        (rf"\b(?:under|less than|below|fewer than)\s*(\d+)\s*(?:{aliases})\b", Comparator.LT),
        (rf"\b(?:{aliases})\s*(?:under|less than|below)\s*(\d+)\b", Comparator.LT),
        (rf"\b(?:over|more than|above|greater than)\s*(\d+)\s*(?:{aliases})\b", Comparator.GT),
        (rf"\b(?:{aliases})\s*(?:over|more than|above|greater than)\s*(\d+)\b", Comparator.GT),
        (rf"\b(?:exactly|equals?)\s*(\d+)\s*(?:{aliases})\b", Comparator.EQ),
        (rf"\b(\d+)\s*(?:{aliases})\b", Comparator.EQ),
        (rf"\b(?:{aliases})\s*(?:of\s+)?(\d+)\b", Comparator.EQ),
    ]
    return [(re.compile(regex), op) for regex, op in specs]


_SYMBOLIC = re.compile(r"\b(mv|pow|power|tou|toughness)\s*(<=|>=|<|>|=)\s*(\d+)\b")
_SYMBOLIC_KEYS = {"mv": "mv", "pow": "pow", "power": "pow", "tou": "tou", "toughness": "tou"}

_NUMERIC_FIELDS: tuple[tuple[str, str], ...] = (
    ("pow", r"power|pow"),
    ("tou", r"toughness|tou"),
    ("mv", r"mv|mana(?!\s+(?:rocks?|dorks?|sinks?)\b)|drops?"),
)

# "2 mana rocks": take the number, leave the tag phrase for _parse_tags
_COST_BEFORE_MANA_TAG = re.compile(r"\b(\d+)\s*(?=mana\s+(?:rocks?|dorks?|sinks?)\b)")


def _parse_numeric(state: _Extraction) -> None:
    for match in state.consume_all(_SYMBOLIC):
        key = _SYMBOLIC_KEYS[match.group(1)]
        state.numeric[key] = NumericConstraint(Comparator(match.group(2)), float(match.group(3)))

    if "mv" not in state.numeric and (match := _COST_BEFORE_MANA_TAG.search(state.text)):
        state.numeric["mv"] = NumericConstraint(Comparator.EQ, float(match.group(1)))
        state.consume(match)

    costs = re.compile(r"\bcosts?\s*(\d+)\s*(?:mana|mv)?\s*(or\s+less|or\s+more)?\b")
    if "mv" not in state.numeric and (match := costs.search(state.text)):
        modifier = match.group(2) or ""
        op = Comparator.LTE if "less" in modifier else Comparator.GTE if "more" in modifier else Comparator.EQ
        state.numeric["mv"] = NumericConstraint(op, float(match.group(1)))
        state.consume(match)

    for key, aliases in _NUMERIC_FIELDS:
        if key in state.numeric:
            continue
        for pattern, op in _numeric_patterns(aliases):
            match = pattern.search(state.text)
            if match:
                state.numeric[key] = NumericConstraint(op, float(match.group(1)))
                state.consume(match)
                break

    year_ops = {"after": Comparator.GT, "since": Comparator.GTE, "before": Comparator.LT}
    year = re.compile(r"\b(after|since|before)\s+((?:19|20)\d{2})\b")
    if match := year.search(state.text):
        state.numeric["year"] = NumericConstraint(year_ops[match.group(1)], float(match.group(2)))
        state.consume(match)
        return
    exact_year = re.compile(r"\b(?:released|printed|from)?\s*in\s+((?:19|20)\d{2})\b")
    if match := exact_year.search(state.text):
        state.numeric["year"] = NumericConstraint(Comparator.EQ, float(match.group(1)))
        state.consume(match)


def _parse_rarity(state: _Extraction) -> None:
    for phrase in sorted(RARITIES, key=len, reverse=True):
        match = _phrase(phrase).search(state.text)
        if match:
            state.rarity = RARITIES[phrase]
            state.consume(match)
            return


def _parse_tags(state: _Extraction) -> None:
    for phrase, tag in TAG_PHRASES:
        if state.consume_all(_phrase(phrase)):
            state.add_unique(state.tags, tag)


def _parse_keywords(state: _Extraction) -> None:
    for keyword, token in KEYWORDS.items():
        pattern = re.compile(
            rf"(?:\b(?:with|has|have|having|that have)\s+)?(?<![\w-]){re.escape(keyword)}(?![\w-])"
        )
        if state.consume_all(pattern):
            state.add_unique(state.tags, token)


def _parse_oracle(state: _Extraction) -> None:
    for phrase, fragments in ORACLE_PHRASES:
        if state.consume_all(_phrase(phrase)):
            for fragment in fragments:
                state.add_unique(state.oracle, fragment)


def _parse_exclusions(state: _Extraction) -> None:
    types = "|".join(EXCLUDABLE_TYPES)
    patterns = (
        re.compile(rf"\b(?:not|non|no|without|excluding)[\s-]+(?:a\s+|an\s+)?({types})s?\b"),
        re.compile(rf"\bnon({types})s?\b"),
    )
    for pattern in patterns:
        for match in state.consume_all(pattern):
            state.add_unique(state.excluded_types, match.group(1))


def _color_set(letters: str) -> frozenset[Color]:
    return frozenset(COLOR_LETTERS[letter] for letter in letters)


def _parse_colors(state: _Extraction) -> None:
    text = state.text
    identity = state.is_commander or "commander" in state.formats
    cue_match = None
    for cue in IDENTITY_CUES:
        cue_match = _phrase(cue).search(text)
        if cue_match:
            identity = True
            break
    if cue_match:
        state.consume(cue_match)

    exact_match = None
    for cue in EXACT_CUES:
        exact_match = _phrase(cue).search(state.text)
        if exact_match:
            break
    exact = exact_match is not None

    def finish(constraint: ColorConstraint) -> None:
        state.colors = constraint
        if exact_match is not None:
            leftover = _phrase(exact_match.group(0)).search(state.text)
            if leftover:
                state.consume(leftover)
        if identity and state.is_commander:
            state.assumptions.append("Treated colors as color identity for Commander")

    mono = re.compile(r"\bmono[-\s]?(white|blue|black|red|green|[wubrg])\b")
    if match := mono.search(state.text):
        word = match.group(1)
        color = COLOR_WORDS.get(word) or COLOR_LETTERS[word]
        state.consume(match)
        finish(ColorConstraint(frozenset({color}), is_identity=identity, is_exact=True))
        return

    if identity:
        shorthand = re.compile(r"\b([wubrg]{2,5})\b")
        if (match := shorthand.search(state.text)) and len(set(match.group(1))) == len(match.group(1)):
            state.consume(match)
            finish(ColorConstraint(_color_set(match.group(1)), is_identity=True, is_exact=exact))
            return

    for name, letters in MULTICOLOR_NAMES.items():
        if match := _phrase(name).search(state.text):
            state.consume(match)
            finish(
                ColorConstraint(_color_set(letters), is_identity=identity, is_exact=exact or not identity)
            )
            return

    either = re.compile(rf"\b{_COLOR_WORD}\s+or\s+{_COLOR_WORD}\b")
    if match := either.search(state.text):
        values = frozenset({COLOR_WORDS[match.group(1)], COLOR_WORDS[match.group(2)]})
        state.consume(match)
        finish(ColorConstraint(values, is_identity=identity, is_or=True))
        return

    pair = re.compile(rf"\b{_COLOR_WORD}(?:\s+and\s+|\s*[-/]\s*){_COLOR_WORD}\b")
    if match := pair.search(state.text):
        values = frozenset({COLOR_WORDS[match.group(1)], COLOR_WORDS[match.group(2)]})
        state.consume(match)
        # "red and green" reads as both "includes both" and "exactly these"
        state.ambiguous_colors = not exact
        finish(ColorConstraint(values, is_identity=identity, is_exact=exact))
        return

    words = re.compile(r"\b(white|blue|black|red|green|colou?rless)\b")
    matches = state.consume_all(words)
    if matches:
        values = frozenset(COLOR_WORDS[m.group(1)] for m in matches)
        if values == frozenset({Color.COLORLESS}):
            finish(ColorConstraint(values, is_identity=identity, is_exact=True))
            return
        if len(values) > 1 and not exact:
            state.ambiguous_colors = True
        finish(ColorConstraint(values, is_identity=identity, is_exact=exact))


def _parse_types(state: _Extraction) -> None:
    utility = re.compile(r"\butility\s+lands?\b")
    if state.consume_all(utility):
        state.add_unique(state.types, "land")
        state.add_unique(state.excluded_types, "basic")

    either = re.compile(
        rf"\b{_TYPE_WORD}s?((?:\s*,\s*{_TYPE_WORD}s?)*)\s*,?\s+or\s+{_TYPE_WORD}s?\b"
    )
    for match in state.consume_all(either):
        group = tuple(dict.fromkeys(re.findall(_TYPE_WORD, match.group(0))))
        if len(group) > 1:
            state.type_groups.append(group)
        else:
            state.add_unique(state.types, group[0])

    if state.consume_all(re.compile(r"\bspells?\b")):
        state.type_groups.append(("instant", "sorcery"))

    for word, card_type in TYPE_SYNONYMS.items():
        if state.consume_all(_phrase(word)):
            state.add_unique(state.types, card_type)

    for card_type in CARD_TYPES:
        if state.consume_all(re.compile(rf"\b{card_type}s?\b")):
            state.add_unique(state.types, card_type)

    for tribe, plural in TRIBES.items():
        if state.consume_all(re.compile(rf"\b(?:{tribe}|{plural})\b")):
            state.add_unique(state.types, tribe)


def _collect_unresolved(state: _Extraction) -> list[str]:
    """Group leftover non-filler words into contiguous fragments."""
    fragments: list[str] = []
    current: list[str] = []
    for raw in state.text.split():
        word = raw.strip(".,!?;:'\"()")
        if not word or word in FILLER_WORDS or word.isdigit() or word in {"$", "-", "+"}:
            if current:
                fragments.append(" ".join(current))
                current = []
            continue
        current.append(word)
    if current:
        fragments.append(" ".join(current))
    return fragments


# =============================================================================
# ENTRY POINT
# =============================================================================


def extract_intent(text: str) -> SearchIntent:
    """
    Parse free text into a SearchIntent.

    Recognizers run from most specific to most general so that multi-word
    phrases ("mana rocks", "for commander") are consumed before their
    individual words are seen by broader recognizers.

    Args:
        text: Raw user query

    Returns:
        A SearchIntent; empty (with warnings) for unrecognized input.
    """
    normalized = normalize_text(text)
    state = _Extraction(text=normalized)

    _parse_commander_context(state)
    _parse_formats(state)
    _parse_price(state)
    _parse_numeric(state)
    _parse_rarity(state)
    _parse_tags(state)
    _parse_keywords(state)
    _parse_oracle(state)
    _parse_exclusions(state)
    _parse_colors(state)
    _parse_types(state)

    unresolved = _collect_unresolved(state)
    warnings = [f'Unrecognized: "{fragment}"' for fragment in unresolved]

    intent = SearchIntent(
        original_text=text,
        normalized_text=normalized,
        colors=state.colors,
        types=tuple(state.types),
        type_groups=tuple(state.type_groups),
        excluded_types=tuple(state.excluded_types),
        cmc=state.numeric.get("mv"),
        power=state.numeric.get("pow"),
        toughness=state.numeric.get("tou"),
        price=state.numeric.get("usd"),
        year=state.numeric.get("year"),
        tags=tuple(state.tags),
        oracle_patterns=tuple(state.oracle),
        formats=tuple(state.formats),
        rarity=state.rarity,
        is_commander=state.is_commander,
        can_be_commander=state.can_be_commander,
        ambiguous_colors=state.ambiguous_colors,
        recognized=tuple(state.recognized),
        unresolved=tuple(unresolved),
        assumptions=tuple(state.assumptions),
        warnings=tuple(warnings),
    )

    logger.debug(
        "INTENT_EXTRACTED",
        extra={
            "recognized": len(intent.recognized),
            "unresolved": len(intent.unresolved),
        },
    )
    return intent
