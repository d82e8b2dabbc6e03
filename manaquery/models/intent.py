"""
Structured search intent extracted from free text.

INVARIANT: A SearchIntent is immutable once produced. Only the compiler
and explain views read it; nothing mutates it in place.
"""

from dataclasses import dataclass, field
from enum import Enum


class Color(str, Enum):
    """A single Magic color, valued by its search-syntax letter."""

    WHITE = "w"
    BLUE = "u"
    BLACK = "b"
    RED = "r"
    GREEN = "g"
    COLORLESS = "c"


# Canonical WUBRG order for rendering color sets
COLOR_ORDER: tuple[Color, ...] = (
    Color.WHITE,
    Color.BLUE,
    Color.BLACK,
    Color.RED,
    Color.GREEN,
    Color.COLORLESS,
)


def color_letters(colors: frozenset[Color]) -> str:
    """Render a color set as letters in WUBRG order."""
    return "".join(c.value for c in COLOR_ORDER if c in colors)


class Comparator(str, Enum):
    """Numeric comparison operators understood by the search syntax."""

    EQ = "="
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="


@dataclass(frozen=True, slots=True)
class NumericConstraint:
    """A comparison such as ``pow>=5``."""

    op: Comparator
    value: float

    def render(self, key: str) -> str:
        value = int(self.value) if float(self.value).is_integer() else self.value
        return f"{key}{self.op.value}{value}"


@dataclass(frozen=True, slots=True)
class ColorConstraint:
    """
    Color filter.

    ``is_identity`` selects color identity (``id``) over card color (``c``).
    ``is_exact`` means exactly these colors; otherwise "includes" for card
    color and "within" for identity. ``is_or`` means any one of them.
    """

    values: frozenset[Color]
    is_identity: bool = False
    is_exact: bool = False
    is_or: bool = False


@dataclass(frozen=True, slots=True)
class SearchIntent:
    """
    Result of intent extraction.

    Ordered sets are tuples without duplicates. ``warnings`` holds every
    fragment of the input that no vocabulary entry recognized.
    """

    original_text: str
    normalized_text: str
    colors: ColorConstraint | None = None
    types: tuple[str, ...] = ()
    type_groups: tuple[tuple[str, ...], ...] = ()
    excluded_types: tuple[str, ...] = ()
    cmc: NumericConstraint | None = None
    power: NumericConstraint | None = None
    toughness: NumericConstraint | None = None
    price: NumericConstraint | None = None
    year: NumericConstraint | None = None
    tags: tuple[str, ...] = ()
    oracle_patterns: tuple[str, ...] = ()
    formats: tuple[str, ...] = ()
    rarity: str | None = None
    is_commander: bool = False
    can_be_commander: bool = False
    ambiguous_colors: bool = False
    recognized: tuple[str, ...] = field(default=())
    unresolved: tuple[str, ...] = ()
    assumptions: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    deterministic_query: str | None = None

    @property
    def is_empty(self) -> bool:
        """True when nothing in the input was recognized."""
        return not self.recognized

    def field_count(self) -> int:
        """Number of populated intent fields."""
        populated = (
            self.colors,
            self.types or self.type_groups,
            self.excluded_types,
            self.cmc,
            self.power,
            self.toughness,
            self.price,
            self.year,
            self.tags,
            self.oracle_patterns,
            self.formats,
            self.rarity,
        )
        return sum(1 for value in populated if value)
