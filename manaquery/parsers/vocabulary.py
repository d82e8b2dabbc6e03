"""
Closed vocabulary for natural-language card searches.

Every phrase the deterministic extractor understands is listed here.
Input that matches nothing in these tables ends up as an extraction
warning, never as a guess.
"""

from manaquery.models.intent import Color

# =============================================================================
# COLORS
# =============================================================================

COLOR_WORDS: dict[str, Color] = {
    "white": Color.WHITE,
    "blue": Color.BLUE,
    "black": Color.BLACK,
    "red": Color.RED,
    "green": Color.GREEN,
    "colorless": Color.COLORLESS,
    "colourless": Color.COLORLESS,
}

COLOR_LETTERS: dict[str, Color] = {
    "w": Color.WHITE,
    "u": Color.BLUE,
    "b": Color.BLACK,
    "r": Color.RED,
    "g": Color.GREEN,
    "c": Color.COLORLESS,
}

# Guilds, shards, wedges, and four-color nicknames
MULTICOLOR_NAMES: dict[str, str] = {
    "azorius": "wu",
    "dimir": "ub",
    "rakdos": "br",
    "gruul": "rg",
    "selesnya": "gw",
    "orzhov": "wb",
    "izzet": "ur",
    "golgari": "bg",
    "boros": "rw",
    "simic": "gu",
    "bant": "gwu",
    "esper": "wub",
    "grixis": "ubr",
    "jund": "brg",
    "naya": "rgw",
    "abzan": "wbg",
    "jeskai": "urw",
    "sultai": "bgu",
    "mardu": "rwb",
    "temur": "gur",
    "yore-tiller": "wubr",
    "glint-eye": "ubrg",
    "dune-brood": "brgw",
    "ink-treader": "rgwu",
    "witch-maw": "gwub",
    "sans-white": "ubrg",
    "sans-blue": "brgw",
    "sans-black": "rgwu",
    "sans-red": "gwub",
    "sans-green": "wubr",
}

# Phrases that switch color words from card color to color identity
IDENTITY_CUES: tuple[str, ...] = (
    "ci",
    "identity",
    "commander deck",
    "fits into",
    "goes into",
    "can go in",
    "usable in",
)

EXACT_CUES: tuple[str, ...] = ("exactly", "only", "just", "strictly")

# =============================================================================
# TYPES
# =============================================================================

CARD_TYPES: tuple[str, ...] = (
    "creature",
    "artifact",
    "enchantment",
    "instant",
    "sorcery",
    "land",
    "planeswalker",
    "battle",
    "kindred",
)

# Colloquial names that resolve to a card type or subtype
TYPE_SYNONYMS: dict[str, str] = {
    "dudes": "creature",
    "guys": "creature",
    "monsters": "creature",
    "critters": "creature",
    "walkers": "planeswalker",
    "pws": "planeswalker",
    "equipment": "equipment",
    "auras": "aura",
    "vehicles": "vehicle",
    "sagas": "saga",
    "tribal": "kindred",
    "typal": "kindred",
}

EXCLUDABLE_TYPES: tuple[str, ...] = (
    "creature",
    "land",
    "artifact",
    "enchantment",
    "instant",
    "sorcery",
    "planeswalker",
)

# Creature subtypes, singular to plural
TRIBES: dict[str, str] = {
    "goblin": "goblins",
    "elf": "elfs",
    "human": "humans",
    "zombie": "zombies",
    "vampire": "vampires",
    "merfolk": "merfolks",
    "dragon": "dragons",
    "angel": "angels",
    "demon": "demons",
    "wizard": "wizards",
    "warrior": "warriors",
    "knight": "knights",
    "soldier": "soldiers",
    "cleric": "clerics",
    "rogue": "rogues",
    "shaman": "shamans",
    "elemental": "elementals",
    "beast": "beasts",
    "cat": "cats",
    "dinosaur": "dinosaurs",
    "spirit": "spirits",
    "rat": "rats",
    "wolf": "wolfs",
    "faerie": "faeries",
    "pirate": "pirates",
    "sliver": "slivers",
    "eldrazi": "eldrazis",
    "hydra": "hydras",
    "sphinx": "sphinxes",
    "myr": "myrs",
    "dwarf": "dwarfs",
}

# =============================================================================
# NORMALIZATION
# =============================================================================

WORD_NUMBERS: dict[str, int] = {
    "zero": 0,
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
}

# Applied in order; multi-word phrases first
SYNONYMS: dict[str, str] = {
    "converted mana cost": "mv",
    "mana value": "mv",
    "cmc": "mv",
    "colour identity": "ci",
    "color identity": "ci",
    "low cost": "cheap",
    "affordable": "cheap",
    "inexpensive": "cheap",
    "budget": "cheap",
    "pricey": "expensive",
    "edh": "commander",
    "cmdr": "commander",
    "enters the battlefield": "etb",
    "leaves the battlefield": "ltb",
    "drawing cards": "card draw",
    "draws cards": "card draw",
    "draw cards": "card draw",
    "colour": "color",
    "sorceries": "sorcery",
    "elves": "elf",
    "wolves": "wolf",
    "dwarves": "dwarf",
}

# Words that carry no search meaning once everything else is consumed
FILLER_WORDS: frozenset[str] = frozenset(
    {
        "a",
        "an",
        "the",
        "and",
        "or",
        "of",
        "for",
        "in",
        "with",
        "that",
        "which",
        "who",
        "is",
        "are",
        "card",
        "cards",
        "me",
        "show",
        "find",
        "give",
        "i",
        "want",
        "need",
        "some",
        "any",
        "good",
        "best",
        "deck",
        "my",
        "to",
        "can",
        "has",
        "have",
        "it",
        "them",
        "colored",
        "color",
        "mana",
        "type",
        "please",
        "only",
        "just",
        "cost",
        "costs",
    }
)

# =============================================================================
# PRICE, FORMAT, RARITY
# =============================================================================

# Budget adjectives become an implicit price comparator; longest phrase first
BUDGET_ADJECTIVES: tuple[tuple[str, str, float], ...] = (
    ("very cheap", "<", 1.0),
    ("super cheap", "<", 1.0),
    ("cheap", "<", 5.0),
    ("expensive", ">", 20.0),
)

FORMAT_NAMES: tuple[str, ...] = (
    "standard",
    "pioneer",
    "modern",
    "legacy",
    "vintage",
    "commander",
    "pauper",
    "historic",
    "timeless",
    "oathbreaker",
    "alchemy",
    "brawl",
)

# Formats accepted through the structured ``filters.format`` field
ALLOWED_FILTER_FORMATS: frozenset[str] = frozenset(
    {
        "standard",
        "pioneer",
        "modern",
        "legacy",
        "vintage",
        "commander",
        "pauper",
        "historic",
        "alchemy",
    }
)

RARITIES: dict[str, str] = {
    "common": "common",
    "commons": "common",
    "uncommon": "uncommon",
    "uncommons": "uncommon",
    "rare": "rare",
    "rares": "rare",
    "mythic": "mythic",
    "mythics": "mythic",
    "mythic rare": "mythic",
    "mythic rares": "mythic",
}

# =============================================================================
# KEYWORDS AND TAGS
# =============================================================================

KEYWORDS: dict[str, str] = {
    "first strike": "kw:first-strike",
    "double strike": "kw:double-strike",
    "flying": "kw:flying",
    "haste": "kw:haste",
    "trample": "kw:trample",
    "deathtouch": "kw:deathtouch",
    "lifelink": "kw:lifelink",
    "vigilance": "kw:vigilance",
    "menace": "kw:menace",
    "reach": "kw:reach",
    "hexproof": "kw:hexproof",
    "indestructible": "kw:indestructible",
    "flash": "kw:flash",
    "defender": "kw:defender",
    "infect": "kw:infect",
    "flashback": "kw:flashback",
    "kicker": "kw:kicker",
    "prowess": "kw:prowess",
    "ward": "kw:ward",
    "cascade": "kw:cascade",
    "convoke": "kw:convoke",
    "delve": "kw:delve",
    "dredge": "kw:dredge",
    "madness": "kw:madness",
    "mutate": "kw:mutate",
    "ninjutsu": "kw:ninjutsu",
    "persist": "kw:persist",
    "undying": "kw:undying",
    "storm": "kw:storm",
    "suspend": "kw:suspend",
    "unearth": "kw:unearth",
    "wither": "kw:wither",
    "landfall": "kw:landfall",
}

# Oracle-tag concepts, longest phrase first
TAG_PHRASES: tuple[tuple[str, str], ...] = (
    ("mana rocks", "otag:manarock"),
    ("mana rock", "otag:manarock"),
    ("mana dorks", "otag:mana-dork"),
    ("mana dork", "otag:mana-dork"),
    ("mana sinks", "otag:mana-sink"),
    ("board wipes", "otag:board-wipe"),
    ("board wipe", "otag:board-wipe"),
    ("boardwipes", "otag:board-wipe"),
    ("wraths", "otag:board-wipe"),
    ("wrath", "otag:board-wipe"),
    ("card draw", "otag:draw"),
    ("cantrips", "otag:cantrip"),
    ("cantrip", "otag:cantrip"),
    ("tutors", "otag:tutor"),
    ("tutor", "otag:tutor"),
    ("removal", "otag:removal"),
    ("ramp", "otag:ramp"),
    ("counterspells", "otag:counterspell"),
    ("counterspell", "otag:counterspell"),
    ("self mill", "otag:self-mill"),
    ("self-mill", "otag:self-mill"),
    ("lifegain", "otag:lifegain"),
    ("life gain", "otag:lifegain"),
    ("reanimation", "otag:reanimate"),
    ("fogs", "otag:fog"),
    ("fog", "otag:fog"),
    ("stax", "otag:stax"),
    ("untappers", "otag:untapper"),
    ("edicts", "otag:edict"),
    ("edict", "otag:edict"),
)

# Mechanic/effect phrases mapped to oracle-text fragments (unquoted)
ORACLE_PHRASES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("etb", ("enters",)),
    ("ltb", ("leaves",)),
    ("when it dies", ("dies",)),
    ("death triggers", ("dies",)),
    ("make tokens", ("create", "token")),
    ("create tokens", ("create", "token")),
    ("token makers", ("create", "token")),
    ("tokens", ("token",)),
    ("sacrifice outlets", ("sacrifice a",)),
    ("sacrifice", ("sacrifice",)),
    ("mill", ("mill",)),
    ("discard", ("discard",)),
    ("untap", ("untap",)),
    ("scry", ("scry",)),
    ("proliferate", ("proliferate",)),
    ("+1/+1 counters", ("+1/+1 counter",)),
    ("counters", ("counter",)),
    ("extra turns", ("extra turn",)),
    ("extra turn", ("extra turn",)),
    ("copy spells", ("copy target",)),
    ("graveyard", ("graveyard",)),
    ("lifedrain", ("loses", "life")),
    ("drain", ("loses", "life")),
    ("can't be blocked", ("can't be blocked",)),
    ("unblockable", ("can't be blocked",)),
)

# =============================================================================
# FIXED TRANSLATIONS
# =============================================================================

# Well-known phrases with a hand-checked translation that never needs AI
HARDCODED_TRANSLATIONS: dict[str, tuple[str, str]] = {
    "mana rocks": (
        't:artifact o:"add" (o:"{C}" or o:"{W}" or o:"{U}" or o:"{B}" or o:"{R}" '
        'or o:"{G}" or o:"any color" or o:"one mana")',
        "Artifacts that produce mana (mana rocks)",
    ),
    "board wipes": (
        "otag:board-wipe",
        "Cards that destroy or remove all creatures or permanents",
    ),
}
