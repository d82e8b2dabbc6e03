from manaquery.parsers.intent_extractor import extract_intent, normalize_text

__all__ = [
    "extract_intent",
    "normalize_text",
]
