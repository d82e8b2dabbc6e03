"""
Rule lookup strategies for the compiler.

The compiler only depends on the RuleMatcher protocol. Two strategies ship:

- AliasRuleMatcher: exact match of the order-independent normalized text
  against a rule's pattern or any alias
- VectorRuleMatcher: cosine similarity over bag-of-words vectors, for
  inputs that are close to a rule without matching it word for word

INVARIANTS:
- Inactive rules never match
- Candidates are ranked priority desc, then confidence desc
"""

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

import numpy as np

from manaquery.config import RULE_MATCH_MIN_CONFIDENCE, VECTOR_MATCH_MIN_SIMILARITY
from manaquery.models.rules import TranslationRule
from manaquery.parsers.intent_extractor import normalize_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RuleMatch:
    """A rule selected for an input, with how well it matched."""

    rule: TranslationRule
    similarity: float
    matched_phrase: str


class RuleMatcher(Protocol):
    """Strategy for finding the rule that covers a query."""

    def match(self, text: str, rules: Sequence[TranslationRule]) -> RuleMatch | None: ...


def normalize_for_matching(text: str) -> str:
    """
    Order-independent form of a query.

    Synonyms are folded, punctuation dropped, and tokens sorted, so
    "creatures red" and "Red creatures!" compare equal.
    """
    normalized = normalize_text(text)
    normalized = re.sub(r"[^\w\s]", "", normalized)
    return " ".join(sorted(normalized.split()))


def rank_rules(
    rules: Sequence[TranslationRule],
    min_confidence: float = RULE_MATCH_MIN_CONFIDENCE,
) -> list[TranslationRule]:
    """Active rules above the confidence floor, best first."""
    eligible = [r for r in rules if r.is_active and r.confidence >= min_confidence]
    return sorted(eligible, key=lambda r: (-r.priority, -r.confidence))


class AliasRuleMatcher:
    """Exact pattern/alias match on the normalized form of the input."""

    def __init__(self, min_confidence: float = RULE_MATCH_MIN_CONFIDENCE) -> None:
        self.min_confidence = min_confidence

    def match(self, text: str, rules: Sequence[TranslationRule]) -> RuleMatch | None:
        target = normalize_for_matching(text)
        if not target:
            return None
        for rule in rank_rules(rules, self.min_confidence):
            for phrase in rule.phrases:
                if normalize_for_matching(phrase) == target:
                    logger.info(
                        "RULE_ALIAS_MATCH",
                        extra={"rule_id": rule.id, "phrase": phrase},
                    )
                    return RuleMatch(rule=rule, similarity=1.0, matched_phrase=phrase)
        return None


class VectorRuleMatcher:
    """
    Cosine-similarity matcher over token-count vectors.

    Each phrase becomes a vector over the joint vocabulary of the input and
    the candidate phrases; the best-ranked rule whose best phrase clears
    ``min_similarity`` wins. Exact matches always score 1.0.
    """

    def __init__(
        self,
        min_similarity: float = VECTOR_MATCH_MIN_SIMILARITY,
        min_confidence: float = RULE_MATCH_MIN_CONFIDENCE,
    ) -> None:
        self.min_similarity = min_similarity
        self.min_confidence = min_confidence

    def match(self, text: str, rules: Sequence[TranslationRule]) -> RuleMatch | None:
        query_tokens = normalize_for_matching(text).split()
        ranked = rank_rules(rules, self.min_confidence)
        if not query_tokens or not ranked:
            return None

        candidates = [(rule, phrase) for rule in ranked for phrase in rule.phrases]
        phrase_tokens = [normalize_for_matching(phrase).split() for _, phrase in candidates]

        vocabulary = {
            token: index
            for index, token in enumerate(
                sorted({*query_tokens, *(t for tokens in phrase_tokens for t in tokens)})
            )
        }
        query_vector = self._vectorize(query_tokens, vocabulary)
        matrix = np.vstack([self._vectorize(tokens, vocabulary) for tokens in phrase_tokens])

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query_vector)
        with np.errstate(divide="ignore", invalid="ignore"):
            similarities = np.where(norms > 0, matrix @ query_vector / norms, 0.0)

        # Candidates are already in rank order, so the first qualifying
        # index belongs to the best-ranked rule
        best: RuleMatch | None = None
        for (rule, phrase), score in zip(candidates, similarities, strict=True):
            if score < self.min_similarity:
                continue
            if best is None or (rule is best.rule and score > best.similarity):
                best = RuleMatch(rule=rule, similarity=float(score), matched_phrase=phrase)
            elif rule is not best.rule:
                break

        if best is not None:
            logger.info(
                "RULE_VECTOR_MATCH",
                extra={"rule_id": best.rule.id, "similarity": round(best.similarity, 3)},
            )
        return best

    @staticmethod
    def _vectorize(tokens: list[str], vocabulary: dict[str, int]) -> np.ndarray:
        vector = np.zeros(len(vocabulary), dtype=float)
        for token in tokens:
            vector[vocabulary[token]] += 1.0
        return vector
