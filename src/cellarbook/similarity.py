"""
Similarity Engine: "find similar" recommendations for a wine.

Weighted linear scoring over shared characteristics:
- categorical attributes (type, body, tannin, acidity, country, region, oak)
- grape overlap, capped at two grapes
- shared tasting-note keywords from a fixed vocabulary

Each contribution carries a human-readable match reason so the UI can
explain why a wine was suggested.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from cellarbook.constants import (
    OAK_UNKNOWN,
    SimilarityWeights,
    TANNIN_NOT_APPLICABLE,
    TASTING_KEYWORDS,
)
from cellarbook.schema import Wine

_GRAPE_SEPARATORS = re.compile(r'[,;]')


@dataclass
class SimilarityScore:
    """One ranked candidate"""
    wine: Wine
    score: int  # Sum of matched weights
    match_reasons: List[str] = field(default_factory=list)  # In evaluation order


def extract_tasting_keywords(notes: str) -> List[str]:
    """Vocabulary terms present in the notes (case-insensitive substring)."""
    lower = (notes or "").lower()
    return [keyword for keyword in TASTING_KEYWORDS if keyword in lower]


def _grape_list(grapes: str) -> List[str]:
    return [part.strip() for part in _GRAPE_SEPARATORS.split(grapes.lower())]


def grape_overlap_count(target_grapes: str, candidate_grapes: str) -> int:
    """
    Count target grapes that match some candidate grape.

    A match is containment in either direction, so "cabernet" matches
    "cabernet sauvignon". Empty entries left by a trailing separator
    are kept and match every candidate entry.
    """
    target = _grape_list(target_grapes or "")
    candidate = _grape_list(candidate_grapes or "")
    return sum(
        1 for grape in target
        if any(other in grape or grape in other for other in candidate)
    )


def _same(a: str, b: str) -> bool:
    return bool(a) and a == b


def score_similarity(target: Wine, candidate: Wine) -> Tuple[int, List[str]]:
    """
    Score a candidate against the target.

    Args:
        target: Wine the user is looking at
        candidate: Wine to compare

    Returns:
        (score, match_reasons)
    """
    w = SimilarityWeights
    score = 0
    reasons: List[str] = []

    if _same(candidate.wine_type, target.wine_type):
        score += w.WINE_TYPE
        reasons.append(f"Same type ({candidate.wine_type})")

    if _same(candidate.body, target.body):
        score += w.BODY
        reasons.append(f"Same body ({candidate.body})")

    if (_same(candidate.tannin_level, target.tannin_level)
            and candidate.tannin_level != TANNIN_NOT_APPLICABLE):
        score += w.TANNIN
        reasons.append(f"Similar tannins ({candidate.tannin_level})")

    if _same(candidate.acidity_level, target.acidity_level):
        score += w.ACIDITY
        reasons.append(f"Similar acidity ({candidate.acidity_level})")

    if candidate.country == target.country:
        score += w.COUNTRY
        reasons.append(f"Same country ({candidate.country})")

    if _same(candidate.region, target.region):
        score += w.REGION
        reasons.append(f"Same region ({candidate.region})")

    if target.grape_varieties and candidate.grape_varieties:
        shared_grapes = grape_overlap_count(target.grape_varieties, candidate.grape_varieties)
        if shared_grapes > 0:
            score += w.GRAPE_PER_MATCH * min(shared_grapes, w.GRAPE_MAX_MATCHES)
            reasons.append("Shared grapes")

    # Oak adds points but no reason
    if _same(candidate.oak_treatment, target.oak_treatment) and candidate.oak_treatment != OAK_UNKNOWN:
        score += w.OAK

    if target.tasting_notes and candidate.tasting_notes:
        target_keywords = extract_tasting_keywords(target.tasting_notes)
        candidate_keywords = set(extract_tasting_keywords(candidate.tasting_notes))
        shared = [keyword for keyword in target_keywords if keyword in candidate_keywords]
        if len(shared) >= w.FLAVOR_MIN_SHARED:
            score += w.FLAVOR_BASE + w.FLAVOR_PER_KEYWORD * min(len(shared), w.FLAVOR_MAX_KEYWORDS)
            reasons.append("Similar flavors")

    return score, reasons


def rank_similar(
    target: Wine,
    pool: Iterable[Wine],
    limit: int = SimilarityWeights.DEFAULT_LIMIT
) -> List[SimilarityScore]:
    """
    Top candidates by score, best first.

    The target (matched by id) is skipped and zero scores are dropped.
    Equal scores keep their pool order.
    """
    scores: List[SimilarityScore] = []
    for wine in pool:
        if wine.id == target.id:
            continue
        score, reasons = score_similarity(target, wine)
        if score > 0:
            scores.append(SimilarityScore(wine=wine, score=score, match_reasons=reasons))

    scores.sort(key=lambda item: item.score, reverse=True)
    return scores[:max(limit, 0)]


class SimilarityEngine:
    """
    Holds the loaded collection for repeated "find similar" lookups.

    Usage:
        engine = SimilarityEngine(wines)
        matches = engine.similar_to("wine-42")
    """

    def __init__(self, pool: Sequence[Wine]):
        self.pool = list(pool)
        self._by_id = {wine.id: wine for wine in self.pool}

    def find(self, wine_id: str) -> Optional[Wine]:
        return self._by_id.get(wine_id)

    def rank(self, target: Wine, limit: int = SimilarityWeights.DEFAULT_LIMIT) -> List[SimilarityScore]:
        return rank_similar(target, self.pool, limit)

    def similar_to(self, wine_id: str, limit: int = SimilarityWeights.DEFAULT_LIMIT) -> List[SimilarityScore]:
        """Rank the pool against the wine with this id ([] if unknown)."""
        target = self.find(wine_id)
        if target is None:
            return []
        return self.rank(target, limit)
