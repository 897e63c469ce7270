"""Multi-model response combination."""

from __future__ import annotations

from itertools import combinations
from typing import Sequence

from ..models.provider import Alternative, GenerationResult
from .context import word_set


def calculate_similarity(text1: str, text2: str) -> float:
    """Jaccard similarity of the case-folded, whitespace-split word sets."""
    words1 = word_set(text1)
    words2 = word_set(text2)
    union = words1 | words2
    if not union:
        return 1.0
    return len(words1 & words2) / len(union)


def calculate_consensus(texts: Sequence[str]) -> float:
    """Mean pairwise similarity; 1.0 for fewer than two responses."""
    if len(texts) < 2:
        return 1.0
    pairs = list(combinations(texts, 2))
    return sum(calculate_similarity(a, b) for a, b in pairs) / len(pairs)


def combine_responses(results: Sequence[GenerationResult]) -> GenerationResult:
    """Highest confidence wins; the rest become alternatives."""
    if not results:
        raise ValueError("combine_responses needs at least one result")

    ranked = sorted(results, key=lambda r: r.confidence, reverse=True)
    primary = ranked[0]
    alternatives = [
        Alternative(response=r.response, model=r.model, confidence=r.confidence)
        for r in ranked[1:]
    ]
    return primary.model_copy(
        update={
            "alternatives": alternatives,
            "consensus": calculate_consensus([r.response for r in ranked]),
        }
    )
