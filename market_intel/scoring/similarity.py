"""
Corroboration Similarity

String similarity used to decide whether a deterministic signal (e.g. a
Schema.org name) corroborates a model-extracted value, and the confidence
boost applied when it does.

The similarity function is pluggable: any ``(str, str) -> float`` in
[0, 1] can be passed to ``is_corroborated`` or to the Phase 1 agent.
"""

from typing import Callable, Optional

SimilarityFn = Callable[[str, str], float]

CORROBORATION_THRESHOLD = 0.8
CORROBORATION_BONUS = 0.2


def containment_similarity(first: Optional[str], second: Optional[str]) -> float:
    """
    Symmetric containment check.

    Returns 1.0 for case-insensitive equality, 0.9 when either string
    contains the other, 0.0 otherwise (including empty input).
    """
    if not first or not second:
        return 0.0
    a = first.lower().strip()
    b = second.lower().strip()
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    if a in b or b in a:
        return 0.9
    return 0.0


def is_corroborated(
    deterministic: Optional[str],
    extracted: Optional[str],
    similarity: SimilarityFn = containment_similarity,
    threshold: float = CORROBORATION_THRESHOLD,
) -> bool:
    return similarity(deterministic or "", extracted or "") > threshold


def apply_corroboration_boost(confidence: float, bonus: float = CORROBORATION_BONUS) -> float:
    """Add the fixed bonus, capped at 1.0."""
    return min(1.0, max(0.0, confidence) + bonus)
