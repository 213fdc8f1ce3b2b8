"""
Scoring Package

Deterministic scoring used alongside model output:
- Corroboration similarity and confidence boost
- Competitor candidate scoring from SERP results
"""

from .competitor_scoring import (
    SCORE_WEIGHTS,
    CandidateScore,
    ScoreBreakdown,
    attach_site_data,
    score_candidates,
    top_candidates,
)
from .similarity import (
    CORROBORATION_BONUS,
    CORROBORATION_THRESHOLD,
    apply_corroboration_boost,
    containment_similarity,
    is_corroborated,
)

__all__ = [
    "SCORE_WEIGHTS",
    "CandidateScore",
    "ScoreBreakdown",
    "attach_site_data",
    "score_candidates",
    "top_candidates",
    "CORROBORATION_BONUS",
    "CORROBORATION_THRESHOLD",
    "apply_corroboration_boost",
    "containment_similarity",
    "is_corroborated",
]
