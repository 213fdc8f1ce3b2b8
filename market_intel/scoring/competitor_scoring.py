"""
Competitor Candidate Scoring

Deterministic ranking of competitor domains from SERP results, computed
before the model sees them:

- SERP frequency (35%): appearances across result sets, saturating at 10
- Position (25%): inverse average rank position
- Keyword coverage (20%): distinct seed keywords the domain ranks for, saturating at 5
- Snippet presence (20%): 0.7 with descriptive snippet text, 0.3 without

The business's own domain is never a candidate.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from market_intel.utils.helpers import extract_domain

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

SCORE_WEIGHTS = {
    "serp_frequency": 0.35,
    "position": 0.25,
    "keyword_coverage": 0.20,
    "snippet": 0.20,
}

SERP_SATURATION = 10
KEYWORD_SATURATION = 5
DEFAULT_POSITION = 10
SNIPPET_PRESENT_SCORE = 0.7
SNIPPET_ABSENT_SCORE = 0.3
TOP_CANDIDATES = 3


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class ScoreBreakdown:
    """Components of a candidate score, each in [0, 1] before weighting."""
    serp_frequency: float = 0.0
    position: float = 0.0
    keyword_coverage: float = 0.0
    snippet: float = 0.0

    @property
    def total(self) -> float:
        return (
            self.serp_frequency * SCORE_WEIGHTS["serp_frequency"]
            + self.position * SCORE_WEIGHTS["position"]
            + self.keyword_coverage * SCORE_WEIGHTS["keyword_coverage"]
            + self.snippet * SCORE_WEIGHTS["snippet"]
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            "serp_frequency": round(self.serp_frequency, 3),
            "position": round(self.position, 3),
            "keyword_coverage": round(self.keyword_coverage, 3),
            "snippet": round(self.snippet, 3),
            "total": round(self.total, 3),
        }


@dataclass
class CandidateScore:
    """A competitor domain aggregated across SERP results."""
    domain: str
    name: str = ""
    positions: List[float] = field(default_factory=list)
    snippets: List[str] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    breakdown: ScoreBreakdown = field(default_factory=ScoreBreakdown)
    site_data: Optional[Dict[str, Any]] = None

    @property
    def serp_appearances(self) -> int:
        return len(self.positions)

    @property
    def avg_position(self) -> float:
        if not self.positions:
            return float(DEFAULT_POSITION)
        return sum(self.positions) / len(self.positions)

    @property
    def score(self) -> float:
        return self.breakdown.total

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "domain": self.domain,
            "name": self.name,
            "serp_appearances": self.serp_appearances,
            "avg_position": round(self.avg_position, 1),
            "keywords": list(self.keywords),
            "snippets": self.snippets[:2],
            "score": round(self.score, 4),
            "breakdown": self.breakdown.to_dict(),
        }
        if self.site_data:
            data["site_data"] = self.site_data
        return data


# =============================================================================
# SCORING
# =============================================================================

def _score_breakdown(candidate: CandidateScore) -> ScoreBreakdown:
    return ScoreBreakdown(
        serp_frequency=min(1.0, candidate.serp_appearances / SERP_SATURATION),
        position=max(0.0, 1 - (candidate.avg_position - 1) / 10),
        keyword_coverage=min(1.0, len(candidate.keywords) / KEYWORD_SATURATION),
        snippet=SNIPPET_PRESENT_SCORE if candidate.snippets else SNIPPET_ABSENT_SCORE,
    )


def _result_value(result: Any, key: str) -> Any:
    if isinstance(result, dict):
        return result.get(key)
    return getattr(result, key, None)


def _position(value: Any) -> float:
    try:
        return float(value) if value else float(DEFAULT_POSITION)
    except (TypeError, ValueError):
        return float(DEFAULT_POSITION)


def score_candidates(
    results: Iterable[Any],
    own_domain: Optional[str] = None,
) -> List[CandidateScore]:
    """
    Aggregate SERP results by domain and score each candidate.

    Args:
        results: Organic results as dicts or objects with ``link`` (or
            ``url``), ``title``, ``snippet``, ``position`` and optional ``keyword``
        own_domain: The business's own domain, excluded from candidates

    Returns:
        Candidates sorted by descending score (stable for equal scores)
    """
    own = extract_domain(own_domain) if own_domain else None
    candidates: Dict[str, CandidateScore] = {}

    for result in results:
        domain = extract_domain(_result_value(result, "link") or _result_value(result, "url"))
        if not domain or domain == own:
            continue

        candidate = candidates.get(domain)
        if candidate is None:
            candidate = CandidateScore(domain=domain, name=_result_value(result, "title") or domain)
            candidates[domain] = candidate

        candidate.positions.append(_position(_result_value(result, "position")))
        snippet = _result_value(result, "snippet")
        if snippet:
            candidate.snippets.append(snippet)
        keyword = _result_value(result, "keyword")
        if keyword and keyword not in candidate.keywords:
            candidate.keywords.append(keyword)

    for candidate in candidates.values():
        candidate.breakdown = _score_breakdown(candidate)

    ranked = sorted(candidates.values(), key=lambda c: c.score, reverse=True)
    logger.debug(f"[Scoring] {len(ranked)} competitor candidates scored")
    return ranked


def top_candidates(candidates: List[CandidateScore], limit: int = TOP_CANDIDATES) -> List[CandidateScore]:
    return candidates[:limit]


def attach_site_data(candidates: List[CandidateScore], sites: Iterable[Dict[str, Any]]) -> None:
    """Attach scraped competitor site data to candidates with a matching domain."""
    by_domain = {}
    for site in sites or []:
        if isinstance(site, dict):
            domain = extract_domain(site.get("url"))
            if domain and domain not in by_domain:
                by_domain[domain] = site

    for candidate in candidates:
        site = by_domain.get(candidate.domain)
        if site:
            candidate.site_data = {
                "title": site.get("title") or "",
                "description": site.get("description") or "",
                "hero_text": site.get("hero_text") or site.get("heroText") or "",
                "services": list(site.get("services") or []),
                "has_chat": bool(site.get("has_chat") or site.get("hasChat")),
                "has_forms": bool(site.get("has_forms") or site.get("hasForms")),
                "social_links": list(site.get("social_links") or site.get("socialLinks") or []),
            }
