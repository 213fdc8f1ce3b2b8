"""
Competitor Analysis Agent (Phase 4)

Identifies the top competitors and produces concise, evidence-backed quick
facts for each: positioning, primary offerings, GBP snapshot, SEO presence
and social signals.

Candidates are scored deterministically from SERP data first; the model
only sees the top-scored candidates and writes the narrative fields.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from market_intel.integrations.serper import SerperClient
from market_intel.models import SerpData
from market_intel.output.schemas import CompetitorArtifact, IdentityArtifact
from market_intel.scoring.competitor_scoring import (
    TOP_CANDIDATES,
    CandidateScore,
    attach_site_data,
    score_candidates,
    top_candidates,
)
from market_intel.utils.helpers import extract_domain, mean, truncate

from .base import BasePhaseAgent

logger = logging.getLogger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

MAX_COMPETITORS = 3
MAX_OFFERING_SEEDS = 5
MAX_SEARCHED_SEEDS = 3
MIN_SEED_LENGTH = 3
MIN_POSITIONING_LENGTH = 10

COMPETITOR_OUTPUT_SCHEMA = {
    "competitors": [
        {
            "name": "string",
            "domain": "string",
            "rank": "1-3",
            "why_picked": ["string"],
            "score": "0.0-1.0",
            "positioning": "string",
            "primary_offerings": ["string"],
            "offer_highlights": [{"text": "string", "evidence": {"source_url": "string", "selector": "string"}}],
            "gbp_snapshot": {
                "found": "boolean",
                "profile_url": "string",
                "rating": "number",
                "review_count": "number",
                "primary_category": "string",
                "services": ["string"],
                "confidence": "0.0-1.0",
                "extraction_method": "google_places_api|serp_fallback|manual",
            },
            "seo_metrics": {
                "avg_serp_rank": "number",
                "top_keywords": [{"keyword": "string", "position": "number"}],
                "est_monthly_traffic": "number",
            },
            "social_presence": [{"platform": "string", "profile_url": "string", "followers": "number"}],
            "evidence": [{"source_url": "string", "method": "string", "confidence": "0.0-1.0"}],
        }
    ]
}

SYSTEM_PROMPT = """You are a competitive intelligence analyst. Identify and profile the top 3 competitors of a business from SERP data, local presence and market signals.

RULES:
1. Return ONLY a valid JSON object matching the schema below
2. Return at most 3 competitors, ordered by relevance
3. Explain why each competitor was selected using the labels below
4. Include evidence sources for every fact
5. Give confidence scores by data quality

SELECTION CRITERIA (by importance):
1. SERP presence (35%): domains that appear often in top organic results
2. Local match (30%): same category, nearby location
3. GBP strength (15%): rating and review volume
4. Traffic / authority (10%)
5. Social presence (10%)

WHY_PICKED LABELS:
- serp_competitor: appears in the same search results
- local_category: same business category in the same area
- direct_offering_overlap: similar products or services
- target_audience_overlap: same customer segments
- market_leader: known leader in the space
- emerging_competitor: growing presence in the market

POSITIONING: one or two sentences on the competitor's value proposition, based on hero text, taglines and key messaging.

GBP SNAPSHOT: set found=false when no Google Business Profile is known, and record the extraction_method.

OUTPUT JSON SCHEMA:
""" + json.dumps(COMPETITOR_OUTPUT_SCHEMA, indent=2)


# ============================================================================
# SEED KEYWORDS
# ============================================================================

def generate_seed_keywords(
    identity: IdentityArtifact,
    provided: Optional[List[str]] = None,
    location: Optional[str] = None,
) -> List[str]:
    """
    Seed keywords for competitor discovery, deduplicated in insertion order.

    Sources: provided keywords, the category, up to 5 offerings (lower-cased),
    category + city combinations and common comparison patterns. The
    extracted city wins over the requested ``location``.
    """
    keywords: List[str] = []

    def add(keyword: Optional[str]) -> None:
        keyword = (keyword or "").strip()
        if keyword and keyword not in keywords:
            keywords.append(keyword)

    for keyword in provided or []:
        add(keyword)

    category = identity.category
    add(category)

    for offering in identity.primary_offerings[:MAX_OFFERING_SEEDS]:
        if offering.name:
            add(offering.name.lower())

    city = identity.business_identity.location.city.strip() or (location or "").strip()
    if category and city:
        add(f"{category} {city}")
        add(f"{category} in {city}")

    if category:
        add(f"best {category}")
        add(f"{category} alternatives")
        add(f"{category} companies")

    return [k for k in keywords if len(k) >= MIN_SEED_LENGTH]


# ============================================================================
# CONFIDENCE
# ============================================================================

def calculate_competitor_confidence(artifact: CompetitorArtifact) -> float:
    competitors = artifact.competitors
    if not competitors:
        return 0.0
    count = len(competitors)
    factors = [
        count / MAX_COMPETITORS,
        mean(c.score for c in competitors),
        sum(1 for c in competitors if c.evidence) / count,
        sum(1 for c in competitors if len(c.positioning) > MIN_POSITIONING_LENGTH) / count,
    ]
    return mean(factors)


# ============================================================================
# AGENT
# ============================================================================

class CompetitorAnalysisAgent(BasePhaseAgent[CompetitorArtifact]):
    """Phase 4: top-3 competitor identification and quick facts."""

    artifact_class = CompetitorArtifact

    def __init__(self, client, search_client: Optional[SerperClient] = None):
        """
        Args:
            client: ModelClient instance for completions
            search_client: Web search client used when no SERP data is supplied
        """
        super().__init__(client)
        self.search_client = search_client

    @property
    def phase_id(self) -> str:
        return "phase4_competitor_analysis"

    @property
    def display_name(self) -> str:
        return "Phase4"

    @property
    def system_prompt(self) -> str:
        return SYSTEM_PROMPT

    async def analyze(
        self,
        identity: Optional[IdentityArtifact],
        serp_data: Optional[SerpData] = None,
        competitor_sites: Optional[List[Dict[str, Any]]] = None,
        seed_keywords: Optional[List[str]] = None,
        location: Optional[str] = None,
    ) -> CompetitorArtifact:
        """
        Identify and profile the top competitors.

        Never raises; a failure yields the empty artifact marked failed.
        """
        identity = identity or IdentityArtifact()
        serp_data = SerpData.from_value(serp_data)
        business_id = identity.business_name or "unknown"
        seeds = generate_seed_keywords(identity, seed_keywords, location)

        if not identity.has_identity and serp_data.is_empty and not seeds:
            logger.warning("[Phase4] No identity, SERP data or seed keywords provided")
            return self.empty_artifact(business_id=business_id)

        logger.info(f"[Phase4] Starting competitor analysis for: {business_id}")
        result = await self._run(self._analyze(identity, serp_data, competitor_sites or [], seeds))
        artifact = self._finalize(result, business_id=business_id, seed_keywords=seeds)
        logger.info(
            f"[Phase4] Analysis complete. Competitors: {len(artifact.competitors)}, "
            f"confidence: {artifact.overall_confidence:.2f}"
        )
        return artifact

    async def _analyze(
        self,
        identity: IdentityArtifact,
        serp_data: SerpData,
        competitor_sites: List[Dict[str, Any]],
        seeds: List[str],
    ) -> CompetitorArtifact:
        if serp_data.is_empty:
            serp_data = await self._search_seeds(seeds)

        ranked = score_candidates(serp_data.results, own_domain=identity.url)
        candidates = top_candidates(ranked, TOP_CANDIDATES)
        attach_site_data(candidates, competitor_sites)

        prompt = self._build_analysis_prompt(identity, seeds, serp_data, candidates)
        result = await self._complete(prompt)
        artifact = self._validate(
            result,
            business_id=identity.business_name or "unknown",
            seed_keywords=seeds,
        )

        self._rank(artifact, candidates)
        artifact.candidates_considered = len(ranked)
        artifact.overall_confidence = calculate_competitor_confidence(artifact)
        artifact.metadata.update({
            "competitors_analyzed": len(artifact.competitors),
            "seed_keywords_count": len(seeds),
            "candidates": [c.to_dict() for c in candidates],
        })
        return artifact

    async def _search_seeds(self, seeds: List[str]) -> SerpData:
        """Collect organic results for the first few seeds, tagged with their keyword."""
        if self.search_client is None or not self.search_client.has_credentials or not seeds:
            return SerpData()

        searched = seeds[:MAX_SEARCHED_SEEDS]
        results = []
        for keyword in searched:
            response = await self.search_client.search(keyword)
            for organic in response.organic:
                organic.keyword = keyword
                results.append(organic.to_dict())
        logger.info(f"[Phase4] Collected {len(results)} SERP results for {len(searched)} seeds")
        return SerpData(results=results, keywords=searched)

    @staticmethod
    def _rank(artifact: CompetitorArtifact, candidates: List[CandidateScore]) -> None:
        """Truncate to the cap, renumber ranks 1..k and backfill missing scores."""
        artifact.competitors = artifact.competitors[:MAX_COMPETITORS]
        scores = {c.domain: c.score for c in candidates}
        for rank, competitor in enumerate(artifact.competitors, start=1):
            competitor.rank = rank
            if competitor.score <= 0:
                competitor.score = scores.get(extract_domain(competitor.domain), 0.0)

    def _build_analysis_prompt(
        self,
        identity: IdentityArtifact,
        seeds: List[str],
        serp_data: SerpData,
        candidates: List[CandidateScore],
    ) -> str:
        location = identity.business_identity.location
        offerings = "\n".join(f"- {o.name}" for o in identity.primary_offerings[:5] if o.name) or "Not available"
        blocks = [self._candidate_block(i, c) for i, c in enumerate(candidates, start=1)]

        return f"""
=== TARGET BUSINESS ===
Name: {identity.business_name or 'Unknown'}
Website: {identity.url or 'N/A'}
Category: {identity.category or 'Unknown'}
Location: {location.city}, {location.country}

Primary offerings:
{offerings}

=== SEED KEYWORDS ===
{', '.join(seeds) or 'None'}

=== TOP COMPETITOR CANDIDATES (by SERP scoring) ===
{chr(10).join(blocks) or 'No candidates from SERP data; identify competitors from market knowledge.'}

=== SERP OVERVIEW ===
Results analyzed: {len(serp_data.results)}
Keywords searched: {', '.join(serp_data.keywords) or 'N/A'}

=== TASK ===
1. Confirm or adjust the top 3 competitors
2. Write a positioning statement for each
3. Extract primary offerings and key differentiators
4. Note GBP / local presence indicators
5. Estimate SEO strength relative to the target business
6. Identify social presence signals
7. Explain why each was selected
8. Return ONLY the JSON object following the schema"""

    @staticmethod
    def _candidate_block(index: int, candidate: CandidateScore) -> str:
        lines = [
            f"[{index}] {candidate.name}",
            f"Domain: {candidate.domain}",
            f"SERP score: {candidate.score * 100:.1f}%",
            f"SERP appearances: {candidate.serp_appearances}",
            f"Avg position: {candidate.avg_position:.1f}",
            f"Keywords: {', '.join(candidate.keywords) or 'N/A'}",
            f"Snippets: {truncate(' | '.join(candidate.snippets[:2]), 200)}",
        ]
        site = candidate.site_data
        if site:
            lines.extend([
                "Site data:",
                f"- Hero: \"{truncate(site['hero_text'], 150)}\"",
                f"- Services: {', '.join(site['services'][:5]) or 'N/A'}",
                f"- Has chat: {site['has_chat']}",
                f"- Social links: {len(site['social_links'])}",
            ])
        else:
            lines.append("No site data available")
        return "\n".join(lines) + "\n---"
