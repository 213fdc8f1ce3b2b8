"""
Report Consolidator

Synthesizes the four phase artifacts into a single Market Intelligence
Report: a markdown narrative from the model, wrapped in a structured
envelope pulled directly from the artifacts.

Report sections:
- Executive summary
- Business profile
- Market presence
- Marketing & conversion analysis
- Competitive landscape
- SWOT analysis
- Actionable recommendations
- Data quality & confidence
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

from market_intel.analyzer.client import ModelClient, ModelResult
from market_intel.output.schemas import (
    CompetitorArtifact,
    IdentityArtifact,
    MarketingArtifact,
    PresenceArtifact,
)
from market_intel.utils.helpers import generate_report_id, utc_now_iso

from .confidence import (
    PHASE_LABELS,
    calculate_overall_confidence,
    identify_low_confidence_areas,
    missing_phases,
    present_phases,
    usable_artifact,
)

logger = logging.getLogger(__name__)


CONSOLIDATION_PHASE = "report_consolidation"

EMPTY_REPORT_MARKDOWN = "# Market Intelligence Report\n\nNo data available for report generation."

SYSTEM_PROMPT = """You are an expert business intelligence analyst writing executive reports. Synthesize the market intelligence data into a clear, actionable report.

REPORT STRUCTURE:
1. **Executive Summary** (3-4 sentences max)
   - Key finding about the business
   - Main competitive insight
   - Critical recommendation

2. **Business Profile**
   - Identity and positioning
   - Core offerings
   - Proof of credibility

3. **Market Presence**
   - Digital footprint strength
   - Social perception themes
   - Customer engagement patterns

4. **Marketing & Conversion Analysis**
   - Primary conversion paths
   - CTA effectiveness indicators
   - Sales process type

5. **Competitive Landscape**
   - Top 3 competitors with positioning
   - Competitive advantages and disadvantages
   - Market gaps identified

6. **SWOT Analysis**
   - Strengths (from evidence)
   - Weaknesses (from gaps)
   - Opportunities (from the market)
   - Threats (from competitors)

7. **Actionable Recommendations**
   - 3-5 specific, prioritized actions
   - Quick wins vs strategic moves

8. **Data Quality & Confidence**
   - Overall confidence score
   - Data gaps noted
   - Recommended follow-ups

WRITING STYLE:
- Professional but accessible
- Evidence-based, citing sources where possible
- Concise, no filler
- Action-oriented language
- Bullet points for clarity
- Highlight key metrics and numbers

FORMAT: Return a well-structured markdown document."""


# ============================================================================
# REPORT
# ============================================================================

@dataclass(frozen=True)
class ConsolidatedReport:
    """
    Final report for one pipeline run.

    Built once from whatever phase artifacts exist and never modified.
    ``status`` is ``complete``, ``empty`` or ``failed``.
    """
    report_id: str
    generated_at: str
    report_markdown: str
    status: str
    overall_confidence: float = 0.0
    summary: Dict[str, Any] = field(default_factory=dict)
    phase_confidences: Dict[str, float] = field(default_factory=dict)
    data_quality: Dict[str, Any] = field(default_factory=dict)
    phase_outputs: Dict[str, Any] = field(default_factory=dict)
    model_used: Optional[str] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ============================================================================
# INSIGHT EXTRACTION
# ============================================================================

def _pct(value: Optional[float]) -> str:
    return f"{(value or 0) * 100:.0f}%"


def extract_identity_insights(phase1: Optional[IdentityArtifact]) -> Dict[str, Any]:
    """Returns the identity facts used for narrative synthesis."""
    if phase1 is None:
        return {"available": False}

    identity = phase1.business_identity
    proof_types = []
    for asset in phase1.proof_assets:
        if asset.type not in proof_types:
            proof_types.append(asset.type)

    return {
        "available": True,
        "business_name": identity.name.value or "Unknown",
        "business_name_confidence": identity.name.confidence,
        "city": identity.location.city,
        "country": identity.location.country,
        "category": identity.category.value or "Unknown",
        "primary_offerings": [
            {"name": o.name, "confidence": o.confidence} for o in phase1.primary_offerings[:5]
        ],
        "proof_asset_count": len(phase1.proof_assets),
        "proof_asset_types": proof_types,
        "packages": len(phase1.offer_structure.packages),
        "overall_confidence": phase1.overall_confidence,
    }


def extract_presence_insights(phase2: Optional[PresenceArtifact]) -> Dict[str, Any]:
    """Returns the presence and perception facts used for narrative synthesis."""
    if phase2 is None:
        return {"available": False}

    profiles = phase2.profiles
    gbp = profiles.google_business_profile
    behavior = phase2.owner_response_behavior
    return {
        "available": True,
        "data_source": phase2.data_source,
        "profiles_discovered": phase2.profiles_discovered,
        "social_profiles": [{"platform": s.platform, "followers": s.followers} for s in profiles.social],
        "has_gbp": gbp is not None,
        "gbp_rating": gbp.rating if gbp else None,
        "gbp_reviews": gbp.review_count if gbp else None,
        "has_play_store": profiles.play_store is not None,
        "b2b_listings": len(profiles.b2b_listings),
        "top_themes": phase2.social_perception.last_30_posts.top_comment_themes[:5],
        "sentiment": phase2.social_perception.sentiment_distribution,
        "owner_replies": behavior.replies_exist,
        "reply_rate": behavior.reply_rate_estimate,
        "median_response_hours": behavior.median_response_time_hours,
        "tone_patterns": behavior.tone_patterns,
        "overall_confidence": phase2.overall_confidence,
    }


def extract_marketing_insights(phase3: Optional[MarketingArtifact]) -> Dict[str, Any]:
    """Returns the marketing and conversion facts used for narrative synthesis."""
    if phase3 is None:
        return {"available": False}

    journey = phase3.product_journey
    return {
        "available": True,
        "total_ctas": phase3.total_ctas,
        "tracking_tags": phase3.marketing.tracking_tags,
        "ad_platforms": len(phase3.marketing.ad_platform_ids),
        "landing_pages": [
            {"url": lp.url, "headline": lp.offer_headline, "primary_ctas": len(lp.primary_ctas)}
            for lp in phase3.landing_pages
        ],
        "engagement_paths": len(phase3.engagement_paths),
        "sales_process_type": phase3.sales_process.type or "unknown",
        "entry_offers": journey.entry_offers,
        "core_product": journey.core_product,
        "upsells": len(journey.upsells),
        "cross_sells": len(journey.cross_sells),
        "overall_confidence": phase3.overall_confidence,
    }


def extract_competitor_insights(phase4: Optional[CompetitorArtifact]) -> Dict[str, Any]:
    """Returns the competitive landscape facts used for narrative synthesis."""
    if phase4 is None:
        return {"available": False}

    return {
        "available": True,
        "seed_keywords": phase4.seed_keywords,
        "competitors": [
            {
                "name": c.name,
                "domain": c.domain,
                "rank": c.rank,
                "positioning": c.positioning,
                "primary_offerings": c.primary_offerings[:3],
                "gbp_rating": c.gbp_snapshot.rating,
                "gbp_reviews": c.gbp_snapshot.review_count,
                "why_picked": c.why_picked,
                "score": c.score,
            }
            for c in phase4.competitors
        ],
        "overall_confidence": phase4.overall_confidence,
    }


# ============================================================================
# PROMPT SECTIONS
# ============================================================================

def _identity_section(insights: Dict[str, Any]) -> str:
    if not insights["available"]:
        return "Phase 1 data not available"

    offerings = "\n".join(
        f"- {o['name']} (confidence: {_pct(o['confidence'])})" for o in insights["primary_offerings"]
    ) or "- None identified"
    return f"""Business Name: {insights['business_name']} (confidence: {_pct(insights['business_name_confidence'])})
Category: {insights['category']}
Location: {insights['city'] or 'Unknown'}, {insights['country'] or 'Unknown'}

Primary Offerings:
{offerings}

Proof Assets: {insights['proof_asset_count']} found (types: {', '.join(insights['proof_asset_types']) or 'none'})
Packages/Plans: {insights['packages']} identified
Phase 1 Confidence: {_pct(insights['overall_confidence'])}"""


def _presence_section(insights: Dict[str, Any]) -> str:
    if not insights["available"]:
        return "Phase 2 data not available"

    socials = "\n".join(
        f"  - {s['platform']}: {s['followers'] if s['followers'] is not None else 'unknown'} followers"
        for s in insights["social_profiles"]
    )
    gbp = (
        f"Yes ({insights['gbp_rating']}★, {insights['gbp_reviews']} reviews)"
        if insights["has_gbp"] else "Not found"
    )
    themes = "\n".join(
        f"- \"{t.theme}\" ({t.sentiment}, frequency: {t.frequency})" for t in insights["top_themes"]
    ) or "- No themes identified"
    sentiment = insights["sentiment"]
    if sentiment.positive or sentiment.neutral or sentiment.negative:
        distribution = (
            f"Positive: {_pct(sentiment.positive)}, Neutral: {_pct(sentiment.neutral)}, "
            f"Negative: {_pct(sentiment.negative)}"
        )
    else:
        distribution = "Not available"
    response_hours = insights["median_response_hours"]

    return f"""Data source: {insights['data_source']}

Digital Presence:
- Profiles: {insights['profiles_discovered']} discovered
{socials}
- Google Business Profile: {gbp}
- Play Store App: {'Yes' if insights['has_play_store'] else 'No'}
- B2B Listings: {insights['b2b_listings']}

Social Perception Themes:
{themes}

Sentiment Distribution: {distribution}

Owner Response Behavior:
- Replies to reviews: {'Yes' if insights['owner_replies'] else 'No'}
- Reply rate: {_pct(insights['reply_rate'])}
- Median response time: {f'{response_hours:.1f} hours' if response_hours is not None else 'Unknown'}
- Tone patterns: {', '.join(insights['tone_patterns']) or 'Unknown'}

Phase 2 Confidence: {_pct(insights['overall_confidence'])}"""


def _marketing_section(insights: Dict[str, Any]) -> str:
    if not insights["available"]:
        return "Phase 3 data not available"

    pages = "\n".join(
        f"- {lp['headline'] or 'Untitled'} ({lp['primary_ctas']} CTAs)" for lp in insights["landing_pages"]
    ) or "- None analyzed"
    return f"""Marketing Infrastructure:
- Tracking tags: {', '.join(insights['tracking_tags']) or 'None detected'}
- Ad platforms: {insights['ad_platforms']} connected
- Total CTAs detected: {insights['total_ctas']}

Landing Pages:
{pages}

Sales Process: {insights['sales_process_type']}
Engagement Paths: {insights['engagement_paths']} mapped

Product Journey:
- Entry offers: {', '.join(insights['entry_offers']) or 'None identified'}
- Core product: {insights['core_product'] or 'Not identified'}
- Upsells: {insights['upsells']}
- Cross-sells: {insights['cross_sells']}

Phase 3 Confidence: {_pct(insights['overall_confidence'])}"""


def _competitor_section(insights: Dict[str, Any]) -> str:
    if not insights["available"]:
        return "Phase 4 data not available"

    blocks = []
    for c in insights["competitors"]:
        gbp = f"{c['gbp_rating']}★ ({c['gbp_reviews']} reviews)" if c["gbp_rating"] else "Not found"
        blocks.append(f"""[#{c['rank']}] {c['name']} ({c['domain']})
Positioning: {c['positioning'] or 'Not determined'}
Key Offerings: {', '.join(c['primary_offerings']) or 'Unknown'}
GBP: {gbp}
Why selected: {', '.join(c['why_picked']) or 'Not stated'}
Score: {_pct(c['score'])}""")

    return f"""Seed Keywords: {', '.join(insights['seed_keywords'][:5]) or 'None'}

Top Competitors:
{chr(10).join(blocks) or 'No competitors identified'}

Phase 4 Confidence: {_pct(insights['overall_confidence'])}"""


def build_consolidation_prompt(
    identity: Dict[str, Any],
    presence: Dict[str, Any],
    marketing: Dict[str, Any],
    competitors: Dict[str, Any],
    overall_confidence: float,
) -> str:
    return f"""
=== MARKET INTELLIGENCE DATA TO CONSOLIDATE ===

== PHASE 1: BUSINESS IDENTITY ==
{_identity_section(identity)}

== PHASE 2: EXTERNAL PRESENCE & SOCIAL PERCEPTION ==
{_presence_section(presence)}

== PHASE 3: MARKETING & CONVERSION ==
{_marketing_section(marketing)}

== PHASE 4: COMPETITIVE LANDSCAPE ==
{_competitor_section(competitors)}

== OVERALL CONFIDENCE: {_pct(overall_confidence)} ==

=== CONSOLIDATION TASK ===
Create a comprehensive Market Intelligence Report following the structure in the system prompt.
Make it actionable, evidence-based and executive-ready.
Highlight key insights and specific recommendations."""


# ============================================================================
# CONSOLIDATOR
# ============================================================================

class ReportConsolidator:
    """
    Builds the final report from the phase artifacts.

    Never raises: any failure yields a report with ``status="failed"`` and
    the error embedded in the markdown.
    """

    def __init__(self, client: Optional[ModelClient]):
        self.client = client

    async def consolidate(
        self,
        phase1: Optional[IdentityArtifact] = None,
        phase2: Optional[PresenceArtifact] = None,
        phase3: Optional[MarketingArtifact] = None,
        phase4: Optional[CompetitorArtifact] = None,
    ) -> ConsolidatedReport:
        """
        Consolidate the phase artifacts into the final report.

        Any subset of the artifacts may be None. Failed or empty artifacts
        are treated as missing. With no phase data the empty report is
        returned without a model call.
        """
        if not present_phases(phase1, phase2, phase3, phase4):
            logger.warning("[Consolidator] No phase data available, returning empty report")
            return self._empty_report()

        logger.info("[Consolidator] Starting report consolidation...")
        envelope: Dict[str, Any] = {}
        try:
            envelope = self._build_envelope(phase1, phase2, phase3, phase4)
            prompt = build_consolidation_prompt(
                extract_identity_insights(usable_artifact(phase1)),
                extract_presence_insights(usable_artifact(phase2)),
                extract_marketing_insights(usable_artifact(phase3)),
                extract_competitor_insights(usable_artifact(phase4)),
                envelope["overall_confidence"],
            )

            if self.client is None:
                raise RuntimeError("No model client configured for report consolidation")
            result = await self.client.complete(CONSOLIDATION_PHASE, prompt, SYSTEM_PROMPT)

            markdown = (result.raw or "").strip()
            if not markdown:
                raise ValueError("Model returned an empty report")

            report = self._complete_report(envelope, markdown, result)
            logger.info(
                f"[Consolidator] Report complete. Overall confidence: {report.overall_confidence:.2f}"
            )
            return report

        except Exception as e:
            logger.error(f"[Consolidator] Consolidation failed: {e}")
            return self._error_report(str(e), envelope)

    def _build_envelope(self, phase1, phase2, phase3, phase4) -> Dict[str, Any]:
        """Structured fields taken directly from the artifacts."""
        outputs = (phase1, phase2, phase3, phase4)
        phase1, phase2, phase3, phase4 = (usable_artifact(a) for a in outputs)
        gbp = phase2.profiles.google_business_profile if phase2 else None
        location = phase1.business_identity.location if phase1 else None

        summary = {
            "business_name": (phase1.business_name if phase1 else "") or "Unknown",
            "business_url": phase1.url if phase1 else "",
            "category": (phase1.category if phase1 else "") or "Unknown",
            "location": {"city": location.city, "country": location.country} if location else {},
            "metrics": {
                "profiles_discovered": phase2.profiles_discovered if phase2 else 0,
                "gbp_rating": gbp.rating if gbp else None,
                "gbp_reviews": gbp.review_count if gbp else None,
                "total_ctas": phase3.total_ctas if phase3 else 0,
                "competitors_identified": len(phase4.competitors) if phase4 else 0,
            },
        }

        artifacts = (phase1, phase2, phase3, phase4)
        return {
            "summary": summary,
            "overall_confidence": calculate_overall_confidence(*artifacts),
            "phase_confidences": {
                "phase1_website_extraction": phase1.overall_confidence if phase1 else 0.0,
                "phase2_external_presence": phase2.overall_confidence if phase2 else 0.0,
                "phase3_marketing_conversion": phase3.overall_confidence if phase3 else 0.0,
                "phase4_competitor_analysis": phase4.overall_confidence if phase4 else 0.0,
            },
            "data_quality": {
                "phases_completed": present_phases(*artifacts),
                "phases_missing": missing_phases(*artifacts),
                "low_confidence_areas": identify_low_confidence_areas(*artifacts),
            },
            "phase_outputs": {
                label: artifact.to_dict() if artifact is not None else None
                for label, artifact in zip(PHASE_LABELS, outputs)
            },
        }

    def _usage_summary(self) -> Dict[str, Any]:
        return self.client.get_usage_summary() if self.client is not None else {}

    def _complete_report(
        self,
        envelope: Dict[str, Any],
        markdown: str,
        result: ModelResult,
    ) -> ConsolidatedReport:
        return ConsolidatedReport(
            report_id=generate_report_id(),
            generated_at=utc_now_iso(),
            report_markdown=markdown,
            status="complete",
            model_used=result.model,
            metadata={
                "generation_model": result.model,
                "llm_tokens": result.usage.to_dict(),
                "usage_summary": self._usage_summary(),
            },
            **envelope,
        )

    def _empty_report(self) -> ConsolidatedReport:
        return ConsolidatedReport(
            report_id=generate_report_id(),
            generated_at=utc_now_iso(),
            report_markdown=EMPTY_REPORT_MARKDOWN,
            status="empty",
            data_quality={
                "phases_completed": [],
                "phases_missing": list(PHASE_LABELS),
                "low_confidence_areas": [],
            },
        )

    def _error_report(self, error: str, envelope: Dict[str, Any]) -> ConsolidatedReport:
        return ConsolidatedReport(
            report_id=generate_report_id(),
            generated_at=utc_now_iso(),
            report_markdown=f"# Market Intelligence Report\n\n**Error:** {error}",
            status="failed",
            error=error,
            metadata={"usage_summary": self._usage_summary()},
            **envelope,
        )
