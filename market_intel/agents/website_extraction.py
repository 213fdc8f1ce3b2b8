"""
Website Extraction Agent (Phase 1)

Produces an auditable identity profile for a business from its website
content, or from a bare description when no page content is available.

Output:
- business_identity: name, location, category (each with confidence and sources)
- primary_offerings: ranked list of main offerings
- proof_assets: testimonials, case studies, awards, certifications
- offer_structure: packages with inclusions, guarantees, timelines
- evidence: snapshots and selectors for the audit trail
"""

import json
import logging
from typing import Optional

from market_intel.context.website_signals import (
    ContentSegments,
    WebsiteSignals,
    extract_website_signals,
    segment_content,
)
from market_intel.models import SERVICE_MARKER, WebsiteData
from market_intel.output.schemas import EvidenceRef, IdentityArtifact
from market_intel.scoring.similarity import (
    SimilarityFn,
    apply_corroboration_boost,
    containment_similarity,
    is_corroborated,
)
from market_intel.utils.helpers import mean, truncate

from .base import BasePhaseAgent

logger = logging.getLogger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

NAME_CONFIDENCE_WEIGHT = 1.5
PROOF_ASSET_BONUS = 0.7
WEBSITE_TEXT_MIN_CHARS = 50
PROMPT_TEXT_LIMIT = 4000
SCHEMA_ORG_SELECTOR = 'script[type="application/ld+json"]'

IDENTITY_OUTPUT_SCHEMA = {
    "url": "string",
    "business_identity": {
        "name": {"value": "string", "confidence": "0.0-1.0", "sources": [{"source_url": "string", "selector": "string", "method": "string"}]},
        "location": {"country": "string", "city": "string", "confidence": "0.0-1.0", "sources": []},
        "category": {"value": "string", "taxonomy": "industry/sub-industry", "confidence": "0.0-1.0", "sources": []},
    },
    "primary_offerings": [
        {"name": "string", "rank": "number", "confidence": "0.0-1.0", "source": "string", "excerpt": "string"}
    ],
    "proof_assets": [
        {"type": "testimonial|case_study|award|cert", "excerpt": "string", "location_url": "string", "selector": "string", "confidence": "0.0-1.0"}
    ],
    "offer_structure": {
        "packages": [
            {"name": "string", "inclusions": ["string"], "guarantee": "string", "timeline": "string", "confidence": "0.0-1.0"}
        ]
    },
    "evidence": {"snapshots": ["string"], "selectors": {"name_selector": "string", "testimonials_selector": "string"}},
}

SYSTEM_PROMPT = """You are a business intelligence extraction engine. Extract structured facts about a business from its website content.

RULES:
1. Return ONLY a valid JSON object matching the schema below
2. Extract only what the content states; never invent facts
3. Give every extracted field a confidence score between 0.0 and 1.0
4. Attach source references (URL, CSS selector) wherever possible
5. When a value is missing or unclear, leave it empty with confidence 0.0

CONFIDENCE BANDS:
- 1.0: stated explicitly in prominent text
- 0.8-0.9: stated clearly in a secondary location
- 0.6-0.7: implied, inferable with high confidence
- 0.4-0.5: partially present, needs interpretation
- 0.0-0.3: weak or no evidence

SOURCE PRIORITY (highest trust first):
1. Schema.org JSON-LD
2. Open Graph tags
3. Hero section
4. About / services sections
5. Footer

OUTPUT JSON SCHEMA:
""" + json.dumps(IDENTITY_OUTPUT_SCHEMA, indent=2)

DESCRIPTION_SYSTEM_PROMPT = (
    "You are a business intelligence analyst. Return ONLY a valid JSON object, no explanations."
)


# ============================================================================
# CONFIDENCE
# ============================================================================

def calculate_identity_confidence(artifact: IdentityArtifact) -> float:
    """
    Mean over the factors that are present, capped at 1.0.

    Factors: weighted name confidence, category confidence, mean offering
    confidence, and a flat bonus when any proof asset exists.
    """
    identity = artifact.business_identity
    factors = []
    if identity.name.confidence > 0:
        factors.append(identity.name.confidence * NAME_CONFIDENCE_WEIGHT)
    if identity.category.confidence > 0:
        factors.append(identity.category.confidence)
    if artifact.primary_offerings:
        factors.append(mean(o.confidence for o in artifact.primary_offerings))
    if artifact.proof_assets:
        factors.append(PROOF_ASSET_BONUS)
    if not factors:
        return 0.0
    return min(1.0, mean(factors))


# ============================================================================
# AGENT
# ============================================================================

class WebsiteExtractionAgent(BasePhaseAgent[IdentityArtifact]):
    """Phase 1: business identity, offerings and proof from website content."""

    artifact_class = IdentityArtifact

    def __init__(self, client, similarity: SimilarityFn = containment_similarity):
        """
        Args:
            client: ModelClient instance for completions
            similarity: Scores a Schema.org name against the extracted name
        """
        super().__init__(client)
        self.similarity = similarity

    @property
    def phase_id(self) -> str:
        return "phase1_website_extraction"

    @property
    def display_name(self) -> str:
        return "Phase1"

    @property
    def system_prompt(self) -> str:
        return SYSTEM_PROMPT

    @staticmethod
    def select_mode(website: WebsiteData) -> Optional[str]:
        """
        Returns ``website``, ``description`` or None (nothing to extract).

        Page HTML, or text longer than the minimum that is not a service
        description, selects website mode.
        """
        text = website.text_content or ""
        has_page_content = bool(website.html) or len(text) > WEBSITE_TEXT_MIN_CHARS
        if has_page_content and SERVICE_MARKER not in text:
            return "website"
        if text.strip():
            return "description"
        return None

    async def extract(self, website: Optional[WebsiteData]) -> IdentityArtifact:
        """
        Extract the business identity profile.

        Never raises; a failure yields the empty artifact marked failed.
        """
        website = website or WebsiteData()
        mode = self.select_mode(website)
        if mode is None:
            logger.warning("[Phase1] No website content or description provided")
            return self.empty_artifact(url=website.url)

        if mode == "website":
            operation = self._extract_from_website(website)
        else:
            operation = self._generate_from_description(website)

        result = await self._run(operation)
        artifact = self._finalize(result, url=website.url, extraction_mode=mode)
        logger.info(
            f"[Phase1] Extraction complete ({mode} mode). "
            f"Confidence: {artifact.overall_confidence:.2f}"
        )
        return artifact

    # =========================================================================
    # WEBSITE MODE
    # =========================================================================

    async def _extract_from_website(self, website: WebsiteData) -> IdentityArtifact:
        logger.info(f"[Phase1] Starting website extraction for: {website.url or 'unknown url'}")

        signals = extract_website_signals(website.html, website.text_content)
        segments = segment_content(website.text_content)
        prompt = self._build_extraction_prompt(website, segments, signals)

        result = await self._complete(prompt)
        artifact = self._validate(result, url=website.url, extraction_mode="website")

        self._reconcile(artifact, signals, website.url)
        artifact.overall_confidence = calculate_identity_confidence(artifact)
        artifact.metadata.update({
            "extraction_method": "llm_with_deterministic_reconciliation",
            "deterministic_signals_found": signals.signal_counts(),
        })
        return artifact

    def _build_extraction_prompt(
        self,
        website: WebsiteData,
        segments: ContentSegments,
        signals: WebsiteSignals,
    ) -> str:
        schema_org = json.dumps(signals.schema_org, indent=2) if signals.schema_org is not None else "Not found"
        return f"""
WEBSITE URL: {website.url or 'N/A'}

=== DETERMINISTIC DATA (HIGH TRUST) ===
Schema.org: {schema_org}
Open Graph: {json.dumps(signals.open_graph, indent=2)}
Meta Tags: {json.dumps(signals.meta_tags, indent=2)}
Contact patterns:
- Emails: {', '.join(signals.emails) or 'None'}
- Phones: {', '.join(signals.phones) or 'None'}

=== CONTENT SEGMENTS ===

[HERO]
{segments.hero or 'Not identified'}

[ABOUT]
{segments.about or 'Not identified'}

[SERVICES / OFFERINGS]
{segments.services or 'Not identified'}

[TESTIMONIALS / REVIEWS]
{segments.testimonials or 'Not identified'}

=== PAGE TEXT (truncated) ===
{truncate(website.text_content, PROMPT_TEXT_LIMIT)}

=== TASK ===
Extract the complete business profile following the JSON schema.
Cross-check your extraction against the deterministic data.
Return ONLY the JSON object."""

    def _reconcile(self, artifact: IdentityArtifact, signals: WebsiteSignals, url: str) -> None:
        """Boost name confidence when Schema.org corroborates the extracted name."""
        schema_name = signals.schema_name
        name = artifact.business_identity.name
        if not schema_name or not name.value:
            return
        if not is_corroborated(schema_name, name.value, self.similarity):
            return

        name.confidence = apply_corroboration_boost(name.confidence)
        name.sources.append(EvidenceRef(
            source_url=url,
            selector=SCHEMA_ORG_SELECTOR,
            method="schema.org",
            confidence=1.0,
        ))
        logger.info(f"[Phase1] Schema.org corroborates name '{name.value}'")

    # =========================================================================
    # DESCRIPTION MODE
    # =========================================================================

    async def _generate_from_description(self, website: WebsiteData) -> IdentityArtifact:
        description = website.text_content
        logger.info(f"[Phase1] Generating profile from description: \"{truncate(description, 100)}\"")

        prompt = self._build_description_prompt(description, website.url)
        result = await self._complete(prompt, DESCRIPTION_SYSTEM_PROMPT)
        artifact = self._validate(result, url=website.url, extraction_mode="description")

        artifact.overall_confidence = calculate_identity_confidence(artifact)
        artifact.metadata["extraction_method"] = "llm_description_research"
        return artifact

    def _build_description_prompt(self, description: str, url: str) -> str:
        return f"""Build a business profile from the description below, as if you had analyzed the business's website.

BUSINESS DESCRIPTION / QUERY:
{description}

TARGET URL: {url or 'N/A'}

Base the profile on what businesses of this kind typically look like:
1. Identity: likely name or business type, category, typical location
2. Primary offerings: the 5-7 core products or services such businesses offer
3. Proof assets: the testimonials, case studies or certifications they usually show
4. Offer structure: typical packages, guarantees and timelines

These are estimates. Set each confidence by how typical the element is for this
kind of business, not by observed evidence.

Return ONLY a JSON object with this schema:
{json.dumps(IDENTITY_OUTPUT_SCHEMA, indent=2)}"""
