"""
Marketing & Conversion Agent (Phase 3)

Maps how a business attracts and converts customers: marketing channels,
tracking, CTAs, engagement paths, sales process and product journey.

Deterministic scans (tracking tags, CTA candidates, forms, chat widgets,
booking tools) run first and are merged back into the model output, so
detected tags and ad ids survive even when the model omits them.
"""

import json
import logging
from typing import List, Optional

from market_intel.context.conversion_signals import ConversionSignals, scan_conversion_signals
from market_intel.models import WebsiteData
from market_intel.output.schemas import (
    AdPlatformId,
    IdentityArtifact,
    MarketingArtifact,
    PresenceArtifact,
)
from market_intel.utils.helpers import mean, truncate

from .base import BasePhaseAgent

logger = logging.getLogger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

FULL_MODE_MIN_TEXT = 500
PROMPT_TEXT_LIMIT = 3000
MAX_PROMPT_CTAS = 30
TRACKING_BONUS = 0.7
SALES_TYPE_BONUS = 0.65

MARKETING_OUTPUT_SCHEMA = {
    "marketing": {
        "channels": [
            {"channel": "organic_search|paid_search|social|email|referral", "evidence": [{"source_url": "string", "selector": "string", "method": "dom|search|api"}], "confidence": "0.0-1.0"}
        ],
        "tracking_tags": ["ga4|gtm|fb-pixel|..."],
        "ad_platform_ids": [{"platform": "google_ads|facebook_ads|...", "id": "string"}],
    },
    "landing_pages": [
        {
            "url": "string",
            "offer_headline": "string",
            "offer_summary": "string",
            "primary_ctas": [
                {"type": "form|button|link|chat|phone|whatsapp|booking", "selector": "string", "text": "string", "target": "string", "confidence": "0.0-1.0"}
            ],
            "supporting_ctas": [],
            "evidence": [{"selector": "string"}],
        }
    ],
    "engagement_paths": [
        {
            "path_id": "string",
            "steps": [{"step": "string", "action": "string", "cta_type": "string", "fields": ["string"]}],
            "probability": "0.0-1.0",
            "confidence": "0.0-1.0",
        }
    ],
    "sales_process": {
        "type": "demo-led|product-led|consultative|rfp|hybrid",
        "inbound": "string",
        "outbound": "string",
        "evidence": ["string"],
    },
    "product_journey": {
        "entry_offers": ["lead magnet|free trial|demo|consultation|..."],
        "core_product": "string",
        "upsells": [{"name": "string", "trigger": "string", "evidence": []}],
        "cross_sells": [{"name": "string", "placement": "string", "evidence": []}],
    },
}

SYSTEM_PROMPT = """You are a marketing and conversion analyst. From website content and detected page elements, map the business's CTAs, engagement paths, sales process and product journey.

RULES:
1. Return ONLY a valid JSON object matching the schema below
2. Base conclusions on the provided evidence
3. Give confidence scores between 0.0 and 1.0 by clarity of signal
4. Include selectors and evidence for every CTA you report

CTA PRIORITY (highest impact first):
1. Hero section CTAs
2. Sticky header / floating CTAs
3. In-content CTAs
4. Footer CTAs
5. Chat widgets and popups

CTA TYPES: form, button, link, chat, phone, whatsapp, booking

ENGAGEMENT PATHS:
- Trace the journey from landing to conversion as ordered steps
- Estimate each path's probability from CTA prominence
- Note form fields that signal intent

SALES PROCESS (pick exactly one):
- demo-led: primary path is booking a demo or call
- product-led: self-serve signup, free trial, freemium
- consultative: discovery calls, custom proposals
- rfp: enterprise or formal bidding
- hybrid: several of the above

OUTPUT JSON SCHEMA:
""" + json.dumps(MARKETING_OUTPUT_SCHEMA, indent=2)


# ============================================================================
# CONFIDENCE
# ============================================================================

def count_ctas(artifact: MarketingArtifact) -> int:
    return sum(len(page.primary_ctas) + len(page.supporting_ctas) for page in artifact.landing_pages)


def calculate_marketing_confidence(artifact: MarketingArtifact) -> float:
    factors = []
    if artifact.total_ctas > 0:
        factors.append(min(1.0, 0.5 + artifact.total_ctas * 0.1))
    if artifact.marketing.tracking_tags:
        factors.append(TRACKING_BONUS)
    if artifact.engagement_paths:
        factors.append(mean(p.confidence for p in artifact.engagement_paths))
    if artifact.sales_process.type:
        factors.append(SALES_TYPE_BONUS)
    return mean(factors) if factors else 0.0


# ============================================================================
# AGENT
# ============================================================================

class MarketingConversionAgent(BasePhaseAgent[MarketingArtifact]):
    """Phase 3: marketing channels, CTAs, engagement paths and sales process."""

    artifact_class = MarketingArtifact

    @property
    def phase_id(self) -> str:
        return "phase3_marketing_conversion"

    @property
    def display_name(self) -> str:
        return "Phase3"

    @property
    def system_prompt(self) -> str:
        return SYSTEM_PROMPT

    @staticmethod
    def select_mode(identity: IdentityArtifact, website: WebsiteData) -> Optional[str]:
        """Returns ``full``, ``description`` or None (nothing to analyze)."""
        if website.html or len(website.text_content or "") > FULL_MODE_MIN_TEXT:
            return "full"
        if identity.has_identity or (website.text_content or "").strip():
            return "description"
        return None

    async def analyze(
        self,
        identity: Optional[IdentityArtifact],
        website: Optional[WebsiteData],
        presence: Optional[PresenceArtifact] = None,
    ) -> MarketingArtifact:
        """
        Analyze marketing and conversion mechanics.

        Never raises; a failure yields the empty artifact marked failed.
        """
        identity = identity or IdentityArtifact()
        website = website or WebsiteData()
        url = website.url or identity.url
        mode = self.select_mode(identity, website)
        if mode is None:
            logger.warning("[Phase3] No website content or identity provided")
            return self.empty_artifact(url=url)

        if mode == "full":
            operation = self._analyze_website(identity, website, presence, url)
        else:
            operation = self._generate_from_description(identity, website, presence, url)

        result = await self._run(operation)
        artifact = self._finalize(result, url=url, extraction_mode=mode)
        logger.info(
            f"[Phase3] Analysis complete ({mode} mode). CTAs: {artifact.total_ctas}, "
            f"confidence: {artifact.overall_confidence:.2f}"
        )
        return artifact

    # =========================================================================
    # FULL MODE
    # =========================================================================

    async def _analyze_website(
        self,
        identity: IdentityArtifact,
        website: WebsiteData,
        presence: Optional[PresenceArtifact],
        url: str,
    ) -> MarketingArtifact:
        logger.info(f"[Phase3] Starting marketing analysis for: {url or 'unknown url'}")

        signals = scan_conversion_signals(website.html)
        prompt = self._build_analysis_prompt(identity, website, signals, presence, url)

        result = await self._complete(prompt)
        artifact = self._validate(result, url=url, extraction_mode="full")

        self._merge_tracking(artifact, signals)
        artifact.metadata["detected_elements"] = signals.summary()
        return self._finish(artifact)

    def _build_analysis_prompt(
        self,
        identity: IdentityArtifact,
        website: WebsiteData,
        signals: ConversionSignals,
        presence: Optional[PresenceArtifact],
        url: str,
    ) -> str:
        tracking = signals.tracking
        ad_lines = "\n".join(f"- {p['platform']}: {p['id']}" for p in tracking.ad_platform_ids) or "None detected"
        cta_lines = "\n".join(
            f"[{i}] Type: {c.type}, Text: \"{c.text}\", Target: {c.target or 'N/A'}"
            for i, c in enumerate(signals.ctas[:MAX_PROMPT_CTAS], start=1)
        ) or "None detected"
        form_lines = "\n".join(
            f"Form {i}:\n"
            f"- Action: {f.action or 'N/A'}\n"
            f"- Fields: {', '.join(f.field_labels()) or 'N/A'}\n"
            f"- Has phone: {f.has_phone}, has email: {f.has_email}, has company: {f.has_company}\n"
            f"- Submit button: \"{f.submit_text or 'Submit'}\""
            for i, f in enumerate(signals.forms, start=1)
        ) or "No forms detected"

        return f"""
BUSINESS: {identity.business_name or 'Unknown Business'}
URL: {url or 'N/A'}

=== DETECTED TRACKING & ANALYTICS ===
Tags: {', '.join(tracking.tags) or 'None'}
Ad platforms:
{ad_lines}

=== CTA CANDIDATES ===
{cta_lines}

=== FORMS ===
{form_lines}

=== CHAT WIDGETS ===
Detected: {signals.chat.detected}
Vendors: {', '.join(signals.chat.vendors) or 'None'}

=== BOOKING / SCHEDULING TOOLS ===
Detected: {signals.booking.detected}
Tools: {', '.join(signals.booking.tools) or 'None'}
Links: {', '.join(signals.booking.links) or 'N/A'}

=== PAGE CONTENT ===
{truncate(website.text_content, PROMPT_TEXT_LIMIT)}

=== EXTERNAL PRESENCE ===
{self._presence_summary(presence)}

=== TASK ===
1. Identify marketing channels from the evidence
2. Map every CTA with type, text, target and confidence
3. Model engagement paths from landing to conversion
4. Classify the sales process
5. Identify entry offers, core product, upsells and cross-sells
6. Return ONLY the JSON object following the schema"""

    @staticmethod
    def _presence_summary(presence: Optional[PresenceArtifact]) -> str:
        if presence is None:
            return "Not available"
        platforms = ", ".join(p.platform for p in presence.profiles.social if p.platform) or "None found"
        return (
            f"- Profiles discovered: {presence.profiles_discovered}\n"
            f"- Social platforms: {platforms}\n"
            f"- GBP found: {presence.profiles.google_business_profile is not None}"
        )

    @staticmethod
    def _merge_tracking(artifact: MarketingArtifact, signals: ConversionSignals) -> None:
        """Union detected tags and ad ids into the model output, deduplicated."""
        marketing = artifact.marketing

        tags: List[str] = []
        for tag in marketing.tracking_tags + signals.tracking.tags:
            if tag not in tags:
                tags.append(tag)
        marketing.tracking_tags = tags

        seen = set()
        ad_ids: List[AdPlatformId] = []
        detected = [AdPlatformId(**entry) for entry in signals.tracking.ad_platform_ids]
        for entry in marketing.ad_platform_ids + detected:
            key = (entry.platform.lower(), entry.id)
            if key in seen:
                continue
            seen.add(key)
            ad_ids.append(entry)
        marketing.ad_platform_ids = ad_ids

    # =========================================================================
    # DESCRIPTION MODE
    # =========================================================================

    async def _generate_from_description(
        self,
        identity: IdentityArtifact,
        website: WebsiteData,
        presence: Optional[PresenceArtifact],
        url: str,
    ) -> MarketingArtifact:
        name = identity.business_name or "Unknown Business"
        logger.info(f"[Phase3] Generating marketing analysis from description for: {name}")

        offerings = ", ".join(o.name for o in identity.primary_offerings[:7] if o.name) or "Not specified"
        prompt = f"""Estimate a marketing and conversion analysis for the business below.
No page content is available; base it on what businesses of this type typically do.

BUSINESS:
- Name: {name}
- Category: {identity.category or 'Unknown'}
- Offerings: {offerings}
- Description: {truncate(website.text_content, 1000) or 'N/A'}

EXTERNAL PRESENCE:
{self._presence_summary(presence)}

TASK:
1. Likely marketing channels
2. Typical tracking and analytics tools for this business type
3. Realistic engagement paths
4. Most likely sales process type
5. The product / service journey

Keep confidence scores moderate; these are estimates.
Return ONLY the JSON object following the schema."""

        result = await self._complete(prompt)
        artifact = self._validate(result, url=url, extraction_mode="description")
        artifact.metadata["extraction_method"] = "llm_description_estimate"
        return self._finish(artifact)

    # =========================================================================
    # FINALIZATION
    # =========================================================================

    @staticmethod
    def _finish(artifact: MarketingArtifact) -> MarketingArtifact:
        artifact.total_ctas = count_ctas(artifact)
        artifact.overall_confidence = calculate_marketing_confidence(artifact)
        return artifact
