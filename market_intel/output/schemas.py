"""
Phase Artifact Schemas

Pydantic models for the normalized output of each pipeline phase.

Every field has a default, so an artifact built from partial or malformed
model output is still structurally complete. Before-validators clamp
confidences to [0, 1] and coerce stray scalars, dropping anything that
cannot be interpreted rather than failing the whole artifact.
"""

import math
from typing import Annotated, Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field

from market_intel.utils.helpers import clamp, utc_now_iso


# ============================================================================
# LENIENT COERCION
# ============================================================================

def _coerce_confidence(value: Any) -> float:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number):
        return 0.0
    return clamp(number)


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return ""


def _coerce_optional_text(value: Any) -> Optional[str]:
    text = _coerce_text(value).strip()
    return text or None


def _coerce_optional_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).replace(",", "")) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _coerce_optional_int(value: Any) -> Optional[int]:
    number = _coerce_optional_float(value)
    return int(number) if number is not None else None


def _coerce_int(value: Any) -> int:
    return _coerce_optional_int(value) or 0


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "y", "1")
    return False


def _coerce_str_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, (list, tuple)):
        return []
    return [str(item) for item in value if isinstance(item, (str, int, float)) and str(item).strip()]


def _coerce_dict_list(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, (list, tuple)):
        return []
    return [item for item in value if isinstance(item, dict)]


def _dict_or_empty(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _dict_or_none(value: Any) -> Optional[Dict[str, Any]]:
    return value if isinstance(value, dict) and value else None


Confidence = Annotated[float, BeforeValidator(_coerce_confidence)]
Text = Annotated[str, BeforeValidator(_coerce_text)]
OptionalText = Annotated[Optional[str], BeforeValidator(_coerce_optional_text)]
OptionalNumber = Annotated[Optional[float], BeforeValidator(_coerce_optional_float)]
OptionalInt = Annotated[Optional[int], BeforeValidator(_coerce_optional_int)]
Count = Annotated[int, BeforeValidator(_coerce_int)]
Flag = Annotated[bool, BeforeValidator(_coerce_bool)]
StrList = Annotated[List[str], BeforeValidator(_coerce_str_list)]
DictItems = BeforeValidator(_coerce_dict_list)
Nested = BeforeValidator(_dict_or_empty)
OptionalNested = BeforeValidator(_dict_or_none)


class SchemaModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, protected_namespaces=())


# ============================================================================
# SHARED COMPONENTS
# ============================================================================

class EvidenceRef(SchemaModel):
    """Audit reference attached to an extracted fact."""
    source_url: Text = Field(default="", validation_alias=AliasChoices("source_url", "url", "source"))
    selector: OptionalText = None
    method: Text = ""
    confidence: Confidence = 0.0


Evidence = Annotated[List[EvidenceRef], DictItems]


class LocationField(SchemaModel):
    country: Text = ""
    city: Text = ""
    confidence: Confidence = 0.0
    sources: Evidence = Field(default_factory=list)


class PhaseArtifact(SchemaModel):
    """Fields common to every phase artifact."""
    phase: str = ""
    extracted_at: str = Field(default_factory=utc_now_iso)
    overall_confidence: Confidence = 0.0
    extraction_status: Optional[str] = None
    extraction_error: Optional[str] = None
    model_used: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return self.extraction_status == "failed"

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


# ============================================================================
# PHASE 1: IDENTITY EXTRACTION
# ============================================================================

PROOF_ASSET_TYPES = ("testimonial", "case_study", "award", "cert")


def _coerce_proof_type(value: Any) -> str:
    text = _coerce_text(value).strip().lower().replace("-", "_").replace(" ", "_")
    if text in ("certification", "certificate"):
        return "cert"
    return text if text in PROOF_ASSET_TYPES else "testimonial"


class NameField(SchemaModel):
    value: Text = ""
    confidence: Confidence = 0.0
    sources: Evidence = Field(default_factory=list)


class CategoryField(SchemaModel):
    value: Text = ""
    taxonomy: Text = ""
    confidence: Confidence = 0.0
    sources: Evidence = Field(default_factory=list)


class BusinessIdentity(SchemaModel):
    name: Annotated[NameField, Nested] = Field(default_factory=NameField)
    location: Annotated[LocationField, Nested] = Field(default_factory=LocationField)
    category: Annotated[CategoryField, Nested] = Field(default_factory=CategoryField)


class Offering(SchemaModel):
    name: Text = ""
    rank: OptionalInt = None
    confidence: Confidence = 0.0
    source: Text = ""
    excerpt: Text = ""


class ProofAsset(SchemaModel):
    type: Annotated[str, BeforeValidator(_coerce_proof_type)] = "testimonial"
    excerpt: Text = ""
    location_url: Text = ""
    selector: Text = ""
    confidence: Confidence = 0.0


class Package(SchemaModel):
    name: Text = ""
    inclusions: StrList = Field(default_factory=list)
    guarantee: Text = ""
    timeline: Text = ""
    confidence: Confidence = 0.0


class OfferStructure(SchemaModel):
    packages: Annotated[List[Package], DictItems] = Field(default_factory=list)


class IdentityEvidence(SchemaModel):
    snapshots: StrList = Field(default_factory=list)
    selectors: Annotated[Dict[str, Any], Nested] = Field(default_factory=dict)


class IdentityArtifact(PhaseArtifact):
    """Phase 1 output: who the business is and what it sells."""
    phase: str = "phase1_website_extraction"
    url: Text = ""
    extraction_mode: Optional[str] = None
    business_identity: Annotated[BusinessIdentity, Nested] = Field(default_factory=BusinessIdentity)
    primary_offerings: Annotated[List[Offering], DictItems] = Field(default_factory=list)
    proof_assets: Annotated[List[ProofAsset], DictItems] = Field(default_factory=list)
    offer_structure: Annotated[OfferStructure, Nested] = Field(default_factory=OfferStructure)
    evidence: Annotated[IdentityEvidence, Nested] = Field(default_factory=IdentityEvidence)

    @property
    def business_name(self) -> str:
        return self.business_identity.name.value.strip()

    @property
    def category(self) -> str:
        return self.business_identity.category.value.strip()

    @property
    def has_identity(self) -> bool:
        return bool(self.business_name or self.category or self.primary_offerings)


# ============================================================================
# PHASE 2: EXTERNAL PRESENCE
# ============================================================================

class SocialProfile(SchemaModel):
    platform: Text = ""
    profile_url: Text = Field(default="", validation_alias=AliasChoices("profile_url", "url"))
    title: Text = ""
    snippet: Text = ""
    followers: OptionalNumber = None
    engagement: Text = ""
    last_post_date: Text = ""
    post_count_30_days: OptionalInt = None
    confidence: Confidence = 0.0
    verified: Flag = False


class GoogleBusinessProfile(SchemaModel):
    rating: OptionalNumber = None
    review_count: OptionalInt = Field(default=None, validation_alias=AliasChoices("review_count", "reviews"))
    categories: StrList = Field(default_factory=list)
    services: StrList = Field(default_factory=list)
    profile_url: Text = ""
    address: Text = ""
    confidence: Confidence = 0.0


class PlayStoreListing(SchemaModel):
    app_name: Text = ""
    rating: OptionalNumber = None
    review_count: OptionalInt = None
    categories: StrList = Field(default_factory=list)
    store_url: Text = ""
    confidence: Confidence = 0.0


class B2BListing(SchemaModel):
    platform: Text = ""
    profile_url: Text = Field(default="", validation_alias=AliasChoices("profile_url", "url"))
    title: Text = ""
    snippet: Text = ""
    rating: OptionalNumber = None
    review_count: OptionalInt = Field(default=None, validation_alias=AliasChoices("review_count", "reviews"))
    confidence: Confidence = 0.0


class PresenceProfiles(SchemaModel):
    social: Annotated[List[SocialProfile], DictItems] = Field(default_factory=list)
    google_business_profile: Annotated[Optional[GoogleBusinessProfile], OptionalNested] = None
    play_store: Annotated[Optional[PlayStoreListing], OptionalNested] = None
    b2b_listings: Annotated[List[B2BListing], DictItems] = Field(default_factory=list)

    @property
    def count(self) -> int:
        return (
            len(self.social)
            + (1 if self.google_business_profile else 0)
            + (1 if self.play_store else 0)
            + len(self.b2b_listings)
        )


class CommentTheme(SchemaModel):
    theme: Text = ""
    frequency: Text = ""
    sentiment: Text = "neutral"
    source: Text = ""
    confidence: Confidence = 0.0


class RecentPosts(SchemaModel):
    top_comment_themes: Annotated[List[CommentTheme], DictItems] = Field(default_factory=list)
    top_caption_themes: StrList = Field(default_factory=list)


class SentimentDistribution(SchemaModel):
    positive: Confidence = 0.0
    neutral: Confidence = 0.0
    negative: Confidence = 0.0

    def normalized(self) -> "SentimentDistribution":
        """Rescale so the three fractions sum to 1 (all-zero stays all-zero)."""
        total = self.positive + self.neutral + self.negative
        if total <= 0:
            return SentimentDistribution()
        return SentimentDistribution(
            positive=self.positive / total,
            neutral=self.neutral / total,
            negative=self.negative / total,
        )


class SocialPerception(SchemaModel):
    last_30_posts: Annotated[RecentPosts, Nested] = Field(default_factory=RecentPosts)
    sentiment_distribution: Annotated[SentimentDistribution, Nested] = Field(
        default_factory=SentimentDistribution
    )


class OwnerResponseBehavior(SchemaModel):
    replies_exist: Flag = False
    reply_rate_estimate: Confidence = 0.0
    median_response_time_hours: OptionalNumber = None
    tone_patterns: StrList = Field(default_factory=list)


class BusinessRef(SchemaModel):
    name: Text = ""
    website: Text = ""
    location: Annotated[LocationField, Nested] = Field(default_factory=LocationField)


class PresenceArtifact(PhaseArtifact):
    """Phase 2 output: where the business shows up and how it is perceived."""
    phase: str = "phase2_external_presence"
    data_source: str = "none"
    business: Annotated[BusinessRef, Nested] = Field(default_factory=BusinessRef)
    profiles: Annotated[PresenceProfiles, Nested] = Field(default_factory=PresenceProfiles)
    social_perception: Annotated[SocialPerception, Nested] = Field(default_factory=SocialPerception)
    owner_response_behavior: Annotated[OwnerResponseBehavior, Nested] = Field(
        default_factory=OwnerResponseBehavior
    )
    evidence: Evidence = Field(default_factory=list)
    profiles_discovered: Count = 0
    note: Optional[str] = None


# ============================================================================
# PHASE 3: MARKETING & CONVERSION
# ============================================================================

SALES_PROCESS_TYPES = ("demo-led", "product-led", "consultative", "rfp", "hybrid")


def _coerce_sales_type(value: Any) -> Optional[str]:
    text = _coerce_text(value).strip().lower().replace("_", "-").replace(" ", "-")
    return text if text in SALES_PROCESS_TYPES else None


class MarketingChannel(SchemaModel):
    channel: Text = ""
    evidence: Evidence = Field(default_factory=list)
    confidence: Confidence = 0.0


class AdPlatformId(SchemaModel):
    platform: Text = ""
    id: Text = ""


class CallToAction(SchemaModel):
    type: Text = ""
    selector: Text = ""
    text: Text = ""
    target: Text = ""
    confidence: Confidence = 0.0


class LandingPage(SchemaModel):
    url: Text = ""
    offer_headline: Text = ""
    offer_summary: Text = ""
    primary_ctas: Annotated[List[CallToAction], DictItems] = Field(default_factory=list)
    supporting_ctas: Annotated[List[CallToAction], DictItems] = Field(default_factory=list)
    evidence: Evidence = Field(default_factory=list)


class EngagementStep(SchemaModel):
    step: Text = ""
    action: Text = ""
    cta_type: Text = ""
    fields: StrList = Field(default_factory=list)


class EngagementPath(SchemaModel):
    path_id: Text = ""
    steps: Annotated[List[EngagementStep], DictItems] = Field(default_factory=list)
    probability: Confidence = 0.0
    confidence: Confidence = 0.0


class SalesProcess(SchemaModel):
    type: Annotated[Optional[str], BeforeValidator(_coerce_sales_type)] = None
    inbound: Text = ""
    outbound: Text = ""
    evidence: StrList = Field(default_factory=list)


class JourneyOffer(SchemaModel):
    name: Text = ""
    trigger: Text = ""
    placement: Text = ""
    evidence: StrList = Field(default_factory=list)


class ProductJourney(SchemaModel):
    entry_offers: StrList = Field(default_factory=list)
    core_product: Text = ""
    upsells: Annotated[List[JourneyOffer], DictItems] = Field(default_factory=list)
    cross_sells: Annotated[List[JourneyOffer], DictItems] = Field(default_factory=list)


class MarketingSummary(SchemaModel):
    channels: Annotated[List[MarketingChannel], DictItems] = Field(default_factory=list)
    tracking_tags: StrList = Field(default_factory=list)
    ad_platform_ids: Annotated[List[AdPlatformId], DictItems] = Field(default_factory=list)


class MarketingArtifact(PhaseArtifact):
    """Phase 3 output: how the business attracts and converts customers."""
    phase: str = "phase3_marketing_conversion"
    url: Text = ""
    extraction_mode: Optional[str] = None
    marketing: Annotated[MarketingSummary, Nested] = Field(default_factory=MarketingSummary)
    landing_pages: Annotated[List[LandingPage], DictItems] = Field(default_factory=list)
    engagement_paths: Annotated[List[EngagementPath], DictItems] = Field(default_factory=list)
    sales_process: Annotated[SalesProcess, Nested] = Field(default_factory=SalesProcess)
    product_journey: Annotated[ProductJourney, Nested] = Field(default_factory=ProductJourney)
    total_ctas: Count = 0


# ============================================================================
# PHASE 4: COMPETITOR ANALYSIS
# ============================================================================

WHY_PICKED_REASONS = (
    "serp_competitor",
    "local_category",
    "direct_offering_overlap",
    "target_audience_overlap",
    "market_leader",
    "emerging_competitor",
)


def _coerce_reasons(value: Any) -> List[str]:
    reasons = []
    for item in _coerce_str_list(value):
        reason = item.strip().lower().replace(" ", "_").replace("-", "_")
        if reason in WHY_PICKED_REASONS and reason not in reasons:
            reasons.append(reason)
    return reasons


class OfferHighlight(SchemaModel):
    text: Text = ""
    evidence: Annotated[EvidenceRef, Nested] = Field(default_factory=EvidenceRef)


class GbpSnapshot(SchemaModel):
    found: Flag = False
    profile_url: Text = ""
    rating: OptionalNumber = None
    review_count: OptionalInt = None
    primary_category: Text = ""
    services: StrList = Field(default_factory=list)
    confidence: Confidence = 0.0
    extraction_method: Text = ""


class KeywordPosition(SchemaModel):
    keyword: Text = ""
    position: OptionalNumber = None


class SeoMetrics(SchemaModel):
    avg_serp_rank: OptionalNumber = None
    top_keywords: Annotated[List[KeywordPosition], DictItems] = Field(default_factory=list)
    est_monthly_traffic: OptionalNumber = None


class Competitor(SchemaModel):
    name: Text = ""
    domain: Text = ""
    rank: Count = 0
    why_picked: Annotated[List[str], BeforeValidator(_coerce_reasons)] = Field(default_factory=list)
    score: Confidence = 0.0
    positioning: Text = ""
    primary_offerings: StrList = Field(default_factory=list)
    offer_highlights: Annotated[List[OfferHighlight], DictItems] = Field(default_factory=list)
    gbp_snapshot: Annotated[GbpSnapshot, Nested] = Field(default_factory=GbpSnapshot)
    seo_metrics: Annotated[SeoMetrics, Nested] = Field(default_factory=SeoMetrics)
    social_presence: Annotated[List[SocialProfile], DictItems] = Field(default_factory=list)
    evidence: Evidence = Field(default_factory=list)


class CompetitorArtifact(PhaseArtifact):
    """Phase 4 output: the top competitors with quick facts."""
    phase: str = "phase4_competitor_analysis"
    business_id: Text = "unknown"
    seed_keywords: StrList = Field(default_factory=list)
    competitors: Annotated[List[Competitor], DictItems] = Field(default_factory=list)
    candidates_considered: Count = 0

