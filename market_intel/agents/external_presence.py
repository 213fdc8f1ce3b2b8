"""
External Presence Agent (Phase 2)

Discovers where a business shows up outside its website and how it is
perceived there.

Data sources, in order of trust:
1. Web search (one query per platform) -> data_source "web_search"
2. Pre-fetched external data and profile links found in the page HTML,
   synthesized by the model -> data_source "provided_data"
3. Generative estimation from category priors -> data_source "llm_estimation"
   (explicitly lower trust; confidence capped)
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from market_intel.context.website_signals import DiscoveredProfiles, discover_profile_links
from market_intel.integrations.serper import SearchResponse, SerperClient
from market_intel.models import ExternalData, OwnerReply, WebsiteData
from market_intel.output.schemas import (
    BusinessRef,
    IdentityArtifact,
    PresenceArtifact,
    PresenceProfiles,
)
from market_intel.utils.helpers import mean, median, truncate

from .base import BasePhaseAgent

logger = logging.getLogger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

SEARCH_CONFIDENCE = 0.85
GBP_SEARCH_CONFIDENCE = 0.95
REVIEW_THEME_CONFIDENCE = 0.7
ESTIMATION_CONFIDENCE_CAP = 0.5
MAX_CONTENT_ITEMS = 50
MAX_REPLY_TEXTS = 20
MAX_RESPONSE_HOURS = 720

B2B_PLATFORMS = {"g2.com": "G2", "capterra.com": "Capterra", "clutch.co": "Clutch"}

PRESENCE_OUTPUT_SCHEMA = {
    "profiles": {
        "social": [
            {"platform": "instagram|linkedin|facebook|x|youtube", "profile_url": "string", "followers": "number", "last_post_date": "string", "post_count_30_days": "number", "confidence": "0.0-1.0"}
        ],
        "google_business_profile": {"rating": "number", "review_count": "number", "categories": ["string"], "services": ["string"], "profile_url": "string", "confidence": "0.0-1.0"},
        "play_store": {"app_name": "string", "rating": "number", "review_count": "number", "categories": ["string"], "store_url": "string", "confidence": "0.0-1.0"},
        "b2b_listings": [{"platform": "Clutch|G2|Capterra", "profile_url": "string", "rating": "number", "review_count": "number", "confidence": "0.0-1.0"}],
    },
    "social_perception": {
        "last_30_posts": {
            "top_comment_themes": [{"theme": "string", "frequency": "string", "sentiment": "positive|neutral|negative", "confidence": "0.0-1.0"}],
            "top_caption_themes": ["string"],
        },
        "sentiment_distribution": {"positive": "0.0-1.0", "neutral": "0.0-1.0", "negative": "0.0-1.0"},
    },
    "owner_response_behavior": {
        "replies_exist": "boolean",
        "reply_rate_estimate": "0.0-1.0",
        "median_response_time_hours": "number",
        "tone_patterns": ["empathetic|professional|defensive|templated"],
    },
    "evidence": [{"source_url": "string", "method": "api|scrape|search", "confidence": "0.0-1.0"}],
}

SYSTEM_PROMPT = """You are an online presence analyst. Analyze external presence data for a business: profiles, social perception, engagement and how the owner responds to reviews.

RULES:
1. Return ONLY a valid JSON object matching the schema below
2. Base conclusions on the provided evidence only
3. Give confidence scores between 0.0 and 1.0 based on data quality
4. sentiment_distribution fractions must sum to 1.0

SENTIMENT:
- positive: praise, recommendations, satisfaction
- neutral: questions, factual statements, mixed opinions
- negative: complaints, criticism, frustration

OWNER TONE:
- empathetic: acknowledges feelings, apologizes, offers solutions
- professional: formal, addresses issues directly
- defensive: justifies, deflects blame, argues
- templated: generic copy-paste replies

OUTPUT JSON SCHEMA:
""" + json.dumps(PRESENCE_OUTPUT_SCHEMA, indent=2)

ESTIMATION_SYSTEM_PROMPT = "You are an online presence analyst. Return ONLY a valid JSON object, no explanations."

ESTIMATION_NOTE = "Estimated from category priors, not observed data. Configure SERPER_API_KEY for real web search."


# ============================================================================
# SEARCH RESULTS
# ============================================================================

@dataclass
class ProfileSearchResults:
    """Profiles and review snippets found by web search."""
    social: List[Dict[str, Any]] = field(default_factory=list)
    reviews: List[Dict[str, Any]] = field(default_factory=list)
    google_business_profile: Optional[Dict[str, Any]] = None
    b2b_listings: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def has_profiles(self) -> bool:
        return bool(self.social or self.google_business_profile or self.b2b_listings)


def _first_link(response: SearchResponse, *needles: str):
    for result in response.organic:
        if any(needle in result.link for needle in needles):
            return result
    return None


def _social_entry(platform: str, result, confidence: float) -> Dict[str, Any]:
    return {
        "platform": platform,
        "profile_url": result.link,
        "title": result.title,
        "snippet": result.snippet,
        "confidence": confidence,
        "verified": True,
    }


# ============================================================================
# RESPONSE BEHAVIOR
# ============================================================================

def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def response_hours(replies: List[OwnerReply]) -> List[float]:
    """Hours between review and owner reply, kept when within 30 days."""
    hours = []
    for reply in replies:
        reviewed = _parse_timestamp(reply.review_timestamp)
        replied = _parse_timestamp(reply.reply_timestamp)
        if reviewed is None or replied is None:
            continue
        try:
            delta = (replied - reviewed).total_seconds() / 3600
        except TypeError:
            continue
        if 0 < delta < MAX_RESPONSE_HOURS:
            hours.append(delta)
    return hours


@dataclass
class ResponseBehavior:
    total_reviews: int = 0
    replies_found: int = 0
    reply_texts: List[str] = field(default_factory=list)
    response_hours: List[float] = field(default_factory=list)

    @property
    def reply_rate(self) -> float:
        if not self.total_reviews:
            return 0.0
        return min(1.0, self.replies_found / self.total_reviews)

    @property
    def median_hours(self) -> Optional[float]:
        return median(self.response_hours)


def analyze_response_behavior(data: ExternalData) -> ResponseBehavior:
    return ResponseBehavior(
        total_reviews=len(data.reviews),
        replies_found=len(data.owner_replies),
        reply_texts=[r.text for r in data.owner_replies if len(r.text) > 5][:MAX_REPLY_TEXTS],
        response_hours=response_hours(data.owner_replies),
    )


# ============================================================================
# CONFIDENCE
# ============================================================================

def calculate_presence_confidence(artifact: PresenceArtifact) -> float:
    factors = []
    if artifact.profiles_discovered > 0:
        factors.append(min(1.0, artifact.profiles_discovered * 0.15 + 0.4))
    if artifact.social_perception.last_30_posts.top_comment_themes:
        factors.append(0.7)
    if artifact.owner_response_behavior.replies_exist:
        factors.append(0.65)
    if artifact.evidence:
        factors.append(mean(e.confidence for e in artifact.evidence))
    return mean(factors) if factors else 0.0


# ============================================================================
# AGENT
# ============================================================================

class ExternalPresenceAgent(BasePhaseAgent[PresenceArtifact]):
    """Phase 2: external profiles, social perception and owner response behavior."""

    artifact_class = PresenceArtifact

    def __init__(self, client, search_client: Optional[SerperClient] = None):
        """
        Args:
            client: ModelClient instance for completions
            search_client: Web search client (optional; absent means no search)
        """
        super().__init__(client)
        self.search_client = search_client

    @property
    def phase_id(self) -> str:
        return "phase2_external_presence"

    @property
    def display_name(self) -> str:
        return "Phase2"

    @property
    def system_prompt(self) -> str:
        return SYSTEM_PROMPT

    async def analyze(
        self,
        identity: Optional[IdentityArtifact],
        external_data: Optional[ExternalData] = None,
        website: Optional[WebsiteData] = None,
    ) -> PresenceArtifact:
        """
        Analyze external presence for the identified business.

        Never raises; a failure yields the empty artifact marked failed.
        """
        identity = identity or IdentityArtifact()
        website = website or WebsiteData()
        context = {"business": self._business_ref(identity, website).model_dump()}

        has_input = (
            identity.business_name
            or identity.primary_offerings
            or identity.url
            or website.url
            or website.text_content.strip()
        )
        if not has_input:
            logger.warning("[Phase2] No business identity provided")
            return self.empty_artifact(**context)

        result = await self._run(self._analyze(identity, external_data or ExternalData(), website))
        artifact = self._finalize(result, **context)
        logger.info(
            f"[Phase2] Analysis complete ({artifact.data_source}). "
            f"Profiles: {artifact.profiles_discovered}, confidence: {artifact.overall_confidence:.2f}"
        )
        return artifact

    @staticmethod
    def _business_ref(identity: IdentityArtifact, website: WebsiteData) -> BusinessRef:
        return BusinessRef(
            name=identity.business_name,
            website=identity.url or website.url,
            location=identity.business_identity.location,
        )

    async def _analyze(
        self,
        identity: IdentityArtifact,
        external_data: ExternalData,
        website: WebsiteData,
    ) -> PresenceArtifact:
        business = self._business_ref(identity, website)

        search_results = await self._search_for_profiles(identity.business_name, identity.category)
        if search_results is not None and search_results.has_profiles:
            logger.info("[Phase2] Using web search results")
            return self._build_from_search(search_results, business)

        discovered = discover_profile_links(website.html)
        if not external_data.is_empty or not discovered.is_empty:
            return await self._synthesize(identity, business, external_data, discovered)

        logger.warning("[Phase2] No search results or provided data - using estimation (lower trust)")
        return await self._estimate(identity, business, website)

    # =========================================================================
    # WEB SEARCH
    # =========================================================================

    async def _search_for_profiles(self, name: str, category: str) -> Optional[ProfileSearchResults]:
        """Run one search per platform. Returns None when search is unavailable."""
        if self.search_client is None or not self.search_client.has_credentials:
            logger.warning("[Phase2] No search client configured - skipping web search")
            return None
        if not name:
            return None

        results = ProfileSearchResults()
        quoted = f'"{name}"'

        linkedin = await self.search_client.search(f"{quoted} site:linkedin.com/company")
        match = _first_link(linkedin, "linkedin.com/company")
        if match:
            results.social.append(_social_entry("LinkedIn", match, 0.9))

        twitter = await self.search_client.search(f"{quoted} site:twitter.com OR site:x.com")
        match = _first_link(twitter, "twitter.com", "//x.com", ".x.com")
        if match:
            results.social.append(_social_entry("Twitter/X", match, 0.9))

        facebook = await self.search_client.search(f"{quoted} site:facebook.com")
        match = _first_link(facebook, "facebook.com")
        if match:
            results.social.append(_social_entry("Facebook", match, SEARCH_CONFIDENCE))

        instagram = await self.search_client.search(f"{quoted} site:instagram.com")
        match = _first_link(instagram, "instagram.com")
        if match:
            results.social.append(_social_entry("Instagram", match, SEARCH_CONFIDENCE))

        reviews = await self.search_client.search(f"{quoted} reviews rating")
        results.reviews = [
            {"source": r.link, "title": r.title, "snippet": r.snippet} for r in reviews.organic[:3]
        ]
        panel = reviews.knowledge_graph
        if panel:
            results.google_business_profile = {
                "rating": panel.get("rating"),
                "review_count": panel.get("ratingCount") or panel.get("reviewCount"),
                "categories": [panel["type"]] if panel.get("type") else [],
                "address": panel.get("address") or "",
                "profile_url": panel.get("website") or "",
                "confidence": GBP_SEARCH_CONFIDENCE,
            }

        listings_query = " ".join(part for part in (quoted, category, "G2 OR Capterra OR Clutch") if part)
        listings = await self.search_client.search(listings_query)
        for result in listings.organic:
            platform = next((label for host, label in B2B_PLATFORMS.items() if host in result.link), None)
            if platform:
                results.b2b_listings.append({
                    "platform": platform,
                    "profile_url": result.link,
                    "title": result.title,
                    "snippet": result.snippet,
                    "confidence": SEARCH_CONFIDENCE,
                })

        logger.info(
            f"[Phase2] Web search complete. Found: {len(results.social)} social, "
            f"{len(results.b2b_listings)} B2B listings, GBP: {bool(results.google_business_profile)}"
        )
        return results

    def _build_from_search(self, results: ProfileSearchResults, business: BusinessRef) -> PresenceArtifact:
        evidence = [
            {"source_url": p["profile_url"], "method": "search", "confidence": p["confidence"]}
            for p in results.social + results.b2b_listings
        ]
        themes = [
            {
                "theme": truncate(r["snippet"], 100) or "Review found",
                "source": r["source"],
                "sentiment": "neutral",
                "confidence": REVIEW_THEME_CONFIDENCE,
            }
            for r in results.reviews
        ]
        artifact = PresenceArtifact.model_validate({
            "data_source": "web_search",
            "model_used": "serper.dev",
            "business": business.model_dump(),
            "profiles": {
                "social": results.social,
                "google_business_profile": results.google_business_profile,
                "b2b_listings": results.b2b_listings,
            },
            "social_perception": {"last_30_posts": {"top_comment_themes": themes}},
            "evidence": evidence,
        })
        artifact.profiles_discovered = artifact.profiles.count
        artifact.overall_confidence = SEARCH_CONFIDENCE
        return artifact

    # =========================================================================
    # PROVIDED DATA
    # =========================================================================

    @staticmethod
    def _merge(discovered: DiscoveredProfiles, provided: ExternalData) -> Dict[str, Any]:
        """Discovered profile links merged with provided data; provided wins per platform."""
        social = [dict(profile) for profile in discovered.social]
        for profile in provided.social:
            platform = str(profile.get("platform", "")).lower()
            existing = next((s for s in social if str(s.get("platform", "")).lower() == platform), None)
            if existing is not None:
                existing.update(profile)
            else:
                social.append(dict(profile))
        return {
            "social": social,
            "google_business_profile": discovered.google_business_profile or provided.google_business_profile,
            "play_store": discovered.play_store or provided.play_store,
            "b2b_listings": list(provided.b2b_listings),
        }

    @staticmethod
    def _content_items(data: ExternalData) -> List[Dict[str, Any]]:
        items = []
        for post in data.posts:
            items.append({"type": "post", "content": str(post.get("caption") or post.get("text") or "")})
        for comment in data.comments:
            items.append({"type": "comment", "content": str(comment.get("text") or comment.get("content") or "")})
        for review in data.reviews:
            items.append({
                "type": "review",
                "content": str(review.get("text") or review.get("content") or ""),
                "rating": review.get("rating"),
            })
        return [item for item in items if len(item["content"]) > 10][:MAX_CONTENT_ITEMS]

    async def _synthesize(
        self,
        identity: IdentityArtifact,
        business: BusinessRef,
        external_data: ExternalData,
        discovered: DiscoveredProfiles,
    ) -> PresenceArtifact:
        logger.info(f"[Phase2] Synthesizing provided data for: {business.name or 'unknown business'}")

        merged = self._merge(discovered, external_data)
        content = self._content_items(external_data)
        behavior = analyze_response_behavior(external_data)

        prompt = self._build_analysis_prompt(business, merged, content, behavior)
        result = await self._complete(prompt)
        artifact = self._validate(result, business=business.model_dump())
        artifact.data_source = "provided_data"

        # Model may drop profiles it was given
        if not artifact.profiles.social and merged["social"]:
            artifact.profiles = PresenceProfiles.model_validate({**artifact.profiles.model_dump(), "social": merged["social"]})

        if behavior.total_reviews:
            artifact.owner_response_behavior.replies_exist = behavior.replies_found > 0
            artifact.owner_response_behavior.reply_rate_estimate = behavior.reply_rate
        if behavior.median_hours is not None:
            artifact.owner_response_behavior.median_response_time_hours = behavior.median_hours

        artifact.metadata["data_sources"] = {
            "social_profiles": len(merged["social"]),
            "posts_analyzed": len(external_data.posts),
            "comments_analyzed": len(external_data.comments),
            "reviews_analyzed": len(external_data.reviews),
        }
        return self._finish(artifact)

    def _build_analysis_prompt(
        self,
        business: BusinessRef,
        merged: Dict[str, Any],
        content: List[Dict[str, Any]],
        behavior: ResponseBehavior,
    ) -> str:
        social_lines = "\n".join(
            f"- {s.get('platform', 'unknown')}: {s.get('profile_url') or s.get('url') or 'N/A'} "
            f"(followers: {s.get('followers') or 'unknown'})"
            for s in merged["social"]
        ) or "None found"
        b2b_lines = "\n".join(
            f"- {l.get('platform', 'unknown')}: {l.get('profile_url') or l.get('url') or 'N/A'}"
            for l in merged["b2b_listings"]
        ) or "None found"
        content_lines = "\n\n".join(
            f"[{i}] ({item['type']}{', rating: ' + str(item['rating']) if item.get('rating') else ''}): "
            f"\"{truncate(item['content'], 200)}\""
            for i, item in enumerate(content[:30], start=1)
        ) or "None collected"
        reply_lines = "\n\n".join(
            f"[{i}]: \"{truncate(text, 150)}\"" for i, text in enumerate(behavior.reply_texts[:10], start=1)
        ) or "None collected"
        median_hours = f"{behavior.median_hours:.1f} hours" if behavior.median_hours is not None else "Unknown"
        location = business.location

        return f"""
BUSINESS IDENTITY:
- Name: {business.name or 'Unknown Business'}
- Website: {business.website or 'N/A'}
- Location: {location.country or 'Unknown'}, {location.city}

=== DISCOVERED PROFILES ===
Social profiles:
{social_lines}

Google Business Profile:
{json.dumps(merged['google_business_profile'], indent=2) if merged['google_business_profile'] else 'Not found'}

Play Store:
{json.dumps(merged['play_store'], indent=2) if merged['play_store'] else 'Not found'}

B2B listings:
{b2b_lines}

=== SOCIAL CONTENT ===
Items collected: {len(content)}

{content_lines}

=== OWNER RESPONSE DATA ===
Reviews analyzed: {behavior.total_reviews}
Owner replies found: {behavior.replies_found}
Reply rate: {behavior.reply_rate * 100:.1f}%
Median response time: {median_hours}

Sample owner replies (for tone):
{reply_lines}

=== TASK ===
1. Summarize every discovered external profile
2. Extract social perception themes and the sentiment distribution
3. Evaluate owner response behavior and tone
4. Score confidence by evidence quality
5. Return ONLY the JSON object following the schema"""

    # =========================================================================
    # ESTIMATION
    # =========================================================================

    async def _estimate(
        self,
        identity: IdentityArtifact,
        business: BusinessRef,
        website: WebsiteData,
    ) -> PresenceArtifact:
        description = website.text_content or identity.category or "Unknown business"
        prompt = f"""Estimate the typical external presence of the business below.

This is an ESTIMATION from what businesses in this category usually have,
not an observation. Keep confidence scores low (0.5 or below).

BUSINESS:
- Name: {business.name or 'Unknown'}
- Category: {identity.category or 'Unknown'}
- Description: {truncate(description, 500)}

Include:
1. Social profiles (LinkedIn, X, Facebook, Instagram, YouTube) with estimated followers
2. A typical Google Business Profile rating and review count
3. B2B listings (G2, Capterra, Clutch) where applicable
4. Typical customer feedback themes and a sentiment distribution
5. Typical owner response behavior

Return ONLY a JSON object with this schema:
{json.dumps(PRESENCE_OUTPUT_SCHEMA, indent=2)}"""

        result = await self._complete(prompt, ESTIMATION_SYSTEM_PROMPT)
        artifact = self._validate(result, business=business.model_dump())
        artifact.data_source = "llm_estimation"
        artifact.note = ESTIMATION_NOTE

        artifact = self._finish(artifact)
        artifact.overall_confidence = min(ESTIMATION_CONFIDENCE_CAP, artifact.overall_confidence)
        return artifact

    # =========================================================================
    # FINALIZATION
    # =========================================================================

    @staticmethod
    def _finish(artifact: PresenceArtifact) -> PresenceArtifact:
        perception = artifact.social_perception
        perception.sentiment_distribution = perception.sentiment_distribution.normalized()
        artifact.profiles_discovered = artifact.profiles.count
        artifact.overall_confidence = calculate_presence_confidence(artifact)
        return artifact
