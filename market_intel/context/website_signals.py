"""
Website Signals

Deterministic signal extraction from a business website.

These are pattern-matching facts that do not depend on the model and are
treated as high-trust evidence:
1. Schema.org JSON-LD (first block)
2. Open Graph tags
3. <title> and meta description
4. Contact patterns (emails, phone numbers)
5. Social / Google Business / Play Store profile links

Content segmentation splits page text into the sections the identity
prompt cares about (hero, about, services, testimonials).
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


# =============================================================================
# PATTERNS
# =============================================================================

JSON_LD_PATTERN = re.compile(
    r'<script[^>]*type=["\']application/ld\+json["\'][^>]*>(.*?)</script>',
    re.IGNORECASE | re.DOTALL,
)
OPEN_GRAPH_PATTERN = re.compile(
    r'<meta\s+property=["\']og:(\w+)["\']\s+content=["\']([^"\']+)["\']',
    re.IGNORECASE,
)
TITLE_PATTERN = re.compile(r"<title[^>]*>([^<]+)</title>", re.IGNORECASE)
META_DESCRIPTION_PATTERN = re.compile(
    r'<meta\s+name=["\']description["\']\s+content=["\']([^"\']+)["\']',
    re.IGNORECASE,
)
EMAIL_PATTERN = re.compile(r"[\w.-]+@[\w.-]+\.\w+")
PHONE_PATTERN = re.compile(r"\+?\(?[0-9]{1,3}\)?[-\s.]?[0-9]{3}[-\s.]?[0-9]{4,6}")

SOCIAL_LINK_PATTERNS = [
    ("instagram", [r"instagram\.com/([a-zA-Z0-9_.]+)"]),
    ("linkedin", [r"linkedin\.com/company/([a-zA-Z0-9-]+)", r"linkedin\.com/in/([a-zA-Z0-9-]+)"]),
    ("facebook", [r"facebook\.com/([a-zA-Z0-9.]+)", r"(?<![a-z])fb\.com/([a-zA-Z0-9.]+)"]),
    ("x", [r"twitter\.com/([a-zA-Z0-9_]+)", r"(?<![a-z])x\.com/([a-zA-Z0-9_]+)"]),
    ("youtube", [r"youtube\.com/channel/([a-zA-Z0-9_-]+)", r"youtube\.com/(@?[a-zA-Z0-9_-]+)"]),
]
GBP_LINK_PATTERN = re.compile(
    r"maps\.google\.com/\?cid=(\d+)|google\.com/maps/place/([^\"'\s]+)",
    re.IGNORECASE,
)
PLAY_STORE_PATTERN = re.compile(
    r"play\.google\.com/store/apps/details\?id=([a-zA-Z0-9._]+)",
    re.IGNORECASE,
)

HERO_LINE_COUNT = 10
ABOUT_SEGMENT_CHARS = 500
SERVICES_SEGMENT_CHARS = 800
TESTIMONIALS_SEGMENT_CHARS = 600
CONTACT_PATTERN_LIMIT = 3


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class ContentSegments:
    """Heuristic sections of page text."""
    hero: str = ""
    about: str = ""
    services: str = ""
    testimonials: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "hero": self.hero,
            "about": self.about,
            "services": self.services,
            "testimonials": self.testimonials,
        }


@dataclass
class DiscoveredProfiles:
    """Profile links found directly in page HTML."""
    social: List[Dict[str, Any]] = field(default_factory=list)
    google_business_profile: Optional[Dict[str, Any]] = None
    play_store: Optional[Dict[str, Any]] = None

    @property
    def count(self) -> int:
        return len(self.social) + (1 if self.google_business_profile else 0) + (1 if self.play_store else 0)

    @property
    def is_empty(self) -> bool:
        return self.count == 0


@dataclass
class WebsiteSignals:
    """All deterministic signals extracted from one page."""
    schema_org: Optional[Any] = None
    open_graph: Dict[str, str] = field(default_factory=dict)
    meta_tags: Dict[str, str] = field(default_factory=dict)
    emails: List[str] = field(default_factory=list)
    phones: List[str] = field(default_factory=list)

    @property
    def schema_name(self) -> Optional[str]:
        return find_schema_name(self.schema_org)

    def signal_counts(self) -> Dict[str, Any]:
        return {
            "schema_org": self.schema_org is not None,
            "open_graph": bool(self.open_graph),
            "emails": len(self.emails),
            "phones": len(self.phones),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema_org": self.schema_org,
            "open_graph": self.open_graph,
            "meta_tags": self.meta_tags,
            "emails": self.emails,
            "phones": self.phones,
        }


# =============================================================================
# SIGNAL EXTRACTORS
# =============================================================================

def extract_json_ld(html: str) -> Optional[Any]:
    """
    Parse the first JSON-LD block in the page.

    Returns the decoded object or list, or None when absent or malformed.
    """
    if not html:
        return None
    match = JSON_LD_PATTERN.search(html)
    if not match:
        return None
    try:
        return json.loads(match.group(1).strip())
    except json.JSONDecodeError:
        logger.warning("[WebsiteSignals] Failed to parse Schema.org data")
        return None


def find_schema_name(data: Any) -> Optional[str]:
    """Return the ``name`` of the first schema object that has one."""
    if isinstance(data, dict):
        name = data.get("name")
        if isinstance(name, str) and name.strip():
            return name.strip()
        graph = data.get("@graph")
        if isinstance(graph, list):
            return find_schema_name(graph)
    elif isinstance(data, list):
        for item in data:
            name = find_schema_name(item)
            if name:
                return name
    return None


def extract_open_graph(html: str) -> Dict[str, str]:
    if not html:
        return {}
    return {key: value for key, value in OPEN_GRAPH_PATTERN.findall(html)}


def extract_meta_tags(html: str) -> Dict[str, str]:
    """Returns ``title`` and ``description`` when present."""
    tags = {}
    if not html:
        return tags
    title = TITLE_PATTERN.search(html)
    if title:
        tags["title"] = title.group(1).strip()
    description = META_DESCRIPTION_PATTERN.search(html)
    if description:
        tags["description"] = description.group(1).strip()
    return tags


def extract_emails(text: str, limit: int = CONTACT_PATTERN_LIMIT) -> List[str]:
    return EMAIL_PATTERN.findall(text or "")[:limit]


def extract_phones(text: str, limit: int = CONTACT_PATTERN_LIMIT) -> List[str]:
    return [match.strip() for match in PHONE_PATTERN.findall(text or "")][:limit]


def extract_website_signals(html: Optional[str], text: Optional[str]) -> WebsiteSignals:
    """Run every deterministic extractor over one page."""
    html = html or ""
    text = text or ""
    return WebsiteSignals(
        schema_org=extract_json_ld(html),
        open_graph=extract_open_graph(html),
        meta_tags=extract_meta_tags(html),
        emails=extract_emails(text),
        phones=extract_phones(text),
    )


# =============================================================================
# CONTENT SEGMENTATION
# =============================================================================

def segment_content(text: Optional[str]) -> ContentSegments:
    """
    Split page text into heuristic sections.

    Hero is the first non-empty lines; the other sections are fixed-size
    windows starting at the first marker word.
    """
    segments = ContentSegments()
    text = text or ""
    if not text.strip():
        return segments

    lines = [line for line in text.split("\n") if line.strip()]
    segments.hero = "\n".join(lines[:HERO_LINE_COUNT])

    lower = text.lower()

    about_start = lower.find("about")
    if about_start >= 0:
        segments.about = text[about_start:about_start + ABOUT_SEGMENT_CHARS]

    services_start = max(lower.find("service"), lower.find("offering"))
    if services_start > 0:
        segments.services = text[services_start:services_start + SERVICES_SEGMENT_CHARS]

    testimonials_start = max(lower.find("testimonial"), lower.find("review"), lower.find("what our"))
    if testimonials_start > 0:
        segments.testimonials = text[testimonials_start:testimonials_start + TESTIMONIALS_SEGMENT_CHARS]

    return segments


# =============================================================================
# PROFILE LINK DISCOVERY
# =============================================================================

def discover_profile_links(html: Optional[str]) -> DiscoveredProfiles:
    """
    Find social, Google Business Profile and Play Store links in page HTML.

    Takes the first match per social platform.
    """
    discovered = DiscoveredProfiles()
    if not html:
        return discovered

    for platform, patterns in SOCIAL_LINK_PATTERNS:
        for pattern in patterns:
            match = re.search(pattern, html, re.IGNORECASE)
            if match:
                url = match.group(0)
                if not any(profile["profile_url"] == url for profile in discovered.social):
                    discovered.social.append({
                        "platform": platform,
                        "profile_url": url,
                        "discovered_from": "website",
                        "confidence": 0.9,
                    })
                break

    gbp = GBP_LINK_PATTERN.search(html)
    if gbp:
        discovered.google_business_profile = {
            "profile_url": gbp.group(0),
            "discovered_from": "website",
            "confidence": 0.85,
        }

    play = PLAY_STORE_PATTERN.search(html)
    if play:
        discovered.play_store = {
            "store_url": play.group(0),
            "app_id": play.group(1),
            "discovered_from": "website",
            "confidence": 0.9,
        }

    return discovered
