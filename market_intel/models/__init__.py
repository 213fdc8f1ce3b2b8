"""
Market Intelligence - Data Models

Shared input models passed into the pipeline and its phase agents.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

SERVICE_MARKER = "Business providing:"


def _first(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return default


def _dict_list(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


@dataclass
class WebsiteData:
    """Pre-fetched page content for the business website."""
    url: str = ""
    html: str = ""
    text_content: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.html and not self.text_content.strip()


@dataclass
class OwnerReply:
    """An owner reply to a review, with optional timestamps (ISO 8601)."""
    text: str = ""
    review_timestamp: Optional[str] = None
    reply_timestamp: Optional[str] = None


@dataclass
class ExternalData:
    """Pre-fetched external presence data (profiles, content, reviews)."""
    social: List[Dict[str, Any]] = field(default_factory=list)
    google_business_profile: Optional[Dict[str, Any]] = None
    play_store: Optional[Dict[str, Any]] = None
    b2b_listings: List[Dict[str, Any]] = field(default_factory=list)
    posts: List[Dict[str, Any]] = field(default_factory=list)
    comments: List[Dict[str, Any]] = field(default_factory=list)
    reviews: List[Dict[str, Any]] = field(default_factory=list)
    owner_replies: List[OwnerReply] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (
            self.social
            or self.google_business_profile
            or self.play_store
            or self.b2b_listings
            or self.posts
            or self.comments
            or self.reviews
            or self.owner_replies
        )

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ExternalData":
        """Build from a loose dict; accepts snake_case and camelCase keys."""
        if not isinstance(data, dict):
            return cls()
        replies = []
        for reply in _dict_list(_first(data, "owner_replies", "ownerReplies", default=[])):
            replies.append(OwnerReply(
                text=str(_first(reply, "text", "content", default="")),
                review_timestamp=_first(reply, "review_timestamp", "reviewTimestamp"),
                reply_timestamp=_first(reply, "reply_timestamp", "replyTimestamp"),
            ))
        gbp = _first(data, "google_business_profile", "gbp")
        play_store = _first(data, "play_store", "playStore")
        return cls(
            social=_dict_list(data.get("social")),
            google_business_profile=gbp if isinstance(gbp, dict) else None,
            play_store=play_store if isinstance(play_store, dict) else None,
            b2b_listings=_dict_list(_first(data, "b2b_listings", "b2bListings", default=[])),
            posts=_dict_list(data.get("posts")),
            comments=_dict_list(data.get("comments")),
            reviews=_dict_list(data.get("reviews")),
            owner_replies=replies,
        )


@dataclass
class SerpData:
    """Pre-fetched organic results for competitor discovery."""
    results: List[Dict[str, Any]] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.results

    @classmethod
    def from_value(cls, value: Any) -> "SerpData":
        """Accepts a SerpData, a bare result list, or a dict with ``results``/``organicResults``."""
        if isinstance(value, SerpData):
            return value
        if isinstance(value, list):
            return cls(results=_dict_list(value))
        if isinstance(value, dict):
            return cls(
                results=_dict_list(_first(value, "results", "organic_results", "organicResults", default=[])),
                keywords=[str(k) for k in value.get("keywords") or [] if k],
            )
        return cls()


@dataclass
class PipelineInput:
    """
    Input for one pipeline run.

    Either a target URL (with optional pre-fetched page content) or a
    free-text description. Everything else is optional.
    """
    website_url: str = ""
    text_content: str = ""
    html: str = ""
    external_data: Optional[ExternalData] = None
    serp_data: Optional[SerpData] = None
    competitor_sites: List[Dict[str, Any]] = field(default_factory=list)
    seed_keywords: List[str] = field(default_factory=list)
    location: Optional[str] = None

    @property
    def website(self) -> WebsiteData:
        return WebsiteData(url=self.website_url, html=self.html, text_content=self.text_content)

    @classmethod
    def from_service(cls, service: str, **kwargs) -> "PipelineInput":
        """Description-only input built from a service query."""
        kwargs.setdefault("seed_keywords", [service])
        return cls(text_content=f"{SERVICE_MARKER} {service}", **kwargs)


__all__ = [
    "SERVICE_MARKER",
    "WebsiteData",
    "OwnerReply",
    "ExternalData",
    "SerpData",
    "PipelineInput",
]
