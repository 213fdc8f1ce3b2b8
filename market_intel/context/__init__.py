"""
Deterministic Signals Package

Pattern-based facts extracted from page HTML and text before any model
call. Used by the identity and marketing phases as high-trust evidence.
"""

from .conversion_signals import (
    BookingScan,
    ChatScan,
    ConversionSignals,
    CtaCandidate,
    FormScan,
    TrackingScan,
    detect_booking_tools,
    detect_chat_widgets,
    detect_tracking_tags,
    extract_cta_candidates,
    extract_forms,
    scan_conversion_signals,
)
from .website_signals import (
    ContentSegments,
    DiscoveredProfiles,
    WebsiteSignals,
    discover_profile_links,
    extract_json_ld,
    extract_website_signals,
    find_schema_name,
    segment_content,
)

__all__ = [
    "BookingScan",
    "ChatScan",
    "ConversionSignals",
    "CtaCandidate",
    "FormScan",
    "TrackingScan",
    "detect_booking_tools",
    "detect_chat_widgets",
    "detect_tracking_tags",
    "extract_cta_candidates",
    "extract_forms",
    "scan_conversion_signals",
    "ContentSegments",
    "DiscoveredProfiles",
    "WebsiteSignals",
    "discover_profile_links",
    "extract_json_ld",
    "extract_website_signals",
    "find_schema_name",
    "segment_content",
]
