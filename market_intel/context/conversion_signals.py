"""
Conversion Signals

Deterministic scans used by the marketing & conversion phase:
- Analytics / tracking tags and ad platform ids (literal token patterns)
- CTA candidates (class-pattern links, buttons, tel:, wa.me, mailto:)
- Forms and their field semantics (phone / email / name / company)
- Chat widget vendors (substring fingerprints)
- Booking / scheduling tools (URL patterns)
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

# =============================================================================
# FINGERPRINTS
# =============================================================================

# (tag, substrings, id pattern, ad platform name)
TRACKING_TAGS: List[Tuple[str, Tuple[str, ...], Optional[str], Optional[str]]] = [
    ("ga4", ("gtag", "G-", "ga4"), r"G-[A-Z0-9]+", "google_analytics"),
    ("gtm", ("GTM-", "googletagmanager"), r"GTM-[A-Z0-9]+", "google_tag_manager"),
    ("fb-pixel", ("fbq", "facebook.com/tr", "connect.facebook"), None, "facebook_ads"),
    ("linkedin-insight", ("linkedin.com/px", "_linkedin_partner_id"), None, None),
    ("twitter-pixel", ("twq", "analytics.twitter.com"), None, None),
    ("hotjar", ("hotjar", "hj("), None, None),
    ("mixpanel", ("mixpanel",), None, None),
    ("segment", ("segment.com", "analytics.js"), None, None),
]
FB_PIXEL_ID_PATTERN = re.compile(r"fbq\(['\"]init['\"],\s*['\"](\d+)['\"]")
GOOGLE_ADS_ID_PATTERN = re.compile(r"AW-\d+")

CHAT_VENDORS: List[Tuple[str, Tuple[str, ...]]] = [
    ("Intercom", ("intercom", "intercomSettings")),
    ("Drift", ("drift", "driftWidget")),
    ("Tawk.to", ("tawk", "Tawk_API")),
    ("Zendesk", ("zendeskChat", "zE(")),
    ("HubSpot", ("hubspot", "hs-script-loader")),
    ("Crisp", ("crisp.chat", "$crisp")),
    ("LiveChat", ("livechatinc", "__lc")),
    ("Freshdesk", ("freshchat", "freshdesk")),
    ("Olark", ("olark",)),
    ("Tidio", ("tidio", "tidioChatApi")),
]

BOOKING_TOOLS: List[Tuple[str, str]] = [
    ("Calendly", r"calendly\.com/([a-zA-Z0-9\-_/]+)"),
    ("HubSpot Meetings", r"meetings\.hubspot\.com/([a-zA-Z0-9\-_/]+)"),
    ("Acuity", r"acuityscheduling\.com/([a-zA-Z0-9\-_/]+)"),
    ("YouCanBook.me", r"youcanbook\.me/([a-zA-Z0-9\-_/]+)"),
    ("Cal.com", r"(?<![a-z])cal\.com/([a-zA-Z0-9\-_/]+)"),
    ("Savvycal", r"savvycal\.com/([a-zA-Z0-9\-_/]+)"),
    ("Chili Piper", r"chilipiper\.com"),
]

CTA_LINK_PATTERN = re.compile(
    r'<a[^>]*class="[^"]*\b(cta|btn|button|action)[^"]*"[^>]*>([^<]+)</a>',
    re.IGNORECASE,
)
BUTTON_PATTERN = re.compile(r"<button[^>]*>([^<]+)</button>", re.IGNORECASE)
TEL_LINK_PATTERN = re.compile(r'<a[^>]*href="tel:([^"]+)"[^>]*>([^<]*)</a>', re.IGNORECASE)
WHATSAPP_LINK_PATTERN = re.compile(r'<a[^>]*href="(https?://wa\.me/[^"]+)"[^>]*>', re.IGNORECASE)
MAILTO_LINK_PATTERN = re.compile(r'<a[^>]*href="mailto:([^"]+)"[^>]*>', re.IGNORECASE)
FORM_PATTERN = re.compile(r"<form([^>]*)>(.*?)</form>", re.IGNORECASE | re.DOTALL)
INPUT_PATTERN = re.compile(r"<input[^>]*>", re.IGNORECASE)

MAX_BUTTON_TEXT = 50


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class TrackingScan:
    tags: List[str] = field(default_factory=list)
    ad_platform_ids: List[Dict[str, str]] = field(default_factory=list)


@dataclass
class CtaCandidate:
    type: str
    text: str = ""
    target: str = ""
    source: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type, "text": self.text, "target": self.target, "source": self.source}


@dataclass
class FormField:
    name: str = ""
    type: str = "text"
    placeholder: str = ""


@dataclass
class FormScan:
    action: str = ""
    method: str = "post"
    fields: List[FormField] = field(default_factory=list)
    has_phone: bool = False
    has_email: bool = False
    has_name: bool = False
    has_company: bool = False
    submit_text: str = ""

    def field_labels(self) -> List[str]:
        return [f.name or f.placeholder for f in self.fields if f.name or f.placeholder]


@dataclass
class ChatScan:
    detected: bool = False
    vendors: List[str] = field(default_factory=list)


@dataclass
class BookingScan:
    detected: bool = False
    tools: List[str] = field(default_factory=list)
    links: List[str] = field(default_factory=list)


@dataclass
class ConversionSignals:
    """Every deterministic conversion signal found on one page."""
    tracking: TrackingScan = field(default_factory=TrackingScan)
    ctas: List[CtaCandidate] = field(default_factory=list)
    forms: List[FormScan] = field(default_factory=list)
    chat: ChatScan = field(default_factory=ChatScan)
    booking: BookingScan = field(default_factory=BookingScan)

    def summary(self) -> Dict[str, Any]:
        return {
            "tracking_tags": list(self.tracking.tags),
            "ad_platform_ids": len(self.tracking.ad_platform_ids),
            "cta_candidates": len(self.ctas),
            "forms": len(self.forms),
            "chat_vendors": list(self.chat.vendors),
            "booking_tools": list(self.booking.tools),
        }


# =============================================================================
# SCANS
# =============================================================================

def detect_tracking_tags(html: str) -> TrackingScan:
    """
    Detect analytics and advertising tags.

    Google Ads is only reported when a literal ``AW-<digits>`` id is present.
    """
    scan = TrackingScan()
    if not html:
        return scan

    for tag, needles, id_pattern, platform in TRACKING_TAGS:
        if not any(needle in html for needle in needles):
            continue
        scan.tags.append(tag)
        if id_pattern:
            match = re.search(id_pattern, html)
            if match:
                scan.ad_platform_ids.append({"platform": platform, "id": match.group(0)})
        elif tag == "fb-pixel":
            match = FB_PIXEL_ID_PATTERN.search(html)
            if match:
                scan.ad_platform_ids.append({"platform": platform, "id": match.group(1)})

    ads_match = GOOGLE_ADS_ID_PATTERN.search(html)
    if ads_match:
        scan.tags.append("google_ads")
        scan.ad_platform_ids.append({"platform": "google_ads", "id": ads_match.group(0)})

    return scan


def extract_cta_candidates(html: str) -> List[CtaCandidate]:
    candidates: List[CtaCandidate] = []
    if not html:
        return candidates

    for match in CTA_LINK_PATTERN.finditer(html):
        candidates.append(CtaCandidate(type="link", text=match.group(2).strip(), source="class_pattern"))

    for match in BUTTON_PATTERN.finditer(html):
        text = match.group(1).strip()
        if text and len(text) < MAX_BUTTON_TEXT:
            candidates.append(CtaCandidate(type="button", text=text, source="button_element"))

    for match in TEL_LINK_PATTERN.finditer(html):
        candidates.append(CtaCandidate(
            type="phone",
            target=match.group(1),
            text=match.group(2).strip() or match.group(1),
            source="tel_link",
        ))

    for match in WHATSAPP_LINK_PATTERN.finditer(html):
        candidates.append(CtaCandidate(type="whatsapp", target=match.group(1), text="WhatsApp", source="wa_link"))

    for match in MAILTO_LINK_PATTERN.finditer(html):
        candidates.append(CtaCandidate(type="email", target=match.group(1), text=match.group(1), source="mailto_link"))

    return candidates


def _attribute(tag: str, name: str) -> Optional[str]:
    match = re.search(rf'{name}="([^"]+)"', tag, re.IGNORECASE)
    return match.group(1) if match else None


def extract_forms(html: str) -> List[FormScan]:
    """
    Extract forms with at least one visible field.

    Field semantics come from the input ``name`` attribute.
    """
    forms: List[FormScan] = []
    if not html:
        return forms

    for match in FORM_PATTERN.finditer(html):
        attributes, content = match.group(1), match.group(2)
        form = FormScan(
            action=_attribute(attributes, "action") or "",
            method=(_attribute(attributes, "method") or "post").lower(),
        )

        for input_tag in INPUT_PATTERN.findall(content):
            field_type = (_attribute(input_tag, "type") or "text").lower()
            if field_type in ("hidden", "submit"):
                continue
            name = _attribute(input_tag, "name") or ""
            form.fields.append(FormField(
                name=name,
                type=field_type,
                placeholder=_attribute(input_tag, "placeholder") or "",
            ))

            lower = name.lower()
            if "phone" in lower or "tel" in lower:
                form.has_phone = True
            if "email" in lower:
                form.has_email = True
            if "name" in lower and "company" not in lower:
                form.has_name = True
            if "company" in lower or "organization" in lower:
                form.has_company = True

        submit = (
            re.search(r'<button[^>]*type="submit"[^>]*>([^<]+)</button>', content, re.IGNORECASE)
            or re.search(r'<input[^>]*type="submit"[^>]*value="([^"]+)"', content, re.IGNORECASE)
        )
        if submit:
            form.submit_text = submit.group(1).strip()

        if form.fields:
            forms.append(form)

    return forms


def detect_chat_widgets(html: str) -> ChatScan:
    scan = ChatScan()
    lower = (html or "").lower()
    for vendor, needles in CHAT_VENDORS:
        if any(needle.lower() in lower for needle in needles):
            scan.detected = True
            scan.vendors.append(vendor)
    return scan


def detect_booking_tools(html: str) -> BookingScan:
    scan = BookingScan()
    if not html:
        return scan
    for tool, pattern in BOOKING_TOOLS:
        for match in re.finditer(pattern, html, re.IGNORECASE):
            scan.detected = True
            if tool not in scan.tools:
                scan.tools.append(tool)
            scan.links.append(match.group(0))
    return scan


def scan_conversion_signals(html: Optional[str]) -> ConversionSignals:
    """Run every conversion scan over one page."""
    html = html or ""
    return ConversionSignals(
        tracking=detect_tracking_tags(html),
        ctas=extract_cta_candidates(html),
        forms=extract_forms(html),
        chat=detect_chat_widgets(html),
        booking=detect_booking_tools(html),
    )
