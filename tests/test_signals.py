"""
Tests for deterministic page signals.

These tests verify:
- Schema.org, Open Graph and meta tag extraction
- Content segmentation
- Profile link discovery
- Tracking, CTA, form, chat and booking scans
"""

import pytest

from market_intel.context.conversion_signals import (
    detect_booking_tools,
    detect_chat_widgets,
    detect_tracking_tags,
    extract_cta_candidates,
    extract_forms,
    scan_conversion_signals,
)
from market_intel.context.website_signals import (
    discover_profile_links,
    extract_json_ld,
    extract_phones,
    extract_website_signals,
    find_schema_name,
    segment_content,
)


# =============================================================================
# WEBSITE SIGNAL TESTS
# =============================================================================

class TestWebsiteSignals:
    """Test identity signals extracted from HTML and text."""

    def test_extracts_all_signals(self, sample_html, sample_text):
        signals = extract_website_signals(sample_html, sample_text)

        assert signals.schema_name == "Acme Dental"
        assert signals.open_graph == {"title": "Acme Dental"}
        assert signals.meta_tags["title"].startswith("Acme Dental")
        assert "teeth whitening" in signals.meta_tags["description"]
        assert signals.emails == ["info@acmedental.se"]
        assert signals.signal_counts()["schema_org"] is True

    def test_empty_input(self):
        signals = extract_website_signals(None, None)

        assert signals.schema_org is None
        assert signals.schema_name is None
        assert signals.open_graph == {}
        assert signals.emails == []

    def test_malformed_json_ld_ignored(self):
        html = '<script type="application/ld+json">{not valid</script>'
        assert extract_json_ld(html) is None

    def test_schema_name_from_graph(self):
        data = {"@graph": [{"@type": "WebSite"}, {"@type": "Organization", "name": " Acme AB "}]}
        assert find_schema_name(data) == "Acme AB"

    def test_phone_pattern(self):
        assert extract_phones("Ring +46 812 34567 idag") == ["+46 812 34567"]

    def test_contact_patterns_limited(self):
        text = " ".join(f"user{i}@acme.se" for i in range(10))
        assert len(extract_website_signals("", text).emails) == 3


class TestContentSegmentation:
    """Test heuristic page sections."""

    def test_segments(self, sample_text):
        segments = segment_content(sample_text)

        assert segments.hero.startswith("Acme Dental")
        assert segments.about.startswith("About us")
        assert segments.services.startswith("Services")
        assert segments.testimonials.startswith("Testimonials")

    def test_hero_limited_to_ten_lines(self):
        text = "\n".join(f"line {i}" for i in range(20))
        assert len(segment_content(text).hero.split("\n")) == 10

    def test_empty_text(self):
        segments = segment_content("   ")
        assert segments.to_dict() == {"hero": "", "about": "", "services": "", "testimonials": ""}


class TestProfileDiscovery:
    """Test profile links found in page HTML."""

    def test_social_links(self, sample_html):
        discovered = discover_profile_links(sample_html)

        platforms = {p["platform"] for p in discovered.social}
        assert platforms == {"facebook", "instagram"}
        assert all(p["discovered_from"] == "website" for p in discovered.social)
        assert discovered.count == 2

    def test_gbp_and_play_store(self):
        html = (
            '<a href="https://maps.google.com/?cid=123456">Map</a>'
            '<a href="https://play.google.com/store/apps/details?id=se.acme.app">App</a>'
        )
        discovered = discover_profile_links(html)

        assert discovered.google_business_profile["profile_url"] == "maps.google.com/?cid=123456"
        assert discovered.play_store["app_id"] == "se.acme.app"
        assert not discovered.is_empty

    def test_no_html(self):
        assert discover_profile_links(None).is_empty


# =============================================================================
# CONVERSION SIGNAL TESTS
# =============================================================================

class TestTrackingTags:
    """Test analytics and advertising tag detection."""

    def test_ga4_and_pixel(self, sample_html):
        scan = detect_tracking_tags(sample_html)

        assert "ga4" in scan.tags
        assert "fb-pixel" in scan.tags
        assert {"platform": "google_analytics", "id": "G-ABC123"} in scan.ad_platform_ids
        assert {"platform": "facebook_ads", "id": "1234567890"} in scan.ad_platform_ids

    def test_google_ads_requires_literal_id(self):
        """A generic Google script alone does not imply Google Ads."""
        assert "google_ads" not in detect_tracking_tags("<script>adsbygoogle</script>").tags

        scan = detect_tracking_tags("<script>gtag('config', 'AW-98765');</script>")
        assert "google_ads" in scan.tags
        assert {"platform": "google_ads", "id": "AW-98765"} in scan.ad_platform_ids

    def test_empty_html(self):
        assert detect_tracking_tags("").tags == []


class TestCtaCandidates:
    """Test CTA extraction."""

    def test_cta_types(self, sample_html):
        ctas = extract_cta_candidates(sample_html)
        by_type = {c.type: c for c in ctas}

        assert by_type["link"].text == "Book appointment"
        assert by_type["button"].text == "Get a free quote"
        assert by_type["phone"].target == "+46812345678"
        assert by_type["phone"].text == "Call us"

    def test_whatsapp_and_mailto(self):
        html = '<a href="https://wa.me/46701234567">Chat</a><a href="mailto:hi@acme.se">Mail</a>'
        types = [c.type for c in extract_cta_candidates(html)]
        assert types == ["whatsapp", "email"]

    def test_long_button_text_skipped(self):
        html = f"<button>{'x' * 60}</button>"
        assert extract_cta_candidates(html) == []


class TestForms:
    """Test form extraction."""

    def test_form_fields(self, sample_html):
        forms = extract_forms(sample_html)

        assert len(forms) == 1
        form = forms[0]
        assert form.action == "/contact"
        assert form.method == "post"
        assert form.has_name
        assert form.has_email
        assert not form.has_phone
        assert form.field_labels() == ["name", "email"]

    def test_hidden_only_form_skipped(self):
        html = '<form><input type="hidden" name="token"><input type="submit" value="Go"></form>'
        assert extract_forms(html) == []

    def test_company_field_not_a_name(self):
        html = '<form method="GET"><input name="company_name"><button type="submit">Send</button></form>'
        form = extract_forms(html)[0]

        assert form.has_company
        assert not form.has_name
        assert form.method == "get"
        assert form.submit_text == "Send"


class TestChatAndBooking:
    """Test chat widget and booking tool detection."""

    def test_chat_vendor(self):
        scan = detect_chat_widgets('<script>window.intercomSettings = {};</script>')
        assert scan.detected
        assert scan.vendors == ["Intercom"]

    def test_booking_tool(self):
        scan = detect_booking_tools('<a href="https://calendly.com/acme/intro">Book</a>')
        assert scan.detected
        assert scan.tools == ["Calendly"]
        assert scan.links == ["calendly.com/acme/intro"]

    def test_full_scan_summary(self, sample_html):
        summary = scan_conversion_signals(sample_html).summary()

        assert summary["forms"] == 1
        assert summary["cta_candidates"] == 3
        assert summary["chat_vendors"] == []

    def test_scan_without_html(self):
        summary = scan_conversion_signals(None).summary()
        assert summary["tracking_tags"] == []
        assert summary["cta_candidates"] == 0
