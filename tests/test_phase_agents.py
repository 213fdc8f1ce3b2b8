"""
Tests for the four phase agents.

These tests verify:
- Mode selection and confidence calculation per phase
- Deterministic signals merged into model output
- The failure boundary: agents never raise and always return a complete artifact
- Competitor ranking, capping and seed keyword generation
"""

import httpx
import pytest
from unittest.mock import AsyncMock

from market_intel.agents import (
    CompetitorAnalysisAgent,
    ExternalPresenceAgent,
    MarketingConversionAgent,
    WebsiteExtractionAgent,
    generate_seed_keywords,
)
from market_intel.agents.external_presence import ESTIMATION_NOTE, response_hours
from market_intel.agents.website_extraction import DESCRIPTION_SYSTEM_PROMPT
from market_intel.integrations.serper import RetryConfig, SearchResponse, SearchResult, SerperClient
from market_intel.models import ExternalData, OwnerReply, SerpData, WebsiteData
from market_intel.output.schemas import IdentityArtifact

from conftest import model_result


SCENARIO_TEXT = "Acme Corp sells widgets. Trusted by 500 companies."


# =============================================================================
# PHASE 1: WEBSITE EXTRACTION
# =============================================================================

class TestWebsiteExtraction:
    """Test identity extraction from page content or a description."""

    def test_mode_selection(self):
        assert WebsiteExtractionAgent.select_mode(WebsiteData(html="<html></html>")) == "website"
        assert WebsiteExtractionAgent.select_mode(WebsiteData(text_content="x" * 51)) == "website"
        assert WebsiteExtractionAgent.select_mode(WebsiteData(text_content=SCENARIO_TEXT)) == "description"
        assert WebsiteExtractionAgent.select_mode(
            WebsiteData(text_content="Business providing: " + "x" * 100)
        ) == "description"
        assert WebsiteExtractionAgent.select_mode(WebsiteData()) is None

    @pytest.mark.asyncio
    async def test_scenario_description_mode(self, mock_model_client):
        """Short text is treated as a description and yields a confident identity."""
        mock_model_client.complete.return_value = model_result({
            "business_identity": {"name": {"value": "Acme Corp", "confidence": 0.9}},
        })
        agent = WebsiteExtractionAgent(mock_model_client)

        artifact = await agent.extract(WebsiteData(url="https://acme.test", text_content=SCENARIO_TEXT))

        assert artifact.business_identity.name.value == "Acme Corp"
        assert artifact.extraction_mode == "description"
        assert artifact.overall_confidence == 1.0
        assert artifact.url == "https://acme.test"
        args = mock_model_client.complete.await_args.args
        assert args[0] == "phase1_website_extraction"
        assert args[2] == DESCRIPTION_SYSTEM_PROMPT

    @pytest.mark.asyncio
    async def test_website_mode_corroborates_name(self, mock_model_client, sample_html, sample_text, identity_payload):
        """A matching Schema.org name boosts name confidence and adds evidence."""
        mock_model_client.complete.return_value = model_result(identity_payload)
        agent = WebsiteExtractionAgent(mock_model_client)

        artifact = await agent.extract(WebsiteData(
            url="https://acmedental.se", html=sample_html, text_content=sample_text,
        ))

        name = artifact.business_identity.name
        assert artifact.extraction_mode == "website"
        assert name.confidence == 1.0
        assert name.sources[-1].method == "schema.org"
        assert artifact.overall_confidence == pytest.approx((1.5 + 0.8 + 0.7 + 0.7) / 4)
        assert artifact.metadata["deterministic_signals_found"]["schema_org"] is True
        assert artifact.metadata["llm_tokens"]["total_tokens"] == 150

    @pytest.mark.asyncio
    async def test_custom_similarity(self, mock_model_client, sample_html, sample_text, identity_payload):
        """A stricter similarity function can reject the Schema.org match."""
        mock_model_client.complete.return_value = model_result(identity_payload)
        agent = WebsiteExtractionAgent(mock_model_client, similarity=lambda first, second: 0.0)

        artifact = await agent.extract(WebsiteData(
            url="https://acmedental.se", html=sample_html, text_content=sample_text,
        ))

        name = artifact.business_identity.name
        assert name.confidence < 1.0
        assert all(source.method != "schema.org" for source in name.sources)

    @pytest.mark.asyncio
    async def test_unparseable_output_yields_empty_profile(self, mock_model_client):
        mock_model_client.complete.return_value = model_result(None, raw="sorry, no json")
        agent = WebsiteExtractionAgent(mock_model_client)

        artifact = await agent.extract(WebsiteData(text_content=SCENARIO_TEXT))

        assert artifact.business_identity.name.value == ""
        assert artifact.overall_confidence == 0.0
        assert artifact.extraction_status is None
        assert artifact.model_used == "test/model"

    @pytest.mark.asyncio
    async def test_stray_envelope_keys_keep_extracted_facts(self, mock_model_client):
        """Keys the agent owns are ignored instead of discarding the output."""
        mock_model_client.complete.return_value = model_result({
            "phase": 1,
            "metadata": "x",
            "extraction_status": ["ok"],
            "business_identity": {"name": {"value": "Acme Corp", "confidence": 0.9}},
        })
        agent = WebsiteExtractionAgent(mock_model_client)

        artifact = await agent.extract(WebsiteData(text_content=SCENARIO_TEXT))

        assert artifact.business_identity.name.value == "Acme Corp"
        assert artifact.phase == "phase1_website_extraction"
        assert artifact.extraction_status is None
        assert "llm_tokens" in artifact.metadata

    @pytest.mark.asyncio
    async def test_non_finite_numbers_are_dropped(self, mock_model_client):
        mock_model_client.complete.return_value = model_result({
            "business_identity": {"name": {"value": "Acme Corp", "confidence": 0.9}},
            "primary_offerings": [
                {"name": "Widgets", "rank": float("inf"), "confidence": 0.8},
                {"name": "Gadgets", "rank": "Infinity", "confidence": 0.6},
            ],
        })
        agent = WebsiteExtractionAgent(mock_model_client)

        artifact = await agent.extract(WebsiteData(text_content=SCENARIO_TEXT))

        assert not artifact.failed
        assert [o.rank for o in artifact.primary_offerings] == [None, None]
        assert [o.name for o in artifact.primary_offerings] == ["Widgets", "Gadgets"]

    @pytest.mark.asyncio
    async def test_no_content_skips_model(self, mock_model_client):
        agent = WebsiteExtractionAgent(mock_model_client)

        artifact = await agent.extract(None)

        assert artifact.overall_confidence == 0.0
        mock_model_client.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_model_failure_is_contained(self, failing_model_client):
        agent = WebsiteExtractionAgent(failing_model_client)

        artifact = await agent.extract(WebsiteData(text_content=SCENARIO_TEXT))

        assert artifact.failed
        assert "All models failed" in artifact.extraction_error
        assert artifact.business_identity.name.value == ""
        assert artifact.extraction_mode == "description"

    @pytest.mark.asyncio
    async def test_empty_output_is_stable(self, mock_model_client):
        """Repeated runs without content produce the same artifact."""
        agent = WebsiteExtractionAgent(mock_model_client)

        first = await agent.extract(WebsiteData())
        second = await agent.extract(WebsiteData())

        assert first.model_dump(exclude={"extracted_at"}) == second.model_dump(exclude={"extracted_at"})


# =============================================================================
# PHASE 2: EXTERNAL PRESENCE
# =============================================================================

def linkedin_only(query, **kwargs):
    if "linkedin" in query:
        return SearchResponse(query=query, organic=[
            SearchResult(title="Acme Dental | LinkedIn", link="https://www.linkedin.com/company/acme-dental"),
        ])
    return SearchResponse(query=query)


class TestExternalPresence:
    """Test search-backed, provided-data and estimated presence analysis."""

    @pytest.mark.asyncio
    async def test_search_backed_profiles(self, mock_model_client, mock_search_client, identity):
        mock_search_client.search = AsyncMock(side_effect=linkedin_only)
        agent = ExternalPresenceAgent(mock_model_client, mock_search_client)

        artifact = await agent.analyze(identity)

        assert artifact.data_source == "web_search"
        assert artifact.profiles.social[0].platform == "LinkedIn"
        assert artifact.profiles_discovered == 1
        assert artifact.overall_confidence == 0.85
        assert artifact.evidence[0].method == "search"
        assert mock_search_client.search.await_count == 6
        mock_model_client.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_scenario_empty_search_falls_back_to_estimation(
        self, mock_model_client, mock_search_client, identity,
    ):
        """Zero search results means an estimate, marked as such and capped."""
        mock_model_client.complete.return_value = model_result({
            "profiles": {"social": [{"platform": "LinkedIn", "url": "https://linkedin.com/company/x", "confidence": 0.9}]},
            "evidence": [{"source_url": "https://linkedin.com/company/x", "method": "estimate", "confidence": 0.9}],
        })
        agent = ExternalPresenceAgent(mock_model_client, mock_search_client)

        artifact = await agent.analyze(identity)

        assert artifact.data_source == "llm_estimation"
        assert artifact.note == ESTIMATION_NOTE
        assert artifact.overall_confidence <= 0.5
        assert artifact.profiles_discovered == 1

    @pytest.mark.asyncio
    async def test_malformed_search_body_falls_back_to_estimation(self, mock_model_client, identity):
        search_client = SerperClient(api_key="test-key", retry_config=RetryConfig(max_retries=0))
        search_client._client = httpx.AsyncClient(
            base_url=search_client.BASE_URL,
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json=[])),
        )
        agent = ExternalPresenceAgent(mock_model_client, search_client)

        artifact = await agent.analyze(identity)

        assert not artifact.failed
        assert artifact.data_source == "llm_estimation"
        await search_client.close()

    @pytest.mark.asyncio
    async def test_provided_data_response_behavior(self, mock_model_client, identity):
        """Reply rate and response time come from provided reviews, not the model."""
        external = ExternalData(
            social=[{"platform": "Instagram", "profile_url": "https://instagram.com/acme", "followers": 1200}],
            reviews=[{"text": "Great service, very friendly"}, {"text": "Long wait but good care"}],
            owner_replies=[OwnerReply(
                text="Thank you for your kind words!",
                review_timestamp="2024-01-01T10:00:00Z",
                reply_timestamp="2024-01-01T13:00:00Z",
            )],
        )
        agent = ExternalPresenceAgent(mock_model_client)

        artifact = await agent.analyze(identity, external_data=external)

        behavior = artifact.owner_response_behavior
        assert artifact.data_source == "provided_data"
        assert behavior.replies_exist
        assert behavior.reply_rate_estimate == 0.5
        assert behavior.median_response_time_hours == pytest.approx(3.0)
        assert artifact.profiles.social[0].profile_url == "https://instagram.com/acme"
        assert artifact.overall_confidence == pytest.approx((0.55 + 0.65) / 2)
        assert artifact.metadata["data_sources"]["reviews_analyzed"] == 2

    @pytest.mark.asyncio
    async def test_sentiment_normalized(self, mock_model_client, identity):
        mock_model_client.complete.return_value = model_result({
            "social_perception": {"sentiment_distribution": {"positive": 0.6, "neutral": 0.6, "negative": 0.0}},
        })
        agent = ExternalPresenceAgent(mock_model_client)

        artifact = await agent.analyze(identity, external_data=ExternalData(posts=[{"text": "New clinic open!"}]))

        distribution = artifact.social_perception.sentiment_distribution
        assert distribution.positive + distribution.neutral + distribution.negative == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_no_identity_skips_model(self, mock_model_client):
        agent = ExternalPresenceAgent(mock_model_client)

        artifact = await agent.analyze(None)

        assert artifact.data_source == "none"
        assert artifact.profiles_discovered == 0
        mock_model_client.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_model_failure_is_contained(self, failing_model_client, identity):
        agent = ExternalPresenceAgent(failing_model_client)

        artifact = await agent.analyze(identity)

        assert artifact.failed
        assert artifact.business.name == "Acme Dental"

    def test_response_hours_window(self):
        replies = [
            OwnerReply(review_timestamp="2024-01-01T00:00:00Z", reply_timestamp="2024-01-02T00:00:00Z"),
            OwnerReply(review_timestamp="2024-01-01T00:00:00Z", reply_timestamp="2024-03-01T00:00:00Z"),
            OwnerReply(review_timestamp="not a date", reply_timestamp="2024-01-01T00:00:00Z"),
            OwnerReply(review_timestamp="2024-01-02T00:00:00Z", reply_timestamp="2024-01-01T00:00:00Z"),
        ]
        assert response_hours(replies) == [24.0]


# =============================================================================
# PHASE 3: MARKETING & CONVERSION
# =============================================================================

class TestMarketingConversion:
    """Test CTA and funnel analysis."""

    @pytest.mark.asyncio
    async def test_full_mode_merges_tracking(self, mock_model_client, identity, sample_html):
        mock_model_client.complete.return_value = model_result({
            "marketing": {"tracking_tags": ["ga4"]},
            "landing_pages": [{
                "url": "https://acmedental.se",
                "primary_ctas": [
                    {"type": "booking", "text": "Book appointment"},
                    {"type": "phone", "text": "Call us"},
                ],
            }],
            "sales_process": {"type": "consultative"},
        })
        agent = MarketingConversionAgent(mock_model_client)

        artifact = await agent.analyze(identity, WebsiteData(url="https://acmedental.se", html=sample_html))

        assert artifact.extraction_mode == "full"
        assert artifact.marketing.tracking_tags == ["ga4", "fb-pixel"]
        assert {a.id for a in artifact.marketing.ad_platform_ids} == {"G-ABC123", "1234567890"}
        assert artifact.total_ctas == 2
        assert artifact.overall_confidence == pytest.approx((0.7 + 0.7 + 0.65) / 3)
        assert artifact.metadata["detected_elements"]["forms"] == 1

    @pytest.mark.asyncio
    async def test_description_mode(self, mock_model_client, identity):
        agent = MarketingConversionAgent(mock_model_client)

        artifact = await agent.analyze(identity, WebsiteData(url="https://acmedental.se"))

        assert artifact.extraction_mode == "description"
        assert artifact.url == "https://acmedental.se"
        assert artifact.metadata["extraction_method"] == "llm_description_estimate"
        assert "Acme Dental" in mock_model_client.complete.await_args.args[1]

    @pytest.mark.asyncio
    async def test_nothing_to_analyze(self, mock_model_client):
        agent = MarketingConversionAgent(mock_model_client)

        artifact = await agent.analyze(None, None)

        assert artifact.total_ctas == 0
        assert artifact.overall_confidence == 0.0
        mock_model_client.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_model_failure_is_contained(self, failing_model_client, identity, sample_html):
        agent = MarketingConversionAgent(failing_model_client)

        artifact = await agent.analyze(identity, WebsiteData(html=sample_html))

        assert artifact.failed
        assert artifact.extraction_mode == "full"
        assert artifact.landing_pages == []


# =============================================================================
# PHASE 4: COMPETITOR ANALYSIS
# =============================================================================

class TestSeedKeywords:
    """Test seed keyword generation."""

    def test_seeds_from_identity(self, identity):
        seeds = generate_seed_keywords(identity, ["dentist stockholm"])

        assert seeds == [
            "dentist stockholm",
            "dentist",
            "teeth whitening",
            "implants",
            "dentist Stockholm",
            "dentist in Stockholm",
            "best dentist",
            "dentist alternatives",
            "dentist companies",
        ]

    def test_requested_location_used_without_city(self):
        phase1 = IdentityArtifact.model_validate({"business_identity": {"category": {"value": "plumber"}}})

        seeds = generate_seed_keywords(phase1, location="Malmö")

        assert "plumber Malmö" in seeds
        assert "plumber in Malmö" in seeds

    def test_short_seeds_dropped(self):
        assert generate_seed_keywords(IdentityArtifact(), ["ai", "ai", "crm tools"]) == ["crm tools"]


class TestCompetitorAnalysis:
    """Test competitor discovery, ranking and capping."""

    @pytest.mark.asyncio
    async def test_caps_and_ranks_competitors(self, mock_model_client, identity):
        serp = SerpData(results=[
            {"link": f"https://c{i}.se", "title": f"C{i}", "snippet": "Dentist", "position": i, "keyword": "dentist"}
            for i in range(1, 8)
        ])
        mock_model_client.complete.return_value = model_result({
            "competitors": [
                {"name": f"C{i}", "domain": f"https://c{i}.se", "rank": 8 - i, "score": 0 if i == 1 else 0.5,
                 "why_picked": ["SERP competitor", "made up"], "positioning": "Family dental care"}
                for i in range(1, 6)
            ],
        })
        agent = CompetitorAnalysisAgent(mock_model_client)

        artifact = await agent.analyze(identity, serp_data=serp)

        assert len(artifact.competitors) == 3
        assert [c.rank for c in artifact.competitors] == [1, 2, 3]
        assert artifact.competitors[0].score > 0
        assert artifact.competitors[0].why_picked == ["serp_competitor"]
        assert artifact.candidates_considered == 7
        assert len(artifact.metadata["candidates"]) == 3
        assert 0 < artifact.overall_confidence <= 1.0
        assert artifact.business_id == "Acme Dental"

    @pytest.mark.asyncio
    async def test_searches_seeds_without_serp_data(self, mock_model_client, mock_search_client, identity):
        mock_search_client.search = AsyncMock(side_effect=lambda query, **kwargs: SearchResponse(
            query=query, organic=[SearchResult(title="Rival", link="https://rival.se", snippet="x", position=1)],
        ))
        agent = CompetitorAnalysisAgent(mock_model_client, mock_search_client)

        artifact = await agent.analyze(identity)

        assert mock_search_client.search.await_count == 3
        assert artifact.candidates_considered == 1
        candidate = artifact.metadata["candidates"][0]
        assert candidate["domain"] == "rival.se"
        assert candidate["serp_appearances"] == 3
        assert candidate["keywords"] == ["dentist", "teeth whitening", "implants"]

    @pytest.mark.asyncio
    async def test_accepts_raw_result_list(self, mock_model_client, identity):
        agent = CompetitorAnalysisAgent(mock_model_client)

        artifact = await agent.analyze(identity, serp_data=[{"link": "https://rival.se", "position": 2}])

        assert artifact.candidates_considered == 1

    @pytest.mark.asyncio
    async def test_nothing_to_analyze(self, mock_model_client):
        agent = CompetitorAnalysisAgent(mock_model_client)

        artifact = await agent.analyze(None)

        assert artifact.business_id == "unknown"
        assert artifact.competitors == []
        mock_model_client.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_model_failure_is_contained(self, failing_model_client, identity):
        agent = CompetitorAnalysisAgent(failing_model_client)

        artifact = await agent.analyze(identity, seed_keywords=["dentist stockholm"])

        assert artifact.failed
        assert artifact.seed_keywords[0] == "dentist stockholm"
        assert artifact.competitors == []

