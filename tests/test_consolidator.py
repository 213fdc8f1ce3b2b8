"""
Tests for report consolidation.

These tests verify:
- Weighted overall confidence over the phases that ran
- Low-confidence area detection
- Complete, empty and failed reports
"""

import pytest

from market_intel.output.schemas import (
    CompetitorArtifact,
    IdentityArtifact,
    MarketingArtifact,
    PresenceArtifact,
)
from market_intel.reporter import (
    ReportConsolidator,
    calculate_overall_confidence,
    has_phase_data,
    identify_low_confidence_areas,
)
from market_intel.reporter.consolidator import (
    CONSOLIDATION_PHASE,
    EMPTY_REPORT_MARKDOWN,
    extract_competitor_insights,
    extract_identity_insights,
)

from conftest import model_result


ALL_PHASES = ["phase1", "phase2", "phase3", "phase4"]


@pytest.fixture
def marketing() -> MarketingArtifact:
    return MarketingArtifact(overall_confidence=0.6, total_ctas=4)


# =============================================================================
# CONFIDENCE TESTS
# =============================================================================

class TestOverallConfidence:
    """Test the weighted mean across phases."""

    def test_weights_renormalize_over_present_phases(self, identity, marketing):
        """0.8 * 0.35 and 0.6 * 0.25 over a total weight of 0.6."""
        confidence = calculate_overall_confidence(phase1=identity, phase3=marketing)
        assert confidence == pytest.approx(0.7167, abs=1e-4)

    def test_all_phases(self, identity, marketing):
        presence = PresenceArtifact(overall_confidence=0.5)
        competitors = CompetitorArtifact(overall_confidence=0.4)

        confidence = calculate_overall_confidence(identity, presence, marketing, competitors)

        assert confidence == pytest.approx(0.8 * 0.35 + 0.5 * 0.2 + 0.6 * 0.25 + 0.4 * 0.2)

    def test_failed_phase_weighs_like_a_disabled_one(self, identity):
        failed = PresenceArtifact(extraction_status="failed", overall_confidence=0.4)

        with_failed = calculate_overall_confidence(phase1=identity, phase2=failed)
        without = calculate_overall_confidence(phase1=identity)

        assert with_failed == without == pytest.approx(0.8)

    def test_empty_phase_drops_out(self, identity):
        confidence = calculate_overall_confidence(phase1=identity, phase2=PresenceArtifact())
        assert confidence == pytest.approx(0.8)

    def test_phase_data_rule(self, identity):
        assert has_phase_data(identity)
        assert not has_phase_data(None)
        assert not has_phase_data(PresenceArtifact())
        assert not has_phase_data(MarketingArtifact(overall_confidence=0.6, extraction_status="failed"))

    def test_no_phases(self):
        assert calculate_overall_confidence() == 0.0


class TestLowConfidenceAreas:
    """Test low-confidence detection."""

    def test_flags_weak_phases(self, identity, marketing):
        presence = PresenceArtifact(overall_confidence=0.3)

        areas = identify_low_confidence_areas(identity, presence, marketing, None)

        assert areas == ["External presence analysis"]

    def test_weak_business_name(self):
        phase1 = IdentityArtifact(overall_confidence=0.9)
        phase1.business_identity.name.confidence = 0.2

        areas = identify_low_confidence_areas(phase1=phase1)

        assert areas == ["Business name identification"]

    def test_missing_phases_not_flagged(self):
        assert identify_low_confidence_areas() == []


# =============================================================================
# INSIGHT TESTS
# =============================================================================

class TestInsights:
    """Test the facts pulled from artifacts for the narrative prompt."""

    def test_identity_insights(self, identity):
        insights = extract_identity_insights(identity)

        assert insights["business_name"] == "Acme Dental"
        assert insights["city"] == "Stockholm"
        assert insights["proof_asset_types"] == ["testimonial"]
        assert [o["name"] for o in insights["primary_offerings"]] == ["Teeth Whitening", "Implants"]

    def test_missing_phase_insights(self):
        assert extract_identity_insights(None) == {"available": False}
        assert extract_competitor_insights(None) == {"available": False}


# =============================================================================
# CONSOLIDATOR TESTS
# =============================================================================

class TestReportConsolidator:
    """Test report assembly."""

    @pytest.mark.asyncio
    async def test_complete_report(self, mock_model_client, identity, marketing):
        mock_model_client.complete.return_value = model_result(None, raw="  # Acme Dental\n\nSummary...\n")
        consolidator = ReportConsolidator(mock_model_client)

        report = await consolidator.consolidate(phase1=identity, phase3=marketing)

        assert report.status == "complete"
        assert report.report_markdown == "# Acme Dental\n\nSummary..."
        assert report.report_id.startswith("mir_")
        assert report.overall_confidence == pytest.approx(0.7167, abs=1e-4)
        assert report.summary["business_name"] == "Acme Dental"
        assert report.summary["metrics"]["total_ctas"] == 4
        assert report.phase_confidences["phase2_external_presence"] == 0.0
        assert report.data_quality["phases_completed"] == ["phase1", "phase3"]
        assert report.data_quality["phases_missing"] == ["phase2", "phase4"]
        assert report.phase_outputs["phase2"] is None
        assert report.phase_outputs["phase1"]["url"] == "https://acmedental.se"
        assert report.metadata["llm_tokens"]["total_tokens"] == 150

        phase, prompt, system = mock_model_client.complete.await_args.args
        assert phase == CONSOLIDATION_PHASE
        assert "Acme Dental" in prompt
        assert system

    @pytest.mark.asyncio
    async def test_scenario_all_phases_missing(self, mock_model_client):
        """No artifacts gives the placeholder report without a model call."""
        consolidator = ReportConsolidator(mock_model_client)

        report = await consolidator.consolidate()

        assert report.status == "empty"
        assert report.overall_confidence == 0
        assert report.data_quality["phases_missing"] == ALL_PHASES
        assert report.report_markdown == EMPTY_REPORT_MARKDOWN
        mock_model_client.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_artifacts_count_as_missing(self, mock_model_client):
        """Artifacts with no extracted data give the same report as absent ones."""
        consolidator = ReportConsolidator(mock_model_client)

        report = await consolidator.consolidate(
            IdentityArtifact(), PresenceArtifact(), MarketingArtifact(), CompetitorArtifact(),
        )

        assert report.status == "empty"
        assert report.overall_confidence == 0
        assert report.data_quality["phases_missing"] == ALL_PHASES
        mock_model_client.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_phase_matches_disabled_phase(self, mock_model_client, identity):
        mock_model_client.complete.return_value = model_result(None, raw="# Report")
        consolidator = ReportConsolidator(mock_model_client)
        failed = PresenceArtifact(extraction_status="failed", extraction_error="All models failed")

        with_failed = await consolidator.consolidate(phase1=identity, phase2=failed)
        disabled = await consolidator.consolidate(phase1=identity)

        assert with_failed.overall_confidence == disabled.overall_confidence == pytest.approx(0.8)
        assert with_failed.data_quality == disabled.data_quality
        assert with_failed.data_quality["phases_missing"] == ["phase2", "phase3", "phase4"]
        assert with_failed.phase_outputs["phase2"]["extraction_status"] == "failed"

    @pytest.mark.asyncio
    async def test_model_failure_gives_failed_report(self, failing_model_client, identity):
        consolidator = ReportConsolidator(failing_model_client)

        report = await consolidator.consolidate(phase1=identity)

        assert report.status == "failed"
        assert "All models failed" in report.error
        assert report.report_markdown.startswith("# Market Intelligence Report")
        assert "**Error:**" in report.report_markdown
        assert report.overall_confidence == pytest.approx(0.8)
        assert report.data_quality["phases_completed"] == ["phase1"]

    @pytest.mark.asyncio
    async def test_empty_model_output_fails(self, mock_model_client, identity):
        mock_model_client.complete.return_value = model_result(None, raw="   ")
        consolidator = ReportConsolidator(mock_model_client)

        report = await consolidator.consolidate(phase1=identity)

        assert report.status == "failed"
        assert report.error == "Model returned an empty report"

    @pytest.mark.asyncio
    async def test_without_client(self, identity):
        report = await ReportConsolidator(None).consolidate(phase1=identity)

        assert report.status == "failed"
        assert report.metadata["usage_summary"] == {}

    @pytest.mark.asyncio
    async def test_report_serializes(self, mock_model_client, identity):
        mock_model_client.complete.return_value = model_result(None, raw="# Report")
        report = await ReportConsolidator(mock_model_client).consolidate(phase1=identity)

        data = report.to_dict()

        assert data["status"] == "complete"
        assert data["summary"]["category"] == "dentist"
        assert set(data) >= {"report_id", "generated_at", "report_markdown", "phase_outputs", "data_quality"}
