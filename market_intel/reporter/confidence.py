"""
Report Confidence

Weighted overall confidence across phases and the low-confidence areas
surfaced in the report's data-quality block.

A phase is present when its artifact exists, did not fail and carries a
non-zero confidence. Disabled, failed and empty phases are all missing:
they contribute neither a value nor a weight, so the weights renormalize
over the phases that produced data.
"""

import logging
from typing import Dict, List, Optional

from market_intel.output.schemas import (
    CompetitorArtifact,
    IdentityArtifact,
    MarketingArtifact,
    PhaseArtifact,
    PresenceArtifact,
)

logger = logging.getLogger(__name__)


# Identity anchors everything else, so it carries the most weight
PHASE_WEIGHTS: Dict[str, float] = {
    "phase1": 0.35,
    "phase2": 0.20,
    "phase3": 0.25,
    "phase4": 0.20,
}

PHASE_LABELS = ("phase1", "phase2", "phase3", "phase4")

LOW_CONFIDENCE_THRESHOLD = 0.5

LOW_CONFIDENCE_LABELS = {
    "phase1": "Business identity extraction",
    "business_name": "Business name identification",
    "phase2": "External presence analysis",
    "phase3": "Marketing & conversion analysis",
    "phase4": "Competitor identification",
}


def _by_label(
    phase1: Optional[IdentityArtifact],
    phase2: Optional[PresenceArtifact],
    phase3: Optional[MarketingArtifact],
    phase4: Optional[CompetitorArtifact],
) -> Dict[str, Optional[PhaseArtifact]]:
    return dict(zip(PHASE_LABELS, (phase1, phase2, phase3, phase4)))


def has_phase_data(artifact: Optional[PhaseArtifact]) -> bool:
    """Whether an artifact counts towards the report."""
    if artifact is None or artifact.failed:
        return False
    return artifact.overall_confidence > 0


def usable_artifact(artifact):
    """The artifact itself when it has data, otherwise None."""
    return artifact if has_phase_data(artifact) else None


def present_phases(phase1=None, phase2=None, phase3=None, phase4=None) -> List[str]:
    """Labels of the phases that produced data, in pipeline order."""
    return [label for label, artifact in _by_label(phase1, phase2, phase3, phase4).items() if has_phase_data(artifact)]


def missing_phases(phase1=None, phase2=None, phase3=None, phase4=None) -> List[str]:
    return [label for label, artifact in _by_label(phase1, phase2, phase3, phase4).items() if not has_phase_data(artifact)]


def calculate_overall_confidence(
    phase1: Optional[IdentityArtifact] = None,
    phase2: Optional[PresenceArtifact] = None,
    phase3: Optional[MarketingArtifact] = None,
    phase4: Optional[CompetitorArtifact] = None,
) -> float:
    """
    Weighted mean of phase confidences over the present phases.

    Returns 0.0 when no phase is present.
    """
    weighted_sum = 0.0
    total_weight = 0.0
    for label, artifact in _by_label(phase1, phase2, phase3, phase4).items():
        if not has_phase_data(artifact):
            continue
        weight = PHASE_WEIGHTS[label]
        weighted_sum += artifact.overall_confidence * weight
        total_weight += weight

    if total_weight == 0:
        return 0.0
    return weighted_sum / total_weight


def identify_low_confidence_areas(
    phase1: Optional[IdentityArtifact] = None,
    phase2: Optional[PresenceArtifact] = None,
    phase3: Optional[MarketingArtifact] = None,
    phase4: Optional[CompetitorArtifact] = None,
    threshold: float = LOW_CONFIDENCE_THRESHOLD,
) -> List[str]:
    """
    Areas whose confidence falls below the threshold.

    Checks each present phase, plus the business-name confidence when
    phase 1 is present.
    """
    phase1, phase2, phase3, phase4 = (usable_artifact(a) for a in (phase1, phase2, phase3, phase4))
    areas = []
    if phase1 is not None:
        if phase1.overall_confidence < threshold:
            areas.append(LOW_CONFIDENCE_LABELS["phase1"])
        if phase1.business_identity.name.confidence < threshold:
            areas.append(LOW_CONFIDENCE_LABELS["business_name"])
    if phase2 is not None and phase2.overall_confidence < threshold:
        areas.append(LOW_CONFIDENCE_LABELS["phase2"])
    if phase3 is not None and phase3.overall_confidence < threshold:
        areas.append(LOW_CONFIDENCE_LABELS["phase3"])
    if phase4 is not None and phase4.overall_confidence < threshold:
        areas.append(LOW_CONFIDENCE_LABELS["phase4"])

    if areas:
        logger.debug(f"[Confidence] Low-confidence areas: {', '.join(areas)}")
    return areas
