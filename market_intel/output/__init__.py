"""
Phase Artifact Schemas

Components:
- PhaseArtifact: fields shared by every phase output
- IdentityArtifact: Phase 1 business identity
- PresenceArtifact: Phase 2 external presence and perception
- MarketingArtifact: Phase 3 marketing and conversion
- CompetitorArtifact: Phase 4 top competitors
"""

from .schemas import (
    PROOF_ASSET_TYPES,
    SALES_PROCESS_TYPES,
    WHY_PICKED_REASONS,
    CompetitorArtifact,
    EvidenceRef,
    IdentityArtifact,
    MarketingArtifact,
    PhaseArtifact,
    PresenceArtifact,
)

__all__ = [
    "CompetitorArtifact",
    "EvidenceRef",
    "IdentityArtifact",
    "MarketingArtifact",
    "PROOF_ASSET_TYPES",
    "PhaseArtifact",
    "PresenceArtifact",
    "SALES_PROCESS_TYPES",
    "WHY_PICKED_REASONS",
]
