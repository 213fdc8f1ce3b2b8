"""
Pipeline Orchestration

Runs the four phases and the report consolidation for one business.
"""

from .orchestrator import (
    Checkpoint,
    MarketIntelligenceOrchestrator,
    PacingConfig,
    PipelineConfig,
    PipelineState,
)
from market_intel.models import PipelineInput

__all__ = [
    "Checkpoint",
    "MarketIntelligenceOrchestrator",
    "PacingConfig",
    "PipelineConfig",
    "PipelineInput",
    "PipelineState",
]
