"""
Report Consolidation

Weighted confidence across phases and the final markdown report.
"""

from .confidence import (
    LOW_CONFIDENCE_THRESHOLD,
    PHASE_WEIGHTS,
    calculate_overall_confidence,
    has_phase_data,
    identify_low_confidence_areas,
)
from .consolidator import ConsolidatedReport, ReportConsolidator

__all__ = [
    "ConsolidatedReport",
    "LOW_CONFIDENCE_THRESHOLD",
    "PHASE_WEIGHTS",
    "ReportConsolidator",
    "calculate_overall_confidence",
    "has_phase_data",
    "identify_low_confidence_areas",
]
