"""
Phase Agents

Each agent owns one pipeline stage and always returns a structurally
complete artifact, even when its model call fails.

Usage:
    from market_intel.agents import WebsiteExtractionAgent

    agent = WebsiteExtractionAgent(model_client)
    identity = await agent.extract(WebsiteData(url="https://acme.test", text_content=text))
"""

from .base import BasePhaseAgent, PhaseError, PhaseResult
from .competitor_analysis import CompetitorAnalysisAgent, generate_seed_keywords
from .external_presence import ESTIMATION_CONFIDENCE_CAP, ExternalPresenceAgent
from .marketing_conversion import MarketingConversionAgent
from .website_extraction import (
    NAME_CONFIDENCE_WEIGHT,
    PROOF_ASSET_BONUS,
    WebsiteExtractionAgent,
)

__all__ = [
    "BasePhaseAgent",
    "CompetitorAnalysisAgent",
    "ESTIMATION_CONFIDENCE_CAP",
    "ExternalPresenceAgent",
    "MarketingConversionAgent",
    "NAME_CONFIDENCE_WEIGHT",
    "PROOF_ASSET_BONUS",
    "PhaseError",
    "PhaseResult",
    "WebsiteExtractionAgent",
    "generate_seed_keywords",
]
