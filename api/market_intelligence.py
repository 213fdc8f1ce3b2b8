"""
API Endpoint for Market Intelligence

FastAPI handler that:
1. Accepts a service description or a website URL
2. Runs the four-phase market intelligence pipeline
3. Returns the consolidated report
"""

import logging
import sys
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import AliasChoices, BaseModel, Field

from market_intel import __version__
from market_intel.collector import (
    MarketIntelligenceOrchestrator,
    PipelineConfig,
    PipelineInput,
)
from market_intel.utils.config import Settings, get_settings

# Configure logging to stdout
logging.basicConfig(
    level=get_settings().LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)

# Quiet down chatty loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

app = FastAPI(
    title="Market Intelligence API",
    description="Business identity, presence, marketing and competitor intelligence from a website or description",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


# ============================================================================
# REQUEST MODELS
# ============================================================================

class MarketIntelligenceRequest(BaseModel):
    """
    Request to run the pipeline.

    Either ``service`` (a free-text description such as "dental clinic") or
    ``website_url`` is required.
    """
    service: Optional[str] = None
    website_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("website_url", "websiteUrl"),
    )
    text_content: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("text_content", "textContent"),
    )
    html: Optional[str] = None
    seed_keywords: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("seed_keywords", "seedKeywords"),
    )
    location: Optional[str] = None

    def to_pipeline_input(self) -> PipelineInput:
        service = (self.service or "").strip()
        if service:
            return PipelineInput.from_service(
                service,
                website_url=(self.website_url or "").strip(),
                html=self.html or "",
                location=self.location,
                seed_keywords=self.seed_keywords or [service],
            )
        return PipelineInput(
            website_url=(self.website_url or "").strip(),
            text_content=self.text_content or "",
            html=self.html or "",
            seed_keywords=self.seed_keywords,
            location=self.location,
        )


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "Market Intelligence API"}


@app.post("/api/market-intelligence")
async def run_market_intelligence(
    request: MarketIntelligenceRequest,
    settings: Settings = Depends(get_settings),
):
    """
    Run the market intelligence pipeline and return the report.

    Status codes: 400 without service or website_url, 503 when the pipeline
    is disabled, 500 without a model API key or when the run fails.
    """
    if not (request.service or "").strip() and not (request.website_url or "").strip():
        raise HTTPException(status_code=400, detail="Service/query or website_url is required")

    if not settings.MARKET_INTEL_ENABLED:
        raise HTTPException(status_code=503, detail="Market Intelligence is currently disabled")

    if not settings.has_model_credentials:
        raise HTTPException(
            status_code=500,
            detail=f"API key for model provider '{settings.LLM_PROVIDER}' not configured",
        )

    logger.info(
        f"[API] Market intelligence request: "
        f"{request.service or request.website_url}"
    )

    orchestrator = MarketIntelligenceOrchestrator(PipelineConfig.from_settings(settings))
    report = await orchestrator.execute(request.to_pipeline_input())

    if report is None:
        error = (orchestrator.last_error or {}).get("error", "Pipeline returned no report")
        logger.error(f"[API] Analysis failed: {error}")
        raise HTTPException(status_code=500, detail=f"Analysis failed: {error}")

    return {"success": True, "data": report.to_dict()}
