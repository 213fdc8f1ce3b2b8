"""
Base Phase Agent

All phase agents inherit from this base class, which provides:
- Standard interface (phase id, display name, system prompt)
- Model calls routed through the phase's model configuration
- Lenient validation of model output into the phase artifact
- A uniform failure boundary: every exception inside a phase becomes a
  PhaseResult carrying a PhaseError, converted at the public boundary
  into an empty artifact marked ``extraction_status="failed"``

Architecture:
    BasePhaseAgent (abstract)
    ├── WebsiteExtractionAgent      (phase1_website_extraction)
    ├── ExternalPresenceAgent       (phase2_external_presence)
    ├── MarketingConversionAgent    (phase3_marketing_conversion)
    └── CompetitorAnalysisAgent     (phase4_competitor_analysis)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, Generic, Optional, Type, TypeVar

from pydantic import ValidationError

from market_intel.analyzer.client import ModelClient, ModelResult
from market_intel.output.schemas import PhaseArtifact
from market_intel.utils.helpers import utc_now_iso

logger = logging.getLogger(__name__)

ArtifactT = TypeVar("ArtifactT", bound=PhaseArtifact)

# Set by the agent, never taken from model output
BASE_OWNED_FIELDS = frozenset({
    "phase",
    "extracted_at",
    "extraction_status",
    "extraction_error",
    "model_used",
    "metadata",
})


# ============================================================================
# DATA CLASSES
# ============================================================================

@dataclass
class PhaseError:
    """Why a phase could not produce its artifact."""
    phase: str
    message: str
    exception_type: str

    def to_dict(self) -> Dict[str, str]:
        return {"phase": self.phase, "message": self.message, "exception_type": self.exception_type}


@dataclass
class PhaseResult(Generic[ArtifactT]):
    """Either an artifact or an error, never both."""
    artifact: Optional[ArtifactT] = None
    error: Optional[PhaseError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.artifact is not None


# ============================================================================
# BASE AGENT CLASS
# ============================================================================

class BasePhaseAgent(ABC, Generic[ArtifactT]):
    """
    Abstract base class for phase agents.

    Each agent must implement:
    - phase_id: Pipeline phase identifier (also the model routing key)
    - display_name: Human-readable name
    - system_prompt: Output schema and confidence rubric
    - artifact_class: Pydantic artifact model for the phase
    """

    artifact_class: Type[ArtifactT]

    def __init__(self, client: ModelClient):
        """
        Initialize agent with a model client.

        Args:
            client: ModelClient instance for completions
        """
        self.client = client

    # =========================================================================
    # ABSTRACT PROPERTIES
    # =========================================================================

    @property
    @abstractmethod
    def phase_id(self) -> str:
        """Phase identifier (e.g., 'phase1_website_extraction')."""
        pass

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable name (e.g., 'Website Extraction')."""
        pass

    @property
    @abstractmethod
    def system_prompt(self) -> str:
        """System prompt with the output schema and scoring rubric."""
        pass

    @property
    def log_tag(self) -> str:
        return f"[{self.display_name}]"

    # =========================================================================
    # ARTIFACT CONSTRUCTION
    # =========================================================================

    def empty_artifact(self, **context: Any) -> ArtifactT:
        """Structurally complete artifact with no extracted facts."""
        return self.artifact_class(**context)

    def _validate(self, result: ModelResult, **context: Any) -> ArtifactT:
        """
        Validate parsed model output into the phase artifact.

        Unparseable or invalid output yields the empty artifact; partial
        output is filled with defaults.
        """
        parsed = result.parsed
        if not isinstance(parsed, dict):
            reason = result.parse_error or f"expected a JSON object, got {type(parsed).__name__}"
            logger.warning(f"{self.log_tag} Unusable model output: {reason}")
            artifact = self.empty_artifact(**context)
        else:
            try:
                model_fields = {k: v for k, v in parsed.items() if k not in BASE_OWNED_FIELDS}
                artifact = self.artifact_class.model_validate({**model_fields, **context})
            except ValidationError as e:
                logger.warning(f"{self.log_tag} Model output failed validation: {e.error_count()} errors")
                artifact = self.empty_artifact(**context)

        artifact.phase = self.phase_id
        artifact.extracted_at = utc_now_iso()
        artifact.model_used = result.model
        artifact.metadata["llm_tokens"] = result.usage.to_dict()
        return artifact

    # =========================================================================
    # FAILURE BOUNDARY
    # =========================================================================

    async def _run(self, operation: Awaitable[ArtifactT]) -> PhaseResult[ArtifactT]:
        """Await a phase operation and capture any exception as a PhaseError."""
        try:
            artifact = await operation
        except Exception as e:
            logger.error(f"{self.log_tag} Phase failed: {e}")
            return PhaseResult(error=PhaseError(
                phase=self.phase_id,
                message=str(e) or type(e).__name__,
                exception_type=type(e).__name__,
            ))
        return PhaseResult(artifact=artifact)

    def _finalize(self, result: PhaseResult[ArtifactT], **context: Any) -> ArtifactT:
        """Convert a PhaseResult into an always-valid artifact."""
        if result.ok:
            return result.artifact
        artifact = self.empty_artifact(**context)
        artifact.extraction_status = "failed"
        artifact.extraction_error = result.error.message if result.error else "unknown error"
        return artifact

    # =========================================================================
    # MODEL ACCESS
    # =========================================================================

    async def _complete(self, prompt: str, system: Optional[str] = None) -> ModelResult:
        return await self.client.complete(self.phase_id, prompt, system or self.system_prompt)
