"""
Market Intelligence Orchestrator

Drives one pipeline run end to end:

    Idle -> Phase1 -> Phase2 -> Phase3 -> Phase4 -> Consolidate -> Done

Each phase can be disabled through PipelineConfig; a disabled phase still
advances the state machine and leaves its artifact as None. Phase agents
never raise, so a failing phase only yields an empty artifact. Anything
else that goes wrong ends the run: the error and last checkpoint are kept
on ``last_error`` and ``execute()`` returns None instead of raising.
"""

import asyncio
import logging
import random
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from market_intel.agents import (
    CompetitorAnalysisAgent,
    ExternalPresenceAgent,
    MarketingConversionAgent,
    WebsiteExtractionAgent,
)
from market_intel.analyzer.client import ModelClient, build_model_client
from market_intel.integrations.serper import SerperClient
from market_intel.models import PipelineInput
from market_intel.output.schemas import PhaseArtifact
from market_intel.persistence.storage import OutputWriter
from market_intel.reporter.consolidator import ConsolidatedReport, ReportConsolidator
from market_intel.utils.config import Settings, get_settings
from market_intel.utils.helpers import generate_execution_id, utc_now_iso

logger = logging.getLogger(__name__)


PHASE_WEBSITE_EXTRACTION = "phase1_website_extraction"
PHASE_EXTERNAL_PRESENCE = "phase2_external_presence"
PHASE_MARKETING_CONVERSION = "phase3_marketing_conversion"
PHASE_COMPETITOR_ANALYSIS = "phase4_competitor_analysis"
CONSOLIDATION = "report_consolidation"


class PipelineState(str, Enum):
    IDLE = "idle"
    PHASE1 = "phase1"
    PHASE2 = "phase2"
    PHASE3 = "phase3"
    PHASE4 = "phase4"
    CONSOLIDATE = "consolidate"
    DONE = "done"
    ABORTED = "aborted"


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class PacingConfig:
    """Randomized delay between executed phases."""
    enabled: bool = True
    min_delay_ms: int = 2000
    max_delay_ms: int = 7000


@dataclass
class PipelineConfig:
    """
    Everything the orchestrator needs for a run.

    Handed in at construction; nothing is read from the environment after
    that. ``phases`` maps phase ids to enable flags, and a missing key
    means the phase is enabled.
    """
    enabled: bool = True
    phases: Dict[str, bool] = field(default_factory=dict)
    provider: str = "openrouter"
    model_api_key: Optional[str] = None
    model_base_url: Optional[str] = None
    model_timeout: float = 60.0
    model_max_retries: int = 3
    model_retry_delay: float = 2.0
    search_api_key: Optional[str] = None
    pacing: PacingConfig = field(default_factory=PacingConfig)
    write_outputs: bool = False
    output_dir: Optional[str] = None

    def phase_enabled(self, phase_id: str) -> bool:
        return self.phases.get(phase_id, True)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "PipelineConfig":
        settings = settings or get_settings()
        return cls(
            enabled=settings.MARKET_INTEL_ENABLED,
            phases={
                PHASE_WEBSITE_EXTRACTION: settings.PHASE_WEBSITE_EXTRACTION,
                PHASE_EXTERNAL_PRESENCE: settings.PHASE_EXTERNAL_PRESENCE,
                PHASE_MARKETING_CONVERSION: settings.PHASE_MARKETING_CONVERSION,
                PHASE_COMPETITOR_ANALYSIS: settings.PHASE_COMPETITOR_ANALYSIS,
            },
            provider=settings.LLM_PROVIDER,
            model_api_key=settings.model_api_key,
            model_base_url=settings.OPENROUTER_BASE_URL,
            model_timeout=settings.MODEL_TIMEOUT_SECONDS,
            model_max_retries=settings.MODEL_MAX_RETRIES,
            model_retry_delay=settings.MODEL_RETRY_DELAY_SECONDS,
            search_api_key=settings.SERPER_API_KEY,
            pacing=PacingConfig(
                enabled=settings.PACING_ENABLED,
                min_delay_ms=settings.PACING_MIN_DELAY_MS,
                max_delay_ms=settings.PACING_MAX_DELAY_MS,
            ),
            write_outputs=settings.WRITE_OUTPUTS,
            output_dir=settings.OUTPUT_DIR,
        )


@dataclass
class Checkpoint:
    """Last completed (or skipped) step of a run."""
    phase: str
    data: Optional[Dict[str, Any]]
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ============================================================================
# ORCHESTRATOR
# ============================================================================

class MarketIntelligenceOrchestrator:
    """
    Runs the four phase agents and the consolidator in order.

    Usage:
        orchestrator = MarketIntelligenceOrchestrator(PipelineConfig.from_settings())
        report = await orchestrator.execute(PipelineInput(website_url="https://acme.test"))
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        model_client: Optional[ModelClient] = None,
        search_client: Optional[SerperClient] = None,
        writer: Optional[OutputWriter] = None,
    ):
        """
        Args:
            config: Pipeline configuration (defaults to the environment settings)
            model_client: Model client to use instead of building one from config
            search_client: Web search client to use instead of building one from config
            writer: Output writer to use when ``write_outputs`` is set
        """
        self.config = config or PipelineConfig.from_settings()
        self.model_client = model_client
        self.search_client = search_client
        self.writer = writer

        self.execution_id: Optional[str] = None
        self.state = PipelineState.IDLE
        self.last_error: Optional[Dict[str, Any]] = None
        self._checkpoint: Optional[Checkpoint] = None
        self._phase_results: Dict[str, Optional[PhaseArtifact]] = {}
        self._owned: list = []
        self._usage_summary: Dict[str, Any] = {}

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def execute(self, pipeline_input: PipelineInput) -> Optional[ConsolidatedReport]:
        """
        Run the full pipeline.

        Returns:
            The consolidated report, or None when the pipeline is disabled,
            the model credential is missing, or the run failed fatally.
        """
        if not self.config.enabled:
            logger.info("[Orchestrator] Pipeline is disabled. Exiting gracefully.")
            self.state = PipelineState.ABORTED
            return None

        if self.model_client is None and not self.config.model_api_key:
            logger.error(f"[Orchestrator] No API key configured for model provider '{self.config.provider}'")
            self.state = PipelineState.ABORTED
            return None

        self.execution_id = generate_execution_id()
        self.state = PipelineState.IDLE
        self.last_error = None
        self._checkpoint = None
        self._phase_results = {}
        start_time = time.monotonic()

        try:
            self._initialize()
            logger.info("=" * 60)
            logger.info(f"[Orchestrator:{self.execution_id}] MARKET INTELLIGENCE RUN STARTED")
            logger.info("=" * 60)

            report = await self._run_pipeline(pipeline_input)

            self.state = PipelineState.DONE
            duration = time.monotonic() - start_time
            logger.info(
                f"[Orchestrator:{self.execution_id}] Run completed in {duration:.2f}s "
                f"(status: {report.status}, confidence: {report.overall_confidence:.2f})"
            )
            return report

        except Exception as e:
            return await self._handle_fatal_error(e)

        finally:
            await self._close_owned()

    def get_phase_results(self) -> Dict[str, Optional[PhaseArtifact]]:
        """Artifacts of the current (or last) run by phase id; skipped phases map to None."""
        return dict(self._phase_results)

    def get_checkpoint(self) -> Optional[Dict[str, Any]]:
        return self._checkpoint.to_dict() if self._checkpoint else None

    def get_usage_summary(self) -> Dict[str, Any]:
        if self.model_client is None:
            return dict(self._usage_summary)
        return self.model_client.get_usage_summary()

    # =========================================================================
    # PIPELINE
    # =========================================================================

    def _initialize(self) -> None:
        """Build the collaborators that were not injected."""
        self._owned = []
        if self.model_client is None:
            self.model_client = build_model_client(
                provider=self.config.provider,
                api_key=self.config.model_api_key,
                base_url=self.config.model_base_url,
                timeout=self.config.model_timeout,
                max_retries=self.config.model_max_retries,
                retry_delay=self.config.model_retry_delay,
            )
            self._owned.append(self.model_client)

        if self.search_client is None:
            self.search_client = SerperClient(api_key=self.config.search_api_key)
            self._owned.append(self.search_client)

        if self.config.write_outputs and self.writer is None:
            self.writer = OutputWriter(self.config.output_dir)

    async def _run_pipeline(self, pipeline_input: PipelineInput) -> ConsolidatedReport:
        website = pipeline_input.website

        identity = await self._run_phase(
            PipelineState.PHASE1,
            PHASE_WEBSITE_EXTRACTION,
            lambda: WebsiteExtractionAgent(self.model_client).extract(website),
        )
        presence = await self._run_phase(
            PipelineState.PHASE2,
            PHASE_EXTERNAL_PRESENCE,
            lambda: ExternalPresenceAgent(self.model_client, self.search_client).analyze(
                identity, pipeline_input.external_data, website
            ),
        )
        marketing = await self._run_phase(
            PipelineState.PHASE3,
            PHASE_MARKETING_CONVERSION,
            lambda: MarketingConversionAgent(self.model_client).analyze(identity, website, presence),
        )
        competitors = await self._run_phase(
            PipelineState.PHASE4,
            PHASE_COMPETITOR_ANALYSIS,
            lambda: CompetitorAnalysisAgent(self.model_client, self.search_client).analyze(
                identity,
                pipeline_input.serp_data,
                pipeline_input.competitor_sites,
                pipeline_input.seed_keywords,
                pipeline_input.location,
            ),
        )

        self.state = PipelineState.CONSOLIDATE
        logger.info(f"[Orchestrator:{self.execution_id}] Consolidating report...")
        report = await ReportConsolidator(self.model_client).consolidate(
            identity, presence, marketing, competitors
        )
        self._save_checkpoint(CONSOLIDATION, report.to_dict())

        await self._write_output("report.json", report.to_dict())
        await self._write_output("report.md", report.report_markdown, fmt="text")
        return report

    async def _run_phase(
        self,
        state: PipelineState,
        phase_id: str,
        operation: Callable[[], Awaitable[PhaseArtifact]],
    ) -> Optional[PhaseArtifact]:
        self.state = state

        if not self.config.phase_enabled(phase_id):
            logger.info(f"[Orchestrator:{self.execution_id}] [SKIP] {phase_id} disabled")
            self._phase_results[phase_id] = None
            self._save_checkpoint(phase_id, None)
            return None

        logger.info(f"[Orchestrator:{self.execution_id}] Running {phase_id}...")
        artifact = await operation()

        self._phase_results[phase_id] = artifact
        self._save_checkpoint(phase_id, artifact.to_dict())
        if artifact.failed:
            logger.warning(
                f"[Orchestrator:{self.execution_id}] {phase_id} failed: {artifact.extraction_error}"
            )
        await self._write_output(f"{phase_id}.json", artifact.to_dict())
        await self._pace()
        return artifact

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _save_checkpoint(self, phase: str, data: Optional[Dict[str, Any]]) -> None:
        self._checkpoint = Checkpoint(phase=phase, data=data)

    async def _pace(self) -> None:
        pacing = self.config.pacing
        if not pacing.enabled:
            return
        low, high = sorted((pacing.min_delay_ms, pacing.max_delay_ms))
        delay_ms = random.uniform(low, high)
        logger.debug(f"[Orchestrator:{self.execution_id}] Pacing delay: {delay_ms:.0f}ms")
        await asyncio.sleep(delay_ms / 1000)

    async def _write_output(self, name: str, payload: Any, fmt: str = "json") -> None:
        if not self.config.write_outputs or self.writer is None:
            return
        await self.writer.write(f"{self.execution_id}/{name}", payload, fmt)

    async def _close_owned(self) -> None:
        """Close the clients built for this run; injected ones stay open."""
        for collaborator in self._owned:
            if collaborator is self.model_client:
                self._usage_summary = collaborator.get_usage_summary()
                self.model_client = None
            elif collaborator is self.search_client:
                self.search_client = None
            try:
                await collaborator.close()
            except Exception as e:
                logger.warning(f"[Orchestrator] Failed to close {type(collaborator).__name__}: {e}")
        self._owned = []

    async def _handle_fatal_error(self, error: Exception) -> None:
        self.state = PipelineState.ABORTED
        checkpoint = self.get_checkpoint()
        self.last_error = {
            "execution_id": self.execution_id,
            "error": str(error),
            "error_type": type(error).__name__,
            "checkpoint": checkpoint,
            "timestamp": utc_now_iso(),
        }
        logger.error(
            f"[Orchestrator:{self.execution_id}] FATAL ERROR: {type(error).__name__}: {error} "
            f"(last checkpoint: {checkpoint['phase'] if checkpoint else 'none'})",
            exc_info=True,
        )
        await self._write_output("error_log.json", self.last_error)
        return None
