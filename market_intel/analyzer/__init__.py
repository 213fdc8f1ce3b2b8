"""
Model access for the pipeline.

ModelClient routes each phase to its primary model, retries, and falls
back to a secondary model when the primary is exhausted.
"""

from .client import (
    ANTHROPIC_PHASE_CONFIGS,
    OPENROUTER_PHASE_CONFIGS,
    AnthropicTransport,
    ModelCallError,
    ModelClient,
    ModelClientError,
    ModelRequest,
    ModelResponse,
    ModelResult,
    ModelTransport,
    OpenRouterTransport,
    PhaseModelConfig,
    TokenUsage,
    UsageTracker,
    build_model_client,
    extract_json_object,
    parse_json_content,
)

__all__ = [
    "ANTHROPIC_PHASE_CONFIGS",
    "OPENROUTER_PHASE_CONFIGS",
    "AnthropicTransport",
    "ModelCallError",
    "ModelClient",
    "ModelClientError",
    "ModelRequest",
    "ModelResponse",
    "ModelResult",
    "ModelTransport",
    "OpenRouterTransport",
    "PhaseModelConfig",
    "TokenUsage",
    "UsageTracker",
    "build_model_client",
    "extract_json_object",
    "parse_json_content",
]
