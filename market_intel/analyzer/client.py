"""
Model Client for the Market Intelligence Pipeline

Executes a single phase's completion request against a named model:
- Per-phase routing (primary model, fallback model, temperature, token budget)
- Linear-backoff retries on the primary model, one attempt on the fallback
- Best-effort JSON extraction (parse errors recorded, never raised)
- Token usage and cost tracking keyed by phase and model

Transports:
    OpenRouterTransport  - OpenAI-compatible chat completions over httpx
    AnthropicTransport   - Anthropic Messages API via the official SDK
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Tuple

import anthropic
import httpx

logger = logging.getLogger(__name__)


# ============================================================================
# ERRORS
# ============================================================================

class ModelCallError(Exception):
    """A single model call failed (network, timeout, non-2xx, malformed body)."""

    def __init__(self, message: str, status_code: int = None, response: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class ModelClientError(Exception):
    """Every model configured for a phase failed."""

    def __init__(
        self,
        message: str,
        phase: Optional[str] = None,
        models: Tuple[str, ...] = (),
        status_code: int = None,
        response: Any = None,
    ):
        super().__init__(message)
        self.phase = phase
        self.models = models
        self.status_code = status_code
        self.response = response


# ============================================================================
# PHASE ROUTING
# ============================================================================

@dataclass
class PhaseModelConfig:
    """Model routing for one pipeline phase."""
    primary_model: str
    fallback_model: Optional[str] = None
    temperature: float = 0.2
    max_tokens: int = 4000
    requires_json: bool = True


OPENROUTER_PHASE_CONFIGS: Dict[str, PhaseModelConfig] = {
    "phase1_website_extraction": PhaseModelConfig(
        "anthropic/claude-sonnet-4", "openai/gpt-4.1", temperature=0.1, max_tokens=4000
    ),
    "phase2_external_presence": PhaseModelConfig(
        "anthropic/claude-sonnet-4", "openai/gpt-4.1", temperature=0.2, max_tokens=4000
    ),
    "phase3_marketing_conversion": PhaseModelConfig(
        "openai/gpt-4.1", "anthropic/claude-sonnet-4", temperature=0.2, max_tokens=4000
    ),
    "phase4_competitor_analysis": PhaseModelConfig(
        "openai/gpt-4.1", "anthropic/claude-sonnet-4", temperature=0.2, max_tokens=4000
    ),
    "report_consolidation": PhaseModelConfig(
        "anthropic/claude-sonnet-4", "openai/gpt-4.1",
        temperature=0.4, max_tokens=6000, requires_json=False,
    ),
    "default": PhaseModelConfig("anthropic/claude-sonnet-4", "openai/gpt-4.1"),
}

ANTHROPIC_PHASE_CONFIGS: Dict[str, PhaseModelConfig] = {
    phase: replace(
        config,
        primary_model="claude-sonnet-4-20250514",
        fallback_model="claude-3-5-haiku-20241022",
    )
    for phase, config in OPENROUTER_PHASE_CONFIGS.items()
}

# USD per 1M tokens (input, output)
MODEL_PRICING: Dict[str, Tuple[float, float]] = {
    "anthropic/claude-sonnet-4": (3.0, 15.0),
    "claude-sonnet-4-20250514": (3.0, 15.0),
    "openai/gpt-4.1": (2.0, 8.0),
    "claude-3-5-haiku-20241022": (0.8, 4.0),
}


# ============================================================================
# DATA CLASSES
# ============================================================================

@dataclass
class TokenUsage:
    """Token counts for one call."""
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def cost_for(self, model: str) -> float:
        """Estimate cost from the per-model price table (unknown models are free)."""
        input_price, output_price = MODEL_PRICING.get(model, (0.0, 0.0))
        return (
            (self.input_tokens / 1_000_000) * input_price
            + (self.output_tokens / 1_000_000) * output_price
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "prompt_tokens": self.input_tokens,
            "completion_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class ModelRequest:
    model: str
    user_prompt: str
    system_prompt: Optional[str] = None
    temperature: float = 0.2
    max_tokens: int = 4000
    requires_json: bool = True


@dataclass
class ModelResponse:
    """Raw response from a transport."""
    content: str
    model: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: Optional[str] = None


@dataclass
class ModelResult:
    """
    Normalized completion result.

    ``parsed`` holds the decoded JSON object for JSON phases and is None
    otherwise. A JSON phase whose output could not be decoded carries the
    decoder message in ``parse_error``.
    """
    raw: str
    model: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: Optional[str] = None
    parsed: Optional[Any] = None
    parse_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "raw": self.raw,
            "parsed": self.parsed,
            "parse_error": self.parse_error,
            "model": self.model,
            "usage": self.usage.to_dict(),
            "finish_reason": self.finish_reason,
        }


class UsageTracker:
    """Accumulates request, token and cost counters by phase and model."""

    def __init__(self):
        self.total_requests = 0
        self.total_input_tokens = 0
        self.total_output_tokens = 0
        self.estimated_cost = 0.0
        self.phase_usage: Dict[str, Dict[str, Any]] = {}

    def record(self, phase: str, model: str, usage: TokenUsage) -> None:
        cost = usage.cost_for(model)

        self.total_requests += 1
        self.total_input_tokens += usage.input_tokens
        self.total_output_tokens += usage.output_tokens
        self.estimated_cost += cost

        phase_stats = self.phase_usage.setdefault(phase, {"models": {}})
        model_stats = phase_stats["models"].setdefault(model, {
            "requests": 0,
            "input_tokens": 0,
            "output_tokens": 0,
            "estimated_cost": 0.0,
        })
        model_stats["requests"] += 1
        model_stats["input_tokens"] += usage.input_tokens
        model_stats["output_tokens"] += usage.output_tokens
        model_stats["estimated_cost"] += cost

    def summary(self) -> Dict[str, Any]:
        phases = {}
        for phase, stats in self.phase_usage.items():
            models = {name: dict(values) for name, values in stats["models"].items()}
            phases[phase] = {
                "requests": sum(m["requests"] for m in models.values()),
                "input_tokens": sum(m["input_tokens"] for m in models.values()),
                "output_tokens": sum(m["output_tokens"] for m in models.values()),
                "estimated_cost": sum(m["estimated_cost"] for m in models.values()),
                "models": models,
            }
        return {
            "total_requests": self.total_requests,
            "input_tokens": self.total_input_tokens,
            "output_tokens": self.total_output_tokens,
            "total_tokens": self.total_input_tokens + self.total_output_tokens,
            "estimated_cost": self.estimated_cost,
            "phases": phases,
        }


# ============================================================================
# JSON EXTRACTION
# ============================================================================

def extract_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced ``{...}`` substring of ``text``.

    Braces inside JSON string literals are ignored. Returns None when no
    opening brace ever closes.
    """
    if not text:
        return None

    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start:index + 1]
        start = text.find("{", start + 1)

    return None


def parse_json_content(content: str) -> Tuple[Optional[Any], Optional[str]]:
    """Decode model output as JSON. Returns (parsed, error_message)."""
    candidate = extract_json_object(content) or content
    try:
        return json.loads(candidate), None
    except (json.JSONDecodeError, TypeError) as e:
        return None, str(e)


# ============================================================================
# TRANSPORTS
# ============================================================================

class ModelTransport(ABC):
    """Sends one request to one model. Failures raise ModelCallError."""

    @abstractmethod
    async def send(self, request: ModelRequest) -> ModelResponse:
        pass

    async def close(self):
        pass


class OpenRouterTransport(ModelTransport):
    """
    OpenAI-compatible chat completions over httpx.

    Usage:
        transport = OpenRouterTransport(api_key="sk-or-...")
        response = await transport.send(ModelRequest(model="openai/gpt-4.1", user_prompt="..."))
        await transport.close()
    """

    BASE_URL = "https://openrouter.ai/api/v1"

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        app_title: str = "Market Intelligence Engine",
    ):
        self.api_key = api_key
        self._client = httpx.AsyncClient(
            base_url=base_url or self.BASE_URL,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "X-Title": app_title,
            },
            timeout=httpx.Timeout(timeout),
        )
        self._closed = False

    async def send(self, request: ModelRequest) -> ModelResponse:
        if self._closed:
            raise ModelCallError("Transport has been closed")

        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.user_prompt})

        payload = {
            "model": request.model,
            "messages": messages,
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if request.requires_json:
            payload["response_format"] = {"type": "json_object"}

        try:
            response = await self._client.post("/chat/completions", json=payload)
        except httpx.TimeoutException as e:
            raise ModelCallError(f"Request timed out: {e}")
        except httpx.RequestError as e:
            raise ModelCallError(f"Request failed: {e}")

        if response.status_code >= 400:
            raise ModelCallError(
                f"API error: {response.status_code} - {response.text[:300]}",
                status_code=response.status_code,
                response=response.text,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ModelCallError(f"Malformed response body: {e}", status_code=response.status_code)

        choices = data.get("choices") or []
        if not choices:
            raise ModelCallError("Response contained no choices", response=data)

        usage = data.get("usage") or {}
        return ModelResponse(
            content=(choices[0].get("message") or {}).get("content") or "",
            model=data.get("model") or request.model,
            usage=TokenUsage(
                input_tokens=usage.get("prompt_tokens", 0) or 0,
                output_tokens=usage.get("completion_tokens", 0) or 0,
            ),
            finish_reason=choices[0].get("finish_reason"),
        )

    async def close(self):
        """Close the HTTP client."""
        if not self._closed:
            await self._client.aclose()
            self._closed = True


class AnthropicTransport(ModelTransport):
    """Anthropic Messages API. OpenRouter-style ``anthropic/`` prefixes are stripped."""

    MODEL_ALIASES = {
        "claude-sonnet-4": "claude-sonnet-4-20250514",
        "claude-3.5-haiku": "claude-3-5-haiku-20241022",
    }

    def __init__(self, api_key: str, timeout: float = 60.0):
        self.api_key = api_key
        # Retries are owned by ModelClient
        self.async_client = anthropic.AsyncAnthropic(
            api_key=api_key, timeout=timeout, max_retries=0
        )

    def resolve_model(self, model: str) -> str:
        name = model.split("/", 1)[1] if model.startswith("anthropic/") else model
        return self.MODEL_ALIASES.get(name, name)

    async def send(self, request: ModelRequest) -> ModelResponse:
        kwargs = {
            "model": self.resolve_model(request.model),
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [{"role": "user", "content": request.user_prompt}],
        }
        if request.system_prompt:
            kwargs["system"] = request.system_prompt

        try:
            response = await self.async_client.messages.create(**kwargs)
        except anthropic.APIError as e:
            raise ModelCallError(
                f"Claude API error: {e}",
                status_code=getattr(e, "status_code", None),
            )

        content = ""
        for block in response.content:
            if hasattr(block, "text"):
                content += block.text

        return ModelResponse(
            content=content,
            model=response.model or kwargs["model"],
            usage=TokenUsage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
            ),
            finish_reason=response.stop_reason,
        )

    async def close(self):
        await self.async_client.close()


# ============================================================================
# MODEL CLIENT
# ============================================================================

class ModelClient:
    """
    Phase-aware completion client with retry and fallback.

    Usage:
        client = ModelClient(OpenRouterTransport(api_key))
        result = await client.complete("phase1_website_extraction", prompt, system)
        if result.parsed is None:
            print(result.parse_error)
    """

    def __init__(
        self,
        transport: ModelTransport,
        phase_configs: Optional[Dict[str, PhaseModelConfig]] = None,
        max_retries: int = 3,
        retry_delay: float = 2.0,
    ):
        """
        Initialize model client.

        Args:
            transport: Transport used for every call
            phase_configs: Routing table keyed by phase id (``default`` entry used for unknown phases)
            max_retries: Attempts on the primary model
            retry_delay: Base delay in seconds; attempt n waits ``retry_delay * n``
        """
        self.transport = transport
        self.phase_configs = dict(phase_configs or OPENROUTER_PHASE_CONFIGS)
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.usage = UsageTracker()

    def get_phase_config(self, phase: str) -> PhaseModelConfig:
        config = self.phase_configs.get(phase) or self.phase_configs.get("default")
        if config is None:
            raise ModelClientError(f"No model configured for phase {phase}", phase=phase)
        return config

    async def complete(
        self,
        phase: str,
        user_prompt: str,
        system_prompt: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> ModelResult:
        """
        Run a completion for ``phase``.

        Args:
            phase: Phase identifier used for routing and usage accounting
            user_prompt: User prompt
            system_prompt: System prompt
            options: Per-call overrides (temperature, max_tokens, requires_json)

        Returns:
            ModelResult from the primary model or, failing that, the fallback

        Raises:
            ModelClientError: if the primary and the fallback both failed
        """
        config = self.get_phase_config(phase)
        options = options or {}
        request = ModelRequest(
            model=config.primary_model,
            user_prompt=user_prompt,
            system_prompt=system_prompt,
            temperature=options.get("temperature", config.temperature),
            max_tokens=options.get("max_tokens", config.max_tokens),
            requires_json=options.get("requires_json", config.requires_json),
        )

        logger.info(f"[ModelClient] Phase: {phase}, Model: {config.primary_model}")

        try:
            return await self._execute(phase, request, attempts=self.max_retries)
        except ModelCallError as primary_error:
            fallback = config.fallback_model
            if not fallback or fallback == config.primary_model:
                raise ModelClientError(
                    f"Model {config.primary_model} failed for phase {phase}: {primary_error}",
                    phase=phase,
                    models=(config.primary_model,),
                    status_code=primary_error.status_code,
                ) from primary_error

            logger.warning(
                f"[ModelClient] Primary model {config.primary_model} failed for {phase}: "
                f"{primary_error}. Trying fallback {fallback}..."
            )

            try:
                return await self._execute(phase, replace(request, model=fallback), attempts=1)
            except ModelCallError as fallback_error:
                logger.error(f"[ModelClient] Fallback model {fallback} also failed: {fallback_error}")
                raise ModelClientError(
                    f"All models failed for phase {phase} "
                    f"(primary {config.primary_model}: {primary_error}; "
                    f"fallback {fallback}: {fallback_error})",
                    phase=phase,
                    models=(config.primary_model, fallback),
                    status_code=fallback_error.status_code,
                ) from fallback_error

    async def _execute(self, phase: str, request: ModelRequest, attempts: int) -> ModelResult:
        """Call one model up to ``attempts`` times with linear backoff."""
        last_error: Optional[ModelCallError] = None

        for attempt in range(1, attempts + 1):
            try:
                response = await self.transport.send(request)
            except ModelCallError as e:
                last_error = e
                logger.warning(
                    f"[ModelClient] {request.model} attempt {attempt}/{attempts} failed: {e}"
                )
                if attempt < attempts:
                    await asyncio.sleep(self.retry_delay * attempt)
                continue

            self.usage.record(phase, request.model, response.usage)
            return self._to_result(response, request.requires_json)

        raise last_error

    def _to_result(self, response: ModelResponse, requires_json: bool) -> ModelResult:
        result = ModelResult(
            raw=response.content,
            model=response.model,
            usage=response.usage,
            finish_reason=response.finish_reason,
        )
        if requires_json:
            result.parsed, result.parse_error = parse_json_content(response.content)
            if result.parse_error:
                logger.warning(f"[ModelClient] JSON parsing failed: {result.parse_error}")
        return result

    def get_usage_summary(self) -> Dict[str, Any]:
        """Get summary of all API usage."""
        return self.usage.summary()

    async def close(self):
        await self.transport.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def build_model_client(
    provider: str = "openrouter",
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    timeout: float = 60.0,
    max_retries: int = 3,
    retry_delay: float = 2.0,
) -> ModelClient:
    """
    Create a ModelClient for the configured provider.

    Raises:
        ModelClientError: if the provider's API key is missing
    """
    provider = (provider or "openrouter").lower()
    if not api_key:
        raise ModelClientError(f"API key for provider '{provider}' not provided")

    if provider == "anthropic":
        transport = AnthropicTransport(api_key, timeout=timeout)
        phase_configs = ANTHROPIC_PHASE_CONFIGS
    else:
        transport = OpenRouterTransport(api_key, base_url=base_url, timeout=timeout)
        phase_configs = OPENROUTER_PHASE_CONFIGS

    return ModelClient(
        transport,
        phase_configs=phase_configs,
        max_retries=max_retries,
        retry_delay=retry_delay,
    )
