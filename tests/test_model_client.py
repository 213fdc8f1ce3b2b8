"""
Tests for the model client and the search client.

These tests verify:
- JSON extraction from model output
- Retry with linear backoff and fallback to the secondary model
- Usage accounting
- Client construction from provider settings
- Serper response parsing and failure handling
"""

import pytest
import httpx
from typing import List
from unittest.mock import AsyncMock, patch

from market_intel.analyzer import (
    AnthropicTransport,
    ModelCallError,
    ModelClient,
    ModelClientError,
    ModelRequest,
    ModelResponse,
    ModelTransport,
    OpenRouterTransport,
    PhaseModelConfig,
    TokenUsage,
    build_model_client,
    extract_json_object,
    parse_json_content,
)
from market_intel.integrations.serper import RetryConfig, SerperClient


class ScriptedTransport(ModelTransport):
    """Transport that replays a list of responses or errors per model."""

    def __init__(self, script):
        self.script = {model: list(outcomes) for model, outcomes in script.items()}
        self.calls: List[ModelRequest] = []

    async def send(self, request: ModelRequest) -> ModelResponse:
        self.calls.append(request)
        outcome = self.script[request.model].pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def response(content: str, model: str = "primary", input_tokens: int = 1000, output_tokens: int = 500):
    return ModelResponse(
        content=content,
        model=model,
        usage=TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens),
        finish_reason="stop",
    )


PHASE_CONFIGS = {
    "phase1_website_extraction": PhaseModelConfig("primary", "fallback"),
    "report_consolidation": PhaseModelConfig("primary", "fallback", requires_json=False),
    "default": PhaseModelConfig("primary", "primary"),
}


# =============================================================================
# JSON EXTRACTION TESTS
# =============================================================================

class TestJsonExtraction:
    """Test decoding of model output."""

    def test_extracts_object_from_prose(self):
        """Surrounding prose is ignored."""
        text = 'Here is the profile:\n{"name": "Acme"}\nHope this helps.'
        assert extract_json_object(text) == '{"name": "Acme"}'

    def test_extracts_object_from_code_fence(self):
        text = '```json\n{"a": {"b": 1}}\n```'
        parsed, error = parse_json_content(text)
        assert parsed == {"a": {"b": 1}}
        assert error is None

    def test_braces_inside_strings_ignored(self):
        text = '{"pattern": "use {curly} braces", "ok": true}'
        parsed, _ = parse_json_content(text)
        assert parsed["pattern"] == "use {curly} braces"
        assert parsed["ok"] is True

    def test_unbalanced_returns_none(self):
        assert extract_json_object('{"name": "Acme"') is None
        assert extract_json_object("") is None

    def test_invalid_json_reports_error(self):
        parsed, error = parse_json_content("not json at all")
        assert parsed is None
        assert error


# =============================================================================
# RETRY AND FALLBACK TESTS
# =============================================================================

class TestModelClient:
    """Test phase routing, retries and fallback."""

    @pytest.mark.asyncio
    async def test_success_parses_json(self):
        """JSON phases get a parsed object."""
        transport = ScriptedTransport({"primary": [response('{"ok": true}')]})
        client = ModelClient(transport, phase_configs=PHASE_CONFIGS)

        result = await client.complete("phase1_website_extraction", "prompt", "system")

        assert result.parsed == {"ok": True}
        assert result.parse_error is None
        assert transport.calls[0].system_prompt == "system"

    @pytest.mark.asyncio
    async def test_text_phase_not_parsed(self):
        """Consolidation returns markdown, not JSON."""
        transport = ScriptedTransport({"primary": [response("# Report")]})
        client = ModelClient(transport, phase_configs=PHASE_CONFIGS)

        result = await client.complete("report_consolidation", "prompt")

        assert result.raw == "# Report"
        assert result.parsed is None
        assert result.parse_error is None

    @pytest.mark.asyncio
    async def test_unparseable_output_is_not_an_error(self):
        """Bad JSON comes back with parse_error set instead of raising."""
        transport = ScriptedTransport({"primary": [response("no json here")]})
        client = ModelClient(transport, phase_configs=PHASE_CONFIGS)

        result = await client.complete("phase1_website_extraction", "prompt")

        assert result.parsed is None
        assert result.parse_error

    @pytest.mark.asyncio
    async def test_retries_with_linear_backoff(self):
        """Attempt n waits retry_delay * n before the next attempt."""
        transport = ScriptedTransport({"primary": [
            ModelCallError("boom", status_code=500),
            ModelCallError("boom", status_code=500),
            response('{"ok": 1}'),
        ]})
        client = ModelClient(transport, phase_configs=PHASE_CONFIGS, max_retries=3, retry_delay=2.0)

        with patch("market_intel.analyzer.client.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await client.complete("phase1_website_extraction", "prompt")

        assert result.parsed == {"ok": 1}
        assert [c.args[0] for c in sleep.await_args_list] == [2.0, 4.0]
        assert len(transport.calls) == 3

    @pytest.mark.asyncio
    async def test_fallback_after_primary_exhausted(self):
        """Fallback gets exactly one attempt after the primary's retries."""
        transport = ScriptedTransport({
            "primary": [ModelCallError("down")] * 3,
            "fallback": [response('{"from": "fallback"}', model="fallback")],
        })
        client = ModelClient(transport, phase_configs=PHASE_CONFIGS, max_retries=3, retry_delay=0)

        with patch("market_intel.analyzer.client.asyncio.sleep", new=AsyncMock()):
            result = await client.complete("phase1_website_extraction", "prompt")

        assert result.parsed == {"from": "fallback"}
        assert result.model == "fallback"
        assert [c.model for c in transport.calls] == ["primary"] * 3 + ["fallback"]

    @pytest.mark.asyncio
    async def test_both_models_fail(self):
        transport = ScriptedTransport({
            "primary": [ModelCallError("down", status_code=503)] * 2,
            "fallback": [ModelCallError("also down", status_code=502)],
        })
        client = ModelClient(transport, phase_configs=PHASE_CONFIGS, max_retries=2, retry_delay=0)

        with patch("market_intel.analyzer.client.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(ModelClientError) as exc_info:
                await client.complete("phase1_website_extraction", "prompt")

        assert exc_info.value.phase == "phase1_website_extraction"
        assert exc_info.value.models == ("primary", "fallback")
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_fallback_equal_to_primary_is_skipped(self):
        """Unknown phases use the default route, whose fallback is the primary."""
        transport = ScriptedTransport({"primary": [ModelCallError("down")]})
        client = ModelClient(transport, phase_configs=PHASE_CONFIGS, max_retries=1)

        with pytest.raises(ModelClientError) as exc_info:
            await client.complete("some_other_phase", "prompt")

        assert exc_info.value.models == ("primary",)
        assert len(transport.calls) == 1

    @pytest.mark.asyncio
    async def test_options_override_phase_config(self):
        transport = ScriptedTransport({"primary": [response("plain")]})
        client = ModelClient(transport, phase_configs=PHASE_CONFIGS)

        result = await client.complete(
            "phase1_website_extraction", "prompt",
            options={"temperature": 0.9, "max_tokens": 100, "requires_json": False},
        )

        request = transport.calls[0]
        assert request.temperature == 0.9
        assert request.max_tokens == 100
        assert result.parsed is None


# =============================================================================
# USAGE TESTS
# =============================================================================

class TestUsageTracking:
    """Test token and cost accounting."""

    @pytest.mark.asyncio
    async def test_usage_recorded_for_successful_calls(self):
        transport = ScriptedTransport({"anthropic/claude-sonnet-4": [
            response("{}", input_tokens=1_000_000, output_tokens=0),
        ]})
        client = ModelClient(transport)

        await client.complete("phase1_website_extraction", "prompt")
        summary = client.get_usage_summary()

        assert summary["total_requests"] == 1
        assert summary["input_tokens"] == 1_000_000
        assert summary["total_tokens"] == 1_000_000
        assert summary["estimated_cost"] == pytest.approx(3.0)
        assert summary["phases"]["phase1_website_extraction"]["requests"] == 1

    @pytest.mark.asyncio
    async def test_failed_attempts_not_recorded(self):
        transport = ScriptedTransport({"primary": [ModelCallError("down"), response("{}")]})
        client = ModelClient(transport, phase_configs=PHASE_CONFIGS, max_retries=2, retry_delay=0)

        with patch("market_intel.analyzer.client.asyncio.sleep", new=AsyncMock()):
            await client.complete("phase1_website_extraction", "prompt")

        assert client.get_usage_summary()["total_requests"] == 1

    def test_token_usage_dict(self):
        usage = TokenUsage(input_tokens=10, output_tokens=5)
        assert usage.to_dict() == {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}

    def test_unknown_model_is_free(self):
        assert TokenUsage(input_tokens=1000, output_tokens=1000).cost_for("unknown/model") == 0.0


# =============================================================================
# CONSTRUCTION TESTS
# =============================================================================

class TestBuildModelClient:
    """Test client construction from provider settings."""

    def test_missing_key_raises(self):
        with pytest.raises(ModelClientError):
            build_model_client("openrouter", api_key=None)

    @pytest.mark.asyncio
    async def test_openrouter_provider(self):
        client = build_model_client("openrouter", api_key="test-key", max_retries=5, retry_delay=1.0)

        assert isinstance(client.transport, OpenRouterTransport)
        assert client.max_retries == 5
        assert client.retry_delay == 1.0
        assert client.get_phase_config("phase3_marketing_conversion").primary_model == "openai/gpt-4.1"
        await client.close()

    @pytest.mark.asyncio
    async def test_anthropic_provider(self):
        client = build_model_client("Anthropic", api_key="test-key")

        assert isinstance(client.transport, AnthropicTransport)
        assert client.get_phase_config("report_consolidation").primary_model == "claude-sonnet-4-20250514"
        await client.close()

    def test_anthropic_model_aliases(self):
        transport = AnthropicTransport("test-key")
        assert transport.resolve_model("anthropic/claude-sonnet-4") == "claude-sonnet-4-20250514"
        assert transport.resolve_model("claude-3-5-haiku-20241022") == "claude-3-5-haiku-20241022"


class TestOpenRouterTransport:
    """Test the HTTP transport against a mocked endpoint."""

    @pytest.mark.asyncio
    async def test_send_parses_choices(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path.endswith("/chat/completions")
            return httpx.Response(200, json={
                "model": "openai/gpt-4.1",
                "choices": [{"message": {"content": '{"a": 1}'}, "finish_reason": "stop"}],
                "usage": {"prompt_tokens": 12, "completion_tokens": 3},
            })

        transport = OpenRouterTransport("test-key")
        transport._client = httpx.AsyncClient(
            base_url=transport.BASE_URL, transport=httpx.MockTransport(handler)
        )

        result = await transport.send(ModelRequest(model="openai/gpt-4.1", user_prompt="hi"))

        assert result.content == '{"a": 1}'
        assert result.usage.input_tokens == 12
        assert result.usage.output_tokens == 3
        await transport.close()

    @pytest.mark.asyncio
    async def test_http_error_raises_call_error(self):
        transport = OpenRouterTransport("test-key")
        transport._client = httpx.AsyncClient(
            base_url=transport.BASE_URL,
            transport=httpx.MockTransport(lambda request: httpx.Response(429, text="rate limited")),
        )

        with pytest.raises(ModelCallError) as exc_info:
            await transport.send(ModelRequest(model="openai/gpt-4.1", user_prompt="hi"))

        assert exc_info.value.status_code == 429
        await transport.close()


# =============================================================================
# SEARCH CLIENT TESTS
# =============================================================================

class TestSerperClient:
    """Test search response parsing and failure handling."""

    @pytest.mark.asyncio
    async def test_no_key_returns_empty(self):
        client = SerperClient(api_key=None)

        result = await client.search("acme dental")

        assert not client.has_credentials
        assert result.is_empty

    @pytest.mark.asyncio
    async def test_parses_organic_and_knowledge_graph(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={
                "organic": [
                    {"title": "Acme", "link": "https://acme.se", "snippet": "Dentist"},
                    {"title": "Other", "link": "https://other.se", "position": 7},
                ],
                "knowledgeGraph": {"title": "Acme Dental", "rating": 4.6},
            })

        client = SerperClient(api_key="test-key")
        client._client = httpx.AsyncClient(
            base_url=client.BASE_URL, transport=httpx.MockTransport(handler)
        )

        result = await client.search("acme dental")

        assert [r.position for r in result.organic] == [1, 7]
        assert result.organic[0].snippet == "Dentist"
        assert result.knowledge_graph["rating"] == 4.6
        await client.close()

    @pytest.mark.asyncio
    async def test_api_error_returns_empty(self):
        client = SerperClient(api_key="test-key", retry_config=RetryConfig(max_retries=0))
        client._client = httpx.AsyncClient(
            base_url=client.BASE_URL,
            transport=httpx.MockTransport(lambda request: httpx.Response(403, text="forbidden")),
        )

        result = await client.search("acme dental")

        assert result.is_empty
        await client.close()

    @pytest.mark.asyncio
    async def test_non_object_body_returns_empty(self):
        client = SerperClient(api_key="test-key", retry_config=RetryConfig(max_retries=0))
        client._client = httpx.AsyncClient(
            base_url=client.BASE_URL,
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json=[])),
        )

        result = await client.search("acme dental")

        assert result.is_empty
        await client.close()
