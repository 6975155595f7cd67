"""Tests for the language model gateway."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import anthropic
import httpx
import openai
import pytest

from creative_storyboard.cache.response_cache import ResponseCache
from creative_storyboard.gateway import (
    CREATIVE_DIRECTOR_SYSTEM_PROMPT,
    AnthropicGateway,
    CachedGateway,
    GatewayConfig,
    GatewayFailure,
    GatewayMessage,
    OpenAIGateway,
    create_gateway,
    format_context,
    map_provider_error,
)
from creative_storyboard.orchestrator.retry_policy import create_retry_policy
from tests.conftest import build_brand


OPENAI_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"


def openai_response(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def anthropic_response(*texts):
    return SimpleNamespace(content=[SimpleNamespace(type="text", text=t) for t in texts])


def openai_client(**create_kwargs):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(**create_kwargs)
    return client


def anthropic_client(**create_kwargs):
    client = MagicMock()
    client.messages.create = AsyncMock(**create_kwargs)
    return client


def http_response(status_code, url=OPENAI_URL):
    return httpx.Response(status_code, request=httpx.Request("POST", url))


MESSAGES = [GatewayMessage(role="user", content="Plan a 30 second coffee ad")]


# ============================================================================
# OpenAI Gateway Tests
# ============================================================================

class TestOpenAIGateway:
    """Chat completions backed gateway."""

    @pytest.mark.asyncio
    async def test_complete_returns_text(self):
        client = openai_client(return_value=openai_response('{"scenes": []}'))
        gateway = OpenAIGateway(GatewayConfig(), client=client)

        text = await gateway.complete(MESSAGES)

        assert text == '{"scenes": []}'
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["max_tokens"] == 1500
        assert kwargs["temperature"] == 0.7
        assert kwargs["top_p"] == 0.9

    @pytest.mark.asyncio
    async def test_system_prompt_then_context_then_messages(self):
        client = openai_client(return_value=openai_response("ok"))
        gateway = OpenAIGateway(GatewayConfig(model="gpt-4o"), client=client)

        await gateway.complete(MESSAGES, context={"currentGoal": "storyboard_planning"})

        sent = client.chat.completions.create.call_args.kwargs["messages"]
        assert sent[0] == {"role": "system", "content": CREATIVE_DIRECTOR_SYSTEM_PROMPT}
        assert sent[1]["role"] == "system"
        assert "Current Goal: storyboard_planning" in sent[1]["content"]
        assert sent[2] == {"role": "user", "content": "Plan a 30 second coffee ad"}
        assert client.chat.completions.create.call_args.kwargs["model"] == "gpt-4o"

    def test_no_context_message_without_context(self):
        gateway = OpenAIGateway(GatewayConfig(), client=openai_client())

        sent = gateway.build_messages(MESSAGES, None)

        assert [m["role"] for m in sent] == ["system", "user"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", [None, "", "   \n"])
    async def test_empty_completion_raises(self, content):
        gateway = OpenAIGateway(GatewayConfig(), client=openai_client(return_value=openai_response(content)))

        with pytest.raises(GatewayFailure) as exc_info:
            await gateway.complete(MESSAGES)

        assert exc_info.value.error_code == "LLM_EMPTY_RESPONSE"

    @pytest.mark.asyncio
    async def test_missing_api_key_raises_not_configured(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        gateway = OpenAIGateway(GatewayConfig())

        assert gateway.client is None
        with pytest.raises(GatewayFailure) as exc_info:
            await gateway.complete(MESSAGES)

        assert exc_info.value.error_code == "LLM_NOT_CONFIGURED"
        assert exc_info.value.context["env_var"] == "OPENAI_API_KEY"

    @pytest.mark.asyncio
    async def test_timeout_is_mapped(self):
        error = openai.APITimeoutError(request=httpx.Request("POST", OPENAI_URL))
        gateway = OpenAIGateway(GatewayConfig(), client=openai_client(side_effect=error))

        with pytest.raises(GatewayFailure) as exc_info:
            await gateway.complete(MESSAGES)

        assert exc_info.value.error_code == "LLM_TIMEOUT"
        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self):
        error = openai.APIConnectionError(request=httpx.Request("POST", OPENAI_URL))
        client = openai_client(side_effect=[error, openai_response("second time lucky")])
        gateway = OpenAIGateway(
            GatewayConfig(),
            retry_policy=create_retry_policy("llm_gateway", max_attempts=3),
            client=client,
        )

        with patch(
            "creative_storyboard.orchestrator.retry_policy.asyncio.sleep",
            new_callable=AsyncMock,
        ) as sleep:
            text = await gateway.complete(MESSAGES)

        assert text == "second time lucky"
        assert client.chat.completions.create.await_count == 2
        sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_auth_failure_is_not_retried(self):
        error = openai.AuthenticationError("bad key", response=http_response(401), body=None)
        client = openai_client(side_effect=error)
        gateway = OpenAIGateway(
            GatewayConfig(),
            retry_policy=create_retry_policy("llm_gateway", max_attempts=3),
            client=client,
        )

        with pytest.raises(GatewayFailure) as exc_info:
            await gateway.complete(MESSAGES)

        assert exc_info.value.error_code == "LLM_AUTH_FAILED"
        assert client.chat.completions.create.await_count == 1


# ============================================================================
# Anthropic Gateway Tests
# ============================================================================

class TestAnthropicGateway:
    """Messages API backed gateway."""

    @pytest.mark.asyncio
    async def test_complete_joins_text_blocks(self):
        client = anthropic_client(return_value=anthropic_response('{"scenes"', ': []}'))
        gateway = AnthropicGateway(GatewayConfig(provider="anthropic"), client=client)

        text = await gateway.complete(MESSAGES)

        assert text == '{"scenes": []}'
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-3-5-sonnet-latest"
        assert kwargs["messages"] == [{"role": "user", "content": "Plan a 30 second coffee ad"}]

    @pytest.mark.asyncio
    async def test_system_block_holds_prompt_and_context(self):
        client = anthropic_client(return_value=anthropic_response("ok"))
        gateway = AnthropicGateway(GatewayConfig(provider="anthropic"), client=client)
        messages = [GatewayMessage(role="system", content="Be brief")] + MESSAGES

        await gateway.complete(messages, context={"currentGoal": "storyboard_planning"})

        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["system"].startswith(CREATIVE_DIRECTOR_SYSTEM_PROMPT)
        assert "Current Goal: storyboard_planning" in kwargs["system"]
        assert kwargs["system"].endswith("Be brief")
        assert all(m["role"] != "system" for m in kwargs["messages"])

    @pytest.mark.asyncio
    async def test_non_text_blocks_only_is_empty(self):
        response = SimpleNamespace(content=[SimpleNamespace(type="tool_use", id="t1")])
        gateway = AnthropicGateway(
            GatewayConfig(provider="anthropic"),
            client=anthropic_client(return_value=response),
        )

        with pytest.raises(GatewayFailure) as exc_info:
            await gateway.complete(MESSAGES)

        assert exc_info.value.error_code == "LLM_EMPTY_RESPONSE"

    @pytest.mark.asyncio
    async def test_overloaded_is_mapped(self):
        error = anthropic.InternalServerError(
            "overloaded", response=http_response(529, ANTHROPIC_URL), body=None
        )
        gateway = AnthropicGateway(
            GatewayConfig(provider="anthropic"),
            client=anthropic_client(side_effect=error),
        )

        with pytest.raises(GatewayFailure) as exc_info:
            await gateway.complete(MESSAGES)

        assert exc_info.value.error_code == "LLM_OVERLOADED"
        assert exc_info.value.context["status_code"] == 529
        assert exc_info.value.context["provider"] == "anthropic"


# ============================================================================
# Error Mapping Tests
# ============================================================================

class TestMapProviderError:
    """SDK exception to error code translation."""

    def test_rate_limit(self):
        error = openai.RateLimitError("slow down", response=http_response(429), body=None)

        failure = map_provider_error(error, openai, "openai")

        assert failure.error_code == "LLM_RATE_LIMIT"
        assert failure.context == {
            "provider": "openai",
            "error_type": "RateLimitError",
            "status_code": 429,
        }

    def test_connection_error(self):
        error = anthropic.APIConnectionError(request=httpx.Request("POST", ANTHROPIC_URL))

        assert map_provider_error(error, anthropic, "anthropic").error_code == "NETWORK_ERROR"

    def test_permission_denied(self):
        error = openai.PermissionDeniedError("nope", response=http_response(403), body=None)

        assert map_provider_error(error, openai, "openai").error_code == "LLM_AUTH_FAILED"

    def test_other_status_is_api_error(self):
        error = openai.BadRequestError("bad request", response=http_response(400), body=None)

        failure = map_provider_error(error, openai, "openai")

        assert failure.error_code == "LLM_API_ERROR"
        assert failure.context["status_code"] == 400


# ============================================================================
# Cached Gateway and Factory Tests
# ============================================================================

class TestCachedGateway:
    """Completion memoization."""

    @pytest.mark.asyncio
    async def test_identical_calls_hit_inner_once(self):
        client = openai_client(return_value=openai_response("cached reply"))
        cache = ResponseCache()
        gateway = CachedGateway(OpenAIGateway(GatewayConfig(), client=client), cache)

        first = await gateway.complete(MESSAGES, {"currentGoal": "storyboard_planning"})
        second = await gateway.complete(MESSAGES, {"currentGoal": "storyboard_planning"})

        assert first == second == "cached reply"
        assert client.chat.completions.create.await_count == 1
        assert cache.get_stats()["tags"] == ["llm", "marcus"]
        assert cache.get_stats()["providers"] == ["openai"]

    @pytest.mark.asyncio
    async def test_different_context_misses(self):
        client = openai_client(return_value=openai_response("reply"))
        gateway = CachedGateway(OpenAIGateway(GatewayConfig(), client=client), ResponseCache())

        await gateway.complete(MESSAGES, {"currentGoal": "a"})
        await gateway.complete(MESSAGES, {"currentGoal": "b"})

        assert client.chat.completions.create.await_count == 2

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self):
        error = openai.APITimeoutError(request=httpx.Request("POST", OPENAI_URL))
        client = openai_client(side_effect=[error, openai_response("recovered")])
        cache = ResponseCache()
        gateway = CachedGateway(OpenAIGateway(GatewayConfig(), client=client), cache)

        with pytest.raises(GatewayFailure):
            await gateway.complete(MESSAGES)

        assert len(cache) == 0
        assert await gateway.complete(MESSAGES) == "recovered"


class TestCreateGateway:
    """Provider selection."""

    def test_openai_with_explicit_key(self):
        gateway = create_gateway(GatewayConfig(provider="openai", api_key="sk-test"))

        assert isinstance(gateway, OpenAIGateway)
        assert gateway.client is not None
        assert gateway.model_name == "gpt-4o-mini"

    def test_anthropic_from_env(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")

        gateway = create_gateway(GatewayConfig(provider="anthropic"))

        assert isinstance(gateway, AnthropicGateway)
        assert gateway.client is not None

    def test_unknown_provider(self):
        with pytest.raises(GatewayFailure) as exc_info:
            create_gateway(GatewayConfig(provider="cohere"))

        assert exc_info.value.error_code == "INVALID_CONFIGURATION"
        assert exc_info.value.context["supported"] == ["anthropic", "openai"]


# ============================================================================
# Context Formatting Tests
# ============================================================================

class TestFormatContext:
    """Rendering of the conversation context block."""

    def test_full_context_from_model(self):
        text = format_context({
            "brand": build_brand(),
            "currentGoal": "storyboard_planning",
            "extractedInfo": {"duration": 30},
        })

        assert text.splitlines() == [
            "Current conversation context:",
            "Brand: Acme Coffee - Specialty coffee delivered before your first meeting",
            "Industry: food and beverage",
            "Target Audience: busy professionals",
            "Brand Voice: friendly",
            "Current Goal: storyboard_planning",
            'Extracted Information: {"duration": 30}',
        ]
        assert text.endswith("\n")

    def test_brand_as_camel_case_dict(self):
        brand = build_brand().model_dump(mode="json", by_alias=True)

        text = format_context({"brand": brand})

        assert "Target Audience: busy professionals" in text
        assert "Brand Voice: friendly" in text

    def test_empty_context(self):
        assert format_context(None) == "Current conversation context:\n"
        assert format_context({}) == "Current conversation context:\n"

    def test_blank_brand_fields_are_skipped(self):
        text = format_context({"brand": {"name": "Acme", "description": ""}})

        assert "Industry" not in text
        assert "Target Audience" not in text
