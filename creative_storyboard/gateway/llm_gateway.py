"""Language model gateway for the creative director persona.

The storyboard core only needs "send these messages, get text back". The
gateway hides which provider answers, prepends the persona system prompt and
the conversation context, maps provider exceptions to error codes, and owns
retrying transient failures.
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Literal, Optional

import anthropic
import openai

from creative_storyboard.agents.base import AgentExecutionError, RetryPolicy
from creative_storyboard.cache.response_cache import LLM_RESPONSE_TTL_SECONDS, ResponseCache
from creative_storyboard.gateway.prompts import CREATIVE_DIRECTOR_SYSTEM_PROMPT, format_context
from creative_storyboard.orchestrator.retry_policy import execute_with_retry

logger = logging.getLogger(__name__)


DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-sonnet-latest",
}

API_KEY_ENV_VARS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}


class GatewayFailure(AgentExecutionError):
    """Language model call failed (transport, provider, empty output, no key)"""
    pass


@dataclass
class GatewayMessage:
    """One chat message sent to the model."""
    role: Literal["system", "user", "assistant"]
    content: str


@dataclass
class GatewayConfig:
    """Provider settings for a gateway.

    Attributes:
        provider: "openai" or "anthropic"
        model: Model name (None = provider default)
        max_tokens: Completion length cap
        temperature: Sampling temperature
        top_p: Nucleus sampling cutoff
        timeout_seconds: Per-request timeout
        api_key: Explicit key (None = read the provider's env var)
    """
    provider: str = "openai"
    model: Optional[str] = None
    max_tokens: int = 1500
    temperature: float = 0.7
    top_p: float = 0.9
    timeout_seconds: float = 60.0
    api_key: Optional[str] = None

    @property
    def resolved_model(self) -> str:
        return self.model or DEFAULT_MODELS.get(self.provider, "")

    def resolve_api_key(self) -> Optional[str]:
        if self.api_key:
            return self.api_key
        env_var = API_KEY_ENV_VARS.get(self.provider)
        return os.getenv(env_var) if env_var else None


def map_provider_error(error: Exception, sdk: Any, provider: str) -> GatewayFailure:
    """Translate an openai/anthropic SDK exception into a GatewayFailure.

    Both SDKs expose the same exception hierarchy, so the module is passed in.
    APITimeoutError subclasses APIConnectionError and is checked first.
    """
    if isinstance(error, sdk.APITimeoutError):
        code = "LLM_TIMEOUT"
    elif isinstance(error, sdk.APIConnectionError):
        code = "NETWORK_ERROR"
    elif isinstance(error, sdk.RateLimitError):
        code = "LLM_RATE_LIMIT"
    elif isinstance(error, (sdk.AuthenticationError, sdk.PermissionDeniedError)):
        code = "LLM_AUTH_FAILED"
    elif isinstance(error, sdk.InternalServerError):
        code = "LLM_OVERLOADED"
    else:
        code = "LLM_API_ERROR"

    context = {"provider": provider, "error_type": type(error).__name__}
    status_code = getattr(error, "status_code", None)
    if status_code is not None:
        context["status_code"] = status_code
    return GatewayFailure(code, str(error), context)


class LanguageModelGateway(ABC):
    """Base interface for language model providers

    Subclasses implement _complete_once(); complete() adds retry.
    """

    def __init__(self, config: GatewayConfig, retry_policy: Optional[RetryPolicy] = None):
        self.config = config
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=1)

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @property
    def model_name(self) -> str:
        return self.config.resolved_model

    async def complete(
        self,
        messages: List[GatewayMessage],
        context: Optional[Dict[str, Any]] = None
    ) -> str:
        """Send messages to the model and return its text reply

        Args:
            messages: Conversation to send (without the persona prompt)
            context: Conversation context rendered by format_context()

        Returns:
            Non-empty completion text

        Raises:
            GatewayFailure: On provider, transport or configuration failure
        """
        return await execute_with_retry(
            lambda: self._complete_once(messages, context),
            self.retry_policy,
            f"{self.provider_name} completion"
        )

    @abstractmethod
    async def _complete_once(
        self,
        messages: List[GatewayMessage],
        context: Optional[Dict[str, Any]]
    ) -> str:
        pass

    def _not_configured(self) -> GatewayFailure:
        return GatewayFailure(
            "LLM_NOT_CONFIGURED",
            f"No API key configured for {self.provider_name}",
            {"provider": self.provider_name, "env_var": API_KEY_ENV_VARS.get(self.provider_name)}
        )

    def _empty_response(self) -> GatewayFailure:
        return GatewayFailure(
            "LLM_EMPTY_RESPONSE",
            f"{self.provider_name} returned an empty completion",
            {"provider": self.provider_name, "model": self.model_name}
        )


class OpenAIGateway(LanguageModelGateway):
    """Gateway backed by the OpenAI chat completions API"""

    def __init__(
        self,
        config: GatewayConfig,
        retry_policy: Optional[RetryPolicy] = None,
        client: Optional[openai.AsyncOpenAI] = None
    ):
        super().__init__(config, retry_policy)
        if client is not None:
            self.client = client
        else:
            api_key = config.resolve_api_key()
            if api_key:
                # Retries are owned by the gateway's RetryPolicy
                self.client = openai.AsyncOpenAI(
                    api_key=api_key,
                    timeout=config.timeout_seconds,
                    max_retries=0
                )
            else:
                self.client = None
                logger.warning("OPENAI_API_KEY not found. OpenAIGateway will fail if called.")

    @property
    def provider_name(self) -> str:
        return "openai"

    def build_messages(
        self,
        messages: List[GatewayMessage],
        context: Optional[Dict[str, Any]]
    ) -> List[Dict[str, str]]:
        """Persona prompt first, then the context, then the conversation"""
        formatted = [{"role": "system", "content": CREATIVE_DIRECTOR_SYSTEM_PROMPT}]
        if context:
            formatted.append({"role": "system", "content": format_context(context)})
        formatted.extend({"role": m.role, "content": m.content} for m in messages)
        return formatted

    async def _complete_once(
        self,
        messages: List[GatewayMessage],
        context: Optional[Dict[str, Any]]
    ) -> str:
        if self.client is None:
            raise self._not_configured()

        try:
            response = await self.client.chat.completions.create(
                model=self.model_name,
                messages=self.build_messages(messages, context),
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                top_p=self.config.top_p,
            )
        except openai.OpenAIError as e:
            raise map_provider_error(e, openai, self.provider_name) from e

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise self._empty_response()
        return content


class AnthropicGateway(LanguageModelGateway):
    """Gateway backed by the Anthropic messages API"""

    def __init__(
        self,
        config: GatewayConfig,
        retry_policy: Optional[RetryPolicy] = None,
        client: Optional[anthropic.AsyncAnthropic] = None
    ):
        super().__init__(config, retry_policy)
        if client is not None:
            self.client = client
        else:
            api_key = config.resolve_api_key()
            if api_key:
                self.client = anthropic.AsyncAnthropic(
                    api_key=api_key,
                    timeout=config.timeout_seconds,
                    max_retries=0
                )
            else:
                self.client = None
                logger.warning("ANTHROPIC_API_KEY not found. AnthropicGateway will fail if called.")

    @property
    def provider_name(self) -> str:
        return "anthropic"

    def build_system(
        self,
        messages: List[GatewayMessage],
        context: Optional[Dict[str, Any]]
    ) -> str:
        """Merge persona prompt, context and any system messages into one block"""
        parts = [CREATIVE_DIRECTOR_SYSTEM_PROMPT]
        if context:
            parts.append(format_context(context))
        parts.extend(m.content for m in messages if m.role == "system")
        return "\n\n".join(parts)

    async def _complete_once(
        self,
        messages: List[GatewayMessage],
        context: Optional[Dict[str, Any]]
    ) -> str:
        if self.client is None:
            raise self._not_configured()

        try:
            response = await self.client.messages.create(
                model=self.model_name,
                system=self.build_system(messages, context),
                messages=[
                    {"role": m.role, "content": m.content}
                    for m in messages if m.role != "system"
                ],
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                top_p=self.config.top_p,
            )
        except anthropic.AnthropicError as e:
            raise map_provider_error(e, anthropic, self.provider_name) from e

        content = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        if not content.strip():
            raise self._empty_response()
        return content


class CachedGateway(LanguageModelGateway):
    """Memoizes completions of another gateway in a ResponseCache"""

    NAMESPACE = "marcus"
    TAGS = ["marcus", "llm"]

    def __init__(
        self,
        inner: LanguageModelGateway,
        cache: ResponseCache,
        ttl_seconds: float = LLM_RESPONSE_TTL_SECONDS
    ):
        super().__init__(inner.config, RetryPolicy(max_attempts=1))
        self.inner = inner
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    @property
    def provider_name(self) -> str:
        return self.inner.provider_name

    @property
    def model_name(self) -> str:
        return self.inner.model_name

    async def complete(
        self,
        messages: List[GatewayMessage],
        context: Optional[Dict[str, Any]] = None
    ) -> str:
        key = self.cache.generate_key(self.NAMESPACE, {
            "provider": self.provider_name,
            "model": self.model_name,
            "messages": [asdict(m) for m in messages],
            "context": context or {},
        })

        cached = self.cache.get(key)
        if isinstance(cached, str):
            return cached

        content = await self.inner.complete(messages, context)
        self.cache.set(
            key,
            content,
            ttl=self.ttl_seconds,
            tags=self.TAGS,
            provider=self.provider_name,
            model=self.model_name
        )
        return content

    async def _complete_once(
        self,
        messages: List[GatewayMessage],
        context: Optional[Dict[str, Any]]
    ) -> str:
        return await self.inner.complete(messages, context)


def create_gateway(
    config: GatewayConfig,
    retry_policy: Optional[RetryPolicy] = None
) -> LanguageModelGateway:
    """Build the gateway for config.provider

    Raises:
        GatewayFailure: INVALID_CONFIGURATION for an unknown provider
    """
    if config.provider == "openai":
        return OpenAIGateway(config, retry_policy)
    if config.provider == "anthropic":
        return AnthropicGateway(config, retry_policy)
    raise GatewayFailure(
        "INVALID_CONFIGURATION",
        f"Unknown language model provider: {config.provider}",
        {"provider": config.provider, "supported": sorted(DEFAULT_MODELS)}
    )
