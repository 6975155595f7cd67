"""Storyboard service: request in, storyboard plan out.

This module implements the orchestrator that turns a StoryboardRequest into a
StoryboardPlan: cache lookup → prompt → language model call → response
parsing and sanitization → cache store.

Error Handling Strategy:
- **Abort**: A failed language model call ends the request with a
  GenerationFailure. It is the only exception callers ever see.
- **Retry**: Transient gateway failures (timeouts, rate limits, dropped
  connections) are retried inside the gateway per its RetryPolicy.
- **Degrade**: Malformed model output never fails the request; the response
  parser falls back through its cascade and always returns a plan.
- **Ignore**: Cache failures are logged and treated as misses.
"""

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import ValidationError

from creative_storyboard.agents.base import AgentExecutionError
from creative_storyboard.agents.prompt_builder import build_storyboard_prompt
from creative_storyboard.agents.response_parser import (
    ParseStage,
    ResponseParserInput,
    ResponseParserOutput,
    StoryboardResponseParser,
)
from creative_storyboard.cache.response_cache import (
    DEFAULT_MAX_ENTRIES,
    DEFAULT_SWEEP_INTERVAL_SECONDS,
    LLM_RESPONSE_TTL_SECONDS,
    STORYBOARD_TTL_SECONDS,
    ResponseCache,
)
from creative_storyboard.gateway.llm_gateway import (
    CachedGateway,
    GatewayConfig,
    GatewayMessage,
    LanguageModelGateway,
    create_gateway,
)
from creative_storyboard.orchestrator.logger import StructuredJSONLogger
from creative_storyboard.orchestrator.retry_policy import create_retry_policy
from creative_storyboard.schemas.request import StoryboardRequest
from creative_storyboard.schemas.storyboard import StoryboardPlan


logger = logging.getLogger(__name__)


STORYBOARD_NAMESPACE = "storyboard"
STORYBOARD_CACHE_TAGS = ["storyboard", "marcus"]
STORYBOARD_CACHE_MODEL = "storyboard"
STORYBOARD_GOAL = "storyboard_planning"

LLM_STAGE = "llm_call"
PARSE_STAGE = "parse"

DEGRADED_STAGES = {ParseStage.TEXT_MINING, ParseStage.SYNTHETIC_DEFAULT}


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={value!r}, using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    value = _env_float(name, default)
    return int(value) if value is not None else default


@dataclass
class ServiceConfig:
    """Configuration for the storyboard service.

    Attributes:
        provider: Language model provider ("openai" or "anthropic")
        model: Model name (None = provider default)
        max_tokens: Completion length cap
        temperature: Sampling temperature
        top_p: Nucleus sampling cutoff
        timeout_seconds: Per-request timeout for the model call
        llm_max_attempts: Attempts per model call, including the first
        storyboard_cache_ttl_seconds: How long a generated plan is reused
        cache_max_entries: Response cache capacity
        cache_sweep_interval_seconds: Period of the expired-entry sweep
        cache_llm_responses: Also memoize raw model completions
        log_directory: Where storyboard.log is written (None = console only)
    """
    provider: str = "openai"
    model: Optional[str] = None
    max_tokens: int = 1500
    temperature: float = 0.7
    top_p: float = 0.9
    timeout_seconds: float = 60.0
    llm_max_attempts: int = 1
    storyboard_cache_ttl_seconds: float = STORYBOARD_TTL_SECONDS
    cache_max_entries: int = DEFAULT_MAX_ENTRIES
    cache_sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS
    cache_llm_responses: bool = False
    log_directory: Optional[str] = None

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        """Build a config from STORYBOARD_* environment variables."""
        defaults = cls()
        return cls(
            provider=os.getenv("STORYBOARD_LLM_PROVIDER", defaults.provider).lower(),
            model=os.getenv("STORYBOARD_LLM_MODEL") or None,
            timeout_seconds=_env_float("STORYBOARD_LLM_TIMEOUT_SECONDS", defaults.timeout_seconds),
            llm_max_attempts=_env_int("STORYBOARD_LLM_MAX_ATTEMPTS", defaults.llm_max_attempts),
            storyboard_cache_ttl_seconds=_env_float(
                "STORYBOARD_CACHE_TTL_SECONDS", defaults.storyboard_cache_ttl_seconds
            ),
            cache_llm_responses=os.getenv("STORYBOARD_CACHE_LLM_RESPONSES", "").lower() in ("1", "true", "yes"),
            log_directory=os.getenv("STORYBOARD_LOG_DIR") or None,
        )

    def to_gateway_config(self) -> GatewayConfig:
        return GatewayConfig(
            provider=self.provider,
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            top_p=self.top_p,
            timeout_seconds=self.timeout_seconds,
        )


class GenerationFailure(Exception):
    """Exception raised when a storyboard cannot be generated.

    Attributes:
        stage: Stage where the failure occurred
        error_code: Machine-readable error code
        message: Human-readable error message
        context: Additional context about the failure
    """

    def __init__(self, stage: str, error_code: str, message: str, context: Optional[Dict[str, Any]] = None):
        self.stage = stage
        self.error_code = error_code
        self.message = message
        self.context = context or {}
        super().__init__(f"Storyboard generation failed at {stage}: [{error_code}] {message}")


class StoryboardService:
    """Generates storyboard plans for the creative director workflow.

    All collaborators are injected, so one service can be built at process
    start and shared by every request handler.
    """

    def __init__(
        self,
        gateway: LanguageModelGateway,
        cache: Optional[ResponseCache] = None,
        config: Optional[ServiceConfig] = None,
        structured_logger: Optional[StructuredJSONLogger] = None,
        parser: Optional[StoryboardResponseParser] = None
    ):
        """Initialize the service.

        Args:
            gateway: Language model gateway
            cache: Response cache (a private one is created if not provided)
            config: Service configuration (uses defaults if not provided)
            structured_logger: JSON event logger (console only if not provided)
            parser: Response parser (default parser if not provided)
        """
        self.config = config or ServiceConfig()
        self.gateway = gateway
        self.cache = cache if cache is not None else ResponseCache(
            max_entries=self.config.cache_max_entries,
            default_ttl_seconds=self.config.storyboard_cache_ttl_seconds
        )
        self.structured_logger = structured_logger or StructuredJSONLogger(self.config.log_directory)
        self.parser = parser or StoryboardResponseParser()

    async def generate_storyboard_plan(self, request: StoryboardRequest) -> StoryboardPlan:
        """Generate (or reuse) the storyboard plan for a request.

        Args:
            request: Brand, chat context, goals and target duration

        Returns:
            A complete StoryboardPlan

        Raises:
            GenerationFailure: If the language model call fails
        """
        start_time = time.time()
        request_id = request.request_id
        self.structured_logger.log_generation_start(
            request.brand_info.name,
            request.target_duration,
            request_id=request_id
        )

        cache_key = self.cache.generate_key(STORYBOARD_NAMESPACE, request)
        cached_plan = self._load_cached_plan(cache_key)
        if cached_plan is not None:
            self.structured_logger.log_cache_hit(cache_key, request_id=request_id)
            self.structured_logger.log_generation_complete(
                cached_plan.id,
                len(cached_plan.scenes),
                cached_plan.total_duration,
                time.time() - start_time,
                request_id=request_id
            )
            return cached_plan

        prompt = build_storyboard_prompt(request)
        raw_text = await self._call_gateway(prompt, self._build_context(request), request)

        parsed = self._parse_response(raw_text, request)
        plan = parsed.plan

        self.cache.set(
            cache_key,
            plan.model_dump(mode="json", by_alias=True),
            ttl=self.config.storyboard_cache_ttl_seconds,
            tags=STORYBOARD_CACHE_TAGS,
            provider=self.gateway.provider_name,
            model=STORYBOARD_CACHE_MODEL
        )

        self.structured_logger.log_generation_complete(
            plan.id,
            len(plan.scenes),
            plan.total_duration,
            time.time() - start_time,
            parse_stage=parsed.stage.value,
            request_id=request_id
        )
        return plan

    def _load_cached_plan(self, cache_key: str) -> Optional[StoryboardPlan]:
        """Rebuild a cached plan; anything that does not rebuild is a miss."""
        cached = self.cache.get(cache_key)
        if cached is None:
            return None
        try:
            return StoryboardPlan.model_validate(cached)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable cached storyboard {cache_key}: {e}")
            return None

    def _build_context(self, request: StoryboardRequest) -> Dict[str, Any]:
        return {
            "brand": request.brand_info.model_dump(mode="json", by_alias=True),
            "currentGoal": STORYBOARD_GOAL,
            "extractedInfo": {
                "chatHistory": request.chat_context,
                "adGoals": request.ad_goals,
                "duration": request.target_duration,
            },
        }

    async def _call_gateway(
        self,
        prompt: str,
        context: Dict[str, Any],
        request: StoryboardRequest
    ) -> str:
        """Make the single model call of a request.

        Raises:
            GenerationFailure: For any gateway error
        """
        request_id = request.request_id
        input_summary = f"{self.gateway.provider_name}/{self.gateway.model_name}, prompt {len(prompt)} chars"
        self.structured_logger.log_stage_start(LLM_STAGE, input_summary, request_id=request_id)
        start_time = time.time()

        try:
            raw_text = await self.gateway.complete([GatewayMessage("user", prompt)], context)
        except AgentExecutionError as e:
            cause = e
            failure = GenerationFailure(LLM_STAGE, e.error_code, e.message, e.context)
        except Exception as e:
            cause = e
            failure = GenerationFailure(
                LLM_STAGE,
                "LLM_UNEXPECTED_ERROR",
                str(e),
                {"error_type": type(e).__name__}
            )
        else:
            self.structured_logger.log_stage_complete(
                LLM_STAGE,
                (time.time() - start_time) * 1000,
                f"{len(raw_text)} chars",
                request_id=request_id
            )
            return raw_text

        self.structured_logger.log_stage_failure(
            LLM_STAGE,
            failure.message,
            failure.error_code,
            input_summary,
            request_id=request_id,
            duration_ms=(time.time() - start_time) * 1000
        )
        self.structured_logger.log_generation_error(
            failure.error_code,
            failure.message,
            stage=LLM_STAGE,
            request_id=request_id
        )
        raise failure from cause

    def _parse_response(self, raw_text: str, request: StoryboardRequest) -> ResponseParserOutput:
        request_id = request.request_id
        self.structured_logger.log_stage_start(
            PARSE_STAGE,
            f"{len(raw_text)} chars",
            request_id=request_id
        )
        start_time = time.time()

        output = self.parser.execute(ResponseParserInput(raw_text, request))

        status = "DEGRADED" if output.stage in DEGRADED_STAGES else "SUCCESS"
        self.structured_logger.log_stage_complete(
            PARSE_STAGE,
            (time.time() - start_time) * 1000,
            f"{output.stage.value}: {len(output.plan.scenes)} scenes, "
            f"{len(output.corrections)} corrections",
            request_id=request_id,
            status=status
        )
        return output

    def close(self) -> None:
        """Stop the cache sweeper and close the log file."""
        self.cache.stop_sweeper()
        self.structured_logger.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - releases the sweeper thread and log file."""
        self.close()
        return False


def create_storyboard_service(config: Optional[ServiceConfig] = None) -> StoryboardService:
    """Build the cache, gateway, logger and service once at process start.

    Args:
        config: Service configuration (read from the environment if not provided)

    Returns:
        Ready-to-use StoryboardService with its cache sweeper running
    """
    config = config or ServiceConfig.from_env()

    gateway = create_gateway(
        config.to_gateway_config(),
        create_retry_policy("llm_gateway", max_attempts=config.llm_max_attempts)
    )

    cache = ResponseCache(
        max_entries=config.cache_max_entries,
        default_ttl_seconds=config.storyboard_cache_ttl_seconds
    )
    cache.start_sweeper(config.cache_sweep_interval_seconds)

    if config.cache_llm_responses:
        gateway = CachedGateway(gateway, cache, ttl_seconds=LLM_RESPONSE_TTL_SECONDS)

    logger.info(
        f"Storyboard service ready: provider={gateway.provider_name}, model={gateway.model_name}, "
        f"cache_ttl={config.storyboard_cache_ttl_seconds}s"
    )
    return StoryboardService(
        gateway,
        cache=cache,
        config=config,
        structured_logger=StructuredJSONLogger(config.log_directory)
    )
