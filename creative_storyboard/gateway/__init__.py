"""Language model gateway for the creative director persona."""

from creative_storyboard.gateway.llm_gateway import (
    AnthropicGateway,
    CachedGateway,
    GatewayConfig,
    GatewayFailure,
    GatewayMessage,
    LanguageModelGateway,
    OpenAIGateway,
    create_gateway,
    map_provider_error,
)
from creative_storyboard.gateway.prompts import CREATIVE_DIRECTOR_SYSTEM_PROMPT, format_context

__all__ = [
    "LanguageModelGateway",
    "OpenAIGateway",
    "AnthropicGateway",
    "CachedGateway",
    "GatewayConfig",
    "GatewayFailure",
    "GatewayMessage",
    "create_gateway",
    "map_provider_error",
    "format_context",
    "CREATIVE_DIRECTOR_SYSTEM_PROMPT",
]
