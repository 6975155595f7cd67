"""Response caching for generative model calls."""

from creative_storyboard.cache.response_cache import (
    LLM_RESPONSE_TTL_SECONDS,
    NONDETERMINISTIC_FIELDS,
    STORYBOARD_TTL_SECONDS,
    CacheEntry,
    ResponseCache,
    generate_key,
    normalize_params,
)

__all__ = [
    "CacheEntry",
    "ResponseCache",
    "generate_key",
    "normalize_params",
    "NONDETERMINISTIC_FIELDS",
    "STORYBOARD_TTL_SECONDS",
    "LLM_RESPONSE_TTL_SECONDS",
]
