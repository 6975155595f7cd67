"""Retry policy implementation for language model calls.

This module provides retry logic with backoff for handling transient failures
of the language model gateway. It distinguishes between retryable errors
(timeouts, rate limits, dropped connections) and non-retryable errors (bad
credentials, missing configuration, invalid input).

The retry system supports:
- Exponential, linear, and constant backoff strategies
- Configurable max attempts and delay bounds
- Error code-based retry decisions
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, TypeVar

from creative_storyboard.agents.base import BackoffStrategy, RetryPolicy


logger = logging.getLogger(__name__)


T = TypeVar('T')


# Common retryable error codes
RETRYABLE_ERROR_CODES = {
    # Network errors
    'NETWORK_ERROR',
    'CONNECTION_TIMEOUT',
    'SERVICE_UNAVAILABLE',

    # LLM-specific errors
    'LLM_TIMEOUT',
    'LLM_RATE_LIMIT',
    'LLM_OVERLOADED',
}


# Non-retryable error codes (deterministic failures)
NON_RETRYABLE_ERROR_CODES = {
    # Provider errors a retry cannot fix
    'LLM_AUTH_FAILED',
    'LLM_NOT_CONFIGURED',
    'LLM_API_ERROR',

    # Input errors
    'INVALID_INPUT',
    'INVALID_CONFIGURATION',
    'SANITIZATION_FAILED',
}


def calculate_backoff_delay(
    attempt: int,
    strategy: BackoffStrategy,
    base_delay: float,
    max_delay: float
) -> float:
    """Calculate backoff delay for retry attempt.

    Args:
        attempt: Current attempt number (0-indexed)
        strategy: Backoff strategy to use
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds

    Returns:
        Delay in seconds, capped at max_delay

    Examples:
        >>> calculate_backoff_delay(0, BackoffStrategy.EXPONENTIAL, 1.0, 60.0)
        1.0
        >>> calculate_backoff_delay(2, BackoffStrategy.EXPONENTIAL, 1.0, 60.0)
        4.0
        >>> calculate_backoff_delay(10, BackoffStrategy.EXPONENTIAL, 1.0, 60.0)
        60.0
    """
    if strategy == BackoffStrategy.EXPONENTIAL:
        delay = base_delay * (2 ** attempt)
    elif strategy == BackoffStrategy.LINEAR:
        delay = base_delay * (attempt + 1)
    else:  # CONSTANT
        delay = base_delay

    return min(delay, max_delay)


def is_retryable_error(error: Exception, retry_policy: RetryPolicy) -> bool:
    """Determine if an error is retryable based on retry policy.

    Args:
        error: Exception to check
        retry_policy: Retry policy with retryable error codes

    Returns:
        True if error should be retried, False otherwise

    Logic:
        1. Errors without an error_code are never retried
        2. Codes in NON_RETRYABLE_ERROR_CODES are never retried
        3. A policy with retryable_errors decides by membership
        4. Otherwise RETRYABLE_ERROR_CODES decides
    """
    error_code = getattr(error, 'error_code', None)

    if error_code is None:
        return False

    if error_code in NON_RETRYABLE_ERROR_CODES:
        return False

    if retry_policy.retryable_errors:
        return error_code in retry_policy.retryable_errors

    return error_code in RETRYABLE_ERROR_CODES


async def execute_with_retry(
    func: Callable[[], Awaitable[T]],
    retry_policy: RetryPolicy,
    context_name: str = "operation"
) -> T:
    """Await a coroutine factory with retry logic.

    Args:
        func: Zero-argument callable returning a fresh awaitable per attempt
        retry_policy: Retry policy to apply
        context_name: Name for logging context

    Returns:
        Result of the first successful attempt

    Raises:
        Exception: Last exception if all retries exhausted or not retryable

    Example:
        >>> policy = create_retry_policy('llm_gateway', max_attempts=3)
        >>> text = await execute_with_retry(
        ...     lambda: gateway.complete(messages),
        ...     policy,
        ...     "storyboard completion"
        ... )
    """
    total_delay = 0.0

    for attempt in range(retry_policy.max_attempts):
        try:
            result = await func()

            if attempt > 0:
                logger.info(
                    f"{context_name} succeeded on attempt {attempt + 1} "
                    f"after {total_delay:.2f}s total delay"
                )

            return result

        except Exception as e:
            is_last_attempt = (attempt == retry_policy.max_attempts - 1)
            should_retry = (
                not is_last_attempt
                and is_retryable_error(e, retry_policy)
            )

            if not should_retry:
                if is_last_attempt:
                    logger.error(
                        f"{context_name} failed after {retry_policy.max_attempts} attempts"
                    )
                else:
                    error_code = getattr(e, 'error_code', 'UNKNOWN')
                    logger.error(
                        f"{context_name} failed with non-retryable error: {error_code}"
                    )
                raise

            delay = calculate_backoff_delay(
                attempt,
                retry_policy.backoff_strategy,
                retry_policy.base_delay_seconds,
                retry_policy.max_delay_seconds
            )
            total_delay += delay

            error_code = getattr(e, 'error_code', 'UNKNOWN')
            logger.warning(
                f"{context_name} failed with {error_code}, "
                f"retrying in {delay:.2f}s (attempt {attempt + 2}/{retry_policy.max_attempts})"
            )

            await asyncio.sleep(delay)

    raise RuntimeError(f"{context_name} ran with max_attempts={retry_policy.max_attempts}")


def create_retry_policy(
    component: str,
    max_attempts: int = 1,
    retryable_errors: Optional[List[str]] = None
) -> RetryPolicy:
    """Create a retry policy for a pipeline component.

    Args:
        component: Component name (for determining defaults)
        max_attempts: Maximum number of attempts
        retryable_errors: List of retryable error codes (None = use defaults)

    Returns:
        RetryPolicy configured for the component

    Component defaults:
        - llm_gateway: Retry LLM timeouts, rate limits and network errors
        - response_parser, json_sanitizer: No retry (deterministic)
    """
    if max_attempts <= 1:
        return RetryPolicy(
            max_attempts=1,
            backoff_strategy=BackoffStrategy.EXPONENTIAL,
            base_delay_seconds=1.0,
            max_delay_seconds=60.0,
            retryable_errors=[]
        )

    if retryable_errors is None:
        if component == 'llm_gateway':
            retryable_errors = [
                'NETWORK_ERROR',
                'CONNECTION_TIMEOUT',
                'LLM_TIMEOUT',
                'LLM_RATE_LIMIT',
                'LLM_OVERLOADED',
            ]
        else:
            retryable_errors = sorted(RETRYABLE_ERROR_CODES)

    return RetryPolicy(
        max_attempts=max_attempts,
        backoff_strategy=BackoffStrategy.EXPONENTIAL,
        base_delay_seconds=1.0,
        max_delay_seconds=60.0,
        retryable_errors=retryable_errors
    )
