"""Base Agent interface for the storyboard planning pipeline

Each stage of storyboard planning (parsing, sanitization) is an agent with a
single responsibility and explicit input/output contracts. The language-model
gateway reuses the retry policy and error types defined here.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


class BackoffStrategy(Enum):
    """Retry backoff strategies"""
    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    CONSTANT = "constant"


@dataclass
class RetryPolicy:
    """Retry policy configuration for an agent or gateway call

    Attributes:
        max_attempts: Maximum number of attempts (including the initial one)
        backoff_strategy: Strategy for calculating retry delays
        base_delay_seconds: Base delay for backoff calculation
        max_delay_seconds: Maximum delay between retries
        retryable_errors: Error codes that should trigger a retry
    """
    max_attempts: int = 1
    backoff_strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0
    retryable_errors: List[str] = None

    def __post_init__(self):
        if self.retryable_errors is None:
            self.retryable_errors = []


class AgentInput(ABC):
    """Base class for agent input data"""
    pass


class AgentOutput(ABC):
    """Base class for agent output data"""
    pass


class AgentExecutionError(Exception):
    """Exception raised for unrecoverable failures inside the pipeline

    Attributes:
        error_code: Machine-readable error code (e.g. LLM_TIMEOUT)
        message: Human-readable error message
        context: Additional context about the failure
    """

    def __init__(self, error_code: str, message: str, context: Optional[Dict[str, Any]] = None):
        self.error_code = error_code
        self.message = message
        self.context = context or {}
        super().__init__(f"[{error_code}] {message}")


class Agent(ABC):
    """Base interface for storyboard pipeline agents

    Agents are synchronous and side-effect free apart from logging; the only
    I/O in the pipeline is the gateway call made by the service.

    - execute(): Perform the agent's task
    - validate_input(): Verify input is of the expected type
    - get_retry_policy(): Retry behavior for transient failures
    """

    @abstractmethod
    def execute(self, input_data: AgentInput) -> AgentOutput:
        """Execute the agent's task

        Args:
            input_data: Agent-specific input object

        Returns:
            Agent-specific output object

        Raises:
            AgentExecutionError: If the input is not usable at all
        """
        pass

    def validate_input(self, input_data: AgentInput) -> bool:
        """Check that input is of the type this agent accepts

        Args:
            input_data: Agent-specific input object to validate

        Returns:
            True if input is valid, False otherwise
        """
        raise NotImplementedError(
            f"{self.__class__.__name__} must implement validate_input()"
        )

    def get_retry_policy(self) -> RetryPolicy:
        """Return retry policy for this agent

        Deterministic agents (parsing, sanitization) never benefit from a
        retry, so the default is a single attempt.
        """
        return RetryPolicy(max_attempts=1)
