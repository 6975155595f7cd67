"""Agent implementations for the storyboard planning pipeline"""

from .base import Agent, AgentExecutionError, AgentInput, AgentOutput, RetryPolicy
from .json_sanitizer import JSONSanitizerAgent, SanitizationCorrection, SanitizerInput, SanitizerOutput
from .prompt_builder import build_storyboard_prompt
from .response_parser import (
    ParseContinue,
    ParseStage,
    ParseSuccess,
    ResponseParserInput,
    ResponseParserOutput,
    StoryboardResponseParser,
)

__all__ = [
    "Agent",
    "AgentExecutionError",
    "AgentInput",
    "AgentOutput",
    "RetryPolicy",
    "JSONSanitizerAgent",
    "SanitizationCorrection",
    "SanitizerInput",
    "SanitizerOutput",
    "build_storyboard_prompt",
    "ParseContinue",
    "ParseStage",
    "ParseSuccess",
    "ResponseParserInput",
    "ResponseParserOutput",
    "StoryboardResponseParser",
]
