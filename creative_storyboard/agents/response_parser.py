"""Storyboard Response Parser Agent

Language models wrap JSON in prose, drop fields, truncate objects and invent
extra scenes. The parser recovers a storyboard from whatever came back by
running an ordered cascade of extraction stages:

1. Fenced code block extraction
2. Balanced-brace scan, longest candidate first
3. Section reconstruction from individually located sections
4. Heuristic text mining of the prose
5. Synthetic default template

Each stage returns ParseSuccess or ParseContinue. The first success is handed
to the JSON sanitizer, which turns it into a complete StoryboardPlan. Stages 4
and 5 cannot fail, so parsing is total: any string yields a valid plan.
"""

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from creative_storyboard.agents.base import Agent, AgentExecutionError, AgentInput, AgentOutput, RetryPolicy
from creative_storyboard.agents.json_sanitizer import (
    JSONSanitizerAgent,
    SanitizationCorrection,
    SanitizerInput,
)
from creative_storyboard.agents.storyboard_defaults import (
    DEFAULT_VISUAL_STYLE,
    default_scenes,
    generate_prompt_from_description,
)
from creative_storyboard.schemas.request import StoryboardRequest
from creative_storyboard.schemas.storyboard import StoryboardCandidate, StoryboardPlan

logger = logging.getLogger(__name__)


class ParseStage(str, Enum):
    """Cascade stage that produced a candidate"""
    CODE_BLOCK = "code_block"
    BRACE_SCAN = "brace_scan"
    SECTION_RECONSTRUCTION = "section_reconstruction"
    TEXT_MINING = "text_mining"
    SYNTHETIC_DEFAULT = "synthetic_default"


@dataclass
class ParseSuccess:
    """A stage found a candidate that passed structural validation."""
    candidate: Dict[str, Any]
    stage: ParseStage


@dataclass
class ParseContinue:
    """A stage found nothing usable; the next stage should run."""
    reason: str


StageResult = Union[ParseSuccess, ParseContinue]


CODE_BLOCK_PATTERNS = [
    re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```"),
    re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```"),
    re.compile(r"```\s*(\{[\s\S]*?\})\s*```"),
]

# Approximates up to three levels of brace nesting
NESTED_OBJECT_PATTERN = re.compile(r"\{(?:[^{}]|\{(?:[^{}]|\{[^{}]*\})*\})*\}")

SECTION_PATTERNS = [
    ("narrative", re.compile(r'"narrative"\s*:\s*(\{[\s\S]*?\})', re.IGNORECASE)),
    ("scenes", re.compile(r'"scenes"\s*:\s*(\[[\s\S]*?\])', re.IGNORECASE)),
    ("visualConsistency", re.compile(r'"visualConsistency"\s*:\s*(\{[\s\S]*?\})', re.IGNORECASE)),
]

SCENE_MARKER_PATTERN = re.compile(
    r"\b(?:scene|shot|opening|hook|solution|call to action|cta)\b",
    re.IGNORECASE
)

LIST_MARKER_PATTERN = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s+")

NARRATIVE_KEYWORDS = {
    "hook": ["hook", "opening", "attention"],
    "problem": ["problem", "challenge", "pain"],
    "solution": ["solution", "benefit"],
    "callToAction": ["cta", "call to action", "action"],
}

# Deepest container nesting accepted from a parsed candidate
MAX_CANDIDATE_DEPTH = 20

# Follow-up lines shorter than this are treated as noise, not description
MIN_DESCRIPTION_LINE_LENGTH = 20
MAX_TITLE_LENGTH = 50


def clean_json_string(text: str) -> str:
    """Trim a JSON-ish string down to something json.loads may accept.

    Drops text before the first '{' and after the last '}', removes trailing
    commas before '}' or ']', and collapses newlines.

    Examples:
        >>> clean_json_string('Here you go: {"a": [1, 2,],}\\n thanks')
        '{"a": [1, 2]}'
    """
    cleaned = re.sub(r"^[^{]*", "", text)
    cleaned = re.sub(r"[^}]*$", "", cleaned)
    cleaned = re.sub(r",\s*}", "}", cleaned)
    cleaned = re.sub(r",\s*]", "]", cleaned)
    cleaned = re.sub(r"\n\s*", " ", cleaned)
    return cleaned.strip()


def validate_candidate(obj: Any) -> Optional[Dict[str, Any]]:
    """Return obj if it has the shape of a storyboard candidate, else None.

    A candidate is an object whose ``scenes`` is a list of 1 to 6 objects.
    More than 6 scenes is treated as a hallucinated response.
    """
    try:
        StoryboardCandidate.model_validate(obj)
    except ValidationError:
        return None
    return obj


def _nesting_exceeds(value: Any, limit: int) -> bool:
    """True when containers nest deeper than limit levels."""
    if limit < 0:
        return True
    if isinstance(value, dict):
        return any(_nesting_exceeds(item, limit - 1) for item in value.values())
    if isinstance(value, list):
        return any(_nesting_exceeds(item, limit - 1) for item in value)
    return False


def _load_candidate(text: str) -> Optional[Dict[str, Any]]:
    try:
        parsed = json.loads(clean_json_string(text))
    except (ValueError, RecursionError):
        return None
    if _nesting_exceeds(parsed, MAX_CANDIDATE_DEPTH):
        return None
    return validate_candidate(parsed)


def extract_from_code_blocks(text: str) -> StageResult:
    """Stage 1: every fenced block of every pattern, in pattern order."""
    for pattern in CODE_BLOCK_PATTERNS:
        for match in pattern.finditer(text):
            candidate = _load_candidate(match.group(1).strip())
            if candidate is not None:
                return ParseSuccess(candidate, ParseStage.CODE_BLOCK)
    return ParseContinue("no fenced code block held a valid storyboard")


def extract_from_brace_scan(text: str) -> StageResult:
    """Stage 2: brace-balanced substrings, longest first."""
    matches = NESTED_OBJECT_PATTERN.findall(text)
    for fragment in sorted(matches, key=len, reverse=True):
        candidate = _load_candidate(fragment)
        if candidate is not None:
            return ParseSuccess(candidate, ParseStage.BRACE_SCAN)
    return ParseContinue(f"none of {len(matches)} brace-balanced fragments held a valid storyboard")


def reconstruct_from_sections(text: str) -> StageResult:
    """Stage 3: splice independently located sections into one object."""
    sections = {}
    for name, pattern in SECTION_PATTERNS:
        match = pattern.search(text)
        if match:
            sections[name] = match.group(1)

    if "scenes" not in sections:
        return ParseContinue("no scenes section found")

    body = ",".join(f'"{name}":{value}' for name, value in sections.items())
    candidate = _load_candidate("{" + body + "}")
    if candidate is None:
        return ParseContinue("reconstructed sections did not form a valid storyboard")
    return ParseSuccess(candidate, ParseStage.SECTION_RECONSTRUCTION)


def extract_scene_title(line: str) -> str:
    """First sentence of a line with leading list markers removed.

    Examples:
        >>> extract_scene_title("1. Opening shot. The sun rises.")
        'Opening shot'
    """
    cleaned = re.sub(r"^[^a-zA-Z]*", "", line).strip()
    first_sentence = cleaned.split(".")[0]
    if len(first_sentence) > MAX_TITLE_LENGTH:
        return first_sentence[:MAX_TITLE_LENGTH - 3] + "..."
    return first_sentence


def extract_by_keywords(text: str, keywords: List[str]) -> Optional[str]:
    """Return the first sentence fragment starting at one of the keywords."""
    for keyword in keywords:
        match = re.search(rf"{re.escape(keyword)}[^.!?]*[.!?]", text, re.IGNORECASE)
        if match:
            return match.group(0).strip()
    return None


def mine_text(text: str, request: StoryboardRequest) -> StageResult:
    """Stage 4: approximate scenes and narrative from prose.

    A line mentioning a scene marker or opening with a list marker
    ("1.", "2)", "-", "*") starts a new scene; longer lines that
    follow extend its description. Durations are left unset so the sanitizer
    splits the target evenly across however many scenes were found.
    """
    brand = request.brand_info
    scenes: List[Dict[str, Any]] = []
    current: Optional[Dict[str, Any]] = None

    for line in (raw.strip() for raw in text.splitlines()):
        if not line:
            continue
        if SCENE_MARKER_PATTERN.search(line) or LIST_MARKER_PATTERN.match(line):
            if current is not None:
                scenes.append(current)
            current = {
                "title": extract_scene_title(line),
                "description": line,
                "duration": None,
                "prompt": generate_prompt_from_description(line, brand),
                "visualStyle": dict(DEFAULT_VISUAL_STYLE),
            }
        elif current is not None and len(line) > MIN_DESCRIPTION_LINE_LENGTH:
            current["description"] += " " + line

    if current is not None:
        scenes.append(current)

    if not scenes:
        return ParseContinue("no scene markers found in prose")

    narrative = {field: extract_by_keywords(text, keywords) for field, keywords in NARRATIVE_KEYWORDS.items()}
    return ParseSuccess({"scenes": scenes, "narrative": narrative}, ParseStage.TEXT_MINING)


def synthesize_default(request: StoryboardRequest) -> ParseSuccess:
    """Stage 5: fixed brand-interpolated scene template."""
    return ParseSuccess({"scenes": default_scenes(request)}, ParseStage.SYNTHETIC_DEFAULT)


class ResponseParserInput(AgentInput):
    """Input for Storyboard Response Parser Agent

    Attributes:
        raw_text: Model response text (None is treated as empty)
        request: Request the response was generated for
    """

    def __init__(self, raw_text: Optional[str], request: StoryboardRequest):
        self.raw_text = raw_text
        self.request = request


class ResponseParserOutput(AgentOutput):
    """Output from Storyboard Response Parser Agent

    Attributes:
        plan: Complete storyboard plan
        stage: Cascade stage the candidate came from
        corrections: Repairs the sanitizer applied to the candidate
        stage_reasons: Why each earlier stage was skipped
    """

    def __init__(
        self,
        plan: StoryboardPlan,
        stage: ParseStage,
        corrections: List[SanitizationCorrection],
        stage_reasons: List[str]
    ):
        self.plan = plan
        self.stage = stage
        self.corrections = corrections
        self.stage_reasons = stage_reasons


class StoryboardResponseParser(Agent):
    """Agent that turns raw model text into a StoryboardPlan

    Parsing never fails: malformed responses degrade to lower-confidence
    stages instead of raising. Which stage produced the plan is reported in
    the output and logged.
    """

    def __init__(self, sanitizer: Optional[JSONSanitizerAgent] = None):
        """Initialize the parser

        Args:
            sanitizer: Sanitizer used to repair accepted candidates
        """
        self.sanitizer = sanitizer or JSONSanitizerAgent()

    def execute(self, input_data: ResponseParserInput) -> ResponseParserOutput:
        """Run the extraction cascade and sanitize the accepted candidate

        Args:
            input_data: ResponseParserInput with raw text and request

        Returns:
            ResponseParserOutput with the plan and the stage that produced it

        Raises:
            AgentExecutionError: If input is not a ResponseParserInput
        """
        if not self.validate_input(input_data):
            raise AgentExecutionError(
                "INVALID_INPUT",
                "Input must be ResponseParserInput with a StoryboardRequest",
                {"input_type": type(input_data).__name__}
            )

        text = input_data.raw_text if isinstance(input_data.raw_text, str) else ""
        request = input_data.request

        logger.info(f"Parsing storyboard response ({len(text)} chars)")

        stages: List[Callable[[], StageResult]] = [
            lambda: extract_from_code_blocks(text),
            lambda: extract_from_brace_scan(text),
            lambda: reconstruct_from_sections(text),
            lambda: mine_text(text, request),
        ]

        reasons: List[str] = []
        result: StageResult = ParseContinue("no stage ran")
        for stage in stages:
            result = stage()
            if isinstance(result, ParseSuccess):
                break
            reasons.append(result.reason)
            logger.info(f"Parse stage skipped: {result.reason}")

        if not isinstance(result, ParseSuccess):
            result = synthesize_default(request)

        try:
            sanitized = self.sanitizer.execute(SanitizerInput(result.candidate, request))
        except AgentExecutionError as e:
            logger.warning(f"Sanitizing {result.stage.value} candidate failed, using default: {e}")
            reasons.append(e.message)
            result = synthesize_default(request)
            sanitized = self.sanitizer.execute(SanitizerInput(result.candidate, request))

        logger.info(
            f"Parsed storyboard via {result.stage.value}: {len(sanitized.plan.scenes)} scenes, "
            f"{sanitized.plan.total_duration}s, {len(sanitized.corrections)} corrections"
        )
        return ResponseParserOutput(
            plan=sanitized.plan,
            stage=result.stage,
            corrections=sanitized.corrections,
            stage_reasons=reasons
        )

    def parse(self, raw_text: Optional[str], request: StoryboardRequest) -> StoryboardPlan:
        """Convenience wrapper returning only the plan"""
        return self.execute(ResponseParserInput(raw_text, request)).plan

    def validate_input(self, input_data: AgentInput) -> bool:
        """Validate input is ResponseParserInput with a StoryboardRequest"""
        return (
            isinstance(input_data, ResponseParserInput)
            and isinstance(input_data.request, StoryboardRequest)
        )

    def get_retry_policy(self) -> RetryPolicy:
        """Parsing is deterministic; a retry would give the same answer"""
        return RetryPolicy(max_attempts=1)
