"""JSON Sanitizer Agent for turning a parsed candidate into a storyboard plan.

A candidate is whatever the response parser managed to pull out of the model
text: a dictionary with at least a ``scenes`` list, everything else optional
and loosely typed. The sanitizer repairs it into a fully populated
StoryboardPlan and records every repair it makes.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from creative_storyboard.agents.base import Agent, AgentExecutionError, AgentInput, AgentOutput, RetryPolicy
from creative_storyboard.agents.duration_normalizer import (
    coerce_duration,
    max_scenes_for,
    normalize_scene_durations,
    resolve_scene_duration,
)
from creative_storyboard.agents.storyboard_defaults import (
    DEFAULT_VISUAL_STYLE,
    default_advertising_effectiveness,
    default_narrative,
    default_platform_optimization,
    default_scenes,
    default_visual_consistency,
    generate_prompt_from_description,
)
from creative_storyboard.schemas.request import StoryboardRequest
from creative_storyboard.schemas.storyboard import (
    AdvertisingEffectiveness,
    NarrativeStructure,
    PlatformOptimization,
    StoryboardPlan,
    StoryboardScene,
    VisualConsistency,
    VisualStyle,
)

logger = logging.getLogger(__name__)


@dataclass
class SanitizationCorrection:
    """Record of an automatic correction made during sanitization."""

    field_path: str
    violation_type: str
    original_value: Any
    corrected_value: Any
    description: str


@dataclass
class ValidationErrorDetail:
    """Detailed information about a validation error."""

    field_path: str
    violation_type: str
    message: str


class SanitizerInput(AgentInput):
    """Input for JSON Sanitizer Agent.

    Attributes:
        candidate: Parsed model output, at least ``{"scenes": [...]}``
        request: Request the storyboard is being planned for
    """

    def __init__(self, candidate: Dict[str, Any], request: StoryboardRequest):
        self.candidate = candidate
        self.request = request


class SanitizerOutput(AgentOutput):
    """Output from JSON Sanitizer Agent.

    Attributes:
        plan: Fully populated storyboard plan
        corrections: List of automatic corrections applied
        was_corrected: Whether any corrections were made
    """

    def __init__(self, plan: StoryboardPlan, corrections: List[SanitizationCorrection]):
        self.plan = plan
        self.corrections = corrections
        self.was_corrected = len(corrections) > 0


def _text(value: Any) -> Optional[str]:
    """Return value as stripped text, or None when it carries no text."""
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value).strip()
    return text or None


def _text_list(value: Any) -> Optional[List[str]]:
    if isinstance(value, str):
        return [value.strip()] if value.strip() else None
    if isinstance(value, list):
        items = [text for text in (_text(item) for item in value) if text]
        return items or None
    return None


def _lookup(raw: Dict[str, Any], alias: str) -> Any:
    """Read a field by its camelCase alias, falling back to snake_case."""
    if alias in raw:
        return raw[alias]
    snake = "".join(f"_{c.lower()}" if c.isupper() else c for c in alias)
    return raw.get(snake)


class JSONSanitizerAgent(Agent):
    """Agent responsible for repairing a candidate into a StoryboardPlan.

    Repairs applied, in order:
    - Scenes beyond the duration's scene cap are dropped
    - Missing or non-text scene fields are filled from the brand
    - Durations are resolved, then normalized to fit the target length
    - Ids are regenerated and scenes renumbered 1..N
    - Missing plan sections are filled with brand-interpolated defaults

    Every repair is logged as a SanitizationCorrection. The agent never
    rejects a candidate that has a scenes list; it only raises for input it
    cannot read at all.
    """

    def __init__(self, clock=time.time):
        """Initialize JSON Sanitizer Agent.

        Args:
            clock: Source of the current time, used in generated ids
        """
        self._clock = clock

    def execute(self, input_data: SanitizerInput) -> SanitizerOutput:
        """Execute sanitization.

        Args:
            input_data: SanitizerInput containing candidate and request

        Returns:
            SanitizerOutput with the repaired plan and correction log

        Raises:
            AgentExecutionError: If the input is not a SanitizerInput or the
                repaired plan still fails validation
        """
        if not self.validate_input(input_data):
            raise AgentExecutionError(
                "INVALID_INPUT",
                "Input must be SanitizerInput with candidate dict and StoryboardRequest",
                {"input_type": type(input_data).__name__}
            )

        candidate = input_data.candidate
        request = input_data.request
        corrections: List[SanitizationCorrection] = []

        scenes = self._sanitize_scenes(candidate.get("scenes"), request, corrections)
        normalize_scene_durations(scenes, request.target_duration)

        brand = request.brand_info
        narrative = self._merge_section(
            candidate.get("narrative"), default_narrative(brand), "narrative", corrections
        )
        platform = self._merge_section(
            candidate.get("platformOptimization"),
            default_platform_optimization(request),
            "platformOptimization",
            corrections
        )
        effectiveness = self._merge_section(
            candidate.get("advertisingEffectiveness"),
            default_advertising_effectiveness(brand),
            "advertisingEffectiveness",
            corrections
        )
        consistency = self._merge_section(
            candidate.get("visualConsistency"),
            default_visual_consistency(brand),
            "visualConsistency",
            corrections
        )

        try:
            plan = StoryboardPlan(
                id=self._generate_id("storyboard"),
                scenes=scenes,
                narrative=NarrativeStructure.model_validate(narrative),
                platform_optimization=PlatformOptimization.model_validate(platform),
                advertising_effectiveness=AdvertisingEffectiveness.model_validate(effectiveness),
                visual_consistency=VisualConsistency.model_validate(consistency),
            )
        except ValidationError as e:
            errors = self._extract_validation_errors(e)
            raise AgentExecutionError(
                "SANITIZATION_FAILED",
                "Repaired storyboard still fails validation",
                {"errors": [error.__dict__ for error in errors], "corrections": len(corrections)}
            )

        if corrections:
            logger.info(
                f"Sanitized storyboard for {request.brand_info.name} with "
                f"{len(corrections)} corrections"
            )
        return SanitizerOutput(plan=plan, corrections=corrections)

    def validate_input(self, input_data: AgentInput) -> bool:
        """Validate input is SanitizerInput with a candidate dict and a request.

        Args:
            input_data: Input to validate

        Returns:
            True if valid, False otherwise
        """
        if not isinstance(input_data, SanitizerInput):
            return False
        if not isinstance(input_data.candidate, dict):
            return False
        if not isinstance(input_data.request, StoryboardRequest):
            return False
        return True

    def get_retry_policy(self) -> RetryPolicy:
        """Return retry policy for JSON Sanitizer.

        Returns:
            RetryPolicy with max_attempts=1 (no retry, deterministic repair)
        """
        return RetryPolicy(max_attempts=1)

    def _generate_id(self, prefix: str) -> str:
        return f"{prefix}_{int(self._clock() * 1000)}_{uuid.uuid4().hex[:8]}"

    def _sanitize_scenes(
        self,
        raw_scenes: Any,
        request: StoryboardRequest,
        corrections: List[SanitizationCorrection]
    ) -> List[StoryboardScene]:
        """Build validated scenes from the candidate's raw scene list."""
        scene_dicts = [s for s in raw_scenes if isinstance(s, dict)] if isinstance(raw_scenes, list) else []

        if not scene_dicts:
            scene_dicts = default_scenes(request)
            corrections.append(SanitizationCorrection(
                field_path="scenes",
                violation_type="missing_scenes",
                original_value=raw_scenes,
                corrected_value=len(scene_dicts),
                description="No usable scene objects; substituted default scene template"
            ))

        limit = max_scenes_for(request.target_duration)
        if len(scene_dicts) > limit:
            corrections.append(SanitizationCorrection(
                field_path="scenes",
                violation_type="too_many_scenes",
                original_value=len(scene_dicts),
                corrected_value=limit,
                description=(
                    f"Kept first {limit} of {len(scene_dicts)} scenes for a "
                    f"{request.target_duration}s ad"
                )
            ))
            scene_dicts = scene_dicts[:limit]

        return [
            self._sanitize_scene(raw, index, len(scene_dicts), request, corrections)
            for index, raw in enumerate(scene_dicts)
        ]

    def _sanitize_scene(
        self,
        raw: Dict[str, Any],
        index: int,
        scene_count: int,
        request: StoryboardRequest,
        corrections: List[SanitizationCorrection]
    ) -> StoryboardScene:
        path = f"scenes[{index}]"
        scene_number = index + 1

        raw_number = _lookup(raw, "sceneNumber")
        if raw_number is not None and raw_number != scene_number:
            corrections.append(SanitizationCorrection(
                field_path=f"{path}.sceneNumber",
                violation_type="renumbered",
                original_value=raw_number,
                corrected_value=scene_number,
                description=f"Renumbered scene {raw_number} to {scene_number}"
            ))

        title = self._fill_text(raw, "title", f"Scene {scene_number}", path, corrections)
        description = self._fill_text(raw, "description", title, path, corrections)
        prompt = self._fill_text(
            raw,
            "prompt",
            generate_prompt_from_description(description, request.brand_info),
            path,
            corrections
        )

        raw_duration = raw.get("duration")
        duration = resolve_scene_duration(raw_duration, request.target_duration, scene_count)
        if coerce_duration(raw_duration) != duration:
            corrections.append(SanitizationCorrection(
                field_path=f"{path}.duration",
                violation_type="invalid_duration",
                original_value=raw_duration,
                corrected_value=duration,
                description=f"Resolved scene duration {raw_duration!r} to {duration}s"
            ))

        visual_style = self._merge_section(
            _lookup(raw, "visualStyle"),
            dict(DEFAULT_VISUAL_STYLE, cameraMovement=None, technique=None),
            f"{path}.visualStyle",
            corrections
        )

        return StoryboardScene(
            id=self._generate_id(f"scene_{scene_number}"),
            scene_number=scene_number,
            title=title,
            description=description,
            duration=duration,
            prompt=prompt,
            visual_style=VisualStyle.model_validate(visual_style),
            generated_images=[],
        )

    def _fill_text(
        self,
        raw: Dict[str, Any],
        key: str,
        default: str,
        path: str,
        corrections: List[SanitizationCorrection]
    ) -> str:
        value = _text(raw.get(key))
        if value is not None:
            return value
        corrections.append(SanitizationCorrection(
            field_path=f"{path}.{key}",
            violation_type="missing_field",
            original_value=raw.get(key),
            corrected_value=default,
            description=f"Filled missing '{key}' with default"
        ))
        return default

    def _merge_section(
        self,
        raw: Any,
        defaults: Dict[str, Any],
        path: str,
        corrections: List[SanitizationCorrection]
    ) -> Dict[str, Any]:
        """Merge a loosely typed section over its defaults, field by field.

        Fields whose default is None are optional: they are kept when the
        model supplied text and left empty otherwise. List fields accept a
        single string.
        """
        if not isinstance(raw, dict):
            corrections.append(SanitizationCorrection(
                field_path=path,
                violation_type="missing_section",
                original_value=raw,
                corrected_value=defaults,
                description=f"Filled missing section '{path}' with defaults"
            ))
            return dict(defaults)

        merged: Dict[str, Any] = {}
        for alias, default in defaults.items():
            value = _lookup(raw, alias)
            cleaned = _text_list(value) if isinstance(default, list) else _text(value)

            if cleaned is not None:
                merged[alias] = cleaned
                continue

            merged[alias] = default
            if default is not None:
                corrections.append(SanitizationCorrection(
                    field_path=f"{path}.{alias}",
                    violation_type="missing_field",
                    original_value=value,
                    corrected_value=default,
                    description=f"Filled missing '{alias}' with default"
                ))
        return merged

    def _extract_validation_errors(
        self,
        validation_error: ValidationError
    ) -> List[ValidationErrorDetail]:
        """Extract detailed error information from Pydantic ValidationError.

        Args:
            validation_error: Pydantic ValidationError

        Returns:
            List of ValidationErrorDetail objects
        """
        return [
            ValidationErrorDetail(
                field_path=".".join(str(loc) for loc in error["loc"]),
                violation_type=error["type"],
                message=error["msg"]
            )
            for error in validation_error.errors()
        ]
