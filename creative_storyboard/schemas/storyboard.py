"""Storyboard plan schema produced by the storyboard planning pipeline."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from creative_storyboard.schemas.base import WireModel


# Scene-count above which a model response is treated as a hallucination
MAX_CANDIDATE_SCENES = 6

# Shortest scene the video provider can render, in seconds
MIN_SCENE_DURATION = 2


class VisualStyle(WireModel):
    """Cinematographic attributes of a scene."""

    lighting: str = Field(..., description="Lighting setup (natural, dramatic, soft, ...)")
    mood: str = Field(..., description="Emotional mood of the shot")
    camera_angle: str = Field(..., description="Camera angle (close-up, wide-shot, medium, ...)")
    composition: str = Field(..., description="Composition rule (centered, rule-of-thirds, ...)")
    camera_movement: Optional[str] = Field(None, description="Camera movement, e.g. slow push-in")
    technique: Optional[str] = Field(None, description="Named cinematographic technique")


class GeneratedImage(WireModel):
    """Image generated for a scene by the downstream image workflow."""

    id: str = Field(..., description="Image identifier")
    url: str = Field(..., description="Where the image is stored")
    prompt: str = Field(..., description="Prompt the image was generated from")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class StoryboardScene(WireModel):
    """One timed segment of the planned advertisement."""

    id: str = Field(..., description="Unique scene identifier")
    scene_number: int = Field(..., ge=1, description="1-based position in the storyboard")
    title: str = Field(..., description="Short scene title")
    description: str = Field(..., description="What happens in the scene")
    duration: int = Field(..., ge=MIN_SCENE_DURATION, description="Scene length in seconds")
    prompt: str = Field(..., description="Image generation prompt")
    visual_style: VisualStyle = Field(..., description="Cinematographic attributes")
    generated_images: List[GeneratedImage] = Field(
        default_factory=list,
        description="Images generated for this scene"
    )
    selected_image_id: Optional[str] = Field(None, description="Image picked by the user")


class NarrativeStructure(WireModel):
    """Dramatic arc of the advertisement."""

    hook: str
    problem: Optional[str] = None
    solution: str
    call_to_action: str


class PlatformOptimization(WireModel):
    """Distribution hints for the target platform."""

    primary_platform: str
    aspect_ratio: str
    pacing: str
    interaction_elements: List[str] = Field(default_factory=list)


class AdvertisingEffectiveness(WireModel):
    """Notes on why the ad should work."""

    hook_strategy: str
    emotional_arc: str
    personalization: str
    shareability: str
    cta_power: str


class VisualConsistency(WireModel):
    """Elements that must stay consistent across scenes."""

    characters: List[str] = Field(default_factory=list)
    color_palette: List[str] = Field(default_factory=list)
    style: str
    cinematographic_theme: Optional[str] = None


class StoryboardPlan(WireModel):
    """
    Complete storyboard produced for one generation request.

    ``total_duration`` is derived from the scenes and cannot be set on its own.
    """

    id: str = Field(..., description="Unique storyboard identifier")
    project_id: str = Field("temp", description="Owning project, assigned later")
    scenes: List[StoryboardScene] = Field(..., description="Ordered scenes")
    platform_optimization: PlatformOptimization
    advertising_effectiveness: AdvertisingEffectiveness
    visual_consistency: VisualConsistency
    narrative: NarrativeStructure
    created_by: Literal["marcus"] = "marcus"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @computed_field(alias="totalDuration")
    @property
    def total_duration(self) -> int:
        """Sum of scene durations in seconds."""
        return sum(scene.duration for scene in self.scenes)

    @field_validator('scenes')
    @classmethod
    def validate_scenes_not_empty(cls, v: List[StoryboardScene]) -> List[StoryboardScene]:
        """Ensure scenes list is not empty."""
        if not v:
            raise ValueError("scenes list cannot be empty")
        return v

    @field_validator('scenes')
    @classmethod
    def validate_scene_numbering(cls, v: List[StoryboardScene]) -> List[StoryboardScene]:
        """Ensure scene numbers run 1..N in list order."""
        numbers = [scene.scene_number for scene in v]
        expected = list(range(1, len(v) + 1))
        if numbers != expected:
            raise ValueError(f"scene numbers must be {expected}, got {numbers}")
        return v


class StoryboardCandidate(BaseModel):
    """Loose shape a parsed model response must have before it is accepted.

    Only ``scenes`` is checked here; everything else is carried as extra keys
    and repaired by the sanitizer.
    """

    model_config = ConfigDict(extra="allow")

    scenes: List[Dict[str, Any]] = Field(
        ...,
        min_length=1,
        max_length=MAX_CANDIDATE_SCENES,
        description="Scene objects as emitted by the model"
    )
