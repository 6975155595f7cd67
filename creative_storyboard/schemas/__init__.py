"""Pydantic schemas for data contracts between pipeline stages."""

from creative_storyboard.schemas.base import WireModel
from creative_storyboard.schemas.request import (
    BrandInfo,
    BrandVoice,
    ChatMessage,
    StoryboardRequest,
    chat_context_from_messages,
)
from creative_storyboard.schemas.storyboard import (
    MAX_CANDIDATE_SCENES,
    MIN_SCENE_DURATION,
    AdvertisingEffectiveness,
    GeneratedImage,
    NarrativeStructure,
    PlatformOptimization,
    StoryboardCandidate,
    StoryboardPlan,
    StoryboardScene,
    VisualConsistency,
    VisualStyle,
)

__all__ = [
    "WireModel",
    # Request
    "BrandVoice",
    "BrandInfo",
    "ChatMessage",
    "StoryboardRequest",
    "chat_context_from_messages",
    # Storyboard
    "MAX_CANDIDATE_SCENES",
    "MIN_SCENE_DURATION",
    "VisualStyle",
    "GeneratedImage",
    "StoryboardScene",
    "NarrativeStructure",
    "PlatformOptimization",
    "AdvertisingEffectiveness",
    "VisualConsistency",
    "StoryboardPlan",
    "StoryboardCandidate",
]
