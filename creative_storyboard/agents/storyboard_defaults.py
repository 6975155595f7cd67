"""Brand-interpolated defaults for storyboard sections the model left out."""

from typing import Any, Dict, List

from creative_storyboard.agents.duration_normalizer import SHORT_FORM_MAX_DURATION
from creative_storyboard.schemas.request import BrandInfo, StoryboardRequest
from creative_storyboard.schemas.storyboard import MIN_SCENE_DURATION

DEFAULT_COLOR_PALETTE = ["#3B82F6", "#F8FAFC"]

DEFAULT_VISUAL_STYLE = {
    "lighting": "natural",
    "mood": "professional",
    "cameraAngle": "medium",
    "composition": "balanced",
}


def generate_prompt_from_description(description: str, brand: BrandInfo) -> str:
    """Turn a free-text scene description into an image generation prompt."""
    return (
        f"Professional {brand.industry} advertisement scene: {description}. "
        f"{brand.brand_voice.value} tone, high-quality commercial photography."
    )


def default_scenes(request: StoryboardRequest) -> List[Dict[str, Any]]:
    """Fixed scene template used when nothing usable came back from the model.

    Short ads (<= 15s) get Hook, Solution, Call to Action; longer ads add a
    Problem scene after the hook.
    """
    brand = request.brand_info
    voice = brand.brand_voice.value
    short_form = request.target_duration <= SHORT_FORM_MAX_DURATION

    hook = {
        "title": "Hook",
        "description": f"Attention-grabbing opening that speaks to {brand.target_audience or 'the audience'}",
        "prompt": f"Professional opening scene for {brand.name}, {voice} style, {brand.industry} context",
        "visualStyle": {
            "lighting": "natural",
            "mood": "engaging",
            "cameraAngle": "medium",
            "composition": "centered",
            "cameraMovement": "slow push-in",
        },
    }
    problem = {
        "title": "Problem",
        "description": f"The everyday frustration {brand.name} removes",
        "prompt": f"Relatable {brand.industry} pain point before {brand.name}, {voice} tone, cinematic framing",
        "visualStyle": {
            "lighting": "dramatic",
            "mood": "tense",
            "cameraAngle": "close-up",
            "composition": "rule-of-thirds",
        },
    }
    solution = {
        "title": "Solution",
        "description": f"{brand.name} presented as the solution",
        "prompt": f"{brand.name} solution showcase, professional {brand.industry} setting, {voice} presentation",
        "visualStyle": {
            "lighting": "bright",
            "mood": "confident",
            "cameraAngle": "close-up",
            "composition": "rule-of-thirds",
        },
    }
    call_to_action = {
        "title": "Call to Action",
        "description": f"Final call to action for {brand.name}",
        "prompt": f"Call-to-action scene for {brand.name}, inspiring conclusion, {voice} brand voice",
        "visualStyle": {
            "lighting": "warm",
            "mood": "inspiring",
            "cameraAngle": "wide-shot",
            "composition": "dynamic",
        },
    }

    template = [hook, solution, call_to_action] if short_form else [hook, problem, solution, call_to_action]
    scene_duration = max(request.target_duration // len(template), MIN_SCENE_DURATION)

    return [
        {"sceneNumber": index + 1, "duration": scene_duration, **scene}
        for index, scene in enumerate(template)
    ]


def default_narrative(brand: BrandInfo) -> Dict[str, Any]:
    return {
        "hook": f"Engage {brand.target_audience or 'viewers'} in the first seconds",
        "problem": None,
        "solution": f"{brand.name} provides the solution",
        "callToAction": f"Choose {brand.name} today",
    }


def default_platform_optimization(request: StoryboardRequest) -> Dict[str, Any]:
    if request.target_duration <= SHORT_FORM_MAX_DURATION:
        return {
            "primaryPlatform": "instagram",
            "aspectRatio": "9:16",
            "pacing": "fast",
            "interactionElements": ["swipe-up link", "comment prompt"],
        }
    return {
        "primaryPlatform": "youtube",
        "aspectRatio": "16:9",
        "pacing": "medium",
        "interactionElements": ["end-screen link", "share prompt"],
    }


def default_advertising_effectiveness(brand: BrandInfo) -> Dict[str, Any]:
    return {
        "hookStrategy": f"Open on a moment {brand.target_audience or 'viewers'} recognize instantly",
        "emotionalArc": "Curiosity to relief to confidence",
        "personalization": f"Speaks directly to {brand.target_audience or 'the target audience'}",
        "shareability": f"Memorable {brand.brand_voice.value} payoff worth sharing",
        "ctaPower": f"Clear, single next step with {brand.name}",
    }


def default_visual_consistency(brand: BrandInfo) -> Dict[str, Any]:
    return {
        "characters": [f"Professional representing {brand.target_audience or 'the audience'}"],
        "colorPalette": list(brand.color_palette) or list(DEFAULT_COLOR_PALETTE),
        "style": f"{brand.brand_voice.value} commercial style",
        "cinematographicTheme": None,
    }
