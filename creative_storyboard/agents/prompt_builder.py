"""Storyboard planning prompt for the creative director persona.

The prompt embeds the brand, the chat transcript, the goals and an explicit
JSON example. Models still wrap, truncate or ignore the example, so the
response parser never relies on it being followed.
"""

from creative_storyboard.agents.duration_normalizer import max_scenes_for
from creative_storyboard.schemas.request import StoryboardRequest


STORYBOARD_JSON_EXAMPLE = """{
  "narrative": {
    "hook": "Opening hook strategy",
    "problem": "Problem/pain point (optional)",
    "solution": "Brand solution presentation",
    "callToAction": "Final CTA message"
  },
  "scenes": [
    {
      "sceneNumber": 1,
      "title": "Scene title",
      "description": "What happens in this scene",
      "duration": 6,
      "prompt": "Professional image generation prompt",
      "visualStyle": {
        "lighting": "natural/dramatic/soft",
        "mood": "confident/urgent/inspiring",
        "cameraAngle": "close-up/wide-shot/medium",
        "composition": "centered/rule-of-thirds/dynamic",
        "cameraMovement": "static/slow push-in/dolly/crane",
        "technique": "extreme close-up/juxtaposition/landscape as character"
      }
    }
  ],
  "platformOptimization": {
    "primaryPlatform": "instagram/tiktok/youtube/facebook",
    "aspectRatio": "9:16/16:9/1:1",
    "pacing": "fast/medium/slow",
    "interactionElements": ["element that invites likes, shares or comments"]
  },
  "advertisingEffectiveness": {
    "hookStrategy": "How the first 3 seconds stop the scroll",
    "emotionalArc": "Emotional journey across the scenes",
    "personalization": "How the ad speaks to the target audience",
    "shareability": "Why viewers would share it",
    "ctaPower": "Why the call to action converts"
  },
  "visualConsistency": {
    "characters": ["main character description"],
    "colorPalette": ["brand color", "accent color"],
    "style": "overall visual style",
    "cinematographicTheme": "recurring cinematographic idea"
  }
}"""


def build_storyboard_prompt(request: StoryboardRequest) -> str:
    """Assemble the storyboard planning prompt for a request.

    Pure function: the same request always yields the same prompt.

    Args:
        request: Brand, chat context, goals and target duration

    Returns:
        Prompt text to send as the user message
    """
    brand = request.brand_info
    duration = request.target_duration
    max_scenes = max_scenes_for(duration)

    chat_transcript = "\n".join(request.chat_context) if request.chat_context else "No previous conversation"
    goals = ", ".join(request.ad_goals) if request.ad_goals else "Build brand awareness"
    palette = ", ".join(brand.color_palette) if brand.color_palette else "Not specified"

    return f"""
As Marcus, a world-renowned creative director, I need you to create a professional advertisement storyboard plan.

BRAND CONTEXT:
- Brand: {brand.name}
- Industry: {brand.industry}
- Voice: {brand.brand_voice.value}
- Target Audience: {brand.target_audience}
- Description: {brand.description}
- Color Palette: {palette}

CHAT CONTEXT:
{chat_transcript}

AD REQUIREMENTS:
- Goals: {goals}
- Duration: {duration} seconds total
- Format: Professional commercial advertisement

STORYBOARD TASK:
Plan a {duration}-second advertisement with 2-{max_scenes} scenes. For each scene, specify:

1. Scene duration in whole seconds (at least 2 seconds each, all scenes must total {duration})
2. Scene purpose (hook, problem, solution, call-to-action)
3. Visual description for image generation
4. Professional image generation prompt
5. Camera angle, camera movement and mood

Ensure visual consistency across scenes (same actors, lighting style, brand colors).
Recommend the platform, aspect ratio and pacing this ad is best suited for.

Respond ONLY with JSON in this exact format:
{STORYBOARD_JSON_EXAMPLE}
"""
