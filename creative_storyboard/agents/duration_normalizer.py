"""Scene duration rules for storyboard plans.

Scene durations must fit inside the requested ad length while every scene
keeps at least MIN_SCENE_DURATION seconds. Scenes over budget are compressed
proportionally; the last scene absorbs the rounding error.
"""

import logging
import math
import re
from typing import Any, List, Optional

from creative_storyboard.schemas.storyboard import MIN_SCENE_DURATION, StoryboardScene

logger = logging.getLogger(__name__)

SHORT_FORM_MAX_DURATION = 15
SHORT_FORM_MAX_SCENES = 3
LONG_FORM_MAX_SCENES = 4

_LEADING_NUMBER = re.compile(r'^\s*(\d+(?:\.\d+)?)')


def max_scenes_for(target_duration: int) -> int:
    """Return the maximum scene count allowed for an ad length."""
    if target_duration <= SHORT_FORM_MAX_DURATION:
        return SHORT_FORM_MAX_SCENES
    return LONG_FORM_MAX_SCENES


def coerce_duration(raw: Any) -> Optional[float]:
    """Read a duration the model may have written as a number or as text.

    Accepts 6, 6.5, "6", "6s", "6 seconds". Returns None when no number can
    be read.
    """
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        if math.isnan(raw) or math.isinf(raw):
            return None
        return float(raw)
    if isinstance(raw, str):
        match = _LEADING_NUMBER.match(raw)
        if match:
            return float(match.group(1))
    return None


def resolve_scene_duration(raw: Any, target_duration: int, scene_count: int) -> int:
    """Decide the duration of one scene before normalization.

    Missing, unreadable, non-positive or over-target values fall back to an
    even split of the target; anything else is clamped to
    [MIN_SCENE_DURATION, target_duration].
    """
    value = coerce_duration(raw)
    if value is None or value <= 0 or value > target_duration:
        even_split = target_duration // max(scene_count, 1)
        return max(even_split, MIN_SCENE_DURATION)
    clamped = min(max(value, MIN_SCENE_DURATION), target_duration)
    return max(int(math.floor(clamped)), MIN_SCENE_DURATION)


def normalize_durations(durations: List[int], target_duration: int) -> List[int]:
    """Fit scene durations into the target length.

    Args:
        durations: Per-scene durations, each at least MIN_SCENE_DURATION
        target_duration: Requested total ad length in seconds

    Returns:
        New list of durations whose sum does not exceed the target whenever
        the target leaves room for MIN_SCENE_DURATION per scene
    """
    if not durations:
        return []

    current_total = sum(durations)
    if current_total <= target_duration:
        return list(durations)

    ratio = target_duration / current_total
    remaining = target_duration
    normalized: List[int] = []

    for duration in durations[:-1]:
        scaled = max(int(math.floor(duration * ratio)), MIN_SCENE_DURATION)
        normalized.append(scaled)
        remaining -= scaled

    normalized.append(max(remaining, MIN_SCENE_DURATION))

    # Floors at MIN_SCENE_DURATION can push the total back over the target
    overflow = sum(normalized) - target_duration
    while overflow > 0:
        longest = max(range(len(normalized)), key=lambda i: normalized[i])
        if normalized[longest] <= MIN_SCENE_DURATION:
            break
        normalized[longest] -= 1
        overflow -= 1

    logger.info(
        f"Normalized scene durations {durations} -> {normalized} "
        f"for target {target_duration}s"
    )
    return normalized


def normalize_scene_durations(
    scenes: List[StoryboardScene],
    target_duration: int
) -> List[StoryboardScene]:
    """Apply normalize_durations to scenes in place and return them."""
    adjusted = normalize_durations([scene.duration for scene in scenes], target_duration)
    for scene, duration in zip(scenes, adjusted):
        scene.duration = duration
    return scenes
