"""Storyboard service orchestration components.

This package intentionally avoids importing
``creative_storyboard.orchestrator.pipeline`` at module import time: the
gateway imports ``orchestrator.retry_policy``, and the pipeline imports the
gateway.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from creative_storyboard.orchestrator.pipeline import (
        GenerationFailure,
        ServiceConfig,
        StoryboardService,
        create_storyboard_service,
    )

__all__ = ["GenerationFailure", "ServiceConfig", "StoryboardService", "create_storyboard_service"]


def __getattr__(name: str):
    """Lazily expose service symbols without eager pipeline imports."""
    if name in __all__:
        from creative_storyboard.orchestrator import pipeline

        return getattr(pipeline, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
