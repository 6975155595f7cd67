"""Shared fixtures for storyboard tests."""

import pytest

from creative_storyboard.schemas.request import BrandInfo, BrandVoice, StoryboardRequest


def build_brand(**overrides) -> BrandInfo:
    fields = {
        "name": "Acme Coffee",
        "industry": "food and beverage",
        "target_audience": "busy professionals",
        "brand_voice": BrandVoice.FRIENDLY,
        "description": "Specialty coffee delivered before your first meeting",
        "color_palette": ["#6F4E37", "#F5F5DC"],
    }
    fields.update(overrides)
    return BrandInfo(**fields)


def build_request(target_duration: int = 30, **overrides) -> StoryboardRequest:
    fields = {
        "brand_info": build_brand(),
        "chat_context": ["user: We want a morning routine ad", "assistant: Love it"],
        "ad_goals": ["Drive subscriptions"],
        "target_duration": target_duration,
    }
    fields.update(overrides)
    return StoryboardRequest(**fields)


@pytest.fixture
def brand() -> BrandInfo:
    return build_brand()


@pytest.fixture
def short_request() -> StoryboardRequest:
    """15-second request (at most 3 scenes)."""
    return build_request(target_duration=15)


@pytest.fixture
def long_request() -> StoryboardRequest:
    """30-second request (at most 4 scenes)."""
    return build_request(target_duration=30)
