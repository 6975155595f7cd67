"""Input contracts for storyboard generation."""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional

from pydantic import ConfigDict, Field, field_validator

from creative_storyboard.schemas.base import WireModel


class BrandVoice(str, Enum):
    """Tone of voice a brand communicates in."""
    PROFESSIONAL = "professional"
    CASUAL = "casual"
    FRIENDLY = "friendly"
    AUTHORITATIVE = "authoritative"
    PLAYFUL = "playful"


class BrandInfo(WireModel):
    """Brand description supplied by the marketer."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Brand name")
    industry: str = Field("", description="Industry the brand operates in")
    target_audience: str = Field("", description="Who the advertisement addresses")
    brand_voice: BrandVoice = Field(BrandVoice.PROFESSIONAL, description="Brand tone of voice")
    description: str = Field("", description="Free-text brand description")
    color_palette: List[str] = Field(
        default_factory=list,
        description="Ordered brand colors (hex codes or names)"
    )

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Ensure brand name is not blank."""
        if not v.strip():
            raise ValueError("brand name cannot be blank")
        return v


class ChatMessage(WireModel):
    """Single message of the conversation with the creative director."""

    id: str = Field(..., description="Message identifier")
    role: Literal["user", "assistant"] = Field(..., description="Message author")
    content: str = Field(..., description="Message text")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the message was sent"
    )


def chat_context_from_messages(messages: List[ChatMessage]) -> List[str]:
    """Flatten a conversation into the ordered transcript lines a request carries."""
    return [f"{message.role}: {message.content}" for message in messages]


class StoryboardRequest(WireModel):
    """Everything needed to plan one storyboard.

    ``request_id`` and ``session_id`` exist for tracing only; they are
    stripped when the request is turned into a cache key.
    """

    brand_info: BrandInfo = Field(..., description="Brand being advertised")
    chat_context: List[str] = Field(
        default_factory=list,
        description="Ordered transcript lines from the chat with the creative director"
    )
    ad_goals: List[str] = Field(default_factory=list, description="Advertising goals")
    target_duration: int = Field(..., gt=0, description="Total ad length in seconds")
    request_id: Optional[str] = Field(None, description="Caller-supplied trace id")
    session_id: Optional[str] = Field(None, description="Caller session id")
