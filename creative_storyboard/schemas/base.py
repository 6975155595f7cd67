"""Shared model configuration for wire-facing schemas."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base model with snake_case attributes and camelCase aliases.

    The web layer exchanges storyboards as camelCase JSON (``sceneNumber``,
    ``visualStyle``); Python code uses snake_case. Both spellings are accepted
    on input.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )
