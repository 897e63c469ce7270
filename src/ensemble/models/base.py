"""Shared pydantic configuration for models exposed to UI consumers."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base for result shapes handed to callers.

    Fields are snake_case in Python; ``model_dump(by_alias=True)`` produces
    the camelCase keys the editor front end reads (``executionId``...).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
