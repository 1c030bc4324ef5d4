"""Shared pydantic base classes for Daily Dose models."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Model exchanged with collaborators using camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StrictCamelModel(CamelModel):
    """camelCase model that refuses implicit type coercion.

    Used for AI generated content, where every coercion must be an explicit
    normalisation step rather than a side effect of validation.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        strict=True,
    )
