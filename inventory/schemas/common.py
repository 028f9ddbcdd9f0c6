"""Shared schema base and generic response bodies."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for API bodies: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ErrorResponse(BaseModel):
    """Body of every error response."""

    error: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable message")


class SuccessResponse(BaseModel):
    """Body of operations that only report success."""

    message: str
