"""
Shared schema helpers.

Dependencies: pydantic
System role: Common base for camelCase wire models
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts snake_case or camelCase input; serializes camelCase with by_alias."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ErrorResponse(BaseModel):
    """Error body returned by exception handlers."""

    error: str
    message: str
    details: dict = {}
