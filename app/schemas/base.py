"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that read ORM objects MUST inherit from
BaseResponseSchema. Money fields are Decimal and serialize as strings so no
precision is lost on the way to the client.
"""

from datetime import datetime
from math import ceil
from uuid import UUID
from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Usage:
        class ProductResponse(BaseResponseSchema):
            id: UUID
            name: str
            category_id: Optional[UUID] = None
    """
    model_config = ConfigDict(
        from_attributes=True,
        json_encoders={
            UUID: str,
            datetime: lambda v: v.isoformat() if v else None,
        },
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """Base class for create/input schemas. Unknown fields are ignored."""
    model_config = ConfigDict(
        extra='ignore',
    )


class BaseUpdateSchema(BaseModel):
    """Base class for update/patch schemas. All fields optional, unset ones untouched."""
    model_config = ConfigDict(
        extra='ignore',
    )


def page_count(total: int, size: int) -> int:
    """Number of pages for a paginated list response."""
    return ceil(total / size) if total > 0 else 1
