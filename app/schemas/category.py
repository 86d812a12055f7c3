from pydantic import BaseModel, Field

from app.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema
from typing import Optional, List
from datetime import datetime
import uuid


class CategoryCreate(BaseCreateSchema):
    """Category creation schema. The slug is derived from the name when omitted."""
    name: str = Field(..., min_length=1, max_length=100)
    slug: Optional[str] = Field(None, min_length=1, max_length=120)
    description: Optional[str] = None
    parent_id: Optional[uuid.UUID] = None
    image_url: Optional[str] = Field(None, max_length=500)
    sort_order: int = Field(default=0)
    is_active: bool = True


class CategoryUpdate(BaseUpdateSchema):
    """Category update schema."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    slug: Optional[str] = Field(None, min_length=1, max_length=120)
    description: Optional[str] = None
    parent_id: Optional[uuid.UUID] = None
    image_url: Optional[str] = None
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None


class CategoryResponse(BaseResponseSchema):
    """Category response schema."""
    id: uuid.UUID
    name: str
    slug: str
    description: Optional[str] = None
    parent_id: Optional[uuid.UUID] = None
    image_url: Optional[str] = None
    sort_order: int
    is_active: bool
    created_at: datetime
    updated_at: datetime


class CategoryListResponse(BaseModel):
    """Paginated category list."""
    items: List[CategoryResponse]
    total: int
    page: int
    size: int
    pages: int
