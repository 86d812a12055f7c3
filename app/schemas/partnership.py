from datetime import datetime
from typing import Optional, List
import uuid

from pydantic import BaseModel, Field

from app.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema


class TierCreate(BaseCreateSchema):
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    max_capacity: int = Field(..., ge=1)
    sort_order: int = 0
    is_active: bool = True


class TierUpdate(BaseUpdateSchema):
    description: Optional[str] = None
    max_capacity: Optional[int] = Field(None, ge=1)
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None


class TierResponse(BaseResponseSchema):
    """Tier with live availability."""
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    max_capacity: int
    current_count: int
    available: int
    is_full: bool
    is_active: bool
    sort_order: int
    created_at: datetime


class TierListResponse(BaseModel):
    items: List[TierResponse]


class PartnershipApplication(BaseModel):
    """Request to join a partnership tier."""
    tier_name: str = Field(..., min_length=1, max_length=50)


class PartnershipApplicationResponse(BaseModel):
    success: bool
    message: str
    tier: TierResponse
