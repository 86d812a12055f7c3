"""Schemas for commissions, the commission rate table and earnings stats."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List
import uuid

from pydantic import BaseModel, Field

from app.schemas.base import BaseResponseSchema


class CommissionAction(str, Enum):
    """Admin status change on a single commission."""
    APPROVED = "APPROVED"
    CANCELLED = "CANCELLED"


class CommissionStatusUpdate(BaseModel):
    status: CommissionAction
    notes: Optional[str] = Field(None, max_length=500)


class CommissionResponse(BaseResponseSchema):
    """Commission response schema."""
    id: uuid.UUID
    user_id: uuid.UUID
    from_user_id: uuid.UUID
    order_id: uuid.UUID
    level: int
    rate: Decimal
    order_amount: Decimal
    amount: Decimal
    type: str
    status: str
    payout_id: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime


class CommissionListResponse(BaseModel):
    """Paginated commission list."""
    items: List[CommissionResponse]
    total: int
    page: int
    size: int
    pages: int


class CommissionStats(BaseModel):
    """Earnings summary for one user."""
    total_earned: Decimal
    pending_amount: Decimal
    approved_amount: Decimal
    paid_amount: Decimal
    this_month_earned: Decimal
    wallet_balance: Decimal


class LevelBreakdown(BaseModel):
    level: int
    count: int
    amount: Decimal


class CommissionAdminStats(BaseModel):
    """Platform-wide commission totals."""
    total_count: int
    total_amount: Decimal
    by_status: dict[str, Decimal]
    by_level: List[LevelBreakdown]


# ==================== Rate table ====================

class CommissionRate(BaseModel):
    level: int = Field(..., ge=1)
    percentage: Decimal = Field(..., ge=0, le=100)


class CommissionRatesUpdate(BaseModel):
    """Full replacement of the commission plan."""
    rates: List[CommissionRate] = Field(..., min_length=1)


class CommissionRatesResponse(BaseModel):
    rates: List[CommissionRate]
    max_levels: int
