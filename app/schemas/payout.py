from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List
import uuid

from pydantic import BaseModel, Field

from app.schemas.base import BaseResponseSchema, BaseCreateSchema


class BankDetails(BaseModel):
    """Bank account the payout is transferred to."""
    account_holder: str = Field(..., min_length=1, max_length=200)
    account_number: str = Field(..., min_length=6, max_length=30)
    ifsc: str = Field(..., pattern=r"^[A-Z]{4}0[A-Z0-9]{6}$")
    bank_name: Optional[str] = Field(None, max_length=100)
    upi_id: Optional[str] = Field(None, max_length=100)


class PayoutRequest(BaseCreateSchema):
    """Withdrawal request. The amount is the sum of the user's approved commissions."""
    bank_details: BankDetails


class PayoutDecision(str, Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class PayoutReview(BaseModel):
    """Admin decision on a pending payout."""
    decision: PayoutDecision
    notes: Optional[str] = Field(None, max_length=1000)


class PayoutPaid(BaseModel):
    """Admin confirmation that the bank transfer went out."""
    payment_reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=1000)


class PayoutResponse(BaseResponseSchema):
    """Payout response schema."""
    id: uuid.UUID
    user_id: uuid.UUID
    amount: Decimal
    status: str
    bank_details: dict
    admin_notes: Optional[str] = None
    reviewed_by_id: Optional[uuid.UUID] = None
    reviewed_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    payment_reference: Optional[str] = None
    created_at: datetime


class PayoutListResponse(BaseModel):
    """Paginated payout list."""
    items: List[PayoutResponse]
    total: int
    page: int
    size: int
    pages: int


class PayoutStats(BaseModel):
    """Count and amount per payout status."""
    pending_count: int
    pending_amount: Decimal
    approved_count: int
    approved_amount: Decimal
    paid_count: int
    paid_amount: Decimal
    rejected_count: int
