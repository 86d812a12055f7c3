from datetime import datetime
from decimal import Decimal
from typing import Optional
import uuid

from pydantic import BaseModel, EmailStr, Field

from app.schemas.base import BaseResponseSchema, BaseCreateSchema


class SignupRequest(BaseCreateSchema):
    """Registration request. ``referral_code`` links the new user to their referrer."""
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=6, description="User password")
    phone: Optional[str] = Field(None, max_length=20)
    referral_code: Optional[str] = Field(None, max_length=20, description="Referral code of the referrer")


class LoginRequest(BaseModel):
    """Login request schema."""
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=6, description="User password")


class UserResponse(BaseResponseSchema):
    """Public view of an account."""
    id: uuid.UUID
    name: str
    email: str
    phone: Optional[str] = None
    role: str
    is_active: bool
    referral_code: str
    referrer_id: Optional[uuid.UUID] = None
    partnership_tier_id: Optional[uuid.UUID] = None
    wallet_balance: Decimal
    total_earnings: Decimal
    total_withdrawn: Decimal
    joined_at: datetime


class TokenResponse(BaseModel):
    """Token response schema."""
    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    expires_in: int = Field(..., description="Access token expiration in seconds")
    user: UserResponse
