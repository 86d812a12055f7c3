from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from app.schemas.base import BaseResponseSchema, BaseUpdateSchema


class SystemSettingsResponse(BaseResponseSchema):
    site_name: str
    site_description: Optional[str] = None
    support_email: Optional[str] = None
    minimum_payout: Decimal
    enable_referrals: bool
    enable_commissions: bool
    maintenance_mode: bool
    allow_registration: bool


class SystemSettingsUpdate(BaseUpdateSchema):
    site_name: Optional[str] = Field(None, min_length=1, max_length=200)
    site_description: Optional[str] = None
    support_email: Optional[EmailStr] = None
    minimum_payout: Optional[Decimal] = Field(None, ge=0)
    enable_referrals: Optional[bool] = None
    enable_commissions: Optional[bool] = None
    maintenance_mode: Optional[bool] = None
    allow_registration: Optional[bool] = None
