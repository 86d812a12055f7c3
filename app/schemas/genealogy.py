"""Response schemas for the downline tree and team dashboards."""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List
import uuid

from pydantic import BaseModel


class TeamMemberNode(BaseModel):
    """One member of the downline tree with rolled-up figures."""
    id: uuid.UUID
    name: str
    email: str
    joined_at: datetime
    is_active: bool
    level: int
    direct_referrals: int
    personal_volume: Decimal
    team_volume: Decimal
    team_size: int
    total_earnings: Decimal
    children: List["TeamMemberNode"] = []


class GenealogyResponse(BaseModel):
    root: TeamMemberNode
    team_size: int
    total_volume: Decimal
    levels: int
    max_depth: int
    cycle_detected: bool = False
    errors: List[str] = []


class TeamStats(BaseModel):
    direct_referrals: int
    total_team_size: int
    active_members: int
    team_sales_volume: Decimal


class ReferralResponse(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    joined_at: datetime
    is_active: bool
    direct_referrals: int


class ReferralListResponse(BaseModel):
    referral_code: str
    items: List[ReferralResponse]
    total: int
    page: int
    size: int
    pages: int


class WalletResponse(BaseModel):
    wallet_balance: Decimal
    total_earnings: Decimal
    total_withdrawn: Decimal
    pending_commissions: Decimal
    minimum_payout: Decimal
    last_payout_status: Optional[str] = None


TeamMemberNode.model_rebuild()
