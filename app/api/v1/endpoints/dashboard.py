from decimal import Decimal
from typing import Optional
import uuid

from fastapi import APIRouter, HTTPException, status, Query
from sqlalchemy import select, func

from app.api.deps import DB, CurrentUser, AdminUser
from app.models.commission import Commission, CommissionStatus
from app.models.payout import Payout
from app.schemas.base import page_count
from app.schemas.genealogy import (
    GenealogyResponse,
    TeamStats,
    ReferralResponse,
    ReferralListResponse,
    WalletResponse,
)
from app.services.genealogy_service import GenealogyService
from app.services.referral_service import ReferralService
from app.services.settings_service import SettingsService

router = APIRouter(tags=["Dashboard"])


@router.get("/genealogy", response_model=GenealogyResponse)
async def get_my_genealogy(
    db: DB,
    current_user: CurrentUser,
    max_depth: Optional[int] = Query(None, ge=0, description="Levels below you to include"),
):
    """
    Downline tree of the current user.

    Each node carries its personal volume and the rolled-up team size and
    volume of everything below it.
    """
    tree = await GenealogyService(db).build_tree(current_user.id, max_depth)
    if tree is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return tree.to_dict()


@router.get("/admin/users/{user_id}/genealogy", response_model=GenealogyResponse)
async def get_user_genealogy(
    user_id: uuid.UUID,
    db: DB,
    admin: AdminUser,
    max_depth: Optional[int] = Query(None, ge=0),
):
    """Downline tree of any user. Admin only."""
    tree = await GenealogyService(db).build_tree(user_id, max_depth)
    if tree is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return tree.to_dict()


@router.get("/team", response_model=TeamStats)
async def get_team_stats(db: DB, current_user: CurrentUser):
    """Team size, active members and 30 day sales volume."""
    try:
        return await GenealogyService(db).get_team_stats(current_user.id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/referrals", response_model=ReferralListResponse)
async def get_my_referrals(
    db: DB,
    current_user: CurrentUser,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
):
    """People the current user referred directly."""
    rows, total = await ReferralService(db).get_direct_referrals(
        current_user.id,
        skip=(page - 1) * size,
        limit=size,
    )
    return ReferralListResponse(
        referral_code=current_user.referral_code,
        items=[
            ReferralResponse(
                id=user.id,
                name=user.name,
                email=user.email,
                joined_at=user.joined_at,
                is_active=user.is_active,
                direct_referrals=count,
            )
            for user, count in rows
        ],
        total=total,
        page=page,
        size=size,
        pages=page_count(total, size),
    )


@router.get("/wallet", response_model=WalletResponse)
async def get_wallet(db: DB, current_user: CurrentUser):
    """Wallet balance and payout eligibility."""
    pending = (await db.execute(
        select(func.coalesce(func.sum(Commission.amount), 0)).where(
            Commission.user_id == current_user.id,
            Commission.status == CommissionStatus.PENDING.value,
        )
    )).scalar()

    last_payout = (await db.execute(
        select(Payout.status)
        .where(Payout.user_id == current_user.id)
        .order_by(Payout.created_at.desc())
        .limit(1)
    )).scalar_one_or_none()

    system = await SettingsService(db).get_system_settings()

    return WalletResponse(
        wallet_balance=current_user.wallet_balance or Decimal("0.00"),
        total_earnings=current_user.total_earnings or Decimal("0.00"),
        total_withdrawn=current_user.total_withdrawn or Decimal("0.00"),
        pending_commissions=Decimal(str(pending or 0)).quantize(Decimal("0.01")),
        minimum_payout=system.minimum_payout,
        last_payout_status=last_payout,
    )
