from typing import Optional
import uuid

from fastapi import APIRouter, HTTPException, status, Query

from app.api.deps import DB, CurrentUser, AdminUser
from app.models.payout import PayoutStatus
from app.schemas.base import page_count
from app.schemas.payout import (
    PayoutRequest,
    PayoutReview,
    PayoutPaid,
    PayoutResponse,
    PayoutListResponse,
    PayoutStats,
)
from app.services.payout_service import PayoutService, PayoutStateError

router = APIRouter(tags=["Payouts"])


def _payout_list(payouts, total: int, page: int, size: int) -> PayoutListResponse:
    return PayoutListResponse(
        items=[PayoutResponse.model_validate(p) for p in payouts],
        total=total,
        page=page,
        size=size,
        pages=page_count(total, size),
    )


@router.get("", response_model=PayoutListResponse)
async def list_my_payouts(
    db: DB,
    current_user: CurrentUser,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
):
    """Payout requests of the current user."""
    payouts, total = await PayoutService(db).list_payouts(
        user_id=current_user.id,
        skip=(page - 1) * size,
        limit=size,
    )
    return _payout_list(payouts, total, page, size)


@router.post("", response_model=PayoutResponse, status_code=status.HTTP_201_CREATED)
async def request_payout(data: PayoutRequest, db: DB, current_user: CurrentUser):
    """
    Withdraw all approved commissions.

    The total must reach the minimum payout configured in system settings.
    """
    try:
        return await PayoutService(db).request_payout(
            current_user, data.bank_details.model_dump()
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/admin/all", response_model=PayoutListResponse)
async def list_all_payouts(
    db: DB,
    admin: AdminUser,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status_filter: Optional[PayoutStatus] = Query(None, alias="status"),
    user_id: Optional[uuid.UUID] = Query(None),
):
    """All payout requests. Admin only."""
    payouts, total = await PayoutService(db).list_payouts(
        user_id=user_id,
        status=status_filter.value if status_filter else None,
        skip=(page - 1) * size,
        limit=size,
    )
    return _payout_list(payouts, total, page, size)


@router.get("/admin/stats", response_model=PayoutStats)
async def get_payout_stats(db: DB, admin: AdminUser):
    """Counts and amounts per status. Admin only."""
    return await PayoutService(db).get_stats()


@router.put("/{payout_id}/review", response_model=PayoutResponse)
async def review_payout(payout_id: uuid.UUID, data: PayoutReview, db: DB, admin: AdminUser):
    """Approve or reject a PENDING payout. Admin only."""
    service = PayoutService(db)
    payout = await service.get_payout(payout_id)
    if not payout:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payout not found")
    try:
        return await service.review_payout(payout, data.decision.value, data.notes, admin)
    except PayoutStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.put("/{payout_id}/paid", response_model=PayoutResponse)
async def mark_payout_paid(payout_id: uuid.UUID, data: PayoutPaid, db: DB, admin: AdminUser):
    """Record the bank transfer of an APPROVED payout. Admin only."""
    service = PayoutService(db)
    payout = await service.get_payout(payout_id)
    if not payout:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payout not found")
    try:
        return await service.mark_paid(payout, data.payment_reference, data.notes, admin)
    except PayoutStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
