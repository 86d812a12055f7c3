from typing import Optional
import uuid

from fastapi import APIRouter, HTTPException, status, Query

from app.api.deps import DB, CurrentUser, AdminUser
from app.models.commission import CommissionStatus
from app.schemas.base import page_count
from app.schemas.commission import (
    CommissionResponse,
    CommissionListResponse,
    CommissionStats,
    CommissionAdminStats,
    CommissionStatusUpdate,
)
from app.services.commission_service import CommissionService, CommissionStateError

router = APIRouter(tags=["Commissions"])


def _commission_list(commissions, total: int, page: int, size: int) -> CommissionListResponse:
    return CommissionListResponse(
        items=[CommissionResponse.model_validate(c) for c in commissions],
        total=total,
        page=page,
        size=size,
        pages=page_count(total, size),
    )


@router.get("", response_model=CommissionListResponse)
async def list_my_commissions(
    db: DB,
    current_user: CurrentUser,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status_filter: Optional[CommissionStatus] = Query(None, alias="status"),
    level: Optional[int] = Query(None, ge=1),
):
    """Commissions earned by the current user."""
    commissions, total = await CommissionService(db).list_commissions(
        user_id=current_user.id,
        status=status_filter.value if status_filter else None,
        level=level,
        skip=(page - 1) * size,
        limit=size,
    )
    return _commission_list(commissions, total, page, size)


@router.get("/stats", response_model=CommissionStats)
async def get_my_commission_stats(db: DB, current_user: CurrentUser):
    """Earnings summary of the current user."""
    return await CommissionService(db).get_user_stats(current_user)


@router.get("/admin/all", response_model=CommissionListResponse)
async def list_all_commissions(
    db: DB,
    admin: AdminUser,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status_filter: Optional[CommissionStatus] = Query(None, alias="status"),
    level: Optional[int] = Query(None, ge=1),
    user_id: Optional[uuid.UUID] = Query(None),
):
    """All commissions. Admin only."""
    commissions, total = await CommissionService(db).list_commissions(
        user_id=user_id,
        status=status_filter.value if status_filter else None,
        level=level,
        skip=(page - 1) * size,
        limit=size,
    )
    return _commission_list(commissions, total, page, size)


@router.get("/admin/stats", response_model=CommissionAdminStats)
async def get_admin_commission_stats(db: DB, admin: AdminUser):
    """Totals per status and per level. Admin only."""
    return await CommissionService(db).get_admin_stats()


@router.patch("/{commission_id}", response_model=CommissionResponse)
async def update_commission_status(
    commission_id: uuid.UUID,
    data: CommissionStatusUpdate,
    db: DB,
    admin: AdminUser,
):
    """
    Approve or cancel a commission. Admin only.

    Approval credits the earner's wallet; cancelling an approved commission
    debits it again.
    """
    service = CommissionService(db)
    commission = await service.get_commission(commission_id)
    if not commission:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Commission not found")
    try:
        return await service.update_status(commission, data.status.value, data.notes)
    except CommissionStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
