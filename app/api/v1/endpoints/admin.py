"""Admin console: dashboard figures, user accounts and bulk catalogue/order actions."""
from typing import Optional
import uuid

from fastapi import APIRouter, HTTPException, status, Query

from app.api.deps import DB, AdminUser
from app.models.user import UserRole
from app.schemas.admin import (
    BulkActionResult,
    DashboardStats,
    OrderBulkStatusRequest,
    ProductBulkAction,
    ProductBulkRequest,
    TopProductsResponse,
    UserListResponse,
    UserStatusUpdate,
)
from app.schemas.auth import UserResponse
from app.schemas.base import page_count
from app.services.admin_dashboard_service import AdminDashboardService
from app.services.order_service import OrderService
from app.services.product_service import ProductService
from app.services.user_service import UserService

router = APIRouter(tags=["Admin"])


# ==================== Dashboard ====================

@router.get("/dashboard/stats", response_model=DashboardStats)
async def get_dashboard_stats(db: DB, admin: AdminUser):
    """Totals for users, active products, orders and revenue, with growth against last month."""
    return await AdminDashboardService(db).get_dashboard_stats()


@router.get("/dashboard/top-products", response_model=TopProductsResponse)
async def get_top_products(
    db: DB,
    admin: AdminUser,
    limit: int = Query(5, ge=1, le=50),
):
    """Best sellers of the current month by units sold."""
    products = await AdminDashboardService(db).get_top_products(limit=limit)
    return TopProductsResponse(products=products)


# ==================== Users ====================

@router.get("/users", response_model=UserListResponse)
async def list_users(
    db: DB,
    admin: AdminUser,
    search: Optional[str] = Query(None, description="Name, email or referral code"),
    role: Optional[UserRole] = None,
    is_active: Optional[bool] = None,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
):
    users, total = await UserService(db).list_users(
        search=search,
        role=role.value if role else None,
        is_active=is_active,
        skip=(page - 1) * size,
        limit=size,
    )
    return UserListResponse(
        items=[UserResponse.model_validate(u) for u in users],
        total=total,
        page=page,
        size=size,
        pages=page_count(total, size),
    )


@router.patch("/users/{user_id}/status", response_model=UserResponse)
async def set_user_status(
    user_id: uuid.UUID,
    data: UserStatusUpdate,
    db: DB,
    admin: AdminUser,
):
    """
    Activate or deactivate an account.

    Deactivated users cannot log in or refer new members. Their position in
    the network is kept.
    """
    service = UserService(db)
    user = await service.get_user(user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    try:
        return await service.set_active(user, data.is_active, admin=admin)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


# ==================== Bulk actions ====================

@router.patch("/products/bulk", response_model=BulkActionResult)
async def bulk_product_action(data: ProductBulkRequest, db: DB, admin: AdminUser):
    """Activate or deactivate several products. Unknown ids are reported, not fatal."""
    return await ProductService(db).bulk_set_active(
        data.product_ids,
        is_active=data.action == ProductBulkAction.ACTIVATE,
    )


@router.patch("/orders/bulk", response_model=BulkActionResult)
async def bulk_order_status(data: OrderBulkStatusRequest, db: DB, admin: AdminUser):
    """
    Move several orders to one status.

    Orders are processed one by one with the same rules as a single status
    change. Refused transitions are listed in ``errors``.
    """
    return await OrderService(db).bulk_update_status(
        data.order_ids,
        data.status.value,
        changed_by=admin,
        notes=data.notes,
    )
