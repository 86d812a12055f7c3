from typing import Annotated, Optional
import uuid

from fastapi import APIRouter, Depends, HTTPException, status, Query

from app.api.deps import DB, CurrentUser, AdminUser, require_open_for_business
from app.models.order import OrderStatus
from app.schemas.base import page_count
from app.schemas.commission import CommissionResponse
from app.schemas.order import (
    OrderCreate,
    OrderResponse,
    OrderListResponse,
    OrderStatusUpdate,
    PaymentConfirmation,
)
from app.services.order_service import OrderService, OrderStateError
from app.services.referral_service import ReferralCycleError
from app.services.settings_service import SystemConfig

router = APIRouter(tags=["Orders"])


def _order_list(orders, total: int, page: int, size: int) -> OrderListResponse:
    return OrderListResponse(
        items=[OrderResponse.model_validate(o) for o in orders],
        total=total,
        page=page,
        size=size,
        pages=page_count(total, size),
    )


async def _get_visible_order(service: OrderService, order_id: uuid.UUID, user):
    order = await service.get_order(order_id)
    if not order or (order.user_id != user.id and not user.is_admin):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    data: OrderCreate,
    db: DB,
    current_user: CurrentUser,
    _: Annotated[SystemConfig, Depends(require_open_for_business)],
):
    """
    Place an order.

    Stock is reserved immediately. Commissions are generated once the
    payment is confirmed.
    """
    try:
        return await OrderService(db).create_order(
            user=current_user,
            items=[item.model_dump() for item in data.items],
            shipping_address=data.shipping_address,
            notes=data.notes,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("", response_model=OrderListResponse)
async def list_my_orders(
    db: DB,
    current_user: CurrentUser,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
):
    """Orders of the current user, newest first."""
    orders, total = await OrderService(db).list_orders(
        user_id=current_user.id,
        status=status_filter.value if status_filter else None,
        skip=(page - 1) * size,
        limit=size,
    )
    return _order_list(orders, total, page, size)


@router.get("/admin/all", response_model=OrderListResponse)
async def list_all_orders(
    db: DB,
    admin: AdminUser,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    user_id: Optional[uuid.UUID] = Query(None),
):
    """All orders. Admin only."""
    orders, total = await OrderService(db).list_orders(
        user_id=user_id,
        status=status_filter.value if status_filter else None,
        skip=(page - 1) * size,
        limit=size,
    )
    return _order_list(orders, total, page, size)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: uuid.UUID, db: DB, current_user: CurrentUser):
    """Get an order. Customers only see their own orders."""
    return await _get_visible_order(OrderService(db), order_id, current_user)


@router.post("/{order_id}/confirm", response_model=OrderResponse)
async def confirm_payment(
    order_id: uuid.UUID,
    data: PaymentConfirmation,
    db: DB,
    current_user: CurrentUser,
):
    """
    Confirm payment of a pending order.

    Marks the order PAID and writes the referral commissions for the
    buyer's upline in the same transaction.
    """
    service = OrderService(db)
    order = await _get_visible_order(service, order_id, current_user)
    try:
        return await service.confirm_payment(order, data.payment_reference)
    except (OrderStateError, ReferralCycleError) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: uuid.UUID,
    data: OrderStatusUpdate,
    db: DB,
    admin: AdminUser,
):
    """Move an order through its lifecycle. Admin only."""
    service = OrderService(db)
    order = await service.get_order(order_id)
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    try:
        return await service.update_status(order, data.status.value, changed_by=admin, notes=data.notes)
    except (OrderStateError, ReferralCycleError) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/{order_id}/commissions", response_model=list[CommissionResponse])
async def get_order_commissions(order_id: uuid.UUID, db: DB, admin: AdminUser):
    """Commissions generated by an order. Admin only."""
    service = OrderService(db)
    if not await service.get_order(order_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return await service.get_order_commissions(order_id)
