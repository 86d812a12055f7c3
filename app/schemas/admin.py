from decimal import Decimal
from enum import Enum
from typing import List, Optional
import uuid

from pydantic import BaseModel, Field

from app.models.order import OrderStatus
from app.schemas.auth import UserResponse
from app.schemas.base import BaseResponseSchema


class DashboardStats(BaseModel):
    """Admin dashboard totals with month-over-month growth in percent."""
    total_users: int
    total_products: int
    total_orders: int
    total_revenue: Decimal
    user_growth: float
    product_growth: float
    order_growth: float
    revenue_growth: float


class TopProduct(BaseResponseSchema):
    product_id: uuid.UUID
    name: str
    price: Decimal
    units_sold: int
    revenue: Decimal


class TopProductsResponse(BaseModel):
    products: List[TopProduct]


class UserListResponse(BaseModel):
    """Paginated user list."""
    items: List[UserResponse]
    total: int
    page: int
    size: int
    pages: int


class UserStatusUpdate(BaseModel):
    is_active: bool


class ProductBulkAction(str, Enum):
    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"


class ProductBulkRequest(BaseModel):
    product_ids: List[uuid.UUID] = Field(..., min_length=1, max_length=500)
    action: ProductBulkAction


class OrderBulkStatusRequest(BaseModel):
    """Bulk status change; every order follows the usual transition rules."""
    order_ids: List[uuid.UUID] = Field(..., min_length=1, max_length=500)
    status: OrderStatus
    notes: Optional[str] = None


class BulkItemError(BaseModel):
    id: uuid.UUID
    error: str


class BulkActionResult(BaseModel):
    updated: int
    failed: int
    errors: List[BulkItemError] = []
