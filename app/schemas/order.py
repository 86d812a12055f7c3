from datetime import datetime
from decimal import Decimal
from typing import Optional, List
import uuid

from pydantic import BaseModel, Field

from app.models.order import OrderStatus
from app.schemas.base import BaseResponseSchema, BaseCreateSchema


class OrderItemCreate(BaseModel):
    """Requested line. Price is taken from the catalogue, never from the client."""
    product_id: uuid.UUID
    quantity: int = Field(..., ge=1, le=1000)


class OrderCreate(BaseCreateSchema):
    """Checkout request."""
    items: List[OrderItemCreate] = Field(..., min_length=1)
    shipping_address: Optional[dict] = None
    notes: Optional[str] = None


class PaymentConfirmation(BaseModel):
    """Payment confirmation carrying the gateway reference."""
    payment_reference: str = Field(..., min_length=1, max_length=100)


class OrderStatusUpdate(BaseModel):
    """Admin status change."""
    status: OrderStatus
    notes: Optional[str] = None


class OrderItemResponse(BaseResponseSchema):
    """Order line response."""
    id: uuid.UUID
    product_id: Optional[uuid.UUID] = None
    product_name: str
    product_sku: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal


class OrderResponse(BaseResponseSchema):
    """Order response schema."""
    id: uuid.UUID
    order_number: str
    user_id: uuid.UUID
    status: str
    subtotal: Decimal
    total: Decimal
    shipping_address: Optional[dict] = None
    notes: Optional[str] = None
    payment_reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    items: List[OrderItemResponse] = []
    created_at: datetime


class OrderListResponse(BaseModel):
    """Paginated order list."""
    items: List[OrderResponse]
    total: int
    page: int
    size: int
    pages: int
