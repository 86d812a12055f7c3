from datetime import datetime
from decimal import Decimal
from typing import Optional, List
import uuid

from pydantic import BaseModel, Field

from app.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema


class ProductCreate(BaseCreateSchema):
    """Product creation schema. ``slug`` and ``sku`` are generated when omitted."""
    name: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = Field(None, max_length=280)
    sku: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0)
    discount: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    stock: int = Field(default=0, ge=0)
    category_id: Optional[uuid.UUID] = None
    brand: Optional[str] = Field(None, max_length=100)
    origin: Optional[str] = Field(None, max_length=100)
    weight: Optional[str] = Field(None, max_length=50)
    images: Optional[List[str]] = None
    is_active: bool = True


class ProductUpdate(BaseUpdateSchema):
    """Product update schema."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = Field(None, max_length=280)
    sku: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)
    discount: Optional[Decimal] = Field(None, ge=0, le=100)
    stock: Optional[int] = Field(None, ge=0)
    category_id: Optional[uuid.UUID] = None
    brand: Optional[str] = None
    origin: Optional[str] = None
    weight: Optional[str] = None
    images: Optional[List[str]] = None
    is_active: Optional[bool] = None


class ProductResponse(BaseResponseSchema):
    """Product response schema, including derived pricing and availability."""
    id: uuid.UUID
    name: str
    slug: str
    sku: str
    description: Optional[str] = None
    price: Decimal
    discount: Decimal
    final_price: Decimal
    stock: int
    stock_status: str
    category_id: Optional[uuid.UUID] = None
    category_name: Optional[str] = None
    brand: Optional[str] = None
    origin: Optional[str] = None
    weight: Optional[str] = None
    images: Optional[List[str]] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class ProductListResponse(BaseModel):
    """Paginated product list."""
    items: List[ProductResponse]
    total: int
    page: int
    size: int
    pages: int


class ProductImportResult(BaseModel):
    """Outcome of a CSV product import."""
    success_count: int = 0
    error_count: int = 0
    created: int = 0
    updated: int = 0
    errors: List[str] = []
