import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType, JSONType

if TYPE_CHECKING:
    from app.models.category import Category


LOW_STOCK_THRESHOLD = 10


class StockStatus(str, Enum):
    """Derived availability shown on listings and exports."""
    IN_STOCK = "In Stock"
    LOW_STOCK = "Low Stock"
    OUT_OF_STOCK = "Out of Stock"


class Product(Base):
    """
    Catalogue product.

    ``price`` is the list price; ``discount`` is a percentage taken off it.
    Orders always charge ``final_price``.
    """
    __tablename__ = "products"
    __table_args__ = (
        Index('ix_product_category_active', 'category_id', 'is_active'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Basic Info
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(280), unique=True, nullable=False, index=True)
    sku: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    brand: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    origin: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    weight: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, comment="e.g. 1kg, 500g")

    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("categories.id", ondelete="RESTRICT"),
        nullable=True
    )

    # Pricing
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        default=Decimal("0"),
        comment="Percentage off the list price"
    )

    # Inventory
    stock: Mapped[int] = mapped_column(Integer, default=0)

    images: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    category: Mapped[Optional["Category"]] = relationship(
        "Category",
        back_populates="products",
        lazy="selectin",
    )

    @property
    def final_price(self) -> Decimal:
        price = Decimal(str(self.price or 0))
        discount = Decimal(str(self.discount or 0))
        if discount <= 0:
            return price.quantize(Decimal("0.01"))
        return (price - price * discount / Decimal("100")).quantize(Decimal("0.01"))

    @property
    def stock_status(self) -> str:
        stock = self.stock or 0
        if stock <= 0:
            return StockStatus.OUT_OF_STOCK.value
        if stock <= LOW_STOCK_THRESHOLD:
            return StockStatus.LOW_STOCK.value
        return StockStatus.IN_STOCK.value

    @property
    def category_name(self) -> Optional[str]:
        category = self.__dict__.get("category")
        return category.name if category else None

    def __repr__(self) -> str:
        return f"<Product(name='{self.name}', sku='{self.sku}')>"
