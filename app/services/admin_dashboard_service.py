"""
Admin Dashboard Service

Headline numbers for the admin home page:
- Totals: users, active products, orders and revenue
- Month-over-month growth of each, comparing this calendar month (UTC) so far
  with the whole of the previous one
- Best selling products of the current month

Revenue counts orders in VOLUME_STATUSES only (PAID, SHIPPED, DELIVERED).
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.order import Order, OrderItem, VOLUME_STATUSES
from app.models.product import Product
from app.models.user import User

logger = logging.getLogger(__name__)


def month_bounds(now: datetime) -> Tuple[datetime, datetime]:
    """Start of the previous month and start of the current month."""
    this_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if this_month.month == 1:
        last_month = this_month.replace(year=this_month.year - 1, month=12)
    else:
        last_month = this_month.replace(month=this_month.month - 1)
    return last_month, this_month


def growth_percent(current, previous) -> float:
    """
    Percentage change from ``previous`` to ``current``.

    Growth from nothing counts as 100% (or 0% when there is still nothing).
    """
    current = Decimal(str(current or 0))
    previous = Decimal(str(previous or 0))
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round(float((current - previous) / previous * 100), 2)


class AdminDashboardService:
    """Service for admin dashboard statistics."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _count(self, column, *filters) -> int:
        return (await self.db.execute(
            select(func.count(column)).where(*filters)
        )).scalar() or 0

    async def _revenue(self, *filters) -> Decimal:
        total = (await self.db.execute(
            select(func.coalesce(func.sum(Order.total), 0)).where(
                Order.status.in_(VOLUME_STATUSES), *filters
            )
        )).scalar()
        return Decimal(str(total or 0)).quantize(Decimal("0.01"))

    async def get_dashboard_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Totals plus month-over-month growth for users, products, orders and revenue."""
        now = now or datetime.now(timezone.utc)
        last_month, this_month = month_bounds(now)

        def in_last_month(column):
            return (column >= last_month, column < this_month)

        def in_this_month(column):
            return (column >= this_month,)

        active = Product.is_active == True  # noqa: E712

        stats = {
            "total_users": await self._count(User.id),
            "total_products": await self._count(Product.id, active),
            "total_orders": await self._count(Order.id),
            "total_revenue": await self._revenue(),
        }

        stats["user_growth"] = growth_percent(
            await self._count(User.id, *in_this_month(User.joined_at)),
            await self._count(User.id, *in_last_month(User.joined_at)),
        )
        stats["product_growth"] = growth_percent(
            await self._count(Product.id, active, *in_this_month(Product.created_at)),
            await self._count(Product.id, active, *in_last_month(Product.created_at)),
        )
        stats["order_growth"] = growth_percent(
            await self._count(Order.id, *in_this_month(Order.created_at)),
            await self._count(Order.id, *in_last_month(Order.created_at)),
        )
        stats["revenue_growth"] = growth_percent(
            await self._revenue(*in_this_month(Order.created_at)),
            await self._revenue(*in_last_month(Order.created_at)),
        )
        return stats

    async def get_top_products(
        self,
        limit: int = 5,
        now: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """
        Best sellers of the current month by units sold.

        Lines of products that have since been removed are left out.
        """
        now = now or datetime.now(timezone.utc)
        _, this_month = month_bounds(now)

        units = func.sum(OrderItem.quantity).label("units_sold")
        revenue = func.coalesce(func.sum(OrderItem.line_total), 0).label("revenue")
        result = await self.db.execute(
            select(Product.id, Product.name, Product.price, units, revenue)
            .join(OrderItem, OrderItem.product_id == Product.id)
            .join(Order, Order.id == OrderItem.order_id)
            .where(
                Order.status.in_(VOLUME_STATUSES),
                Order.created_at >= this_month,
            )
            .group_by(Product.id, Product.name, Product.price)
            .order_by(units.desc(), Product.name)
            .limit(limit)
        )
        return [
            {
                "product_id": row.id,
                "name": row.name,
                "price": row.price,
                "units_sold": int(row.units_sold or 0),
                "revenue": Decimal(str(row.revenue or 0)).quantize(Decimal("0.01")),
            }
            for row in result.all()
        ]
