from typing import List, Optional, Tuple
from datetime import datetime, timezone
from decimal import Decimal
import uuid
import logging

from sqlalchemy import select, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.commission import Commission
from app.models.order import (
    Order, OrderItem, OrderSequence, OrderStatus, OrderStatusHistory, ORDER_TRANSITIONS,
)
from app.models.product import Product
from app.models.user import User
from app.services.commission_service import CommissionService
from app.services.referral_service import ReferralCycleError

logger = logging.getLogger(__name__)


class OrderStateError(Exception):
    """Order status transition not allowed."""

    def __init__(self, message: str, current_status: Optional[str] = None):
        self.message = message
        self.current_status = current_status
        super().__init__(self.message)


class OrderService:
    """Service for checkout, payment confirmation and order status changes."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== ORDER NUMBER GENERATION ====================

    async def _next_sequence_number(self, day: str) -> int:
        """
        Take the next number from the daily counter.

        The increment is a single UPDATE, so the row lock serialises concurrent
        checkouts. The first order of the day creates the row inside a savepoint;
        losing that insert race falls back to the increment.
        """
        bump = (
            update(OrderSequence)
            .where(OrderSequence.sequence_date == day)
            .values(current_number=OrderSequence.current_number + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(bump)

        if result.rowcount == 0:
            # Continue after any orders numbered before the counter existed
            existing = (await self.db.execute(
                select(func.count(Order.id)).where(Order.order_number.like(f"ORD-{day}-%"))
            )).scalar() or 0
            try:
                async with self.db.begin_nested():
                    self.db.add(OrderSequence(sequence_date=day, current_number=existing + 1))
            except IntegrityError:
                await self.db.execute(bump)

        return (await self.db.execute(
            select(OrderSequence.current_number).where(OrderSequence.sequence_date == day)
        )).scalar_one()

    async def generate_order_number(self) -> str:
        """Generate unique order number: ORD-YYYYMMDD-XXXX"""
        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        number = await self._next_sequence_number(today)
        return f"ORD-{today}-{number:04d}"

    # ==================== QUERIES ====================

    async def get_order(self, order_id: uuid.UUID) -> Optional[Order]:
        result = await self.db.execute(
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.id == order_id)
        )
        return result.scalar_one_or_none()

    async def list_orders(
        self,
        user_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Order], int]:
        filters = []
        if user_id:
            filters.append(Order.user_id == user_id)
        if status:
            filters.append(Order.status == status)

        total = (await self.db.execute(
            select(func.count(Order.id)).where(*filters)
        )).scalar() or 0
        result = await self.db.execute(
            select(Order)
            .options(selectinload(Order.items))
            .where(*filters)
            .order_by(Order.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    # ==================== CHECKOUT ====================

    async def create_order(
        self,
        user: User,
        items: List[dict],
        shipping_address: Optional[dict] = None,
        notes: Optional[str] = None,
    ) -> Order:
        """
        Place a PENDING order.

        Prices come from the catalogue (final price after discount). Stock is
        reserved with a conditional UPDATE per line so two buyers cannot take
        the same last unit.
        """
        quantities: dict[uuid.UUID, int] = {}
        for item in items:
            quantities[item["product_id"]] = quantities.get(item["product_id"], 0) + item["quantity"]

        result = await self.db.execute(
            select(Product).where(Product.id.in_(list(quantities)))
        )
        products = {p.id: p for p in result.scalars().all()}

        order_items = []
        subtotal = Decimal("0.00")
        for product_id, quantity in quantities.items():
            product = products.get(product_id)
            if product is None:
                raise ValueError(f"Product {product_id} not found")
            if not product.is_active:
                raise ValueError(f"Product '{product.name}' is not available")

            reserved = await self.db.execute(
                update(Product)
                .where(Product.id == product_id, Product.stock >= quantity)
                .values(stock=Product.stock - quantity)
                .execution_options(synchronize_session=False)
            )
            if reserved.rowcount == 0:
                raise ValueError(f"Insufficient stock for '{product.name}'")

            unit_price = product.final_price
            line_total = (unit_price * quantity).quantize(Decimal("0.01"))
            subtotal += line_total
            order_items.append(OrderItem(
                id=uuid.uuid4(),
                product_id=product.id,
                product_name=product.name,
                product_sku=product.sku,
                quantity=quantity,
                unit_price=unit_price,
                line_total=line_total,
            ))

        order = Order(
            id=uuid.uuid4(),
            order_number=await self.generate_order_number(),
            user_id=user.id,
            status=OrderStatus.PENDING.value,
            subtotal=subtotal,
            total=subtotal,
            shipping_address=shipping_address,
            notes=notes,
            items=order_items,
        )
        self.db.add(order)
        self.db.add(OrderStatusHistory(
            order_id=order.id,
            from_status=None,
            to_status=OrderStatus.PENDING.value,
            changed_by=user.id,
        ))
        await self.db.flush()

        logger.info(f"Order {order.order_number} placed by user {user.id}, total {order.total}")
        return order

    # ==================== STATUS ====================

    def _check_transition(self, order: Order, new_status: str) -> None:
        allowed = ORDER_TRANSITIONS.get(order.status, set())
        if new_status not in allowed:
            raise OrderStateError(
                f"Cannot change order {order.order_number} from {order.status} to {new_status}",
                current_status=order.status,
            )

    async def confirm_payment(self, order: Order, payment_reference: Optional[str] = None) -> Order:
        """
        PENDING -> PAID, then generate referral commissions.

        Both happen in the caller's transaction: if commission generation
        fails the payment confirmation is rolled back with it.
        """
        self._check_transition(order, OrderStatus.PAID.value)

        previous = order.status
        order.status = OrderStatus.PAID.value
        order.paid_at = datetime.now(timezone.utc)
        order.payment_reference = payment_reference
        self.db.add(OrderStatusHistory(
            order_id=order.id,
            from_status=previous,
            to_status=order.status,
            notes=f"Payment {payment_reference}" if payment_reference else None,
        ))
        await self.db.flush()

        commissions = await CommissionService(self.db).compute_commissions(order)
        logger.info(
            f"Order {order.order_number} paid, {len(commissions)} commissions generated"
        )
        return order

    async def update_status(
        self,
        order: Order,
        new_status: str,
        changed_by: Optional[User] = None,
        notes: Optional[str] = None,
    ) -> Order:
        """Admin status change following ORDER_TRANSITIONS. DELIVERED and CANCELLED are final."""
        if new_status == OrderStatus.PAID.value:
            return await self.confirm_payment(order, notes)

        self._check_transition(order, new_status)

        previous = order.status
        now = datetime.now(timezone.utc)
        order.status = new_status
        if new_status == OrderStatus.SHIPPED.value:
            order.shipped_at = now
        elif new_status == OrderStatus.DELIVERED.value:
            order.delivered_at = now
        elif new_status == OrderStatus.CANCELLED.value:
            order.cancelled_at = now
            await self._release_stock(order)
            cancelled = await CommissionService(self.db).cancel_for_order(
                order, reason=f"Order {order.order_number} cancelled"
            )
            logger.info(f"Order {order.order_number} cancelled, {cancelled} commissions cancelled")

        self.db.add(OrderStatusHistory(
            order_id=order.id,
            from_status=previous,
            to_status=new_status,
            changed_by=changed_by.id if changed_by else None,
            notes=notes,
        ))
        await self.db.flush()
        return order

    async def bulk_update_status(
        self,
        order_ids: List[uuid.UUID],
        new_status: str,
        changed_by: Optional[User] = None,
        notes: Optional[str] = None,
    ) -> dict:
        """
        Apply update_status to several orders.

        Each order goes through the normal transition rules (stock release,
        commission generation or cancellation) in its own savepoint, so one
        refused order does not undo the others.
        """
        results = {"updated": 0, "failed": 0, "errors": []}

        for order_id in dict.fromkeys(order_ids):
            order = await self.get_order(order_id)
            if order is None:
                results["failed"] += 1
                results["errors"].append({"id": str(order_id), "error": "Order not found"})
                continue
            try:
                async with self.db.begin_nested():
                    await self.update_status(order, new_status, changed_by=changed_by, notes=notes)
            except (OrderStateError, ReferralCycleError, ValueError) as e:
                results["failed"] += 1
                results["errors"].append({"id": str(order_id), "error": str(e)})
                continue
            results["updated"] += 1

        logger.info(
            f"Bulk status change to {new_status}: {results['updated']} updated, {results['failed']} failed"
        )
        return results

    async def _release_stock(self, order: Order) -> None:
        for item in order.items:
            if item.product_id is None:
                continue
            await self.db.execute(
                update(Product)
                .where(Product.id == item.product_id)
                .values(stock=Product.stock + item.quantity)
                .execution_options(synchronize_session=False)
            )

    async def get_order_commissions(self, order_id: uuid.UUID) -> List[Commission]:
        result = await self.db.execute(
            select(Commission)
            .where(Commission.order_id == order_id)
            .order_by(Commission.level)
        )
        return list(result.scalars().all())
