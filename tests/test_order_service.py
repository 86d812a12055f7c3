"""Tests for checkout, payment confirmation and order status changes."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.models.commission import CommissionStatus
from app.models.order import OrderSequence, OrderStatus, OrderStatusHistory
from app.services.order_service import OrderService, OrderStateError
from app.services.product_service import ProductService

from conftest import make_chain, make_product, make_user


async def _stock(db, product_id) -> int:
    return (await ProductService(db).get_product_by_id(product_id)).stock


class TestCreateOrder:
    async def test_prices_from_catalogue_and_reserves_stock(self, db_session):
        buyer = await make_user(db_session, name="Buyer")
        rice = await make_product(db_session, name="Sona Masoori", price="400.00", discount="25", stock=10)
        dal = await make_product(db_session, name="Toor Dal", price="150.00", stock=3)

        order = await OrderService(db_session).create_order(buyer, [
            {"product_id": rice.id, "quantity": 2},
            {"product_id": dal.id, "quantity": 1},
            {"product_id": rice.id, "quantity": 1},
        ])

        assert order.status == OrderStatus.PENDING.value
        assert order.order_number.startswith("ORD-")
        assert order.total == Decimal("1050.00")
        lines = {item.product_id: item for item in order.items}
        assert lines[rice.id].quantity == 3
        assert lines[rice.id].unit_price == Decimal("300.00")
        assert lines[rice.id].line_total == Decimal("900.00")

        assert await _stock(db_session, rice.id) == 7
        assert await _stock(db_session, dal.id) == 2

    async def test_insufficient_stock(self, db_session):
        buyer = await make_user(db_session, name="Buyer")
        dal = await make_product(db_session, name="Toor Dal", stock=1)

        with pytest.raises(ValueError, match="Insufficient stock"):
            await OrderService(db_session).create_order(buyer, [{"product_id": dal.id, "quantity": 2}])

        assert await _stock(db_session, dal.id) == 1

    async def test_inactive_product(self, db_session):
        buyer = await make_user(db_session, name="Buyer")
        product = await make_product(db_session, name="Discontinued")
        await ProductService(db_session).delete_product(product)

        with pytest.raises(ValueError, match="not available"):
            await OrderService(db_session).create_order(buyer, [{"product_id": product.id, "quantity": 1}])

    async def test_order_numbers_are_sequential(self, db_session):
        buyer = await make_user(db_session, name="Buyer")
        product = await make_product(db_session)
        service = OrderService(db_session)

        first = await service.create_order(buyer, [{"product_id": product.id, "quantity": 1}])
        second = await service.create_order(buyer, [{"product_id": product.id, "quantity": 1}])

        assert first.order_number.endswith("-0001")
        assert second.order_number.endswith("-0002")

    async def test_numbers_taken_before_either_order_exists_differ(self, db_session):
        first = await OrderService(db_session).generate_order_number()
        second = await OrderService(db_session).generate_order_number()

        assert first != second
        assert second.endswith("-0002")

    async def test_counter_continues_from_stored_value(self, db_session):
        buyer = await make_user(db_session, name="Buyer")
        product = await make_product(db_session)
        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        db_session.add(OrderSequence(sequence_date=today, current_number=41))
        await db_session.flush()

        order = await OrderService(db_session).create_order(buyer, [{"product_id": product.id, "quantity": 1}])

        assert order.order_number == f"ORD-{today}-0042"


class TestPaymentAndStatus:
    async def test_confirm_payment_generates_commissions(self, db_session):
        sponsor, buyer = await make_chain(db_session, 2)
        product = await make_product(db_session, price="1000.00")
        service = OrderService(db_session)
        order = await service.create_order(buyer, [{"product_id": product.id, "quantity": 1}])

        await service.confirm_payment(order, payment_reference="pay_123")

        assert order.status == OrderStatus.PAID.value
        assert order.paid_at is not None
        commissions = await service.get_order_commissions(order.id)
        assert len(commissions) == 1
        assert commissions[0].user_id == sponsor.id
        assert commissions[0].amount == Decimal("80.00")
        assert commissions[0].status == CommissionStatus.PENDING.value

    async def test_paid_order_cannot_be_paid_again(self, db_session):
        buyer = await make_user(db_session, name="Buyer")
        product = await make_product(db_session)
        service = OrderService(db_session)
        order = await service.create_order(buyer, [{"product_id": product.id, "quantity": 1}])
        await service.confirm_payment(order)

        with pytest.raises(OrderStateError) as exc_info:
            await service.confirm_payment(order)
        assert exc_info.value.current_status == OrderStatus.PAID.value

    @pytest.mark.parametrize("target", [OrderStatus.SHIPPED.value, OrderStatus.DELIVERED.value])
    async def test_pending_order_cannot_skip_payment(self, db_session, target):
        buyer = await make_user(db_session, name="Buyer")
        product = await make_product(db_session)
        service = OrderService(db_session)
        order = await service.create_order(buyer, [{"product_id": product.id, "quantity": 1}])

        with pytest.raises(OrderStateError):
            await service.update_status(order, target)
        assert order.status == OrderStatus.PENDING.value

    async def test_full_lifecycle_is_recorded(self, db_session):
        buyer = await make_user(db_session, name="Buyer")
        admin = await make_user(db_session, name="Admin")
        product = await make_product(db_session)
        service = OrderService(db_session)
        order = await service.create_order(buyer, [{"product_id": product.id, "quantity": 1}])

        await service.update_status(order, OrderStatus.PAID.value, changed_by=admin)
        await service.update_status(order, OrderStatus.SHIPPED.value, changed_by=admin)
        await service.update_status(order, OrderStatus.DELIVERED.value, changed_by=admin)

        assert order.shipped_at is not None
        assert order.delivered_at is not None
        history = (await db_session.execute(
            select(OrderStatusHistory.to_status).where(OrderStatusHistory.order_id == order.id)
        )).scalars().all()
        assert sorted(history) == sorted(["PENDING", "PAID", "SHIPPED", "DELIVERED"])

        with pytest.raises(OrderStateError):
            await service.update_status(order, OrderStatus.CANCELLED.value)

    async def test_cancel_releases_stock_and_commissions(self, db_session):
        sponsor, buyer = await make_chain(db_session, 2)
        product = await make_product(db_session, price="1000.00", stock=5)
        service = OrderService(db_session)
        order = await service.create_order(buyer, [{"product_id": product.id, "quantity": 2}])
        await service.confirm_payment(order)
        assert await _stock(db_session, product.id) == 3

        await service.update_status(order, OrderStatus.CANCELLED.value, notes="Customer request")

        assert order.status == OrderStatus.CANCELLED.value
        assert order.cancelled_at is not None
        assert await _stock(db_session, product.id) == 5
        commissions = await service.get_order_commissions(order.id)
        assert [c.status for c in commissions] == [CommissionStatus.CANCELLED.value]
