"""Tests for multi-level commission generation and status changes."""

from decimal import Decimal

import pytest
from sqlalchemy import select, func, update

from app.config import settings
from app.models.commission import Commission, CommissionStatus, CommissionType
from app.models.order import OrderStatus
from app.models.user import User
from app.services.commission_service import (
    CommissionService,
    CommissionStateError,
    calculate_commission_amount,
)
from app.services.referral_service import ReferralCycleError
from app.services.settings_service import SettingsService

from conftest import make_chain, make_order, make_user


async def _commissions_for(db, order):
    result = await db.execute(
        select(Commission).where(Commission.order_id == order.id).order_by(Commission.level)
    )
    return list(result.scalars().all())


class TestCalculateCommissionAmount:
    def test_default_rates_on_round_total(self):
        assert calculate_commission_amount(Decimal("1000"), Decimal("8")) == Decimal("80.00")
        assert calculate_commission_amount(Decimal("1000"), Decimal("0.5")) == Decimal("5.00")

    def test_rounds_half_up_to_two_places(self):
        assert calculate_commission_amount(Decimal("333.33"), Decimal("0.5")) == Decimal("1.67")
        assert calculate_commission_amount(Decimal("333.33"), Decimal("8")) == Decimal("26.67")
        assert calculate_commission_amount(Decimal("0.10"), Decimal("0.5")) == Decimal("0.00")


class TestComputeCommissions:
    async def test_five_levels_with_default_rates(self, db_session):
        chain = await make_chain(db_session, 6)
        buyer = chain[-1]
        order = await make_order(db_session, buyer, total="1000.00")

        created = await CommissionService(db_session).compute_commissions(order)

        assert [c.level for c in created] == [1, 2, 3, 4, 5]
        assert [c.amount for c in created] == [
            Decimal("80.00"), Decimal("40.00"), Decimal("20.00"), Decimal("10.00"), Decimal("5.00"),
        ]
        # Level 1 is the buyer's direct referrer, level 5 the top of the line
        assert created[0].user_id == chain[4].id
        assert created[4].user_id == chain[0].id
        assert all(c.status == CommissionStatus.PENDING.value for c in created)
        assert all(c.from_user_id == buyer.id for c in created)
        assert created[0].type == CommissionType.REFERRAL.value
        assert {c.type for c in created[1:]} == {CommissionType.LEVEL.value}

    async def test_walk_stops_at_max_levels(self, db_session):
        chain = await make_chain(db_session, 8)
        order = await make_order(db_session, chain[-1], total="1000.00")

        await CommissionService(db_session).compute_commissions(order)

        stored = await _commissions_for(db_session, order)
        assert len(stored) == settings.MAX_COMMISSION_LEVELS
        earners = {c.user_id for c in stored}
        assert chain[0].id not in earners
        assert chain[1].id not in earners

    async def test_short_upline_gets_only_existing_levels(self, db_session):
        chain = await make_chain(db_session, 3)
        order = await make_order(db_session, chain[-1], total="250.00")

        created = await CommissionService(db_session).compute_commissions(order)

        assert [c.level for c in created] == [1, 2]
        assert [c.amount for c in created] == [Decimal("20.00"), Decimal("10.00")]

    async def test_buyer_without_referrer_earns_nobody_anything(self, db_session):
        buyer = await make_user(db_session, name="Solo Buyer")
        order = await make_order(db_session, buyer)

        created = await CommissionService(db_session).compute_commissions(order)

        assert created == []
        assert await _commissions_for(db_session, order) == []

    async def test_unpaid_order_is_rejected(self, db_session):
        chain = await make_chain(db_session, 2)
        order = await make_order(db_session, chain[-1], status=OrderStatus.PENDING.value)

        with pytest.raises(ValueError):
            await CommissionService(db_session).compute_commissions(order)
        assert await _commissions_for(db_session, order) == []

    async def test_second_run_does_not_duplicate(self, db_session):
        chain = await make_chain(db_session, 3)
        order = await make_order(db_session, chain[-1])
        service = CommissionService(db_session)

        await service.compute_commissions(order)
        again = await service.compute_commissions(order)

        assert again == []
        assert len(await _commissions_for(db_session, order)) == 2

    async def test_zero_rate_level_is_skipped_but_walk_continues(self, db_session):
        await SettingsService(db_session).update_commission_rates([(1, 8), (2, 0), (3, 2)])
        chain = await make_chain(db_session, 4)
        order = await make_order(db_session, chain[-1], total="1000.00")

        created = await CommissionService(db_session).compute_commissions(order)

        assert [c.level for c in created] == [1, 3]
        assert created[1].user_id == chain[0].id
        assert created[1].amount == Decimal("20.00")

    async def test_updated_rates_apply_to_next_order(self, db_session):
        chain = await make_chain(db_session, 2)
        service = CommissionService(db_session)

        first = await make_order(db_session, chain[-1], total="1000.00")
        await service.compute_commissions(first)

        await SettingsService(db_session).update_commission_rates([(1, 10)])
        second = await make_order(db_session, chain[-1], total="1000.00")
        await service.compute_commissions(second)

        assert (await _commissions_for(db_session, first))[0].amount == Decimal("80.00")
        assert (await _commissions_for(db_session, second))[0].amount == Decimal("100.00")

    async def test_disabled_commissions_write_nothing(self, db_session):
        await SettingsService(db_session).update_system_settings({"enable_commissions": False})
        chain = await make_chain(db_session, 3)
        order = await make_order(db_session, chain[-1])

        assert await CommissionService(db_session).compute_commissions(order) == []

    async def test_inactive_referrer_is_paid_by_default(self, db_session):
        top = await make_user(db_session, name="Dormant Sponsor", is_active=False)
        buyer = await make_user(db_session, name="Buyer", referrer=top)
        order = await make_order(db_session, buyer)

        created = await CommissionService(db_session).compute_commissions(order)

        assert [c.user_id for c in created] == [top.id]

    async def test_inactive_referrer_skipped_when_configured(self, db_session, monkeypatch):
        monkeypatch.setattr(settings, "COMMISSION_SKIP_INACTIVE_REFERRERS", True)
        top = await make_user(db_session, name="Active Top")
        middle = await make_user(db_session, name="Dormant Middle", referrer=top, is_active=False)
        buyer = await make_user(db_session, name="Buyer", referrer=middle)
        order = await make_order(db_session, buyer, total="1000.00")

        created = await CommissionService(db_session).compute_commissions(order)

        assert [(c.level, c.user_id) for c in created] == [(2, top.id)]
        assert created[0].amount == Decimal("40.00")

    async def test_referral_cycle_raises_and_writes_nothing(self, db_session):
        a, b, c = await make_chain(db_session, 3)
        await db_session.execute(
            update(User)
            .where(User.id == a.id)
            .values(referrer_id=c.id)
            .execution_options(synchronize_session=False)
        )
        order = await make_order(db_session, c)

        with pytest.raises(ReferralCycleError) as exc_info:
            await CommissionService(db_session).compute_commissions(order)

        assert c.id in exc_info.value.user_ids
        count = (await db_session.execute(select(func.count(Commission.id)))).scalar()
        assert count == 0


class TestCommissionStatus:
    async def _pending(self, db_session, total="1000.00"):
        chain = await make_chain(db_session, 2)
        order = await make_order(db_session, chain[-1], total=total)
        created = await CommissionService(db_session).compute_commissions(order)
        return chain[0], created[0]

    async def test_approve_credits_wallet(self, db_session):
        earner, commission = await self._pending(db_session)

        await CommissionService(db_session).approve_commission(commission)

        assert commission.status == CommissionStatus.APPROVED.value
        assert commission.approved_at is not None
        assert Decimal(str(earner.wallet_balance)) == Decimal("80.00")
        assert Decimal(str(earner.total_earnings)) == Decimal("80.00")

    async def test_cannot_approve_twice(self, db_session):
        _, commission = await self._pending(db_session)
        service = CommissionService(db_session)
        await service.approve_commission(commission)

        with pytest.raises(CommissionStateError):
            await service.approve_commission(commission)

    async def test_cancel_approved_debits_wallet(self, db_session):
        earner, commission = await self._pending(db_session)
        service = CommissionService(db_session)
        await service.approve_commission(commission)

        await service.cancel_commission(commission, reason="Order returned")

        assert commission.status == CommissionStatus.CANCELLED.value
        assert Decimal(str(earner.wallet_balance)) == Decimal("0.00")
        assert commission.notes == "Order returned"

    async def test_paid_commission_cannot_be_cancelled(self, db_session):
        _, commission = await self._pending(db_session)
        commission.status = CommissionStatus.PAID.value

        with pytest.raises(CommissionStateError):
            await CommissionService(db_session).cancel_commission(commission)

    async def test_unsupported_status_change(self, db_session):
        _, commission = await self._pending(db_session)

        with pytest.raises(ValueError):
            await CommissionService(db_session).update_status(commission, CommissionStatus.PAID.value)

    async def test_user_and_admin_stats(self, db_session):
        earner, commission = await self._pending(db_session)
        service = CommissionService(db_session)
        await service.approve_commission(commission)

        stats = await service.get_user_stats(earner)
        assert stats["approved_amount"] == Decimal("80.00")
        assert stats["pending_amount"] == Decimal("0.00")
        assert stats["total_earned"] == Decimal("80.00")

        admin_stats = await service.get_admin_stats()
        assert admin_stats["total_count"] == 1
        assert admin_stats["by_status"][CommissionStatus.APPROVED.value] == Decimal("80.00")
        assert admin_stats["by_level"][0]["level"] == 1
