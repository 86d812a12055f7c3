"""Tests for the payout lifecycle: PENDING -> APPROVED -> PAID, or PENDING -> REJECTED."""

from decimal import Decimal

import pytest
from sqlalchemy import select

from app.models.commission import Commission, CommissionStatus
from app.models.payout import PayoutStatus
from app.models.user import User
from app.services.commission_service import CommissionService, CommissionStateError
from app.services.payout_service import PayoutService, PayoutStateError

from conftest import make_chain, make_order, make_user


BANK = {
    "account_holder": "Member Zero",
    "account_number": "000123456789",
    "ifsc": "SBIN0001234",
}


async def _earner_with_balance(db, total="2000.00"):
    """Earner with one approved level 1 commission (8% of ``total``)."""
    earner, buyer = await make_chain(db, 2)
    order = await make_order(db, buyer, total=total)
    service = CommissionService(db)
    created = await service.compute_commissions(order)
    await service.approve_commission(created[0])
    return earner, created[0]


async def _reload_commission(db, commission_id):
    result = await db.execute(
        select(Commission)
        .where(Commission.id == commission_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


class TestRequestPayout:
    async def test_request_links_commissions_and_debits_wallet(self, db_session):
        earner, commission = await _earner_with_balance(db_session)

        payout = await PayoutService(db_session).request_payout(earner, BANK)

        assert payout.status == PayoutStatus.PENDING.value
        assert payout.amount == Decimal("160.00")
        assert Decimal(str(earner.wallet_balance)) == Decimal("0.00")
        assert (await _reload_commission(db_session, commission.id)).payout_id == payout.id

    async def test_nothing_to_withdraw(self, db_session):
        user = await make_user(db_session, name="Newcomer")

        with pytest.raises(ValueError):
            await PayoutService(db_session).request_payout(user, BANK)

    async def test_below_minimum_payout(self, db_session):
        earner, _ = await _earner_with_balance(db_session, total="1000.00")

        with pytest.raises(ValueError, match="Minimum payout"):
            await PayoutService(db_session).request_payout(earner, BANK)
        assert Decimal(str(earner.wallet_balance)) == Decimal("80.00")

    async def test_commissions_cannot_fund_two_payouts(self, db_session):
        earner, _ = await _earner_with_balance(db_session)
        service = PayoutService(db_session)
        await service.request_payout(earner, BANK)

        with pytest.raises(ValueError):
            await service.request_payout(earner, BANK)


class TestReviewPayout:
    async def test_approve_then_mark_paid(self, db_session):
        earner, commission = await _earner_with_balance(db_session)
        admin = await make_user(db_session, name="Admin")
        service = PayoutService(db_session)
        payout = await service.request_payout(earner, BANK)

        await service.review_payout(payout, PayoutStatus.APPROVED.value, "Looks fine", admin)
        assert payout.status == PayoutStatus.APPROVED.value
        assert payout.reviewed_by_id == admin.id
        assert payout.reviewed_at is not None

        await service.mark_paid(payout, payment_reference="UTR123456", admin=admin)
        assert payout.status == PayoutStatus.PAID.value
        assert payout.payment_reference == "UTR123456"
        assert payout.paid_at is not None
        assert Decimal(str(earner.total_withdrawn)) == Decimal("160.00")

        settled = await _reload_commission(db_session, commission.id)
        assert settled.status == CommissionStatus.PAID.value
        assert settled.paid_at is not None

    async def test_reject_returns_commissions_and_balance(self, db_session):
        earner, commission = await _earner_with_balance(db_session)
        service = PayoutService(db_session)
        payout = await service.request_payout(earner, BANK)

        await service.review_payout(payout, PayoutStatus.REJECTED.value, "Bank details mismatch")

        assert payout.status == PayoutStatus.REJECTED.value
        assert payout.admin_notes == "Bank details mismatch"
        assert Decimal(str(earner.wallet_balance)) == Decimal("160.00")
        released = await _reload_commission(db_session, commission.id)
        assert released.payout_id is None
        assert released.status == CommissionStatus.APPROVED.value

        # The same commissions can fund a new request
        retry = await service.request_payout(earner, BANK)
        assert retry.amount == Decimal("160.00")

    @pytest.mark.parametrize("decision", [PayoutStatus.APPROVED.value, PayoutStatus.REJECTED.value])
    async def test_only_pending_payouts_can_be_reviewed(self, db_session, decision):
        earner, _ = await _earner_with_balance(db_session)
        service = PayoutService(db_session)
        payout = await service.request_payout(earner, BANK)
        await service.review_payout(payout, PayoutStatus.APPROVED.value)

        with pytest.raises(PayoutStateError) as exc_info:
            await service.review_payout(payout, decision)

        assert exc_info.value.current_status == PayoutStatus.APPROVED.value
        assert payout.status == PayoutStatus.APPROVED.value

    async def test_paid_payout_cannot_be_rejected(self, db_session):
        earner, _ = await _earner_with_balance(db_session)
        service = PayoutService(db_session)
        payout = await service.request_payout(earner, BANK)
        await service.review_payout(payout, PayoutStatus.APPROVED.value)
        await service.mark_paid(payout)

        with pytest.raises(PayoutStateError):
            await service.review_payout(payout, PayoutStatus.REJECTED.value)
        assert payout.status == PayoutStatus.PAID.value

    async def test_pending_payout_cannot_be_marked_paid(self, db_session):
        earner, _ = await _earner_with_balance(db_session)
        service = PayoutService(db_session)
        payout = await service.request_payout(earner, BANK)

        with pytest.raises(PayoutStateError):
            await service.mark_paid(payout)
        assert payout.status == PayoutStatus.PENDING.value

    async def test_invalid_decision(self, db_session):
        earner, _ = await _earner_with_balance(db_session)
        service = PayoutService(db_session)
        payout = await service.request_payout(earner, BANK)

        with pytest.raises(ValueError):
            await service.review_payout(payout, PayoutStatus.PAID.value)

    async def test_commission_locked_in_payout_cannot_be_cancelled(self, db_session):
        earner, commission = await _earner_with_balance(db_session)
        await PayoutService(db_session).request_payout(earner, BANK)
        locked = await _reload_commission(db_session, commission.id)

        with pytest.raises(CommissionStateError):
            await CommissionService(db_session).cancel_commission(locked)


class TestPayoutStats:
    async def test_stats_per_status(self, db_session):
        earner, _ = await _earner_with_balance(db_session)
        service = PayoutService(db_session)
        await service.request_payout(earner, BANK)

        stats = await service.get_stats()

        assert stats["pending_count"] == 1
        assert stats["pending_amount"] == Decimal("160.00")
        assert stats["paid_count"] == 0


class TestConcurrentAdmins:
    """Two admins acting on the same payout from separate requests."""

    async def _payout_open_in_two_sessions(self, session_factory, approve_first=False):
        async with session_factory() as setup:
            earner, commission = await _earner_with_balance(setup)
            payout = await PayoutService(setup).request_payout(earner, BANK)
            if approve_first:
                await PayoutService(setup).review_payout(payout, PayoutStatus.APPROVED.value)
            await setup.commit()

        # Both requests load the payout before either one writes
        first, second = session_factory(), session_factory()
        stale = []
        for session in (first, second):
            stale.append(await PayoutService(session).get_payout(payout.id))
            await session.commit()
        return earner.id, commission.id, first, second, stale

    async def test_stale_reviewer_cannot_reject_approved_payout(self, session_factory):
        earner_id, commission_id, first, second, (approving, rejecting) = (
            await self._payout_open_in_two_sessions(session_factory)
        )
        try:
            await PayoutService(first).review_payout(approving, PayoutStatus.APPROVED.value)
            await first.commit()

            with pytest.raises(PayoutStateError) as exc_info:
                await PayoutService(second).review_payout(rejecting, PayoutStatus.REJECTED.value)
            assert exc_info.value.current_status == PayoutStatus.APPROVED.value
            await second.rollback()
        finally:
            await first.close()
            await second.close()

        async with session_factory() as check:
            payout = await PayoutService(check).get_payout(approving.id)
            assert payout.status == PayoutStatus.APPROVED.value
            earner = await check.get(User, earner_id)
            assert Decimal(str(earner.wallet_balance)) == Decimal("0.00")
            commission = await _reload_commission(check, commission_id)
            assert commission.payout_id == payout.id

    async def test_payout_is_settled_once(self, session_factory):
        earner_id, _, first, second, (one, other) = (
            await self._payout_open_in_two_sessions(session_factory, approve_first=True)
        )
        try:
            await PayoutService(first).mark_paid(one, payment_reference="UTR0001")
            await first.commit()

            with pytest.raises(PayoutStateError):
                await PayoutService(second).mark_paid(other, payment_reference="UTR0002")
            await second.rollback()
        finally:
            await first.close()
            await second.close()

        async with session_factory() as check:
            payout = await PayoutService(check).get_payout(one.id)
            assert payout.payment_reference == "UTR0001"
            earner = await check.get(User, earner_id)
            assert Decimal(str(earner.total_withdrawn)) == Decimal("160.00")
