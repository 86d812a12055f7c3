"""Tests for capacity-limited partnership tier allocation."""

import uuid

import pytest
from sqlalchemy import select, update

from app.models.partnership import PartnershipTier
from app.models.user import User, UserRole
from app.services.tier_service import (
    TierService,
    TierFullError,
    TierNotFoundError,
    TierAlreadyAssignedError,
)

from conftest import make_tier, make_user


async def _count(db, tier_id):
    result = await db.execute(
        select(PartnershipTier.current_count).where(PartnershipTier.id == tier_id)
    )
    return result.scalar_one()


class TestAllocateTier:
    async def test_allocation_takes_one_seat(self, db_session):
        tier = await make_tier(db_session, "Gold", max_capacity=3)

        allocated = await TierService(db_session).allocate_tier("Gold")

        assert allocated.id == tier.id
        assert allocated.current_count == 1
        assert await _count(db_session, tier.id) == 1

    async def test_full_tier_rejects_and_stays_at_capacity(self, db_session):
        tier = await make_tier(db_session, "Diamond", max_capacity=2)
        service = TierService(db_session)
        await service.allocate_tier("Diamond")
        await service.allocate_tier("Diamond")

        with pytest.raises(TierFullError) as exc_info:
            await service.allocate_tier("Diamond")

        assert exc_info.value.tier_name == "Diamond"
        assert exc_info.value.max_capacity == 2
        assert await _count(db_session, tier.id) == 2

    async def test_stale_in_memory_count_does_not_overfill(self, db_session):
        tier = await make_tier(db_session, "Silver", max_capacity=5)
        # Another writer fills the tier behind this session's back
        await db_session.execute(
            update(PartnershipTier)
            .where(PartnershipTier.id == tier.id)
            .values(current_count=5)
            .execution_options(synchronize_session=False)
        )
        assert tier.current_count == 0

        with pytest.raises(TierFullError):
            await TierService(db_session).allocate_tier("Silver")

        assert await _count(db_session, tier.id) == 5
        assert tier.current_count == 5

    async def test_last_seat_goes_to_one_of_two_concurrent_applicants(self, session_factory):
        async with session_factory() as setup:
            tier = await make_tier(setup, "Diamond", max_capacity=1)
            early = await make_user(setup, name="Early Applicant")
            late = await make_user(setup, name="Late Applicant")
            await setup.commit()

        # Both requests see the spare seat before either one takes it
        first, second = session_factory(), session_factory()
        try:
            for session in (first, second):
                seen = await TierService(session).get_tier_by_name("Diamond")
                assert seen.current_count < seen.max_capacity
                await session.commit()

            first_user = await first.get(User, early.id)
            await TierService(first).apply(first_user, "Diamond")
            await first.commit()

            second_user = await second.get(User, late.id)
            with pytest.raises(TierFullError):
                await TierService(second).apply(second_user, "Diamond")
            await second.rollback()
        finally:
            await first.close()
            await second.close()

        async with session_factory() as check:
            assert await _count(check, tier.id) == 1
            assert (await check.get(User, early.id)).partnership_tier_id == tier.id
            assert (await check.get(User, late.id)).partnership_tier_id is None

    async def test_unknown_tier(self, db_session):
        with pytest.raises(TierNotFoundError):
            await TierService(db_session).allocate_tier("Platinum")

    async def test_inactive_tier_is_not_allocatable(self, db_session):
        tier = await make_tier(db_session, "Legacy", max_capacity=10)
        tier.is_active = False
        await db_session.flush()

        with pytest.raises(TierNotFoundError):
            await TierService(db_session).allocate_tier("Legacy")
        assert await _count(db_session, tier.id) == 0


class TestApply:
    async def test_apply_assigns_tier_and_partner_role(self, db_session):
        tier = await make_tier(db_session, "Gold", max_capacity=3)
        user = await make_user(db_session, name="Applicant")

        await TierService(db_session).apply(user, "Gold")

        assert user.partnership_tier_id == tier.id
        assert user.partnership_joined_at is not None
        assert user.role == UserRole.PARTNER.value

    async def test_tier_cannot_be_changed_after_assignment(self, db_session):
        gold = await make_tier(db_session, "Gold", max_capacity=3)
        diamond = await make_tier(db_session, "Diamond", max_capacity=3)
        user = await make_user(db_session, name="Applicant")
        service = TierService(db_session)
        await service.apply(user, "Gold")

        with pytest.raises(TierAlreadyAssignedError):
            await service.apply(user, "Diamond")

        assert user.partnership_tier_id == gold.id
        assert await _count(db_session, diamond.id) == 0

    async def test_model_refuses_direct_tier_change(self, db_session):
        await make_tier(db_session, "Gold", max_capacity=3)
        user = await make_user(db_session, name="Applicant")
        await TierService(db_session).apply(user, "Gold")

        with pytest.raises(ValueError):
            user.partnership_tier_id = uuid.uuid4()

    async def test_full_tier_leaves_user_unassigned(self, db_session):
        await make_tier(db_session, "Gold", max_capacity=1, current_count=1)
        user = await make_user(db_session, name="Late Applicant")

        with pytest.raises(TierFullError):
            await TierService(db_session).apply(user, "Gold")

        assert user.partnership_tier_id is None
        assert user.role == UserRole.CUSTOMER.value


class TestTierAdmin:
    async def test_capacity_cannot_drop_below_taken_seats(self, db_session):
        tier = await make_tier(db_session, "Gold", max_capacity=5, current_count=3)

        with pytest.raises(ValueError):
            await TierService(db_session).update_tier(tier, {"max_capacity": 2})

        updated = await TierService(db_session).update_tier(tier, {"max_capacity": 3})
        assert updated.max_capacity == 3
        assert updated.is_full is True

    async def test_seed_default_tiers_once(self, db_session):
        service = TierService(db_session)

        assert await service.seed_default_tiers() == 3
        assert await service.seed_default_tiers() == 0

        names = [t.name for t in await service.list_tiers()]
        assert names == ["Diamond", "Gold", "Silver"]

    async def test_duplicate_tier_name(self, db_session):
        await make_tier(db_session, "Gold")

        with pytest.raises(ValueError):
            await TierService(db_session).create_tier({"name": "Gold", "max_capacity": 10})
