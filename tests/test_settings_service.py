"""Tests for system settings and the commission rate table."""

from decimal import Decimal

import pytest
from sqlalchemy import select, update

from app.models.commission import CommissionSetting
from app.models.system_settings import SystemSettings
from app.services.cache_service import get_cache
from app.services.settings_service import (
    CommissionPlan,
    CommissionPlanError,
    SettingsService,
    default_commission_plan,
    validate_commission_rates,
)


class TestValidateCommissionRates:
    def test_accepts_contiguous_levels_in_any_order(self):
        rates = validate_commission_rates([(2, "4"), (1, 8), (3, 2.5)])
        assert rates == (Decimal("8"), Decimal("4"), Decimal("2.5"))

    @pytest.mark.parametrize(
        "rates",
        [
            [],
            [(2, 4)],                       # does not start at level 1
            [(1, 8), (3, 2)],               # gap
            [(1, 8), (1, 4)],               # duplicate level
            [(1, 101)],                     # above 100%
            [(1, -1)],                      # negative
            [(i, 1) for i in range(1, 7)],  # more levels than supported
            [(1, "0.125")],                 # finer than 0.01%
        ],
    )
    def test_rejects_invalid_tables(self, rates):
        with pytest.raises(CommissionPlanError):
            validate_commission_rates(rates)

    def test_two_decimal_places_kept_exactly(self):
        rates = validate_commission_rates([(1, "0.25"), (2, 0.5), (3, "1.10")])
        assert rates == (Decimal("0.25"), Decimal("0.50"), Decimal("1.10"))

    async def test_update_with_sub_cent_rate_is_rejected(self, db_session):
        service = SettingsService(db_session)

        with pytest.raises(CommissionPlanError, match="decimal places"):
            await service.update_commission_rates([(1, "8"), (2, "0.125")])

        assert (await service.get_commission_plan()).rate_for(2) == Decimal("4")

    def test_plan_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            validate_commission_rates([(1, 200)])


class TestCommissionPlan:
    def test_default_plan(self):
        plan = default_commission_plan()
        assert plan.depth == 5
        assert plan.rates == (Decimal("8"), Decimal("4"), Decimal("2"), Decimal("1"), Decimal("0.5"))

    def test_rate_for_out_of_range_level_is_zero(self):
        plan = CommissionPlan(rates=(Decimal("8"),))
        assert plan.rate_for(1) == Decimal("8")
        assert plan.rate_for(2) == Decimal("0")
        assert plan.rate_for(0) == Decimal("0")

    async def test_empty_table_is_seeded_with_defaults(self, db_session):
        plan = await SettingsService(db_session).get_commission_plan()

        assert plan == default_commission_plan()
        rows = (await db_session.execute(
            select(CommissionSetting).order_by(CommissionSetting.level)
        )).scalars().all()
        assert [r.level for r in rows] == [1, 2, 3, 4, 5]

    async def test_update_replaces_table_and_invalidates_cache(self, db_session):
        service = SettingsService(db_session)
        await service.get_commission_plan()
        assert await get_cache().get_commission_plan() is not None

        await service.update_commission_rates([(1, 10), (2, 5)])

        assert await get_cache().get_commission_plan() is None
        plan = await service.get_commission_plan()
        assert plan.rates == (Decimal("10"), Decimal("5"))
        rows = (await db_session.execute(select(CommissionSetting))).scalars().all()
        assert len(rows) == 2

    async def test_rejected_update_keeps_previous_plan(self, db_session):
        service = SettingsService(db_session)
        await service.get_commission_plan()

        with pytest.raises(CommissionPlanError):
            await service.update_commission_rates([(1, 10), (3, 5)])

        assert (await service.get_commission_plan()) == default_commission_plan()

    async def test_inactive_row_counts_as_zero(self, db_session):
        service = SettingsService(db_session)
        await service.get_commission_plan()
        await db_session.execute(
            update(CommissionSetting).where(CommissionSetting.level == 2).values(is_active=False)
        )
        await get_cache().invalidate_commission_plan()

        plan = await service.get_commission_plan()

        assert plan.depth == 5
        assert plan.rate_for(2) == Decimal("0")


class TestSystemSettings:
    async def test_defaults_created_on_first_read(self, db_session):
        config = await SettingsService(db_session).get_system_settings()

        assert config.minimum_payout == Decimal("100.00")
        assert config.enable_referrals is True
        assert config.enable_commissions is True
        assert config.maintenance_mode is False
        assert config.allow_registration is True

    async def test_reads_are_served_from_cache(self, db_session):
        service = SettingsService(db_session)
        await service.get_system_settings()
        await db_session.execute(update(SystemSettings).values(site_name="Changed behind the cache"))

        cached = await service.get_system_settings()
        assert cached.site_name != "Changed behind the cache"

    async def test_update_is_visible_immediately(self, db_session):
        service = SettingsService(db_session)
        await service.get_system_settings()

        await service.update_system_settings({"minimum_payout": Decimal("250.00"), "unknown_key": 1})

        config = await service.get_system_settings()
        assert config.minimum_payout == Decimal("250.00")

    async def test_negative_minimum_payout_rejected(self, db_session):
        with pytest.raises(ValueError):
            await SettingsService(db_session).update_system_settings({"minimum_payout": Decimal("-1")})
