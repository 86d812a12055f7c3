"""
Settings Service

Loads and updates runtime business configuration:
- SystemSettings (single row: payout minimum, feature switches)
- Commission plan (level -> percentage table)

Both are cached through CacheService. Every write goes through this service
and invalidates the cached copy before returning.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional, Iterable

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.commission import CommissionSetting
from app.models.system_settings import SystemSettings
from app.services.cache_service import get_cache

logger = logging.getLogger(__name__)

RATE_PRECISION = Decimal("0.01")


SYSTEM_SETTINGS_FIELDS = (
    "site_name",
    "site_description",
    "support_email",
    "minimum_payout",
    "enable_referrals",
    "enable_commissions",
    "maintenance_mode",
    "allow_registration",
)


class CommissionPlanError(ValueError):
    """Rejected commission rate table."""
    pass


@dataclass(frozen=True)
class CommissionPlan:
    """Immutable commission schedule. ``rates[0]`` is the level 1 percentage."""
    rates: tuple[Decimal, ...]

    @property
    def depth(self) -> int:
        return len(self.rates)

    def rate_for(self, level: int) -> Decimal:
        if level < 1 or level > len(self.rates):
            return Decimal("0")
        return self.rates[level - 1]

    def as_list(self) -> list[dict]:
        return [
            {"level": i + 1, "percentage": rate}
            for i, rate in enumerate(self.rates)
        ]


@dataclass(frozen=True)
class SystemConfig:
    """Snapshot of SystemSettings used by the business services."""
    site_name: str
    site_description: Optional[str]
    support_email: Optional[str]
    minimum_payout: Decimal
    enable_referrals: bool
    enable_commissions: bool
    maintenance_mode: bool
    allow_registration: bool

    def to_cache(self) -> dict:
        data = {field: getattr(self, field) for field in SYSTEM_SETTINGS_FIELDS}
        data["minimum_payout"] = str(self.minimum_payout)
        return data

    @classmethod
    def from_cache(cls, data: dict) -> "SystemConfig":
        values = {field: data.get(field) for field in SYSTEM_SETTINGS_FIELDS}
        values["minimum_payout"] = Decimal(str(values["minimum_payout"]))
        return cls(**values)

    @classmethod
    def from_model(cls, row: SystemSettings) -> "SystemConfig":
        values = {field: getattr(row, field) for field in SYSTEM_SETTINGS_FIELDS}
        values["minimum_payout"] = Decimal(str(row.minimum_payout))
        return cls(**values)


def validate_commission_rates(rates: Iterable[tuple[int, object]]) -> tuple[Decimal, ...]:
    """
    Validate a level -> percentage table and return the rates ordered by level.

    Levels must be contiguous from 1 with no duplicates, at most
    MAX_COMMISSION_LEVELS entries, and every percentage within [0, 100]
    with at most two decimal places. Rates are never rounded.
    """
    by_level: dict[int, Decimal] = {}
    for level, percentage in rates:
        if level in by_level:
            raise CommissionPlanError(f"Duplicate commission level {level}")
        try:
            value = Decimal(str(percentage))
        except (InvalidOperation, ValueError):
            raise CommissionPlanError(f"Invalid percentage for level {level}: {percentage}")
        if not value.is_finite() or value < 0 or value > 100:
            raise CommissionPlanError(f"Percentage for level {level} must be between 0 and 100")
        if value != value.quantize(RATE_PRECISION):
            raise CommissionPlanError(
                f"Percentage for level {level} has more than two decimal places: {percentage}"
            )
        by_level[level] = value.quantize(RATE_PRECISION)

    if not by_level:
        raise CommissionPlanError("At least one commission level is required")

    levels = sorted(by_level)
    if levels != list(range(1, len(levels) + 1)):
        raise CommissionPlanError(f"Commission levels must be contiguous from 1, got {levels}")
    if len(levels) > settings.MAX_COMMISSION_LEVELS:
        raise CommissionPlanError(
            f"At most {settings.MAX_COMMISSION_LEVELS} commission levels are allowed"
        )

    return tuple(by_level[level] for level in levels)


def default_commission_plan() -> CommissionPlan:
    rates = validate_commission_rates(
        (i + 1, rate) for i, rate in enumerate(settings.DEFAULT_COMMISSION_RATES)
    )
    return CommissionPlan(rates=rates)


class SettingsService:
    """Read and write runtime configuration with explicit cache invalidation."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.cache = get_cache()

    # ==================== System Settings ====================

    async def _get_or_create_settings_row(self) -> SystemSettings:
        result = await self.db.execute(select(SystemSettings).limit(1))
        row = result.scalar_one_or_none()
        if row is None:
            row = SystemSettings()
            self.db.add(row)
            await self.db.flush()
            logger.info("Created default system settings")
        return row

    async def get_system_settings(self) -> SystemConfig:
        cached = await self.cache.get_system_settings()
        if cached:
            return SystemConfig.from_cache(cached)

        row = await self._get_or_create_settings_row()
        config = SystemConfig.from_model(row)
        await self.cache.set_system_settings(config.to_cache())
        return config

    async def update_system_settings(self, changes: dict) -> SystemConfig:
        """Apply a partial update. Unknown keys are ignored."""
        row = await self._get_or_create_settings_row()
        for field, value in changes.items():
            if field in SYSTEM_SETTINGS_FIELDS:
                setattr(row, field, value)

        if row.minimum_payout is not None and Decimal(str(row.minimum_payout)) < 0:
            raise ValueError("Minimum payout cannot be negative")

        await self.db.flush()
        await self.cache.invalidate_system_settings()
        logger.info(f"System settings updated: {sorted(changes)}")
        return SystemConfig.from_model(row)

    # ==================== Commission Plan ====================

    async def get_commission_plan(self) -> CommissionPlan:
        """
        Return the active commission plan.

        Seeds the table with DEFAULT_COMMISSION_RATES when it is empty.
        Inactive rows count as a 0% level so the levels stay contiguous.
        """
        cached = await self.cache.get_commission_plan()
        if cached:
            return CommissionPlan(rates=tuple(Decimal(rate) for rate in cached))

        result = await self.db.execute(
            select(CommissionSetting).order_by(CommissionSetting.level)
        )
        rows = result.scalars().all()

        if not rows:
            plan = default_commission_plan()
            await self._replace_rates(plan.rates)
            logger.info(f"Seeded default commission plan: {[str(r) for r in plan.rates]}")
        else:
            rates = validate_commission_rates(
                (row.level, row.percentage if row.is_active else 0) for row in rows
            )
            plan = CommissionPlan(rates=rates)

        await self.cache.set_commission_plan([str(rate) for rate in plan.rates])
        return plan

    async def update_commission_rates(self, rates: Iterable[tuple[int, object]]) -> CommissionPlan:
        """Validate and replace the whole rate table."""
        validated = validate_commission_rates(rates)
        await self._replace_rates(validated)
        await self.cache.invalidate_commission_plan()
        logger.info(f"Commission plan updated: {[str(r) for r in validated]}")
        return CommissionPlan(rates=validated)

    async def _replace_rates(self, rates: tuple[Decimal, ...]) -> None:
        await self.db.execute(delete(CommissionSetting))
        for level, percentage in enumerate(rates, start=1):
            self.db.add(CommissionSetting(level=level, percentage=percentage, is_active=True))
        await self.db.flush()
